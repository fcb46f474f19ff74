"""Permission administration: validation, system locks, soft delete, cache invalidation."""
from __future__ import annotations

import pytest

from orgauthz.constants import ALL, AuditEvent
from orgauthz.errors import NotFoundError, PermissionAdminError
from orgauthz.services import audit, permission_admin
from orgauthz.services.permission_aggregator import get_effective_permissions


def test_create_permission_normalizes_enums(org, db_session):
    permission = permission_admin.create_permission(
        db_session,
        name="ledger.post",
        action="ledger.post",
        action_type="FUNCTIONAL",
        hierarchy_scope="DEPARTMENT",
        resource_type="LEDGER",
        status_scope=["Finance", "Finance"],
        actor_id=org.id("ceo"),
    )
    assert permission.id is not None
    assert permission.status_scope == ["Finance"]
    entry = audit.list_events(db_session, event=AuditEvent.PERMISSION_MODIFIED)[0]
    assert entry.details == {"op": "create", "permission": "ledger.post"}


def test_create_defaults_to_organization_wide_scope(db_session):
    permission = permission_admin.create_permission(db_session, name="notice.read", action="notice.read")
    assert permission.status_scope == [ALL]


@pytest.mark.parametrize(
    "scope",
    [["Marketing"], [ALL, "HR"]],
)
def test_invalid_status_scope_rejected(db_session, scope):
    with pytest.raises(PermissionAdminError) as exc:
        permission_admin.create_permission(db_session, name="x.y", action="x.y", status_scope=scope)
    assert exc.value.code == "INVALID_STATUS_SCOPE"


def test_invalid_enum_and_unknown_field(db_session):
    with pytest.raises(PermissionAdminError) as exc:
        permission_admin.create_permission(db_session, name="x.y", action="x.y", action_type="CREATIVE")
    assert exc.value.code == "INVALID_FIELD"

    with pytest.raises(PermissionAdminError):
        permission_admin.create_permission(db_session, name="x.y", action="x.y", colour="red")


def test_duplicate_name_rejected(org, db_session):
    with pytest.raises(PermissionAdminError) as exc:
        permission_admin.create_permission(db_session, name="employee.view", action="employee.view")
    assert exc.value.code == "DUPLICATE"
    # The session is still usable after the rollback.
    assert permission_admin.find_by_action(db_session, "employee.view") is not None


def test_system_permission_name_is_locked(org, db_session):
    suspend = org.permissions["employee.suspend"]
    with pytest.raises(PermissionAdminError) as exc:
        permission_admin.update_permission(db_session, suspend.id, name="employee.pause")
    assert exc.value.code == "SYSTEM_PERMISSION"

    updated = permission_admin.update_permission(db_session, suspend.id, description="Suspend a subordinate")
    assert updated.description == "Suspend a subordinate"


def test_system_permission_cannot_be_deleted(org, db_session):
    with pytest.raises(PermissionAdminError) as exc:
        permission_admin.delete_permission(db_session, org.permissions["employee.block"].id)
    assert exc.value.code == "SYSTEM_PERMISSION"


def test_soft_delete_removes_permission_from_effective_set(org, db_session):
    payroll = org.id("payroll")
    assert "salary.process" in get_effective_permissions(db_session, payroll, use_cache=True).actions()

    deleted = permission_admin.delete_permission(db_session, org.permissions["salary.process"].id)
    assert deleted.is_active is False
    assert "salary.process" not in get_effective_permissions(db_session, payroll, use_cache=True).actions()


def test_scope_change_takes_effect_immediately(org, db_session):
    hr_officer = org.id("hr_officer")
    assert "hr.records.update" in get_effective_permissions(db_session, hr_officer, use_cache=True).actions()

    permission_admin.update_permission(db_session, org.permissions["hr.records.update"].id, status_scope=["Finance"])
    assert "hr.records.update" not in get_effective_permissions(db_session, hr_officer, use_cache=True).actions()


def test_set_role_permissions(org, db_session):
    staff = org.roles["staff"]
    role = permission_admin.set_role_permissions(
        db_session, staff.id, [org.permissions["leave.apply"].id, org.permissions["employee.view"].id]
    )
    assert set(role.permission_ids()) == {org.permissions["leave.apply"].id, org.permissions["employee.view"].id}
    assert "employee.view" in get_effective_permissions(db_session, org.id("hr_clerk")).actions()

    with pytest.raises(NotFoundError):
        permission_admin.set_role_permissions(db_session, staff.id, [999_999])
    with pytest.raises(NotFoundError):
        permission_admin.set_role_permissions(db_session, 999_999, [])


def test_update_missing_permission(db_session):
    with pytest.raises(NotFoundError) as exc:
        permission_admin.update_permission(db_session, 12345, description="x")
    assert exc.value.code == "PERMISSION_NOT_FOUND"
