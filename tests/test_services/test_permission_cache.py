from __future__ import annotations

from orgauthz.services import assignments, permission_admin, permission_cache
from orgauthz.services.permission_aggregator import get_effective_permissions


def test_disabled_cache_stores_nothing(org, db_session):
    get_effective_permissions(db_session, org.id("payroll"), use_cache=True)
    assert len(permission_cache.get_permission_cache()) == 0


def test_cached_reads_return_same_object(org, db_session):
    permission_cache.reset_permission_cache(60)
    first = get_effective_permissions(db_session, org.id("payroll"), use_cache=True)
    second = get_effective_permissions(db_session, org.id("payroll"), use_cache=True)
    assert first is second


def test_override_change_invalidates_holder_and_ancestors(org, db_session):
    cache = permission_cache.reset_permission_cache(60)
    for key in ("payroll", "fin_mgr", "hr_mgr"):
        get_effective_permissions(db_session, org.id(key), use_cache=True)

    assignments.add_override(db_session, org.id("payroll"), org.permissions["employee.view"].id)

    assert cache.get(org.id("payroll")) is None
    assert cache.get(org.id("fin_mgr")) is None
    assert cache.get(org.id("hr_mgr")) is not None


def test_role_permission_change_invalidates(org, db_session):
    cache = permission_cache.reset_permission_cache(60)
    get_effective_permissions(db_session, org.id("payroll"), use_cache=True)

    role = org.roles["finance_officer"]
    permission_admin.set_role_permissions(db_session, role.id, [org.permissions["leave.apply"].id])

    assert cache.get(org.id("payroll")) is None
    assert "salary.process" not in get_effective_permissions(db_session, org.id("payroll"), use_cache=True).actions()


def test_ttl_expiry(monkeypatch):
    cache = permission_cache.PermissionCache(10)
    clock = iter([100.0, 105.0, 111.0])
    monkeypatch.setattr(permission_cache.time, "monotonic", lambda: next(clock))

    cache.set(1, "value")
    assert cache.get(1) == "value"
    assert cache.get(1) is None
