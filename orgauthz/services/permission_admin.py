from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import Any

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from orgauthz.constants import ALL, ActionType, AuditEvent, DepartmentCode, HierarchyScope, ResourceType
from orgauthz.errors import NotFoundError, PermissionAdminError
from orgauthz.models.security import Permission, Role
from orgauthz.services import audit, permission_cache
from orgauthz.services.assignments import load_permissions

logger = logging.getLogger(__name__)

# Fields a system permission keeps fixed.
_SYSTEM_LOCKED_FIELDS = frozenset({"name", "action"})
_EDITABLE_FIELDS = frozenset(
    {
        "name",
        "action",
        "description",
        "action_type",
        "hierarchy_scope",
        "status_scope",
        "resource_type",
        "category",
        "bypass_hierarchy",
        "is_active",
    }
)


def validate_status_scope(scope: Iterable[str] | None) -> list[str]:
    values = list(dict.fromkeys(scope or []))
    valid = {d.value for d in DepartmentCode}
    unknown = [v for v in values if v not in valid]
    if unknown:
        raise PermissionAdminError(f"Unknown departments in status scope: {unknown}", code="INVALID_STATUS_SCOPE")
    if ALL in values and len(values) > 1:
        raise PermissionAdminError("'ALL' cannot be combined with specific departments", code="INVALID_STATUS_SCOPE")
    return values


def _validate_enums(fields: dict[str, Any]) -> None:
    checks = (("action_type", ActionType), ("hierarchy_scope", HierarchyScope), ("resource_type", ResourceType))
    for key, enum_cls in checks:
        if key in fields:
            try:
                fields[key] = enum_cls(fields[key]).value
            except ValueError as exc:
                raise PermissionAdminError(f"Invalid {key}: {fields[key]!r}", code="INVALID_FIELD") from exc


def get_permission(db: Session, permission_id: int) -> Permission:
    permission = db.get(Permission, permission_id)
    if permission is None:
        raise NotFoundError(f"Permission {permission_id} not found", code="PERMISSION_NOT_FOUND")
    return permission


def _invalidate_holders() -> None:
    # A permission edit reaches role holders, override holders and all their
    # ancestors; dropping the whole cache is the only complete invalidation.
    permission_cache.clear()


def create_permission(db: Session, *, actor_id: int | None = None, **fields: Any) -> Permission:
    unknown = set(fields) - _EDITABLE_FIELDS - {"is_system"}
    if unknown:
        raise PermissionAdminError(f"Unknown permission fields: {sorted(unknown)}", code="INVALID_FIELD")
    if not fields.get("name") or not fields.get("action"):
        raise PermissionAdminError("Permission name and action are required", code="INVALID_FIELD")

    fields["status_scope"] = validate_status_scope(fields.get("status_scope", [ALL]))
    _validate_enums(fields)

    permission = Permission(**fields)
    db.add(permission)
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise PermissionAdminError(f"Permission {fields['name']!r} already exists", code="DUPLICATE") from exc

    logger.info("Permission created id=%s name=%s", permission.id, permission.name)
    audit.record_event(
        db, AuditEvent.PERMISSION_MODIFIED, actor_id=actor_id, details={"op": "create", "permission": permission.name}
    )
    return permission


def update_permission(db: Session, permission_id: int, *, actor_id: int | None = None, **changes: Any) -> Permission:
    permission = get_permission(db, permission_id)

    unknown = set(changes) - _EDITABLE_FIELDS
    if unknown:
        raise PermissionAdminError(f"Unknown or read-only fields: {sorted(unknown)}", code="INVALID_FIELD")
    if permission.is_system:
        locked = {k for k in changes if k in _SYSTEM_LOCKED_FIELDS and changes[k] != getattr(permission, k)}
        if locked:
            raise PermissionAdminError(
                f"System permission {permission.name!r}: {sorted(locked)} cannot be changed", code="SYSTEM_PERMISSION"
            )
    if "status_scope" in changes:
        changes["status_scope"] = validate_status_scope(changes["status_scope"])
    _validate_enums(changes)

    for key, value in changes.items():
        setattr(permission, key, value)
    db.commit()

    _invalidate_holders()
    logger.info("Permission updated id=%s fields=%s", permission.id, sorted(changes))
    audit.record_event(
        db,
        AuditEvent.PERMISSION_MODIFIED,
        actor_id=actor_id,
        details={"op": "update", "permission": permission.name, "fields": sorted(changes)},
    )
    return permission


def delete_permission(db: Session, permission_id: int, *, actor_id: int | None = None) -> Permission:
    """Soft delete: `is_active=False`. System permissions are refused."""

    permission = get_permission(db, permission_id)
    if permission.is_system:
        raise PermissionAdminError(f"System permission {permission.name!r} cannot be deleted", code="SYSTEM_PERMISSION")

    permission.is_active = False
    db.commit()

    _invalidate_holders()
    logger.info("Permission deactivated id=%s name=%s", permission.id, permission.name)
    audit.record_event(
        db, AuditEvent.PERMISSION_MODIFIED, actor_id=actor_id, details={"op": "delete", "permission": permission.name}
    )
    return permission


def set_role_permissions(
    db: Session, role_id: int, permission_ids: Iterable[int], *, actor_id: int | None = None
) -> Role:
    role = db.get(Role, role_id)
    if role is None:
        raise NotFoundError(f"Role {role_id} not found", code="ROLE_NOT_FOUND")

    before = set(role.permission_ids())
    role.permissions = load_permissions(db, permission_ids)
    db.commit()

    after = set(role.permission_ids())
    permission_cache.invalidate_for_role(db, role.id)
    logger.info("Role permissions set role=%s added=%s removed=%s", role.name, sorted(after - before), sorted(before - after))
    audit.record_event(
        db,
        AuditEvent.PERMISSION_MODIFIED,
        actor_id=actor_id,
        details={"op": "set_role_permissions", "role": role.name, "added": sorted(after - before), "removed": sorted(before - after)},
    )
    return role


def find_by_action(db: Session, action: str) -> Permission | None:
    return db.scalars(select(Permission).where(Permission.action == action)).first()
