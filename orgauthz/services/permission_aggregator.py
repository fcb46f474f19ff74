"""
Permission Aggregator.

Effective permissions flow *upward* through the tree: a manager holds everything
their role grants plus everything any role in their descendant subtree grants.

    effective = scope_filter(direct ∪ inherited)

    direct    = role permissions ∪ assignment overrides
    inherited = role permissions of every active assignment on a strict
                descendant node (active nodes only)

The routine is read-only and never raises for missing data: no assignment
means an empty result, which every caller treats as "deny".
"""

from __future__ import annotations

import logging
from collections import Counter
from collections.abc import Iterable
from dataclasses import dataclass, replace
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from orgauthz.constants import ALL, is_executive_department
from orgauthz.models.org import OrgNode
from orgauthz.models.security import Assignment, Permission, role_permissions
from orgauthz.services import permission_cache
from orgauthz.services.assignments import get_active_assignment
from orgauthz.services.org_tree import subtree_condition
from orgauthz.settings import get_settings

logger = logging.getLogger(__name__)

SOURCE_ROLE = "role"
SOURCE_OVERRIDE = "override"
SOURCE_INHERITED = "inherited"


@dataclass(frozen=True)
class PermissionView:
    """Detached, immutable copy of a `Permission` row plus where it came from."""

    id: int
    name: str
    action: str
    action_type: str
    hierarchy_scope: str
    status_scope: tuple[str, ...]
    resource_type: str
    category: str
    bypass_hierarchy: bool
    is_system: bool
    source: str
    # Set when the actor's override copy of this permission carries the flag.
    override_bypass: bool = False

    @classmethod
    def from_model(cls, permission: Permission, source: str, *, override_bypass: bool = False) -> PermissionView:
        return cls(
            id=permission.id,
            name=permission.name,
            action=permission.action,
            action_type=permission.action_type,
            hierarchy_scope=permission.hierarchy_scope,
            status_scope=tuple(permission.status_scope or ()),
            resource_type=permission.resource_type,
            category=permission.category,
            bypass_hierarchy=bool(permission.bypass_hierarchy),
            is_system=bool(permission.is_system),
            source=source,
            override_bypass=override_bypass,
        )

    def matches(self, action: str, resource_type: str | None = None) -> bool:
        if action not in (self.action, self.name):
            return False
        if resource_type is None:
            return True
        return self.resource_type in (resource_type, ALL)


@dataclass(frozen=True)
class EffectivePermissions:
    employee_id: int
    direct: tuple[PermissionView, ...] = ()
    inherited: tuple[PermissionView, ...] = ()
    effective: tuple[PermissionView, ...] = ()
    department_code: str | None = None
    is_executive: bool = False
    assignment_id: int | None = None
    org_node_id: int | None = None
    level: int | None = None

    def actions(self) -> frozenset[str]:
        return frozenset(p.action for p in self.effective)

    def find(self, action: str, resource_type: str | None = None) -> PermissionView | None:
        for permission in self.effective:
            if permission.matches(action, resource_type):
                return permission
        return None


def _dedupe(views: Iterable[PermissionView]) -> dict[int, PermissionView]:
    merged: dict[int, PermissionView] = {}
    for view in views:
        existing = merged.get(view.id)
        if existing is None:
            merged[view.id] = view
        elif view.override_bypass and not existing.override_bypass:
            merged[view.id] = replace(existing, override_bypass=True)
    return merged


def _in_scope(permission: PermissionView, department_code: str, empty_scope_policy: str) -> bool:
    if not permission.status_scope:
        return empty_scope_policy == "allow_all"
    return ALL in permission.status_scope or department_code in permission.status_scope


def filter_by_status_scope(
    permissions: Iterable[PermissionView],
    department_code: str | None,
    *,
    empty_scope_policy: str | None = None,
) -> tuple[PermissionView, ...]:
    """Keep what applies to `department_code`; the organization-wide wildcard keeps everything."""

    if not department_code:
        return ()
    permissions = tuple(permissions)
    if is_executive_department(department_code):
        return permissions
    policy = empty_scope_policy or get_settings().empty_status_scope_policy
    return tuple(p for p in permissions if _in_scope(p, department_code, policy))


def _direct_permissions(assignment: Assignment) -> dict[int, PermissionView]:
    views: list[PermissionView] = []
    if assignment.role is not None:
        views.extend(
            PermissionView.from_model(p, SOURCE_ROLE) for p in assignment.role.permissions if p.is_active
        )
    for override in assignment.overrides:
        permission = override.permission
        if permission is None or not permission.is_active:
            continue
        views.append(
            PermissionView.from_model(permission, SOURCE_OVERRIDE, override_bypass=bool(override.bypass_hierarchy))
        )
    return _dedupe(views)


def _inherited_permissions(db: Session, assignment: Assignment) -> dict[int, PermissionView]:
    node = assignment.org_node
    if node is None or not node.is_active:
        return {}

    stmt = (
        select(Permission)
        .join(role_permissions, role_permissions.c.permission_id == Permission.id)
        .join(Assignment, Assignment.role_id == role_permissions.c.role_id)
        .join(OrgNode, OrgNode.id == Assignment.org_node_id)
        .where(
            Assignment.is_active.is_(True),
            Assignment.employee_id != assignment.employee_id,
            OrgNode.is_active.is_(True),
            subtree_condition(node),
            Permission.is_active.is_(True),
        )
        .distinct()
        .order_by(Permission.id)
    )
    return _dedupe(PermissionView.from_model(p, SOURCE_INHERITED) for p in db.scalars(stmt).all())


def get_effective_permissions(
    db: Session,
    employee_id: int,
    *,
    use_cache: bool = False,
    empty_scope_policy: str | None = None,
) -> EffectivePermissions:
    """
    Compute `{direct, inherited, effective, department_code, is_executive}` for an employee.

    `use_cache=True` is only for informational reads; verdicts always recompute.
    """

    cache = permission_cache.get_permission_cache()
    if use_cache:
        cached = cache.get(employee_id)
        if cached is not None:
            return cached

    assignment = get_active_assignment(db, employee_id)
    if assignment is None:
        logger.debug("No active assignment for employee=%s; empty permission set", employee_id)
        return EffectivePermissions(employee_id=employee_id)

    department_code = assignment.department_code
    direct = _direct_permissions(assignment)
    inherited = _inherited_permissions(db, assignment)
    # Direct entries win so the override bypass flag survives the merge.
    merged = {**inherited, **direct}

    node = assignment.org_node
    result = EffectivePermissions(
        employee_id=employee_id,
        direct=filter_by_status_scope(direct.values(), department_code, empty_scope_policy=empty_scope_policy),
        inherited=filter_by_status_scope(inherited.values(), department_code, empty_scope_policy=empty_scope_policy),
        effective=filter_by_status_scope(merged.values(), department_code, empty_scope_policy=empty_scope_policy),
        department_code=department_code,
        is_executive=is_executive_department(department_code),
        assignment_id=assignment.id,
        org_node_id=node.id if node is not None else None,
        level=node.level if node is not None else None,
    )

    if use_cache:
        cache.set(employee_id, result)
    return result


def get_permission(
    db: Session, employee_id: int, action: str, resource_type: str | None = None
) -> PermissionView | None:
    return get_effective_permissions(db, employee_id).find(action, resource_type)


def has_permission(db: Session, employee_id: int, action: str, resource_type: str | None = None) -> bool:
    return get_permission(db, employee_id, action, resource_type) is not None


def has_any(db: Session, employee_id: int, actions: Iterable[str]) -> bool:
    held = get_effective_permissions(db, employee_id)
    return any(held.find(action) is not None for action in actions)


def has_all(db: Session, employee_id: int, actions: Iterable[str]) -> bool:
    held = get_effective_permissions(db, employee_id)
    return all(held.find(action) is not None for action in actions)


def get_permission_breakdown(db: Session, employee_id: int, *, use_cache: bool = True) -> dict[str, Any]:
    """Summary used by the informational endpoint: counts, per-source listing, reachable scopes."""

    perms = get_effective_permissions(db, employee_id, use_cache=use_cache)
    effective = perms.effective

    departments: set[str] = set()
    for permission in effective:
        departments.update(permission.status_scope or (ALL,))

    return {
        "employee_id": employee_id,
        "department_code": perms.department_code,
        "is_executive": perms.is_executive,
        "level": perms.level,
        "summary": {
            "direct": len(perms.direct),
            "inherited": len(perms.inherited),
            "effective": len(effective),
            "by_action_type": dict(Counter(p.action_type for p in effective)),
        },
        "direct": sorted(p.action for p in perms.direct),
        "inherited": sorted(p.action for p in perms.inherited),
        "available_departments": sorted(departments),
        "available_resources": sorted({p.resource_type for p in effective}),
        "hierarchy_scopes": sorted({p.hierarchy_scope for p in effective}),
    }
