"""
Assignment Store.

The "one active assignment per employee" rule lives in the database
(`uq_assignments_one_active_per_employee`); this module never relies on a
check-then-write. A replace is one transaction, retried when a concurrent
writer wins the unique index.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload

from orgauthz.constants import AuditEvent, is_valid_department
from orgauthz.db.base import utcnow
from orgauthz.errors import NotFoundError, PreconditionError
from orgauthz.models.hr import Employee
from orgauthz.models.org import OrgNode
from orgauthz.models.security import Assignment, AssignmentPermissionOverride, Permission, Role
from orgauthz.services import audit, permission_cache

logger = logging.getLogger(__name__)

MAX_REPLACE_ATTEMPTS = 3


def get_active_assignment(db: Session, employee_id: int) -> Assignment | None:
    return db.scalars(
        select(Assignment)
        .where(Assignment.employee_id == employee_id, Assignment.is_active.is_(True))
        .options(
            selectinload(Assignment.role).selectinload(Role.permissions),
            selectinload(Assignment.org_node),
            selectinload(Assignment.overrides).selectinload(AssignmentPermissionOverride.permission),
        )
    ).one_or_none()


def require_active_assignment(db: Session, employee_id: int) -> Assignment:
    assignment = get_active_assignment(db, employee_id)
    if assignment is None:
        raise PreconditionError(f"Employee {employee_id} has no active assignment", code="NO_ACTIVE_ASSIGNMENT")
    return assignment


def list_active_assignments(db: Session, *, department_code: str | None = None) -> list[Assignment]:
    stmt = select(Assignment).where(Assignment.is_active.is_(True)).order_by(Assignment.id)
    if department_code is not None:
        stmt = stmt.where(Assignment.department_code == department_code)
    return list(db.scalars(stmt).all())


def load_permissions(db: Session, permission_ids: Iterable[int]) -> list[Permission]:
    ids = sorted(set(permission_ids))
    if not ids:
        return []
    found = list(db.scalars(select(Permission).where(Permission.id.in_(ids))).all())
    missing = set(ids) - {p.id for p in found}
    if missing:
        raise NotFoundError(f"Unknown permissions: {sorted(missing)}", code="PERMISSION_NOT_FOUND")
    return found


def create_or_replace_assignment(
    db: Session,
    *,
    employee_id: int,
    role_id: int | None,
    org_node_id: int,
    department_code: str,
    override_ids: Iterable[int] = (),
    assigned_by_id: int | None = None,
    notes: str | None = None,
    max_attempts: int = MAX_REPLACE_ATTEMPTS,
) -> Assignment:
    """
    Deactivate the current active assignment (if any) and activate a new one, atomically.

    On `IntegrityError` from the partial unique index the transaction is rolled
    back and re-run; after `max_attempts` the conflict propagates.
    """

    if db.get(Employee, employee_id) is None:
        raise NotFoundError(f"Employee {employee_id} not found", code="EMPLOYEE_NOT_FOUND")
    if not is_valid_department(department_code):
        raise PreconditionError(f"Unknown department code: {department_code!r}", code="INVALID_DEPARTMENT")
    node = db.get(OrgNode, org_node_id)
    if node is None or not node.is_active:
        raise PreconditionError(f"Org node {org_node_id} is missing or inactive", code="NO_ORGUNIT")
    if role_id is not None and db.get(Role, role_id) is None:
        raise NotFoundError(f"Role {role_id} not found", code="ROLE_NOT_FOUND")
    override_ids = sorted(set(override_ids))
    load_permissions(db, override_ids)

    attempt = 0
    while True:
        attempt += 1
        previous_node_id: int | None = None
        try:
            current = db.scalars(
                select(Assignment).where(Assignment.employee_id == employee_id, Assignment.is_active.is_(True))
            ).one_or_none()
            now = utcnow()
            if current is not None:
                previous_node_id = current.org_node_id
                current.is_active = False
                current.effective_until = now
                # The old row must be inactive before the new one is inserted.
                db.flush()

            assignment = Assignment(
                employee_id=employee_id,
                role_id=role_id,
                org_node_id=org_node_id,
                department_code=department_code,
                effective_from=now,
                assigned_by_id=assigned_by_id,
                notes=notes,
                overrides=[AssignmentPermissionOverride(permission_id=pid) for pid in override_ids],
            )
            db.add(assignment)
            db.commit()
            break
        except IntegrityError:
            db.rollback()
            if attempt >= max_attempts:
                logger.error("Assignment replace for employee=%s failed after %s attempts", employee_id, attempt)
                raise
            logger.warning("Assignment replace conflict for employee=%s, retrying (attempt %s)", employee_id, attempt)

    permission_cache.invalidate(employee_id)
    permission_cache.invalidate_for_nodes(db, [previous_node_id, org_node_id])
    logger.info(
        "Assignment activated employee=%s role=%s node=%s dept=%s", employee_id, role_id, org_node_id, department_code
    )
    audit.record_event(
        db,
        AuditEvent.ROLE_ASSIGNED,
        actor_id=assigned_by_id,
        target_id=employee_id,
        details={"role_id": role_id, "org_node_id": org_node_id, "department_code": department_code},
    )
    return assignment


def deactivate(db: Session, assignment_id: int) -> Assignment:
    assignment = db.get(Assignment, assignment_id)
    if assignment is None:
        raise NotFoundError(f"Assignment {assignment_id} not found", code="ASSIGNMENT_NOT_FOUND")
    if not assignment.is_active:
        return assignment

    assignment.is_active = False
    assignment.effective_until = utcnow()
    db.commit()

    permission_cache.invalidate(assignment.employee_id)
    permission_cache.invalidate_for_nodes(db, [assignment.org_node_id])
    logger.info("Assignment deactivated id=%s employee=%s", assignment.id, assignment.employee_id)
    return assignment


# ---- Overrides -------------------------------------------------------------------------


def set_overrides(
    db: Session,
    assignment: Assignment,
    permission_ids: Iterable[int],
    *,
    bypass_ids: Iterable[int] = (),
    commit: bool = True,
) -> Assignment:
    """Replace the override set of `assignment` (used by lifecycle restores too)."""

    wanted = sorted(set(permission_ids))
    bypass = set(bypass_ids)
    load_permissions(db, wanted)

    current = {o.permission_id: o for o in assignment.overrides}
    for permission_id, override in current.items():
        if permission_id not in wanted:
            assignment.overrides.remove(override)
    for permission_id in wanted:
        override = current.get(permission_id)
        if override is None:
            assignment.overrides.append(
                AssignmentPermissionOverride(permission_id=permission_id, bypass_hierarchy=permission_id in bypass)
            )
        elif permission_id in bypass:
            override.bypass_hierarchy = True

    db.flush()
    if commit:
        db.commit()
        _after_override_change(db, assignment)
    return assignment


def add_override(
    db: Session, employee_id: int, permission_id: int, *, bypass_hierarchy: bool = False
) -> Assignment:
    assignment = require_active_assignment(db, employee_id)
    load_permissions(db, [permission_id])

    existing = next((o for o in assignment.overrides if o.permission_id == permission_id), None)
    if existing is None:
        assignment.overrides.append(
            AssignmentPermissionOverride(permission_id=permission_id, bypass_hierarchy=bypass_hierarchy)
        )
    else:
        existing.bypass_hierarchy = bypass_hierarchy
    db.commit()
    _after_override_change(db, assignment)
    return assignment


def remove_override(db: Session, employee_id: int, permission_id: int) -> Assignment:
    assignment = require_active_assignment(db, employee_id)
    existing = next((o for o in assignment.overrides if o.permission_id == permission_id), None)
    if existing is not None:
        assignment.overrides.remove(existing)
        db.commit()
        _after_override_change(db, assignment)
    return assignment


def _after_override_change(db: Session, assignment: Assignment) -> None:
    permission_cache.invalidate(assignment.employee_id)
    permission_cache.invalidate_for_nodes(db, [assignment.org_node_id])
    logger.info("Overrides updated employee=%s overrides=%s", assignment.employee_id, assignment.override_ids())
