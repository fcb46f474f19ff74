"""
Delegation & Status Lifecycle.

Per-employee state machine:

    Normal --apply--> OnLeavePending --accept--> OnLeaveAccepted --take back--> Normal
                            |--reject / cancel / expire--> Normal
    Normal --suspend | block | terminate--> X --restore--> Normal (decision RESTORED)

Every reversible transition writes a `StatusSnapshot` before touching role or
override state, and the matching restore replays it exactly and deletes it.
A snapshot exists iff the employee is suspended, blocked, terminated, on
accepted leave, or acting as someone's leave delegate.

Preconditions are checked before any write and raise `LifecycleError`
subclasses. The effects of one transition are a single database transaction;
audit and notification run only after it committed.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from orgauthz.constants import (
    OPEN_LEAVE_STATES,
    STATUS_SNAPSHOT_KINDS,
    AuditEvent,
    DecisionStatus,
    LeaveState,
    SnapshotKind,
)
from orgauthz.db.base import utcnow
from orgauthz.errors import LifecycleError, NotFoundError, PreconditionError
from orgauthz.models.hr import Employee, LeaveRecord, StatusSnapshot
from orgauthz.models.security import Assignment, Role
from orgauthz.services import audit, notifications, permission_cache
from orgauthz.services.assignments import load_permissions, require_active_assignment, set_overrides

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TransitionResult:
    employee_id: int
    transition: str
    changed: bool
    state: str
    details: dict[str, Any] = field(default_factory=dict)


# ---- Lookups ---------------------------------------------------------------------------


def _get_employee(db: Session, employee_id: int) -> Employee:
    employee = db.get(Employee, employee_id)
    if employee is None:
        raise NotFoundError(f"Employee {employee_id} not found", code="EMPLOYEE_NOT_FOUND")
    return employee


def get_open_leave(db: Session, employee_id: int, *, for_update: bool = False) -> LeaveRecord | None:
    stmt = select(LeaveRecord).where(
        LeaveRecord.employee_id == employee_id, LeaveRecord.state.in_(OPEN_LEAVE_STATES)
    )
    if for_update:
        stmt = stmt.with_for_update()
    return db.scalars(stmt).one_or_none()


def get_snapshot(db: Session, employee_id: int) -> StatusSnapshot | None:
    return db.scalars(select(StatusSnapshot).where(StatusSnapshot.employee_id == employee_id)).one_or_none()


def _require_reason(reason: str | None) -> str:
    if reason is None or not reason.strip():
        raise PreconditionError("A non-empty reason is required", code="REASON_REQUIRED")
    return reason.strip()


# ---- Snapshot helpers ------------------------------------------------------------------


def _capture(
    employee: Employee, assignment: Assignment, kind: SnapshotKind, *, leave_id: int | None = None
) -> StatusSnapshot:
    return StatusSnapshot(
        employee_id=employee.id,
        kind=kind.value,
        previous_role_id=assignment.role_id,
        previous_role_permission_ids=assignment.role.permission_ids() if assignment.role is not None else [],
        previous_override_ids=assignment.override_ids(),
        previous_override_bypass_ids=sorted(o.permission_id for o in assignment.overrides if o.bypass_hierarchy),
        previous_decision=employee.decision_status,
        leave_id=leave_id,
    )


def _set_role_permissions(db: Session, role: Role, permission_ids: Iterable[int]) -> None:
    role.permissions = load_permissions(db, permission_ids)


def _replay(db: Session, snapshot: StatusSnapshot) -> Assignment:
    """
    Put role reference and overrides back exactly as captured, then drop the snapshot.

    The role's permission list is shared by every holder, so only a leave
    snapshot (the one transition that cleared it) writes it back.
    """

    assignment = require_active_assignment(db, snapshot.employee_id)

    assignment.role = db.get(Role, snapshot.previous_role_id) if snapshot.previous_role_id is not None else None
    if assignment.role is not None and snapshot.kind == SnapshotKind.LEAVE.value:
        _set_role_permissions(db, assignment.role, snapshot.previous_role_permission_ids)

    bypass = set(snapshot.previous_override_bypass_ids or [])
    set_overrides(db, assignment, snapshot.previous_override_ids, commit=False)
    for override in assignment.overrides:
        override.bypass_hierarchy = override.permission_id in bypass

    db.delete(snapshot)
    db.flush()
    return assignment


def _after_commit(
    db: Session,
    event: AuditEvent,
    *,
    actor_id: int | None,
    target_id: int,
    details: dict[str, Any],
) -> None:
    audit.record_event(db, event, actor_id=actor_id, target_id=target_id, details=details)
    notifications.notify(event.value, {"employee_id": target_id, "actor_id": actor_id, **details})


def _invalidate(db: Session, *assignments: Assignment | None, role_ids: Iterable[int | None] = ()) -> None:
    for role_id in role_ids:
        if role_id is not None:
            permission_cache.invalidate_for_role(db, role_id)
    for assignment in assignments:
        if assignment is not None:
            permission_cache.invalidate(assignment.employee_id)
            permission_cache.invalidate_for_nodes(db, [assignment.org_node_id])


# ---- Leave -----------------------------------------------------------------------------


def apply_leave(
    db: Session,
    employee_id: int,
    *,
    leave_type: str,
    start_date: date,
    end_date: date,
    reason: str | None = None,
) -> TransitionResult:
    employee = _get_employee(db, employee_id)
    if not employee.in_normal_status:
        raise PreconditionError(
            f"Employee {employee_id} is {employee.decision_status}; leave not allowed", code="INVALID_STATUS"
        )
    if end_date < start_date:
        raise PreconditionError("Leave end date is before its start date", code="INVALID_LEAVE_WINDOW")
    if get_open_leave(db, employee_id) is not None:
        raise PreconditionError(f"Employee {employee_id} already has an open leave", code="LEAVE_ALREADY_ACTIVE")

    leave = LeaveRecord(
        employee_id=employee_id,
        leave_type=leave_type,
        reason=reason,
        start_date=start_date,
        end_date=end_date,
        state=LeaveState.PENDING.value,
    )
    db.add(leave)
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise PreconditionError(
            f"Employee {employee_id} already has an open leave", code="LEAVE_ALREADY_ACTIVE"
        ) from exc

    details = {"leave_id": leave.id, "leave_type": leave_type, "start": str(start_date), "end": str(end_date)}
    logger.info("Leave applied employee=%s leave=%s", employee_id, leave.id)
    _after_commit(db, AuditEvent.LEAVE_APPLIED, actor_id=employee_id, target_id=employee_id, details=details)
    return TransitionResult(employee_id, "apply_leave", True, LeaveState.PENDING.value, details)


def accept_leave(db: Session, actor_id: int | None, leave_taker_id: int, delegate_id: int | None) -> TransitionResult:
    """
    Accept a pending leave and transfer the leave-taker's authority to `delegate_id`.

    Order inside the transaction: snapshot both employees -> clear the
    leave-taker's role permissions and overrides -> verify the clear -> merge
    the pre-leave direct set into the delegate's overrides.
    """

    if delegate_id is None:
        raise PreconditionError("A delegate is required to accept a leave", code="DELEGATE_REQUIRED")
    if delegate_id == leave_taker_id:
        raise PreconditionError("An employee cannot delegate to themselves", code="INVALID_DELEGATE")

    taker = _get_employee(db, leave_taker_id)
    delegate = _get_employee(db, delegate_id)
    if not delegate.in_normal_status:
        raise PreconditionError(f"Delegate {delegate_id} is {delegate.decision_status}", code="DELEGATE_UNAVAILABLE")

    leave = get_open_leave(db, leave_taker_id, for_update=True)
    if leave is None or leave.state != LeaveState.PENDING.value:
        raise PreconditionError(f"Employee {leave_taker_id} has no pending leave", code="NO_PENDING_LEAVE")

    taker_assignment = require_active_assignment(db, leave_taker_id)
    delegate_assignment = require_active_assignment(db, delegate_id)
    if get_snapshot(db, leave_taker_id) is not None:
        raise PreconditionError(f"Employee {leave_taker_id} already has a saved state", code="SNAPSHOT_EXISTS")
    if get_snapshot(db, delegate_id) is not None:
        raise PreconditionError(f"Delegate {delegate_id} already holds delegated authority", code="DELEGATE_UNAVAILABLE")

    taker_role_id = taker_assignment.role_id
    pre_leave_direct = set(taker_assignment.override_ids())
    if taker_assignment.role is not None:
        pre_leave_direct |= set(taker_assignment.role.permission_ids())
    carried_bypass = {o.permission_id for o in taker_assignment.overrides if o.bypass_hierarchy}

    try:
        db.add_all(
            [
                _capture(taker, taker_assignment, SnapshotKind.LEAVE, leave_id=leave.id),
                _capture(delegate, delegate_assignment, SnapshotKind.DELEGATION, leave_id=leave.id),
            ]
        )
        db.flush()

        if taker_assignment.role is not None:
            _set_role_permissions(db, taker_assignment.role, [])
        set_overrides(db, taker_assignment, [], commit=False)
        db.flush()
        if taker_assignment.overrides or (taker_assignment.role is not None and taker_assignment.role.permissions):
            raise LifecycleError(
                f"Clearing permissions of employee {leave_taker_id} did not take effect", code="TRANSFER_INCOMPLETE"
            )

        merged = set(delegate_assignment.override_ids()) | pre_leave_direct
        set_overrides(db, delegate_assignment, merged, bypass_ids=carried_bypass, commit=False)

        leave.state = LeaveState.ACCEPTED.value
        leave.delegate_id = delegate_id
        leave.decided_by_id = actor_id
        db.commit()
    except Exception:
        db.rollback()
        logger.exception("Leave accept failed leave_taker=%s delegate=%s; rolled back", leave_taker_id, delegate_id)
        raise

    _invalidate(db, taker_assignment, delegate_assignment, role_ids=[taker_role_id])
    details = {"leave_id": leave.id, "delegate_id": delegate_id, "transferred_permission_ids": sorted(pre_leave_direct)}
    logger.info(
        "Leave accepted employee=%s delegate=%s transferred=%s", leave_taker_id, delegate_id, len(pre_leave_direct)
    )
    _after_commit(db, AuditEvent.LEAVE_ACCEPTED, actor_id=actor_id, target_id=leave_taker_id, details=details)
    return TransitionResult(leave_taker_id, "accept_leave", True, LeaveState.ACCEPTED.value, details)


def reject_leave(
    db: Session,
    leave_taker_id: int,
    reason: str | None,
    *,
    rejected_by: str | None = None,
    actor_id: int | None = None,
) -> TransitionResult:
    reason = _require_reason(reason)
    _get_employee(db, leave_taker_id)

    leave = get_open_leave(db, leave_taker_id, for_update=True)
    if leave is None or leave.state != LeaveState.PENDING.value:
        raise PreconditionError(f"Employee {leave_taker_id} has no pending leave", code="NO_PENDING_LEAVE")

    leave.state = LeaveState.REJECTED.value
    leave.rejection_reason = reason
    leave.rejected_by = rejected_by
    leave.decided_by_id = actor_id
    leave.closed_at = utcnow()
    db.commit()

    details = {"leave_id": leave.id, "reason": reason, "rejected_by": rejected_by}
    logger.info("Leave rejected employee=%s leave=%s", leave_taker_id, leave.id)
    _after_commit(db, AuditEvent.LEAVE_REJECTED, actor_id=actor_id, target_id=leave_taker_id, details=details)
    return TransitionResult(leave_taker_id, "reject_leave", True, LeaveState.REJECTED.value, details)


def cancel_leave(db: Session, employee_id: int) -> TransitionResult:
    _get_employee(db, employee_id)
    leave = get_open_leave(db, employee_id, for_update=True)
    if leave is None or leave.state != LeaveState.PENDING.value:
        raise PreconditionError(f"Employee {employee_id} has no pending leave", code="NO_PENDING_LEAVE")

    leave.state = LeaveState.CANCELLED.value
    leave.closed_at = utcnow()
    db.commit()

    details = {"leave_id": leave.id}
    _after_commit(db, AuditEvent.LEAVE_CANCELLED, actor_id=employee_id, target_id=employee_id, details=details)
    return TransitionResult(employee_id, "cancel_leave", True, LeaveState.CANCELLED.value, details)


def expire_pending_leave(db: Session, employee_id: int) -> TransitionResult:
    """Close a pending leave whose window passed without a decision (sweep)."""

    leave = get_open_leave(db, employee_id, for_update=True)
    if leave is None or leave.state != LeaveState.PENDING.value:
        return TransitionResult(employee_id, "expire_leave", False, "NORMAL", {"reason": "no pending leave"})

    leave.state = LeaveState.EXPIRED.value
    leave.closed_at = utcnow()
    db.commit()

    details = {"leave_id": leave.id, "end_date": str(leave.end_date)}
    _after_commit(db, AuditEvent.LEAVE_EXPIRED, actor_id=None, target_id=employee_id, details=details)
    return TransitionResult(employee_id, "expire_leave", True, LeaveState.EXPIRED.value, details)


def take_back_leave(db: Session, leave_taker_id: int, *, actor_id: int | None = None) -> TransitionResult:
    """
    End an accepted leave: the delegate goes back to its own snapshot, the
    leave-taker to theirs, both snapshots are deleted.

    Safe to call twice (sweep racing a manual take-back): with no open leave
    it is a no-op.
    """

    _get_employee(db, leave_taker_id)
    leave = get_open_leave(db, leave_taker_id, for_update=True)
    if leave is None:
        return TransitionResult(leave_taker_id, "take_back_leave", False, "NORMAL", {"reason": "no open leave"})
    if leave.state == LeaveState.PENDING.value:
        raise PreconditionError(
            f"Leave {leave.id} is still pending; reject or cancel it instead", code="LEAVE_NOT_ACCEPTED"
        )

    taker_snapshot = get_snapshot(db, leave_taker_id)
    delegate_snapshot = get_snapshot(db, leave.delegate_id) if leave.delegate_id is not None else None
    restored_assignments: list[Assignment] = []
    role_ids: set[int | None] = set()

    try:
        if delegate_snapshot is not None and delegate_snapshot.kind == SnapshotKind.DELEGATION.value:
            role_ids.add(delegate_snapshot.previous_role_id)
            restored_assignments.append(_replay(db, delegate_snapshot))
        else:
            logger.warning("Leave %s has no delegation snapshot for delegate=%s", leave.id, leave.delegate_id)

        if taker_snapshot is not None and taker_snapshot.kind == SnapshotKind.LEAVE.value:
            role_ids.add(taker_snapshot.previous_role_id)
            restored_assignments.append(_replay(db, taker_snapshot))
        else:
            logger.warning("Leave %s has no leave snapshot for employee=%s", leave.id, leave_taker_id)

        leave.state = LeaveState.RETURNED.value
        leave.closed_at = utcnow()
        db.commit()
    except Exception:
        db.rollback()
        logger.exception("Take-back failed employee=%s leave=%s; rolled back", leave_taker_id, leave.id)
        raise

    _invalidate(db, *restored_assignments, role_ids=role_ids)
    details = {"leave_id": leave.id, "delegate_id": leave.delegate_id}
    logger.info("Leave returned employee=%s delegate=%s", leave_taker_id, leave.delegate_id)
    _after_commit(db, AuditEvent.LEAVE_RETURNED, actor_id=actor_id, target_id=leave_taker_id, details=details)
    return TransitionResult(leave_taker_id, "take_back_leave", True, LeaveState.RETURNED.value, details)


# ---- Suspension / block / termination --------------------------------------------------


_STATUS_TRANSITIONS: dict[DecisionStatus, tuple[SnapshotKind, bool, AuditEvent]] = {
    # decision -> (snapshot kind, clears role reference, audit event)
    DecisionStatus.SUSPENDED: (SnapshotKind.SUSPENSION, False, AuditEvent.EMPLOYEE_SUSPENDED),
    DecisionStatus.BLOCKED: (SnapshotKind.BLOCK, True, AuditEvent.EMPLOYEE_BLOCKED),
    DecisionStatus.TERMINATED: (SnapshotKind.TERMINATION, True, AuditEvent.EMPLOYEE_TERMINATED),
}


def _enter_status(
    db: Session,
    decision: DecisionStatus,
    employee_id: int,
    *,
    reason: str | None,
    effective_from: datetime | None,
    effective_until: datetime | None,
    actor_id: int | None,
) -> TransitionResult:
    kind, clears_role, event = _STATUS_TRANSITIONS[decision]
    reason = _require_reason(reason)
    effective_from = effective_from or utcnow()
    if effective_until is not None and effective_until < effective_from:
        raise PreconditionError("Status end is before its start", code="INVALID_STATUS_WINDOW")

    employee = _get_employee(db, employee_id)
    if not employee.in_normal_status:
        raise PreconditionError(
            f"Employee {employee_id} is already {employee.decision_status}", code="INVALID_STATUS_TRANSITION"
        )
    if get_snapshot(db, employee_id) is not None:
        raise PreconditionError(
            f"Employee {employee_id} has a saved state (leave or delegation in progress)", code="SNAPSHOT_EXISTS"
        )
    assignment = require_active_assignment(db, employee_id)

    try:
        snapshot = _capture(employee, assignment, kind)
        db.add(snapshot)
        db.flush()

        if clears_role:
            assignment.role = None
            set_overrides(db, assignment, [], commit=False)

        employee.decision_status = decision.value
        employee.status_reason = reason
        employee.status_effective_from = effective_from
        employee.status_effective_until = effective_until
        db.commit()
    except Exception:
        db.rollback()
        logger.exception("%s transition failed employee=%s; rolled back", decision.value, employee_id)
        raise

    _invalidate(db, assignment)
    details = {
        "reason": reason,
        "effective_from": effective_from.isoformat(),
        "effective_until": effective_until.isoformat() if effective_until else None,
        "previous_role_id": snapshot.previous_role_id,
    }
    logger.info("Employee %s -> %s until=%s", employee_id, decision.value, effective_until)
    _after_commit(db, event, actor_id=actor_id, target_id=employee_id, details=details)
    return TransitionResult(employee_id, decision.value.lower(), True, decision.value, details)


def suspend(
    db: Session,
    employee_id: int,
    *,
    reason: str | None,
    effective_from: datetime | None = None,
    effective_until: datetime | None = None,
    actor_id: int | None = None,
) -> TransitionResult:
    return _enter_status(
        db,
        DecisionStatus.SUSPENDED,
        employee_id,
        reason=reason,
        effective_from=effective_from,
        effective_until=effective_until,
        actor_id=actor_id,
    )


def block(
    db: Session,
    employee_id: int,
    *,
    reason: str | None,
    effective_from: datetime | None = None,
    effective_until: datetime | None = None,
    actor_id: int | None = None,
) -> TransitionResult:
    return _enter_status(
        db,
        DecisionStatus.BLOCKED,
        employee_id,
        reason=reason,
        effective_from=effective_from,
        effective_until=effective_until,
        actor_id=actor_id,
    )


def terminate(
    db: Session,
    employee_id: int,
    *,
    reason: str | None,
    effective_from: datetime | None = None,
    effective_until: datetime | None = None,
    actor_id: int | None = None,
) -> TransitionResult:
    return _enter_status(
        db,
        DecisionStatus.TERMINATED,
        employee_id,
        reason=reason,
        effective_from=effective_from,
        effective_until=effective_until,
        actor_id=actor_id,
    )


def restore(db: Session, employee_id: int, *, actor_id: int | None = None) -> TransitionResult:
    """
    Undo a suspension, block or termination from its snapshot.

    The decision becomes RESTORED, a normal working status. Without a status
    snapshot this is a no-op, so a second call (or a sweep race) changes nothing.
    """

    employee = _get_employee(db, employee_id)
    snapshot = get_snapshot(db, employee_id)
    if snapshot is None or snapshot.kind not in STATUS_SNAPSHOT_KINDS:
        return TransitionResult(
            employee_id, "restore", False, employee.decision_status, {"reason": "no status snapshot"}
        )

    previous_status = employee.decision_status
    role_id = snapshot.previous_role_id
    try:
        assignment = _replay(db, snapshot)
        employee.decision_status = DecisionStatus.RESTORED.value
        employee.status_reason = None
        employee.status_effective_from = None
        employee.status_effective_until = None
        db.commit()
    except Exception:
        db.rollback()
        logger.exception("Restore failed employee=%s; snapshot kept", employee_id)
        raise

    _invalidate(db, assignment, role_ids=[role_id])
    details = {"previous_status": previous_status, "restored_role_id": role_id}
    logger.info("Employee %s restored from %s", employee_id, previous_status)
    _after_commit(db, AuditEvent.EMPLOYEE_RESTORED, actor_id=actor_id, target_id=employee_id, details=details)
    return TransitionResult(employee_id, "restore", True, DecisionStatus.RESTORED.value, details)
