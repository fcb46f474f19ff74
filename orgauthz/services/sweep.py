"""
Scheduled sweep: restores whatever has run past its end date.

- suspensions / blocks / terminations whose `status_effective_until` passed -> `restore`
- accepted leaves whose `end_date` passed                                   -> `take_back_leave`
- pending leaves whose `end_date` passed                                    -> `expire_pending_leave`

Each item is its own transaction. One failure is logged and the sweep moves on.
Every transition is a no-op when already applied, so running next to live
requests (or twice) is safe.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from orgauthz.constants import DecisionStatus, LeaveState
from orgauthz.db.base import utcnow
from orgauthz.errors import OrgAuthzError
from orgauthz.models.hr import Employee, LeaveRecord
from orgauthz.services import lifecycle

logger = logging.getLogger(__name__)

_RESTORABLE = (DecisionStatus.SUSPENDED.value, DecisionStatus.BLOCKED.value, DecisionStatus.TERMINATED.value)


@dataclass
class SweepReport:
    restored: list[int] = field(default_factory=list)
    returned: list[int] = field(default_factory=list)
    expired: list[int] = field(default_factory=list)
    failed: list[tuple[str, int, str]] = field(default_factory=list)

    def as_dict(self) -> dict:
        return {
            "restored": self.restored,
            "returned": self.returned,
            "expired": self.expired,
            "failed": [{"step": step, "employee_id": eid, "error": err} for step, eid, err in self.failed],
        }


def _run_each(
    db: Session,
    step: str,
    employee_ids: list[int],
    action: Callable[[int], lifecycle.TransitionResult],
    done: list[int],
    report: SweepReport,
) -> None:
    for employee_id in employee_ids:
        try:
            result = action(employee_id)
        except (OrgAuthzError, SQLAlchemyError) as exc:
            db.rollback()
            logger.exception("Sweep step=%s failed for employee=%s", step, employee_id)
            report.failed.append((step, employee_id, str(exc)))
            continue
        if result.changed:
            done.append(employee_id)


def sweep_expired(db: Session, now: datetime | None = None) -> SweepReport:
    now = now or utcnow()
    today = now.date()
    report = SweepReport()

    due_statuses = list(
        db.scalars(
            select(Employee.id)
            .where(
                Employee.decision_status.in_(_RESTORABLE),
                Employee.status_effective_until.is_not(None),
                Employee.status_effective_until <= now,
            )
            .order_by(Employee.id)
        ).all()
    )
    _run_each(db, "restore", due_statuses, lambda eid: lifecycle.restore(db, eid), report.restored, report)

    due_returns = list(
        db.scalars(
            select(LeaveRecord.employee_id)
            .where(LeaveRecord.state == LeaveState.ACCEPTED.value, LeaveRecord.end_date < today)
            .order_by(LeaveRecord.id)
        ).all()
    )
    _run_each(db, "take_back", due_returns, lambda eid: lifecycle.take_back_leave(db, eid), report.returned, report)

    due_expiry = list(
        db.scalars(
            select(LeaveRecord.employee_id)
            .where(LeaveRecord.state == LeaveState.PENDING.value, LeaveRecord.end_date < today)
            .order_by(LeaveRecord.id)
        ).all()
    )
    _run_each(db, "expire", due_expiry, lambda eid: lifecycle.expire_pending_leave(db, eid), report.expired, report)

    logger.info(
        "Sweep done restored=%s returned=%s expired=%s failed=%s",
        len(report.restored),
        len(report.returned),
        len(report.expired),
        len(report.failed),
    )
    return report
