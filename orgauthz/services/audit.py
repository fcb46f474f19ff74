from __future__ import annotations

import logging
from typing import Any

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from orgauthz.constants import AuditEvent
from orgauthz.models.audit import AuditLog

logger = logging.getLogger(__name__)


def record_event(
    db: Session,
    event: AuditEvent | str,
    *,
    actor_id: int | None = None,
    target_id: int | None = None,
    details: dict[str, Any] | None = None,
) -> AuditLog | None:
    """
    Persist one audit entry in its own commit.

    Called after the audited operation has committed. A failure here is logged
    and swallowed: losing an audit row must never undo a completed transition.
    """

    event_type = event.value if isinstance(event, AuditEvent) else str(event)
    entry = AuditLog(event_type=event_type, actor_id=actor_id, target_id=target_id, details=dict(details or {}))
    try:
        db.add(entry)
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Audit write failed event=%s actor=%s target=%s", event_type, actor_id, target_id)
        return None

    logger.debug("Audit event=%s actor=%s target=%s", event_type, actor_id, target_id)
    return entry


def list_events(
    db: Session,
    *,
    event: AuditEvent | str | None = None,
    target_id: int | None = None,
    limit: int = 100,
) -> list[AuditLog]:
    stmt = select(AuditLog).order_by(AuditLog.id.desc()).limit(limit)
    if event is not None:
        stmt = stmt.where(AuditLog.event_type == (event.value if isinstance(event, AuditEvent) else event))
    if target_id is not None:
        stmt = stmt.where(AuditLog.target_id == target_id)
    return list(db.scalars(stmt).all())
