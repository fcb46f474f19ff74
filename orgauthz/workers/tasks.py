from __future__ import annotations

from typing import Any

from celery import shared_task
from celery.utils.log import get_task_logger

from orgauthz.db.session import SessionLocal
from orgauthz.services.sweep import sweep_expired
from orgauthz.workers.celery_app import celery_app  # noqa: F401  (bind shared tasks to this app)

logger = get_task_logger(__name__)


@shared_task(name="orgauthz.sweep_expired")
def sweep_expired_task() -> dict[str, Any]:
    """Restore expired statuses, return finished leaves and expire stale requests."""

    with SessionLocal() as db:
        report = sweep_expired(db)

    if report.failed:
        logger.warning("Sweep finished with %s failure(s)", len(report.failed))
    return report.as_dict()
