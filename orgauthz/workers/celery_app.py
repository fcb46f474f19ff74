from __future__ import annotations

from celery import Celery

from orgauthz.settings import get_settings

_settings = get_settings()

celery_app = Celery(
    "orgauthz",
    broker=_settings.celery_broker_url,
    include=["orgauthz.workers.tasks"],
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_ignore_result=True,
    worker_prefetch_multiplier=1,
    broker_connection_retry_on_startup=True,
    beat_schedule={
        "sweep-expired": {
            "task": "orgauthz.sweep_expired",
            "schedule": float(_settings.sweep_interval_seconds),
        },
    },
)
