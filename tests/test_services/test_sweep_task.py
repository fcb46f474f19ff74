"""Celery wiring for the periodic sweep."""
from __future__ import annotations

from contextlib import nullcontext
from datetime import datetime

from orgauthz.services import lifecycle
from orgauthz.workers import tasks
from orgauthz.workers.celery_app import celery_app


def test_sweep_is_scheduled():
    entry = celery_app.conf.beat_schedule["sweep-expired"]
    assert entry["task"] == "orgauthz.sweep_expired"
    assert entry["schedule"] > 0


def test_task_runs_sweep_and_returns_report(org, db_session, monkeypatch):
    lifecycle.suspend(
        db_session,
        org.id("payroll"),
        reason="audit",
        effective_from=datetime(1999, 12, 1),
        effective_until=datetime(2000, 1, 1),
    )
    monkeypatch.setattr(tasks, "SessionLocal", lambda: nullcontext(db_session))

    report = tasks.sweep_expired_task()

    assert report["restored"] == [org.id("payroll")]
    assert report["failed"] == []
