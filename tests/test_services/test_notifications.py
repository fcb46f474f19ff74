"""Notification seam: webhook delivery and failure isolation."""
from __future__ import annotations

from unittest.mock import MagicMock

import pytest
import requests

from orgauthz.services import notifications


def test_webhook_posts_event_as_json(monkeypatch):
    response = MagicMock()
    post = MagicMock(return_value=response)
    monkeypatch.setattr(notifications.requests, "post", post)

    sender = notifications.WebhookNotificationSender("https://hooks.example.com/hr", timeout_seconds=2.5)
    assert notifications.notify("LEAVE_ACCEPTED", {"employee_id": 7}, sender=sender) is True

    post.assert_called_once_with(
        "https://hooks.example.com/hr",
        json={"event": "LEAVE_ACCEPTED", "payload": {"employee_id": 7}},
        timeout=2.5,
    )
    response.raise_for_status.assert_called_once()


def test_webhook_failure_is_logged_not_raised(monkeypatch, caplog):
    monkeypatch.setattr(
        notifications.requests, "post", MagicMock(side_effect=requests.ConnectionError("refused"))
    )
    sender = notifications.WebhookNotificationSender("https://hooks.example.com/hr")

    assert notifications.notify("EMPLOYEE_BLOCKED", {"employee_id": 3}, sender=sender) is False
    assert "Notification delivery failed event=EMPLOYEE_BLOCKED" in caplog.text


def test_broken_sender_does_not_propagate():
    class Broken:
        def send(self, event, payload):
            raise RuntimeError("template missing")

    assert notifications.notify("LEAVE_APPLIED", {}, sender=Broken()) is False


def test_default_sender_follows_settings(monkeypatch):
    from orgauthz.settings import get_settings

    notifications.set_notification_sender(None)
    monkeypatch.setenv("APP_NOTIFICATION_WEBHOOK_URL", "https://hooks.example.com/x")
    get_settings.cache_clear()
    try:
        assert isinstance(notifications.get_notification_sender(), notifications.WebhookNotificationSender)
    finally:
        get_settings.cache_clear()


@pytest.mark.parametrize("url", [None, ""])
def test_logging_sender_without_webhook(monkeypatch, url):
    from orgauthz.settings import get_settings

    notifications.set_notification_sender(None)
    if url is None:
        monkeypatch.delenv("APP_NOTIFICATION_WEBHOOK_URL", raising=False)
    else:
        monkeypatch.setenv("APP_NOTIFICATION_WEBHOOK_URL", url)
    get_settings.cache_clear()
    try:
        assert isinstance(notifications.get_notification_sender(), notifications.LoggingNotificationSender)
    finally:
        get_settings.cache_clear()
