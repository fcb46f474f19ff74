"""
Outbound notification seam for lifecycle transitions.

Delivery is fire-and-forget: `notify()` runs after the transition committed and
any failure is logged, never raised. With `APP_NOTIFICATION_WEBHOOK_URL` set,
events are POSTed as JSON; otherwise they are only logged.
"""

from __future__ import annotations

import logging
from typing import Any, Protocol

import requests

from orgauthz.settings import get_settings

logger = logging.getLogger(__name__)


class NotificationSender(Protocol):
    def send(self, event: str, payload: dict[str, Any]) -> None: ...


class LoggingNotificationSender:
    def send(self, event: str, payload: dict[str, Any]) -> None:
        logger.info("Notification event=%s payload=%s", event, payload)


class WebhookNotificationSender:
    def __init__(self, url: str, timeout_seconds: float = 5.0) -> None:
        self._url = url
        self._timeout = timeout_seconds

    def send(self, event: str, payload: dict[str, Any]) -> None:
        resp = requests.post(self._url, json={"event": event, "payload": payload}, timeout=self._timeout)
        resp.raise_for_status()


_sender: NotificationSender | None = None


def get_notification_sender() -> NotificationSender:
    global _sender
    if _sender is None:
        settings = get_settings()
        if settings.notification_webhook_url:
            _sender = WebhookNotificationSender(
                settings.notification_webhook_url, settings.notification_timeout_seconds
            )
        else:
            _sender = LoggingNotificationSender()
    return _sender


def set_notification_sender(sender: NotificationSender | None) -> None:
    global _sender
    _sender = sender


def notify(event: str, payload: dict[str, Any], sender: NotificationSender | None = None) -> bool:
    """Deliver one notification; returns False (after logging) when delivery failed."""

    sender = sender or get_notification_sender()
    try:
        sender.send(event, payload)
    except requests.RequestException as e:
        logger.warning("Notification delivery failed event=%s: %s", event, type(e).__name__)
        return False
    except Exception:
        logger.exception("Notification sender raised event=%s", event)
        return False
    return True
