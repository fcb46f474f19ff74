from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    pass


def utcnow() -> datetime:
    # Naive UTC, matching what SQLite hands back.
    return datetime.now(timezone.utc).replace(tzinfo=None)
