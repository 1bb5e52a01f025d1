from __future__ import annotations

from datetime import datetime, timezone


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_aware(value: datetime) -> datetime:
    """Rows read back without tzinfo are UTC."""
    return value if value.tzinfo is not None else value.replace(tzinfo=timezone.utc)
