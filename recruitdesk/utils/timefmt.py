"""Timestamp helpers shared by models and serializers."""

from datetime import datetime, timezone
from typing import Optional


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def ensure_aware(value: Optional[datetime]) -> Optional[datetime]:
    """SQLite hands back naive datetimes; everything we store is UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def isoformat(value: Optional[datetime]) -> Optional[str]:
    value = ensure_aware(value)
    return value.isoformat() if value else None


def time_ago(value: Optional[datetime], now: Optional[datetime] = None) -> str:
    """Human friendly age: ``Just now``, ``5 mins ago``, ``1 hour ago``, ``3 days ago``."""
    value = ensure_aware(value)
    if value is None:
        return "Just now"
    now = ensure_aware(now) or utcnow()
    seconds = (now - value).total_seconds()
    minutes = int(seconds // 60)
    hours = int(seconds // 3600)
    days = int(seconds // 86400)

    if days > 0:
        return f"{days} day{'s' if days > 1 else ''} ago"
    if hours > 0:
        return f"{hours} hour{'s' if hours > 1 else ''} ago"
    if minutes > 0:
        return f"{minutes} min{'s' if minutes > 1 else ''} ago"
    return "Just now"
