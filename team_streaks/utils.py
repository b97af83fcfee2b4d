"""Shared utility helpers for team-streaks."""

from __future__ import annotations

from datetime import datetime, timezone


def now_utc() -> datetime:
    """Return current UTC datetime (timezone-aware)."""
    return datetime.now(timezone.utc)


def parse_timestamp(ts: str | datetime | None) -> datetime | None:
    """Parse an ISO-8601 string to a timezone-aware datetime, or None."""
    if ts is None or ts == "":
        return None
    if isinstance(ts, datetime):
        return ts if ts.tzinfo else ts.replace(tzinfo=timezone.utc)
    try:
        dt = datetime.fromisoformat(ts)
        # Naive values are stored as UTC
        if dt.tzinfo is None:
            dt = dt.replace(tzinfo=timezone.utc)
        return dt
    except (ValueError, TypeError):
        return None


def format_timestamp(dt: datetime | None) -> str | None:
    """Serialize a datetime as ISO-8601 (UTC), or None."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).isoformat()


def clean_name(name: str) -> str:
    """Trim surrounding whitespace from a member name."""
    return name.strip()


def member_record_id(name: str) -> str:
    """Record id shared by a member's TeamMember and streak fields."""
    return f"member-{name}"


def preview(names: list[str], limit: int = 8) -> str:
    """Short bracketed list for log lines, e.g. '[A, B, ...]'."""
    head = ", ".join(names[:limit])
    suffix = ", ..." if len(names) > limit else ""
    return f"[{head}{suffix}]"
