"""UTC timestamp helpers shared by the engine, store and scheduler."""

from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC and convert aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def format_timestamp(value: datetime) -> str:
    # Fixed width so that string comparison in SQL matches chronological order.
    return ensure_utc(value).isoformat(timespec="milliseconds")


def parse_timestamp(value: str) -> datetime:
    candidate = value.strip()
    if not candidate:
        raise ValueError("Timestamp is empty.")

    if candidate.endswith("Z"):
        candidate = candidate[:-1] + "+00:00"

    try:
        parsed = datetime.fromisoformat(candidate)
    except ValueError as exc:
        raise ValueError("Invalid timestamp format") from exc

    return ensure_utc(parsed)


def duration_seconds(start: datetime, end: datetime) -> int:
    """Whole seconds between two instants, rounded, never negative."""
    delta = (ensure_utc(end) - ensure_utc(start)).total_seconds()
    return max(0, round(delta))


def day_bounds(day: date) -> tuple[datetime, datetime]:
    """Half-open ``[start, end)`` UTC bounds of a calendar day."""
    start = datetime.combine(day, time.min, tzinfo=timezone.utc)
    return start, start + timedelta(days=1)


def hour_bounds(day: date, hour: int) -> tuple[datetime, datetime]:
    start = datetime.combine(day, time(hour=hour), tzinfo=timezone.utc)
    return start, start + timedelta(hours=1)
