from __future__ import annotations

from datetime import date, datetime, timedelta, timezone


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def utctoday() -> date:
    return utcnow().date()


def day_bounds_ms(day: date) -> tuple[int, int]:
    """Return the inclusive [start, end] epoch-millisecond window of a UTC day."""
    start = datetime(day.year, day.month, day.day, tzinfo=timezone.utc)
    start_ms = int(start.timestamp() * 1000)
    return start_ms, start_ms + 24 * 60 * 60 * 1000 - 1


def seconds_to_ms(value: int | float | None) -> int | None:
    if value is None:
        return None
    return int(value) * 1000


def year_month(day: date) -> str:
    return f"{day.year:04d}-{day.month:02d}"


def date_range(start: date, end: date) -> list[date]:
    if end < start:
        return []
    return [start + timedelta(days=offset) for offset in range((end - start).days + 1)]
