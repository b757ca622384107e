from __future__ import annotations

import re
from datetime import UTC, date, datetime, time, timedelta

from .exceptions import InvalidSpanError

WEEK_FORMAT = "%Y-%m-%d"
_SPAN_RE = re.compile(r"^\s*(\d+)\s*w\s*$", re.IGNORECASE)


def _to_utc_date(value: datetime | date | str) -> date:
    if isinstance(value, str):
        value = datetime.fromisoformat(value.strip())
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(UTC)
        return value.date()
    if isinstance(value, date):
        return value
    raise TypeError(f"Unsupported week value: {value!r}")


def utc_day(value: datetime | date | str) -> str:
    return _to_utc_date(value).strftime(WEEK_FORMAT)


def iso_week_monday(value: datetime | date | str) -> date:
    day = _to_utc_date(value)
    return day - timedelta(days=day.weekday())


def iso_week_start(value: datetime | date | str) -> str:
    """Monday of the ISO-8601 week containing ``value``, as ``YYYY-MM-DD``.

    Naive datetimes are taken to be UTC already. Weeks can straddle a year
    boundary: 2023-01-01 (a Sunday) belongs to the week of 2022-12-26.
    """
    return iso_week_monday(value).strftime(WEEK_FORMAT)


def iso_week_end(value: datetime | date | str) -> str:
    return (iso_week_monday(value) + timedelta(days=6)).strftime(WEEK_FORMAT)


def week_bounds(week_start: str | date) -> tuple[datetime, datetime]:
    """Half-open ``[monday 00:00, next monday 00:00)`` range in naive UTC."""
    monday = iso_week_monday(week_start)
    start = datetime.combine(monday, time.min)
    return start, start + timedelta(days=7)


def shift_week(week_start: str, weeks: int) -> str:
    return (iso_week_monday(week_start) + timedelta(weeks=weeks)).strftime(WEEK_FORMAT)


def parse_span(span: str, max_weeks: int | None = None) -> int:
    match = _SPAN_RE.match(span or "")
    if not match:
        raise InvalidSpanError(span)
    weeks = int(match.group(1))
    if weeks < 1:
        raise InvalidSpanError(span)
    if max_weeks is not None and weeks > max_weeks:
        raise InvalidSpanError(span, reason=f"at most {max_weeks} weeks")
    return weeks


def week_starts_for_span(span_weeks: int, today: datetime | date | None = None) -> list[str]:
    """The ``span_weeks`` Mondays ending with the current ISO week, oldest first."""
    if today is None:
        today = datetime.now(UTC)
    current = iso_week_start(today)
    return [shift_week(current, -offset) for offset in range(span_weeks - 1, -1, -1)]
