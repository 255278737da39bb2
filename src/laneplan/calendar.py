"""Working-day calendar arithmetic.

Weekday indices follow the 0=Sunday .. 6=Saturday convention used by the
planner's working-day set (not Python's 0=Monday ``date.weekday()``).
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from datetime import date, datetime, timedelta

from laneplan.errors import ConfigurationError

DEFAULT_WORKING_DAYS: frozenset[int] = frozenset({1, 2, 3, 4, 5})

WEEKDAY_NAMES = ("Sun", "Mon", "Tue", "Wed", "Thu", "Fri", "Sat")


def validate_working_days(days: Iterable[int]) -> frozenset[int]:
    """Normalise *days* to a frozenset. Raises ConfigurationError if empty or
    if any index falls outside 0..6."""
    result = frozenset(int(d) for d in days)
    if not result:
        raise ConfigurationError("Working-day set must contain at least one weekday")
    bad = sorted(d for d in result if not 0 <= d <= 6)
    if bad:
        raise ConfigurationError(f"Invalid weekday index(es) {bad}; expected 0 (Sun) to 6 (Sat)")
    return result


def weekday_index(day: date) -> int:
    return day.isoweekday() % 7


def is_working_day(day: date, working_days: Iterable[int] = DEFAULT_WORKING_DAYS) -> bool:
    return weekday_index(day) in validate_working_days(working_days)


def iter_working_days(
    start: date,
    end: date,
    working_days: Iterable[int] = DEFAULT_WORKING_DAYS,
) -> Iterator[date]:
    """Yield every working day in the inclusive range ``start..end``."""
    days = validate_working_days(working_days)
    current = start
    while current <= end:
        if weekday_index(current) in days:
            yield current
        current += timedelta(days=1)


def enumerate_working_days(
    start: date,
    end: date,
    working_days: Iterable[int] = DEFAULT_WORKING_DAYS,
) -> list[date]:
    return list(iter_working_days(start, end, working_days))


def count_working_days(
    start: date,
    end: date,
    working_days: Iterable[int] = DEFAULT_WORKING_DAYS,
) -> int:
    return sum(1 for _ in iter_working_days(start, end, working_days))


def days_between(start: date, end: date) -> int:
    """Inclusive number of calendar days from *start* to *end*."""
    return (end - start).days + 1


# ---------------------------------------------------------------------------
# Formatting helpers
# ---------------------------------------------------------------------------


def format_date(day: date) -> str:
    """Locale-fixed display format, e.g. ``05.01.2026``."""
    return day.strftime("%d.%m.%Y")


def to_input_date(day: date) -> str:
    return day.strftime("%Y-%m-%d")


def parse_date(text: str) -> date:
    """Parse ``YYYY-MM-DD``, ``DD.MM.YYYY`` or an ISO datetime (time dropped)."""
    text = text.strip()
    if "." in text:
        return datetime.strptime(text, "%d.%m.%Y").date()
    if "T" in text or " " in text:
        return datetime.fromisoformat(text).date()
    return date.fromisoformat(text)


def is_same_day(a: date, b: date) -> bool:
    if isinstance(a, datetime):
        a = a.date()
    if isinstance(b, datetime):
        b = b.date()
    return a == b
