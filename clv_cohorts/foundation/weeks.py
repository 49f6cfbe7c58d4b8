"""Week bucketing helpers shared by the cohort engine and data loaders."""

from __future__ import annotations

from datetime import date, datetime, timedelta
from enum import Enum


class WeekStart(str, Enum):
    """First day of a calendar week.

    ``SUNDAY`` matches US week numbering (``DATE_TRUNC(..., WEEK)`` in most
    SQL warehouses); ``MONDAY`` matches ISO-8601 weeks.
    """

    SUNDAY = "sunday"
    MONDAY = "monday"


def _as_date(value: date | datetime) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    raise TypeError(f"Expected date or datetime, got {type(value).__name__}")


def week_start(value: date | datetime, start: WeekStart = WeekStart.SUNDAY) -> date:
    """Return the first day of the week containing ``value``.

    Examples
    --------
    >>> week_start(date(2021, 1, 6))
    datetime.date(2021, 1, 3)
    >>> week_start(date(2021, 1, 6), WeekStart.MONDAY)
    datetime.date(2021, 1, 4)
    """
    day = _as_date(value)
    if start is WeekStart.MONDAY:
        shift = day.weekday()
    else:
        # date.weekday(): Monday == 0 ... Sunday == 6
        shift = (day.weekday() + 1) % 7
    return day - timedelta(days=shift)


def weeks_between(
    registration_week: date,
    value: date | datetime,
    start: WeekStart = WeekStart.SUNDAY,
) -> int:
    """Number of whole weeks from ``registration_week`` to the week of ``value``.

    ``registration_week`` must already be a week start for ``start``.
    Negative results mean ``value`` falls before the registration week.
    """
    if week_start(registration_week, start) != registration_week:
        raise ValueError(
            f"registration_week {registration_week.isoformat()} is not a "
            f"{start.value} week start"
        )
    return (week_start(value, start) - registration_week).days // 7


def add_weeks(week: date, offset: int) -> date:
    """Return the week start ``offset`` weeks after ``week``."""
    return week + timedelta(weeks=offset)
