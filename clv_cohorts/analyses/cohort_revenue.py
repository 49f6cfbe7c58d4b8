"""Weekly cohort revenue per registered user.

For every registration-week cohort and every week offset 0..12 this module
computes the revenue generated by the cohort's members in that week divided
by the cohort's *total* size. Members who did not buy in a week still count
in the denominator, so the figure is "average revenue per registered user",
not per active purchaser. This is what makes cumulative sums of the weekly
averages a per-user lifetime value curve.

Only observed weeks get a row: a cohort registered three weeks before the
observation end has rows for offsets 0..3 and nothing after. The missing
tail is what :mod:`clv_cohorts.analyses.projection` fills in.

Quick Start
-----------
>>> from datetime import datetime
>>> from decimal import Decimal
>>> from clv_cohorts.foundation.events import VisitEvent
>>> from clv_cohorts.foundation.cohorts import assign_registration_weeks
>>> events = [
...     VisitEvent("U1", datetime(2021, 1, 4)),
...     VisitEvent("U2", datetime(2021, 1, 5)),
...     VisitEvent("U1", datetime(2021, 1, 12), Decimal("30")),
... ]
>>> rows = calculate_cohort_revenue(events, assign_registration_weeks(events))
>>> [(r.week_offset, r.average_revenue_per_user) for r in rows]
[(0, Decimal('0')), (1, Decimal('15'))]
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import Mapping, Sequence

from clv_cohorts.foundation.cohorts import CohortAssignment, cohort_sizes
from clv_cohorts.foundation.events import VisitEvent
from clv_cohorts.foundation.weeks import WeekStart, add_weeks, week_start, weeks_between

logger = logging.getLogger(__name__)

#: Number of weeks after registration tracked by the cohort tables.
DEFAULT_HORIZON_WEEKS = 12


@dataclass(frozen=True)
class CohortRevenueRow:
    """Revenue of one cohort in one week after registration.

    Attributes
    ----------
    registration_week:
        First day of the cohort's registration week.
    week_offset:
        Weeks since registration (0 = registration week).
    cohort_size:
        Total number of users in the cohort (the denominator).
    total_revenue:
        Revenue from cohort members during that week.
    average_revenue_per_user:
        ``total_revenue / cohort_size``.
    """

    registration_week: date
    week_offset: int
    cohort_size: int
    total_revenue: Decimal
    average_revenue_per_user: Decimal

    def __post_init__(self) -> None:
        if self.week_offset < 0:
            raise ValueError(f"week_offset must be >= 0, got {self.week_offset}")
        if self.cohort_size < 1:
            raise ValueError(f"cohort_size must be >= 1, got {self.cohort_size}")
        if self.total_revenue < 0:
            raise ValueError(f"total_revenue must be >= 0, got {self.total_revenue}")


def calculate_cohort_revenue(
    events: Sequence[VisitEvent],
    assignments: Mapping[str, CohortAssignment],
    horizon_weeks: int = DEFAULT_HORIZON_WEEKS,
    observation_end: date | datetime | None = None,
    week_starts_on: WeekStart = WeekStart.SUNDAY,
) -> list[CohortRevenueRow]:
    """Average revenue per registered user by cohort and week offset.

    Parameters
    ----------
    events:
        Visit/purchase events. Events of users without an assignment are
        ignored (e.g. users registered after the cohort cutoff).
    assignments:
        Cohort membership from
        :func:`~clv_cohorts.foundation.cohorts.assign_registration_weeks`.
    horizon_weeks:
        Last week offset to report. Revenue after it is ignored.
    observation_end:
        Last day covered by the data. Weeks starting after its week are not
        observed and get no row; events after it are ignored. Users first
        seen after it had not registered yet and are left out of every
        cohort, including its denominator. Defaults to the latest event
        timestamp.
    week_starts_on:
        Must match the week start used for the assignments.

    Returns
    -------
    list[CohortRevenueRow]
        Rows ordered by registration_week then week_offset.

    Raises
    ------
    ValueError
        If ``horizon_weeks`` is negative or an event predates its user's
        registration week (assignments built from a different event set).
    """
    if horizon_weeks < 0:
        raise ValueError(f"horizon_weeks must be >= 0, got {horizon_weeks}")
    if not assignments or not events:
        logger.warning("No cohort members or events; cohort revenue table is empty")
        return []

    if observation_end is None:
        observation_end = max(event.event_ts for event in events)
    last_observed_week = week_start(observation_end, week_starts_on)
    observation_end_date = (
        observation_end.date() if isinstance(observation_end, datetime) else observation_end
    )

    registered = {
        user_id: assignment
        for user_id, assignment in assignments.items()
        if assignment.first_seen_ts.date() <= observation_end_date
    }
    if len(registered) < len(assignments):
        logger.warning(
            f"{len(assignments) - len(registered)} users first seen after observation end "
            f"{observation_end_date.isoformat()} were excluded from cohorts"
        )
    if not registered:
        logger.warning("No users registered by the observation end; cohort revenue table is empty")
        return []

    revenue: dict[tuple[date, int], Decimal] = {}
    beyond_horizon = 0
    for event in events:
        assignment = registered.get(event.user_id)
        if assignment is None:
            continue
        if event.event_ts.date() > observation_end_date:
            continue
        offset = weeks_between(
            assignment.registration_week, event.event_ts, week_starts_on
        )
        if offset < 0:
            raise ValueError(
                f"Event at {event.event_ts.isoformat()} precedes registration week "
                f"{assignment.registration_week.isoformat()} (user_id={event.user_id})"
            )
        if offset > horizon_weeks:
            beyond_horizon += 1
            continue
        if event.purchase_revenue:
            key = (assignment.registration_week, offset)
            revenue[key] = revenue.get(key, Decimal("0")) + event.purchase_revenue

    if beyond_horizon:
        logger.debug(f"Ignored {beyond_horizon} events beyond week {horizon_weeks}")

    rows: list[CohortRevenueRow] = []
    for registration_week, size in cohort_sizes(registered).items():
        for offset in range(horizon_weeks + 1):
            if add_weeks(registration_week, offset) > last_observed_week:
                break
            total = revenue.get((registration_week, offset), Decimal("0"))
            rows.append(
                CohortRevenueRow(
                    registration_week=registration_week,
                    week_offset=offset,
                    cohort_size=size,
                    total_revenue=total,
                    average_revenue_per_user=total / size,
                )
            )

    logger.info(
        f"Cohort revenue: {len(rows)} rows for "
        f"{len({r.registration_week for r in rows})} cohorts "
        f"(observed through week of {last_observed_week.isoformat()})"
    )
    return rows


@dataclass(frozen=True)
class CohortRevenueCurve:
    """Observed weekly and cumulative revenue per user for one cohort.

    Attributes
    ----------
    registration_week:
        First day of the cohort's registration week.
    cohort_size:
        Total number of users in the cohort.
    weekly_revenue:
        Average revenue per user for offsets 0..n-1.
    cumulative_revenue:
        Running sum of ``weekly_revenue``.
    """

    registration_week: date
    cohort_size: int
    weekly_revenue: tuple[Decimal, ...]
    cumulative_revenue: tuple[Decimal, ...]

    def __post_init__(self) -> None:
        if len(self.weekly_revenue) != len(self.cumulative_revenue):
            raise ValueError(
                "weekly_revenue and cumulative_revenue must have the same length"
            )

    @property
    def observed_weeks(self) -> int:
        return len(self.weekly_revenue)

    def cumulative_at(self, week_offset: int) -> Decimal:
        """Cumulative revenue per user through ``week_offset`` (inclusive)."""
        if not 0 <= week_offset < self.observed_weeks:
            raise ValueError(
                f"week_offset {week_offset} not observed for cohort "
                f"{self.registration_week.isoformat()} "
                f"(observed 0..{self.observed_weeks - 1})"
            )
        return self.cumulative_revenue[week_offset]


def build_revenue_curves(rows: Sequence[CohortRevenueRow]) -> list[CohortRevenueCurve]:
    """Group revenue rows per cohort and accumulate them.

    Raises
    ------
    ValueError
        If a cohort's offsets are not contiguous from 0 or its rows disagree
        on cohort size.
    """
    by_cohort: dict[date, list[CohortRevenueRow]] = {}
    for row in rows:
        by_cohort.setdefault(row.registration_week, []).append(row)

    curves: list[CohortRevenueCurve] = []
    for registration_week in sorted(by_cohort):
        cohort_rows = sorted(by_cohort[registration_week], key=lambda r: r.week_offset)
        offsets = [r.week_offset for r in cohort_rows]
        if offsets != list(range(len(cohort_rows))):
            raise ValueError(
                f"week offsets must be contiguous starting from 0 for cohort "
                f"{registration_week.isoformat()}, got {offsets}"
            )
        sizes = {r.cohort_size for r in cohort_rows}
        if len(sizes) != 1:
            raise ValueError(
                f"Inconsistent cohort_size values {sorted(sizes)} for cohort "
                f"{registration_week.isoformat()}"
            )

        weekly = tuple(r.average_revenue_per_user for r in cohort_rows)
        cumulative: list[Decimal] = []
        running = Decimal("0")
        for value in weekly:
            running += value
            cumulative.append(running)

        curves.append(
            CohortRevenueCurve(
                registration_week=registration_week,
                cohort_size=sizes.pop(),
                weekly_revenue=weekly,
                cumulative_revenue=tuple(cumulative),
            )
        )
    return curves
