"""Registration-week cohort assignment.

Every user belongs to exactly one cohort: the week containing their
earliest event. The assignment is computed once per run from the full
event set, so later events can never move a user to another cohort.

Quick Start
-----------
>>> from datetime import datetime
>>> from clv_cohorts.foundation.events import VisitEvent
>>> from clv_cohorts.foundation.cohorts import assign_registration_weeks
>>>
>>> events = [
...     VisitEvent("U1", datetime(2021, 1, 5, 9, 30)),
...     VisitEvent("U1", datetime(2021, 1, 20, 18, 0)),
...     VisitEvent("U2", datetime(2021, 1, 11, 12, 0)),
... ]
>>> assignments = assign_registration_weeks(events)
>>> {uid: a.registration_week.isoformat() for uid, a in assignments.items()}
{'U1': '2021-01-03', 'U2': '2021-01-10'}
"""

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass
from datetime import date, datetime
from typing import Mapping, Sequence

from clv_cohorts.foundation.events import VisitEvent
from clv_cohorts.foundation.weeks import WeekStart, week_start

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CohortAssignment:
    """Cohort membership of a single user.

    Attributes
    ----------
    user_id:
        User identifier.
    registration_week:
        First day of the week containing the user's earliest event.
    first_seen_ts:
        Timestamp of the user's earliest event.
    """

    user_id: str
    registration_week: date
    first_seen_ts: datetime

    def __post_init__(self) -> None:
        if self.first_seen_ts.date() < self.registration_week:
            raise ValueError(
                f"first_seen_ts {self.first_seen_ts.isoformat()} is before "
                f"registration_week {self.registration_week.isoformat()} "
                f"(user_id={self.user_id})"
            )


def assign_registration_weeks(
    events: Sequence[VisitEvent],
    cutoff_date: date | None = None,
    week_starts_on: WeekStart = WeekStart.SUNDAY,
) -> dict[str, CohortAssignment]:
    """Assign each user to the week of their first event.

    Parameters
    ----------
    events:
        Visit/purchase events. Users are identified by ``user_id``.
    cutoff_date:
        Optional last allowed registration date. Users whose registration
        week starts after this date are left out of the result (their
        cohorts would be too young to analyse).
    week_starts_on:
        First day of the week used for bucketing.

    Returns
    -------
    dict[str, CohortAssignment]
        Mapping of user_id to assignment, ordered by user_id.
    """
    first_seen: dict[str, datetime] = {}
    for event in events:
        current = first_seen.get(event.user_id)
        if current is None or event.event_ts < current:
            first_seen[event.user_id] = event.event_ts

    assignments: dict[str, CohortAssignment] = {}
    excluded = 0
    for user_id in sorted(first_seen):
        first_ts = first_seen[user_id]
        registration_week = week_start(first_ts, week_starts_on)
        if cutoff_date is not None and registration_week > cutoff_date:
            excluded += 1
            continue
        assignments[user_id] = CohortAssignment(
            user_id=user_id,
            registration_week=registration_week,
            first_seen_ts=first_ts,
        )

    if excluded:
        logger.info(
            f"{excluded}/{len(first_seen)} users registered after cutoff "
            f"{cutoff_date.isoformat()} and were excluded from cohorts"
        )
    logger.debug(
        f"Assigned {len(assignments)} users to "
        f"{len(cohort_sizes(assignments))} registration weeks"
    )
    return assignments


def cohort_sizes(assignments: Mapping[str, CohortAssignment]) -> dict[date, int]:
    """Count users per registration week, ordered by week."""
    counts = Counter(a.registration_week for a in assignments.values())
    return {week: counts[week] for week in sorted(counts)}
