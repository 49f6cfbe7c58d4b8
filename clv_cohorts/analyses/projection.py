"""Projection of cumulative cohort revenue to the end of the horizon.

Young cohorts have only a few observed weeks. Their cumulative revenue per
user is extended to week 12 by repeatedly applying a week-over-week growth
ratio (``cumulative[k] / cumulative[k-1]``) to the last observed value.

How the ratio is chosen is a policy, expressed as a :data:`GrowthStrategy`
callable so it can be swapped without touching the aggregation code:

- :func:`average_growth_ratio`: mean of the cohort's own observed ratios
- :func:`last_growth_ratio`: the cohort's most recent observed ratio
- :class:`PooledWeeklyGrowth`: for each week offset, the mean ratio that
  all cohorts observed at that offset

A cohort with fewer than two observed weeks has no ratio at all and is
reported as ``insufficient_data`` instead of being given a made-up number.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Callable, Optional, Sequence

from clv_cohorts.analyses.cohort_revenue import DEFAULT_HORIZON_WEEKS, CohortRevenueCurve

logger = logging.getLogger(__name__)

#: ``strategy(observed_cumulative, week_offset) -> ratio`` for the week being
#: projected, or ``None`` when no ratio can be derived.
GrowthStrategy = Callable[[Sequence[Decimal], int], Optional[Decimal]]

MIN_OBSERVED_WEEKS = 2


class ProjectionStatus(str, Enum):
    """Outcome of projecting one cohort."""

    COMPLETE = "complete"
    PROJECTED = "projected"
    INSUFFICIENT_DATA = "insufficient_data"


def growth_ratios(cumulative: Sequence[Decimal]) -> list[Decimal]:
    """Week-over-week ratios of a cumulative curve.

    Ratios whose base is zero are undefined and skipped.

    Examples
    --------
    >>> growth_ratios([Decimal("2"), Decimal("3"), Decimal("3")])
    [Decimal('1.5'), Decimal('1')]
    >>> growth_ratios([Decimal("0"), Decimal("4")])
    []
    """
    return [
        cumulative[k] / cumulative[k - 1]
        for k in range(1, len(cumulative))
        if cumulative[k - 1] > 0
    ]


def average_growth_ratio(
    observed: Sequence[Decimal], week_offset: int
) -> Optional[Decimal]:
    """Arithmetic mean of the cohort's observed growth ratios."""
    ratios = growth_ratios(observed)
    if not ratios:
        return None
    return sum(ratios, Decimal("0")) / len(ratios)


def last_growth_ratio(observed: Sequence[Decimal], week_offset: int) -> Optional[Decimal]:
    """The cohort's most recent observed growth ratio."""
    ratios = growth_ratios(observed)
    return ratios[-1] if ratios else None


class PooledWeeklyGrowth:
    """Growth ratio per week offset pooled across cohorts.

    For offset ``k`` the ratio is the mean of ``cumulative[k] /
    cumulative[k-1]`` over every cohort that observed week ``k``. Offsets no
    cohort has reached reuse the ratio of the latest offset that was
    observed.
    """

    def __init__(self, curves: Sequence[CohortRevenueCurve]) -> None:
        samples: dict[int, list[Decimal]] = {}
        for curve in curves:
            cumulative = curve.cumulative_revenue
            for k in range(1, len(cumulative)):
                if cumulative[k - 1] > 0:
                    samples.setdefault(k, []).append(cumulative[k] / cumulative[k - 1])
        self.ratios: dict[int, Decimal] = {
            k: sum(values, Decimal("0")) / len(values)
            for k, values in sorted(samples.items())
        }

    def __call__(self, observed: Sequence[Decimal], week_offset: int) -> Optional[Decimal]:
        if week_offset in self.ratios:
            return self.ratios[week_offset]
        earlier = [k for k in self.ratios if k < week_offset]
        if not earlier:
            return None
        return self.ratios[max(earlier)]


@dataclass(frozen=True)
class CohortProjection:
    """Cumulative revenue per user for a cohort, observed plus projected.

    Attributes
    ----------
    registration_week:
        First day of the cohort's registration week.
    cohort_size:
        Total number of users in the cohort.
    observed_weeks:
        Number of observed week offsets (0..observed_weeks-1).
    cumulative_revenue:
        Observed cumulative values followed by projected ones. For
        ``insufficient_data`` only the observed values are present.
    growth_ratios:
        Ratio applied for each projected week, in order.
    status:
        Projection outcome.
    """

    registration_week: date
    cohort_size: int
    observed_weeks: int
    cumulative_revenue: tuple[Decimal, ...]
    growth_ratios: tuple[Decimal, ...]
    status: ProjectionStatus

    def __post_init__(self) -> None:
        projected = len(self.cumulative_revenue) - self.observed_weeks
        if projected != len(self.growth_ratios):
            raise ValueError(
                f"Expected one growth ratio per projected week "
                f"({projected}), got {len(self.growth_ratios)}"
            )

    @property
    def projected_weeks(self) -> tuple[int, ...]:
        return tuple(range(self.observed_weeks, len(self.cumulative_revenue)))

    @property
    def predicted_value(self) -> Optional[Decimal]:
        """Cumulative revenue per user at the last week, if known."""
        if self.status is ProjectionStatus.INSUFFICIENT_DATA:
            return None
        return self.cumulative_revenue[-1]


def project_cohort(
    curve: CohortRevenueCurve,
    strategy: GrowthStrategy = average_growth_ratio,
    horizon_weeks: int = DEFAULT_HORIZON_WEEKS,
) -> CohortProjection:
    """Extend one cohort's cumulative curve to ``horizon_weeks``."""
    observed = curve.cumulative_revenue[: horizon_weeks + 1]

    def _result(
        values: Sequence[Decimal], ratios: Sequence[Decimal], status: ProjectionStatus
    ) -> CohortProjection:
        return CohortProjection(
            registration_week=curve.registration_week,
            cohort_size=curve.cohort_size,
            observed_weeks=len(observed),
            cumulative_revenue=tuple(values),
            growth_ratios=tuple(ratios),
            status=status,
        )

    if len(observed) == horizon_weeks + 1:
        return _result(observed, (), ProjectionStatus.COMPLETE)
    if len(observed) < MIN_OBSERVED_WEEKS:
        return _result(observed, (), ProjectionStatus.INSUFFICIENT_DATA)

    values = list(observed)
    applied: list[Decimal] = []
    for week_offset in range(len(observed), horizon_weeks + 1):
        ratio = strategy(observed, week_offset)
        if ratio is None:
            return _result(observed, (), ProjectionStatus.INSUFFICIENT_DATA)
        applied.append(ratio)
        values.append(values[-1] * ratio)
    return _result(values, applied, ProjectionStatus.PROJECTED)


def project_cumulative_revenue(
    curves: Sequence[CohortRevenueCurve],
    strategy: GrowthStrategy = average_growth_ratio,
    horizon_weeks: int = DEFAULT_HORIZON_WEEKS,
) -> list[CohortProjection]:
    """Project every cohort's cumulative revenue to ``horizon_weeks``.

    Parameters
    ----------
    curves:
        Observed curves from
        :func:`~clv_cohorts.analyses.cohort_revenue.build_revenue_curves`.
    strategy:
        Growth policy; see the module docstring.
    horizon_weeks:
        Last week offset to project to.

    Returns
    -------
    list[CohortProjection]
        One projection per cohort, in the order of ``curves``.
    """
    if horizon_weeks < 0:
        raise ValueError(f"horizon_weeks must be >= 0, got {horizon_weeks}")

    projections = [project_cohort(curve, strategy, horizon_weeks) for curve in curves]
    insufficient = [
        p.registration_week.isoformat()
        for p in projections
        if p.status is ProjectionStatus.INSUFFICIENT_DATA
    ]
    if insufficient:
        logger.warning(
            f"{len(insufficient)} cohorts have insufficient history to project: "
            f"{insufficient[:5]}"
        )
    return projections


#: Strategy names accepted by configuration files and the CLI.
STRATEGY_NAMES = ("average", "last", "pooled")


def resolve_strategy(name: str, curves: Sequence[CohortRevenueCurve]) -> GrowthStrategy:
    """Return the growth strategy registered under ``name``."""
    if name == "average":
        return average_growth_ratio
    if name == "last":
        return last_growth_ratio
    if name == "pooled":
        return PooledWeeklyGrowth(curves)
    raise ValueError(f"Unknown growth strategy {name!r}; expected one of {STRATEGY_NAMES}")
