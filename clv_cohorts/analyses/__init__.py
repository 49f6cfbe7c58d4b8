"""Cohort revenue analyses built on the foundation layer."""

from .cohort_revenue import (
    DEFAULT_HORIZON_WEEKS,
    CohortRevenueCurve,
    CohortRevenueRow,
    build_revenue_curves,
    calculate_cohort_revenue,
)
from .projection import (
    CohortProjection,
    GrowthStrategy,
    PooledWeeklyGrowth,
    ProjectionStatus,
    average_growth_ratio,
    growth_ratios,
    last_growth_ratio,
    project_cohort,
    project_cumulative_revenue,
    resolve_strategy,
)

__all__ = [
    "DEFAULT_HORIZON_WEEKS",
    "CohortRevenueCurve",
    "CohortRevenueRow",
    "build_revenue_curves",
    "calculate_cohort_revenue",
    "CohortProjection",
    "GrowthStrategy",
    "PooledWeeklyGrowth",
    "ProjectionStatus",
    "average_growth_ratio",
    "growth_ratios",
    "last_growth_ratio",
    "project_cohort",
    "project_cumulative_revenue",
    "resolve_strategy",
]
