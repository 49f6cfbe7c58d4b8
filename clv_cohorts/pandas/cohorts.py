"""Pandas DataFrame adapters for the cohort revenue tables."""

from typing import List, Optional, Sequence
from datetime import date
import pandas as pd  # type: ignore

from clv_cohorts.analyses.cohort_revenue import (
    DEFAULT_HORIZON_WEEKS,
    CohortRevenueCurve,
    CohortRevenueRow,
    calculate_cohort_revenue,
)
from clv_cohorts.analyses.projection import CohortProjection
from clv_cohorts.foundation.cohorts import assign_registration_weeks
from clv_cohorts.foundation.events import EventContract, VisitEvent
from clv_cohorts.foundation.sources import VISIT_COLUMNS
from clv_cohorts.foundation.weeks import WeekStart
from ._utils import decimal_to_float, rename_columns

#: Cohort tables keep four decimals; per-user weekly revenue is often below a cent.
REVENUE_PLACES = 4


def week_columns(horizon_weeks: int = DEFAULT_HORIZON_WEEKS) -> List[str]:
    """Return ``["week_0", ..., "week_<horizon>"]``."""
    return [f"week_{k}" for k in range(horizon_weeks + 1)]


def dataframe_to_visits(
    visits_df: pd.DataFrame,
    user_id_col: str = "user_id",
    event_ts_col: str = "event_ts",
    purchase_revenue_col: str = "purchase_revenue",
) -> List[VisitEvent]:
    """Convert an event DataFrame to VisitEvent list.

    Args:
        visits_df: DataFrame with one row per visit/purchase event
        *_col: Column name mappings for flexibility

    Returns:
        List of VisitEvent objects. Rows without a user_id are dropped;
        missing purchase_revenue is read as 0.

    Raises:
        ValueError: If DataFrame missing required columns or has invalid data
    """
    frame = rename_columns(
        visits_df,
        dict(zip(VISIT_COLUMNS, (user_id_col, event_ts_col, purchase_revenue_col))),
    )
    if frame.empty:
        return []

    frame = frame.copy()
    frame["event_ts"] = pd.to_datetime(frame["event_ts"])
    return EventContract().validate_visits(frame.to_dict("records"))


def _pivot(
    values_by_cohort: Sequence[tuple],
    horizon_weeks: int,
    extra_columns: Sequence[str] = (),
) -> pd.DataFrame:
    columns = ["registration_week", "cohort_size", *extra_columns, *week_columns(horizon_weeks)]
    rows = []
    for registration_week, cohort_size, extras, values in values_by_cohort:
        row = {"registration_week": registration_week, "cohort_size": cohort_size}
        row.update(zip(extra_columns, extras))
        for k, column in enumerate(week_columns(horizon_weeks)):
            value = values[k] if k < len(values) else None
            row[column] = decimal_to_float(value, places=REVENUE_PLACES)
        rows.append(row)
    return pd.DataFrame(rows, columns=columns)


def cohort_revenue_to_dataframe(
    rows: Sequence[CohortRevenueRow],
    horizon_weeks: int = DEFAULT_HORIZON_WEEKS,
) -> pd.DataFrame:
    """Pivot revenue rows into one row per cohort.

    Returns:
        DataFrame with columns registration_week, cohort_size,
        week_0..week_<horizon>; unobserved weeks are NaN. Sorted by
        registration_week.
    """
    by_cohort: dict = {}
    for row in rows:
        entry = by_cohort.setdefault(row.registration_week, [row.cohort_size, {}])
        entry[1][row.week_offset] = row.average_revenue_per_user

    values_by_cohort = []
    for registration_week in sorted(by_cohort):
        size, by_offset = by_cohort[registration_week]
        values = [by_offset.get(k) for k in range(horizon_weeks + 1)]
        values_by_cohort.append((registration_week, size, (), values))
    return _pivot(values_by_cohort, horizon_weeks)


def cumulative_revenue_to_dataframe(
    curves: Sequence[CohortRevenueCurve],
    horizon_weeks: int = DEFAULT_HORIZON_WEEKS,
) -> pd.DataFrame:
    """One row per cohort with observed cumulative revenue per user."""
    return _pivot(
        [(c.registration_week, c.cohort_size, (), c.cumulative_revenue) for c in curves],
        horizon_weeks,
    )


def projections_to_dataframe(
    projections: Sequence[CohortProjection],
    horizon_weeks: int = DEFAULT_HORIZON_WEEKS,
) -> pd.DataFrame:
    """One row per cohort with observed and projected cumulative revenue.

    Returns:
        DataFrame with registration_week, cohort_size, status,
        observed_weeks, week_0..week_<horizon>. Cohorts with
        ``insufficient_data`` keep their observed values and NaN elsewhere.
    """
    return _pivot(
        [
            (
                p.registration_week,
                p.cohort_size,
                (p.status.value, p.observed_weeks),
                p.cumulative_revenue,
            )
            for p in projections
        ],
        horizon_weeks,
        extra_columns=("status", "observed_weeks"),
    )


def calculate_cohort_revenue_df(
    visits_df: pd.DataFrame,
    cutoff_date: Optional[date] = None,
    observation_end: Optional[date] = None,
    horizon_weeks: int = DEFAULT_HORIZON_WEEKS,
    week_starts_on: WeekStart = WeekStart.SUNDAY,
    **column_mapping: str,
) -> pd.DataFrame:
    """Weekly cohort revenue table straight from an event DataFrame.

    Convenience function that combines conversion, cohort assignment and
    weekly revenue aggregation.

    Example:
        >>> events_df = pd.read_csv('events.csv')
        >>> weekly = calculate_cohort_revenue_df(events_df, cutoff_date=date(2021, 1, 24))
        >>> weekly[['registration_week', 'week_0', 'week_1']].head()
    """
    visits = dataframe_to_visits(visits_df, **column_mapping)
    assignments = assign_registration_weeks(visits, cutoff_date, week_starts_on)
    rows = calculate_cohort_revenue(
        visits,
        assignments,
        horizon_weeks=horizon_weeks,
        observation_end=observation_end,
        week_starts_on=week_starts_on,
    )
    return cohort_revenue_to_dataframe(rows, horizon_weeks)
