"""Pandas DataFrame adapters for the CLV cohort toolkit."""

from .rfm import (
    RFM_OUTPUT_COLUMNS,
    dataframe_to_transactions,
    rfm_to_dataframe,
    segments_to_dataframe,
    calculate_rfm_df,
)
from .cohorts import (
    week_columns,
    dataframe_to_visits,
    cohort_revenue_to_dataframe,
    cumulative_revenue_to_dataframe,
    projections_to_dataframe,
    calculate_cohort_revenue_df,
)

__all__ = [
    # RFM adapters
    "RFM_OUTPUT_COLUMNS",
    "dataframe_to_transactions",
    "rfm_to_dataframe",
    "segments_to_dataframe",
    "calculate_rfm_df",
    # Cohort adapters
    "week_columns",
    "dataframe_to_visits",
    "cohort_revenue_to_dataframe",
    "cumulative_revenue_to_dataframe",
    "projections_to_dataframe",
    "calculate_cohort_revenue_df",
]
