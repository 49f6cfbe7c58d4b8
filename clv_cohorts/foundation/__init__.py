"""Foundational building blocks for the CLV cohort toolkit.

This package exposes the event contracts, week bucketing helpers,
registration-week cohort assignment and the RFM
(Recency-Frequency-Monetary) scoring engine.
"""

from .cohorts import CohortAssignment, assign_registration_weeks, cohort_sizes
from .events import EventContract, TransactionEvent, VisitEvent
from .rfm import (
    EmptyDatasetError,
    QuantileMethod,
    QuantileThresholds,
    RFMMetrics,
    RFMScore,
    calculate_quantile_thresholds,
    calculate_rfm,
    calculate_rfm_scores,
    score_customer,
    score_value,
)
from .segments import (
    DEFAULT_SEGMENT_RULES,
    Segment,
    SegmentRule,
    SegmentSummary,
    assign_segment,
    summarize_segments,
)
from .weeks import WeekStart, add_weeks, week_start, weeks_between

__all__ = [
    "CohortAssignment",
    "assign_registration_weeks",
    "cohort_sizes",
    "EventContract",
    "TransactionEvent",
    "VisitEvent",
    "EmptyDatasetError",
    "QuantileMethod",
    "QuantileThresholds",
    "RFMMetrics",
    "RFMScore",
    "calculate_quantile_thresholds",
    "calculate_rfm",
    "calculate_rfm_scores",
    "score_customer",
    "score_value",
    "DEFAULT_SEGMENT_RULES",
    "Segment",
    "SegmentRule",
    "SegmentSummary",
    "assign_segment",
    "summarize_segments",
    "WeekStart",
    "add_weeks",
    "week_start",
    "weeks_between",
]
