"""Synthetic data generation utilities.

This package produces realistic-but-fake invoice lines and visit events to
exercise the RFM and cohort pipelines without accessing production data.
"""

from .generator import (
    Customer,
    ScenarioConfig,
    generate_customers,
    generate_transactions,
    generate_visit_events,
)

__all__ = [
    "Customer",
    "ScenarioConfig",
    "generate_customers",
    "generate_transactions",
    "generate_visit_events",
]
