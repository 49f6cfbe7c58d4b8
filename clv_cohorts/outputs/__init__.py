"""File exports for the pipeline output tables."""

from .exports import (
    COHORT_TABLE_FILES,
    export_cohort_tables,
    export_run_summary_json,
    export_table_csv,
)

__all__ = [
    "COHORT_TABLE_FILES",
    "export_cohort_tables",
    "export_run_summary_json",
    "export_table_csv",
]
