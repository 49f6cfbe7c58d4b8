"""Export pipeline output tables to CSV and JSON.

The tables are the whole contract with downstream consumers (dashboards,
spreadsheets, charting notebooks), so exports are plain files with stable
column order and no index column.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Mapping, Sequence

import pandas as pd

from clv_cohorts.analyses.projection import CohortProjection, ProjectionStatus
from clv_cohorts.foundation.rfm import QuantileThresholds
from clv_cohorts.foundation.segments import SegmentSummary

logger = logging.getLogger(__name__)

#: File names written by :func:`export_cohort_tables`.
COHORT_TABLE_FILES = {
    "weekly": "cohort_weekly_revenue.csv",
    "cumulative": "cohort_cumulative_revenue.csv",
    "projected": "cohort_projected_revenue.csv",
}


def export_table_csv(table: pd.DataFrame, output_path: str | Path) -> Path:
    """Write ``table`` to CSV, creating parent directories.

    Examples
    --------
    >>> rfm_df = calculate_rfm_df(transactions_df, date(2010, 12, 1), date(2011, 12, 9))
    >>> export_table_csv(rfm_df, "out/rfm_segments.csv")
    """
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    table.to_csv(output_path, index=False)
    logger.info(f"Exported {len(table)} rows to {output_path}")
    return output_path


def export_cohort_tables(
    tables: Mapping[str, pd.DataFrame],
    output_dir: str | Path,
) -> dict[str, Path]:
    """Write the weekly, cumulative and projected cohort tables.

    Parameters
    ----------
    tables:
        Mapping with any of the keys ``weekly``, ``cumulative`` and
        ``projected``.
    output_dir:
        Directory receiving the files named in :data:`COHORT_TABLE_FILES`.

    Returns
    -------
    dict[str, Path]
        Paths written, keyed like ``tables``.
    """
    unknown = set(tables) - set(COHORT_TABLE_FILES)
    if unknown:
        raise ValueError(
            f"Unknown cohort tables {sorted(unknown)}; expected {sorted(COHORT_TABLE_FILES)}"
        )
    output_dir = Path(output_dir)
    return {
        name: export_table_csv(table, output_dir / COHORT_TABLE_FILES[name])
        for name, table in tables.items()
    }


def export_run_summary_json(
    output_path: str | Path,
    thresholds: QuantileThresholds | None = None,
    segments: Sequence[SegmentSummary] = (),
    projections: Sequence[CohortProjection] = (),
    metadata: Mapping[str, Any] | None = None,
) -> Path:
    """Write a JSON summary of a run.

    The summary holds the quantile thresholds (so a run can be reproduced
    and audited), the per-segment counts, and the projection status of
    every cohort including which ones lacked history.
    """
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)

    report: dict[str, Any] = {
        "metadata": dict(metadata or {}),
        "timestamp": datetime.now().isoformat(),
    }
    if thresholds is not None:
        report["thresholds"] = thresholds.as_dict()
    if segments:
        report["segments"] = [
            {
                "segment": s.segment,
                "customers": s.customers,
                "customer_share": float(s.customer_share),
                "total_monetary": float(s.total_monetary),
                "avg_monetary": float(s.avg_monetary),
            }
            for s in segments
        ]
    if projections:
        report["projections"] = [
            {
                "registration_week": p.registration_week.isoformat(),
                "cohort_size": p.cohort_size,
                "status": p.status.value,
                "observed_weeks": p.observed_weeks,
                "predicted_value": (
                    float(p.predicted_value) if p.predicted_value is not None else None
                ),
            }
            for p in projections
        ]
        report["insufficient_data"] = [
            p.registration_week.isoformat()
            for p in projections
            if p.status is ProjectionStatus.INSUFFICIENT_DATA
        ]

    with open(output_path, "w", encoding="utf-8") as f:
        json.dump(report, f, indent=2)

    logger.info(f"Run summary exported to {output_path}")
    return output_path
