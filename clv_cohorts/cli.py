"""Command line entry points for the CLV cohort toolkit."""

from __future__ import annotations

import argparse
import logging
from datetime import date
from pathlib import Path

from clv_cohorts.analyses.cohort_revenue import build_revenue_curves, calculate_cohort_revenue
from clv_cohorts.analyses.projection import (
    STRATEGY_NAMES,
    project_cumulative_revenue,
    resolve_strategy,
)
from clv_cohorts.config import PipelineConfig, load_config, override
from clv_cohorts.foundation.cohorts import assign_registration_weeks
from clv_cohorts.foundation.rfm import (
    QuantileMethod,
    calculate_quantile_thresholds,
    calculate_rfm,
    calculate_rfm_scores,
)
from clv_cohorts.foundation.segments import summarize_segments
from clv_cohorts.foundation.sources import load_frame
from clv_cohorts.foundation.weeks import WeekStart
from clv_cohorts.outputs.exports import (
    export_cohort_tables,
    export_run_summary_json,
    export_table_csv,
)
from clv_cohorts.pandas.cohorts import (
    cohort_revenue_to_dataframe,
    cumulative_revenue_to_dataframe,
    dataframe_to_visits,
    projections_to_dataframe,
)
from clv_cohorts.pandas.rfm import (
    dataframe_to_transactions,
    rfm_to_dataframe,
    segments_to_dataframe,
)

logger = logging.getLogger(__name__)


def _iso_date(value: str) -> date:
    try:
        return date.fromisoformat(value)
    except ValueError:
        raise argparse.ArgumentTypeError(
            f"Invalid date {value!r}; expected ISO format YYYY-MM-DD"
        )


def _add_common_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--config",
        type=Path,
        help="Optional JSON config file; command line flags override its values.",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging verbosity (default: INFO)",
    )


def _setup(args: argparse.Namespace) -> PipelineConfig:
    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    return load_config(args.config) if args.config else PipelineConfig()


def rfm_segments_cli(argv: list[str] | None = None) -> int:
    """Score customers with RFM and export the per-customer segment table.

    The command:
    1. Loads invoice line items (CSV, JSON records or Parquet)
    2. Aggregates recency, frequency and monetary value per customer within
       the analysis window
    3. Derives quartile thresholds and scores each dimension 1-4
    4. Labels customers with a segment and exports the table to CSV

    Args:
        argv: Command line arguments (defaults to sys.argv)

    Returns:
        Exit code (0 for success, 1 when no usable transactions are found or
        the settings are invalid)
    """
    parser = argparse.ArgumentParser(
        description="Score customers with RFM and assign segments"
    )
    parser.add_argument(
        "input", type=Path, help="Path to invoice line items (.csv, .json or .parquet)"
    )
    parser.add_argument(
        "--window-start",
        type=_iso_date,
        help="First day of the analysis window (YYYY-MM-DD). Defaults to first invoice date.",
    )
    parser.add_argument(
        "--window-end",
        type=_iso_date,
        help="Last day of the analysis window (YYYY-MM-DD). Defaults to last invoice date.",
    )
    parser.add_argument(
        "--quantile-method",
        choices=[item.value for item in QuantileMethod],
        help="Percentile method for the quartile thresholds (default: linear)",
    )
    parser.add_argument(
        "--output",
        type=Path,
        default=Path("rfm_segments.csv"),
        help="Path for the per-customer CSV (default: rfm_segments.csv)",
    )
    parser.add_argument(
        "--segments-output",
        type=Path,
        help="Optional path for a CSV with customer counts per segment",
    )
    parser.add_argument(
        "--summary-output",
        type=Path,
        help="Optional path for a JSON run summary with thresholds and segments",
    )
    _add_common_arguments(parser)

    args = parser.parse_args(argv)
    try:
        config = override(
            _setup(args).rfm,
            window_start=args.window_start,
            window_end=args.window_end,
            quantile_method=QuantileMethod(args.quantile_method) if args.quantile_method else None,
        )
    except ValueError as exc:
        logger.error(f"Invalid RFM configuration: {exc}")
        return 1

    logger.info(f"Loading transactions from {args.input}")
    transactions = dataframe_to_transactions(load_frame(args.input))
    if not transactions:
        logger.error("No transactions found in input file")
        return 1

    invoice_dates = [t.invoice_ts.date() for t in transactions]
    window_start = config.window_start or min(invoice_dates)
    window_end = config.window_end or max(invoice_dates)
    logger.info(
        f"Analysis window {window_start.isoformat()} to {window_end.isoformat()}"
    )

    if window_start > window_end:
        logger.error(
            f"Analysis window is empty: start {window_start.isoformat()} is after "
            f"end {window_end.isoformat()}"
        )
        return 1

    rfm_metrics = calculate_rfm(transactions, window_start, window_end)
    if not rfm_metrics:
        logger.error(
            "No identified customers with purchases in the analysis window; "
            "cannot derive RFM thresholds"
        )
        return 1

    thresholds = calculate_quantile_thresholds(rfm_metrics, config.quantile_method)
    rfm_scores = calculate_rfm_scores(rfm_metrics, thresholds)
    export_table_csv(rfm_to_dataframe(rfm_metrics, rfm_scores), args.output)

    summaries = summarize_segments(rfm_scores, rfm_metrics)
    for summary in summaries:
        logger.info(
            f"Segment {summary.segment}: {summary.customers} customers "
            f"({float(summary.customer_share):.1%})"
        )
    if args.segments_output:
        export_table_csv(segments_to_dataframe(summaries), args.segments_output)
    if args.summary_output:
        export_run_summary_json(
            args.summary_output,
            thresholds=thresholds,
            segments=summaries,
            metadata={
                "command": "rfm",
                "input": str(args.input),
                "window_start": window_start.isoformat(),
                "window_end": window_end.isoformat(),
                "customers": len(rfm_metrics),
            },
        )

    return 0


def cohort_revenue_cli(argv: list[str] | None = None) -> int:
    """Build weekly cohort revenue tables and project them to the horizon.

    Writes three CSV files to ``--output-dir``: average revenue per
    registered user per week, its running cumulative sum, and the
    cumulative curve projected to the horizon for young cohorts.

    Args:
        argv: Command line arguments (defaults to sys.argv)

    Returns:
        Exit code (0 for success, 1 when no cohort can be formed or the
        settings are invalid)
    """
    parser = argparse.ArgumentParser(
        description="Weekly revenue per registered user by registration-week cohort"
    )
    parser.add_argument(
        "input", type=Path, help="Path to visit/purchase events (.csv, .json or .parquet)"
    )
    parser.add_argument(
        "--cutoff-date",
        type=_iso_date,
        help="Last allowed registration date (YYYY-MM-DD); later cohorts are excluded.",
    )
    parser.add_argument(
        "--observation-end",
        type=_iso_date,
        help="Last day covered by the data (YYYY-MM-DD). Defaults to the latest event.",
    )
    parser.add_argument(
        "--horizon-weeks",
        type=int,
        help="Last week offset tracked and projected (default: 12)",
    )
    parser.add_argument(
        "--week-start",
        choices=[item.value for item in WeekStart],
        help="First day of the week used for bucketing (default: sunday)",
    )
    parser.add_argument(
        "--strategy",
        choices=list(STRATEGY_NAMES),
        help="Growth strategy for projecting young cohorts (default: average)",
    )
    parser.add_argument(
        "--output-dir",
        type=Path,
        default=Path("cohort_output"),
        help="Directory for the cohort CSV tables (default: cohort_output)",
    )
    parser.add_argument(
        "--summary-output",
        type=Path,
        help="Optional path for a JSON run summary with projection statuses",
    )
    _add_common_arguments(parser)

    args = parser.parse_args(argv)
    try:
        config = override(
            _setup(args).cohorts,
            cutoff_date=args.cutoff_date,
            observation_end=args.observation_end,
            horizon_weeks=args.horizon_weeks,
            week_start=WeekStart(args.week_start) if args.week_start else None,
            strategy=args.strategy,
        )
    except ValueError as exc:
        logger.error(f"Invalid cohort configuration: {exc}")
        return 1

    logger.info(f"Loading events from {args.input}")
    visits = dataframe_to_visits(load_frame(args.input))
    if not visits:
        logger.error("No events with a user_id found in input file")
        return 1

    assignments = assign_registration_weeks(visits, config.cutoff_date, config.week_start)
    if not assignments:
        logger.error("No users registered on or before the cutoff date")
        return 1

    rows = calculate_cohort_revenue(
        visits,
        assignments,
        horizon_weeks=config.horizon_weeks,
        observation_end=config.observation_end,
        week_starts_on=config.week_start,
    )
    if not rows:
        logger.error("No users registered on or before the observation end")
        return 1

    curves = build_revenue_curves(rows)
    projections = project_cumulative_revenue(
        curves,
        strategy=resolve_strategy(config.strategy, curves),
        horizon_weeks=config.horizon_weeks,
    )

    export_cohort_tables(
        {
            "weekly": cohort_revenue_to_dataframe(rows, config.horizon_weeks),
            "cumulative": cumulative_revenue_to_dataframe(curves, config.horizon_weeks),
            "projected": projections_to_dataframe(projections, config.horizon_weeks),
        },
        args.output_dir,
    )
    if args.summary_output:
        export_run_summary_json(
            args.summary_output,
            projections=projections,
            metadata={
                "command": "cohorts",
                "input": str(args.input),
                "cutoff_date": config.cutoff_date.isoformat() if config.cutoff_date else None,
                "horizon_weeks": config.horizon_weeks,
                "week_start": config.week_start.value,
                "strategy": config.strategy,
                "users": sum(curve.cohort_size for curve in curves),
            },
        )

    logger.info(
        f"Exported cohort tables for {len(curves)} cohorts to {args.output_dir}"
    )
    return 0


def main_rfm() -> None:
    raise SystemExit(rfm_segments_cli())


def main_cohorts() -> None:
    raise SystemExit(cohort_revenue_cli())


if __name__ == "__main__":  # pragma: no cover
    main_rfm()
