"""Pandas DataFrame adapters for RFM segmentation."""

from typing import List, Optional, Sequence
from datetime import date, datetime
import pandas as pd  # type: ignore

from clv_cohorts.foundation.events import EventContract, TransactionEvent
from clv_cohorts.foundation.rfm import (
    QuantileMethod,
    RFMMetrics,
    RFMScore,
    calculate_rfm,
    calculate_rfm_scores,
)
from clv_cohorts.foundation.segments import SegmentSummary
from clv_cohorts.foundation.sources import TRANSACTION_COLUMNS
from ._utils import decimal_to_float, rename_columns

#: Column order of the per-customer output table.
RFM_OUTPUT_COLUMNS = [
    "customer_id",
    "country",
    "recency",
    "frequency",
    "monetary",
    "r_score",
    "f_score",
    "m_score",
    "rfm_score",
    "segment",
]


def dataframe_to_transactions(
    transactions_df: pd.DataFrame,
    customer_id_col: str = "customer_id",
    invoice_id_col: str = "invoice_id",
    invoice_ts_col: str = "invoice_ts",
    unit_price_col: str = "unit_price",
    quantity_col: str = "quantity",
    country_col: str = "country",
    description_col: str = "description",
) -> List[TransactionEvent]:
    """Convert a line-item DataFrame to TransactionEvent list.

    Args:
        transactions_df: DataFrame with one row per invoice line
        *_col: Column name mappings for flexibility

    Returns:
        List of TransactionEvent objects. Rows with missing customer_id or
        description are kept (as None) so the RFM engine can filter them.

    Raises:
        ValueError: If DataFrame missing required columns or has unparsable values

    Example with Online Retail column names:
        >>> events = dataframe_to_transactions(
        ...     df,
        ...     customer_id_col='CustomerID',
        ...     invoice_id_col='InvoiceNo',
        ...     invoice_ts_col='InvoiceDate',
        ...     unit_price_col='UnitPrice',
        ...     quantity_col='Quantity',
        ...     country_col='Country',
        ...     description_col='Description',
        ... )
    """
    frame = rename_columns(
        transactions_df,
        dict(
            zip(
                TRANSACTION_COLUMNS,
                (
                    customer_id_col,
                    invoice_id_col,
                    invoice_ts_col,
                    unit_price_col,
                    quantity_col,
                    country_col,
                    description_col,
                ),
            )
        ),
    )
    if frame.empty:
        return []

    frame = frame.copy()
    frame["invoice_ts"] = pd.to_datetime(frame["invoice_ts"])
    return EventContract().validate_transactions(frame.to_dict("records"))


def rfm_to_dataframe(
    rfm_metrics: Sequence[RFMMetrics],
    rfm_scores: Optional[Sequence[RFMScore]] = None,
) -> pd.DataFrame:
    """Build the per-customer RFM output table.

    Args:
        rfm_metrics: Sequence of RFMMetrics objects
        rfm_scores: Optional scores; when omitted the score and segment
            columns are left out

    Returns:
        DataFrame with columns customer_id, country, recency, frequency,
        monetary and (with scores) r_score, f_score, m_score, rfm_score,
        segment; sorted by customer_id

    Raises:
        ValueError: If a metric has no matching score
    """
    columns = RFM_OUTPUT_COLUMNS if rfm_scores is not None else RFM_OUTPUT_COLUMNS[:5]
    if not rfm_metrics:
        return pd.DataFrame(columns=columns)

    scores_by_customer = {s.customer_id: s for s in rfm_scores or []}
    rows = []
    for m in rfm_metrics:
        row = {
            "customer_id": m.customer_id,
            "country": m.country,
            "recency": m.recency_days,
            "frequency": m.frequency,
            "monetary": decimal_to_float(m.monetary),
        }
        if rfm_scores is not None:
            score = scores_by_customer.get(m.customer_id)
            if score is None:
                raise ValueError(f"No RFM score for customer_id={m.customer_id}")
            row.update(
                r_score=score.r_score,
                f_score=score.f_score,
                m_score=score.m_score,
                rfm_score=score.rfm_score,
                segment=score.segment,
            )
        rows.append(row)

    df = pd.DataFrame(rows, columns=columns)
    df = df.sort_values("customer_id").reset_index(drop=True)
    return df


def segments_to_dataframe(summaries: Sequence[SegmentSummary]) -> pd.DataFrame:
    """Convert segment summaries to a DataFrame in rule priority order."""
    columns = ["segment", "customers", "customer_share", "total_monetary", "avg_monetary"]
    rows = [
        {
            "segment": s.segment,
            "customers": s.customers,
            "customer_share": decimal_to_float(s.customer_share, places=4),
            "total_monetary": decimal_to_float(s.total_monetary),
            "avg_monetary": decimal_to_float(s.avg_monetary),
        }
        for s in summaries
    ]
    return pd.DataFrame(rows, columns=columns)


def calculate_rfm_df(
    transactions_df: pd.DataFrame,
    window_start: date | datetime,
    window_end: date | datetime,
    method: QuantileMethod = QuantileMethod.LINEAR,
    **column_mapping: str,
) -> pd.DataFrame:
    """Score customers straight from a line-item DataFrame.

    Convenience function that combines conversion, RFM aggregation,
    quantile scoring and segmentation.

    Args:
        transactions_df: DataFrame with one row per invoice line
        window_start: First day of the analysis window
        window_end: Last day of the analysis window
        method: Percentile method for the quartile thresholds
        **column_mapping: *_col overrides forwarded to dataframe_to_transactions

    Returns:
        Per-customer RFM output table

    Raises:
        EmptyDatasetError: If no customer survives the filters
    """
    transactions = dataframe_to_transactions(transactions_df, **column_mapping)
    rfm_metrics = calculate_rfm(transactions, window_start, window_end)
    rfm_scores = calculate_rfm_scores(rfm_metrics, method=method)
    return rfm_to_dataframe(rfm_metrics, rfm_scores)
