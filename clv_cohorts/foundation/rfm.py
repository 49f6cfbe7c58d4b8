"""RFM (Recency-Frequency-Monetary) calculation and scoring.

RFM analysis segments customers on three dimensions:
- Recency: How recently did the customer make a purchase?
- Frequency: How many distinct invoices did they place?
- Monetary: How much did they spend in total?

The pipeline is: filter invoice lines to an analysis window → aggregate one
:class:`RFMMetrics` per customer → derive run-wide quartile thresholds →
score each dimension 1-4 → label the score with a segment.

Quartile thresholds depend on the percentile method, so the method is an
explicit :class:`QuantileMethod` carried on the thresholds themselves. Two
runs over the same input with the same method produce identical scores.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from decimal import Decimal, ROUND_HALF_UP
from enum import Enum
from typing import Sequence, Union

import pandas as pd  # Used for percentile interpolation

from clv_cohorts.foundation.events import TransactionEvent
from clv_cohorts.foundation.segments import (
    DEFAULT_SEGMENT_RULES,
    SegmentRule,
    assign_segment,
)

logger = logging.getLogger(__name__)

Number = Union[int, Decimal]


class EmptyDatasetError(ValueError):
    """Raised when a calculation needs at least one record and got none."""


@dataclass(frozen=True)
class RFMMetrics:
    """RFM metrics for a single customer.

    Attributes
    ----------
    customer_id:
        Unique customer identifier
    country:
        Country of the customer's most recent invoice line
    recency_days:
        Days from the customer's last invoice date to the run's reference
        date (last invoice date in the window + 1 day)
    frequency:
        Number of distinct invoices in the window
    monetary:
        Total spend (sum of unit_price × quantity) in the window
    last_invoice_ts:
        Timestamp of the customer's most recent invoice
    """

    customer_id: str
    country: str | None
    recency_days: int
    frequency: int
    monetary: Decimal
    last_invoice_ts: datetime

    def __post_init__(self) -> None:
        """Validate RFM metrics."""
        if not self.customer_id:
            raise ValueError("customer_id cannot be empty")
        if self.recency_days < 0:
            raise ValueError(
                f"Recency cannot be negative: {self.recency_days} (customer_id={self.customer_id})"
            )
        if self.frequency <= 0:
            raise ValueError(
                f"Frequency must be positive: {self.frequency} (customer_id={self.customer_id})"
            )


def _as_date(value: date | datetime) -> date:
    return value.date() if isinstance(value, datetime) else value


def calculate_rfm(
    transactions: Sequence[TransactionEvent],
    window_start: date | datetime,
    window_end: date | datetime,
) -> list[RFMMetrics]:
    """Aggregate invoice lines into one RFM record per customer.

    Lines are kept when the customer_id and description are populated and
    the invoice date lies in ``[window_start, window_end]`` (both inclusive,
    compared on calendar dates). Everything else is dropped silently; the
    number of dropped lines is logged.

    The reference date for recency is the latest invoice date among the
    kept lines plus one day, shared by every customer in the run.

    Parameters
    ----------
    transactions:
        Invoice line items.
    window_start:
        First day of the analysis window.
    window_end:
        Last day of the analysis window.

    Returns
    -------
    list[RFMMetrics]
        One record per customer, sorted by customer_id. Empty when no line
        survives the filters.

    Examples
    --------
    >>> from decimal import Decimal
    >>> lines = [
    ...     TransactionEvent("C1", "INV1", datetime(2011, 1, 3), Decimal("2.50"), 4, "UK", "MUG"),
    ...     TransactionEvent("C1", "INV1", datetime(2011, 1, 3), Decimal("1.00"), 1, "UK", "BAG"),
    ...     TransactionEvent("C2", "INV2", datetime(2011, 1, 9), Decimal("5.00"), 2, "FR", "LAMP"),
    ... ]
    >>> rfm = calculate_rfm(lines, date(2011, 1, 1), date(2011, 1, 31))
    >>> [(m.customer_id, m.recency_days, m.frequency, m.monetary) for m in rfm]
    [('C1', 7, 1, Decimal('11.00')), ('C2', 1, 1, Decimal('10.00'))]
    """
    start = _as_date(window_start)
    end = _as_date(window_end)
    if start > end:
        raise ValueError(
            f"window_start must not be after window_end: "
            f"start={start.isoformat()}, end={end.isoformat()}"
        )

    kept: list[TransactionEvent] = []
    unidentified = 0
    outside_window = 0
    for line in transactions:
        if not line.is_identified:
            unidentified += 1
            continue
        if not start <= line.invoice_ts.date() <= end:
            outside_window += 1
            continue
        kept.append(line)

    if unidentified or outside_window:
        logger.info(
            f"RFM input filtered: {unidentified} lines without customer or description, "
            f"{outside_window} lines outside {start.isoformat()}..{end.isoformat()}; "
            f"{len(kept)} lines kept"
        )
    if not kept:
        return []

    reference_date = max(line.invoice_ts.date() for line in kept) + timedelta(days=1)

    customer_data: dict[str, dict] = {}
    for line in kept:
        data = customer_data.setdefault(
            line.customer_id,
            {
                "last_invoice_ts": line.invoice_ts,
                "country": line.country,
                "invoices": set(),
                "monetary": Decimal("0"),
            },
        )
        # Most recent line decides the country; ties go to the greatest
        # country string so the result does not depend on input order.
        if line.invoice_ts > data["last_invoice_ts"]:
            data["last_invoice_ts"] = line.invoice_ts
            data["country"] = line.country
        elif line.invoice_ts == data["last_invoice_ts"] and (line.country or "") > (
            data["country"] or ""
        ):
            data["country"] = line.country
        data["invoices"].add(line.invoice_id)
        data["monetary"] += line.line_total

    rfm_metrics: list[RFMMetrics] = []
    for customer_id, data in customer_data.items():
        rfm_metrics.append(
            RFMMetrics(
                customer_id=customer_id,
                country=data["country"],
                recency_days=(reference_date - data["last_invoice_ts"].date()).days,
                frequency=len(data["invoices"]),
                monetary=data["monetary"].quantize(
                    Decimal("0.01"), rounding=ROUND_HALF_UP
                ),
                last_invoice_ts=data["last_invoice_ts"],
            )
        )

    rfm_metrics.sort(key=lambda m: m.customer_id)
    logger.debug(
        f"Calculated RFM for {len(rfm_metrics)} customers "
        f"(reference date {reference_date.isoformat()})"
    )
    return rfm_metrics


class QuantileMethod(str, Enum):
    """Percentile interpolation used for the quartile thresholds.

    The values are the ``interpolation`` argument of
    :meth:`pandas.Series.quantile` (numpy ``method``). ``LINEAR`` is the
    exact type-7 estimator and the default. ``LOWER``/``HIGHER``/``NEAREST``
    always return an observed value, which is what warehouse
    ``APPROX_QUANTILES`` functions approximate.
    """

    LINEAR = "linear"
    LOWER = "lower"
    HIGHER = "higher"
    NEAREST = "nearest"
    MIDPOINT = "midpoint"


@dataclass(frozen=True)
class QuantileThresholds:
    """Run-wide 25th/50th/75th percentiles of each RFM dimension.

    Attributes
    ----------
    m25, m50, m75:
        Monetary quartiles.
    f25, f50, f75:
        Frequency quartiles.
    r25, r50, r75:
        Recency quartiles.
    method:
        Percentile method the thresholds were computed with.
    """

    m25: Decimal
    m50: Decimal
    m75: Decimal
    f25: Decimal
    f50: Decimal
    f75: Decimal
    r25: Decimal
    r50: Decimal
    r75: Decimal
    method: QuantileMethod = QuantileMethod.LINEAR

    def __post_init__(self) -> None:
        for name, triple in (
            ("monetary", (self.m25, self.m50, self.m75)),
            ("frequency", (self.f25, self.f50, self.f75)),
            ("recency", (self.r25, self.r50, self.r75)),
        ):
            if not triple[0] <= triple[1] <= triple[2]:
                raise ValueError(
                    f"{name} quartiles must be non-decreasing: {[str(v) for v in triple]}"
                )

    def as_dict(self) -> dict[str, object]:
        return {
            "m25": float(self.m25),
            "m50": float(self.m50),
            "m75": float(self.m75),
            "f25": float(self.f25),
            "f50": float(self.f50),
            "f75": float(self.f75),
            "r25": float(self.r25),
            "r50": float(self.r50),
            "r75": float(self.r75),
            "method": self.method.value,
        }


def _quartiles(values: Sequence[Number], method: QuantileMethod) -> tuple[Decimal, ...]:
    series = pd.Series([float(v) for v in values], dtype="float64")
    result = series.quantile([0.25, 0.5, 0.75], interpolation=method.value)
    # repr() gives the shortest round-tripping string, so a threshold equal
    # to an observed Decimal compares equal to it.
    return tuple(Decimal(repr(float(q))) for q in result.tolist())


def calculate_quantile_thresholds(
    rfm_metrics: Sequence[RFMMetrics],
    method: QuantileMethod = QuantileMethod.LINEAR,
) -> QuantileThresholds:
    """Compute quartile thresholds over all RFM records of a run.

    Raises
    ------
    EmptyDatasetError
        If ``rfm_metrics`` is empty; percentiles of nothing are undefined.
    """
    if not rfm_metrics:
        raise EmptyDatasetError(
            "Cannot compute RFM quantile thresholds: no data (0 customers)"
        )
    method = QuantileMethod(method)

    m25, m50, m75 = _quartiles([m.monetary for m in rfm_metrics], method)
    f25, f50, f75 = _quartiles([m.frequency for m in rfm_metrics], method)
    r25, r50, r75 = _quartiles([m.recency_days for m in rfm_metrics], method)
    thresholds = QuantileThresholds(
        m25=m25,
        m50=m50,
        m75=m75,
        f25=f25,
        f50=f50,
        f75=f75,
        r25=r25,
        r50=r50,
        r75=r75,
        method=method,
    )
    logger.info(f"RFM thresholds ({method.value}): {thresholds.as_dict()}")
    return thresholds


def score_value(
    value: Number,
    q25: Number,
    q50: Number,
    q75: Number,
    higher_is_better: bool = True,
) -> int:
    """Place ``value`` into a quartile bucket and return its 1-4 score.

    Bucket boundaries are inclusive upper bounds: a value equal to a
    threshold lands in the bucket below it. With ``higher_is_better=False``
    (recency) the score is inverted so the smallest values score 4.

    Examples
    --------
    >>> score_value(10, 10, 20, 30)
    1
    >>> score_value(31, 10, 20, 30)
    4
    >>> score_value(5, 7, 14, 30, higher_is_better=False)
    4
    """
    if value <= q25:
        bucket = 1
    elif value <= q50:
        bucket = 2
    elif value <= q75:
        bucket = 3
    else:
        bucket = 4
    return bucket if higher_is_better else 5 - bucket


@dataclass(frozen=True)
class RFMScore:
    """RFM scores (1-4 quartiles) and segment for a single customer.

    Attributes
    ----------
    customer_id:
        Unique customer identifier
    r_score:
        Recency score (1-4, where 4 = most recent)
    f_score:
        Frequency score (1-4, where 4 = most frequent)
    m_score:
        Monetary score (1-4, where 4 = highest spend)
    rfm_score:
        Combined score r*100 + f*10 + m (e.g. 444 for best customers)
    segment:
        Label of the first matching segment rule
    """

    customer_id: str
    r_score: int
    f_score: int
    m_score: int
    rfm_score: int
    segment: str

    def __post_init__(self) -> None:
        """Validate RFM scores."""
        for score_name, score_value_ in [
            ("r_score", self.r_score),
            ("f_score", self.f_score),
            ("m_score", self.m_score),
        ]:
            if not 1 <= score_value_ <= 4:
                raise ValueError(
                    f"{score_name} must be between 1 and 4: {score_value_} (customer_id={self.customer_id})"
                )
        expected = self.r_score * 100 + self.f_score * 10 + self.m_score
        if self.rfm_score != expected:
            raise ValueError(
                f"rfm_score ({self.rfm_score}) does not match r/f/m scores ({expected}) (customer_id={self.customer_id})"
            )


def score_customer(
    metrics: RFMMetrics,
    thresholds: QuantileThresholds,
    rules: Sequence[SegmentRule] = DEFAULT_SEGMENT_RULES,
) -> RFMScore:
    """Score one customer against run-wide thresholds."""
    r_score = score_value(
        metrics.recency_days,
        thresholds.r25,
        thresholds.r50,
        thresholds.r75,
        higher_is_better=False,
    )
    f_score = score_value(
        metrics.frequency, thresholds.f25, thresholds.f50, thresholds.f75
    )
    m_score = score_value(
        metrics.monetary, thresholds.m25, thresholds.m50, thresholds.m75
    )
    return RFMScore(
        customer_id=metrics.customer_id,
        r_score=r_score,
        f_score=f_score,
        m_score=m_score,
        rfm_score=r_score * 100 + f_score * 10 + m_score,
        segment=assign_segment(r_score, f_score, m_score, rules),
    )


def calculate_rfm_scores(
    rfm_metrics: Sequence[RFMMetrics],
    thresholds: QuantileThresholds | None = None,
    method: QuantileMethod = QuantileMethod.LINEAR,
    rules: Sequence[SegmentRule] = DEFAULT_SEGMENT_RULES,
) -> list[RFMScore]:
    """Score every customer and attach a segment label.

    Parameters
    ----------
    rfm_metrics:
        RFM records of the run.
    thresholds:
        Pre-computed thresholds. When omitted they are derived from
        ``rfm_metrics`` with ``method``.
    method:
        Percentile method used when ``thresholds`` is omitted.
    rules:
        Ordered segment rules; first match wins.

    Returns
    -------
    list[RFMScore]
        Scores sorted by customer_id.

    Raises
    ------
    EmptyDatasetError
        If ``rfm_metrics`` is empty and no thresholds were supplied.
    """
    if thresholds is None:
        thresholds = calculate_quantile_thresholds(rfm_metrics, method)

    scores = [score_customer(m, thresholds, rules) for m in rfm_metrics]
    scores.sort(key=lambda s: s.customer_id)
    return scores
