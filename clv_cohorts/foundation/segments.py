"""Rule-based RFM segment labelling.

Segments are assigned by walking an ordered list of rules over the
(r_score, f_score, m_score) triple; the first rule that matches wins. The
rules overlap on purpose (a 4/4/4 customer also satisfies the "Potential
Loyalists" rule), so their order is part of the definition.
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from enum import Enum
from typing import TYPE_CHECKING, Callable, Sequence

if TYPE_CHECKING:  # pragma: no cover
    from clv_cohorts.foundation.rfm import RFMMetrics, RFMScore


class Segment(str, Enum):
    """Default segment labels."""

    CHAMPIONS = "Champions"
    LOYAL_CUSTOMERS = "Loyal Customers"
    POTENTIAL_LOYALISTS = "Potential Loyalists"
    RECENT_CUSTOMERS = "Recent Customers"
    PROMISING = "Promising"
    NEEDING_ATTENTION = "Customers Needing Attention"
    AT_RISK = "At Risk"
    OTHER = "Other"


@dataclass(frozen=True)
class SegmentRule:
    """A labelled predicate over (r_score, f_score, m_score)."""

    segment: str
    predicate: Callable[[int, int, int], bool]

    def matches(self, r_score: int, f_score: int, m_score: int) -> bool:
        return self.predicate(r_score, f_score, m_score)


DEFAULT_SEGMENT_RULES: tuple[SegmentRule, ...] = (
    SegmentRule(Segment.CHAMPIONS.value, lambda r, f, m: r == 4 and f == 4 and m == 4),
    SegmentRule(
        Segment.LOYAL_CUSTOMERS.value, lambda r, f, m: r == 4 and f >= 3 and m >= 3
    ),
    SegmentRule(
        Segment.POTENTIAL_LOYALISTS.value, lambda r, f, m: r >= 3 and f >= 2 and m >= 2
    ),
    SegmentRule(Segment.RECENT_CUSTOMERS.value, lambda r, f, m: r == 4 and f == 1),
    SegmentRule(Segment.PROMISING.value, lambda r, f, m: r == 3 and f == 1),
    SegmentRule(Segment.NEEDING_ATTENTION.value, lambda r, f, m: r <= 2 and f >= 3),
    SegmentRule(Segment.AT_RISK.value, lambda r, f, m: r == 1 and f >= 1),
)


def assign_segment(
    r_score: int,
    f_score: int,
    m_score: int,
    rules: Sequence[SegmentRule] = DEFAULT_SEGMENT_RULES,
    default: str = Segment.OTHER.value,
) -> str:
    """Return the label of the first rule matching the scores.

    Examples
    --------
    >>> assign_segment(4, 4, 4)
    'Champions'
    >>> assign_segment(4, 1, 4)
    'Recent Customers'
    >>> assign_segment(2, 1, 1)
    'Other'
    """
    for name, value in (("r_score", r_score), ("f_score", f_score), ("m_score", m_score)):
        if not 1 <= value <= 4:
            raise ValueError(f"{name} must be between 1 and 4: {value}")
    for rule in rules:
        if rule.matches(r_score, f_score, m_score):
            return rule.segment
    return default


@dataclass(frozen=True)
class SegmentSummary:
    """Aggregate view of one segment.

    Attributes
    ----------
    segment:
        Segment label.
    customers:
        Number of customers carrying the label.
    customer_share:
        Fraction of all scored customers, rounded to 4 places.
    total_monetary:
        Sum of the customers' monetary totals.
    avg_monetary:
        Mean monetary total per customer in the segment.
    """

    segment: str
    customers: int
    customer_share: Decimal
    total_monetary: Decimal
    avg_monetary: Decimal


def summarize_segments(
    scores: Sequence["RFMScore"],
    metrics: Sequence["RFMMetrics"],
    rules: Sequence[SegmentRule] = DEFAULT_SEGMENT_RULES,
) -> list[SegmentSummary]:
    """Count customers and spend per segment, in rule priority order.

    Segments without customers are omitted. Labels not produced by
    ``rules`` (and not "Other") are appended in alphabetical order.
    """
    if not scores:
        return []

    monetary_by_customer = {m.customer_id: m.monetary for m in metrics}
    missing = [s.customer_id for s in scores if s.customer_id not in monetary_by_customer]
    if missing:
        raise ValueError(
            f"{len(missing)} scored customers have no RFM metrics. First 5: {missing[:5]}"
        )

    counts = Counter(s.segment for s in scores)
    totals: dict[str, Decimal] = {}
    for score in scores:
        totals[score.segment] = (
            totals.get(score.segment, Decimal("0")) + monetary_by_customer[score.customer_id]
        )

    order = [rule.segment for rule in rules] + [Segment.OTHER.value]
    order += sorted(label for label in counts if label not in order)
    order = list(dict.fromkeys(order))

    total_customers = len(scores)
    summaries: list[SegmentSummary] = []
    for label in order:
        count = counts.get(label, 0)
        if count == 0:
            continue
        total = totals[label]
        summaries.append(
            SegmentSummary(
                segment=label,
                customers=count,
                customer_share=(Decimal(count) / Decimal(total_customers)).quantize(
                    Decimal("0.0001"), rounding=ROUND_HALF_UP
                ),
                total_monetary=total,
                avg_monetary=(total / count).quantize(
                    Decimal("0.01"), rounding=ROUND_HALF_UP
                ),
            )
        )
    return summaries
