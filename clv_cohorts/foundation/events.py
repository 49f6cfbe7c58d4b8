"""Event contracts for the transaction and visit streams.

Both pipelines read plain records (dicts, DataFrame rows, database rows)
from an upstream store. The contract classes in this module turn those
records into typed, immutable events so the engines never deal with raw
strings or floats for money.

Transaction events keep ``customer_id`` and ``description`` optional: the
RFM engine is the one that decides to drop anonymous or undescribed lines,
so that every filter it applies is visible in one place.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Iterable, Mapping, Optional

import pandas as pd

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TransactionEvent:
    """A single invoice line item.

    Attributes
    ----------
    customer_id:
        Customer identifier, ``None`` for guest/anonymous purchases.
    invoice_id:
        Invoice (order) identifier. Several lines share an invoice.
    invoice_ts:
        Timestamp of the invoice.
    unit_price:
        Price per unit.
    quantity:
        Units on the line. Negative quantities represent returns and net
        against the customer's spend.
    country:
        Country of the customer at the time of the invoice.
    description:
        Product description, ``None`` when the source left it empty.
    """

    customer_id: Optional[str]
    invoice_id: str
    invoice_ts: datetime
    unit_price: Decimal
    quantity: int
    country: Optional[str] = None
    description: Optional[str] = None

    def __post_init__(self) -> None:
        if not isinstance(self.invoice_ts, datetime):
            raise TypeError(
                f"invoice_ts must be a datetime, got {type(self.invoice_ts).__name__} "
                f"(invoice_id={self.invoice_id})"
            )
        if self.unit_price < 0:
            raise ValueError(
                f"Unit price cannot be negative: {self.unit_price} (invoice_id={self.invoice_id})"
            )

    @property
    def line_total(self) -> Decimal:
        return self.unit_price * self.quantity

    @property
    def is_identified(self) -> bool:
        """True when both customer_id and description are populated."""
        return bool(self.customer_id) and bool(self.description)


@dataclass(frozen=True)
class VisitEvent:
    """A behavioural event (visit or purchase) for a registered user.

    Attributes
    ----------
    user_id:
        Pseudonymous user identifier.
    event_ts:
        Timestamp of the event.
    purchase_revenue:
        Revenue attached to the event; ``Decimal("0")`` for plain visits.
    """

    user_id: str
    event_ts: datetime
    purchase_revenue: Decimal = Decimal("0")

    def __post_init__(self) -> None:
        if not self.user_id:
            raise ValueError("user_id cannot be empty")
        if not isinstance(self.event_ts, datetime):
            raise TypeError(
                f"event_ts must be a datetime, got {type(self.event_ts).__name__} "
                f"(user_id={self.user_id})"
            )
        if self.purchase_revenue < 0:
            raise ValueError(
                f"purchase_revenue cannot be negative: {self.purchase_revenue} "
                f"(user_id={self.user_id})"
            )


def _is_missing(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (list, tuple, dict, set)):
        return False
    # Catches float NaN as well as pandas NaT/NA coming from DataFrame rows
    return bool(pd.isna(value))


def _optional_str(value: Any) -> Optional[str]:
    if _is_missing(value):
        return None
    if isinstance(value, float) and value.is_integer():
        # Identifiers read through pandas often arrive as 17850.0
        return str(int(value))
    return str(value).strip()


def _to_decimal(value: Any, field_name: str, idx: int) -> Decimal:
    if _is_missing(value):
        return Decimal("0")
    try:
        return Decimal(str(value))
    except InvalidOperation as exc:
        raise ValueError(
            f"{field_name} is not numeric", {"record_index": idx, "value": value}
        ) from exc


def _to_datetime(value: Any, field_name: str, idx: int) -> datetime:
    if isinstance(value, pd.Timestamp):
        return value.to_pydatetime()
    if isinstance(value, datetime):
        return value
    if isinstance(value, str) and value.strip():
        try:
            return datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
        except ValueError as exc:
            raise ValueError(
                f"{field_name} is not an ISO-8601 timestamp",
                {"record_index": idx, "value": value},
            ) from exc
    raise TypeError(
        f"{field_name} must be a datetime or ISO-8601 string",
        {"record_index": idx, "value": value},
    )


class EventContract:
    """Validate raw records and return typed events."""

    #: Fields that must be present on every transaction record.
    TRANSACTION_FIELDS = {"invoice_id", "invoice_ts", "unit_price", "quantity"}

    def validate_transactions(
        self, records: Iterable[Mapping[str, Any]]
    ) -> list[TransactionEvent]:
        """Convert raw transaction records into :class:`TransactionEvent`.

        Records may omit ``customer_id``, ``country`` and ``description``;
        they are kept with ``None`` values and filtered later by the RFM
        engine. Structural problems (missing invoice fields, unparsable
        timestamps or numbers) raise.
        """
        events: list[TransactionEvent] = []
        for idx, record in enumerate(records):
            missing = [
                name for name in self.TRANSACTION_FIELDS if _is_missing(record.get(name))
            ]
            if missing:
                raise ValueError(
                    "Transaction record missing required fields",
                    {"missing_fields": sorted(missing), "record_index": idx},
                )
            try:
                quantity = int(record["quantity"])
            except (TypeError, ValueError) as exc:
                raise ValueError(
                    "quantity must be an integer",
                    {"record_index": idx, "value": record["quantity"]},
                ) from exc

            events.append(
                TransactionEvent(
                    customer_id=_optional_str(record.get("customer_id")),
                    invoice_id=_optional_str(record["invoice_id"]) or "",
                    invoice_ts=_to_datetime(record["invoice_ts"], "invoice_ts", idx),
                    unit_price=_to_decimal(record["unit_price"], "unit_price", idx),
                    quantity=quantity,
                    country=_optional_str(record.get("country")),
                    description=_optional_str(record.get("description")),
                )
            )
        return events

    def validate_visits(self, records: Iterable[Mapping[str, Any]]) -> list[VisitEvent]:
        """Convert raw visit records into :class:`VisitEvent`.

        Records without a ``user_id`` belong to anonymous sessions that can
        never join a cohort; they are skipped and counted in the log.
        """
        events: list[VisitEvent] = []
        anonymous = 0
        for idx, record in enumerate(records):
            if _is_missing(record.get("user_id")):
                anonymous += 1
                continue
            if _is_missing(record.get("event_ts")):
                raise ValueError(
                    "Visit record missing required fields",
                    {"missing_fields": ["event_ts"], "record_index": idx},
                )
            events.append(
                VisitEvent(
                    user_id=_optional_str(record["user_id"]) or "",
                    event_ts=_to_datetime(record["event_ts"], "event_ts", idx),
                    purchase_revenue=_to_decimal(
                        record.get("purchase_revenue"), "purchase_revenue", idx
                    ),
                )
            )
        if anonymous:
            logger.info(f"Skipped {anonymous} visit records without user_id")
        return events
