"""Tests for the transaction and visit event contracts."""

from datetime import datetime, timezone
from decimal import Decimal

import pandas as pd
import pytest

from clv_cohorts.foundation.events import EventContract, TransactionEvent, VisitEvent


class TestTransactionEvent:
    """Test TransactionEvent validation and derived values."""

    def test_line_total(self):
        line = TransactionEvent(
            "C1", "INV1", datetime(2011, 1, 3), Decimal("2.55"), 6, "United Kingdom", "MUG"
        )
        assert line.line_total == Decimal("15.30")

    def test_return_line_has_negative_total(self):
        """Negative quantities represent returns."""
        line = TransactionEvent("C1", "C536379", datetime(2011, 1, 3), Decimal("2.00"), -3)
        assert line.line_total == Decimal("-6.00")

    def test_negative_unit_price_raises(self):
        with pytest.raises(ValueError, match="Unit price cannot be negative"):
            TransactionEvent("C1", "INV1", datetime(2011, 1, 3), Decimal("-1"), 1)

    def test_invoice_ts_must_be_datetime(self):
        with pytest.raises(TypeError, match="invoice_ts must be a datetime"):
            TransactionEvent("C1", "INV1", "2011-01-03", Decimal("1"), 1)

    @pytest.mark.parametrize(
        "customer_id, description, expected",
        [
            ("C1", "MUG", True),
            (None, "MUG", False),
            ("C1", None, False),
            ("", "MUG", False),
        ],
    )
    def test_is_identified(self, customer_id, description, expected):
        line = TransactionEvent(
            customer_id, "INV1", datetime(2011, 1, 3), Decimal("1"), 1, "UK", description
        )
        assert line.is_identified is expected


class TestVisitEvent:
    """Test VisitEvent validation."""

    def test_defaults_to_zero_revenue(self):
        event = VisitEvent("U1", datetime(2021, 1, 4))
        assert event.purchase_revenue == Decimal("0")

    def test_empty_user_id_raises(self):
        with pytest.raises(ValueError, match="user_id cannot be empty"):
            VisitEvent("", datetime(2021, 1, 4))

    def test_negative_revenue_raises(self):
        with pytest.raises(ValueError, match="purchase_revenue cannot be negative"):
            VisitEvent("U1", datetime(2021, 1, 4), Decimal("-5"))


class TestEventContractTransactions:
    """Test conversion of raw transaction records."""

    def test_converts_strings_and_floats(self):
        records = [
            {
                "customer_id": 17850.0,
                "invoice_id": 536365,
                "invoice_ts": "2010-12-01T08:26:00",
                "unit_price": 2.55,
                "quantity": "6",
                "country": "United Kingdom",
                "description": " WHITE HANGING HEART T-LIGHT HOLDER ",
            }
        ]
        (event,) = EventContract().validate_transactions(records)
        assert event.customer_id == "17850"
        assert event.invoice_id == "536365"
        assert event.invoice_ts == datetime(2010, 12, 1, 8, 26)
        assert event.unit_price == Decimal("2.55")
        assert event.quantity == 6
        assert event.description == "WHITE HANGING HEART T-LIGHT HOLDER"

    def test_missing_customer_and_description_are_kept_as_none(self):
        records = [
            {
                "customer_id": float("nan"),
                "invoice_id": "536414",
                "invoice_ts": pd.Timestamp("2010-12-01 11:52"),
                "unit_price": 0.0,
                "quantity": 56,
                "description": "",
            }
        ]
        (event,) = EventContract().validate_transactions(records)
        assert event.customer_id is None
        assert event.description is None
        assert event.country is None
        assert event.is_identified is False

    def test_utc_suffix_is_parsed(self):
        records = [
            {
                "customer_id": "C1",
                "invoice_id": "1",
                "invoice_ts": "2011-01-03T10:00:00Z",
                "unit_price": "1.00",
                "quantity": 1,
            }
        ]
        (event,) = EventContract().validate_transactions(records)
        assert event.invoice_ts == datetime(2011, 1, 3, 10, tzinfo=timezone.utc)

    def test_missing_required_field_raises(self):
        records = [{"customer_id": "C1", "invoice_ts": "2011-01-03", "unit_price": 1, "quantity": 1}]
        with pytest.raises(ValueError, match="missing required fields") as exc_info:
            EventContract().validate_transactions(records)
        assert exc_info.value.args[1]["missing_fields"] == ["invoice_id"]

    def test_non_numeric_price_raises(self):
        records = [
            {"invoice_id": "1", "invoice_ts": "2011-01-03", "unit_price": "abc", "quantity": 1}
        ]
        with pytest.raises(ValueError, match="unit_price is not numeric"):
            EventContract().validate_transactions(records)

    def test_non_integer_quantity_raises(self):
        records = [
            {"invoice_id": "1", "invoice_ts": "2011-01-03", "unit_price": "1", "quantity": "two"}
        ]
        with pytest.raises(ValueError, match="quantity must be an integer"):
            EventContract().validate_transactions(records)

    def test_bad_timestamp_raises(self):
        records = [
            {"invoice_id": "1", "invoice_ts": "yesterday", "unit_price": "1", "quantity": 1}
        ]
        with pytest.raises(ValueError, match="not an ISO-8601 timestamp"):
            EventContract().validate_transactions(records)


class TestEventContractVisits:
    """Test conversion of raw visit records."""

    def test_anonymous_records_are_skipped(self, caplog):
        records = [
            {"user_id": "U1", "event_ts": "2021-01-04T10:00:00", "purchase_revenue": "12.5"},
            {"user_id": None, "event_ts": "2021-01-04T11:00:00", "purchase_revenue": 3},
            {"user_id": "U2", "event_ts": "2021-01-05T09:00:00"},
        ]
        with caplog.at_level("INFO"):
            events = EventContract().validate_visits(records)

        assert [e.user_id for e in events] == ["U1", "U2"]
        assert events[0].purchase_revenue == Decimal("12.5")
        assert events[1].purchase_revenue == Decimal("0")
        assert "Skipped 1 visit records without user_id" in caplog.text

    def test_missing_event_ts_raises(self):
        with pytest.raises(ValueError, match="missing required fields"):
            EventContract().validate_visits([{"user_id": "U1", "event_ts": None}])
