"""Tests for RFM (Recency-Frequency-Monetary) calculation and scoring."""

from datetime import date, datetime
from decimal import Decimal

import pytest

from clv_cohorts.foundation.events import TransactionEvent
from clv_cohorts.foundation.rfm import (
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


def _line(customer_id, invoice_id, ts, price, qty, country="United Kingdom", description="MUG"):
    return TransactionEvent(
        customer_id, invoice_id, ts, Decimal(str(price)), qty, country, description
    )


def _metrics(customer_id, recency, frequency, monetary):
    return RFMMetrics(
        customer_id=customer_id,
        country="United Kingdom",
        recency_days=recency,
        frequency=frequency,
        monetary=Decimal(str(monetary)),
        last_invoice_ts=datetime(2011, 12, 1),
    )


def _thresholds(**overrides):
    values = dict(
        m25=Decimal("50"),
        m50=Decimal("200"),
        m75=Decimal("500"),
        f25=Decimal("1"),
        f50=Decimal("3"),
        f75=Decimal("10"),
        r25=Decimal("7"),
        r50=Decimal("30"),
        r75=Decimal("90"),
    )
    values.update(overrides)
    return QuantileThresholds(**values)


class TestRFMMetrics:
    """Test RFMMetrics dataclass validation."""

    def test_valid_metrics(self):
        metrics = _metrics("C1", 10, 5, "250.00")
        assert metrics.frequency == 5
        assert metrics.monetary == Decimal("250.00")

    def test_negative_monetary_allowed_for_net_returns(self):
        """Customers whose returns exceed purchases keep a negative total."""
        assert _metrics("C1", 10, 2, "-15.00").monetary == Decimal("-15.00")

    def test_negative_recency_raises_error(self):
        with pytest.raises(ValueError, match="Recency cannot be negative"):
            _metrics("C1", -1, 5, 50)

    def test_zero_frequency_raises_error(self):
        with pytest.raises(ValueError, match="Frequency must be positive"):
            _metrics("C1", 10, 0, 50)

    def test_empty_customer_id_raises_error(self):
        with pytest.raises(ValueError, match="customer_id cannot be empty"):
            _metrics("", 10, 1, 50)


class TestCalculateRFM:
    """Test aggregation of invoice lines into RFM metrics."""

    def test_aggregates_lines_per_customer(self):
        lines = [
            _line("C1", "INV1", datetime(2011, 1, 3, 9), "2.50", 4),
            _line("C1", "INV1", datetime(2011, 1, 3, 9), "1.00", 1),
            _line("C1", "INV2", datetime(2011, 1, 5, 15), "3.00", 2),
            _line("C2", "INV3", datetime(2011, 1, 9, 12), "5.00", 2, country="France"),
        ]
        rfm = calculate_rfm(lines, date(2011, 1, 1), date(2011, 1, 31))

        assert [m.customer_id for m in rfm] == ["C1", "C2"]
        c1, c2 = rfm
        # Reference date is 2011-01-10 (latest invoice date + 1 day)
        assert c1.recency_days == 5
        assert c1.frequency == 2
        assert c1.monetary == Decimal("17.00")
        assert c1.last_invoice_ts == datetime(2011, 1, 5, 15)
        assert c2.recency_days == 1
        assert c2.country == "France"

    def test_lines_without_customer_or_description_are_excluded(self, caplog):
        lines = [
            _line("C1", "INV1", datetime(2011, 1, 3), "2.00", 1),
            _line(None, "INV2", datetime(2011, 1, 20), "99.00", 1),
            _line("C2", "INV3", datetime(2011, 1, 4), "5.00", 1, description=None),
        ]
        with caplog.at_level("INFO"):
            rfm = calculate_rfm(lines, date(2011, 1, 1), date(2011, 1, 31))

        assert [m.customer_id for m in rfm] == ["C1"]
        # Excluded lines do not move the reference date either
        assert rfm[0].recency_days == 1
        assert "2 lines without customer or description" in caplog.text

    def test_window_bounds_are_inclusive(self):
        lines = [
            _line("C1", "INV1", datetime(2010, 11, 30, 23, 59), "1.00", 1),
            _line("C1", "INV2", datetime(2010, 12, 1, 0, 0), "2.00", 1),
            _line("C1", "INV3", datetime(2010, 12, 31, 23, 59), "3.00", 1),
            _line("C1", "INV4", datetime(2011, 1, 1, 0, 0), "4.00", 1),
        ]
        (metrics,) = calculate_rfm(lines, date(2010, 12, 1), date(2010, 12, 31))
        assert metrics.frequency == 2
        assert metrics.monetary == Decimal("5.00")

    def test_returns_net_against_spend(self):
        lines = [
            _line("C1", "536365", datetime(2011, 1, 3), "10.00", 3),
            _line("C1", "C536379", datetime(2011, 1, 4), "10.00", -1),
        ]
        (metrics,) = calculate_rfm(lines, date(2011, 1, 1), date(2011, 1, 31))
        assert metrics.monetary == Decimal("20.00")
        assert metrics.frequency == 2

    def test_monetary_rounded_half_up_to_cents(self):
        lines = [_line("C1", "INV1", datetime(2011, 1, 3), "0.125", 1)]
        (metrics,) = calculate_rfm(lines, date(2011, 1, 1), date(2011, 1, 31))
        assert metrics.monetary == Decimal("0.13")

    def test_country_from_latest_invoice(self):
        lines = [
            _line("C1", "INV1", datetime(2011, 1, 3), "1.00", 1, country="Germany"),
            _line("C1", "INV2", datetime(2011, 1, 8), "1.00", 1, country="EIRE"),
        ]
        (metrics,) = calculate_rfm(lines, date(2011, 1, 1), date(2011, 1, 31))
        assert metrics.country == "EIRE"

    def test_country_tie_is_order_independent(self):
        ts = datetime(2011, 1, 3, 10)
        lines = [
            _line("C1", "INV1", ts, "1.00", 1, country="Germany"),
            _line("C1", "INV1", ts, "1.00", 1, country="France"),
        ]
        first = calculate_rfm(lines, date(2011, 1, 1), date(2011, 1, 31))
        second = calculate_rfm(list(reversed(lines)), date(2011, 1, 1), date(2011, 1, 31))
        assert first[0].country == second[0].country == "Germany"

    def test_no_lines_in_window_returns_empty(self):
        lines = [_line("C1", "INV1", datetime(2012, 1, 3), "1.00", 1)]
        assert calculate_rfm(lines, date(2011, 1, 1), date(2011, 12, 31)) == []

    def test_window_start_after_end_raises(self):
        with pytest.raises(ValueError, match="window_start must not be after window_end"):
            calculate_rfm([], date(2011, 2, 1), date(2011, 1, 1))


class TestScoreValue:
    """Test quartile bucketing with inclusive upper bounds."""

    @pytest.mark.parametrize(
        "value, expected",
        [(5, 1), (10, 1), (11, 2), (20, 2), (25, 3), (30, 3), (31, 4)],
    )
    def test_higher_is_better(self, value, expected):
        assert score_value(value, 10, 20, 30) == expected

    @pytest.mark.parametrize(
        "value, expected",
        [(1, 4), (7, 4), (8, 3), (30, 3), (31, 2), (90, 2), (91, 1)],
    )
    def test_recency_is_inverted(self, value, expected):
        assert score_value(value, 7, 30, 90, higher_is_better=False) == expected

    def test_decimal_equal_to_threshold(self):
        assert score_value(Decimal("500.00"), Decimal("50"), Decimal("200"), Decimal("500")) == 3


class TestQuantileThresholds:
    """Test threshold derivation."""

    def test_linear_quartiles(self):
        metrics = [_metrics(f"C{i}", i, i, i * 10) for i in range(1, 6)]
        thresholds = calculate_quantile_thresholds(metrics)

        assert thresholds.method is QuantileMethod.LINEAR
        assert (thresholds.f25, thresholds.f50, thresholds.f75) == (
            Decimal("2.0"),
            Decimal("3.0"),
            Decimal("4.0"),
        )
        assert thresholds.m75 == Decimal("40.0")

    def test_method_changes_thresholds(self):
        metrics = [_metrics(f"C{i}", 1, i, 10) for i in (1, 2, 3, 4)]
        linear = calculate_quantile_thresholds(metrics, QuantileMethod.LINEAR)
        lower = calculate_quantile_thresholds(metrics, QuantileMethod.LOWER)

        assert linear.f25 == Decimal("1.75")
        assert lower.f25 == Decimal("1.0")
        assert lower.method is QuantileMethod.LOWER

    def test_single_customer(self):
        thresholds = calculate_quantile_thresholds([_metrics("C1", 3, 2, "12.34")])
        assert thresholds.m25 == thresholds.m50 == thresholds.m75 == Decimal("12.34")

    def test_empty_input_raises(self):
        with pytest.raises(EmptyDatasetError, match="no data"):
            calculate_quantile_thresholds([])

    def test_empty_dataset_error_is_value_error(self):
        assert issubclass(EmptyDatasetError, ValueError)

    def test_decreasing_quartiles_raise(self):
        with pytest.raises(ValueError, match="monetary quartiles must be non-decreasing"):
            _thresholds(m25=Decimal("600"))

    def test_as_dict(self):
        payload = _thresholds().as_dict()
        assert payload["m75"] == 500.0
        assert payload["method"] == "linear"


class TestRFMScore:
    """Test RFMScore validation."""

    def test_score_out_of_range_raises(self):
        with pytest.raises(ValueError, match="r_score must be between 1 and 4"):
            RFMScore("C1", 5, 1, 1, 511, "Other")

    def test_combined_score_must_match(self):
        with pytest.raises(ValueError, match="does not match"):
            RFMScore("C1", 4, 1, 4, 441, "Recent Customers")


class TestScoring:
    """Test end-to-end scoring and segmentation."""

    def test_recent_big_spender_single_purchase(self):
        """monetary=1000, frequency=1, recency=5 scores 4/1/4 → Recent Customers."""
        score = score_customer(_metrics("C1", 5, 1, 1000), _thresholds())

        assert (score.r_score, score.f_score, score.m_score) == (4, 1, 4)
        assert score.rfm_score == 414
        assert score.segment == "Recent Customers"

    def test_best_customer_is_champion(self):
        score = score_customer(_metrics("C1", 1, 20, 5000), _thresholds())
        assert score.rfm_score == 444
        assert score.segment == "Champions"

    def test_scores_stay_in_range(self):
        metrics = [_metrics(f"C{i:02d}", i * 3, 1 + i % 5, i * 17) for i in range(1, 40)]
        scores = calculate_rfm_scores(metrics)

        assert len(scores) == len(metrics)
        for score in scores:
            assert score.r_score in {1, 2, 3, 4}
            assert score.f_score in {1, 2, 3, 4}
            assert score.m_score in {1, 2, 3, 4}
            assert 111 <= score.rfm_score <= 444

    def test_scores_sorted_by_customer(self):
        metrics = [_metrics("C3", 1, 1, 10), _metrics("C1", 2, 2, 20), _metrics("C2", 3, 3, 30)]
        assert [s.customer_id for s in calculate_rfm_scores(metrics)] == ["C1", "C2", "C3"]

    def test_scoring_is_deterministic(self):
        metrics = [_metrics(f"C{i}", i % 11, 1 + i % 4, i * 7) for i in range(25)]
        first = calculate_rfm_scores(metrics, method=QuantileMethod.NEAREST)
        second = calculate_rfm_scores(list(reversed(metrics)), method=QuantileMethod.NEAREST)
        assert first == second

    def test_empty_metrics_raise(self):
        with pytest.raises(EmptyDatasetError):
            calculate_rfm_scores([])

    def test_explicit_thresholds_are_used(self):
        (score,) = calculate_rfm_scores([_metrics("C1", 5, 1, 1000)], _thresholds())
        assert score.segment == "Recent Customers"
