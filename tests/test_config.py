"""Tests for pipeline configuration objects and loading."""

import json
from datetime import date

import pytest

from clv_cohorts.config import (
    CohortConfig,
    PipelineConfig,
    RFMConfig,
    load_config,
    override,
)
from clv_cohorts.foundation.rfm import QuantileMethod
from clv_cohorts.foundation.weeks import WeekStart


class TestRFMConfig:
    """Test RFMConfig validation and parsing."""

    def test_defaults(self):
        config = RFMConfig()
        assert config.window_start is None
        assert config.quantile_method is QuantileMethod.LINEAR

    def test_window_order_validated(self):
        with pytest.raises(ValueError, match="window_start must not be after window_end"):
            RFMConfig(window_start=date(2011, 12, 9), window_end=date(2010, 12, 1))

    def test_from_mapping(self):
        config = RFMConfig.from_mapping(
            {"window_start": "2010-12-01", "window_end": "2011-12-09", "quantile_method": "nearest"}
        )
        assert config.window_start == date(2010, 12, 1)
        assert config.window_end == date(2011, 12, 9)
        assert config.quantile_method is QuantileMethod.NEAREST

    def test_bad_date_raises(self):
        with pytest.raises(ValueError, match="window_start must be an ISO date"):
            RFMConfig.from_mapping({"window_start": "01/12/2010"})

    def test_bad_date_type_raises(self):
        with pytest.raises(TypeError, match="window_end must be a date or ISO string"):
            RFMConfig.from_mapping({"window_end": 20101201})

    def test_unknown_quantile_method_raises(self):
        with pytest.raises(ValueError):
            RFMConfig.from_mapping({"quantile_method": "approx"})


class TestCohortConfig:
    """Test CohortConfig validation and parsing."""

    def test_defaults(self):
        config = CohortConfig()
        assert config.horizon_weeks == 12
        assert config.week_start is WeekStart.SUNDAY
        assert config.strategy == "average"

    def test_negative_horizon_raises(self):
        with pytest.raises(ValueError, match="horizon_weeks must be >= 0"):
            CohortConfig(horizon_weeks=-1)

    def test_unknown_strategy_raises(self):
        with pytest.raises(ValueError, match="Unknown growth strategy"):
            CohortConfig(strategy="median")

    def test_from_mapping(self):
        config = CohortConfig.from_mapping(
            {
                "cutoff_date": "2021-01-24",
                "observation_end": "2021-04-30",
                "horizon_weeks": "8",
                "week_start": "monday",
                "strategy": "pooled",
            }
        )
        assert config.cutoff_date == date(2021, 1, 24)
        assert config.observation_end == date(2021, 4, 30)
        assert config.horizon_weeks == 8
        assert config.week_start is WeekStart.MONDAY
        assert config.strategy == "pooled"


class TestLoadConfig:
    """Test reading configuration files."""

    def test_load_both_sections(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text(
            json.dumps(
                {
                    "rfm": {"window_start": "2010-12-01", "window_end": "2011-12-09"},
                    "cohorts": {"cutoff_date": "2021-01-24", "strategy": "last"},
                }
            )
        )
        config = load_config(path)
        assert config.rfm.window_end == date(2011, 12, 9)
        assert config.cohorts.cutoff_date == date(2021, 1, 24)
        assert config.cohorts.strategy == "last"

    def test_missing_sections_use_defaults(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text(json.dumps({"cohorts": {"horizon_weeks": 6}}))
        config = load_config(path)
        assert config.rfm == RFMConfig()
        assert config.cohorts.horizon_weeks == 6

    def test_unknown_section_raises(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text(json.dumps({"rmf": {}}))
        with pytest.raises(ValueError, match="Unknown config sections"):
            load_config(path)

    def test_non_object_raises(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text("[]")
        with pytest.raises(ValueError, match="must contain a JSON object"):
            load_config(path)


class TestOverride:
    """Test applying command line overrides."""

    def test_none_values_are_ignored(self):
        config = CohortConfig(strategy="last")
        assert override(config, strategy=None, cutoff_date=None) is config

    def test_values_replace_fields(self):
        config = override(CohortConfig(), strategy="pooled", horizon_weeks=4)
        assert config.strategy == "pooled"
        assert config.horizon_weeks == 4

    def test_overrides_are_validated(self):
        with pytest.raises(ValueError, match="window_start must not be after window_end"):
            override(RFMConfig(window_end=date(2011, 1, 1)), window_start=date(2011, 6, 1))


def test_pipeline_config_defaults():
    config = PipelineConfig()
    assert config.rfm == RFMConfig()
    assert config.cohorts == CohortConfig()
