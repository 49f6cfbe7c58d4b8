"""Run configuration for the RFM and cohort pipelines.

Both pipelines are configured with small frozen dataclasses. They can be
built in code, from a mapping, or from a JSON file shaped like::

    {
      "rfm": {"window_start": "2010-12-01", "window_end": "2011-12-01",
              "quantile_method": "linear"},
      "cohorts": {"cutoff_date": "2021-01-24", "horizon_weeks": 12,
                  "week_start": "sunday", "strategy": "average"}
    }
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, replace
from datetime import date
from pathlib import Path
from typing import Any, Mapping, Optional

from clv_cohorts.analyses.cohort_revenue import DEFAULT_HORIZON_WEEKS
from clv_cohorts.analyses.projection import STRATEGY_NAMES
from clv_cohorts.foundation.rfm import QuantileMethod
from clv_cohorts.foundation.weeks import WeekStart

logger = logging.getLogger(__name__)


def _parse_date(value: Any, field_name: str) -> Optional[date]:
    if value is None or isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            return date.fromisoformat(value)
        except ValueError as exc:
            raise ValueError(
                f"{field_name} must be an ISO date (YYYY-MM-DD), got {value!r}"
            ) from exc
    raise TypeError(f"{field_name} must be a date or ISO string, got {type(value).__name__}")


@dataclass(frozen=True)
class RFMConfig:
    """Configuration for an RFM segmentation run.

    Attributes
    ----------
    window_start:
        First day of the analysis window (inclusive). ``None`` means the
        earliest invoice date in the input.
    window_end:
        Last day of the analysis window (inclusive). ``None`` means the
        latest invoice date in the input.
    quantile_method:
        Percentile method for the quartile thresholds.
    """

    window_start: Optional[date] = None
    window_end: Optional[date] = None
    quantile_method: QuantileMethod = QuantileMethod.LINEAR

    def __post_init__(self) -> None:
        if (
            self.window_start is not None
            and self.window_end is not None
            and self.window_start > self.window_end
        ):
            raise ValueError(
                f"window_start must not be after window_end: "
                f"start={self.window_start.isoformat()}, end={self.window_end.isoformat()}"
            )

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "RFMConfig":
        return cls(
            window_start=_parse_date(data.get("window_start"), "window_start"),
            window_end=_parse_date(data.get("window_end"), "window_end"),
            quantile_method=QuantileMethod(data.get("quantile_method", "linear")),
        )


@dataclass(frozen=True)
class CohortConfig:
    """Configuration for a cohort revenue run.

    Attributes
    ----------
    cutoff_date:
        Last allowed registration date; later cohorts are excluded.
    observation_end:
        Last day covered by the data. Defaults to the latest event.
    horizon_weeks:
        Last week offset tracked and projected (12 by default).
    week_start:
        First day of the week used for bucketing.
    strategy:
        Name of the growth strategy used for projection
        (``average``, ``last`` or ``pooled``).
    """

    cutoff_date: Optional[date] = None
    observation_end: Optional[date] = None
    horizon_weeks: int = DEFAULT_HORIZON_WEEKS
    week_start: WeekStart = WeekStart.SUNDAY
    strategy: str = "average"

    def __post_init__(self) -> None:
        if self.horizon_weeks < 0:
            raise ValueError(f"horizon_weeks must be >= 0, got {self.horizon_weeks}")
        if self.strategy not in STRATEGY_NAMES:
            raise ValueError(
                f"Unknown growth strategy {self.strategy!r}; expected one of {STRATEGY_NAMES}"
            )

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "CohortConfig":
        return cls(
            cutoff_date=_parse_date(data.get("cutoff_date"), "cutoff_date"),
            observation_end=_parse_date(data.get("observation_end"), "observation_end"),
            horizon_weeks=int(data.get("horizon_weeks", DEFAULT_HORIZON_WEEKS)),
            week_start=WeekStart(data.get("week_start", "sunday")),
            strategy=str(data.get("strategy", "average")),
        )


@dataclass(frozen=True)
class PipelineConfig:
    """Both pipeline configurations, as loaded from a config file."""

    rfm: RFMConfig = RFMConfig()
    cohorts: CohortConfig = CohortConfig()


def load_config(path: Path | str) -> PipelineConfig:
    """Read a JSON configuration file.

    Missing sections fall back to defaults. Unknown top-level keys raise so
    typos do not go unnoticed.
    """
    path = Path(path)
    with path.open("r", encoding="utf-8") as fh:
        payload = json.load(fh)
    if not isinstance(payload, dict):
        raise ValueError(f"Config file {path} must contain a JSON object")

    unknown = set(payload) - {"rfm", "cohorts"}
    if unknown:
        raise ValueError(f"Unknown config sections in {path}: {sorted(unknown)}")

    config = PipelineConfig(
        rfm=RFMConfig.from_mapping(payload.get("rfm") or {}),
        cohorts=CohortConfig.from_mapping(payload.get("cohorts") or {}),
    )
    logger.info(f"Loaded configuration from {path}")
    return config


def override(config: Any, **changes: Any) -> Any:
    """Return ``config`` with every non-None keyword applied."""
    applied = {key: value for key, value in changes.items() if value is not None}
    return replace(config, **applied) if applied else config
