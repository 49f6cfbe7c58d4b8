"""Shared utilities for pandas conversion operations."""

from decimal import Decimal
from typing import Mapping, Optional

import pandas as pd  # type: ignore

from clv_cohorts.foundation.sources import require_columns


def decimal_to_float(value: Optional[Decimal], places: int = 2) -> float:
    """Convert Decimal to a rounded float for pandas output tables.

    ``None`` becomes NaN so unobserved cells stay empty in pivots.
    """
    if value is None:
        return float("nan")
    return round(float(value), places)


def rename_columns(frame: pd.DataFrame, mapping: Mapping[str, str]) -> pd.DataFrame:
    """Rename source columns to canonical names.

    Args:
        frame: Source DataFrame
        mapping: canonical name -> source column name

    Raises:
        ValueError: If a mapped source column is missing
    """
    require_columns(frame, list(mapping.values()))
    return frame.rename(
        columns={source: canonical for canonical, source in mapping.items()}
    )
