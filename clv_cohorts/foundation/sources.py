"""Read-only access to the transaction and event stores.

The engines only need a relation they can read. This module pulls that
relation into a DataFrame, either from a file export (CSV, JSON records,
Parquet) or by running a query through a DB-API connection such as
:mod:`sqlite3`.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Mapping, Sequence

import pandas as pd

logger = logging.getLogger(__name__)

MAX_INPUT_BYTES = 250 * 1024 * 1024  # 250 MiB cap to avoid accidental OOM

#: Columns read for the RFM engine.
TRANSACTION_COLUMNS = (
    "customer_id",
    "invoice_id",
    "invoice_ts",
    "unit_price",
    "quantity",
    "country",
    "description",
)

#: Columns read for the cohort engine.
VISIT_COLUMNS = ("user_id", "event_ts", "purchase_revenue")


def load_frame(path: Path | str, max_bytes: int = MAX_INPUT_BYTES) -> pd.DataFrame:
    """Load an exported table from disk.

    The format is chosen from the file suffix: ``.csv``, ``.json`` (a list
    of records) or ``.parquet``.
    """
    resolved = Path(path).resolve()
    size = resolved.stat().st_size
    if size > max_bytes:
        raise ValueError(
            f"Input file {resolved} is {size} bytes; exceeds limit of {max_bytes} bytes"
        )

    suffix = resolved.suffix.lower()
    if suffix == ".csv":
        frame = pd.read_csv(resolved)
    elif suffix == ".json":
        frame = pd.read_json(resolved, orient="records", convert_dates=False)
    elif suffix == ".parquet":
        frame = pd.read_parquet(resolved)
    else:
        raise ValueError(
            f"Unsupported input format {suffix!r}; expected .csv, .json or .parquet"
        )

    logger.info(f"Loaded {len(frame)} rows from {resolved}")
    return frame


def query_frame(
    connection: Any,
    query: str,
    params: Sequence[Any] | Mapping[str, Any] | None = None,
) -> pd.DataFrame:
    """Run a read-only query and return its result.

    ``connection`` is any DB-API 2.0 connection (``sqlite3.Connection``,
    psycopg, ...) or a SQLAlchemy connectable accepted by
    :func:`pandas.read_sql_query`.
    """
    frame = pd.read_sql_query(query, connection, params=params)
    logger.info(f"Query returned {len(frame)} rows")
    return frame


def require_columns(frame: pd.DataFrame, columns: Sequence[str]) -> None:
    """Raise if any of ``columns`` is missing from ``frame``."""
    missing = [column for column in columns if column not in frame.columns]
    if missing:
        raise ValueError(f"DataFrame missing required columns: {missing}")
