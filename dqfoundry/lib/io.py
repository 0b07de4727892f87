"""Table I/O: load sample data into Tables and write curated results.

The engine works on plain lists of dicts. These helpers sit in front of it
and use pandas (with pyarrow for Parquet) to read and write files.
Missing values (NaN, NaT, NA) become None on the way in.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, Optional, Sequence, Union

import numpy as np
import pandas as pd
import pyarrow as pa

from dqfoundry.lib.errors import ConfigurationError
from dqfoundry.lib.table import Row, Table, is_null

logger = logging.getLogger(__name__)

__all__ = [
    "FORMATS",
    "detect_format",
    "read_table",
    "read_tables",
    "table_from_dataframe",
    "table_to_dataframe",
    "write_table",
]

FORMATS = {
    ".csv": "csv",
    ".json": "json",
    ".jsonl": "jsonl",
    ".ndjson": "jsonl",
    ".parquet": "parquet",
    ".pq": "parquet",
}


def detect_format(path: Union[str, Path], fmt: Optional[str] = None) -> str:
    """Pick the file format from an explicit name or the file extension."""
    if fmt:
        fmt = fmt.lower()
        if fmt not in set(FORMATS.values()):
            raise ConfigurationError(f"Unsupported format '{fmt}'", field="format", value=fmt)
        return fmt
    suffix = Path(path).suffix.lower()
    if suffix not in FORMATS:
        valid = ", ".join(sorted(FORMATS))
        raise ConfigurationError(
            f"Cannot infer format of '{path}'. Supported extensions: {valid}",
            field="path",
            value=path,
        )
    return FORMATS[suffix]


def _clean(value: Any) -> Any:
    if is_null(value):
        return None
    if isinstance(value, np.generic):
        return value.item()
    return value


def table_from_dataframe(df: pd.DataFrame) -> Table:
    """Convert a DataFrame into a Table of plain Python values."""
    records = df.astype(object).to_dict("records")
    return [{str(k): _clean(v) for k, v in record.items()} for record in records]


def table_to_dataframe(table: Sequence[Row], columns: Optional[Sequence[str]] = None) -> pd.DataFrame:
    """Convert a Table into a DataFrame.

    Column order follows first appearance unless `columns` is given.
    """
    if columns is None:
        ordered: Dict[str, None] = {}
        for row in table:
            for key in row:
                ordered.setdefault(key, None)
        columns = list(ordered)
    return pd.DataFrame(list(table), columns=list(columns))


def read_table(path: Union[str, Path], fmt: Optional[str] = None) -> Table:
    """Read a CSV, JSON, JSON Lines or Parquet file into a Table.

    Raises:
        ConfigurationError: If the file is missing, unreadable or the format
            unsupported
    """
    path = Path(path)
    fmt = detect_format(path, fmt)
    if not path.exists():
        raise ConfigurationError(f"Data file not found: {path}", field="path", value=path)

    try:
        if fmt == "csv":
            df = pd.read_csv(path)
        elif fmt == "json":
            df = pd.read_json(path, orient="records", convert_dates=False)
        elif fmt == "jsonl":
            df = pd.read_json(path, orient="records", lines=True, convert_dates=False)
        else:
            df = pd.read_parquet(path)
    except (pd.errors.EmptyDataError, pd.errors.ParserError, pa.ArrowException, ValueError, OSError) as e:
        raise ConfigurationError(f"Cannot read {path}: {e}", field="path", value=path) from e

    table = table_from_dataframe(df)
    logger.info("Read %d rows from %s", len(table), path)
    return table


def read_tables(paths: Dict[str, Union[str, Path]]) -> Dict[str, Table]:
    """Read several named tables (e.g. reference tables)."""
    return {name: read_table(path) for name, path in paths.items()}


def write_table(table: Sequence[Row], path: Union[str, Path], fmt: Optional[str] = None) -> Path:
    """Write a Table to CSV, JSON, JSON Lines or Parquet."""
    path = Path(path)
    fmt = detect_format(path, fmt)
    path.parent.mkdir(parents=True, exist_ok=True)
    df = table_to_dataframe(table)

    if fmt == "csv":
        df.to_csv(path, index=False)
    elif fmt == "json":
        df.to_json(path, orient="records")
    elif fmt == "jsonl":
        df.to_json(path, orient="records", lines=True)
    else:
        df.to_parquet(path, index=False)

    logger.info("Wrote %d rows to %s", len(df), path)
    return path
