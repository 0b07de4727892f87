"""Row and table helpers shared by predicates and actions.

A Row is a plain dict of column name to scalar value; a Table is a list of
rows. Columns missing from a row read as None.
"""

from __future__ import annotations

import math
from datetime import date, datetime
from typing import Any, Dict, Iterable, List, Mapping, Optional, Set

import pandas as pd

__all__ = [
    "Row",
    "Table",
    "columns_of",
    "copy_table",
    "count_true",
    "is_empty",
    "is_null",
    "normalize_text",
    "to_date",
    "to_number",
]

Row = Dict[str, Any]
Table = List[Row]


def is_null(value: Any) -> bool:
    """True for None, NaN and pandas missing markers (NA, NaT)."""
    if value is None:
        return True
    if isinstance(value, float) and math.isnan(value):
        return True
    return value is pd.NA or value is pd.NaT


def is_empty(value: Any) -> bool:
    """True when the cell is null, or a string that is blank once trimmed."""
    if is_null(value):
        return True
    return isinstance(value, str) and value.strip() == ""


def normalize_text(value: Any, strip: bool = False, case: Optional[str] = None) -> Any:
    """Trim and case-fold a string cell; other values pass through."""
    if not isinstance(value, str):
        return value
    if strip:
        value = value.strip()
    if case == "upper":
        return value.upper()
    if case == "lower":
        return value.lower()
    return value


def to_number(value: Any) -> float:
    """Coerce a cell to float; anything unparsable becomes NaN.

    Booleans are not treated as numbers.
    """
    if is_null(value) or isinstance(value, bool):
        return math.nan
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value.strip().replace(",", ""))
        except ValueError:
            return math.nan
    return math.nan


def to_date(value: Any) -> Optional[pd.Timestamp]:
    """Parse a cell as a timestamp, returning None when unparsable.

    Only strings and date/datetime values are parsed; numbers are not
    interpreted as epoch offsets. Timezone-aware values are converted to
    UTC and returned naive.
    """
    if is_empty(value):
        return None
    if isinstance(value, (datetime, date)):
        parsed = pd.Timestamp(value)
    elif isinstance(value, str):
        parsed = pd.to_datetime(value.strip(), errors="coerce")
        if parsed is pd.NaT or pd.isna(parsed):
            return None
    else:
        return None
    if parsed.tzinfo is not None:
        parsed = parsed.tz_convert(None)
    return parsed


def columns_of(table: Iterable[Mapping[str, Any]]) -> Set[str]:
    """Union of column names across all rows."""
    columns: Set[str] = set()
    for row in table:
        columns.update(row.keys())
    return columns


def copy_table(table: Iterable[Mapping[str, Any]]) -> Table:
    """Shallow-copy every row so the result can be changed freely."""
    return [dict(row) for row in table]


def count_true(mask: Iterable[bool]) -> int:
    return sum(1 for flag in mask if flag)
