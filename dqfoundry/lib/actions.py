"""Remediation actions applied to the rows a rule flagged.

The number of affected rows is always the number of flagged rows, whatever
the action does to them: the verdict reports detection, not whether the
remediation repaired the data.
"""

from __future__ import annotations

import logging
import math
from typing import Any, Mapping, Sequence, Tuple

from dqfoundry.lib.rules import (
    Action,
    Clamp,
    Coalesce,
    DropRows,
    FlagOnly,
    LogOnly,
    MapValues,
    Normalize,
    SetDefault,
    SetNull,
)
from dqfoundry.lib.table import (
    Row,
    Table,
    count_true,
    is_empty,
    is_null,
    to_date,
    to_number,
)

logger = logging.getLogger(__name__)

__all__ = ["apply_action", "describe_action"]


def _with_value(row: Mapping[str, Any], column: str, value: Any) -> Row:
    updated = dict(row)
    updated[column] = value
    return updated


def _clamp_row(row: Row, action: Clamp) -> Row:
    value = to_number(row.get(action.column))
    if math.isnan(value):
        return row
    if value < action.minimum:
        return _with_value(row, action.column, action.minimum)
    if value > action.maximum:
        return _with_value(row, action.column, action.maximum)
    return row


def _map_row(row: Row, action: MapValues) -> Row:
    value = row.get(action.column)
    if is_null(value):
        return row
    try:
        mapped = action.mapping.get(value, value)
    except TypeError:
        # unhashable values cannot be looked up
        return row
    if mapped is value:
        return row
    return _with_value(row, action.column, mapped)


def _coalesce_row(row: Row, action: Coalesce) -> Row:
    for column in action.fallback_columns:
        value = row.get(column)
        if action.dates:
            value = to_date(value)
        if not is_empty(value):
            return _with_value(row, action.column, value)
    default = action.default
    if action.dates and default is not None:
        default = to_date(default)
    return _with_value(row, action.column, default)


def _normalize_row(row: Row, action: Normalize) -> Row:
    value = row.get(action.column)
    if not isinstance(value, str):
        return row
    normalized = action.apply(value)
    if normalized == value:
        return row
    return _with_value(row, action.column, normalized)


def apply_action(
    table: Sequence[Row],
    mask: Sequence[bool],
    action: Action,
) -> Tuple[Table, int]:
    """Apply an action to the flagged rows.

    Returns a new table list; rows that change are copied, untouched rows
    are carried over.

    Args:
        table: Current table state
        mask: Violation mask, one entry per row
        action: The rule's action variant

    Returns:
        (next table state, rows affected)

    Raises:
        ValueError: If the mask length differs from the row count
        TypeError: If the action is not a known variant
    """
    if len(mask) != len(table):
        raise ValueError(
            f"mask has {len(mask)} entries but table has {len(table)} rows"
        )

    rows_affected = count_true(mask)
    pairs = list(zip(table, mask))

    if isinstance(action, DropRows):
        result = [row for row, flagged in pairs if not flagged]
    elif isinstance(action, SetDefault):
        result = [
            _with_value(row, action.column, action.value) if flagged else row
            for row, flagged in pairs
        ]
    elif isinstance(action, SetNull):
        result = [
            _with_value(row, action.column, None) if flagged else row
            for row, flagged in pairs
        ]
    elif isinstance(action, Clamp):
        result = [_clamp_row(row, action) if flagged else row for row, flagged in pairs]
    elif isinstance(action, MapValues):
        result = [
            _with_value(row, action.column, action.default)
            if flagged
            else _map_row(row, action)
            for row, flagged in pairs
        ]
    elif isinstance(action, Coalesce):
        result = [_coalesce_row(row, action) if flagged else row for row, flagged in pairs]
    elif isinstance(action, Normalize):
        normalized = [_normalize_row(row, action) for row in table]
        if action.drop:
            result = [row for row, flagged in zip(normalized, mask) if not flagged]
        elif action.default is not None:
            result = [
                _with_value(row, action.column, action.default) if flagged else row
                for row, flagged in zip(normalized, mask)
            ]
        else:
            result = normalized
    elif isinstance(action, (FlagOnly, LogOnly)):
        result = list(table)
    else:
        raise TypeError(f"Unsupported action: {action!r}")

    logger.debug(
        "Applied %s: %d flagged, %d -> %d rows",
        action.kind,
        rows_affected,
        len(table),
        len(result),
    )
    return result, rows_affected


def describe_action(action: Action, rows_affected: int) -> str:
    """Human-readable summary of what an action did to the flagged rows."""
    if rows_affected == 0:
        return "All rows passed validation"

    noun = "row" if rows_affected == 1 else "rows"
    if isinstance(action, DropRows):
        verb = "was" if rows_affected == 1 else "were"
        return f"{rows_affected} {noun} failed validation and {verb} dropped"
    if isinstance(action, SetDefault):
        return f"{rows_affected} {noun} had invalid {action.column}, set to {action.value!r}"
    if isinstance(action, SetNull):
        return f"{rows_affected} {noun} had invalid {action.column}, set to NULL"
    if isinstance(action, Clamp):
        return (
            f"{rows_affected} {noun} had {action.column} outside "
            f"{action.minimum}-{action.maximum}, clamped"
        )
    if isinstance(action, MapValues):
        return f"{rows_affected} {noun} had unmapped {action.column}, set to {action.default!r}"
    if isinstance(action, Coalesce):
        sources = ", ".join(action.fallback_columns)
        if sources and action.default is not None:
            sources = f"{sources} or {action.default!r}"
        elif not sources:
            sources = repr(action.default)
        return f"{rows_affected} {noun} had invalid {action.column}, filled from {sources}"
    if isinstance(action, Normalize):
        if action.drop:
            verb = "was" if rows_affected == 1 else "were"
            return (
                f"{rows_affected} {noun} failed validation after normalizing "
                f"{action.column} and {verb} dropped"
            )
        if action.default is not None:
            return f"{rows_affected} {noun} had invalid {action.column}, set to {action.default!r}"
        return f"{rows_affected} {noun} flagged after normalizing {action.column}"
    if isinstance(action, FlagOnly):
        return f"{rows_affected} {noun} flagged"
    if isinstance(action, LogOnly):
        return f"{rows_affected} {noun} logged"
    raise TypeError(f"Unsupported action: {action!r}")


