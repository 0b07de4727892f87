"""Pre-built rule predicates.

Every predicate answers one question for one row: does this row VIOLATE
the rule? They are pure and declare the columns they read, which become
the rule's required columns.

Good: "lease_id must not be empty"
Good: "end_date must be on or after start_date"
Good: "property_id must exist in property_master"

Some predicates need more than the row itself:
- ForeignKey reads a reference table. It is bound once per evaluation,
  which builds the key index a single time.
- Duplicate compares rows with each other and evaluates a whole table.
"""

from __future__ import annotations

import logging
import math
import re
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

import pandas as pd

from dqfoundry.lib.errors import PredicateEvaluationError
from dqfoundry.lib.table import Row, is_empty, is_null, normalize_text, to_date, to_number

logger = logging.getLogger(__name__)

__all__ = [
    "AllowedValues",
    "DateRange",
    "Duplicate",
    "Expression",
    "ForeignKey",
    "MatchesPattern",
    "NotEmpty",
    "NotNull",
    "NumericRange",
    "Positive",
    "Predicate",
    "TablePredicate",
    "ValidDate",
]

EPOCH = pd.Timestamp("1970-01-01")


class Predicate:
    """Base class for row predicates.

    Subclasses implement `__call__(row) -> bool` (True = violation) and set
    `columns` to the columns they read.
    """

    columns: Tuple[str, ...] = ()

    def bind(self, reference_tables: Mapping[str, Sequence[Mapping[str, Any]]]) -> Callable[[Mapping[str, Any]], bool]:
        """Return the row function used for one evaluation."""
        return self

    def __call__(self, row: Mapping[str, Any]) -> bool:
        raise NotImplementedError

    def __repr__(self) -> str:
        return f"{type(self).__name__}({', '.join(self.columns)})"


class TablePredicate(Predicate):
    """A predicate whose verdict for a row depends on the other rows."""

    def evaluate_table(self, rows: Sequence[Mapping[str, Any]]) -> List[bool]:
        raise NotImplementedError

    def __call__(self, row: Mapping[str, Any]) -> bool:
        raise PredicateEvaluationError(
            f"{type(self).__name__} compares rows and cannot evaluate a single row"
        )


class NotNull(Predicate):
    """Violates when the value is null (None or NaN)."""

    def __init__(self, column: str):
        self.column = column
        self.columns = (column,)

    def __call__(self, row: Mapping[str, Any]) -> bool:
        return is_null(row.get(self.column))


class NotEmpty(Predicate):
    """Violates when the value is null or a blank string."""

    def __init__(self, column: str):
        self.column = column
        self.columns = (column,)

    def __call__(self, row: Mapping[str, Any]) -> bool:
        return is_empty(row.get(self.column))


class Positive(Predicate):
    """Violates when the numeric value is not positive.

    Unparsable values (including null) violate unless `unparsable_passes`.
    With `allow_zero`, zero is accepted.
    """

    def __init__(
        self,
        column: str,
        *,
        allow_zero: bool = False,
        unparsable_passes: bool = False,
    ):
        self.column = column
        self.columns = (column,)
        self.allow_zero = allow_zero
        self.unparsable_passes = unparsable_passes

    def __call__(self, row: Mapping[str, Any]) -> bool:
        value = to_number(row.get(self.column))
        if math.isnan(value):
            return not self.unparsable_passes
        if self.allow_zero:
            return value < 0
        return value <= 0


class NumericRange(Predicate):
    """Violates when the numeric value falls outside [minimum, maximum].

    Either bound may be None for an open range.
    """

    def __init__(
        self,
        column: str,
        minimum: Optional[float] = None,
        maximum: Optional[float] = None,
        *,
        unparsable_passes: bool = False,
    ):
        self.column = column
        self.columns = (column,)
        self.minimum = minimum
        self.maximum = maximum
        self.unparsable_passes = unparsable_passes

    def __call__(self, row: Mapping[str, Any]) -> bool:
        value = to_number(row.get(self.column))
        if math.isnan(value):
            return not self.unparsable_passes
        if self.minimum is not None and value < self.minimum:
            return True
        if self.maximum is not None and value > self.maximum:
            return True
        return False


class ValidDate(Predicate):
    """Violates when the value is not a parsable date within the bounds.

    Unparsable dates always violate.
    """

    def __init__(
        self,
        column: str,
        min_date: Optional[str] = None,
        max_date: Optional[str] = None,
    ):
        self.column = column
        self.columns = (column,)
        self.min_date = self._bound(min_date)
        self.max_date = self._bound(max_date)

    @staticmethod
    def _bound(value: Any) -> Optional[pd.Timestamp]:
        if not value:
            return None
        bound = pd.Timestamp(value)
        if bound.tzinfo is not None:
            bound = bound.tz_convert(None)
        return bound

    def __call__(self, row: Mapping[str, Any]) -> bool:
        parsed = to_date(row.get(self.column))
        if parsed is None:
            return True
        if self.min_date is not None and parsed < self.min_date:
            return True
        if self.max_date is not None and parsed > self.max_date:
            return True
        return False


class DateRange(Predicate):
    """Violates when end precedes start, or either date is unparsable."""

    def __init__(self, start_column: str, end_column: str):
        self.start_column = start_column
        self.end_column = end_column
        self.columns = (start_column, end_column)

    def __call__(self, row: Mapping[str, Any]) -> bool:
        start = to_date(row.get(self.start_column))
        end = to_date(row.get(self.end_column))
        if start is None or end is None:
            return True
        return end < start


class AllowedValues(Predicate):
    """Violates when the (normalized) value is not in the allowed set.

    Args:
        column: Column to check
        allowed: Permitted values
        strip: Trim surrounding whitespace from strings before the lookup
        case: "upper" or "lower" to fold string case before the lookup
    """

    def __init__(
        self,
        column: str,
        allowed: Iterable[Any],
        *,
        strip: bool = False,
        case: Optional[str] = None,
    ):
        if case not in (None, "upper", "lower"):
            raise ValueError(f"case must be 'upper' or 'lower', got {case!r}")
        self.column = column
        self.columns = (column,)
        self.strip = strip
        self.case = case
        self.allowed = frozenset(self._normalize(v) for v in allowed)

    def _normalize(self, value: Any) -> Any:
        return normalize_text(value, self.strip, self.case)

    def __call__(self, row: Mapping[str, Any]) -> bool:
        value = row.get(self.column)
        if is_null(value):
            return True
        return self._normalize(value) not in self.allowed


class MatchesPattern(Predicate):
    """Violates when the value does not match a regular expression.

    The pattern is anchored at the start of the value, like `re.match`.
    Empty values violate unless `allow_empty` is set. `strip` and `case`
    normalize string values before matching, as in AllowedValues.
    """

    def __init__(
        self,
        column: str,
        pattern: str,
        *,
        allow_empty: bool = False,
        strip: bool = False,
        case: Optional[str] = None,
    ):
        if case not in (None, "upper", "lower"):
            raise ValueError(f"case must be 'upper' or 'lower', got {case!r}")
        self.column = column
        self.columns = (column,)
        self.pattern = re.compile(pattern)
        self.allow_empty = allow_empty
        self.strip = strip
        self.case = case

    def __call__(self, row: Mapping[str, Any]) -> bool:
        value = row.get(self.column)
        if is_empty(value):
            return not self.allow_empty
        return self.pattern.match(str(normalize_text(value, self.strip, self.case))) is None


class ForeignKey(Predicate):
    """Violates when the key is absent from a reference table's key column.

    Example:
        ForeignKey("property_id", "property_master")
    """

    def __init__(
        self,
        column: str,
        reference_table: str,
        reference_column: Optional[str] = None,
    ):
        self.column = column
        self.columns = (column,)
        self.reference_table = reference_table
        self.reference_column = reference_column or column

    def build_index(self, reference_rows: Sequence[Mapping[str, Any]]) -> frozenset:
        """Collect the non-empty keys of the reference table."""
        keys = set()
        for ref_row in reference_rows:
            if not isinstance(ref_row, Mapping):
                raise PredicateEvaluationError(
                    f"reference table '{self.reference_table}' contains a non-row "
                    f"value of type {type(ref_row).__name__}"
                )
            key = ref_row.get(self.reference_column)
            if not is_empty(key):
                keys.add(key)
        return frozenset(keys)

    def bind(self, reference_tables: Mapping[str, Sequence[Mapping[str, Any]]]) -> Callable[[Mapping[str, Any]], bool]:
        if self.reference_table not in reference_tables:
            raise PredicateEvaluationError(
                f"reference table '{self.reference_table}' was not provided"
            )
        index = self.build_index(reference_tables[self.reference_table])
        logger.debug(
            "Indexed %d keys from %s.%s",
            len(index),
            self.reference_table,
            self.reference_column,
        )
        column = self.column

        def violates(row: Mapping[str, Any]) -> bool:
            return row.get(column) not in index

        return violates

    def __call__(self, row: Mapping[str, Any]) -> bool:
        raise PredicateEvaluationError(
            f"ForeignKey on '{self.column}' must be bound to reference table "
            f"'{self.reference_table}' before use"
        )


class Duplicate(TablePredicate):
    """Marks every row except the survivor of its key group.

    Combined with DropRows this is deduplication with survivorship:
    keep="latest" keeps the row with the newest `order_by` date,
    keep="earliest" the oldest, keep="first" the first occurrence.
    Unparsable `order_by` dates sort as the epoch; ties keep the earlier row.
    """

    def __init__(
        self,
        keys: Sequence[str],
        order_by: Optional[str] = None,
        keep: str = "latest",
    ):
        if isinstance(keys, str):
            keys = [keys]
        if not keys:
            raise ValueError("Duplicate requires at least one key column")
        if keep not in ("latest", "earliest", "first"):
            raise ValueError(f"keep must be latest, earliest or first, got {keep!r}")
        if keep != "first" and not order_by:
            raise ValueError(f"keep={keep!r} requires an order_by column")
        self.keys = tuple(keys)
        self.order_by = order_by
        self.keep = keep
        self.columns = self.keys + ((order_by,) if order_by else ())

    def _key(self, row: Mapping[str, Any]) -> Tuple[Any, ...]:
        return tuple(None if is_null(row.get(k)) else row.get(k) for k in self.keys)

    def _timestamp(self, row: Mapping[str, Any]) -> pd.Timestamp:
        parsed = to_date(row.get(self.order_by)) if self.order_by else None
        return parsed if parsed is not None else EPOCH

    def evaluate_table(self, rows: Sequence[Mapping[str, Any]]) -> List[bool]:
        survivors: Dict[Tuple[Any, ...], int] = {}
        for index, row in enumerate(rows):
            key = self._key(row)
            current = survivors.get(key)
            if current is None:
                survivors[key] = index
                continue
            if self.keep == "first":
                continue
            candidate_ts = self._timestamp(row)
            current_ts = self._timestamp(rows[current])
            if self.keep == "latest" and candidate_ts > current_ts:
                survivors[key] = index
            elif self.keep == "earliest" and candidate_ts < current_ts:
                survivors[key] = index

        keep_indices = set(survivors.values())
        return [index not in keep_indices for index in range(len(rows))]


class Expression(Predicate):
    """Wraps a plain callable and declares the columns it reads.

    Example:
        Expression(lambda r: r.get("status") == "Terminated" and not r.get("end_date"),
                   columns=["status", "end_date"])
    """

    def __init__(self, func: Callable[[Row], bool], columns: Iterable[str] = (), name: Optional[str] = None):
        if not callable(func):
            raise TypeError("Expression requires a callable")
        self.func = func
        self.columns = tuple(columns)
        self.name = name or getattr(func, "__name__", "expression")

    def __call__(self, row: Mapping[str, Any]) -> bool:
        return bool(self.func(row))

    def __repr__(self) -> str:
        return f"Expression({self.name})"
