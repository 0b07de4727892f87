"""Rule definitions: severity, remediation actions and the rule value object.

A rule pairs a predicate (true when a row VIOLATES the rule) with a
remediation action and a severity:

    RuleDefinition(
        id="L1_LEASE_ID_NOT_NULL",
        target_table="lease_master",
        severity=Severity.ERROR,
        predicate=NotEmpty("lease_id"),
        action=DropRows(),
        description="lease_id must be present (non-null, non-empty)",
    )

Actions form a closed set of variants. Each variant is a frozen dataclass
carrying its own payload, so the applicator can dispatch on type.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Tuple, Union

from dqfoundry.lib.errors import InvalidRuleError
from dqfoundry.lib.table import normalize_text

logger = logging.getLogger(__name__)

__all__ = [
    "Action",
    "ACTION_TYPES",
    "Clamp",
    "Coalesce",
    "DropRows",
    "FlagOnly",
    "LogOnly",
    "MapValues",
    "Normalize",
    "RuleDefinition",
    "RuleStatus",
    "SetDefault",
    "SetNull",
    "Severity",
    "check_unique_ids",
]


class Severity(str, Enum):
    """Severity of a rule violation."""

    ERROR = "ERROR"  # Correctness-critical
    WARN = "WARN"  # Fixable anomaly
    INFO = "INFO"  # Observational only

    @classmethod
    def parse(cls, value: Union[str, "Severity"]) -> "Severity":
        """Parse a severity name case-insensitively ("warning" means WARN)."""
        if isinstance(value, Severity):
            return value
        if not isinstance(value, str):
            raise InvalidRuleError(
                "severity must be a string", field="severity", value=value
            )
        normalized = value.strip().upper()
        if normalized == "WARNING":
            normalized = "WARN"
        try:
            return cls(normalized)
        except ValueError:
            valid = ", ".join(s.value for s in cls)
            raise InvalidRuleError(
                f"Invalid severity '{value}'. Valid options: {valid}",
                field="severity",
                value=value,
            ) from None


class RuleStatus(str, Enum):
    """Outcome of evaluating one rule."""

    PASS = "pass"
    FAIL = "fail"
    WARNING = "warning"

    @classmethod
    def from_result(cls, rows_affected: int, severity: Severity) -> "RuleStatus":
        """pass when nothing was affected, else fail for ERROR, warning otherwise."""
        if rows_affected == 0:
            return cls.PASS
        if severity == Severity.ERROR:
            return cls.FAIL
        return cls.WARNING


def _require_column(column: Any, kind: str) -> None:
    if not isinstance(column, str) or not column.strip():
        raise InvalidRuleError(
            f"{kind} action requires a column", field="action.column", value=column
        )


@dataclass(frozen=True)
class DropRows:
    """Remove every violating row."""

    kind = "drop_rows"

    def validate(self) -> None:
        pass


@dataclass(frozen=True)
class SetDefault:
    """Overwrite `column` with `value` on violating rows."""

    column: str
    value: Any

    kind = "set_default"

    def validate(self) -> None:
        _require_column(self.column, self.kind)


@dataclass(frozen=True)
class SetNull:
    """Set `column` to None on violating rows."""

    column: str

    kind = "set_null"

    def validate(self) -> None:
        _require_column(self.column, self.kind)


@dataclass(frozen=True)
class Clamp:
    """Pull out-of-range numeric values of violating rows to the nearest bound."""

    column: str
    minimum: float
    maximum: float

    kind = "clamp"

    def validate(self) -> None:
        _require_column(self.column, self.kind)
        for name, bound in (("minimum", self.minimum), ("maximum", self.maximum)):
            if (
                isinstance(bound, bool)
                or not isinstance(bound, (int, float))
                or math.isnan(bound)
            ):
                raise InvalidRuleError(
                    f"clamp {name} must be a number",
                    field=f"action.{name}",
                    value=bound,
                )
        if self.minimum > self.maximum:
            raise InvalidRuleError(
                f"clamp minimum {self.minimum} is greater than maximum {self.maximum}",
                field="action",
            )


@dataclass(frozen=True)
class FlagOnly:
    """Report violating rows without changing them."""

    kind = "flag_only"

    def validate(self) -> None:
        pass


@dataclass(frozen=True)
class LogOnly:
    """Log the violation count without changing any rows."""

    kind = "log_only"

    def validate(self) -> None:
        pass


@dataclass(frozen=True)
class MapValues:
    """Map `column` through a controlled vocabulary.

    Every row's value is translated with `mapping` (unmapped values are kept
    as-is); violating rows are set to `default`.
    """

    column: str
    mapping: Mapping[Any, Any] = field(default_factory=dict)
    default: Any = "Unknown"

    kind = "map_values"

    def validate(self) -> None:
        _require_column(self.column, self.kind)
        if not isinstance(self.mapping, Mapping):
            raise InvalidRuleError(
                "map_values action requires a mapping",
                field="action.mapping",
                value=self.mapping,
            )


@dataclass(frozen=True)
class Coalesce:
    """Fill `column` of violating rows from fallback columns, then a default.

    The first fallback holding a usable value wins. With `dates` set, a
    fallback is usable only when it parses as a date, and the filled value
    is that parsed timestamp.

    Example (updated_at falls back to created_at, then the epoch):
        Coalesce("updated_at", ("created_at",), "1970-01-01", dates=True)
    """

    column: str
    fallback_columns: Tuple[str, ...] = ()
    default: Any = None
    dates: bool = False

    kind = "coalesce"

    def __post_init__(self) -> None:
        if isinstance(self.fallback_columns, str):
            object.__setattr__(self, "fallback_columns", (self.fallback_columns,))
        elif isinstance(self.fallback_columns, (list, tuple)):
            object.__setattr__(self, "fallback_columns", tuple(self.fallback_columns))

    def validate(self) -> None:
        _require_column(self.column, self.kind)
        if not isinstance(self.fallback_columns, tuple):
            raise InvalidRuleError(
                "coalesce fallback_columns must be a list of column names",
                field="action.fallback_columns",
                value=self.fallback_columns,
            )
        for column in self.fallback_columns:
            _require_column(column, self.kind)
        if not self.fallback_columns and self.default is None:
            raise InvalidRuleError(
                "coalesce action requires fallback_columns or a default",
                field="action",
            )


@dataclass(frozen=True)
class Normalize:
    """Write normalized `column` values back to every row.

    String values are trimmed (`strip`) and case-folded (`case` is "upper"
    or "lower"). Violating rows are then dropped when `drop` is set, set to
    `default` when one is given, or kept in normalized form.
    """

    column: str
    strip: bool = True
    case: Optional[str] = None
    default: Any = None
    drop: bool = False

    kind = "normalize"

    def validate(self) -> None:
        _require_column(self.column, self.kind)
        if self.case not in (None, "upper", "lower"):
            raise InvalidRuleError(
                f"normalize case must be 'upper' or 'lower', got {self.case!r}",
                field="action.case",
                value=self.case,
            )
        if self.drop and self.default is not None:
            raise InvalidRuleError(
                "normalize action takes either drop or a default, not both",
                field="action",
            )

    def apply(self, value: Any) -> Any:
        return normalize_text(value, self.strip, self.case)


Action = Union[
    DropRows, SetDefault, SetNull, Clamp, FlagOnly, LogOnly, MapValues, Coalesce, Normalize
]

ACTION_TYPES: Tuple[type, ...] = (
    DropRows,
    SetDefault,
    SetNull,
    Clamp,
    FlagOnly,
    LogOnly,
    MapValues,
    Coalesce,
    Normalize,
)


@dataclass(frozen=True)
class RuleDefinition:
    """An immutable, validated data quality rule.

    `required_columns` defaults to the columns the predicate declares (its
    `columns` attribute). When `tolerate_missing` is set, absent columns read
    as null instead of failing the rule.
    """

    id: str
    target_table: str
    severity: Severity
    predicate: Callable[[Mapping[str, Any]], bool]
    action: Action
    description: str = ""
    required_columns: Optional[Tuple[str, ...]] = None
    tolerate_missing: bool = False

    def __post_init__(self) -> None:
        if not isinstance(self.id, str) or not self.id.strip():
            raise InvalidRuleError("Rule must have a non-empty 'id'", field="id", value=self.id)

        if not isinstance(self.target_table, str) or not self.target_table.strip():
            raise InvalidRuleError(
                f"Rule '{self.id}' must have a target table",
                rule_id=self.id,
                field="target_table",
                value=self.target_table,
            )

        try:
            severity = Severity.parse(self.severity)
        except InvalidRuleError as e:
            raise InvalidRuleError(
                e.message, rule_id=self.id, field="severity", value=self.severity
            ) from None
        object.__setattr__(self, "severity", severity)

        if not callable(self.predicate):
            raise InvalidRuleError(
                f"Rule '{self.id}' predicate is not callable",
                rule_id=self.id,
                field="predicate",
                value=self.predicate,
            )

        if not isinstance(self.action, ACTION_TYPES):
            raise InvalidRuleError(
                f"Rule '{self.id}' has an unknown action",
                rule_id=self.id,
                field="action",
                value=self.action,
            )
        try:
            self.action.validate()
        except InvalidRuleError as e:
            raise InvalidRuleError(
                e.message, rule_id=self.id, field=e.field, value=e.value
            ) from None

        if self.required_columns is None:
            declared = getattr(self.predicate, "columns", ())
            object.__setattr__(self, "required_columns", tuple(declared))
        else:
            object.__setattr__(self, "required_columns", tuple(self.required_columns))

        if self.description is None:
            object.__setattr__(self, "description", "")

    def __str__(self) -> str:
        return f"{self.id} [{self.severity.value}] {self.target_table}: {self.description}"

    def to_dict(self) -> Dict[str, Any]:
        """Describe the rule for reports and catalogs."""
        return {
            "id": self.id,
            "table": self.target_table,
            "severity": self.severity.value,
            "action": self.action.kind,
            "description": self.description,
            "required_columns": list(self.required_columns or ()),
            "tolerate_missing": self.tolerate_missing,
        }


def check_unique_ids(rules: Iterable[RuleDefinition]) -> List[RuleDefinition]:
    """Validate a rule list before a run.

    Raises:
        InvalidRuleError: If an entry is not a RuleDefinition or an id repeats
    """
    seen = set()
    checked: List[RuleDefinition] = []
    for rule in rules:
        if not isinstance(rule, RuleDefinition):
            raise InvalidRuleError(
                f"Expected RuleDefinition, got {type(rule).__name__}",
                field="rules",
                value=rule,
            )
        if rule.id in seen:
            raise InvalidRuleError(
                f"Duplicate rule id '{rule.id}'", rule_id=rule.id, field="id"
            )
        seen.add(rule.id)
        checked.append(rule)
    return checked
