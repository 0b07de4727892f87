"""Structured exception hierarchy for the rule engine.

Provides specific exception types for the failure modes of rule
construction and evaluation, with rich context for debugging.

Propagation:
- InvalidRuleError and ConfigurationError surface to the caller and
  prevent a run from starting.
- ColumnNotFoundError and PredicateEvaluationError are raised per rule and
  turned into a failing verdict by the engine; the run continues.
"""

from __future__ import annotations

from typing import Any, Dict, Iterable, Optional

__all__ = [
    "RuleEngineError",
    "InvalidRuleError",
    "ColumnNotFoundError",
    "PredicateEvaluationError",
    "ConfigurationError",
]


class RuleEngineError(Exception):
    """Base exception for all rule engine errors.

    Provides structured error information for debugging.
    """

    def __init__(
        self,
        message: str,
        *,
        rule_id: Optional[str] = None,
        table: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        suggestion: Optional[str] = None,
    ) -> None:
        self.message = message
        self.rule_id = rule_id
        self.table = table
        self.details = details or {}
        self.suggestion = suggestion

        parts = [message]

        if rule_id or table:
            context = f"{table or '?'}.{rule_id or '?'}"
            parts.insert(0, f"[{context}]")

        if details:
            detail_lines = [f"  {k}: {v}" for k, v in details.items()]
            parts.append("\nDetails:")
            parts.extend(detail_lines)

        if suggestion:
            parts.append(f"\nSuggestion: {suggestion}")

        super().__init__("\n".join(parts) if len(parts) > 1 else message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for structured logging."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "rule_id": self.rule_id,
            "table": self.table,
            "details": self.details,
            "suggestion": self.suggestion,
        }


class InvalidRuleError(RuleEngineError):
    """A rule definition is malformed.

    Raised at construction time, before any run starts.
    """

    def __init__(
        self,
        message: str,
        *,
        field: Optional[str] = None,
        value: Any = None,
        **kwargs: Any,
    ) -> None:
        self.field = field
        self.value = value

        details = kwargs.pop("details", {})
        if field:
            details["field"] = field
        if value is not None:
            details["value"] = repr(value)

        super().__init__(message, details=details, **kwargs)


class ColumnNotFoundError(RuleEngineError):
    """A column required by a rule is absent from the table.

    Raised when the rule does not tolerate missing columns.
    """

    def __init__(
        self,
        column: str,
        *,
        available: Optional[Iterable[str]] = None,
        **kwargs: Any,
    ) -> None:
        self.column = column
        self.available = sorted(available) if available is not None else []

        details = kwargs.pop("details", {})
        details["column"] = column
        if available is not None:
            details["available_columns"] = ", ".join(self.available) or "(none)"

        suggestion = kwargs.pop("suggestion", None)
        if not suggestion:
            suggestion = (
                "Check the column name, or set tolerate_missing on the rule "
                "to treat the column as null."
            )

        super().__init__(
            f"column '{column}' not found",
            details=details,
            suggestion=suggestion,
            **kwargs,
        )


class PredicateEvaluationError(RuleEngineError):
    """A predicate raised while evaluating a row set."""

    def __init__(
        self,
        message: str,
        *,
        cause: Optional[BaseException] = None,
        **kwargs: Any,
    ) -> None:
        self.cause = cause

        details = kwargs.pop("details", {})
        if cause is not None:
            details["cause"] = str(cause)
            details["cause_type"] = type(cause).__name__

        super().__init__(message, details=details, **kwargs)


class ConfigurationError(RuleEngineError):
    """Error in a rule-set file or command-line configuration."""

    def __init__(
        self,
        message: str,
        *,
        field: Optional[str] = None,
        value: Any = None,
        **kwargs: Any,
    ) -> None:
        self.field = field
        self.value = value

        details = kwargs.pop("details", {})
        if field:
            details["field"] = field
        if value is not None:
            details["value"] = str(value)

        super().__init__(message, details=details, **kwargs)
