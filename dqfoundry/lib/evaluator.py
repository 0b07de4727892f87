"""Predicate evaluation: turn a rule and a table state into a violation mask."""

from __future__ import annotations

import logging
from types import MappingProxyType
from typing import Any, Callable, List, Mapping, Optional, Sequence

from dqfoundry.lib.errors import (
    ColumnNotFoundError,
    PredicateEvaluationError,
    RuleEngineError,
)
from dqfoundry.lib.predicates import Predicate, TablePredicate
from dqfoundry.lib.rules import RuleDefinition
from dqfoundry.lib.table import columns_of

logger = logging.getLogger(__name__)

__all__ = ["check_required_columns", "evaluate_predicate"]


def check_required_columns(
    table: Sequence[Mapping[str, Any]],
    rule: RuleDefinition,
) -> None:
    """Raise ColumnNotFoundError for required columns absent from the table.

    An empty table has no observable schema and is never rejected. Rules
    with `tolerate_missing` read absent columns as null.
    """
    if rule.tolerate_missing or not table or not rule.required_columns:
        return
    available = columns_of(table)
    for column in rule.required_columns:
        if column not in available:
            raise ColumnNotFoundError(
                column,
                available=available,
                rule_id=rule.id,
                table=rule.target_table,
            )


def evaluate_predicate(
    table: Sequence[Mapping[str, Any]],
    rule: RuleDefinition,
    reference_tables: Optional[Mapping[str, Sequence[Mapping[str, Any]]]] = None,
) -> List[bool]:
    """Compute the violation mask of a rule over a table.

    The table is not modified; predicates only see read-only row views.

    Args:
        table: Current table state
        rule: Rule whose predicate to apply
        reference_tables: Lookup tables by name, for reference predicates

    Returns:
        One boolean per row, True where the row violates the rule

    Raises:
        ColumnNotFoundError: If a required column is missing
        PredicateEvaluationError: If the predicate raises for any reason
    """
    check_required_columns(table, rule)

    views = [MappingProxyType(row) for row in table]
    predicate = rule.predicate

    try:
        if isinstance(predicate, TablePredicate):
            mask = [bool(flag) for flag in predicate.evaluate_table(views)]
        else:
            row_fn: Callable[[Mapping[str, Any]], bool] = predicate
            if isinstance(predicate, Predicate):
                row_fn = predicate.bind(reference_tables or {})
            mask = [bool(row_fn(view)) for view in views]
    except ColumnNotFoundError:
        raise
    except PredicateEvaluationError as e:
        if e.rule_id is None:
            raise PredicateEvaluationError(
                e.message, cause=e.cause, rule_id=rule.id, table=rule.target_table
            ) from e
        raise
    except Exception as e:
        detail = e.message if isinstance(e, RuleEngineError) else str(e)
        raise PredicateEvaluationError(
            f"{type(e).__name__}: {detail}",
            cause=e,
            rule_id=rule.id,
            table=rule.target_table,
        ) from e

    if len(mask) != len(table):
        raise PredicateEvaluationError(
            f"predicate returned {len(mask)} results for {len(table)} rows",
            rule_id=rule.id,
            table=rule.target_table,
        )

    logger.debug(
        "Rule %s flagged %d/%d rows", rule.id, sum(mask), len(mask)
    )
    return mask
