"""Rule evaluation engine.

Runs an ordered list of rules against one table. Each rule sees the table
as left by the rules before it (a dropped row is gone for every later
rule), so declaration order is execution order and is never changed.

Usage:
```python
from dqfoundry.lib.engine import evaluate

summary = evaluate(rows, rules, reference_tables={"property_master": props})
for verdict in summary.verdicts:
    print(verdict.rule_id, verdict.status.value, verdict.rows_affected)
print(summary.counts())  # {"total": 4, "passed": 1, ..., "passRate": "25.0"}
```

A rule whose predicate fails (missing column, broken reference table, a
bug in a custom predicate) gets a failing verdict and the run continues
with the table unchanged.
"""

from __future__ import annotations

import logging
import uuid
from concurrent.futures import Executor, Future, ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from dqfoundry.lib.actions import apply_action, describe_action
from dqfoundry.lib.errors import ColumnNotFoundError, PredicateEvaluationError
from dqfoundry.lib.evaluator import evaluate_predicate
from dqfoundry.lib.logging import get_run_logger
from dqfoundry.lib.rules import RuleDefinition, RuleStatus, Severity, check_unique_ids
from dqfoundry.lib.table import Table, copy_table

logger = logging.getLogger(__name__)

__all__ = [
    "RuleEngine",
    "RuleVerdict",
    "RunSummary",
    "evaluate",
    "evaluate_tables",
    "format_pass_rate",
    "submit_evaluation",
]

ReferenceTables = Mapping[str, Sequence[Mapping[str, Any]]]


def format_pass_rate(passed: int, total: int) -> str:
    """passed/total*100 with one decimal; "100.0" when nothing ran."""
    if total == 0:
        return "100.0"
    return f"{passed / total * 100:.1f}"


@dataclass(frozen=True)
class RuleVerdict:
    """Outcome of evaluating one rule against one table state."""

    rule_id: str
    status: RuleStatus
    rows_affected: int
    message: str
    severity: Severity = Severity.ERROR
    action: str = ""
    table_name: str = ""
    rows_before: int = 0
    rows_after: int = 0
    error: Optional[str] = None

    @property
    def passed(self) -> bool:
        return self.status == RuleStatus.PASS

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the dictionary shape consumed by presentation layers."""
        return {
            "ruleId": self.rule_id,
            "status": self.status.value,
            "rowsAffected": self.rows_affected,
            "message": self.message,
            "severity": self.severity.value,
            "action": self.action,
            "table": self.table_name,
            "rowsBefore": self.rows_before,
            "rowsAfter": self.rows_after,
            "error": self.error,
        }


@dataclass
class RunSummary:
    """Verdicts of one run plus the final table state.

    `run_id` and `evaluated_at` identify the run and do not take part in
    equality, so repeated runs over the same input compare equal.
    """

    table_name: str
    verdicts: List[RuleVerdict] = field(default_factory=list)
    table: Table = field(default_factory=list)
    input_rows: int = 0
    run_id: str = field(default_factory=lambda: uuid.uuid4().hex[:12], compare=False)
    evaluated_at: str = field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
        compare=False,
    )

    @property
    def total(self) -> int:
        return len(self.verdicts)

    @property
    def passed(self) -> int:
        return sum(1 for v in self.verdicts if v.status == RuleStatus.PASS)

    @property
    def failed(self) -> int:
        return sum(1 for v in self.verdicts if v.status == RuleStatus.FAIL)

    @property
    def warnings(self) -> int:
        return sum(1 for v in self.verdicts if v.status == RuleStatus.WARNING)

    @property
    def pass_rate(self) -> float:
        """Percentage of rules that passed."""
        if self.total == 0:
            return 100.0
        return self.passed / self.total * 100

    @property
    def all_passed(self) -> bool:
        return self.passed == self.total

    @property
    def has_failures(self) -> bool:
        return self.failed > 0

    @property
    def output_rows(self) -> int:
        return len(self.table)

    def verdict_for(self, rule_id: str) -> Optional[RuleVerdict]:
        for verdict in self.verdicts:
            if verdict.rule_id == rule_id:
                return verdict
        return None

    def counts(self) -> Dict[str, Any]:
        """Run-level aggregate: total, passed, failed, warnings, passRate."""
        return {
            "total": self.total,
            "passed": self.passed,
            "failed": self.failed,
            "warnings": self.warnings,
            "passRate": format_pass_rate(self.passed, self.total),
        }

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization (without the rows)."""
        return {
            "runId": self.run_id,
            "evaluatedAt": self.evaluated_at,
            "table": self.table_name,
            "inputRows": self.input_rows,
            "outputRows": self.output_rows,
            "summary": self.counts(),
            "results": [v.to_dict() for v in self.verdicts],
        }

    def __str__(self) -> str:
        counts = self.counts()
        return (
            f"{self.table_name}: {counts['passed']}/{counts['total']} rules passed "
            f"({counts['passRate']}%), {counts['failed']} failed, "
            f"{counts['warnings']} warnings; {self.input_rows} -> {self.output_rows} rows"
        )


class RuleEngine:
    """Evaluates a fixed, ordered rule list against tables.

    Rules are validated on construction (duplicate ids or non-rule entries
    raise InvalidRuleError). Reference tables are read-only and may be
    shared across concurrent runs.
    """

    def __init__(
        self,
        rules: Sequence[RuleDefinition],
        reference_tables: Optional[ReferenceTables] = None,
    ):
        self.rules: List[RuleDefinition] = check_unique_ids(rules)
        self.reference_tables: Dict[str, Sequence[Mapping[str, Any]]] = dict(
            reference_tables or {}
        )
        logger.debug("RuleEngine initialized with %d rules", len(self.rules))

    @property
    def rule_count(self) -> int:
        return len(self.rules)

    @property
    def tables(self) -> List[str]:
        """Target tables in first-seen order."""
        seen: List[str] = []
        for rule in self.rules:
            if rule.target_table not in seen:
                seen.append(rule.target_table)
        return seen

    def rules_for(self, table_name: str) -> List[RuleDefinition]:
        return [r for r in self.rules if r.target_table == table_name]

    def evaluate(
        self,
        table: Sequence[Mapping[str, Any]],
        table_name: Optional[str] = None,
    ) -> RunSummary:
        """Run every rule for `table_name` in declaration order.

        Args:
            table: Input rows; never modified
            table_name: Table the rows belong to; defaults to the first
                rule's target table

        Returns:
            RunSummary with one verdict per rule targeting the table
        """
        if table_name is None:
            table_name = self.rules[0].target_table if self.rules else ""

        summary = RunSummary(table_name=table_name, input_rows=len(table))
        run_log = get_run_logger(__name__)
        run_log.set_context(run_id=summary.run_id, table=table_name)

        state: Table = copy_table(table)
        skipped = 0

        for rule in self.rules:
            if rule.target_table != table_name:
                skipped += 1
                continue
            verdict, state = self._run_rule(rule, state, table_name)
            summary.verdicts.append(verdict)
            _log_verdict(run_log, rule, verdict)

        summary.table = state

        if skipped:
            run_log.debug("Skipped %d rules targeting other tables", skipped)
        run_log.info("Evaluation complete: %s", summary)
        return summary

    def _run_rule(
        self,
        rule: RuleDefinition,
        state: Table,
        table_name: str,
    ) -> Tuple[RuleVerdict, Table]:
        rows_before = len(state)
        try:
            mask = evaluate_predicate(state, rule, self.reference_tables)
        except (ColumnNotFoundError, PredicateEvaluationError) as e:
            verdict = RuleVerdict(
                rule_id=rule.id,
                status=RuleStatus.FAIL,
                rows_affected=0,
                message=f"rule evaluation error: {e.message}",
                severity=rule.severity,
                action=rule.action.kind,
                table_name=table_name,
                rows_before=rows_before,
                rows_after=rows_before,
                error=type(e).__name__,
            )
            return verdict, state

        next_state, rows_affected = apply_action(state, mask, rule.action)
        verdict = RuleVerdict(
            rule_id=rule.id,
            status=RuleStatus.from_result(rows_affected, rule.severity),
            rows_affected=rows_affected,
            message=describe_action(rule.action, rows_affected),
            severity=rule.severity,
            action=rule.action.kind,
            table_name=table_name,
            rows_before=rows_before,
            rows_after=len(next_state),
        )
        return verdict, next_state


def _log_verdict(run_log: Any, rule: RuleDefinition, verdict: RuleVerdict) -> None:
    if verdict.error:
        run_log.warning("Rule %s could not be evaluated: %s", rule.id, verdict.message)
        return

    run_log.metric(
        "rows_failed",
        verdict.rows_affected,
        rule=rule.id,
        severity=rule.severity.value,
        action=verdict.action,
    )
    if verdict.status == RuleStatus.FAIL:
        run_log.error("Rule %s failed: %s", rule.id, verdict.message)
    elif verdict.status == RuleStatus.WARNING:
        run_log.warning("Rule %s warning: %s", rule.id, verdict.message)
    else:
        run_log.debug("Rule %s passed", rule.id)


def evaluate(
    table: Sequence[Mapping[str, Any]],
    rules: Sequence[RuleDefinition],
    reference_tables: Optional[ReferenceTables] = None,
    table_name: Optional[str] = None,
) -> RunSummary:
    """Evaluate rules against a table.

    Pure with respect to its inputs: the table and reference tables are not
    modified and repeated calls return equal summaries.

    Args:
        table: Input rows
        rules: Rules in execution order
        reference_tables: Lookup tables by name (for ForeignKey predicates)
        table_name: Table the rows belong to; defaults to the first rule's
            target table

    Returns:
        RunSummary with verdicts, counts and the final table

    Raises:
        InvalidRuleError: If the rule list is malformed
    """
    return RuleEngine(rules, reference_tables).evaluate(table, table_name)


def evaluate_tables(
    tables: Mapping[str, Sequence[Mapping[str, Any]]],
    rules: Sequence[RuleDefinition],
    reference_tables: Optional[ReferenceTables] = None,
    max_workers: int = 4,
) -> Dict[str, RunSummary]:
    """Evaluate independent tables concurrently.

    Each table runs its own rules sequentially; different tables share
    nothing but the read-only reference tables.

    Args:
        tables: Rows by table name
        rules: All rules; each table runs the ones targeting it
        reference_tables: Lookup tables by name
        max_workers: Maximum number of parallel workers

    Returns:
        RunSummary by table name, in the order of `tables`
    """
    engine = RuleEngine(rules, reference_tables)
    if max_workers <= 0:
        max_workers = 1

    logger.info(
        "Starting parallel evaluation with %d workers for %d tables",
        max_workers,
        len(tables),
    )

    results: Dict[str, RunSummary] = {}
    with ThreadPoolExecutor(max_workers=max_workers) as executor:
        future_to_name = {
            executor.submit(engine.evaluate, rows, name): name
            for name, rows in tables.items()
        }
        for future in as_completed(future_to_name):
            name = future_to_name[future]
            results[name] = future.result()

    failed = sum(1 for s in results.values() if s.has_failures)
    logger.info(
        "Parallel evaluation complete: %d tables, %d with failures",
        len(results),
        failed,
    )
    return {name: results[name] for name in tables}


def submit_evaluation(
    executor: Executor,
    table: Sequence[Mapping[str, Any]],
    rules: Sequence[RuleDefinition],
    reference_tables: Optional[ReferenceTables] = None,
    table_name: Optional[str] = None,
) -> "Future[RunSummary]":
    """Start an evaluation in the background and return its Future.

    The rule list is validated before submission, so malformed rules raise
    immediately. Use `future.result(timeout=...)` to bound the wait; a run
    that times out is abandoned, not resumed.
    """
    engine = RuleEngine(rules, reference_tables)
    return executor.submit(engine.evaluate, table, table_name)
