"""Reporting for evaluation runs.

Provides:
- RunLogEntry: one line of the DQ run log (rule, severity, metric, action)
- build_run_log / format_run_log: the run log for a summary
- format_run_summary: human-readable report
- combine_counts: aggregate counts across several table runs
- log_run_summary: emit a summary at appropriate log levels
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from typing import Any, Dict, Iterable, List

from dqfoundry.lib.engine import RunSummary, format_pass_rate
from dqfoundry.lib.rules import RuleStatus

logger = logging.getLogger(__name__)

__all__ = [
    "RunLogEntry",
    "build_run_log",
    "combine_counts",
    "format_run_log",
    "format_run_summary",
    "log_run_summary",
]

RUN_LOG_COLUMNS = (
    "timestamp",
    "run_id",
    "table",
    "rule",
    "severity",
    "metric_name",
    "metric_value",
    "action",
)


@dataclass(frozen=True)
class RunLogEntry:
    """One DQ run-log record."""

    timestamp: str
    run_id: str
    table: str
    rule: str
    severity: str
    metric_name: str
    metric_value: int
    action: str

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    def to_line(self, sep: str = " | ") -> str:
        return sep.join(str(getattr(self, name)) for name in RUN_LOG_COLUMNS)


def build_run_log(summary: RunSummary) -> List[RunLogEntry]:
    """One entry per verdict, in execution order.

    Evaluation errors are logged with metric "evaluation_error".
    """
    entries = []
    for verdict in summary.verdicts:
        entries.append(
            RunLogEntry(
                timestamp=summary.evaluated_at,
                run_id=summary.run_id,
                table=summary.table_name,
                rule=verdict.rule_id,
                severity=verdict.severity.value,
                metric_name="evaluation_error" if verdict.error else "rows_failed",
                metric_value=verdict.rows_affected,
                action=verdict.action,
            )
        )
    return entries


def format_run_log(entries: Iterable[RunLogEntry]) -> str:
    """Render run-log entries as a header line plus one line per entry."""
    lines = [" | ".join(RUN_LOG_COLUMNS)]
    lines.extend(entry.to_line() for entry in entries)
    return "\n".join(lines)


def combine_counts(summaries: Iterable[RunSummary]) -> Dict[str, Any]:
    """Aggregate counts across runs of several tables."""
    total = passed = failed = warnings = 0
    for summary in summaries:
        total += summary.total
        passed += summary.passed
        failed += summary.failed
        warnings += summary.warnings
    return {
        "total": total,
        "passed": passed,
        "failed": failed,
        "warnings": warnings,
        "passRate": format_pass_rate(passed, total),
    }


def format_run_summary(summary: RunSummary) -> str:
    """Format a run summary as a human-readable report."""
    counts = summary.counts()
    lines = [
        "=" * 60,
        f"DATA QUALITY REPORT: {summary.table_name}",
        "=" * 60,
        f"Run: {summary.run_id} at {summary.evaluated_at}",
        f"Rows: {summary.input_rows} in, {summary.output_rows} out",
        f"Rules Evaluated: {counts['total']}",
        "",
        f"Results: {counts['passed']} passed, {counts['failed']} failed, "
        f"{counts['warnings']} warnings ({counts['passRate']}% pass rate)",
        "",
    ]

    for verdict in summary.verdicts:
        lines.append(
            f"  [{verdict.status.value.upper():7}] {verdict.rule_id} "
            f"({verdict.severity.value}, {verdict.action})"
        )
        lines.append(f"    {verdict.message}")
    if summary.verdicts:
        lines.append("")

    if summary.all_passed:
        lines.append("STATUS: ALL RULES PASSED")
    elif summary.has_failures:
        lines.append("STATUS: FAILED (errors detected)")
    else:
        lines.append("STATUS: PASSED WITH WARNINGS")

    lines.append("=" * 60)
    return "\n".join(lines)


def log_run_summary(summary: RunSummary) -> None:
    """Log a run summary at appropriate levels."""
    if summary.all_passed:
        logger.info(
            "Quality check passed: %d rules, %d rows (%s)",
            summary.total,
            summary.input_rows,
            summary.table_name,
        )
        return

    for verdict in summary.verdicts:
        if verdict.status == RuleStatus.FAIL:
            logger.error(
                "Quality rule failed [%s]: %s", verdict.rule_id, verdict.message
            )
        elif verdict.status == RuleStatus.WARNING:
            logger.warning(
                "Quality rule warning [%s]: %s", verdict.rule_id, verdict.message
            )
