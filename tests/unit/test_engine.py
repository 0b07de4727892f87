"""Tests for dqfoundry.lib.engine module."""

import logging
from concurrent.futures import ThreadPoolExecutor

import pytest

from dqfoundry.lib.engine import (
    RuleEngine,
    RuleVerdict,
    RunSummary,
    evaluate,
    evaluate_tables,
    format_pass_rate,
    submit_evaluation,
)
from dqfoundry.lib.errors import ConfigurationError, InvalidRuleError
from dqfoundry.lib.predicates import (
    Duplicate,
    Expression,
    ForeignKey,
    NotEmpty,
    NotNull,
    Positive,
)
from dqfoundry.lib.rules import (
    DropRows,
    FlagOnly,
    LogOnly,
    RuleDefinition,
    RuleStatus,
    SetDefault,
    Severity,
)


def _rule(rule_id, predicate, action=None, severity=Severity.ERROR, table="lease_master", **kwargs):
    return RuleDefinition(
        id=rule_id,
        target_table=table,
        severity=severity,
        predicate=predicate,
        action=action or FlagOnly(),
        **kwargs,
    )


def _never(row):
    return False


def _always(row):
    return True


# ============================================
# Pass rate
# ============================================


class TestFormatPassRate:
    """Tests for pass rate formatting."""

    def test_one_decimal(self):
        """Pass rates are rounded to one decimal place."""
        assert format_pass_rate(8, 10) == "80.0"
        assert format_pass_rate(1, 3) == "33.3"
        assert format_pass_rate(2, 3) == "66.7"

    def test_all_and_none(self):
        """All passing and none passing give 100.0 and 0.0."""
        assert format_pass_rate(4, 4) == "100.0"
        assert format_pass_rate(0, 4) == "0.0"

    def test_no_rules(self):
        """An empty run reports a 100.0 pass rate."""
        assert format_pass_rate(0, 0) == "100.0"


# ============================================
# RuleVerdict / RunSummary
# ============================================


class TestRuleVerdict:
    """Tests for RuleVerdict."""

    def test_passed_property(self):
        """passed is true only for pass verdicts."""
        assert RuleVerdict("R1", RuleStatus.PASS, 0, "ok").passed is True
        assert RuleVerdict("R1", RuleStatus.FAIL, 1, "bad").passed is False

    def test_to_dict(self):
        """Verdicts serialize with camelCase keys."""
        verdict = RuleVerdict(
            rule_id="L1",
            status=RuleStatus.FAIL,
            rows_affected=1,
            message="1 row failed validation and was dropped",
            severity=Severity.ERROR,
            action="drop_rows",
            table_name="lease_master",
            rows_before=8,
            rows_after=7,
        )
        data = verdict.to_dict()
        assert data["ruleId"] == "L1"
        assert data["status"] == "fail"
        assert data["rowsAffected"] == 1
        assert data["severity"] == "ERROR"
        assert data["rowsBefore"] == 8
        assert data["rowsAfter"] == 7
        assert data["error"] is None


class TestRunSummary:
    """Tests for RunSummary aggregation."""

    def _summary(self, statuses):
        verdicts = [
            RuleVerdict(f"R{i}", status, 0 if status == RuleStatus.PASS else 1, "")
            for i, status in enumerate(statuses)
        ]
        return RunSummary(table_name="lease_master", verdicts=verdicts)

    def test_pass_rate_eighty(self):
        """10 rules with 8 passes, 1 failure and 1 warning."""
        summary = self._summary(
            [RuleStatus.PASS] * 8 + [RuleStatus.FAIL, RuleStatus.WARNING]
        )
        counts = summary.counts()
        assert counts == {
            "total": 10,
            "passed": 8,
            "failed": 1,
            "warnings": 1,
            "passRate": "80.0",
        }
        assert summary.pass_rate == pytest.approx(80.0)

    def test_empty_summary(self):
        """A summary with no rules passes at 100.0."""
        summary = RunSummary(table_name="lease_master")
        assert summary.counts()["passRate"] == "100.0"
        assert summary.all_passed is True
        assert summary.has_failures is False

    def test_warnings_do_not_fail(self):
        """Warnings are not failures, but the run is not all-passed."""
        summary = self._summary([RuleStatus.PASS, RuleStatus.WARNING])
        assert summary.has_failures is False
        assert summary.all_passed is False

    def test_verdict_for(self):
        """Verdicts can be looked up by rule id."""
        summary = self._summary([RuleStatus.PASS, RuleStatus.FAIL])
        assert summary.verdict_for("R1").status == RuleStatus.FAIL
        assert summary.verdict_for("missing") is None

    def test_identity_fields_not_compared(self):
        """run_id and evaluated_at do not affect equality."""
        a = RunSummary(table_name="t", run_id="a", evaluated_at="2025-01-01T00:00:00Z")
        b = RunSummary(table_name="t", run_id="b", evaluated_at="2025-06-01T00:00:00Z")
        assert a == b

    def test_to_dict(self):
        """to_dict carries the summary counts and results."""
        summary = self._summary([RuleStatus.PASS])
        data = summary.to_dict()
        assert data["table"] == "lease_master"
        assert data["summary"]["passRate"] == "100.0"
        assert data["results"][0]["ruleId"] == "R0"
        assert "runId" in data and "evaluatedAt" in data

    def test_str(self):
        """str gives a one-line pass summary."""
        summary = self._summary([RuleStatus.PASS, RuleStatus.FAIL])
        assert "1/2 rules passed (50.0%)" in str(summary)


# ============================================
# Engine: ordered evaluation
# ============================================


class TestLeaseScenario:
    """End-to-end run over the eight sample lease rows."""

    def test_verdicts(self, lease_rows, lease_rules):
        """The four lease rules give the expected statuses and counts."""
        summary = evaluate(lease_rows, lease_rules)

        rows_affected = [v.rows_affected for v in summary.verdicts]
        statuses = [v.status for v in summary.verdicts]
        assert [v.rule_id for v in summary.verdicts] == [r.id for r in lease_rules]
        # the negative-rent row is the empty lease_id row, dropped by rule 1
        assert rows_affected == [1, 0, 1, 1]
        assert statuses == [
            RuleStatus.FAIL,
            RuleStatus.PASS,
            RuleStatus.FAIL,
            RuleStatus.WARNING,
        ]

    def test_row_counts(self, lease_rows, lease_rules):
        """Row counts before and after each rule follow the drops."""
        summary = evaluate(lease_rows, lease_rules)
        first = summary.verdict_for("L1_LEASE_ID_NOT_NULL")
        assert (first.rows_before, first.rows_after) == (8, 7)
        assert summary.input_rows == 8
        assert summary.output_rows == 6

    def test_invalid_status_set_to_unknown(self, lease_rows, lease_rules):
        """An invalid status is replaced with 'Unknown'."""
        summary = evaluate(lease_rows, lease_rules)
        row = next(r for r in summary.table if r["lease_id"] == "LSE008")
        assert row["status"] == "Unknown"

    def test_counts(self, lease_rows, lease_rules):
        """Run counts and pass rate for the lease rules."""
        counts = evaluate(lease_rows, lease_rules).counts()
        assert counts == {
            "total": 4,
            "passed": 1,
            "failed": 2,
            "warnings": 1,
            "passRate": "25.0",
        }

    def test_negative_rent_on_separate_row(self, lease_rows, lease_rules):
        """When the negative rent is not on the dropped row, rule 2 catches it."""
        lease_rows[2]["monthly_rent"] = 4000
        lease_rows[1]["monthly_rent"] = -500

        summary = evaluate(lease_rows, lease_rules)

        assert [v.rows_affected for v in summary.verdicts] == [1, 1, 1, 1]
        assert summary.output_rows == 5

    def test_input_not_modified(self, lease_rows, lease_rules):
        """Evaluation leaves the caller's rows untouched."""
        before = [dict(r) for r in lease_rows]
        evaluate(lease_rows, lease_rules)
        assert lease_rows == before

    def test_determinism(self, lease_rows, lease_rules, property_rows):
        """Repeated runs over the same input return equal summaries."""
        rules = lease_rules + [
            _rule(
                "L5_PROPERTY_FK_REF",
                ForeignKey("property_id", "property_master"),
                severity=Severity.WARN,
            )
        ]
        references = {"property_master": property_rows}
        first = evaluate(lease_rows, rules, references)
        second = evaluate(lease_rows, rules, references)
        assert first == second
        assert first.run_id != second.run_id


class TestVerdictInvariants:
    """Properties that hold for every verdict."""

    def test_rows_affected_zero_iff_pass(self, lease_rows, lease_rules):
        """A verdict passes exactly when no rows were affected."""
        for verdict in evaluate(lease_rows, lease_rules).verdicts:
            assert (verdict.rows_affected == 0) == (verdict.status == RuleStatus.PASS)

    def test_drop_rows_never_increases(self, lease_rows):
        """Row counts never grow across drop rules."""
        rules = [
            _rule("D1", NotEmpty("tenant_id"), DropRows()),
            _rule("D2", _never, DropRows()),
            _rule("D3", _always, DropRows()),
        ]
        summary = evaluate(lease_rows, rules)
        for verdict in summary.verdicts:
            assert verdict.rows_after <= verdict.rows_before
            assert verdict.rows_before - verdict.rows_after == verdict.rows_affected
        assert summary.output_rows == 0

    def test_non_drop_actions_keep_row_count(self, lease_rows):
        """Actions other than drops keep every row."""
        rules = [
            _rule("S1", NotEmpty("tenant_id"), SetDefault("tenant_id", "UNKNOWN")),
            _rule("S2", NotEmpty("property_id"), LogOnly(), severity=Severity.INFO),
        ]
        summary = evaluate(lease_rows, rules)
        assert summary.output_rows == len(lease_rows)
        assert [v.status for v in summary.verdicts] == [RuleStatus.FAIL, RuleStatus.WARNING]

    def test_info_and_warn_never_fail(self, lease_rows):
        """WARN and INFO rules produce warnings, never failures."""
        rules = [
            _rule("W1", _always, severity=Severity.WARN),
            _rule("I1", _always, severity=Severity.INFO),
        ]
        summary = evaluate(lease_rows, rules)
        assert summary.failed == 0
        assert summary.warnings == 2


class TestOrderSensitivity:
    """Each rule sees the state left by the rules before it."""

    ROWS = [
        {"id": "", "legacy_code": "bad"},
        {"id": "A"},
        {"id": "B"},
    ]

    def _rules(self):
        drop = _rule("A_DROP_EMPTY_ID", NotEmpty("id"), DropRows())
        legacy = _rule(
            "B_LEGACY_CODE",
            Expression(lambda r: r.get("legacy_code") == "bad", columns=["legacy_code"]),
            severity=Severity.WARN,
        )
        return drop, legacy

    def test_drop_first(self):
        """A drop rule run first hides the rows from later rules."""
        drop, legacy = self._rules()
        summary = evaluate([dict(r) for r in self.ROWS], [drop, legacy])
        verdict = summary.verdict_for("B_LEGACY_CODE")
        # the only row carrying legacy_code is gone
        assert verdict.status == RuleStatus.FAIL
        assert verdict.error == "ColumnNotFoundError"

    def test_drop_last(self):
        """Run before the drop, the legacy-code rule sees every row."""
        drop, legacy = self._rules()
        summary = evaluate([dict(r) for r in self.ROWS], [legacy, drop])
        verdict = summary.verdict_for("B_LEGACY_CODE")
        assert verdict.status == RuleStatus.WARNING
        assert verdict.rows_affected == 1

    def test_later_rule_sees_defaults(self):
        """A value set by one rule is visible to the next."""
        rules = [
            _rule("FILL", NotEmpty("status"), SetDefault("status", "Unknown"), severity=Severity.WARN),
            _rule("CHECK", NotEmpty("status")),
        ]
        summary = evaluate([{"status": None}, {"status": "Active"}], rules)
        assert summary.verdict_for("CHECK").status == RuleStatus.PASS


class TestFailureIsolation:
    """A broken rule yields a failing verdict and the run continues."""

    def test_missing_column(self, lease_rows):
        """A missing column fails only its own rule."""
        rules = [
            _rule("BROKEN", NotNull("lease_code"), DropRows(), severity=Severity.INFO),
            _rule("NEXT", NotEmpty("lease_id"), FlagOnly()),
        ]
        summary = evaluate(lease_rows, rules)

        broken = summary.verdict_for("BROKEN")
        assert broken.status == RuleStatus.FAIL
        assert broken.rows_affected == 0
        assert broken.message == "rule evaluation error: column 'lease_code' not found"
        assert broken.error == "ColumnNotFoundError"
        assert broken.rows_before == broken.rows_after == 8

        following = summary.verdict_for("NEXT")
        assert following.rows_affected == 1
        assert summary.output_rows == 8

    def test_tolerated_missing_column_reads_null(self, lease_rows):
        """With tolerate_missing an absent column reads as null."""
        rules = [_rule("TOLERANT", NotNull("lease_code"), FlagOnly(), tolerate_missing=True)]
        verdict = evaluate(lease_rows, rules).verdicts[0]
        assert verdict.rows_affected == 8
        assert verdict.error is None

    def test_predicate_exception(self, lease_rows):
        """A predicate that raises fails its rule and the next rule still runs."""
        def boom(row):
            raise KeyError("monthly_rent_usd")

        rules = [
            _rule("BOOM", boom, DropRows()),
            _rule("AFTER", Positive("monthly_rent"), DropRows()),
        ]
        summary = evaluate(lease_rows, rules)
        assert summary.verdict_for("BOOM").error == "PredicateEvaluationError"
        assert summary.verdict_for("BOOM").message.startswith("rule evaluation error: KeyError")
        assert summary.verdict_for("AFTER").rows_affected == 1

    def test_missing_reference_table(self, lease_rows):
        """A foreign key without its reference table fails the rule."""
        rules = [_rule("FK", ForeignKey("property_id", "property_master"))]
        verdict = evaluate(lease_rows, rules).verdicts[0]
        assert verdict.status == RuleStatus.FAIL
        assert "was not provided" in verdict.message

    def test_engine_error_in_predicate(self):
        """Engine errors raised inside a predicate stay inside their rule."""

        def misconfigured(row):
            raise ConfigurationError("lookup misconfigured")

        rules = [_rule("BAD", misconfigured), _rule("NEXT", _never)]
        summary = evaluate([{"a": 1}], rules)

        assert [v.rule_id for v in summary.verdicts] == ["BAD", "NEXT"]
        bad = summary.verdict_for("BAD")
        assert bad.status == RuleStatus.FAIL
        assert bad.rows_affected == 0
        assert bad.error == "PredicateEvaluationError"
        assert bad.message == "rule evaluation error: ConfigurationError: lookup misconfigured"
        assert summary.verdict_for("NEXT").status == RuleStatus.PASS

    def test_invalid_rule_error_in_predicate(self, lease_rows):
        """An InvalidRuleError from a predicate does not abort the run."""

        def invalid(row):
            raise InvalidRuleError("bad threshold")

        rules = [_rule("BAD", invalid, DropRows()), _rule("AFTER", NotEmpty("lease_id"), DropRows())]
        summary = evaluate(lease_rows, rules)
        assert summary.verdict_for("BAD").status == RuleStatus.FAIL
        assert summary.verdict_for("AFTER").rows_affected == 1
        assert summary.output_rows == 7


# ============================================
# RuleEngine
# ============================================


class TestRuleEngine:
    """Tests for the RuleEngine class."""

    def test_duplicate_ids_rejected(self):
        """The engine refuses duplicate rule ids."""
        with pytest.raises(InvalidRuleError):
            RuleEngine([_rule("R1", _never), _rule("R1", _always)])

    def test_tables_and_rules_for(self):
        """The engine lists its tables and their rules in order."""
        engine = RuleEngine(
            [
                _rule("L1", _never),
                _rule("P1", _never, table="property_master"),
                _rule("L2", _never),
            ]
        )
        assert engine.rule_count == 3
        assert engine.tables == ["lease_master", "property_master"]
        assert [r.id for r in engine.rules_for("lease_master")] == ["L1", "L2"]

    def test_only_rules_for_table_run(self):
        """Rules for other tables are skipped."""
        engine = RuleEngine(
            [_rule("L1", _always), _rule("P1", _always, table="property_master")]
        )
        summary = engine.evaluate([{"x": 1}], "property_master")
        assert [v.rule_id for v in summary.verdicts] == ["P1"]
        assert summary.table_name == "property_master"

    def test_default_table_is_first_rule_target(self):
        """Without a table name the first rule's table is used."""
        summary = RuleEngine([_rule("L1", _never)]).evaluate([{"x": 1}])
        assert summary.table_name == "lease_master"

    def test_no_rules(self):
        """An engine with no rules passes at 100.0."""
        summary = RuleEngine([]).evaluate([{"x": 1}])
        assert summary.verdicts == []
        assert summary.counts()["passRate"] == "100.0"
        assert summary.table == [{"x": 1}]

    def test_empty_table(self):
        """Rules over an empty table pass."""
        summary = RuleEngine([_rule("L1", NotEmpty("lease_id"), DropRows())]).evaluate([])
        assert summary.verdicts[0].status == RuleStatus.PASS

    def test_survivorship(self):
        """Duplicate plus drop keeps the latest row per key."""
        rows = [
            {"tenant_id": "T1", "updated_at": "2024-01-01", "name": "old"},
            {"tenant_id": "T1", "updated_at": "2024-06-01", "name": "new"},
            {"tenant_id": "T2", "updated_at": "2024-01-01", "name": "other"},
        ]
        rule = _rule(
            "T1_DEDUPE",
            Duplicate(["tenant_id"], order_by="updated_at"),
            DropRows(),
            severity=Severity.WARN,
            table="tenant_master",
        )
        summary = RuleEngine([rule]).evaluate(rows)
        assert summary.verdicts[0].rows_affected == 1
        assert [r["name"] for r in summary.table] == ["new", "other"]

    def test_logs_metrics(self, lease_rows, lease_rules, caplog):
        """Each rule logs a rows_failed metric tagged with the run id."""
        with caplog.at_level(logging.DEBUG, logger="dqfoundry"):
            summary = evaluate(lease_rows, lease_rules)

        metrics = [r for r in caplog.records if getattr(r, "metric_name", None) == "rows_failed"]
        assert [r.rule for r in metrics] == [r.id for r in lease_rules]
        assert all(r.run_id == summary.run_id for r in metrics)
        assert any(
            r.levelno == logging.ERROR and "L1_LEASE_ID_NOT_NULL" in r.getMessage()
            for r in caplog.records
        )


# ============================================
# Concurrent evaluation
# ============================================


class TestConcurrentEvaluation:
    """Independent tables may be evaluated in parallel."""

    def test_evaluate_tables(self, lease_rows, property_rows):
        """Independent tables are evaluated with their own rules."""
        rules = [
            _rule("L1", NotEmpty("lease_id"), DropRows()),
            _rule("L5", ForeignKey("property_id", "property_master"), severity=Severity.WARN),
            _rule("P1", NotEmpty("country"), table="property_master"),
        ]
        results = evaluate_tables(
            {"lease_master": lease_rows, "property_master": property_rows},
            rules,
            reference_tables={"property_master": property_rows},
            max_workers=2,
        )

        assert list(results) == ["lease_master", "property_master"]
        assert [v.rule_id for v in results["lease_master"].verdicts] == ["L1", "L5"]
        assert results["lease_master"].verdict_for("L5").rows_affected == 1
        assert results["property_master"].all_passed

    def test_matches_sequential_runs(self, lease_rows, lease_rules):
        """Parallel results equal a sequential run."""
        tables = {"lease_master": lease_rows}
        parallel = evaluate_tables(tables, lease_rules, max_workers=0)
        assert parallel["lease_master"] == evaluate(lease_rows, lease_rules)

    def test_submit_evaluation(self, lease_rows, lease_rules):
        """A submitted evaluation resolves to a summary."""
        with ThreadPoolExecutor(max_workers=1) as executor:
            future = submit_evaluation(executor, lease_rows, lease_rules)
            summary = future.result(timeout=30)
        assert summary.counts()["passRate"] == "25.0"

    def test_submit_validates_rules_up_front(self, lease_rows):
        """Invalid rules are rejected before submission."""
        with ThreadPoolExecutor(max_workers=1) as executor:
            with pytest.raises(InvalidRuleError):
                submit_evaluation(executor, lease_rows, [_rule("R", _never), _rule("R", _never)])
