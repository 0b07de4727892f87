"""Rule engine library modules.

This package contains the rule model, the predicate library, the
evaluation engine and the helpers around it (rule-set loading, table I/O,
reporting and the rule catalog).
"""

from dqfoundry.lib.actions import apply_action, describe_action
from dqfoundry.lib.catalog import CatalogEntry, RuleCatalog
from dqfoundry.lib.config_loader import (
    RuleSet,
    build_action,
    build_predicate,
    load_rule_set,
    load_rules,
    rule_from_dict,
    rules_from_config,
    validate_rule_file,
)
from dqfoundry.lib.engine import (
    RuleEngine,
    RuleVerdict,
    RunSummary,
    evaluate,
    evaluate_tables,
    format_pass_rate,
    submit_evaluation,
)
from dqfoundry.lib.errors import (
    ColumnNotFoundError,
    ConfigurationError,
    InvalidRuleError,
    PredicateEvaluationError,
    RuleEngineError,
)
from dqfoundry.lib.evaluator import check_required_columns, evaluate_predicate
from dqfoundry.lib.io import (
    read_table,
    read_tables,
    table_from_dataframe,
    table_to_dataframe,
    write_table,
)
from dqfoundry.lib.predicates import (
    AllowedValues,
    DateRange,
    Duplicate,
    Expression,
    ForeignKey,
    MatchesPattern,
    NotEmpty,
    NotNull,
    NumericRange,
    Positive,
    Predicate,
    TablePredicate,
    ValidDate,
)
from dqfoundry.lib.reporter import (
    RunLogEntry,
    build_run_log,
    combine_counts,
    format_run_log,
    format_run_summary,
    log_run_summary,
)
from dqfoundry.lib.rules import (
    Action,
    Clamp,
    Coalesce,
    DropRows,
    FlagOnly,
    LogOnly,
    MapValues,
    Normalize,
    RuleDefinition,
    RuleStatus,
    SetDefault,
    SetNull,
    Severity,
)

__all__ = [
    # Rules
    "Action",
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
    # Predicates
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
    # Evaluation
    "apply_action",
    "check_required_columns",
    "describe_action",
    "evaluate_predicate",
    "RuleEngine",
    "RuleVerdict",
    "RunSummary",
    "evaluate",
    "evaluate_tables",
    "format_pass_rate",
    "submit_evaluation",
    # Errors
    "ColumnNotFoundError",
    "ConfigurationError",
    "InvalidRuleError",
    "PredicateEvaluationError",
    "RuleEngineError",
    # Rule sets
    "RuleSet",
    "build_action",
    "build_predicate",
    "load_rule_set",
    "load_rules",
    "rule_from_dict",
    "rules_from_config",
    "validate_rule_file",
    # I/O
    "read_table",
    "read_tables",
    "table_from_dataframe",
    "table_to_dataframe",
    "write_table",
    # Reporting
    "RunLogEntry",
    "build_run_log",
    "combine_counts",
    "format_run_log",
    "format_run_summary",
    "log_run_summary",
    # Catalog
    "CatalogEntry",
    "RuleCatalog",
]
