"""YAML rule-set loader.

Rule sets are kept outside the engine and loaded from YAML files, so data
engineers can maintain rules without writing Python.

Example YAML (lease_master_rules.yaml):
    reference_tables:
      property_master: ./property_master.csv

    rules:
      - id: L1_LEASE_ID_NOT_NULL
        table: lease_master
        severity: ERROR
        description: lease_id must be present (non-null, non-empty)
        check: {type: not_empty, column: lease_id}
        action: drop_rows

      - id: L4_STATUS_ALLOWED
        table: lease_master
        severity: WARN
        check:
          type: allowed_values
          column: status
          values: [Active, Pending, Expired, Terminated]
        action: {type: set_default, column: status, value: Unknown}

Usage:
    from dqfoundry.lib.config_loader import load_rule_set
    rule_set = load_rule_set("./rules/lease_master_rules.yaml")
    summary = evaluate(rows, rule_set.rules)
"""

from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Union

import yaml

from dqfoundry.lib.env import expand_options
from dqfoundry.lib.errors import ConfigurationError, InvalidRuleError
from dqfoundry.lib.predicates import (
    AllowedValues,
    DateRange,
    Duplicate,
    ForeignKey,
    MatchesPattern,
    NotEmpty,
    NotNull,
    NumericRange,
    Positive,
    Predicate,
    ValidDate,
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
    SetDefault,
    SetNull,
    check_unique_ids,
)

logger = logging.getLogger(__name__)

__all__ = [
    "RuleSet",
    "build_action",
    "build_predicate",
    "load_rule_set",
    "load_rules",
    "rule_from_dict",
    "rules_from_config",
    "validate_rule_file",
]


def _need(options: Dict[str, Any], key: str, kind: str) -> Any:
    if key not in options or options[key] is None:
        raise InvalidRuleError(f"{kind} check requires '{key}'", field=f"check.{key}")
    return options[key]


def _column(options: Dict[str, Any], kind: str) -> str:
    return _need(options, "column", kind)


# Mapping from YAML check type to predicate builder
PREDICATE_BUILDERS: Dict[str, Callable[[Dict[str, Any]], Predicate]] = {
    "not_null": lambda s: NotNull(_column(s, "not_null")),
    "not_empty": lambda s: NotEmpty(_column(s, "not_empty")),
    "positive": lambda s: Positive(
        _column(s, "positive"),
        unparsable_passes=bool(s.get("unparsable_passes", False)),
    ),
    "non_negative": lambda s: Positive(
        _column(s, "non_negative"),
        allow_zero=True,
        unparsable_passes=bool(s.get("unparsable_passes", False)),
    ),
    "numeric_range": lambda s: NumericRange(
        _column(s, "numeric_range"),
        s.get("min"),
        s.get("max"),
        unparsable_passes=bool(s.get("unparsable_passes", False)),
    ),
    "valid_date": lambda s: ValidDate(
        _column(s, "valid_date"), s.get("min_date"), s.get("max_date")
    ),
    "date_range": lambda s: DateRange(
        _need(s, "start_column", "date_range"), _need(s, "end_column", "date_range")
    ),
    "allowed_values": lambda s: AllowedValues(
        _column(s, "allowed_values"),
        _need(s, "values", "allowed_values"),
        strip=bool(s.get("strip", False)),
        case=s.get("case"),
    ),
    "matches_pattern": lambda s: MatchesPattern(
        _column(s, "matches_pattern"),
        _need(s, "pattern", "matches_pattern"),
        allow_empty=bool(s.get("allow_empty", False)),
        strip=bool(s.get("strip", False)),
        case=s.get("case"),
    ),
    "foreign_key": lambda s: ForeignKey(
        _column(s, "foreign_key"),
        _need(s, "reference_table", "foreign_key"),
        s.get("reference_column"),
    ),
    "duplicate": lambda s: Duplicate(
        _need(s, "keys", "duplicate"),
        s.get("order_by"),
        s.get("keep", "latest"),
    ),
}
PREDICATE_BUILDERS["in_list"] = PREDICATE_BUILDERS["allowed_values"]

ACTION_ALIASES = {
    "drop": "drop_rows",
    "drop_rows": "drop_rows",
    "set_default": "set_default",
    "set_unknown": "set_default",
    "set_null": "set_null",
    "clamp": "clamp",
    "flag": "flag_only",
    "flag_only": "flag_only",
    "log": "log_only",
    "log_only": "log_only",
    "map_values": "map_values",
    "map_or_unknown": "map_values",
    "coalesce": "coalesce",
    "fallback": "coalesce",
    "normalize": "normalize",
}


@dataclass
class RuleSet:
    """Rules and reference-table locations loaded from one file."""

    rules: List[RuleDefinition] = field(default_factory=list)
    reference_tables: Dict[str, str] = field(default_factory=dict)
    source: Optional[Path] = None

    @property
    def tables(self) -> List[str]:
        seen: List[str] = []
        for rule in self.rules:
            if rule.target_table not in seen:
                seen.append(rule.target_table)
        return seen

    def rules_for(self, table_name: str) -> List[RuleDefinition]:
        return [r for r in self.rules if r.target_table == table_name]


def _resolve_path(path: str, config_dir: Path) -> str:
    """Resolve "./" and "../" paths relative to the rule-set file.

    Absolute paths and URLs are unchanged.
    """
    if not path:
        return path
    if path.startswith(("s3://", "abfs://", "http://", "https://")):
        return path
    if os.path.isabs(path):
        return path
    if path.startswith("./") or path.startswith("../"):
        return str(config_dir / path)
    return path


def build_predicate(options: Any) -> Predicate:
    """Create a predicate from a `check` mapping.

    Raises:
        InvalidRuleError: If the check type is unknown or incomplete
    """
    if not isinstance(options, dict):
        raise InvalidRuleError("check must be a mapping", field="check", value=options)
    kind = str(options.get("type", "")).lower()
    if kind not in PREDICATE_BUILDERS:
        valid = ", ".join(sorted(PREDICATE_BUILDERS))
        raise InvalidRuleError(
            f"Invalid check type '{options.get('type')}'. Valid options: {valid}",
            field="check.type",
        )
    try:
        return PREDICATE_BUILDERS[kind](options)
    except InvalidRuleError:
        raise
    except (TypeError, ValueError, re.error) as e:
        raise InvalidRuleError(f"Invalid {kind} check: {e}", field="check") from e


def build_action(options: Any) -> Action:
    """Create an action variant from a string or a mapping.

    Raises:
        InvalidRuleError: If the action type is unknown or incomplete
    """
    if isinstance(options, str):
        options = {"type": options}
    if not isinstance(options, dict):
        raise InvalidRuleError("action must be a name or a mapping", field="action", value=options)

    raw_kind = str(options.get("type", "")).lower()
    kind = ACTION_ALIASES.get(raw_kind)
    if kind is None:
        valid = ", ".join(sorted(ACTION_ALIASES))
        raise InvalidRuleError(
            f"Invalid action '{options.get('type')}'. Valid options: {valid}",
            field="action.type",
        )

    if kind == "drop_rows":
        return DropRows()
    if kind == "flag_only":
        return FlagOnly()
    if kind == "log_only":
        return LogOnly()
    if kind == "set_null":
        return SetNull(options.get("column"))
    if kind == "set_default":
        default = "Unknown" if raw_kind == "set_unknown" else None
        if "value" not in options and default is None:
            raise InvalidRuleError("set_default action requires 'value'", field="action.value")
        return SetDefault(options.get("column"), options.get("value", default))
    if kind == "clamp":
        return Clamp(options.get("column"), options.get("min"), options.get("max"))
    if kind == "coalesce":
        return Coalesce(
            options.get("column"),
            options.get("fallback_columns") or (),
            options.get("default"),
            dates=bool(options.get("dates", False)),
        )
    if kind == "normalize":
        return Normalize(
            options.get("column"),
            strip=bool(options.get("strip", True)),
            case=options.get("case"),
            default=options.get("default"),
            drop=bool(options.get("drop", False)),
        )
    return MapValues(
        options.get("column"),
        options.get("mapping") or {},
        options.get("default", "Unknown"),
    )


def rule_from_dict(data: Dict[str, Any], default_table: Optional[str] = None) -> RuleDefinition:
    """Create a RuleDefinition from a rule mapping.

    Raises:
        InvalidRuleError: If the rule is malformed
    """
    if not isinstance(data, dict):
        raise InvalidRuleError("Rule entry must be a mapping", field="rules", value=data)

    rule_id = data.get("id")
    if not rule_id:
        raise InvalidRuleError("Rule must have an 'id'", field="id")

    try:
        predicate = build_predicate(data.get("check"))
        action = build_action(data.get("action", "flag_only"))
    except InvalidRuleError as e:
        raise InvalidRuleError(e.message, rule_id=rule_id, field=e.field) from None

    required = data.get("required_columns")
    return RuleDefinition(
        id=rule_id,
        target_table=data.get("table") or data.get("target_table") or default_table or "",
        severity=data.get("severity", "ERROR"),
        predicate=predicate,
        action=action,
        description=data.get("description") or "",
        required_columns=tuple(required) if required is not None else None,
        tolerate_missing=bool(data.get("tolerate_missing", False)),
    )


def rules_from_config(config: Dict[str, Any]) -> List[RuleDefinition]:
    """Parse the `rules` section of a rule-set mapping.

    A top-level `table` key is the default target table for rules that
    do not name one.
    """
    rules_config = config.get("rules") or []
    if not isinstance(rules_config, list):
        raise ConfigurationError("'rules' must be a list", field="rules")

    default_table = config.get("table")
    rules = [rule_from_dict(entry, default_table) for entry in rules_config]
    check_unique_ids(rules)
    logger.info("Parsed %d rules", len(rules))
    return rules


def load_rule_set(config_path: Union[str, Path]) -> RuleSet:
    """Load a rule set from a YAML file.

    Args:
        config_path: Path to the YAML file

    Returns:
        RuleSet with rules in file order and resolved reference paths

    Raises:
        ConfigurationError: If the file is missing, unreadable or not a mapping
        InvalidRuleError: If a rule is malformed
    """
    config_path = Path(config_path)
    if not config_path.exists():
        raise ConfigurationError(
            f"Rule set not found: {config_path}", field="path", value=config_path
        )

    with open(config_path, "r", encoding="utf-8") as f:
        try:
            config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML syntax: {e}") from e

    if not config:
        raise ConfigurationError(f"Empty rule set: {config_path}")
    if not isinstance(config, dict):
        raise ConfigurationError("Rule set must be a mapping with a 'rules' list")

    config = expand_options(config)
    config_dir = config_path.resolve().parent

    references = config.get("reference_tables") or {}
    if not isinstance(references, dict):
        raise ConfigurationError("'reference_tables' must be a mapping", field="reference_tables")

    return RuleSet(
        rules=rules_from_config(config),
        reference_tables={
            name: _resolve_path(str(path), config_dir) for name, path in references.items()
        },
        source=config_path,
    )


def load_rules(config_path: Union[str, Path]) -> List[RuleDefinition]:
    """Load only the rules of a YAML rule set."""
    return load_rule_set(config_path).rules


def validate_rule_file(config_path: Union[str, Path]) -> List[str]:
    """Validate a rule-set file without running it.

    Returns:
        List of validation errors (empty if valid)
    """
    errors: List[str] = []
    try:
        load_rule_set(config_path)
    except (ConfigurationError, InvalidRuleError) as e:
        errors.append(str(e))
    return errors
