"""CLI entry point for evaluating a rule set against a data file.

Usage:
    python -m dqfoundry rules/lease_master.yaml data/leases.csv
    python -m dqfoundry rules/lease_master.yaml data/leases.csv --table lease_master
    python -m dqfoundry rules/lease_master.yaml data/leases.csv \\
        --reference property_master=data/properties.csv --output gold/leases.parquet
    python -m dqfoundry rules/lease_master.yaml --check

Exit codes:
    0 - run completed (or rule set valid with --check)
    1 - --fail-on-error was given and at least one rule failed
    2 - configuration error (bad rule set, missing file, bad argument)
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from typing import Dict, List, Optional

from dqfoundry.lib.config_loader import load_rule_set, validate_rule_file
from dqfoundry.lib.engine import RuleEngine
from dqfoundry.lib.env import load_env_file
from dqfoundry.lib.errors import ConfigurationError, InvalidRuleError
from dqfoundry.lib.io import read_table, read_tables, write_table
from dqfoundry.lib.logging import setup_logging
from dqfoundry.lib.reporter import build_run_log, format_run_log, format_run_summary

logger = logging.getLogger(__name__)


def parse_references(values: Optional[List[str]]) -> Dict[str, str]:
    """Parse NAME=PATH pairs given with --reference."""
    references: Dict[str, str] = {}
    for value in values or []:
        name, sep, path = value.partition("=")
        if not sep or not name.strip() or not path.strip():
            raise ConfigurationError(
                f"Invalid --reference '{value}'. Expected NAME=PATH",
                field="reference",
                value=value,
            )
        references[name.strip()] = path.strip()
    return references


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="dq-evaluate",
        description="Evaluate data quality rules against a table.",
    )
    parser.add_argument("rules", help="YAML rule set")
    parser.add_argument("data", nargs="?", help="Data file (.csv, .json, .jsonl, .parquet)")
    parser.add_argument("--table", help="Table name of the data (default: first rule's table)")
    parser.add_argument(
        "--reference",
        action="append",
        metavar="NAME=PATH",
        help="Reference table for foreign key checks (repeatable; overrides the rule set)",
    )
    parser.add_argument("--output", help="Write the curated table to this file")
    parser.add_argument("--json", action="store_true", help="Print the summary as JSON")
    parser.add_argument("--run-log", action="store_true", help="Print the DQ run log")
    parser.add_argument(
        "--fail-on-error",
        action="store_true",
        help="Exit with status 1 when any rule fails",
    )
    parser.add_argument("--check", action="store_true", help="Only validate the rule set")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    parser.add_argument("--log-json", action="store_true", help="JSON log output")
    parser.add_argument("--log-file", help="Also write logs to this file")
    parser.add_argument("--env-file", help="Load environment variables from this .env file")
    return parser


def run(args: argparse.Namespace) -> int:
    if args.env_file:
        load_env_file(args.env_file)

    if args.check:
        errors = validate_rule_file(args.rules)
        if errors:
            for error in errors:
                print(error, file=sys.stderr)
            return 2
        print(f"Rule set OK: {args.rules}")
        return 0

    if not args.data:
        raise ConfigurationError("A data file is required unless --check is given", field="data")

    rule_set = load_rule_set(args.rules)
    references = dict(rule_set.reference_tables)
    references.update(parse_references(args.reference))

    table = read_table(args.data)
    engine = RuleEngine(rule_set.rules, read_tables(references))
    summary = engine.evaluate(table, args.table)

    if args.json:
        print(json.dumps(summary.to_dict(), indent=2, default=str))
    else:
        print(format_run_summary(summary))

    if args.run_log:
        print(format_run_log(build_run_log(summary)))

    if args.output:
        write_table(summary.table, args.output)

    if args.fail_on_error and summary.has_failures:
        return 1
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(verbose=args.verbose, json_format=args.log_json, log_file=args.log_file)

    try:
        return run(args)
    except (ConfigurationError, InvalidRuleError) as e:
        logger.debug("Configuration error", exc_info=True)
        print(f"Error: {e}", file=sys.stderr)
        return 2


if __name__ == "__main__":
    sys.exit(main())
