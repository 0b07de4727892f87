"""dq-foundry Test Suite.

Test organization:
- unit/test_rules.py: rule model, severities, action variants
- unit/test_predicates.py: predicate library
- unit/test_evaluator.py: mask computation and column checks
- unit/test_actions.py: remediation actions
- unit/test_engine.py: ordered runs, verdicts, isolation, concurrency
- unit/test_reporter.py: reports and run log
- unit/test_config_loader.py: YAML rule sets
- unit/test_io.py: table I/O
- unit/test_catalog.py: rule catalog
- unit/test_table.py, unit/test_env.py: row helpers, ${VAR} expansion
- unit/test_errors.py, unit/test_logging.py, unit/test_cli.py
"""
