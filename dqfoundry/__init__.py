"""dq-foundry: declarative data quality rules for tabular data.

Rules are evaluated in order against a table; each rule reports a
pass/fail/warning verdict and applies its remediation (drop rows, set a
default, set null, clamp, map, or just flag) before the next rule runs.

Example:
    from dqfoundry import DropRows, NotEmpty, RuleDefinition, Severity, evaluate

    rules = [
        RuleDefinition(
            id="L1_LEASE_ID_NOT_NULL",
            target_table="lease_master",
            severity=Severity.ERROR,
            predicate=NotEmpty("lease_id"),
            action=DropRows(),
            description="lease_id must be present",
        ),
    ]
    summary = evaluate(rows, rules)
"""

from dqfoundry.lib import *  # noqa: F401,F403
from dqfoundry.lib import __all__  # noqa: F401

__version__ = "1.0.0"
