"""Pytest configuration and fixtures."""

import sys
from pathlib import Path

import pytest

# Add the project root to the Python path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from dqfoundry.lib.predicates import AllowedValues, DateRange, NotEmpty, Positive  # noqa: E402
from dqfoundry.lib.rules import DropRows, RuleDefinition, SetDefault, Severity  # noqa: E402

EXAMPLES_DIR = project_root / "docs" / "examples"


@pytest.fixture
def examples_dir() -> Path:
    """Directory holding the example rule set and sample data."""
    return EXAMPLES_DIR


@pytest.fixture
def lease_rows():
    """Eight lease rows mirroring the sample lease_master data.

    Row 3 carries three defects at once (empty lease_id, negative rent,
    end before start); rows 4, 5, 7 and 8 carry one defect each.
    """
    return [
        {"lease_id": "LSE001", "property_id": "PRP000101", "tenant_id": "TNT000001",
         "start_date": "2024-01-01", "end_date": "2026-12-31", "monthly_rent": 12000, "status": "Active"},
        {"lease_id": "LSE002", "property_id": "PRP000102", "tenant_id": "TNT000002",
         "start_date": "2023-06-01", "end_date": "2025-05-31", "monthly_rent": 8500, "status": "Pending"},
        {"lease_id": "", "property_id": "PRP000103", "tenant_id": "TNT000003",
         "start_date": "2024-03-01", "end_date": "2024-02-28", "monthly_rent": -500, "status": "Active"},
        {"lease_id": "LSE004", "property_id": None, "tenant_id": "TNT000004",
         "start_date": "2024-02-01", "end_date": "2027-01-31", "monthly_rent": 9000, "status": "Active"},
        {"lease_id": "LSE005", "property_id": "PRP000105", "tenant_id": "",
         "start_date": "2024-04-01", "end_date": "2026-03-31", "monthly_rent": 7200, "status": "Expired"},
        {"lease_id": "LSE006", "property_id": "PRP000106", "tenant_id": "TNT000006",
         "start_date": "2022-01-01", "end_date": "2023-12-31", "monthly_rent": 15000, "status": "Terminated"},
        {"lease_id": "LSE007", "property_id": "PRP000107", "tenant_id": "TNT000007",
         "start_date": None, "end_date": "2025-12-31", "monthly_rent": 5500, "status": "Active"},
        {"lease_id": "LSE008", "property_id": "PRP000108", "tenant_id": "TNT000008",
         "start_date": "2024-05-01", "end_date": "2026-04-30", "monthly_rent": 6000, "status": "InvalidStatus"},
    ]


@pytest.fixture
def property_rows():
    """Reference property_master rows (PRP000101 - PRP000108)."""
    return [{"property_id": f"PRP0001{n:02d}", "country": "Canada"} for n in range(1, 9)]


@pytest.fixture
def lease_rules():
    """The four core lease rules, in execution order."""
    return [
        RuleDefinition(
            id="L1_LEASE_ID_NOT_NULL",
            target_table="lease_master",
            severity=Severity.ERROR,
            predicate=NotEmpty("lease_id"),
            action=DropRows(),
            description="lease_id must be present",
        ),
        RuleDefinition(
            id="L2_RENT_POSITIVE",
            target_table="lease_master",
            severity=Severity.ERROR,
            predicate=Positive("monthly_rent"),
            action=DropRows(),
            description="monthly_rent must be positive",
        ),
        RuleDefinition(
            id="L3_DATE_RANGE_VALID",
            target_table="lease_master",
            severity=Severity.ERROR,
            predicate=DateRange("start_date", "end_date"),
            action=DropRows(),
            description="end_date must be on or after start_date",
        ),
        RuleDefinition(
            id="L4_STATUS_ALLOWED",
            target_table="lease_master",
            severity=Severity.WARN,
            predicate=AllowedValues("status", ["Active", "Pending", "Expired", "Terminated"]),
            action=SetDefault("status", "Unknown"),
            description="status must be a known lease status",
        ),
    ]
