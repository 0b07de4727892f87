"""Catalog of created rules held by the caller.

The engine keeps no state between runs. A RuleCatalog is the caller's
record of which rules exist, who created them, whether they are active and
what their last evaluation reported, so results can be shown again without
re-running.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, Iterator, List, Optional

from dqfoundry.lib.engine import RuleVerdict, RunSummary
from dqfoundry.lib.errors import InvalidRuleError
from dqfoundry.lib.rules import RuleDefinition

logger = logging.getLogger(__name__)

__all__ = ["CatalogEntry", "RuleCatalog"]


def _now() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


@dataclass
class CatalogEntry:
    """A rule plus its catalog metadata."""

    rule: RuleDefinition
    created_by: str = "unknown"
    version: str = "1.0.0"
    created_at: str = field(default_factory=_now)
    is_active: bool = True
    last_verdict: Optional[RuleVerdict] = None
    last_run_id: Optional[str] = None

    @property
    def rule_id(self) -> str:
        return self.rule.id

    def to_dict(self) -> Dict[str, Any]:
        data = self.rule.to_dict()
        data.update(
            {
                "createdBy": self.created_by,
                "version": self.version,
                "createdAt": self.created_at,
                "isActive": self.is_active,
                "lastRunId": self.last_run_id,
                "testResult": self.last_verdict.to_dict() if self.last_verdict else None,
            }
        )
        return data


class RuleCatalog:
    """Ordered collection of rules keyed by id.

    Insertion order is preserved and is the order `active_rules` returns,
    which makes it the execution order of a run built from the catalog.
    """

    def __init__(self, entries: Optional[Iterable[CatalogEntry]] = None):
        self._entries: Dict[str, CatalogEntry] = {}
        for entry in entries or []:
            self._add_entry(entry)

    def _add_entry(self, entry: CatalogEntry) -> CatalogEntry:
        if entry.rule_id in self._entries:
            raise InvalidRuleError(
                f"Rule '{entry.rule_id}' is already in the catalog",
                rule_id=entry.rule_id,
                field="id",
            )
        self._entries[entry.rule_id] = entry
        return entry

    def add(
        self,
        rule: RuleDefinition,
        *,
        created_by: str = "unknown",
        version: str = "1.0.0",
        created_at: Optional[str] = None,
        is_active: bool = True,
    ) -> CatalogEntry:
        """Add a rule; ids must be unique within the catalog."""
        entry = CatalogEntry(
            rule=rule,
            created_by=created_by,
            version=version,
            created_at=created_at or _now(),
            is_active=is_active,
        )
        self._add_entry(entry)
        logger.info("Added rule %s (v%s) to catalog", rule.id, version)
        return entry

    def replace(self, rule: RuleDefinition, *, version: str, created_by: Optional[str] = None) -> CatalogEntry:
        """Swap in a new definition of an existing rule, keeping its position."""
        entry = self.get(rule.id)
        entry.rule = rule
        entry.version = version
        if created_by:
            entry.created_by = created_by
        entry.last_verdict = None
        entry.last_run_id = None
        return entry

    def get(self, rule_id: str) -> CatalogEntry:
        try:
            return self._entries[rule_id]
        except KeyError:
            raise KeyError(f"Rule '{rule_id}' is not in the catalog") from None

    def remove(self, rule_id: str) -> bool:
        """Remove a rule by id. Returns True if it was present."""
        return self._entries.pop(rule_id, None) is not None

    def set_active(self, rule_id: str, active: bool) -> None:
        self.get(rule_id).is_active = active

    def tables(self) -> List[str]:
        seen: List[str] = []
        for entry in self._entries.values():
            if entry.rule.target_table not in seen:
                seen.append(entry.rule.target_table)
        return seen

    def active_rules(self, table_name: Optional[str] = None) -> List[RuleDefinition]:
        """Active rules in catalog order, optionally for one table."""
        return [
            e.rule
            for e in self._entries.values()
            if e.is_active and (table_name is None or e.rule.target_table == table_name)
        ]

    def record(self, summary: RunSummary) -> int:
        """Store the verdicts of a run on the matching entries.

        Returns:
            Number of entries updated
        """
        updated = 0
        for verdict in summary.verdicts:
            entry = self._entries.get(verdict.rule_id)
            if entry is None:
                continue
            entry.last_verdict = verdict
            entry.last_run_id = summary.run_id
            updated += 1
        logger.debug("Recorded %d verdicts from run %s", updated, summary.run_id)
        return updated

    def to_dict(self) -> List[Dict[str, Any]]:
        return [entry.to_dict() for entry in self._entries.values()]

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[CatalogEntry]:
        return iter(list(self._entries.values()))

    def __contains__(self, rule_id: object) -> bool:
        return rule_id in self._entries
