"""Bundled rule catalog loader."""

from pathlib import Path
from types import MappingProxyType
from typing import Dict, List, Optional, Tuple

import yaml

from crucible.findings.domain.enums import Domain, Severity
from crucible.rules.domain.models import RuleDefinition
from crucible.shared.domain.exceptions import RuleConfigurationError
from crucible.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)

CATALOG_FILE = "rules.yaml"


class DefaultRulesLoader:
    """Loads the rule catalog and default keyword clusters shipped with the package."""

    def __init__(self, catalog_path: Optional[Path] = None):
        self.catalog_path = catalog_path or Path(__file__).parent / CATALOG_FILE
        self._data: Optional[dict] = None

    def _load(self) -> dict:
        if self._data is None:
            try:
                with open(self.catalog_path, encoding="utf-8") as f:
                    data = yaml.safe_load(f) or {}
            except (OSError, yaml.YAMLError) as e:
                raise RuleConfigurationError(
                    f"Cannot read rule catalog: {e}",
                    {"path": str(self.catalog_path)},
                ) from e
            self._data = data
            logger.debug("rule_catalog_loaded", path=str(self.catalog_path), rule_count=len(data.get("rules", [])))
        return self._data

    def get_rules(self) -> List[RuleDefinition]:
        """
        Get every rule in the catalog.

        Returns:
            RuleDefinition list in catalog order

        Raises:
            RuleConfigurationError: If an entry is malformed
        """
        rules = []
        seen = set()
        for entry in self._load().get("rules", []):
            rule_id = entry.get("id")
            if not rule_id:
                raise RuleConfigurationError("Catalog entry without id", {"entry": entry})
            if rule_id in seen:
                raise RuleConfigurationError(f"Duplicate catalog rule {rule_id}")
            seen.add(rule_id)
            try:
                domains = tuple(Domain(d) for d in entry["domains"])
                severity = Severity(entry["severity"])
            except (KeyError, ValueError) as e:
                raise RuleConfigurationError(
                    f"Invalid catalog entry {rule_id}: {e}", {"rule_id": rule_id}
                ) from e
            rules.append(
                RuleDefinition(
                    rule_id=rule_id,
                    domains=domains,
                    name=entry.get("name", rule_id),
                    severity=severity,
                    description=entry.get("description", ""),
                    thresholds=MappingProxyType(dict(entry.get("thresholds") or {})),
                )
            )
        return rules

    def get_clusters(self) -> Dict[str, Tuple[str, ...]]:
        """Default domain-noun clusters for god-entity detection."""
        clusters = self._load().get("clusters") or {}
        return {name: tuple(str(k).lower() for k in keywords) for name, keywords in clusters.items()}

    def get_rules_for_domain(self, domain: Domain) -> List[RuleDefinition]:
        return [r for r in self.get_rules() if domain in r.domains]
