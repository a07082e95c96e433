"""
Rule configuration loader.

Reads a rules file (YAML) and resolves it over the bundled catalog:

    rules:
      god-entity:
        severity: warning
        thresholds: {max_fields: 10}
      unbounded-channel:
        enabled: false
    router:
      small_unit_threshold: 20
    clusters:
      billing: [payment, invoice, ledger]

Unknown rule ids are reported and ignored. Everything else that does not
validate raises RuleConfigurationError before any unit is analyzed.
"""

from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional

import yaml
from pydantic import ValidationError

from crucible.rules.defaults.loader import DefaultRulesLoader
from crucible.rules.domain.models import (
    EffectiveRule,
    RuleConfigDocument,
    RunConfiguration,
)
from crucible.shared.domain.exceptions import RuleConfigurationError
from crucible.shared.infrastructure.config import settings
from crucible.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)


class RuleConfigLoader:
    """Builds a RunConfiguration from the catalog plus optional overrides."""

    def __init__(self, defaults: Optional[DefaultRulesLoader] = None):
        self.defaults = defaults or DefaultRulesLoader()

    def load(self, path: Optional[Path | str] = None) -> RunConfiguration:
        """
        Load configuration from a rules file.

        Args:
            path: Rules file; falls back to settings.rules_file, then to
                catalog defaults

        Returns:
            Resolved RunConfiguration

        Raises:
            RuleConfigurationError: If the file is unreadable or invalid
        """
        if path is None and settings.rules_file:
            path = settings.rules_file
        if path is None:
            return self.from_mapping({})

        config_path = Path(path)
        try:
            content = config_path.read_text(encoding="utf-8")
        except OSError as e:
            raise RuleConfigurationError(f"Cannot read rules file: {e}", {"path": str(config_path)}) from e
        try:
            data = yaml.safe_load(content) if content.strip() else {}
        except yaml.YAMLError as e:
            raise RuleConfigurationError(f"Invalid YAML in {config_path}: {e}", {"path": str(config_path)}) from e

        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise RuleConfigurationError("Rules file must contain a mapping", {"path": str(config_path)})

        logger.info("rules_file_loaded", path=str(config_path))
        return self.from_mapping(data)

    def from_mapping(self, data: Mapping[str, Any]) -> RunConfiguration:
        """Validate a raw mapping and resolve it over the catalog."""
        data = dict(data)
        rules = data.get("rules")
        if isinstance(rules, Mapping):
            catalog_ids = {rule.rule_id for rule in self.defaults.get_rules()}
            for rule_id in rules:
                if rule_id not in catalog_ids:
                    logger.warning("unknown_rule_id", rule_id=rule_id)
            # Unknown ids are dropped before their bodies are validated
            data["rules"] = {k: v for k, v in rules.items() if k in catalog_ids}
        try:
            document = RuleConfigDocument.model_validate(data)
        except ValidationError as e:
            raise RuleConfigurationError(
                "Invalid rule configuration",
                {"errors": [err["msg"] for err in e.errors()]},
            ) from e
        return self.resolve(document)

    def resolve(self, document: RuleConfigDocument) -> RunConfiguration:
        catalog = {rule.rule_id: rule for rule in self.defaults.get_rules()}

        for rule_id in document.rules:
            if rule_id not in catalog:
                logger.warning("unknown_rule_id", rule_id=rule_id)

        effective: Dict[str, EffectiveRule] = {}
        for rule_id, rule in catalog.items():
            override = document.rules.get(rule_id)
            thresholds = dict(rule.thresholds)
            if override is not None:
                for key, value in override.thresholds.items():
                    if key not in thresholds:
                        raise RuleConfigurationError(
                            f"Unknown threshold {key} for rule {rule_id}",
                            {"rule_id": rule_id, "known": sorted(thresholds)},
                        )
                    thresholds[key] = value
            effective[rule_id] = EffectiveRule(
                rule_id=rule_id,
                domains=rule.domains,
                enabled=override.enabled if override else True,
                severity=override.severity if override and override.severity else rule.severity,
                severity_override=override.severity if override else None,
                thresholds=MappingProxyType(thresholds),
            )

        clusters = self.defaults.get_clusters()
        for name, keywords in document.clusters.items():
            clusters[name] = tuple(k.lower() for k in keywords)

        small_unit_threshold = document.router.small_unit_threshold
        if small_unit_threshold is None:
            small_unit_threshold = settings.small_unit_threshold

        disabled = [r for r in effective.values() if not r.enabled]
        logger.debug(
            "rule_configuration_resolved",
            rule_count=len(effective),
            disabled=len(disabled),
            clusters=len(clusters),
        )
        return RunConfiguration(
            rules=MappingProxyType(effective),
            clusters=MappingProxyType(clusters),
            small_unit_threshold=small_unit_threshold,
            activation=MappingProxyType(
                {signal: tuple(domains) for signal, domains in document.router.activation.items()}
            ),
        )


def load_run_configuration(path: Optional[Path | str] = None) -> RunConfiguration:
    """Shortcut for RuleConfigLoader().load(path)."""
    return RuleConfigLoader().load(path)


def default_run_configuration() -> RunConfiguration:
    """Catalog defaults with no overrides."""
    return RuleConfigLoader().from_mapping({})
