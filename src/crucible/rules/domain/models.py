"""Domain models for the rule configuration system.

Two layers:
- RuleDefinition: bundled catalog entry (rule id, domains, default severity
  and thresholds), loaded from rules/defaults/rules.yaml.
- RuleConfigDocument: user overrides validated with pydantic.

RunConfiguration is the resolved, read-only result that detectors and the
router consume for the whole run.
"""

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Dict, List, Mapping, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from crucible.findings.domain.enums import Domain, Severity

Number = Union[int, float]


@dataclass(frozen=True)
class RuleDefinition:
    """Catalog entry for one rule.

    Attributes:
        rule_id: Stable identifier
        domains: Domains whose detectors may emit the rule
        name: Human-readable name
        severity: Default severity
        description: What the rule detects
        thresholds: Default numeric thresholds
    """

    rule_id: str
    domains: Tuple[Domain, ...]
    name: str
    severity: Severity
    description: str = ""
    thresholds: Mapping[str, Number] = field(default_factory=lambda: MappingProxyType({}))


@dataclass(frozen=True)
class EffectiveRule:
    """A catalog rule with user overrides applied."""

    rule_id: str
    domains: Tuple[Domain, ...]
    enabled: bool
    severity: Severity
    severity_override: Optional[Severity]
    thresholds: Mapping[str, Number]

    @property
    def effective_severity(self) -> Severity:
        return self.severity_override or self.severity


class RuleSettings(BaseModel):
    """User override for one rule."""

    model_config = ConfigDict(extra="forbid")

    enabled: bool = True
    severity: Optional[Severity] = None
    thresholds: Dict[str, float] = Field(default_factory=dict)

    @field_validator("thresholds")
    @classmethod
    def _positive_thresholds(cls, value: Dict[str, float]) -> Dict[str, float]:
        for key, number in value.items():
            if number <= 0:
                raise ValueError(f"Threshold {key} must be positive, got {number}")
        return value


class RouterSettings(BaseModel):
    """Triage router overrides."""

    model_config = ConfigDict(extra="forbid")

    small_unit_threshold: Optional[int] = Field(default=None, ge=0)
    activation: Dict[str, List[Domain]] = Field(default_factory=dict)


class RuleConfigDocument(BaseModel):
    """Top-level rule configuration file."""

    model_config = ConfigDict(extra="forbid")

    rules: Dict[str, RuleSettings] = Field(default_factory=dict)
    router: RouterSettings = Field(default_factory=RouterSettings)
    clusters: Dict[str, List[str]] = Field(default_factory=dict)

    @field_validator("clusters")
    @classmethod
    def _non_empty_clusters(cls, value: Dict[str, List[str]]) -> Dict[str, List[str]]:
        for name, keywords in value.items():
            if not keywords:
                raise ValueError(f"Keyword cluster {name} is empty")
        return value


@dataclass(frozen=True)
class RunConfiguration:
    """Resolved, read-only configuration for one run."""

    rules: Mapping[str, EffectiveRule]
    clusters: Mapping[str, Tuple[str, ...]]
    small_unit_threshold: int
    activation: Mapping[str, Tuple[Domain, ...]] = field(default_factory=lambda: MappingProxyType({}))

    def is_enabled(self, rule_id: str) -> bool:
        rule = self.rules.get(rule_id)
        return rule is not None and rule.enabled

    def severity_override(self, rule_id: str) -> Optional[Severity]:
        rule = self.rules.get(rule_id)
        return rule.severity_override if rule else None

    def default_severity(self, rule_id: str) -> Severity:
        return self.rules[rule_id].severity

    def threshold(self, rule_id: str, key: str) -> Number:
        """
        Numeric threshold for a rule.

        Raises:
            KeyError: If the rule or threshold is not in the catalog
        """
        value = self.rules[rule_id].thresholds[key]
        if isinstance(value, float) and value.is_integer():
            return int(value)
        return value

    def rules_for(self, domain: Domain) -> List[EffectiveRule]:
        return [r for r in self.rules.values() if domain in r.domains]
