"""
Finding models.

A Finding is created by exactly one detector. After aggregation it may
carry several domains and detector ids when detectors agree on the same
(rule_id, location).
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple

from crucible.findings.domain.enums import Confidence, Domain, Severity
from crucible.shared.domain.base_model import BaseDomainModel


@dataclass(frozen=True)
class Location(BaseDomainModel):
    """Declaration id plus optional statement offset inside it."""

    declaration_id: str
    statement_offset: Optional[int] = None

    def __str__(self) -> str:
        if self.statement_offset is None:
            return self.declaration_id
        return f"{self.declaration_id}@{self.statement_offset}"


@dataclass(frozen=True)
class Finding(BaseDomainModel):
    """
    A single detector-emitted report of a matched pattern.

    Attributes:
        rule_id: Stable rule identifier ("lock-across-suspend")
        domain: Domain of the detector that created it
        severity: info | warning | critical
        message: Human-readable description
        location: Where the pattern matched
        confidence: possible | likely | definite
        suggestion: Optional remediation hint
        domains: Every domain that reported this finding (filled on merge)
        provenance: Detector ids that reported this finding
    """

    rule_id: str
    domain: Domain
    severity: Severity
    message: str
    location: Location
    confidence: Confidence = Confidence.POSSIBLE
    suggestion: Optional[str] = None
    domains: Tuple[Domain, ...] = field(default=())
    provenance: Tuple[str, ...] = field(default=())

    def __post_init__(self) -> None:
        if not self.domains:
            object.__setattr__(self, "domains", (self.domain,))

    @property
    def key(self) -> Tuple[str, str, Optional[int]]:
        """Deduplication key: (rule_id, declaration id, statement offset)."""
        return (self.rule_id, self.location.declaration_id, self.location.statement_offset)

    @property
    def is_critical(self) -> bool:
        return self.severity == Severity.CRITICAL

    def to_json(self) -> Dict[str, Any]:
        data = super().to_json()
        data["location"] = str(self.location)
        return data

    def __str__(self) -> str:
        return f"[{self.severity.value}] {self.rule_id} at {self.location}: {self.message}"
