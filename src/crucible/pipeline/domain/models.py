"""
Pipeline domain models.

Reports produced by the orchestrator. Serialization goes through
BaseDomainModel.to_json (camelCase keys).
"""

import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from crucible.findings.domain.enums import Domain, Severity
from crucible.findings.domain.models import Finding
from crucible.shared.domain.base_model import BaseDomainModel
from crucible.triage.domain.models import TriageDecision


class UnitStatus(str, Enum):
    """Outcome of analyzing one unit."""

    COMPLETED = "completed"
    FAILED = "failed"  # input could not be turned into a unit
    CANCELLED = "cancelled"  # not started before cancellation


class CancellationToken:
    """
    Cooperative cancellation flag shared by the caller and the orchestrator.

    Checked at unit boundaries; safe to set from any thread.
    """

    def __init__(self) -> None:
        self._event = threading.Event()
        self.reason: Optional[str] = None

    def cancel(self, reason: Optional[str] = None) -> None:
        self.reason = reason
        self._event.set()

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()


@dataclass
class DetectorRun(BaseDomainModel):
    """One detector's execution on one unit."""

    detector_id: str
    domain: Domain
    findings_count: int = 0
    errors: List[str] = field(default_factory=list)
    duration_ms: float = 0.0

    @property
    def failed(self) -> bool:
        return bool(self.errors)


@dataclass
class UnitReport(BaseDomainModel):
    """Ordered findings and execution details for one unit."""

    unit_name: str
    status: UnitStatus
    findings: List[Finding] = field(default_factory=list)
    detector_runs: List[DetectorRun] = field(default_factory=list)
    triage: Optional[TriageDecision] = None
    error: Optional[str] = None
    duration_ms: float = 0.0

    @property
    def critical_count(self) -> int:
        return sum(1 for f in self.findings if f.severity == Severity.CRITICAL)

    @property
    def has_critical(self) -> bool:
        return self.critical_count > 0

    def to_json(self) -> Dict[str, Any]:
        data = super().to_json()
        data["triage"] = self.triage.model_dump(mode="json", exclude={"signals"}) if self.triage else None
        return data


@dataclass
class BatchReport(BaseDomainModel):
    """Reports for every unit of a batch, in input order."""

    units: List[UnitReport] = field(default_factory=list)
    cancelled: bool = False
    duration_ms: float = 0.0

    @property
    def findings(self) -> List[Finding]:
        return [f for unit in self.units for f in unit.findings]

    @property
    def total_findings(self) -> int:
        return sum(len(unit.findings) for unit in self.units)

    def count_by_status(self, status: UnitStatus) -> int:
        return sum(1 for unit in self.units if unit.status == status)

    def count_by_severity(self) -> Dict[str, int]:
        counts = {s.value: 0 for s in Severity}
        for finding in self.findings:
            counts[finding.severity.value] += 1
        return counts

    @property
    def has_critical(self) -> bool:
        return any(unit.has_critical for unit in self.units)
