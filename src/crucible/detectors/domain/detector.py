"""
Base Detector Class

Abstract base for all domain detectors.

A detector is a set of checks. Each check looks at the read-only unit and
emits findings through a DetectionContext. A check that raises is recorded
as a detector error and the remaining checks still run; only
InternalInvariantViolation propagates.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Sequence, Tuple

from crucible.findings.domain.enums import Confidence, Domain, Severity
from crucible.findings.domain.models import Finding, Location
from crucible.model.domain.unit import CompilationUnit
from crucible.rules.domain.models import Number, RunConfiguration
from crucible.shared.domain.exceptions import InternalInvariantViolation
from crucible.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)


@dataclass
class DetectionResult:
    """Findings and recorded check failures of one detector on one unit."""

    detector_id: str
    domain: Domain
    findings: List[Finding] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)

    @property
    def failed(self) -> bool:
        return bool(self.errors)


class DetectionContext:
    """Per-(detector, unit) state handed to every check."""

    def __init__(self, detector: "BaseDetector", unit: CompilationUnit, config: RunConfiguration):
        self.detector = detector
        self.unit = unit
        self.config = config
        self.result = DetectionResult(detector_id=detector.detector_id, domain=detector.domain)

    def enabled(self, rule_id: str) -> bool:
        return self.config.is_enabled(rule_id)

    def threshold(self, rule_id: str, key: str) -> Number:
        return self.config.threshold(rule_id, key)

    def emit(
        self,
        rule_id: str,
        declaration_id: str,
        message: str,
        *,
        severity: Optional[Severity] = None,
        confidence: Confidence = Confidence.LIKELY,
        offset: Optional[int] = None,
        suggestion: Optional[str] = None,
    ) -> Optional[Finding]:
        """
        Create a finding unless the rule is disabled.

        Severity resolution: configured override, then the severity the
        check computed for this context, then the catalog default.

        Raises:
            InternalInvariantViolation: If the rule does not belong to this detector's domain
        """
        rule = self.config.rules.get(rule_id)
        if rule is None or self.detector.domain not in rule.domains:
            raise InternalInvariantViolation(
                f"Detector {self.detector.detector_id} emitted rule outside its domain",
                {"rule_id": rule_id, "domain": self.detector.domain.value},
            )
        if not rule.enabled:
            return None

        resolved = rule.severity_override or severity or rule.severity
        finding = Finding(
            rule_id=rule_id,
            domain=self.detector.domain,
            severity=resolved,
            message=message,
            location=Location(declaration_id, offset),
            confidence=confidence,
            suggestion=suggestion,
            provenance=(self.detector.detector_id,),
        )
        self.result.findings.append(finding)
        return finding


Check = Callable[[DetectionContext], None]


class BaseDetector(ABC):
    """Base class for domain detectors."""

    detector_id: str = ""
    domain: Domain

    @abstractmethod
    def checks(self) -> Sequence[Tuple[str, Check]]:
        """Named checks in execution order."""
        pass

    def detect(self, unit: CompilationUnit, config: RunConfiguration) -> DetectionResult:
        """
        Run every check against one unit.

        Args:
            unit: Read-only compilation unit
            config: Resolved run configuration

        Returns:
            DetectionResult with findings and per-check errors
        """
        context = DetectionContext(self, unit, config)
        for name, check in self.checks():
            try:
                check(context)
            except InternalInvariantViolation:
                raise
            except Exception as e:
                # Fail-soft: one broken check must not hide the others
                context.result.errors.append(f"{name}: {e}")
                logger.warning(
                    "rule_matcher_failed",
                    detector=self.detector_id,
                    check=name,
                    unit=unit.name,
                    error=str(e),
                    error_type=type(e).__name__,
                )
        logger.debug(
            "detector_completed",
            detector=self.detector_id,
            unit=unit.name,
            findings=len(context.result.findings),
            errors=len(context.result.errors),
        )
        return context.result

    def __repr__(self) -> str:
        return f"{type(self).__name__}(detector_id={self.detector_id!r})"
