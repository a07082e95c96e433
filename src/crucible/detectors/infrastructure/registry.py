"""
Detector registry.

Holds one detector instance per domain. Built-in detectors are registered
on construction; extra detectors can be registered for a domain, replacing
the built-in one.
"""

from typing import Dict, Iterable, List, Optional

from crucible.detectors.architecture.detector import ArchitectureDetector
from crucible.detectors.borrowing.detector import BorrowingDetector
from crucible.detectors.concurrency.detector import ConcurrencyDetector
from crucible.detectors.domain.detector import BaseDetector
from crucible.detectors.error_handling.detector import ErrorHandlingDetector
from crucible.detectors.systems.detector import SystemsDetector
from crucible.detectors.type_system.detector import TypeSystemDetector
from crucible.findings.domain.enums import Domain
from crucible.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)

BUILTIN_DETECTORS = (
    ArchitectureDetector,
    ConcurrencyDetector,
    BorrowingDetector,
    ErrorHandlingDetector,
    SystemsDetector,
    TypeSystemDetector,
)


class DetectorRegistry:
    """Maps each domain to its detector."""

    def __init__(self, detectors: Optional[Iterable[BaseDetector]] = None) -> None:
        self._detectors: Dict[Domain, BaseDetector] = {}
        for detector in detectors if detectors is not None else (cls() for cls in BUILTIN_DETECTORS):
            self.register(detector)

    def register(self, detector: BaseDetector) -> None:
        """
        Register a detector for its domain.

        Raises:
            ValueError: If the detector declares no domain or id
        """
        domain = getattr(detector, "domain", None)
        if not isinstance(domain, Domain) or not detector.detector_id:
            raise ValueError(f"Detector {detector!r} must declare detector_id and domain")
        if domain in self._detectors:
            logger.info(
                "detector_replaced",
                domain=domain.value,
                previous=self._detectors[domain].detector_id,
                detector=detector.detector_id,
            )
        self._detectors[domain] = detector

    def get(self, domain: Domain) -> Optional[BaseDetector]:
        return self._detectors.get(domain)

    def domains(self) -> List[Domain]:
        """Registered domains in declaration order of the Domain enum."""
        return [d for d in Domain if d in self._detectors]

    def detectors(self) -> List[BaseDetector]:
        return [self._detectors[d] for d in self.domains()]

    def __len__(self) -> int:
        return len(self._detectors)

    def __contains__(self, domain: object) -> bool:
        return domain in self._detectors
