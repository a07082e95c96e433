"""
Finding aggregator.

Collects detector results for one unit, validates them, merges findings
that share (rule_id, location) and orders the result:
declaration source order, then rule_id, then statement offset.
"""

from dataclasses import replace
from typing import Dict, List, Sequence, Tuple

from crucible.detectors.domain.detector import DetectionResult
from crucible.findings.domain.enums import Domain
from crucible.findings.domain.models import Finding
from crucible.model.domain.unit import CompilationUnit
from crucible.shared.domain.exceptions import InternalInvariantViolation
from crucible.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)

_DOMAIN_ORDER = {domain: index for index, domain in enumerate(Domain)}


class FindingAggregator:
    """Validates, merges and orders findings of one unit."""

    def aggregate(self, unit: CompilationUnit, results: Sequence[DetectionResult]) -> List[Finding]:
        """
        Merge detector results into one ordered finding list.

        Args:
            unit: The unit every finding must point into
            results: One DetectionResult per executed detector, any order

        Returns:
            Ordered, merged findings (never drops a finding silently)

        Raises:
            InternalInvariantViolation: If a finding points outside the unit
                or carries a domain other than its detector's
        """
        ordered_results = sorted(results, key=lambda r: _DOMAIN_ORDER[r.domain])

        merged: Dict[Tuple, Finding] = {}
        collisions = 0
        total = 0
        for result in ordered_results:
            for finding in result.findings:
                total += 1
                self._validate(unit, result, finding)
                existing = merged.get(finding.key)
                if existing is None:
                    merged[finding.key] = finding
                else:
                    collisions += 1
                    merged[finding.key] = self._merge(existing, finding)

        findings = sorted(merged.values(), key=lambda f: self._sort_key(unit, f))
        if collisions:
            logger.debug("findings_merged", unit=unit.name, total=total, merged=collisions)
        return findings

    @staticmethod
    def _validate(unit: CompilationUnit, result: DetectionResult, finding: Finding) -> None:
        if finding.location.declaration_id not in unit:
            raise InternalInvariantViolation(
                f"Finding {finding.rule_id} references unknown declaration",
                {"unit": unit.name, "declaration_id": finding.location.declaration_id, "detector": result.detector_id},
            )
        if finding.domain != result.domain:
            raise InternalInvariantViolation(
                f"Detector {result.detector_id} emitted a {finding.domain.value} finding",
                {"unit": unit.name, "rule_id": finding.rule_id, "expected": result.domain.value},
            )

    @staticmethod
    def _merge(first: Finding, second: Finding) -> Finding:
        """Same rule at the same location: keep one finding carrying both reports."""
        domains = list(first.domains)
        domains.extend(d for d in second.domains if d not in domains)
        domains.sort(key=lambda d: _DOMAIN_ORDER[d])
        provenance = list(first.provenance)
        provenance.extend(p for p in second.provenance if p not in provenance)
        return replace(
            first,
            severity=max(first.severity, second.severity, key=lambda s: s.rank),
            confidence=max(first.confidence, second.confidence, key=lambda c: c.rank),
            suggestion=first.suggestion or second.suggestion,
            domains=tuple(domains),
            provenance=tuple(provenance),
        )

    @staticmethod
    def _sort_key(unit: CompilationUnit, finding: Finding) -> Tuple:
        offset = finding.location.statement_offset
        return (
            unit.order_key(finding.location.declaration_id),
            finding.rule_id,
            -1 if offset is None else offset,
        )
