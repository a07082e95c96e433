"""
Analysis orchestrator.

Runs the pipeline for a batch of units:

    raw mapping -> ModelBuilder -> TriageRouter -> detectors (parallel) -> FindingAggregator

Detectors are synchronous and stateless; the selected ones run on worker
threads and asyncio.gather is the barrier before aggregation. Units are
processed concurrently under a semaphore. Cancellation is checked at unit
boundaries: finished units are kept, units not yet started are reported
as cancelled.
"""

import asyncio
import time
from typing import Any, List, Mapping, Optional, Sequence, Tuple, Union

from crucible.detectors.domain.detector import BaseDetector, DetectionResult
from crucible.detectors.infrastructure.registry import DetectorRegistry
from crucible.model.application.builder import ModelBuilder
from crucible.model.domain.unit import CompilationUnit
from crucible.pipeline.application.aggregator import FindingAggregator
from crucible.pipeline.domain.models import (
    BatchReport,
    CancellationToken,
    DetectorRun,
    UnitReport,
    UnitStatus,
)
from crucible.rules.application.config_loader import RuleConfigLoader
from crucible.rules.domain.models import RunConfiguration
from crucible.shared.domain.exceptions import InternalInvariantViolation, ModelConstructionError
from crucible.shared.infrastructure.config import settings
from crucible.shared.infrastructure.logging import get_logger
from crucible.triage.application.router import TriageRouter

logger = get_logger(__name__)

UnitInput = Union[CompilationUnit, Mapping[str, Any]]


def _elapsed_ms(start: float) -> float:
    return round((time.perf_counter() - start) * 1000, 3)


class AnalysisOrchestrator:
    """
    Orchestrates analysis of compilation units.

    Configuration problems surface from the constructor as
    RuleConfigurationError, before any unit is processed.
    """

    def __init__(
        self,
        config: Optional[RunConfiguration] = None,
        registry: Optional[DetectorRegistry] = None,
        router: Optional[TriageRouter] = None,
        aggregator: Optional[FindingAggregator] = None,
        parallel_limit: Optional[int] = None,
    ) -> None:
        """
        Initialize orchestrator.

        Args:
            config: Resolved rule configuration (default: settings.rules_file or catalog defaults)
            registry: Detector registry (default: built-in detectors)
            router: Triage router (default: built from config)
            aggregator: Finding aggregator
            parallel_limit: Units analyzed concurrently (default: settings.parallel_limit)
        """
        self.config = config or RuleConfigLoader().load()
        self.registry = registry or DetectorRegistry()
        self.router = router or TriageRouter(self.config)
        self.aggregator = aggregator or FindingAggregator()
        self.parallel_limit = parallel_limit or settings.parallel_limit
        self.builder = ModelBuilder()

        logger.info(
            "orchestrator_initialized",
            detectors=[d.detector_id for d in self.registry.detectors()],
            parallel_limit=self.parallel_limit,
            small_unit_threshold=self.router.small_unit_threshold,
        )

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def analyze_batch_async(
        self,
        units: Sequence[UnitInput],
        cancel_token: Optional[CancellationToken] = None,
    ) -> BatchReport:
        """
        Analyze a batch of units.

        Args:
            units: CompilationUnits or raw unit mappings
            cancel_token: Optional token checked before each unit starts

        Returns:
            BatchReport with one UnitReport per input, in input order

        Raises:
            InternalInvariantViolation: A detector broke a model invariant
        """
        start = time.perf_counter()
        token = cancel_token or CancellationToken()
        semaphore = asyncio.Semaphore(self.parallel_limit)

        logger.info("batch_started", units=len(units), parallel_limit=self.parallel_limit)

        async def analyze_with_semaphore(index: int, unit: UnitInput) -> UnitReport:
            async with semaphore:
                if token.is_cancelled:
                    return UnitReport(unit_name=self._unit_name(unit, index), status=UnitStatus.CANCELLED)
                return await self.analyze_unit_async(unit, index=index)

        reports = await asyncio.gather(*(analyze_with_semaphore(i, u) for i, u in enumerate(units)))

        batch = BatchReport(units=list(reports), cancelled=token.is_cancelled, duration_ms=_elapsed_ms(start))
        logger.info(
            "batch_completed",
            units=len(batch.units),
            completed=batch.count_by_status(UnitStatus.COMPLETED),
            failed=batch.count_by_status(UnitStatus.FAILED),
            cancelled=batch.count_by_status(UnitStatus.CANCELLED),
            findings=batch.total_findings,
            duration_ms=batch.duration_ms,
        )
        return batch

    async def analyze_unit_async(self, unit: UnitInput, index: int = 0) -> UnitReport:
        """
        Analyze one unit.

        A unit that cannot be built is reported as FAILED; the caller's
        batch continues.
        """
        start = time.perf_counter()
        name = self._unit_name(unit, index)

        if not isinstance(unit, CompilationUnit):
            try:
                unit = self.builder.build(unit)
            except ModelConstructionError as e:
                logger.warning("unit_construction_failed", unit=name, error=str(e), context=e.context)
                return UnitReport(
                    unit_name=name,
                    status=UnitStatus.FAILED,
                    error=str(e),
                    duration_ms=_elapsed_ms(start),
                )

        decision = self.router.route(unit, self.registry.domains())
        detectors = [self.registry.get(domain) for domain in decision.selected_domains]

        try:
            timed = await asyncio.gather(*(asyncio.to_thread(self._run_detector, d, unit) for d in detectors))
            findings = self.aggregator.aggregate(unit, [result for result, _ in timed])
        except InternalInvariantViolation as e:
            logger.error("internal_invariant_violation", unit=unit.name, error=str(e), context=e.context)
            raise

        runs = [
            DetectorRun(
                detector_id=result.detector_id,
                domain=result.domain,
                findings_count=len(result.findings),
                errors=list(result.errors),
                duration_ms=duration,
            )
            for result, duration in timed
        ]
        report = UnitReport(
            unit_name=unit.name,
            status=UnitStatus.COMPLETED,
            findings=findings,
            detector_runs=runs,
            triage=decision,
            duration_ms=_elapsed_ms(start),
        )
        logger.info(
            "unit_analyzed",
            unit=unit.name,
            findings=len(findings),
            critical=report.critical_count,
            detectors=[r.detector_id for r in runs],
            detector_errors=sum(len(r.errors) for r in runs),
        )
        return report

    def analyze_batch(
        self,
        units: Sequence[UnitInput],
        cancel_token: Optional[CancellationToken] = None,
    ) -> BatchReport:
        """Synchronous wrapper around analyze_batch_async."""
        return asyncio.run(self.analyze_batch_async(units, cancel_token))

    def analyze_unit(self, unit: UnitInput) -> UnitReport:
        """Synchronous wrapper around analyze_unit_async."""
        return asyncio.run(self.analyze_unit_async(unit))

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _run_detector(self, detector: BaseDetector, unit: CompilationUnit) -> Tuple[DetectionResult, float]:
        start = time.perf_counter()
        result = detector.detect(unit, self.config)
        return result, _elapsed_ms(start)

    @staticmethod
    def _unit_name(unit: UnitInput, index: int) -> str:
        if isinstance(unit, CompilationUnit):
            return unit.name
        if isinstance(unit, Mapping) and unit.get("name"):
            return str(unit["name"])
        return f"<unit {index}>"


def analyze_units(units: List[UnitInput], config: Optional[RunConfiguration] = None) -> BatchReport:
    """Convenience: analyze a batch with default registry and router."""
    return AnalysisOrchestrator(config=config).analyze_batch(units)
