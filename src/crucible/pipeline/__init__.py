"""Pipeline module - batch orchestration and finding aggregation."""

from crucible.pipeline.domain.models import (
    BatchReport,
    CancellationToken,
    DetectorRun,
    UnitReport,
    UnitStatus,
)
from crucible.pipeline.application.aggregator import FindingAggregator
from crucible.pipeline.application.orchestrator import AnalysisOrchestrator

__all__ = [
    "BatchReport",
    "CancellationToken",
    "DetectorRun",
    "UnitReport",
    "UnitStatus",
    "FindingAggregator",
    "AnalysisOrchestrator",
]
