"""Triage module - decides which domain detectors run on a unit."""

from crucible.triage.domain.models import DomainActivation, TriageDecision, UnitSignals
from crucible.triage.application.router import CRITICAL_TRIGGERS, TriageRouter

__all__ = [
    "DomainActivation",
    "TriageDecision",
    "UnitSignals",
    "CRITICAL_TRIGGERS",
    "TriageRouter",
]
