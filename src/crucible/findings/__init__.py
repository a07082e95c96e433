"""Findings module - detector output shared by every domain."""

from crucible.findings.domain.enums import Confidence, Domain, Severity
from crucible.findings.domain.models import Finding, Location

__all__ = [
    "Confidence",
    "Domain",
    "Severity",
    "Finding",
    "Location",
]
