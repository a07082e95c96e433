"""
Finding enums.

Severity and Confidence are ordered: compare with .rank.
"""

from enum import Enum


class Domain(str, Enum):
    """Analysis domain; one detector per domain."""

    ARCHITECTURE = "architecture"
    CONCURRENCY = "concurrency"
    BORROWING = "borrowing"
    ERROR_HANDLING = "error_handling"
    SYSTEMS = "systems"
    TYPE_SYSTEM = "type_system"


class Severity(str, Enum):
    INFO = "info"
    WARNING = "warning"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return _SEVERITY_RANK[self]


class Confidence(str, Enum):
    POSSIBLE = "possible"
    LIKELY = "likely"
    DEFINITE = "definite"

    @property
    def rank(self) -> int:
        return _CONFIDENCE_RANK[self]

    def upgraded(self) -> "Confidence":
        """One step more certain (DEFINITE stays DEFINITE)."""
        if self == Confidence.POSSIBLE:
            return Confidence.LIKELY
        return Confidence.DEFINITE


_SEVERITY_RANK = {Severity.INFO: 1, Severity.WARNING: 2, Severity.CRITICAL: 3}
_CONFIDENCE_RANK = {Confidence.POSSIBLE: 1, Confidence.LIKELY: 2, Confidence.DEFINITE: 3}
