"""
Domain exceptions for Crucible.

Follows the "Fail Fast" and "Strict Types" principles.
All application errors should inherit from CrucibleError.

Failure scopes:
- ModelConstructionError: one unit is skipped, the batch continues.
- RuleConfigurationError: the whole run is refused before any unit starts.
- InternalInvariantViolation: programming defect, always fatal.
"""


class CrucibleError(Exception):
    """Base class for all Crucible exceptions."""

    def __init__(self, message: str, context: dict = None):
        super().__init__(message)
        self.context = context or {}


class ModelConstructionError(CrucibleError):
    """Raised when raw input cannot be reduced to a valid compilation unit."""

    pass


class RuleConfigurationError(CrucibleError):
    """Raised when rule configuration or thresholds are invalid."""

    pass


class InternalInvariantViolation(CrucibleError):
    """Raised when a detector breaks a model invariant (e.g. dangling declaration id)."""

    pass
