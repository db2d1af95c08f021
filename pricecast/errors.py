"""
Errors raised by the forecasting pipeline.

Insufficient history is not an error: it is represented as a null
feature. The classes here cover the conditions that must be surfaced
to a caller or to the orchestrator.
"""

from datetime import datetime


class PipelineError(Exception):
    """Base error for all pipeline errors."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(self.message)


class InsufficientDataError(PipelineError):
    """Raised when the Trainer has too few complete feature rows."""

    def __init__(self, available: int, required: int) -> None:
        super().__init__(
            f"Insufficient training data: {available} complete rows, "
            f"at least {required} required"
        )
        self.available = available
        self.required = required


class FeatureUnavailableError(PipelineError):
    """Raised when the latest feature snapshot has unresolved nulls."""

    def __init__(self, missing: list[str], timestamp: datetime | None = None) -> None:
        at = f" at {timestamp.isoformat()}" if timestamp is not None else ""
        super().__init__(
            f"Feature unavailable{at}: {', '.join(sorted(missing))}"
        )
        self.missing = sorted(missing)
        self.timestamp = timestamp


class ModelNotFoundError(PipelineError):
    """Raised when no model (or no model with the given version) exists."""

    def __init__(self, version: str | None = None) -> None:
        if version is None:
            super().__init__("No trained model available")
        else:
            super().__init__(f"Model version not found: {version}")
        self.version = version


class MalformedRecordError(PipelineError):
    """Raised when an incoming record cannot be coerced."""

    def __init__(self, reason: str) -> None:
        super().__init__(f"Malformed record: {reason}")
        self.reason = reason


class UnknownWorkflowError(PipelineError):
    """Raised when a caller requests a workflow that is not declared."""

    def __init__(self, name: str, available: list[str]) -> None:
        super().__init__(
            f"Unknown workflow: {name}. Available: {', '.join(available)}"
        )
        self.name = name
        self.available = available


class InvalidHorizonError(PipelineError):
    """Raised when the requested horizon is outside the allowed range."""

    def __init__(self, hours: int, max_hours: int) -> None:
        super().__init__(
            f"Invalid prediction horizon: {hours}. Must be between 1 and {max_hours}."
        )
        self.hours = hours
        self.max_hours = max_hours


class DataSourceError(PipelineError):
    """Raised by an upstream data source that failed to deliver."""

    def __init__(self, source: str, reason: str) -> None:
        super().__init__(f"Data source '{source}' failed: {reason}")
        self.source = source
        self.reason = reason
