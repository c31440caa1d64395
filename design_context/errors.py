"""Error and warning taxonomy for the extraction pipeline.

Only two things are exceptions:
- MalformedInputError: the raw root is not an object or a list (fatal)
- ExtractionCancelled: raised inside a stage when the cancellation token
  fires; the orchestrator catches it and returns a partial bundle

Everything else (repaired structure, timeouts, cycles, failed stages,
validation findings) is reported as PipelineWarning data on the bundle.
"""

from __future__ import annotations

from enum import Enum


class DesignContextError(Exception):
    """Base class for pipeline exceptions."""


class MalformedInputError(DesignContextError):
    """Raised when the raw tree root is not an object/record or a list."""

    def __init__(self, message: str, received_type: str = ""):
        super().__init__(message)
        self.received_type = received_type


class ExtractionCancelled(DesignContextError):
    """Raised inside a stage once the request's cancellation token fired."""


class WarningKind(str, Enum):
    STRUCTURAL = "StructuralWarning"
    TIMEOUT = "TimeoutWarning"
    CYCLE_DETECTED = "CycleDetectedWarning"
    STAGE_FAILED = "StageFailedWarning"
    VALIDATION = "ValidationWarning"


class WarningImpact(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    INFO = "info"


class IssueSeverity(str, Enum):
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
