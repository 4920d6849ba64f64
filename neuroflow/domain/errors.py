from enum import Enum
from typing import Any, Dict, Optional


class ErrorKind(str, Enum):
    """Error taxonomy shared by every component"""
    INPUT_INVALID = "input_invalid"
    BACKEND_UNAVAILABLE = "backend_unavailable"
    SANITIZATION_FAILED = "sanitization_failed"
    INVARIANT_VIOLATION = "invariant_violation"


class CognitiveCoreError(Exception):
    """Base class for all core errors"""

    kind: ErrorKind = ErrorKind.BACKEND_UNAVAILABLE

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class InputInvalid(CognitiveCoreError):
    """Malformed telemetry or request rejected at the edge"""

    kind = ErrorKind.INPUT_INVALID


class BackendUnavailable(CognitiveCoreError):
    """Embedding, generation or store call failed or timed out"""

    kind = ErrorKind.BACKEND_UNAVAILABLE


class EmbeddingFailed(BackendUnavailable):
    """Embedding could not be produced"""


class SanitizationFailed(CognitiveCoreError):
    """Generation succeeded but the output could not be repaired"""

    kind = ErrorKind.SANITIZATION_FAILED


class InvariantViolation(CognitiveCoreError):
    """Operation aborted to keep stored state consistent"""

    kind = ErrorKind.INVARIANT_VIOLATION


class DimensionMismatch(InvariantViolation):
    """Embedding dimensionality does not match the configured model"""

    def __init__(self, expected: int, actual: int):
        super().__init__(
            f"Embedding dimension {actual} does not match configured dimension {expected}",
            {"expected": expected, "actual": actual}
        )
        self.expected = expected
        self.actual = actual
