"""
Error codes and exception hierarchy.

Every service-level failure is an AffirmError carrying a stable code. The
API layer maps codes to HTTP statuses; selection and per-line synthesis
failures are normally absorbed before they reach a route.

    AffirmError
    ├── SelectionFailure       no tier and no fallback could produce lines
    ├── GenerationUnavailable  the line generator is missing or failed
    ├── SynthesisFailure       the speech provider failed for one line
    ├── CacheIntegrityFailure  a persisted row points at a missing artifact
    ├── InvalidInputError      request validation failed
    └── NotFoundError          referenced entity does not exist
"""
from __future__ import annotations

from typing import Any, Dict, Optional


class ErrorCode:
    SELECTION_FAILED = "SELECTION_FAILED"
    GENERATION_UNAVAILABLE = "GENERATION_UNAVAILABLE"
    SYNTHESIS_FAILED = "SYNTHESIS_FAILED"
    CACHE_INTEGRITY = "CACHE_INTEGRITY"
    INVALID_INPUT = "INVALID_INPUT"
    NOT_FOUND = "NOT_FOUND"
    INTERNAL_ERROR = "INTERNAL_ERROR"


class AffirmError(Exception):
    """
    Base exception with a standardized API representation.

    Attributes:
        message: Human-readable error message.
        code: One of the ErrorCode constants.
        details: Optional extra context, included in to_dict().
    """

    def __init__(self, message: str, code: str = ErrorCode.INTERNAL_ERROR, details: Optional[Dict] = None):
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {
            "ok": False,
            "error": self.code,
            "message": self.message,
        }
        if self.details:
            result["details"] = self.details
        return result


class SelectionFailure(AffirmError):
    def __init__(self, message: str, details: Optional[Dict] = None):
        super().__init__(message, ErrorCode.SELECTION_FAILED, details)


class GenerationUnavailable(AffirmError):
    def __init__(self, message: str, details: Optional[Dict] = None):
        super().__init__(message, ErrorCode.GENERATION_UNAVAILABLE, details)


class SynthesisFailure(AffirmError):
    def __init__(self, message: str, details: Optional[Dict] = None):
        super().__init__(message, ErrorCode.SYNTHESIS_FAILED, details)


class CacheIntegrityFailure(AffirmError):
    def __init__(self, message: str, details: Optional[Dict] = None):
        super().__init__(message, ErrorCode.CACHE_INTEGRITY, details)


class InvalidInputError(AffirmError):
    def __init__(self, message: str, details: Optional[Dict] = None):
        super().__init__(message, ErrorCode.INVALID_INPUT, details)


class NotFoundError(AffirmError):
    def __init__(self, message: str, details: Optional[Dict] = None):
        super().__init__(message, ErrorCode.NOT_FOUND, details)


# HTTP status for each code, used by the API layer.
HTTP_STATUS = {
    ErrorCode.INVALID_INPUT: 400,
    ErrorCode.NOT_FOUND: 404,
    ErrorCode.SYNTHESIS_FAILED: 502,
    ErrorCode.GENERATION_UNAVAILABLE: 503,
    ErrorCode.SELECTION_FAILED: 500,
    ErrorCode.CACHE_INTEGRITY: 500,
    ErrorCode.INTERNAL_ERROR: 500,
}
