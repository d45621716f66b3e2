from enum import Enum
from typing import Any, Dict, Optional


class ErrorKind(Enum):
    NOT_FOUND = "NotFound"
    CONFLICT = "Conflict"
    UNAUTHORIZED = "Unauthorized"
    INVALID_INPUT = "InvalidInput"
    UPSTREAM_UNAVAILABLE = "UpstreamUnavailable"

    @property
    def status_code(self) -> int:
        return _STATUS_CODES[self]

    @property
    def retryable(self) -> bool:
        return self is ErrorKind.UPSTREAM_UNAVAILABLE


_STATUS_CODES = {
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.CONFLICT: 409,
    # A caller that is authenticated but not allowed; missing credentials
    # are answered with 401 by the auth dependency before reaching a service.
    ErrorKind.UNAUTHORIZED: 403,
    ErrorKind.INVALID_INPUT: 400,
    ErrorKind.UPSTREAM_UNAVAILABLE: 503,
}


class DocumentServiceError(Exception):
    """User-visible failure of a document or signature operation."""

    def __init__(self, kind: ErrorKind, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind.value,
            "message": self.message,
            "retryable": self.kind.retryable,
            "details": self.details,
        }
