"""
Error taxonomy for Gavel.

Every business-rule failure is raised as a MarketError subclass with a
stable machine-readable kind and a message that is safe to show callers.
"""

from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Sequence, Tuple, Union


class ErrorKind(str, Enum):
    """Stable error kinds exposed to front-ends."""
    NOT_FOUND = "not_found"
    FORBIDDEN = "forbidden"
    UNAUTHENTICATED = "unauthenticated"
    INVALID_STATE = "invalid_state"
    CONFLICT = "conflict"
    ORACLE_UNAVAILABLE = "oracle_unavailable"
    INTERNAL = "internal"


HTTP_STATUS = {
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.FORBIDDEN: 403,
    ErrorKind.UNAUTHENTICATED: 401,
    ErrorKind.INVALID_STATE: 400,
    ErrorKind.CONFLICT: 409,
    ErrorKind.ORACLE_UNAVAILABLE: 503,
    ErrorKind.INTERNAL: 500,
}


@dataclass(frozen=True)
class FieldReason:
    """A single field-level violation."""
    field: str
    message: str

    def to_dict(self) -> dict:
        return {"field": self.field, "message": self.message}


ReasonLike = Union[FieldReason, Tuple[str, str]]


class MarketError(Exception):
    """Base class for all marketplace errors."""

    kind: ErrorKind = ErrorKind.INTERNAL
    retryable: bool = False

    def __init__(self, message: str, reasons: Optional[Sequence[ReasonLike]] = None):
        super().__init__(message)
        self.message = message
        self.reasons: List[FieldReason] = [
            r if isinstance(r, FieldReason) else FieldReason(*r)
            for r in (reasons or [])
        ]

    @property
    def status(self) -> int:
        return HTTP_STATUS[self.kind]

    def to_dict(self) -> dict:
        body = {
            "error": self.message,
            "code": self.kind.value,
            "retryable": self.retryable,
        }
        if self.reasons:
            body["details"] = [r.to_dict() for r in self.reasons]
        return body


class NotFoundError(MarketError):
    kind = ErrorKind.NOT_FOUND

    def __init__(self, resource: str):
        super().__init__(f"{resource} not found")
        self.resource = resource


class ForbiddenError(MarketError):
    kind = ErrorKind.FORBIDDEN

    def __init__(self, message: str = "Not authorized"):
        super().__init__(message)


class UnauthenticatedError(MarketError):
    kind = ErrorKind.UNAUTHENTICATED

    def __init__(self, message: str = "Authentication failed"):
        super().__init__(message)


class InvalidStateError(MarketError):
    kind = ErrorKind.INVALID_STATE


class ConflictError(MarketError):
    kind = ErrorKind.CONFLICT


class OracleUnavailableError(MarketError):
    """External balance/payment oracle timed out or failed; safe to retry."""
    kind = ErrorKind.ORACLE_UNAVAILABLE
    retryable = True


class InternalError(MarketError):
    kind = ErrorKind.INTERNAL

    def __init__(self, message: str = "Internal server error"):
        super().__init__(message)
