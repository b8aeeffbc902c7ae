"""
Error taxonomy for the push fan-out service.

Every failure the service can report is one of the ErrorKind members.
Only the kinds that abort an operation are raised as exceptions; the rest
(no targets, per-token delivery failures, orphaned tokens) travel as data
inside delivery and cleanup reports.
"""
from enum import Enum
from typing import Any, Dict, Optional


class ErrorKind(str, Enum):
    """Closed set of error kinds."""

    INVALID_INPUT = "invalid_input"
    NO_TARGETS = "no_targets"
    TRANSPORT_UNAVAILABLE = "transport_unavailable"
    PERMANENT_DELIVERY_FAILURE = "permanent_delivery_failure"
    TRANSIENT_DELIVERY_FAILURE = "transient_delivery_failure"
    STORE_UNAVAILABLE = "store_unavailable"
    ORPHANED_TOKEN = "orphaned_token"


class PushServiceError(Exception):
    """Base class for errors that abort a single operation."""

    kind: ErrorKind

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind.value,
            "message": self.message,
            "details": self.details,
        }


class InvalidInputError(PushServiceError):
    """Missing or malformed title, body, token or user id. Raised before any side effect."""

    kind = ErrorKind.INVALID_INPUT

    def __init__(self, message: str, field: Optional[str] = None, details: Optional[Dict[str, Any]] = None):
        details = dict(details or {})
        if field:
            details["field"] = field
        super().__init__(message, details)
        self.field = field


class TransportUnavailableError(PushServiceError):
    """The batched send call itself failed; no per-token outcomes exist."""

    kind = ErrorKind.TRANSPORT_UNAVAILABLE


class StoreUnavailableError(PushServiceError):
    """Durable persistence failed; the in-process cache was left unchanged."""

    kind = ErrorKind.STORE_UNAVAILABLE
