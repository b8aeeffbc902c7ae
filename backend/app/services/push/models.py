"""
Models for push delivery.

DeliveryStatus is the per-token reason reported by a transport. Two reasons
mean the token will never succeed again and drive registry cleanup; every
other failure is transient and leaves the registration alone.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence

from pydantic import BaseModel, Field, field_validator

from app.core.errors import ErrorKind


class DeliveryStatus(str, Enum):
    """Delivery status for a single token."""

    SUCCESS = "success"
    UNREGISTERED = "unregistered"      # app uninstalled / token expired
    INVALID_TOKEN = "invalid_token"    # token is not a valid registration token
    RATE_LIMITED = "rate_limited"
    AUTH_ERROR = "auth_error"
    SERVER_ERROR = "server_error"
    FAILED = "failed"


PERMANENT_FAILURE_STATUSES = frozenset({
    DeliveryStatus.UNREGISTERED,
    DeliveryStatus.INVALID_TOKEN,
})


@dataclass
class DeliveryOutcome:
    """Result of one delivery attempt, as reported by the transport."""

    token: str
    success: bool
    status: DeliveryStatus = DeliveryStatus.FAILED
    error: Optional[str] = None
    message_id: Optional[str] = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def is_permanent_failure(self) -> bool:
        return not self.success and self.status in PERMANENT_FAILURE_STATUSES

    @property
    def failure_kind(self) -> Optional[ErrorKind]:
        """Error kind of a failed outcome, None on success."""
        if self.success:
            return None
        if self.is_permanent_failure:
            return ErrorKind.PERMANENT_DELIVERY_FAILURE
        return ErrorKind.TRANSIENT_DELIVERY_FAILURE


@dataclass
class NotificationPayload:
    """Platform-agnostic notification content sent to every target.

    Attributes:
        title: Notification title
        body: Notification body text
        data: Custom data payload (string values, as FCM requires)
    """

    title: str
    body: str
    data: Dict[str, str] = field(default_factory=dict)


@dataclass
class BroadcastRequest:
    """A request to deliver one message to many tokens.

    Attributes:
        title: Notification title, must be non-empty
        body: Notification body, must be non-empty
        targets: Tokens or user ids overriding the registry snapshot
        data: Optional key-value payload attached to the push
    """

    title: str
    body: str
    targets: Optional[Sequence[str]] = None
    data: Optional[Dict[str, Any]] = None


@dataclass
class DeliveryReport:
    """Aggregated result of one broadcast.

    Attributes:
        success_count: Tokens delivered
        failure_count: Tokens that failed, permanent and transient
        total_attempted: Tokens handed to the transport
        removed_count: Registrations removed by cleanup
        transient_failures: Failures that left registrations untouched
        orphaned_tokens: Permanently failed tokens with no resolvable owner
        kind: ErrorKind.NO_TARGETS when nothing was sent, else None
        outcomes: Per-token outcomes in transport order
        duration_ms: Time spent in the transport call
    """

    success_count: int = 0
    failure_count: int = 0
    total_attempted: int = 0
    removed_count: int = 0
    transient_failures: int = 0
    orphaned_tokens: List[str] = field(default_factory=list)
    kind: Optional[ErrorKind] = None
    outcomes: List[DeliveryOutcome] = field(default_factory=list)
    duration_ms: float = 0.0
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def message(self) -> str:
        if self.kind == ErrorKind.NO_TARGETS:
            return "No devices registered for notifications yet"
        return f"Sent to {self.success_count} of {self.total_attempted} devices"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success_count": self.success_count,
            "failure_count": self.failure_count,
            "total_attempted": self.total_attempted,
            "removed_count": self.removed_count,
            "transient_failures": self.transient_failures,
            "orphaned_count": len(self.orphaned_tokens),
            "message": self.message,
        }


class FCMConfig(BaseModel):
    """Configuration for the FCM transport.

    Attributes:
        project_id: Firebase project ID
        credentials_path: Path to the service account JSON file
        batch_size: Tokens per send_each_for_multicast call
    """

    project_id: str = Field(..., description="Firebase project ID")
    credentials_path: str = Field(..., description="Path to service account JSON file")
    batch_size: int = Field(default=500, ge=1, le=500, description="Tokens per multicast call")

    @field_validator("credentials_path")
    @classmethod
    def validate_credentials_path(cls, v: str) -> str:
        """Validate that credentials path is not empty."""
        if not v or not v.strip():
            raise ValueError("credentials_path cannot be empty")
        return v
