"""
Push delivery: fan-out of one notification to many registered tokens.

This package contains:
- PushTransport - transport contract (batched, order-preserving)
- FCMTransport - Firebase Cloud Messaging implementation
- DeliveryEngine - broadcast resolution, single batched send, outcome classification
- CleanupCoordinator - removal of registrations whose tokens failed permanently
"""

from app.services.push.cleanup_coordinator import CleanupCoordinator, CleanupResult
from app.services.push.delivery_engine import DeliveryEngine
from app.services.push.fcm_transport import FCMTransport, classify_fcm_error
from app.services.push.models import (
    BroadcastRequest,
    DeliveryOutcome,
    DeliveryReport,
    DeliveryStatus,
    FCMConfig,
    NotificationPayload,
    PERMANENT_FAILURE_STATUSES,
)
from app.services.push.transport import PushTransport

__all__ = [
    # Engine
    "DeliveryEngine",
    "BroadcastRequest",
    "DeliveryReport",
    # Cleanup
    "CleanupCoordinator",
    "CleanupResult",
    # Transport
    "PushTransport",
    "FCMTransport",
    "FCMConfig",
    "classify_fcm_error",
    # Common
    "NotificationPayload",
    "DeliveryOutcome",
    "DeliveryStatus",
    "PERMANENT_FAILURE_STATUSES",
]
