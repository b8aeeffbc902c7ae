"""
Notification API endpoints

- POST /api/v1/notifications/broadcast - Send one message to every registered device
- POST /api/v1/notifications/test - Send one message to one token
"""
import logging

from fastapi import APIRouter, Depends

from app.schemas.notification import (
    BroadcastCreate,
    BroadcastResponse,
    TestNotificationRequest,
    TestNotificationResponse,
)
from app.services.push.delivery_engine import DeliveryEngine, get_delivery_engine
from app.services.push.models import BroadcastRequest

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/notifications", tags=["notifications"])


@router.post(
    "/broadcast",
    response_model=BroadcastResponse,
    responses={
        400: {"description": "Empty title/body or malformed target"},
        503: {"description": "Push transport unavailable"},
    },
)
async def broadcast(
    request: BroadcastCreate,
    engine: DeliveryEngine = Depends(get_delivery_engine),
) -> BroadcastResponse:
    """
    Broadcast a notification.

    Partial delivery failure is reported in the counts with a 200 response.
    An empty targets list means every registered device.
    """
    report = await engine.broadcast(
        BroadcastRequest(
            title=request.title,
            body=request.body,
            targets=request.targets or None,
            data=request.data,
        ),
        source="api",
    )
    return BroadcastResponse(
        success_count=report.success_count,
        failure_count=report.failure_count,
        total_devices=report.total_attempted,
        removed_count=report.removed_count,
        transient_failures=report.transient_failures,
        message=report.message,
    )


@router.post(
    "/test",
    response_model=TestNotificationResponse,
    responses={
        400: {"description": "Missing or malformed token"},
        503: {"description": "Push transport unavailable"},
    },
)
async def send_test_notification(
    request: TestNotificationRequest,
    engine: DeliveryEngine = Depends(get_delivery_engine),
) -> TestNotificationResponse:
    """Send a test notification to a single token."""
    outcome = await engine.send_test(request.token, request.title, request.body)
    return TestNotificationResponse(
        success=outcome.success,
        status=outcome.status.value,
        message_id=outcome.message_id,
        error=outcome.error,
    )
