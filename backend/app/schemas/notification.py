"""Broadcast and test notification schemas"""
from pydantic import BaseModel, Field
from typing import Any, Dict, List, Optional


class BroadcastCreate(BaseModel):
    """
    Schema for a broadcast request.

    Title and body are checked by the delivery engine so that blank values
    are reported the same way for API and scheduled broadcasts.

    Example:
        {
            "title": "Flash sale",
            "body": "20% off until 6pm",
            "targets": ["u-123", "dQw4w9WgXcQ:APA91bH..."]
        }
    """
    title: Optional[str] = Field(None, max_length=200, description="Notification title")
    body: Optional[str] = Field(None, max_length=2000, description="Notification body")
    targets: Optional[List[str]] = Field(
        None,
        description="User ids or tokens to send to instead of every registration"
    )
    data: Optional[Dict[str, Any]] = Field(
        None,
        description="Extra key-value data attached to the push"
    )


class BroadcastResponse(BaseModel):
    """Aggregated broadcast outcome."""
    success: bool = True
    success_count: int = Field(description="Tokens delivered")
    failure_count: int = Field(description="Tokens that failed")
    total_devices: int = Field(description="Tokens attempted")
    removed_count: int = Field(0, description="Registrations removed after permanent failures")
    transient_failures: int = Field(0, description="Failures that kept their registration")
    message: str = Field(description="Human-readable summary")


class TestNotificationRequest(BaseModel):
    """Send one notification to one token."""
    token: Optional[str] = Field(None, description="Target FCM registration token")
    title: str = Field("Test Notification", max_length=200)
    body: str = Field("This is a test notification", max_length=2000)


class TestNotificationResponse(BaseModel):
    success: bool = Field(description="Whether the token accepted the message")
    status: str = Field(description="Delivery status")
    message_id: Optional[str] = Field(None, description="FCM message id on success")
    error: Optional[str] = Field(None, description="Error message on failure")
