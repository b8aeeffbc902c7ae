"""
System Schemas

Pydantic schemas for liveness and store connectivity endpoints.
"""
from pydantic import BaseModel, Field
from datetime import datetime


class HealthResponse(BaseModel):
    """
    Schema for the liveness response

    Example:
        {
            "status": "online",
            "message": "Notification server is running",
            "timestamp": "2025-11-18T02:00:00Z",
            "fcm_configured": true
        }
    """
    status: str = Field(description="Service status")
    message: str = Field(description="Human-readable status")
    timestamp: datetime = Field(description="Server time (UTC)")
    fcm_configured: bool = Field(description="Whether an FCM transport is available")


class StoreCheckResponse(BaseModel):
    """
    Schema for the store connectivity check

    Attributes:
        success: Check write and registration read both succeeded
        store: Connection summary
        tokens_count: Registered users read back from the store
    """
    success: bool = True
    store: str = Field(description="Connection summary")
    tokens_count: int = Field(description="Registered users in the store")

    model_config = {
        "json_schema_extra": {
            "example": {
                "success": True,
                "store": "connected",
                "tokens_count": 42
            }
        }
    }
