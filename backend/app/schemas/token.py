"""Push token registration schemas"""
from pydantic import BaseModel, Field, field_validator
from typing import Any, Dict, Optional

from app.services.registry.models import Role


class TokenRegisterRequest(BaseModel):
    """
    Schema for registering a push token.

    A missing user_id registers the token under 'anonymous'.

    Example:
        {
            "user_id": "u-123",
            "token": "dQw4w9WgXcQ:APA91bH...",
            "role": "user",
            "device_info": {"platform": "android", "model": "Pixel 8"}
        }
    """
    user_id: Optional[str] = Field(
        None,
        max_length=255,
        validate_default=True,
        description="User identity; defaults to 'anonymous'"
    )
    token: Optional[str] = Field(
        None,
        description="FCM registration token, checked by the token validation policy"
    )
    role: Role = Field(
        Role.USER,
        description="Role of the registering user"
    )
    device_info: Optional[Dict[str, Any]] = Field(
        None,
        description="Platform / device metadata, stored as-is"
    )

    @field_validator('user_id')
    @classmethod
    def default_user_id(cls, v: Optional[str]) -> str:
        v = (v or "").strip()
        return v or "anonymous"


class TokenRegisterResponse(BaseModel):
    """Response for token registration."""
    success: bool = True
    message: str = Field(description="Status message")
    user_id: str = Field(description="User the token was stored for")
    is_new: bool = Field(description="True if the user had no registration before")
    total_users: int = Field(description="Registered users after the write")


class TokenUnregisterRequest(BaseModel):
    """Remove a registration by user_id or by token value."""
    user_id: Optional[str] = Field(None, description="User whose registration to remove")
    token: Optional[str] = Field(None, description="Token whose first owner to remove")


class TokenUnregisterResponse(BaseModel):
    success: bool = True
    removed: int = Field(description="Registrations removed (0 or 1)")


class TokenCountResponse(BaseModel):
    """Response for the registration count endpoint."""
    success: bool = True
    active_tokens: int = Field(description="Distinct registered users")
    message: str = Field(description="Human-readable summary")
