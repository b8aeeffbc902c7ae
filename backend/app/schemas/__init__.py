"""Pydantic schemas for request/response validation"""
from app.schemas.token import (
    TokenRegisterRequest,
    TokenRegisterResponse,
    TokenUnregisterRequest,
    TokenUnregisterResponse,
    TokenCountResponse,
)
from app.schemas.notification import (
    BroadcastCreate,
    BroadcastResponse,
    TestNotificationRequest,
    TestNotificationResponse,
)
from app.schemas.shop import (
    ShopStatusResponse,
    ShopStatusUpdate,
    ShopAuditLogResponse,
    ShopAuditErrorLogResponse,
    ShopAuditLogListResponse,
    AutoCloseTriggerResponse,
    AutoCloseStatusResponse,
)
from app.schemas.system import HealthResponse, StoreCheckResponse

__all__ = [
    "TokenRegisterRequest",
    "TokenRegisterResponse",
    "TokenUnregisterRequest",
    "TokenUnregisterResponse",
    "TokenCountResponse",
    "BroadcastCreate",
    "BroadcastResponse",
    "TestNotificationRequest",
    "TestNotificationResponse",
    "ShopStatusResponse",
    "ShopStatusUpdate",
    "ShopAuditLogResponse",
    "ShopAuditErrorLogResponse",
    "ShopAuditLogListResponse",
    "AutoCloseTriggerResponse",
    "AutoCloseStatusResponse",
    "HealthResponse",
    "StoreCheckResponse",
]
