"""
Push token API endpoints

Endpoints for device token registration:
- POST /api/v1/tokens - Register or replace a user's push token
- DELETE /api/v1/tokens - Remove a registration by user_id or token
- GET /api/v1/tokens/count - Number of registered users
"""
import logging

from fastapi import APIRouter, Depends, status

from app.schemas.token import (
    TokenRegisterRequest,
    TokenRegisterResponse,
    TokenUnregisterRequest,
    TokenUnregisterResponse,
    TokenCountResponse,
)
from app.services.registry.token_registry import TokenRegistry, get_token_registry

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/tokens",
    tags=["tokens"]
)


@router.post(
    "",
    response_model=TokenRegisterResponse,
    status_code=status.HTTP_200_OK,
    summary="Register a push token",
    description="Store the push token for a user. A new token replaces the previous one.",
    responses={
        400: {"description": "Missing or malformed token"},
        503: {"description": "Registration store unavailable"},
    },
)
async def register_token(
    request: TokenRegisterRequest,
    registry: TokenRegistry = Depends(get_token_registry),
) -> TokenRegisterResponse:
    """
    Register a push token.

    Args:
        request: user_id, token, role and device info
        registry: Token registry

    Returns:
        TokenRegisterResponse with the total user count
    """
    result = registry.register(
        request.user_id,
        request.token,
        role=request.role,
        metadata=request.device_info,
    )
    return TokenRegisterResponse(
        message="FCM token stored successfully",
        user_id=result.user_id,
        is_new=result.is_new,
        total_users=result.total_users,
    )


@router.delete(
    "",
    response_model=TokenUnregisterResponse,
    summary="Unregister a push token",
    responses={
        400: {"description": "Neither user_id nor token given"},
        503: {"description": "Registration store unavailable"},
    },
)
async def unregister_token(
    request: TokenUnregisterRequest,
    registry: TokenRegistry = Depends(get_token_registry),
) -> TokenUnregisterResponse:
    """Remove a registration. Unknown users or tokens remove nothing."""
    removed = registry.unregister(user_id=request.user_id, token=request.token)
    return TokenUnregisterResponse(removed=removed)


@router.get(
    "/count",
    response_model=TokenCountResponse,
    summary="Count registered users",
)
async def token_count(
    registry: TokenRegistry = Depends(get_token_registry),
) -> TokenCountResponse:
    """Distinct registered users, reconciled against the store."""
    count = registry.count()
    message = "No FCM tokens stored yet" if count == 0 else f"{count} devices registered"
    return TokenCountResponse(active_tokens=count, message=message)
