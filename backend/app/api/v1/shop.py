"""
Shop API endpoints

Provides endpoints for:
- Reading and setting the shop open/closed status
- Listing auto-close audit records
- Triggering the auto-close routine by hand
- Getting auto-close scheduler status
"""
import logging

from fastapi import APIRouter, Depends, Query

from app.schemas.shop import (
    ShopStatusResponse,
    ShopStatusUpdate,
    ShopAuditLogResponse,
    ShopAuditErrorLogResponse,
    ShopAuditLogListResponse,
    AutoCloseTriggerResponse,
    AutoCloseStatusResponse,
)
from app.services.shop_close_scheduler import ShopCloseScheduler, get_shop_close_scheduler
from app.services.shop_status_service import ShopStatusService, get_shop_status_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/shop", tags=["shop"])


@router.get("/status", response_model=ShopStatusResponse)
async def get_shop_status(
    service: ShopStatusService = Depends(get_shop_status_service),
):
    """Current shop status; a shop with no stored status is open."""
    return ShopStatusResponse(**service.get_status().to_dict())


@router.put("/status", response_model=ShopStatusResponse)
async def set_shop_status(
    update: ShopStatusUpdate,
    service: ShopStatusService = Depends(get_shop_status_service),
):
    """
    Open or close the shop by hand.

    A manual close is recorded without the auto-close marker, so the next
    scheduled run sees the shop closed and skips its broadcast.
    """
    status = service.set_status(is_open=update.is_open, updated_by=update.updated_by)
    return ShopStatusResponse(**status.to_dict())


@router.get("/audit-logs", response_model=ShopAuditLogListResponse)
async def list_audit_logs(
    limit: int = Query(20, ge=1, le=200, description="Maximum records of each kind"),
    scheduler: ShopCloseScheduler = Depends(get_shop_close_scheduler),
):
    """Most recent auto-close runs and internal errors."""
    return ShopAuditLogListResponse(
        runs=[ShopAuditLogResponse.model_validate(r) for r in scheduler.get_audit_logs(limit)],
        errors=[ShopAuditErrorLogResponse.model_validate(e) for e in scheduler.get_error_logs(limit)],
    )


@router.post("/auto-close/trigger", response_model=AutoCloseTriggerResponse)
async def trigger_auto_close(
    scheduler: ShopCloseScheduler = Depends(get_shop_close_scheduler),
):
    """
    Run the auto-close routine now.

    Runs exactly what the daily job runs; a shop that is already closed is
    skipped without a broadcast.
    """
    logger.info(
        "Manual shop auto-close trigger",
        extra={"event_type": "shop_close_manual_trigger"}
    )
    outcome = await scheduler.trigger_now(triggered_by="manual")
    return AutoCloseTriggerResponse(**outcome.to_dict())


@router.get("/auto-close/status", response_model=AutoCloseStatusResponse)
async def get_auto_close_status(
    scheduler: ShopCloseScheduler = Depends(get_shop_close_scheduler),
):
    """Auto-close scheduler status, including the next fire time."""
    status = scheduler.get_status()
    return AutoCloseStatusResponse(
        enabled=status.enabled,
        schedule_time=status.schedule_time,
        timezone=status.timezone,
        last_run=status.last_run,
        last_status=status.last_status,
        last_error=status.last_error,
        next_run=status.next_run,
    )
