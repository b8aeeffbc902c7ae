"""Shop status and auto-close schemas"""
from pydantic import BaseModel, Field
from datetime import datetime
from typing import Any, Dict, List, Optional


class ShopStatusResponse(BaseModel):
    """Current shop status."""
    is_open: bool = Field(description="Whether the shop is open")
    updated_by: Optional[str] = Field(None, description="Actor of the last change")
    auto_closed: bool = Field(False, description="Whether the last change was an automatic close")
    closed_date: Optional[str] = Field(None, description="Local date of the last automatic close")
    updated_at: Optional[str] = Field(None, description="UTC time of the last change")


class ShopStatusUpdate(BaseModel):
    """Open or close the shop by hand."""
    is_open: bool = Field(..., description="New open flag")
    updated_by: str = Field("api", max_length=100, description="Who is making the change")


class ShopAuditLogResponse(BaseModel):
    """One auto-close run record."""
    id: str
    status: str
    triggered_by: str
    success_count: int
    failure_count: int
    total_attempted: int
    local_time: str
    timezone: str
    details: Optional[Dict[str, Any]] = None
    created_at: datetime

    model_config = {"from_attributes": True}


class ShopAuditErrorLogResponse(BaseModel):
    """One internal error raised during an auto-close run."""
    id: str
    triggered_by: str
    error_type: str
    error_message: str
    local_time: str
    timezone: str
    created_at: datetime

    model_config = {"from_attributes": True}


class ShopAuditLogListResponse(BaseModel):
    runs: List[ShopAuditLogResponse] = Field(default_factory=list)
    errors: List[ShopAuditErrorLogResponse] = Field(default_factory=list)


class AutoCloseTriggerResponse(BaseModel):
    """Result of a manual auto-close run."""
    status: str = Field(description="closed, skipped or error")
    triggered_by: str
    local_time: str
    success_count: int = 0
    failure_count: int = 0
    total_attempted: int = 0
    removed_count: int = 0
    error: Optional[str] = None


class AutoCloseStatusResponse(BaseModel):
    """Auto-close scheduler status."""
    enabled: bool = Field(description="Whether the daily job is scheduled")
    schedule_time: str = Field(description="Scheduled local time (HH:MM)")
    timezone: str = Field(description="IANA timezone of the schedule")
    last_run: Optional[datetime] = Field(None, description="Last execution time")
    last_status: str = Field(description="Status of last run")
    last_error: Optional[str] = Field(None, description="Error from last run if any")
    next_run: Optional[datetime] = Field(None, description="Next scheduled run time")
