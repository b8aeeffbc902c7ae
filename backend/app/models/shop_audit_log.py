"""Shop auto-close audit log ORM models

Append-only tables: one row per scheduler/manual run outcome, and a separate
table for runs that failed with an internal error.
"""
from sqlalchemy import Column, String, DateTime, Integer, Text, JSON, Index
from app.core.database import Base
import uuid
from datetime import datetime, timezone
from enum import Enum


class AutoCloseStatus(str, Enum):
    """Outcome of one auto-close run"""
    CLOSED = "closed"      # shop flipped to closed and broadcast sent
    SKIPPED = "skipped"    # shop was already closed
    ERROR = "error"


class ShopAuditLog(Base):
    """
    Outcome of a shop auto-close run.

    Attributes:
        id: UUID primary key
        status: closed or skipped
        triggered_by: 'scheduler' or 'manual'
        success_count / failure_count / total_attempted: broadcast counts
        local_time: wall-clock time in the shop timezone when the run happened
        timezone: shop timezone name
        details: extra JSON (removed registrations, transient failures)
        created_at: UTC timestamp
    """

    __tablename__ = "shop_audit_logs"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    status = Column(String(20), nullable=False, index=True)
    triggered_by = Column(String(50), nullable=False)
    success_count = Column(Integer, nullable=False, default=0)
    failure_count = Column(Integer, nullable=False, default=0)
    total_attempted = Column(Integer, nullable=False, default=0)
    local_time = Column(String(40), nullable=False)
    timezone = Column(String(64), nullable=False)
    details = Column(JSON, nullable=True)
    created_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
        index=True
    )

    __table_args__ = (
        Index('idx_shop_audit_status_created', 'status', 'created_at'),
    )

    def __repr__(self):
        return f"<ShopAuditLog(id={self.id}, status={self.status}, triggered_by={self.triggered_by})>"


class ShopAuditErrorLog(Base):
    """Internal error raised during an auto-close run."""

    __tablename__ = "shop_audit_error_logs"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    triggered_by = Column(String(50), nullable=False)
    error_type = Column(String(100), nullable=False)
    error_message = Column(Text, nullable=False)
    local_time = Column(String(40), nullable=False)
    timezone = Column(String(64), nullable=False)
    created_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
        index=True
    )

    def __repr__(self):
        return f"<ShopAuditErrorLog(id={self.id}, error_type={self.error_type})>"
