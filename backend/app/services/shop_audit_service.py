"""Shop Audit Service

Append-only audit trail of shop auto-close runs. Outcomes and internal
errors go to separate tables; nothing here updates or deletes rows.
"""
from typing import Any, Callable, Dict, List, Optional
from sqlalchemy import desc
from sqlalchemy.orm import Session
import logging

from app.models.shop_audit_log import ShopAuditLog, ShopAuditErrorLog

logger = logging.getLogger(__name__)


class ShopAuditService:
    """Writes and lists shop auto-close audit records."""

    def __init__(self, session_factory: Optional[Callable[[], Session]] = None):
        if session_factory is None:
            from app.core.database import SessionLocal
            session_factory = SessionLocal
        self._session_factory = session_factory

    def record_run(
        self,
        status: str,
        triggered_by: str,
        local_time: str,
        timezone_name: str,
        success_count: int = 0,
        failure_count: int = 0,
        total_attempted: int = 0,
        details: Optional[Dict[str, Any]] = None,
    ) -> ShopAuditLog:
        """Append the outcome of one run."""
        db = self._session_factory()
        try:
            entry = ShopAuditLog(
                status=status,
                triggered_by=triggered_by,
                success_count=success_count,
                failure_count=failure_count,
                total_attempted=total_attempted,
                local_time=local_time,
                timezone=timezone_name,
                details=details,
            )
            db.add(entry)
            db.commit()
            db.refresh(entry)
            db.expunge(entry)
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

        logger.info(
            "Shop audit log created",
            extra={
                "event_type": "shop_audit_log_created",
                "status": status,
                "triggered_by": triggered_by,
            }
        )
        return entry

    def record_error(
        self,
        triggered_by: str,
        error: BaseException,
        local_time: str,
        timezone_name: str,
    ) -> ShopAuditErrorLog:
        """Append an internal error raised during a run."""
        db = self._session_factory()
        try:
            entry = ShopAuditErrorLog(
                triggered_by=triggered_by,
                error_type=type(error).__name__,
                error_message=str(error) or type(error).__name__,
                local_time=local_time,
                timezone=timezone_name,
            )
            db.add(entry)
            db.commit()
            db.refresh(entry)
            db.expunge(entry)
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()
        return entry

    def list_runs(self, limit: int = 20) -> List[ShopAuditLog]:
        """Most recent run records first."""
        db = self._session_factory()
        try:
            rows = db.query(ShopAuditLog).order_by(desc(ShopAuditLog.created_at)).limit(limit).all()
            for row in rows:
                db.expunge(row)
            return rows
        finally:
            db.close()

    def list_errors(self, limit: int = 20) -> List[ShopAuditErrorLog]:
        """Most recent error records first."""
        db = self._session_factory()
        try:
            rows = db.query(ShopAuditErrorLog).order_by(desc(ShopAuditErrorLog.created_at)).limit(limit).all()
            for row in rows:
                db.expunge(row)
            return rows
        finally:
            db.close()


# Global singleton instance
_shop_audit_service: Optional[ShopAuditService] = None


def get_shop_audit_service() -> ShopAuditService:
    """Get the singleton ShopAuditService."""
    global _shop_audit_service
    if _shop_audit_service is None:
        _shop_audit_service = ShopAuditService()
    return _shop_audit_service
