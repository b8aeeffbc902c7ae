"""
Shop Close Scheduler

Closes the shop once a day and tells every registered device about it.

Architecture:
    APScheduler (cron trigger, HH:MM in the shop timezone)
        │
        ▼
    ShopCloseScheduler.run_auto_close("scheduler")  <── trigger_now() (manual)
        │
        ├── read shop status
        ├── already closed -> skipped (repeat suppression)
        ├── open -> persist closed + audit marker
        ├── DeliveryEngine.broadcast(closing message)
        └── append outcome to shop_audit_logs
            (internal errors -> shop_audit_error_logs, never raised)
"""
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional
from zoneinfo import ZoneInfo

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from app.core import metrics
from app.core.config import settings
from app.core.logging_config import clear_request_id, set_request_id
from app.models.shop_audit_log import AutoCloseStatus, ShopAuditLog, ShopAuditErrorLog
from app.services.push.delivery_engine import DeliveryEngine
from app.services.push.models import BroadcastRequest
from app.services.shop_audit_service import ShopAuditService
from app.services.shop_status_service import ShopStatusService

logger = logging.getLogger(__name__)

# Job ID for the daily close
DAILY_CLOSE_JOB_ID = "daily_shop_close_job"


@dataclass
class AutoCloseOutcome:
    """Result of one auto-close run."""

    status: AutoCloseStatus
    triggered_by: str
    local_time: str
    success_count: int = 0
    failure_count: int = 0
    total_attempted: int = 0
    removed_count: int = 0
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "triggered_by": self.triggered_by,
            "local_time": self.local_time,
            "success_count": self.success_count,
            "failure_count": self.failure_count,
            "total_attempted": self.total_attempted,
            "removed_count": self.removed_count,
            "error": self.error,
        }


@dataclass
class SchedulerStatus:
    """Status information about the shop close scheduler."""
    enabled: bool
    schedule_time: str
    timezone: str
    last_run: Optional[datetime] = None
    last_status: str = "never_run"
    last_error: Optional[str] = None
    next_run: Optional[datetime] = None


class ShopCloseScheduler:
    """
    Daily shop auto-close with a closing broadcast.

    The scheduled job and trigger_now() run the same routine; there is no
    second broadcast path.
    """

    def __init__(
        self,
        engine: DeliveryEngine,
        status_service: Optional[ShopStatusService] = None,
        audit_service: Optional[ShopAuditService] = None,
        timezone_name: Optional[str] = None,
        close_time: Optional[str] = None,
        title: Optional[str] = None,
        body: Optional[str] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self._engine = engine
        self._status_service = status_service or ShopStatusService()
        self._audit_service = audit_service or ShopAuditService()
        self._timezone_name = timezone_name or settings.SHOP_TIMEZONE
        self._tz = ZoneInfo(self._timezone_name)
        self._schedule_time = close_time or settings.SHOP_CLOSE_TIME
        self._title = title or settings.SHOP_CLOSE_TITLE
        self._body = body or settings.SHOP_CLOSE_BODY
        self._clock = clock or (lambda: datetime.now(timezone.utc))

        self._scheduler = AsyncIOScheduler(timezone=self._tz)
        self._enabled = False
        self._running = False
        self._last_run: Optional[datetime] = None
        self._last_status: str = "never_run"
        self._last_error: Optional[str] = None

        logger.info(
            "ShopCloseScheduler initialized",
            extra={
                "event_type": "shop_close_scheduler_init",
                "timezone": self._timezone_name,
                "schedule_time": self._schedule_time,
            }
        )

    def start(self) -> None:
        """Start the scheduler if not already running."""
        if not self._running:
            self._scheduler.start()
            self._running = True
            logger.info(
                "ShopCloseScheduler started",
                extra={"event_type": "shop_close_scheduler_started"}
            )

    def stop(self) -> None:
        """Stop the scheduler cleanly."""
        if self._running:
            self._scheduler.shutdown(wait=False)
            self._running = False
            logger.info(
                "ShopCloseScheduler stopped",
                extra={"event_type": "shop_close_scheduler_stopped"}
            )

    def is_running(self) -> bool:
        return self._running

    def schedule_daily_close(self, time: Optional[str] = None) -> None:
        """
        Schedule or reschedule the daily close job.

        Args:
            time: Time in HH:MM format (24-hour) in the shop timezone.
        """
        time = time or self._schedule_time
        try:
            hour, minute = map(int, time.split(":"))
        except ValueError:
            raise ValueError(f"Invalid time format: {time}. Expected HH:MM")
        self._schedule_time = time

        if self._scheduler.get_job(DAILY_CLOSE_JOB_ID):
            self._scheduler.remove_job(DAILY_CLOSE_JOB_ID)

        self._scheduler.add_job(
            self._run_scheduled_wrapper,
            trigger=CronTrigger(hour=hour, minute=minute, timezone=self._tz),
            id=DAILY_CLOSE_JOB_ID,
            name="Daily shop auto-close",
            replace_existing=True,
            misfire_grace_time=3600,  # still close if the process was busy/asleep for < 1h
        )
        self._enabled = True

        logger.info(
            f"Daily shop close scheduled for {hour:02d}:{minute:02d} {self._timezone_name}",
            extra={
                "event_type": "shop_close_job_scheduled",
                "schedule_time": time,
                "timezone": self._timezone_name,
            }
        )

    def unschedule_daily_close(self) -> None:
        """Remove the daily close job from the scheduler."""
        if self._scheduler.get_job(DAILY_CLOSE_JOB_ID):
            self._scheduler.remove_job(DAILY_CLOSE_JOB_ID)
        self._enabled = False
        logger.info(
            "Daily shop close unscheduled",
            extra={"event_type": "shop_close_job_unscheduled"}
        )

    def local_now(self) -> datetime:
        """Current time in the shop timezone."""
        return self._clock().astimezone(self._tz)

    async def _run_scheduled_wrapper(self) -> None:
        """Scheduled entry point; nothing may escape into APScheduler."""
        # No HTTP request here, so the run gets its own correlation id
        context = set_request_id(f"auto-close-{uuid.uuid4()}")
        try:
            await self.run_auto_close(triggered_by="scheduler")
        except Exception as e:
            logger.error(
                f"Scheduled shop close failed: {e}",
                extra={"event_type": "shop_close_scheduled_error", "error": str(e)},
                exc_info=True
            )
            self._last_status = AutoCloseStatus.ERROR.value
            self._last_error = str(e)
        finally:
            clear_request_id(context)

    async def trigger_now(self, triggered_by: str = "manual") -> AutoCloseOutcome:
        """Run the auto-close routine on demand."""
        return await self.run_auto_close(triggered_by=triggered_by)

    async def run_auto_close(self, triggered_by: str = "scheduler") -> AutoCloseOutcome:
        """
        Close the shop if it is open and broadcast the closing message.

        Internal errors are written to the error audit table and returned as
        an ERROR outcome instead of being raised.
        """
        local_now = self.local_now()
        local_time = local_now.isoformat()
        self._last_run = self._clock()

        logger.info(
            "Shop auto-close run started",
            extra={
                "event_type": "shop_close_start",
                "triggered_by": triggered_by,
                "local_time": local_time,
            }
        )

        try:
            outcome = await self._close_and_broadcast(triggered_by, local_now)
        except Exception as e:
            logger.error(
                f"Shop auto-close error: {e}",
                extra={
                    "event_type": "shop_close_error",
                    "triggered_by": triggered_by,
                    "error": str(e),
                },
                exc_info=True
            )
            self._record_error(triggered_by, e, local_time)
            outcome = AutoCloseOutcome(
                status=AutoCloseStatus.ERROR,
                triggered_by=triggered_by,
                local_time=local_time,
                error=str(e),
            )

        self._last_status = outcome.status.value
        self._last_error = outcome.error
        metrics.record_shop_close_run(outcome.status.value)
        return outcome

    async def _close_and_broadcast(self, triggered_by: str, local_now: datetime) -> AutoCloseOutcome:
        local_time = local_now.isoformat()
        status = self._status_service.get_status()

        if not status.is_open:
            logger.info(
                "Shop already closed, skipping auto-close",
                extra={
                    "event_type": "shop_close_skipped",
                    "triggered_by": triggered_by,
                    "updated_by": status.updated_by,
                    "closed_date": status.closed_date,
                }
            )
            self._audit_service.record_run(
                status=AutoCloseStatus.SKIPPED.value,
                triggered_by=triggered_by,
                local_time=local_time,
                timezone_name=self._timezone_name,
                details={"reason": "already_closed", "updated_by": status.updated_by},
            )
            return AutoCloseOutcome(
                status=AutoCloseStatus.SKIPPED,
                triggered_by=triggered_by,
                local_time=local_time,
            )

        self._status_service.set_status(
            is_open=False,
            updated_by=f"auto-close:{triggered_by}",
            auto_closed=True,
            closed_date=local_now.date(),
        )

        report = await self._engine.broadcast(
            BroadcastRequest(
                title=self._title,
                body=self._body,
                data={"type": "shop_closed", "closed_at": local_time},
            ),
            source="scheduler",
        )

        self._audit_service.record_run(
            status=AutoCloseStatus.CLOSED.value,
            triggered_by=triggered_by,
            local_time=local_time,
            timezone_name=self._timezone_name,
            success_count=report.success_count,
            failure_count=report.failure_count,
            total_attempted=report.total_attempted,
            details={
                "removed_count": report.removed_count,
                "transient_failures": report.transient_failures,
                "message": report.message,
            },
        )

        logger.info(
            "Shop closed and broadcast sent",
            extra={
                "event_type": "shop_close_success",
                "triggered_by": triggered_by,
                "success": report.success_count,
                "failed": report.failure_count,
                "total": report.total_attempted,
            }
        )
        return AutoCloseOutcome(
            status=AutoCloseStatus.CLOSED,
            triggered_by=triggered_by,
            local_time=local_time,
            success_count=report.success_count,
            failure_count=report.failure_count,
            total_attempted=report.total_attempted,
            removed_count=report.removed_count,
        )

    def _record_error(self, triggered_by: str, error: BaseException, local_time: str) -> None:
        try:
            self._audit_service.record_error(
                triggered_by=triggered_by,
                error=error,
                local_time=local_time,
                timezone_name=self._timezone_name,
            )
        except Exception as audit_error:
            logger.error(
                f"Could not write shop audit error log: {audit_error}",
                extra={"event_type": "shop_audit_error_write_failed"}
            )

    def get_audit_logs(self, limit: int = 20) -> List[ShopAuditLog]:
        return self._audit_service.list_runs(limit=limit)

    def get_error_logs(self, limit: int = 20) -> List[ShopAuditErrorLog]:
        return self._audit_service.list_errors(limit=limit)

    def get_status(self) -> SchedulerStatus:
        """Current scheduler state, including the next fire time."""
        next_run = None
        job = self._scheduler.get_job(DAILY_CLOSE_JOB_ID)
        if job and getattr(job, "next_run_time", None):
            next_run = job.next_run_time

        return SchedulerStatus(
            enabled=self._enabled,
            schedule_time=self._schedule_time,
            timezone=self._timezone_name,
            last_run=self._last_run,
            last_status=self._last_status,
            last_error=self._last_error,
            next_run=next_run,
        )


# Global singleton instance
_shop_close_scheduler: Optional[ShopCloseScheduler] = None


def get_shop_close_scheduler() -> ShopCloseScheduler:
    """
    Get the singleton ShopCloseScheduler.

    Returns:
        The global ShopCloseScheduler instance
    """
    global _shop_close_scheduler
    if _shop_close_scheduler is None:
        from app.services.push.delivery_engine import get_delivery_engine
        from app.services.shop_audit_service import get_shop_audit_service
        from app.services.shop_status_service import get_shop_status_service

        _shop_close_scheduler = ShopCloseScheduler(
            engine=get_delivery_engine(),
            status_service=get_shop_status_service(),
            audit_service=get_shop_audit_service(),
        )
    return _shop_close_scheduler


def reset_shop_close_scheduler() -> None:
    """Reset the singleton instance (useful for testing)."""
    global _shop_close_scheduler
    if _shop_close_scheduler is not None:
        _shop_close_scheduler.stop()
    _shop_close_scheduler = None


async def initialize_shop_close_scheduler() -> None:
    """
    Start the scheduler and schedule the daily close from settings.

    Called at application startup.
    """
    scheduler = get_shop_close_scheduler()
    if not settings.SHOP_AUTO_CLOSE_ENABLED:
        logger.info(
            "Shop auto-close disabled in settings",
            extra={"event_type": "shop_close_scheduler_initialized", "enabled": False}
        )
        return

    scheduler.start()
    scheduler.schedule_daily_close(settings.SHOP_CLOSE_TIME)
    logger.info(
        f"Shop close scheduler initialized (time: {settings.SHOP_CLOSE_TIME} {settings.SHOP_TIMEZONE})",
        extra={
            "event_type": "shop_close_scheduler_initialized",
            "enabled": True,
            "schedule_time": settings.SHOP_CLOSE_TIME,
            "timezone": settings.SHOP_TIMEZONE,
        }
    )


async def shutdown_shop_close_scheduler() -> None:
    """
    Shutdown the scheduler cleanly.

    Called at application shutdown.
    """
    scheduler = get_shop_close_scheduler()
    scheduler.stop()
    logger.info("Shop close scheduler shutdown complete")
