"""
Unit tests for ShopCloseScheduler

Tests:
- APScheduler integration with timezone-aware cron trigger
- Open shop is closed and a closing broadcast is sent
- Second fire on a closed shop is a no-op (exactly one broadcast)
- Internal errors go to the error audit table and are never raised
- Manual trigger shares the scheduled routine
"""
import pytest
from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock, patch

from app.core.logging_config import get_request_id
from app.models.shop_audit_log import AutoCloseStatus
from app.services.push.delivery_engine import DeliveryEngine
from app.services.push.models import DeliveryReport
from app.services.shop_audit_service import ShopAuditService
from app.services.shop_close_scheduler import (
    DAILY_CLOSE_JOB_ID,
    ShopCloseScheduler,
)
from app.services.shop_status_service import ShopStatusService
from tests.conftest import make_token


# 2025-03-10 11:30 UTC is 17:00 in Asia/Kolkata
FIXED_NOW = datetime(2025, 3, 10, 11, 30, tzinfo=timezone.utc)


@pytest.fixture
def status_service(session_factory):
    return ShopStatusService(session_factory)


@pytest.fixture
def audit_service(session_factory):
    return ShopAuditService(session_factory)


@pytest.fixture
def make_scheduler(status_service, audit_service):
    created = []

    def _make(engine):
        scheduler = ShopCloseScheduler(
            engine=engine,
            status_service=status_service,
            audit_service=audit_service,
            timezone_name="Asia/Kolkata",
            close_time="17:00",
            title="Shop Closed",
            body="See you tomorrow",
            clock=lambda: FIXED_NOW,
        )
        created.append(scheduler)
        return scheduler

    yield _make
    for scheduler in created:
        scheduler.stop()


def _mock_engine(report=None):
    engine = MagicMock(spec=DeliveryEngine)
    engine.broadcast = AsyncMock(return_value=report or DeliveryReport(
        success_count=2, failure_count=1, total_attempted=3, removed_count=1,
    ))
    return engine


class TestScheduling:
    """Tests for the cron job."""

    def test_initial_state(self, make_scheduler):
        scheduler = make_scheduler(_mock_engine())
        status = scheduler.get_status()

        assert status.enabled is False
        assert status.schedule_time == "17:00"
        assert status.timezone == "Asia/Kolkata"
        assert status.last_status == "never_run"
        assert scheduler.is_running() is False

    def test_schedule_daily_close_adds_job(self, make_scheduler):
        scheduler = make_scheduler(_mock_engine())

        with patch.object(scheduler._scheduler, "add_job") as mock_add_job:
            scheduler.schedule_daily_close("17:00")

        mock_add_job.assert_called_once()
        kwargs = mock_add_job.call_args.kwargs
        assert kwargs["id"] == DAILY_CLOSE_JOB_ID
        trigger = kwargs["trigger"]
        assert str(trigger.timezone) == "Asia/Kolkata"
        fields = {f.name: str(f) for f in trigger.fields}
        assert fields["hour"] == "17"
        assert fields["minute"] == "0"
        assert scheduler.get_status().enabled is True

    def test_invalid_time_rejected(self, make_scheduler):
        scheduler = make_scheduler(_mock_engine())
        with pytest.raises(ValueError):
            scheduler.schedule_daily_close("5pm")

    def test_unschedule(self, make_scheduler):
        scheduler = make_scheduler(_mock_engine())
        with patch.object(scheduler._scheduler, "add_job"):
            scheduler.schedule_daily_close()
        scheduler.unschedule_daily_close()
        assert scheduler.get_status().enabled is False

    def test_start_stop(self, make_scheduler):
        scheduler = make_scheduler(_mock_engine())
        with patch.object(scheduler._scheduler, "start") as mock_start:
            scheduler.start()
            mock_start.assert_called_once()
        assert scheduler.is_running() is True

        with patch.object(scheduler._scheduler, "shutdown") as mock_shutdown:
            scheduler.stop()
            mock_shutdown.assert_called_once_with(wait=False)
        assert scheduler.is_running() is False

    def test_local_now_uses_shop_timezone(self, make_scheduler):
        local = make_scheduler(_mock_engine()).local_now()
        assert (local.hour, local.minute) == (17, 0)


class TestRunAutoClose:
    """Tests for the auto-close routine."""

    @pytest.mark.asyncio
    async def test_open_shop_is_closed_and_broadcast(self, make_scheduler, status_service, audit_service):
        engine = _mock_engine()
        scheduler = make_scheduler(engine)

        outcome = await scheduler.run_auto_close()

        assert outcome.status == AutoCloseStatus.CLOSED
        assert outcome.success_count == 2
        assert outcome.total_attempted == 3
        assert outcome.removed_count == 1

        engine.broadcast.assert_awaited_once()
        request = engine.broadcast.await_args.args[0]
        assert request.title == "Shop Closed"
        assert request.body == "See you tomorrow"
        assert request.targets is None
        assert request.data["type"] == "shop_closed"
        assert engine.broadcast.await_args.kwargs["source"] == "scheduler"

        status = status_service.get_status()
        assert status.is_open is False
        assert status.auto_closed is True
        assert status.updated_by == "auto-close:scheduler"
        assert status.closed_date == "2025-03-10"

        runs = audit_service.list_runs()
        assert len(runs) == 1
        assert runs[0].status == "closed"
        assert runs[0].success_count == 2
        assert runs[0].timezone == "Asia/Kolkata"
        assert runs[0].local_time.startswith("2025-03-10T17:00")

    @pytest.mark.asyncio
    async def test_two_fires_send_exactly_one_broadcast(self, make_scheduler, audit_service):
        engine = _mock_engine()
        scheduler = make_scheduler(engine)

        first = await scheduler.run_auto_close()
        second = await scheduler.run_auto_close()

        assert first.status == AutoCloseStatus.CLOSED
        assert second.status == AutoCloseStatus.SKIPPED
        assert engine.broadcast.await_count == 1
        assert [r.status for r in audit_service.list_runs()].count("skipped") == 1

    @pytest.mark.asyncio
    async def test_manually_closed_shop_is_skipped(self, make_scheduler, status_service):
        engine = _mock_engine()
        status_service.set_status(is_open=False, updated_by="api")

        outcome = await make_scheduler(engine).run_auto_close()

        assert outcome.status == AutoCloseStatus.SKIPPED
        engine.broadcast.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_reopened_shop_closes_again(self, make_scheduler, status_service):
        engine = _mock_engine()
        scheduler = make_scheduler(engine)

        await scheduler.run_auto_close()
        status_service.set_status(is_open=True, updated_by="api")
        await scheduler.run_auto_close()

        assert engine.broadcast.await_count == 2

    @pytest.mark.asyncio
    async def test_broadcast_error_is_logged_not_raised(self, make_scheduler, status_service, audit_service):
        engine = _mock_engine()
        engine.broadcast.side_effect = RuntimeError("FCM exploded")
        scheduler = make_scheduler(engine)

        outcome = await scheduler.run_auto_close()

        assert outcome.status == AutoCloseStatus.ERROR
        assert "FCM exploded" in outcome.error
        errors = audit_service.list_errors()
        assert len(errors) == 1
        assert errors[0].error_type == "RuntimeError"
        assert errors[0].triggered_by == "scheduler"
        # The close was persisted before the broadcast failed
        assert status_service.get_status().is_open is False
        assert scheduler.get_status().last_status == "error"

    @pytest.mark.asyncio
    async def test_status_read_error_is_logged_not_raised(self, make_scheduler, status_service, audit_service):
        engine = _mock_engine()
        scheduler = make_scheduler(engine)

        with patch.object(status_service, "get_status", side_effect=Exception("db gone")):
            outcome = await scheduler.run_auto_close()

        assert outcome.status == AutoCloseStatus.ERROR
        engine.broadcast.assert_not_awaited()
        assert len(audit_service.list_errors()) == 1

    @pytest.mark.asyncio
    async def test_audit_failure_does_not_raise(self, make_scheduler, audit_service):
        engine = _mock_engine()
        engine.broadcast.side_effect = RuntimeError("boom")
        scheduler = make_scheduler(engine)

        with patch.object(audit_service, "record_error", side_effect=Exception("audit down")):
            outcome = await scheduler.run_auto_close()

        assert outcome.status == AutoCloseStatus.ERROR

    @pytest.mark.asyncio
    async def test_scheduled_wrapper_never_raises(self, make_scheduler):
        scheduler = make_scheduler(_mock_engine())

        with patch.object(scheduler, "run_auto_close", AsyncMock(side_effect=Exception("unexpected"))):
            await scheduler._run_scheduled_wrapper()

        assert scheduler.get_status().last_status == "error"
        assert scheduler.get_status().last_error == "unexpected"

    @pytest.mark.asyncio
    async def test_scheduled_run_has_its_own_request_id(self, make_scheduler):
        seen = []
        before = get_request_id()
        engine = _mock_engine()

        async def capture(*args, **kwargs):
            seen.append(get_request_id())
            return DeliveryReport(success_count=1, total_attempted=1)

        engine.broadcast.side_effect = capture
        scheduler = make_scheduler(engine)

        await scheduler._run_scheduled_wrapper()

        assert len(seen) == 1
        assert seen[0].startswith("auto-close-")
        assert get_request_id() == before


class TestTriggerNow:
    """Manual trigger runs the same routine."""

    @pytest.mark.asyncio
    async def test_trigger_now_delegates_to_run_auto_close(self, make_scheduler):
        scheduler = make_scheduler(_mock_engine())

        with patch.object(scheduler, "run_auto_close", AsyncMock()) as mock_run:
            await scheduler.trigger_now()

        mock_run.assert_awaited_once_with(triggered_by="manual")

    @pytest.mark.asyncio
    async def test_trigger_now_marks_actor(self, make_scheduler, status_service, audit_service):
        outcome = await make_scheduler(_mock_engine()).trigger_now()

        assert outcome.triggered_by == "manual"
        assert status_service.get_status().updated_by == "auto-close:manual"
        assert audit_service.list_runs()[0].triggered_by == "manual"

    @pytest.mark.asyncio
    async def test_end_to_end_with_real_engine(self, make_scheduler, registry, delivery_engine, transport):
        registry.register("u1", make_token("u1"))
        registry.register("u2", make_token("u2"))

        outcome = await make_scheduler(delivery_engine).trigger_now()

        assert outcome.status == AutoCloseStatus.CLOSED
        assert outcome.success_count == 2
        assert len(transport.batches) == 1
        assert transport.payloads[0].title == "Shop Closed"


class TestInitialization:
    """Startup wiring from settings."""

    @pytest.mark.asyncio
    async def test_initialize_schedules_from_settings(self):
        from app.core.config import settings
        from app.services.shop_close_scheduler import initialize_shop_close_scheduler

        scheduler = MagicMock(spec=ShopCloseScheduler)
        with patch("app.services.shop_close_scheduler.get_shop_close_scheduler", return_value=scheduler):
            with patch.object(settings, "SHOP_AUTO_CLOSE_ENABLED", True), \
                    patch.object(settings, "SHOP_CLOSE_TIME", "18:30"):
                await initialize_shop_close_scheduler()

        scheduler.start.assert_called_once()
        scheduler.schedule_daily_close.assert_called_once_with("18:30")

    @pytest.mark.asyncio
    async def test_initialize_disabled(self):
        from app.core.config import settings
        from app.services.shop_close_scheduler import initialize_shop_close_scheduler

        scheduler = MagicMock(spec=ShopCloseScheduler)
        with patch("app.services.shop_close_scheduler.get_shop_close_scheduler", return_value=scheduler):
            with patch.object(settings, "SHOP_AUTO_CLOSE_ENABLED", False):
                await initialize_shop_close_scheduler()

        scheduler.start.assert_not_called()
        scheduler.schedule_daily_close.assert_not_called()
