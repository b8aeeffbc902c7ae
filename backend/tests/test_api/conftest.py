"""
Shared pytest fixtures for API tests.

Every service the routers depend on is overridden with an instance bound to
the per-test SQLite database and a FakeTransport, so no test touches the
application database or Firebase. The lifespan is not run.
"""
import pytest
from datetime import datetime, timezone
from fastapi.testclient import TestClient

from main import app
from app.core.database import get_db
from app.services.push.delivery_engine import get_delivery_engine
from app.services.registry.token_registry import get_token_registry
from app.services.shop_audit_service import ShopAuditService
from app.services.shop_close_scheduler import ShopCloseScheduler, get_shop_close_scheduler
from app.services.shop_status_service import ShopStatusService, get_shop_status_service


@pytest.fixture
def status_service(session_factory):
    return ShopStatusService(session_factory)


@pytest.fixture
def shop_scheduler(delivery_engine, status_service, session_factory):
    scheduler = ShopCloseScheduler(
        engine=delivery_engine,
        status_service=status_service,
        audit_service=ShopAuditService(session_factory),
        timezone_name="Asia/Kolkata",
        close_time="17:00",
        title="Shop Closed",
        body="See you tomorrow",
        clock=lambda: datetime(2025, 3, 10, 11, 30, tzinfo=timezone.utc),
    )
    yield scheduler
    scheduler.stop()


@pytest.fixture
def api_client(session_factory, registry, delivery_engine, status_service, shop_scheduler):
    """
    Create an API test client with proper isolation.

    This fixture:
    1. Overrides get_db and every service provider
    2. Provides a TestClient
    3. Restores the original providers
    """
    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_token_registry] = lambda: registry
    app.dependency_overrides[get_delivery_engine] = lambda: delivery_engine
    app.dependency_overrides[get_shop_status_service] = lambda: status_service
    app.dependency_overrides[get_shop_close_scheduler] = lambda: shop_scheduler

    yield TestClient(app)

    app.dependency_overrides.clear()
