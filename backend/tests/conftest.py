"""Pytest fixtures and configuration for test suite

This module provides:
1. Temp-file SQLite session factories for test isolation
2. A registry, fake transport and delivery engine wired to that database
3. Factory helpers for tokens and registrations

Factory Functions:
    - make_token(seed) -> str
    - make_registration(**overrides) -> Registration
"""
import os
import tempfile
from datetime import datetime, timezone

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from app.core.database import Base
import app.models  # noqa: F401  registers tables on Base.metadata
from app.services.push.cleanup_coordinator import CleanupCoordinator
from app.services.push.delivery_engine import DeliveryEngine
from app.services.registry.models import Registration, Role
from app.services.registry.store import SqlRegistryStore
from app.services.registry.token_registry import TokenRegistry
from app.services.registry.validation import TokenValidationPolicy
from tests.mocks import FakeTransport

# Policy used across tests, same defaults as settings
TEST_POLICY = TokenValidationPolicy(min_length=20, pattern=r"^[A-Za-z0-9_\-:.\[\]]+$")


# =============================================================================
# Factory Functions for Test Objects
# =============================================================================

def make_token(seed: str) -> str:
    """
    Build a realistic FCM-looking token that passes TEST_POLICY.

    Example:
        make_token("alice") -> "alice:APA91b-test-token-000000000000"
    """
    return f"{seed}:APA91b-test-token-{'0' * 12}"


def make_registration(
    user_id: str = "user-1",
    token: str = None,
    role: Role = Role.USER,
    metadata: dict = None,
    last_updated: datetime = None,
    is_valid: bool = True,
) -> Registration:
    """Factory for Registration values with sensible defaults."""
    return Registration(
        user_id=user_id,
        token=token or make_token(user_id),
        role=role,
        metadata=metadata or {},
        last_updated=last_updated or datetime.now(timezone.utc),
        is_valid=is_valid,
    )


# =============================================================================
# Database Fixtures
# =============================================================================

@pytest.fixture
def session_factory():
    """
    Fresh temp-file SQLite database with all tables created.

    File-based so sessions opened from worker threads share the data.
    """
    fd, path = tempfile.mkstemp(suffix=".db")
    os.close(fd)
    engine = create_engine(f"sqlite:///{path}", connect_args={"check_same_thread": False})
    Base.metadata.create_all(bind=engine)
    SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

    yield SessionLocal

    Base.metadata.drop_all(bind=engine)
    engine.dispose()
    if os.path.exists(path):
        os.remove(path)


# =============================================================================
# Service Fixtures
# =============================================================================

@pytest.fixture
def store(session_factory):
    return SqlRegistryStore(session_factory)


@pytest.fixture
def registry(store):
    return TokenRegistry(store, policy=TEST_POLICY)


@pytest.fixture
def transport():
    return FakeTransport()


@pytest.fixture
def delivery_engine(registry, transport):
    return DeliveryEngine(registry, transport, CleanupCoordinator(registry))
