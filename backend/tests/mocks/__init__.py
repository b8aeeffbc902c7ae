"""
Mock Factories Package

Provides fake transports and factory functions for objects that match
firebase_admin response structures.
"""
from tests.mocks.push_mocks import (
    FakeTransport,
    MockBatchResponse,
    MockSendResponse,
    create_batch_response,
    multicast_echo,
)

__all__ = [
    "FakeTransport",
    "MockBatchResponse",
    "MockSendResponse",
    "create_batch_response",
    "multicast_echo",
]
