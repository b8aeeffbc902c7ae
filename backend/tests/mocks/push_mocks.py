"""
Push Transport Mock Factories

Fake transport with scripted per-token outcomes, and factories for
firebase_admin multicast responses.
"""
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence
from unittest.mock import MagicMock

from app.core.errors import TransportUnavailableError
from app.services.push.models import DeliveryOutcome, DeliveryStatus, NotificationPayload
from app.services.push.transport import PushTransport


class FakeTransport(PushTransport):
    """
    In-memory PushTransport.

    Tokens listed in `statuses` fail with that status; every other token
    succeeds. Each call is recorded in `batches` / `singles`.
    """

    name = "fake"

    def __init__(
        self,
        statuses: Optional[Dict[str, DeliveryStatus]] = None,
        fail_call: bool = False,
    ):
        self.statuses = dict(statuses or {})
        self.fail_call = fail_call
        self.batches: List[List[str]] = []
        self.payloads: List[NotificationPayload] = []
        self.singles: List[str] = []
        self.closed = False

    def _outcome(self, token: str) -> DeliveryOutcome:
        status = self.statuses.get(token, DeliveryStatus.SUCCESS)
        if status == DeliveryStatus.SUCCESS:
            return DeliveryOutcome(token=token, success=True, status=status, message_id=f"msg-{token[:6]}")
        return DeliveryOutcome(token=token, success=False, status=status, error=status.value)

    async def send_batch(self, payload: NotificationPayload, tokens: Sequence[str]) -> List[DeliveryOutcome]:
        self.batches.append(list(tokens))
        self.payloads.append(payload)
        if self.fail_call:
            raise TransportUnavailableError("fake transport down")
        return [self._outcome(t) for t in tokens]

    async def send_one(self, payload: NotificationPayload, token: str) -> DeliveryOutcome:
        self.singles.append(token)
        self.payloads.append(payload)
        if self.fail_call:
            raise TransportUnavailableError("fake transport down")
        return self._outcome(token)

    async def close(self) -> None:
        self.closed = True


@dataclass
class MockSendResponse:
    """Mock firebase_admin.messaging.SendResponse."""
    success: bool
    message_id: Optional[str] = None
    exception: Optional[Exception] = None


@dataclass
class MockBatchResponse:
    """Mock firebase_admin.messaging.BatchResponse."""
    responses: List[MockSendResponse] = field(default_factory=list)

    @property
    def success_count(self) -> int:
        return sum(1 for r in self.responses if r.success)

    @property
    def failure_count(self) -> int:
        return len(self.responses) - self.success_count


def create_batch_response(
    tokens: Sequence[str],
    errors: Optional[Dict[str, Exception]] = None,
) -> MockBatchResponse:
    """
    Build a BatchResponse for tokens; tokens in `errors` fail with that exception.

    Example:
        response = create_batch_response(
            ["tok-a", "tok-b"],
            errors={"tok-b": messaging.UnregisteredError("gone")},
        )
    """
    errors = errors or {}
    responses = []
    for index, token in enumerate(tokens):
        if token in errors:
            responses.append(MockSendResponse(success=False, exception=errors[token]))
        else:
            responses.append(MockSendResponse(success=True, message_id=f"projects/test/messages/{index}"))
    return MockBatchResponse(responses=responses)


def multicast_echo(errors: Optional[Dict[str, Exception]] = None) -> MagicMock:
    """
    Mock for messaging.send_each_for_multicast that answers for whatever
    tokens the MulticastMessage carries.
    """
    def _send(message, app=None):
        return create_batch_response(message.tokens, errors)

    return MagicMock(side_effect=_send)
