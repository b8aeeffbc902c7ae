"""
Push transport contract.

A transport accepts one payload and an ordered token list and returns one
DeliveryOutcome per token, in input order. Per-token problems are outcomes;
only a failure of the call as a whole raises TransportUnavailableError.
"""

from abc import ABC, abstractmethod
from typing import List, Sequence

from app.services.push.models import DeliveryOutcome, NotificationPayload


class PushTransport(ABC):
    """Delivers notifications to push tokens."""

    name: str = "base"

    @abstractmethod
    async def send_batch(
        self,
        payload: NotificationPayload,
        tokens: Sequence[str],
    ) -> List[DeliveryOutcome]:
        """
        Send payload to every token.

        Returns:
            outcomes[i] describes tokens[i]

        Raises:
            TransportUnavailableError: the batched call itself failed
        """

    @abstractmethod
    async def send_one(self, payload: NotificationPayload, token: str) -> DeliveryOutcome:
        """Send payload to a single token."""

    async def close(self) -> None:
        """Release transport resources."""

    async def __aenter__(self) -> "PushTransport":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()
