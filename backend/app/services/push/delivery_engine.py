"""
Delivery Engine.

Turns a broadcast request into one batched transport call and interprets
the per-token outcomes.

Flow:
    broadcast(request)
        │
        ├── validate title/body (InvalidInputError, nothing read yet)
        ├── resolve targets -> deduplicated tokens + owner hints
        │       explicit targets, or registry snapshot (is_valid only)
        ├── empty -> zero report (NO_TARGETS), transport never called
        ├── transport.send_batch(payload, tokens)   one call, order kept
        ├── count successes / failures
        └── permanent failures -> CleanupCoordinator
            transient failures -> logged, registration untouched

The engine holds no mutable state, so API and scheduler broadcasts can run
concurrently.
"""

import logging
import time
from typing import Dict, List, Optional, Tuple

from app.core import metrics
from app.core.errors import ErrorKind, InvalidInputError, TransportUnavailableError
from app.core.logging_config import mask_token
from app.services.push.cleanup_coordinator import CleanupCoordinator
from app.services.push.models import (
    BroadcastRequest,
    DeliveryOutcome,
    DeliveryReport,
    NotificationPayload,
)
from app.services.push.transport import PushTransport
from app.services.registry.token_registry import TokenRegistry

logger = logging.getLogger(__name__)


class DeliveryEngine:
    """
    Broadcasts notifications to registered tokens.

    Usage:
        engine = DeliveryEngine(registry, transport, CleanupCoordinator(registry))
        report = await engine.broadcast(
            BroadcastRequest(title="Sale", body="20% off today"),
        )
    """

    def __init__(
        self,
        registry: TokenRegistry,
        transport: Optional[PushTransport],
        cleanup: Optional[CleanupCoordinator] = None,
    ):
        self._registry = registry
        self._transport = transport
        self._cleanup = cleanup or CleanupCoordinator(registry)

    @property
    def transport(self) -> Optional[PushTransport]:
        return self._transport

    @staticmethod
    def _validate(request: BroadcastRequest) -> Tuple[str, str]:
        title = (request.title or "").strip()
        body = (request.body or "").strip()
        if not title:
            raise InvalidInputError("title is required", field="title")
        if not body:
            raise InvalidInputError("body is required", field="body")
        return title, body

    def _resolve_targets(
        self,
        request: BroadcastRequest,
    ) -> Tuple[List[str], List[List[str]]]:
        """
        Resolve the deduplicated token list and the owner hints for it.

        A token shared by several users is sent once; its hint lists every
        owner so a permanent failure cleans up all of them.

        Returns:
            (tokens, hints) where hints[i] lists the users owning tokens[i]
            (empty when the token is not registered)
        """
        snapshot = self._registry.snapshot()
        owners_of_token: Dict[str, List[str]] = {}
        for registration in snapshot:
            owners_of_token.setdefault(registration.token, []).append(registration.user_id)

        tokens: List[str] = []
        seen = set()

        def add(token: str) -> None:
            if token not in seen:
                seen.add(token)
                tokens.append(token)

        if request.targets is None:
            for registration in snapshot:
                if registration.is_valid is False:
                    continue
                add(registration.token)
        else:
            by_user = {r.user_id: r for r in snapshot}
            policy = self._registry.policy
            for raw in dict.fromkeys(t.strip() for t in request.targets if t and t.strip()):
                registration = by_user.get(raw)
                if registration is not None:
                    add(registration.token)
                else:
                    add(policy.validate(raw, field="targets"))

        hints = [list(owners_of_token.get(token, [])) for token in tokens]
        return tokens, hints

    @staticmethod
    def _to_payload(title: str, body: str, data: Optional[Dict]) -> NotificationPayload:
        # FCM data values must be strings
        string_data = {str(k): str(v) for k, v in (data or {}).items()}
        return NotificationPayload(title=title, body=body, data=string_data)

    async def broadcast(self, request: BroadcastRequest, source: str = "api") -> DeliveryReport:
        """
        Deliver one message to the resolved targets.

        Partial failure is a normal result and is reported, never raised.

        Args:
            request: Title, body, optional explicit targets and data
            source: Caller label used in logs and metrics

        Returns:
            DeliveryReport with aggregated counts

        Raises:
            InvalidInputError: empty title/body or malformed explicit target
            TransportUnavailableError: the batched send itself failed
        """
        title, body = self._validate(request)
        tokens, hints = self._resolve_targets(request)

        if not tokens:
            logger.info(
                "Broadcast skipped, no targets",
                extra={"event_type": "broadcast_no_targets", "source": source}
            )
            metrics.record_broadcast(source=source, status="no_targets")
            return DeliveryReport(kind=ErrorKind.NO_TARGETS)

        if self._transport is None:
            metrics.record_broadcast(source=source, status="transport_error")
            raise TransportUnavailableError("Push transport is not configured", {"tokens": len(tokens)})

        payload = self._to_payload(title, body, request.data)
        start_time = time.time()
        try:
            outcomes = await self._transport.send_batch(payload, tokens)
        except TransportUnavailableError:
            metrics.record_broadcast(source=source, status="transport_error")
            raise
        duration = time.time() - start_time

        if len(outcomes) != len(tokens):
            metrics.record_broadcast(source=source, status="transport_error")
            raise TransportUnavailableError(
                "Transport returned a mismatched outcome list",
                {"tokens": len(tokens), "outcomes": len(outcomes)},
            )

        report = self._aggregate(outcomes, duration)

        permanent_tokens: List[str] = []
        permanent_hints: List[List[str]] = []
        for index, outcome in enumerate(outcomes):
            if outcome.is_permanent_failure:
                permanent_tokens.append(tokens[index])
                permanent_hints.append(hints[index])
            elif not outcome.success:
                logger.warning(
                    "Transient delivery failure, registration kept",
                    extra={
                        "event_type": ErrorKind.TRANSIENT_DELIVERY_FAILURE.value,
                        "token": mask_token(outcome.token),
                        "status": outcome.status.value,
                        "error": outcome.error,
                    }
                )

        if permanent_tokens:
            cleanup = self._cleanup.reconcile_failures(permanent_tokens, permanent_hints)
            report.removed_count = cleanup.removed_count
            report.orphaned_tokens = cleanup.orphaned_tokens

        metrics.record_broadcast(
            source=source,
            status="sent",
            success_count=report.success_count,
            permanent_failures=len(permanent_tokens),
            transient_failures=report.transient_failures,
            duration_seconds=duration,
        )
        logger.info(
            f"Broadcast completed: {report.success_count} success, {report.failure_count} failed",
            extra={
                "event_type": "broadcast_complete",
                "source": source,
                "total": report.total_attempted,
                "success": report.success_count,
                "failed": report.failure_count,
                "permanent_failures": len(permanent_tokens),
                "transient_failures": report.transient_failures,
                "removed": report.removed_count,
                "duration_ms": round(report.duration_ms, 2),
            }
        )
        return report

    @staticmethod
    def _aggregate(outcomes: List[DeliveryOutcome], duration_seconds: float) -> DeliveryReport:
        success_count = sum(1 for o in outcomes if o.success)
        transient = sum(1 for o in outcomes if not o.success and not o.is_permanent_failure)
        return DeliveryReport(
            success_count=success_count,
            failure_count=len(outcomes) - success_count,
            total_attempted=len(outcomes),
            transient_failures=transient,
            outcomes=list(outcomes),
            duration_ms=duration_seconds * 1000,
        )

    async def send_test(self, token: str, title: str, body: str) -> DeliveryOutcome:
        """
        Send one notification to one token, bypassing the registry.

        Used to check a device end to end. A permanent failure is not
        reconciled here; the next broadcast will do that.
        """
        title, body = self._validate(BroadcastRequest(title=title, body=body))
        token = self._registry.policy.validate(token)
        if self._transport is None:
            raise TransportUnavailableError("Push transport is not configured")
        return await self._transport.send_one(self._to_payload(title, body, None), token)


# Global singleton instance
_delivery_engine: Optional[DeliveryEngine] = None


def create_transport() -> Optional[PushTransport]:
    """
    Build the FCM transport from settings.

    Returns:
        FCMTransport, or None when FCM is not configured
    """
    from app.core.config import settings

    if not settings.fcm_ready:
        logger.warning(
            "FCM not configured, broadcasts to registered devices will fail",
            extra={"event_type": "fcm_not_configured"}
        )
        return None

    from app.services.push.fcm_transport import FCMTransport
    from app.services.push.models import FCMConfig

    return FCMTransport(FCMConfig(
        project_id=settings.FCM_PROJECT_ID,
        credentials_path=settings.FCM_CREDENTIALS_FILE,
        batch_size=settings.FCM_BATCH_SIZE,
    ))


def get_delivery_engine() -> DeliveryEngine:
    """Get the singleton DeliveryEngine wired to the global registry."""
    global _delivery_engine
    if _delivery_engine is None:
        from app.services.registry.token_registry import get_token_registry

        registry = get_token_registry()
        _delivery_engine = DeliveryEngine(registry, create_transport(), CleanupCoordinator(registry))
    return _delivery_engine


async def shutdown_delivery_engine() -> None:
    """Close the transport and drop the singleton."""
    global _delivery_engine
    if _delivery_engine is not None and _delivery_engine.transport is not None:
        await _delivery_engine.transport.close()
    _delivery_engine = None
