"""
FCM (Firebase Cloud Messaging) Transport.

Delivers broadcast notifications through the FCM HTTP v1 API.

Features:
- Firebase Admin SDK integration with service account auth
- Async wrapper for blocking SDK calls
- Multicast batching in chunks of at most 500 tokens, order preserved
- Classification of every per-token FCM error into a DeliveryStatus

Failed tokens are reported, never retried.
"""

import asyncio
import logging
import time
from pathlib import Path
from typing import List, Optional, Sequence

import firebase_admin
from firebase_admin import credentials, messaging
from firebase_admin.exceptions import FirebaseError, InvalidArgumentError

from app.core.errors import TransportUnavailableError
from app.core.logging_config import mask_token
from app.services.push.constants import (
    FCM_ANDROID_PRIORITY,
    FCM_APP_NAME_PREFIX,
    FCM_INVALID_TOKEN_MARKERS,
    FCM_MAX_MULTICAST_TOKENS,
)
from app.services.push.models import (
    DeliveryOutcome,
    DeliveryStatus,
    FCMConfig,
    NotificationPayload,
)
from app.services.push.transport import PushTransport

logger = logging.getLogger(__name__)


def classify_fcm_error(exception: Optional[BaseException]) -> DeliveryStatus:
    """
    Map an FCM per-token exception to a DeliveryStatus.

    InvalidArgumentError covers both malformed tokens and malformed messages;
    only the former is a token problem, so the error text decides.
    """
    if exception is None:
        return DeliveryStatus.FAILED
    if isinstance(exception, messaging.UnregisteredError):
        return DeliveryStatus.UNREGISTERED
    if isinstance(exception, InvalidArgumentError):
        text = str(exception).lower()
        if any(marker in text for marker in FCM_INVALID_TOKEN_MARKERS):
            return DeliveryStatus.INVALID_TOKEN
        return DeliveryStatus.FAILED
    if isinstance(exception, messaging.QuotaExceededError):
        return DeliveryStatus.RATE_LIMITED
    if isinstance(exception, messaging.ThirdPartyAuthError):
        return DeliveryStatus.AUTH_ERROR
    if isinstance(exception, FirebaseError):
        code = getattr(exception, "code", None)
        if code in ("UNAVAILABLE", "INTERNAL", "DEADLINE_EXCEEDED"):
            return DeliveryStatus.SERVER_ERROR
    return DeliveryStatus.FAILED


class FCMTransport(PushTransport):
    """
    Push transport for Firebase Cloud Messaging.

    SDK calls are wrapped with asyncio.to_thread for async compatibility.

    Usage:
        config = FCMConfig(
            project_id="shopcast-12345",
            credentials_path="/path/to/service-account.json",
        )
        transport = FCMTransport(config)
        outcomes = await transport.send_batch(payload, tokens)

    Attributes:
        config: FCM configuration
        _app: Firebase app instance
        _initialized: Whether Firebase has been initialized
    """

    name = "fcm"

    def __init__(self, config: FCMConfig):
        self.config = config
        self._batch_size = min(config.batch_size, FCM_MAX_MULTICAST_TOKENS)
        self._app: Optional[firebase_admin.App] = None
        self._initialized = False

        logger.info(
            "FCM transport created",
            extra={
                "project_id": config.project_id,
                "credentials_path": config.credentials_path,
                "batch_size": self._batch_size,
            }
        )

    def _initialize(self) -> None:
        """Initialize Firebase Admin SDK with service account credentials."""
        if self._initialized:
            return

        creds_path = Path(self.config.credentials_path)
        if not creds_path.exists():
            raise FileNotFoundError(
                f"FCM credentials file not found: {creds_path}"
            )

        app_name = f"{FCM_APP_NAME_PREFIX}-{self.config.project_id}"
        try:
            self._app = firebase_admin.get_app(app_name)
            logger.debug(f"Using existing Firebase app: {app_name}")
        except ValueError:
            cred = credentials.Certificate(str(creds_path))
            self._app = firebase_admin.initialize_app(
                cred,
                name=app_name,
                options={"projectId": self.config.project_id},
            )
            logger.info(
                "Firebase Admin SDK initialized",
                extra={
                    "app_name": app_name,
                    "project_id": self.config.project_id,
                }
            )

        self._initialized = True

    def _ensure_initialized(self) -> None:
        if self._initialized:
            return
        try:
            self._initialize()
        except Exception as e:
            logger.error(f"Failed to initialize Firebase: {e}")
            raise TransportUnavailableError(
                "Firebase initialization failed",
                {"error": str(e), "project_id": self.config.project_id},
            )

    @staticmethod
    def _notification(payload: NotificationPayload) -> "messaging.Notification":
        return messaging.Notification(title=payload.title, body=payload.body)

    def _build_multicast(
        self,
        payload: NotificationPayload,
        tokens: List[str],
    ) -> "messaging.MulticastMessage":
        return messaging.MulticastMessage(
            notification=self._notification(payload),
            data=payload.data if payload.data else None,
            android=messaging.AndroidConfig(priority=FCM_ANDROID_PRIORITY),
            tokens=tokens,
        )

    def _to_outcomes(self, tokens: List[str], response) -> List[DeliveryOutcome]:
        outcomes = []
        for token, resp in zip(tokens, response.responses):
            if resp.success:
                outcomes.append(DeliveryOutcome(
                    token=token,
                    success=True,
                    status=DeliveryStatus.SUCCESS,
                    message_id=resp.message_id,
                ))
            else:
                exception = resp.exception
                outcomes.append(DeliveryOutcome(
                    token=token,
                    success=False,
                    status=classify_fcm_error(exception),
                    error=str(exception) if exception else "Unknown error",
                ))
        return outcomes

    async def send_batch(
        self,
        payload: NotificationPayload,
        tokens: Sequence[str],
    ) -> List[DeliveryOutcome]:
        """
        Send a notification to many devices.

        Tokens are split into multicast chunks of at most batch_size. If every
        chunk call fails the broadcast never reached FCM and
        TransportUnavailableError is raised. If only some chunks fail after
        others were delivered, the tokens of the failed chunks are reported
        as SERVER_ERROR outcomes so the delivered part is not lost.

        Args:
            payload: Notification payload (same for all devices)
            tokens: Ordered FCM registration tokens

        Returns:
            One DeliveryOutcome per token, in input order
        """
        tokens = list(tokens)
        if not tokens:
            return []

        self._ensure_initialized()

        start_time = time.time()
        outcomes: List[DeliveryOutcome] = []
        chunk_errors: List[str] = []
        delivered_chunks = 0

        for offset in range(0, len(tokens), self._batch_size):
            chunk = tokens[offset:offset + self._batch_size]
            try:
                response = await asyncio.to_thread(
                    messaging.send_each_for_multicast,
                    self._build_multicast(payload, chunk),
                    app=self._app,
                )
            except Exception as e:
                logger.error(
                    f"FCM multicast call failed: {e}",
                    extra={
                        "chunk_offset": offset,
                        "chunk_size": len(chunk),
                    },
                    exc_info=True,
                )
                chunk_errors.append(str(e))
                outcomes.extend(
                    DeliveryOutcome(
                        token=token,
                        success=False,
                        status=DeliveryStatus.SERVER_ERROR,
                        error=str(e),
                    )
                    for token in chunk
                )
                continue

            delivered_chunks += 1
            outcomes.extend(self._to_outcomes(chunk, response))

        if delivered_chunks == 0:
            raise TransportUnavailableError(
                "FCM batch send failed",
                {"error": chunk_errors[0] if chunk_errors else "unknown", "tokens": len(tokens)},
            )

        success_count = sum(1 for o in outcomes if o.success)
        permanent_count = sum(1 for o in outcomes if o.is_permanent_failure)
        logger.info(
            "FCM batch send complete",
            extra={
                "total": len(tokens),
                "success": success_count,
                "failed": len(tokens) - success_count,
                "invalid_tokens": permanent_count,
                "failed_chunks": len(chunk_errors),
                "duration_ms": int((time.time() - start_time) * 1000),
            }
        )

        return outcomes

    async def send_one(self, payload: NotificationPayload, token: str) -> DeliveryOutcome:
        """
        Send a notification to a single device.

        FCM errors become outcomes; anything else means the call itself
        failed and raises TransportUnavailableError.
        """
        self._ensure_initialized()

        message = messaging.Message(
            notification=self._notification(payload),
            data=payload.data if payload.data else None,
            android=messaging.AndroidConfig(priority=FCM_ANDROID_PRIORITY),
            token=token,
        )

        try:
            message_id = await asyncio.to_thread(messaging.send, message, app=self._app)
        except FirebaseError as e:
            status = classify_fcm_error(e)
            logger.warning(
                "FCM single send failed",
                extra={
                    "device_token": mask_token(token),
                    "status": status.value,
                    "error": str(e),
                }
            )
            return DeliveryOutcome(token=token, success=False, status=status, error=str(e))
        except Exception as e:
            logger.error(f"FCM single send error: {e}", exc_info=True)
            raise TransportUnavailableError("FCM send failed", {"error": str(e)})

        logger.info(
            "FCM notification sent",
            extra={"device_token": mask_token(token), "message_id": message_id}
        )
        return DeliveryOutcome(
            token=token,
            success=True,
            status=DeliveryStatus.SUCCESS,
            message_id=message_id,
        )

    async def close(self) -> None:
        """Delete the Firebase app and mark the transport uninitialized."""
        if self._app:
            try:
                firebase_admin.delete_app(self._app)
                logger.debug("Firebase app deleted")
            except ValueError as e:
                logger.warning(f"Error deleting Firebase app: {e}")
            finally:
                self._app = None
                self._initialized = False
