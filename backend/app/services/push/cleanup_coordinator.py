"""
Cleanup Coordinator.

Turns permanently failed tokens back into user ids and removes those
registrations through the token registry, which keeps the registry the
single writer of registration state.
"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Union

from app.core import metrics
from app.core.errors import ErrorKind, StoreUnavailableError
from app.core.logging_config import mask_token
from app.services.registry.token_registry import TokenRegistry

logger = logging.getLogger(__name__)

# One owner, every owner of a shared token, or unknown
OwnerHint = Union[str, Sequence[str], None]


@dataclass
class CleanupResult:
    """Result of one reconciliation pass.

    Attributes:
        removed_count: Registrations removed
        removed_user_ids: Users whose registration was removed
        orphaned_tokens: Tokens with no resolvable owner, left in place
        failed_user_ids: Users whose removal hit a store failure
    """

    removed_count: int = 0
    removed_user_ids: List[str] = field(default_factory=list)
    orphaned_tokens: List[str] = field(default_factory=list)
    failed_user_ids: List[str] = field(default_factory=list)


class CleanupCoordinator:
    """
    Removes registrations whose tokens the transport reported as permanently
    invalid.

    Owners come from the hints captured at snapshot time, positionally
    aligned with the failed token list, plus every user the registry cache
    still shows holding the token. Tokens with no owner are logged and never
    guessed. Reconciling an already-removed user is a no-op.
    """

    def __init__(self, registry: TokenRegistry):
        self._registry = registry

    def _owners(self, token: str, hint: OwnerHint) -> List[str]:
        if isinstance(hint, str):
            owners = [hint] if hint else []
        else:
            owners = [user_id for user_id in (hint or []) if user_id]
        # Shared tokens: every current holder of a dead token goes
        for user_id in self._registry.find_users_by_token(token):
            if user_id not in owners:
                owners.append(user_id)
        return owners

    def reconcile_failures(
        self,
        failed_tokens: Sequence[str],
        user_id_hints: Optional[Sequence[OwnerHint]] = None,
    ) -> CleanupResult:
        """
        Remove the owners of permanently failed tokens.

        A registration is removed only while it still holds the failed
        token, so a user who re-registered during the send keeps the new
        token.

        Args:
            failed_tokens: Tokens with a permanent failure reason
            user_id_hints: user_id_hints[i] is the owner (or list of owners)
                of failed_tokens[i] at snapshot time, or None

        Returns:
            CleanupResult with removed, orphaned and failed entries
        """
        result = CleanupResult()
        hints = list(user_id_hints or [])

        for index, token in enumerate(failed_tokens):
            owners = self._owners(token, hints[index] if index < len(hints) else None)

            if not owners:
                result.orphaned_tokens.append(token)
                logger.warning(
                    "Permanently failed token has no owner, leaving it in place",
                    extra={
                        "event_type": ErrorKind.ORPHANED_TOKEN.value,
                        "token": mask_token(token),
                    }
                )
                continue

            for user_id in owners:
                try:
                    removed = self._registry.unregister(user_id=user_id, expected_token=token)
                except StoreUnavailableError as e:
                    result.failed_user_ids.append(user_id)
                    logger.error(
                        f"Cleanup could not remove registration: {e.message}",
                        extra={
                            "event_type": "cleanup_store_error",
                            "user_id": user_id,
                            "token": mask_token(token),
                        }
                    )
                    continue

                if removed:
                    result.removed_count += removed
                    result.removed_user_ids.append(user_id)

        metrics.record_cleanup(result.removed_count, len(result.orphaned_tokens))
        if failed_tokens:
            logger.info(
                "Cleanup reconciliation complete",
                extra={
                    "event_type": "cleanup_complete",
                    "failed_tokens": len(failed_tokens),
                    "removed": result.removed_count,
                    "orphaned": len(result.orphaned_tokens),
                    "store_errors": len(result.failed_user_ids),
                }
            )
        return result
