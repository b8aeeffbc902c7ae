"""
Token Registry

In-process cache of registrations over a durable RegistryStore.

Architecture:
    register / unregister
        │
        ├── per-user lock (different users never contend)
        ├── RegistryStore write (source of truth)
        └── cache update, only after the store write succeeded

    snapshot()  -> immutable copy for one broadcast
    count()     -> resync() from the store, then cache size
    resync()    -> replace the whole cache with store contents

The registry is the only writer of registration state. The delivery engine
reads snapshots; the cleanup coordinator removes registrations through
unregister().
"""
import logging
import threading
from contextlib import contextmanager
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Iterator, List, Optional, Tuple

from app.core import metrics
from app.core.errors import InvalidInputError
from app.core.logging_config import mask_token
from app.services.registry.models import Registration, RegistrationResult, Role
from app.services.registry.store import RegistryStore
from app.services.registry.validation import TokenValidationPolicy

logger = logging.getLogger(__name__)


class TokenRegistry:
    """
    Registry of one push token per user.

    Invariants:
        - at most one Registration per user_id (last write wins)
        - the cache never holds a change the store rejected

    Usage:
        registry = TokenRegistry(SqlRegistryStore())
        registry.resync()
        registry.register("u1", token, metadata={"platform": "android"})
        tokens = [r.token for r in registry.snapshot()]
    """

    def __init__(
        self,
        store: RegistryStore,
        policy: Optional[TokenValidationPolicy] = None,
    ):
        self._store = store
        self._policy = policy or TokenValidationPolicy.from_settings()
        self._cache: Dict[str, Registration] = {}
        # Guards _cache and _key_locks. Held for the whole of resync().
        self._cache_lock = threading.Lock()
        # user_id -> [lock, holders]; an entry lives only while someone holds or waits on it
        self._key_locks: Dict[str, list] = {}

    @property
    def policy(self) -> TokenValidationPolicy:
        return self._policy

    @contextmanager
    def _user_lock(self, user_id: str) -> Iterator[None]:
        """Serialize writes for one user id without blocking other users."""
        with self._cache_lock:
            entry = self._key_locks.get(user_id)
            if entry is None:
                entry = [threading.Lock(), 0]
                self._key_locks[user_id] = entry
            entry[1] += 1

        entry[0].acquire()
        try:
            yield
        finally:
            entry[0].release()
            with self._cache_lock:
                entry[1] -= 1
                if entry[1] == 0:
                    del self._key_locks[user_id]

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def register(
        self,
        user_id: str,
        token: str,
        role: Any = Role.USER,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> RegistrationResult:
        """
        Register or replace the token for a user.

        Args:
            user_id: User identity
            token: Push token, checked against the validation policy
            role: Role name or Role member
            metadata: Platform/device info, stored as-is

        Returns:
            RegistrationResult with the distinct-user count after the write

        Raises:
            InvalidInputError: empty user id, or token rejected by policy
            StoreUnavailableError: the store write failed (cache untouched)
        """
        user_id = (user_id or "").strip()
        if not user_id:
            raise InvalidInputError("user_id is required", field="user_id")
        token = self._policy.validate(token)
        try:
            role = Role(role)
        except ValueError:
            raise InvalidInputError(f"unknown role: {role}", field="role")

        registration = Registration(
            user_id=user_id,
            token=token,
            role=role,
            metadata=dict(metadata or {}),
            last_updated=datetime.now(timezone.utc),
            is_valid=True,
        )

        with self._user_lock(user_id):
            self._store.set(user_id, registration)
            with self._cache_lock:
                is_new = user_id not in self._cache
                self._cache[user_id] = registration
                total = len(self._cache)

        metrics.update_registration_count(total)
        logger.info(
            "Push token registered",
            extra={
                "event_type": "token_registered",
                "user_id": user_id,
                "token": mask_token(token),
                "is_new": is_new,
                "total_users": total,
            }
        )
        return RegistrationResult(user_id=user_id, is_new=is_new, total_users=total)

    def unregister(
        self,
        user_id: Optional[str] = None,
        token: Optional[str] = None,
        expected_token: Optional[str] = None,
    ) -> int:
        """
        Remove a registration by user id, or by token value.

        Lookup by token scans the cache and removes the first matching
        registration only. Other users holding the same token are kept.

        With expected_token, the registration is removed only if it still
        holds that token when the user's lock is taken. A user who
        re-registered in the meantime keeps the new registration.

        Returns:
            1 if a cached registration was removed, 0 otherwise

        Raises:
            InvalidInputError: neither user_id nor token given
            StoreUnavailableError: the store delete failed (cache untouched)
        """
        user_id = (user_id or "").strip() or None
        token = (token or "").strip() or None
        if user_id is None and token is None:
            raise InvalidInputError("user_id or token is required", field="user_id")

        if user_id is None:
            user_id = self.find_user_by_token(token)
            if user_id is None:
                logger.debug(
                    "Unregister by token found no registration",
                    extra={"event_type": "unregister_not_found", "token": mask_token(token)}
                )
                return 0

        with self._user_lock(user_id):
            if expected_token is not None:
                with self._cache_lock:
                    current = self._cache.get(user_id)
                if current is None or current.token != expected_token:
                    logger.info(
                        "Registration no longer holds the failed token, kept",
                        extra={
                            "event_type": "unregister_token_mismatch",
                            "user_id": user_id,
                            "token": mask_token(expected_token),
                        }
                    )
                    return 0
            # Store delete is unconditional so store-only rows left by drift go too
            self._store.delete(user_id)
            with self._cache_lock:
                removed = self._cache.pop(user_id, None)
                total = len(self._cache)

        metrics.update_registration_count(total)
        if removed is None:
            return 0

        logger.info(
            "Push token unregistered",
            extra={
                "event_type": "token_unregistered",
                "user_id": user_id,
                "token": mask_token(removed.token),
                "total_users": total,
            }
        )
        return 1

    def prune_stale(self, max_age_days: int, now: Optional[datetime] = None) -> List[str]:
        """
        Remove registrations not refreshed within max_age_days.

        Returns:
            User ids removed
        """
        if max_age_days <= 0:
            return []
        cutoff = (now or datetime.now(timezone.utc)) - timedelta(days=max_age_days)
        stale = [r.user_id for r in self.snapshot() if r.last_updated < cutoff]

        removed = []
        for user_id in stale:
            if self.unregister(user_id=user_id):
                removed.append(user_id)

        if removed:
            logger.info(
                f"Pruned {len(removed)} stale registrations",
                extra={
                    "event_type": "registry_pruned",
                    "removed": len(removed),
                    "max_age_days": max_age_days,
                }
            )
        return removed

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def snapshot(self) -> Tuple[Registration, ...]:
        """Point-in-time copy of all registrations, ordered by user id."""
        with self._cache_lock:
            items = sorted(self._cache.values(), key=lambda r: r.user_id)
        return tuple(r.copy() for r in items)

    def get(self, user_id: str) -> Optional[Registration]:
        with self._cache_lock:
            registration = self._cache.get(user_id)
        return registration.copy() if registration else None

    def find_user_by_token(self, token: str) -> Optional[str]:
        """Reverse lookup by linear cache scan; first match wins."""
        with self._cache_lock:
            for registration in self._cache.values():
                if registration.token == token:
                    return registration.user_id
        return None

    def find_users_by_token(self, token: str) -> List[str]:
        """Every user currently holding token, in cache order."""
        with self._cache_lock:
            return [r.user_id for r in self._cache.values() if r.token == token]

    def count(self) -> int:
        """Distinct-user count, reconciled against the store."""
        self.resync()
        with self._cache_lock:
            return len(self._cache)

    def resync(self) -> int:
        """
        Replace the cache with the store contents.

        The cache lock is held across the store read so a concurrent
        register() cannot be overwritten by an older store listing.

        Returns:
            Number of registrations loaded

        Raises:
            StoreUnavailableError: store listing failed (cache kept as is)
        """
        with self._cache_lock:
            registrations = self._store.list_all()
            previous = len(self._cache)
            self._cache = {r.user_id: r for r in registrations}
            total = len(self._cache)

        metrics.update_registration_count(total)
        if total != previous:
            logger.info(
                "Registry resynced from store",
                extra={
                    "event_type": "registry_resync",
                    "previous": previous,
                    "loaded": total,
                }
            )
        return total


# Global singleton instance
_token_registry: Optional[TokenRegistry] = None


def get_token_registry() -> TokenRegistry:
    """
    Get the singleton TokenRegistry over the application database.

    The cache starts empty; call resync() at startup to load it.
    """
    global _token_registry
    if _token_registry is None:
        from app.services.registry.store import SqlRegistryStore

        _token_registry = TokenRegistry(SqlRegistryStore())
    return _token_registry


def reset_token_registry() -> None:
    """Reset the singleton instance (useful for testing)."""
    global _token_registry
    _token_registry = None
