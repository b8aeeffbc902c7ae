"""
Registry Store: durable persistence of registrations keyed by user id.

RegistryStore is the collaborator contract the token registry depends on.
SqlRegistryStore implements it on the application's SQLAlchemy database.
Every backend error is surfaced as StoreUnavailableError so callers never
need to know which database sits underneath.
"""
import logging
from abc import ABC, abstractmethod
from datetime import timezone
from typing import Callable, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.errors import StoreUnavailableError
from app.models.registration import RegistrationRecord
from app.services.registry.models import Registration, Role

logger = logging.getLogger(__name__)


class RegistryStore(ABC):
    """Key-value persistence contract for registrations (key = user id)."""

    @abstractmethod
    def get(self, key: str) -> Optional[Registration]:
        """Return the registration stored under key, or None."""

    @abstractmethod
    def set(self, key: str, registration: Registration, merge: bool = False) -> None:
        """
        Write a registration under key.

        With merge=False the stored record is replaced. With merge=True the
        metadata maps are merged (new keys win) and the other fields are
        overwritten.
        """

    @abstractmethod
    def delete(self, key: str) -> None:
        """Delete key. Deleting a missing key is not an error."""

    @abstractmethod
    def list_all(self) -> List[Registration]:
        """Return every stored registration ordered by user id."""


def _to_registration(record: RegistrationRecord) -> Registration:
    last_updated = record.last_updated
    # SQLite drops tzinfo on the way back
    if last_updated is not None and last_updated.tzinfo is None:
        last_updated = last_updated.replace(tzinfo=timezone.utc)
    try:
        role = Role(record.role)
    except ValueError:
        role = Role.USER
    return Registration(
        user_id=record.user_id,
        token=record.token,
        role=role,
        metadata=dict(record.device_metadata or {}),
        last_updated=last_updated,
        is_valid=bool(record.is_valid) if record.is_valid is not None else True,
    )


class SqlRegistryStore(RegistryStore):
    """
    RegistryStore backed by the `registrations` table.

    Each call opens its own short-lived session so the store can be shared
    by request handlers, the scheduler and background jobs.

    Usage:
        store = SqlRegistryStore()
        store.set("u1", Registration(user_id="u1", token="..."))
        store.get("u1")
    """

    def __init__(self, session_factory: Optional[Callable[[], Session]] = None):
        if session_factory is None:
            from app.core.database import SessionLocal
            session_factory = SessionLocal
        self._session_factory = session_factory

    def get(self, key: str) -> Optional[Registration]:
        db = self._session_factory()
        try:
            record = db.get(RegistrationRecord, key)
            return _to_registration(record) if record else None
        except SQLAlchemyError as e:
            logger.error(
                f"Registry store read failed: {e}",
                extra={"event_type": "store_read_error", "user_id": key},
            )
            raise StoreUnavailableError("Registry store read failed", {"user_id": key, "error": str(e)})
        finally:
            db.close()

    def set(self, key: str, registration: Registration, merge: bool = False) -> None:
        db = self._session_factory()
        try:
            record = db.get(RegistrationRecord, key)
            metadata = dict(registration.metadata)
            if record is None:
                record = RegistrationRecord(user_id=key)
                db.add(record)
            elif merge:
                metadata = {**(record.device_metadata or {}), **metadata}

            record.token = registration.token
            record.role = registration.role.value
            record.device_metadata = metadata
            record.last_updated = registration.last_updated
            record.is_valid = registration.is_valid
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(
                f"Registry store write failed: {e}",
                extra={"event_type": "store_write_error", "user_id": key},
            )
            raise StoreUnavailableError("Registry store write failed", {"user_id": key, "error": str(e)})
        finally:
            db.close()

    def delete(self, key: str) -> None:
        db = self._session_factory()
        try:
            record = db.get(RegistrationRecord, key)
            if record is not None:
                db.delete(record)
                db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(
                f"Registry store delete failed: {e}",
                extra={"event_type": "store_delete_error", "user_id": key},
            )
            raise StoreUnavailableError("Registry store delete failed", {"user_id": key, "error": str(e)})
        finally:
            db.close()

    def list_all(self) -> List[Registration]:
        db = self._session_factory()
        try:
            records = db.query(RegistrationRecord).order_by(RegistrationRecord.user_id).all()
            return [_to_registration(r) for r in records]
        except SQLAlchemyError as e:
            logger.error(
                f"Registry store list failed: {e}",
                extra={"event_type": "store_list_error"},
            )
            raise StoreUnavailableError("Registry store list failed", {"error": str(e)})
        finally:
            db.close()
