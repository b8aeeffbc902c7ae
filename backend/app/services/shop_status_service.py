"""Shop Status Service

Reads and writes the shop open/closed state kept in system_settings under
the `shop_status` key, together with the marker describing who changed it.
"""
import logging
from dataclasses import dataclass, asdict
from datetime import date, datetime, timezone
from typing import Any, Callable, Dict, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.errors import StoreUnavailableError
from app.models.system_setting import SHOP_STATUS_KEY, SystemSetting

logger = logging.getLogger(__name__)


@dataclass
class ShopStatus:
    """Current shop state.

    Attributes:
        is_open: Whether the shop is open
        updated_by: Who or what made the last change ('api', 'auto-close:scheduler', ...)
        auto_closed: True when the last change was an automatic close
        closed_date: Local date of the last automatic close (repeat suppression)
        updated_at: UTC time of the last change
    """

    is_open: bool = True
    updated_by: Optional[str] = None
    auto_closed: bool = False
    closed_date: Optional[str] = None
    updated_at: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class ShopStatusService:
    """
    Persistence of the shop open/closed flag.

    A shop with no stored status is treated as open, so the first daily
    auto-close after installation does close it.
    """

    def __init__(self, session_factory: Optional[Callable[[], Session]] = None):
        if session_factory is None:
            from app.core.database import SessionLocal
            session_factory = SessionLocal
        self._session_factory = session_factory

    def get_status(self) -> ShopStatus:
        db = self._session_factory()
        try:
            setting = db.get(SystemSetting, SHOP_STATUS_KEY)
        except SQLAlchemyError as e:
            raise StoreUnavailableError("Shop status read failed", {"error": str(e)})
        finally:
            db.close()

        if setting is None:
            return ShopStatus()
        try:
            raw = setting.document()
        except ValueError as e:
            logger.warning(
                "Stored shop status is unreadable, treating shop as open",
                extra={"event_type": "shop_status_corrupt", "error": str(e)}
            )
            return ShopStatus()
        return ShopStatus(
            is_open=bool(raw.get("is_open", True)),
            updated_by=raw.get("updated_by"),
            auto_closed=bool(raw.get("auto_closed", False)),
            closed_date=raw.get("closed_date"),
            updated_at=raw.get("updated_at"),
        )

    def set_status(
        self,
        is_open: bool,
        updated_by: str = "api",
        auto_closed: bool = False,
        closed_date: Optional[date] = None,
    ) -> ShopStatus:
        """
        Persist a new shop status.

        Args:
            is_open: New open flag
            updated_by: Actor recorded in the audit marker
            auto_closed: Whether this is an automatic close
            closed_date: Local date of an automatic close

        Raises:
            StoreUnavailableError: the write failed
        """
        status = ShopStatus(
            is_open=is_open,
            updated_by=updated_by,
            auto_closed=auto_closed,
            closed_date=closed_date.isoformat() if closed_date else None,
            updated_at=datetime.now(timezone.utc).isoformat(),
        )

        db = self._session_factory()
        try:
            SystemSetting.put(db, SHOP_STATUS_KEY, status.to_dict())
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            raise StoreUnavailableError("Shop status write failed", {"error": str(e)})
        finally:
            db.close()

        logger.info(
            f"Shop status set to {'open' if is_open else 'closed'}",
            extra={
                "event_type": "shop_status_changed",
                "is_open": is_open,
                "updated_by": updated_by,
                "auto_closed": auto_closed,
            }
        )
        return status


# Global singleton instance
_shop_status_service: Optional[ShopStatusService] = None


def get_shop_status_service() -> ShopStatusService:
    """Get the singleton ShopStatusService."""
    global _shop_status_service
    if _shop_status_service is None:
        _shop_status_service = ShopStatusService()
    return _shop_status_service
