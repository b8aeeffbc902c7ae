"""
System API endpoints

- GET /api/v1/system/store-check - Write a check row and read back the registration count
"""
import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.database import get_db
from app.core.errors import StoreUnavailableError
from app.models.system_setting import STORE_CHECK_KEY, SystemSetting
from app.schemas.system import StoreCheckResponse
from app.services.registry.token_registry import TokenRegistry, get_token_registry

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/system",
    tags=["system"]
)


@router.get("/store-check", response_model=StoreCheckResponse)
async def store_check(
    db: Session = Depends(get_db),
    registry: TokenRegistry = Depends(get_token_registry),
):
    """
    Check store connectivity.

    Writes a check row into system_settings, then reads the registration
    count from the store.

    Raises:
        StoreUnavailableError: the check write or the count read failed
    """
    try:
        SystemSetting.put(db, STORE_CHECK_KEY, {
            "message": "Store connection successful",
            "timestamp": datetime.now(timezone.utc).isoformat(),
        })
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(
            f"Store check write failed: {e}",
            extra={"event_type": "store_check_failed"}
        )
        raise StoreUnavailableError("Store check write failed", {"error": str(e)})

    count = registry.count()
    return StoreCheckResponse(store="connected", tokens_count=count)
