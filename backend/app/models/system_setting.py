"""Key-value rows holding shop state as JSON documents"""
import json
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from sqlalchemy import Column, String, DateTime
from sqlalchemy.orm import Session

from app.core.database import Base

# Shop open/closed flag plus the marker of who changed it
SHOP_STATUS_KEY = "shop_status"
# Last connectivity check written by GET /system/store-check
STORE_CHECK_KEY = "store_check"


class SystemSetting(Base):
    """
    Small JSON documents keyed by name.

    Keys in use:
    - shop_status: is_open flag with updated_by / auto_closed / closed_date
    - store_check: message and timestamp of the last store-check call
    """
    __tablename__ = "system_settings"

    key = Column(String(100), primary_key=True, nullable=False)
    value = Column(String(2000), nullable=False)  # JSON encoded
    updated_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc)
    )

    def document(self) -> Dict[str, Any]:
        """
        Decode the stored JSON value.

        Raises:
            ValueError: value is not a JSON object
        """
        try:
            decoded = json.loads(self.value)
        except (json.JSONDecodeError, TypeError) as e:
            raise ValueError(f"setting {self.key!r} is not valid JSON: {e}")
        if not isinstance(decoded, dict):
            raise ValueError(f"setting {self.key!r} is not a JSON object")
        return decoded

    @classmethod
    def put(cls, db: Session, key: str, document: Dict[str, Any]) -> "SystemSetting":
        """
        Insert or overwrite the row for key. The caller commits.
        """
        setting: Optional[SystemSetting] = db.get(cls, key)
        if setting is None:
            setting = cls(key=key, value="")
            db.add(setting)
        setting.value = json.dumps(document)
        return setting

    def __repr__(self):
        return f"<SystemSetting(key='{self.key}')>"
