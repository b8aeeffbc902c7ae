"""SQLAlchemy ORM models"""
from app.models.registration import RegistrationRecord
from app.models.system_setting import SystemSetting
from app.models.shop_audit_log import ShopAuditLog, ShopAuditErrorLog, AutoCloseStatus

__all__ = [
    "RegistrationRecord",
    "SystemSetting",
    "ShopAuditLog",
    "ShopAuditErrorLog",
    "AutoCloseStatus",
]
