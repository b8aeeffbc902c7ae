"""Registration SQLAlchemy ORM model for push token storage"""
from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, DateTime, JSON, String, Text, Index

from app.core.database import Base


class RegistrationRecord(Base):
    """
    Durable registration record binding one user identity to one push token.

    Keyed by user_id, so a second registration for the same user overwrites
    the row rather than adding one. Token values are not unique across users.

    Attributes:
        user_id: User identity (primary key)
        token: Opaque push delivery token
        role: 'user' or 'admin'
        device_metadata: Platform/device info sent by the client
        last_updated: Last registration time (UTC)
        is_valid: False excludes the token from registry broadcasts
    """

    __tablename__ = "registrations"

    user_id = Column(String(255), primary_key=True, nullable=False)
    token = Column(Text, nullable=False)
    role = Column(String(20), nullable=False, default="user")
    device_metadata = Column(JSON, nullable=False, default=dict)
    last_updated = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    is_valid = Column(Boolean, nullable=False, default=True)

    __table_args__ = (
        Index('idx_registrations_last_updated', 'last_updated'),
    )

    def __repr__(self):
        return f"<RegistrationRecord(user_id={self.user_id}, token={(self.token or '')[:12]}...)>"
