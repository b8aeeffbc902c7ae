"""
Domain types for the token registry.

Registration is the in-process representation of one RegistrationRecord row.
Instances are frozen; the registry replaces them wholesale on every write.
"""
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict


class Role(str, Enum):
    """Role attached to a registration."""

    USER = "user"
    ADMIN = "admin"


@dataclass(frozen=True)
class Registration:
    """One user's current push token.

    Attributes:
        user_id: User identity, unique key of the registry
        token: Opaque delivery address for the push transport
        role: Role of the registering user
        metadata: Platform/device info supplied by the client
        last_updated: When this registration was written (UTC)
        is_valid: False keeps the record but excludes it from broadcasts
    """

    user_id: str
    token: str
    role: Role = Role.USER
    metadata: Dict[str, Any] = field(default_factory=dict)
    last_updated: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    is_valid: bool = True

    def copy(self) -> "Registration":
        """Detached copy whose metadata can be mutated without touching the cache."""
        return replace(self, metadata=dict(self.metadata))


@dataclass
class RegistrationResult:
    """Result of TokenRegistry.register.

    Attributes:
        user_id: User that was registered
        is_new: False when a previous registration was replaced
        total_users: Distinct-user count after the write
    """

    user_id: str
    is_new: bool
    total_users: int
