"""
Token registry: registrations of one push token per user.

- Registration / RegistrationResult / Role - domain types
- TokenValidationPolicy - length/format check shared by registration and broadcast targets
- RegistryStore / SqlRegistryStore - durable persistence
- TokenRegistry - in-process cache and the single writer of registrations
"""

from app.services.registry.models import Registration, RegistrationResult, Role
from app.services.registry.store import RegistryStore, SqlRegistryStore
from app.services.registry.token_registry import TokenRegistry
from app.services.registry.validation import TokenValidationPolicy

__all__ = [
    "Registration",
    "RegistrationResult",
    "Role",
    "RegistryStore",
    "SqlRegistryStore",
    "TokenRegistry",
    "TokenValidationPolicy",
]
