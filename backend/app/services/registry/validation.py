"""
Token validation policy.

One configurable policy decides whether a string can be a push token. It is
applied at registration and to explicit broadcast targets, so both paths
accept and reject exactly the same values.
"""
import re
from dataclasses import dataclass
from typing import Optional

from app.core.errors import InvalidInputError


@dataclass(frozen=True)
class TokenValidationPolicy:
    """Length and format sanity check for push tokens.

    Attributes:
        min_length: Shortest accepted token
        pattern: Optional regex the whole token must match
    """

    min_length: int = 20
    pattern: Optional[str] = None

    @classmethod
    def from_settings(cls) -> "TokenValidationPolicy":
        from app.core.config import settings

        return cls(min_length=settings.TOKEN_MIN_LENGTH, pattern=settings.TOKEN_PATTERN)

    def check(self, token: Optional[str]) -> Optional[str]:
        """Return the reason a token is rejected, or None if it is acceptable."""
        if token is None or not token.strip():
            return "token is required"
        token = token.strip()
        if len(token) < self.min_length:
            return f"token is shorter than {self.min_length} characters"
        if self.pattern and not re.fullmatch(self.pattern, token):
            return "token has an invalid format"
        return None

    def is_valid(self, token: Optional[str]) -> bool:
        return self.check(token) is None

    def validate(self, token: Optional[str], field: str = "token") -> str:
        """
        Validate and normalize a token.

        Returns:
            The stripped token

        Raises:
            InvalidInputError: token is empty, too short or malformed
        """
        reason = self.check(token)
        if reason:
            raise InvalidInputError(reason, field=field)
        return token.strip()
