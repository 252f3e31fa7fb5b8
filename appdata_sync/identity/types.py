"""
Identity types.

Defines the bearer token held for the current session.
"""

import time
from dataclasses import dataclass, field
from typing import Any

from ..exceptions import ValidationError


@dataclass
class AccessToken:
    """OAuth bearer token as returned by the provider's token endpoint.

    Only ever kept in the session-scoped store, so it does not survive a
    restart of the hosting process.
    """

    access_token: str
    token_type: str = "Bearer"
    expires_in: int | None = None
    scope: str | None = None
    refresh_token: str | None = None
    issued_at: float = field(default_factory=time.time)

    def is_expired(self, leeway: float = 0.0) -> bool:
        if self.expires_in is None:
            return False
        return time.time() + leeway >= self.issued_at + self.expires_in

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary."""
        return {
            "access_token": self.access_token,
            "token_type": self.token_type,
            "expires_in": self.expires_in,
            "scope": self.scope,
            "refresh_token": self.refresh_token,
            "issued_at": self.issued_at,
        }

    @classmethod
    def from_dict(cls, data: Any) -> "AccessToken":
        """Deserialize from dictionary.

        Raises:
            ValidationError: If the payload has no usable access_token
        """
        if not isinstance(data, dict):
            raise ValidationError("token", "expected an object")
        access_token = data.get("access_token")
        if not isinstance(access_token, str) or not access_token:
            raise ValidationError("access_token", "missing or empty")

        expires_in = data.get("expires_in")
        try:
            expires_in = int(expires_in) if expires_in is not None else None
        except (TypeError, ValueError) as e:
            raise ValidationError("expires_in", "not an integer") from e

        try:
            issued_at = float(data.get("issued_at") or time.time())
        except (TypeError, ValueError) as e:
            raise ValidationError("issued_at", "not a number") from e

        return cls(
            access_token=access_token,
            token_type=data.get("token_type") or "Bearer",
            expires_in=expires_in,
            scope=data.get("scope"),
            refresh_token=data.get("refresh_token"),
            issued_at=issued_at,
        )
