"""
Identity management.

Provides the OAuth token clients and the session that owns the
bearer token used for remote file access.
"""

from .session import AuthSession
from .token_client import GoogleTokenClient, TokenClient
from .types import AccessToken

__all__ = [
    "AccessToken",
    "TokenClient",
    "GoogleTokenClient",
    "AuthSession",
]
