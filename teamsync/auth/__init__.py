"""Identity Provider capability and its implementations."""

from teamsync.auth.base import (
    AuthErrorCategory,
    IdentityProvider,
    Principal,
    auth_error_from_code,
)
from teamsync.auth.memory import InMemoryIdentityProvider

__all__ = [
    "AuthErrorCategory",
    "IdentityProvider",
    "Principal",
    "auth_error_from_code",
    "InMemoryIdentityProvider",
]
