"""
Identity Provider protocol.

The core consumes sign-in/sign-up/sign-out and principal-change
notification from an external identity provider; credential checks,
session persistence and email delivery all live on the provider side.

Provider implementations report failures as ProviderAuthError built with
auth_error_from_code(), so every provider maps its codes onto the same
user-facing categories.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional, Protocol, runtime_checkable

from teamsync.core.exceptions import ProviderAuthError


@dataclass(frozen=True)
class Principal:
    """An identity-provider account."""

    uid: str
    email: str
    email_verified: bool = False
    display_name: Optional[str] = None


PrincipalCallback = Callable[[Optional[Principal]], Awaitable[None]]


class AuthErrorCategory(str, Enum):
    """User-facing categories for provider failures."""

    INVALID_CREDENTIALS = "invalid_credentials"
    RATE_LIMITED = "rate_limited"
    NETWORK_FAILURE = "network_failure"
    EMAIL_ALREADY_REGISTERED = "email_already_registered"
    WEAK_SECRET = "weak_secret"
    INVALID_ADDRESS = "invalid_address"
    OPERATION_DISABLED = "operation_disabled"
    UNKNOWN = "unknown"

    def __str__(self) -> str:
        return self.value


# Provider error code -> category
ERROR_CODE_CATEGORIES: Dict[str, AuthErrorCategory] = {
    "auth/invalid-credential": AuthErrorCategory.INVALID_CREDENTIALS,
    "auth/invalid-login-credentials": AuthErrorCategory.INVALID_CREDENTIALS,
    "auth/wrong-password": AuthErrorCategory.INVALID_CREDENTIALS,
    "auth/user-not-found": AuthErrorCategory.INVALID_CREDENTIALS,
    "auth/user-disabled": AuthErrorCategory.INVALID_CREDENTIALS,
    "auth/too-many-requests": AuthErrorCategory.RATE_LIMITED,
    "auth/network-request-failed": AuthErrorCategory.NETWORK_FAILURE,
    "auth/email-already-in-use": AuthErrorCategory.EMAIL_ALREADY_REGISTERED,
    "auth/weak-password": AuthErrorCategory.WEAK_SECRET,
    "auth/invalid-email": AuthErrorCategory.INVALID_ADDRESS,
    "auth/missing-email": AuthErrorCategory.INVALID_ADDRESS,
    "auth/operation-not-allowed": AuthErrorCategory.OPERATION_DISABLED,
}

CATEGORY_MESSAGES: Dict[AuthErrorCategory, str] = {
    AuthErrorCategory.INVALID_CREDENTIALS: "Incorrect email or password.",
    AuthErrorCategory.RATE_LIMITED: "Too many attempts. Please wait a moment and try again.",
    AuthErrorCategory.NETWORK_FAILURE: "Network error. Check your connection and try again.",
    AuthErrorCategory.EMAIL_ALREADY_REGISTERED: "This email address is already registered.",
    AuthErrorCategory.WEAK_SECRET: "The password is too weak (at least 6 characters).",
    AuthErrorCategory.INVALID_ADDRESS: "The email address is not valid.",
    AuthErrorCategory.OPERATION_DISABLED: "This sign-in method is disabled.",
    AuthErrorCategory.UNKNOWN: "Authentication failed. Please try again.",
}


def classify_auth_code(code: Optional[str]) -> AuthErrorCategory:
    """Map a provider error code to its user-facing category."""
    if not code:
        return AuthErrorCategory.UNKNOWN
    return ERROR_CODE_CATEGORIES.get(code, AuthErrorCategory.UNKNOWN)


def auth_error_from_code(code: Optional[str]) -> ProviderAuthError:
    """Build the ProviderAuthError for a provider error code."""
    category = classify_auth_code(code)
    return ProviderAuthError(CATEGORY_MESSAGES[category], category=category.value, code=code)


@runtime_checkable
class IdentityProvider(Protocol):
    """Capabilities the core needs from the identity provider."""

    async def sign_in(self, email: str, secret: str) -> Principal:
        ...

    async def sign_up(self, email: str, secret: str) -> Principal:
        ...

    async def sign_out(self) -> None:
        ...

    async def on_principal_change(self, callback: PrincipalCallback) -> Callable[[], None]:
        """
        Register callback; it is awaited once with the current principal
        and then on every change. Returns an unsubscribe function.
        """
        ...

    async def send_verification(self, principal: Principal) -> None:
        ...

    async def update_profile(self, principal: Principal, fields: Dict[str, Any]) -> Principal:
        ...
