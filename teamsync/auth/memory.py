"""
In-process Identity Provider.

Keeps accounts in memory and notifies registered callbacks on every
principal change, mirroring the behavior of a hosted identity provider
(sign-up signs the new principal in). Secrets are stored as bcrypt
hashes. Used by the test-suite and by the application entry point.
"""

import logging
import re
import uuid
from dataclasses import dataclass, replace
from typing import Any, Callable, Dict, List, Optional

import bcrypt

from teamsync.auth.base import Principal, PrincipalCallback, auth_error_from_code

logger = logging.getLogger(__name__)

EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
MIN_SECRET_LENGTH = 6
# bcrypt only accepts secrets up to 72 bytes
MAX_SECRET_BYTES = 72


@dataclass
class _ProviderAccount:
    principal: Principal
    secret_hash: bytes


class InMemoryIdentityProvider:
    """IdentityProvider implementation holding accounts in memory."""

    def __init__(self, hash_rounds: int = 12) -> None:
        self._hash_rounds = hash_rounds
        self._accounts: Dict[str, _ProviderAccount] = {}
        self._current: Optional[Principal] = None
        self._callbacks: List[PrincipalCallback] = []
        self._failures: List[str] = []
        self.sent_verifications: List[str] = []

    @property
    def current(self) -> Optional[Principal]:
        return self._current

    def fail_next(self, code: str) -> None:
        """Make the next provider call fail with the given error code."""
        self._failures.append(code)

    def _check_failure(self) -> None:
        if self._failures:
            raise auth_error_from_code(self._failures.pop(0))

    def _hash_secret(self, secret: str) -> bytes:
        """Hash a secret using bcrypt."""
        return bcrypt.hashpw(secret.encode("utf-8"), bcrypt.gensalt(rounds=self._hash_rounds))

    async def _set_current(self, principal: Optional[Principal]) -> None:
        self._current = principal
        for callback in list(self._callbacks):
            await callback(principal)

    # =========================================================================
    # IdentityProvider
    # =========================================================================

    async def sign_in(self, email: str, secret: str) -> Principal:
        self._check_failure()
        account = self._accounts.get((email or "").strip().lower())
        if (
            account is None
            or len((secret or "").encode("utf-8")) > MAX_SECRET_BYTES
            or not bcrypt.checkpw((secret or "").encode("utf-8"), account.secret_hash)
        ):
            raise auth_error_from_code("auth/invalid-credential")
        await self._set_current(account.principal)
        return account.principal

    async def sign_up(self, email: str, secret: str) -> Principal:
        self._check_failure()
        email = (email or "").strip()
        if not EMAIL_PATTERN.match(email):
            raise auth_error_from_code("auth/invalid-email")
        if len(secret or "") < MIN_SECRET_LENGTH or len(secret.encode("utf-8")) > MAX_SECRET_BYTES:
            raise auth_error_from_code("auth/weak-password")
        key = email.lower()
        if key in self._accounts:
            raise auth_error_from_code("auth/email-already-in-use")

        principal = Principal(uid=uuid.uuid4().hex, email=email)
        self._accounts[key] = _ProviderAccount(principal, self._hash_secret(secret))
        logger.info(f"Provider account created for {email}")
        await self._set_current(principal)
        return principal

    async def sign_out(self) -> None:
        self._check_failure()
        await self._set_current(None)

    async def on_principal_change(self, callback: PrincipalCallback) -> Callable[[], None]:
        self._callbacks.append(callback)
        await callback(self._current)

        def unsubscribe() -> None:
            if callback in self._callbacks:
                self._callbacks.remove(callback)

        return unsubscribe

    async def send_verification(self, principal: Principal) -> None:
        self._check_failure()
        self.sent_verifications.append(principal.email)

    async def update_profile(self, principal: Principal, fields: Dict[str, Any]) -> Principal:
        self._check_failure()
        account = self._accounts.get(principal.email.lower())
        if account is None:
            raise auth_error_from_code("auth/user-not-found")
        updated = replace(account.principal, display_name=fields.get("display_name", account.principal.display_name))
        account.principal = updated
        if self._current is not None and self._current.uid == updated.uid:
            self._current = updated
        return updated

    def mark_verified(self, email: str) -> None:
        """Simulate the user clicking the verification link."""
        account = self._accounts.get(email.strip().lower())
        if account is not None:
            account.principal = replace(account.principal, email_verified=True)
