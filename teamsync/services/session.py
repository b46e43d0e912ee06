"""
Session Lifecycle Manager.

Follows the identity provider's current principal and drives everything
that depends on it:

    signed in  -> mirrors (re)started, profile bootstrap armed
    signed out -> mirrors stopped, every snapshot cleared

Profile bootstrap: the first time a principal signs in there is no
Account document for it. On each accounts snapshot, until the
principal's Account shows up, one is created: admin/active when the
accounts collection is provably empty (one-document probe), viewer/
inactive otherwise. Sign-up creates the Account itself, so bootstrap is
suppressed by a guard flag while a sign-up is in flight and for
`signup_guard_seconds` afterwards.

Provider failures propagate as ProviderAuthError; the action boundary
turns them into results.
"""

import asyncio
import logging
from typing import Any, Callable, Coroutine, Dict, Optional, Set

from teamsync.auth.base import AuthErrorCategory, IdentityProvider, Principal
from teamsync.core.exceptions import ProviderAuthError, ValidationError
from teamsync.core.ids import VIRTUAL_ACCOUNT_ID, IdMinter
from teamsync.models import Account, Collection
from teamsync.store.base import DocumentStore, QuerySpec
from teamsync.sync.mirror import MirrorManager
from teamsync.sync.snapshots import CollectionSnapshot, SnapshotStore

logger = logging.getLogger(__name__)


def default_display_name(principal: Principal) -> str:
    """Display name of a principal, falling back to the email's local part."""
    return principal.display_name or principal.email.split("@")[0]


class SessionManager:
    """
    Tracks the current principal and the readiness flags.

    Args:
        provider: Identity provider.
        store: Remote document store (profile writes).
        snapshots: Shared snapshot store.
        mirrors: Mirror registry started/stopped with the session.
        minter: Logical id source for new Accounts.
        signup_guard_seconds: How long bootstrap stays suppressed after a sign-up.
    """

    def __init__(
        self,
        provider: IdentityProvider,
        store: DocumentStore,
        snapshots: SnapshotStore,
        mirrors: MirrorManager,
        minter: IdMinter,
        signup_guard_seconds: float = 3.0,
    ) -> None:
        self._provider = provider
        self._store = store
        self._snapshots = snapshots
        self._mirrors = mirrors
        self._minter = minter
        self._guard_seconds = signup_guard_seconds

        self.principal: Optional[Principal] = None
        self.auth_settled = False
        self.profile_settled = False

        self._signup_guard = False
        self._profile_seen = False
        self._bootstrap_running = False
        self._tasks: Set[asyncio.Task] = set()
        self._unsubscribe: Optional[Callable[[], None]] = None
        self._remove_listener: Optional[Callable[[], None]] = None

    @property
    def signup_in_progress(self) -> bool:
        return self._signup_guard

    @property
    def pending(self) -> int:
        return len(self._tasks)

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def start(self) -> None:
        """Listen to account snapshots and to the provider's principal changes."""
        if self._remove_listener is None:
            self._remove_listener = self._snapshots.add_listener(self._on_snapshot)
        if self._unsubscribe is None:
            self._unsubscribe = await self._provider.on_principal_change(self._on_principal_change)

    async def close(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        if self._remove_listener is not None:
            self._remove_listener()
            self._remove_listener = None
        for task in list(self._tasks):
            task.cancel()
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
        await self._mirrors.stop_all()

    async def wait_idle(self) -> None:
        """Wait for in-flight bootstrap and guard-release tasks."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks))

    def _spawn(self, coro: Coroutine[Any, Any, None], name: str) -> None:
        task = asyncio.create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _on_principal_change(self, principal: Optional[Principal]) -> None:
        previous, self.principal = self.principal, principal
        self.auth_settled = True

        if principal is None:
            if previous is not None:
                logger.info(f"Signed out: {previous.email}")
            await self._mirrors.stop_all()
            self._snapshots.clear()
            self.profile_settled = False
            self._profile_seen = False
            return

        if previous is not None and previous.uid == principal.uid and self._mirrors.running:
            # Same principal, refreshed profile
            return

        logger.info(f"Signed in: {principal.email}")
        self.profile_settled = False
        self._profile_seen = False
        if previous is not None:
            self._snapshots.clear()
        await self._mirrors.restart_all()

    # =========================================================================
    # Profile bootstrap
    # =========================================================================

    def _on_snapshot(self, collection: str, snapshot: CollectionSnapshot) -> None:
        if collection != Collection.ACCOUNTS.value or self.principal is None:
            return
        self.profile_settled = True
        if self._profile_seen:
            return
        if any(account.matches_email(self.principal.email) for account in snapshot):
            self._profile_seen = True
            return
        if self._signup_guard or self._bootstrap_running:
            return
        self._bootstrap_running = True
        self._spawn(self._bootstrap(self.principal), name="session:bootstrap")

    async def _bootstrap(self, principal: Principal) -> None:
        try:
            if self.principal is None or self.principal.uid != principal.uid:
                return
            await self._create_profile(principal, default_display_name(principal))
            self._profile_seen = True
        except Exception as e:
            # Retried on the next accounts snapshot
            logger.error(f"Profile bootstrap failed for {principal.email}: {type(e).__name__}: {e}")
        finally:
            self._bootstrap_running = False

    async def _create_profile(self, principal: Principal, name: str) -> Account:
        probe = await self._store.fetch(Collection.ACCOUNTS, QuerySpec(limit=1))
        first = not probe
        account = Account(
            id=self._minter.next_id(),
            name=name,
            email=principal.email,
            role="admin" if first else "viewer",
            active=first,
            email_verified=principal.email_verified,
        )
        await self._store.set(Collection.ACCOUNTS, str(account.id), account.to_document())
        logger.info(f"Created {'first admin' if first else 'viewer'} account for {principal.email}")
        return account

    def virtual_account(self, accounts: CollectionSnapshot) -> Optional[Account]:
        """Synthesized Account for a principal whose profile has not propagated yet."""
        principal = self.principal
        if principal is None:
            return None
        if any(account.matches_email(principal.email) for account in accounts):
            return None
        return Account(
            id=VIRTUAL_ACCOUNT_ID,
            name=default_display_name(principal),
            email=principal.email,
            role="viewer",
            active=False,
            email_verified=principal.email_verified,
        )

    # =========================================================================
    # Provider operations
    # =========================================================================

    async def _call_provider(self, operation: str, call: Coroutine[Any, Any, Any]) -> Any:
        try:
            return await call
        except ProviderAuthError as e:
            if e.category == AuthErrorCategory.UNKNOWN.value:
                logger.warning(f"Unrecognized identity provider error during {operation}: {e.code!r}")
            raise

    async def login(self, email: str, secret: str) -> Principal:
        principal = await self._call_provider("login", self._provider.sign_in(email, secret))
        return principal

    async def sign_up(self, email: str, secret: str, profile_fields: Optional[Dict[str, Any]] = None) -> Account:
        """
        Register a principal and create its Account.

        The bootstrap guard is raised before the first provider call and
        released signup_guard_seconds after completion, whatever the outcome.
        """
        self._signup_guard = True
        try:
            principal = await self._call_provider("sign_up", self._provider.sign_up(email, secret))
            fields = profile_fields or {}
            name = fields.get("name") or fields.get("display_name") or default_display_name(principal)
            principal = await self._call_provider(
                "update_profile", self._provider.update_profile(principal, {"display_name": name})
            )
            if self.principal is not None and self.principal.uid == principal.uid:
                self.principal = principal
            await self._call_provider("send_verification", self._provider.send_verification(principal))
            account = await self._create_profile(principal, name)
            self._profile_seen = True
            return account
        finally:
            self._spawn(self._release_signup_guard(), name="session:signup-guard")

    async def _release_signup_guard(self) -> None:
        await asyncio.sleep(self._guard_seconds)
        self._signup_guard = False
        snapshot = self._snapshots.get(Collection.ACCOUNTS)
        if snapshot.loaded:
            self._on_snapshot(Collection.ACCOUNTS.value, snapshot)

    async def logout(self) -> None:
        await self._call_provider("logout", self._provider.sign_out())

    async def resend_verification(self) -> str:
        if self.principal is None:
            raise ValidationError("You must be signed in to request a verification email")
        await self._call_provider("send_verification", self._provider.send_verification(self.principal))
        return self.principal.email
