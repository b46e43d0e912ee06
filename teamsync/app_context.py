"""
SyncContext - explicit context object for one running core.

Owns the snapshot store, the mirrors, the session and every service, and
exposes the reactive fields clients read. Constructed once per process
(or per test) and handed to the action surface and the HTTP routes.
"""

import logging
from typing import Any, Dict, List, Optional, Tuple

from teamsync.auth.base import IdentityProvider, Principal
from teamsync.core.config import SyncSettings, get_settings
from teamsync.core.ids import IdMinter
from teamsync.models import (
    DEFAULT_SETTINGS,
    Account,
    AppSettings,
    AuditLogEntry,
    Bonus,
    Collection,
    Employee,
    Notification,
    PlanningEntry,
    Team,
    Training,
)
from teamsync.services.actions import DataStoreActions
from teamsync.services.guard import InvariantGuard
from teamsync.services.integrity import RelationalIntegrityEngine
from teamsync.services.notifications import AuditSink, NotificationCenter
from teamsync.services.session import SessionManager
from teamsync.store.base import DocumentStore, QuerySpec
from teamsync.sync.mirror import CollectionMirror, MirrorManager, SettingsMirror, SyncHealth
from teamsync.sync.resolver import IdentityResolver
from teamsync.sync.snapshots import SnapshotStore, SnapshotView

logger = logging.getLogger(__name__)

# Fields served by SyncContext.state()
STATE_FIELDS = (
    "employees",
    "teams",
    "accounts",
    "settings",
    "planning",
    "bonuses",
    "audit_log",
    "trainings",
    "notifications",
    "principal",
    "auth_settled",
    "profile_settled",
    "permission_error",
    "mirrors",
)


class SyncContext:
    """
    Wires the data-store core together.

    Args:
        store: Remote document store.
        provider: Identity provider.
        settings: Runtime settings; defaults to get_settings().
    """

    def __init__(
        self,
        store: DocumentStore,
        provider: IdentityProvider,
        settings: Optional[SyncSettings] = None,
    ) -> None:
        self.config = settings or get_settings()
        self.store = store
        self.provider = provider

        self.snapshots = SnapshotStore()
        self.minter = IdMinter()
        self.health = SyncHealth()
        self.notifications = NotificationCenter(self.config.notification_ttl_seconds, self.minter)
        self.mirrors = MirrorManager(self.health)
        self._register_mirrors()

        self.resolver = IdentityResolver(store, self.snapshots)
        self.integrity = RelationalIntegrityEngine(store, self.snapshots, self.resolver)
        self.guard = InvariantGuard(self.snapshots)
        self.session = SessionManager(
            provider,
            store,
            self.snapshots,
            self.mirrors,
            self.minter,
            signup_guard_seconds=self.config.signup_guard_seconds,
        )
        self.audit = AuditSink(store, self.minter, actor=self._actor)
        self.actions = DataStoreActions(self)
        self._started = False

    def _register_mirrors(self) -> None:
        delay = self.config.resubscribe_delay_seconds
        notify = self.notifications.notify
        models = [
            (Collection.EMPLOYEES, Employee, None),
            (Collection.TEAMS, Team, None),
            (Collection.ACCOUNTS, Account, None),
            (Collection.PLANNING, PlanningEntry, None),
            (Collection.BONUSES, Bonus, None),
            (Collection.TRAININGS, Training, None),
            (
                Collection.AUDIT_LOG,
                AuditLogEntry,
                QuerySpec(order_by="timestamp", descending=True, limit=self.config.audit_log_limit),
            ),
        ]
        for collection, model, query in models:
            self.mirrors.register(
                CollectionMirror(
                    collection,
                    model,
                    self.store,
                    self.snapshots,
                    self.health,
                    notifier=notify,
                    query=query,
                    resubscribe_delay=delay,
                )
            )
        self.mirrors.register(
            SettingsMirror(self.store, self.snapshots, self.health, notifier=notify, resubscribe_delay=delay)
        )

    def _actor(self) -> Optional[str]:
        principal = self.session.principal
        return principal.email if principal is not None else None

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def start(self) -> None:
        """Start following the identity provider (mirrors start on sign-in)."""
        if self._started:
            return
        self._started = True
        await self.session.start()
        logger.info("Sync context started")

    async def close(self) -> None:
        if not self._started:
            return
        self._started = False
        await self.session.close()
        await self.integrity.wait()
        self.notifications.clear()
        logger.info("Sync context closed")

    async def settle(self, max_rounds: int = 20) -> None:
        """
        Wait until delivered snapshots are handled and background work is done.

        Only meaningful with a store that exposes join() (the in-memory
        store); otherwise it waits for background tasks only.
        """
        join = getattr(self.store, "join", None)
        for _ in range(max_rounds):
            if join is not None:
                await join()
            if not self.session.pending and not self.integrity.pending:
                return
            await self.session.wait_idle()
            await self.integrity.wait()
        logger.warning(f"Sync context did not settle after {max_rounds} rounds")

    # =========================================================================
    # Reactive fields
    # =========================================================================

    def view(self) -> SnapshotView:
        return self.snapshots.view()

    @property
    def employees(self) -> Tuple[Employee, ...]:
        return self.snapshots.get(Collection.EMPLOYEES).records

    @property
    def teams(self) -> Tuple[Team, ...]:
        return self.snapshots.get(Collection.TEAMS).records

    @property
    def accounts(self) -> Tuple[Account, ...]:
        """Persisted accounts, plus the virtual account while the principal's own is missing."""
        snapshot = self.snapshots.get(Collection.ACCOUNTS)
        virtual = self.session.virtual_account(snapshot)
        if virtual is None:
            return snapshot.records
        return (*snapshot.records, virtual)

    @property
    def current_account(self) -> Optional[Account]:
        principal = self.session.principal
        if principal is None:
            return None
        for account in self.accounts:
            if account.matches_email(principal.email):
                return account
        return None

    @property
    def settings(self) -> AppSettings:
        records = self.snapshots.get(Collection.CONFIG).records
        return records[0] if records else DEFAULT_SETTINGS

    @property
    def planning(self) -> Dict[str, str]:
        """Shift label by "{employeeId}_{date}"."""
        return {entry.key: entry.shift for entry in self.snapshots.get(Collection.PLANNING)}

    @property
    def bonuses(self) -> Dict[str, float]:
        """Bonus amount by "{employeeId}_{month}"."""
        return {bonus.key: bonus.amount for bonus in self.snapshots.get(Collection.BONUSES)}

    @property
    def audit_log(self) -> List[AuditLogEntry]:
        return sorted(self.snapshots.get(Collection.AUDIT_LOG), key=lambda entry: entry.timestamp, reverse=True)

    @property
    def trainings(self) -> Tuple[Training, ...]:
        return self.snapshots.get(Collection.TRAININGS).records

    @property
    def notifications_list(self) -> Tuple[Notification, ...]:
        return self.notifications.notifications

    @property
    def principal(self) -> Optional[Principal]:
        return self.session.principal

    @property
    def auth_settled(self) -> bool:
        return self.session.auth_settled

    @property
    def profile_settled(self) -> bool:
        return self.session.profile_settled

    @property
    def permission_error(self) -> bool:
        return self.health.permission_error

    def state(self, field: str) -> Any:
        """JSON-ready value of one reactive field."""
        if field not in STATE_FIELDS:
            raise KeyError(field)
        if field == "settings":
            return self.settings.to_document()
        if field == "notifications":
            return [item.model_dump() for item in self.notifications_list]
        if field == "principal":
            principal = self.principal
            if principal is None:
                return None
            return {
                "uid": principal.uid,
                "email": principal.email,
                "emailVerified": principal.email_verified,
                "displayName": principal.display_name,
            }
        if field == "mirrors":
            return self.mirrors.list_mirrors()
        value = getattr(self, field)
        if isinstance(value, (list, tuple)):
            return [record.to_document() for record in value]
        return value

    def snapshot_state(self) -> Dict[str, Any]:
        return {field: self.state(field) for field in STATE_FIELDS}


def create_context(
    store: Optional[DocumentStore] = None,
    provider: Optional[IdentityProvider] = None,
    settings: Optional[SyncSettings] = None,
) -> SyncContext:
    """Build a SyncContext, using the in-process store and provider for anything not given."""
    if store is None:
        from teamsync.store.memory import InMemoryDocumentStore
        store = InMemoryDocumentStore()
    if provider is None:
        from teamsync.auth.memory import InMemoryIdentityProvider
        provider = InMemoryIdentityProvider()
    return SyncContext(store, provider, settings)
