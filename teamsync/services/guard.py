"""
Invariant Guard.

Rejects account mutations that would leave no active administrator.
The check runs against the local accounts snapshot before any write is
issued. It is a best-effort safety net: two clients demoting two
different admins at the same time can both pass it.
"""

import logging

from teamsync.core.exceptions import InvariantViolationError
from teamsync.models import Account, Collection
from teamsync.sync.snapshots import SnapshotStore

logger = logging.getLogger(__name__)


class InvariantGuard:
    """Standing safety rules for the accounts collection."""

    def __init__(self, snapshots: SnapshotStore) -> None:
        self._snapshots = snapshots

    def active_admin_count(self) -> int:
        # Ghost copies of one account count once
        return len({
            account.id for account in self._snapshots.get(Collection.ACCOUNTS)
            if account.is_active_admin and not account.is_virtual
        })

    def check_account_update(self, current: Account, proposed: Account) -> None:
        """Raise if replacing current with proposed removes the last active admin."""
        if current.is_active_admin and not proposed.is_active_admin:
            self._require_another_admin(current, "demote or deactivate")

    def check_account_deletion(self, current: Account) -> None:
        """Raise if deleting current removes the last active admin."""
        if current.is_active_admin:
            self._require_another_admin(current, "delete")

    def _require_another_admin(self, account: Account, verb: str) -> None:
        if self.active_admin_count() <= 1:
            logger.info(f"Blocked attempt to {verb} the last active admin (account {account.id})")
            raise InvariantViolationError(
                f"Cannot {verb} {account.name or account.email}: at least one active administrator must remain"
            )
