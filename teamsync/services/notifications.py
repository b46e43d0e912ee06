"""
Notification / Audit Sink.

Two outputs for every successful mutation:
    - a transient, auto-expiring notification for the user;
    - an immutable audit-log document in the remote store.

describe_changes() renders the field-level diff used in audit details.
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Callable, List, Mapping, Optional

from teamsync.core.ids import IdMinter
from teamsync.models import AuditLogEntry, Collection, Notification
from teamsync.store.base import DocumentStore

logger = logging.getLogger(__name__)

EMPTY_PLACEHOLDER = "empty"
SYSTEM_ACTOR = "system"


def _render(value: Any) -> str:
    if value is None or value == "":
        return EMPTY_PLACEHOLDER
    return str(value)


def describe_changes(old: Mapping[str, Any], new: Mapping[str, Any]) -> str:
    """
    Human-readable diff of the fields present in new.

    Scalars render as "field: old -> new", containers as "field updated".
    Unchanged fields are omitted.
    """
    parts = []
    for field, new_value in new.items():
        old_value = old.get(field)
        if old_value == new_value:
            continue
        if isinstance(new_value, (list, tuple, set, dict)) or isinstance(old_value, (list, tuple, set, dict)):
            parts.append(f"{field} updated")
        else:
            parts.append(f"{field}: {_render(old_value)} -> {_render(new_value)}")
    return ", ".join(parts)


class NotificationCenter:
    """Holds the user-facing notifications currently on screen."""

    def __init__(self, ttl_seconds: float = 3.0, minter: Optional[IdMinter] = None) -> None:
        self._ttl = ttl_seconds
        self._minter = minter or IdMinter()
        self._items: List[Notification] = []

    @property
    def notifications(self) -> tuple:
        return tuple(self._items)

    def notify(self, message: str, type: str = "info") -> Notification:
        notification = Notification(id=self._minter.next_id(), message=message, type=type)
        self._items.append(notification)
        logger.info(f"[{type}] {message}")
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            loop = None
        if loop is not None and self._ttl > 0:
            loop.call_later(self._ttl, self.dismiss, notification.id)
        return notification

    def dismiss(self, notification_id: int) -> None:
        self._items = [item for item in self._items if item.id != notification_id]

    def clear(self) -> None:
        self._items.clear()


class AuditSink:
    """
    Appends audit-log entries to the remote store.

    Args:
        store: Remote document store.
        minter: Logical id source.
        actor: Callable returning the acting principal's email (or None).
    """

    def __init__(
        self,
        store: DocumentStore,
        minter: IdMinter,
        actor: Callable[[], Optional[str]],
    ) -> None:
        self._store = store
        self._minter = minter
        self._actor = actor

    async def record(self, action: str, details: str) -> Optional[AuditLogEntry]:
        """
        Write one audit entry.

        A failed write is logged and swallowed: the audited action has
        already happened and must still report success.
        """
        entry = AuditLogEntry(
            id=self._minter.next_id(),
            timestamp=datetime.now(timezone.utc).isoformat(),
            action=action,
            details=details,
            user=self._actor() or SYSTEM_ACTOR,
        )
        try:
            await self._store.set(Collection.AUDIT_LOG, str(entry.id), entry.to_document())
        except Exception as e:
            logger.error(f"Failed to write audit entry {action}: {type(e).__name__}: {e}")
            return None
        return entry
