"""
Collection Mirrors.

One mirror per remote collection. A mirror holds a live subscription and
republishes every inbound batch into the SnapshotStore as a complete
replacement: the remote store is the source of truth, so the mirror never
patches, merges or reorders on its own.

MirrorManager keeps the registry of mirrors and starts/stops them as a
group when the session changes.

Failure handling:
    - PermissionDeniedError: sets the process-wide permission flag, logs
      operator guidance once, stops the mirror. Nothing is shown to the user.
    - Anything else: reported through the notifier, snapshot left as is,
      resubscribe after a delay.
"""

import asyncio
import logging
from contextlib import suppress
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Type

from pydantic import BaseModel
from pydantic import ValidationError as ModelValidationError

from teamsync.core.exceptions import PermissionDeniedError
from teamsync.models import DEFAULT_ABSENCE_COLOR, DEFAULT_SETTINGS, AppSettings, Collection, SETTINGS_HANDLE
from teamsync.store.base import DocumentStore, QuerySpec, StoredDocument
from teamsync.sync.snapshots import SnapshotStore

logger = logging.getLogger(__name__)

Notifier = Callable[[str, str], Any]

PERMISSION_GUIDANCE = (
    "The document store denied access to '{collection}'. Check that the "
    "gateway API key is valid and that the store's access rules allow "
    "signed-in users to read and write the mirrored collections."
)


class MirrorStatus(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    ERROR = "error"
    DENIED = "denied"

    def __str__(self) -> str:
        return self.value


@dataclass
class SyncHealth:
    """Process-wide sync flags shared by every mirror."""

    permission_error: bool = False
    guidance_logged: bool = False

    def reset(self) -> None:
        self.permission_error = False
        self.guidance_logged = False


async def _close_stream(stream: Any) -> None:
    aclose = getattr(stream, "aclose", None)
    if aclose is not None:
        with suppress(Exception):
            await aclose()


class CollectionMirror:
    """
    Live mirror of one remote collection.

    Args:
        collection: Collection name (also the snapshot key).
        model: Pydantic model each document is parsed into.
        store: Remote document store.
        snapshots: Shared snapshot store to publish into.
        health: Process-wide sync flags.
        notifier: Callable(message, type) for user-facing errors.
        query: Optional filter/order/limit for the subscription.
        resubscribe_delay: Seconds to wait before resubscribing after a failure.
    """

    def __init__(
        self,
        collection: str,
        model: Optional[Type[BaseModel]],
        store: DocumentStore,
        snapshots: SnapshotStore,
        health: SyncHealth,
        notifier: Optional[Notifier] = None,
        query: Optional[QuerySpec] = None,
        resubscribe_delay: float = 5.0,
    ) -> None:
        self.collection = str(collection)
        self._model = model
        self._store = store
        self._snapshots = snapshots
        self._health = health
        self._notifier = notifier
        self._query = query
        self._resubscribe_delay = resubscribe_delay
        self._task: Optional[asyncio.Task] = None
        self.status = MirrorStatus.IDLE
        self.last_event_time: Optional[datetime] = None
        self.skipped_records = 0
        self.last_error: Optional[str] = None

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def _open(self) -> Any:
        return self._store.subscribe(self.collection, self._query)

    def start(self) -> None:
        """Open the subscription and start consuming it in a background task."""
        if self.is_running:
            return
        try:
            stream = self._open()
        except PermissionDeniedError as e:
            self._on_denied(e)
            return
        self.status = MirrorStatus.RUNNING
        self._task = asyncio.create_task(self._run(stream), name=f"mirror:{self.collection}")

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is not None:
            task.cancel()
            with suppress(asyncio.CancelledError):
                await task
        if self.status == MirrorStatus.RUNNING:
            self.status = MirrorStatus.IDLE

    async def _run(self, stream: Any) -> None:
        while True:
            try:
                async for batch in stream:
                    await self._handle(batch)
                    self.last_event_time = datetime.now()
                logger.info(f"Subscription to '{self.collection}' ended")
                self.status = MirrorStatus.IDLE
                return
            except PermissionDeniedError as e:
                self._on_denied(e)
                return
            except asyncio.CancelledError:
                raise
            except Exception as e:
                self._on_transient(e)
            finally:
                await _close_stream(stream)

            await asyncio.sleep(self._resubscribe_delay)
            try:
                stream = self._open()
            except PermissionDeniedError as e:
                self._on_denied(e)
                return
            self.status = MirrorStatus.RUNNING
            logger.info(f"Resubscribed to '{self.collection}'")

    # =========================================================================
    # Event handling
    # =========================================================================

    async def _handle(self, batch: List[StoredDocument]) -> None:
        self._snapshots.publish(self.collection, self.parse(batch))

    def parse(self, batch: List[StoredDocument]) -> List[Any]:
        """Turn raw documents into models carrying their document handle."""
        if self._model is None:
            return list(batch)
        records = []
        for document in batch:
            data = document.data
            if "id" in self._model.model_fields and data.get("id") in (None, ""):
                # Legacy write path: id only present as the document handle
                data = {**data, "id": document.handle}
            try:
                record = self._model.model_validate(data)
            except ModelValidationError as e:
                self.skipped_records += 1
                logger.warning(
                    f"Skipping malformed document {self.collection}/{document.handle}: "
                    f"{e.error_count()} validation error(s)"
                )
                continue
            records.append(record.model_copy(update={"doc_handle": document.handle}))
        return records

    def _on_denied(self, error: PermissionDeniedError) -> None:
        self.status = MirrorStatus.DENIED
        self.last_error = str(error)
        self._health.permission_error = True
        if not self._health.guidance_logged:
            self._health.guidance_logged = True
            logger.error(PERMISSION_GUIDANCE.format(collection=self.collection))
        else:
            logger.debug(f"Permission denied for '{self.collection}': {error}")

    def _on_transient(self, error: Exception) -> None:
        self.status = MirrorStatus.ERROR
        self.last_error = f"{type(error).__name__}: {error}"
        logger.error(f"Subscription to '{self.collection}' failed: {self.last_error}")
        if self._notifier is not None:
            self._notifier(f"Sync error ({self.collection}). Retrying shortly.", "error")

    def get_status(self) -> Dict[str, Any]:
        return {
            "collection": self.collection,
            "status": self.status.value,
            "last_event": self.last_event_time.isoformat() if self.last_event_time else None,
            "skipped_records": self.skipped_records,
            "last_error": self.last_error,
        }


def upgrade_settings_document(raw: Dict[str, Any]) -> Dict[str, Any]:
    """
    Bring a stored settings document up to the current shape.

    Missing fields are filled from the defaults, and the legacy
    list-of-strings absenceTypes becomes a list of {name, color}.
    """
    data = {**DEFAULT_SETTINGS.to_document(), **(raw or {})}
    absence_types = []
    for entry in data.get("absenceTypes") or []:
        if isinstance(entry, str):
            absence_types.append({"name": entry, "color": DEFAULT_ABSENCE_COLOR})
        else:
            absence_types.append(entry)
    data["absenceTypes"] = absence_types
    return data


class SettingsMirror(CollectionMirror):
    """Mirror of the `config/settings` singleton document."""

    def __init__(
        self,
        store: DocumentStore,
        snapshots: SnapshotStore,
        health: SyncHealth,
        notifier: Optional[Notifier] = None,
        resubscribe_delay: float = 5.0,
    ) -> None:
        super().__init__(
            Collection.CONFIG,
            AppSettings,
            store,
            snapshots,
            health,
            notifier=notifier,
            resubscribe_delay=resubscribe_delay,
        )
        self._provisioned = False

    def _open(self) -> Any:
        return self._store.subscribe_document(self.collection, SETTINGS_HANDLE)

    async def _handle(self, document: Optional[StoredDocument]) -> None:
        if document is None:
            if not self._provisioned:
                self._provisioned = True
                logger.info("Settings document missing, provisioning defaults")
                await self._store.set(self.collection, SETTINGS_HANDLE, DEFAULT_SETTINGS.to_document())
            self._snapshots.publish(self.collection, [DEFAULT_SETTINGS])
            return

        try:
            settings = AppSettings.model_validate(upgrade_settings_document(document.data))
        except ModelValidationError as e:
            self.skipped_records += 1
            logger.warning(f"Settings document is malformed ({e.error_count()} errors), using defaults")
            settings = DEFAULT_SETTINGS
        self._snapshots.publish(self.collection, [settings.model_copy(update={"doc_handle": document.handle})])


class MirrorManager:
    """
    Registry of all collection mirrors.

    Features:
    - Registry keyed by collection name
    - Group start/stop driven by the session lifecycle
    - Status monitoring
    """

    def __init__(self, health: Optional[SyncHealth] = None) -> None:
        self.health = health or SyncHealth()
        self._mirrors: Dict[str, CollectionMirror] = {}

    def register(self, mirror: CollectionMirror) -> None:
        self._mirrors[mirror.collection] = mirror
        logger.info(f"Registered mirror: {mirror.collection}")

    def get(self, collection: str) -> Optional[CollectionMirror]:
        return self._mirrors.get(str(collection))

    @property
    def collections(self) -> List[str]:
        return list(self._mirrors)

    @property
    def running(self) -> bool:
        return any(mirror.is_running for mirror in self._mirrors.values())

    def start_all(self) -> None:
        for mirror in self._mirrors.values():
            mirror.start()
        logger.info(f"Started {len(self._mirrors)} mirrors")

    async def stop_all(self) -> None:
        for mirror in self._mirrors.values():
            await mirror.stop()
        logger.info("All mirrors stopped")

    async def restart_all(self) -> None:
        await self.stop_all()
        self.health.reset()
        self.start_all()

    def list_mirrors(self) -> List[Dict[str, Any]]:
        return [mirror.get_status() for mirror in self._mirrors.values()]
