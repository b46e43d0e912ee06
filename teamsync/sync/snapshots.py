"""
Versioned snapshot store.

Collection mirrors publish complete, immutable snapshots here; everything
else only reads. Every publish bumps a global version, and view() returns
all collections as of one version so a reader never combines, say, a new
team list with a stale employee list from halfway through an update.
"""

import logging
import threading
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Callable, Dict, Iterator, List, Mapping, Optional, Sequence

logger = logging.getLogger(__name__)

SnapshotListener = Callable[[str, "CollectionSnapshot"], None]


def record_key(record: Any) -> Any:
    """Index key of a record: composite key when it has one, else its logical id."""
    key = getattr(record, "key", None)
    if key is not None:
        return key
    return getattr(record, "id", None)


@dataclass(frozen=True)
class CollectionSnapshot:
    """Immutable content of one collection at one version."""

    collection: str
    version: int = 0
    records: tuple = ()
    index: Mapping[Any, Any] = field(default_factory=lambda: MappingProxyType({}))
    # False until the mirror delivered its first snapshot
    loaded: bool = False

    @classmethod
    def build(cls, collection: str, version: int, records: Sequence[Any]) -> "CollectionSnapshot":
        index = {}
        for record in records:
            key = record_key(record)
            if key is not None:
                index[key] = record
        return cls(
            collection=collection,
            version=version,
            records=tuple(records),
            index=MappingProxyType(index),
            loaded=True,
        )

    def get(self, key: Any) -> Optional[Any]:
        return self.index.get(key)

    def __iter__(self) -> Iterator[Any]:
        return iter(self.records)

    def __len__(self) -> int:
        return len(self.records)


@dataclass(frozen=True)
class SnapshotView:
    """All collections as of a single global version."""

    version: int
    collections: Mapping[str, CollectionSnapshot]

    def get(self, collection: str) -> CollectionSnapshot:
        collection = str(collection)
        return self.collections.get(collection) or CollectionSnapshot(collection=collection)


class SnapshotStore:
    """Shared, versioned holder of the latest snapshot of every mirrored collection."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._version = 0
        self._snapshots: Dict[str, CollectionSnapshot] = {}
        self._listeners: List[SnapshotListener] = []

    @property
    def version(self) -> int:
        return self._version

    def publish(self, collection: str, records: Sequence[Any]) -> CollectionSnapshot:
        """Replace a collection's snapshot. Only the owning mirror calls this."""
        collection = str(collection)
        with self._lock:
            self._version += 1
            snapshot = CollectionSnapshot.build(collection, self._version, records)
            self._snapshots[collection] = snapshot
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(collection, snapshot)
            except Exception as e:
                logger.exception(f"Snapshot listener failed for '{collection}': {e}")
        return snapshot

    def get(self, collection: str) -> CollectionSnapshot:
        collection = str(collection)
        return self._snapshots.get(collection) or CollectionSnapshot(collection=collection)

    def view(self) -> SnapshotView:
        with self._lock:
            return SnapshotView(version=self._version, collections=MappingProxyType(dict(self._snapshots)))

    def clear(self) -> None:
        """Drop every snapshot (sign-out)."""
        with self._lock:
            self._version += 1
            self._snapshots.clear()
        logger.info("Snapshot store cleared")

    def add_listener(self, listener: SnapshotListener) -> Callable[[], None]:
        with self._lock:
            self._listeners.append(listener)

        def remove() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return remove
