"""
Identity Resolver.

Maps a logical id to the document handle(s) the remote store holds it
under. Records written by older clients do not necessarily live at
`str(id)`, and some logical ids ended up with more than one "ghost"
document, so resolution tries, in order:

    1. the handle the mirror saw the record under (fast path)
    2. a query on the numeric `id` field
    3. a query on the `id` field as a string
    4. `str(id)` as the handle (legacy convention)

Updates use the first path that yields a handle. Deletes walk every path
and remove every distinct handle found.

Planning cells and bonuses are keyed by "{employeeId}_{date or month}"
instead of a logical id; composite_handles()/delete_composite() give them
the same exhaustive treatment.
"""

import logging
from typing import List, Optional

from teamsync.store.base import DocumentStore
from teamsync.sync.snapshots import SnapshotStore, record_key

logger = logging.getLogger(__name__)


class IdentityResolver:
    """Resolves logical ids to physical document handles."""

    ID_FIELD = "id"

    def __init__(self, store: DocumentStore, snapshots: SnapshotStore) -> None:
        self._store = store
        self._snapshots = snapshots

    def known_handle(self, collection: str, logical_id: int) -> Optional[str]:
        """Handle recorded by the mirror for this id, if any."""
        record = self._snapshots.get(collection).get(logical_id)
        return getattr(record, "doc_handle", None) if record is not None else None

    async def resolve(self, collection: str, logical_id: int) -> str:
        """Write target for an update."""
        handle = self.known_handle(collection, logical_id)
        if handle:
            return handle

        for value in (logical_id, str(logical_id)):
            matches = await self._store.query_equals(collection, self.ID_FIELD, value)
            if matches:
                if len(matches) > 1:
                    logger.warning(
                        f"{len(matches)} documents in '{collection}' carry id {value!r}; "
                        f"using {matches[0].handle}"
                    )
                return matches[0].handle

        logger.debug(f"Falling back to legacy handle for {collection}/{logical_id}")
        return str(logical_id)

    async def candidate_handles(self, collection: str, logical_id: int) -> List[str]:
        """Every distinct handle any resolution path yields, in path order."""
        handles: List[str] = []

        def add(handle: Optional[str]) -> None:
            if handle and handle not in handles:
                handles.append(handle)

        add(self.known_handle(collection, logical_id))
        for value in (logical_id, str(logical_id)):
            for document in await self._store.query_equals(collection, self.ID_FIELD, value):
                add(document.handle)
        add(str(logical_id))
        return handles

    async def delete_all(self, collection: str, logical_id: int) -> bool:
        """
        Delete every document stored for a logical id.

        Returns:
            True if at least one document was removed.
        """
        removed = 0
        for handle in await self.candidate_handles(collection, logical_id):
            if await self._store.delete(collection, handle):
                removed += 1
        if removed > 1:
            logger.info(f"Removed {removed} documents for {collection}/{logical_id} (ghost copies)")
        return removed > 0

    # =========================================================================
    # Composite keys (planning cells, bonuses)
    # =========================================================================

    async def composite_handles(self, collection: str, key: str) -> List[str]:
        """
        Every handle holding a record for a composite key.

        Covers each snapshot record with that key (ghost copies included),
        documents whose `id` field carries the key, and the canonical
        handle `key` itself.
        """
        handles: List[str] = []
        for record in self._snapshots.get(collection):
            handle = getattr(record, "doc_handle", None)
            if handle and record_key(record) == key and handle not in handles:
                handles.append(handle)
        for document in await self._store.query_equals(collection, self.ID_FIELD, key):
            if document.handle not in handles:
                handles.append(document.handle)
        if key not in handles:
            handles.append(key)
        return handles

    async def delete_composite(self, collection: str, key: str) -> bool:
        """Delete every document stored for a composite key; True if any existed."""
        removed = 0
        for handle in await self.composite_handles(collection, key):
            if await self._store.delete(collection, handle):
                removed += 1
        if removed > 1:
            logger.info(f"Removed {removed} documents for {collection}/{key} (ghost copies)")
        return removed > 0
