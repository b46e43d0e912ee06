"""
In-process Document Store.

A complete DocumentStore backed by dictionaries. Every write pushes a
fresh full snapshot to the subscribers of the touched collection, which
is the delivery model the collection mirrors are built for.

Used by the test-suite and for local runs without a document gateway.
Includes fault injection (permission denial, one-shot operation
failures, subscription errors) so the mirrors' error paths can be
exercised.
"""

import asyncio
import copy
import logging
from typing import Any, Dict, List, Optional

from teamsync.core.exceptions import NotFoundError, PermissionDeniedError
from teamsync.store.base import QuerySpec, StoredDocument

logger = logging.getLogger(__name__)


class _Subscription:
    """
    Async iterator over the snapshots queued for one subscriber.

    Each snapshot is acknowledged when the consumer asks for the next one,
    so InMemoryDocumentStore.join() returns only after every delivered
    snapshot has been fully handled.
    """

    def __init__(
        self,
        store: "InMemoryDocumentStore",
        collection: str,
        handle: Optional[str] = None,
        query: Optional[QuerySpec] = None,
    ) -> None:
        self._store = store
        self.collection = collection
        self.handle = handle
        self.query = query
        self.queue: asyncio.Queue = asyncio.Queue()
        self.closed = False
        self._awaiting_ack = False

    def __aiter__(self) -> "_Subscription":
        return self

    async def __anext__(self) -> Any:
        self._ack()
        if self.closed:
            raise StopAsyncIteration
        item = await self.queue.get()
        self._awaiting_ack = True
        if isinstance(item, BaseException):
            self.close()
            raise item
        return item

    async def aclose(self) -> None:
        self.close()

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        self._ack()
        while not self.queue.empty():
            self.queue.get_nowait()
            self.queue.task_done()
        self._store._detach(self)

    def _ack(self) -> None:
        if self._awaiting_ack:
            self._awaiting_ack = False
            self.queue.task_done()


class InMemoryDocumentStore:
    """DocumentStore implementation holding every collection in memory."""

    def __init__(self) -> None:
        self._collections: Dict[str, Dict[str, Dict[str, Any]]] = {}
        self._subscriptions: List[_Subscription] = []
        self._denied: set[str] = set()
        self._failures: Dict[str, List[BaseException]] = {}

    # =========================================================================
    # Fault injection
    # =========================================================================

    def deny(self, collection: str, denied: bool = True) -> None:
        """Make every operation on a collection fail with PermissionDeniedError."""
        if denied:
            self._denied.add(str(collection))
        else:
            self._denied.discard(str(collection))

    def fail_next(self, operation: str, error: BaseException) -> None:
        """Make the next call of an operation ("set", "update", ...) raise error."""
        self._failures.setdefault(operation, []).append(error)

    def break_subscriptions(self, collection: str, error: BaseException) -> None:
        """Deliver error to every live subscriber of a collection."""
        for sub in list(self._subscriptions):
            if sub.collection == str(collection):
                sub.queue.put_nowait(error)

    def _check(self, operation: str, collection: str) -> None:
        if collection in self._denied:
            raise PermissionDeniedError(
                f"Missing or insufficient permissions for '{collection}'",
                collection=collection,
            )
        pending = self._failures.get(operation)
        if pending:
            raise pending.pop(0)

    # =========================================================================
    # Subscriptions
    # =========================================================================

    def subscribe(self, collection: str, query: Optional[QuerySpec] = None) -> _Subscription:
        collection = str(collection)
        self._check("subscribe", collection)
        sub = _Subscription(self, collection, query=query)
        self._subscriptions.append(sub)
        sub.queue.put_nowait(self._snapshot(collection, query))
        return sub

    def subscribe_document(self, collection: str, handle: str) -> _Subscription:
        collection = str(collection)
        self._check("subscribe", collection)
        sub = _Subscription(self, collection, handle=handle)
        self._subscriptions.append(sub)
        sub.queue.put_nowait(self._document(collection, handle))
        return sub

    def _detach(self, sub: _Subscription) -> None:
        if sub in self._subscriptions:
            self._subscriptions.remove(sub)

    def _broadcast(self, collection: str, handle: str) -> None:
        for sub in list(self._subscriptions):
            if sub.collection != collection or sub.closed:
                continue
            if sub.handle is None:
                sub.queue.put_nowait(self._snapshot(collection, sub.query))
            elif sub.handle == handle:
                sub.queue.put_nowait(self._document(collection, handle))

    async def join(self) -> None:
        """Wait until every subscriber has handled every delivered snapshot."""
        while True:
            for sub in list(self._subscriptions):
                if not sub.closed:
                    await sub.queue.join()
            if not any(not sub.closed and not sub.queue.empty() for sub in self._subscriptions):
                return

    @property
    def subscriber_count(self) -> int:
        return len(self._subscriptions)

    # =========================================================================
    # Reads
    # =========================================================================

    def _snapshot(self, collection: str, query: Optional[QuerySpec] = None) -> List[StoredDocument]:
        documents = [
            StoredDocument(handle=handle, data=copy.deepcopy(data))
            for handle, data in self._collections.get(collection, {}).items()
        ]
        return query.apply(documents) if query else documents

    def _document(self, collection: str, handle: str) -> Optional[StoredDocument]:
        data = self._collections.get(collection, {}).get(handle)
        if data is None:
            return None
        return StoredDocument(handle=handle, data=copy.deepcopy(data))

    async def fetch(self, collection: str, query: Optional[QuerySpec] = None) -> List[StoredDocument]:
        collection = str(collection)
        self._check("fetch", collection)
        return self._snapshot(collection, query)

    async def query_equals(self, collection: str, field: str, value: Any) -> List[StoredDocument]:
        collection = str(collection)
        self._check("query_equals", collection)
        return self._snapshot(collection, QuerySpec(field=field, value=value))

    async def get_document(self, collection: str, handle: str) -> Optional[StoredDocument]:
        collection = str(collection)
        self._check("get_document", collection)
        return self._document(collection, handle)

    def raw(self, collection: str) -> Dict[str, Dict[str, Any]]:
        """Copy of a collection keyed by handle (inspection helper)."""
        return copy.deepcopy(self._collections.get(str(collection), {}))

    # =========================================================================
    # Writes
    # =========================================================================

    async def set(self, collection: str, handle: str, value: Dict[str, Any]) -> None:
        collection = str(collection)
        self._check("set", collection)
        self._collections.setdefault(collection, {})[handle] = copy.deepcopy(value)
        logger.debug(f"set {collection}/{handle}")
        self._broadcast(collection, handle)

    async def update(self, collection: str, handle: str, partial: Dict[str, Any]) -> None:
        collection = str(collection)
        self._check("update", collection)
        existing = self._collections.get(collection, {}).get(handle)
        if existing is None:
            raise NotFoundError(f"No document {collection}/{handle}", collection=collection)
        existing.update(copy.deepcopy(partial))
        logger.debug(f"update {collection}/{handle}: {sorted(partial)}")
        self._broadcast(collection, handle)

    async def delete(self, collection: str, handle: str) -> bool:
        collection = str(collection)
        self._check("delete", collection)
        removed = self._collections.get(collection, {}).pop(handle, None) is not None
        if removed:
            logger.debug(f"delete {collection}/{handle}")
            self._broadcast(collection, handle)
        return removed
