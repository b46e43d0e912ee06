"""
Remote Document Store protocol.

The core never talks to a concrete backend directly; mirrors, the
identity resolver and the action surface only rely on the operations
declared here.

Error contract for implementations:
    - PermissionDeniedError: the backend refused access.
    - TransientSyncError: network failure, timeout, server error.
    - NotFoundError: `update` targeted a handle with no document.
"""

from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Dict, List, Optional, Protocol, runtime_checkable


@dataclass(frozen=True)
class StoredDocument:
    """A document as read from the store: its physical handle plus its data."""

    handle: str
    data: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class QuerySpec:
    """
    Optional filter/order/limit applied to a collection read or subscription.

    Attributes:
        field: Field for an equality filter (None for no filter).
        value: Value the field must equal. Type matters: 5 and "5" differ.
        order_by: Field to sort by.
        descending: Sort direction.
        limit: Maximum number of documents returned.
    """

    field: Optional[str] = None
    value: Any = None
    order_by: Optional[str] = None
    descending: bool = False
    limit: Optional[int] = None

    def apply(self, documents: List[StoredDocument]) -> List[StoredDocument]:
        """Evaluate the query against an in-memory list of documents."""
        result = list(documents)
        if self.field is not None:
            result = [
                doc for doc in result
                if self.field in doc.data and _typed_equals(doc.data[self.field], self.value)
            ]
        if self.order_by is not None:
            present = [doc for doc in result if doc.data.get(self.order_by) is not None]
            missing = [doc for doc in result if doc.data.get(self.order_by) is None]
            present.sort(key=lambda doc: doc.data[self.order_by], reverse=self.descending)
            result = present + missing
        if self.limit is not None:
            result = result[: self.limit]
        return result


def _typed_equals(stored: Any, expected: Any) -> bool:
    # Document stores compare with type: 5 != "5", and True is not 1.
    if isinstance(stored, bool) or isinstance(expected, bool):
        return type(stored) is type(expected) and stored == expected
    if isinstance(stored, (int, float)) and isinstance(expected, (int, float)):
        return stored == expected
    return type(stored) is type(expected) and stored == expected


@runtime_checkable
class DocumentStore(Protocol):
    """Capabilities the core needs from the remote document store."""

    def subscribe(
        self,
        collection: str,
        query: Optional[QuerySpec] = None,
    ) -> AsyncIterator[List[StoredDocument]]:
        """Live stream of full collection snapshots."""
        ...

    def subscribe_document(
        self,
        collection: str,
        handle: str,
    ) -> AsyncIterator[Optional[StoredDocument]]:
        """Live stream of one document; None while it does not exist."""
        ...

    async def fetch(
        self,
        collection: str,
        query: Optional[QuerySpec] = None,
    ) -> List[StoredDocument]:
        """One-shot collection read."""
        ...

    async def get_document(self, collection: str, handle: str) -> Optional[StoredDocument]:
        """One-shot read of a single document; None when absent."""
        ...

    async def set(self, collection: str, handle: str, value: Dict[str, Any]) -> None:
        """Create or replace the document under handle."""
        ...

    async def update(self, collection: str, handle: str, partial: Dict[str, Any]) -> None:
        """Merge fields into an existing document."""
        ...

    async def delete(self, collection: str, handle: str) -> bool:
        """Delete the document; True if one existed."""
        ...

    async def query_equals(self, collection: str, field: str, value: Any) -> List[StoredDocument]:
        """Documents whose field equals value (typed comparison)."""
        ...
