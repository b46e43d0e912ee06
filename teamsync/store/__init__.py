"""Remote Document Store capability and its implementations."""

from teamsync.store.base import DocumentStore, QuerySpec, StoredDocument
from teamsync.store.memory import InMemoryDocumentStore

__all__ = [
    "DocumentStore",
    "QuerySpec",
    "StoredDocument",
    "InMemoryDocumentStore",
]
