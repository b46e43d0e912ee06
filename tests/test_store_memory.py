"""
Tests for the in-process document store.
"""

import pytest

from teamsync.core.exceptions import NotFoundError, PermissionDeniedError, TransientSyncError
from teamsync.store.base import DocumentStore, QuerySpec, StoredDocument
from teamsync.store.memory import InMemoryDocumentStore


class TestQuerySpec:
    """Test cases for QuerySpec.apply."""

    def test_typed_equality(self):
        documents = [
            StoredDocument("a", {"id": 5}),
            StoredDocument("b", {"id": "5"}),
            StoredDocument("c", {"id": True}),
        ]
        assert [doc.handle for doc in QuerySpec(field="id", value=5).apply(documents)] == ["a"]
        assert [doc.handle for doc in QuerySpec(field="id", value="5").apply(documents)] == ["b"]

    def test_order_and_limit(self):
        documents = [
            StoredDocument("a", {"ts": "2024-01-01"}),
            StoredDocument("b", {}),
            StoredDocument("c", {"ts": "2024-03-01"}),
        ]
        ordered = QuerySpec(order_by="ts", descending=True).apply(documents)
        assert [doc.handle for doc in ordered] == ["c", "a", "b"]
        assert len(QuerySpec(order_by="ts", limit=1).apply(documents)) == 1


class TestInMemoryDocumentStore:
    """Test cases for InMemoryDocumentStore."""

    def test_satisfies_protocol(self):
        assert isinstance(InMemoryDocumentStore(), DocumentStore)

    @pytest.mark.asyncio
    async def test_set_fetch_update_delete(self):
        store = InMemoryDocumentStore()
        await store.set("employees", "1", {"id": 1, "firstName": "A"})
        await store.update("employees", "1", {"firstName": "B"})

        documents = await store.fetch("employees")
        assert documents == [StoredDocument("1", {"id": 1, "firstName": "B"})]

        assert await store.delete("employees", "1") is True
        assert await store.delete("employees", "1") is False

    @pytest.mark.asyncio
    async def test_get_document(self):
        store = InMemoryDocumentStore()
        await store.set("teams", "10", {"id": 10, "members": [1]})

        assert await store.get_document("teams", "10") == StoredDocument("10", {"id": 10, "members": [1]})
        assert await store.get_document("teams", "11") is None

    @pytest.mark.asyncio
    async def test_update_missing_raises(self):
        store = InMemoryDocumentStore()
        with pytest.raises(NotFoundError):
            await store.update("employees", "404", {"x": 1})

    @pytest.mark.asyncio
    async def test_data_is_copied(self):
        store = InMemoryDocumentStore()
        value = {"members": [1]}
        await store.set("teams", "1", value)
        value["members"].append(2)
        assert store.raw("teams")["1"]["members"] == [1]

    @pytest.mark.asyncio
    async def test_subscription_delivers_initial_and_changes(self):
        store = InMemoryDocumentStore()
        await store.set("teams", "1", {"id": 1})
        sub = store.subscribe("teams")

        first = await sub.__anext__()
        await store.set("teams", "2", {"id": 2})
        second = await sub.__anext__()

        assert [doc.handle for doc in first] == ["1"]
        assert sorted(doc.handle for doc in second) == ["1", "2"]
        await sub.aclose()
        assert store.subscriber_count == 0

    @pytest.mark.asyncio
    async def test_document_subscription(self):
        store = InMemoryDocumentStore()
        sub = store.subscribe_document("config", "settings")
        assert await sub.__anext__() is None

        await store.set("config", "other", {"x": 1})
        await store.set("config", "settings", {"language": "en"})
        document = await sub.__anext__()
        assert document.data == {"language": "en"}
        await sub.aclose()

    @pytest.mark.asyncio
    async def test_denied_collection(self):
        store = InMemoryDocumentStore()
        store.deny("accounts")
        with pytest.raises(PermissionDeniedError):
            store.subscribe("accounts")
        with pytest.raises(PermissionDeniedError):
            await store.fetch("accounts")
        store.deny("accounts", denied=False)
        assert await store.fetch("accounts") == []

    @pytest.mark.asyncio
    async def test_fail_next_is_one_shot(self):
        store = InMemoryDocumentStore()
        store.fail_next("set", TransientSyncError("offline"))
        with pytest.raises(TransientSyncError):
            await store.set("teams", "1", {})
        await store.set("teams", "1", {})
        assert "1" in store.raw("teams")

    @pytest.mark.asyncio
    async def test_broken_subscription_raises_and_closes(self):
        store = InMemoryDocumentStore()
        sub = store.subscribe("teams")
        await sub.__anext__()
        store.break_subscriptions("teams", TransientSyncError("stream reset"))

        with pytest.raises(TransientSyncError):
            await sub.__anext__()
        assert store.subscriber_count == 0
