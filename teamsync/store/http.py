"""
HTTP Document Store.

DocumentStore implementation talking to a REST document gateway.

Design Principles:
    HttpDocumentStore requires httpx.AsyncClient via EXPLICIT dependency
    injection. The HTTP client lifecycle is managed by the caller.

    Usage:
        async with httpx.AsyncClient(timeout=settings.http_timeout_seconds) as client:
            store = HttpDocumentStore(client, base_url=..., api_key=...)
            docs = await store.fetch("employees")

Subscriptions are implemented by polling: the collection is re-read every
`poll_interval` seconds and a snapshot is emitted whenever it differs from
the previous one (the first read is always emitted).
"""

import asyncio
import logging
from typing import Any, AsyncIterator, Dict, List, Optional
from urllib.parse import quote

import httpx

from teamsync.core.exceptions import NotFoundError, PermissionDeniedError, TransientSyncError
from teamsync.store.base import QuerySpec, StoredDocument

logger = logging.getLogger(__name__)


class HttpDocumentStore:
    """
    REST document gateway client.

    Args:
        http_client: Shared httpx.AsyncClient (required).
        base_url: Gateway base URL.
        api_key: Bearer token.
        poll_interval: Seconds between subscription polls.
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        base_url: str,
        api_key: str = "",
        poll_interval: float = 2.0,
    ) -> None:
        if http_client is None:
            raise ValueError("http_client is required")

        self._client = http_client
        self._base_url = base_url.rstrip("/")
        self._api_key = api_key
        self._poll_interval = poll_interval

    def _get_headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"
        return headers

    def _collection_url(self, collection: str) -> str:
        return f"{self._base_url}/collections/{collection}/documents"

    def _document_url(self, collection: str, handle: str) -> str:
        # Legacy handles may contain "/", "?" or "#"
        return f"{self._collection_url(collection)}/{quote(handle, safe='')}"

    @staticmethod
    def _query_params(query: Optional[QuerySpec]) -> Dict[str, Any]:
        if query is None:
            return {}
        params: Dict[str, Any] = {}
        if query.field is not None:
            params["where_field"] = query.field
            params["where_value"] = str(query.value)
            # The gateway compares typed values; tell it which type we mean.
            params["where_type"] = "int" if isinstance(query.value, int) and not isinstance(query.value, bool) else "str"
        if query.order_by is not None:
            params["order_by"] = query.order_by
            params["descending"] = "true" if query.descending else "false"
        if query.limit is not None:
            params["limit"] = query.limit
        return params

    async def _request(
        self,
        method: str,
        url: str,
        collection: str,
        *,
        params: Optional[Dict[str, Any]] = None,
        json: Optional[Dict[str, Any]] = None,
    ) -> httpx.Response:
        """Send a request and translate transport/status failures."""
        try:
            response = await self._client.request(
                method,
                url,
                params=params,
                json=json,
                headers=self._get_headers(),
            )
        except httpx.TimeoutException as e:
            logger.warning(f"Gateway timeout on {method} {url}: {e}")
            raise TransientSyncError(f"Timeout talking to document gateway: {e}") from e
        except httpx.HTTPError as e:
            logger.warning(f"Gateway network error on {method} {url}: {e}")
            raise TransientSyncError(f"Network failure talking to document gateway: {e}") from e

        if response.status_code in (401, 403):
            raise PermissionDeniedError(
                f"Gateway refused {method} on '{collection}' (HTTP {response.status_code})",
                collection=collection,
            )
        if response.status_code >= 500:
            logger.error(f"Gateway error {response.status_code} on {method} {url}: {response.text}")
            raise TransientSyncError(f"Document gateway error: HTTP {response.status_code}")
        return response

    @staticmethod
    def _parse_documents(payload: Any) -> List[StoredDocument]:
        documents = []
        for item in (payload or {}).get("documents", []):
            handle = item.get("handle")
            if handle is None:
                continue
            documents.append(StoredDocument(handle=str(handle), data=item.get("data") or {}))
        return documents

    # =========================================================================
    # Reads
    # =========================================================================

    async def fetch(self, collection: str, query: Optional[QuerySpec] = None) -> List[StoredDocument]:
        collection = str(collection)
        response = await self._request(
            "GET", self._collection_url(collection), collection, params=self._query_params(query)
        )
        if response.status_code == 404:
            return []
        self._raise_for_status(response)
        return self._parse_documents(response.json())

    async def query_equals(self, collection: str, field: str, value: Any) -> List[StoredDocument]:
        return await self.fetch(collection, QuerySpec(field=field, value=value))

    async def get_document(self, collection: str, handle: str) -> Optional[StoredDocument]:
        collection = str(collection)
        response = await self._request("GET", self._document_url(collection, handle), collection)
        if response.status_code == 404:
            return None
        self._raise_for_status(response)
        payload = response.json() or {}
        return StoredDocument(handle=str(payload.get("handle", handle)), data=payload.get("data") or {})

    # =========================================================================
    # Subscriptions (polling)
    # =========================================================================

    async def subscribe(
        self,
        collection: str,
        query: Optional[QuerySpec] = None,
    ) -> AsyncIterator[List[StoredDocument]]:
        previous: Optional[List[StoredDocument]] = None
        while True:
            current = await self.fetch(collection, query)
            if current != previous:
                previous = current
                yield current
            await asyncio.sleep(self._poll_interval)

    async def subscribe_document(
        self,
        collection: str,
        handle: str,
    ) -> AsyncIterator[Optional[StoredDocument]]:
        first = True
        previous: Optional[StoredDocument] = None
        while True:
            current = await self.get_document(collection, handle)
            if first or current != previous:
                first = False
                previous = current
                yield current
            await asyncio.sleep(self._poll_interval)

    # =========================================================================
    # Writes
    # =========================================================================

    async def set(self, collection: str, handle: str, value: Dict[str, Any]) -> None:
        collection = str(collection)
        response = await self._request("PUT", self._document_url(collection, handle), collection, json=value)
        self._raise_for_status(response)

    async def update(self, collection: str, handle: str, partial: Dict[str, Any]) -> None:
        collection = str(collection)
        response = await self._request("PATCH", self._document_url(collection, handle), collection, json=partial)
        if response.status_code == 404:
            raise NotFoundError(f"No document {collection}/{handle}", collection=collection)
        self._raise_for_status(response)

    async def delete(self, collection: str, handle: str) -> bool:
        collection = str(collection)
        response = await self._request("DELETE", self._document_url(collection, handle), collection)
        if response.status_code == 404:
            return False
        self._raise_for_status(response)
        return True

    @staticmethod
    def _raise_for_status(response: httpx.Response) -> None:
        try:
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            logger.error(f"Gateway API error: {e.response.status_code} - {e.response.text}")
            raise TransientSyncError(f"Document gateway rejected request: HTTP {e.response.status_code}") from e
