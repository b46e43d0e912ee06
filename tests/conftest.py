"""
Pytest Configuration and Shared Fixtures.

The in-process document store and identity provider stand in for the
remote services, so most tests run the full stack: mirrors, session,
actions and cascades.
"""

import pytest
import pytest_asyncio
from unittest.mock import AsyncMock, MagicMock

from teamsync.auth.memory import InMemoryIdentityProvider
from teamsync.core.config import SyncSettings
from teamsync.store.memory import InMemoryDocumentStore


ADMIN_EMAIL = "admin@example.com"
ADMIN_SECRET = "admin-secret"


# =============================================================================
# Settings
# =============================================================================


@pytest.fixture
def sync_settings(tmp_path):
    """Settings with short delays so guard/retry paths finish quickly."""
    return SyncSettings(
        store_base_url="http://gateway.test",
        http_timeout_seconds=5.0,
        poll_interval_seconds=0.01,
        resubscribe_delay_seconds=0.01,
        signup_guard_seconds=0.01,
        notification_ttl_seconds=0,
        audit_log_limit=50,
        log_dir=str(tmp_path / "logs"),
    )


# =============================================================================
# Backends
# =============================================================================


@pytest.fixture
def memory_store():
    return InMemoryDocumentStore()


@pytest.fixture
def identity_provider():
    return InMemoryIdentityProvider(hash_rounds=4)


@pytest.fixture
def mock_httpx_response():
    """Factory fixture for creating mock httpx responses."""
    def _create_response(status_code=200, json_data=None, text=""):
        mock_response = MagicMock()
        mock_response.status_code = status_code
        mock_response.json.return_value = json_data if json_data is not None else {}
        mock_response.text = text or str(json_data)
        return mock_response

    return _create_response


@pytest.fixture
def mock_async_client():
    """Create a mock async httpx client."""
    mock_client = MagicMock()
    mock_client.request = AsyncMock()
    mock_client.aclose = AsyncMock()
    return mock_client


# =============================================================================
# Context
# =============================================================================


@pytest_asyncio.fixture
async def context(memory_store, identity_provider, sync_settings):
    """Started SyncContext, nobody signed in."""
    from teamsync.app_context import create_context

    ctx = create_context(store=memory_store, provider=identity_provider, settings=sync_settings)
    await ctx.start()
    yield ctx
    await ctx.close()


@pytest_asyncio.fixture
async def admin_context(context):
    """SyncContext signed in as the first (admin) account, fully settled."""
    result = await context.actions.sign_up(ADMIN_EMAIL, ADMIN_SECRET, {"name": "Admin"})
    assert result.ok, result.error
    await context.settle()
    return context


@pytest.fixture
def settle():
    """Await a context until mirrors and background writes are idle."""
    async def _settle(ctx):
        await ctx.settle()
        await ctx.actions.wait_for_cascades()
        await ctx.settle()

    return _settle
