"""Tests for storefront session bootstrap, caching and re-authentication."""

import json

import httpx
import pytest
from conftest import SESSIONS_URL, STORE_PRODUCTS_URL, USER_URL, USERS_URL

from buyfresh.api import StorefrontSearch, StorefrontSearchError
from buyfresh.config import SESSION_CACHE_KEY, SESSION_TTL_SECONDS
from buyfresh.session import (
    NoCookiesError,
    NoSessionCookieError,
    NoSessionTokenError,
    SessionCredential,
    SessionError,
    StoreSessionManager,
)

STORE_ITEMS = {
    "items": [
        {
            "id": 9001,
            "name": "Wegmans Basil",
            "base_price": 2.49,
            "size_string": "0.75 oz",
            "images": {"tile": {"large": "https://images.example.com/basil.jpg"}},
            "aisle": "Produce",
        }
    ]
}


def preload_credential(store, clock, cookie="session-prd-weg=stale"):
    credential = SessionCredential(cookie=cookie, store_id=115, expires_at=clock() + 1000)
    store.set(SESSION_CACHE_KEY, credential.to_json(), 1000)


class TestAuthenticate:
    """Tests for the session bootstrap protocol."""

    @pytest.mark.asyncio
    async def test_full_protocol(self, session_manager, setup_session_mocks, memory_store):
        """All three calls should run and the session cookie should be kept."""
        credential = await session_manager.get_credential()

        assert credential.cookie == "session-prd-weg=cookie-xyz"
        assert credential.store_id == 115
        assert setup_session_mocks["sessions"].call_count == 1
        assert setup_session_mocks["users"].call_count == 1
        assert setup_session_mocks["user"].call_count == 1
        assert memory_store.get(SESSION_CACHE_KEY) is not None

    @pytest.mark.asyncio
    async def test_sends_bearer_token(self, session_manager, setup_session_mocks):
        await session_manager.get_credential()

        request = setup_session_mocks["users"].calls.last.request
        assert request.headers["Authorization"] == "Bearer test-token-123"

    @pytest.mark.asyncio
    async def test_selects_store_with_cookies(self, session_manager, setup_session_mocks):
        await session_manager.get_credential()

        request = setup_session_mocks["user"].calls.last.request
        assert "session-prd-weg=cookie-xyz" in request.headers["Cookie"]
        assert json.loads(request.content) == {"store_id": 115, "has_changed_store": True}

    @pytest.mark.asyncio
    async def test_unknown_store_uses_default(self, session_manager, setup_session_mocks):
        credential = await session_manager.get_credential("Nowhere")

        assert credential.store_id == 115
        request = setup_session_mocks["user"].calls.last.request
        assert json.loads(request.content)["store_id"] == 115

    @pytest.mark.asyncio
    async def test_store_selection_failure_is_not_fatal(self, mock_httpx, session_manager):
        mock_httpx.post(SESSIONS_URL).respond(json={"session_token": "t"})
        mock_httpx.post(USERS_URL).respond(
            status_code=201, headers=[("Set-Cookie", "session-prd-weg=cookie-xyz; Path=/")], json={}
        )
        mock_httpx.patch(USER_URL).respond(status_code=500)

        credential = await session_manager.get_credential()

        assert credential.cookie == "session-prd-weg=cookie-xyz"

    @pytest.mark.asyncio
    async def test_no_session_token(self, mock_httpx, session_manager):
        mock_httpx.post(SESSIONS_URL).respond(json={})

        with pytest.raises(NoSessionTokenError):
            await session_manager.get_credential()

    @pytest.mark.asyncio
    async def test_no_cookies(self, mock_httpx, session_manager):
        mock_httpx.post(SESSIONS_URL).respond(json={"session_token": "t"})
        mock_httpx.post(USERS_URL).respond(status_code=201, json={})

        with pytest.raises(NoCookiesError):
            await session_manager.get_credential()

    @pytest.mark.asyncio
    async def test_no_session_cookie(self, mock_httpx, session_manager):
        mock_httpx.post(SESSIONS_URL).respond(json={"session_token": "t"})
        mock_httpx.post(USERS_URL).respond(
            status_code=201, headers=[("Set-Cookie", "visitor-id=abc; Path=/")], json={}
        )
        mock_httpx.patch(USER_URL).respond(json={})

        with pytest.raises(NoSessionCookieError):
            await session_manager.get_credential()

    @pytest.mark.asyncio
    async def test_network_error(self, mock_httpx, session_manager):
        mock_httpx.post(SESSIONS_URL).mock(side_effect=httpx.ConnectError("Network unreachable"))

        with pytest.raises(SessionError) as exc_info:
            await session_manager.get_credential()

        assert "session setup failed" in str(exc_info.value)


class TestCredentialCache:
    """Tests for credential reuse and expiry."""

    @pytest.mark.asyncio
    async def test_reuses_credential_in_memory(self, session_manager, setup_session_mocks):
        first = await session_manager.get_credential()
        second = await session_manager.get_credential()

        assert first is second
        assert setup_session_mocks["sessions"].call_count == 1

    @pytest.mark.asyncio
    async def test_reuses_durable_credential(self, memory_store, clock, setup_session_mocks):
        """A new manager should pick up a credential stored by an earlier one."""
        await StoreSessionManager(memory_store, clock=clock).get_credential()
        credential = await StoreSessionManager(memory_store, clock=clock).get_credential()

        assert credential.cookie == "session-prd-weg=cookie-xyz"
        assert setup_session_mocks["sessions"].call_count == 1

    @pytest.mark.asyncio
    async def test_reauthenticates_after_ttl(self, session_manager, setup_session_mocks, clock):
        await session_manager.get_credential()
        clock.advance(SESSION_TTL_SECONDS)

        await session_manager.get_credential()

        assert setup_session_mocks["sessions"].call_count == 2

    @pytest.mark.asyncio
    async def test_unreadable_cache_entry_ignored(self, memory_store, session_manager, setup_session_mocks):
        memory_store.set(SESSION_CACHE_KEY, "not json", 1000)

        credential = await session_manager.get_credential()

        assert credential.cookie == "session-prd-weg=cookie-xyz"

    def test_invalidate_clears_both(self, memory_store, session_manager, clock):
        preload_credential(memory_store, clock)

        session_manager.invalidate()

        assert session_manager.credential is None
        assert memory_store.get(SESSION_CACHE_KEY) is None

    def test_credential_json(self):
        credential = SessionCredential(cookie="session-prd-weg=x", store_id=115, expires_at=123.0)
        assert SessionCredential.from_json(credential.to_json()) == credential


class TestStorefrontSearch:
    """Tests for the session-gated storefront search."""

    @pytest.mark.asyncio
    async def test_search_with_cached_session(self, mock_httpx, session_manager, memory_store, clock):
        preload_credential(memory_store, clock, cookie="session-prd-weg=good")
        route = mock_httpx.get(STORE_PRODUCTS_URL).respond(json=STORE_ITEMS)

        products = await StorefrontSearch(session_manager).search("basil")

        assert len(products) == 1
        assert products[0].name == "Wegmans Basil"
        assert products[0].price == 2.49
        assert products[0].planogram.aisle == "Produce"
        request = route.calls.last.request
        assert request.headers["Cookie"] == "session-prd-weg=good"
        assert request.url.params["search_term"] == "basil"

    @pytest.mark.asyncio
    async def test_stale_credential_reauthenticates_once(
        self, mock_httpx, session_manager, memory_store, clock, setup_session_mocks
    ):
        """A rejected credential should trigger exactly one new session and one retry."""
        preload_credential(memory_store, clock)
        route = mock_httpx.get(STORE_PRODUCTS_URL).mock(
            side_effect=[httpx.Response(401), httpx.Response(200, json=STORE_ITEMS)]
        )

        products = await StorefrontSearch(session_manager).search("basil")

        assert len(products) == 1
        assert setup_session_mocks["sessions"].call_count == 1
        assert route.call_count == 2
        assert route.calls.last.request.headers["Cookie"] == "session-prd-weg=cookie-xyz"

    @pytest.mark.asyncio
    async def test_malformed_payload_triggers_retry(
        self, mock_httpx, session_manager, memory_store, clock, setup_session_mocks
    ):
        preload_credential(memory_store, clock)
        mock_httpx.get(STORE_PRODUCTS_URL).mock(
            side_effect=[httpx.Response(200, json={"error": "login"}), httpx.Response(200, json=STORE_ITEMS)]
        )

        products = await StorefrontSearch(session_manager).search("basil")

        assert products[0].object_id == "9001"

    @pytest.mark.asyncio
    async def test_second_failure_raises(
        self, mock_httpx, session_manager, memory_store, clock, setup_session_mocks
    ):
        preload_credential(memory_store, clock)
        route = mock_httpx.get(STORE_PRODUCTS_URL).mock(
            side_effect=[httpx.Response(401), httpx.Response(401)]
        )

        with pytest.raises(StorefrontSearchError):
            await StorefrontSearch(session_manager).search("basil")

        assert route.call_count == 2
        assert setup_session_mocks["sessions"].call_count == 1
