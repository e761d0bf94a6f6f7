"""Storefront session bootstrap and credential caching.

The storefront's product search only answers requests that carry a session
cookie bound to a physical store. Getting one takes four sequential calls:

1. register a device fingerprint and receive a bearer session token,
2. provision an anonymous user with that token and collect its cookies,
3. bind the session to a store,
4. keep the one cookie the search endpoint checks.

The resulting credential is kept in memory and in a durable key-value store
with a TTL slightly below the provider's own session lifetime.
"""

import json
import logging
import time
from dataclasses import asdict, dataclass

import httpx

from .cache import Clock, KeyValueStore
from .config import (
    DEFAULT_STORE_NAME,
    HTTP_TIMEOUT,
    SESSION_CACHE_KEY,
    SESSION_COOKIE_NAME,
    SESSION_TTL_SECONDS,
    STOREFRONT_BASE_URL,
    USER_AGENT,
    get_store_id,
)

logger = logging.getLogger(__name__)


class SessionError(Exception):
    """Exception raised when a storefront session cannot be established."""

    pass


class NoSessionTokenError(SessionError):
    """The session bootstrap endpoint returned no session token."""

    pass


class NoCookiesError(SessionError):
    """The user provisioning endpoint returned no cookies."""

    pass


class NoSessionCookieError(SessionError):
    """The returned cookies did not include the search session cookie."""

    pass


class CredentialRejectedError(SessionError):
    """The storefront refused a request made with the current credential."""

    pass


# Browser fingerprint the web shop sends when it opens a session
DEVICE_FINGERPRINT = {
    "binary": "web-ecom",
    "binary_version": "2.25.122",
    "is_retina": False,
    "os_version": "Win32",
    "pixel_density": "2.0",
    "push_token": "",
    "screen_height": 1080,
    "screen_width": 1920,
}


@dataclass
class SessionCredential:
    """A store-scoped session cookie and when we stop trusting it."""

    cookie: str
    store_id: int
    expires_at: float

    def is_expired(self, now: float) -> bool:
        return now >= self.expires_at

    def to_json(self) -> str:
        return json.dumps(asdict(self))

    @classmethod
    def from_json(cls, raw: str) -> "SessionCredential":
        data = json.loads(raw)
        return cls(
            cookie=data["cookie"],
            store_id=int(data["store_id"]),
            expires_at=float(data["expires_at"]),
        )


def _cookie_pairs(set_cookie_headers: list[str]) -> list[str]:
    """Reduce ``Set-Cookie`` headers to their ``name=value`` parts."""
    return [header.split(";", 1)[0].strip() for header in set_cookie_headers if header.strip()]


class StoreSessionManager:
    """Obtains and caches the storefront session credential."""

    def __init__(
        self,
        store: KeyValueStore,
        client: httpx.AsyncClient | None = None,
        *,
        base_url: str = STOREFRONT_BASE_URL,
        ttl: int = SESSION_TTL_SECONDS,
        clock: Clock = time.time,
    ) -> None:
        self.store = store
        self.client = client or httpx.AsyncClient(timeout=HTTP_TIMEOUT)
        self.base_url = base_url
        self.ttl = ttl
        self._clock = clock
        self._credential: SessionCredential | None = None

    @property
    def credential(self) -> SessionCredential | None:
        """The in-memory credential, if any."""
        return self._credential

    async def get_credential(self, store_name: str | None = DEFAULT_STORE_NAME) -> SessionCredential:
        """
        Return a usable credential, authenticating only when nothing is cached.

        Args:
            store_name: Store to bind the session to; unknown names use the default store

        Raises:
            SessionError: If a new session cannot be established
        """
        store_id = get_store_id(store_name)
        now = self._clock()

        if (
            self._credential
            and self._credential.store_id == store_id
            and not self._credential.is_expired(now)
        ):
            return self._credential

        cached = self._load_cached(store_id, now)
        if cached:
            logger.debug("Using cached storefront session for store %s", store_id)
            self._credential = cached
            return cached

        return await self.authenticate(store_id)

    async def get_cookie(self, store_name: str | None = DEFAULT_STORE_NAME) -> str:
        """Shortcut for the cookie string of :meth:`get_credential`."""
        credential = await self.get_credential(store_name)
        return credential.cookie

    def invalidate(self) -> None:
        """Forget the credential in memory and in the durable store."""
        self._credential = None
        self.store.delete(SESSION_CACHE_KEY)

    def _load_cached(self, store_id: int, now: float) -> SessionCredential | None:
        raw = self.store.get(SESSION_CACHE_KEY)
        if not raw:
            return None
        try:
            credential = SessionCredential.from_json(raw)
        except (ValueError, KeyError, TypeError) as e:
            logger.warning("Ignoring unreadable cached session: %s", e)
            return None
        if credential.store_id != store_id or credential.is_expired(now):
            return None
        return credential

    async def authenticate(self, store_id: int) -> SessionCredential:
        """
        Run the full session protocol and cache the result.

        Raises:
            NoSessionTokenError: Step 1 returned no token
            NoCookiesError: Step 2 returned no cookies
            NoSessionCookieError: The session cookie was not among them
            SessionError: On network failures
        """
        try:
            token = await self._create_session_token()
            cookies = await self._provision_user(token)
            await self._select_store(cookies, store_id)
        except httpx.HTTPError as e:
            raise SessionError(f"Storefront session setup failed: {e}") from e

        prefix = f"{SESSION_COOKIE_NAME}="
        session_cookie = next((pair for pair in cookies if pair.startswith(prefix)), None)
        if not session_cookie:
            raise NoSessionCookieError("Failed to get session cookie")

        credential = SessionCredential(
            cookie=session_cookie,
            store_id=store_id,
            expires_at=self._clock() + self.ttl,
        )
        self._credential = credential
        self.store.set(SESSION_CACHE_KEY, credential.to_json(), self.ttl)
        logger.info("Established storefront session for store %s", store_id)
        return credential

    async def _create_session_token(self) -> str:
        response = await self.client.post(
            f"{self.base_url}/api/v2/user_sessions",
            json=DEVICE_FINGERPRINT,
            headers={"Content-Type": "application/json", "User-Agent": USER_AGENT},
        )
        response.raise_for_status()
        try:
            data = response.json()
        except ValueError as e:
            raise NoSessionTokenError(f"Failed to get session token: {e}") from e

        token = data.get("session_token") if isinstance(data, dict) else None
        if not token:
            raise NoSessionTokenError("Failed to get session token")
        return token

    async def _provision_user(self, token: str) -> list[str]:
        response = await self.client.post(
            f"{self.base_url}/api/v2/users",
            headers={"Authorization": f"Bearer {token}", "User-Agent": USER_AGENT},
        )
        response.raise_for_status()
        cookies = _cookie_pairs(response.headers.get_list("set-cookie"))
        if not cookies:
            raise NoCookiesError("Failed to get cookies")
        return cookies

    async def _select_store(self, cookies: list[str], store_id: int) -> None:
        response = await self.client.patch(
            f"{self.base_url}/api/v2/user",
            json={"store_id": store_id, "has_changed_store": True},
            headers={
                "Content-Type": "application/json",
                "User-Agent": USER_AGENT,
                "Cookie": "; ".join(cookies),
            },
        )
        if response.is_error:
            logger.warning("Store selection returned HTTP %s", response.status_code)
