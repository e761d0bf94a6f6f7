"""Shared fixtures for buyfresh tests."""

import pytest
import respx

from buyfresh.api import GroceryProduct, ProductLookup, ProductSearchClient
from buyfresh.cache import MemoryKeyValueStore
from buyfresh.config import STOREFRONT_BASE_URL, algolia_queries_url
from buyfresh.session import StoreSessionManager

ALGOLIA_URL = algolia_queries_url()
SESSIONS_URL = f"{STOREFRONT_BASE_URL}/api/v2/user_sessions"
USERS_URL = f"{STOREFRONT_BASE_URL}/api/v2/users"
USER_URL = f"{STOREFRONT_BASE_URL}/api/v2/user"
STORE_PRODUCTS_URL = f"{STOREFRONT_BASE_URL}/api/v2/store_products"


class FakeClock:
    """Settable clock for TTL tests."""

    def __init__(self, now: float = 1_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def make_hit(object_id: str, slug: str, name: str, price: float | None = 2.99, size: str = "16 fl oz"):
    """Build a product index hit."""
    hit = {
        "objectID": object_id,
        "slug": slug,
        "productName": name,
        "packSize": size,
        "images": [f"https://images.example.com/{slug}.jpg"],
        "planogram": {"aisle": "12", "section": "3", "shelf": "2", "aisleSide": "L"},
    }
    if price is not None:
        hit["price_inStore"] = {"amount": price}
    return hit


def algolia_response(hits):
    return {"results": [{"hits": hits, "hitsPerPage": len(hits), "nbHits": len(hits), "page": 0}]}


@pytest.fixture
def mock_httpx():
    """Activate respx mock for HTTP requests."""
    with respx.mock(assert_all_called=False) as respx_mock:
        yield respx_mock


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def memory_store(clock):
    return MemoryKeyValueStore(clock=clock)


@pytest.fixture
def search_client():
    """Create a fresh ProductSearchClient instance."""
    return ProductSearchClient()


@pytest.fixture
def session_manager(memory_store, clock):
    """Session manager backed by an in-memory store and a fake clock."""
    return StoreSessionManager(memory_store, clock=clock)


@pytest.fixture
def sample_hits():
    """A few products as returned by the product index."""
    return [
        make_hit("111", "whole-milk", "Wegmans Whole Milk", 3.49, "64 fl oz"),
        make_hit("222", "organic-whole-milk", "Wegmans Organic Whole Milk", 5.99, "64 fl oz"),
        make_hit("333", "chocolate-milk", "Wegmans Chocolate Milk", 2.79, "16 fl oz"),
    ]


@pytest.fixture
def setup_session_mocks(mock_httpx):
    """Mock the full storefront session protocol."""
    routes = {
        "sessions": mock_httpx.post(SESSIONS_URL).respond(json={"session_token": "test-token-123"}),
        "users": mock_httpx.post(USERS_URL).respond(
            status_code=201,
            headers=[
                ("Set-Cookie", "visitor-id=abc123; Path=/"),
                ("Set-Cookie", "session-prd-weg=cookie-xyz; Path=/; HttpOnly"),
            ],
            json={},
        ),
        "user": mock_httpx.patch(USER_URL).respond(json={"store_id": 115}),
    }
    return routes


def make_product(object_id: str, name: str, price: float = 2.99, size: str = "16 fl oz", slug: str | None = None):
    """Build a GroceryProduct."""
    return GroceryProduct(
        object_id=object_id,
        slug=slug or name.lower().replace(" ", "-"),
        name=name,
        price=price,
        size=size,
    )


class FakeSearchClient:
    """Stands in for ProductSearchClient; answers from canned results."""

    def __init__(self, results=None, errors=None, lookup=None):
        self.results = results or {}
        self.errors = errors or {}
        self.lookup = lookup or ProductLookup()
        self.queries = []
        self.lookup_calls = []
        self.closed = False

    async def search_products(self, query, limit=30):
        self.queries.append(query)
        if query in self.errors:
            raise self.errors[query]
        return self.results.get(query, [])[:limit]

    async def fetch_products_by_slugs(self, slugs, object_ids=None):
        self.lookup_calls.append((slugs, object_ids))
        return self.lookup

    async def aclose(self):
        self.closed = True
