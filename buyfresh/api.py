"""Product search clients: the hosted product index and the session-gated storefront."""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import unquote

import httpx

from .config import (
    ALGOLIA_AGENT,
    ALGOLIA_API_KEY,
    ALGOLIA_APP_ID,
    ALGOLIA_INDEX,
    DEFAULT_STORE_NAME,
    DEFAULT_STORE_NUMBER,
    DEFAULT_USER_TOKEN,
    HTTP_TIMEOUT,
    PRODUCT_BASE_URL,
    STOREFRONT_API_VERSION,
    STOREFRONT_BASE_URL,
    USER_AGENT,
    algolia_queries_url,
)
from .session import CredentialRejectedError, StoreSessionManager

logger = logging.getLogger(__name__)

UNKNOWN = "Unknown"


class BuyFreshAPIError(Exception):
    """Exception raised for product search errors."""

    pass


class StorefrontSearchError(BuyFreshAPIError):
    """Storefront search failed even after re-authenticating."""

    pass


@dataclass
class ShelfLocation:
    """Where a product sits in the store."""

    aisle: str = UNKNOWN
    section: str = UNKNOWN
    shelf: str = UNKNOWN
    aisle_side: str = UNKNOWN


@dataclass
class GroceryProduct:
    """A purchasable product."""

    object_id: str
    slug: str
    name: str
    price: float = 0.0
    size: str = ""
    images: list[str] = field(default_factory=list)
    planogram: ShelfLocation = field(default_factory=ShelfLocation)
    href: str = ""
    store: str = "wegmans"

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "objectID": self.object_id,
            "slug": self.slug,
            "name": self.name,
            "price": self.price,
            "size": self.size,
            "images": list(self.images),
            "planogram": {
                "aisle": self.planogram.aisle,
                "section": self.planogram.section,
                "shelf": self.planogram.shelf,
                "aisleSide": self.planogram.aisle_side,
            },
            "href": self.href,
            "store": self.store,
        }


@dataclass
class ProductLookup:
    """Result of re-resolving saved products.

    ``found`` is aligned with ``slugs``: ``found[i]`` is the current product
    for ``slugs[i]``, or None if it is no longer listed. A found product's own
    slug may differ from the one requested.
    """

    slugs: list[str] = field(default_factory=list)
    found: list[GroceryProduct | None] = field(default_factory=list)

    @property
    def products(self) -> list[GroceryProduct]:
        """Found products in request order."""
        return [product for product in self.found if product is not None]

    @property
    def missing(self) -> list[str]:
        """Requested slugs without a current product."""
        return [slug for slug, product in zip(self.slugs, self.found) if product is None]


def _price_amount(price: Any) -> float | None:
    if isinstance(price, dict) and price.get("amount") is not None:
        try:
            return float(price["amount"])
        except (TypeError, ValueError):
            return None
    return None


def _text(value: Any) -> str:
    return str(value) if value not in (None, "") else UNKNOWN


class ProductSearchClient:
    """Client for the hosted product search index."""

    def __init__(
        self,
        client: httpx.AsyncClient | None = None,
        *,
        store_number: str = DEFAULT_STORE_NUMBER,
        user_token: str = DEFAULT_USER_TOKEN,
        app_id: str = ALGOLIA_APP_ID,
        api_key: str = ALGOLIA_API_KEY,
    ) -> None:
        self.client = client or httpx.AsyncClient(timeout=HTTP_TIMEOUT)
        self.store_number = store_number
        self.user_token = user_token
        self.app_id = app_id
        self.api_key = api_key

    async def aclose(self) -> None:
        await self.client.aclose()

    async def __aenter__(self) -> "ProductSearchClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    def _params(self) -> dict[str, str]:
        return {
            "x-algolia-agent": ALGOLIA_AGENT,
            "x-algolia-api-key": self.api_key,
            "x-algolia-application-id": self.app_id,
        }

    def _filters(self, extra: str | None = None) -> str:
        filters = (
            f"storeNumber:{self.store_number} AND fulfilmentType:instore "
            "AND excludeFromWeb:false AND isSoldAtStore:true"
        )
        if extra:
            filters = f"{filters} AND ({extra})"
        return filters

    def _request(self, query: str, filters: str, hits_per_page: int) -> dict[str, Any]:
        return {
            "indexName": ALGOLIA_INDEX,
            "analytics": False,
            "attributesToHighlight": [],
            "filters": filters,
            "hitsPerPage": hits_per_page,
            "page": 0,
            "query": query,
            "responseFields": ["hits", "hitsPerPage", "nbHits", "page"],
            "userToken": self.user_token,
        }

    async def _query(self, request: dict[str, Any]) -> list[dict[str, Any]]:
        """Run one query against the index and return its hits."""
        try:
            response = await self.client.post(
                algolia_queries_url(),
                params=self._params(),
                json={"requests": [request]},
                headers={"Accept": "application/json", "Content-Type": "application/json"},
            )
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPError as e:
            raise BuyFreshAPIError(f"Product search failed: {e}") from e
        except ValueError as e:
            raise BuyFreshAPIError(f"Product search returned invalid JSON: {e}") from e

        results = data.get("results") if isinstance(data, dict) else None
        if not results:
            return []
        return results[0].get("hits") or []

    @staticmethod
    def _parse_product(hit: dict[str, Any]) -> GroceryProduct:
        """Convert an index hit into a GroceryProduct."""
        planogram = hit.get("planogram") or {}
        slug = hit.get("slug") or ""

        price = _price_amount(hit.get("price_inStore"))
        if price is None:
            price = _price_amount(hit.get("price_delivery"))

        return GroceryProduct(
            object_id=str(hit.get("objectID") or ""),
            slug=slug,
            name=hit.get("productName") or "",
            price=price or 0.0,
            size=hit.get("packSize") or "",
            images=[image for image in hit.get("images") or [] if isinstance(image, str)],
            planogram=ShelfLocation(
                aisle=_text(planogram.get("aisle")),
                section=_text(planogram.get("section")),
                shelf=_text(planogram.get("shelf")),
                aisle_side=_text(planogram.get("aisleSide")),
            ),
            href=f"{PRODUCT_BASE_URL}/{slug}",
        )

    async def search_products(self, query: str, limit: int = 30) -> list[GroceryProduct]:
        """
        Search the index for products available in the configured store.

        Args:
            query: Search term
            limit: Maximum number of results

        Returns:
            Products in the index's ranking order

        Raises:
            ValueError: If the query is blank
            BuyFreshAPIError: If the search request fails
        """
        if not query.strip():
            raise ValueError("Search query cannot be empty")

        hits = await self._query(self._request(query, self._filters(), limit))
        return [self._parse_product(hit) for hit in hits[:limit]]

    async def fetch_products_by_slugs(
        self,
        slugs: list[str],
        object_ids: list[str | None] | None = None,
    ) -> ProductLookup:
        """
        Re-resolve previously chosen products.

        With an id for every slug, one batched query is made and the results
        are put back in request order. Otherwise, or if that query fails,
        every slug is searched as an exact phrase.

        Args:
            slugs: Product slugs, in list order
            object_ids: Stable index ids matching ``slugs`` one-to-one

        Returns:
            ProductLookup with found products in request order and the slugs not found
        """
        if not slugs:
            return ProductLookup()

        if object_ids and len(object_ids) == len(slugs) and all(object_ids):
            try:
                return await self._lookup_by_object_ids(slugs, [str(oid) for oid in object_ids])
            except BuyFreshAPIError as e:
                logger.warning("Lookup by objectID failed, falling back to slug search: %s", e)

        products = await asyncio.gather(*(self._lookup_by_slug(slug) for slug in slugs))
        return ProductLookup(slugs=list(slugs), found=list(products))

    async def _lookup_by_object_ids(self, slugs: list[str], object_ids: list[str]) -> ProductLookup:
        id_filter = " OR ".join(f'objectID:"{object_id}"' for object_id in object_ids)
        hits = await self._query(self._request("", self._filters(id_filter), 1000))

        by_id = {str(hit.get("objectID")): hit for hit in hits}
        found = []
        for object_id in object_ids:
            hit = by_id.get(object_id)
            found.append(self._parse_product(hit) if hit is not None else None)
        return ProductLookup(slugs=list(slugs), found=found)

    async def _lookup_by_slug(self, slug: str) -> GroceryProduct | None:
        try:
            hits = await self._query(self._request(f'"{slug}"', self._filters(), 50))
        except BuyFreshAPIError as e:
            logger.error("Error searching for slug %s: %s", slug, e)
            return None

        decoded = unquote(slug)
        match = next((hit for hit in hits if hit.get("slug") in (slug, decoded)), None)
        if match is None:
            wanted = {slug.lower(), decoded.lower()}
            match = next((hit for hit in hits if (hit.get("slug") or "").lower() in wanted), None)

        if match is None:
            if hits:
                logger.warning(
                    'Slug "%s" not found in %d results. First result slug: "%s"',
                    slug,
                    len(hits),
                    hits[0].get("slug"),
                )
            return None
        return self._parse_product(match)


class StorefrontSearch:
    """Product search on the storefront itself, which requires a session cookie."""

    def __init__(
        self,
        sessions: StoreSessionManager,
        client: httpx.AsyncClient | None = None,
        *,
        store_name: str = DEFAULT_STORE_NAME,
        base_url: str = STOREFRONT_BASE_URL,
        limit: int = 10,
    ) -> None:
        self.sessions = sessions
        self.client = client or sessions.client
        self.store_name = store_name
        self.base_url = base_url
        self.limit = limit

    async def search(self, query: str) -> list[GroceryProduct]:
        """
        Search the storefront, re-authenticating once if the session is refused.

        Raises:
            StorefrontSearchError: If the retry after re-authentication also fails
            SessionError: If a session cannot be established
        """
        try:
            return await self._search_once(query)
        except CredentialRejectedError as e:
            logger.warning("Storefront rejected the session (%s), re-authenticating", e)
            self.sessions.invalidate()

        try:
            return await self._search_once(query)
        except CredentialRejectedError as e:
            raise StorefrontSearchError(f"Storefront search failed after re-authentication: {e}") from e

    async def _search_once(self, query: str) -> list[GroceryProduct]:
        cookie = await self.sessions.get_cookie(self.store_name)
        params = {
            "fulfillment_type": "pickup",
            "ads_enabled": "false",
            "limit": self.limit,
            "offset": 0,
            "page": 1,
            "sort": "rank",
            "allow_autocorrect": "true",
            "search_provider": "ic",
            "search_term": query,
            "secondary_results": "true",
        }
        try:
            response = await self.client.get(
                f"{self.base_url}/api/v2/store_products",
                params=params,
                headers={
                    "User-Agent": USER_AGENT,
                    "Cookie": cookie,
                    "Api-Version": STOREFRONT_API_VERSION,
                },
            )
            response.raise_for_status()
            items = response.json()["items"]
            return [self._parse_item(item) for item in items]
        except (httpx.HTTPError, ValueError, KeyError, TypeError) as e:
            raise CredentialRejectedError(str(e) or type(e).__name__) from e

    def _parse_item(self, item: dict[str, Any]) -> GroceryProduct:
        images = (item.get("images") or {}).get("tile") or {}
        image = images.get("large")
        product_id = str(item["id"])
        return GroceryProduct(
            object_id=product_id,
            slug=product_id,
            name=item.get("name") or "",
            price=float(item.get("base_price") or 0),
            size=item.get("size_string") or "",
            images=[image] if image else [],
            planogram=ShelfLocation(aisle=_text(item.get("aisle"))),
            href=f"{self.base_url}/product/{product_id}",
        )
