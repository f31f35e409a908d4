"""Shopify REST Admin API client.

Implements the RemoteChannelClient protocol over httpx.

Error mapping:
- 404 -> NotFoundError (get_product), False (variant_exists),
  StaleReferenceError (set_inventory), None (get_inventory)
- 429 -> retried with exponential backoff (honoring Retry-After), then
  RemoteChannelError
- any other 4xx/5xx or transport failure -> RemoteChannelError
"""

import logging
from typing import Any

import httpx
from tenacity import AsyncRetrying, RetryCallState, retry_if_exception_type, stop_after_attempt, wait_exponential

from catalog_sync.errors import NotFoundError, RemoteChannelError, StaleReferenceError
from catalog_sync.schemas.remote import RemoteInventory
from catalog_sync.settings import get_settings

logger = logging.getLogger("uvicorn.error")


class _RateLimited(Exception):
    def __init__(self, retry_after: float | None):
        super().__init__(f"rate limited (retry after {retry_after})")
        self.retry_after = retry_after


def _parse_retry_after(value: str | None) -> float | None:
    if not value:
        return None
    try:
        return max(float(value), 0.0)
    except ValueError:
        return None


class ShopifyClient:
    """Client for the Shopify Admin REST API."""

    name = "shopify"
    PAGE_SIZE = 250  # Shopify's max page size for products.json

    def __init__(
        self,
        shop_name: str | None = None,
        access_token: str | None = None,
        api_version: str | None = None,
        *,
        timeout: float | None = None,
        max_attempts: int | None = None,
        backoff_base: float = 0.5,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """Initialize client; unset arguments fall back to settings."""
        settings = get_settings()
        self.shop_name = shop_name if shop_name is not None else settings.shopify_shop_name
        self.access_token = access_token if access_token is not None else settings.shopify_access_token
        self.api_version = api_version or settings.shopify_api_version
        self.timeout = timeout or settings.shopify_timeout_seconds
        self.max_attempts = max_attempts or settings.shopify_rate_limit_retries
        self.backoff_base = backoff_base
        self._transport = transport
        self._http_client: httpx.AsyncClient | None = None
        self._location_id: str | None = None

        if not self.is_configured:
            logger.warning(
                "Shopify environment variables not configured. Shopify calls will fail until "
                "SHOPIFY_SHOP_NAME and SHOPIFY_ACCESS_TOKEN are set."
            )

    @property
    def is_configured(self) -> bool:
        return bool(self.shop_name and self.access_token)

    @property
    def base_url(self) -> str:
        shop = self.shop_name.removesuffix(".myshopify.com")
        return f"https://{shop}.myshopify.com/admin/api/{self.api_version}"

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if not self.is_configured:
            raise RemoteChannelError(
                "Shopify client not configured. Check SHOPIFY_SHOP_NAME and SHOPIFY_ACCESS_TOKEN."
            )
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(
                base_url=self.base_url,
                headers={
                    "X-Shopify-Access-Token": self.access_token,
                    "Content-Type": "application/json",
                    "Accept": "application/json",
                },
                timeout=self.timeout,
                transport=self._transport,
            )
        return self._http_client

    async def close(self) -> None:
        """Close HTTP client."""
        if self._http_client:
            await self._http_client.aclose()
            self._http_client = None

    # ============================================================
    # Transport
    # ============================================================

    def _wait(self, retry_state: RetryCallState) -> float:
        backoff = wait_exponential(multiplier=self.backoff_base, max=30)(retry_state)
        exc = retry_state.outcome.exception() if retry_state.outcome else None
        if isinstance(exc, _RateLimited) and exc.retry_after is not None:
            return max(exc.retry_after, backoff)
        return backoff

    async def _request(
        self,
        method: str,
        url: str,
        *,
        params: dict[str, Any] | None = None,
        json: dict[str, Any] | None = None,
    ) -> httpx.Response:
        """Send a request, retrying 429s. Does not raise on other statuses."""
        client = await self._get_client()
        retrying = AsyncRetrying(
            retry=retry_if_exception_type(_RateLimited),
            wait=self._wait,
            stop=stop_after_attempt(self.max_attempts),
            reraise=True,
        )
        try:
            async for attempt in retrying:
                with attempt:
                    response = await client.request(method, url, params=params, json=json)
                    if response.status_code == 429:
                        retry_after = _parse_retry_after(response.headers.get("Retry-After"))
                        logger.warning(f"Shopify rate limit hit on {method} {url}, retry after {retry_after}s")
                        raise _RateLimited(retry_after)
        except _RateLimited as e:
            raise RemoteChannelError(
                f"Shopify rate limit exceeded after {self.max_attempts} attempts: {method} {url}",
                status_code=429,
            ) from e
        except httpx.HTTPError as e:
            raise RemoteChannelError(f"Shopify request failed: {method} {url}: {e}") from e
        return response

    @staticmethod
    def _raise_for_status(response: httpx.Response, what: str) -> None:
        if response.status_code == 404:
            raise NotFoundError(f"{what} not found in Shopify")
        if response.status_code >= 400:
            raise RemoteChannelError(
                f"Shopify API error for {what}: {response.status_code} - {response.text[:200]}",
                status_code=response.status_code,
            )

    @staticmethod
    def _json_field(response: httpx.Response, field: str) -> Any:
        data = response.json()
        if not isinstance(data, dict) or field not in data:
            raise RemoteChannelError(f"Unexpected Shopify response: missing '{field}'")
        return data[field]

    # ============================================================
    # Products
    # ============================================================

    async def create_product(self, payload: dict[str, Any]) -> dict[str, Any]:
        response = await self._request("POST", "/products.json", json={"product": payload})
        self._raise_for_status(response, "product create")
        return self._json_field(response, "product")

    async def update_product(self, remote_id: str, payload: dict[str, Any]) -> dict[str, Any]:
        response = await self._request("PUT", f"/products/{remote_id}.json", json={"product": payload})
        self._raise_for_status(response, f"product {remote_id}")
        return self._json_field(response, "product")

    async def get_product(self, remote_id: str) -> dict[str, Any]:
        response = await self._request("GET", f"/products/{remote_id}.json")
        self._raise_for_status(response, f"product {remote_id}")
        return self._json_field(response, "product")

    async def list_products(self, limit: int) -> list[dict[str, Any]]:
        """List up to `limit` products, following cursor pagination."""
        products: list[dict[str, Any]] = []
        url: str | None = "/products.json"
        params: dict[str, Any] | None = {"limit": min(max(limit, 1), self.PAGE_SIZE)}

        while url and len(products) < limit:
            response = await self._request("GET", url, params=params)
            self._raise_for_status(response, "product listing")
            products.extend(self._json_field(response, "products"))
            url = response.links.get("next", {}).get("url")
            # The next-page URL carries its own page_info and limit.
            params = None

        return products[:limit]

    # ============================================================
    # Inventory
    # ============================================================

    async def get_inventory(self, remote_product_id: str, remote_variant_id: str) -> RemoteInventory | None:
        """Current inventory for one variant, or None if it cannot be found."""
        try:
            product = await self.get_product(remote_product_id)
        except NotFoundError:
            logger.info(f"Product {remote_product_id} not found in Shopify")
            return None

        variant = next(
            (v for v in product.get("variants") or [] if str(v.get("id")) == str(remote_variant_id)),
            None,
        )
        if variant is None:
            logger.info(f"Variant {remote_variant_id} not found in product {remote_product_id}")
            return None

        inventory_item_id = variant.get("inventory_item_id")
        if inventory_item_id:
            response = await self._request(
                "GET",
                "/inventory_levels.json",
                params={"inventory_item_ids": str(inventory_item_id)},
            )
            self._raise_for_status(response, f"inventory levels for variant {remote_variant_id}")
            levels = self._json_field(response, "inventory_levels")
            if levels:
                available = int(levels[0].get("available") or 0)
                # Shopify does not expose reserved stock on inventory levels.
                return RemoteInventory(quantity=available, available=available, reserved=0)

        if variant.get("inventory_quantity") is not None:
            qty = int(variant["inventory_quantity"])
            return RemoteInventory(quantity=qty, available=qty, reserved=0)

        logger.info(f"No inventory data found for variant {remote_variant_id}")
        return None

    async def set_inventory(self, remote_variant_id: str, available: int) -> dict[str, Any]:
        """Set (not adjust) the available quantity at the primary location."""
        response = await self._request("GET", f"/variants/{remote_variant_id}.json")
        if response.status_code == 404:
            raise StaleReferenceError(
                f"Variant {remote_variant_id} not found in Shopify. It may have been deleted.",
                remote_id=str(remote_variant_id),
            )
        self._raise_for_status(response, f"variant {remote_variant_id}")
        variant = self._json_field(response, "variant")

        location_id = await self.primary_location_id()
        response = await self._request(
            "POST",
            "/inventory_levels/set.json",
            json={
                "location_id": int(location_id),
                "inventory_item_id": int(variant["inventory_item_id"]),
                "available": int(available),
            },
        )
        self._raise_for_status(response, f"inventory level for variant {remote_variant_id}")
        logger.info(f"Shopify inventory updated for variant {remote_variant_id}: {available} available")
        return self._json_field(response, "inventory_level")

    async def variant_exists(self, remote_variant_id: str) -> bool:
        response = await self._request("GET", f"/variants/{remote_variant_id}.json")
        if response.status_code == 404:
            return False
        self._raise_for_status(response, f"variant {remote_variant_id}")
        return True

    async def primary_location_id(self) -> str:
        if self._location_id is None:
            response = await self._request("GET", "/locations.json")
            self._raise_for_status(response, "locations")
            locations = self._json_field(response, "locations")
            if not locations:
                raise RemoteChannelError("Shopify store has no locations")
            self._location_id = str(locations[0]["id"])
        return self._location_id
