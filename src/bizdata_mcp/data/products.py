"""Product catalog backed by a DummyJSON-style HTTP API."""

import logging
from typing import Any, Optional

import httpx

from bizdata_mcp.config import REQUEST_TIMEOUT_SECONDS
from bizdata_mcp.data.repositories import clamp_pagination, require_id, require_text
from bizdata_mcp.data.results import Failed, Found, LookupResult, NotFound

logger = logging.getLogger(__name__)


class ProductCatalog:
    """List, fetch and search products."""

    def __init__(self, base_url: str, http_client: Optional[httpx.AsyncClient] = None):
        self.base_url = base_url.rstrip("/")
        self._client = http_client
        self._owns_client = http_client is None

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=REQUEST_TIMEOUT_SECONDS)
        return self._client

    async def list(self, skip: Any = None, limit: Any = None) -> LookupResult:
        skip, limit = clamp_pagination(skip, limit)
        return await self._products("/products", {"skip": skip, "limit": limit})

    async def get_by_id(self, product_id: Any) -> LookupResult:
        product_id = require_id(product_id)
        try:
            response = await self.client.get(f"{self.base_url}/products/{product_id}")
        except httpx.HTTPError as exc:
            return self._failed(exc)

        if response.status_code == 404:
            return NotFound(f"No product found with ID {product_id}")
        if response.status_code >= 400:
            return Failed("upstream", f"Product catalog returned HTTP {response.status_code}")
        return Found(response.json())

    async def search(self, text: Any) -> LookupResult:
        return await self._products("/products/search", {"q": require_text(text)})

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def _products(self, path: str, params: dict) -> LookupResult:
        try:
            response = await self.client.get(f"{self.base_url}{path}", params=params)
        except httpx.HTTPError as exc:
            return self._failed(exc)

        if response.status_code >= 400:
            return Failed("upstream", f"Product catalog returned HTTP {response.status_code}")
        return Found(response.json().get("products", []))

    def _failed(self, exc: Exception) -> Failed:
        logger.error("Product catalog request failed: %s", exc)
        return Failed("upstream", f"Error fetching products: {exc}")
