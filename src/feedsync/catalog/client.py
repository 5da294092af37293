"""
Catalog REST client (Shopify Admin API).

Wraps one ``aiohttp.ClientSession`` for the lifetime of an ``async with``
block. Entering the block checks the connection against ``shop.json`` so
bad credentials fail before any product work starts.

Example:
    async with CatalogClient(settings.catalog) as client:
        snapshot = await client.list_all()
        created = await client.create(product)
"""

from __future__ import annotations

import asyncio
import re
import time
from collections import Counter
from collections.abc import Awaitable, Callable, Mapping, Sequence
from typing import Any

import aiohttp

from feedsync.config.loader import CatalogSettings
from feedsync.exceptions import CatalogAPIError, ConfigurationError
from feedsync.models import CanonicalProduct, ExistingRecord
from feedsync.utils.logging import get_logger

logger = get_logger("feedsync.catalog.client")

PAGE_LIMIT = 250
MAX_PAGES = 1000
PAGE_DELAY_S = 0.1

_NEXT_LINK = re.compile(r"<([^>]+)>")


def extract_next_link(link_header: str | None) -> str | None:
    """URL of the ``rel="next"`` entry in a ``Link`` header, if any."""
    if not link_header:
        return None
    for part in link_header.split(","):
        if 'rel="next"' in part:
            match = _NEXT_LINK.search(part)
            return match.group(1) if match else None
    return None


class CatalogClient:
    """
    Async client for the product catalog.

    Args:
        settings: Store URL, access token and API version
        timeout: Total request timeout in seconds (default: 120)
        sleep: Awaitable sleep used between pages (injectable for tests)
    """

    def __init__(
        self,
        settings: CatalogSettings,
        timeout: int = 120,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        if not settings.store_url or not settings.access_token:
            raise ConfigurationError(
                "Missing catalog configuration. Please check SHOPIFY_STORE_URL and SHOPIFY_ACCESS_TOKEN"
            )
        self.settings = settings
        self.base_url = settings.base_url
        self.headers = {
            "X-Shopify-Access-Token": settings.access_token,
            "Content-Type": "application/json",
            "Accept": "application/json",
        }
        self.timeout = aiohttp.ClientTimeout(total=timeout)
        self._sleep = sleep
        self.session: aiohttp.ClientSession | None = None
        self.shop_name: str | None = None

    async def __aenter__(self) -> CatalogClient:
        self.session = aiohttp.ClientSession(timeout=self.timeout, headers=self.headers)
        try:
            await self.test_connection()
        except BaseException:
            await self.close()
            raise
        logger.info(f"Connected to: {self.settings.store_url}")
        return self

    async def __aexit__(self, exc_type: type[BaseException] | None, exc_val: BaseException | None, exc_tb: Any) -> None:
        await self.close()

    async def close(self) -> None:
        if self.session and not self.session.closed:
            await self.session.close()
        self.session = None

    async def _request(
        self,
        method: str,
        url: str,
        json: dict | None = None,
        params: dict | None = None,
    ) -> tuple[dict, Mapping[str, str]]:
        """Perform one request; returns the decoded body and the response headers."""
        if self.session is None or self.session.closed:
            raise RuntimeError("CatalogClient used outside 'async with'")

        request_url = url if url.startswith("http") else f"{self.base_url}/{url.lstrip('/')}"
        start_time = time.monotonic()
        async with self.session.request(method, request_url, json=json, params=params) as response:
            duration = time.monotonic() - start_time
            log_level = logger.debug if response.status <= 299 else logger.warning
            log_level(f"{method} {request_url} {response.status} {duration:.2f}s")

            if response.status > 299:
                text = await response.text()
                raise CatalogAPIError(
                    f"{method} {request_url} failed: {response.status} - {text[:200]}",
                    status=response.status,
                    body=text,
                )
            return await response.json(), response.headers

    async def test_connection(self) -> dict:
        """Fetch ``shop.json``; map auth and not-found statuses to actionable errors."""
        try:
            body, _ = await self._request("GET", "shop.json")
        except CatalogAPIError as e:
            if e.status == 401:
                raise CatalogAPIError(
                    "Invalid catalog access token. Please check SHOPIFY_ACCESS_TOKEN.", status=401, body=e.body
                ) from e
            if e.status == 404:
                raise CatalogAPIError(
                    "Shop not found. Please check SHOPIFY_STORE_URL.", status=404, body=e.body
                ) from e
            raise
        shop = body.get("shop") or {}
        self.shop_name = shop.get("name")
        logger.info(f"Connected to shop: {self.shop_name}")
        return shop

    async def list_all(self) -> list[ExistingRecord]:
        """
        Fetch every product, following ``Link: rel="next"`` pagination.

        Stops after ``MAX_PAGES`` pages even if the server keeps linking.
        """
        products: list[ExistingRecord] = []
        url: str | None = f"products.json?limit={PAGE_LIMIT}"
        page = 0

        logger.info("Starting to fetch all products from the catalog...")
        while url and page < MAX_PAGES:
            page += 1
            body, headers = await self._request("GET", url)
            batch = body.get("products") or []
            products.extend(ExistingRecord.from_payload(p) for p in batch)
            logger.info(f"  Page {page}: {len(batch)} products (Total: {len(products)})")

            url = extract_next_link(headers.get("Link"))
            if url:
                await self._sleep(PAGE_DELAY_S)

        if url:
            logger.warning(f"Stopped paging after {MAX_PAGES} pages; snapshot may be incomplete")
        logger.info(f"Successfully fetched {len(products)} total products from the catalog")
        return products

    async def create(self, product: CanonicalProduct) -> ExistingRecord:
        body, _ = await self._request("POST", "products.json", json={"product": product.to_payload()})
        created = ExistingRecord.from_payload(body["product"])
        logger.debug(f"Created product: {created.title} (ID: {created.id})")
        return created

    async def update(self, product_id: int | str, patch: dict[str, Any]) -> ExistingRecord:
        body, _ = await self._request("PUT", f"products/{product_id}.json", json={"product": patch})
        updated = ExistingRecord.from_payload(body["product"])
        logger.debug(f"Updated product: {updated.title} (ID: {updated.id})")
        return updated


def log_catalog_summary(products: Sequence[ExistingRecord]) -> None:
    """Log product count, the first few products and the status distribution."""
    logger.info(f"Catalog contains {len(products)} products")
    if not products:
        return
    for product in products[:3]:
        logger.info(f"  - {product.title} (ID: {product.id}, status: {product.status})")
    statuses = Counter(p.status or "unknown" for p in products)
    distribution = ", ".join(f"{status}: {count}" for status, count in sorted(statuses.items()))
    logger.info(f"Status distribution: {distribution}")
