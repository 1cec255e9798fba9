"""
Soko Glam Adapter Module
========================

Price adapter for Soko Glam, a Shopify store.

Uses the predictive search endpoint every Shopify storefront exposes
(/search/suggest.json) instead of scraping HTML, so no browser is needed.
"""

from __future__ import annotations

import logging
from typing import Any
from urllib.parse import urlencode

from kbeauty_pipeline.core.enums import PipelineSource, Retailer
from kbeauty_pipeline.core.schema import ScrapedPrice
from kbeauty_pipeline.ingestion.adapters.base import SourceAdapter
from kbeauty_pipeline.ingestion.fetcher import FetchError
from kbeauty_pipeline.ingestion.markup import absolute_url, parse_price

logger = logging.getLogger(__name__)

BASE_URL = "https://sokoglam.com"
MAX_RESULTS = 5


def search_url(query: str) -> str:
    params = urlencode(
        {"q": query, "resources[type]": "product", "resources[limit]": 10}
    )
    return f"{BASE_URL}/search/suggest.json?{params}"


def parse_search_response(data: Any, fallback_brand: str = "") -> list[ScrapedPrice]:
    """Convert a Shopify predictive search payload into scraped prices."""
    if not isinstance(data, dict):
        return []
    results_block = (data.get("resources") or {}).get("results") or {}
    products = results_block.get("products") or []

    results: list[ScrapedPrice] = []
    for product in products:
        price = parse_price(str(product.get("price") or ""))
        if price is None:
            continue

        results.append(
            ScrapedPrice(
                retailer=Retailer.SOKO_GLAM,
                product_name=str(product.get("title") or ""),
                brand=str(product.get("vendor") or fallback_brand),
                price_usd=price,
                url=f"{BASE_URL}{product.get('url') or ''}",
                in_stock=bool(product.get("available", True)),
                image_url=absolute_url(product.get("image"), BASE_URL),
            )
        )
        if len(results) >= MAX_RESULTS:
            break

    return results


class SokoGlamAdapter(SourceAdapter):
    """Price adapter backed by the Shopify predictive search API."""

    ADAPTER_NAME = "soko_glam"
    ADAPTER_VERSION = "1.0.0"
    RETAILER = Retailer.SOKO_GLAM
    SOURCE = PipelineSource.SOKO_GLAM
    RELIABILITY = "high"
    BASE_URL = BASE_URL

    supports_search = True

    async def search_product(self, brand: str, name: str) -> list[ScrapedPrice]:
        query = self.search_query(brand, name)
        try:
            data = await self.fetcher.fetch_json(search_url(query), timeout=15.0)
        except FetchError as e:
            logger.error(f"Soko Glam search failed for '{query}': {e}")
            return []
        return parse_search_response(data, fallback_brand=brand)
