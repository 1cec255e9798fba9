"""
StyleKorean Adapter Module
==========================

Price adapter for StyleKorean search results.

The search result list is loaded by an AJAX call that often fails in
headless browsers, so this adapter is marked low reliability. It first
looks for product links with a nearby dollar price and falls back to
JSON-LD Product blocks when the list did not load.
"""

from __future__ import annotations

import logging
import re
from typing import Any
from urllib.parse import quote

from bs4 import BeautifulSoup, Tag

from kbeauty_pipeline.core.enums import PipelineSource, Retailer
from kbeauty_pipeline.core.schema import ScrapedPrice
from kbeauty_pipeline.ingestion.adapters.base import SourceAdapter
from kbeauty_pipeline.ingestion.fetcher import FetchError
from kbeauty_pipeline.ingestion.markup import (
    absolute_url,
    first_text,
    jsonld_products,
    node_text,
    parse_html,
    parse_price,
)

logger = logging.getLogger(__name__)

BASE_URL = "https://www.stylekorean.com"
MAX_RESULTS = 10
DOLLAR_PATTERN = re.compile(r"\$\s*(\d+\.?\d*)")
SKIPPED_LINK_FRAGMENTS = ("search_result", "search.tag", "list.php", "faq.php", "cs_")
OUT_OF_STOCK = "https://schema.org/OutOfStock"


def search_url(query: str) -> str:
    return f"{BASE_URL}/shop/search_result.php?keyword={quote(query)}"


def _from_product_links(soup: BeautifulSoup) -> list[dict[str, Any]]:
    items: list[dict[str, Any]] = []
    seen: set[str] = set()

    for link in soup.select('a[href*="/shop/"]'):
        href = str(link.get("href") or "")
        if not href or href in seen or any(f in href for f in SKIPPED_LINK_FRAGMENTS):
            continue
        seen.add(href)

        container = link.find_parent("li") or link.find_parent("div")
        if not isinstance(container, Tag):
            continue

        text = container.get_text(" ")
        price_match = DOLLAR_PATTERN.search(text)
        price = parse_price(price_match.group(1)) if price_match else None
        if price is None:
            continue

        name = first_text(container, [".prd_name", ".name", "h3", "h4"]) or node_text(link)
        if len(name) < 5 or len(name) > 200:
            continue

        image = container.find("img")
        image_src = None
        if isinstance(image, Tag):
            image_src = str(image.get("src") or image.get("data-src") or "") or None

        items.append(
            {
                "product_name": name,
                "brand": first_text(container, [".brand", ".prd_brand"]),
                "price_usd": price,
                "url": absolute_url(href, BASE_URL) or href,
                "image_url": absolute_url(image_src, BASE_URL),
                "in_stock": "sold out" not in text.lower(),
            }
        )

    return items


def _from_jsonld(soup: BeautifulSoup) -> list[dict[str, Any]]:
    items: list[dict[str, Any]] = []

    for product in jsonld_products(soup):
        offers = product.get("offers")
        offer_list = offers if isinstance(offers, list) else [offers]
        brand = product.get("brand")
        image = product.get("image")

        for offer in offer_list:
            if not isinstance(offer, dict):
                continue
            price = parse_price(str(offer.get("price") or ""))
            if price is None:
                continue
            items.append(
                {
                    "product_name": str(product.get("name") or ""),
                    "brand": str(brand.get("name") or "") if isinstance(brand, dict) else str(brand or ""),
                    "price_usd": price,
                    "url": absolute_url(str(product.get("url") or ""), BASE_URL) or BASE_URL,
                    "image_url": image[0] if isinstance(image, list) and image else (image or None),
                    "in_stock": offer.get("availability") != OUT_OF_STOCK,
                }
            )

    return items


def parse_search_page(html: str, fallback_brand: str = "") -> list[ScrapedPrice]:
    """Extract priced products from a rendered StyleKorean search page."""
    soup = parse_html(html)
    items = _from_product_links(soup) or _from_jsonld(soup)

    return [
        ScrapedPrice(
            retailer=Retailer.STYLEKOREAN,
            product_name=item["product_name"],
            brand=item["brand"] or fallback_brand,
            price_usd=item["price_usd"],
            url=item["url"],
            in_stock=item["in_stock"],
            image_url=item["image_url"],
        )
        for item in items[:MAX_RESULTS]
    ]


class StyleKoreanAdapter(SourceAdapter):
    """Price adapter for StyleKorean (low reliability)."""

    ADAPTER_NAME = "stylekorean"
    ADAPTER_VERSION = "1.0.0"
    RETAILER = Retailer.STYLEKOREAN
    SOURCE = PipelineSource.STYLEKOREAN
    RELIABILITY = "low"
    BASE_URL = BASE_URL

    supports_search = True

    async def search_product(self, brand: str, name: str) -> list[ScrapedPrice]:
        query = self.search_query(brand, name)
        try:
            html = await self.fetcher.render(search_url(query), settle_seconds=4.0)
        except FetchError as e:
            logger.error(f"StyleKorean search failed for '{query}': {e}")
            return []

        results = parse_search_page(html, fallback_brand=brand)
        if not results:
            logger.warning(f"No StyleKorean results for '{query}', product list likely did not load")
        return results
