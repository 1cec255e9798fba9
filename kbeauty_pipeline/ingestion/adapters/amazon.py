"""
Amazon Adapter Module
=====================

Price adapter for Amazon search within Beauty & Personal Care.

The least reliable source: Amazon routinely answers automated traffic
with a CAPTCHA page, which is detected and treated as "no results".
Sponsored cards are skipped because they rarely match the product.
"""

from __future__ import annotations

import logging
from urllib.parse import quote

from kbeauty_pipeline.core.enums import PipelineSource, Retailer
from kbeauty_pipeline.core.schema import ScrapedPrice
from kbeauty_pipeline.ingestion.adapters.base import SourceAdapter
from kbeauty_pipeline.ingestion.fetcher import FetchError
from kbeauty_pipeline.ingestion.markup import absolute_url, first_text, parse_html

logger = logging.getLogger(__name__)

BASE_URL = "https://www.amazon.com"
# Beauty & Personal Care browse node
BEAUTY_NODE = "3760911"
RESULT_SELECTOR = '[data-component-type="s-search-result"]'
MAX_RESULTS = 5


def search_url(query: str) -> str:
    return f"{BASE_URL}/s?k={quote(query)}&rh=n%3A{BEAUTY_NODE}"


def is_captcha_page(html: str) -> bool:
    return "captcha" in html or "Type the characters" in html


def _digits(text: str) -> str:
    return "".join(ch for ch in text if ch.isdigit())


def parse_search_page(html: str, fallback_brand: str = "") -> list[ScrapedPrice]:
    """Extract organic, priced results from an Amazon search page."""
    if is_captcha_page(html):
        logger.warning("Amazon CAPTCHA detected, skipping this search")
        return []

    soup = parse_html(html)
    results: list[ScrapedPrice] = []

    for card in soup.select(RESULT_SELECTOR):
        name = first_text(card, ["h2 a span", '[data-cy="title-recipe"] span'])
        link = card.select_one("h2 a")
        href = str(link.get("href") or "") if link else ""
        if not name or not href:
            continue

        whole = _digits(first_text(card, [".a-price .a-price-whole"]))
        fraction = _digits(first_text(card, [".a-price .a-price-fraction"])) or "00"
        price = float(f"{whole}.{fraction}") if whole else None
        if not price or price <= 0:
            continue

        card_text = card.get_text(" ")
        sponsored = (
            card.select_one('[data-component-type="sp-sponsored-result"]') is not None
            or "Sponsored" in card_text
        )
        if sponsored:
            continue

        image = card.select_one(".s-image")
        brand = first_text(card, ['[class*="puis-light-weight-text"] span', ".a-size-base-plus"])

        results.append(
            ScrapedPrice(
                retailer=Retailer.AMAZON,
                product_name=name,
                brand=brand or fallback_brand,
                price_usd=round(price, 2),
                url=absolute_url(href, BASE_URL) or href,
                in_stock="Currently unavailable" not in card_text,
                image_url=str(image.get("src")) if image and image.get("src") else None,
            )
        )
        if len(results) >= MAX_RESULTS:
            break

    return results


class AmazonAdapter(SourceAdapter):
    """Price adapter that renders Amazon search results in the browser."""

    ADAPTER_NAME = "amazon"
    ADAPTER_VERSION = "1.0.0"
    RETAILER = Retailer.AMAZON
    SOURCE = PipelineSource.AMAZON
    RELIABILITY = "low"
    BASE_URL = BASE_URL

    supports_search = True

    async def search_product(self, brand: str, name: str) -> list[ScrapedPrice]:
        query = self.search_query(brand, name)
        try:
            html = await self.fetcher.render(
                search_url(query),
                wait_for=RESULT_SELECTOR,
                settle_seconds=2.0,
            )
        except FetchError as e:
            logger.error(f"Amazon search failed for '{query}': {e}")
            return []
        return parse_search_page(html, fallback_brand=brand)
