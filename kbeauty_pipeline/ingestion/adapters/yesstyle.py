"""
YesStyle Adapter Module
=======================

Price adapter for YesStyle search results.

Search pages are hydrated client-side with generated class names, so
parsing keys off stable URL shapes (/en/<slug>/info.html/pid.<id>) and
the "US$ 12.34" price format instead of CSS classes.
"""

from __future__ import annotations

import logging
import re
from urllib.parse import quote

from bs4 import Tag

from kbeauty_pipeline.core.enums import PipelineSource, Retailer
from kbeauty_pipeline.core.schema import ScrapedPrice
from kbeauty_pipeline.ingestion.adapters.base import SourceAdapter
from kbeauty_pipeline.ingestion.fetcher import FetchError
from kbeauty_pipeline.ingestion.markup import absolute_url, node_text, parse_html

logger = logging.getLogger(__name__)

BASE_URL = "https://www.yesstyle.com"
PRODUCT_LINK_SELECTOR = 'a[href*="/info.html/pid."]'
MAX_RESULTS = 10
# Sub-dollar prices are placeholders and free gifts
MIN_PRICE_USD = 0.99

PID_PATTERN = re.compile(r"pid\.(\d+)")
SLUG_PATTERN = re.compile(r"/en/([^/]+)/info\.html")
USD_PATTERN = re.compile(r"US\$\s*(\d+\.?\d*)")
BRAND_PATTERN = re.compile(r"(?:FLASH SALE|Value Set Available)*\s*([A-Za-z][A-Za-z0-9\s.&']+?)\s*[-–]\s*")
LINK_NOISE_PATTERNS = [
    re.compile(r"US\$\s*[\d.]+"),
    re.compile(r"\d+%\s*OFF", re.IGNORECASE),
    re.compile(r"FLASH SALE", re.IGNORECASE),
    re.compile(r"Value Set Available", re.IGNORECASE),
    re.compile(r"[\d,]+\s*$"),
]


def search_url(query: str) -> str:
    return f"{BASE_URL}/en/list.html?q={quote(query)}&bpt=48"


def name_from_slug(href: str) -> str:
    """Title-cased product name from the URL slug."""
    match = SLUG_PATTERN.search(href)
    if not match:
        return ""
    words = match.group(1).replace("-", " ")
    return re.sub(r"\b\w", lambda m: m.group(0).upper(), words)


def _card_for(link: Tag) -> Tag | None:
    """Walk up from a product link to the card holding its image and price."""
    container = link.parent
    for _ in range(5):
        if not isinstance(container, Tag):
            return None
        if container.find("img") is not None and USD_PATTERN.search(container.get_text(" ")):
            break
        container = container.parent
    return container if isinstance(container, Tag) else None


def parse_search_page(html: str) -> list[ScrapedPrice]:
    """Extract priced products from a rendered YesStyle search page."""
    soup = parse_html(html)
    seen: set[str] = set()
    results: list[ScrapedPrice] = []

    for link in soup.select(PRODUCT_LINK_SELECTOR):
        href = str(link.get("href") or "")
        pid_match = PID_PATTERN.search(href)
        if not pid_match or pid_match.group(1) in seen:
            continue
        seen.add(pid_match.group(1))

        card = _card_for(link)
        if card is None:
            continue
        card_text = card.get_text(" ")

        price_match = USD_PATTERN.search(card_text)
        price = float(price_match.group(1)) if price_match else None

        link_text = node_text(link)
        name = name_from_slug(href)
        if len(name) < 5:
            name = link_text
            for pattern in LINK_NOISE_PATTERNS:
                name = pattern.sub("", name)
            name = name.strip()
        if len(name) < 5 or len(name) > 200:
            continue

        brand_match = BRAND_PATTERN.search(link_text)
        image = card.select_one('img[src*="cloudfront.net"], img[src*="yesstyle"]')
        lowered = card_text.lower()
        sold_out = "sold out" in lowered or "out of stock" in lowered

        if price is None or price <= MIN_PRICE_USD:
            continue

        results.append(
            ScrapedPrice(
                retailer=Retailer.YESSTYLE,
                product_name=name,
                brand=brand_match.group(1).strip() if brand_match else "",
                price_usd=round(price, 2),
                url=absolute_url(href, BASE_URL) or href,
                in_stock=not sold_out,
                image_url=absolute_url(str(image.get("src") or ""), BASE_URL) if image else None,
            )
        )

    return results[:MAX_RESULTS]


class YesStyleAdapter(SourceAdapter):
    """Price adapter that renders YesStyle search results in the browser."""

    ADAPTER_NAME = "yesstyle"
    ADAPTER_VERSION = "1.0.0"
    RETAILER = Retailer.YESSTYLE
    SOURCE = PipelineSource.YESSTYLE
    RELIABILITY = "high"
    BASE_URL = BASE_URL

    supports_search = True

    async def search_product(self, brand: str, name: str) -> list[ScrapedPrice]:
        query = self.search_query(brand, name)
        try:
            html = await self.fetcher.render(
                search_url(query),
                wait_for=PRODUCT_LINK_SELECTOR,
                settle_seconds=2.0,
            )
        except FetchError as e:
            logger.error(f"YesStyle search failed for '{query}': {e}")
            return []
        return parse_search_page(html)
