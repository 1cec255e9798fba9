"""
Olive Young Adapter Module
==========================

Catalog adapter for Olive Young Global (global.oliveyoung.com).

The storefront is a client-rendered single page app, so listing and
detail pages are loaded through the fetcher's headless browser. Category
pages paginate with a "MORE (n/total)" button rather than URLs; the
listing page action clicks it until the counter is exhausted or the
click budget runs out.
"""

from __future__ import annotations

import logging
import re
from typing import Any

from kbeauty_pipeline.core.enums import PipelineSource, Retailer
from kbeauty_pipeline.ingestion.adapters.base import (
    CategoryMapping,
    ScrapedDetail,
    ScrapedListing,
    SourceAdapter,
)
from kbeauty_pipeline.ingestion.browser import PageAction
from kbeauty_pipeline.ingestion.fetcher import FetchError
from kbeauty_pipeline.ingestion.markup import (
    absolute_url,
    first_plausible,
    first_text,
    jsonld_products,
    meta_content,
    node_text,
    page_text,
    parse_html,
    parse_price,
)

logger = logging.getLogger(__name__)

BASE_URL = "https://global.oliveyoung.com"

CATEGORY_MAP = [
    CategoryMapping("1000000009", "Moisturizers", "moisturizer"),
    CategoryMapping("1000000010", "Cleansers", "cleanser"),
    CategoryMapping("1000000261", "Acne & Blemish Treatments", "spot_treatment"),
    CategoryMapping("1000000008", "Skincare", "serum"),
    CategoryMapping("1000000011", "Suncare", "sunscreen"),
    CategoryMapping("1000000003", "Face Masks", "mask"),
]

LISTING_SELECTOR = 'li.prdt-unit input[name="prdtNo"]'
MORE_BUTTON_SELECTOR = "button.btn-page-more"
MORE_COUNTER_PATTERN = re.compile(r"(\d+)\s*/\s*(\d+)")
TITLE_SUFFIX_PATTERN = re.compile(r"\s*\|\s*OLIVE YOUNG.*$", re.IGNORECASE)
INCI_START_PATTERN = re.compile(r"^(?:Water|Aqua|Butylene Glycol|Glycerin)")
RATING_PATTERN = re.compile(r"(\d\.\d)\s*\n\s*(\d[\d,]*)\s*reviews", re.IGNORECASE)


def listing_url(category_id: str) -> str:
    return f"{BASE_URL}/display/category?ctgrNo={category_id}"


def detail_url(source_id: str) -> str:
    return f"{BASE_URL}/product/detail?prdtNo={source_id}"


def parse_more_counter(text: str | None) -> tuple[int, int] | None:
    """Parse the "(n/total)" counter on the MORE button."""
    if not text:
        return None
    match = MORE_COUNTER_PATTERN.search(text)
    if not match:
        return None
    return int(match.group(1)), int(match.group(2))


def expand_listing(max_clicks: int) -> PageAction:
    """Page action that clicks MORE until every page is loaded or max_clicks is hit."""

    async def action(page: Any) -> None:
        for click in range(max_clicks):
            button = await page.query_selector(MORE_BUTTON_SELECTOR)
            if button is None:
                break

            counter = parse_more_counter(await button.text_content())
            if counter is not None and counter[0] >= counter[1]:
                break

            await button.click()
            await page.wait_for_timeout(1500)

            if (click + 1) % 10 == 0:
                loaded = len(await page.query_selector_all(LISTING_SELECTOR))
                logger.info(f"Loaded {loaded} Olive Young products after {click + 1} MORE clicks")

    return action


async def open_item_info(page: Any) -> None:
    """Expand the "Specific Item Info" section holding ingredients and volume."""
    from playwright.async_api import Error as PlaywrightError

    link = page.get_by_text("Specific Item Info", exact=True)
    try:
        if await link.count():
            await link.first.click(timeout=5000)
            await page.wait_for_timeout(1500)
    except PlaywrightError as e:
        logger.debug(f"Could not expand item info: {e}")


def parse_listing_page(html: str) -> list[ScrapedListing]:
    """Extract product cards from a rendered category page."""
    soup = parse_html(html)
    listings: list[ScrapedListing] = []

    for card in soup.select("li.prdt-unit"):
        id_input = card.select_one('input[name="prdtNo"]')
        name_input = card.select_one('input[name="prdtName"]')
        source_id = str(id_input.get("value") or "").strip() if id_input else ""
        name = str(name_input.get("value") or "").strip() if name_input else ""
        if not source_id or not name:
            continue

        rating = None
        rating_text = first_text(card, [".rating-info > span"])
        try:
            value = float(rating_text) if rating_text else None
        except ValueError:
            value = None
        if value is not None and 0 < value <= 5:
            rating = round(value, 1)

        image = card.select_one(".unit-thumb img")
        image_url = None
        if image is not None:
            image_url = absolute_url(str(image.get("src") or image.get("data-src") or ""), BASE_URL)

        listings.append(
            ScrapedListing(
                source_id=source_id,
                source_url=detail_url(source_id),
                name_en=name,
                brand_en=first_text(card, ["dl.brand-info > dt"]),
                price_usd=parse_price(first_text(card, [".price-info strong.point"])),
                image_url=image_url,
                rating_avg=rating,
            )
        )

    return listings


def _table_value(row_text: str, cells: list[str], label: str) -> str:
    if len(cells) >= 2:
        return cells[-1]
    return re.sub(rf"^{label}\s*", "", row_text, flags=re.IGNORECASE).strip()


def parse_detail_page(html: str, source_id: str, category_raw: str = "") -> ScrapedDetail | None:
    """
    Extract full product data from a rendered detail page.

    Returns None when no product name can be found.
    """
    soup = parse_html(html)
    products = jsonld_products(soup)

    def title_from_meta() -> str:
        return TITLE_SUFFIX_PATTERN.sub("", meta_content(soup, "og:title")).strip()

    def title_from_jsonld() -> str | None:
        return str(products[0].get("name") or "").strip() if products else None

    def title_from_document() -> str:
        return TITLE_SUFFIX_PATTERN.sub("", node_text(soup.title)).strip()

    name = first_plausible(title_from_meta, title_from_jsonld, title_from_document)
    if not name:
        return None

    price = None
    price_area = soup.select_one(".price-info")
    if price_area is not None:
        price = parse_price(first_text(price_area, ["strong.point", ".sale-price"]))

    ingredients = None
    volume = None
    for row in soup.find_all("tr"):
        text = node_text(row)
        cells = [node_text(c) for c in row.select("td, th")]
        if text.startswith("Ingredients") or "ingredients " in text.lower():
            ingredients = _table_value(text, cells, "Ingredients") or None
        if "content volume" in text.lower():
            volume = (
                cells[-1]
                if len(cells) >= 2
                else re.sub(r"^Content volume.*?(?=\d)", "", text, flags=re.IGNORECASE).strip()
            ) or None

    if not ingredients:
        for string in soup.find_all(string=True):
            candidate = string.strip()
            if len(candidate) > 50 and "," in candidate and INCI_START_PATTERN.match(candidate):
                ingredients = candidate
                break

    image_url = absolute_url(meta_content(soup, "og:image"), BASE_URL)
    description = meta_content(soup, "og:description")
    brand = first_text(soup, ["dl.brand-info > dt", ".prd-brand", ".brand-name"])

    rating = None
    reviews = None
    match = RATING_PATTERN.search(page_text(soup))
    if match:
        rating = float(match.group(1))
        reviews = int(match.group(2).replace(",", ""))

    return ScrapedDetail(
        source_id=source_id,
        source_url=detail_url(source_id),
        name_en=name,
        brand_en=brand,
        category_raw=category_raw,
        price_usd=price,
        description_raw=description,
        ingredients_raw=ingredients,
        volume_display=volume,
        image_url=image_url,
        rating_avg=rating,
        review_count=reviews,
    )


class OliveYoungAdapter(SourceAdapter):
    """Catalog adapter for Olive Young Global."""

    ADAPTER_NAME = "olive_young"
    ADAPTER_VERSION = "1.0.0"
    RETAILER = Retailer.OLIVE_YOUNG
    SOURCE = PipelineSource.OLIVE_YOUNG
    RELIABILITY = "high"
    BASE_URL = BASE_URL

    supports_catalog = True

    @classmethod
    def categories(cls) -> list[CategoryMapping]:
        return list(CATEGORY_MAP)

    async def list_category(self, category_id: str, page: int = 200) -> list[ScrapedListing]:
        """
        Load every product card in a category.

        `page` is the maximum number of MORE clicks.
        """
        url = listing_url(category_id)
        try:
            html = await self.fetcher.render(
                url,
                wait_for=LISTING_SELECTOR,
                settle_seconds=2.0,
                page_action=expand_listing(page),
            )
        except FetchError as e:
            logger.error(f"Error scraping Olive Young category {category_id}: {e}")
            return []
        return parse_listing_page(html)

    async def fetch_detail(self, source_id: str, category_raw: str = "") -> ScrapedDetail | None:
        try:
            html = await self.fetcher.render(
                detail_url(source_id),
                settle_seconds=4.0,
                page_action=open_item_info,
            )
        except FetchError as e:
            logger.error(f"Failed to scrape Olive Young product {source_id}: {e}")
            return None
        return parse_detail_page(html, source_id, category_raw)
