"""Multi-retailer price refresh."""

import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import Any
from uuid import UUID

from sqlalchemy.orm import Session

from kbeauty_pipeline.core.enums import Retailer
from kbeauty_pipeline.core.schema import PriceMatch, Product, ScrapedPrice
from kbeauty_pipeline.db.repositories import PriceRepository, ProductRepository
from kbeauty_pipeline.ingestion.adapters import SourceAdapter, get_adapter
from kbeauty_pipeline.ingestion.fetcher import ResilientFetcher
from kbeauty_pipeline.ingestion.registry import SourceRegistry, get_default_registry
from kbeauty_pipeline.services.prices.matcher import PriceMatcher

logger = logging.getLogger(__name__)

PRICE_RETAILERS = [Retailer.YESSTYLE, Retailer.SOKO_GLAM, Retailer.STYLEKOREAN, Retailer.AMAZON]
CANDIDATE_MIN_CONFIDENCE = 0.4
FALLBACK_MIN_CONFIDENCE = 0.6
PROGRESS_EVERY = 25


@dataclass
class PriceScrapeOptions:
    """What to refresh in one price run."""

    retailer: Retailer = Retailer.YESSTYLE
    batch_size: int = 100
    product_ids: list[UUID | str] = field(default_factory=list)
    brands: list[str] = field(default_factory=list)
    stale_hours: int = 24
    min_confidence: float = CANDIDATE_MIN_CONFIDENCE


@dataclass
class PricePipelineStats:
    """Counters for one retailer run."""

    retailer: str
    products_searched: int = 0
    prices_found: int = 0
    prices_matched: int = 0
    prices_updated: int = 0
    prices_new: int = 0
    errors: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "retailer": self.retailer,
            "products_searched": self.products_searched,
            "prices_found": self.prices_found,
            "prices_matched": self.prices_matched,
            "prices_updated": self.prices_updated,
            "prices_new": self.prices_new,
            "errors": self.errors[-20:],
        }


class PricePipeline:
    """
    Searches retailers for catalog products and records the matched prices.

    Products are searched one at a time per retailer to stay within each
    retailer's rate limits.
    """

    def __init__(
        self,
        session: Session,
        fetcher: ResilientFetcher,
        registry: SourceRegistry | None = None,
        adapters: dict[Retailer, SourceAdapter] | None = None,
    ):
        self.session = session
        self.fetcher = fetcher
        self.registry = registry or get_default_registry()
        self._adapters: dict[Retailer, SourceAdapter] = dict(adapters or {})

    def get_adapter(self, retailer: Retailer) -> SourceAdapter:
        """Adapter for a retailer, created on first use."""
        if retailer in self._adapters:
            return self._adapters[retailer]

        source = self.registry.get_source(retailer.value)
        adapter_type = source.adapter if source else retailer.value
        config = source.adapter_config() if source else None
        adapter = get_adapter(adapter_type, self.fetcher, config)
        if adapter is None or not adapter.supports_search:
            raise ValueError(f"Unsupported retailer for price scraping: {retailer.value}")

        self._adapters[retailer] = adapter
        return adapter

    def select_products(
        self, options: PriceScrapeOptions, retailer_id: UUID | str
    ) -> list[Product]:
        """
        Products to search: explicit ids, else a brand list, else priced
        products without a fresh price from this retailer, best rated first.
        """
        products = ProductRepository(self.session)

        if options.product_ids:
            return products.list_by_ids(options.product_ids)

        if options.brands:
            return products.list_by_brands(options.brands, options.batch_size)

        since = datetime.now(UTC) - timedelta(hours=options.stale_hours)
        recent = PriceRepository(self.session).product_ids_checked_since(retailer_id, since)

        selected: list[Product] = []
        offset = 0
        page_size = options.batch_size * 2
        while len(selected) < options.batch_size:
            page = products.list_priced_by_rating(offset, page_size)
            selected.extend(p for p in page if str(p.id) not in recent)
            if len(page) < page_size:
                break
            offset += page_size
        return selected[: options.batch_size]

    def find_best_match(
        self,
        matcher: PriceMatcher,
        scraped_prices: list[ScrapedPrice],
        product: Product,
        min_confidence: float = CANDIDATE_MIN_CONFIDENCE,
    ) -> PriceMatch | None:
        """
        Reconcile search results with the product that was searched for.

        A candidate that resolves to this product wins immediately. Otherwise
        the best cross-catalog match is used only if it is this product. As a
        last resort, when the best match is confident enough, the top search
        result is attributed to this product since the query named it.
        """
        best: PriceMatch | None = None

        for scraped in scraped_prices:
            match = matcher.match(scraped, min_confidence)
            if match is None:
                continue
            if match.product_id == product.id:
                return match
            if best is None or match.confidence > best.confidence:
                best = match

        if best is None:
            return None
        if best.product_id == product.id:
            return best

        if best.confidence >= FALLBACK_MIN_CONFIDENCE and scraped_prices:
            top = scraped_prices[0]
            if top.price_usd and top.price_usd > 0:
                return PriceMatch(
                    product_id=product.id,
                    product_name=product.name_en,
                    product_brand=product.brand_en,
                    retailer=top.retailer,
                    price_usd=top.price_usd,
                    price_krw=top.price_krw,
                    url=top.url,
                    in_stock=top.in_stock,
                    confidence=best.confidence,
                    match_method=best.match_method,
                )

        return None

    async def run(self, options: PriceScrapeOptions) -> PricePipelineStats:
        """Refresh prices for one retailer."""
        retailer = options.retailer
        stats = PricePipelineStats(retailer=retailer.value)
        logger.info(f"Starting {retailer.value} price scrape")

        matcher = PriceMatcher(self.session)
        matcher.load_products()

        retailer_id = matcher.get_retailer_id(retailer)
        if retailer_id is None:
            stats.errors.append(f"Retailer {retailer.value} not found in retailers table")
            return stats

        adapter = self.get_adapter(retailer)
        products = self.select_products(options, retailer_id)
        logger.info(f"{len(products)} products to search on {retailer.value}")

        for i, product in enumerate(products):
            stats.products_searched += 1

            try:
                scraped_prices = await adapter.search_product(product.brand_en, product.name_en)
                if scraped_prices:
                    stats.prices_found += len(scraped_prices)
                    match = self.find_best_match(
                        matcher, scraped_prices, product, options.min_confidence
                    )
                    if match is not None:
                        stats.prices_matched += 1
                        match.retailer_id = retailer_id
                        action = matcher.upsert(match)
                        if action == "insert":
                            stats.prices_new += 1
                        elif action == "update":
                            stats.prices_updated += 1
            except Exception as e:
                self.session.rollback()
                message = f"Product {product.name_en}: {e}"
                stats.errors.append(message)
                logger.error(message)

            if (i + 1) % PROGRESS_EVERY == 0 or i == len(products) - 1:
                logger.info(
                    f"{retailer.value} progress: {i + 1}/{len(products)} searched, "
                    f"{stats.prices_matched} matched, {stats.prices_new} new, "
                    f"{stats.prices_updated} updated"
                )

        logger.info(
            f"{retailer.value} complete: {stats.prices_matched} matched of "
            f"{stats.products_searched} searched, {len(stats.errors)} errors"
        )
        return stats

    async def run_all(self, options: PriceScrapeOptions) -> list[PricePipelineStats]:
        """Refresh prices across every price retailer in turn."""
        all_stats: list[PricePipelineStats] = []

        for retailer in PRICE_RETAILERS:
            retailer_options = PriceScrapeOptions(
                retailer=retailer,
                batch_size=options.batch_size,
                product_ids=list(options.product_ids),
                brands=list(options.brands),
                stale_hours=options.stale_hours,
                min_confidence=options.min_confidence,
            )
            try:
                all_stats.append(await self.run(retailer_options))
            except Exception as e:
                logger.error(f"Retailer {retailer.value} failed: {e}")
                all_stats.append(PricePipelineStats(retailer=retailer.value, errors=[str(e)]))

        return all_stats
