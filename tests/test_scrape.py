"""Tests for catalog scraping and detail enrichment."""

from unittest.mock import MagicMock

import pytest
from sqlalchemy.orm import Session

from kbeauty_pipeline.core.enums import PipelineRunStatus, PipelineRunType, PipelineSource, Retailer
from kbeauty_pipeline.core.schema import ProcessedProduct
from kbeauty_pipeline.db.repositories import ProductRepository, StagingRepository
from kbeauty_pipeline.ingestion.adapters.base import (
    CategoryMapping,
    ScrapedDetail,
    ScrapedListing,
    SourceAdapter,
    build_raw_record,
)
from kbeauty_pipeline.ingestion.staging import StagingService
from kbeauty_pipeline.pipeline.scrape import ScrapeJob, enrich_details


def _listing(source_id: str, name: str) -> ScrapedListing:
    return ScrapedListing(
        source_id=source_id,
        source_url=f"https://global.oliveyoung.com/product/detail?prdtNo={source_id}",
        name_en=name,
        brand_en="COSRX",
        price_usd=18.9,
    )


class FakeCatalogAdapter(SourceAdapter):
    """Catalog adapter serving canned listings and details."""

    ADAPTER_NAME = "fake_catalog"
    RETAILER = Retailer.OLIVE_YOUNG
    SOURCE = PipelineSource.OLIVE_YOUNG
    supports_catalog = True

    def __init__(self, listings=None, details=None, failing_categories=(), failing_details=()):
        super().__init__(MagicMock())
        self.listings = listings or {}
        self.details = details or {}
        self.failing_categories = set(failing_categories)
        self.failing_details = set(failing_details)
        self.detail_calls: list[str] = []
        self.pages: list[int] = []

    @classmethod
    def categories(cls) -> list[CategoryMapping]:
        return [
            CategoryMapping("100", "Moisturizers", "moisturizer"),
            CategoryMapping("200", "Cleansers", "cleanser"),
        ]

    async def list_category(self, category_id: str, page: int = 1) -> list[ScrapedListing]:
        self.pages.append(page)
        if category_id in self.failing_categories:
            raise RuntimeError("listing page crashed")
        return self.listings.get(category_id, [])

    async def fetch_detail(self, source_id: str, category_raw: str = "") -> ScrapedDetail | None:
        self.detail_calls.append(source_id)
        if source_id in self.failing_details:
            raise RuntimeError("detail page crashed")
        return self.details.get(source_id)


def _detail(source_id: str, ingredients: str | None = "Water, Glycerin") -> ScrapedDetail:
    return ScrapedDetail(
        source_id=source_id,
        source_url=f"https://global.oliveyoung.com/product/detail?prdtNo={source_id}",
        name_en="",
        ingredients_raw=ingredients,
        volume_display="100ml",
    )


class TestScrapeJob:
    """Tests for ScrapeJob.run."""

    def test_rejects_search_only_adapter(self, session: Session) -> None:
        class SearchOnly(SourceAdapter):
            ADAPTER_NAME = "search_only"
            supports_search = True

        with pytest.raises(ValueError, match="catalog"):
            ScrapeJob(session, SearchOnly(MagicMock()))

    @pytest.mark.asyncio
    async def test_full_scrape_stages_records(self, session: Session) -> None:
        adapter = FakeCatalogAdapter(
            listings={
                "100": [_listing("GA1", "Snail Cream"), _listing("GA2", "Ceramide Cream"), _listing("GA1", "Snail Cream")],
                "200": [_listing("GA3", "Gel Cleanser")],
            },
            details={"GA1": _detail("GA1"), "GA3": _detail("GA3")},
        )

        run, stats = await ScrapeJob(session, adapter).run()

        assert stats.scraped == 3
        assert stats.new == 3
        assert adapter.pages == [20, 20]
        assert run.status == PipelineRunStatus.COMPLETED
        assert run.run_type == PipelineRunType.FULL_SCRAPE
        assert run.products_scraped == 3
        assert run.metadata["new_products"] == 3

        staged = StagingRepository(session).get_by_source_id("olive_young", "GA1")
        assert staged.raw_data.ingredients_raw == "Water, Glycerin"
        assert staged.raw_data.category_raw == "Moisturizers"
        assert staged.raw_data.volume_display == "100ml"
        assert StagingRepository(session).get_by_source_id("olive_young", "GA2").raw_data.ingredients_raw is None

    @pytest.mark.asyncio
    async def test_rescrape_counts_duplicates(self, session: Session) -> None:
        adapter = FakeCatalogAdapter(listings={"100": [_listing("GA1", "Snail Cream")]})
        job = ScrapeJob(session, adapter)

        await job.run(skip_details=True)
        _, stats = await job.run(skip_details=True)

        assert stats.new == 0
        assert stats.duplicates == 1

    @pytest.mark.asyncio
    async def test_incremental_with_selected_categories(self, session: Session) -> None:
        adapter = FakeCatalogAdapter(listings={"200": [_listing("GA3", "Gel Cleanser")]})

        run, stats = await ScrapeJob(session, adapter).run(
            mode="incremental", categories=["200"], skip_details=True
        )

        assert adapter.pages == [2]
        assert adapter.detail_calls == []
        assert run.run_type == PipelineRunType.INCREMENTAL
        assert stats.new == 1

    @pytest.mark.asyncio
    async def test_category_failure_is_recorded(self, session: Session) -> None:
        adapter = FakeCatalogAdapter(
            listings={"200": [_listing("GA3", "Gel Cleanser")]},
            failing_categories={"100"},
        )

        run, stats = await ScrapeJob(session, adapter).run(skip_details=True)

        assert run.status == PipelineRunStatus.COMPLETED
        assert stats.new == 1
        assert "listing page crashed" in stats.errors[0]
        assert run.metadata["errors"] == stats.errors

    @pytest.mark.asyncio
    async def test_unknown_mode(self, session: Session) -> None:
        with pytest.raises(ValueError, match="Unknown scrape mode"):
            await ScrapeJob(session, FakeCatalogAdapter()).run(mode="weekly")


class TestEnrichDetails:
    """Tests for enrich_details."""

    def _stage(self, session: Session, *source_ids: str) -> None:
        adapter = FakeCatalogAdapter()
        staging = StagingService(session)
        for source_id in source_ids:
            staging.stage(
                build_raw_record(
                    adapter.SOURCE, _listing(source_id, f"Product {source_id}"), None, "Moisturizers"
                )
            )

    @pytest.mark.asyncio
    async def test_enriches_missing_ingredients(self, session: Session) -> None:
        self._stage(session, "GA1", "GA2", "GA3")
        adapter = FakeCatalogAdapter(
            details={"GA1": _detail("GA1"), "GA2": _detail("GA2", ingredients=None)},
            failing_details={"GA3"},
        )

        result = await enrich_details(session, adapter, batch_size=10, concurrency=2)

        assert result.enriched == 1
        assert result.failed == 2
        assert result.remaining == 2
        staged = StagingRepository(session).get_by_source_id("olive_young", "GA1")
        assert staged.raw_data.ingredients_raw == "Water, Glycerin"
        assert staged.raw_data.name_en == "Product GA1"

    @pytest.mark.asyncio
    async def test_backfills_processed_product(self, session: Session) -> None:
        self._stage(session, "GA1")
        record = StagingRepository(session).get_by_source_id("olive_young", "GA1")
        product = ProductRepository(session).create(
            ProcessedProduct(name_en="Product GA1", brand_en="COSRX")
        )
        session.commit()
        StagingService(session).mark_processed(record.id, product.id)

        adapter = FakeCatalogAdapter(details={"GA1": _detail("GA1", "Water, Ceramide NP")})
        result = await enrich_details(session, adapter)

        assert result.enriched == 1
        assert ProductRepository(session).get_by_id(product.id).ingredients_raw == "Water, Ceramide NP"

    @pytest.mark.asyncio
    async def test_nothing_to_enrich(self, session: Session) -> None:
        adapter = FakeCatalogAdapter()

        result = await enrich_details(session, adapter)

        assert result.to_dict() == {"enriched": 0, "failed": 0, "remaining": 0}
        assert adapter.detail_calls == []
