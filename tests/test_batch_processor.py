"""Tests for batch processing of staged records."""

import json

import pytest
from sqlalchemy.orm import Session

from conftest import FakeAIClient
from kbeauty_pipeline.core.enums import (
    PipelineRunType,
    PipelineSource,
    PriceMatchMethod,
    Retailer,
    StagingStatus,
)
from kbeauty_pipeline.core.schema import RawProductData, ScrapedPrice
from kbeauty_pipeline.db.repositories import (
    IngredientRepository,
    PriceRepository,
    ProductIngredientRepository,
    ProductRepository,
    StagingRepository,
)
from kbeauty_pipeline.ingestion.staging import StagingService
from kbeauty_pipeline.pipeline.batch import BatchProcessor
from kbeauty_pipeline.pipeline.runs import RunTracker
from kbeauty_pipeline.services.ai.client import AIServiceError
from kbeauty_pipeline.services.ai.cost import estimate_cost
from kbeauty_pipeline.services.extraction import ExtractionService
from kbeauty_pipeline.services.ingredients.linker import IngredientLinker
from kbeauty_pipeline.services.ingredients.matcher import IngredientCache, IngredientMatcher
from kbeauty_pipeline.services.prices.matcher import PriceMatcher

COSRX_INGREDIENTS = (
    "Snail Secretion Filtrate, Betaine, Butylene Glycol, 1,2-Hexanediol, "
    "Sodium Polyacrylate, Phenoxyethanol, Sodium Hyaluronate, Allantoin, "
    "Ethyl Hexanediol, Carbomer, Panthenol, Arginine"
)


def _raw(source_id: str, name: str = "Snail Essence", brand: str = "COSRX") -> RawProductData:
    return RawProductData(
        source=PipelineSource.OLIVE_YOUNG,
        source_url=f"https://global.oliveyoung.com/product/detail?prdtNo={source_id}",
        source_id=source_id,
        name_en=name,
        brand_en=brand,
        ingredients_raw="Water, Glycerin",
    )


def _reply(name: str, brand: str = "COSRX", category: str = "essence") -> str:
    return json.dumps({"name_en": name, "brand_en": brand, "category": category})


def _processor(session: Session, client: FakeAIClient, concurrency: int = 5) -> BatchProcessor:
    return BatchProcessor(session, ExtractionService(client), concurrency=concurrency)


class TestProcessBatch:
    """Tests for BatchProcessor.process_batch."""

    @pytest.mark.asyncio
    async def test_processes_pending_records(self, session: Session) -> None:
        staging = StagingService(session)
        staging.stage(_raw("A1"))
        staging.stage(_raw("A2", name="Cream"))
        client = FakeAIClient(replies=[_reply("Snail Essence"), _reply("Cream", category="moisturizer")])

        result = await _processor(session, client).process_batch(batch_size=10)

        assert result.processed == 2
        assert result.failed == 0
        assert result.remaining == 0
        assert ProductRepository(session).count() == 2

        record = StagingRepository(session).get_by_source_id("olive_young", "A1")
        assert record.status == StagingStatus.PROCESSED
        assert record.processed_product_id is not None

    @pytest.mark.asyncio
    async def test_empty_queue(self, session: Session, fake_client: FakeAIClient) -> None:
        result = await _processor(session, fake_client).process_batch()

        assert result.processed == 0
        assert result.remaining == 0
        assert result.cost["calls"] == 0
        assert fake_client.calls == []

    @pytest.mark.asyncio
    async def test_duplicate_name_brand(self, session: Session) -> None:
        staging = StagingService(session)
        staging.stage(_raw("A1"))
        staging.stage(_raw("B1").model_copy(update={"source": PipelineSource.YESSTYLE}))
        # Same product from two sources, differing only in case
        client = FakeAIClient(replies=[_reply("Snail Essence"), _reply("snail essence", "cosrx")])

        result = await _processor(session, client, concurrency=1).process_batch(batch_size=10)

        assert result.processed == 1
        assert result.duplicates == 1
        assert ProductRepository(session).count() == 1
        assert StagingService(session).count_by_status()["duplicate"] == 1

    @pytest.mark.asyncio
    async def test_failures_are_recorded_and_cost_counted(self, session: Session) -> None:
        staging = StagingService(session)
        staging.stage(_raw("A1"))
        staging.stage(_raw("A2", name="Toner"))
        staging.stage(_raw("A3", name="Serum"))
        client = FakeAIClient(
            replies=[_reply("Snail Essence"), "not json", AIServiceError("rate limited")]
        )

        result = await _processor(session, client).process_batch(batch_size=10)

        assert result.processed == 1
        assert result.failed == 2
        # The unparseable reply still cost tokens; the provider error did not
        assert result.cost["calls"] == 2
        assert result.cost["estimated_cost_usd"] == estimate_cost(2000, 400)

        counts = StagingService(session).count_by_status()
        assert counts["failed"] == 2
        assert counts["processing"] == 0

        messages = [
            StagingRepository(session).get_by_source_id("olive_young", sid).error_message
            for sid in ("A1", "A2", "A3")
        ]
        assert any(m and "rate limited" in m for m in messages)

    @pytest.mark.asyncio
    async def test_non_finite_reply_values_do_not_fail_the_row(self, session: Session) -> None:
        StagingService(session).stage(_raw("A1"))
        client = FakeAIClient(
            replies=['{"name_en": "Snail Essence", "brand_en": "COSRX", "review_count": 1e999}']
        )

        result = await _processor(session, client).process_batch()

        assert result.processed == 1
        assert result.failed == 0
        assert result.cost["calls"] == 1
        product = ProductRepository(session).find_by_name_brand("Snail Essence", "COSRX")
        assert product.review_count == 0

    @pytest.mark.asyncio
    async def test_batch_size_limits_claim(self, session: Session) -> None:
        staging = StagingService(session)
        for i in range(5):
            staging.stage(_raw(f"A{i}", name=f"Product {i}"))
        client = FakeAIClient(replies=[_reply(f"Product {i}") for i in range(5)])

        result = await _processor(session, client, concurrency=2).process_batch(batch_size=3)

        assert result.processed == 3
        assert result.remaining == 2

    @pytest.mark.asyncio
    async def test_updates_run_counters(self, session: Session) -> None:
        StagingService(session).stage(_raw("A1"))
        tracker = RunTracker(session)
        run = tracker.start("all", PipelineRunType.BATCH_PROCESS)
        client = FakeAIClient(replies=[_reply("Snail Essence")])

        await _processor(session, client).process_batch(batch_size=5, run_id=run.id)

        stored = tracker.get(run.id)
        assert stored.products_processed == 1
        assert stored.estimated_cost_usd == estimate_cost(1000, 200)
        assert stored.metadata["batch_size"] == 5
        assert stored.metadata["cost_details"]["calls"] == 1


class TestReprocessFailed:
    """Tests for BatchProcessor.reprocess_failed."""

    @pytest.mark.asyncio
    async def test_failed_rows_are_retried(self, session: Session) -> None:
        StagingService(session).stage(_raw("A1"))
        first = FakeAIClient(replies=["garbage"])
        await _processor(session, first).process_batch()
        assert StagingService(session).count_by_status()["failed"] == 1

        second = FakeAIClient(replies=[_reply("Snail Essence")])
        result = await _processor(session, second).reprocess_failed()

        assert result.processed == 1
        counts = StagingService(session).count_by_status()
        assert counts["failed"] == 0
        assert counts["processed"] == 1
        record = StagingRepository(session).get_by_source_id("olive_young", "A1")
        assert record.error_message is None

    @pytest.mark.asyncio
    async def test_nothing_to_reprocess(self, session: Session, fake_client: FakeAIClient) -> None:
        result = await _processor(session, fake_client).reprocess_failed()

        assert result.processed == 0
        assert fake_client.calls == []


class TestEndToEnd:
    """Stage, process, link and price one product."""

    @pytest.mark.asyncio
    async def test_cosrx_snail_essence(self, session: Session) -> None:
        raw = RawProductData(
            source=PipelineSource.OLIVE_YOUNG,
            source_url="https://global.oliveyoung.com/product/detail?prdtNo=GA210001",
            source_id="GA210001",
            name_en="COSRX Advanced Snail 96 Mucin Power Essence 100ml",
            brand_en="COSRX",
            category_raw="Skincare > Essence",
            price_usd=25.0,
            ingredients_raw=COSRX_INGREDIENTS,
        )
        assert StagingService(session).stage(raw) is True

        client = FakeAIClient(
            replies=[_reply("Advanced Snail 96 Mucin Power Essence")],
            default=json.dumps({"function": "skin conditioning", "safety_rating": 5}),
        )
        result = await _processor(session, client).process_batch()
        assert result.processed == 1

        product = ProductRepository(session).find_by_name_brand(
            "Advanced Snail 96 Mucin Power Essence", "COSRX"
        )
        assert product is not None
        assert product.ingredients_raw == COSRX_INGREDIENTS

        linker = IngredientLinker(session, IngredientMatcher(session, IngredientCache(), client=client))
        link_result = await linker.link_batch(limit=10)

        assert link_result.linked == 1
        links = ProductIngredientRepository(session).list_for_product(product.id)
        assert len(links) == 12
        assert [link.position for link in links] == list(range(1, 13))

        matcher = PriceMatcher(session)
        matcher.load_products()
        match = matcher.match(
            ScrapedPrice(
                retailer=Retailer.SOKO_GLAM,
                product_name="Advanced Snail 96 Mucin Power Essence",
                brand="COSRX",
                price_usd=25.0,
                url="https://sokoglam.com/products/cosrx-advanced-snail-96-mucin-power-essence",
            )
        )

        assert match is not None
        assert match.product_id == product.id
        assert match.confidence == 1.0
        assert match.match_method == PriceMatchMethod.EXACT

        assert matcher.upsert(match) == "insert"
        assert PriceRepository(session).count() == 1
        assert len(PriceRepository(session).list_history(product.id)) == 1

    @pytest.mark.asyncio
    async def test_three_ingredient_essence(self, session: Session) -> None:
        StagingService(session).stage(
            RawProductData(
                source=PipelineSource.OLIVE_YOUNG,
                source_url="https://global.oliveyoung.com/product/detail?prdtNo=GA210002",
                source_id="GA210002",
                name_en="Advanced Snail 96 Mucin Power Essence",
                brand_en="COSRX",
                ingredients_raw="Snail Secretion Filtrate, Betaine, Butylene Glycol",
            )
        )
        client = FakeAIClient(
            replies=[_reply("Advanced Snail 96 Mucin Power Essence")],
            default=json.dumps({"function": "humectant", "safety_rating": 5}),
        )

        assert (await _processor(session, client).process_batch()).processed == 1
        assert ProductRepository(session).count() == 1
        product = ProductRepository(session).find_by_name_brand(
            "Advanced Snail 96 Mucin Power Essence", "COSRX"
        )

        linker = IngredientLinker(session, IngredientMatcher(session, IngredientCache(), client=client))
        link_result = await linker.link_batch(limit=10)

        assert link_result.linked == 1
        assert link_result.ingredients_created >= 1
        links = ProductIngredientRepository(session).list_for_product(product.id)
        assert [link.position for link in links] == [1, 2, 3]

        snail = IngredientRepository(session).find_by_name("Snail Secretion Filtrate")
        assert snail is not None
        assert links[0].ingredient_id == snail.id
