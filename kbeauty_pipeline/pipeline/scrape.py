"""
Scrape Jobs Module
==================

Catalog scraping and detail enrichment for sources that expose a
browsable catalog.

A scrape walks each catalog category, optionally fetches every product's
detail page, and stages the merged raw records. Listing-only scrapes are
fast; enrich_details() fills in ingredient text afterwards.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from kbeauty_pipeline.core.enums import PipelineRunType
from kbeauty_pipeline.core.schema import PipelineRun, RawProductData, StagingRecord
from kbeauty_pipeline.ingestion.adapters.base import (
    CategoryMapping,
    SourceAdapter,
    build_raw_record,
    merge_detail,
)
from kbeauty_pipeline.ingestion.staging import StageStats, StagingService
from kbeauty_pipeline.pipeline.runs import MAX_RECORDED_ERRORS, RunTracker

logger = logging.getLogger(__name__)

FULL_MAX_PAGES = 20
INCREMENTAL_MAX_PAGES = 2
PROGRESS_EVERY = 200


@dataclass
class EnrichResult:
    """Outcome of one enrichment pass."""

    enriched: int = 0
    failed: int = 0
    remaining: int = 0

    def to_dict(self) -> dict[str, int]:
        return {"enriched": self.enriched, "failed": self.failed, "remaining": self.remaining}


class ScrapeJob:
    """Scrapes a catalog source into the staging store."""

    def __init__(self, session: Session, adapter: SourceAdapter):
        if not adapter.supports_catalog or adapter.SOURCE is None:
            raise ValueError(f"{adapter.ADAPTER_NAME} does not support catalog scraping")
        self.session = session
        self.adapter = adapter
        self.staging = StagingService(session)
        self.runs = RunTracker(session)

    def select_categories(self, categories: list[str] | None) -> list[CategoryMapping]:
        """All categories, or only those whose id is listed."""
        available = self.adapter.categories()
        if not categories:
            return available
        return [c for c in available if c.category_id in categories]

    async def run(
        self,
        mode: str = "full",
        categories: list[str] | None = None,
        max_pages: int | None = None,
        skip_details: bool = False,
    ) -> tuple[PipelineRun, StageStats]:
        """
        Run a scrape and record it as a pipeline run.

        Args:
            mode: "full" or "incremental"
            categories: Category ids to walk (default: all)
            max_pages: Pages (or load-more expansions) per category
            skip_details: Stage listing data only

        Returns:
            The closed pipeline run and the staging counters.
        """
        if mode not in ("full", "incremental"):
            raise ValueError(f"Unknown scrape mode: {mode}")

        selected = self.select_categories(categories)
        if max_pages is None:
            max_pages = FULL_MAX_PAGES if mode == "full" else INCREMENTAL_MAX_PAGES

        run_type = PipelineRunType.FULL_SCRAPE if mode == "full" else PipelineRunType.INCREMENTAL
        run = self.runs.start(
            self.adapter.SOURCE.value,
            run_type,
            metadata={
                "categories": categories or "all",
                "max_pages": max_pages,
                "skip_details": skip_details,
            },
        )
        stats = StageStats()

        try:
            for index, category in enumerate(selected, start=1):
                logger.info(f"Scraping category: {category.name} ({category.category_id})")
                try:
                    await self.scrape_category(category, max_pages, skip_details, stats)
                except Exception as e:
                    message = f"Category {category.name} failed: {e}"
                    logger.error(message)
                    stats.errors.append(message)

                self.runs.update(
                    run.id,
                    metadata={
                        "categories_completed": index,
                        "categories_total": len(selected),
                        "skip_details": skip_details,
                        "errors": stats.errors[-10:],
                    },
                    products_scraped=stats.scraped,
                    products_duplicates=stats.duplicates,
                    products_failed=stats.failed,
                )
        except Exception as e:
            self.session.rollback()
            stats.errors.append(f"Scrape aborted: {e}")
            run = self.runs.fail(
                run.id,
                stats.errors,
                metadata={"fatal_error": str(e)},
                products_scraped=stats.scraped,
            )
            raise

        run = self.runs.complete(
            run.id,
            metadata={"new_products": stats.new, "errors": stats.errors[-MAX_RECORDED_ERRORS:]},
            products_scraped=stats.scraped,
            products_duplicates=stats.duplicates,
            products_failed=stats.failed,
        )
        logger.info(
            f"Scrape complete: {stats.scraped} scraped, {stats.new} new, "
            f"{stats.duplicates} duplicates, {stats.failed} failed"
        )
        return run, stats

    async def scrape_category(
        self,
        category: CategoryMapping,
        max_pages: int,
        skip_details: bool,
        stats: StageStats,
    ) -> None:
        listings = await self.adapter.list_category(category.category_id, max_pages)
        if not listings:
            logger.info(f"No products found in {category.name}")
            return

        logger.info(f"Found {len(listings)} products in {category.name}")
        seen: set[str] = set()

        for listing in listings:
            if listing.source_id in seen:
                continue
            seen.add(listing.source_id)

            detail = None
            if not skip_details:
                detail = await self.adapter.fetch_detail(listing.source_id, category.name)

            raw = build_raw_record(self.adapter.SOURCE, listing, detail, category.name)
            self._stage(raw, stats)

            if stats.scraped % PROGRESS_EVERY == 0:
                logger.info(
                    f"Progress: {stats.scraped} scraped, {stats.new} new, "
                    f"{stats.duplicates} duplicates"
                )

    def _stage(self, raw: RawProductData, stats: StageStats) -> None:
        stats.scraped += 1
        try:
            if self.staging.stage(raw):
                stats.new += 1
            else:
                stats.duplicates += 1
        except SQLAlchemyError as e:
            self.session.rollback()
            stats.failed += 1
            stats.errors.append(f"Stage {raw.source_id}: {e}")
            logger.error(f"Failed to stage {raw.source_id}: {e}")


async def enrich_details(
    session: Session,
    adapter: SourceAdapter,
    batch_size: int = 50,
    concurrency: int = 4,
) -> EnrichResult:
    """
    Re-fetch detail pages for staged rows that still lack ingredient text.

    Pending and processed rows are both eligible; for processed rows the
    linked product's ingredient text is backfilled too.
    """
    if adapter.SOURCE is None:
        raise ValueError(f"{adapter.ADAPTER_NAME} does not support detail enrichment")

    staging = StagingService(session)
    rows = staging.find_missing_ingredients(adapter.SOURCE, batch_size)
    result = EnrichResult()

    if not rows:
        logger.info("No staged products need enrichment")
        return result

    concurrency = max(1, concurrency)
    logger.info(f"Enriching {len(rows)} products with {concurrency} concurrent pages")

    async def enrich_one(row: StagingRecord) -> bool:
        detail = await adapter.fetch_detail(row.source_id, row.raw_data.category_raw)
        if detail is None or not detail.ingredients_raw:
            return False
        staging.update_raw_data(row, merge_detail(row.raw_data, detail))
        return True

    for start in range(0, len(rows), concurrency):
        chunk = rows[start : start + concurrency]
        outcomes = await asyncio.gather(*(enrich_one(row) for row in chunk), return_exceptions=True)

        for row, outcome in zip(chunk, outcomes):
            if outcome is True:
                result.enriched += 1
            else:
                if isinstance(outcome, BaseException):
                    session.rollback()
                    logger.warning(f"Enrichment failed for {row.source_id}: {outcome}")
                result.failed += 1

        logger.info(
            f"Enrichment progress: {result.enriched} enriched, {result.failed} failed, "
            f"{start + len(chunk)}/{len(rows)} processed"
        )

    result.remaining = staging.count_missing_ingredients(adapter.SOURCE)
    return result
