"""
Background Jobs Module
======================

Pipeline operations shared by the CLI and the arq worker.

Each operation opens its own session, records a pipeline run and returns
a JSON-serializable summary. The arq tasks are thin wrappers that take
the worker context as their first argument.
"""

from __future__ import annotations

import logging
import os
from typing import Any
from uuid import uuid4

from arq import cron, create_pool
from arq.connections import RedisSettings

from kbeauty_pipeline.core.enums import PipelineRunType, Retailer
from kbeauty_pipeline.db.engine import get_session
from kbeauty_pipeline.ingestion.adapters import SourceAdapter, get_adapter
from kbeauty_pipeline.ingestion.fetcher import ResilientFetcher
from kbeauty_pipeline.ingestion.registry import SourceRegistry, get_default_registry
from kbeauty_pipeline.pipeline.batch import BatchProcessor
from kbeauty_pipeline.pipeline.runs import RunTracker
from kbeauty_pipeline.pipeline.scrape import ScrapeJob, enrich_details
from kbeauty_pipeline.services.ai.client import AIClient, create_client_from_env
from kbeauty_pipeline.services.ai.cost import CostTracker
from kbeauty_pipeline.services.extraction import ExtractionService
from kbeauty_pipeline.services.ingredients.linker import IngredientLinker
from kbeauty_pipeline.services.ingredients.matcher import IngredientCache, IngredientMatcher
from kbeauty_pipeline.services.prices.pipeline import PricePipeline, PriceScrapeOptions
from kbeauty_pipeline.services.quality import run_quality_check

logger = logging.getLogger(__name__)


def get_redis_settings() -> RedisSettings:
    """Get Redis connection settings from environment."""
    return RedisSettings(
        host=os.environ.get("REDIS_HOST", "localhost"),
        port=int(os.environ.get("REDIS_PORT", "6379")),
        database=int(os.environ.get("REDIS_DB", "0")),
    )


def build_fetcher(registry: SourceRegistry | None = None) -> ResilientFetcher:
    """Shared fetcher configured from pipeline.yaml."""
    registry = registry or get_default_registry()
    return ResilientFetcher.from_config(registry.fetch)


def build_adapter(
    source_name: str,
    fetcher: ResilientFetcher,
    registry: SourceRegistry | None = None,
) -> SourceAdapter:
    """
    Adapter for a configured source.

    Raises:
        ValueError: If the source is unknown, disabled, or has no adapter.
    """
    registry = registry or get_default_registry()
    source = registry.get_source(source_name)
    if source is None:
        adapter = get_adapter(source_name, fetcher)
        if adapter is None:
            raise ValueError(f"Source '{source_name}' not found")
        return adapter

    if not source.enabled:
        raise ValueError(f"Source '{source_name}' is disabled")

    adapter = get_adapter(source.adapter, fetcher, source.adapter_config())
    if adapter is None:
        raise ValueError(f"Adapter '{source.adapter}' not found")
    return adapter


async def run_scrape(
    source_name: str = "olive_young",
    mode: str = "full",
    categories: list[str] | None = None,
    max_pages: int | None = None,
    skip_details: bool = False,
) -> dict[str, Any]:
    """Scrape a catalog source into staging."""
    registry = get_default_registry()
    async with build_fetcher(registry) as fetcher:
        adapter = build_adapter(source_name, fetcher, registry)
        with get_session() as session:
            run, stats = await ScrapeJob(session, adapter).run(
                mode=mode,
                categories=categories,
                max_pages=max_pages,
                skip_details=skip_details,
            )
        result = stats.to_dict()
        result["errors"] = stats.errors[-20:]
        result["run_id"] = str(run.id)
        result["fetch"] = fetcher.stats.to_dict()
        return result


async def run_enrich(
    source_name: str = "olive_young",
    batch_size: int = 50,
    concurrency: int = 4,
) -> dict[str, Any]:
    """Fill in ingredient text for staged rows that lack it."""
    registry = get_default_registry()
    async with build_fetcher(registry) as fetcher:
        adapter = build_adapter(source_name, fetcher, registry)
        with get_session() as session:
            tracker = RunTracker(session)
            run = tracker.start(
                source_name,
                PipelineRunType.DETAIL_ENRICHMENT,
                metadata={"batch_size": batch_size, "concurrency": concurrency},
            )
            try:
                result = await enrich_details(session, adapter, batch_size, concurrency)
            except Exception as e:
                session.rollback()
                tracker.fail(run.id, [str(e)])
                raise
            tracker.complete(
                run.id,
                metadata=result.to_dict(),
                products_scraped=result.enriched + result.failed,
                products_processed=result.enriched,
                products_failed=result.failed,
            )
            return {"run_id": str(run.id), **result.to_dict()}


async def run_process(
    batch_size: int | None = None,
    reprocess: bool = False,
    client: AIClient | None = None,
) -> dict[str, Any]:
    """Extract one batch of staged records into catalog products."""
    registry = get_default_registry()
    batch_size = batch_size or registry.processing.batch_size
    client = client or create_client_from_env()

    with get_session() as session:
        tracker = RunTracker(session)
        run_type = PipelineRunType.REPROCESS if reprocess else PipelineRunType.BATCH_PROCESS
        run = tracker.start("staging", run_type, metadata={"batch_size": batch_size})

        cost = CostTracker()
        processor = BatchProcessor(
            session,
            ExtractionService(client),
            cost_tracker=cost,
            concurrency=registry.processing.concurrency,
        )
        try:
            if reprocess:
                result = await processor.reprocess_failed(batch_size, run_id=run.id)
            else:
                result = await processor.process_batch(batch_size, run_id=run.id)
        except Exception as e:
            session.rollback()
            tracker.fail(run.id, [str(e)], metadata={"cost": cost.summary})
            raise

        tracker.complete(
            run.id,
            metadata={"cost": cost.summary, "remaining": result.remaining},
            products_processed=result.processed,
            products_failed=result.failed,
            products_duplicates=result.duplicates,
            estimated_cost_usd=cost.estimated_cost_usd,
        )
        return {"run_id": str(run.id), **result.to_dict()}


async def run_link(
    batch_size: int | None = None,
    client: AIClient | None = None,
    enrich: bool = True,
) -> dict[str, Any]:
    """Link one batch of unlinked products to their ingredients."""
    registry = get_default_registry()
    batch_size = batch_size or registry.processing.link_batch_size
    if client is None and enrich:
        client = create_client_from_env()

    with get_session() as session:
        tracker = RunTracker(session)
        run = tracker.start(
            "products", PipelineRunType.INGREDIENT_LINK, metadata={"batch_size": batch_size}
        )

        cost = CostTracker()
        matcher = IngredientMatcher(session, IngredientCache(), client=client, cost_tracker=cost)
        try:
            result = await IngredientLinker(session, matcher).link_batch(batch_size)
        except Exception as e:
            session.rollback()
            tracker.fail(run.id, [str(e)], metadata={"cost": cost.summary})
            raise

        tracker.complete(
            run.id,
            metadata={"cost": cost.summary, **result.to_dict()},
            products_processed=result.linked,
            products_failed=result.failed,
            estimated_cost_usd=cost.estimated_cost_usd,
        )
        return {"run_id": str(run.id), **result.to_dict()}


async def run_prices(
    retailer: str | None = None,
    batch_size: int | None = None,
    brands: list[str] | None = None,
    product_ids: list[str] | None = None,
    stale_hours: int | None = None,
) -> list[dict[str, Any]]:
    """Refresh prices for one retailer, or for all of them when none is given."""
    registry = get_default_registry()
    options = PriceScrapeOptions(
        batch_size=batch_size or registry.prices.batch_size,
        brands=list(brands or []),
        product_ids=list(product_ids or []),
        stale_hours=stale_hours if stale_hours is not None else registry.prices.stale_hours,
        min_confidence=registry.prices.min_confidence,
    )

    async with build_fetcher(registry) as fetcher:
        with get_session() as session:
            pipeline = PricePipeline(session, fetcher, registry=registry)
            tracker = RunTracker(session)
            run = tracker.start(
                retailer or "all",
                PipelineRunType.PRICE_REFRESH,
                metadata={"batch_size": options.batch_size, "stale_hours": options.stale_hours},
            )

            try:
                if retailer:
                    options.retailer = Retailer(retailer)
                    all_stats = [await pipeline.run(options)]
                else:
                    all_stats = await pipeline.run_all(options)
            except Exception as e:
                session.rollback()
                tracker.fail(run.id, [str(e)])
                raise

            summaries = [s.to_dict() for s in all_stats]
            tracker.complete(
                run.id,
                metadata={"retailers": summaries},
                products_scraped=sum(s.products_searched for s in all_stats),
                products_processed=sum(s.prices_matched for s in all_stats),
                products_failed=sum(len(s.errors) for s in all_stats),
            )
            return summaries


async def run_quality() -> dict[str, Any]:
    """Run the data quality check."""
    with get_session() as session:
        return run_quality_check(session)


# =============================================================================
# arq tasks
# =============================================================================


async def scrape_task(ctx: dict[str, Any], source_name: str, mode: str = "full", **kwargs: Any) -> dict[str, Any]:
    logger.info(f"Job {ctx.get('job_id', uuid4())}: scrape {source_name} ({mode})")
    return await run_scrape(source_name, mode, **kwargs)


async def enrich_task(ctx: dict[str, Any], source_name: str, **kwargs: Any) -> dict[str, Any]:
    return await run_enrich(source_name, **kwargs)


async def process_task(ctx: dict[str, Any], batch_size: int | None = None, reprocess: bool = False) -> dict[str, Any]:
    return await run_process(batch_size, reprocess)


async def link_task(ctx: dict[str, Any], batch_size: int | None = None) -> dict[str, Any]:
    return await run_link(batch_size)


async def prices_task(ctx: dict[str, Any], retailer: str | None = None, **kwargs: Any) -> list[dict[str, Any]]:
    return await run_prices(retailer, **kwargs)


async def quality_task(ctx: dict[str, Any]) -> dict[str, Any]:
    return await run_quality()


TASKS = {
    "scrape": "scrape_task",
    "enrich": "enrich_task",
    "process": "process_task",
    "link": "link_task",
    "prices": "prices_task",
    "quality": "quality_task",
}


async def enqueue(task: str, *args: Any, **kwargs: Any) -> str:
    """
    Enqueue a pipeline task for the worker.

    Args:
        task: One of the TASKS keys (e.g. "process")

    Returns:
        Job ID
    """
    function_name = TASKS.get(task)
    if function_name is None:
        raise ValueError(f"Unknown task '{task}'. Available: {', '.join(TASKS)}")

    redis = await create_pool(get_redis_settings())
    try:
        job = await redis.enqueue_job(function_name, *args, **kwargs)
    finally:
        await redis.close()
    if job is None:
        raise ValueError(f"Job for '{task}' was not enqueued (duplicate job id)")
    return job.job_id


class WorkerSettings:
    """arq worker settings."""

    functions = [scrape_task, enrich_task, process_task, link_task, prices_task, quality_task]
    # Weekly data quality check, Sunday 04:00 UTC
    cron_jobs = [cron(quality_task, weekday=6, hour=4, minute=0)]
    redis_settings = get_redis_settings()
    max_jobs = 5
    job_timeout = 3600  # 1 hour
    keep_result = 86400  # 24 hours
