"""Catalog dashboard and data quality report."""

import logging
from datetime import UTC, datetime, timedelta
from typing import Any

from sqlalchemy.orm import Session

from kbeauty_pipeline.core.enums import PipelineRunType, StagingStatus
from kbeauty_pipeline.db.repositories import (
    IngredientRepository,
    PipelineRunRepository,
    PriceRepository,
    ProductIngredientRepository,
    ProductRepository,
    StagingRepository,
)
from kbeauty_pipeline.pipeline.runs import RunTracker

logger = logging.getLogger(__name__)

STALE_PRICE_DAYS = 7
SPARSE_CATEGORY_THRESHOLD = 10


def _pct(part: int, total: int) -> int:
    return round(part / total * 100) if total > 0 else 0


def build_dashboard(session: Session, recent_runs: int = 20) -> dict[str, Any]:
    """Counts and recent activity across the whole pipeline."""
    products = ProductRepository(session)
    links = ProductIngredientRepository(session)
    runs = PipelineRunRepository(session)

    total_products = products.count()
    linked_products = len(links.linked_product_ids())

    staging = {status.value: 0 for status in StagingStatus}
    staging.update(StagingRepository(session).count_by_status())
    staging["total"] = sum(v for k, v in staging.items() if k != "total")

    categories = sorted(
        ((c, n) for c, n in products.count_by_category().items() if n > 0),
        key=lambda item: item[1],
        reverse=True,
    )
    price_coverage = sorted(
        ((name, n) for name, n in PriceRepository(session).count_by_retailer().items() if n > 0),
        key=lambda item: item[1],
        reverse=True,
    )
    latest_quality = runs.list_recent(1, PipelineRunType.QUALITY_CHECK)

    return {
        "database": {
            "total_products": total_products,
            "total_brands": products.count_brands(),
            "total_ingredients": IngredientRepository(session).count(),
            "total_ingredient_links": links.count(),
            "total_price_records": PriceRepository(session).count(),
            "products_with_ingredients_raw": products.count_with_ingredients(),
            "products_with_ingredient_links": linked_products,
            "ingredient_link_pct": _pct(linked_products, total_products),
        },
        "staging": staging,
        "recent_runs": [r.model_dump(mode="json") for r in runs.list_recent(recent_runs)],
        "latest_quality_report": (
            latest_quality[0].model_dump(mode="json") if latest_quality else None
        ),
        "category_distribution": [{"category": c, "count": n} for c, n in categories],
        "price_coverage": [{"retailer": name, "count": n} for name, n in price_coverage],
        "fetched_at": datetime.now(UTC).isoformat(),
    }


def health_score(
    total_products: int,
    missing_descriptions: int,
    unlinked: int,
    stale_prices: int,
    failed_staging: int,
    sparse_categories: int,
) -> int:
    """0-100 score with capped deductions per issue type."""
    score = 100
    if missing_descriptions > 0 and total_products > 0:
        score -= min(20, round(missing_descriptions / total_products * 100))
    if unlinked > 0 and total_products > 0:
        score -= min(20, round(unlinked / total_products * 100))
    if stale_prices > 10:
        score -= min(15, round(stale_prices / 5))
    if failed_staging > 0:
        score -= min(15, round(failed_staging / 2))
    if sparse_categories > 3:
        score -= 10
    return max(0, score)


def run_quality_check(session: Session) -> dict[str, Any]:
    """
    Run the data quality checks and store the report as a quality_check run.

    Returns:
        Dict with the health score and the full report.
    """
    products = ProductRepository(session)
    links = ProductIngredientRepository(session)

    total_products = products.count()
    missing_descriptions = products.count_missing_description()
    with_ingredients = products.count_with_ingredients()
    unlinked = max(0, with_ingredients - len(links.linked_product_ids()))
    stale_before = datetime.now(UTC) - timedelta(days=STALE_PRICE_DAYS)
    stale_prices = PriceRepository(session).count_checked_before(stale_before)
    failed_staging = StagingRepository(session).count_by_status().get(
        StagingStatus.FAILED.value, 0
    )
    missing_korean = products.count_missing_korean_name()
    distribution = products.count_by_category()
    sparse = [
        {"category": category, "count": count}
        for category, count in distribution.items()
        if count < SPARSE_CATEGORY_THRESHOLD
    ]

    report = {
        "total_products": total_products,
        "total_brands": products.count_brands(),
        "total_ingredients": IngredientRepository(session).count(),
        "total_ingredient_links": links.count(),
        "total_price_records": PriceRepository(session).count(),
        "issues": {
            "missing_descriptions": missing_descriptions,
            "unlinked_with_ingredients_raw": unlinked,
            "stale_prices": stale_prices,
            "failed_staging": failed_staging,
            "missing_korean_names": missing_korean,
            "sparse_categories": sparse,
        },
        "coverage": {
            "description_pct": _pct(total_products - missing_descriptions, total_products),
            "ingredient_link_pct": _pct(with_ingredients - unlinked, with_ingredients),
            "korean_name_pct": _pct(total_products - missing_korean, total_products),
        },
        "category_distribution": distribution,
    }
    score = health_score(
        total_products, missing_descriptions, unlinked, stale_prices, failed_staging, len(sparse)
    )

    tracker = RunTracker(session)
    run = tracker.start("system", PipelineRunType.QUALITY_CHECK)
    tracker.complete(
        run.id,
        metadata={"report": report, "health_score": score},
        products_scraped=total_products,
        products_processed=total_products - missing_descriptions,
        products_failed=failed_staging,
    )

    logger.info(f"Quality check complete: health score {score}")
    return {
        "run_id": str(run.id),
        "health_score": score,
        "report": report,
        "checked_at": datetime.now(UTC).isoformat(),
    }
