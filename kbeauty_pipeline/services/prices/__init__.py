"""Retailer price matching and refresh."""

from kbeauty_pipeline.services.prices.matcher import (
    PriceMatcher,
    brands_match,
    normalize_text,
    token_similarity,
)
from kbeauty_pipeline.services.prices.pipeline import (
    PRICE_RETAILERS,
    PricePipeline,
    PricePipelineStats,
    PriceScrapeOptions,
)

__all__ = [
    "PRICE_RETAILERS",
    "PriceMatcher",
    "PricePipeline",
    "PricePipelineStats",
    "PriceScrapeOptions",
    "brands_match",
    "normalize_text",
    "token_similarity",
]
