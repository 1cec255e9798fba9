"""
K-Beauty Catalog Ingestion Framework
====================================

This package provides the acquisition half of the pipeline: fetching
retailer pages and staging raw product records for AI extraction.

Pipeline Stages:
1. Fetch - Shared queue with rate limiting, retries and browser rendering
2. Parse - Adapters extract listings, details and prices from markup/JSON
3. Stage - Raw records are inserted once per (source, source_id)
"""

from kbeauty_pipeline.ingestion.browser import (
    BrowserError,
    PageRenderer,
    PlaywrightRenderer,
    RenderedPage,
)
from kbeauty_pipeline.ingestion.fetcher import (
    FetchError,
    FetchStats,
    RequestSpacer,
    ResilientFetcher,
    RetryPolicy,
)
from kbeauty_pipeline.ingestion.registry import (
    FetchConfig,
    PriceConfig,
    ProcessingConfig,
    SourceConfig,
    SourceRegistry,
    get_default_registry,
)
from kbeauty_pipeline.ingestion.staging import StageStats, StagingService

__all__ = [
    # Browser
    "BrowserError",
    "PageRenderer",
    "PlaywrightRenderer",
    "RenderedPage",
    # Fetcher
    "FetchError",
    "FetchStats",
    "RequestSpacer",
    "ResilientFetcher",
    "RetryPolicy",
    # Registry
    "FetchConfig",
    "PriceConfig",
    "ProcessingConfig",
    "SourceConfig",
    "SourceRegistry",
    "get_default_registry",
    # Staging
    "StageStats",
    "StagingService",
]
