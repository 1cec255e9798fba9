"""
Adapter Registry Module
=======================

Central registry for retailer adapters.
Provides factory functions for creating adapters by name.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Type

from kbeauty_pipeline.ingestion.adapters.amazon import AmazonAdapter
from kbeauty_pipeline.ingestion.adapters.base import (
    CategoryMapping,
    ScrapedDetail,
    ScrapedListing,
    SourceAdapter,
    build_raw_record,
    merge_detail,
)
from kbeauty_pipeline.ingestion.adapters.olive_young import OliveYoungAdapter
from kbeauty_pipeline.ingestion.adapters.soko_glam import SokoGlamAdapter
from kbeauty_pipeline.ingestion.adapters.stylekorean import StyleKoreanAdapter
from kbeauty_pipeline.ingestion.adapters.yesstyle import YesStyleAdapter

if TYPE_CHECKING:
    from kbeauty_pipeline.ingestion.fetcher import ResilientFetcher


# Registry mapping adapter names to their classes
ADAPTER_REGISTRY: dict[str, Type[SourceAdapter]] = {
    "olive_young": OliveYoungAdapter,
    "soko_glam": SokoGlamAdapter,
    "yesstyle": YesStyleAdapter,
    "amazon": AmazonAdapter,
    "stylekorean": StyleKoreanAdapter,
}


def get_adapter(
    adapter_type: str,
    fetcher: ResilientFetcher,
    config: dict[str, Any] | None = None,
) -> SourceAdapter | None:
    """
    Get an adapter instance by type name.

    Args:
        adapter_type: Name of the adapter (e.g., "soko_glam")
        fetcher: Shared fetch layer
        config: Optional custom configuration

    Returns:
        Adapter instance, or None if type not found
    """
    adapter_class = ADAPTER_REGISTRY.get(adapter_type)
    if adapter_class is None:
        return None
    return adapter_class(fetcher, config)


def register_adapter(name: str, adapter_class: Type[SourceAdapter]) -> None:
    """
    Register a new adapter type.

    Args:
        name: Name to register the adapter under
        adapter_class: Adapter class (must inherit from SourceAdapter)
    """
    if not issubclass(adapter_class, SourceAdapter):
        raise TypeError(f"{adapter_class} must inherit from SourceAdapter")
    ADAPTER_REGISTRY[name] = adapter_class


def list_adapters() -> list[str]:
    """List all registered adapter names."""
    return list(ADAPTER_REGISTRY.keys())


def get_adapter_info(adapter_type: str) -> dict[str, Any] | None:
    """
    Get information about an adapter type.

    Args:
        adapter_type: Name of the adapter

    Returns:
        Dict with adapter info, or None if not found
    """
    adapter_class = ADAPTER_REGISTRY.get(adapter_type)
    if adapter_class is None:
        return None

    return {
        "name": adapter_class.ADAPTER_NAME,
        "version": adapter_class.ADAPTER_VERSION,
        "class": adapter_class.__name__,
        "reliability": adapter_class.RELIABILITY,
        "search": adapter_class.supports_search,
        "catalog": adapter_class.supports_catalog,
    }


__all__ = [
    # Registry functions
    "get_adapter",
    "register_adapter",
    "list_adapters",
    "get_adapter_info",
    "ADAPTER_REGISTRY",
    # Base classes
    "SourceAdapter",
    "ScrapedListing",
    "ScrapedDetail",
    "CategoryMapping",
    "build_raw_record",
    "merge_detail",
    # Concrete adapters
    "OliveYoungAdapter",
    "SokoGlamAdapter",
    "YesStyleAdapter",
    "AmazonAdapter",
    "StyleKoreanAdapter",
]
