"""
Adapter Base Module
===================

Defines the abstract base class for retailer-specific adapters.
Adapters are responsible for:
1. Searching a retailer for a product and returning its prices
2. Walking catalog category listings (catalog sources only)
3. Fetching product detail pages (catalog sources only)

All network access goes through the shared ResilientFetcher. Fetch
failures are logged and turned into empty results so one bad retailer
never aborts a run.
"""

from __future__ import annotations

from abc import ABC
from dataclasses import asdict, dataclass
from typing import TYPE_CHECKING, Any

from kbeauty_pipeline.core.enums import PipelineSource, Retailer
from kbeauty_pipeline.core.schema import RawProductData, ScrapedPrice

if TYPE_CHECKING:
    from kbeauty_pipeline.ingestion.fetcher import ResilientFetcher


@dataclass
class ScrapedListing:
    """A product card from a catalog category page."""

    source_id: str
    source_url: str
    name_en: str
    brand_en: str = ""
    name_ko: str | None = None
    price_usd: float | None = None
    price_krw: float | None = None
    image_url: str | None = None
    rating_avg: float | None = None
    review_count: int | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return asdict(self)


@dataclass
class ScrapedDetail:
    """Full product data from a product detail page."""

    source_id: str
    source_url: str
    name_en: str
    brand_en: str = ""
    name_ko: str | None = None
    brand_ko: str | None = None
    category_raw: str = ""
    price_usd: float | None = None
    price_krw: float | None = None
    description_raw: str = ""
    ingredients_raw: str | None = None
    volume_display: str | None = None
    image_url: str | None = None
    rating_avg: float | None = None
    review_count: int | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return asdict(self)


@dataclass
class CategoryMapping:
    """A retailer category and the catalog category it maps onto."""

    category_id: str
    name: str
    catalog_category: str


def build_raw_record(
    source: PipelineSource,
    listing: ScrapedListing,
    detail: ScrapedDetail | None,
    category_raw: str,
) -> RawProductData:
    """
    Merge a listing card with its optional detail page into a raw record.

    Detail values win over listing values when present.
    """
    return RawProductData(
        source=source,
        source_url=listing.source_url,
        source_id=listing.source_id,
        name_en=(detail.name_en if detail and detail.name_en else listing.name_en),
        name_ko=(detail.name_ko if detail and detail.name_ko else listing.name_ko),
        brand_en=(detail.brand_en if detail and detail.brand_en else listing.brand_en),
        brand_ko=detail.brand_ko if detail else None,
        category_raw=category_raw,
        price_krw=_prefer(detail.price_krw if detail else None, listing.price_krw),
        price_usd=_prefer(detail.price_usd if detail else None, listing.price_usd),
        description_raw=detail.description_raw if detail else "",
        ingredients_raw=detail.ingredients_raw if detail else None,
        image_url=_prefer(detail.image_url if detail else None, listing.image_url),
        volume_display=detail.volume_display if detail else None,
        rating_avg=_prefer(detail.rating_avg if detail else None, listing.rating_avg),
        review_count=_prefer(detail.review_count if detail else None, listing.review_count),
    )


def merge_detail(raw: RawProductData, detail: ScrapedDetail) -> RawProductData:
    """Overlay a freshly fetched detail page onto an existing raw record."""
    return raw.model_copy(
        update={
            "name_en": detail.name_en or raw.name_en,
            "brand_en": detail.brand_en or raw.brand_en,
            "description_raw": detail.description_raw or raw.description_raw,
            "ingredients_raw": detail.ingredients_raw,
            "volume_display": _prefer(detail.volume_display, raw.volume_display),
            "image_url": _prefer(detail.image_url, raw.image_url),
            "rating_avg": _prefer(detail.rating_avg, raw.rating_avg),
            "review_count": _prefer(detail.review_count, raw.review_count),
            "price_usd": _prefer(detail.price_usd, raw.price_usd),
        }
    )


def _prefer(first: Any, second: Any) -> Any:
    return first if first is not None else second


class SourceAdapter(ABC):
    """
    Abstract base class for retailer adapters.

    Price sources override search_product; catalog sources override
    list_category and fetch_detail. The capability flags tell the
    pipelines which operations are available.
    """

    # Adapter identification (override in subclasses)
    ADAPTER_NAME: str = "base"
    ADAPTER_VERSION: str = "1.0.0"
    RETAILER: Retailer | None = None
    SOURCE: PipelineSource | None = None
    RELIABILITY: str = "high"
    BASE_URL: str = ""

    supports_search: bool = False
    supports_catalog: bool = False

    def __init__(
        self,
        fetcher: ResilientFetcher,
        config: dict[str, Any] | None = None,
    ) -> None:
        """
        Initialize the adapter.

        Args:
            fetcher: Shared fetch layer
            config: Optional custom configuration from pipeline.yaml
        """
        self.fetcher = fetcher
        self.config = config or {}

    async def search_product(self, brand: str, name: str) -> list[ScrapedPrice]:
        """
        Search the retailer for a product.

        Args:
            brand: Brand name
            name: Product name

        Returns:
            Candidate prices, best first (empty on failure)
        """
        raise NotImplementedError(f"{self.ADAPTER_NAME} does not support product search")

    async def list_category(self, category_id: str, page: int = 1) -> list[ScrapedListing]:
        """
        List product cards in a catalog category.

        Args:
            category_id: Retailer category id
            page: Page number, or the number of "load more" expansions for
                sources that paginate client-side

        Returns:
            Listings found (empty on failure)
        """
        raise NotImplementedError(f"{self.ADAPTER_NAME} does not support catalog listing")

    async def fetch_detail(self, source_id: str, category_raw: str = "") -> ScrapedDetail | None:
        """
        Fetch a product detail page.

        Returns:
            ScrapedDetail, or None if the page could not be parsed
        """
        raise NotImplementedError(f"{self.ADAPTER_NAME} does not support detail pages")

    @classmethod
    def categories(cls) -> list[CategoryMapping]:
        """Catalog categories this source can walk."""
        return []

    def search_query(self, brand: str, name: str) -> str:
        """Search text for a brand and product name."""
        return f"{brand} {name}".strip()

    def get_info(self) -> dict[str, str]:
        """Get adapter information."""
        return {
            "name": self.ADAPTER_NAME,
            "version": self.ADAPTER_VERSION,
            "class": self.__class__.__name__,
            "reliability": self.RELIABILITY,
        }
