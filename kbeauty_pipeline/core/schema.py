"""Pydantic v2 domain models for the catalog pipeline."""

from datetime import UTC, datetime
from typing import Any
from uuid import UUID, uuid4

from pydantic import BaseModel, Field, field_validator, model_validator

from kbeauty_pipeline.core.enums import (
    DEFAULT_CATEGORY,
    Finish,
    IngredientMatchType,
    PaRating,
    PipelineRunStatus,
    PipelineRunType,
    PipelineSource,
    PriceMatchMethod,
    ProductCategory,
    Retailer,
    StagingStatus,
    SunscreenType,
    WhiteCast,
)


def _utc_now() -> datetime:
    """Return current UTC datetime (timezone-aware)."""
    return datetime.now(UTC)


SUNSCREEN_FIELDS = (
    "spf_rating",
    "pa_rating",
    "sunscreen_type",
    "white_cast",
    "finish",
    "under_makeup",
    "water_resistant",
)


class RawProductData(BaseModel):
    """
    Raw product record as scraped from a retailer.

    Stored verbatim in the staging store until the batch processor
    normalizes it into a catalog product.
    """

    source: PipelineSource
    source_url: str
    source_id: str
    name_en: str = ""
    name_ko: str | None = None
    brand_en: str = ""
    brand_ko: str | None = None
    category_raw: str = ""
    price_krw: float | None = None
    price_usd: float | None = None
    description_raw: str = ""
    ingredients_raw: str | None = None
    image_url: str | None = None
    volume_display: str | None = None
    rating_avg: float | None = None
    review_count: int | None = None
    scraped_at: datetime = Field(default_factory=_utc_now)

    @field_validator("source_id")
    @classmethod
    def source_id_not_empty(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("source_id cannot be empty")
        return v.strip()

    @property
    def has_ingredients(self) -> bool:
        return bool(self.ingredients_raw and self.ingredients_raw.strip())


class ProcessedProduct(BaseModel):
    """Normalized product fields produced by the extraction service."""

    name_en: str
    name_ko: str | None = None
    brand_en: str
    brand_ko: str | None = None
    category: ProductCategory = DEFAULT_CATEGORY
    subcategory: str | None = None
    description_en: str = ""
    volume_ml: float | None = None
    volume_display: str | None = None
    price_krw: float | None = None
    price_usd: float | None = None
    rating_avg: float | None = None
    review_count: int = 0
    pao_months: int | None = None
    shelf_life_months: int | None = None
    image_url: str | None = None
    is_verified: bool = False
    ingredients_raw: str | None = None

    # Sunscreen-only attributes
    spf_rating: int | None = None
    pa_rating: PaRating | None = None
    sunscreen_type: SunscreenType | None = None
    white_cast: WhiteCast | None = None
    finish: Finish | None = None
    under_makeup: bool | None = None
    water_resistant: bool | None = None

    @model_validator(mode="after")
    def clear_sunscreen_fields(self) -> "ProcessedProduct":
        """Sunscreen attributes are only meaningful for sunscreens."""
        if self.category != ProductCategory.SUNSCREEN:
            for name in SUNSCREEN_FIELDS:
                setattr(self, name, None)
        return self


class Product(ProcessedProduct):
    """A canonical catalog product."""

    id: UUID = Field(default_factory=uuid4)
    created_at: datetime = Field(default_factory=_utc_now)
    updated_at: datetime = Field(default_factory=_utc_now)


class StagingRecord(BaseModel):
    """A row in the staging store."""

    id: UUID = Field(default_factory=uuid4)
    source: PipelineSource
    source_id: str
    source_url: str
    raw_data: RawProductData
    status: StagingStatus = StagingStatus.PENDING
    error_message: str | None = None
    processed_product_id: UUID | None = None
    created_at: datetime = Field(default_factory=_utc_now)
    updated_at: datetime = Field(default_factory=_utc_now)


class Ingredient(BaseModel):
    """A canonical cosmetic ingredient."""

    id: UUID = Field(default_factory=uuid4)
    name_inci: str
    name_en: str | None = None
    function: str | None = None
    is_active: bool = False
    is_fragrance: bool = False
    safety_rating: int | None = Field(default=None, ge=1, le=5)
    comedogenic_rating: int | None = Field(default=None, ge=0, le=5)
    created_at: datetime = Field(default_factory=_utc_now)

    @field_validator("name_inci")
    @classmethod
    def name_inci_not_empty(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("name_inci cannot be empty")
        return v.strip()


class ParsedIngredient(BaseModel):
    """One token of an INCI list with its 1-based concentration position."""

    name: str
    position: int = Field(ge=1)


class ProductIngredientLink(BaseModel):
    """Link between a product and an ingredient at a list position."""

    product_id: UUID
    ingredient_id: UUID
    position: int = Field(ge=1)


class RetailerRecord(BaseModel):
    """Retailer reference data."""

    id: UUID = Field(default_factory=uuid4)
    slug: Retailer
    name: str


class ProductPrice(BaseModel):
    """Current price of a product at one retailer."""

    id: UUID = Field(default_factory=uuid4)
    product_id: UUID
    retailer_id: UUID
    price_usd: float | None = None
    price_krw: float | None = None
    url: str | None = None
    in_stock: bool = True
    last_checked: datetime = Field(default_factory=_utc_now)


class PriceHistoryEntry(BaseModel):
    """Append-only price snapshot."""

    id: UUID = Field(default_factory=uuid4)
    product_id: UUID
    retailer: str
    price: float
    currency: str = "USD"
    recorded_at: datetime = Field(default_factory=_utc_now)


class PipelineRun(BaseModel):
    """Record of one pipeline invocation."""

    id: UUID = Field(default_factory=uuid4)
    source: str
    run_type: PipelineRunType
    status: PipelineRunStatus = PipelineRunStatus.RUNNING
    products_scraped: int = 0
    products_processed: int = 0
    products_failed: int = 0
    products_duplicates: int = 0
    estimated_cost_usd: float = 0.0
    metadata: dict[str, Any] = Field(default_factory=dict)
    started_at: datetime = Field(default_factory=_utc_now)
    completed_at: datetime | None = None


class ScrapedPrice(BaseModel):
    """A price candidate returned by a retailer search."""

    retailer: Retailer
    product_name: str
    brand: str = ""
    price_usd: float | None = None
    price_krw: float | None = None
    url: str
    in_stock: bool = True
    image_url: str | None = None


class PriceMatch(BaseModel):
    """A scraped price paired with a catalog product."""

    product_id: UUID
    product_name: str
    product_brand: str
    retailer: Retailer
    retailer_id: UUID | None = None
    price_usd: float | None = None
    price_krw: float | None = None
    url: str
    in_stock: bool = True
    confidence: float = Field(ge=0.0, le=1.0)
    match_method: PriceMatchMethod


class IngredientResolution(BaseModel):
    """Result of resolving one ingredient name."""

    ingredient_id: UUID
    match_type: IngredientMatchType
