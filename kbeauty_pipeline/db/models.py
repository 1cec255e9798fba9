"""SQLAlchemy ORM models for the catalog pipeline database."""

from datetime import UTC, datetime
from typing import Any
from uuid import uuid4

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def _utc_now() -> datetime:
    """Return current UTC datetime (timezone-aware)."""
    return datetime.now(UTC)


def _generate_uuid() -> str:
    """Generate a UUID string."""
    return str(uuid4())


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


class StagingRecordDB(Base):
    """
    Database model for staged raw records.

    Holds the scraped payload as JSON until the batch processor
    normalizes it. One row per (source, source_id).
    """

    __tablename__ = "staging_records"
    __table_args__ = (UniqueConstraint("source", "source_id", name="uq_staging_source_id"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_generate_uuid)
    source: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    source_id: Mapped[str] = mapped_column(String(255), nullable=False)
    source_url: Mapped[str] = mapped_column(Text, default="")
    raw_data: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)
    status: Mapped[str] = mapped_column(String(20), default="pending", index=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    processed_product_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utc_now, index=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=_utc_now, onupdate=_utc_now)

    def __repr__(self) -> str:
        return f"<StagingRecordDB(source={self.source}, source_id={self.source_id}, status={self.status})>"


class ProductDB(Base):
    """
    Database model for canonical catalog products.

    (name_en, brand_en) is unique ignoring case.
    """

    __tablename__ = "products"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_generate_uuid)
    name_en: Mapped[str] = mapped_column(String(500), nullable=False)
    name_ko: Mapped[str | None] = mapped_column(String(500), nullable=True)
    brand_en: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    brand_ko: Mapped[str | None] = mapped_column(String(255), nullable=True)
    category: Mapped[str] = mapped_column(String(30), nullable=False, index=True)
    subcategory: Mapped[str | None] = mapped_column(String(100), nullable=True)
    description_en: Mapped[str] = mapped_column(Text, default="")
    volume_ml: Mapped[float | None] = mapped_column(Float, nullable=True)
    volume_display: Mapped[str | None] = mapped_column(String(100), nullable=True)
    price_krw: Mapped[float | None] = mapped_column(Float, nullable=True)
    price_usd: Mapped[float | None] = mapped_column(Float, nullable=True)
    rating_avg: Mapped[float | None] = mapped_column(Float, nullable=True)
    review_count: Mapped[int] = mapped_column(Integer, default=0)
    pao_months: Mapped[int | None] = mapped_column(Integer, nullable=True)
    shelf_life_months: Mapped[int | None] = mapped_column(Integer, nullable=True)
    image_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_verified: Mapped[bool] = mapped_column(Boolean, default=False)
    ingredients_raw: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Sunscreen attributes (null unless category == sunscreen)
    spf_rating: Mapped[int | None] = mapped_column(Integer, nullable=True)
    pa_rating: Mapped[str | None] = mapped_column(String(10), nullable=True)
    sunscreen_type: Mapped[str | None] = mapped_column(String(20), nullable=True)
    white_cast: Mapped[str | None] = mapped_column(String(20), nullable=True)
    finish: Mapped[str | None] = mapped_column(String(20), nullable=True)
    under_makeup: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    water_resistant: Mapped[bool | None] = mapped_column(Boolean, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utc_now, index=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=_utc_now, onupdate=_utc_now)

    def __repr__(self) -> str:
        return f"<ProductDB(id={self.id}, brand='{self.brand_en}', name='{self.name_en}')>"


Index(
    "uq_products_name_brand_ci",
    func.lower(ProductDB.name_en),
    func.lower(ProductDB.brand_en),
    unique=True,
)


class IngredientDB(Base):
    """Database model for canonical ingredients (INCI name unique ignoring case)."""

    __tablename__ = "ingredients"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_generate_uuid)
    name_inci: Mapped[str] = mapped_column(String(500), nullable=False)
    name_en: Mapped[str | None] = mapped_column(String(500), nullable=True)
    function: Mapped[str | None] = mapped_column(String(255), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=False)
    is_fragrance: Mapped[bool] = mapped_column(Boolean, default=False)
    safety_rating: Mapped[int | None] = mapped_column(Integer, nullable=True)
    comedogenic_rating: Mapped[int | None] = mapped_column(Integer, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utc_now)

    def __repr__(self) -> str:
        return f"<IngredientDB(id={self.id}, name_inci='{self.name_inci}')>"


Index("uq_ingredients_name_inci_ci", func.lower(IngredientDB.name_inci), unique=True)


class ProductIngredientDB(Base):
    """Link between a product and an ingredient at an INCI position."""

    __tablename__ = "product_ingredient_links"
    __table_args__ = (
        UniqueConstraint("product_id", "ingredient_id", name="uq_product_ingredient"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_generate_uuid)
    product_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("products.id", ondelete="CASCADE"), nullable=False, index=True
    )
    ingredient_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("ingredients.id"), nullable=False, index=True
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False)


class RetailerDB(Base):
    """Retailer reference data."""

    __tablename__ = "retailers"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_generate_uuid)
    slug: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)

    def __repr__(self) -> str:
        return f"<RetailerDB(slug={self.slug}, name='{self.name}')>"


class ProductPriceDB(Base):
    """Current price of a product at a retailer. One row per pair."""

    __tablename__ = "product_prices"
    __table_args__ = (
        UniqueConstraint("product_id", "retailer_id", name="uq_product_retailer_price"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_generate_uuid)
    product_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("products.id", ondelete="CASCADE"), nullable=False, index=True
    )
    retailer_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("retailers.id"), nullable=False, index=True
    )
    price_usd: Mapped[float | None] = mapped_column(Float, nullable=True)
    price_krw: Mapped[float | None] = mapped_column(Float, nullable=True)
    url: Mapped[str | None] = mapped_column(Text, nullable=True)
    in_stock: Mapped[bool] = mapped_column(Boolean, default=True)
    last_checked: Mapped[datetime] = mapped_column(DateTime, default=_utc_now, index=True)


class PriceHistoryDB(Base):
    """Append-only price snapshots."""

    __tablename__ = "price_history"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_generate_uuid)
    product_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("products.id", ondelete="CASCADE"), nullable=False, index=True
    )
    retailer: Mapped[str] = mapped_column(String(100), nullable=False)
    price: Mapped[float] = mapped_column(Float, nullable=False)
    currency: Mapped[str] = mapped_column(String(3), default="USD")
    recorded_at: Mapped[datetime] = mapped_column(DateTime, default=_utc_now)


class PipelineRunDB(Base):
    """Record of one pipeline invocation with counters and metadata."""

    __tablename__ = "pipeline_runs"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_generate_uuid)
    source: Mapped[str] = mapped_column(String(50), nullable=False)
    run_type: Mapped[str] = mapped_column(String(30), nullable=False, index=True)
    status: Mapped[str] = mapped_column(String(20), default="running")
    products_scraped: Mapped[int] = mapped_column(Integer, default=0)
    products_processed: Mapped[int] = mapped_column(Integer, default=0)
    products_failed: Mapped[int] = mapped_column(Integer, default=0)
    products_duplicates: Mapped[int] = mapped_column(Integer, default=0)
    estimated_cost_usd: Mapped[float] = mapped_column(Float, default=0.0)
    metadata_json: Mapped[dict[str, Any]] = mapped_column("metadata", JSON, default=dict)
    started_at: Mapped[datetime] = mapped_column(DateTime, default=_utc_now, index=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    def __repr__(self) -> str:
        return f"<PipelineRunDB(id={self.id}, type={self.run_type}, status={self.status})>"
