"""Repository classes for database operations."""

from collections.abc import Iterable, Sequence
from datetime import UTC, datetime
from typing import Any
from uuid import UUID

from sqlalchemy import Select, func, or_, select, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import Session

from kbeauty_pipeline.core.enums import (
    PipelineRunStatus,
    PipelineRunType,
    Retailer,
    StagingStatus,
)
from kbeauty_pipeline.core.schema import (
    Ingredient,
    PipelineRun,
    PriceHistoryEntry,
    ProcessedProduct,
    Product,
    ProductIngredientLink,
    ProductPrice,
    RawProductData,
    RetailerRecord,
    StagingRecord,
)
from kbeauty_pipeline.db.models import (
    IngredientDB,
    PipelineRunDB,
    PriceHistoryDB,
    ProductDB,
    ProductIngredientDB,
    ProductPriceDB,
    RetailerDB,
    StagingRecordDB,
)


def _utc_now() -> datetime:
    """Return current UTC datetime."""
    return datetime.now(UTC)


def insert_ignore(session: Session, model: type, rows: Sequence[dict[str, Any]]) -> int:
    """
    Insert rows, silently skipping any that hit a unique constraint.

    Uses the backend's INSERT ... ON CONFLICT DO NOTHING.

    Args:
        session: Active session.
        model: ORM class to insert into.
        rows: Column values per row.

    Returns:
        Number of rows actually inserted.
    """
    if not rows:
        return 0

    dialect = session.get_bind().dialect.name
    if dialect == "postgresql":
        stmt = postgresql.insert(model)
    elif dialect == "sqlite":
        stmt = sqlite.insert(model)
    else:
        raise NotImplementedError(f"insert-or-ignore is not supported on '{dialect}'")

    result = session.execute(stmt.values(list(rows)).on_conflict_do_nothing())
    return result.rowcount if result.rowcount is not None and result.rowcount >= 0 else 0


def _ingredients_present():
    """SQL condition: the staged payload carries non-empty ingredient text."""
    text = StagingRecordDB.raw_data["ingredients_raw"].as_string()
    return (text.is_not(None)) & (text != "")


def _ingredients_missing():
    """SQL condition: the staged payload has no ingredient text."""
    text = StagingRecordDB.raw_data["ingredients_raw"].as_string()
    return or_(text.is_(None), text == "")


class StagingRepository:
    """Repository for staged raw records."""

    def __init__(self, session: Session):
        self.session = session

    def insert_if_absent(self, raw: RawProductData) -> bool:
        """
        Stage a raw record unless (source, source_id) already exists.

        Args:
            raw: The scraped record.

        Returns:
            True if a new row was written, False if it already existed.
        """
        inserted = insert_ignore(
            self.session,
            StagingRecordDB,
            [
                {
                    "source": raw.source.value,
                    "source_id": raw.source_id,
                    "source_url": raw.source_url,
                    "raw_data": raw.model_dump(mode="json"),
                    "status": StagingStatus.PENDING.value,
                }
            ],
        )
        return inserted == 1

    def get_by_id(self, record_id: UUID | str) -> StagingRecord | None:
        db_record = self.session.get(StagingRecordDB, str(record_id))
        return self._to_domain(db_record) if db_record else None

    def get_by_source_id(self, source: str, source_id: str) -> StagingRecord | None:
        stmt = select(StagingRecordDB).where(
            StagingRecordDB.source == source,
            StagingRecordDB.source_id == source_id,
        )
        db_record = self.session.execute(stmt).scalar_one_or_none()
        return self._to_domain(db_record) if db_record else None

    def list_claimable(self, limit: int) -> list[StagingRecord]:
        """
        List pending rows that carry ingredient text, oldest first.

        Args:
            limit: Maximum number of rows.

        Returns:
            List of StagingRecord domain models.
        """
        stmt = (
            select(StagingRecordDB)
            .where(StagingRecordDB.status == StagingStatus.PENDING.value)
            .where(_ingredients_present())
            .order_by(StagingRecordDB.created_at, StagingRecordDB.id)
            .limit(limit)
        )
        return [self._to_domain(r) for r in self.session.execute(stmt).scalars().all()]

    def count_claimable(self) -> int:
        stmt = (
            select(func.count())
            .select_from(StagingRecordDB)
            .where(StagingRecordDB.status == StagingStatus.PENDING.value)
            .where(_ingredients_present())
        )
        return self.session.execute(stmt).scalar_one()

    def compare_and_set_status(
        self,
        record_id: UUID | str,
        expected: StagingStatus,
        new: StagingStatus,
    ) -> bool:
        """
        Move a row to a new status only if it is still in the expected one.

        Returns:
            True if this call performed the transition.
        """
        stmt = (
            update(StagingRecordDB)
            .where(StagingRecordDB.id == str(record_id))
            .where(StagingRecordDB.status == expected.value)
            .values(status=new.value, updated_at=_utc_now())
        )
        result = self.session.execute(stmt)
        return result.rowcount == 1

    def set_status(
        self,
        record_id: UUID | str,
        status: StagingStatus,
        error_message: str | None = None,
        processed_product_id: UUID | str | None = None,
    ) -> None:
        stmt = (
            update(StagingRecordDB)
            .where(StagingRecordDB.id == str(record_id))
            .values(
                status=status.value,
                error_message=error_message,
                processed_product_id=str(processed_product_id) if processed_product_id else None,
                updated_at=_utc_now(),
            )
        )
        self.session.execute(stmt)

    def reset_failed(self) -> int:
        """Move every failed row back to pending. Returns the number reset."""
        stmt = (
            update(StagingRecordDB)
            .where(StagingRecordDB.status == StagingStatus.FAILED.value)
            .values(status=StagingStatus.PENDING.value, error_message=None, updated_at=_utc_now())
        )
        return self.session.execute(stmt).rowcount

    def _missing_ingredients_stmt(self, source: str) -> Select:
        return (
            select(StagingRecordDB)
            .where(StagingRecordDB.source == source)
            .where(
                StagingRecordDB.status.in_(
                    [StagingStatus.PENDING.value, StagingStatus.PROCESSED.value]
                )
            )
            .where(_ingredients_missing())
        )

    def list_missing_ingredients(self, source: str, limit: int) -> list[StagingRecord]:
        """List pending/processed rows of a source that still lack ingredient text."""
        stmt = self._missing_ingredients_stmt(source).order_by(StagingRecordDB.created_at).limit(limit)
        return [self._to_domain(r) for r in self.session.execute(stmt).scalars().all()]

    def count_missing_ingredients(self, source: str) -> int:
        stmt = select(func.count()).select_from(self._missing_ingredients_stmt(source).subquery())
        return self.session.execute(stmt).scalar_one()

    def update_raw_data(self, record_id: UUID | str, raw: RawProductData) -> None:
        stmt = (
            update(StagingRecordDB)
            .where(StagingRecordDB.id == str(record_id))
            .values(raw_data=raw.model_dump(mode="json"), updated_at=_utc_now())
        )
        self.session.execute(stmt)

    def count_by_status(self) -> dict[str, int]:
        """Count rows per status, including statuses with no rows."""
        stmt = select(StagingRecordDB.status, func.count()).group_by(StagingRecordDB.status)
        counts = {status.value: 0 for status in StagingStatus}
        for status, count in self.session.execute(stmt).all():
            counts[status] = count
        counts["total"] = sum(counts[s.value] for s in StagingStatus)
        return counts

    def _to_domain(self, db_record: StagingRecordDB) -> StagingRecord:
        return StagingRecord(
            id=UUID(db_record.id),
            source=db_record.source,
            source_id=db_record.source_id,
            source_url=db_record.source_url,
            raw_data=RawProductData.model_validate(db_record.raw_data),
            status=StagingStatus(db_record.status),
            error_message=db_record.error_message,
            processed_product_id=(
                UUID(db_record.processed_product_id) if db_record.processed_product_id else None
            ),
            created_at=db_record.created_at,
            updated_at=db_record.updated_at,
        )


class ProductRepository:
    """Repository for catalog products."""

    def __init__(self, session: Session):
        self.session = session

    def create(self, product: ProcessedProduct) -> Product:
        """
        Insert a catalog product.

        Raises:
            IntegrityError: If (name_en, brand_en) already exists ignoring case.
        """
        data = product.model_dump(mode="json", include=set(ProcessedProduct.model_fields))
        # The lower() unique index does not trim
        data["name_en"] = data["name_en"].strip()
        data["brand_en"] = data["brand_en"].strip()
        db_product = ProductDB(**data)
        self.session.add(db_product)
        self.session.flush()
        return self._to_domain(db_product)

    def get_by_id(self, product_id: UUID | str) -> Product | None:
        db_product = self.session.get(ProductDB, str(product_id))
        return self._to_domain(db_product) if db_product else None

    def find_by_name_brand(self, name_en: str, brand_en: str) -> Product | None:
        """Case-insensitive exact lookup on (name_en, brand_en)."""
        stmt = select(ProductDB).where(
            func.lower(ProductDB.name_en) == name_en.strip().lower(),
            func.lower(ProductDB.brand_en) == brand_en.strip().lower(),
        )
        db_product = self.session.execute(stmt).scalars().first()
        return self._to_domain(db_product) if db_product else None

    def update_ingredients_raw(self, product_id: UUID | str, ingredients_raw: str) -> None:
        stmt = (
            update(ProductDB)
            .where(ProductDB.id == str(product_id))
            .values(ingredients_raw=ingredients_raw, updated_at=_utc_now())
        )
        self.session.execute(stmt)

    def list_page(self, offset: int, limit: int) -> list[Product]:
        stmt = select(ProductDB).order_by(ProductDB.created_at, ProductDB.id).offset(offset).limit(limit)
        return [self._to_domain(p) for p in self.session.execute(stmt).scalars().all()]

    def list_with_ingredients_page(self, offset: int, limit: int) -> list[tuple[str, str]]:
        """Page through (id, ingredients_raw) of products that have ingredient text."""
        stmt = (
            select(ProductDB.id, ProductDB.ingredients_raw)
            .where(ProductDB.ingredients_raw.is_not(None))
            .where(ProductDB.ingredients_raw != "")
            .order_by(ProductDB.created_at, ProductDB.id)
            .offset(offset)
            .limit(limit)
        )
        return [(row[0], row[1]) for row in self.session.execute(stmt).all()]

    def count_with_ingredients(self) -> int:
        stmt = (
            select(func.count())
            .select_from(ProductDB)
            .where(ProductDB.ingredients_raw.is_not(None))
            .where(ProductDB.ingredients_raw != "")
        )
        return self.session.execute(stmt).scalar_one()

    def list_by_ids(self, product_ids: Iterable[UUID | str]) -> list[Product]:
        ids = [str(pid) for pid in product_ids]
        if not ids:
            return []
        stmt = select(ProductDB).where(ProductDB.id.in_(ids))
        return [self._to_domain(p) for p in self.session.execute(stmt).scalars().all()]

    def list_by_brands(self, brands: list[str], limit: int) -> list[Product]:
        lowered = [brand.strip().lower() for brand in brands]
        stmt = select(ProductDB).where(func.lower(ProductDB.brand_en).in_(lowered)).limit(limit)
        return [self._to_domain(p) for p in self.session.execute(stmt).scalars().all()]

    def list_priced_by_rating(self, offset: int, limit: int) -> list[Product]:
        """Products with a USD price, best rated first (unrated last)."""
        stmt = (
            select(ProductDB)
            .where(ProductDB.price_usd.is_not(None))
            .order_by(ProductDB.rating_avg.desc().nulls_last(), ProductDB.id)
            .offset(offset)
            .limit(limit)
        )
        return [self._to_domain(p) for p in self.session.execute(stmt).scalars().all()]

    def count(self) -> int:
        return self.session.execute(select(func.count()).select_from(ProductDB)).scalar_one()

    def count_brands(self) -> int:
        stmt = select(func.count(func.distinct(ProductDB.brand_en)))
        return self.session.execute(stmt).scalar_one()

    def count_by_category(self) -> dict[str, int]:
        stmt = select(ProductDB.category, func.count()).group_by(ProductDB.category)
        return {category: count for category, count in self.session.execute(stmt).all()}

    def count_missing_description(self) -> int:
        stmt = (
            select(func.count())
            .select_from(ProductDB)
            .where(or_(ProductDB.description_en.is_(None), ProductDB.description_en == ""))
        )
        return self.session.execute(stmt).scalar_one()

    def count_missing_korean_name(self) -> int:
        stmt = select(func.count()).select_from(ProductDB).where(ProductDB.name_ko.is_(None))
        return self.session.execute(stmt).scalar_one()

    def _to_domain(self, db_product: ProductDB) -> Product:
        return Product(
            id=UUID(db_product.id),
            name_en=db_product.name_en,
            name_ko=db_product.name_ko,
            brand_en=db_product.brand_en,
            brand_ko=db_product.brand_ko,
            category=db_product.category,
            subcategory=db_product.subcategory,
            description_en=db_product.description_en or "",
            volume_ml=db_product.volume_ml,
            volume_display=db_product.volume_display,
            price_krw=db_product.price_krw,
            price_usd=db_product.price_usd,
            rating_avg=db_product.rating_avg,
            review_count=db_product.review_count or 0,
            pao_months=db_product.pao_months,
            shelf_life_months=db_product.shelf_life_months,
            image_url=db_product.image_url,
            is_verified=db_product.is_verified,
            ingredients_raw=db_product.ingredients_raw,
            spf_rating=db_product.spf_rating,
            pa_rating=db_product.pa_rating,
            sunscreen_type=db_product.sunscreen_type,
            white_cast=db_product.white_cast,
            finish=db_product.finish,
            under_makeup=db_product.under_makeup,
            water_resistant=db_product.water_resistant,
            created_at=db_product.created_at,
            updated_at=db_product.updated_at,
        )


class IngredientRepository:
    """Repository for canonical ingredients."""

    def __init__(self, session: Session):
        self.session = session

    def create(self, ingredient: Ingredient) -> Ingredient:
        """
        Insert an ingredient.

        Raises:
            IntegrityError: If the INCI name already exists ignoring case.
        """
        db_ingredient = IngredientDB(
            id=str(ingredient.id),
            name_inci=ingredient.name_inci,
            name_en=ingredient.name_en,
            function=ingredient.function,
            is_active=ingredient.is_active,
            is_fragrance=ingredient.is_fragrance,
            safety_rating=ingredient.safety_rating,
            comedogenic_rating=ingredient.comedogenic_rating,
            created_at=ingredient.created_at,
        )
        self.session.add(db_ingredient)
        self.session.flush()
        return self._to_domain(db_ingredient)

    def get_by_id(self, ingredient_id: UUID | str) -> Ingredient | None:
        db_ingredient = self.session.get(IngredientDB, str(ingredient_id))
        return self._to_domain(db_ingredient) if db_ingredient else None

    def find_by_name(self, *names: str) -> Ingredient | None:
        """Case-insensitive exact lookup against any of the given INCI names."""
        lowered = list({n.strip().lower() for n in names if n and n.strip()})
        if not lowered:
            return None
        stmt = select(IngredientDB).where(func.lower(IngredientDB.name_inci).in_(lowered)).limit(1)
        db_ingredient = self.session.execute(stmt).scalars().first()
        return self._to_domain(db_ingredient) if db_ingredient else None

    def list_names_page(self, offset: int, limit: int) -> list[tuple[str, str]]:
        """Page through (id, name_inci) pairs."""
        stmt = (
            select(IngredientDB.id, IngredientDB.name_inci)
            .order_by(IngredientDB.id)
            .offset(offset)
            .limit(limit)
        )
        return [(row[0], row[1]) for row in self.session.execute(stmt).all()]

    def count(self) -> int:
        return self.session.execute(select(func.count()).select_from(IngredientDB)).scalar_one()

    def _to_domain(self, db_ingredient: IngredientDB) -> Ingredient:
        return Ingredient(
            id=UUID(db_ingredient.id),
            name_inci=db_ingredient.name_inci,
            name_en=db_ingredient.name_en,
            function=db_ingredient.function,
            is_active=db_ingredient.is_active,
            is_fragrance=db_ingredient.is_fragrance,
            safety_rating=db_ingredient.safety_rating,
            comedogenic_rating=db_ingredient.comedogenic_rating,
            created_at=db_ingredient.created_at,
        )


class ProductIngredientRepository:
    """Repository for product-ingredient links."""

    def __init__(self, session: Session):
        self.session = session

    def count_for_product(self, product_id: UUID | str) -> int:
        stmt = (
            select(func.count())
            .select_from(ProductIngredientDB)
            .where(ProductIngredientDB.product_id == str(product_id))
        )
        return self.session.execute(stmt).scalar_one()

    def linked_product_ids(self) -> set[str]:
        stmt = select(ProductIngredientDB.product_id).distinct()
        return set(self.session.execute(stmt).scalars().all())

    def insert_links(self, links: list[ProductIngredientLink]) -> int:
        """Insert links, ignoring any (product, ingredient) pair that already exists."""
        rows = [
            {
                "product_id": str(link.product_id),
                "ingredient_id": str(link.ingredient_id),
                "position": link.position,
            }
            for link in links
        ]
        return insert_ignore(self.session, ProductIngredientDB, rows)

    def list_for_product(self, product_id: UUID | str) -> list[ProductIngredientLink]:
        stmt = (
            select(ProductIngredientDB)
            .where(ProductIngredientDB.product_id == str(product_id))
            .order_by(ProductIngredientDB.position)
        )
        return [
            ProductIngredientLink(
                product_id=UUID(row.product_id),
                ingredient_id=UUID(row.ingredient_id),
                position=row.position,
            )
            for row in self.session.execute(stmt).scalars().all()
        ]

    def count(self) -> int:
        return self.session.execute(
            select(func.count()).select_from(ProductIngredientDB)
        ).scalar_one()


class RetailerRepository:
    """Repository for retailer reference data."""

    def __init__(self, session: Session):
        self.session = session

    def ensure_defaults(self) -> int:
        """Seed one row per known retailer. Returns the number of rows added."""
        rows = [{"slug": r.value, "name": r.display_name} for r in Retailer]
        return insert_ignore(self.session, RetailerDB, rows)

    def get_by_slug(self, retailer: Retailer | str) -> RetailerRecord | None:
        slug = retailer.value if isinstance(retailer, Retailer) else retailer
        stmt = select(RetailerDB).where(RetailerDB.slug == slug)
        db_retailer = self.session.execute(stmt).scalar_one_or_none()
        return self._to_domain(db_retailer) if db_retailer else None

    def list_all(self) -> list[RetailerRecord]:
        stmt = select(RetailerDB).order_by(RetailerDB.name)
        return [self._to_domain(r) for r in self.session.execute(stmt).scalars().all()]

    def _to_domain(self, db_retailer: RetailerDB) -> RetailerRecord:
        return RetailerRecord(
            id=UUID(db_retailer.id),
            slug=Retailer(db_retailer.slug),
            name=db_retailer.name,
        )


class PriceRepository:
    """Repository for current prices and price history."""

    def __init__(self, session: Session):
        self.session = session

    def get(self, product_id: UUID | str, retailer_id: UUID | str) -> ProductPrice | None:
        stmt = select(ProductPriceDB).where(
            ProductPriceDB.product_id == str(product_id),
            ProductPriceDB.retailer_id == str(retailer_id),
        )
        db_price = self.session.execute(stmt).scalar_one_or_none()
        return self._to_domain(db_price) if db_price else None

    def create(self, price: ProductPrice) -> ProductPrice:
        """
        Insert a price row.

        Raises:
            IntegrityError: If a row for (product, retailer) already exists.
        """
        db_price = ProductPriceDB(
            id=str(price.id),
            product_id=str(price.product_id),
            retailer_id=str(price.retailer_id),
            price_usd=price.price_usd,
            price_krw=price.price_krw,
            url=price.url,
            in_stock=price.in_stock,
            last_checked=price.last_checked,
        )
        self.session.add(db_price)
        self.session.flush()
        return self._to_domain(db_price)

    def update(self, price: ProductPrice) -> ProductPrice:
        db_price = self.session.get(ProductPriceDB, str(price.id))
        if db_price is None:
            raise ValueError(f"ProductPrice with id {price.id} not found")

        db_price.price_usd = price.price_usd
        db_price.price_krw = price.price_krw
        db_price.url = price.url
        db_price.in_stock = price.in_stock
        db_price.last_checked = price.last_checked

        self.session.flush()
        return self._to_domain(db_price)

    def add_history(self, entry: PriceHistoryEntry) -> None:
        self.session.add(
            PriceHistoryDB(
                id=str(entry.id),
                product_id=str(entry.product_id),
                retailer=entry.retailer,
                price=entry.price,
                currency=entry.currency,
                recorded_at=entry.recorded_at,
            )
        )
        self.session.flush()

    def list_history(self, product_id: UUID | str) -> list[PriceHistoryEntry]:
        stmt = (
            select(PriceHistoryDB)
            .where(PriceHistoryDB.product_id == str(product_id))
            .order_by(PriceHistoryDB.recorded_at)
        )
        return [
            PriceHistoryEntry(
                id=UUID(row.id),
                product_id=UUID(row.product_id),
                retailer=row.retailer,
                price=row.price,
                currency=row.currency,
                recorded_at=row.recorded_at,
            )
            for row in self.session.execute(stmt).scalars().all()
        ]

    def product_ids_checked_since(self, retailer_id: UUID | str, since: datetime) -> set[str]:
        stmt = select(ProductPriceDB.product_id).where(
            ProductPriceDB.retailer_id == str(retailer_id),
            ProductPriceDB.last_checked >= since,
        )
        return set(self.session.execute(stmt).scalars().all())

    def count(self) -> int:
        return self.session.execute(select(func.count()).select_from(ProductPriceDB)).scalar_one()

    def count_checked_before(self, before: datetime) -> int:
        stmt = (
            select(func.count())
            .select_from(ProductPriceDB)
            .where(ProductPriceDB.last_checked < before)
        )
        return self.session.execute(stmt).scalar_one()

    def count_by_retailer(self) -> dict[str, int]:
        """Number of price rows per retailer display name."""
        stmt = (
            select(RetailerDB.name, func.count(ProductPriceDB.id))
            .join(ProductPriceDB, ProductPriceDB.retailer_id == RetailerDB.id)
            .group_by(RetailerDB.name)
        )
        return {name: count for name, count in self.session.execute(stmt).all()}

    def _to_domain(self, db_price: ProductPriceDB) -> ProductPrice:
        return ProductPrice(
            id=UUID(db_price.id),
            product_id=UUID(db_price.product_id),
            retailer_id=UUID(db_price.retailer_id),
            price_usd=db_price.price_usd,
            price_krw=db_price.price_krw,
            url=db_price.url,
            in_stock=db_price.in_stock,
            last_checked=db_price.last_checked,
        )


class PipelineRunRepository:
    """Repository for pipeline run records."""

    def __init__(self, session: Session):
        self.session = session

    def create(self, run: PipelineRun) -> PipelineRun:
        db_run = PipelineRunDB(id=str(run.id))
        self._apply(db_run, run)
        self.session.add(db_run)
        self.session.flush()
        return self._to_domain(db_run)

    def get_by_id(self, run_id: UUID | str) -> PipelineRun | None:
        db_run = self.session.get(PipelineRunDB, str(run_id))
        return self._to_domain(db_run) if db_run else None

    def update(self, run: PipelineRun) -> PipelineRun:
        db_run = self.session.get(PipelineRunDB, str(run.id))
        if db_run is None:
            raise ValueError(f"PipelineRun with id {run.id} not found")
        self._apply(db_run, run)
        self.session.flush()
        return self._to_domain(db_run)

    def list_recent(self, limit: int = 20, run_type: PipelineRunType | None = None) -> list[PipelineRun]:
        stmt = select(PipelineRunDB).order_by(PipelineRunDB.started_at.desc()).limit(limit)
        if run_type is not None:
            stmt = stmt.where(PipelineRunDB.run_type == run_type.value)
        return [self._to_domain(r) for r in self.session.execute(stmt).scalars().all()]

    def _apply(self, db_run: PipelineRunDB, run: PipelineRun) -> None:
        db_run.source = run.source
        db_run.run_type = run.run_type.value
        db_run.status = run.status.value
        db_run.products_scraped = run.products_scraped
        db_run.products_processed = run.products_processed
        db_run.products_failed = run.products_failed
        db_run.products_duplicates = run.products_duplicates
        db_run.estimated_cost_usd = run.estimated_cost_usd
        db_run.metadata_json = dict(run.metadata)
        db_run.started_at = run.started_at
        db_run.completed_at = run.completed_at

    def _to_domain(self, db_run: PipelineRunDB) -> PipelineRun:
        return PipelineRun(
            id=UUID(db_run.id),
            source=db_run.source,
            run_type=PipelineRunType(db_run.run_type),
            status=PipelineRunStatus(db_run.status),
            products_scraped=db_run.products_scraped or 0,
            products_processed=db_run.products_processed or 0,
            products_failed=db_run.products_failed or 0,
            products_duplicates=db_run.products_duplicates or 0,
            estimated_cost_usd=db_run.estimated_cost_usd or 0.0,
            metadata=dict(db_run.metadata_json or {}),
            started_at=db_run.started_at,
            completed_at=db_run.completed_at,
        )
