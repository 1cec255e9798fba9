"""Fuzzy matching of scraped retailer prices to catalog products."""

import logging
import re
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Literal
from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from kbeauty_pipeline.core.enums import PriceMatchMethod, Retailer
from kbeauty_pipeline.core.schema import PriceHistoryEntry, PriceMatch, ProductPrice, ScrapedPrice
from kbeauty_pipeline.db.errors import is_unique_violation
from kbeauty_pipeline.db.repositories import PriceRepository, ProductRepository, RetailerRepository

logger = logging.getLogger(__name__)

PRODUCT_PAGE_SIZE = 1000
CONTAINMENT_FLOOR = 0.7
FULL_CATALOG_THRESHOLD = 0.6
PRICE_CHANGE_EPSILON = 0.01

UpsertAction = Literal["insert", "update", "skip"]

_TRADEMARKS = re.compile(r"[™®©]")
_PARENTHETICAL = re.compile(r"\s*\([^)]*\)\s*")
_NON_ALNUM = re.compile(r"[^a-z0-9\s]")
_WHITESPACE = re.compile(r"\s+")


def normalize_text(value: str) -> str:
    """Lowercase, drop trademark symbols and parentheticals, keep [a-z0-9 ]."""
    text = _TRADEMARKS.sub("", value.lower())
    text = _PARENTHETICAL.sub(" ", text)
    text = _NON_ALNUM.sub(" ", text)
    return _WHITESPACE.sub(" ", text).strip()


def token_similarity(a: str, b: str) -> float:
    """Intersection over union of word tokens longer than one character."""
    tokens_a = {t for t in a.split(" ") if len(t) > 1}
    tokens_b = {t for t in b.split(" ") if len(t) > 1}
    if not tokens_a or not tokens_b:
        return 0.0
    return len(tokens_a & tokens_b) / len(tokens_a | tokens_b)


def brands_match(a: str, b: str) -> bool:
    """Brands are equal once normalized, or one contains the other."""
    na = normalize_text(a)
    nb = normalize_text(b)
    if not na or not nb:
        return na == nb
    return na == nb or na in nb or nb in na


@dataclass
class CatalogEntry:
    """In-memory view of a catalog product used for matching."""

    id: UUID
    name_en: str
    brand_en: str
    category: str
    name_normalized: str
    brand_normalized: str


@dataclass
class _Candidate:
    entry: CatalogEntry
    confidence: float
    method: PriceMatchMethod


class PriceMatcher:
    """
    Matches scraped prices against an in-memory copy of the catalog.

    Create one instance per pipeline run and call load_products() before
    matching; the retailer id cache lives on the instance.
    """

    def __init__(self, session: Session):
        self.session = session
        self.products: list[CatalogEntry] = []
        self.products_by_brand: dict[str, list[CatalogEntry]] = {}
        self.loaded = False
        self._retailer_ids: dict[Retailer, UUID] = {}
        self.prices = PriceRepository(session)

    def load_products(self) -> int:
        """Load the whole catalog, in pages. Returns the number of products."""
        repo = ProductRepository(self.session)
        self.products = []
        self.products_by_brand = {}

        offset = 0
        while True:
            page = repo.list_page(offset, PRODUCT_PAGE_SIZE)
            for product in page:
                entry = CatalogEntry(
                    id=product.id,
                    name_en=product.name_en,
                    brand_en=product.brand_en,
                    category=product.category.value,
                    name_normalized=normalize_text(product.name_en),
                    brand_normalized=normalize_text(product.brand_en),
                )
                self.products.append(entry)
                self.products_by_brand.setdefault(entry.brand_normalized, []).append(entry)
            if len(page) < PRODUCT_PAGE_SIZE:
                break
            offset += PRODUCT_PAGE_SIZE

        self.loaded = True
        logger.info(
            f"Loaded {len(self.products)} products, {len(self.products_by_brand)} brands for matching"
        )
        return len(self.products)

    def get_retailer_id(self, retailer: Retailer) -> UUID | None:
        """Retailer reference id, cached per matcher."""
        if retailer in self._retailer_ids:
            return self._retailer_ids[retailer]

        record = RetailerRepository(self.session).get_by_slug(retailer)
        if record is None:
            return None
        self._retailer_ids[retailer] = record.id
        return record.id

    def match(self, scraped: ScrapedPrice, min_confidence: float = 0.5) -> PriceMatch | None:
        """
        Find the catalog product a scraped price belongs to.

        Tiers, each tried only when the previous one found nothing good enough:
        exact normalized brand+name, brand bucket by name similarity, then
        brand+name similarity across the whole catalog.

        Returns:
            PriceMatch, or None below min_confidence or without any price.
        """
        if not self.loaded:
            raise RuntimeError("load_products() must be called before matching")
        if not scraped.price_usd and not scraped.price_krw:
            return None

        name_norm = normalize_text(scraped.product_name)
        brand_norm = normalize_text(scraped.brand)

        best: _Candidate | None = None

        for entry in self.products:
            if entry.brand_normalized == brand_norm and entry.name_normalized == name_norm:
                best = _Candidate(entry, 1.0, PriceMatchMethod.EXACT)
                break

        if best is None:
            for brand_key, entries in self.products_by_brand.items():
                if not brands_match(brand_key, brand_norm):
                    continue
                for entry in entries:
                    score = token_similarity(entry.name_normalized, name_norm)
                    if name_norm and (
                        name_norm in entry.name_normalized or entry.name_normalized in name_norm
                    ):
                        score = max(score, CONTAINMENT_FLOOR)
                    if score > (best.confidence if best else 0.0):
                        best = _Candidate(entry, score, PriceMatchMethod.BRAND_NAME)

        if best is None or best.confidence < FULL_CATALOG_THRESHOLD:
            full_scraped = f"{brand_norm} {name_norm}"
            for entry in self.products:
                score = token_similarity(
                    f"{entry.brand_normalized} {entry.name_normalized}", full_scraped
                )
                if score > (best.confidence if best else 0.0):
                    best = _Candidate(entry, score, PriceMatchMethod.FUZZY)

        if best is None or best.confidence < min_confidence:
            return None

        return PriceMatch(
            product_id=best.entry.id,
            product_name=best.entry.name_en,
            product_brand=best.entry.brand_en,
            retailer=scraped.retailer,
            price_usd=scraped.price_usd,
            price_krw=scraped.price_krw,
            url=scraped.url,
            in_stock=scraped.in_stock,
            confidence=round(best.confidence, 4),
            match_method=best.method,
        )

    def upsert(self, match: PriceMatch) -> UpsertAction:
        """
        Write a matched price and its history, then commit.

        An existing (product, retailer) row is updated in place and a history
        snapshot is added only when the USD price moved by more than a cent.
        A new row always gets an initial snapshot.
        """
        retailer_id = match.retailer_id or self.get_retailer_id(match.retailer)
        if retailer_id is None:
            raise ValueError(f"Retailer {match.retailer.value} is not in the retailers table")

        now = datetime.now(UTC)
        existing = self.prices.get(match.product_id, retailer_id)

        if existing is not None:
            price_changed = match.price_usd is not None and (
                existing.price_usd is None
                or abs(existing.price_usd - match.price_usd) > PRICE_CHANGE_EPSILON
            )
            existing.price_usd = match.price_usd
            existing.price_krw = match.price_krw
            existing.url = match.url
            existing.in_stock = match.in_stock
            existing.last_checked = now
            self.prices.update(existing)
            if price_changed:
                self._record_history(match, now)
            self.session.commit()
            return "update"

        try:
            self.prices.create(
                ProductPrice(
                    product_id=match.product_id,
                    retailer_id=retailer_id,
                    price_usd=match.price_usd,
                    price_krw=match.price_krw,
                    url=match.url,
                    in_stock=match.in_stock,
                    last_checked=now,
                )
            )
        except IntegrityError as e:
            self.session.rollback()
            if is_unique_violation(e):
                logger.debug(f"Price for {match.product_id} at {match.retailer.value} inserted concurrently")
                return "skip"
            raise

        self._record_history(match, now)
        self.session.commit()
        return "insert"

    def _record_history(self, match: PriceMatch, recorded_at: datetime) -> None:
        if match.price_usd is None:
            return
        self.prices.add_history(
            PriceHistoryEntry(
                product_id=match.product_id,
                retailer=match.retailer.display_name,
                price=match.price_usd,
                currency="USD",
                recorded_at=recorded_at,
            )
        )
