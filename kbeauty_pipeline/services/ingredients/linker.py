"""Linking of catalog products to their ordered ingredients."""

import logging
from dataclasses import dataclass, field
from typing import Any
from uuid import UUID

from sqlalchemy.orm import Session

from kbeauty_pipeline.core.enums import IngredientMatchType
from kbeauty_pipeline.core.schema import ProductIngredientLink
from kbeauty_pipeline.db.repositories import ProductIngredientRepository, ProductRepository
from kbeauty_pipeline.services.ingredients.matcher import IngredientMatcher
from kbeauty_pipeline.services.ingredients.parser import parse_inci

logger = logging.getLogger(__name__)

PRODUCT_PAGE_SIZE = 200
MAX_SCAN = 10_000


@dataclass
class LinkBatchResult:
    """Counters for one linking batch."""

    linked: int = 0
    skipped: int = 0
    failed: int = 0
    ingredients_created: int = 0
    ingredients_matched: int = 0
    links_inserted: int = 0
    remaining: int = 0
    estimated_cost_usd: float = 0.0
    errors: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "linked": self.linked,
            "skipped": self.skipped,
            "failed": self.failed,
            "ingredients_created": self.ingredients_created,
            "ingredients_matched": self.ingredients_matched,
            "links_inserted": self.links_inserted,
            "remaining": self.remaining,
            "estimated_cost_usd": round(self.estimated_cost_usd, 4),
            "errors": self.errors[-20:],
        }


@dataclass
class ProductLinkResult:
    """Outcome of linking one product."""

    links_inserted: int = 0
    created: int = 0
    matched: int = 0
    skipped: bool = False


class IngredientLinker:
    """
    Parses product ingredient text and writes ordered product-ingredient links.

    Linking is idempotent: products that already have links are skipped and
    duplicate (product, ingredient) pairs are ignored on insert.
    """

    def __init__(self, session: Session, matcher: IngredientMatcher):
        self.session = session
        self.matcher = matcher
        self.products = ProductRepository(session)
        self.links = ProductIngredientRepository(session)

    def find_unlinked(self, limit: int) -> list[tuple[str, str]]:
        """
        Products with ingredient text and no links yet, oldest first.

        The scan stops after MAX_SCAN products so a huge catalog never
        turns one batch into a full table walk.
        """
        linked = self.links.linked_product_ids()
        found: list[tuple[str, str]] = []
        offset = 0

        while len(found) < limit and offset < MAX_SCAN:
            page = self.products.list_with_ingredients_page(offset, PRODUCT_PAGE_SIZE)
            for product_id, ingredients_raw in page:
                if product_id not in linked:
                    found.append((product_id, ingredients_raw))
                    if len(found) >= limit:
                        break
            if len(page) < PRODUCT_PAGE_SIZE:
                break
            offset += PRODUCT_PAGE_SIZE

        return found

    def count_unlinked(self) -> int:
        linked = self.links.linked_product_ids()
        total = self.products.count_with_ingredients()
        return max(0, total - len(linked))

    async def link_product(self, product_id: UUID | str, ingredients_raw: str) -> ProductLinkResult:
        """
        Link one product to its parsed ingredients.

        When an ingredient appears twice in the list, its first position is kept.
        """
        result = ProductLinkResult()

        if self.links.count_for_product(product_id) > 0:
            result.skipped = True
            return result

        parsed = parse_inci(ingredients_raw)
        if not parsed:
            result.skipped = True
            return result

        positions: dict[UUID, int] = {}
        for ingredient in parsed:
            resolution = await self.matcher.resolve(ingredient.name)
            if resolution.match_type == IngredientMatchType.CREATED:
                result.created += 1
            else:
                result.matched += 1
            positions.setdefault(resolution.ingredient_id, ingredient.position)

        links = [
            ProductIngredientLink(
                product_id=UUID(str(product_id)), ingredient_id=ingredient_id, position=position
            )
            for ingredient_id, position in positions.items()
        ]
        result.links_inserted = self.links.insert_links(links)
        self.session.commit()
        return result

    async def link_batch(self, limit: int = 50) -> LinkBatchResult:
        """Link up to `limit` unlinked products. Failures are per product."""
        batch = LinkBatchResult()

        self.matcher.cache.load(self.session)
        cost_before = self.matcher.cost_tracker.estimated_cost_usd

        for product_id, ingredients_raw in self.find_unlinked(limit):
            try:
                outcome = await self.link_product(product_id, ingredients_raw)
            except Exception as e:
                self.session.rollback()
                batch.failed += 1
                batch.errors.append(f"{product_id}: {e}")
                logger.error(f"Failed to link ingredients for product {product_id}: {e}")
                continue

            if outcome.skipped:
                batch.skipped += 1
                continue

            batch.linked += 1
            batch.ingredients_created += outcome.created
            batch.ingredients_matched += outcome.matched
            batch.links_inserted += outcome.links_inserted

        batch.remaining = self.count_unlinked()
        batch.estimated_cost_usd = self.matcher.cost_tracker.estimated_cost_usd - cost_before

        logger.info(
            f"Linked {batch.linked} products ({batch.links_inserted} links, "
            f"{batch.ingredients_created} new ingredients), {batch.failed} failed, "
            f"{batch.remaining} remaining"
        )
        return batch
