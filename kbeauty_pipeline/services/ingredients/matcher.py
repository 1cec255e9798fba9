"""Resolution of parsed INCI names to canonical ingredient rows.

Names are resolved through an explicit per-run cache, then a small table
of well-known INCI aliases, then a case-insensitive store lookup. Names
that are still unknown are created, with model-generated metadata when
enrichment succeeds and a minimal row otherwise.
"""

import logging
import math
from typing import Any
from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from kbeauty_pipeline.core.enums import IngredientMatchType
from kbeauty_pipeline.core.schema import Ingredient, IngredientResolution
from kbeauty_pipeline.db.errors import is_unique_violation
from kbeauty_pipeline.db.repositories import IngredientRepository
from kbeauty_pipeline.services.ai.client import AIClient, AIServiceError, parse_json_object
from kbeauty_pipeline.services.ai.cost import CostTracker
from kbeauty_pipeline.services.ai.prompts import (
    ENRICHMENT_MAX_TOKENS,
    INGREDIENT_ENRICHMENT_PROMPT,
    build_enrichment_prompt,
)

logger = logging.getLogger(__name__)

CACHE_PAGE_SIZE = 1000
DEFAULT_SAFETY_RATING = 4
DEFAULT_COMEDOGENIC_RATING = 0

# Lowercase alternate spelling -> canonical INCI name
KNOWN_ALIASES: dict[str, str] = {
    "water": "Aqua",
    "aqua": "Aqua",
    "aqua/water": "Aqua",
    "water/aqua": "Aqua",
    "water (aqua)": "Aqua",
    "aqua (water)": "Aqua",
    "eau": "Aqua",
    "purified water": "Aqua",
    "deionized water": "Aqua",
    "fragrance": "Fragrance (Parfum)",
    "parfum": "Fragrance (Parfum)",
    "fragrance (parfum)": "Fragrance (Parfum)",
    "parfum (fragrance)": "Fragrance (Parfum)",
    "fragrance/parfum": "Fragrance (Parfum)",
    "sodium hyaluronate": "Sodium Hyaluronate",
    "hyaluronic acid": "Hyaluronic Acid",
    "retinol": "Retinol",
    "niacinamide": "Niacinamide",
    "ascorbic acid": "Ascorbic Acid",
    "vitamin c": "Ascorbic Acid",
    "l-ascorbic acid": "Ascorbic Acid",
    "tocopherol": "Tocopherol",
    "vitamin e": "Tocopherol",
    "alpha-tocopherol": "Tocopherol",
    "butylene glycol": "Butylene Glycol",
    "1,3-butylene glycol": "Butylene Glycol",
    "titanium dioxide": "Titanium Dioxide",
    "ci 77891": "Titanium Dioxide",
    "zinc oxide": "Zinc Oxide",
    "ci 77947": "Zinc Oxide",
}


def canonical_alias(name: str) -> str | None:
    """Canonical INCI name for a known alternate spelling, if any."""
    return KNOWN_ALIASES.get(name.strip().lower())


class IngredientCache:
    """
    Lowercase INCI name -> ingredient id, for one linking run.

    Loaded once from the store and kept current as ingredients are
    created. Pass the same instance to every matcher in a run.
    """

    def __init__(self) -> None:
        self._ids: dict[str, str] = {}
        self.loaded = False

    def load(self, session: Session) -> None:
        """Load every existing ingredient, in pages. No-op once loaded."""
        if self.loaded:
            return

        repo = IngredientRepository(session)
        offset = 0
        while True:
            page = repo.list_names_page(offset, CACHE_PAGE_SIZE)
            for ingredient_id, name_inci in page:
                self._ids[name_inci.lower()] = ingredient_id
            if len(page) < CACHE_PAGE_SIZE:
                break
            offset += CACHE_PAGE_SIZE

        self.loaded = True
        logger.info(f"Loaded {len(self._ids)} ingredients into cache")

    def get(self, name: str) -> str | None:
        return self._ids.get(name.strip().lower())

    def set(self, name: str, ingredient_id: UUID | str) -> None:
        self._ids[name.strip().lower()] = str(ingredient_id)

    @property
    def size(self) -> int:
        return len(self._ids)


def _clamped_int(value: Any, low: int, high: int, default: int) -> int:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return default
    if isinstance(value, float) and not math.isfinite(value):
        return default
    return min(high, max(low, int(round(value))))


def build_enriched_ingredient(name_inci: str, data: dict[str, Any]) -> Ingredient:
    """Build an ingredient from enrichment output, clamping ratings into range."""
    name_en = data.get("name_en")
    function = data.get("function")
    is_active = data.get("is_active")
    is_fragrance = data.get("is_fragrance")
    return Ingredient(
        name_inci=name_inci,
        name_en=name_en.strip() if isinstance(name_en, str) and name_en.strip() else name_inci,
        function=function.strip() if isinstance(function, str) and function.strip() else None,
        is_active=is_active if isinstance(is_active, bool) else False,
        is_fragrance=is_fragrance if isinstance(is_fragrance, bool) else False,
        safety_rating=_clamped_int(data.get("safety_rating"), 1, 5, DEFAULT_SAFETY_RATING),
        comedogenic_rating=_clamped_int(
            data.get("comedogenic_rating"), 0, 5, DEFAULT_COMEDOGENIC_RATING
        ),
    )


def build_minimal_ingredient(name_inci: str) -> Ingredient:
    """Ingredient row used when enrichment is unavailable or fails."""
    return Ingredient(
        name_inci=name_inci,
        name_en=name_inci,
        is_active=False,
        is_fragrance=False,
        safety_rating=DEFAULT_SAFETY_RATING,
        comedogenic_rating=DEFAULT_COMEDOGENIC_RATING,
    )


class IngredientMatcher:
    """Resolves ingredient names to ids, creating ingredients as needed."""

    def __init__(
        self,
        session: Session,
        cache: IngredientCache,
        client: AIClient | None = None,
        cost_tracker: CostTracker | None = None,
    ):
        self.session = session
        self.cache = cache
        self.client = client
        self.cost_tracker = cost_tracker or CostTracker()
        self.repo = IngredientRepository(session)

    async def resolve(self, name: str) -> IngredientResolution:
        """
        Resolve one INCI name.

        Order: cache, alias then cache, store lookup, creation.

        Returns:
            The ingredient id and how it was matched.
        """
        key = name.strip()

        cached = self.cache.get(key)
        if cached:
            return IngredientResolution(ingredient_id=cached, match_type=IngredientMatchType.EXACT)

        canonical = canonical_alias(key)
        if canonical:
            alias_id = self.cache.get(canonical)
            if alias_id:
                self.cache.set(key, alias_id)
                return IngredientResolution(
                    ingredient_id=alias_id, match_type=IngredientMatchType.FUZZY
                )

        resolved_name = canonical or key
        existing = self.repo.find_by_name(resolved_name)
        if existing is not None:
            self._remember(key, canonical, existing.id)
            return IngredientResolution(
                ingredient_id=existing.id, match_type=IngredientMatchType.EXACT
            )

        ingredient_id = await self._create(resolved_name)
        self._remember(key, canonical, ingredient_id)
        return IngredientResolution(
            ingredient_id=ingredient_id, match_type=IngredientMatchType.CREATED
        )

    def _remember(self, key: str, canonical: str | None, ingredient_id: UUID | str) -> None:
        self.cache.set(key, ingredient_id)
        if canonical:
            self.cache.set(canonical, ingredient_id)

    async def _enrich(self, name_inci: str) -> Ingredient:
        if self.client is None:
            return build_minimal_ingredient(name_inci)

        try:
            completion = await self.client.complete(
                INGREDIENT_ENRICHMENT_PROMPT,
                build_enrichment_prompt(name_inci),
                max_tokens=ENRICHMENT_MAX_TOKENS,
            )
        except AIServiceError as e:
            logger.warning(f"Enrichment failed for '{name_inci}', creating minimal row: {e}")
            return build_minimal_ingredient(name_inci)

        self.cost_tracker.record(completion.usage)
        try:
            return build_enriched_ingredient(name_inci, parse_json_object(completion.text))
        except ValueError as e:
            logger.warning(f"Unusable enrichment for '{name_inci}', creating minimal row: {e}")
            return build_minimal_ingredient(name_inci)

    async def _create(self, name_inci: str) -> UUID:
        """
        Insert a new ingredient and commit.

        If a concurrent worker created the same name first, the uniqueness
        violation is caught and the existing row is used instead.
        """
        ingredient = await self._enrich(name_inci)

        try:
            created = self.repo.create(ingredient)
            self.session.commit()
            logger.debug(f"Created ingredient '{name_inci}'")
            return created.id
        except IntegrityError as e:
            self.session.rollback()
            if not is_unique_violation(e):
                raise
            existing = self.repo.find_by_name(name_inci)
            if existing is None:
                raise
            logger.debug(f"Ingredient '{name_inci}' was created concurrently, reusing it")
            return existing.id
