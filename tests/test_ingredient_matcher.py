"""Tests for ingredient resolution and enrichment."""

import json
from unittest.mock import patch
from uuid import UUID

import pytest
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from conftest import FakeAIClient
from kbeauty_pipeline.core.enums import IngredientMatchType
from kbeauty_pipeline.core.schema import Ingredient
from kbeauty_pipeline.db.repositories import IngredientRepository
from kbeauty_pipeline.services.ai.client import AIServiceError
from kbeauty_pipeline.services.ingredients.matcher import (
    DEFAULT_COMEDOGENIC_RATING,
    DEFAULT_SAFETY_RATING,
    IngredientCache,
    IngredientMatcher,
    build_enriched_ingredient,
    canonical_alias,
)


def _enrichment(**overrides) -> str:
    data = {
        "name_en": "Glycerin",
        "function": "humectant",
        "is_active": False,
        "is_fragrance": False,
        "safety_rating": 5,
        "comedogenic_rating": 0,
    }
    data.update(overrides)
    return json.dumps(data)


class TestCanonicalAlias:
    """Tests for the alias table."""

    def test_water_variants(self) -> None:
        assert canonical_alias("Water") == "Aqua"
        assert canonical_alias("  aqua/water ") == "Aqua"
        assert canonical_alias("Purified Water") == "Aqua"

    def test_fragrance_variants(self) -> None:
        assert canonical_alias("Parfum") == "Fragrance (Parfum)"
        assert canonical_alias("fragrance") == "Fragrance (Parfum)"

    def test_unknown_name(self) -> None:
        assert canonical_alias("Centella Asiatica Extract") is None


class TestIngredientCache:
    """Tests for the per-run ingredient cache."""

    def test_keys_are_case_insensitive(self) -> None:
        cache = IngredientCache()
        cache.set("Niacinamide", "abc")

        assert cache.get("niacinamide") == "abc"
        assert cache.get("  NIACINAMIDE ") == "abc"
        assert cache.size == 1

    def test_load_from_store(self, session: Session) -> None:
        repo = IngredientRepository(session)
        created = repo.create(Ingredient(name_inci="Panthenol"))
        session.commit()

        cache = IngredientCache()
        cache.load(session)

        assert cache.loaded
        assert cache.get("panthenol") == str(created.id)

    def test_load_is_noop_once_loaded(self, session: Session) -> None:
        cache = IngredientCache()
        cache.load(session)

        IngredientRepository(session).create(Ingredient(name_inci="Allantoin"))
        session.commit()
        cache.load(session)

        assert cache.get("allantoin") is None


class TestBuildEnrichedIngredient:
    """Tests for coercing enrichment output."""

    def test_ratings_are_clamped(self) -> None:
        ingredient = build_enriched_ingredient(
            "Alcohol Denat.", {"safety_rating": 9, "comedogenic_rating": -2}
        )
        assert ingredient.safety_rating == 5
        assert ingredient.comedogenic_rating == 0

    def test_missing_fields_use_defaults(self) -> None:
        ingredient = build_enriched_ingredient("Betaine", {"safety_rating": "high"})

        assert ingredient.name_en == "Betaine"
        assert ingredient.function is None
        assert ingredient.is_active is False
        assert ingredient.safety_rating == DEFAULT_SAFETY_RATING
        assert ingredient.comedogenic_rating == DEFAULT_COMEDOGENIC_RATING

    def test_non_finite_ratings_use_defaults(self) -> None:
        ingredient = build_enriched_ingredient(
            "Snail Secretion Filtrate", {"safety_rating": float("inf"), "comedogenic_rating": float("nan")}
        )

        assert ingredient.safety_rating == DEFAULT_SAFETY_RATING
        assert ingredient.comedogenic_rating == DEFAULT_COMEDOGENIC_RATING


class TestIngredientMatcher:
    """Tests for IngredientMatcher.resolve."""

    @pytest.mark.asyncio
    async def test_overflowing_enrichment_still_creates(self, session: Session) -> None:
        client = FakeAIClient(replies=['{"function": "soothing", "safety_rating": 1e999}'])
        matcher = IngredientMatcher(session, IngredientCache(), client=client)

        resolution = await matcher.resolve("Snail Secretion Filtrate")

        assert resolution.match_type == IngredientMatchType.CREATED
        stored = IngredientRepository(session).get_by_id(resolution.ingredient_id)
        assert stored.safety_rating == DEFAULT_SAFETY_RATING
        assert stored.function == "soothing"

    @pytest.mark.asyncio
    async def test_creates_unknown_ingredient_with_enrichment(self, session: Session) -> None:
        client = FakeAIClient(replies=[_enrichment()])
        matcher = IngredientMatcher(session, IngredientCache(), client=client)

        resolution = await matcher.resolve("Glycerin")

        assert resolution.match_type == IngredientMatchType.CREATED
        stored = IngredientRepository(session).get_by_id(resolution.ingredient_id)
        assert stored is not None
        assert stored.function == "humectant"
        assert stored.safety_rating == 5
        assert matcher.cost_tracker.calls == 1

    @pytest.mark.asyncio
    async def test_second_lookup_hits_cache(self, session: Session) -> None:
        client = FakeAIClient(replies=[_enrichment()])
        matcher = IngredientMatcher(session, IngredientCache(), client=client)

        first = await matcher.resolve("Glycerin")
        second = await matcher.resolve("GLYCERIN")

        assert second.match_type == IngredientMatchType.EXACT
        assert second.ingredient_id == first.ingredient_id
        assert len(client.calls) == 1

    @pytest.mark.asyncio
    async def test_alias_resolves_to_canonical(self, session: Session) -> None:
        matcher = IngredientMatcher(session, IngredientCache())

        aqua = await matcher.resolve("Aqua")
        water = await matcher.resolve("Water")

        assert aqua.match_type == IngredientMatchType.CREATED
        assert water.match_type == IngredientMatchType.FUZZY
        assert water.ingredient_id == aqua.ingredient_id
        assert IngredientRepository(session).count() == 1

    @pytest.mark.asyncio
    async def test_alias_creates_canonical_name(self, session: Session) -> None:
        matcher = IngredientMatcher(session, IngredientCache())

        resolution = await matcher.resolve("Water")

        stored = IngredientRepository(session).get_by_id(resolution.ingredient_id)
        assert stored.name_inci == "Aqua"

    @pytest.mark.asyncio
    async def test_existing_row_matched_without_cache(self, session: Session) -> None:
        existing = IngredientRepository(session).create(Ingredient(name_inci="Niacinamide"))
        session.commit()
        matcher = IngredientMatcher(session, IngredientCache())

        resolution = await matcher.resolve("niacinamide")

        assert resolution.match_type == IngredientMatchType.EXACT
        assert resolution.ingredient_id == existing.id

    @pytest.mark.asyncio
    async def test_enrichment_failure_creates_minimal_row(
        self, session: Session, failing_client: FakeAIClient
    ) -> None:
        matcher = IngredientMatcher(session, IngredientCache(), client=failing_client)

        resolution = await matcher.resolve("Madecassoside")

        stored = IngredientRepository(session).get_by_id(resolution.ingredient_id)
        assert resolution.match_type == IngredientMatchType.CREATED
        assert stored.name_en == "Madecassoside"
        assert stored.safety_rating == DEFAULT_SAFETY_RATING
        assert stored.comedogenic_rating == DEFAULT_COMEDOGENIC_RATING

    @pytest.mark.asyncio
    async def test_unparseable_enrichment_creates_minimal_row(self, session: Session) -> None:
        client = FakeAIClient(replies=["I am not sure about this one."])
        matcher = IngredientMatcher(session, IngredientCache(), client=client)

        resolution = await matcher.resolve("Adenosine")

        stored = IngredientRepository(session).get_by_id(resolution.ingredient_id)
        assert stored.function is None
        assert stored.safety_rating == DEFAULT_SAFETY_RATING
        # The call still cost tokens
        assert matcher.cost_tracker.calls == 1

    @pytest.mark.asyncio
    async def test_concurrent_creation_reuses_existing_row(self, session: Session) -> None:
        matcher = IngredientMatcher(session, IngredientCache())
        winner = IngredientRepository(session).create(Ingredient(name_inci="Ceramide NP"))
        session.commit()

        # Simulate losing the race: the lookup misses, the insert collides
        with patch.object(matcher.repo, "find_by_name", side_effect=[None, winner]):
            resolution = await matcher.resolve("Ceramide NP")

        assert resolution.ingredient_id == winner.id
        assert IngredientRepository(session).count() == 1

    @pytest.mark.asyncio
    async def test_non_unique_integrity_error_propagates(self, session: Session) -> None:
        matcher = IngredientMatcher(session, IngredientCache())
        error = IntegrityError("INSERT", {}, Exception("NOT NULL constraint failed"))

        with patch.object(matcher.repo, "create", side_effect=error):
            with pytest.raises(IntegrityError):
                await matcher.resolve("Squalane")

    @pytest.mark.asyncio
    async def test_ai_service_error_is_not_raised(self, session: Session) -> None:
        client = FakeAIClient(replies=[AIServiceError("timeout")])
        matcher = IngredientMatcher(session, IngredientCache(), client=client)

        resolution = await matcher.resolve("Tocopherol")

        assert isinstance(resolution.ingredient_id, UUID)
