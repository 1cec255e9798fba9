"""INCI parsing, ingredient resolution and product linking."""

from kbeauty_pipeline.services.ingredients.linker import IngredientLinker, LinkBatchResult
from kbeauty_pipeline.services.ingredients.matcher import (
    KNOWN_ALIASES,
    IngredientCache,
    IngredientMatcher,
)
from kbeauty_pipeline.services.ingredients.parser import parse_inci

__all__ = [
    "IngredientCache",
    "IngredientLinker",
    "IngredientMatcher",
    "KNOWN_ALIASES",
    "LinkBatchResult",
    "parse_inci",
]
