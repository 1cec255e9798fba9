"""AI extraction of raw scraped records into normalized catalog products.

The model reply is parsed leniently and every field is coerced and
validated here, so a partially wrong reply still yields a usable
product and raw values fill any field the model omitted.
"""

import logging
import math
import re
from dataclasses import dataclass
from typing import Any

from kbeauty_pipeline.core.enums import (
    DEFAULT_CATEGORY,
    Finish,
    PaRating,
    ProductCategory,
    SunscreenType,
    WhiteCast,
)
from kbeauty_pipeline.core.schema import ProcessedProduct, RawProductData
from kbeauty_pipeline.services.ai.client import AIClient, TokenUsage, parse_json_object
from kbeauty_pipeline.services.ai.prompts import (
    EXTRACTION_MAX_TOKENS,
    EXTRACTION_SYSTEM_PROMPT,
    build_extraction_prompt,
)

logger = logging.getLogger(__name__)

DEFAULT_SHELF_LIFE_MONTHS = 30
DESCRIPTION_FALLBACK_CHARS = 300

# Leading number of a string, so "150ml" reads as 150 and "4.5/5" as 4.5
LEADING_NUMBER_PATTERN = re.compile(r"\s*([-+]?(?:\d+\.?\d*|\.\d+)(?:[eE][-+]?\d+)?)")


class ExtractionError(Exception):
    """The model reply could not be turned into a product.

    Carries the token usage of the failed call so its cost is still counted.
    """

    def __init__(self, message: str, usage: TokenUsage | None = None):
        super().__init__(message)
        self.usage = usage or TokenUsage()


@dataclass
class ExtractionResult:
    """A normalized product and the token usage that produced it."""

    product: ProcessedProduct
    usage: TokenUsage


# =============================================================================
# Lenient coercion helpers
# =============================================================================


def as_string(value: Any) -> str:
    return value.strip() if isinstance(value, str) else ""


def as_string_or_none(value: Any) -> str | None:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def as_number_or_none(value: Any) -> float | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        try:
            number = float(value)
        except OverflowError:
            return None
        return number if math.isfinite(number) else None
    if isinstance(value, str):
        match = LEADING_NUMBER_PATTERN.match(value)
        if match is None:
            return None
        number = float(match.group(1))
        return number if math.isfinite(number) else None
    return None


def as_bool_or_none(value: Any) -> bool | None:
    return value if isinstance(value, bool) else None


def round_or_none(value: float | None, digits: int) -> float | None:
    return None if value is None else round(value, digits)


def as_int_or_none(value: Any) -> int | None:
    number = as_number_or_none(value)
    return None if number is None else int(round(number))


def _enum_or_none(enum_cls: type, value: Any) -> Any:
    try:
        return enum_cls(value) if isinstance(value, str) else None
    except ValueError:
        return None


def _first_not_none(*values: Any) -> Any:
    for value in values:
        if value is not None:
            return value
    return None


def normalize_extraction(parsed: dict[str, Any], raw: RawProductData) -> ProcessedProduct:
    """
    Coerce a parsed model reply into a ProcessedProduct.

    Raw values are used wherever the model omitted a field or returned
    something unusable. Categories outside the closed set fall back to
    moisturizer; sunscreen attributes are dropped for other categories.
    """
    category = _enum_or_none(ProductCategory, parsed.get("category")) or DEFAULT_CATEGORY
    is_sunscreen = category == ProductCategory.SUNSCREEN

    review_count = as_int_or_none(parsed.get("review_count"))
    if review_count is None:
        review_count = raw.review_count

    return ProcessedProduct(
        name_en=as_string(parsed.get("name_en")) or raw.name_en.strip(),
        name_ko=_first_not_none(as_string_or_none(parsed.get("name_ko")), raw.name_ko),
        brand_en=as_string(parsed.get("brand_en")) or raw.brand_en.strip(),
        brand_ko=_first_not_none(as_string_or_none(parsed.get("brand_ko")), raw.brand_ko),
        category=category,
        subcategory=as_string_or_none(parsed.get("subcategory")),
        description_en=(
            as_string(parsed.get("description_en"))
            or raw.description_raw[:DESCRIPTION_FALLBACK_CHARS]
        ),
        volume_ml=as_number_or_none(parsed.get("volume_ml")),
        volume_display=_first_not_none(
            as_string_or_none(parsed.get("volume_display")), raw.volume_display
        ),
        price_krw=_first_not_none(as_number_or_none(parsed.get("price_krw")), raw.price_krw),
        price_usd=_first_not_none(as_number_or_none(parsed.get("price_usd")), raw.price_usd),
        rating_avg=round_or_none(
            _first_not_none(as_number_or_none(parsed.get("rating_avg")), raw.rating_avg), 1
        ),
        review_count=review_count or 0,
        pao_months=as_int_or_none(parsed.get("pao_months")),
        shelf_life_months=_first_not_none(
            as_int_or_none(parsed.get("shelf_life_months")), DEFAULT_SHELF_LIFE_MONTHS
        ),
        image_url=_first_not_none(as_string_or_none(parsed.get("image_url")), raw.image_url),
        is_verified=False,
        ingredients_raw=_first_not_none(
            as_string_or_none(parsed.get("ingredients_raw")), raw.ingredients_raw
        ),
        spf_rating=as_int_or_none(parsed.get("spf_rating")) if is_sunscreen else None,
        pa_rating=_enum_or_none(PaRating, parsed.get("pa_rating")) if is_sunscreen else None,
        sunscreen_type=(
            _enum_or_none(SunscreenType, parsed.get("sunscreen_type")) if is_sunscreen else None
        ),
        white_cast=_enum_or_none(WhiteCast, parsed.get("white_cast")) if is_sunscreen else None,
        finish=_enum_or_none(Finish, parsed.get("finish")) if is_sunscreen else None,
        under_makeup=as_bool_or_none(parsed.get("under_makeup")) if is_sunscreen else None,
        water_resistant=as_bool_or_none(parsed.get("water_resistant")) if is_sunscreen else None,
    )


class ExtractionService:
    """Turns staged raw records into normalized products with one model call each."""

    def __init__(self, client: AIClient):
        self.client = client

    async def extract(self, raw: RawProductData) -> ExtractionResult:
        """
        Extract a normalized product from a raw record.

        Raises:
            AIServiceError: If the model call fails.
            ExtractionError: If the reply cannot be parsed into a product.
        """
        completion = await self.client.complete(
            EXTRACTION_SYSTEM_PROMPT,
            build_extraction_prompt(raw),
            max_tokens=EXTRACTION_MAX_TOKENS,
        )

        try:
            parsed = parse_json_object(completion.text)
        except ValueError as e:
            raise ExtractionError(str(e), usage=completion.usage) from e

        try:
            product = normalize_extraction(parsed, raw)
        except Exception as e:
            raise ExtractionError(f"Invalid product data: {e}", usage=completion.usage) from e

        logger.debug(f"Extracted '{product.brand_en} {product.name_en}' as {product.category.value}")
        return ExtractionResult(product=product, usage=completion.usage)
