"""Prompt templates for product extraction and ingredient enrichment."""

from kbeauty_pipeline.core.enums import ProductCategory
from kbeauty_pipeline.core.schema import RawProductData

PROMPT_VERSION = "1.0"

EXTRACTION_MAX_TOKENS = 2048
ENRICHMENT_MAX_TOKENS = 256

_CATEGORY_LIST = ", ".join(c.value for c in ProductCategory)

EXTRACTION_SYSTEM_PROMPT = f"""You normalize Korean skincare product data scraped from online retailers into a single JSON object for a product catalog.

Field rules:
- category: exactly one of: {_CATEGORY_LIST}
- subcategory: a short 2-3 word descriptor such as "gel moisturizer", "cleansing balm", "sheet mask" or "vitamin c serum"
- description_en: one or two factual sentences covering the key actives, what the product does and who it suits. No marketing superlatives.
- volume_ml: numeric volume in millilitres; convert fluid ounces at 29.5735 mL per fl oz. Use null for pads or sheets without a weight.
- pao_months: period after opening. Use the product data when it states one; otherwise 6 for serums, ampoules, sunscreens, masks, eye care, oils and spot treatments, and 12 for everything else.
- shelf_life_months: unopened shelf life, 30 when unknown.
- name_en: the cleaned English product name without retailer prefixes or suffixes and without the brand.
- brand_en: the brand with its proper casing, e.g. "COSRX", "Dr. Jart+".
- name_ko / brand_ko: Korean text as given, or null.
- rating_avg: the rating rounded to one decimal, or null. review_count: the count, or null.
- is_verified: always false.
- ingredients_raw: the raw ingredient string unchanged.
- Sunscreens only: spf_rating (number), pa_rating ("PA+", "PA++", "PA+++" or "PA++++"), sunscreen_type ("chemical", "physical" or "hybrid"), white_cast ("none", "minimal", "moderate" or "heavy"; zinc oxide or titanium dioxide suggest a cast), finish ("matte", "dewy", "natural" or "satin"), under_makeup (boolean), water_resistant (boolean). For every other category set these to null.

Reply with the JSON object only: no code fences and no commentary."""

EXTRACTION_PROMPT_TEMPLATE = """Normalize this product:

Product Name: {name_en}
Korean Name: {name_ko}
Brand: {brand_en}
Korean Brand: {brand_ko}
Category (from retailer): {category_raw}
Price (USD): {price_usd}
Price (KRW): {price_krw}
Description: {description_raw}
Ingredients: {ingredients_raw}
Volume: {volume_display}
Rating: {rating_avg}
Reviews: {review_count}
Image URL: {image_url}
Source: {source}
Source URL: {source_url}"""

INGREDIENT_ENRICHMENT_PROMPT = """You are a cosmetic chemist. Describe the given INCI ingredient as a JSON object with these keys:

- name_en: the plain English name (repeat the INCI name if it already is one)
- function: its main role on skin in 3 to 8 words
- is_active: true only for ingredients with a specific skin benefit; false for solvents, emulsifiers, preservatives, thickeners, fillers and fragrance
- is_fragrance: true for fragrance components such as parfum, linalool or limonene
- safety_rating: integer 1 (avoid) to 5 (excellent)
- comedogenic_rating: integer 0 (non-comedogenic) to 5 (highly comedogenic); 0 when unknown or water-soluble

Reply with the JSON object only."""


def _or_na(value: object) -> str:
    if value is None or value == "":
        return "N/A"
    return str(value)


def build_extraction_prompt(raw: RawProductData) -> str:
    """
    Build the user prompt listing every raw field.

    Missing values are rendered as "N/A".
    """
    return EXTRACTION_PROMPT_TEMPLATE.format(
        name_en=raw.name_en,
        name_ko=_or_na(raw.name_ko),
        brand_en=raw.brand_en,
        brand_ko=_or_na(raw.brand_ko),
        category_raw=raw.category_raw,
        price_usd=_or_na(raw.price_usd),
        price_krw=_or_na(raw.price_krw),
        description_raw=_or_na(raw.description_raw),
        ingredients_raw=_or_na(raw.ingredients_raw),
        volume_display=_or_na(raw.volume_display),
        rating_avg=_or_na(raw.rating_avg),
        review_count=_or_na(raw.review_count),
        image_url=_or_na(raw.image_url),
        source=raw.source.value,
        source_url=raw.source_url,
    )


def build_enrichment_prompt(name_inci: str) -> str:
    return f"Ingredient INCI name: {name_inci}"
