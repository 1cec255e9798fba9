"""Enums for catalog, staging and pipeline fields."""

from enum import Enum


class ProductCategory(str, Enum):
    """Closed set of catalog product categories."""

    CLEANSER = "cleanser"
    TONER = "toner"
    ESSENCE = "essence"
    SERUM = "serum"
    AMPOULE = "ampoule"
    MOISTURIZER = "moisturizer"
    SUNSCREEN = "sunscreen"
    MASK = "mask"
    EXFOLIATOR = "exfoliator"
    LIP_CARE = "lip_care"
    EYE_CARE = "eye_care"
    OIL = "oil"
    MIST = "mist"
    SPOT_TREATMENT = "spot_treatment"


# Category used when extraction returns something outside the closed set
DEFAULT_CATEGORY = ProductCategory.MOISTURIZER


class PipelineSource(str, Enum):
    """Retail sources that feed the staging store."""

    OLIVE_YOUNG = "olive_young"
    YESSTYLE = "yesstyle"
    SOKO_GLAM = "soko_glam"
    AMAZON = "amazon"
    STYLEKOREAN = "stylekorean"


class Retailer(str, Enum):
    """Retailers that can carry a price record."""

    OLIVE_YOUNG = "olive_young"
    YESSTYLE = "yesstyle"
    SOKO_GLAM = "soko_glam"
    AMAZON = "amazon"
    STYLEKOREAN = "stylekorean"
    IHERB = "iherb"
    STYLEVANA = "stylevana"

    @property
    def display_name(self) -> str:
        """Canonical display name stored in the retailers table."""
        return RETAILER_DISPLAY_NAMES[self]


RETAILER_DISPLAY_NAMES: dict[Retailer, str] = {
    Retailer.OLIVE_YOUNG: "Olive Young",
    Retailer.YESSTYLE: "YesStyle",
    Retailer.SOKO_GLAM: "Soko Glam",
    Retailer.AMAZON: "Amazon",
    Retailer.STYLEKOREAN: "StyleKorean",
    Retailer.IHERB: "iHerb",
    Retailer.STYLEVANA: "Stylevana",
}


class StagingStatus(str, Enum):
    """Lifecycle state of a staged raw record."""

    PENDING = "pending"
    PROCESSING = "processing"
    PROCESSED = "processed"
    FAILED = "failed"
    DUPLICATE = "duplicate"


class PipelineRunType(str, Enum):
    """Kind of work a pipeline run performed."""

    FULL_SCRAPE = "full_scrape"
    INCREMENTAL = "incremental"
    REPROCESS = "reprocess"
    QUALITY_CHECK = "quality_check"
    BATCH_PROCESS = "batch_process"
    INGREDIENT_LINK = "ingredient_link"
    PRICE_REFRESH = "price_refresh"
    DETAIL_ENRICHMENT = "detail_enrichment"


class PipelineRunStatus(str, Enum):
    """Status of a pipeline run."""

    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class IngredientMatchType(str, Enum):
    """How an ingredient name was resolved."""

    EXACT = "exact"
    FUZZY = "fuzzy"  # matched through the alias table
    CREATED = "created"


class PriceMatchMethod(str, Enum):
    """Which matching tier paired a scraped price with a product."""

    EXACT = "exact"
    BRAND_NAME = "brand_name"
    FUZZY = "fuzzy"


class PaRating(str, Enum):
    """UVA protection grade."""

    PA_1 = "PA+"
    PA_2 = "PA++"
    PA_3 = "PA+++"
    PA_4 = "PA++++"


class SunscreenType(str, Enum):
    """UV filter type."""

    CHEMICAL = "chemical"
    PHYSICAL = "physical"
    HYBRID = "hybrid"


class WhiteCast(str, Enum):
    """How much white cast a sunscreen leaves."""

    NONE = "none"
    MINIMAL = "minimal"
    MODERATE = "moderate"
    HEAVY = "heavy"


class Finish(str, Enum):
    """Skin finish after application."""

    MATTE = "matte"
    DEWY = "dewy"
    NATURAL = "natural"
    SATIN = "satin"
