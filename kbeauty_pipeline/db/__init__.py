"""Database initialization and persistence layer."""

from kbeauty_pipeline.db.engine import (
    create_db_engine,
    get_database_url,
    get_engine,
    get_session,
    get_session_factory,
    init_db,
    reset_engine,
    seed_retailers,
)
from kbeauty_pipeline.db.errors import is_unique_violation
from kbeauty_pipeline.db.models import (
    Base,
    IngredientDB,
    PipelineRunDB,
    PriceHistoryDB,
    ProductDB,
    ProductIngredientDB,
    ProductPriceDB,
    RetailerDB,
    StagingRecordDB,
)
from kbeauty_pipeline.db.repositories import (
    IngredientRepository,
    PipelineRunRepository,
    PriceRepository,
    ProductIngredientRepository,
    ProductRepository,
    RetailerRepository,
    StagingRepository,
    insert_ignore,
)

__all__ = [
    # Engine
    "create_db_engine",
    "get_database_url",
    "get_engine",
    "get_session",
    "get_session_factory",
    "init_db",
    "reset_engine",
    "seed_retailers",
    # Errors
    "is_unique_violation",
    # Models
    "Base",
    "StagingRecordDB",
    "ProductDB",
    "IngredientDB",
    "ProductIngredientDB",
    "RetailerDB",
    "ProductPriceDB",
    "PriceHistoryDB",
    "PipelineRunDB",
    # Repositories
    "StagingRepository",
    "ProductRepository",
    "IngredientRepository",
    "ProductIngredientRepository",
    "RetailerRepository",
    "PriceRepository",
    "PipelineRunRepository",
    "insert_ignore",
]
