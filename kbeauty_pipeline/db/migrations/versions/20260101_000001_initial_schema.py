"""Initial schema for the K-Beauty catalog pipeline.

Revision ID: 0001
Revises:
Create Date: 2026-01-01

"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "0001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Create staging_records table
    op.create_table(
        "staging_records",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("source", sa.String(50), nullable=False),
        sa.Column("source_id", sa.String(255), nullable=False),
        sa.Column("source_url", sa.Text(), default=""),
        sa.Column("raw_data", sa.JSON(), nullable=False),
        sa.Column("status", sa.String(20), default="pending"),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("processed_product_id", sa.String(36), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.UniqueConstraint("source", "source_id", name="uq_staging_source_id"),
    )
    op.create_index("ix_staging_records_source", "staging_records", ["source"])
    op.create_index("ix_staging_records_status", "staging_records", ["status"])
    op.create_index("ix_staging_records_created_at", "staging_records", ["created_at"])

    # Create products table
    op.create_table(
        "products",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("name_en", sa.String(500), nullable=False),
        sa.Column("name_ko", sa.String(500), nullable=True),
        sa.Column("brand_en", sa.String(255), nullable=False),
        sa.Column("brand_ko", sa.String(255), nullable=True),
        sa.Column("category", sa.String(30), nullable=False),
        sa.Column("subcategory", sa.String(100), nullable=True),
        sa.Column("description_en", sa.Text(), default=""),
        sa.Column("volume_ml", sa.Float(), nullable=True),
        sa.Column("volume_display", sa.String(100), nullable=True),
        sa.Column("price_krw", sa.Float(), nullable=True),
        sa.Column("price_usd", sa.Float(), nullable=True),
        sa.Column("rating_avg", sa.Float(), nullable=True),
        sa.Column("review_count", sa.Integer(), default=0),
        sa.Column("pao_months", sa.Integer(), nullable=True),
        sa.Column("shelf_life_months", sa.Integer(), nullable=True),
        sa.Column("image_url", sa.Text(), nullable=True),
        sa.Column("is_verified", sa.Boolean(), default=False),
        sa.Column("ingredients_raw", sa.Text(), nullable=True),
        # Sunscreen attributes
        sa.Column("spf_rating", sa.Integer(), nullable=True),
        sa.Column("pa_rating", sa.String(10), nullable=True),
        sa.Column("sunscreen_type", sa.String(20), nullable=True),
        sa.Column("white_cast", sa.String(20), nullable=True),
        sa.Column("finish", sa.String(20), nullable=True),
        sa.Column("under_makeup", sa.Boolean(), nullable=True),
        sa.Column("water_resistant", sa.Boolean(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_products_brand_en", "products", ["brand_en"])
    op.create_index("ix_products_category", "products", ["category"])
    op.create_index("ix_products_created_at", "products", ["created_at"])
    op.create_index(
        "uq_products_name_brand_ci",
        "products",
        [sa.text("lower(name_en)"), sa.text("lower(brand_en)")],
        unique=True,
    )

    # Create ingredients table
    op.create_table(
        "ingredients",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("name_inci", sa.String(500), nullable=False),
        sa.Column("name_en", sa.String(500), nullable=True),
        sa.Column("function", sa.String(255), nullable=True),
        sa.Column("is_active", sa.Boolean(), default=False),
        sa.Column("is_fragrance", sa.Boolean(), default=False),
        sa.Column("safety_rating", sa.Integer(), nullable=True),
        sa.Column("comedogenic_rating", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_index(
        "uq_ingredients_name_inci_ci",
        "ingredients",
        [sa.text("lower(name_inci)")],
        unique=True,
    )

    # Create product_ingredient_links table
    op.create_table(
        "product_ingredient_links",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "product_id",
            sa.String(36),
            sa.ForeignKey("products.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("ingredient_id", sa.String(36), sa.ForeignKey("ingredients.id"), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False),
        sa.UniqueConstraint("product_id", "ingredient_id", name="uq_product_ingredient"),
    )
    op.create_index(
        "ix_product_ingredient_links_product_id", "product_ingredient_links", ["product_id"]
    )
    op.create_index(
        "ix_product_ingredient_links_ingredient_id", "product_ingredient_links", ["ingredient_id"]
    )

    # Create retailers table
    op.create_table(
        "retailers",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("slug", sa.String(50), nullable=False, unique=True),
        sa.Column("name", sa.String(100), nullable=False, unique=True),
    )

    # Create product_prices table
    op.create_table(
        "product_prices",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "product_id",
            sa.String(36),
            sa.ForeignKey("products.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("retailer_id", sa.String(36), sa.ForeignKey("retailers.id"), nullable=False),
        sa.Column("price_usd", sa.Float(), nullable=True),
        sa.Column("price_krw", sa.Float(), nullable=True),
        sa.Column("url", sa.Text(), nullable=True),
        sa.Column("in_stock", sa.Boolean(), default=True),
        sa.Column("last_checked", sa.DateTime(), nullable=False),
        sa.UniqueConstraint("product_id", "retailer_id", name="uq_product_retailer_price"),
    )
    op.create_index("ix_product_prices_product_id", "product_prices", ["product_id"])
    op.create_index("ix_product_prices_retailer_id", "product_prices", ["retailer_id"])
    op.create_index("ix_product_prices_last_checked", "product_prices", ["last_checked"])

    # Create price_history table
    op.create_table(
        "price_history",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "product_id",
            sa.String(36),
            sa.ForeignKey("products.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("retailer", sa.String(100), nullable=False),
        sa.Column("price", sa.Float(), nullable=False),
        sa.Column("currency", sa.String(3), default="USD"),
        sa.Column("recorded_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_price_history_product_id", "price_history", ["product_id"])

    # Create pipeline_runs table
    op.create_table(
        "pipeline_runs",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("source", sa.String(50), nullable=False),
        sa.Column("run_type", sa.String(30), nullable=False),
        sa.Column("status", sa.String(20), default="running"),
        sa.Column("products_scraped", sa.Integer(), default=0),
        sa.Column("products_processed", sa.Integer(), default=0),
        sa.Column("products_failed", sa.Integer(), default=0),
        sa.Column("products_duplicates", sa.Integer(), default=0),
        sa.Column("estimated_cost_usd", sa.Float(), default=0.0),
        sa.Column("metadata", sa.JSON(), nullable=True),
        sa.Column("started_at", sa.DateTime(), nullable=False),
        sa.Column("completed_at", sa.DateTime(), nullable=True),
    )
    op.create_index("ix_pipeline_runs_run_type", "pipeline_runs", ["run_type"])
    op.create_index("ix_pipeline_runs_started_at", "pipeline_runs", ["started_at"])


def downgrade() -> None:
    op.drop_index("ix_pipeline_runs_started_at", table_name="pipeline_runs")
    op.drop_index("ix_pipeline_runs_run_type", table_name="pipeline_runs")
    op.drop_table("pipeline_runs")

    op.drop_index("ix_price_history_product_id", table_name="price_history")
    op.drop_table("price_history")

    op.drop_index("ix_product_prices_last_checked", table_name="product_prices")
    op.drop_index("ix_product_prices_retailer_id", table_name="product_prices")
    op.drop_index("ix_product_prices_product_id", table_name="product_prices")
    op.drop_table("product_prices")

    op.drop_table("retailers")

    op.drop_index("ix_product_ingredient_links_ingredient_id", table_name="product_ingredient_links")
    op.drop_index("ix_product_ingredient_links_product_id", table_name="product_ingredient_links")
    op.drop_table("product_ingredient_links")

    op.drop_index("uq_ingredients_name_inci_ci", table_name="ingredients")
    op.drop_table("ingredients")

    op.drop_index("uq_products_name_brand_ci", table_name="products")
    op.drop_index("ix_products_created_at", table_name="products")
    op.drop_index("ix_products_category", table_name="products")
    op.drop_index("ix_products_brand_en", table_name="products")
    op.drop_table("products")

    op.drop_index("ix_staging_records_created_at", table_name="staging_records")
    op.drop_index("ix_staging_records_status", table_name="staging_records")
    op.drop_index("ix_staging_records_source", table_name="staging_records")
    op.drop_table("staging_records")
