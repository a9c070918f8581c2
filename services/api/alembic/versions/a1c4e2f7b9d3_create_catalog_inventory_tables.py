"""create_catalog_inventory_tables

Revision ID: a1c4e2f7b9d3
Revises:
Create Date: 2026-10-19
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "a1c4e2f7b9d3"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _created_at() -> list[sa.Column]:
    return [
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
    ]


def upgrade() -> None:
    op.create_table(
        "products",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("base_price", sa.Float(), nullable=False),
        sa.Column("is_deleted", sa.Boolean(), nullable=False),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
        *_created_at(),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_products_is_deleted"), "products", ["is_deleted"], unique=False)

    op.create_table(
        "attribute_types",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("slug", sa.String(length=100), nullable=False),
        *_created_at(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_attribute_types_slug"), "attribute_types", ["slug"], unique=True)

    op.create_table(
        "attribute_values",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("attribute_type_id", sa.Integer(), nullable=False),
        sa.Column("value", sa.String(length=100), nullable=False),
        sa.Column("price_modifier_type", sa.String(length=20), nullable=False),
        sa.Column("price_modifier_value", sa.Float(), nullable=False),
        sa.Column("is_deleted", sa.Boolean(), nullable=False),
        *_created_at(),
        sa.ForeignKeyConstraint(["attribute_type_id"], ["attribute_types.id"]),
        sa.CheckConstraint(
            "price_modifier_type IN ('none', 'fixed', 'percentage')",
            name="ck_attribute_values_price_modifier_type",
        ),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        op.f("ix_attribute_values_attribute_type_id"), "attribute_values", ["attribute_type_id"], unique=False
    )
    op.create_index(op.f("ix_attribute_values_is_deleted"), "attribute_values", ["is_deleted"], unique=False)

    op.create_table(
        "variants",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("product_id", sa.Integer(), nullable=False),
        sa.Column("combination_key", sa.String(length=40), nullable=True),
        sa.Column("sku", sa.String(length=100), nullable=True),
        sa.Column("size_id", sa.Integer(), nullable=True),
        sa.Column("color_id", sa.Integer(), nullable=True),
        sa.Column("fast_filter", sa.JSON(), nullable=False),
        sa.Column("price", sa.Float(), nullable=False),
        sa.Column("price_override", sa.Float(), nullable=True),
        sa.Column("final_price", sa.Float(), nullable=False),
        sa.Column("indexed_price", sa.Float(), nullable=False),
        sa.Column("price_needs_resolution", sa.Boolean(), nullable=False),
        sa.Column("mrp", sa.Float(), nullable=False),
        sa.Column("cost_price", sa.Float(), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False),
        sa.Column("is_deleted", sa.Boolean(), nullable=False),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("deleted_by", sa.String(length=100), nullable=True),
        *_created_at(),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.ForeignKeyConstraint(["product_id"], ["products.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_variants_product_id"), "variants", ["product_id"], unique=False)
    op.create_index(op.f("ix_variants_size_id"), "variants", ["size_id"], unique=False)
    op.create_index(op.f("ix_variants_color_id"), "variants", ["color_id"], unique=False)
    op.create_index(op.f("ix_variants_indexed_price"), "variants", ["indexed_price"], unique=False)
    op.create_index(
        op.f("ix_variants_price_needs_resolution"), "variants", ["price_needs_resolution"], unique=False
    )
    op.create_index(op.f("ix_variants_status"), "variants", ["status"], unique=False)
    op.create_index(op.f("ix_variants_is_deleted"), "variants", ["is_deleted"], unique=False)
    # Identity is unique among live rows only; soft-deleted rows release it.
    op.create_index(
        "uq_variants_product_combination_key_live",
        "variants",
        ["product_id", "combination_key"],
        unique=True,
        postgresql_where=sa.text("is_deleted = false"),
    )
    op.create_index(
        "uq_variants_sku_live",
        "variants",
        ["sku"],
        unique=True,
        postgresql_where=sa.text("is_deleted = false"),
    )

    op.create_table(
        "variant_attributes",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("variant_id", sa.Integer(), nullable=False),
        sa.Column("attribute_type_id", sa.Integer(), nullable=False),
        sa.Column("attribute_value_id", sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(["variant_id"], ["variants.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["attribute_type_id"], ["attribute_types.id"]),
        sa.ForeignKeyConstraint(["attribute_value_id"], ["attribute_values.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("variant_id", "attribute_type_id", name="uq_variant_attributes_variant_type"),
    )
    op.create_index(op.f("ix_variant_attributes_variant_id"), "variant_attributes", ["variant_id"], unique=False)
    op.create_index(
        op.f("ix_variant_attributes_attribute_value_id"), "variant_attributes", ["attribute_value_id"], unique=False
    )

    # No FK to variants: records must survive a missing variant so drift can be reported.
    op.create_table(
        "inventory_records",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("variant_id", sa.Integer(), nullable=False),
        sa.Column("product_id", sa.Integer(), nullable=True),
        sa.Column("sku", sa.String(length=100), nullable=False),
        sa.Column("total_stock", sa.Integer(), nullable=False),
        sa.Column("reserved_stock", sa.Integer(), nullable=False),
        sa.Column("available_stock", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False),
        sa.Column("low_stock_threshold", sa.Integer(), nullable=False),
        sa.Column("warehouse_id", sa.String(length=50), nullable=False),
        sa.Column("location_code", sa.String(length=50), nullable=False),
        sa.Column("version", sa.Integer(), nullable=False),
        sa.Column("is_deleted", sa.Boolean(), nullable=False),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("deleted_by", sa.String(length=100), nullable=True),
        sa.Column(
            "last_updated",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        *_created_at(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_inventory_records_variant_id"), "inventory_records", ["variant_id"], unique=True)
    op.create_index(op.f("ix_inventory_records_product_id"), "inventory_records", ["product_id"], unique=False)
    op.create_index(op.f("ix_inventory_records_sku"), "inventory_records", ["sku"], unique=False)
    op.create_index(
        op.f("ix_inventory_records_available_stock"), "inventory_records", ["available_stock"], unique=False
    )
    op.create_index(op.f("ix_inventory_records_status"), "inventory_records", ["status"], unique=False)
    op.create_index(op.f("ix_inventory_records_warehouse_id"), "inventory_records", ["warehouse_id"], unique=False)
    op.create_index(op.f("ix_inventory_records_is_deleted"), "inventory_records", ["is_deleted"], unique=False)

    op.create_table(
        "inventory_locations",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("inventory_id", sa.Integer(), nullable=False),
        sa.Column("warehouse_id", sa.String(length=50), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("bin", sa.String(length=50), nullable=True),
        sa.ForeignKeyConstraint(["inventory_id"], ["inventory_records.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("inventory_id", "warehouse_id", name="uq_inventory_locations_inventory_warehouse"),
    )
    op.create_index(
        op.f("ix_inventory_locations_inventory_id"), "inventory_locations", ["inventory_id"], unique=False
    )

    op.create_table(
        "stock_movements",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("inventory_id", sa.Integer(), nullable=False),
        sa.Column("variant_id", sa.Integer(), nullable=False),
        sa.Column("movement_type", sa.String(length=20), nullable=False),
        sa.Column("total_delta", sa.Integer(), nullable=False),
        sa.Column("reserved_delta", sa.Integer(), nullable=False),
        sa.Column("total_before", sa.Integer(), nullable=False),
        sa.Column("reserved_before", sa.Integer(), nullable=False),
        sa.Column("available_before", sa.Integer(), nullable=False),
        sa.Column("total_after", sa.Integer(), nullable=False),
        sa.Column("reserved_after", sa.Integer(), nullable=False),
        sa.Column("available_after", sa.Integer(), nullable=False),
        sa.Column("reason", sa.Text(), nullable=False),
        sa.Column("actor", sa.String(length=100), nullable=False),
        *_created_at(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_stock_movements_inventory_id"), "stock_movements", ["inventory_id"], unique=False)
    op.create_index(op.f("ix_stock_movements_variant_id"), "stock_movements", ["variant_id"], unique=False)
    op.create_index(op.f("ix_stock_movements_movement_type"), "stock_movements", ["movement_type"], unique=False)
    op.create_index(op.f("ix_stock_movements_created_at"), "stock_movements", ["created_at"], unique=False)


def downgrade() -> None:
    op.drop_table("stock_movements")
    op.drop_table("inventory_locations")
    op.drop_table("inventory_records")
    op.drop_table("variant_attributes")
    op.drop_table("variants")
    op.drop_table("attribute_values")
    op.drop_table("attribute_types")
    op.drop_table("products")
