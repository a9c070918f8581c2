"""Variant model.

A Variant is one sellable configuration of a Product (e.g. size M + color Red).
It owns pricing and identity but never stock; stock lives in InventoryRecord.

Identity:
- combination_key: SHA-1 of the sorted attribute tokens prefixed by the product
  id (see services/combination_key.py). Unique per product among live rows.
- sku: optional merchant code, unique among live rows.

Soft-deleted rows drop out of both partial unique indexes, so a deleted
variant's key and SKU can be reused by a new identical variant.
"""

from datetime import datetime

from sqlalchemy import JSON, DateTime, ForeignKey, Index, String, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from catalog.stores.postgres import NOT_DELETED_PG, NOT_DELETED_SQLITE, Base

STATUS_DRAFT = "draft"
STATUS_ACTIVE = "active"
STATUS_OUT_OF_STOCK = "out_of_stock"
STATUS_ARCHIVED = "archived"

VARIANT_STATUSES = (STATUS_DRAFT, STATUS_ACTIVE, STATUS_OUT_OF_STOCK, STATUS_ARCHIVED)


class VariantAttribute(Base):
    """One (attribute type -> attribute value) pair of a variant."""

    __tablename__ = "variant_attributes"
    __table_args__ = (
        UniqueConstraint("variant_id", "attribute_type_id", name="uq_variant_attributes_variant_type"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    variant_id: Mapped[int] = mapped_column(ForeignKey("variants.id", ondelete="CASCADE"), index=True)
    attribute_type_id: Mapped[int] = mapped_column(ForeignKey("attribute_types.id"))
    attribute_value_id: Mapped[int] = mapped_column(ForeignKey("attribute_values.id"), index=True)

    def __repr__(self) -> str:
        return f"<VariantAttribute {self.attribute_type_id}:{self.attribute_value_id}>"


class Variant(Base):
    """Product variant."""

    __tablename__ = "variants"
    __table_args__ = (
        Index(
            "uq_variants_product_combination_key_live",
            "product_id",
            "combination_key",
            unique=True,
            postgresql_where=NOT_DELETED_PG,
            sqlite_where=NOT_DELETED_SQLITE,
        ),
        Index(
            "uq_variants_sku_live",
            "sku",
            unique=True,
            postgresql_where=NOT_DELETED_PG,
            sqlite_where=NOT_DELETED_SQLITE,
        ),
    )
    # updated_at is refreshed server-side on UPDATE; fetch it back instead of expiring it.
    __mapper_args__ = {"eager_defaults": True}

    id: Mapped[int] = mapped_column(primary_key=True)

    # Relations
    product_id: Mapped[int] = mapped_column(ForeignKey("products.id"), index=True)

    # Identity
    combination_key: Mapped[str | None] = mapped_column(String(40))
    sku: Mapped[str | None] = mapped_column(String(100))

    # Legacy single-value slots (size / color masters)
    size_id: Mapped[int | None] = mapped_column(index=True)
    color_id: Mapped[int | None] = mapped_column(index=True)

    # Matrix filter index: {"<attribute_type_id>" | "size" | "color": attribute_value_id}
    fast_filter: Mapped[dict[str, int]] = mapped_column(JSON, default=dict)

    # Pricing
    price: Mapped[float] = mapped_column()
    price_override: Mapped[float | None] = mapped_column()
    final_price: Mapped[float] = mapped_column(default=0)
    indexed_price: Mapped[float] = mapped_column(default=0, index=True)
    price_needs_resolution: Mapped[bool] = mapped_column(default=False, index=True)
    mrp: Mapped[float] = mapped_column(default=0)
    cost_price: Mapped[float] = mapped_column(default=0)

    # Lifecycle
    status: Mapped[str] = mapped_column(String(20), default=STATUS_ACTIVE, index=True)
    is_deleted: Mapped[bool] = mapped_column(default=False, index=True)
    deleted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    deleted_by: Mapped[str | None] = mapped_column(String(100))

    attributes: Mapped[list[VariantAttribute]] = relationship(
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by=VariantAttribute.attribute_type_id,
    )

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
    )

    @property
    def attribute_pairs(self) -> list[tuple[int, int]]:
        return [(a.attribute_type_id, a.attribute_value_id) for a in self.attributes]

    def __repr__(self) -> str:
        return f"<Variant {self.id} product={self.product_id} key={self.combination_key}>"
