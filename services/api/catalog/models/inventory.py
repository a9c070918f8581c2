"""Inventory models.

InventoryRecord is the stock-of-record for exactly one variant (unique
variant_id). Business rules:
- available_stock = max(0, total_stock - reserved_stock), stored and indexed
- total_stock >= 0, reserved_stock >= 0, reserved_stock <= total_stock
- status is derived from total_stock on every mutation, except DISCONTINUED
- version is bumped by every stock write (compare-and-swap token)

Stock fields are written only through services/stock.py.
"""

from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, String, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from catalog.stores.postgres import Base

STOCK_IN_STOCK = "IN_STOCK"
STOCK_LOW_STOCK = "LOW_STOCK"
STOCK_OUT_OF_STOCK = "OUT_OF_STOCK"
STOCK_DISCONTINUED = "DISCONTINUED"


class InventoryLocation(Base):
    """Stock held at one warehouse/bin for an inventory record."""

    __tablename__ = "inventory_locations"
    __table_args__ = (
        UniqueConstraint("inventory_id", "warehouse_id", name="uq_inventory_locations_inventory_warehouse"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    inventory_id: Mapped[int] = mapped_column(
        ForeignKey("inventory_records.id", ondelete="CASCADE"),
        index=True,
    )
    warehouse_id: Mapped[str] = mapped_column(String(50))
    quantity: Mapped[int] = mapped_column(default=0)
    bin: Mapped[str | None] = mapped_column(String(50))

    def __repr__(self) -> str:
        return f"<InventoryLocation {self.warehouse_id} qty={self.quantity}>"


class InventoryRecord(Base):
    """Variant-level stock record."""

    __tablename__ = "inventory_records"

    id: Mapped[int] = mapped_column(primary_key=True)

    # 1:1 link to the variant
    variant_id: Mapped[int] = mapped_column(unique=True, index=True)
    # Denormalized for display; may be missing for variants with a broken product link
    product_id: Mapped[int | None] = mapped_column(index=True)
    sku: Mapped[str] = mapped_column(String(100), index=True)

    # Stock
    total_stock: Mapped[int] = mapped_column(default=0)
    reserved_stock: Mapped[int] = mapped_column(default=0)
    available_stock: Mapped[int] = mapped_column(default=0, index=True)

    status: Mapped[str] = mapped_column(String(20), default=STOCK_OUT_OF_STOCK, index=True)
    low_stock_threshold: Mapped[int] = mapped_column(default=5)

    # Location
    warehouse_id: Mapped[str] = mapped_column(String(50), default="WH-DEFAULT", index=True)
    location_code: Mapped[str] = mapped_column(String(50), default="A-01-01")

    # Optimistic concurrency token
    version: Mapped[int] = mapped_column(default=1)

    is_deleted: Mapped[bool] = mapped_column(default=False, index=True)
    deleted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    deleted_by: Mapped[str | None] = mapped_column(String(100))

    locations: Mapped[list[InventoryLocation]] = relationship(
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by=InventoryLocation.warehouse_id,
    )

    # Timestamps
    last_updated: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
    )

    def __repr__(self) -> str:
        return (
            f"<InventoryRecord {self.id} variant={self.variant_id} "
            f"total={self.total_stock} reserved={self.reserved_stock}>"
        )
