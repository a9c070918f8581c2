"""Product model.

A Product owns variants. Only the fields the variant/inventory core reads
are modelled here; the rest of the product master lives elsewhere.
"""

from datetime import datetime

from sqlalchemy import DateTime, String, func
from sqlalchemy.orm import Mapped, mapped_column

from catalog.stores.postgres import Base


class Product(Base):
    """Sellable product (parent of variants)."""

    __tablename__ = "products"

    id: Mapped[int] = mapped_column(primary_key=True)

    name: Mapped[str] = mapped_column(String(200))
    # Base price used when a variant is created without an explicit price
    base_price: Mapped[float] = mapped_column(default=0)

    is_deleted: Mapped[bool] = mapped_column(default=False, index=True)
    deleted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

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

    def __repr__(self) -> str:
        return f"<Product {self.id} {self.name}>"
