"""Attribute registry models.

AttributeType is an axis (size, color, RAM, storage, ...).
AttributeValue is one point on that axis and may carry a price modifier:
- none: no effect on price
- fixed: add `price_modifier_value` to the base price
- percentage: add `price_modifier_value` percent of the base price
"""

from datetime import datetime

from sqlalchemy import CheckConstraint, DateTime, ForeignKey, String, func
from sqlalchemy.orm import Mapped, mapped_column

from catalog.stores.postgres import Base

MODIFIER_NONE = "none"
MODIFIER_FIXED = "fixed"
MODIFIER_PERCENTAGE = "percentage"
MODIFIER_TYPES = (MODIFIER_NONE, MODIFIER_FIXED, MODIFIER_PERCENTAGE)


class AttributeType(Base):
    """Attribute axis, e.g. "size"."""

    __tablename__ = "attribute_types"

    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(String(100))
    slug: Mapped[str] = mapped_column(String(100), unique=True, index=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
    )

    def __repr__(self) -> str:
        return f"<AttributeType {self.slug}>"


class AttributeValue(Base):
    """Attribute value, e.g. "XL" for the size axis."""

    __tablename__ = "attribute_values"
    __table_args__ = (
        CheckConstraint(
            "price_modifier_type IN ('none', 'fixed', 'percentage')",
            name="ck_attribute_values_price_modifier_type",
        ),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    attribute_type_id: Mapped[int] = mapped_column(ForeignKey("attribute_types.id"), index=True)
    value: Mapped[str] = mapped_column(String(100))

    price_modifier_type: Mapped[str] = mapped_column(String(20), default=MODIFIER_NONE)
    price_modifier_value: Mapped[float] = mapped_column(default=0)

    is_deleted: Mapped[bool] = mapped_column(default=False, index=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
    )

    def __repr__(self) -> str:
        return f"<AttributeValue {self.attribute_type_id}:{self.value}>"
