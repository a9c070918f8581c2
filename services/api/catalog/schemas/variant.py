"""Schemas for the variant admin endpoints (/v1/admin/variants)."""

from pydantic import BaseModel, Field


class AttributePair(BaseModel):
    """One (attribute type -> attribute value) reference."""

    type_id: int = Field(alias="typeId")
    value_id: int = Field(alias="valueId")

    model_config = {"populate_by_name": True}


class PricingIn(BaseModel):
    """Price inputs for a new variant."""

    price: float | None = Field(default=None, ge=0)
    price_override: float | None = Field(alias="priceOverride", default=None, ge=0)
    mrp: float = Field(default=0, ge=0)
    cost_price: float = Field(alias="costPrice", default=0, ge=0)

    model_config = {"populate_by_name": True}


class CreateVariantRequest(BaseModel):
    """Request body for creating one variant."""

    product_id: int = Field(alias="productId")
    attributes: list[AttributePair] = Field(default_factory=list)
    pricing: PricingIn = Field(default_factory=PricingIn)
    sku: str | None = None
    size_id: int | None = Field(alias="sizeId", default=None)
    color_id: int | None = Field(alias="colorId", default=None)
    status: str | bool = "active"
    ensure_inventory: bool = Field(alias="ensureInventory", default=True)

    model_config = {"populate_by_name": True}


class GenerateMatrixRequest(BaseModel):
    """Request body for bulk generation: one list of value ids per attribute type."""

    product_id: int = Field(alias="productId")
    attribute_axes: list[list[int]] = Field(alias="attributeAxes", min_length=1)
    pricing: PricingIn = Field(default_factory=PricingIn)
    status: str | bool = "active"
    ensure_inventory: bool = Field(alias="ensureInventory", default=False)

    model_config = {"populate_by_name": True}


class VariantOut(BaseModel):
    """A persisted variant."""

    id: int
    product_id: int = Field(alias="productId")
    combination_key: str | None = Field(alias="combinationKey", default=None)
    sku: str | None = None
    attributes: list[AttributePair] = Field(default_factory=list)
    fast_filter: dict[str, int] = Field(alias="fastFilter", default_factory=dict)
    price: float
    price_override: float | None = Field(alias="priceOverride", default=None)
    final_price: float = Field(alias="finalPrice")
    price_needs_resolution: bool = Field(alias="priceNeedsResolution", default=False)
    status: str
    is_deleted: bool = Field(alias="isDeleted", default=False)

    model_config = {"populate_by_name": True}


class MatrixResponse(BaseModel):
    """Result of a bulk generation."""

    created: list[VariantOut]
    skipped_duplicates: int = Field(alias="skippedDuplicates", ge=0)

    model_config = {"populate_by_name": True}
