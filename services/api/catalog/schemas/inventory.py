"""Schemas for the inventory admin endpoints (/v1/admin/inventory)."""

from datetime import datetime

from pydantic import BaseModel, Field


class EnsureResponse(BaseModel):
    """Outcome of an idempotent ensure."""

    created: bool
    inventory_id: int = Field(alias="inventoryId")
    revived: bool = False

    model_config = {"populate_by_name": True}


class InventoryOut(BaseModel):
    """Stock-of-record for one variant."""

    id: int
    variant_id: int = Field(alias="variantId")
    product_id: int | None = Field(alias="productId", default=None)
    sku: str
    total_stock: int = Field(alias="totalStock", ge=0)
    reserved_stock: int = Field(alias="reservedStock", ge=0)
    available_stock: int = Field(alias="availableStock", ge=0)
    status: str
    low_stock_threshold: int = Field(alias="lowStockThreshold")
    warehouse_id: str = Field(alias="warehouseId")
    location_code: str = Field(alias="locationCode")
    version: int
    last_updated: datetime | None = Field(alias="lastUpdated", default=None)

    model_config = {"populate_by_name": True}


class AdjustStockRequest(BaseModel):
    """Signed deltas; at least one must be non-zero."""

    total_delta: int = Field(alias="totalDelta", default=0)
    reserved_delta: int = Field(alias="reservedDelta", default=0)
    reason: str = Field(min_length=1)
    actor: str = "SYSTEM"

    model_config = {"populate_by_name": True}


class RepairRequest(BaseModel):
    """Request body for the orphan repair sweep."""

    product_id: int | None = Field(alias="productId", default=None)
    dry_run: bool = Field(alias="dryRun", default=True)
    limit: int | None = Field(default=None, ge=1)

    model_config = {"populate_by_name": True}


class RepairResponse(BaseModel):
    """Summary of a repair sweep; item failures are listed, not raised."""

    success: bool
    run_id: str = Field(alias="runId")
    dry_run: bool = Field(alias="dryRun")
    stats: dict

    model_config = {"populate_by_name": True}


class DiagnosticsResponse(BaseModel):
    """Drift report."""

    total_variants: int = Field(alias="totalVariants")
    total_inventory: int = Field(alias="totalInventory")
    orphans: list[dict]
    zombies: list[dict]
    duplicates: list[dict]
    ledger_drift: list[dict] = Field(default_factory=list, alias="ledgerDrift")

    model_config = {"populate_by_name": True}
