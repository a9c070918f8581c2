"""Admin endpoints for variants, inventory and reconciliation.

These endpoints are intended for operators and internal tooling.
In production, consider adding authentication (API key or admin token).

Routers are thin: every rule lives in services. CatalogError subclasses are
turned into the structured error format by the app-level handler.
"""

import logging
from dataclasses import asdict
from uuid import uuid4

from fastapi import APIRouter, HTTPException, Query

from catalog.models import InventoryRecord, Variant
from catalog.schemas import (
    AdjustStockRequest,
    AttributePair,
    CreateVariantRequest,
    DiagnosticsResponse,
    EnsureResponse,
    GenerateMatrixRequest,
    InventoryOut,
    MatrixResponse,
    RepairRequest,
    RepairResponse,
    VariantOut,
)
from catalog.services.diagnostics import inventory_stats, run_diagnostics
from catalog.services.inventory import ensure_inventory, repair_orphans
from catalog.services.stock import adjust_stock, list_low_stock, list_movements
from catalog.services.variants import (
    VariantOptions,
    VariantPricing,
    create_variant,
    generate_variant_matrix,
    restore_variant,
    soft_delete_variant,
)
from catalog.settings import get_settings
from catalog.stores.postgres import get_session
from catalog.stores.redis import acquire_lock, release_lock, repair_lock_key

router = APIRouter()
logger = logging.getLogger("uvicorn.error")


def _variant_out(variant: Variant) -> VariantOut:
    return VariantOut(
        id=variant.id,
        product_id=variant.product_id,
        combination_key=variant.combination_key,
        sku=variant.sku,
        attributes=[AttributePair(type_id=t, value_id=v) for t, v in variant.attribute_pairs],
        fast_filter=variant.fast_filter or {},
        price=variant.price,
        price_override=variant.price_override,
        final_price=variant.final_price,
        price_needs_resolution=variant.price_needs_resolution,
        status=variant.status,
        is_deleted=variant.is_deleted,
    )


def _inventory_out(record: InventoryRecord) -> InventoryOut:
    return InventoryOut(
        id=record.id,
        variant_id=record.variant_id,
        product_id=record.product_id,
        sku=record.sku,
        total_stock=record.total_stock,
        reserved_stock=record.reserved_stock,
        available_stock=record.available_stock,
        status=record.status,
        low_stock_threshold=record.low_stock_threshold,
        warehouse_id=record.warehouse_id,
        location_code=record.location_code,
        version=record.version,
        last_updated=record.last_updated,
    )


# ============================================================
# Variants
# ============================================================


@router.post("/variants", response_model=VariantOut, status_code=201)
async def create_variant_endpoint(request: CreateVariantRequest) -> VariantOut:
    """Create one variant (and its inventory record unless disabled)."""
    async with get_session() as session:
        variant = await create_variant(
            session=session,
            product_id=request.product_id,
            attributes=[(a.type_id, a.value_id) for a in request.attributes],
            pricing=VariantPricing(**request.pricing.model_dump()),
            options=VariantOptions(
                sku=request.sku,
                size_id=request.size_id,
                color_id=request.color_id,
                status=request.status,
                ensure_inventory=request.ensure_inventory,
            ),
        )
        return _variant_out(variant)


@router.post("/variants/matrix", response_model=MatrixResponse, status_code=201)
async def generate_matrix_endpoint(request: GenerateMatrixRequest) -> MatrixResponse:
    """Generate every combination of the given attribute axes.

    Duplicates are skipped; more combinations than the configured ceiling
    fails the whole request with nothing written.
    """
    async with get_session() as session:
        result = await generate_variant_matrix(
            session=session,
            product_id=request.product_id,
            attribute_axes=request.attribute_axes,
            pricing=VariantPricing(**request.pricing.model_dump()),
            options=VariantOptions(status=request.status, ensure_inventory=request.ensure_inventory),
        )
        return MatrixResponse(
            created=[_variant_out(v) for v in result.created],
            skipped_duplicates=result.skipped_duplicates,
        )


@router.delete("/variants/{variant_id}", response_model=VariantOut)
async def delete_variant_endpoint(variant_id: int, actor: str = Query(default="SYSTEM")) -> VariantOut:
    """Soft-delete a variant. Its inventory is left for an operator to retire."""
    async with get_session() as session:
        variant = await soft_delete_variant(session=session, variant_id=variant_id, actor=actor)
        return _variant_out(variant)


@router.post("/variants/{variant_id}/restore", response_model=VariantOut)
async def restore_variant_endpoint(variant_id: int) -> VariantOut:
    async with get_session() as session:
        variant = await restore_variant(session=session, variant_id=variant_id)
        return _variant_out(variant)


# ============================================================
# Inventory
# ============================================================


@router.post("/inventory/ensure/{variant_id}", response_model=EnsureResponse)
async def ensure_inventory_endpoint(variant_id: int) -> EnsureResponse:
    """Idempotently make sure the variant has an inventory record."""
    async with get_session() as session:
        result = await ensure_inventory(session=session, variant_id=variant_id)
    return EnsureResponse(created=result.created, inventory_id=result.inventory_id, revived=result.revived)


@router.post("/inventory/repair", response_model=RepairResponse)
async def repair_inventory_endpoint(request: RepairRequest) -> RepairResponse:
    """Create inventory for every live variant that lacks one.

    By default runs in dry-run mode (diff only). Item failures are reported in
    the summary; the request itself still succeeds. Only one sweep per scope
    runs at a time across instances.
    """
    run_id = str(uuid4())
    lock_key = repair_lock_key(request.product_id)

    if not await acquire_lock(lock_key, ttl=get_settings().repair_lock_ttl_seconds):
        raise HTTPException(status_code=409, detail=f"A repair sweep is already running for {lock_key}")

    logger.info(
        f"[repair] start run_id={run_id} product_id={request.product_id} dry_run={request.dry_run} limit={request.limit}"
    )
    try:
        async with get_session() as session:
            stats = await repair_orphans(
                session=session,
                product_id=request.product_id,
                dry_run=request.dry_run,
                limit=request.limit,
            )
    except Exception as e:
        logger.exception(f"[repair] failed run_id={run_id}")
        raise HTTPException(status_code=500, detail=f"Repair failed: {str(e)}")
    finally:
        await release_lock(lock_key)

    return RepairResponse(
        success=stats.failed == 0,
        run_id=run_id,
        dry_run=request.dry_run,
        stats={
            "scanned": stats.scanned,
            "missing": stats.missing,
            "processed": stats.processed,
            "created": stats.created,
            "revived": stats.revived,
            "skipped": stats.skipped,
            "failed": stats.failed,
            "remaining": stats.remaining,
            "synthetic_sku": stats.synthetic_sku,
            "failures": [asdict(f) for f in stats.failures],
            "missing_variant_ids": stats.missing_variant_ids[:100],
        },
    )


@router.post("/inventory/{inventory_id}/adjust", response_model=InventoryOut)
async def adjust_stock_endpoint(inventory_id: int, request: AdjustStockRequest) -> InventoryOut:
    """Apply signed stock deltas. Over-reservation or negative stock is a 409."""
    async with get_session() as session:
        record = await adjust_stock(
            session=session,
            inventory_id=inventory_id,
            total_delta=request.total_delta,
            reserved_delta=request.reserved_delta,
            reason=request.reason,
            actor=request.actor,
        )
        return _inventory_out(record)


@router.get("/inventory/{inventory_id}/movements")
async def list_movements_endpoint(inventory_id: int, limit: int = Query(default=50, le=500)) -> dict:
    """Ledger entries for one record, newest first."""
    async with get_session() as session:
        movements = await list_movements(session=session, inventory_id=inventory_id, limit=limit)
        return {
            "count": len(movements),
            "movements": [
                {
                    "id": m.id,
                    "type": m.movement_type,
                    "totalDelta": m.total_delta,
                    "reservedDelta": m.reserved_delta,
                    "totalAfter": m.total_after,
                    "reservedAfter": m.reserved_after,
                    "availableAfter": m.available_after,
                    "reason": m.reason,
                    "actor": m.actor,
                    "createdAt": m.created_at.isoformat() if m.created_at else None,
                }
                for m in movements
            ],
        }


@router.get("/inventory/low-stock")
async def low_stock_endpoint(limit: int = Query(default=50, le=500)) -> dict:
    async with get_session() as session:
        records = await list_low_stock(session=session, limit=limit)
        return {
            "count": len(records),
            "records": [_inventory_out(r).model_dump(by_alias=True, mode="json") for r in records],
        }


@router.get("/inventory/stats")
async def inventory_stats_endpoint() -> dict:
    async with get_session() as session:
        stats = await inventory_stats(session=session)
    return asdict(stats)


# ============================================================
# Diagnostics
# ============================================================


@router.get("/diagnostics", response_model=DiagnosticsResponse)
async def diagnostics_endpoint() -> DiagnosticsResponse:
    """Read-only drift report: orphans, zombies, duplicates and ledger drift."""
    async with get_session() as session:
        report = await run_diagnostics(session=session)
    return DiagnosticsResponse(
        total_variants=report.total_variants,
        total_inventory=report.total_inventory,
        orphans=[asdict(o) for o in report.orphans],
        zombies=[asdict(z) for z in report.zombies],
        duplicates=[asdict(d) for d in report.duplicates],
        ledger_drift=[asdict(d) for d in report.ledger_drift],
    )
