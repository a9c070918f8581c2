"""Stock mutation and inventory ledger.

All stock writes go through adjust_stock(), which:
1. reads the record fresh (never from a cache)
2. applies the deltas in memory and checks the invariants:
   total >= 0, reserved >= 0, reserved <= total,
   total >= units assigned to warehouse locations
   (violations raise InsufficientStock; nothing is clamped)
3. derives available_stock and status
4. writes with a version compare-and-swap; on a lost race it re-reads and
   retries, up to settings.stock_mutation_max_retries
5. appends a StockMovement row in the same transaction

Status rule (DISCONTINUED is sticky and only changed by set_discontinued):
- total == 0                  -> OUT_OF_STOCK
- 0 < total <= low threshold  -> LOW_STOCK
- otherwise                   -> IN_STOCK
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from catalog.models import InventoryLocation, InventoryRecord, StockMovement
from catalog.models.inventory import (
    STOCK_DISCONTINUED,
    STOCK_IN_STOCK,
    STOCK_LOW_STOCK,
    STOCK_OUT_OF_STOCK,
)
from catalog.models.stock_movement import (
    MOVEMENT_ADJUSTMENT,
    MOVEMENT_RELEASE,
    MOVEMENT_RESERVE,
    MOVEMENT_STOCK_IN,
    MOVEMENT_STOCK_OUT,
)
from catalog.services.errors import (
    ConcurrentModification,
    InsufficientStock,
    NotFound,
    ValidationError,
)
from catalog.settings import get_settings

logger = logging.getLogger("uvicorn.error")

FIELD_TOTAL = "total"
FIELD_RESERVED = "reserved"


def available_of(total: int, reserved: int) -> int:
    return max(0, total - reserved)


def derive_status(total: int, low_stock_threshold: int, current: str | None = None) -> str:
    if current == STOCK_DISCONTINUED:
        return STOCK_DISCONTINUED
    if total <= 0:
        return STOCK_OUT_OF_STOCK
    if total <= low_stock_threshold:
        return STOCK_LOW_STOCK
    return STOCK_IN_STOCK


def _movement_type(total_delta: int, reserved_delta: int) -> str:
    if total_delta and reserved_delta:
        return MOVEMENT_ADJUSTMENT
    if total_delta:
        return MOVEMENT_STOCK_IN if total_delta > 0 else MOVEMENT_STOCK_OUT
    return MOVEMENT_RESERVE if reserved_delta > 0 else MOVEMENT_RELEASE


async def _load_live(session: AsyncSession, inventory_id: int) -> InventoryRecord:
    record = (
        await session.execute(
            select(InventoryRecord)
            .where(InventoryRecord.id == inventory_id)
            .execution_options(populate_existing=True)
        )
    ).scalar_one_or_none()
    if record is None or record.is_deleted:
        raise NotFound(f"Inventory {inventory_id} not found", detail={"inventory_id": inventory_id})
    return record


async def _compare_and_swap(session: AsyncSession, record: InventoryRecord, **values) -> bool:
    """Write values only if nobody bumped the version since `record` was read."""
    res = await session.execute(
        update(InventoryRecord)
        .where(InventoryRecord.id == record.id, InventoryRecord.version == record.version)
        .values(version=record.version + 1, last_updated=datetime.now(timezone.utc), **values)
        .execution_options(synchronize_session=False)
    )
    return res.rowcount == 1


async def get_inventory(*, session: AsyncSession, inventory_id: int) -> InventoryRecord:
    return await _load_live(session, inventory_id)


async def get_inventory_for_variant(*, session: AsyncSession, variant_id: int) -> InventoryRecord:
    record = (
        await session.execute(
            select(InventoryRecord)
            .where(InventoryRecord.variant_id == variant_id, InventoryRecord.is_deleted.is_(False))
            .execution_options(populate_existing=True)
        )
    ).scalar_one_or_none()
    if record is None:
        raise NotFound(f"No inventory for variant {variant_id}", detail={"variant_id": variant_id})
    return record


async def adjust_stock(
    *,
    session: AsyncSession,
    inventory_id: int,
    total_delta: int = 0,
    reserved_delta: int = 0,
    reason: str,
    actor: str = "SYSTEM",
) -> InventoryRecord:
    """Apply signed deltas to total and/or reserved stock as one atomic unit.

    Args:
        session: DB session (caller commits).
        inventory_id: Target record.
        total_delta: Signed change to total_stock (receipt > 0, shrink < 0).
        reserved_delta: Signed change to reserved_stock (reserve > 0, release < 0).
        reason: Free-text reason written to the ledger.
        actor: Who made the change.

    Returns:
        The refreshed record.

    Raises:
        ValidationError: no delta, or no reason.
        NotFound: record missing or soft-deleted.
        InsufficientStock: the result would break a stock invariant.
        ConcurrentModification: lost the compare-and-swap on every attempt.
    """
    total_delta = int(total_delta or 0)
    reserved_delta = int(reserved_delta or 0)
    if not total_delta and not reserved_delta:
        raise ValidationError("At least one non-zero delta is required")
    if not reason or not reason.strip():
        raise ValidationError("A reason is required for every stock change")

    max_attempts = get_settings().stock_mutation_max_retries

    for attempt in range(1, max_attempts + 1):
        record = await _load_live(session, inventory_id)

        total_before = record.total_stock
        reserved_before = record.reserved_stock
        new_total = total_before + total_delta
        new_reserved = reserved_before + reserved_delta

        if new_total < 0 or new_reserved < 0 or new_reserved > new_total:
            raise InsufficientStock(
                f"Stock change rejected: total {total_before}->{new_total}, "
                f"reserved {reserved_before}->{new_reserved}",
                detail={
                    "inventory_id": inventory_id,
                    "total_stock": total_before,
                    "reserved_stock": reserved_before,
                    "available_stock": available_of(total_before, reserved_before),
                    "total_delta": total_delta,
                    "reserved_delta": reserved_delta,
                },
            )

        located = sum(loc.quantity for loc in record.locations)
        if new_total < located:
            raise InsufficientStock(
                f"Stock change rejected: total {total_before}->{new_total} "
                f"but locations still hold {located} units",
                detail={
                    "inventory_id": inventory_id,
                    "total_stock": total_before,
                    "located_stock": located,
                    "total_delta": total_delta,
                },
            )

        new_available = available_of(new_total, new_reserved)
        new_status = derive_status(new_total, record.low_stock_threshold, record.status)

        swapped = await _compare_and_swap(
            session,
            record,
            total_stock=new_total,
            reserved_stock=new_reserved,
            available_stock=new_available,
            status=new_status,
        )
        if not swapped:
            logger.warning(f"[stock] version conflict inventory_id={inventory_id} attempt={attempt}/{max_attempts}")
            continue

        session.add(
            StockMovement(
                inventory_id=inventory_id,
                variant_id=record.variant_id,
                movement_type=_movement_type(total_delta, reserved_delta),
                total_delta=total_delta,
                reserved_delta=reserved_delta,
                total_before=total_before,
                reserved_before=reserved_before,
                available_before=available_of(total_before, reserved_before),
                total_after=new_total,
                reserved_after=new_reserved,
                available_after=new_available,
                reason=reason.strip(),
                actor=actor,
            )
        )
        await session.flush()
        record = await _load_live(session, inventory_id)

        logger.info(
            f"[stock] adjusted inventory_id={inventory_id} total={record.total_stock} "
            f"reserved={record.reserved_stock} available={record.available_stock} "
            f"status={record.status} reason={reason} actor={actor}"
        )
        return record

    raise ConcurrentModification(
        f"Inventory {inventory_id} kept changing; gave up after {max_attempts} attempts",
        detail={"inventory_id": inventory_id},
    )


async def apply_delta(
    *,
    session: AsyncSession,
    inventory_id: int,
    field: str,
    delta: int,
    reason: str,
    actor: str = "SYSTEM",
) -> InventoryRecord:
    """Single-field form of adjust_stock: field is "total" or "reserved"."""
    if field == FIELD_TOTAL:
        return await adjust_stock(
            session=session, inventory_id=inventory_id, total_delta=delta, reason=reason, actor=actor
        )
    if field == FIELD_RESERVED:
        return await adjust_stock(
            session=session, inventory_id=inventory_id, reserved_delta=delta, reason=reason, actor=actor
        )
    raise ValidationError(f"Unknown stock field: {field!r}", detail={"allowed": [FIELD_TOTAL, FIELD_RESERVED]})


def _positive(quantity: int) -> int:
    quantity = int(quantity)
    if quantity <= 0:
        raise ValidationError("Quantity must be positive", detail={"quantity": quantity})
    return quantity


async def reserve(
    *, session: AsyncSession, inventory_id: int, quantity: int, reason: str = "RESERVE", actor: str = "SYSTEM"
) -> InventoryRecord:
    return await adjust_stock(
        session=session, inventory_id=inventory_id, reserved_delta=_positive(quantity), reason=reason, actor=actor
    )


async def release(
    *, session: AsyncSession, inventory_id: int, quantity: int, reason: str = "RELEASE", actor: str = "SYSTEM"
) -> InventoryRecord:
    return await adjust_stock(
        session=session, inventory_id=inventory_id, reserved_delta=-_positive(quantity), reason=reason, actor=actor
    )


async def receive(
    *, session: AsyncSession, inventory_id: int, quantity: int, reason: str = "STOCK_RECEIVED", actor: str = "SYSTEM"
) -> InventoryRecord:
    return await adjust_stock(
        session=session, inventory_id=inventory_id, total_delta=_positive(quantity), reason=reason, actor=actor
    )


async def deduct(
    *, session: AsyncSession, inventory_id: int, quantity: int, reason: str = "ORDER_DEDUCT", actor: str = "SYSTEM"
) -> InventoryRecord:
    """Fulfil reserved units: both total and reserved go down."""
    quantity = _positive(quantity)
    return await adjust_stock(
        session=session,
        inventory_id=inventory_id,
        total_delta=-quantity,
        reserved_delta=-quantity,
        reason=reason,
        actor=actor,
    )


async def set_discontinued(
    *,
    session: AsyncSession,
    inventory_id: int,
    discontinued: bool,
) -> InventoryRecord:
    """Move a record into DISCONTINUED, or back to its derived status.

    Uses the same version compare-and-swap as adjust_stock, so the status
    derived on the way out reflects the total it was computed from.
    """
    max_attempts = get_settings().stock_mutation_max_retries

    for attempt in range(1, max_attempts + 1):
        record = await _load_live(session, inventory_id)
        status = (
            STOCK_DISCONTINUED
            if discontinued
            else derive_status(record.total_stock, record.low_stock_threshold)
        )
        if not await _compare_and_swap(session, record, status=status):
            logger.warning(f"[stock] version conflict inventory_id={inventory_id} attempt={attempt}/{max_attempts}")
            continue

        record = await _load_live(session, inventory_id)
        logger.info(f"[stock] status inventory_id={inventory_id} status={record.status}")
        return record

    raise ConcurrentModification(
        f"Inventory {inventory_id} kept changing; gave up after {max_attempts} attempts",
        detail={"inventory_id": inventory_id},
    )


async def set_location_stock(
    *,
    session: AsyncSession,
    inventory_id: int,
    warehouse_id: str,
    quantity: int,
    bin: str | None = None,
) -> InventoryRecord:
    """Record how much of a record's total sits at one warehouse/bin.

    The per-location quantities may not add up to more than total_stock.
    The record's version is bumped too, so a concurrent stock change cannot
    lower the total underneath the new location figures.
    """
    if quantity < 0:
        raise ValidationError("Location quantity must be >= 0", detail={"quantity": quantity})
    max_attempts = get_settings().stock_mutation_max_retries

    for attempt in range(1, max_attempts + 1):
        record = await _load_live(session, inventory_id)

        by_warehouse = {loc.warehouse_id: loc for loc in record.locations}
        others = sum(loc.quantity for wh, loc in by_warehouse.items() if wh != warehouse_id)
        if others + quantity > record.total_stock:
            raise InsufficientStock(
                f"Locations would hold {others + quantity} units but total stock is {record.total_stock}",
                detail={"inventory_id": inventory_id, "total_stock": record.total_stock},
            )

        if not await _compare_and_swap(session, record):
            logger.warning(f"[stock] version conflict inventory_id={inventory_id} attempt={attempt}/{max_attempts}")
            continue

        location = by_warehouse.get(warehouse_id)
        if location is None:
            record.locations.append(
                InventoryLocation(warehouse_id=warehouse_id, quantity=quantity, bin=bin)
            )
        else:
            location.quantity = quantity
            if bin is not None:
                location.bin = bin
        await session.flush()
        return await _load_live(session, inventory_id)

    raise ConcurrentModification(
        f"Inventory {inventory_id} kept changing; gave up after {max_attempts} attempts",
        detail={"inventory_id": inventory_id},
    )


async def list_movements(
    *,
    session: AsyncSession,
    inventory_id: int,
    limit: int = 100,
) -> list[StockMovement]:
    res = await session.execute(
        select(StockMovement)
        .where(StockMovement.inventory_id == inventory_id)
        .order_by(StockMovement.id.desc())
        .limit(limit)
    )
    return list(res.scalars().all())


async def list_low_stock(*, session: AsyncSession, limit: int = 100) -> list[InventoryRecord]:
    """Live records at or under their threshold, lowest availability first."""
    res = await session.execute(
        select(InventoryRecord)
        .where(
            InventoryRecord.is_deleted.is_(False),
            InventoryRecord.status != STOCK_DISCONTINUED,
            InventoryRecord.available_stock <= InventoryRecord.low_stock_threshold,
        )
        .order_by(InventoryRecord.available_stock.asc(), InventoryRecord.id)
        .limit(limit)
    )
    return list(res.scalars().all())
