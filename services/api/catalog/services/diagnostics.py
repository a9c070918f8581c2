"""Read-only audits over the variant and inventory populations.

Every check is a handful of batch queries plus in-memory set logic, the same
way repair_orphans computes its diff. Nothing here writes.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from catalog.models import InventoryRecord, StockMovement, Variant
from catalog.models.variant import STATUS_ARCHIVED
from catalog.services.inventory import (
    DuplicateGroup,
    OrphanVariant,
    detect_duplicates,
    find_orphan_variants,
    find_zombies,
)

logger = logging.getLogger("uvicorn.error")

BROKEN_PRODUCT_MISMATCH = "PRODUCT_MISMATCH"

DRIFT_LOW = "LOW"
DRIFT_MEDIUM = "MEDIUM"
DRIFT_HIGH = "HIGH"
DRIFT_CRITICAL = "CRITICAL"


@dataclass(frozen=True)
class CountMismatch:
    total_variants: int
    total_inventory: int

    @property
    def difference(self) -> int:
        return self.total_variants - self.total_inventory


@dataclass(frozen=True)
class BrokenReference:
    inventory_id: int
    variant_id: int
    sku: str | None
    reason: str


@dataclass(frozen=True)
class LedgerDrift:
    """Stock figures that the movement ledger does not add up to."""

    inventory_id: int
    variant_id: int
    sku: str | None
    total_stock: int
    ledger_total: int
    reserved_stock: int
    ledger_reserved: int
    total_drift: int
    reserved_drift: int
    severity: str


@dataclass
class DiagnosticsReport:
    total_variants: int = 0
    total_inventory: int = 0
    orphans: list[OrphanVariant] = field(default_factory=list)
    zombies: list[BrokenReference] = field(default_factory=list)
    duplicates: list[DuplicateGroup] = field(default_factory=list)
    ledger_drift: list[LedgerDrift] = field(default_factory=list)

    @property
    def healthy(self) -> bool:
        return not (self.orphans or self.zombies or self.duplicates or self.ledger_drift)


@dataclass
class InventoryStats:
    total_records: int = 0
    total_stock: int = 0
    total_reserved: int = 0
    total_available: int = 0
    by_status: dict[str, int] = field(default_factory=dict)


async def _count_live_variants(session: AsyncSession) -> int:
    res = await session.execute(
        select(func.count(Variant.id)).where(
            Variant.is_deleted.is_(False), Variant.status != STATUS_ARCHIVED
        )
    )
    return int(res.scalar_one())


async def _count_live_inventory(session: AsyncSession) -> int:
    res = await session.execute(
        select(func.count(InventoryRecord.id)).where(InventoryRecord.is_deleted.is_(False))
    )
    return int(res.scalar_one())


async def count_mismatch(*, session: AsyncSession) -> CountMismatch:
    """Live (non-archived) variants vs live inventory records.

    A zero difference does not prove health: orphans and zombies can cancel out.
    """
    return CountMismatch(
        total_variants=await _count_live_variants(session),
        total_inventory=await _count_live_inventory(session),
    )


async def list_broken_references(*, session: AsyncSession) -> list[BrokenReference]:
    """Live inventory that points at a missing/deleted variant or at the wrong product."""
    broken = [
        BrokenReference(
            inventory_id=record.id,
            variant_id=record.variant_id,
            sku=record.sku,
            reason=reason,
        )
        for record, reason in await find_zombies(session)
    ]

    mismatched = await session.execute(
        select(InventoryRecord.id, InventoryRecord.variant_id, InventoryRecord.sku)
        .join(Variant, Variant.id == InventoryRecord.variant_id)
        .where(
            InventoryRecord.is_deleted.is_(False),
            Variant.is_deleted.is_(False),
            InventoryRecord.product_id.is_not(None),
            InventoryRecord.product_id != Variant.product_id,
        )
        .order_by(InventoryRecord.id)
    )
    broken.extend(
        BrokenReference(
            inventory_id=row.id,
            variant_id=row.variant_id,
            sku=row.sku,
            reason=BROKEN_PRODUCT_MISMATCH,
        )
        for row in mismatched.all()
    )
    return broken


async def list_missing_inventory(
    *,
    session: AsyncSession,
    product_id: int | None = None,
) -> list[OrphanVariant]:
    _, orphans = await find_orphan_variants(session, product_id=product_id)
    return orphans


def drift_severity(total_drift: int, reserved_drift: int) -> str:
    """Severity by the larger absolute drift: 1 LOW, 2-9 MEDIUM, 10-99 HIGH, 100+ CRITICAL."""
    size = max(abs(total_drift), abs(reserved_drift))
    if size >= 100:
        return DRIFT_CRITICAL
    if size >= 10:
        return DRIFT_HIGH
    if size >= 2:
        return DRIFT_MEDIUM
    return DRIFT_LOW


async def find_ledger_drift(*, session: AsyncSession) -> list[LedgerDrift]:
    """Live records whose stock differs from the sum of their ledger movements.

    Records start at zero and every stock write appends its deltas, so the
    sums must match. A record with stock but no movements (a raw import or a
    write that bypassed adjust_stock) shows up here too.
    """
    ledger = (
        select(
            StockMovement.inventory_id.label("inventory_id"),
            func.sum(StockMovement.total_delta).label("total"),
            func.sum(StockMovement.reserved_delta).label("reserved"),
        )
        .group_by(StockMovement.inventory_id)
        .subquery()
    )
    ledger_total = func.coalesce(ledger.c.total, 0)
    ledger_reserved = func.coalesce(ledger.c.reserved, 0)

    res = await session.execute(
        select(
            InventoryRecord.id,
            InventoryRecord.variant_id,
            InventoryRecord.sku,
            InventoryRecord.total_stock,
            InventoryRecord.reserved_stock,
            ledger_total.label("ledger_total"),
            ledger_reserved.label("ledger_reserved"),
        )
        .outerjoin(ledger, ledger.c.inventory_id == InventoryRecord.id)
        .where(
            InventoryRecord.is_deleted.is_(False),
            (InventoryRecord.total_stock != ledger_total) | (InventoryRecord.reserved_stock != ledger_reserved),
        )
        .order_by(InventoryRecord.id)
    )

    drift = []
    for row in res.all():
        total_drift = row.total_stock - int(row.ledger_total)
        reserved_drift = row.reserved_stock - int(row.ledger_reserved)
        drift.append(
            LedgerDrift(
                inventory_id=row.id,
                variant_id=row.variant_id,
                sku=row.sku,
                total_stock=row.total_stock,
                ledger_total=int(row.ledger_total),
                reserved_stock=row.reserved_stock,
                ledger_reserved=int(row.ledger_reserved),
                total_drift=total_drift,
                reserved_drift=reserved_drift,
                severity=drift_severity(total_drift, reserved_drift),
            )
        )
    return drift


async def run_diagnostics(*, session: AsyncSession) -> DiagnosticsReport:
    """Full drift report: orphans, zombies, duplicates, ledger drift and population totals."""
    counts = await count_mismatch(session=session)
    report = DiagnosticsReport(
        total_variants=counts.total_variants,
        total_inventory=counts.total_inventory,
        orphans=await list_missing_inventory(session=session),
        zombies=[
            BrokenReference(
                inventory_id=record.id,
                variant_id=record.variant_id,
                sku=record.sku,
                reason=reason,
            )
            for record, reason in await find_zombies(session)
        ],
        duplicates=await detect_duplicates(session=session),
        ledger_drift=await find_ledger_drift(session=session),
    )

    if report.healthy:
        logger.info(f"[diagnostics] ok variants={report.total_variants} inventory={report.total_inventory}")
    else:
        logger.warning(
            f"[diagnostics] drift variants={report.total_variants} inventory={report.total_inventory} "
            f"orphans={len(report.orphans)} zombies={len(report.zombies)} "
            f"duplicates={len(report.duplicates)} ledger_drift={len(report.ledger_drift)}"
        )
    return report


async def inventory_stats(*, session: AsyncSession) -> InventoryStats:
    res = await session.execute(
        select(
            InventoryRecord.status,
            func.count(InventoryRecord.id),
            func.coalesce(func.sum(InventoryRecord.total_stock), 0),
            func.coalesce(func.sum(InventoryRecord.reserved_stock), 0),
            func.coalesce(func.sum(InventoryRecord.available_stock), 0),
        )
        .where(InventoryRecord.is_deleted.is_(False))
        .group_by(InventoryRecord.status)
    )

    stats = InventoryStats()
    for status, count, total, reserved, available in res.all():
        stats.by_status[status] = int(count)
        stats.total_records += int(count)
        stats.total_stock += int(total)
        stats.total_reserved += int(reserved)
        stats.total_available += int(available)
    return stats
