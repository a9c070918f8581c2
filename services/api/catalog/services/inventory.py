"""Inventory reconciler: keeps exactly one inventory record per live variant.

Invariant: every non-deleted, non-archived variant has exactly one
non-deleted InventoryRecord with its variant_id. The reverse may lag
(eventual consistency), so drift is detected and repaired here:
- orphan: live variant without inventory -> created by repair_orphans()
- zombie: inventory whose variant is missing or soft-deleted -> reported only
- duplicate: more than one record per variant -> reported; cleanup is explicit

Notes:
- ensure is an insert-if-absent upsert keyed on variant_id. On conflict
  nothing is touched, so existing stock is never reset, and concurrent
  callers converge on one record (the unique index is the final backstop).
- Sweeps diff one batch fetch of variants against one batch fetch of
  inventory; no per-item lookups.
- Sweeps commit every item as its own unit, so an interrupted sweep leaves
  only fully-written records behind.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime, timezone

from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from catalog.models import InventoryRecord, Product, Variant
from catalog.models.inventory import STOCK_OUT_OF_STOCK
from catalog.models.variant import STATUS_ARCHIVED
from catalog.services.errors import NotFound
from catalog.settings import get_settings
from catalog.stores.postgres import dialect_insert

logger = logging.getLogger("uvicorn.error")

ZOMBIE_MISSING_VARIANT = "MISSING_VARIANT"
ZOMBIE_DELETED_VARIANT = "DELETED_VARIANT"


@dataclass(frozen=True)
class EnsureResult:
    created: bool
    inventory_id: int
    revived: bool = False


@dataclass(frozen=True)
class OrphanVariant:
    variant_id: int
    product_id: int | None  # None when the product reference does not resolve
    sku: str | None


@dataclass
class RepairFailure:
    variant_id: int
    error: str


@dataclass
class RepairStats:
    dry_run: bool = False
    scanned: int = 0
    missing: int = 0
    processed: int = 0
    created: int = 0
    revived: int = 0
    skipped: int = 0
    failed: int = 0
    synthetic_sku: int = 0
    failures: list[RepairFailure] = field(default_factory=list)
    missing_variant_ids: list[int] = field(default_factory=list)

    @property
    def remaining(self) -> int:
        return self.missing - self.processed


@dataclass(frozen=True)
class DuplicateGroup:
    variant_id: int
    count: int


@dataclass
class DuplicateCleanup:
    dry_run: bool = False
    groups: int = 0
    kept_ids: list[int] = field(default_factory=list)
    removed_ids: list[int] = field(default_factory=list)


def synthetic_sku(variant_id: int) -> str:
    return f"VAR-{variant_id}"


async def _ensure(
    session: AsyncSession,
    *,
    variant_id: int,
    product_id: int | None,
    sku: str | None,
) -> EnsureResult:
    settings = get_settings()
    stmt = (
        dialect_insert(session, InventoryRecord)
        .values(
            variant_id=variant_id,
            product_id=product_id,
            sku=sku or synthetic_sku(variant_id),
            total_stock=0,
            reserved_stock=0,
            available_stock=0,
            status=STOCK_OUT_OF_STOCK,
            low_stock_threshold=settings.default_low_stock_threshold,
            warehouse_id=settings.default_warehouse_id,
            location_code=settings.default_location_code,
            version=1,
            is_deleted=False,
        )
        .on_conflict_do_nothing(index_elements=["variant_id"])
        .returning(InventoryRecord.id)
    )
    inserted_id = (await session.execute(stmt)).scalar_one_or_none()
    if inserted_id is not None:
        logger.info(f"[inventory] created inventory_id={inserted_id} variant_id={variant_id}")
        return EnsureResult(created=True, inventory_id=inserted_id)

    # Someone else already holds the record for this variant.
    row = (
        await session.execute(
            select(InventoryRecord.id, InventoryRecord.is_deleted).where(
                InventoryRecord.variant_id == variant_id
            )
        )
    ).one()
    if row.is_deleted:
        await session.execute(
            update(InventoryRecord)
            .where(InventoryRecord.id == row.id)
            .values(is_deleted=False, deleted_at=None, deleted_by=None)
            .execution_options(synchronize_session="fetch")
        )
        logger.info(f"[inventory] revived inventory_id={row.id} variant_id={variant_id}")
        return EnsureResult(created=False, inventory_id=row.id, revived=True)
    return EnsureResult(created=False, inventory_id=row.id)


async def ensure_for_variant(*, session: AsyncSession, variant: Variant) -> EnsureResult:
    """Make sure the variant has an inventory record (idempotent).

    Safe to call repeatedly and concurrently: exactly one record exists
    afterwards, and only the caller that inserted it sees created=True.
    A soft-deleted record is revived rather than duplicated; stock is kept.
    """
    return await _ensure(
        session,
        variant_id=variant.id,
        product_id=variant.product_id,
        sku=variant.sku,
    )


async def ensure_inventory(*, session: AsyncSession, variant_id: int) -> EnsureResult:
    """Ensure by id; the variant must exist and be live."""
    variant = await session.get(Variant, variant_id)
    if variant is None or variant.is_deleted:
        raise NotFound(f"Variant {variant_id} not found", detail={"variant_id": variant_id})
    return await ensure_for_variant(session=session, variant=variant)


async def find_orphan_variants(
    session: AsyncSession,
    *,
    product_id: int | None = None,
) -> tuple[int, list[OrphanVariant]]:
    """Set-diff live variants against live inventory.

    Returns:
        Tuple of (variants scanned, orphans in variant id order).
    """
    variant_query = (
        select(Variant.id, Variant.sku, Product.id.label("resolved_product_id"))
        .outerjoin(Product, Product.id == Variant.product_id)
        .where(Variant.is_deleted.is_(False), Variant.status != STATUS_ARCHIVED)
        .order_by(Variant.id)
    )
    if product_id is not None:
        variant_query = variant_query.where(Variant.product_id == product_id)
    variants = (await session.execute(variant_query)).all()

    covered = set(
        (
            await session.execute(
                select(InventoryRecord.variant_id).where(InventoryRecord.is_deleted.is_(False))
            )
        ).scalars()
    )

    orphans = [
        OrphanVariant(variant_id=row.id, product_id=row.resolved_product_id, sku=row.sku)
        for row in variants
        if row.id not in covered
    ]
    return len(variants), orphans


async def repair_orphans(
    *,
    session: AsyncSession,
    product_id: int | None = None,
    dry_run: bool = False,
    limit: int | None = None,
    stats: RepairStats | None = None,
) -> RepairStats:
    """Create inventory for every live variant that lacks it.

    Args:
        session: DB session. Committed after every item (rolled back on item failure).
        product_id: Restrict the sweep to one product.
        dry_run: Only compute the diff; nothing is written.
        limit: Max orphans to process in this run (defaults to settings.repair_batch_limit).
        stats: Caller-owned stats object, filled in as the sweep runs. If the
            sweep is cancelled, it still holds the processed-so-far counts
            and failures.

    Returns:
        RepairStats. Item failures are recorded, never raised; `remaining`
        tells how many orphans are left for the next run.
    """
    settings = get_settings()
    limit = settings.repair_batch_limit if limit is None else max(0, limit)

    if stats is None:
        stats = RepairStats()
    stats.dry_run = dry_run
    stats.scanned, orphans = await find_orphan_variants(session, product_id=product_id)
    stats.missing = len(orphans)
    stats.missing_variant_ids = [o.variant_id for o in orphans]

    if dry_run or not orphans:
        logger.info(
            f"[repair] diff product_id={product_id} scanned={stats.scanned} "
            f"missing={stats.missing} dry_run={dry_run}"
        )
        return stats

    # The diff reads are done; release them before per-item transactions.
    await session.commit()

    for orphan in orphans[:limit]:
        try:
            result = await _ensure(
                session,
                variant_id=orphan.variant_id,
                product_id=orphan.product_id,
                # No resolvable product: fall back to the variant's own id.
                sku=orphan.sku if orphan.product_id is not None else synthetic_sku(orphan.variant_id),
            )
            await session.commit()
        except asyncio.CancelledError:
            await session.rollback()
            logger.warning(
                f"[repair] interrupted after {stats.processed} of {stats.missing} items "
                f"(created={stats.created} failed={stats.failed})"
            )
            raise
        except Exception as e:
            await session.rollback()
            stats.processed += 1
            stats.failed += 1
            stats.failures.append(RepairFailure(variant_id=orphan.variant_id, error=str(e)))
            logger.warning(f"[repair] failed variant_id={orphan.variant_id} error={e}")
            continue

        stats.processed += 1
        if orphan.product_id is None:
            stats.synthetic_sku += 1
        if result.created:
            stats.created += 1
        elif result.revived:
            stats.revived += 1
        else:
            stats.skipped += 1

    logger.info(
        f"[repair] done product_id={product_id} scanned={stats.scanned} missing={stats.missing} "
        f"created={stats.created} revived={stats.revived} skipped={stats.skipped} "
        f"failed={stats.failed} remaining={stats.remaining}"
    )
    return stats


def _zombie_query():
    return (
        select(InventoryRecord, Variant.id.label("live_variant_id"), Variant.is_deleted.label("variant_deleted"))
        .outerjoin(Variant, Variant.id == InventoryRecord.variant_id)
        .where(
            InventoryRecord.is_deleted.is_(False),
            (Variant.id.is_(None)) | (Variant.is_deleted.is_(True)),
        )
        .order_by(InventoryRecord.id)
    )


async def find_zombies(session: AsyncSession) -> list[tuple[InventoryRecord, str]]:
    """Live inventory whose variant is missing or soft-deleted, with the reason."""
    rows = (await session.execute(_zombie_query())).all()
    return [
        (
            row.InventoryRecord,
            ZOMBIE_MISSING_VARIANT if row.live_variant_id is None else ZOMBIE_DELETED_VARIANT,
        )
        for row in rows
    ]


async def detect_zombies(*, session: AsyncSession) -> list[InventoryRecord]:
    """Inventory records pointing at a missing or soft-deleted variant.

    Surfaced only: stock on them may still matter for reporting, so removal
    is an explicit administrative step (see retire_zombies).
    """
    return [record for record, _ in await find_zombies(session)]


async def detect_duplicates(*, session: AsyncSession) -> list[DuplicateGroup]:
    """Variants holding more than one inventory record.

    The unique index should make this impossible; it still happens after
    migrations or manual imports that bypassed the index.
    """
    res = await session.execute(
        select(InventoryRecord.variant_id, func.count(InventoryRecord.id).label("n"))
        .group_by(InventoryRecord.variant_id)
        .having(func.count(InventoryRecord.id) > 1)
        .order_by(InventoryRecord.variant_id)
    )
    return [DuplicateGroup(variant_id=row.variant_id, count=row.n) for row in res.all()]


async def cleanup_duplicates(*, session: AsyncSession, dry_run: bool = False) -> DuplicateCleanup:
    """Keep the first-created record per duplicated variant and delete the rest.

    "First" means lowest created_at, then lowest id. That is a policy choice:
    it says nothing about which record holds the more accurate stock.
    Caller commits.
    """
    groups = await detect_duplicates(session=session)
    cleanup = DuplicateCleanup(dry_run=dry_run, groups=len(groups))
    if not groups:
        return cleanup

    rows = (
        await session.execute(
            select(InventoryRecord.id, InventoryRecord.variant_id)
            .where(InventoryRecord.variant_id.in_([g.variant_id for g in groups]))
            .order_by(InventoryRecord.variant_id, InventoryRecord.created_at, InventoryRecord.id)
        )
    ).all()

    seen: set[int] = set()
    for row in rows:
        if row.variant_id in seen:
            cleanup.removed_ids.append(row.id)
        else:
            seen.add(row.variant_id)
            cleanup.kept_ids.append(row.id)

    if not dry_run and cleanup.removed_ids:
        await session.execute(
            delete(InventoryRecord)
            .where(InventoryRecord.id.in_(cleanup.removed_ids))
            .execution_options(synchronize_session="fetch")
        )

    logger.warning(
        f"[inventory] duplicate cleanup groups={cleanup.groups} kept={cleanup.kept_ids} "
        f"removed={cleanup.removed_ids} dry_run={dry_run}"
    )
    return cleanup


async def retire_zombies(
    *,
    session: AsyncSession,
    inventory_ids: Iterable[int],
    actor: str,
) -> list[int]:
    """Soft-delete the given records, but only those that are still zombies.

    Returns:
        Ids actually retired. Caller commits.
    """
    wanted = set(inventory_ids)
    zombie_ids = [record.id for record, _ in await find_zombies(session) if record.id in wanted]
    if zombie_ids:
        await session.execute(
            update(InventoryRecord)
            .where(InventoryRecord.id.in_(zombie_ids))
            .values(is_deleted=True, deleted_at=datetime.now(timezone.utc), deleted_by=actor)
            .execution_options(synchronize_session="fetch")
        )
        logger.info(f"[inventory] retired zombies ids={zombie_ids} by={actor}")
    return zombie_ids
