import pytest
from sqlalchemy import select, update

from catalog.models import InventoryRecord
from catalog.services.diagnostics import (
    BROKEN_PRODUCT_MISMATCH,
    DRIFT_CRITICAL,
    DRIFT_HIGH,
    DRIFT_LOW,
    DRIFT_MEDIUM,
    count_mismatch,
    drift_severity,
    find_ledger_drift,
    inventory_stats,
    list_broken_references,
    list_missing_inventory,
    run_diagnostics,
)
from catalog.services.inventory import (
    ZOMBIE_DELETED_VARIANT,
    ZOMBIE_MISSING_VARIANT,
    repair_orphans,
)
from catalog.services.stock import receive, reserve
from catalog.services.variants import (
    VariantOptions,
    create_variant,
    generate_variant_matrix,
    soft_delete_variant,
)


@pytest.fixture
async def drifted(session, seed):
    """Three sizes with inventory, then: one deleted, one orphan, one ghost record."""
    matrix = await generate_variant_matrix(
        session=session, product_id=seed.product.id, attribute_axes=[seed.size_ids]
    )
    await session.commit()
    await repair_orphans(session=session)

    small, medium, _ = matrix.created
    await soft_delete_variant(session=session, variant_id=small.id)
    orphan = await create_variant(
        session=session,
        product_id=seed.product.id,
        attributes=[seed.pair(seed.colors["Red"])],
        options=VariantOptions(ensure_inventory=False),
    )
    ghost = InventoryRecord(variant_id=777777, sku="GHOST")
    session.add(ghost)
    await session.commit()
    return {"deleted": small, "medium": medium, "orphan": orphan, "ghost": ghost}


@pytest.mark.asyncio
async def test_clean_catalog_reports_nothing(session, seed):
    await generate_variant_matrix(
        session=session, product_id=seed.product.id, attribute_axes=[seed.size_ids, seed.color_ids]
    )
    await session.commit()
    await repair_orphans(session=session)

    report = await run_diagnostics(session=session)
    assert report.healthy
    assert report.total_variants == 6
    assert report.total_inventory == 6


@pytest.mark.asyncio
async def test_count_mismatch(session, drifted):
    counts = await count_mismatch(session=session)
    # S deleted, M and L live, plus the orphan -> 3; M, L, S (zombie) and ghost -> 4
    assert counts.total_variants == 3
    assert counts.total_inventory == 4
    assert counts.difference == -1


@pytest.mark.asyncio
async def test_missing_inventory_lists_orphans(session, seed, drifted):
    orphans = await list_missing_inventory(session=session)
    assert [o.variant_id for o in orphans] == [drifted["orphan"].id]
    assert orphans[0].product_id == seed.product.id

    assert await list_missing_inventory(session=session, product_id=seed.product.id + 1) == []


@pytest.mark.asyncio
async def test_broken_references(session, drifted):
    medium = drifted["medium"]
    await session.execute(
        update(InventoryRecord).where(InventoryRecord.variant_id == medium.id).values(product_id=999)
    )
    await session.commit()

    broken = await list_broken_references(session=session)
    reasons = {b.variant_id: b.reason for b in broken}
    assert reasons == {
        drifted["deleted"].id: ZOMBIE_DELETED_VARIANT,
        777777: ZOMBIE_MISSING_VARIANT,
        medium.id: BROKEN_PRODUCT_MISMATCH,
    }


@pytest.mark.asyncio
async def test_run_diagnostics_report(session, drifted):
    report = await run_diagnostics(session=session)
    assert not report.healthy
    assert [o.variant_id for o in report.orphans] == [drifted["orphan"].id]
    assert {z.variant_id for z in report.zombies} == {drifted["deleted"].id, 777777}
    assert report.duplicates == []

    # Repair fixes orphans; zombies stay until retired explicitly
    await repair_orphans(session=session)
    report = await run_diagnostics(session=session)
    assert report.orphans == []
    assert len(report.zombies) == 2


@pytest.mark.asyncio
async def test_inventory_stats(session, seed):
    matrix = await generate_variant_matrix(
        session=session, product_id=seed.product.id, attribute_axes=[seed.color_ids]
    )
    await session.commit()
    await repair_orphans(session=session)

    stats = await inventory_stats(session=session)
    assert stats.total_records == 2
    assert stats.by_status == {"OUT_OF_STOCK": 2}

    red = matrix.created[0]
    red_inventory_id = (
        await session.execute(select(InventoryRecord.id).where(InventoryRecord.variant_id == red.id))
    ).scalar_one()
    await receive(session=session, inventory_id=red_inventory_id, quantity=20)
    await reserve(session=session, inventory_id=red_inventory_id, quantity=5)
    await session.commit()

    stats = await inventory_stats(session=session)
    assert stats.total_records == 2
    assert stats.total_stock == 20
    assert stats.total_reserved == 5
    assert stats.total_available == 15
    assert stats.by_status == {"IN_STOCK": 1, "OUT_OF_STOCK": 1}


def test_drift_severity_scale():
    assert drift_severity(1, 0) == DRIFT_LOW
    assert drift_severity(0, -3) == DRIFT_MEDIUM
    assert drift_severity(-15, 2) == DRIFT_HIGH
    assert drift_severity(250, 0) == DRIFT_CRITICAL


@pytest.mark.asyncio
async def test_ledger_drift_flags_stock_written_outside_the_ledger(session, seed):
    matrix = await generate_variant_matrix(
        session=session, product_id=seed.product.id, attribute_axes=[seed.color_ids]
    )
    await session.commit()
    await repair_orphans(session=session)

    red, blue = matrix.created
    ids = dict(
        (
            await session.execute(
                select(InventoryRecord.variant_id, InventoryRecord.id).where(
                    InventoryRecord.variant_id.in_([red.id, blue.id])
                )
            )
        ).all()
    )
    await receive(session=session, inventory_id=ids[red.id], quantity=20)
    await reserve(session=session, inventory_id=ids[red.id], quantity=5)
    await session.commit()
    assert await find_ledger_drift(session=session) == []

    # Direct writes that skip adjust_stock
    await session.execute(update(InventoryRecord).where(InventoryRecord.id == ids[red.id]).values(total_stock=35))
    await session.execute(
        update(InventoryRecord).where(InventoryRecord.id == ids[blue.id]).values(total_stock=1, reserved_stock=1)
    )
    await session.commit()

    drift = {d.inventory_id: d for d in await find_ledger_drift(session=session)}
    assert set(drift) == {ids[red.id], ids[blue.id]}

    red_drift = drift[ids[red.id]]
    assert (red_drift.total_stock, red_drift.ledger_total) == (35, 20)
    assert (red_drift.reserved_stock, red_drift.ledger_reserved) == (5, 5)
    assert (red_drift.total_drift, red_drift.reserved_drift) == (15, 0)
    assert red_drift.severity == DRIFT_HIGH

    blue_drift = drift[ids[blue.id]]
    assert (blue_drift.ledger_total, blue_drift.ledger_reserved) == (0, 0)
    assert blue_drift.severity == DRIFT_LOW

    report = await run_diagnostics(session=session)
    assert not report.healthy
    assert report.orphans == [] and report.zombies == []
    assert [d.inventory_id for d in report.ledger_drift] == sorted(drift)
