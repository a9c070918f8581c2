"""Product -> variant matrix -> inventory repair -> stock, end to end."""

import pytest
from sqlalchemy import select

from catalog.models import InventoryRecord
from catalog.models.inventory import STOCK_IN_STOCK
from catalog.services.diagnostics import run_diagnostics
from catalog.services.errors import InsufficientStock
from catalog.services.inventory import repair_orphans
from catalog.services.stock import adjust_stock, get_inventory
from catalog.services.variants import generate_variant_matrix


@pytest.mark.asyncio
async def test_tee_shirt_lifecycle(session, seed):
    matrix = await generate_variant_matrix(
        session=session,
        product_id=seed.product.id,
        attribute_axes=[seed.size_ids, seed.color_ids],
    )
    await session.commit()
    assert len(matrix.created) == 6
    assert matrix.skipped_duplicates == 0

    repair = await repair_orphans(session=session)
    assert repair.created == 6
    assert repair.failed == 0
    assert repair.skipped == 0

    report = await run_diagnostics(session=session)
    assert report.orphans == []
    assert report.total_inventory == 6

    inv1 = (
        await session.execute(
            select(InventoryRecord.id).where(InventoryRecord.variant_id == matrix.created[0].id)
        )
    ).scalar_one()

    record = await adjust_stock(session=session, inventory_id=inv1, total_delta=50, reason="initial stock")
    await session.commit()
    assert record.total_stock == 50
    assert record.available_stock == 50
    assert record.status == STOCK_IN_STOCK

    record = await adjust_stock(session=session, inventory_id=inv1, reserved_delta=48, reason="bulk order")
    await session.commit()
    assert record.reserved_stock == 48
    assert record.available_stock == 2
    assert record.status == STOCK_IN_STOCK

    with pytest.raises(InsufficientStock):
        await adjust_stock(session=session, inventory_id=inv1, reserved_delta=10, reason="one more order")
    await session.commit()

    record = await get_inventory(session=session, inventory_id=inv1)
    assert record.total_stock == 50
    assert record.reserved_stock == 48
    assert record.available_stock == 2
