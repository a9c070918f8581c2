"""Tests for health and admin endpoints (services patched, no database)."""

from contextlib import asynccontextmanager
from types import SimpleNamespace

import pytest
from httpx import ASGITransport, AsyncClient

from catalog.main import app
from catalog.routes import admin as admin_routes
from catalog.services.diagnostics import DiagnosticsReport
from catalog.services.errors import DuplicateVariant, InsufficientStock
from catalog.services.inventory import (
    DuplicateGroup,
    EnsureResult,
    OrphanVariant,
    RepairFailure,
    RepairStats,
)


@pytest.fixture
async def client():
    """Create test client."""
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac


@pytest.fixture
def no_db(monkeypatch: pytest.MonkeyPatch):
    @asynccontextmanager
    async def fake_get_session():
        yield object()

    monkeypatch.setattr(admin_routes, "get_session", fake_get_session)


@pytest.fixture
def locks(monkeypatch: pytest.MonkeyPatch):
    held: set[str] = set()

    async def fake_acquire_lock(key: str, ttl: int = 60) -> bool:
        if key in held:
            return False
        held.add(key)
        return True

    async def fake_release_lock(key: str) -> None:
        held.discard(key)

    monkeypatch.setattr(admin_routes, "acquire_lock", fake_acquire_lock)
    monkeypatch.setattr(admin_routes, "release_lock", fake_release_lock)
    return held


def _record(**overrides):
    fields = dict(
        id=1,
        variant_id=10,
        product_id=3,
        sku="VAR-3-ABCDEF12",
        total_stock=50,
        reserved_stock=48,
        available_stock=2,
        status="IN_STOCK",
        low_stock_threshold=5,
        warehouse_id="WH-DEFAULT",
        location_code="A-01-01",
        version=3,
        last_updated=None,
    )
    fields.update(overrides)
    return SimpleNamespace(**fields)


@pytest.mark.asyncio
async def test_health_check(client: AsyncClient):
    """Test health endpoint returns ok."""
    response = await client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"ok": True}


@pytest.mark.asyncio
async def test_adjust_stock_returns_camel_case_record(client, no_db, monkeypatch):
    calls = {}

    async def fake_adjust_stock(*, session, inventory_id, total_delta, reserved_delta, reason, actor):
        calls.update(inventory_id=inventory_id, reserved_delta=reserved_delta, reason=reason, actor=actor)
        return _record(id=inventory_id)

    monkeypatch.setattr(admin_routes, "adjust_stock", fake_adjust_stock)

    response = await client.post(
        "/v1/admin/inventory/1/adjust",
        json={"reservedDelta": 48, "reason": "bulk order", "actor": "ops"},
    )
    assert response.status_code == 200
    data = response.json()
    assert data["availableStock"] == 2
    assert data["reservedStock"] == 48
    assert calls == {"inventory_id": 1, "reserved_delta": 48, "reason": "bulk order", "actor": "ops"}


@pytest.mark.asyncio
async def test_insufficient_stock_maps_to_409(client, no_db, monkeypatch):
    async def fake_adjust_stock(**kwargs):
        raise InsufficientStock("Stock change rejected", detail={"inventory_id": 1})

    monkeypatch.setattr(admin_routes, "adjust_stock", fake_adjust_stock)

    response = await client.post("/v1/admin/inventory/1/adjust", json={"reservedDelta": 10, "reason": "x"})
    assert response.status_code == 409
    assert response.json() == {
        "error": {
            "code": "INSUFFICIENT_STOCK",
            "message": "Stock change rejected",
            "detail": {"inventory_id": 1},
        }
    }


@pytest.mark.asyncio
async def test_duplicate_variant_maps_to_409(client, no_db, monkeypatch):
    async def fake_create_variant(**kwargs):
        raise DuplicateVariant("A variant with the same attribute combination already exists")

    monkeypatch.setattr(admin_routes, "create_variant", fake_create_variant)

    response = await client.post(
        "/v1/admin/variants",
        json={"productId": 3, "attributes": [{"typeId": 1, "valueId": 2}]},
    )
    assert response.status_code == 409
    assert response.json()["error"]["code"] == "DUPLICATE_VARIANT"


@pytest.mark.asyncio
async def test_ensure_endpoint(client, no_db, monkeypatch):
    async def fake_ensure_inventory(*, session, variant_id):
        return EnsureResult(created=False, inventory_id=5)

    monkeypatch.setattr(admin_routes, "ensure_inventory", fake_ensure_inventory)

    response = await client.post("/v1/admin/inventory/ensure/10")
    assert response.status_code == 200
    assert response.json() == {"created": False, "inventoryId": 5, "revived": False}


@pytest.mark.asyncio
async def test_repair_reports_partial_failure_with_200(client, no_db, locks, monkeypatch):
    async def fake_repair_orphans(*, session, product_id, dry_run, limit):
        stats = RepairStats(dry_run=dry_run, scanned=10, missing=3, processed=3, created=2, failed=1)
        stats.failures.append(RepairFailure(variant_id=9, error="boom"))
        return stats

    monkeypatch.setattr(admin_routes, "repair_orphans", fake_repair_orphans)

    response = await client.post("/v1/admin/inventory/repair", json={"dryRun": False})
    assert response.status_code == 200
    data = response.json()
    assert data["success"] is False
    assert data["dryRun"] is False
    assert data["stats"]["created"] == 2
    assert data["stats"]["failed"] == 1
    assert data["stats"]["failures"] == [{"variant_id": 9, "error": "boom"}]
    # Lock released afterwards
    assert locks == set()


@pytest.mark.asyncio
async def test_repair_refuses_to_run_twice(client, no_db, locks, monkeypatch):
    async def fake_repair_orphans(**kwargs):
        raise AssertionError("must not run while locked")

    monkeypatch.setattr(admin_routes, "repair_orphans", fake_repair_orphans)
    locks.add("repair:inventory")

    response = await client.post("/v1/admin/inventory/repair", json={})
    assert response.status_code == 409


@pytest.mark.asyncio
async def test_diagnostics_endpoint(client, no_db, monkeypatch):
    async def fake_run_diagnostics(*, session):
        return DiagnosticsReport(
            total_variants=6,
            total_inventory=5,
            orphans=[OrphanVariant(variant_id=4, product_id=1, sku="VAR-1-AAAA0000")],
            duplicates=[DuplicateGroup(variant_id=2, count=2)],
        )

    monkeypatch.setattr(admin_routes, "run_diagnostics", fake_run_diagnostics)

    response = await client.get("/v1/admin/diagnostics")
    assert response.status_code == 200
    data = response.json()
    assert data["totalVariants"] == 6
    assert data["totalInventory"] == 5
    assert data["orphans"] == [{"variant_id": 4, "product_id": 1, "sku": "VAR-1-AAAA0000"}]
    assert data["zombies"] == []
    assert data["duplicates"] == [{"variant_id": 2, "count": 2}]
    assert data["ledgerDrift"] == []
