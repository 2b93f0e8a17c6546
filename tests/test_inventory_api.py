from __future__ import annotations

from decimal import Decimal

from sqlalchemy import select

from tests.conftest import make_client, make_inventory
from wms_billing.models import Inventory, InventoryTransaction

BASE = "/api/v1/inventory"


def _pair(inventory: Inventory) -> dict[str, str]:
    return {"product_id": str(inventory.product_id), "location_id": str(inventory.location_id)}


async def test_reserve_then_release(api, db) -> None:
    client = await make_client(db)
    inventory = await make_inventory(db, client, on_hand="10")
    inventory_id = inventory.id
    pair = _pair(inventory)

    reserved = await api.post(f"{BASE}/reserve", json={**pair, "quantity": "6"})
    too_much = await api.post(f"{BASE}/reserve", json={**pair, "quantity": "5"})
    holds = await api.get(f"{BASE}/reservations", params={"client_id": str(client.id)})
    over_release = await api.post(f"{BASE}/release", json={**pair, "quantity": "7"})
    shipped = await api.post(f"{BASE}/release", json={**pair, "quantity": "4", "also_deduct": True})
    dropped = await api.post(f"{BASE}/release", json={**pair, "quantity": "2"})

    assert reserved.status_code == 201
    assert too_much.status_code == 409
    assert [Decimal(row["qty_reserved"]) for row in holds.json()] == [Decimal("6")]
    assert over_release.status_code == 400
    assert shipped.status_code == 200
    assert dropped.status_code == 200

    row = (await db.execute(
        select(Inventory.qty_on_hand, Inventory.qty_reserved).where(Inventory.id == inventory_id)
    )).one()
    assert row.qty_on_hand == Decimal("6")
    assert row.qty_reserved == Decimal("0")

    types = await db.execute(
        select(InventoryTransaction.transaction_type).order_by(InventoryTransaction.created_at)
    )
    assert types.scalars().all() == ["reserve", "ship", "release"]


async def test_check_availability(api, db) -> None:
    client = await make_client(db)
    inventory = await make_inventory(db, client, on_hand="10", reserved="4")

    response = await api.post(
        f"{BASE}/availability",
        json={"items": [{**_pair(inventory), "qty_requested": "8"}]},
    )

    assert response.status_code == 200
    [item] = response.json()
    assert Decimal(item["qty_available"]) == Decimal("6")
    assert item["can_fulfill"] is False
    assert Decimal(item["shortfall"]) == Decimal("2")
