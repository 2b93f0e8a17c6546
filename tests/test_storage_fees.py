from __future__ import annotations

import uuid
from datetime import date
from decimal import Decimal

from sqlalchemy import select

from tests.conftest import make_client, make_inventory, make_rate_card
from wms_billing.models import StorageSnapshot
from wms_billing.services.storage_fee_service import StorageFeeService, is_slot_priced

SEPT_START = date(2026, 9, 1)
SEPT_END = date(2026, 9, 30)


async def _snapshot(db, client, day: int, qty: str, location_id: uuid.UUID, product_id=None) -> None:
    db.add(StorageSnapshot(
        snapshot_date=date(2026, 9, day),
        client_id=client.id,
        product_id=product_id or uuid.uuid4(),
        location_id=location_id,
        qty_on_hand=Decimal(qty),
    ))
    await db.commit()


def test_is_slot_priced() -> None:
    assert is_slot_priced("per_location_per_day")
    assert is_slot_priced("per_pallet_per_day")
    assert not is_slot_priced("per_unit_per_day")
    assert not is_slot_priced(None)


async def test_snapshot_records_stocked_rows_and_replaces_same_day(db) -> None:
    client = await make_client(db)
    stocked = await make_inventory(db, client, on_hand="25")
    await make_inventory(db, client, on_hand="0")
    service = StorageFeeService(db)

    assert await service.take_storage_snapshot(SEPT_START) == 1
    await db.commit()

    stocked.qty_on_hand = Decimal("40")
    await db.commit()
    assert await service.take_storage_snapshot(SEPT_START) == 1
    assert await service.take_storage_snapshot(date(2026, 9, 2)) == 1
    await db.commit()

    rows = await db.execute(
        select(StorageSnapshot.snapshot_date, StorageSnapshot.qty_on_hand)
        .order_by(StorageSnapshot.snapshot_date)
    )
    assert [tuple(row) for row in rows] == [
        (SEPT_START, Decimal("40")),
        (date(2026, 9, 2), Decimal("40")),
    ]


async def test_per_unit_and_per_location_quantities(db) -> None:
    client = await make_client(db)
    await make_rate_card(
        db, client, "STOR-UNIT", rate_category="storage",
        unit_price="0.02", price_unit="per_unit_per_day",
    )
    await make_rate_card(
        db, client, "STOR-LOC", rate_category="storage",
        unit_price="1.50", price_unit="per_location_per_day",
    )
    await make_rate_card(db, client, "PICK-EACH")
    shelf, rack = uuid.uuid4(), uuid.uuid4()
    # Two products share the shelf on day 1; the rack is occupied on days 1 and 2
    await _snapshot(db, client, 1, "100", shelf)
    await _snapshot(db, client, 1, "50", shelf)
    await _snapshot(db, client, 1, "30", rack)
    await _snapshot(db, client, 2, "20", rack)
    await _snapshot(db, client, 15, "999", rack, product_id=uuid.uuid4())

    fees = await StorageFeeService(db).calculate_storage_fees(
        client.id, SEPT_START, date(2026, 9, 2)
    )

    by_code = {fee.rate_code: fee for fee in fees}
    assert set(by_code) == {"STOR-UNIT", "STOR-LOC"}
    assert by_code["STOR-UNIT"].total_quantity == Decimal("200")
    assert by_code["STOR-UNIT"].total_amount == Decimal("4.00")
    assert by_code["STOR-LOC"].total_quantity == Decimal("3")
    assert by_code["STOR-LOC"].total_amount == Decimal("4.50")


async def test_minimum_charge_applies_only_with_stock(db) -> None:
    client = await make_client(db)
    idle = await make_client(db, "Idle Inc")
    for owner in (client, idle):
        await make_rate_card(
            db, owner, "STOR-UNIT", rate_category="storage",
            unit_price="0.01", price_unit="per_unit_per_day", minimum_charge="25",
        )
    await _snapshot(db, client, 3, "10", uuid.uuid4())
    service = StorageFeeService(db)

    [charged] = await service.calculate_storage_fees(client.id, SEPT_START, SEPT_END)
    [empty] = await service.calculate_storage_fees(idle.id, SEPT_START, SEPT_END)

    assert charged.total_amount == Decimal("25")
    assert empty.total_quantity == Decimal("0")
    assert empty.total_amount == Decimal("0")


async def test_rate_card_outside_period_is_skipped(db) -> None:
    client = await make_client(db)
    card = await make_rate_card(
        db, client, "STOR-UNIT", rate_category="storage",
        unit_price="0.10", price_unit="per_unit_per_day",
    )
    card.expiration_date = date(2026, 8, 31)
    await db.commit()
    await _snapshot(db, client, 3, "10", uuid.uuid4())

    fees = await StorageFeeService(db).calculate_storage_fees(client.id, SEPT_START, SEPT_END)

    assert fees == []


async def test_rerun_drops_slots_emptied_since_last_snapshot(db) -> None:
    client = await make_client(db)
    await make_rate_card(
        db, client, "STOR-UNIT", rate_category="storage",
        unit_price="0.10", price_unit="per_unit_per_day",
    )
    emptied = await make_inventory(db, client, on_hand="25")
    kept = await make_inventory(db, client, on_hand="5")
    service = StorageFeeService(db)

    assert await service.take_storage_snapshot(SEPT_START) == 2
    await db.commit()

    emptied.qty_on_hand = Decimal("0")
    await db.commit()
    assert await service.take_storage_snapshot(SEPT_START) == 1
    await db.commit()

    rows = await db.execute(select(StorageSnapshot.product_id, StorageSnapshot.qty_on_hand))
    assert [tuple(row) for row in rows] == [(kept.product_id, Decimal("5"))]

    [fee] = await service.calculate_storage_fees(client.id, SEPT_START, SEPT_START)
    assert fee.total_quantity == Decimal("5")
    assert fee.total_amount == Decimal("0.50")
