"""
Storage Fee Service.

Daily on-hand snapshots and the storage fees priced from them.
"""
import logging
import uuid
from dataclasses import dataclass
from datetime import date
from decimal import Decimal, ROUND_HALF_UP
from typing import List

from sqlalchemy import select, and_
from sqlalchemy.ext.asyncio import AsyncSession

from wms_billing.db_types import CENT, ZERO
from wms_billing.models.billing import ClientRateCard, RateCategory
from wms_billing.models.inventory import Inventory, StorageSnapshot


logger = logging.getLogger(__name__)

# price_unit values billed per occupied location/pallet per day rather than per unit
SLOT_PRICE_UNITS = ("location", "pallet")


@dataclass
class StorageFeeResult:
    rate_code: str
    rate_name: str
    total_quantity: Decimal
    unit_price: Decimal
    price_unit: str
    total_amount: Decimal


def is_slot_priced(price_unit: str) -> bool:
    price_unit = (price_unit or "").lower()
    return any(unit in price_unit for unit in SLOT_PRICE_UNITS)


class StorageFeeService:
    """Service for storage snapshots and storage fee calculation."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def take_storage_snapshot(self, snapshot_date: date = None) -> int:
        """
        Record today's on-hand quantity for every stocked product/location.

        Re-running for a date replaces that date's quantities and drops slots
        that are no longer stocked.

        Args:
            snapshot_date: Day being recorded, today if not provided

        Returns:
            Number of snapshot rows written
        """
        snapshot_date = snapshot_date or date.today()

        inventory = await self.db.execute(
            select(Inventory).where(Inventory.qty_on_hand > 0)
        )
        existing = await self.db.execute(
            select(StorageSnapshot).where(StorageSnapshot.snapshot_date == snapshot_date)
        )
        by_slot = {
            (snap.product_id, snap.location_id): snap
            for snap in existing.scalars().all()
        }

        written = 0
        for row in inventory.scalars().all():
            snapshot = by_slot.pop((row.product_id, row.location_id), None)
            if snapshot is None:
                self.db.add(StorageSnapshot(
                    snapshot_date=snapshot_date,
                    client_id=row.client_id,
                    product_id=row.product_id,
                    location_id=row.location_id,
                    qty_on_hand=row.qty_on_hand,
                ))
            else:
                snapshot.client_id = row.client_id
                snapshot.qty_on_hand = row.qty_on_hand
            written += 1

        # Slots emptied since the last run for this date no longer hold stock
        for stale in by_slot.values():
            await self.db.delete(stale)

        await self.db.flush()
        logger.info(
            f"Storage snapshot {snapshot_date}: {written} rows, {len(by_slot)} removed"
        )
        return written

    async def calculate_storage_fees(
        self,
        client_id: uuid.UUID,
        period_start: date,
        period_end: date
    ) -> List[StorageFeeResult]:
        """
        Price a client's storage over a period, one result per storage rate card.

        Per-unit rates bill the summed daily on-hand quantity; location and
        pallet rates bill the number of occupied (day, location) pairs.
        """
        rate_cards = await self.db.execute(
            select(ClientRateCard)
            .where(
                and_(
                    ClientRateCard.client_id == client_id,
                    ClientRateCard.rate_category == RateCategory.STORAGE.value,
                    ClientRateCard.is_active == True,
                )
            )
            .order_by(ClientRateCard.rate_code)
        )
        rate_cards = list(rate_cards.scalars().all())
        if not rate_cards:
            return []

        snapshots = await self.db.execute(
            select(StorageSnapshot).where(
                and_(
                    StorageSnapshot.client_id == client_id,
                    StorageSnapshot.snapshot_date >= period_start,
                    StorageSnapshot.snapshot_date <= period_end,
                )
            )
        )
        snapshots = list(snapshots.scalars().all())

        unit_days = sum((Decimal(s.qty_on_hand) for s in snapshots), ZERO)
        slot_days = Decimal(len({
            (s.snapshot_date, s.location_id) for s in snapshots if s.qty_on_hand > 0
        }))

        fees = []
        for rate_card in rate_cards:
            if not self._in_effect(rate_card, period_start, period_end):
                continue
            quantity = slot_days if is_slot_priced(rate_card.price_unit) else unit_days
            amount = (quantity * rate_card.unit_price).quantize(CENT, rounding=ROUND_HALF_UP)
            if quantity > 0 and rate_card.minimum_charge and amount < rate_card.minimum_charge:
                amount = rate_card.minimum_charge

            fees.append(StorageFeeResult(
                rate_code=rate_card.rate_code,
                rate_name=rate_card.rate_name,
                total_quantity=quantity,
                unit_price=rate_card.unit_price,
                price_unit=rate_card.price_unit,
                total_amount=amount,
            ))

        return fees

    @staticmethod
    def _in_effect(rate_card: ClientRateCard, period_start: date, period_end: date) -> bool:
        if rate_card.effective_date and rate_card.effective_date > period_end:
            return False
        if rate_card.expiration_date and rate_card.expiration_date < period_start:
            return False
        return True
