"""
Reservation Expiry Service.

Releases inventory held for outbound orders that have sat in "confirmed"
longer than the expiration threshold. The order's status is left alone; only
its holds and notes change.
"""
import logging
import uuid
from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import datetime, timezone, timedelta
from decimal import Decimal
from typing import List, Dict, Any, Optional, Tuple

from sqlalchemy import select, and_
from sqlalchemy.ext.asyncio import AsyncSession

from wms_billing.config import settings
from wms_billing.db_types import ZERO
from wms_billing.models.inventory import InventoryTransaction, TransactionType
from wms_billing.models.order import OutboundOrder, OutboundOrderStatus
from wms_billing.services.inventory_service import InventoryService


logger = logging.getLogger(__name__)

ORDER_REFERENCE_TYPE = "outbound_order"


@dataclass
class ReservationExpiryResult:
    expiration_days: int
    cutoff: datetime
    orders_processed: int = 0
    reservations_released: int = 0
    errors: List[Dict[str, Any]] = field(default_factory=list)


def expiry_note(expiration_days: int, when: datetime) -> str:
    return f"[Auto] Reservations expired after {expiration_days} days ({when.date().isoformat()})"


class ReservationExpiryService:
    """Sweeps stale confirmed orders and releases their inventory holds."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.inventory = InventoryService(db)

    async def get_stale_orders(self, cutoff: datetime) -> List[OutboundOrder]:
        result = await self.db.execute(
            select(OutboundOrder)
            .where(
                and_(
                    OutboundOrder.status == OutboundOrderStatus.CONFIRMED.value,
                    OutboundOrder.confirmed_at < cutoff,
                )
            )
            .order_by(OutboundOrder.confirmed_at)
        )
        return list(result.scalars().all())

    async def _outstanding_holds(
        self,
        order_id: uuid.UUID
    ) -> "OrderedDict[Tuple[uuid.UUID, uuid.UUID], Decimal]":
        """
        Quantity still held for an order, per (product_id, location_id).

        Reserve rows add to the hold; release and ship rows already tagged to
        the order take away from it.
        """
        result = await self.db.execute(
            select(InventoryTransaction)
            .where(
                and_(
                    InventoryTransaction.reference_type == ORDER_REFERENCE_TYPE,
                    InventoryTransaction.reference_id == order_id,
                )
            )
            .order_by(InventoryTransaction.created_at)
        )

        holds: "OrderedDict[Tuple[uuid.UUID, uuid.UUID], Decimal]" = OrderedDict()
        for txn in result.scalars().all():
            key = (txn.product_id, txn.location_id)
            qty = abs(Decimal(txn.qty_change))
            if txn.transaction_type == TransactionType.RESERVE.value:
                holds[key] = holds.get(key, ZERO) + qty
            elif txn.transaction_type in (TransactionType.RELEASE.value, TransactionType.SHIP.value):
                holds[key] = holds.get(key, ZERO) - qty
        return holds

    async def _expire_order(self, order: OutboundOrder, result: ReservationExpiryResult, now: datetime) -> int:
        released = 0
        holds = await self._outstanding_holds(order.id)

        for (product_id, location_id), held in holds.items():
            inventory = await self.inventory.get_inventory(product_id, location_id)
            if inventory is None or inventory.qty_reserved <= 0 or held <= 0:
                continue

            qty_to_release = min(held, inventory.qty_reserved)
            try:
                async with self.db.begin_nested():
                    await self.inventory.release_reservation(
                        product_id,
                        location_id,
                        qty_to_release,
                        also_deduct=False,
                        reference_type=ORDER_REFERENCE_TYPE,
                        reference_id=order.id,
                        notes=f"Reservation expired for order {order.order_number}",
                    )
                released += 1
            except Exception as e:
                logger.warning(
                    f"Failed to release {qty_to_release} of product {product_id} at "
                    f"{location_id} for order {order.order_number}: {e}"
                )

        if released:
            note = expiry_note(result.expiration_days, now)
            order.notes = f"{order.notes}\n{note}" if order.notes else note
            await self.db.flush()

        return released

    async def expire_stale_reservations(
        self,
        expiration_days: Optional[int] = None
    ) -> ReservationExpiryResult:
        """
        Release holds of confirmed orders older than the threshold.

        Args:
            expiration_days: Age in days after which a confirmed order's holds expire.
                The configured default if not provided.

        Returns:
            ReservationExpiryResult with counts and per-order errors
        """
        if expiration_days is None:
            expiration_days = settings.RESERVATION_EXPIRATION_DAYS
        now = datetime.now(timezone.utc)
        result = ReservationExpiryResult(
            expiration_days=expiration_days,
            cutoff=now - timedelta(days=expiration_days),
        )

        orders = await self.get_stale_orders(result.cutoff)
        result.orders_processed = len(orders)
        logger.info(f"Found {len(orders)} confirmed orders older than {expiration_days} days")

        for order in orders:
            # A rolled back savepoint expires the order; keep what the error entry needs
            order_id, order_number = order.id, order.order_number
            try:
                async with self.db.begin_nested():
                    result.reservations_released += await self._expire_order(order, result, now)
            except Exception as e:
                logger.error(f"Error expiring reservations for order {order_number}: {e}")
                result.errors.append({"order_id": str(order_id), "error": str(e)})

        await self.db.commit()

        logger.info(
            f"Reservation expiry complete: {result.orders_processed} orders, "
            f"{result.reservations_released} releases, {len(result.errors)} errors"
        )
        return result
