"""
Inventory Service.

Reservation holds against product/location stock. Every change writes an
InventoryTransaction so holds can be traced back to the order that placed them.
"""
import logging
import uuid
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional, List, Dict, Any

from sqlalchemy import select, and_
from sqlalchemy.ext.asyncio import AsyncSession

from wms_billing.db_types import ZERO
from wms_billing.models.inventory import Inventory, InventoryTransaction, TransactionType
from wms_billing.services.exceptions import InsufficientInventoryError, InvalidReleaseError


logger = logging.getLogger(__name__)


@dataclass
class AvailabilityCheck:
    """Single product/location in an availability check."""
    product_id: uuid.UUID
    location_id: uuid.UUID
    qty_requested: Decimal


class InventoryService:
    """Service for inventory reservations."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_inventory(
        self,
        product_id: uuid.UUID,
        location_id: uuid.UUID,
        lock: bool = False
    ) -> Optional[Inventory]:
        query = select(Inventory).where(
            and_(
                Inventory.product_id == product_id,
                Inventory.location_id == location_id,
            )
        )
        if lock:
            query = query.with_for_update()
        result = await self.db.execute(query)
        return result.scalar_one_or_none()

    async def reserve_inventory(
        self,
        product_id: uuid.UUID,
        location_id: uuid.UUID,
        quantity: Decimal,
        reference_type: str = "outbound_order",
        reference_id: Optional[uuid.UUID] = None,
        performed_by: Optional[uuid.UUID] = None
    ) -> uuid.UUID:
        """
        Place a hold on stock at a location.

        Args:
            product_id: Product to hold
            location_id: Location holding the stock
            quantity: Quantity to hold, must not exceed what is available
            reference_type: Kind of document the hold is for
            reference_id: Document the hold is for
            performed_by: User placing the hold

        Returns:
            ID of the reserve transaction

        Raises:
            InsufficientInventoryError: Not enough unreserved stock
        """
        if quantity <= 0:
            raise InsufficientInventoryError("Reserve quantity must be positive")

        inventory = await self.get_inventory(product_id, location_id, lock=True)
        available = inventory.qty_available if inventory else ZERO
        if inventory is None or available < quantity:
            raise InsufficientInventoryError(
                f"Insufficient stock for product {product_id} at {location_id}: "
                f"requested {quantity}, available {available}"
            )

        inventory.qty_reserved = inventory.qty_reserved + quantity

        transaction = InventoryTransaction(
            product_id=product_id,
            location_id=location_id,
            transaction_type=TransactionType.RESERVE.value,
            qty_change=quantity,
            reference_type=reference_type,
            reference_id=reference_id,
            performed_by=performed_by,
        )
        self.db.add(transaction)
        await self.db.flush()
        return transaction.id

    async def release_reservation(
        self,
        product_id: uuid.UUID,
        location_id: uuid.UUID,
        quantity: Decimal,
        also_deduct: bool = False,
        reference_type: Optional[str] = None,
        reference_id: Optional[uuid.UUID] = None,
        performed_by: Optional[uuid.UUID] = None,
        notes: Optional[str] = None
    ) -> uuid.UUID:
        """
        Release part or all of a hold.

        The inventory row is locked for the rest of the caller's transaction,
        so concurrent releases of the same pair cannot both succeed.

        Args:
            product_id: Product held
            location_id: Location holding the stock
            quantity: Quantity to release, at most the live qty_reserved
            also_deduct: True when the stock leaves the building (ship),
                False when the hold is simply dropped (cancel/expire)

        Returns:
            ID of the release transaction

        Raises:
            InvalidReleaseError: Quantity not positive, or larger than the hold
        """
        if quantity <= 0:
            raise InvalidReleaseError("Release quantity must be positive")

        inventory = await self.get_inventory(product_id, location_id, lock=True)
        if inventory is None:
            raise InvalidReleaseError(f"No inventory for product {product_id} at {location_id}")
        if quantity > inventory.qty_reserved:
            raise InvalidReleaseError(
                f"Cannot release {quantity} of product {product_id} at {location_id}: "
                f"only {inventory.qty_reserved} reserved"
            )

        inventory.qty_reserved = inventory.qty_reserved - quantity
        if also_deduct:
            inventory.qty_on_hand = inventory.qty_on_hand - quantity

        transaction = InventoryTransaction(
            product_id=product_id,
            location_id=location_id,
            transaction_type=(
                TransactionType.SHIP.value if also_deduct else TransactionType.RELEASE.value
            ),
            qty_change=-quantity,
            reference_type=reference_type,
            reference_id=reference_id,
            performed_by=performed_by,
            notes=notes,
        )
        self.db.add(transaction)
        await self.db.flush()
        return transaction.id

    async def check_availability(self, items: List[AvailabilityCheck]) -> List[Dict[str, Any]]:
        """Availability for each requested product/location."""
        results = []
        for item in items:
            inventory = await self.get_inventory(item.product_id, item.location_id)
            on_hand = inventory.qty_on_hand if inventory else ZERO
            reserved = inventory.qty_reserved if inventory else ZERO
            available = on_hand - reserved
            results.append({
                "product_id": item.product_id,
                "location_id": item.location_id,
                "qty_on_hand": on_hand,
                "qty_reserved": reserved,
                "qty_available": available,
                "can_fulfill": available >= item.qty_requested,
                "shortfall": max(item.qty_requested - available, ZERO),
            })
        return results

    async def get_active_reservations(
        self,
        client_id: Optional[uuid.UUID] = None
    ) -> List[Inventory]:
        """Inventory rows that currently carry a hold."""
        query = select(Inventory).where(Inventory.qty_reserved > 0)
        if client_id:
            query = query.where(Inventory.client_id == client_id)
        query = query.order_by(Inventory.client_id, Inventory.product_id)
        result = await self.db.execute(query)
        return list(result.scalars().all())
