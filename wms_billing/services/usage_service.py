"""
Usage Service.

Records billable events against client rate cards and reads the usage ledger.
"""
import logging
import uuid
from datetime import date
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional, List, Dict, Any

from sqlalchemy import select, and_
from sqlalchemy.ext.asyncio import AsyncSession

from wms_billing.db_types import CENT
from wms_billing.models.billing import ClientRateCard, UsageRecord
from wms_billing.services.billing_config_service import BillingConfigService
from wms_billing.services.exceptions import RateCardNotFoundError


logger = logging.getLogger(__name__)


def tier_unit_price(rate_card: ClientRateCard, quantity: Decimal) -> Decimal:
    """
    Unit price for a quantity, honouring volume tiers.

    A tier matches when min_qty <= quantity and (max_qty is open or
    quantity <= max_qty). Without a matching tier the card's unit_price applies.
    """
    for tier in rate_card.volume_tiers or []:
        min_qty = Decimal(str(tier.get("min_qty", 0)))
        max_qty = tier.get("max_qty")
        if quantity < min_qty:
            continue
        if max_qty is not None and quantity > Decimal(str(max_qty)):
            continue
        return Decimal(str(tier["unit_price"]))
    return rate_card.unit_price


class UsageService:
    """Service for the usage ledger."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def record_billable_event(
        self,
        client_id: uuid.UUID,
        rate_code: str,
        quantity: Decimal,
        reference_type: Optional[str] = None,
        reference_id: Optional[uuid.UUID] = None,
        usage_date: Optional[date] = None,
        notes: Optional[str] = None,
        commit: bool = True
    ) -> UsageRecord:
        """
        Record one billable event priced from the client's active rate card.

        Args:
            client_id: Client to bill
            rate_code: Rate card code, e.g. PICK-EACH
            quantity: Billable quantity
            reference_type: Kind of originating transaction (order, receipt, ...)
            reference_id: ID of the originating transaction
            usage_date: Day the work happened, today if not provided
            notes: Free text
            commit: Commit immediately; False lets callers batch events

        Returns:
            The new usage record

        Raises:
            RateCardNotFoundError: No active rate card with that code
        """
        rate_card = await BillingConfigService(self.db).get_rate_card_by_code(client_id, rate_code)
        if rate_card is None:
            raise RateCardNotFoundError(
                f"No active rate card '{rate_code}' for client {client_id}"
            )

        unit_price = tier_unit_price(rate_card, quantity)
        total = (quantity * unit_price).quantize(CENT, rounding=ROUND_HALF_UP)
        if rate_card.minimum_charge and total < rate_card.minimum_charge:
            total = rate_card.minimum_charge

        record = UsageRecord(
            client_id=client_id,
            usage_type=rate_card.rate_name,
            rate_code=rate_card.rate_code,
            quantity=quantity,
            unit_price=unit_price,
            total=total,
            usage_date=usage_date or date.today(),
            reference_type=reference_type,
            reference_id=reference_id,
            notes=notes,
            invoiced=False,
        )
        self.db.add(record)

        if commit:
            await self.db.commit()
            await self.db.refresh(record)
        else:
            await self.db.flush()

        logger.debug(f"Recorded {quantity} x {rate_code} for client {client_id}: {total}")
        return record

    async def list_usage(
        self,
        client_id: uuid.UUID,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        invoiced: Optional[bool] = None,
        skip: int = 0,
        limit: int = 100
    ) -> List[UsageRecord]:
        """List a client's usage records, newest first."""
        query = select(UsageRecord).where(UsageRecord.client_id == client_id)
        if start_date:
            query = query.where(UsageRecord.usage_date >= start_date)
        if end_date:
            query = query.where(UsageRecord.usage_date <= end_date)
        if invoiced is not None:
            query = query.where(UsageRecord.invoiced == invoiced)

        query = query.order_by(UsageRecord.usage_date.desc(), UsageRecord.created_at.desc())
        query = query.offset(skip).limit(limit)
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def get_uninvoiced_usage(
        self,
        client_id: uuid.UUID,
        period_start: date,
        period_end: date,
        lock: bool = False
    ) -> List[UsageRecord]:
        """
        Uninvoiced usage for a client within [period_start, period_end].

        Ordered by usage_date so grouping sees records in first-seen order.
        With lock=True the rows stay locked until the caller's transaction ends.
        """
        query = (
            select(UsageRecord)
            .where(
                and_(
                    UsageRecord.client_id == client_id,
                    UsageRecord.invoiced == False,
                    UsageRecord.usage_date >= period_start,
                    UsageRecord.usage_date <= period_end,
                )
            )
            .order_by(UsageRecord.usage_date, UsageRecord.created_at)
        )
        if lock:
            query = query.with_for_update()

        result = await self.db.execute(query)
        return list(result.scalars().all())


def group_usage(records: List[UsageRecord]) -> List[Dict[str, Any]]:
    """
    Group usage records by usage_type in first-seen order.

    Quantities and totals are summed; the first record's unit_price stands for
    the whole group even when later records were priced differently.
    """
    groups: Dict[str, Dict[str, Any]] = {}
    for record in records:
        group = groups.get(record.usage_type)
        if group is None:
            groups[record.usage_type] = {
                "description": record.usage_type,
                "quantity": Decimal(record.quantity),
                "unit_price": Decimal(record.unit_price),
                "total": Decimal(record.total),
            }
        else:
            group["quantity"] += Decimal(record.quantity)
            group["total"] += Decimal(record.total)
    return list(groups.values())
