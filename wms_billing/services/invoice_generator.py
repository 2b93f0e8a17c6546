"""
Invoice Generator.

Turns a client's uninvoiced usage and storage fees for a period into one
draft invoice.

Everything an invoice writes (the invoice row, its items, the consumed usage
records and the invoice-number increment) happens inside one SAVEPOINT: an
error at any step leaves no trace of the invoice and re-raises.
"""
import logging
import uuid
from dataclasses import dataclass, field, asdict
from datetime import date, timedelta
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional, List, Dict, Any

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from wms_billing.db_types import CENT, ZERO
from wms_billing.models.billing import Invoice, InvoiceItem, InvoiceStatus, UsageRecord
from wms_billing.models.document_sequence import DocumentType
from wms_billing.services.billing_config_service import BillingConfigService
from wms_billing.services.document_sequence_service import DocumentSequenceService, today_utc
from wms_billing.services.exceptions import UsageConflictError
from wms_billing.services.storage_fee_service import StorageFeeService
from wms_billing.services.usage_service import UsageService, group_usage


logger = logging.getLogger(__name__)

MINIMUM_ADJUSTMENT_DESCRIPTION = "Monthly Minimum Adjustment"


@dataclass
class LineItem:
    description: str
    quantity: Decimal
    unit_price: Decimal
    total: Decimal


@dataclass
class InvoiceResult:
    invoice_id: uuid.UUID
    invoice_number: str
    total: Decimal


@dataclass
class _Charges:
    items: List[LineItem] = field(default_factory=list)
    usage_ids: List[uuid.UUID] = field(default_factory=list)
    usage_total: Decimal = ZERO
    storage_total: Decimal = ZERO

    @property
    def subtotal(self) -> Decimal:
        return sum((item.total for item in self.items), ZERO)


def calculate_tax(subtotal: Decimal, tax_rate: Decimal, tax_exempt: bool) -> Decimal:
    """Tax on a subtotal, rounded half-up to cents; zero for exempt clients."""
    if tax_exempt or not tax_rate:
        return ZERO.quantize(CENT)
    return (subtotal * Decimal(tax_rate) / Decimal("100")).quantize(CENT, rounding=ROUND_HALF_UP)


class InvoiceGenerator:
    """Builds invoices from usage and storage for one client at a time."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def _collect_charges(
        self,
        client_id: uuid.UUID,
        period_start: date,
        period_end: date,
        include_usage: bool,
        include_storage: bool,
        lock_usage: bool
    ) -> _Charges:
        charges = _Charges()

        if include_usage:
            records = await UsageService(self.db).get_uninvoiced_usage(
                client_id, period_start, period_end, lock=lock_usage
            )
            charges.usage_ids = [record.id for record in records]
            for group in group_usage(records):
                charges.items.append(LineItem(**group))
                charges.usage_total += group["total"]

        if include_storage:
            fees = await StorageFeeService(self.db).calculate_storage_fees(
                client_id, period_start, period_end
            )
            for fee in fees:
                if fee.total_amount <= 0:
                    continue
                charges.items.append(LineItem(
                    description=fee.rate_name,
                    quantity=fee.total_quantity,
                    unit_price=fee.unit_price,
                    total=fee.total_amount,
                ))
                charges.storage_total += fee.total_amount

        return charges

    async def generate_client_invoice(
        self,
        client_id: uuid.UUID,
        period_start: date,
        period_end: date,
        include_usage: bool = True,
        include_storage: bool = True,
        apply_minimum: bool = True,
        tax_rate: Optional[Decimal] = None,
        issue_date: Optional[date] = None
    ) -> Optional[InvoiceResult]:
        """
        Generate a draft invoice for one client and period.

        Args:
            client_id: Client to invoice
            period_start: First day of the billing period
            period_end: Last day of the billing period (inclusive)
            include_usage: Bill uninvoiced usage records
            include_storage: Bill storage fees from snapshots
            apply_minimum: Top up to the client's monthly minimum
            tax_rate: Overrides the client's configured tax rate
            issue_date: Day the invoice is issued; sets its number year and due date.
                Today in UTC if not provided.

        Returns:
            InvoiceResult, or None when there is nothing to bill

        Raises:
            UsageConflictError: Usage was invoiced elsewhere while this invoice was built
        """
        issue_date = issue_date or today_utc()
        terms = await BillingConfigService(self.db).get_effective_terms(client_id)
        effective_tax_rate = tax_rate if tax_rate is not None else terms.tax_rate

        charges = await self._collect_charges(
            client_id, period_start, period_end,
            include_usage, include_storage, lock_usage=True
        )
        subtotal = charges.subtotal
        minimum = terms.monthly_minimum if apply_minimum else ZERO

        if not charges.items and subtotal == 0 and minimum == 0:
            logger.debug(f"Nothing to bill for client {client_id} ({period_start} - {period_end})")
            return None

        items = list(charges.items)
        if minimum > 0 and subtotal < minimum:
            adjustment = minimum - subtotal
            items.append(LineItem(
                description=MINIMUM_ADJUSTMENT_DESCRIPTION,
                quantity=Decimal("1"),
                unit_price=adjustment,
                total=adjustment,
            ))
            subtotal = minimum

        tax_amount = calculate_tax(subtotal, effective_tax_rate, terms.tax_exempt)
        total = subtotal + tax_amount

        async with self.db.begin_nested():
            invoice_number = await DocumentSequenceService(self.db).get_next_number(
                DocumentType.INVOICE, issue_date.year
            )
            invoice = Invoice(
                client_id=client_id,
                invoice_number=invoice_number,
                status=InvoiceStatus.DRAFT.value,
                period_start=period_start,
                period_end=period_end,
                due_date=issue_date + timedelta(days=terms.payment_terms_days),
                subtotal=subtotal,
                tax_rate=effective_tax_rate,
                tax_amount=tax_amount,
                total=total,
            )
            self.db.add(invoice)
            await self.db.flush()

            await self._add_line_items(invoice, items)
            await self._consume_usage(invoice, charges.usage_ids)

        logger.info(
            f"Generated {invoice_number} for client {client_id}: "
            f"{len(items)} items, total {total}"
        )
        return InvoiceResult(invoice_id=invoice.id, invoice_number=invoice_number, total=total)

    async def _add_line_items(self, invoice: Invoice, items: List[LineItem]) -> None:
        for index, item in enumerate(items):
            self.db.add(InvoiceItem(
                invoice_id=invoice.id,
                description=item.description,
                quantity=item.quantity,
                unit_price=item.unit_price,
                total=item.total,
                sort_order=index,
            ))
        await self.db.flush()

    async def _consume_usage(self, invoice: Invoice, usage_ids: List[uuid.UUID]) -> None:
        """Mark exactly the captured usage records invoiced; all of them or none."""
        if not usage_ids:
            return

        result = await self.db.execute(
            update(UsageRecord)
            .where(UsageRecord.id.in_(usage_ids), UsageRecord.invoiced == False)
            .values(invoiced=True, invoice_id=invoice.id)
            .execution_options(synchronize_session="evaluate")
        )
        if result.rowcount != len(usage_ids):
            raise UsageConflictError(
                f"Expected to invoice {len(usage_ids)} usage records for {invoice.invoice_number}, "
                f"updated {result.rowcount}"
            )

    async def get_client_billing_summary(
        self,
        client_id: uuid.UUID,
        period_start: date,
        period_end: date
    ) -> Dict[str, Any]:
        """
        Preview what a client would be billed, without writing anything.

        The monthly minimum is not applied.
        """
        terms = await BillingConfigService(self.db).get_effective_terms(client_id)
        charges = await self._collect_charges(
            client_id, period_start, period_end,
            include_usage=True, include_storage=True, lock_usage=False
        )
        subtotal = charges.subtotal
        tax_amount = calculate_tax(subtotal, terms.tax_rate, terms.tax_exempt)

        return {
            "client_id": client_id,
            "period_start": period_start,
            "period_end": period_end,
            "usage_total": charges.usage_total,
            "storage_total": charges.storage_total,
            "subtotal": subtotal,
            "tax_amount": tax_amount,
            "total": subtotal + tax_amount,
            "line_items": [asdict(item) for item in charges.items],
        }
