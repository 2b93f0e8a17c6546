"""
Invoice Service.

Invoice lifecycle after generation: listing, sending, payment, deletion of
drafts, total recalculation and overdue marking.
"""
import logging
import uuid
from datetime import datetime, timezone, date
from typing import Optional, List

from sqlalchemy import select, update, and_
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from wms_billing.db_types import ZERO
from wms_billing.models.billing import Invoice, InvoiceStatus, UsageRecord
from wms_billing.services.billing_config_service import BillingConfigService
from wms_billing.services.exceptions import InvoiceNotFoundError, InvalidInvoiceStateError
from wms_billing.services.invoice_generator import calculate_tax


logger = logging.getLogger(__name__)


class InvoiceService:
    """Service for invoice lifecycle operations."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def list_invoices(
        self,
        client_id: Optional[uuid.UUID] = None,
        status: Optional[InvoiceStatus] = None,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        skip: int = 0,
        limit: int = 100
    ) -> List[Invoice]:
        """List invoices, newest first; dates filter on the billing period."""
        query = select(Invoice)
        if client_id:
            query = query.where(Invoice.client_id == client_id)
        if status:
            query = query.where(Invoice.status == status.value)
        if start_date:
            query = query.where(Invoice.period_start >= start_date)
        if end_date:
            query = query.where(Invoice.period_end <= end_date)

        query = query.order_by(Invoice.created_at.desc()).offset(skip).limit(limit)
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def get_invoice(self, invoice_id: uuid.UUID) -> Invoice:
        """Get an invoice with its items."""
        result = await self.db.execute(
            select(Invoice)
            .options(selectinload(Invoice.items))
            .where(Invoice.id == invoice_id)
        )
        invoice = result.scalar_one_or_none()
        if invoice is None:
            raise InvoiceNotFoundError(f"Invoice {invoice_id} not found")
        return invoice

    async def send_invoice(self, invoice_id: uuid.UUID) -> Invoice:
        """Mark a draft invoice as sent. Delivery itself happens elsewhere."""
        invoice = await self.get_invoice(invoice_id)
        if invoice.status != InvoiceStatus.DRAFT.value:
            raise InvalidInvoiceStateError(
                f"Invoice {invoice.invoice_number} is {invoice.status}, only drafts can be sent"
            )

        invoice.status = InvoiceStatus.SENT.value
        invoice.sent_at = datetime.now(timezone.utc)
        await self.db.commit()
        return await self.get_invoice(invoice_id)

    async def mark_invoice_paid(self, invoice_id: uuid.UUID) -> Invoice:
        invoice = await self.get_invoice(invoice_id)
        if invoice.status in (InvoiceStatus.PAID.value, InvoiceStatus.CANCELLED.value):
            raise InvalidInvoiceStateError(
                f"Invoice {invoice.invoice_number} is already {invoice.status}"
            )

        invoice.status = InvoiceStatus.PAID.value
        invoice.paid_at = datetime.now(timezone.utc)
        await self.db.commit()
        return await self.get_invoice(invoice_id)

    async def delete_invoice(self, invoice_id: uuid.UUID) -> None:
        """
        Delete a draft invoice.

        Its usage records return to the uninvoiced pool so the next run bills them again.
        """
        invoice = await self.get_invoice(invoice_id)
        if invoice.status != InvoiceStatus.DRAFT.value:
            raise InvalidInvoiceStateError(
                f"Invoice {invoice.invoice_number} is {invoice.status}, only drafts can be deleted"
            )

        await self.db.execute(
            update(UsageRecord)
            .where(UsageRecord.invoice_id == invoice.id)
            .values(invoiced=False, invoice_id=None)
            .execution_options(synchronize_session="evaluate")
        )
        await self.db.delete(invoice)
        await self.db.commit()
        logger.info(f"Deleted draft invoice {invoice.invoice_number}")

    async def recalculate_totals(self, invoice_id: uuid.UUID) -> Invoice:
        """Recompute subtotal, tax and total from the invoice's items."""
        invoice = await self.get_invoice(invoice_id)
        terms = await BillingConfigService(self.db).get_effective_terms(invoice.client_id)

        subtotal = sum((item.total for item in invoice.items), ZERO)
        invoice.subtotal = subtotal
        invoice.tax_amount = calculate_tax(subtotal, invoice.tax_rate, terms.tax_exempt)
        invoice.total = subtotal + invoice.tax_amount

        await self.db.commit()
        return await self.get_invoice(invoice_id)

    async def mark_overdue_invoices(self, today: Optional[date] = None) -> int:
        """Move sent invoices past their due date to overdue. Returns how many moved."""
        today = today or date.today()
        result = await self.db.execute(
            update(Invoice)
            .where(
                and_(
                    Invoice.status == InvoiceStatus.SENT.value,
                    Invoice.due_date < today,
                )
            )
            .values(status=InvoiceStatus.OVERDUE.value)
            .execution_options(synchronize_session="evaluate")
        )
        count = result.rowcount or 0
        await self.db.commit()
        if count:
            logger.info(f"Marked {count} invoices overdue")
        return count
