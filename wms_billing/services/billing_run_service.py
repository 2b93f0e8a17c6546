"""
Billing Run Service.

Runs the invoice generator over a set of clients and records the outcome as a
BillingRun. Clients are processed one at a time; each successful invoice is
committed before the next client starts, so a later failure never undoes it.
"""
import logging
import uuid
from datetime import datetime, timezone, date, timedelta
from decimal import Decimal
from typing import Optional, List, Tuple, Dict, Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from wms_billing.models.billing import BillingRun, BillingRunStatus, BillingRunType
from wms_billing.models.client import Client
from wms_billing.models.document_sequence import DocumentType
from wms_billing.services.document_sequence_service import DocumentSequenceService
from wms_billing.services.exceptions import BillingRunNotFoundError, ClientNotFoundError
from wms_billing.services.invoice_generator import InvoiceGenerator


logger = logging.getLogger(__name__)


def previous_month_period(today: Optional[date] = None) -> Tuple[date, date]:
    """First and last day of the calendar month before `today`."""
    today = today or date.today()
    last_day = today.replace(day=1) - timedelta(days=1)
    return last_day.replace(day=1), last_day


def derive_run_status(errors: List[Dict[str, Any]], invoices_generated: int) -> BillingRunStatus:
    """completed without errors; partial with errors and some invoices; failed otherwise."""
    if not errors:
        return BillingRunStatus.COMPLETED
    if invoices_generated > 0:
        return BillingRunStatus.PARTIAL
    return BillingRunStatus.FAILED


class BillingRunService:
    """Service for billing runs."""

    def __init__(self, db: AsyncSession, generator: Optional[InvoiceGenerator] = None):
        self.db = db
        self.generator = generator or InvoiceGenerator(db)

    async def _load_client_ids(self, client_id: Optional[uuid.UUID]) -> List[uuid.UUID]:
        if client_id:
            client = await self.db.get(Client, client_id)
            if client is None:
                raise ClientNotFoundError(f"Client {client_id} not found")
            return [client.id]

        result = await self.db.execute(
            select(Client.id)
            .where(Client.active == True)
            .order_by(Client.company_name)
        )
        return list(result.scalars().all())

    async def run_billing(
        self,
        run_type: BillingRunType,
        period_start: date,
        period_end: date,
        client_id: Optional[uuid.UUID] = None,
        started_by: Optional[uuid.UUID] = None
    ) -> BillingRun:
        """
        Generate invoices for one client or every active client.

        Args:
            run_type: scheduled, manual or retry
            period_start: First day of the billing period
            period_end: Last day of the billing period (inclusive)
            client_id: Bill only this client
            started_by: User who triggered the run

        Returns:
            The finished BillingRun

        Raises:
            ClientNotFoundError: client_id given but unknown; no run is recorded
            Exception: Only when the client set cannot be loaded; the run is
                recorded as failed first. Per-client errors are collected on
                the run instead.
        """
        if client_id and await self.db.get(Client, client_id) is None:
            raise ClientNotFoundError(f"Client {client_id} not found")

        run_number = await DocumentSequenceService(self.db).get_next_number(DocumentType.BILLING_RUN)
        run = BillingRun(
            run_number=run_number,
            run_type=run_type.value,
            period_start=period_start,
            period_end=period_end,
            client_id=client_id,
            status=BillingRunStatus.PENDING.value,
            invoices_generated=0,
            total_billed=Decimal("0"),
            errors=[],
            started_by=started_by,
        )
        self.db.add(run)
        await self.db.commit()

        started = datetime.now(timezone.utc)
        run.status = BillingRunStatus.PROCESSING.value
        run.started_at = started
        await self.db.commit()
        run_id = run.id

        logger.info(f"Billing run {run_number} started ({run_type.value}, {period_start} - {period_end})")

        try:
            client_ids = await self._load_client_ids(client_id)
        except Exception as e:
            logger.error(f"Billing run {run_number} could not load clients: {e}")
            await self.db.rollback()
            run = await self.get_billing_run(run_id)
            run.status = BillingRunStatus.FAILED.value
            run.errors = [{"client_id": "system", "error": str(e)}]
            run.completed_at = datetime.now(timezone.utc)
            await self.db.commit()
            raise

        invoices_generated = 0
        total_billed = Decimal("0")
        errors: List[Dict[str, Any]] = []

        for current_client_id in client_ids:
            try:
                result = await self.generator.generate_client_invoice(
                    current_client_id, period_start, period_end
                )
                await self.db.commit()
                if result is not None:
                    invoices_generated += 1
                    total_billed += result.total
            except Exception as e:
                await self.db.rollback()
                logger.error(f"Billing run {run_number}: client {current_client_id} failed: {e}")
                errors.append({"client_id": str(current_client_id), "error": str(e)})

        status = derive_run_status(errors, invoices_generated)
        run = await self.get_billing_run(run_id)
        run.status = status.value
        run.invoices_generated = invoices_generated
        run.total_billed = total_billed
        run.errors = errors
        run.completed_at = datetime.now(timezone.utc)
        await self.db.commit()

        duration = (run.completed_at - started).total_seconds()
        logger.info(
            f"Billing run {run_number} {status.value}: {invoices_generated} invoices, "
            f"total {total_billed}, {len(errors)} errors, {duration:.2f}s"
        )
        return run

    async def get_billing_run(self, run_id: uuid.UUID) -> BillingRun:
        run = await self.db.get(BillingRun, run_id)
        if run is None:
            raise BillingRunNotFoundError(f"Billing run {run_id} not found")
        return run

    async def list_billing_runs(
        self,
        status: Optional[BillingRunStatus] = None,
        client_id: Optional[uuid.UUID] = None,
        limit: int = 50
    ) -> List[BillingRun]:
        """List billing runs, newest first."""
        query = select(BillingRun)
        if status:
            query = query.where(BillingRun.status == status.value)
        if client_id:
            query = query.where(BillingRun.client_id == client_id)

        query = query.order_by(BillingRun.created_at.desc()).limit(limit)
        result = await self.db.execute(query)
        return list(result.scalars().all())
