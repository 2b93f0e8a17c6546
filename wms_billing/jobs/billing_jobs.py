"""
Billing Jobs.

Scheduled counterparts of the cron endpoints. Each job opens its own session
and returns a results dict so it can also be called directly (tests, shell).
"""
import logging
from datetime import date, datetime, timezone
from typing import Dict, Any, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from wms_billing.config import settings
from wms_billing.models.billing import BillingRunType
from wms_billing.services.billing_run_service import BillingRunService, previous_month_period
from wms_billing.services.invoice_service import InvoiceService
from wms_billing.services.reservation_expiry_service import ReservationExpiryService
from wms_billing.services.storage_fee_service import StorageFeeService

logger = logging.getLogger(__name__)


async def run_monthly_billing_job(db: AsyncSession, today: Optional[date] = None) -> Dict[str, Any]:
    """Bill every active client for the previous calendar month."""
    logger.info("Starting monthly billing job...")
    period_start, period_end = previous_month_period(today)

    run = await BillingRunService(db).run_billing(
        BillingRunType.SCHEDULED, period_start, period_end
    )
    return {
        "run_number": run.run_number,
        "status": run.status,
        "invoices_generated": run.invoices_generated,
        "total_billed": float(run.total_billed),
        "errors": len(run.errors or []),
    }


async def run_reservation_expiry_job(db: AsyncSession) -> Dict[str, Any]:
    logger.info("Starting reservation expiry job...")
    result = await ReservationExpiryService(db).expire_stale_reservations(
        settings.RESERVATION_EXPIRATION_DAYS
    )
    return {
        "orders_processed": result.orders_processed,
        "reservations_released": result.reservations_released,
        "errors": len(result.errors),
    }


async def run_storage_snapshot_job(db: AsyncSession) -> Dict[str, Any]:
    logger.info("Starting storage snapshot job...")
    count = await StorageFeeService(db).take_storage_snapshot()
    await db.commit()
    return {"snapshots": count}


async def run_overdue_invoices_job(db: AsyncSession) -> Dict[str, Any]:
    logger.info("Starting overdue invoice job...")
    count = await InvoiceService(db).mark_overdue_invoices()
    return {"marked_overdue": count}


JOBS = {
    "monthly_billing_run": (run_monthly_billing_job, "Monthly billing run", {"day": 1, "hour": 6, "minute": 0}),
    "expire_reservations": (run_reservation_expiry_job, "Expire stale reservations", {"hour": 4, "minute": 0}),
    "daily_storage_snapshot": (run_storage_snapshot_job, "Daily storage snapshot", {"hour": 2, "minute": 0}),
    "mark_overdue_invoices": (run_overdue_invoices_job, "Mark overdue invoices", {"hour": 5, "minute": 0}),
}


def _make_wrapper(job_id: str, job_func):
    from wms_billing.database import get_db_session

    async def job_wrapper():
        started = datetime.now(timezone.utc)
        try:
            async with get_db_session() as db:
                result = await job_func(db)
            duration = (datetime.now(timezone.utc) - started).total_seconds()
            logger.info(f"Job '{job_id}' completed in {duration:.2f}s: {result}")
        except Exception as e:
            logger.error(f"Job '{job_id}' failed: {e}")

    return job_wrapper


def register_billing_jobs(scheduler):
    """
    Register the billing jobs with APScheduler.

    Args:
        scheduler: APScheduler instance
    """
    for job_id, (job_func, name, trigger_args) in JOBS.items():
        scheduler.add_job(
            _make_wrapper(job_id, job_func),
            'cron',
            id=job_id,
            name=name,
            replace_existing=True,
            **trigger_args,
        )
    logger.info(f"Registered {len(JOBS)} billing jobs")
