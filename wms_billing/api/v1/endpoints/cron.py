"""
Cron Trigger Endpoints.

Entry points for an external scheduler (or an operator with the cron secret):
- Monthly billing run for the previous calendar month
- Expiry of stale order reservations
- Daily storage snapshot

Every POST requires `Authorization: Bearer <CRON_SECRET>`; GET describes the job.
"""
import logging
import time
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from wms_billing.api.deps import CronAuthorized
from wms_billing.config import settings
from wms_billing.database import get_db
from wms_billing.models.billing import BillingRunType, BillingRunStatus
from wms_billing.services.billing_run_service import BillingRunService, previous_month_period
from wms_billing.services.reservation_expiry_service import ReservationExpiryService
from wms_billing.services.storage_fee_service import StorageFeeService


logger = logging.getLogger(__name__)

router = APIRouter()


def _duration(started: float) -> str:
    return f"{int((time.monotonic() - started) * 1000)}ms"


async def _error_response(db: AsyncSession, job: str, exc: Exception) -> JSONResponse:
    await db.rollback()
    logger.exception(f"Cron job '{job}' failed: {exc}")
    return JSONResponse(status_code=500, content={"error": str(exc)})


# ============================================================================
# MONTHLY BILLING RUN
# ============================================================================

@router.post("/monthly-billing-run", summary="Run Monthly Billing", dependencies=[CronAuthorized])
async def monthly_billing_run(db: AsyncSession = Depends(get_db)):
    """Invoice every active client for the previous calendar month."""
    started = time.monotonic()
    period_start, period_end = previous_month_period()
    try:
        run = await BillingRunService(db).run_billing(
            BillingRunType.SCHEDULED, period_start, period_end
        )
    except Exception as e:
        return await _error_response(db, "monthly-billing-run", e)

    return {
        "success": run.status != BillingRunStatus.FAILED.value,
        "billingRunId": str(run.id),
        "runNumber": run.run_number,
        "period": {"start": period_start.isoformat(), "end": period_end.isoformat()},
        "status": run.status,
        "invoicesGenerated": run.invoices_generated,
        "totalBilled": float(run.total_billed),
        "errors": run.errors or [],
        "duration": _duration(started),
    }


@router.get("/monthly-billing-run", summary="Describe Monthly Billing")
async def describe_monthly_billing_run():
    return {
        "endpoint": "/api/v1/cron/monthly-billing-run",
        "method": "POST",
        "description": "Generates invoices for all active clients for the previous month",
        "schedule": "1st of each month at 06:00",
        "auth": "Bearer token (CRON_SECRET)",
    }


# ============================================================================
# RESERVATION EXPIRY
# ============================================================================

@router.post("/expire-reservations", summary="Expire Stale Reservations", dependencies=[CronAuthorized])
async def expire_reservations(
    days: Optional[int] = Query(None, ge=1, description="Expiration threshold in days"),
    db: AsyncSession = Depends(get_db)
):
    """Release inventory held by confirmed orders older than the threshold."""
    started = time.monotonic()
    try:
        result = await ReservationExpiryService(db).expire_stale_reservations(days)
    except Exception as e:
        return await _error_response(db, "expire-reservations", e)

    return {
        "success": True,
        "expirationDays": result.expiration_days,
        "cutoffDate": result.cutoff.isoformat(),
        "ordersProcessed": result.orders_processed,
        "reservationsReleased": result.reservations_released,
        "errors": result.errors,
        "duration": _duration(started),
    }


@router.get("/expire-reservations", summary="Describe Reservation Expiry")
async def describe_expire_reservations():
    return {
        "endpoint": "/api/v1/cron/expire-reservations",
        "method": "POST",
        "description": "Releases reservations held by confirmed orders past the expiration threshold",
        "parameters": {
            "days": f"Expiration threshold in days (default {settings.RESERVATION_EXPIRATION_DAYS})",
        },
        "schedule": "Daily at 04:00",
        "auth": "Bearer token (CRON_SECRET)",
    }


# ============================================================================
# STORAGE SNAPSHOT
# ============================================================================

@router.post("/daily-storage-snapshot", summary="Take Storage Snapshot", dependencies=[CronAuthorized])
async def daily_storage_snapshot(db: AsyncSession = Depends(get_db)):
    """Record today's on-hand quantities for storage billing."""
    started = time.monotonic()
    snapshot_date = date.today()
    try:
        count = await StorageFeeService(db).take_storage_snapshot(snapshot_date)
        await db.commit()
    except Exception as e:
        return await _error_response(db, "daily-storage-snapshot", e)

    return {
        "success": True,
        "snapshotDate": snapshot_date.isoformat(),
        "snapshotsCreated": count,
        "duration": _duration(started),
    }


@router.get("/daily-storage-snapshot", summary="Describe Storage Snapshot")
async def describe_daily_storage_snapshot():
    return {
        "endpoint": "/api/v1/cron/daily-storage-snapshot",
        "method": "POST",
        "description": "Records on-hand quantity per product and location for storage fees",
        "schedule": "Daily at 02:00",
        "auth": "Bearer token (CRON_SECRET)",
    }
