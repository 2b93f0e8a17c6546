from fastapi import APIRouter

from wms_billing.api.v1.endpoints import (
    # Scheduled job triggers
    cron,
    # Billing
    billing,
    # Inventory reservations
    inventory,
)

# Create main API router
api_router = APIRouter(prefix="/api/v1")

# ==================== Cron Triggers ====================
api_router.include_router(
    cron.router,
    prefix="/cron",
    tags=["Cron"]
)

# ==================== Billing ====================
api_router.include_router(
    billing.router,
    prefix="/billing",
    tags=["Billing"]
)

# ==================== Inventory ====================
api_router.include_router(
    inventory.router,
    prefix="/inventory",
    tags=["Inventory"]
)
