"""
Inventory Reservation Endpoints.

Place and release holds, check availability, and list live holds.
"""
from typing import Optional, List
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from wms_billing.database import get_db
from wms_billing.schemas.inventory import (
    ReserveRequest, ReleaseRequest, TransactionResponse,
    AvailabilityRequest, AvailabilityResponse, ActiveReservationResponse,
)
from wms_billing.services.exceptions import InsufficientInventoryError, InvalidReleaseError
from wms_billing.services.inventory_service import InventoryService, AvailabilityCheck

router = APIRouter()


@router.post(
    "/reserve",
    response_model=TransactionResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Reserve Inventory"
)
async def reserve_inventory(
    data: ReserveRequest,
    db: AsyncSession = Depends(get_db)
):
    try:
        transaction_id = await InventoryService(db).reserve_inventory(
            data.product_id,
            data.location_id,
            data.quantity,
            reference_type=data.reference_type,
            reference_id=data.reference_id,
            performed_by=data.performed_by
        )
    except InsufficientInventoryError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    return TransactionResponse(transaction_id=transaction_id)


@router.post("/release", response_model=TransactionResponse, summary="Release Reservation")
async def release_reservation(
    data: ReleaseRequest,
    db: AsyncSession = Depends(get_db)
):
    try:
        transaction_id = await InventoryService(db).release_reservation(
            data.product_id,
            data.location_id,
            data.quantity,
            also_deduct=data.also_deduct,
            reference_type=data.reference_type,
            reference_id=data.reference_id,
            performed_by=data.performed_by
        )
    except InvalidReleaseError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    return TransactionResponse(transaction_id=transaction_id)


@router.post(
    "/availability",
    response_model=List[AvailabilityResponse],
    summary="Check Availability"
)
async def check_availability(
    data: AvailabilityRequest,
    db: AsyncSession = Depends(get_db)
):
    items = [
        AvailabilityCheck(item.product_id, item.location_id, item.qty_requested)
        for item in data.items
    ]
    return await InventoryService(db).check_availability(items)


@router.get(
    "/reservations",
    response_model=List[ActiveReservationResponse],
    summary="List Active Reservations"
)
async def list_active_reservations(
    client_id: Optional[UUID] = None,
    db: AsyncSession = Depends(get_db)
):
    rows = await InventoryService(db).get_active_reservations(client_id)
    return [
        ActiveReservationResponse(
            product_id=row.product_id,
            location_id=row.location_id,
            client_id=row.client_id,
            qty_reserved=row.qty_reserved,
        )
        for row in rows
    ]
