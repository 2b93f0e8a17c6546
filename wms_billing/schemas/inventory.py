"""Inventory reservation schemas."""
from decimal import Decimal
from typing import Optional, List
from uuid import UUID

from pydantic import BaseModel, Field


class ReserveRequest(BaseModel):
    product_id: UUID
    location_id: UUID
    quantity: Decimal = Field(..., gt=0)
    reference_type: str = Field(default="outbound_order", max_length=50)
    reference_id: Optional[UUID] = None
    performed_by: Optional[UUID] = None


class ReleaseRequest(BaseModel):
    product_id: UUID
    location_id: UUID
    quantity: Decimal = Field(..., gt=0)
    also_deduct: bool = Field(
        default=False,
        description="True when shipping (consume stock), False when cancelling (free the hold)"
    )
    reference_type: str = Field(default="outbound_order", max_length=50)
    reference_id: Optional[UUID] = None
    performed_by: Optional[UUID] = None


class TransactionResponse(BaseModel):
    transaction_id: UUID
    success: bool = True


class AvailabilityItem(BaseModel):
    product_id: UUID
    location_id: UUID
    qty_requested: Decimal = Field(..., ge=0)


class AvailabilityRequest(BaseModel):
    items: List[AvailabilityItem]


class AvailabilityResponse(BaseModel):
    product_id: UUID
    location_id: UUID
    qty_on_hand: Decimal
    qty_reserved: Decimal
    qty_available: Decimal
    can_fulfill: bool
    shortfall: Decimal


class ActiveReservationResponse(BaseModel):
    product_id: UUID
    location_id: UUID
    client_id: UUID
    qty_reserved: Decimal
