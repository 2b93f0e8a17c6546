"""
Billing Schemas.

Pydantic schemas for client billing configuration, rate cards, usage,
invoices and billing runs.
"""
from datetime import datetime, date
from decimal import Decimal
from typing import Optional, List
from uuid import UUID

from pydantic import BaseModel, Field, ConfigDict, model_validator

from wms_billing.models.billing import (
    BillingFrequency, RateCategory, InvoiceStatus, BillingRunType, BillingRunStatus
)


# ============================================================================
# BILLING CONFIG SCHEMAS
# ============================================================================

class ClientBillingConfigBase(BaseModel):
    """Base schema for client billing config."""
    billing_frequency: BillingFrequency = BillingFrequency.MONTHLY
    billing_day_of_month: int = Field(default=1, ge=1, le=31)
    billing_day_of_week: int = Field(default=1, ge=0, le=6)
    payment_terms_days: int = Field(default=30, ge=0, le=180)
    late_fee_percent: Decimal = Field(default=Decimal("0"), ge=0)
    monthly_minimum: Decimal = Field(default=Decimal("0"), ge=0)
    tax_rate: Decimal = Field(default=Decimal("0"), ge=0, le=100)
    tax_exempt: bool = False
    auto_generate_invoices: bool = True
    auto_send_invoices: bool = False
    billing_email: Optional[str] = Field(None, max_length=255)
    billing_contact_name: Optional[str] = Field(None, max_length=200)
    notes: Optional[str] = None


class ClientBillingConfigUpsert(BaseModel):
    """Partial config; unset fields keep their stored (or default) value."""
    billing_frequency: Optional[BillingFrequency] = None
    billing_day_of_month: Optional[int] = Field(None, ge=1, le=31)
    billing_day_of_week: Optional[int] = Field(None, ge=0, le=6)
    payment_terms_days: Optional[int] = Field(None, ge=0, le=180)
    late_fee_percent: Optional[Decimal] = Field(None, ge=0)
    monthly_minimum: Optional[Decimal] = Field(None, ge=0)
    tax_rate: Optional[Decimal] = Field(None, ge=0, le=100)
    tax_exempt: Optional[bool] = None
    auto_generate_invoices: Optional[bool] = None
    auto_send_invoices: Optional[bool] = None
    billing_email: Optional[str] = Field(None, max_length=255)
    billing_contact_name: Optional[str] = Field(None, max_length=200)
    notes: Optional[str] = None


class ClientBillingConfigResponse(ClientBillingConfigBase):
    """Schema for client billing config response."""
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    client_id: UUID
    created_at: datetime
    updated_at: datetime


# ============================================================================
# RATE CARD SCHEMAS
# ============================================================================

class VolumeTier(BaseModel):
    """Quantity band priced at its own unit price."""
    min_qty: Decimal = Field(..., ge=0)
    max_qty: Optional[Decimal] = None
    unit_price: Decimal = Field(..., ge=0)


class ClientRateCardBase(BaseModel):
    """Base schema for client rate card."""
    rate_category: RateCategory
    rate_code: str = Field(..., max_length=50)
    rate_name: str = Field(..., max_length=100)
    description: Optional[str] = None
    unit_price: Decimal = Field(..., ge=0)
    price_unit: str = Field(default="per_unit", max_length=30)
    volume_tiers: Optional[List[VolumeTier]] = None
    minimum_charge: Decimal = Field(default=Decimal("0"), ge=0)
    effective_date: Optional[date] = None
    expiration_date: Optional[date] = None


class ClientRateCardCreate(ClientRateCardBase):
    """Schema for creating a client rate card."""
    is_active: bool = True


class ClientRateCardUpdate(BaseModel):
    """Schema for updating a client rate card."""
    rate_name: Optional[str] = Field(None, max_length=100)
    description: Optional[str] = None
    unit_price: Optional[Decimal] = Field(None, ge=0)
    price_unit: Optional[str] = Field(None, max_length=30)
    volume_tiers: Optional[List[VolumeTier]] = None
    minimum_charge: Optional[Decimal] = Field(None, ge=0)
    effective_date: Optional[date] = None
    expiration_date: Optional[date] = None
    is_active: Optional[bool] = None


class ClientRateCardResponse(ClientRateCardBase):
    """Schema for client rate card response."""
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    client_id: UUID
    is_active: bool
    created_at: datetime
    updated_at: datetime


class DefaultRateTemplateResponse(ClientRateCardBase):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    template_name: str
    is_default: bool
    is_active: bool


class CopyTemplateRequest(BaseModel):
    template_name: str = Field(default="Standard", max_length=100)


class CopyTemplateResponse(BaseModel):
    client_id: UUID
    template_name: str
    rates_copied: int


# ============================================================================
# USAGE SCHEMAS
# ============================================================================

class BillableEventCreate(BaseModel):
    """Record usage against one of the client's rate codes."""
    rate_code: str = Field(..., max_length=50)
    quantity: Decimal = Field(..., gt=0)
    reference_type: Optional[str] = Field(None, max_length=50)
    reference_id: Optional[UUID] = None
    usage_date: Optional[date] = None
    notes: Optional[str] = None


class UsageRecordResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    client_id: UUID
    usage_type: str
    rate_code: Optional[str]
    quantity: Decimal
    unit_price: Decimal
    total: Decimal
    usage_date: date
    reference_type: Optional[str]
    reference_id: Optional[UUID]
    notes: Optional[str]
    invoiced: bool
    invoice_id: Optional[UUID]
    created_at: datetime


# ============================================================================
# STORAGE / SUMMARY SCHEMAS
# ============================================================================

class StorageFeeResponse(BaseModel):
    rate_code: str
    rate_name: str
    total_quantity: Decimal
    unit_price: Decimal
    price_unit: str
    total_amount: Decimal


class LineItemResponse(BaseModel):
    description: str
    quantity: Decimal
    unit_price: Decimal
    total: Decimal


class BillingSummaryResponse(BaseModel):
    client_id: UUID
    period_start: date
    period_end: date
    usage_total: Decimal
    storage_total: Decimal
    subtotal: Decimal
    tax_amount: Decimal
    total: Decimal
    line_items: List[LineItemResponse]


# ============================================================================
# INVOICE SCHEMAS
# ============================================================================

class BillingPeriodRequest(BaseModel):
    period_start: date
    period_end: date

    @model_validator(mode="after")
    def check_period(self):
        if self.period_end < self.period_start:
            raise ValueError("period_end must not be before period_start")
        return self


class GenerateInvoiceRequest(BillingPeriodRequest):
    """Schema for generating one client's invoice."""
    include_usage: bool = True
    include_storage: bool = True
    apply_minimum: bool = True
    tax_rate: Optional[Decimal] = Field(None, ge=0, le=100)


class GenerateInvoiceResponse(BaseModel):
    generated: bool
    invoice_id: Optional[UUID] = None
    invoice_number: Optional[str] = None
    total: Optional[Decimal] = None
    message: str = ""


class InvoiceItemResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    description: str
    quantity: Decimal
    unit_price: Decimal
    total: Decimal
    sort_order: int


class InvoiceResponse(BaseModel):
    """Schema for invoice response."""
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    client_id: UUID
    invoice_number: str
    status: InvoiceStatus
    period_start: date
    period_end: date
    due_date: Optional[date]
    subtotal: Decimal
    tax_rate: Decimal
    tax_amount: Decimal
    total: Decimal
    notes: Optional[str]
    sent_at: Optional[datetime]
    paid_at: Optional[datetime]
    created_at: datetime
    updated_at: datetime
    items: List[InvoiceItemResponse] = []


class InvoiceListResponse(BaseModel):
    """Invoice without items, for list screens."""
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    client_id: UUID
    invoice_number: str
    status: InvoiceStatus
    period_start: date
    period_end: date
    due_date: Optional[date]
    subtotal: Decimal
    tax_amount: Decimal
    total: Decimal
    created_at: datetime


# ============================================================================
# BILLING RUN SCHEMAS
# ============================================================================

class BillingRunCreate(BillingPeriodRequest):
    """Trigger a billing run from the staff console."""
    run_type: BillingRunType = BillingRunType.MANUAL
    client_id: Optional[UUID] = None


class BillingRunError(BaseModel):
    client_id: str
    error: str


class BillingRunResponse(BaseModel):
    """Schema for billing run response."""
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    run_number: str
    run_type: BillingRunType
    period_start: date
    period_end: date
    client_id: Optional[UUID]
    status: BillingRunStatus
    invoices_generated: int
    total_billed: Decimal
    errors: List[BillingRunError] = []
    started_at: Optional[datetime]
    completed_at: Optional[datetime]
    started_by: Optional[UUID]
    created_at: datetime
