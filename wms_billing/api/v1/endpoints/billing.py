"""
Billing API Endpoints.

Staff-facing billing operations:
- Client billing config
- Rate cards and default rate templates
- Usage ledger
- Storage fee and billing summary previews
- Invoice generation and management
- Billing runs
"""
from datetime import date
from typing import Optional, List
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from wms_billing.database import get_db
from wms_billing.models.billing import RateCategory, InvoiceStatus, BillingRunStatus
from wms_billing.schemas.billing import (
    ClientBillingConfigUpsert, ClientBillingConfigResponse,
    ClientRateCardCreate, ClientRateCardUpdate, ClientRateCardResponse,
    DefaultRateTemplateResponse, CopyTemplateRequest, CopyTemplateResponse,
    BillableEventCreate, UsageRecordResponse,
    StorageFeeResponse, BillingSummaryResponse,
    GenerateInvoiceRequest, GenerateInvoiceResponse,
    InvoiceResponse, InvoiceListResponse,
    BillingRunCreate, BillingRunResponse,
)
from wms_billing.services.billing_config_service import BillingConfigService
from wms_billing.services.billing_run_service import BillingRunService
from wms_billing.services.exceptions import (
    BillingError, ClientNotFoundError, RateCardNotFoundError, InvoiceNotFoundError,
    BillingRunNotFoundError, InvalidInvoiceStateError, UsageConflictError,
)
from wms_billing.services.invoice_generator import InvoiceGenerator
from wms_billing.services.invoice_service import InvoiceService
from wms_billing.services.storage_fee_service import StorageFeeService
from wms_billing.services.usage_service import UsageService

router = APIRouter()


def to_http_error(exc: BillingError) -> HTTPException:
    """Map a domain error to the HTTP status staff tooling expects."""
    if isinstance(exc, (ClientNotFoundError, RateCardNotFoundError,
                        InvoiceNotFoundError, BillingRunNotFoundError)):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    if isinstance(exc, (InvalidInvoiceStateError, UsageConflictError)):
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))


# ============================================================================
# BILLING CONFIG
# ============================================================================

@router.get(
    "/clients/{client_id}/config",
    response_model=ClientBillingConfigResponse,
    summary="Get Client Billing Config"
)
async def get_billing_config(
    client_id: UUID,
    db: AsyncSession = Depends(get_db)
):
    config = await BillingConfigService(db).get_billing_config(client_id)
    if not config:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Billing config not found"
        )
    return config


@router.put(
    "/clients/{client_id}/config",
    response_model=ClientBillingConfigResponse,
    summary="Create or Update Client Billing Config"
)
async def upsert_billing_config(
    client_id: UUID,
    data: ClientBillingConfigUpsert,
    db: AsyncSession = Depends(get_db)
):
    try:
        return await BillingConfigService(db).upsert_billing_config(client_id, data)
    except BillingError as e:
        raise to_http_error(e)


# ============================================================================
# RATE CARDS
# ============================================================================

@router.get(
    "/clients/{client_id}/rate-cards",
    response_model=List[ClientRateCardResponse],
    summary="List Client Rate Cards"
)
async def list_rate_cards(
    client_id: UUID,
    category: Optional[RateCategory] = None,
    active_only: bool = True,
    db: AsyncSession = Depends(get_db)
):
    return await BillingConfigService(db).list_rate_cards(client_id, category, active_only)


@router.post(
    "/clients/{client_id}/rate-cards",
    response_model=ClientRateCardResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create Rate Card"
)
async def create_rate_card(
    client_id: UUID,
    data: ClientRateCardCreate,
    db: AsyncSession = Depends(get_db)
):
    service = BillingConfigService(db)
    if await service.get_rate_card_by_code(client_id, data.rate_code):
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Rate code {data.rate_code} already exists for this client"
        )
    try:
        return await service.create_rate_card(client_id, data)
    except BillingError as e:
        raise to_http_error(e)


@router.patch(
    "/rate-cards/{rate_card_id}",
    response_model=ClientRateCardResponse,
    summary="Update Rate Card"
)
async def update_rate_card(
    rate_card_id: UUID,
    data: ClientRateCardUpdate,
    db: AsyncSession = Depends(get_db)
):
    try:
        return await BillingConfigService(db).update_rate_card(rate_card_id, data)
    except BillingError as e:
        raise to_http_error(e)


@router.post(
    "/rate-cards/{rate_card_id}/deactivate",
    response_model=ClientRateCardResponse,
    summary="Deactivate Rate Card"
)
async def deactivate_rate_card(
    rate_card_id: UUID,
    db: AsyncSession = Depends(get_db)
):
    try:
        return await BillingConfigService(db).deactivate_rate_card(rate_card_id)
    except BillingError as e:
        raise to_http_error(e)


@router.delete(
    "/rate-cards/{rate_card_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete Rate Card"
)
async def delete_rate_card(
    rate_card_id: UUID,
    db: AsyncSession = Depends(get_db)
):
    try:
        await BillingConfigService(db).delete_rate_card(rate_card_id)
    except BillingError as e:
        raise to_http_error(e)


# ============================================================================
# DEFAULT RATE TEMPLATES
# ============================================================================

@router.get(
    "/templates",
    response_model=List[DefaultRateTemplateResponse],
    summary="List Default Rate Templates"
)
async def list_templates(
    template_name: Optional[str] = None,
    db: AsyncSession = Depends(get_db)
):
    return await BillingConfigService(db).list_templates(template_name)


@router.get("/templates/names", response_model=List[str], summary="List Template Names")
async def list_template_names(db: AsyncSession = Depends(get_db)):
    return await BillingConfigService(db).list_template_names()


@router.post(
    "/clients/{client_id}/copy-template",
    response_model=CopyTemplateResponse,
    summary="Copy Default Rates to Client"
)
async def copy_template(
    client_id: UUID,
    data: CopyTemplateRequest,
    db: AsyncSession = Depends(get_db)
):
    """Seed a client's rate cards from a template; existing rate codes are kept."""
    try:
        copied = await BillingConfigService(db).copy_default_rates_to_client(
            client_id, data.template_name
        )
    except BillingError as e:
        raise to_http_error(e)
    return CopyTemplateResponse(
        client_id=client_id,
        template_name=data.template_name,
        rates_copied=copied
    )


# ============================================================================
# USAGE
# ============================================================================

@router.get(
    "/clients/{client_id}/usage",
    response_model=List[UsageRecordResponse],
    summary="List Usage Records"
)
async def list_usage(
    client_id: UUID,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    invoiced: Optional[bool] = None,
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=500),
    db: AsyncSession = Depends(get_db)
):
    return await UsageService(db).list_usage(
        client_id,
        start_date=start_date,
        end_date=end_date,
        invoiced=invoiced,
        skip=skip,
        limit=limit
    )


@router.post(
    "/clients/{client_id}/usage",
    response_model=UsageRecordResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Record Billable Event"
)
async def record_billable_event(
    client_id: UUID,
    data: BillableEventCreate,
    db: AsyncSession = Depends(get_db)
):
    try:
        return await UsageService(db).record_billable_event(
            client_id,
            data.rate_code,
            data.quantity,
            reference_type=data.reference_type,
            reference_id=data.reference_id,
            usage_date=data.usage_date,
            notes=data.notes
        )
    except BillingError as e:
        raise to_http_error(e)


# ============================================================================
# PREVIEWS
# ============================================================================

@router.get(
    "/clients/{client_id}/storage-fees",
    response_model=List[StorageFeeResponse],
    summary="Preview Storage Fees"
)
async def preview_storage_fees(
    client_id: UUID,
    period_start: date,
    period_end: date,
    db: AsyncSession = Depends(get_db)
):
    fees = await StorageFeeService(db).calculate_storage_fees(client_id, period_start, period_end)
    return [StorageFeeResponse(**vars(fee)) for fee in fees]


@router.get(
    "/clients/{client_id}/summary",
    response_model=BillingSummaryResponse,
    summary="Preview Client Billing"
)
async def billing_summary(
    client_id: UUID,
    period_start: date,
    period_end: date,
    db: AsyncSession = Depends(get_db)
):
    """What the client would be billed for the period, before minimums."""
    return await InvoiceGenerator(db).get_client_billing_summary(client_id, period_start, period_end)


# ============================================================================
# INVOICES
# ============================================================================

@router.post(
    "/clients/{client_id}/invoices/generate",
    response_model=GenerateInvoiceResponse,
    summary="Generate Invoice"
)
async def generate_invoice(
    client_id: UUID,
    data: GenerateInvoiceRequest,
    db: AsyncSession = Depends(get_db)
):
    try:
        result = await InvoiceGenerator(db).generate_client_invoice(
            client_id,
            data.period_start,
            data.period_end,
            include_usage=data.include_usage,
            include_storage=data.include_storage,
            apply_minimum=data.apply_minimum,
            tax_rate=data.tax_rate
        )
    except BillingError as e:
        raise to_http_error(e)

    if result is None:
        return GenerateInvoiceResponse(generated=False, message="Nothing to bill for this period")

    await db.commit()
    return GenerateInvoiceResponse(
        generated=True,
        invoice_id=result.invoice_id,
        invoice_number=result.invoice_number,
        total=result.total,
        message=f"Invoice {result.invoice_number} created"
    )


@router.get("/invoices", response_model=List[InvoiceListResponse], summary="List Invoices")
async def list_invoices(
    client_id: Optional[UUID] = None,
    status: Optional[InvoiceStatus] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=500),
    db: AsyncSession = Depends(get_db)
):
    return await InvoiceService(db).list_invoices(
        client_id=client_id,
        status=status,
        start_date=start_date,
        end_date=end_date,
        skip=skip,
        limit=limit
    )


@router.get("/invoices/{invoice_id}", response_model=InvoiceResponse, summary="Get Invoice")
async def get_invoice(
    invoice_id: UUID,
    db: AsyncSession = Depends(get_db)
):
    try:
        return await InvoiceService(db).get_invoice(invoice_id)
    except BillingError as e:
        raise to_http_error(e)


@router.post("/invoices/{invoice_id}/send", response_model=InvoiceResponse, summary="Send Invoice")
async def send_invoice(
    invoice_id: UUID,
    db: AsyncSession = Depends(get_db)
):
    try:
        return await InvoiceService(db).send_invoice(invoice_id)
    except BillingError as e:
        raise to_http_error(e)


@router.post("/invoices/{invoice_id}/pay", response_model=InvoiceResponse, summary="Mark Invoice Paid")
async def mark_invoice_paid(
    invoice_id: UUID,
    db: AsyncSession = Depends(get_db)
):
    try:
        return await InvoiceService(db).mark_invoice_paid(invoice_id)
    except BillingError as e:
        raise to_http_error(e)


@router.post(
    "/invoices/{invoice_id}/recalculate",
    response_model=InvoiceResponse,
    summary="Recalculate Invoice Totals"
)
async def recalculate_invoice(
    invoice_id: UUID,
    db: AsyncSession = Depends(get_db)
):
    try:
        return await InvoiceService(db).recalculate_totals(invoice_id)
    except BillingError as e:
        raise to_http_error(e)


@router.delete(
    "/invoices/{invoice_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete Draft Invoice"
)
async def delete_invoice(
    invoice_id: UUID,
    db: AsyncSession = Depends(get_db)
):
    """Delete a draft; its usage becomes billable again."""
    try:
        await InvoiceService(db).delete_invoice(invoice_id)
    except BillingError as e:
        raise to_http_error(e)


# ============================================================================
# BILLING RUNS
# ============================================================================

@router.get("/runs", response_model=List[BillingRunResponse], summary="List Billing Runs")
async def list_billing_runs(
    status: Optional[BillingRunStatus] = None,
    client_id: Optional[UUID] = None,
    limit: int = Query(50, ge=1, le=200),
    db: AsyncSession = Depends(get_db)
):
    return await BillingRunService(db).list_billing_runs(status, client_id, limit)


@router.get("/runs/{run_id}", response_model=BillingRunResponse, summary="Get Billing Run")
async def get_billing_run(
    run_id: UUID,
    db: AsyncSession = Depends(get_db)
):
    try:
        return await BillingRunService(db).get_billing_run(run_id)
    except BillingError as e:
        raise to_http_error(e)


@router.post(
    "/runs",
    response_model=BillingRunResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Trigger Billing Run"
)
async def trigger_billing_run(
    data: BillingRunCreate,
    db: AsyncSession = Depends(get_db)
):
    """Run billing for one client or all active clients and wait for the result."""
    try:
        return await BillingRunService(db).run_billing(
            data.run_type,
            data.period_start,
            data.period_end,
            client_id=data.client_id
        )
    except BillingError as e:
        raise to_http_error(e)
