"""Business logic services. Each service wraps an AsyncSession supplied by the caller."""
from wms_billing.services.billing_config_service import BillingConfigService
from wms_billing.services.billing_run_service import BillingRunService
from wms_billing.services.document_sequence_service import DocumentSequenceService
from wms_billing.services.inventory_service import InventoryService
from wms_billing.services.invoice_generator import InvoiceGenerator
from wms_billing.services.invoice_service import InvoiceService
from wms_billing.services.reservation_expiry_service import ReservationExpiryService
from wms_billing.services.storage_fee_service import StorageFeeService
from wms_billing.services.usage_service import UsageService

__all__ = [
    "BillingConfigService",
    "BillingRunService",
    "DocumentSequenceService",
    "InventoryService",
    "InvoiceGenerator",
    "InvoiceService",
    "ReservationExpiryService",
    "StorageFeeService",
    "UsageService",
]
