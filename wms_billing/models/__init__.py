"""SQLAlchemy models. Importing this package registers every table on Base.metadata."""
from wms_billing.models.client import Client
from wms_billing.models.billing import (
    BillingFrequency, RateCategory, InvoiceStatus, BillingRunType, BillingRunStatus,
    ClientBillingConfig, ClientRateCard, DefaultRateTemplate, UsageRecord,
    Invoice, InvoiceItem, BillingRun,
)
from wms_billing.models.inventory import (
    TransactionType, Inventory, InventoryTransaction, StorageSnapshot,
)
from wms_billing.models.order import OutboundOrderStatus, OutboundOrder
from wms_billing.models.document_sequence import DocumentType, DocumentSequence

__all__ = [
    "Client",
    "BillingFrequency",
    "RateCategory",
    "InvoiceStatus",
    "BillingRunType",
    "BillingRunStatus",
    "ClientBillingConfig",
    "ClientRateCard",
    "DefaultRateTemplate",
    "UsageRecord",
    "Invoice",
    "InvoiceItem",
    "BillingRun",
    "TransactionType",
    "Inventory",
    "InventoryTransaction",
    "StorageSnapshot",
    "OutboundOrderStatus",
    "OutboundOrder",
    "DocumentType",
    "DocumentSequence",
]
