"""Domain errors raised by the billing and inventory services."""


class BillingError(Exception):
    """Base class for billing/inventory business-rule failures."""


class ClientNotFoundError(BillingError):
    pass


class RateCardNotFoundError(BillingError):
    pass


class InvoiceNotFoundError(BillingError):
    pass


class BillingRunNotFoundError(BillingError):
    pass


class InvalidInvoiceStateError(BillingError):
    """Invoice is not in a status that allows the requested transition."""


class UsageConflictError(BillingError):
    """Usage records were invoiced by another process while an invoice was being built."""


class InsufficientInventoryError(BillingError):
    pass


class InvalidReleaseError(BillingError):
    """Release quantity is not positive or exceeds what is currently reserved."""
