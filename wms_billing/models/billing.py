"""
Billing Automation Models.

This module implements client billing data:
- ClientBillingConfig: Per-client billing terms (frequency, tax, minimums)
- ClientRateCard: Per-client priced billing rules
- DefaultRateTemplate: Client-independent seed rates copied onto new clients
- UsageRecord: Billable event ledger awaiting invoicing
- Invoice / InvoiceItem: Generated invoices
- BillingRun: One orchestrated invoice-generation pass over a client set
"""
import uuid
from datetime import datetime, timezone, date
from decimal import Decimal
from enum import Enum
from typing import Optional, List, Dict, Any

from sqlalchemy import (
    String, Boolean, DateTime, ForeignKey, Integer, Text,
    Date, Index, UniqueConstraint
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from wms_billing.database import Base
from wms_billing.db_types import UUIDType, JSONType, Money, Rate, Percent


# ============================================================================
# ENUMS
# ============================================================================

class BillingFrequency(str, Enum):
    """How often a client is invoiced."""
    WEEKLY = "weekly"
    BIWEEKLY = "biweekly"
    MONTHLY = "monthly"


class RateCategory(str, Enum):
    """Categories of billable rates."""
    STORAGE = "storage"
    INBOUND = "inbound"
    OUTBOUND = "outbound"
    PICK = "pick"
    PACK = "pack"
    SPECIAL = "special"
    RETURN = "return"
    SUPPLY = "supply"


class InvoiceStatus(str, Enum):
    """Invoice lifecycle status."""
    DRAFT = "draft"
    SENT = "sent"
    PAID = "paid"
    OVERDUE = "overdue"
    CANCELLED = "cancelled"


class BillingRunType(str, Enum):
    """What triggered a billing run."""
    SCHEDULED = "scheduled"
    MANUAL = "manual"
    RETRY = "retry"


class BillingRunStatus(str, Enum):
    """Billing run status."""
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    PARTIAL = "partial"
    FAILED = "failed"


# ============================================================================
# MODELS
# ============================================================================

class ClientBillingConfig(Base):
    """
    Billing terms for one client.

    At most one row per client. A client without a row is billed with
    defaults: monthly, no tax, no minimum, net 30.
    """
    __tablename__ = "client_billing_config"

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )
    client_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("clients.id", ondelete="CASCADE"),
        nullable=False,
        unique=True
    )

    # Schedule
    billing_frequency: Mapped[str] = mapped_column(
        String(20),
        default=BillingFrequency.MONTHLY.value,
        nullable=False
    )
    billing_day_of_month: Mapped[int] = mapped_column(Integer, default=1)
    billing_day_of_week: Mapped[int] = mapped_column(
        Integer,
        default=1,
        comment="0=Sunday .. 6=Saturday, used for weekly/biweekly billing"
    )

    # Terms
    payment_terms_days: Mapped[int] = mapped_column(Integer, default=30)
    late_fee_percent: Mapped[Decimal] = mapped_column(Percent, default=Decimal("0"))
    monthly_minimum: Mapped[Decimal] = mapped_column(Money, default=Decimal("0"))

    # Tax
    tax_rate: Mapped[Decimal] = mapped_column(Percent, default=Decimal("0"))
    tax_exempt: Mapped[bool] = mapped_column(Boolean, default=False)

    # Automation
    auto_generate_invoices: Mapped[bool] = mapped_column(Boolean, default=True)
    auto_send_invoices: Mapped[bool] = mapped_column(Boolean, default=False)

    # Contact
    billing_email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    billing_contact_name: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc)
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc)
    )


class ClientRateCard(Base):
    """
    Priced billing rule for one client.

    rate_code is unique per client; deactivate with is_active instead of deleting
    when the rate has already been billed.
    """
    __tablename__ = "client_rate_cards"
    __table_args__ = (
        UniqueConstraint('client_id', 'rate_code', name='uq_client_rate_code'),
        Index('ix_client_rate_cards_category', 'rate_category'),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )
    client_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("clients.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )

    # Rate Definition
    rate_category: Mapped[str] = mapped_column(String(20), nullable=False)
    rate_code: Mapped[str] = mapped_column(String(50), nullable=False)
    rate_name: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Pricing
    unit_price: Mapped[Decimal] = mapped_column(Rate, nullable=False)
    price_unit: Mapped[str] = mapped_column(
        String(30),
        nullable=False,
        default="per_unit",
        comment="per_unit, per_order, per_pallet_per_day, per_location_per_day, ..."
    )
    volume_tiers: Mapped[Optional[List[Dict[str, Any]]]] = mapped_column(
        JSONType,
        nullable=True,
        comment="[{min_qty, max_qty, unit_price}] volume pricing"
    )
    minimum_charge: Mapped[Decimal] = mapped_column(Money, default=Decimal("0"))

    # Effective Dates
    effective_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    expiration_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)

    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    # Audit
    created_by: Mapped[Optional[uuid.UUID]] = mapped_column(UUIDType, nullable=True)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc)
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc)
    )


class DefaultRateTemplate(Base):
    """Named, client-independent rate set used to seed client rate cards."""
    __tablename__ = "default_rate_templates"
    __table_args__ = (
        UniqueConstraint('template_name', 'rate_code', name='uq_template_rate_code'),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )
    template_name: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    is_default: Mapped[bool] = mapped_column(Boolean, default=False)

    rate_category: Mapped[str] = mapped_column(String(20), nullable=False)
    rate_code: Mapped[str] = mapped_column(String(50), nullable=False)
    rate_name: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    unit_price: Mapped[Decimal] = mapped_column(Rate, nullable=False)
    price_unit: Mapped[str] = mapped_column(String(30), nullable=False, default="per_unit")
    volume_tiers: Mapped[Optional[List[Dict[str, Any]]]] = mapped_column(JSONType, nullable=True)
    minimum_charge: Mapped[Decimal] = mapped_column(Money, default=Decimal("0"))

    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc)
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc)
    )


class UsageRecord(Base):
    """
    Billable event awaiting invoicing.

    total is trusted as recorded; invoice generation sums it, never recomputes it.
    Once invoiced, invoice_id is set and the record is never selected again.
    """
    __tablename__ = "usage_records"
    __table_args__ = (
        Index('ix_usage_records_client_uninvoiced', 'client_id', 'invoiced', 'usage_date'),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )
    client_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("clients.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )

    usage_type: Mapped[str] = mapped_column(String(100), nullable=False)
    rate_code: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    quantity: Mapped[Decimal] = mapped_column(Money, nullable=False)
    unit_price: Mapped[Decimal] = mapped_column(Rate, nullable=False)
    total: Mapped[Decimal] = mapped_column(Money, nullable=False)
    usage_date: Mapped[date] = mapped_column(Date, nullable=False)

    # Originating transaction
    reference_type: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    reference_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUIDType, nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Invoicing
    invoiced: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    invoice_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUIDType,
        ForeignKey("invoices.id", ondelete="SET NULL"),
        nullable=True,
        index=True
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc)
    )


class Invoice(Base):
    """
    Client invoice.

    subtotal = sum(items.total), total = subtotal + tax_amount.
    """
    __tablename__ = "invoices"
    __table_args__ = (
        Index('ix_invoices_status', 'status'),
        Index('ix_invoices_period', 'period_start', 'period_end'),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )
    client_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("clients.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    invoice_number: Mapped[str] = mapped_column(
        String(30),
        nullable=False,
        unique=True,
        comment="INV-{year}-{5-digit sequence}"
    )
    status: Mapped[str] = mapped_column(
        String(20),
        default=InvoiceStatus.DRAFT.value,
        nullable=False
    )

    # Period
    period_start: Mapped[date] = mapped_column(Date, nullable=False)
    period_end: Mapped[date] = mapped_column(Date, nullable=False)
    due_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)

    # Amounts
    subtotal: Mapped[Decimal] = mapped_column(Money, default=Decimal("0"))
    tax_rate: Mapped[Decimal] = mapped_column(Percent, default=Decimal("0"))
    tax_amount: Mapped[Decimal] = mapped_column(Money, default=Decimal("0"))
    total: Mapped[Decimal] = mapped_column(Money, default=Decimal("0"))

    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Lifecycle
    sent_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    paid_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc)
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc)
    )

    # Relationships
    items: Mapped[List["InvoiceItem"]] = relationship(
        "InvoiceItem",
        back_populates="invoice",
        cascade="all, delete-orphan",
        order_by="InvoiceItem.sort_order"
    )


class InvoiceItem(Base):
    """Invoice line item; sort_order keeps usage, storage, minimum adjustment order."""
    __tablename__ = "invoice_items"

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )
    invoice_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("invoices.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )

    description: Mapped[str] = mapped_column(String(255), nullable=False)
    quantity: Mapped[Decimal] = mapped_column(Money, nullable=False)
    unit_price: Mapped[Decimal] = mapped_column(Rate, nullable=False)
    total: Mapped[Decimal] = mapped_column(Money, nullable=False)
    sort_order: Mapped[int] = mapped_column(Integer, default=0)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc)
    )

    # Relationships
    invoice: Mapped["Invoice"] = relationship("Invoice", back_populates="items")


class BillingRun(Base):
    """
    One orchestrated invoice-generation pass.

    Final status: completed (no errors), partial (errors and at least one
    invoice), failed (errors and no invoice).
    """
    __tablename__ = "billing_runs"
    __table_args__ = (
        Index('ix_billing_runs_status', 'status'),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )
    run_number: Mapped[str] = mapped_column(String(30), nullable=False, unique=True)
    run_type: Mapped[str] = mapped_column(String(20), nullable=False)
    period_start: Mapped[date] = mapped_column(Date, nullable=False)
    period_end: Mapped[date] = mapped_column(Date, nullable=False)
    client_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUIDType,
        ForeignKey("clients.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
        comment="Set for single-client runs"
    )
    status: Mapped[str] = mapped_column(
        String(20),
        default=BillingRunStatus.PENDING.value,
        nullable=False
    )

    # Results
    invoices_generated: Mapped[int] = mapped_column(Integer, default=0)
    total_billed: Mapped[Decimal] = mapped_column(Money, default=Decimal("0"))
    errors: Mapped[List[Dict[str, Any]]] = mapped_column(
        JSONType,
        default=list,
        comment="[{client_id, error}]"
    )

    started_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    started_by: Mapped[Optional[uuid.UUID]] = mapped_column(UUIDType, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc)
    )
