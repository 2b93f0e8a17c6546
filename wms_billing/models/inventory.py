"""
Inventory Models.

Stock held per product/location, the transaction ledger that records
reservations and releases against it, and the daily storage snapshots that
storage fees are computed from.
"""
import uuid
from datetime import datetime, timezone, date
from decimal import Decimal
from enum import Enum
from typing import Optional

from sqlalchemy import String, DateTime, Text, Date, Index, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from wms_billing.database import Base
from wms_billing.db_types import UUIDType, Money


class TransactionType(str, Enum):
    """Inventory transaction types."""
    RESERVE = "reserve"
    RELEASE = "release"
    SHIP = "ship"


class Inventory(Base):
    """
    Stock for one product at one location.

    A reservation hold on the pair is live while qty_reserved > 0.
    Available = qty_on_hand - qty_reserved.
    """
    __tablename__ = "inventory"
    __table_args__ = (
        UniqueConstraint('product_id', 'location_id', name='uq_inventory_product_location'),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )
    product_id: Mapped[uuid.UUID] = mapped_column(UUIDType, nullable=False, index=True)
    location_id: Mapped[uuid.UUID] = mapped_column(UUIDType, nullable=False, index=True)
    client_id: Mapped[uuid.UUID] = mapped_column(UUIDType, nullable=False, index=True)

    qty_on_hand: Mapped[Decimal] = mapped_column(Money, default=Decimal("0"), nullable=False)
    qty_reserved: Mapped[Decimal] = mapped_column(Money, default=Decimal("0"), nullable=False)

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc)
    )

    @property
    def qty_available(self) -> Decimal:
        return (self.qty_on_hand or Decimal("0")) - (self.qty_reserved or Decimal("0"))


class InventoryTransaction(Base):
    """
    Inventory ledger entry.

    Reserve rows carry the held quantity in qty_change and point at the order
    that caused them through reference_type / reference_id.
    """
    __tablename__ = "inventory_transactions"
    __table_args__ = (
        Index('ix_inventory_txn_reference', 'reference_type', 'reference_id'),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )
    product_id: Mapped[uuid.UUID] = mapped_column(UUIDType, nullable=False)
    location_id: Mapped[uuid.UUID] = mapped_column(UUIDType, nullable=False)
    transaction_type: Mapped[str] = mapped_column(String(20), nullable=False, index=True)
    qty_change: Mapped[Decimal] = mapped_column(Money, nullable=False)

    reference_type: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    reference_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUIDType, nullable=True)
    performed_by: Mapped[Optional[uuid.UUID]] = mapped_column(UUIDType, nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc)
    )


class StorageSnapshot(Base):
    """Daily on-hand quantity per client/product/location, the basis of storage fees."""
    __tablename__ = "storage_snapshots"
    __table_args__ = (
        UniqueConstraint(
            'snapshot_date', 'product_id', 'location_id',
            name='uq_storage_snapshot_day'
        ),
        Index('ix_storage_snapshots_client_date', 'client_id', 'snapshot_date'),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )
    snapshot_date: Mapped[date] = mapped_column(Date, nullable=False)
    client_id: Mapped[uuid.UUID] = mapped_column(UUIDType, nullable=False)
    product_id: Mapped[uuid.UUID] = mapped_column(UUIDType, nullable=False)
    location_id: Mapped[uuid.UUID] = mapped_column(UUIDType, nullable=False)
    qty_on_hand: Mapped[Decimal] = mapped_column(Money, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc)
    )
