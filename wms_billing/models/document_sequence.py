"""
Document Sequence Model for Atomic Number Generation

Calendar-year based numbering with one counter row per document type and year.
The row is locked (SELECT ... FOR UPDATE) while a number is taken, so two
billing runs can never hand out the same number.

DOCUMENT FORMATS:
━━━━━━━━━━━━━━━━
• INV: INV-2026-00001  (Invoice)
• BR:  BR-2026-00001   (Billing Run)
"""

import uuid
from datetime import datetime, timezone
from typing import Optional
from enum import Enum

from sqlalchemy import String, Integer, Boolean, DateTime, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from wms_billing.database import Base
from wms_billing.db_types import UUIDType


class DocumentType(str, Enum):
    """Document types that use sequence numbering."""
    INVOICE = "INV"
    BILLING_RUN = "BR"


class DocumentSequence(Base):
    """
    Document sequence management for atomic number generation.

    Example:
        document_type = "INV"
        sequence_year = 2026
        current_number = 42
        → Next invoice number: INV-2026-00043
    """
    __tablename__ = "document_sequences"
    __table_args__ = (
        UniqueConstraint(
            "document_type", "sequence_year",
            name="uq_document_type_year"
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )

    # Document Identification
    document_type: Mapped[str] = mapped_column(
        String(10),
        nullable=False,
        index=True,
        comment="INV, BR"
    )
    document_name: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
        comment="Human readable name"
    )

    sequence_year: Mapped[int] = mapped_column(Integer, nullable=False)

    # Sequence Counter
    current_number: Mapped[int] = mapped_column(
        Integer,
        default=0,
        nullable=False,
        comment="Last used sequence number"
    )

    # Formatting
    padding_length: Mapped[int] = mapped_column(
        Integer,
        default=5,
        comment="Zero padding for sequence (5 = 00001)"
    )
    separator: Mapped[str] = mapped_column(String(5), default="-")

    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False
    )

    def format_number(self, number: int) -> str:
        seq = str(number).zfill(self.padding_length)
        sep = self.separator
        return f"{self.document_type}{sep}{self.sequence_year}{sep}{seq}"

    def get_next_number(self) -> str:
        """
        Generate next document number.

        NOTE: This method increments current_number but does NOT
        commit to database. The caller must handle the transaction.
        """
        self.current_number += 1
        return self.format_number(self.current_number)

    def preview_next_number(self) -> str:
        """Preview next number without incrementing."""
        return self.format_number(self.current_number + 1)

    def __repr__(self) -> str:
        return f"<DocumentSequence({self.document_type}/{self.sequence_year}: {self.current_number})>"
