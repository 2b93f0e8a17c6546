"""
Document Sequence Service for Atomic Number Generation

- Calendar-year numbering, continuous within the year
- Atomic number generation with database-level locking
- Format: {PREFIX}-{YEAR}-{SEQUENCE}

USAGE:
    from wms_billing.services.document_sequence_service import DocumentSequenceService

    async def create_invoice(db: AsyncSession):
        service = DocumentSequenceService(db)
        invoice_number = await service.get_next_number(DocumentType.INVOICE)
        # Returns: INV-2026-00001

SUPPORTED DOCUMENT TYPES:
    INV - Invoice
    BR  - Billing Run
"""

import logging
from datetime import date, datetime, timezone
from typing import Optional, Union

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from wms_billing.models.billing import Invoice, BillingRun
from wms_billing.models.document_sequence import DocumentSequence, DocumentType


logger = logging.getLogger(__name__)


# Document type metadata; "column" holds the number column existing documents
# are stored in, used to seed a new year's counter past any legacy numbers.
DOCUMENT_METADATA = {
    DocumentType.INVOICE.value: {"name": "Invoice", "padding": 5, "column": Invoice.invoice_number},
    DocumentType.BILLING_RUN.value: {"name": "Billing Run", "padding": 5, "column": BillingRun.run_number},
}


def today_utc() -> date:
    return datetime.now(timezone.utc).date()


def current_year() -> int:
    return today_utc().year


class DocumentSequenceService:
    """
    Service for generating atomic document numbers.

    Uses database-level locking (SELECT FOR UPDATE) to ensure
    no duplicate numbers are generated even under concurrent load.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    @staticmethod
    def _validate(document_type: Union[DocumentType, str]) -> str:
        if isinstance(document_type, DocumentType):
            return document_type.value
        try:
            return DocumentType(document_type.upper()).value
        except ValueError:
            valid_types = ", ".join(doc_type.value for doc_type in DocumentType)
            raise ValueError(
                f"Invalid document type '{document_type}'. Valid types: {valid_types}"
            ) from None

    async def get_next_number(
        self,
        document_type: Union[DocumentType, str],
        year: Optional[int] = None
    ) -> str:
        """
        Get next document number with atomic increment.

        Uses SELECT FOR UPDATE to prevent race conditions.
        Creates sequence record if it doesn't exist.

        Args:
            document_type: Document type code (INV, BR)
            year: Optional calendar year. Current UTC year if not provided.

        Returns:
            Formatted document number, e.g., INV-2026-00001

        Raises:
            ValueError: If document_type is invalid
        """
        doc_type = self._validate(document_type)
        year = year or current_year()

        sequence = await self._get_or_create_sequence(doc_type, year)
        doc_number = sequence.get_next_number()

        # Flush persists the increment inside the caller's transaction;
        # the lock is held until that transaction ends
        await self.db.flush()

        logger.debug(f"Allocated {doc_number}")
        return doc_number

    async def preview_next_number(
        self,
        document_type: Union[DocumentType, str],
        year: Optional[int] = None
    ) -> str:
        """Preview what the next number would be without incrementing."""
        doc_type = self._validate(document_type)
        year = year or current_year()

        result = await self.db.execute(
            select(DocumentSequence)
            .where(
                DocumentSequence.document_type == doc_type,
                DocumentSequence.sequence_year == year,
                DocumentSequence.is_active == True
            )
        )
        sequence = result.scalar_one_or_none()

        if sequence:
            return sequence.preview_next_number()

        padding = DOCUMENT_METADATA[doc_type]["padding"]
        start = await self._max_existing_number(doc_type, year)
        return f"{doc_type}-{year}-{str(start + 1).zfill(padding)}"

    async def _max_existing_number(self, doc_type: str, year: int) -> int:
        """
        Highest sequence already used by stored documents for the year.

        Scans the document table for the highest "{TYPE}-{YEAR}-" number;
        only consulted when a year's counter row is first created.
        """
        column = DOCUMENT_METADATA[doc_type]["column"]
        prefix = f"{doc_type}-{year}-"
        result = await self.db.execute(
            select(column)
            .where(column.like(f"{prefix}%"))
            .order_by(column.desc())
            .limit(1)
        )
        last = result.scalar_one_or_none()
        if not last:
            return 0
        try:
            return int(last[len(prefix):])
        except ValueError:
            logger.warning(f"Ignoring malformed document number {last!r}")
            return 0

    async def _get_or_create_sequence(
        self,
        document_type: str,
        year: int
    ) -> DocumentSequence:
        """
        Get existing sequence with row lock, or create new one.

        Args:
            document_type: Document type code
            year: Calendar year

        Returns:
            DocumentSequence record (locked for update)
        """
        result = await self.db.execute(
            select(DocumentSequence)
            .where(
                DocumentSequence.document_type == document_type,
                DocumentSequence.sequence_year == year,
                DocumentSequence.is_active == True
            )
            .with_for_update()
        )
        sequence = result.scalar_one_or_none()

        if sequence:
            return sequence

        metadata = DOCUMENT_METADATA[document_type]
        sequence = DocumentSequence(
            document_type=document_type,
            document_name=metadata["name"],
            sequence_year=year,
            current_number=await self._max_existing_number(document_type, year),
            padding_length=metadata["padding"],
        )
        self.db.add(sequence)
        await self.db.flush()

        # Re-fetch with lock to ensure atomicity
        result = await self.db.execute(
            select(DocumentSequence)
            .where(DocumentSequence.id == sequence.id)
            .with_for_update()
        )
        return result.scalar_one()
