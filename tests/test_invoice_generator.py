from __future__ import annotations

import uuid
from datetime import date, timedelta
from decimal import Decimal

import pytest
from sqlalchemy import func, select, update

from tests.conftest import make_client, make_config, make_rate_card, make_usage
from wms_billing.models import (
    DocumentSequence,
    Invoice,
    InvoiceItem,
    StorageSnapshot,
    UsageRecord,
)
from wms_billing.services.document_sequence_service import current_year, today_utc
from wms_billing.services.exceptions import UsageConflictError
from wms_billing.services.invoice_generator import (
    MINIMUM_ADJUSTMENT_DESCRIPTION,
    InvoiceGenerator,
    calculate_tax,
)

SEPT_START = date(2026, 9, 1)
SEPT_END = date(2026, 9, 30)


class ExplodingGenerator(InvoiceGenerator):
    async def _add_line_items(self, invoice, items):
        await super()._add_line_items(invoice, items)
        raise RuntimeError("disk full")


class RacingGenerator(InvoiceGenerator):
    """Marks one captured usage record invoiced behind the generator's back."""

    def __init__(self, db, stolen_id):
        super().__init__(db)
        self.stolen_id = stolen_id

    async def _add_line_items(self, invoice, items):
        await super()._add_line_items(invoice, items)
        await self.db.execute(
            update(UsageRecord)
            .where(UsageRecord.id == self.stolen_id)
            .values(invoiced=True)
        )


async def _count(db, model) -> int:
    return (await db.execute(select(func.count()).select_from(model))).scalar_one()


async def _items(db, invoice_id) -> list[InvoiceItem]:
    result = await db.execute(
        select(InvoiceItem)
        .where(InvoiceItem.invoice_id == invoice_id)
        .order_by(InvoiceItem.sort_order)
    )
    return list(result.scalars().all())


async def _invoiced_flags(db) -> list[bool]:
    return list((await db.execute(select(UsageRecord.invoiced))).scalars().all())


def test_calculate_tax_rounds_half_up_to_cents() -> None:
    assert calculate_tax(Decimal("10.05"), Decimal("5"), False) == Decimal("0.50")
    assert calculate_tax(Decimal("10.10"), Decimal("5"), False) == Decimal("0.51")
    assert calculate_tax(Decimal("100"), Decimal("8"), True) == Decimal("0.00")
    assert calculate_tax(Decimal("100"), Decimal("0"), False) == Decimal("0.00")


async def test_minimum_adjustment_and_tax_example(db) -> None:
    client = await make_client(db)
    await make_config(db, client, monthly_minimum=Decimal("500"), tax_rate=Decimal("8"))
    await make_usage(db, client, "Pick Fee", "60", "2.00")
    await make_usage(db, client, "Pick Fee", "40", "2.00", usage_date=date(2026, 9, 20))
    await make_usage(db, client, "Pack Fee", "50", "2.00")

    result = await InvoiceGenerator(db).generate_client_invoice(client.id, SEPT_START, SEPT_END)

    assert result is not None
    assert result.total == Decimal("540")
    invoice = await db.get(Invoice, result.invoice_id)
    assert invoice.status == "draft"
    assert invoice.subtotal == Decimal("500")
    assert invoice.tax_amount == Decimal("40")
    assert invoice.total == Decimal("540")
    assert invoice.due_date == today_utc() + timedelta(days=30)

    items = await _items(db, invoice.id)
    assert [item.description for item in items] == [
        "Pick Fee",
        "Pack Fee",
        MINIMUM_ADJUSTMENT_DESCRIPTION,
    ]
    assert items[0].quantity == Decimal("100")
    assert items[0].total == Decimal("200")
    assert items[2].total == Decimal("200")
    assert sum(item.total for item in items) == invoice.subtotal


async def test_no_minimum_adjustment_when_subtotal_meets_minimum(db) -> None:
    client = await make_client(db)
    await make_config(db, client, monthly_minimum=Decimal("100"))
    await make_usage(db, client, "Pick Fee", "100", "2.00")

    result = await InvoiceGenerator(db).generate_client_invoice(client.id, SEPT_START, SEPT_END)

    items = await _items(db, result.invoice_id)
    assert [item.description for item in items] == ["Pick Fee"]
    assert result.total == Decimal("200")


async def test_apply_minimum_false_skips_adjustment(db) -> None:
    client = await make_client(db)
    await make_config(db, client, monthly_minimum=Decimal("500"))
    await make_usage(db, client, "Pick Fee", "10", "1.00")

    result = await InvoiceGenerator(db).generate_client_invoice(
        client.id, SEPT_START, SEPT_END, apply_minimum=False
    )

    assert result.total == Decimal("10")


async def test_minimum_alone_produces_invoice(db) -> None:
    client = await make_client(db)
    await make_config(db, client, monthly_minimum=Decimal("250"))

    result = await InvoiceGenerator(db).generate_client_invoice(client.id, SEPT_START, SEPT_END)

    assert result is not None
    items = await _items(db, result.invoice_id)
    assert len(items) == 1
    assert items[0].description == MINIMUM_ADJUSTMENT_DESCRIPTION
    assert items[0].total == Decimal("250")


async def test_nothing_to_bill_returns_none(db) -> None:
    client = await make_client(db)
    await make_usage(db, client, "Pick Fee", "10", "1.00", usage_date=date(2026, 8, 31))

    result = await InvoiceGenerator(db).generate_client_invoice(client.id, SEPT_START, SEPT_END)

    assert result is None
    assert await _count(db, Invoice) == 0
    assert await _count(db, DocumentSequence) == 0


async def test_usage_is_consumed_and_not_billed_twice(db) -> None:
    client = await make_client(db)
    first = await make_usage(db, client, "Pick Fee", "10", "1.00")
    second = await make_usage(db, client, "Pack Fee", "5", "2.00")
    outside = await make_usage(db, client, "Pick Fee", "1", "1.00", usage_date=date(2026, 10, 1))
    generator = InvoiceGenerator(db)

    result = await generator.generate_client_invoice(client.id, SEPT_START, SEPT_END)
    await db.commit()

    rows = await db.execute(
        select(UsageRecord.id, UsageRecord.invoiced, UsageRecord.invoice_id)
    )
    by_id = {row.id: row for row in rows}
    for record in (first, second):
        assert by_id[record.id].invoiced is True
        assert by_id[record.id].invoice_id == result.invoice_id
    assert by_id[outside.id].invoiced is False
    assert by_id[outside.id].invoice_id is None

    assert await generator.generate_client_invoice(client.id, SEPT_START, SEPT_END) is None


async def test_failure_while_writing_leaves_no_trace(db) -> None:
    client = await make_client(db)
    await make_usage(db, client, "Pick Fee", "10", "1.00")
    await make_usage(db, client, "Pack Fee", "5", "2.00")

    with pytest.raises(RuntimeError):
        await ExplodingGenerator(db).generate_client_invoice(client.id, SEPT_START, SEPT_END)

    assert await _count(db, Invoice) == 0
    assert await _count(db, InvoiceItem) == 0
    assert await _count(db, DocumentSequence) == 0
    assert await _invoiced_flags(db) == [False, False]

    result = await InvoiceGenerator(db).generate_client_invoice(client.id, SEPT_START, SEPT_END)
    assert result.invoice_number == f"INV-{current_year()}-00001"


async def test_usage_invoiced_concurrently_aborts_invoice(db) -> None:
    client = await make_client(db)
    stolen = await make_usage(db, client, "Pick Fee", "10", "1.00")
    await make_usage(db, client, "Pack Fee", "5", "2.00")

    with pytest.raises(UsageConflictError):
        await RacingGenerator(db, stolen.id).generate_client_invoice(
            client.id, SEPT_START, SEPT_END
        )

    assert await _count(db, Invoice) == 0
    assert await _count(db, InvoiceItem) == 0
    assert await _invoiced_flags(db) == [False, False]


async def test_invoice_numbers_increase_across_clients(db) -> None:
    acme = await make_client(db, "Acme Corp")
    globex = await make_client(db, "Globex")
    await make_usage(db, acme, "Pick Fee", "10", "1.00")
    await make_usage(db, globex, "Pick Fee", "20", "1.00")
    generator = InvoiceGenerator(db)

    first = await generator.generate_client_invoice(acme.id, SEPT_START, SEPT_END)
    second = await generator.generate_client_invoice(globex.id, SEPT_START, SEPT_END)

    year = current_year()
    assert first.invoice_number == f"INV-{year}-00001"
    assert second.invoice_number == f"INV-{year}-00002"


async def test_tax_rate_argument_overrides_config(db) -> None:
    client = await make_client(db)
    await make_config(db, client, tax_rate=Decimal("8"))
    await make_usage(db, client, "Pick Fee", "100", "1.00")

    result = await InvoiceGenerator(db).generate_client_invoice(
        client.id, SEPT_START, SEPT_END, tax_rate=Decimal("10")
    )

    invoice = await db.get(Invoice, result.invoice_id)
    assert invoice.tax_rate == Decimal("10")
    assert invoice.tax_amount == Decimal("10")
    assert result.total == Decimal("110")


async def test_tax_exempt_client_pays_no_tax(db) -> None:
    client = await make_client(db)
    await make_config(
        db, client, tax_rate=Decimal("8"), tax_exempt=True, payment_terms_days=15
    )
    await make_usage(db, client, "Pick Fee", "100", "1.00")

    result = await InvoiceGenerator(db).generate_client_invoice(client.id, SEPT_START, SEPT_END)

    invoice = await db.get(Invoice, result.invoice_id)
    assert invoice.tax_amount == Decimal("0")
    assert invoice.total == Decimal("100")
    assert invoice.due_date == today_utc() + timedelta(days=15)


async def test_storage_fees_become_line_items(db) -> None:
    client = await make_client(db)
    await make_rate_card(
        db, client, "STOR-UNIT", rate_category="storage",
        unit_price="0.10", price_unit="per_unit_per_day",
    )
    await make_usage(db, client, "Pick Fee", "10", "1.00")
    location_id = uuid.uuid4()
    for day in (1, 2):
        db.add(StorageSnapshot(
            snapshot_date=date(2026, 9, day),
            client_id=client.id,
            product_id=uuid.uuid4(),
            location_id=location_id,
            qty_on_hand=Decimal("50"),
        ))
    await db.commit()

    generator = InvoiceGenerator(db)
    summary = await generator.get_client_billing_summary(client.id, SEPT_START, SEPT_END)
    assert summary["usage_total"] == Decimal("10")
    assert summary["storage_total"] == Decimal("10")
    assert summary["total"] == Decimal("20")

    result = await generator.generate_client_invoice(client.id, SEPT_START, SEPT_END)
    items = await _items(db, result.invoice_id)
    assert [item.description for item in items] == ["Pick Fee", "Stor Unit"]
    assert items[1].quantity == Decimal("100")
    assert result.total == Decimal("20")


async def test_summary_writes_nothing_and_ignores_minimum(db) -> None:
    client = await make_client(db)
    await make_config(db, client, monthly_minimum=Decimal("500"), tax_rate=Decimal("10"))
    await make_usage(db, client, "Pick Fee", "10", "1.00")

    summary = await InvoiceGenerator(db).get_client_billing_summary(
        client.id, SEPT_START, SEPT_END
    )

    assert summary["subtotal"] == Decimal("10")
    assert summary["tax_amount"] == Decimal("1.00")
    assert summary["line_items"][0]["description"] == "Pick Fee"
    assert await _count(db, Invoice) == 0
    assert await _invoiced_flags(db) == [False]


async def test_number_year_and_due_date_follow_issue_date(db) -> None:
    client = await make_client(db)
    await make_usage(db, client, "Pick Fee", "10", "1.00")
    await make_usage(db, client, "Pick Fee", "5", "1.00", usage_date=date(2026, 12, 15))
    generator = InvoiceGenerator(db)

    december = await generator.generate_client_invoice(
        client.id, SEPT_START, SEPT_END, issue_date=date(2026, 12, 31)
    )
    january = await generator.generate_client_invoice(
        client.id, date(2026, 12, 1), date(2026, 12, 31), issue_date=date(2027, 1, 1)
    )

    assert december.invoice_number == "INV-2026-00001"
    assert january.invoice_number == "INV-2027-00001"
    assert (await db.get(Invoice, december.invoice_id)).due_date == date(2027, 1, 30)
    assert (await db.get(Invoice, january.invoice_id)).due_date == date(2027, 1, 31)
