from __future__ import annotations

import uuid
from datetime import date
from decimal import Decimal

import pytest

from tests.conftest import make_client, make_rate_card
from wms_billing.models import DefaultRateTemplate
from wms_billing.schemas.billing import ClientBillingConfigUpsert, ClientRateCardUpdate
from wms_billing.services.billing_config_service import (
    BillingConfigService,
    EffectiveBillingTerms,
)
from wms_billing.services.exceptions import ClientNotFoundError, RateCardNotFoundError
from wms_billing.services.usage_service import UsageService, group_usage, tier_unit_price

TIERS = [
    {"min_qty": 0, "max_qty": 99, "unit_price": "0.30"},
    {"min_qty": 100, "max_qty": 999, "unit_price": "0.25"},
    {"min_qty": 1000, "max_qty": None, "unit_price": "0.20"},
]


async def _seed_template(db, name: str, codes: list[str]) -> None:
    for code in codes:
        db.add(DefaultRateTemplate(
            template_name=name,
            rate_category="pick",
            rate_code=code,
            rate_name=code.title(),
            unit_price=Decimal("0.25"),
            price_unit="per_unit",
        ))
    await db.commit()


def test_terms_default_without_config() -> None:
    terms = EffectiveBillingTerms.from_config(None)

    assert terms.tax_rate == Decimal("0")
    assert terms.tax_exempt is False
    assert terms.monthly_minimum == Decimal("0")
    assert terms.payment_terms_days == 30
    assert terms.billing_frequency == "monthly"


async def test_upsert_creates_then_updates(db) -> None:
    client = await make_client(db)
    service = BillingConfigService(db)

    created = await service.upsert_billing_config(
        client.id, ClientBillingConfigUpsert(tax_rate=Decimal("7.5"), billing_frequency="weekly")
    )
    updated = await service.upsert_billing_config(
        client.id, ClientBillingConfigUpsert(monthly_minimum=Decimal("250"))
    )

    assert created.id == updated.id
    assert updated.tax_rate == Decimal("7.5")
    assert updated.billing_frequency == "weekly"
    assert updated.monthly_minimum == Decimal("250")
    assert updated.payment_terms_days == 30

    terms = await service.get_effective_terms(client.id)
    assert terms.monthly_minimum == Decimal("250")
    assert terms.billing_frequency == "weekly"


async def test_upsert_for_unknown_client(db) -> None:
    with pytest.raises(ClientNotFoundError):
        await BillingConfigService(db).upsert_billing_config(
            uuid.uuid4(), ClientBillingConfigUpsert(tax_rate=Decimal("5"))
        )


async def test_copy_template_skips_existing_codes(db) -> None:
    client = await make_client(db)
    await make_rate_card(db, client, "PICK-EACH", unit_price="0.40")
    await _seed_template(db, "Standard", ["PICK-EACH", "PACK-ORDER", "RECV-PALLET"])
    await _seed_template(db, "Premium", ["PICK-EACH", "KIT-BUILD"])
    service = BillingConfigService(db)

    copied = await service.copy_default_rates_to_client(client.id)
    copied_again = await service.copy_default_rates_to_client(client.id)

    assert copied == 2
    assert copied_again == 0
    cards = await service.list_rate_cards(client.id)
    assert sorted(card.rate_code for card in cards) == ["PACK-ORDER", "PICK-EACH", "RECV-PALLET"]
    kept = await service.get_rate_card_by_code(client.id, "PICK-EACH")
    assert kept.unit_price == Decimal("0.40")
    assert await service.list_template_names() == ["Premium", "Standard"]

    assert await service.copy_default_rates_to_client(client.id, "Premium") == 1


async def test_update_and_deactivate_rate_card(db) -> None:
    client = await make_client(db)
    card = await make_rate_card(db, client, "PICK-EACH")
    service = BillingConfigService(db)

    updated = await service.update_rate_card(
        card.id, ClientRateCardUpdate(volume_tiers=TIERS, minimum_charge=Decimal("3"))
    )
    assert updated.volume_tiers[1]["unit_price"] == "0.25"
    assert updated.minimum_charge == Decimal("3")

    await service.deactivate_rate_card(card.id)
    assert await service.get_rate_card_by_code(client.id, "PICK-EACH") is None

    with pytest.raises(RateCardNotFoundError):
        await service.get_rate_card(uuid.uuid4())


async def test_tier_unit_price(db) -> None:
    client = await make_client(db)
    card = await make_rate_card(db, client, "PICK-EACH", unit_price="0.35", volume_tiers=TIERS)
    flat = await make_rate_card(db, client, "PACK-ORDER", unit_price="1.10")

    assert tier_unit_price(card, Decimal("50")) == Decimal("0.30")
    assert tier_unit_price(card, Decimal("100")) == Decimal("0.25")
    assert tier_unit_price(card, Decimal("5000")) == Decimal("0.20")
    assert tier_unit_price(card, Decimal("99.5")) == Decimal("0.35")
    assert tier_unit_price(flat, Decimal("5000")) == Decimal("1.10")


async def test_record_billable_event_prices_from_rate_card(db) -> None:
    client = await make_client(db)
    await make_rate_card(db, client, "PICK-EACH", volume_tiers=TIERS)
    await make_rate_card(db, client, "PACK-ORDER", unit_price="0.75", minimum_charge="10")
    reference = uuid.uuid4()
    service = UsageService(db)

    picked = await service.record_billable_event(
        client.id, "PICK-EACH", Decimal("150"),
        reference_type="outbound_order", reference_id=reference, usage_date=date(2026, 9, 2),
    )
    packed = await service.record_billable_event(client.id, "PACK-ORDER", Decimal("4"))

    assert picked.usage_type == "Pick Each"
    assert picked.rate_code == "PICK-EACH"
    assert picked.unit_price == Decimal("0.25")
    assert picked.total == Decimal("37.50")
    assert picked.reference_id == reference
    assert picked.invoiced is False
    assert packed.total == Decimal("10")
    assert packed.usage_date == date.today()

    with pytest.raises(RateCardNotFoundError):
        await service.record_billable_event(client.id, "NOPE", Decimal("1"))


async def test_group_usage_keeps_first_unit_price(db) -> None:
    client = await make_client(db)
    service = UsageService(db)
    await make_rate_card(db, client, "PICK-EACH", volume_tiers=TIERS)

    small = await service.record_billable_event(client.id, "PICK-EACH", Decimal("10"))
    large = await service.record_billable_event(client.id, "PICK-EACH", Decimal("200"))

    [group] = group_usage([small, large])
    assert group["description"] == "Pick Each"
    assert group["quantity"] == Decimal("210")
    assert group["unit_price"] == Decimal("0.30")
    assert group["total"] == Decimal("53.00")
