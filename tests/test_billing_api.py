from __future__ import annotations

import uuid
from decimal import Decimal

from tests.conftest import make_client, make_usage

BASE = "/api/v1/billing"
SEPTEMBER = {"period_start": "2026-09-01", "period_end": "2026-09-30"}


def _rate_card_payload(rate_code: str = "PICK-EACH", **overrides) -> dict:
    payload = {
        "rate_category": "pick",
        "rate_code": rate_code,
        "rate_name": "Pick per unit",
        "unit_price": "0.35",
        "price_unit": "per_unit",
    }
    payload.update(overrides)
    return payload


async def test_billing_config_upsert_and_get(api, db) -> None:
    client = await make_client(db)
    url = f"{BASE}/clients/{client.id}/config"

    missing = await api.get(url)
    created = await api.put(url, json={"monthly_minimum": "500", "tax_rate": "8"})
    updated = await api.put(url, json={"payment_terms_days": 45})
    fetched = await api.get(url)

    assert missing.status_code == 404
    assert created.status_code == 200
    assert Decimal(created.json()["monthly_minimum"]) == Decimal("500")
    assert updated.json()["payment_terms_days"] == 45
    body = fetched.json()
    assert Decimal(body["tax_rate"]) == Decimal("8")
    assert Decimal(body["monthly_minimum"]) == Decimal("500")
    assert body["billing_frequency"] == "monthly"


async def test_config_for_unknown_client_is_404(api) -> None:
    response = await api.put(f"{BASE}/clients/{uuid.uuid4()}/config", json={"tax_rate": "5"})

    assert response.status_code == 404


async def test_rate_card_lifecycle(api, db) -> None:
    client = await make_client(db)
    url = f"{BASE}/clients/{client.id}/rate-cards"

    created = await api.post(url, json=_rate_card_payload())
    duplicate = await api.post(url, json=_rate_card_payload())
    card_id = created.json()["id"]
    patched = await api.patch(f"{BASE}/rate-cards/{card_id}", json={"unit_price": "0.40"})
    deactivated = await api.post(f"{BASE}/rate-cards/{card_id}/deactivate")
    active = await api.get(url)
    everything = await api.get(url, params={"active_only": "false"})

    assert created.status_code == 201
    assert duplicate.status_code == 409
    assert Decimal(patched.json()["unit_price"]) == Decimal("0.40")
    assert deactivated.json()["is_active"] is False
    assert active.json() == []
    assert [card["rate_code"] for card in everything.json()] == ["PICK-EACH"]

    deleted = await api.delete(f"{BASE}/rate-cards/{card_id}")
    gone = await api.patch(f"{BASE}/rate-cards/{card_id}", json={"unit_price": "1"})
    assert deleted.status_code == 204
    assert gone.status_code == 404


async def test_record_usage_and_generate_invoice(api, db) -> None:
    client = await make_client(db)
    await api.post(
        f"{BASE}/clients/{client.id}/rate-cards",
        json=_rate_card_payload(unit_price="0.50", minimum_charge="5"),
    )

    small = await api.post(
        f"{BASE}/clients/{client.id}/usage",
        json={"rate_code": "PICK-EACH", "quantity": "4", "usage_date": "2026-09-03"},
    )
    large = await api.post(
        f"{BASE}/clients/{client.id}/usage",
        json={"rate_code": "PICK-EACH", "quantity": "100", "usage_date": "2026-09-04"},
    )
    unknown = await api.post(
        f"{BASE}/clients/{client.id}/usage",
        json={"rate_code": "NOPE", "quantity": "1"},
    )

    assert small.status_code == 201
    assert Decimal(small.json()["total"]) == Decimal("5")
    assert Decimal(large.json()["total"]) == Decimal("50")
    assert unknown.status_code == 404

    summary = await api.get(f"{BASE}/clients/{client.id}/summary", params=SEPTEMBER)
    assert Decimal(summary.json()["subtotal"]) == Decimal("55")

    generated = await api.post(f"{BASE}/clients/{client.id}/invoices/generate", json=SEPTEMBER)
    body = generated.json()
    assert body["generated"] is True
    assert Decimal(body["total"]) == Decimal("55")

    again = await api.post(f"{BASE}/clients/{client.id}/invoices/generate", json=SEPTEMBER)
    assert again.json()["generated"] is False

    invoice = await api.get(f"{BASE}/invoices/{body['invoice_id']}")
    assert invoice.json()["invoice_number"] == body["invoice_number"]
    assert invoice.json()["status"] == "draft"
    assert len(invoice.json()["items"]) == 1

    uninvoiced = await api.get(
        f"{BASE}/clients/{client.id}/usage", params={"invoiced": "false"}
    )
    assert uninvoiced.json() == []


async def test_generate_rejects_inverted_period(api, db) -> None:
    client = await make_client(db)

    response = await api.post(
        f"{BASE}/clients/{client.id}/invoices/generate",
        json={"period_start": "2026-09-30", "period_end": "2026-09-01"},
    )

    assert response.status_code == 422


async def test_invoice_state_transitions(api, db) -> None:
    client = await make_client(db)
    await make_usage(db, client, "Pick Fee", "10", "1.00")
    generated = await api.post(f"{BASE}/clients/{client.id}/invoices/generate", json=SEPTEMBER)
    invoice_id = generated.json()["invoice_id"]

    sent = await api.post(f"{BASE}/invoices/{invoice_id}/send")
    resent = await api.post(f"{BASE}/invoices/{invoice_id}/send")
    delete_sent = await api.delete(f"{BASE}/invoices/{invoice_id}")
    paid = await api.post(f"{BASE}/invoices/{invoice_id}/pay")
    repaid = await api.post(f"{BASE}/invoices/{invoice_id}/pay")

    assert sent.json()["status"] == "sent"
    assert sent.json()["sent_at"] is not None
    assert resent.status_code == 409
    assert delete_sent.status_code == 409
    assert paid.json()["status"] == "paid"
    assert repaid.status_code == 409

    listed = await api.get(f"{BASE}/invoices", params={"status": "paid"})
    assert [row["id"] for row in listed.json()] == [invoice_id]
    assert (await api.get(f"{BASE}/invoices/{uuid.uuid4()}")).status_code == 404


async def test_billing_run_endpoints(api, db) -> None:
    acme = await make_client(db, "Acme Corp")
    await make_usage(db, acme, "Pick Fee", "10", "1.00")

    created = await api.post(f"{BASE}/runs", json=SEPTEMBER)
    run_id = created.json()["id"]
    fetched = await api.get(f"{BASE}/runs/{run_id}")
    listed = await api.get(f"{BASE}/runs", params={"status": "completed"})
    unknown_client = await api.post(f"{BASE}/runs", json={**SEPTEMBER, "client_id": str(uuid.uuid4())})

    assert created.status_code == 201
    assert created.json()["status"] == "completed"
    assert created.json()["run_type"] == "manual"
    assert created.json()["invoices_generated"] == 1
    assert fetched.json()["run_number"] == created.json()["run_number"]
    assert [run["id"] for run in listed.json()] == [run_id]
    assert unknown_client.status_code == 404
    assert (await api.get(f"{BASE}/runs/{uuid.uuid4()}")).status_code == 404
