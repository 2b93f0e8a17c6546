from __future__ import annotations

import os

# Settings are read at import time; point them at an in-memory database first.
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("SCHEDULER_ENABLED", "false")

import uuid
from collections.abc import AsyncGenerator
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal

import httpx
import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from wms_billing import models  # noqa: F401
from wms_billing.database import Base, async_session_factory, engine
from wms_billing.main import app
from wms_billing.models import (
    Client,
    ClientBillingConfig,
    ClientRateCard,
    Inventory,
    OutboundOrder,
    UsageRecord,
)


@pytest.fixture()
async def db() -> AsyncGenerator[AsyncSession, None]:
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with async_session_factory() as session:
        yield session
        await session.rollback()

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest.fixture()
async def api(db: AsyncSession) -> AsyncGenerator[httpx.AsyncClient, None]:
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as client:
        yield client


async def make_client(db: AsyncSession, name: str = "Acme Corp", active: bool = True) -> Client:
    client = Client(company_name=name, active=active)
    db.add(client)
    await db.commit()
    return client


async def make_config(db: AsyncSession, client: Client, **fields) -> ClientBillingConfig:
    config = ClientBillingConfig(client_id=client.id, **fields)
    db.add(config)
    await db.commit()
    return config


async def make_usage(
    db: AsyncSession,
    client: Client,
    usage_type: str,
    quantity: str,
    unit_price: str,
    usage_date: date = date(2026, 9, 10),
    total: str | None = None,
) -> UsageRecord:
    qty = Decimal(quantity)
    price = Decimal(unit_price)
    record = UsageRecord(
        client_id=client.id,
        usage_type=usage_type,
        quantity=qty,
        unit_price=price,
        total=Decimal(total) if total is not None else qty * price,
        usage_date=usage_date,
        invoiced=False,
    )
    db.add(record)
    await db.commit()
    return record


async def make_rate_card(
    db: AsyncSession,
    client: Client,
    rate_code: str,
    rate_category: str = "pick",
    unit_price: str = "0.25",
    price_unit: str = "per_unit",
    minimum_charge: str = "0",
    volume_tiers: list | None = None,
) -> ClientRateCard:
    rate_card = ClientRateCard(
        client_id=client.id,
        rate_category=rate_category,
        rate_code=rate_code,
        rate_name=rate_code.replace("-", " ").title(),
        unit_price=Decimal(unit_price),
        price_unit=price_unit,
        minimum_charge=Decimal(minimum_charge),
        volume_tiers=volume_tiers,
        is_active=True,
    )
    db.add(rate_card)
    await db.commit()
    return rate_card


async def make_inventory(
    db: AsyncSession,
    client: Client,
    on_hand: str,
    reserved: str = "0",
    product_id: uuid.UUID | None = None,
    location_id: uuid.UUID | None = None,
) -> Inventory:
    inventory = Inventory(
        product_id=product_id or uuid.uuid4(),
        location_id=location_id or uuid.uuid4(),
        client_id=client.id,
        qty_on_hand=Decimal(on_hand),
        qty_reserved=Decimal(reserved),
    )
    db.add(inventory)
    await db.commit()
    return inventory


async def make_order(
    db: AsyncSession,
    client: Client,
    order_number: str,
    confirmed_at: datetime,
    status: str = "confirmed",
    notes: str | None = None,
) -> OutboundOrder:
    order = OutboundOrder(
        order_number=order_number,
        client_id=client.id,
        status=status,
        confirmed_at=confirmed_at,
        notes=notes,
    )
    db.add(order)
    await db.commit()
    return order


def days_ago(days: int) -> datetime:
    return datetime.now(timezone.utc) - timedelta(days=days)
