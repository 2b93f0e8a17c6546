"""
Billing Config Service.

Client billing terms, per-client rate cards, and the default rate templates
new clients are seeded from.
"""
import logging
import uuid
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional, List

from sqlalchemy import select, and_
from sqlalchemy.ext.asyncio import AsyncSession

from wms_billing.config import settings
from wms_billing.models.billing import (
    ClientBillingConfig, ClientRateCard, DefaultRateTemplate, RateCategory, BillingFrequency
)
from wms_billing.models.client import Client
from wms_billing.schemas.billing import (
    ClientBillingConfigUpsert, ClientRateCardCreate, ClientRateCardUpdate
)
from wms_billing.services.exceptions import ClientNotFoundError, RateCardNotFoundError


logger = logging.getLogger(__name__)


@dataclass
class EffectiveBillingTerms:
    """Billing terms the generator works with; defaults when a client has no config."""
    tax_rate: Decimal = Decimal("0")
    tax_exempt: bool = False
    monthly_minimum: Decimal = Decimal("0")
    payment_terms_days: int = 30
    billing_frequency: str = BillingFrequency.MONTHLY.value
    auto_send_invoices: bool = False

    @classmethod
    def from_config(cls, config: Optional[ClientBillingConfig]) -> "EffectiveBillingTerms":
        if config is None:
            return cls(payment_terms_days=settings.DEFAULT_PAYMENT_TERMS_DAYS)
        return cls(
            tax_rate=config.tax_rate if config.tax_rate is not None else Decimal("0"),
            tax_exempt=bool(config.tax_exempt),
            monthly_minimum=config.monthly_minimum if config.monthly_minimum is not None else Decimal("0"),
            payment_terms_days=(
                config.payment_terms_days
                if config.payment_terms_days is not None
                else settings.DEFAULT_PAYMENT_TERMS_DAYS
            ),
            billing_frequency=config.billing_frequency or BillingFrequency.MONTHLY.value,
            auto_send_invoices=bool(config.auto_send_invoices),
        )


class BillingConfigService:
    """Service for client billing configuration and rate cards."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def _ensure_client(self, client_id: uuid.UUID) -> Client:
        client = await self.db.get(Client, client_id)
        if client is None:
            raise ClientNotFoundError(f"Client {client_id} not found")
        return client

    # =========================================================================
    # BILLING CONFIG
    # =========================================================================

    async def get_billing_config(self, client_id: uuid.UUID) -> Optional[ClientBillingConfig]:
        """Get the client's billing config, or None when the client has none."""
        result = await self.db.execute(
            select(ClientBillingConfig).where(ClientBillingConfig.client_id == client_id)
        )
        return result.scalar_one_or_none()

    async def get_effective_terms(self, client_id: uuid.UUID) -> EffectiveBillingTerms:
        return EffectiveBillingTerms.from_config(await self.get_billing_config(client_id))

    async def upsert_billing_config(
        self,
        client_id: uuid.UUID,
        data: ClientBillingConfigUpsert
    ) -> ClientBillingConfig:
        """
        Create or update the billing config of a client.

        Args:
            client_id: Client the config belongs to
            data: Fields to set; unset fields keep their current value

        Returns:
            The stored config
        """
        await self._ensure_client(client_id)
        config = await self.get_billing_config(client_id)

        if config is None:
            config = ClientBillingConfig(
                client_id=client_id,
                payment_terms_days=settings.DEFAULT_PAYMENT_TERMS_DAYS,
            )
            self.db.add(config)

        update_data = data.model_dump(exclude_unset=True)
        for field, value in update_data.items():
            if isinstance(value, BillingFrequency):
                value = value.value
            setattr(config, field, value)

        await self.db.commit()
        await self.db.refresh(config)
        logger.info(f"Billing config saved for client {client_id}")
        return config

    # =========================================================================
    # RATE CARDS
    # =========================================================================

    async def list_rate_cards(
        self,
        client_id: uuid.UUID,
        category: Optional[RateCategory] = None,
        active_only: bool = True
    ) -> List[ClientRateCard]:
        """List a client's rate cards ordered by category and code."""
        query = select(ClientRateCard).where(ClientRateCard.client_id == client_id)
        if category:
            query = query.where(ClientRateCard.rate_category == category.value)
        if active_only:
            query = query.where(ClientRateCard.is_active == True)

        query = query.order_by(ClientRateCard.rate_category, ClientRateCard.rate_code)
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def get_rate_card(self, rate_card_id: uuid.UUID) -> ClientRateCard:
        rate_card = await self.db.get(ClientRateCard, rate_card_id)
        if rate_card is None:
            raise RateCardNotFoundError(f"Rate card {rate_card_id} not found")
        return rate_card

    async def get_rate_card_by_code(
        self,
        client_id: uuid.UUID,
        rate_code: str
    ) -> Optional[ClientRateCard]:
        """Active rate card for a client and code, if any."""
        result = await self.db.execute(
            select(ClientRateCard).where(
                and_(
                    ClientRateCard.client_id == client_id,
                    ClientRateCard.rate_code == rate_code,
                    ClientRateCard.is_active == True
                )
            )
        )
        return result.scalar_one_or_none()

    async def create_rate_card(
        self,
        client_id: uuid.UUID,
        data: ClientRateCardCreate,
        user_id: Optional[uuid.UUID] = None
    ) -> ClientRateCard:
        """Create a rate card for a client."""
        await self._ensure_client(client_id)

        rate_card = ClientRateCard(
            client_id=client_id,
            rate_category=data.rate_category.value,
            rate_code=data.rate_code,
            rate_name=data.rate_name,
            description=data.description,
            unit_price=data.unit_price,
            price_unit=data.price_unit,
            volume_tiers=(
                [tier.model_dump(mode="json") for tier in data.volume_tiers]
                if data.volume_tiers else None
            ),
            minimum_charge=data.minimum_charge,
            effective_date=data.effective_date,
            expiration_date=data.expiration_date,
            is_active=data.is_active,
            created_by=user_id,
        )
        self.db.add(rate_card)
        await self.db.commit()
        await self.db.refresh(rate_card)
        return rate_card

    async def update_rate_card(
        self,
        rate_card_id: uuid.UUID,
        data: ClientRateCardUpdate
    ) -> ClientRateCard:
        """Update a rate card."""
        rate_card = await self.get_rate_card(rate_card_id)

        update_data = data.model_dump(exclude_unset=True)
        if "volume_tiers" in update_data:
            # Stored as plain JSON
            update_data["volume_tiers"] = (
                [tier.model_dump(mode="json") for tier in data.volume_tiers]
                if data.volume_tiers else None
            )
        for field, value in update_data.items():
            setattr(rate_card, field, value)

        await self.db.commit()
        await self.db.refresh(rate_card)
        return rate_card

    async def deactivate_rate_card(self, rate_card_id: uuid.UUID) -> ClientRateCard:
        """Soft-delete a rate card; already billed usage keeps its price."""
        rate_card = await self.get_rate_card(rate_card_id)
        rate_card.is_active = False
        await self.db.commit()
        await self.db.refresh(rate_card)
        return rate_card

    async def delete_rate_card(self, rate_card_id: uuid.UUID) -> None:
        rate_card = await self.get_rate_card(rate_card_id)
        await self.db.delete(rate_card)
        await self.db.commit()

    # =========================================================================
    # DEFAULT TEMPLATES
    # =========================================================================

    async def list_templates(self, template_name: Optional[str] = None) -> List[DefaultRateTemplate]:
        query = select(DefaultRateTemplate).where(DefaultRateTemplate.is_active == True)
        if template_name:
            query = query.where(DefaultRateTemplate.template_name == template_name)
        query = query.order_by(
            DefaultRateTemplate.template_name,
            DefaultRateTemplate.rate_category,
            DefaultRateTemplate.rate_code
        )
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def list_template_names(self) -> List[str]:
        result = await self.db.execute(
            select(DefaultRateTemplate.template_name)
            .where(DefaultRateTemplate.is_active == True)
            .distinct()
            .order_by(DefaultRateTemplate.template_name)
        )
        return list(result.scalars().all())

    async def copy_default_rates_to_client(
        self,
        client_id: uuid.UUID,
        template_name: Optional[str] = None
    ) -> int:
        """
        Seed a client's rate cards from a named template.

        Rate codes the client already has are left untouched.

        Args:
            client_id: Client to seed
            template_name: Template to copy, "Standard" unless configured otherwise

        Returns:
            Number of rate cards created
        """
        await self._ensure_client(client_id)
        template_name = template_name or settings.DEFAULT_RATE_TEMPLATE

        existing = await self.db.execute(
            select(ClientRateCard.rate_code).where(ClientRateCard.client_id == client_id)
        )
        existing_codes = set(existing.scalars().all())

        copied = 0
        for template in await self.list_templates(template_name):
            if template.rate_code in existing_codes:
                continue
            self.db.add(ClientRateCard(
                client_id=client_id,
                rate_category=template.rate_category,
                rate_code=template.rate_code,
                rate_name=template.rate_name,
                description=template.description,
                unit_price=template.unit_price,
                price_unit=template.price_unit,
                volume_tiers=template.volume_tiers,
                minimum_charge=template.minimum_charge,
                is_active=True,
            ))
            copied += 1

        await self.db.commit()
        logger.info(f"Copied {copied} rates from template '{template_name}' to client {client_id}")
        return copied
