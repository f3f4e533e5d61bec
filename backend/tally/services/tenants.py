"""Tenant onboarding and per-tenant overrides of the configured defaults."""

import logging
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from tally.config import settings
from tally.models.tenant import Tenant
from tally.seed_chart import seed_chart_of_accounts
from tally.services.errors import AlreadyExists, InvalidAmount, NotFound

logger = logging.getLogger(__name__)


def financing_offers_for(tenant: Tenant) -> dict[int, Decimal]:
    """Tenant offers override the configured table; JSON keys arrive as strings."""
    raw = tenant.financing_offers or settings.financing_offers
    return {int(term): Decimal(str(rate)) for term, rate in raw.items()}


def penalty_rate_for(tenant: Tenant) -> Decimal:
    if tenant.daily_penalty_rate is not None:
        return Decimal(str(tenant.daily_penalty_rate))
    return settings.default_daily_penalty_rate


async def get_tenant(db: AsyncSession, tenant_id: str) -> Tenant:
    tenant = await db.get(Tenant, tenant_id)
    if tenant is None:
        raise NotFound(f"Tenant {tenant_id} not found")
    return tenant


async def create_tenant(
    db: AsyncSession,
    *,
    tenant_id: str,
    name: str,
    financing_offers: dict[int, Decimal] | None = None,
    daily_penalty_rate: Decimal | None = None,
) -> Tenant:
    if await db.get(Tenant, tenant_id) is not None:
        raise AlreadyExists(f"Tenant {tenant_id} already exists")
    if daily_penalty_rate is not None and daily_penalty_rate < 0:
        raise InvalidAmount("daily_penalty_rate must be >= 0")
    offers = None
    if financing_offers:
        if any(int(t) < 1 or Decimal(str(r)) < 0 for t, r in financing_offers.items()):
            raise InvalidAmount("Financing offers need terms >= 1 and rates >= 0")
        offers = {str(int(t)): str(r) for t, r in financing_offers.items()}

    tenant = Tenant(
        id=tenant_id,
        name=name,
        financing_offers=offers,
        daily_penalty_rate=daily_penalty_rate,
    )
    db.add(tenant)
    await db.flush()
    created = await seed_chart_of_accounts(db, tenant_id)
    logger.info("Created tenant %s with %s chart accounts", tenant_id, created)
    return tenant
