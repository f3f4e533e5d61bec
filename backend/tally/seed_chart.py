"""Seed data for the chart of accounts.

Creates (all idempotent):
- The default chart of accounts for a tenant
- A development tenant with a cash drawer and a bank account
"""

import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from tally.config import settings
from tally.models.gl import Account
from tally.models.tenant import Tenant
from tally.models.treasury import CashAccount, CashAccountKind
from tally.services.gl import chart_of_accounts

logger = logging.getLogger(__name__)

DEMO_TENANT_ID = "demo"


async def seed_chart_of_accounts(db: AsyncSession, tenant_id: str) -> int:
    """Insert any default account the tenant is missing.  Returns the count added."""
    result = await db.execute(select(Account.code).where(Account.tenant_id == tenant_id))
    existing = set(result.scalars().all())

    created = 0
    for account in chart_of_accounts.default_accounts(tenant_id, settings.currency):
        if account.code in existing:
            continue
        db.add(account)
        created += 1
    await db.flush()
    if created:
        logger.info("Seeded %s chart accounts for tenant %s", created, tenant_id)
    return created


async def seed_demo_tenant(db: AsyncSession) -> None:
    """Development data: one tenant with its chart and two cash accounts."""
    try:
        tenant = await db.get(Tenant, DEMO_TENANT_ID)
        if tenant is None:
            db.add(Tenant(id=DEMO_TENANT_ID, name="Demo Store"))
            await db.flush()
        await seed_chart_of_accounts(db, DEMO_TENANT_ID)

        result = await db.execute(
            select(CashAccount.id).where(CashAccount.tenant_id == DEMO_TENANT_ID).limit(1)
        )
        if result.scalar_one_or_none() is None:
            db.add(CashAccount(
                tenant_id=DEMO_TENANT_ID, name="Caja principal", kind=CashAccountKind.CASH,
                ledger_account_code=chart_of_accounts.CASH,
            ))
            db.add(CashAccount(
                tenant_id=DEMO_TENANT_ID, name="Cuenta corriente", kind=CashAccountKind.BANK,
                bank_name="Banco Demo", ledger_account_code=chart_of_accounts.BANKS,
            ))
        await db.commit()
    except Exception as e:
        logger.warning("Demo tenant seeding skipped: %s", e)
        await db.rollback()
