"""Cash and bank accounts.

Each cash account mirrors one postable ledger account; its current balance
moves only with the postings that name it.
"""

import logging
from datetime import date
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from tally.models.treasury import CashAccount, CashAccountKind, CashMovement
from tally.services.errors import InvalidAccount, InvalidAmount, NotFound
from tally.services.gl import chart_of_accounts

logger = logging.getLogger(__name__)

DEFAULT_LEDGER_CODES = {
    CashAccountKind.CASH: chart_of_accounts.CASH,
    CashAccountKind.BANK: chart_of_accounts.BANKS,
}


async def create_cash_account(
    db: AsyncSession,
    *,
    tenant_id: str,
    name: str,
    kind: CashAccountKind,
    bank_name: str | None = None,
    ledger_account_code: str | None = None,
) -> CashAccount:
    if not name.strip():
        raise InvalidAmount("name is required")
    code = ledger_account_code or DEFAULT_LEDGER_CODES[kind]
    # Must map onto a postable asset leaf
    await chart_of_accounts.get_postable_accounts(db, tenant_id, [code])

    account = CashAccount(
        tenant_id=tenant_id,
        name=name.strip(),
        kind=kind,
        bank_name=bank_name,
        ledger_account_code=code,
        current_balance=Decimal("0.00"),
        is_active=True,
    )
    db.add(account)
    await db.flush()
    logger.info("Created cash account %s/%s -> %s", tenant_id, account.id, code)
    return account


async def get_cash_account(
    db: AsyncSession, tenant_id: str, cash_account_id: int
) -> CashAccount:
    result = await db.execute(
        select(CashAccount).where(
            CashAccount.id == cash_account_id, CashAccount.tenant_id == tenant_id
        )
    )
    account = result.scalar_one_or_none()
    if account is None:
        raise NotFound(f"Cash account {cash_account_id} not found")
    if not account.is_active:
        raise InvalidAccount(f"Cash account {account.name} is inactive")
    return account


async def list_cash_accounts(db: AsyncSession, tenant_id: str) -> list[CashAccount]:
    result = await db.execute(
        select(CashAccount)
        .where(CashAccount.tenant_id == tenant_id)
        .order_by(CashAccount.name)
    )
    return list(result.scalars().all())


async def record_cash_movement(
    db: AsyncSession,
    account: CashAccount,
    *,
    amount: Decimal,
    movement_date: date,
    journal_entry_id: int | None = None,
    description: str | None = None,
) -> CashMovement:
    """Apply a signed delta (positive = money in) to a cash account."""
    account.current_balance = Decimal(str(account.current_balance)) + amount
    movement = CashMovement(
        tenant_id=account.tenant_id,
        cash_account_id=account.id,
        journal_entry_id=journal_entry_id,
        movement_date=movement_date,
        amount=amount,
        balance_after=account.current_balance,
        description=description,
    )
    db.add(movement)
    await db.flush()
    return movement


async def list_movements(
    db: AsyncSession, tenant_id: str, cash_account_id: int
) -> list[CashMovement]:
    result = await db.execute(
        select(CashMovement)
        .where(
            CashMovement.tenant_id == tenant_id,
            CashMovement.cash_account_id == cash_account_id,
        )
        .order_by(CashMovement.id)
    )
    return list(result.scalars().all())


async def movements_for_entry(db: AsyncSession, journal_entry_id: int) -> list[CashMovement]:
    result = await db.execute(
        select(CashMovement)
        .where(CashMovement.journal_entry_id == journal_entry_id)
        .order_by(CashMovement.id)
    )
    return list(result.scalars().all())
