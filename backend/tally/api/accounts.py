"""Chart of accounts endpoints: listing, seeding and account balances."""

import logging
from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from tally.database import get_db, run_in_transaction
from tally.models.gl import AccountType, BalanceSide
from tally.models.tenant import Tenant
from tally.seed_chart import seed_chart_of_accounts
from tally.services.error_logger import log_error
from tally.services.errors import InvalidAccount, TallyError, http_error
from tally.services.gl import chart_of_accounts
from tally.tenant_utils import get_current_tenant

logger = logging.getLogger(__name__)
router = APIRouter()


class AccountResponse(BaseModel):
    id: int
    code: str
    name: str
    account_type: AccountType
    balance_side: BalanceSide
    level: int
    parent_code: Optional[str] = None
    allows_postings: bool
    currency: str
    is_active: bool

    model_config = {"from_attributes": True}


class AccountBalanceResponse(BaseModel):
    code: str
    name: str
    balance_side: str
    debit_total: Decimal
    credit_total: Decimal
    balance: Decimal


@router.get("/accounts", response_model=list[AccountResponse])
async def list_accounts(
    account_type: Optional[str] = None,
    postable_only: bool = False,
    tenant: Tenant = Depends(get_current_tenant),
    db: AsyncSession = Depends(get_db),
):
    try:
        try:
            try:
                acct_type = AccountType(account_type) if account_type else None
            except ValueError:
                raise InvalidAccount(f"Unknown account type '{account_type}'")
            return await chart_of_accounts.list_accounts(
                db, tenant.id, account_type=acct_type, postable_only=postable_only
            )
        except TallyError as e:
            raise http_error(e)
    except HTTPException:
        raise
    except Exception as e:
        await log_error(e, db=db, module="api.accounts", function_name="list_accounts", tenant_id=tenant.id)
        raise


@router.post("/accounts/seed")
async def seed_accounts(
    tenant: Tenant = Depends(get_current_tenant),
    db: AsyncSession = Depends(get_db),
):
    """Add any default account missing from the tenant chart."""
    try:
        created = await run_in_transaction(db, lambda s: seed_chart_of_accounts(s, tenant.id))
        return {"tenant_id": tenant.id, "created": created}
    except HTTPException:
        raise
    except Exception as e:
        await log_error(e, db=db, module="api.accounts", function_name="seed_accounts", tenant_id=tenant.id)
        raise


@router.get("/accounts/{code}/balance", response_model=AccountBalanceResponse)
async def account_balance(
    code: str,
    tenant: Tenant = Depends(get_current_tenant),
    db: AsyncSession = Depends(get_db),
):
    try:
        try:
            account = await chart_of_accounts.get_account_by_code(db, tenant.id, code)
            totals = await chart_of_accounts.get_account_balance(db, account)
            return AccountBalanceResponse(
                code=account.code,
                name=account.name,
                balance_side=account.balance_side.value,
                **totals,
            )
        except TallyError as e:
            raise http_error(e)
    except HTTPException:
        raise
    except Exception as e:
        await log_error(e, db=db, module="api.accounts", function_name="account_balance", tenant_id=tenant.id)
        raise
