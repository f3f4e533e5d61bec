"""Cash drawers and bank accounts."""

import logging
from datetime import date
from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from tally.database import get_db, run_in_transaction
from tally.models.tenant import Tenant
from tally.models.treasury import CashAccountKind
from tally.services import treasury
from tally.services.error_logger import log_error
from tally.services.errors import TallyError, http_error
from tally.tenant_utils import get_current_tenant

logger = logging.getLogger(__name__)
router = APIRouter()


class CashAccountCreate(BaseModel):
    name: str = Field(min_length=1, max_length=120)
    kind: CashAccountKind
    bank_name: Optional[str] = None
    ledger_account_code: Optional[str] = None


class CashAccountResponse(BaseModel):
    id: int
    name: str
    kind: CashAccountKind
    bank_name: Optional[str] = None
    ledger_account_code: str
    current_balance: Decimal
    is_active: bool

    model_config = {"from_attributes": True}


class CashMovementResponse(BaseModel):
    id: int
    movement_date: date
    amount: Decimal
    balance_after: Decimal
    journal_entry_id: Optional[int] = None
    description: Optional[str] = None

    model_config = {"from_attributes": True}


@router.post("/cash-accounts", response_model=CashAccountResponse, status_code=201)
async def create_cash_account(
    data: CashAccountCreate,
    tenant: Tenant = Depends(get_current_tenant),
    db: AsyncSession = Depends(get_db),
):
    try:
        try:
            return await run_in_transaction(db, lambda s: treasury.create_cash_account(
                s,
                tenant_id=tenant.id,
                name=data.name,
                kind=data.kind,
                bank_name=data.bank_name,
                ledger_account_code=data.ledger_account_code,
            ))
        except TallyError as e:
            raise http_error(e)
    except HTTPException:
        raise
    except Exception as e:
        await log_error(e, db=db, module="api.treasury", function_name="create_cash_account", tenant_id=tenant.id)
        raise


@router.get("/cash-accounts", response_model=list[CashAccountResponse])
async def list_cash_accounts(
    tenant: Tenant = Depends(get_current_tenant),
    db: AsyncSession = Depends(get_db),
):
    try:
        return await treasury.list_cash_accounts(db, tenant.id)
    except HTTPException:
        raise
    except Exception as e:
        await log_error(e, db=db, module="api.treasury", function_name="list_cash_accounts", tenant_id=tenant.id)
        raise


@router.get("/cash-accounts/{cash_account_id}/movements", response_model=list[CashMovementResponse])
async def list_cash_movements(
    cash_account_id: int,
    tenant: Tenant = Depends(get_current_tenant),
    db: AsyncSession = Depends(get_db),
):
    try:
        try:
            account = await treasury.get_cash_account(db, tenant.id, cash_account_id)
            return await treasury.list_movements(db, tenant.id, account.id)
        except TallyError as e:
            raise http_error(e)
    except HTTPException:
        raise
    except Exception as e:
        await log_error(e, db=db, module="api.treasury", function_name="list_cash_movements", tenant_id=tenant.id)
        raise
