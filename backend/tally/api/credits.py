"""Credit endpoints: financing simulation, grants, status changes and aging review."""

import logging
from datetime import date
from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from tally.config import settings
from tally.database import get_db, run_in_transaction
from tally.models.credit import CreditStatus, InstallmentStatus
from tally.models.tenant import Tenant
from tally.services import tenants
from tally.services.credit import amortization, lifecycle
from tally.services.error_logger import log_error
from tally.services.errors import TallyError, http_error
from tally.tenant_utils import get_current_tenant, today

logger = logging.getLogger(__name__)
router = APIRouter()


# ===================================================================
# Pydantic Schemas
# ===================================================================

class SimulateRequest(BaseModel):
    amount: Decimal
    down_payment: Decimal = Decimal("0")


class FinancingOptionResponse(BaseModel):
    installments: int
    monthly_rate: Decimal
    installment_value: Decimal
    total_payable: Decimal
    total_interest: Decimal
    total_cost_percent: Decimal

    model_config = {"from_attributes": True}


class SimulateResponse(BaseModel):
    amount: Decimal
    down_payment: Decimal
    financed_amount: Decimal
    options: list[FinancingOptionResponse]


class CreditCreate(BaseModel):
    client_id: int
    amount: Decimal
    down_payment: Decimal = Decimal("0")
    installment_count: int = Field(ge=1)
    grant_date: Optional[date] = None
    first_due_from: Optional[date] = None
    order_reference: Optional[str] = Field(default=None, max_length=100)


class InstallmentResponse(BaseModel):
    id: int
    sequence: int
    due_date: date
    principal_portion: Decimal
    interest_portion: Decimal
    total_due: Decimal
    amount_paid: Decimal
    penalty_paid: Decimal
    remaining_balance: Decimal
    status: InstallmentStatus
    paid_at: Optional[date] = None

    model_config = {"from_attributes": True}


class CreditResponse(BaseModel):
    id: int
    client_id: int
    order_reference: Optional[str] = None
    original_amount: Decimal
    down_payment: Decimal
    financed_amount: Decimal
    monthly_rate: Decimal
    installment_count: int
    installment_value: Decimal
    total_payable: Decimal
    remaining_principal: Decimal
    status: CreditStatus
    status_reason: Optional[str] = None
    grant_date: date
    first_due_date: date
    installments: list[InstallmentResponse] = []

    model_config = {"from_attributes": True}


class StatusChangeRequest(BaseModel):
    status: CreditStatus
    reason: Optional[str] = None


class AgingReviewRequest(BaseModel):
    as_of: Optional[date] = None
    threshold_days: Optional[int] = Field(default=None, ge=1)


class AgingReviewResponse(BaseModel):
    as_of: date
    threshold_days: int
    defaulted_credit_ids: list[int]


# ===================================================================
# Endpoints
# ===================================================================

@router.post("/credits/simulate", response_model=SimulateResponse)
async def simulate_financing(
    data: SimulateRequest,
    tenant: Tenant = Depends(get_current_tenant),
):
    """Evaluate every offered plan for a purchase; nothing is persisted."""
    try:
        options = amortization.financing_options(
            data.amount, data.down_payment, tenants.financing_offers_for(tenant)
        )
    except TallyError as e:
        raise http_error(e)
    return SimulateResponse(
        amount=amortization.money(data.amount),
        down_payment=amortization.money(data.down_payment),
        financed_amount=amortization.money(data.amount - data.down_payment),
        options=[FinancingOptionResponse.model_validate(o) for o in options],
    )


@router.post("/credits", response_model=CreditResponse, status_code=201)
async def create_credit(
    data: CreditCreate,
    tenant: Tenant = Depends(get_current_tenant),
    db: AsyncSession = Depends(get_db),
):
    try:
        try:
            grant_date = data.grant_date or today()
            offers = tenants.financing_offers_for(tenant)
            return await run_in_transaction(db, lambda s: lifecycle.create_credit(
                s,
                tenant_id=tenant.id,
                client_id=data.client_id,
                amount=data.amount,
                down_payment=data.down_payment,
                installment_count=data.installment_count,
                grant_date=grant_date,
                offers=offers,
                start_date=data.first_due_from,
                order_reference=data.order_reference,
            ))
        except TallyError as e:
            raise http_error(e)
    except HTTPException:
        raise
    except Exception as e:
        await log_error(e, db=db, module="api.credits", function_name="create_credit", tenant_id=tenant.id)
        raise


@router.get("/credits", response_model=list[CreditResponse])
async def list_credits(
    client_id: Optional[int] = None,
    status: Optional[CreditStatus] = None,
    tenant: Tenant = Depends(get_current_tenant),
    db: AsyncSession = Depends(get_db),
):
    try:
        return await lifecycle.list_credits(db, tenant.id, client_id=client_id, status=status)
    except HTTPException:
        raise
    except Exception as e:
        await log_error(e, db=db, module="api.credits", function_name="list_credits", tenant_id=tenant.id)
        raise


@router.post("/credits/review-aging", response_model=AgingReviewResponse)
async def review_aging(
    data: AgingReviewRequest,
    tenant: Tenant = Depends(get_current_tenant),
    db: AsyncSession = Depends(get_db),
):
    """Default active credits with an installment overdue past the threshold."""
    try:
        as_of = data.as_of or today()
        threshold = data.threshold_days or settings.default_after_days
        defaulted = await run_in_transaction(db, lambda s: lifecycle.review_aging(
            s, tenant.id, as_of=as_of, threshold_days=threshold
        ))
        return AgingReviewResponse(
            as_of=as_of,
            threshold_days=threshold,
            defaulted_credit_ids=[c.id for c in defaulted],
        )
    except HTTPException:
        raise
    except Exception as e:
        await log_error(e, db=db, module="api.credits", function_name="review_aging", tenant_id=tenant.id)
        raise


@router.get("/credits/{credit_id}", response_model=CreditResponse)
async def get_credit(
    credit_id: int,
    tenant: Tenant = Depends(get_current_tenant),
    db: AsyncSession = Depends(get_db),
):
    try:
        try:
            return await lifecycle.get_credit(db, tenant.id, credit_id)
        except TallyError as e:
            raise http_error(e)
    except HTTPException:
        raise
    except Exception as e:
        await log_error(e, db=db, module="api.credits", function_name="get_credit", tenant_id=tenant.id)
        raise


@router.post("/credits/{credit_id}/status", response_model=CreditResponse)
async def change_credit_status(
    credit_id: int,
    data: StatusChangeRequest,
    tenant: Tenant = Depends(get_current_tenant),
    db: AsyncSession = Depends(get_db),
):
    try:
        try:
            return await run_in_transaction(db, lambda s: lifecycle.change_status(
                s, tenant.id, credit_id, data.status, reason=data.reason
            ))
        except TallyError as e:
            raise http_error(e)
    except HTTPException:
        raise
    except Exception as e:
        await log_error(e, db=db, module="api.credits", function_name="change_credit_status", tenant_id=tenant.id)
        raise
