"""Payment confirmation from the gateway boundary and payment lookups."""

import logging
from datetime import date
from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Response
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from tally.config import settings
from tally.database import get_db, run_in_transaction
from tally.models.credit import AllocationComponent, PaymentMethod, PaymentStatus
from tally.models.tenant import Tenant
from tally.services import tenants
from tally.services.credit import allocation
from tally.services.error_logger import log_error
from tally.services.errors import TallyError, http_error
from tally.tenant_utils import get_current_tenant, today

logger = logging.getLogger(__name__)
router = APIRouter()


class PaymentConfirm(BaseModel):
    client_id: int
    amount: Decimal
    method: str
    external_reference: Optional[str] = Field(default=None, max_length=100)
    payment_date: Optional[date] = None


class AllocationResponse(BaseModel):
    installment_id: int
    credit_id: int
    applied_amount: Decimal
    component_type: AllocationComponent
    penalty_amount: Decimal
    interest_amount: Decimal
    principal_amount: Decimal
    days_overdue: int

    model_config = {"from_attributes": True}


class PaymentResponse(BaseModel):
    id: int
    client_id: int
    amount: Decimal
    applied_amount: Decimal
    unapplied_amount: Decimal
    method: PaymentMethod
    status: PaymentStatus
    external_reference: Optional[str] = None
    payment_date: date
    allocations: list[AllocationResponse] = []

    model_config = {"from_attributes": True}


@router.post("/payments/confirm", response_model=PaymentResponse)
async def confirm_payment(
    data: PaymentConfirm,
    response: Response,
    tenant: Tenant = Depends(get_current_tenant),
    db: AsyncSession = Depends(get_db),
):
    """Allocate a gateway-confirmed payment across the client's installments.

    A repeated ``external_reference`` returns the original payment (200).
    """
    try:
        try:
            penalty_rate = tenants.penalty_rate_for(tenant)
            result = await run_in_transaction(db, lambda s: allocation.confirm_payment(
                s,
                tenant_id=tenant.id,
                client_id=data.client_id,
                amount=data.amount,
                method=data.method,
                as_of=data.payment_date or today(),
                daily_penalty_rate=penalty_rate,
                external_reference=data.external_reference,
                reject_overpayment=settings.reject_overpayment,
            ))
            response.status_code = 201 if result.created else 200
            return result.payment
        except TallyError as e:
            raise http_error(e)
    except HTTPException:
        raise
    except Exception as e:
        await log_error(e, db=db, module="api.payments", function_name="confirm_payment", tenant_id=tenant.id)
        raise


@router.get("/payments", response_model=list[PaymentResponse])
async def list_payments(
    client_id: int,
    tenant: Tenant = Depends(get_current_tenant),
    db: AsyncSession = Depends(get_db),
):
    try:
        return await allocation.list_payments(db, tenant.id, client_id)
    except HTTPException:
        raise
    except Exception as e:
        await log_error(e, db=db, module="api.payments", function_name="list_payments", tenant_id=tenant.id)
        raise


@router.get("/payments/{payment_id}", response_model=PaymentResponse)
async def get_payment(
    payment_id: int,
    tenant: Tenant = Depends(get_current_tenant),
    db: AsyncSession = Depends(get_db),
):
    try:
        try:
            return await allocation.get_payment(db, tenant.id, payment_id)
        except TallyError as e:
            raise http_error(e)
    except HTTPException:
        raise
    except Exception as e:
        await log_error(e, db=db, module="api.payments", function_name="get_payment", tenant_id=tenant.id)
        raise
