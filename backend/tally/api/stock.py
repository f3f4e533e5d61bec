"""Merchandise intake endpoints."""

import logging
from datetime import date
from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from tally.config import settings
from tally.database import get_db, run_in_transaction
from tally.models.tenant import Tenant
from tally.services import stock
from tally.services.error_logger import log_error
from tally.services.errors import TallyError, http_error
from tally.tenant_utils import get_current_tenant

logger = logging.getLogger(__name__)
router = APIRouter()


class IntakeItemRequest(BaseModel):
    product_id: int
    quantity: Decimal = Field(gt=0)
    unit_cost: Decimal = Field(ge=0)


class MerchandiseIntakeRequest(BaseModel):
    operation_id: str = Field(min_length=1, max_length=100)
    supplier_id: int
    invoice_number: str = Field(min_length=1, max_length=40)
    invoice_date: date
    items: list[IntakeItemRequest] = Field(min_length=1)
    tax_rate: Optional[Decimal] = Field(default=None, ge=0)
    notes: Optional[str] = None


class InvoiceItemResponse(BaseModel):
    product_id: int
    quantity: Decimal
    unit_cost: Decimal
    line_total: Decimal

    model_config = {"from_attributes": True}


class PurchaseInvoiceResponse(BaseModel):
    id: int
    supplier_id: int
    invoice_number: str
    invoice_date: date
    subtotal: Decimal
    tax_amount: Decimal
    total: Decimal
    notes: Optional[str] = None
    journal_entry_id: Optional[int] = None
    items: list[InvoiceItemResponse] = []

    model_config = {"from_attributes": True}


@router.post("/merchandise-intakes", response_model=PurchaseInvoiceResponse, status_code=201)
async def register_merchandise_intake(
    data: MerchandiseIntakeRequest,
    tenant: Tenant = Depends(get_current_tenant),
    db: AsyncSession = Depends(get_db),
):
    """Register a supplier invoice: stock in, ledger entry and supplier balance."""
    try:
        try:
            items = [
                stock.IntakeItem(product_id=i.product_id, quantity=i.quantity, unit_cost=i.unit_cost)
                for i in data.items
            ]
            tax_rate = data.tax_rate if data.tax_rate is not None else settings.purchase_tax_rate
            return await run_in_transaction(db, lambda s: stock.register_merchandise_intake(
                s,
                tenant_id=tenant.id,
                operation_id=data.operation_id,
                supplier_id=data.supplier_id,
                invoice_number=data.invoice_number,
                invoice_date=data.invoice_date,
                items=items,
                tax_rate=tax_rate,
                notes=data.notes,
            ))
        except TallyError as e:
            raise http_error(e)
    except HTTPException:
        raise
    except Exception as e:
        await log_error(e, db=db, module="api.stock", function_name="register_merchandise_intake", tenant_id=tenant.id)
        raise


@router.get("/merchandise-intakes/{invoice_id}", response_model=PurchaseInvoiceResponse)
async def get_merchandise_intake(
    invoice_id: int,
    tenant: Tenant = Depends(get_current_tenant),
    db: AsyncSession = Depends(get_db),
):
    try:
        try:
            return await stock.get_invoice(db, tenant.id, invoice_id)
        except TallyError as e:
            raise http_error(e)
    except HTTPException:
        raise
    except Exception as e:
        await log_error(e, db=db, module="api.stock", function_name="get_merchandise_intake", tenant_id=tenant.id)
        raise
