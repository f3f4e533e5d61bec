"""Clients and suppliers: registration, lookup and account movements."""

import logging
from datetime import date
from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from tally.config import settings
from tally.database import get_db, run_in_transaction
from tally.models.party import MovementSide, PartyRole
from tally.models.tenant import Tenant
from tally.services import third_parties
from tally.services.error_logger import log_error
from tally.services.errors import TallyError, http_error
from tally.tenant_utils import get_current_tenant

logger = logging.getLogger(__name__)
router = APIRouter()


class ThirdPartyCreate(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    document_id: str = Field(min_length=1, max_length=30)
    role: PartyRole
    email: Optional[str] = None
    phone: Optional[str] = None
    credit_limit: Optional[Decimal] = None


class ThirdPartyResponse(BaseModel):
    id: int
    name: str
    document_id: str
    role: PartyRole
    email: Optional[str] = None
    phone: Optional[str] = None
    balance_as_client: Decimal
    balance_as_supplier: Decimal
    credit_limit: Decimal
    credit_used: Decimal
    credit_available: Decimal

    model_config = {"from_attributes": True}


class MovementResponse(BaseModel):
    id: int
    movement_date: date
    side: MovementSide
    amount: Decimal
    balance_after: Decimal
    journal_entry_id: Optional[int] = None
    description: Optional[str] = None

    model_config = {"from_attributes": True}


@router.post("/third-parties", response_model=ThirdPartyResponse, status_code=201)
async def create_third_party(
    data: ThirdPartyCreate,
    tenant: Tenant = Depends(get_current_tenant),
    db: AsyncSession = Depends(get_db),
):
    try:
        try:
            credit_limit = data.credit_limit
            if credit_limit is None and data.role in (PartyRole.CLIENT, PartyRole.BOTH):
                credit_limit = settings.default_credit_limit
            return await run_in_transaction(db, lambda s: third_parties.create_third_party(
                s,
                tenant_id=tenant.id,
                name=data.name,
                document_id=data.document_id,
                role=data.role,
                email=data.email,
                phone=data.phone,
                credit_limit=credit_limit,
            ))
        except TallyError as e:
            raise http_error(e)
    except HTTPException:
        raise
    except Exception as e:
        await log_error(e, db=db, module="api.third_parties", function_name="create_third_party", tenant_id=tenant.id)
        raise


@router.get("/third-parties", response_model=list[ThirdPartyResponse])
async def list_third_parties(
    role: Optional[PartyRole] = None,
    search: Optional[str] = None,
    tenant: Tenant = Depends(get_current_tenant),
    db: AsyncSession = Depends(get_db),
):
    try:
        return await third_parties.list_third_parties(db, tenant.id, role=role, search=search)
    except HTTPException:
        raise
    except Exception as e:
        await log_error(e, db=db, module="api.third_parties", function_name="list_third_parties", tenant_id=tenant.id)
        raise


@router.get("/third-parties/{party_id}", response_model=ThirdPartyResponse)
async def get_third_party(
    party_id: int,
    tenant: Tenant = Depends(get_current_tenant),
    db: AsyncSession = Depends(get_db),
):
    try:
        try:
            return await third_parties.get_third_party(db, tenant.id, party_id)
        except TallyError as e:
            raise http_error(e)
    except HTTPException:
        raise
    except Exception as e:
        await log_error(e, db=db, module="api.third_parties", function_name="get_third_party", tenant_id=tenant.id)
        raise


@router.get("/third-parties/{party_id}/movements", response_model=list[MovementResponse])
async def list_movements(
    party_id: int,
    tenant: Tenant = Depends(get_current_tenant),
    db: AsyncSession = Depends(get_db),
):
    try:
        try:
            party = await third_parties.get_third_party(db, tenant.id, party_id)
            return await third_parties.list_movements(db, tenant.id, party.id)
        except TallyError as e:
            raise http_error(e)
    except HTTPException:
        raise
    except Exception as e:
        await log_error(e, db=db, module="api.third_parties", function_name="list_movements", tenant_id=tenant.id)
        raise
