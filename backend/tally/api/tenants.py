"""Tenant onboarding endpoints."""

import logging
from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from tally.database import get_db, run_in_transaction
from tally.models.tenant import Tenant
from tally.services import tenants
from tally.services.error_logger import log_error
from tally.services.errors import TallyError, http_error
from tally.tenant_utils import get_current_tenant

logger = logging.getLogger(__name__)
router = APIRouter()


class TenantCreateRequest(BaseModel):
    id: str = Field(min_length=1, max_length=64, pattern=r"^[a-z0-9][a-z0-9_-]*$")
    name: str = Field(min_length=1, max_length=200)
    financing_offers: Optional[dict[int, Decimal]] = None
    daily_penalty_rate: Optional[Decimal] = None


class TenantResponse(BaseModel):
    id: str
    name: str
    financing_offers: dict[int, Decimal]
    daily_penalty_rate: Decimal


def _to_response(tenant: Tenant) -> TenantResponse:
    return TenantResponse(
        id=tenant.id,
        name=tenant.name,
        financing_offers=tenants.financing_offers_for(tenant),
        daily_penalty_rate=tenants.penalty_rate_for(tenant),
    )


@router.post("", response_model=TenantResponse, status_code=201)
async def create_tenant(
    data: TenantCreateRequest,
    db: AsyncSession = Depends(get_db),
):
    try:
        try:
            tenant = await run_in_transaction(db, lambda s: tenants.create_tenant(
                s,
                tenant_id=data.id,
                name=data.name,
                financing_offers=data.financing_offers,
                daily_penalty_rate=data.daily_penalty_rate,
            ))
            return _to_response(tenant)
        except TallyError as e:
            raise http_error(e)
    except HTTPException:
        raise
    except Exception as e:
        await log_error(e, db=db, module="api.tenants", function_name="create_tenant")
        raise


@router.get("/{tenant_id}", response_model=TenantResponse)
async def get_tenant(tenant: Tenant = Depends(get_current_tenant)):
    return _to_response(tenant)
