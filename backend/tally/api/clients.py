"""Client balance and the magic-link client portal."""

import logging
from datetime import date
from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from pydantic import BaseModel, Field
from slowapi import Limiter
from slowapi.util import get_remote_address
from sqlalchemy.ext.asyncio import AsyncSession

from tally.config import settings
from tally.database import get_db, run_in_transaction
from tally.models.tenant import Tenant
from tally.services import portal_access
from tally.services.credit import balance
from tally.services.error_logger import log_error
from tally.services.errors import TallyError, http_error
from tally.tenant_utils import get_current_tenant, today, utc_now

logger = logging.getLogger(__name__)
router = APIRouter()
limiter = Limiter(key_func=get_remote_address)

_ACCESS_LINK_MESSAGE = "If the document is registered, an access link has been sent"


class UpcomingInstallment(BaseModel):
    installment_id: int
    credit_id: int
    sequence: int
    due_date: date
    total_due: Decimal
    remaining_balance: Decimal
    status: str


class ClientBalanceResponse(BaseModel):
    client_id: int
    client_name: str
    total: Decimal
    overdue_count: int
    credit_limit: Decimal
    credit_used: Decimal
    credit_available: Decimal
    next_installments: list[UpcomingInstallment]


class AccessLinkRequest(BaseModel):
    document_id: str = Field(min_length=1, max_length=30)


class AccessLinkResponse(BaseModel):
    message: str
    # Development only; no notifier delivers the link
    portal_url: Optional[str] = None


@router.get("/clients/{client_id}/balance", response_model=ClientBalanceResponse)
async def client_balance(
    client_id: int,
    as_of: Optional[date] = None,
    tenant: Tenant = Depends(get_current_tenant),
    db: AsyncSession = Depends(get_db),
):
    try:
        try:
            return await balance.get_client_balance(
                db, tenant.id, client_id, as_of=as_of or today()
            )
        except TallyError as e:
            raise http_error(e)
    except HTTPException:
        raise
    except Exception as e:
        await log_error(e, db=db, module="api.clients", function_name="client_balance", tenant_id=tenant.id)
        raise


@router.post("/clients/access-link", response_model=AccessLinkResponse)
@limiter.limit("5/minute")
async def request_access_link(
    data: AccessLinkRequest,
    request: Request,
    tenant: Tenant = Depends(get_current_tenant),
    db: AsyncSession = Depends(get_db),
):
    """Issue a portal token; the response is the same for unknown documents."""
    try:
        now = utc_now()
        token = await run_in_transaction(db, lambda s: portal_access.request_access_link(
            s, tenant.id, data.document_id, now=now, hours=settings.portal_token_hours
        ))
        portal_url = None
        if token:
            link = f"{settings.portal_base_url}/{tenant.id}?token={token}"
            if settings.environment == "development":
                logger.info("Portal link for tenant %s: %s", tenant.id, link)
                portal_url = link
        return AccessLinkResponse(message=_ACCESS_LINK_MESSAGE, portal_url=portal_url)
    except HTTPException:
        raise
    except Exception as e:
        await log_error(e, db=db, module="api.clients", function_name="request_access_link", tenant_id=tenant.id)
        raise


@router.get("/portal", response_model=ClientBalanceResponse)
async def portal_balance(
    token: str = Query(..., min_length=1),
    tenant: Tenant = Depends(get_current_tenant),
    db: AsyncSession = Depends(get_db),
):
    """Balance view for the client holding a valid access token."""
    try:
        try:
            now = utc_now()
            client = await portal_access.resolve_portal_client(db, tenant.id, token, now=now)
            return await balance.get_client_balance(db, tenant.id, client.id, as_of=now.date())
        except TallyError as e:
            raise http_error(e)
    except HTTPException:
        raise
    except Exception as e:
        await log_error(e, db=db, module="api.clients", function_name="portal_balance", tenant_id=tenant.id)
        raise
