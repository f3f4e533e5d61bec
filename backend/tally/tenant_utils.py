"""Tenant resolution for tenant-scoped routes."""

from datetime import date, datetime, timezone

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from tally.database import get_db
from tally.models.tenant import Tenant
from tally.services import tenants
from tally.services.errors import TallyError, http_error


async def get_current_tenant(
    tenant_id: str,
    db: AsyncSession = Depends(get_db),
) -> Tenant:
    """Resolve the ``{tenant_id}`` path segment; 404 for unknown tenants.

    The tenant is detached from the request session: a rollback inside
    ``run_in_transaction`` expires attached rows, and handlers keep reading
    the tenant between attempts and in their error paths.
    """
    try:
        tenant = await tenants.get_tenant(db, tenant_id)
    except TallyError as e:
        raise http_error(e)
    db.expunge(tenant)
    return tenant


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def today() -> date:
    """Business date used when a request does not supply one."""
    return utc_now().date()
