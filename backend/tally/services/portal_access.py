"""Magic-link access for the client self-service portal.

Only the SHA-256 hash of an issued token is stored.  Validity is always
checked against an explicit ``now`` supplied by the caller.
"""

import hashlib
import logging
import secrets
from datetime import datetime, timedelta

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from tally.models.party import PartyRole, ThirdParty
from tally.services.errors import ExpiredOrInvalidToken

logger = logging.getLogger(__name__)

TOKEN_BYTES = 32


def hash_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def token_is_valid(expires_at: datetime | None, now: datetime) -> bool:
    return expires_at is not None and now < expires_at


def issue_access_token(party: ThirdParty, *, now: datetime, hours: int) -> str:
    """Generate a fresh token for *party*; any previous link stops working."""
    token = secrets.token_urlsafe(TOKEN_BYTES)
    party.access_token_hash = hash_token(token)
    party.token_expires_at = now + timedelta(hours=hours)
    return token


async def request_access_link(
    db: AsyncSession,
    tenant_id: str,
    document_id: str,
    *,
    now: datetime,
    hours: int,
) -> str | None:
    """Issue a token for the client with *document_id*.

    Returns ``None`` for unknown documents; callers respond identically
    either way so the endpoint does not reveal which clients exist.
    """
    result = await db.execute(
        select(ThirdParty).where(
            ThirdParty.tenant_id == tenant_id,
            ThirdParty.document_id == document_id,
            ThirdParty.role.in_([PartyRole.CLIENT, PartyRole.BOTH]),
        )
    )
    party = result.scalar_one_or_none()
    if party is None:
        logger.info("Access link requested for unknown document in tenant %s", tenant_id)
        return None

    token = issue_access_token(party, now=now, hours=hours)
    await db.flush()
    logger.info("Issued portal token for client %s/%s", tenant_id, party.id)
    return token


async def resolve_portal_client(
    db: AsyncSession, tenant_id: str, token: str, *, now: datetime
) -> ThirdParty:
    if not token:
        raise ExpiredOrInvalidToken("Access token is required")
    result = await db.execute(
        select(ThirdParty).where(
            ThirdParty.tenant_id == tenant_id,
            ThirdParty.access_token_hash == hash_token(token),
        )
    )
    party = result.scalar_one_or_none()
    if party is None or not token_is_valid(party.token_expires_at, now):
        raise ExpiredOrInvalidToken("The access link is invalid or has expired")
    return party
