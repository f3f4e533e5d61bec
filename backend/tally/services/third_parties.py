"""Third-party registry (clients and suppliers) and their running balances."""

import logging
from datetime import date
from decimal import Decimal

from sqlalchemy import select, or_
from sqlalchemy.ext.asyncio import AsyncSession

from tally.models.party import MovementSide, PartyRole, ThirdParty, ThirdPartyMovement
from tally.services.errors import AlreadyExists, InvalidAmount, NotFound

logger = logging.getLogger(__name__)

_ROLE_LABELS = {
    MovementSide.CLIENT: "client",
    MovementSide.SUPPLIER: "supplier",
}


async def create_third_party(
    db: AsyncSession,
    *,
    tenant_id: str,
    name: str,
    document_id: str,
    role: PartyRole,
    email: str | None = None,
    phone: str | None = None,
    credit_limit: Decimal | None = None,
) -> ThirdParty:
    if not name.strip() or not document_id.strip():
        raise InvalidAmount("name and document_id are required")
    if credit_limit is not None and credit_limit < 0:
        raise InvalidAmount("credit_limit must be >= 0")

    existing = await db.execute(
        select(ThirdParty.id).where(
            ThirdParty.tenant_id == tenant_id, ThirdParty.document_id == document_id
        )
    )
    if existing.scalar_one_or_none() is not None:
        raise AlreadyExists(f"A third party with document {document_id} already exists")

    party = ThirdParty(
        tenant_id=tenant_id,
        name=name.strip(),
        document_id=document_id.strip(),
        role=role,
        email=email,
        phone=phone,
        balance_as_client=Decimal("0.00"),
        balance_as_supplier=Decimal("0.00"),
        credit_limit=credit_limit if credit_limit is not None else Decimal("0.00"),
        credit_used=Decimal("0.00"),
    )
    db.add(party)
    await db.flush()
    logger.info("Created third party %s/%s (%s)", tenant_id, party.id, role.value)
    return party


async def get_third_party(
    db: AsyncSession,
    tenant_id: str,
    party_id: int,
    *,
    side: MovementSide | None = None,
) -> ThirdParty:
    """Load a third party, optionally requiring it to act in ``side``'s role."""
    result = await db.execute(
        select(ThirdParty).where(ThirdParty.id == party_id, ThirdParty.tenant_id == tenant_id)
    )
    party = result.scalar_one_or_none()
    if party is None:
        raise NotFound(f"Third party {party_id} not found")
    if side == MovementSide.CLIENT and not party.is_client:
        raise NotFound(f"Client {party_id} not found")
    if side == MovementSide.SUPPLIER and not party.is_supplier:
        raise NotFound(f"Supplier {party_id} not found")
    return party


async def list_third_parties(
    db: AsyncSession,
    tenant_id: str,
    *,
    role: PartyRole | None = None,
    search: str | None = None,
) -> list[ThirdParty]:
    q = select(ThirdParty).where(ThirdParty.tenant_id == tenant_id)
    if role == PartyRole.CLIENT:
        q = q.where(ThirdParty.role.in_([PartyRole.CLIENT, PartyRole.BOTH]))
    elif role == PartyRole.SUPPLIER:
        q = q.where(ThirdParty.role.in_([PartyRole.SUPPLIER, PartyRole.BOTH]))
    elif role == PartyRole.BOTH:
        q = q.where(ThirdParty.role == PartyRole.BOTH)
    if search:
        q = q.where(or_(
            ThirdParty.name.ilike(f"%{search}%"),
            ThirdParty.document_id.ilike(f"%{search}%"),
        ))
    result = await db.execute(q.order_by(ThirdParty.name))
    return list(result.scalars().all())


async def record_movement(
    db: AsyncSession,
    party: ThirdParty,
    *,
    side: MovementSide,
    amount: Decimal,
    movement_date: date,
    journal_entry_id: int | None = None,
    description: str | None = None,
) -> ThirdPartyMovement:
    """Apply a signed delta to one of the party's running balances.

    Positive amounts increase what the party owes us (client side) or what
    we owe them (supplier side).
    """
    if side == MovementSide.CLIENT:
        party.balance_as_client = Decimal(str(party.balance_as_client)) + amount
        balance_after = party.balance_as_client
    else:
        party.balance_as_supplier = Decimal(str(party.balance_as_supplier)) + amount
        balance_after = party.balance_as_supplier

    movement = ThirdPartyMovement(
        tenant_id=party.tenant_id,
        third_party_id=party.id,
        journal_entry_id=journal_entry_id,
        movement_date=movement_date,
        side=side,
        amount=amount,
        balance_after=balance_after,
        description=description,
    )
    db.add(movement)
    await db.flush()
    logger.info(
        "Third party %s %s balance %+.2f -> %s",
        party.id, _ROLE_LABELS[side], amount, balance_after,
    )
    return movement


async def list_movements(
    db: AsyncSession, tenant_id: str, party_id: int
) -> list[ThirdPartyMovement]:
    result = await db.execute(
        select(ThirdPartyMovement)
        .where(
            ThirdPartyMovement.tenant_id == tenant_id,
            ThirdPartyMovement.third_party_id == party_id,
        )
        .order_by(ThirdPartyMovement.id)
    )
    return list(result.scalars().all())


async def movements_for_entry(
    db: AsyncSession, journal_entry_id: int
) -> list[ThirdPartyMovement]:
    result = await db.execute(
        select(ThirdPartyMovement)
        .where(ThirdPartyMovement.journal_entry_id == journal_entry_id)
        .order_by(ThirdPartyMovement.id)
    )
    return list(result.scalars().all())
