"""Credit lifecycle: grant from an order, status transitions, aging review."""

import logging
from datetime import date
from decimal import Decimal
from typing import Iterable, Mapping

from sqlalchemy import select, func as sa_func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from tally.models.credit import (
    Credit,
    CreditStatus,
    Installment,
    InstallmentStatus,
    UNPAID_STATUSES,
)
from tally.models.party import MovementSide
from tally.services import third_parties
from tally.services.credit.amortization import build_schedule, money
from tally.services.errors import InvalidAmount, InvalidStateTransition, NotFound

logger = logging.getLogger(__name__)

ALLOWED_TRANSITIONS: dict[CreditStatus, set[CreditStatus]] = {
    CreditStatus.ACTIVE: {CreditStatus.PAID, CreditStatus.DEFAULTED, CreditStatus.CANCELLED},
    # a defaulted credit can still be recovered in full
    CreditStatus.DEFAULTED: {CreditStatus.PAID},
    CreditStatus.PAID: set(),
    CreditStatus.CANCELLED: set(),
}


def check_transition(current: CreditStatus, target: CreditStatus) -> None:
    if target not in ALLOWED_TRANSITIONS[current]:
        raise InvalidStateTransition(
            f"Cannot move credit from {current.value} to {target.value}"
        )


def is_aged_for_default(
    installments: Iterable[Installment], *, as_of: date, threshold_days: int
) -> bool:
    """True when any unpaid installment is at least *threshold_days* overdue."""
    return any(
        inst.status in UNPAID_STATUSES and (as_of - inst.due_date).days >= threshold_days
        for inst in installments
    )


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

async def create_credit(
    db: AsyncSession,
    *,
    tenant_id: str,
    client_id: int,
    amount: Decimal,
    down_payment: Decimal,
    installment_count: int,
    grant_date: date,
    offers: Mapping[int, Decimal],
    monthly_rate: Decimal | None = None,
    start_date: date | None = None,
    order_reference: str | None = None,
) -> Credit:
    """Grant a credit for an order and persist its installment schedule.

    The monthly rate is taken from *offers* for the requested installment
    count unless one is given explicitly.  The client's credit line is
    charged with the financed amount in the same unit of work.
    """
    amount = money(amount)
    down_payment = money(down_payment or 0)
    if amount <= 0:
        raise InvalidAmount(f"Amount must be positive, got {amount}")
    if down_payment < 0 or down_payment >= amount:
        raise InvalidAmount("Down payment must be >= 0 and less than the amount")

    if monthly_rate is None:
        if installment_count not in offers:
            raise InvalidAmount(
                f"No financing offer for {installment_count} installments; "
                f"offered terms are {sorted(offers)}"
            )
        monthly_rate = Decimal(str(offers[installment_count]))

    financed = amount - down_payment
    client = await third_parties.get_third_party(
        db, tenant_id, client_id, side=MovementSide.CLIENT
    )
    if financed > client.credit_available:
        raise InvalidAmount(
            f"Financed amount {financed} exceeds available credit {client.credit_available}"
        )

    plan = build_schedule(financed, monthly_rate, installment_count, start_date or grant_date)

    credit = Credit(
        tenant_id=tenant_id,
        client_id=client.id,
        order_reference=order_reference,
        original_amount=amount,
        down_payment=down_payment,
        financed_amount=financed,
        monthly_rate=plan.monthly_rate,
        installment_count=installment_count,
        installment_value=plan.installment_value,
        total_payable=plan.total_payable,
        remaining_principal=financed,
        status=CreditStatus.ACTIVE,
        grant_date=grant_date,
        first_due_date=plan.schedule[0].due_date,
    )
    for row in plan.schedule:
        credit.installments.append(Installment(
            tenant_id=tenant_id,
            client_id=client.id,
            sequence=row.sequence,
            due_date=row.due_date,
            principal_portion=row.principal,
            interest_portion=row.interest,
            total_due=row.total_due,
            amount_paid=Decimal("0.00"),
            penalty_paid=Decimal("0.00"),
            remaining_balance=row.total_due,
            status=InstallmentStatus.PENDING,
        ))

    client.credit_used = Decimal(str(client.credit_used)) + financed

    db.add(credit)
    await db.flush()
    logger.info(
        "Granted credit %s/%s to client %s: financed=%s x%s @ %s",
        tenant_id, credit.id, client.id, financed, installment_count, monthly_rate,
    )
    return credit


async def get_credit(db: AsyncSession, tenant_id: str, credit_id: int) -> Credit:
    result = await db.execute(
        select(Credit)
        .where(Credit.id == credit_id, Credit.tenant_id == tenant_id)
        .options(selectinload(Credit.installments))
    )
    credit = result.scalar_one_or_none()
    if credit is None:
        raise NotFound(f"Credit {credit_id} not found")
    return credit


async def list_credits(
    db: AsyncSession,
    tenant_id: str,
    *,
    client_id: int | None = None,
    status: CreditStatus | None = None,
) -> list[Credit]:
    q = (
        select(Credit)
        .where(Credit.tenant_id == tenant_id)
        .options(selectinload(Credit.installments))
    )
    if client_id:
        q = q.where(Credit.client_id == client_id)
    if status:
        q = q.where(Credit.status == status)
    result = await db.execute(q.order_by(Credit.grant_date.desc(), Credit.id.desc()))
    return list(result.scalars().all())


async def _count_unpaid_installments(db: AsyncSession, credit_id: int) -> int:
    result = await db.execute(
        select(sa_func.count(Installment.id)).where(
            Installment.credit_id == credit_id,
            Installment.status != InstallmentStatus.PAID,
        )
    )
    return result.scalar() or 0


async def change_status(
    db: AsyncSession,
    tenant_id: str,
    credit_id: int,
    target: CreditStatus,
    *,
    reason: str | None = None,
) -> Credit:
    credit = await get_credit(db, tenant_id, credit_id)
    check_transition(credit.status, target)

    if target == CreditStatus.PAID and await _count_unpaid_installments(db, credit.id):
        raise InvalidStateTransition("Credit still has unpaid installments")

    if target == CreditStatus.CANCELLED:
        # Release what is left of the credit line
        client = await third_parties.get_third_party(db, tenant_id, credit.client_id)
        released = Decimal(str(credit.remaining_principal))
        client.credit_used = max(Decimal("0.00"), Decimal(str(client.credit_used)) - released)

    previous = credit.status
    credit.status = target
    credit.status_reason = reason
    await db.flush()
    logger.info(
        "Credit %s/%s %s -> %s (%s)", tenant_id, credit.id, previous.value, target.value, reason
    )
    return credit


async def settle_if_complete(db: AsyncSession, credit: Credit) -> bool:
    """Mark the credit paid once every installment is settled."""
    if credit.status not in (CreditStatus.ACTIVE, CreditStatus.DEFAULTED):
        return False
    if await _count_unpaid_installments(db, credit.id):
        return False
    credit.status = CreditStatus.PAID
    credit.remaining_principal = Decimal("0.00")
    logger.info("Credit %s/%s fully paid", credit.tenant_id, credit.id)
    return True


async def review_aging(
    db: AsyncSession,
    tenant_id: str,
    *,
    as_of: date,
    threshold_days: int,
) -> list[Credit]:
    """Default every active credit with an installment overdue past the threshold."""
    credits = await list_credits(db, tenant_id, status=CreditStatus.ACTIVE)
    defaulted = []
    for credit in credits:
        if is_aged_for_default(credit.installments, as_of=as_of, threshold_days=threshold_days):
            credit.status = CreditStatus.DEFAULTED
            credit.status_reason = f"Aging review {as_of.isoformat()}: over {threshold_days} days overdue"
            defaulted.append(credit)
    if defaulted:
        await db.flush()
        logger.warning(
            "Aging review for %s defaulted %s credit(s): %s",
            tenant_id, len(defaulted), [c.id for c in defaulted],
        )
    return defaulted
