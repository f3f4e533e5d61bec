"""Payment allocation engine (first-expired, first-out).

A confirmed payment is spread over the client's unpaid installments
across all of their credits, oldest due date first.  Overdue installments
accrue a penalty of ``remaining x daily_rate x days_overdue``; inside each
installment the funds settle penalty, then outstanding interest, then
principal.

Planning is a pure function of the installments, the amount and an
explicit ``as_of`` date.  Persistence applies the plan, writes the payment
with one allocation per installment touched, and updates the denormalized
credit figures in the same unit of work.  Installments are versioned, so a
concurrent payment touching the same installment fails at flush and the
unit of work is retried.
"""

import logging
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from tally.models.credit import (
    AllocationComponent,
    Credit,
    CreditStatus,
    Installment,
    InstallmentStatus,
    Payment,
    PaymentAllocation,
    PaymentMethod,
    PaymentStatus,
    UNPAID_STATUSES,
)
from tally.models.party import MovementSide
from tally.services import third_parties
from tally.services.credit import lifecycle
from tally.services.errors import InvalidAmount, NotFound, UnmappedCategory

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")
ZERO = Decimal("0.00")
TOLERANCE = Decimal("0.01")


def _money(value: Any) -> Decimal:
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)


# ---------------------------------------------------------------------------
# Pure helpers
# ---------------------------------------------------------------------------

def days_overdue(due_date: date, as_of: date) -> int:
    return max(0, (as_of - due_date).days)


def penalty_for(remaining: Decimal, daily_rate: Decimal, days: int) -> Decimal:
    if days <= 0 or remaining <= 0:
        return ZERO
    return _money(Decimal(str(remaining)) * Decimal(str(daily_rate)) * days)


def outstanding_interest(inst: Any) -> Decimal:
    """Interest not yet covered by earlier non-penalty payments."""
    paid_towards_balance = _money(inst.amount_paid) - _money(inst.penalty_paid)
    return max(ZERO, _money(inst.interest_portion) - max(ZERO, paid_towards_balance))


@dataclass
class InstallmentAllocation:
    installment: Any
    days_overdue: int
    penalty_due: Decimal
    applied: Decimal
    penalty: Decimal
    interest: Decimal
    principal: Decimal
    remaining_after: Decimal
    status_after: InstallmentStatus

    @property
    def component(self) -> AllocationComponent:
        if self.principal > 0:
            return AllocationComponent.PRINCIPAL
        if self.interest > 0:
            return AllocationComponent.INTEREST
        return AllocationComponent.PENALTY


@dataclass
class AllocationPlan:
    amount: Decimal
    allocations: list[InstallmentAllocation] = field(default_factory=list)
    unapplied: Decimal = ZERO

    @property
    def applied(self) -> Decimal:
        return sum((a.applied for a in self.allocations), ZERO)

    @property
    def principal_recovered(self) -> Decimal:
        return sum((a.principal for a in self.allocations), ZERO)


def plan_allocation(
    installments: Sequence[Any],
    amount: Decimal,
    *,
    as_of: date,
    daily_penalty_rate: Decimal,
) -> AllocationPlan:
    """Greedy oldest-due-first allocation of *amount*.

    ``sorted`` is stable, so installments sharing a due date keep their
    input order.  Installments are not modified.
    """
    funds = _money(amount)
    plan = AllocationPlan(amount=funds)
    eligible = [i for i in installments if i.status in UNPAID_STATUSES]

    for inst in sorted(eligible, key=lambda i: i.due_date):
        if funds < TOLERANCE:
            break
        remaining = _money(inst.remaining_balance)
        if remaining <= 0:
            continue

        days = days_overdue(inst.due_date, as_of)
        penalty_due = penalty_for(remaining, daily_penalty_rate, days)
        exigible = remaining + penalty_due
        applied = min(funds, exigible)

        penalty_part = min(applied, penalty_due)
        rest = applied - penalty_part
        interest_part = min(rest, outstanding_interest(inst))
        principal_part = rest - interest_part

        remaining_after = remaining - rest
        settled = remaining_after <= TOLERANCE
        plan.allocations.append(InstallmentAllocation(
            installment=inst,
            days_overdue=days,
            penalty_due=penalty_due,
            applied=applied,
            penalty=penalty_part,
            interest=interest_part,
            principal=principal_part,
            remaining_after=ZERO if settled else remaining_after,
            status_after=InstallmentStatus.PAID if settled else InstallmentStatus.PARTIAL,
        ))
        funds -= applied

    plan.unapplied = funds
    return plan


def apply_plan(plan: AllocationPlan, *, as_of: date) -> None:
    """Write the planned settlement onto each installment."""
    for alloc in plan.allocations:
        inst = alloc.installment
        inst.amount_paid = _money(inst.amount_paid) + alloc.applied
        inst.penalty_paid = _money(inst.penalty_paid) + alloc.penalty
        inst.remaining_balance = alloc.remaining_after
        inst.status = alloc.status_after
        if alloc.status_after == InstallmentStatus.PAID:
            inst.paid_at = as_of


# ---------------------------------------------------------------------------
# Persistence
# ---------------------------------------------------------------------------

@dataclass
class PaymentResult:
    payment: Payment
    created: bool


async def _find_payment_by_reference(
    db: AsyncSession, tenant_id: str, external_reference: str
) -> Payment | None:
    result = await db.execute(
        select(Payment)
        .where(Payment.tenant_id == tenant_id, Payment.external_reference == external_reference)
        .options(selectinload(Payment.allocations))
    )
    return result.scalar_one_or_none()


async def _load_eligible_installments(
    db: AsyncSession, tenant_id: str, client_id: int
) -> list[Installment]:
    result = await db.execute(
        select(Installment)
        .join(Credit, Installment.credit_id == Credit.id)
        .where(
            Installment.tenant_id == tenant_id,
            Installment.client_id == client_id,
            Installment.status.in_(UNPAID_STATUSES),
            Credit.status != CreditStatus.CANCELLED,
        )
        .order_by(Installment.due_date, Installment.id)
    )
    return list(result.scalars().all())


async def _load_credits(db: AsyncSession, credit_ids: set[int]) -> list[Credit]:
    result = await db.execute(select(Credit).where(Credit.id.in_(credit_ids)))
    return list(result.scalars().all())


async def get_payment(db: AsyncSession, tenant_id: str, payment_id: int) -> Payment:
    result = await db.execute(
        select(Payment)
        .where(Payment.id == payment_id, Payment.tenant_id == tenant_id)
        .options(selectinload(Payment.allocations))
    )
    payment = result.scalar_one_or_none()
    if payment is None:
        raise NotFound(f"Payment {payment_id} not found")
    return payment


async def list_payments(db: AsyncSession, tenant_id: str, client_id: int) -> list[Payment]:
    result = await db.execute(
        select(Payment)
        .where(Payment.tenant_id == tenant_id, Payment.client_id == client_id)
        .options(selectinload(Payment.allocations))
        .order_by(Payment.id.desc())
    )
    return list(result.scalars().all())


async def confirm_payment(
    db: AsyncSession,
    *,
    tenant_id: str,
    client_id: int,
    amount: Decimal,
    method: str,
    as_of: date,
    daily_penalty_rate: Decimal,
    external_reference: str | None = None,
    reject_overpayment: bool = False,
) -> PaymentResult:
    """Allocate a confirmed gateway payment across the client's installments.

    Funds left after every eligible installment is settled are kept on the
    payment as ``unapplied_amount`` for the caller to dispose of, unless
    *reject_overpayment* is set, in which case nothing is written.
    """
    if amount is None or _money(amount) <= 0:
        raise InvalidAmount(f"Payment amount must be positive, got {amount}")
    try:
        payment_method = PaymentMethod(method)
    except ValueError:
        raise UnmappedCategory(
            f"Unknown payment method '{method}'; expected one of {[m.value for m in PaymentMethod]}"
        )

    if external_reference:
        existing = await _find_payment_by_reference(db, tenant_id, external_reference)
        if existing is not None:
            logger.info(
                "Payment reference %s already confirmed as payment %s", external_reference, existing.id
            )
            return PaymentResult(payment=existing, created=False)

    client = await third_parties.get_third_party(
        db, tenant_id, client_id, side=MovementSide.CLIENT
    )
    installments = await _load_eligible_installments(db, tenant_id, client.id)
    plan = plan_allocation(
        installments, amount, as_of=as_of, daily_penalty_rate=daily_penalty_rate
    )

    if plan.unapplied > 0 and reject_overpayment:
        raise InvalidAmount(
            f"Payment of {plan.amount} exceeds the client's outstanding balance by {plan.unapplied}"
        )

    apply_plan(plan, as_of=as_of)

    payment = Payment(
        tenant_id=tenant_id,
        client_id=client.id,
        amount=plan.amount,
        applied_amount=plan.applied,
        unapplied_amount=plan.unapplied,
        method=payment_method,
        status=PaymentStatus.CONFIRMED,
        external_reference=external_reference,
        payment_date=as_of,
    )
    for alloc in plan.allocations:
        payment.allocations.append(PaymentAllocation(
            installment_id=alloc.installment.id,
            credit_id=alloc.installment.credit_id,
            applied_amount=alloc.applied,
            component_type=alloc.component,
            penalty_amount=alloc.penalty,
            interest_amount=alloc.interest,
            principal_amount=alloc.principal,
            days_overdue=alloc.days_overdue,
        ))
    db.add(payment)

    # Denormalized credit figures move with the principal recovered
    recovered = plan.principal_recovered
    client.credit_used = max(ZERO, _money(client.credit_used) - recovered)

    per_credit: dict[int, Decimal] = {}
    for alloc in plan.allocations:
        cid = alloc.installment.credit_id
        per_credit[cid] = per_credit.get(cid, ZERO) + alloc.principal

    await db.flush()

    if per_credit:
        for credit in await _load_credits(db, set(per_credit)):
            credit.remaining_principal = max(
                ZERO, _money(credit.remaining_principal) - per_credit[credit.id]
            )
            await lifecycle.settle_if_complete(db, credit)
        await db.flush()

    logger.info(
        "Payment %s for client %s: amount=%s applied=%s unapplied=%s across %s installment(s)",
        payment.id, client.id, plan.amount, plan.applied, plan.unapplied, len(plan.allocations),
    )
    if plan.unapplied > 0:
        logger.warning(
            "Payment %s left %s unapplied for client %s", payment.id, plan.unapplied, client.id
        )
    return PaymentResult(payment=payment, created=True)
