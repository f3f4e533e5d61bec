"""Client balance and aging: read-only, recomputed on every request."""

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Any, Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from tally.models.credit import Credit, CreditStatus, Installment, InstallmentStatus, UNPAID_STATUSES
from tally.models.party import MovementSide
from tally.services import third_parties

UPCOMING_LIMIT = 3


@dataclass
class ClientBalance:
    total_outstanding: Decimal
    overdue_count: int
    next_installments: list = field(default_factory=list)


def effective_status(inst: Any, as_of: date) -> InstallmentStatus:
    """Overdue is derived from the due date, never persisted."""
    if inst.status == InstallmentStatus.PENDING and inst.due_date < as_of:
        return InstallmentStatus.OVERDUE
    return inst.status


def calculate_client_balance(
    installments: Sequence[Any], *, as_of: date, upcoming: int = UPCOMING_LIMIT
) -> ClientBalance:
    unpaid = sorted(
        (i for i in installments if i.status in UNPAID_STATUSES),
        key=lambda i: i.due_date,
    )
    total = sum((Decimal(str(i.remaining_balance)) for i in unpaid), Decimal("0.00"))
    overdue = sum(1 for i in unpaid if i.due_date < as_of)
    return ClientBalance(
        total_outstanding=total,
        overdue_count=overdue,
        next_installments=unpaid[:upcoming],
    )


async def get_client_balance(
    db: AsyncSession, tenant_id: str, client_id: int, *, as_of: date
) -> dict:
    client = await third_parties.get_third_party(
        db, tenant_id, client_id, side=MovementSide.CLIENT
    )
    result = await db.execute(
        select(Installment)
        .join(Credit, Installment.credit_id == Credit.id)
        .where(
            Installment.tenant_id == tenant_id,
            Installment.client_id == client.id,
            Installment.status != InstallmentStatus.PAID,
            Credit.status != CreditStatus.CANCELLED,
        )
        .order_by(Installment.due_date, Installment.id)
    )
    summary = calculate_client_balance(result.scalars().all(), as_of=as_of)
    return {
        "client_id": client.id,
        "client_name": client.name,
        "total": summary.total_outstanding,
        "overdue_count": summary.overdue_count,
        "credit_limit": Decimal(str(client.credit_limit)),
        "credit_used": Decimal(str(client.credit_used)),
        "credit_available": client.credit_available,
        "next_installments": [
            {
                "installment_id": i.id,
                "credit_id": i.credit_id,
                "sequence": i.sequence,
                "due_date": i.due_date,
                "total_due": i.total_due,
                "remaining_balance": i.remaining_balance,
                "status": effective_status(i, as_of).value,
            }
            for i in summary.next_installments
        ],
    }
