"""French (constant-payment) amortization.

PMT = P * [i(1+i)^n] / [(1+i)^n - 1], or P / n when i == 0.

Every monetary figure is rounded half-up to the cent as it is produced:
the installment value first, then each period's interest and principal.
Rounding drift on principal is absorbed by the last installment so the
schedule amortizes exactly the financed amount.
"""

import logging
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal, ROUND_HALF_UP
from typing import Mapping

from dateutil.relativedelta import relativedelta

from tally.services.errors import InvalidAmount

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")
ZERO = Decimal("0.00")


def money(value) -> Decimal:
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)


@dataclass
class ScheduleRow:
    sequence: int
    due_date: date
    principal: Decimal
    interest: Decimal
    total_due: Decimal
    balance_after: Decimal


@dataclass
class Amortization:
    principal: Decimal
    monthly_rate: Decimal
    installment_count: int
    installment_value: Decimal
    total_payable: Decimal
    total_interest: Decimal
    total_cost_percent: Decimal
    schedule: list[ScheduleRow] = field(default_factory=list)


@dataclass
class FinancingOption:
    installments: int
    monthly_rate: Decimal
    installment_value: Decimal
    total_payable: Decimal
    total_interest: Decimal
    total_cost_percent: Decimal


def _validate(principal: Decimal, monthly_rate: Decimal, installment_count: int) -> None:
    if principal <= 0:
        raise InvalidAmount(f"Principal must be positive, got {principal}")
    if monthly_rate < 0:
        raise InvalidAmount(f"Monthly rate must be >= 0, got {monthly_rate}")
    if installment_count < 1:
        raise InvalidAmount(f"Installment count must be >= 1, got {installment_count}")


def installment_value(principal, monthly_rate, installment_count: int) -> Decimal:
    """Constant installment for the given terms, rounded to the cent."""
    p = Decimal(str(principal))
    i = Decimal(str(monthly_rate))
    _validate(p, i, installment_count)

    if i == 0:
        return money(p / installment_count)
    factor = (1 + i) ** installment_count
    return money(p * (i * factor) / (factor - 1))


def _summary(principal: Decimal, installment: Decimal, n: int) -> tuple[Decimal, Decimal, Decimal]:
    total_payable = money(installment * n)
    total_interest = total_payable - principal
    cost_percent = money((total_payable / principal - 1) * 100)
    return total_payable, total_interest, cost_percent


def build_schedule(
    principal, monthly_rate, installment_count: int, start_date: date
) -> Amortization:
    """Full amortization table; installment ``k`` falls due ``k`` months after *start_date*.

    The last row absorbs the principal rounding remainder, so the schedule's
    ``total_due`` can differ by a few cents from ``total_payable``, which is
    quoted as installment value times count.
    """
    p = money(principal)
    i = Decimal(str(monthly_rate))
    installment = installment_value(p, i, installment_count)

    rows: list[ScheduleRow] = []
    balance = p
    for k in range(1, installment_count + 1):
        interest = money(balance * i)
        principal_k = money(installment - interest)
        balance -= principal_k
        rows.append(ScheduleRow(
            sequence=k,
            due_date=start_date + relativedelta(months=k),
            principal=principal_k,
            interest=interest,
            total_due=principal_k + interest,
            balance_after=balance,
        ))

    remainder = p - sum((r.principal for r in rows), ZERO)
    if remainder != 0:
        last = rows[-1]
        last.principal += remainder
        last.total_due = last.principal + last.interest
        last.balance_after = ZERO
        logger.debug("Absorbed rounding remainder %s into installment %s", remainder, last.sequence)

    total_payable, total_interest, cost_percent = _summary(p, installment, installment_count)
    return Amortization(
        principal=p,
        monthly_rate=i,
        installment_count=installment_count,
        installment_value=installment,
        total_payable=total_payable,
        total_interest=total_interest,
        total_cost_percent=cost_percent,
        schedule=rows,
    )


def financing_options(
    amount, down_payment, offers: Mapping[int, Decimal]
) -> list[FinancingOption]:
    """Evaluate every offered (term, monthly rate) independently for one purchase."""
    total = Decimal(str(amount))
    down = Decimal(str(down_payment or 0))
    if total <= 0:
        raise InvalidAmount(f"Amount must be positive, got {amount}")
    if down < 0 or down >= total:
        raise InvalidAmount("Down payment must be >= 0 and less than the amount")

    financed = money(total - down)
    options = []
    for term in sorted(offers):
        rate = Decimal(str(offers[term]))
        installment = installment_value(financed, rate, term)
        total_payable, total_interest, cost_percent = _summary(financed, installment, term)
        options.append(FinancingOption(
            installments=term,
            monthly_rate=rate,
            installment_value=installment,
            total_payable=total_payable,
            total_interest=total_interest,
            total_cost_percent=cost_percent,
        ))
    return options
