"""Operation posting: turns business operations into journal entries.

For each operation the posting service:

1. rejects non-positive amounts and duplicate operation ids,
2. resolves the debit/credit accounts through the chart resolver,
3. builds exactly the lines that operation type needs,
4. persists the entry and, in the same unit of work, the third-party and
   cash-account movements the operation causes.

The caller owns the transaction (see ``tally.database.run_in_transaction``).
"""

import logging
from dataclasses import dataclass
from datetime import date
from decimal import Decimal, ROUND_HALF_UP

from sqlalchemy.ext.asyncio import AsyncSession

from tally.models.gl import JournalEntry
from tally.models.party import MovementSide, ThirdParty
from tally.models.treasury import CashAccount
from tally.services import third_parties, treasury
from tally.services.errors import InvalidAccount, InvalidAmount, UnbalancedEntry
from tally.services.gl import chart_of_accounts, journal_engine
from tally.services.gl.journal_engine import LineDraft
from tally.services.gl.operations import (
    OPERATION_LABELS,
    MerchandiseIntake,
    Operation,
    OperationType,
    Transfer,
)

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")

# operation type -> (balance side touched, sign of the delta)
PARTY_EFFECTS: dict[OperationType, tuple[MovementSide, int]] = {
    OperationType.CREDIT_PURCHASE: (MovementSide.SUPPLIER, 1),
    OperationType.DEBT_PAYMENT: (MovementSide.SUPPLIER, -1),
    OperationType.MERCHANDISE_INTAKE: (MovementSide.SUPPLIER, 1),
    OperationType.SALE_ON_ACCOUNT: (MovementSide.CLIENT, 1),
    OperationType.CLIENT_COLLECTION: (MovementSide.CLIENT, -1),
}

# operation type -> sign of the delta on the named cash account
CASH_EFFECTS: dict[OperationType, int] = {
    OperationType.CASH_IN: 1,
    OperationType.EXPENSE_PAYMENT: -1,
    OperationType.DEBT_PAYMENT: -1,
    OperationType.CLIENT_COLLECTION: 1,
}


@dataclass
class PostingResult:
    entry: JournalEntry
    created: bool


def _money(value) -> Decimal:
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)


def _operation_type(operation: Operation) -> OperationType:
    return OperationType(operation.operation_type)


def _operation_total(operation: Operation) -> Decimal:
    total = _money(operation.amount)
    if isinstance(operation, MerchandiseIntake):
        total += _money(operation.tax_amount)
    return total


def validate_amounts(operation: Operation) -> None:
    if operation.amount is None or _money(operation.amount) <= 0:
        raise InvalidAmount(f"Amount must be positive, got {operation.amount}")
    if isinstance(operation, MerchandiseIntake) and _money(operation.tax_amount) < 0:
        raise InvalidAmount(f"Tax amount must be >= 0, got {operation.tax_amount}")


def build_lines(
    operation: Operation, resolved: chart_of_accounts.ResolvedAccounts
) -> list[LineDraft]:
    """Construct the journal lines for one operation.

    Two lines for every operation; merchandise intake adds a tax debit when
    it carries tax, and its credit covers net plus tax.
    """
    amount = _money(operation.amount)
    description = operation.description

    if isinstance(operation, MerchandiseIntake) and resolved.tax:
        tax = _money(operation.tax_amount)
        lines = [LineDraft(resolved.debit, debit=amount, description=description)]
        if tax > 0:
            lines.append(LineDraft(resolved.tax, debit=tax, description="VAT credit"))
        lines.append(LineDraft(resolved.credit, credit=amount + tax, description=description))
        return lines

    return [
        LineDraft(resolved.debit, debit=amount, description=description),
        LineDraft(resolved.credit, credit=amount, description=description),
    ]


def _attributes(operation: Operation, cash_accounts: dict[str, CashAccount]) -> dict:
    attrs = {
        "payment_method": getattr(operation, "payment_method", None),
        "category": getattr(operation, "category", None),
    }
    if "cash" in cash_accounts:
        attrs["cash_ledger_code"] = cash_accounts["cash"].ledger_account_code
    if "source" in cash_accounts:
        attrs["source_ledger_code"] = cash_accounts["source"].ledger_account_code
    if "destination" in cash_accounts:
        attrs["destination_ledger_code"] = cash_accounts["destination"].ledger_account_code
    return attrs


async def _load_cash_accounts(
    db: AsyncSession, tenant_id: str, operation: Operation
) -> dict[str, CashAccount]:
    accounts: dict[str, CashAccount] = {}
    if isinstance(operation, Transfer):
        if operation.source_cash_account_id == operation.destination_cash_account_id:
            raise InvalidAccount("Source and destination cash accounts must differ")
        accounts["source"] = await treasury.get_cash_account(
            db, tenant_id, operation.source_cash_account_id
        )
        accounts["destination"] = await treasury.get_cash_account(
            db, tenant_id, operation.destination_cash_account_id
        )
        return accounts

    cash_account_id = getattr(operation, "cash_account_id", None)
    if cash_account_id is not None:
        accounts["cash"] = await treasury.get_cash_account(db, tenant_id, cash_account_id)
    return accounts


async def _load_counterparty(
    db: AsyncSession, tenant_id: str, operation: Operation
) -> ThirdParty | None:
    party_id = getattr(operation, "counterparty_id", None)
    if party_id is None:
        return None
    effect = PARTY_EFFECTS.get(_operation_type(operation))
    side = effect[0] if effect else None
    return await third_parties.get_third_party(db, tenant_id, party_id, side=side)


def _preview(
    operation: Operation, lines: list[LineDraft], total_dr: Decimal, total_cr: Decimal,
    description: str,
) -> dict:
    return {
        "operation_type": _operation_type(operation).value,
        "operation_id": operation.operation_id,
        "description": description,
        "lines": [
            {
                "account_code": ln.account_code,
                "account_name": chart_of_accounts.default_account_name(ln.account_code),
                "debit_amount": ln.debit,
                "credit_amount": ln.credit,
            }
            for ln in lines
        ],
        "total_debit": total_dr,
        "total_credit": total_cr,
        "is_balanced": total_dr == total_cr,
    }


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

async def record_operation(
    db: AsyncSession,
    *,
    tenant_id: str,
    operation: Operation,
    dry_run: bool = False,
) -> "PostingResult | dict":
    """Post one business operation.

    A repeated ``operation_id`` returns the entry already posted for it, with
    no further side effects.  With *dry_run* the balanced lines are returned
    as a dict preview and nothing is read for idempotency or written.
    """
    op_type = _operation_type(operation)
    validate_amounts(operation)

    if not dry_run:
        existing = await journal_engine.find_by_source_reference(
            db, tenant_id, operation.operation_id
        )
        if existing is not None:
            logger.info(
                "Operation %s already posted as entry #%s; skipping",
                operation.operation_id, existing.number,
            )
            return PostingResult(entry=existing, created=False)

    party = await _load_counterparty(db, tenant_id, operation)
    cash_accounts = await _load_cash_accounts(db, tenant_id, operation)

    resolved = chart_of_accounts.resolve_accounts(op_type, _attributes(operation, cash_accounts))
    lines = build_lines(operation, resolved)
    try:
        total_dr, total_cr = journal_engine.validate_balance(lines)
    except UnbalancedEntry:
        logger.error(
            "Data integrity: unbalanced lines for %s operation %s resolved=%s",
            op_type.value, operation.operation_id, resolved,
        )
        raise

    description = operation.description or OPERATION_LABELS[op_type]
    if dry_run:
        return _preview(operation, lines, total_dr, total_cr, description)

    entry = await journal_engine.create_journal_entry(
        db,
        tenant_id=tenant_id,
        lines=lines,
        description=description,
        entry_date=operation.operation_date,
        source_reference=operation.operation_id,
        operation_type=op_type.value,
        third_party_id=party.id if party else None,
    )

    effect = PARTY_EFFECTS.get(op_type)
    if party is not None and effect is not None:
        side, sign = effect
        await third_parties.record_movement(
            db,
            party,
            side=side,
            amount=sign * _operation_total(operation),
            movement_date=operation.operation_date,
            journal_entry_id=entry.id,
            description=description,
        )

    amount = _money(operation.amount)
    if op_type == OperationType.TRANSFER:
        await treasury.record_cash_movement(
            db, cash_accounts["source"], amount=-amount,
            movement_date=operation.operation_date, journal_entry_id=entry.id,
            description=description,
        )
        await treasury.record_cash_movement(
            db, cash_accounts["destination"], amount=amount,
            movement_date=operation.operation_date, journal_entry_id=entry.id,
            description=description,
        )
    elif "cash" in cash_accounts and op_type in CASH_EFFECTS:
        await treasury.record_cash_movement(
            db, cash_accounts["cash"], amount=CASH_EFFECTS[op_type] * amount,
            movement_date=operation.operation_date, journal_entry_id=entry.id,
            description=description,
        )

    return PostingResult(entry=entry, created=True)


async def void_entry(
    db: AsyncSession,
    *,
    tenant_id: str,
    entry_id: int,
    reason: str,
    entry_date: date,
) -> JournalEntry:
    """Void a posted entry and compensate every balance movement it caused."""
    original, reversal = await journal_engine.reverse_entry(
        db, tenant_id, entry_id, reason=reason, entry_date=entry_date
    )

    for movement in await third_parties.movements_for_entry(db, original.id):
        party = await third_parties.get_third_party(db, tenant_id, movement.third_party_id)
        await third_parties.record_movement(
            db, party, side=movement.side, amount=-Decimal(str(movement.amount)),
            movement_date=entry_date, journal_entry_id=reversal.id,
            description=f"Reversal of #{original.number}",
        )

    for movement in await treasury.movements_for_entry(db, original.id):
        cash_account = await treasury.get_cash_account(db, tenant_id, movement.cash_account_id)
        await treasury.record_cash_movement(
            db, cash_account, amount=-Decimal(str(movement.amount)),
            movement_date=entry_date, journal_entry_id=reversal.id,
            description=f"Reversal of #{original.number}",
        )

    return reversal
