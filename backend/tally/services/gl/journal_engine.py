"""Core double-entry journal engine.

All monetary postings flow through this engine.  The fundamental invariant
is **total debits == total credits** for every journal entry, enforced at
three layers:

1. Database CHECK constraints on line amounts and entry totals
2. Application-level validation before persist
3. Idempotency on the originating operation reference

Journal entries are immutable once posted.  Corrections are made
exclusively via reversing entries.
"""

import logging
from dataclasses import dataclass
from datetime import date
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Optional

from sqlalchemy import select, func as sa_func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from tally.models.gl import (
    EntryType,
    JournalEntry,
    JournalEntryStatus,
    JournalLine,
)
from tally.services.errors import InvalidAmount, NotFound, StaleReference, UnbalancedEntry
from tally.services.gl import chart_of_accounts

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")


@dataclass
class LineDraft:
    """A journal line before it is bound to a persisted account."""

    account_code: str
    debit: Decimal = Decimal("0.00")
    credit: Decimal = Decimal("0.00")
    description: Optional[str] = None


def _money(value: Any) -> Decimal:
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)


# ---------------------------------------------------------------------------
# Entry-number generation
# ---------------------------------------------------------------------------

async def _next_entry_number(db: AsyncSession, tenant_id: str) -> int:
    """Next sequential entry number for the tenant.

    Two concurrent posters can read the same maximum; the unique
    (tenant_id, number) constraint rejects the loser and the unit of work
    is retried.
    """
    result = await db.execute(
        select(sa_func.max(JournalEntry.number)).where(JournalEntry.tenant_id == tenant_id)
    )
    last = result.scalar_one_or_none()
    return (last or 0) + 1


# ---------------------------------------------------------------------------
# Validation helpers
# ---------------------------------------------------------------------------

def validate_balance(lines: list[LineDraft]) -> tuple[Decimal, Decimal]:
    """Ensure total debits == total credits.  Returns (total_dr, total_cr)."""
    for ln in lines:
        if ln.debit < 0 or ln.credit < 0:
            raise InvalidAmount(f"Negative amount on account {ln.account_code}")
        if (ln.debit > 0) == (ln.credit > 0):
            raise UnbalancedEntry(
                f"Line on account {ln.account_code} must carry exactly one of debit or credit"
            )
    total_dr = sum((_money(ln.debit) for ln in lines), Decimal("0.00"))
    total_cr = sum((_money(ln.credit) for ln in lines), Decimal("0.00"))
    if total_dr != total_cr:
        raise UnbalancedEntry(
            f"Entry is not balanced: debits={total_dr}, credits={total_cr}"
        )
    if total_dr == 0:
        raise UnbalancedEntry("Entry has zero total; at least one non-zero line required")
    return total_dr, total_cr


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

async def find_by_source_reference(
    db: AsyncSession, tenant_id: str, source_reference: str
) -> JournalEntry | None:
    result = await db.execute(
        select(JournalEntry)
        .where(
            JournalEntry.tenant_id == tenant_id,
            JournalEntry.source_reference == source_reference,
        )
        .options(selectinload(JournalEntry.lines))
    )
    return result.scalar_one_or_none()


async def create_journal_entry(
    db: AsyncSession,
    *,
    tenant_id: str,
    lines: list[LineDraft],
    description: str,
    entry_date: date,
    entry_type: EntryType = EntryType.OPERATIONAL,
    source_reference: str | None = None,
    operation_type: str | None = None,
    third_party_id: int | None = None,
    reversal_of_id: int | None = None,
) -> JournalEntry:
    """Validate and persist a posted journal entry.

    Every line's account must be an active leaf of the tenant chart.  The
    denormalized account name is copied onto each line.
    """
    if len(lines) < 2:
        raise UnbalancedEntry("A journal entry requires at least two lines")

    # 1. Balance validation
    total_dr, total_cr = validate_balance(lines)

    # 2. Account validation
    accounts = await chart_of_accounts.get_postable_accounts(
        db, tenant_id, [ln.account_code for ln in lines]
    )

    # 3. Entry number
    number = await _next_entry_number(db, tenant_id)

    entry = JournalEntry(
        tenant_id=tenant_id,
        number=number,
        entry_date=entry_date,
        entry_type=entry_type,
        description=description,
        total_debit=total_dr,
        total_credit=total_cr,
        status=JournalEntryStatus.POSTED,
        source_reference=source_reference,
        operation_type=operation_type,
        third_party_id=third_party_id,
        reversal_of_id=reversal_of_id,
    )
    for idx, ln in enumerate(lines, start=1):
        account = accounts[ln.account_code]
        entry.lines.append(JournalLine(
            line_number=idx,
            account_id=account.id,
            account_code=account.code,
            account_name=account.name,
            debit_amount=_money(ln.debit),
            credit_amount=_money(ln.credit),
            description=ln.description,
        ))

    db.add(entry)
    await db.flush()
    logger.info(
        "Posted journal entry %s #%s (%s) total=%s ref=%s",
        tenant_id, number, operation_type or entry_type.value, total_dr, source_reference,
    )
    return entry


async def get_journal_entry(db: AsyncSession, tenant_id: str, entry_id: int) -> JournalEntry:
    result = await db.execute(
        select(JournalEntry)
        .where(JournalEntry.id == entry_id, JournalEntry.tenant_id == tenant_id)
        .options(selectinload(JournalEntry.lines))
    )
    entry = result.scalar_one_or_none()
    if entry is None:
        raise NotFound(f"Journal entry {entry_id} not found")
    return entry


async def list_journal_entries(
    db: AsyncSession,
    tenant_id: str,
    *,
    status: JournalEntryStatus | None = None,
    operation_type: str | None = None,
    third_party_id: int | None = None,
    date_from: date | None = None,
    date_to: date | None = None,
    offset: int = 0,
    limit: int = 50,
) -> tuple[list[JournalEntry], int]:
    query = select(JournalEntry).where(JournalEntry.tenant_id == tenant_id)
    if status:
        query = query.where(JournalEntry.status == status)
    if operation_type:
        query = query.where(JournalEntry.operation_type == operation_type)
    if third_party_id:
        query = query.where(JournalEntry.third_party_id == third_party_id)
    if date_from:
        query = query.where(JournalEntry.entry_date >= date_from)
    if date_to:
        query = query.where(JournalEntry.entry_date <= date_to)

    count_q = select(sa_func.count()).select_from(query.subquery())
    total = (await db.execute(count_q)).scalar() or 0

    result = await db.execute(
        query.options(selectinload(JournalEntry.lines))
        .order_by(JournalEntry.number.desc())
        .offset(offset)
        .limit(limit)
    )
    return list(result.scalars().all()), total


async def reverse_entry(
    db: AsyncSession,
    tenant_id: str,
    entry_id: int,
    *,
    reason: str,
    entry_date: date,
) -> tuple[JournalEntry, JournalEntry]:
    """Void a posted entry by posting its mirror image.

    Each debit becomes a credit and vice versa.  The original keeps its lines
    and amounts; only its status and ``reversed_by_id`` change.  Returns
    ``(original, reversal)``.
    """
    original = await get_journal_entry(db, tenant_id, entry_id)
    if original.status != JournalEntryStatus.POSTED:
        raise StaleReference(
            f"Journal entry #{original.number} is {original.status.value} and cannot be voided"
        )

    mirror = [
        LineDraft(
            account_code=ln.account_code,
            debit=ln.credit_amount,
            credit=ln.debit_amount,
            description=f"Reversal: {ln.description}" if ln.description else None,
        )
        for ln in original.lines
    ]
    reversal = await create_journal_entry(
        db,
        tenant_id=tenant_id,
        lines=mirror,
        description=f"Reversal of #{original.number}: {reason}",
        entry_date=entry_date,
        entry_type=EntryType.ADJUSTMENT,
        source_reference=f"void:{original.id}",
        operation_type=original.operation_type,
        third_party_id=original.third_party_id,
        reversal_of_id=original.id,
    )

    original.status = JournalEntryStatus.VOIDED
    original.reversed_by_id = reversal.id
    await db.flush()
    logger.info("Voided journal entry %s #%s via #%s", tenant_id, original.number, reversal.number)
    return original, reversal
