"""Tests for the double-entry journal engine.

Tests cover:
- Balance validation (debits must equal credits, one side per line)
- Entry creation against the tenant chart (mock DB)
- Reversal creates a mirror entry and voids the original
- Only posted entries can be voided
"""

import pytest
from datetime import date
from decimal import Decimal
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

from tally.models.gl import EntryType, JournalEntryStatus
from tally.services.errors import InvalidAccount, InvalidAmount, StaleReference, UnbalancedEntry
from tally.services.gl.journal_engine import (
    LineDraft,
    create_journal_entry,
    reverse_entry,
    validate_balance,
)

CASH = "1.1.01.001"
SALES = "4.1.01.001"


# ===================================================================
# Balance validation (pure functions, no DB)
# ===================================================================


class TestBalanceValidation:

    def test_balanced_entry(self):
        lines = [
            LineDraft(CASH, debit=Decimal("1000")),
            LineDraft(SALES, credit=Decimal("1000")),
        ]
        dr, cr = validate_balance(lines)
        assert dr == Decimal("1000.00")
        assert cr == Decimal("1000.00")

    def test_unbalanced_entry_raises(self):
        lines = [
            LineDraft(CASH, debit=Decimal("1000")),
            LineDraft(SALES, credit=Decimal("500")),
        ]
        with pytest.raises(UnbalancedEntry, match="not balanced"):
            validate_balance(lines)

    def test_penny_difference_raises(self):
        lines = [
            LineDraft(CASH, debit=Decimal("1000.01")),
            LineDraft(SALES, credit=Decimal("1000.00")),
        ]
        with pytest.raises(UnbalancedEntry, match="not balanced"):
            validate_balance(lines)

    def test_multiple_lines_balanced(self):
        lines = [
            LineDraft(CASH, debit=Decimal("500")),
            LineDraft("1.1.01.002", debit=Decimal("300")),
            LineDraft("1.1.02.001", debit=Decimal("200")),
            LineDraft(SALES, credit=Decimal("400")),
            LineDraft("4.1.01.002", credit=Decimal("600")),
        ]
        assert validate_balance(lines) == (Decimal("1000.00"), Decimal("1000.00"))

    def test_line_with_both_sides_raises(self):
        lines = [
            LineDraft(CASH, debit=Decimal("100"), credit=Decimal("100")),
            LineDraft(SALES, credit=Decimal("0")),
        ]
        with pytest.raises(UnbalancedEntry, match="exactly one"):
            validate_balance(lines)

    def test_empty_line_raises(self):
        lines = [LineDraft(CASH), LineDraft(SALES)]
        with pytest.raises(UnbalancedEntry, match="exactly one"):
            validate_balance(lines)

    def test_negative_amount_is_invalid(self):
        lines = [
            LineDraft(CASH, debit=Decimal("-100")),
            LineDraft(SALES, credit=Decimal("-100")),
        ]
        with pytest.raises(InvalidAmount, match="Negative"):
            validate_balance(lines)

    def test_single_sided_entry_raises(self):
        with pytest.raises(UnbalancedEntry, match="not balanced"):
            validate_balance([LineDraft(CASH, debit=Decimal("1000"))])


# ===================================================================
# Entry creation (mock DB)
# ===================================================================


def _accounts(*codes):
    return {
        code: SimpleNamespace(id=idx, code=code, name=f"Account {code}")
        for idx, code in enumerate(codes, start=1)
    }


class TestCreateJournalEntry:

    @pytest.mark.asyncio
    async def test_fewer_than_two_lines_rejected(self):
        db = AsyncMock()
        with pytest.raises(UnbalancedEntry, match="at least two"):
            await create_journal_entry(
                db,
                tenant_id="acme",
                lines=[LineDraft(CASH, debit=Decimal("10"))],
                description="x",
                entry_date=date(2024, 5, 1),
            )

    @pytest.mark.asyncio
    async def test_unbalanced_lines_never_touch_db(self):
        db = AsyncMock()
        db.add = MagicMock()
        with patch(
            "tally.services.gl.journal_engine.chart_of_accounts.get_postable_accounts"
        ) as mock_accounts:
            with pytest.raises(UnbalancedEntry):
                await create_journal_entry(
                    db,
                    tenant_id="acme",
                    lines=[
                        LineDraft(CASH, debit=Decimal("10")),
                        LineDraft(SALES, credit=Decimal("9")),
                    ],
                    description="x",
                    entry_date=date(2024, 5, 1),
                )
            mock_accounts.assert_not_called()
        db.add.assert_not_called()

    @pytest.mark.asyncio
    async def test_creates_posted_entry_with_denormalized_names(self):
        db = AsyncMock()
        db.add = MagicMock()
        with patch(
            "tally.services.gl.journal_engine.chart_of_accounts.get_postable_accounts",
            return_value=_accounts(CASH, SALES),
        ), patch(
            "tally.services.gl.journal_engine._next_entry_number", return_value=7
        ):
            entry = await create_journal_entry(
                db,
                tenant_id="acme",
                lines=[
                    LineDraft(CASH, debit=Decimal("250.5")),
                    LineDraft(SALES, credit=Decimal("250.5")),
                ],
                description="Cash sale",
                entry_date=date(2024, 5, 1),
                source_reference="op-1",
                operation_type="cash_in",
            )

        assert entry.number == 7
        assert entry.status == JournalEntryStatus.POSTED
        assert entry.entry_type == EntryType.OPERATIONAL
        assert entry.total_debit == Decimal("250.50")
        assert entry.total_credit == Decimal("250.50")
        assert entry.source_reference == "op-1"
        assert [ln.line_number for ln in entry.lines] == [1, 2]
        assert entry.lines[0].account_name == f"Account {CASH}"
        assert entry.lines[0].debit_amount == Decimal("250.50")
        assert entry.lines[1].credit_amount == Decimal("250.50")
        db.add.assert_called_once_with(entry)
        db.flush.assert_awaited()

    @pytest.mark.asyncio
    async def test_invalid_account_propagates(self):
        db = AsyncMock()
        db.add = MagicMock()
        with patch(
            "tally.services.gl.journal_engine.chart_of_accounts.get_postable_accounts",
            side_effect=InvalidAccount("Account 1.1 is a group account"),
        ):
            with pytest.raises(InvalidAccount, match="group"):
                await create_journal_entry(
                    db,
                    tenant_id="acme",
                    lines=[
                        LineDraft("1.1", debit=Decimal("10")),
                        LineDraft(SALES, credit=Decimal("10")),
                    ],
                    description="x",
                    entry_date=date(2024, 5, 1),
                )
        db.add.assert_not_called()


# ===================================================================
# Reversal (mock DB)
# ===================================================================


class TestReverseEntry:

    def _make_entry(self, status: JournalEntryStatus):
        entry = MagicMock()
        entry.id = 11
        entry.number = 4
        entry.status = status
        entry.operation_type = "cash_in"
        entry.third_party_id = None
        entry.reversed_by_id = None
        entry.lines = [
            MagicMock(
                account_code=CASH,
                debit_amount=Decimal("100.00"),
                credit_amount=Decimal("0.00"),
                description="Cash sale",
            ),
            MagicMock(
                account_code=SALES,
                debit_amount=Decimal("0.00"),
                credit_amount=Decimal("100.00"),
                description=None,
            ),
        ]
        return entry

    @pytest.mark.asyncio
    async def test_reversal_mirrors_lines(self):
        original = self._make_entry(JournalEntryStatus.POSTED)
        reversal = MagicMock(id=12, number=5)
        db = AsyncMock()

        with patch(
            "tally.services.gl.journal_engine.get_journal_entry", return_value=original
        ), patch(
            "tally.services.gl.journal_engine.create_journal_entry", return_value=reversal
        ) as mock_create:
            result = await reverse_entry(
                db, "acme", 11, reason="Typo", entry_date=date(2024, 5, 2)
            )

        assert result == (original, reversal)
        kwargs = mock_create.call_args.kwargs
        mirror = kwargs["lines"]
        assert (mirror[0].account_code, mirror[0].debit, mirror[0].credit) == (
            CASH, Decimal("0.00"), Decimal("100.00"),
        )
        assert (mirror[1].account_code, mirror[1].debit, mirror[1].credit) == (
            SALES, Decimal("100.00"), Decimal("0.00"),
        )
        assert mirror[0].description == "Reversal: Cash sale"
        assert kwargs["entry_type"] == EntryType.ADJUSTMENT
        assert kwargs["reversal_of_id"] == 11
        assert kwargs["source_reference"] == "void:11"
        assert original.status == JournalEntryStatus.VOIDED
        assert original.reversed_by_id == 12

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", [JournalEntryStatus.VOIDED, JournalEntryStatus.DRAFT])
    async def test_only_posted_entries_can_be_voided(self, status):
        original = self._make_entry(status)
        db = AsyncMock()

        with patch(
            "tally.services.gl.journal_engine.get_journal_entry", return_value=original
        ), patch(
            "tally.services.gl.journal_engine.create_journal_entry"
        ) as mock_create:
            with pytest.raises(StaleReference, match="cannot be voided"):
                await reverse_entry(db, "acme", 11, reason="Again", entry_date=date(2024, 5, 2))
            mock_create.assert_not_called()
