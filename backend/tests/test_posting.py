"""Tests for operation posting.

Tests cover:
- Line construction for every operation type (always balanced)
- Merchandise intake tax line
- Idempotency on the operation id
- Dry-run preview (nothing read for idempotency, nothing written)
- Third-party and cash-account side effects
- Voiding compensates the balance movements
"""

import pytest
from datetime import date
from decimal import Decimal
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

from pydantic import TypeAdapter

from tally.models.party import MovementSide
from tally.services.errors import InvalidAccount, InvalidAmount, UnmappedCategory
from tally.services.gl import chart_of_accounts as coa
from tally.services.gl.chart_of_accounts import ResolvedAccounts
from tally.services.gl.journal_engine import validate_balance
from tally.services.gl.operations import (
    CashIn,
    ClientCollection,
    MerchandiseIntake,
    Operation,
    SaleOnAccount,
    Transfer,
)
from tally.services.gl.posting import build_lines, record_operation, void_entry

TODAY = date(2024, 6, 1)

ENGINE = "tally.services.gl.posting.journal_engine"
THIRD_PARTIES = "tally.services.gl.posting.third_parties"
TREASURY = "tally.services.gl.posting.treasury"

_adapter = TypeAdapter(Operation)


def _op(**data):
    data.setdefault("operation_id", "op-1")
    data.setdefault("operation_date", TODAY)
    return _adapter.validate_python(data)


# ===================================================================
# Line construction (pure)
# ===================================================================


class TestBuildLines:

    @pytest.mark.parametrize(
        "data",
        [
            {"operation_type": "cash_in", "amount": "100", "payment_method": "cash", "category": "sales"},
            {"operation_type": "expense_payment", "amount": "80.5", "payment_method": "card", "category": "rent"},
            {"operation_type": "credit_purchase", "amount": "300", "category": "purchases", "counterparty_id": 3},
            {"operation_type": "debt_payment", "amount": "300", "payment_method": "transfer", "counterparty_id": 3},
            {"operation_type": "merchandise_intake", "amount": "1000", "tax_amount": "210", "counterparty_id": 3},
            {"operation_type": "sale_on_account", "amount": "450", "counterparty_id": 4},
            {"operation_type": "client_collection", "amount": "450", "payment_method": "check", "counterparty_id": 4},
        ],
    )
    def test_every_operation_is_balanced(self, data):
        operation = _op(**data)
        resolved = coa.resolve_accounts(operation.operation_type, {
            "payment_method": getattr(operation, "payment_method", None),
            "category": getattr(operation, "category", None),
        })
        lines = build_lines(operation, resolved)
        total_dr, total_cr = validate_balance(lines)
        assert total_dr == total_cr > 0

    def test_two_lines_for_simple_operations(self):
        operation = _op(operation_type="cash_in", amount="100", payment_method="cash", category="sales")
        lines = build_lines(operation, ResolvedAccounts(debit=coa.CASH, credit=coa.SALES))
        assert [(ln.account_code, ln.debit, ln.credit) for ln in lines] == [
            (coa.CASH, Decimal("100.00"), Decimal("0.00")),
            (coa.SALES, Decimal("0.00"), Decimal("100.00")),
        ]

    def test_intake_with_tax_adds_vat_line(self):
        operation = MerchandiseIntake(
            operation_id="in-1", amount=Decimal("1000"), tax_amount=Decimal("210"),
            counterparty_id=3, operation_date=TODAY,
        )
        resolved = coa.resolve_accounts("merchandise_intake", {})
        lines = build_lines(operation, resolved)
        assert [(ln.account_code, ln.debit, ln.credit) for ln in lines] == [
            (coa.MERCHANDISE, Decimal("1000.00"), Decimal("0.00")),
            (coa.VAT_CREDIT, Decimal("210.00"), Decimal("0.00")),
            (coa.SUPPLIERS, Decimal("0.00"), Decimal("1210.00")),
        ]

    def test_intake_without_tax_has_two_lines(self):
        operation = MerchandiseIntake(
            operation_id="in-2", amount=Decimal("1000"), counterparty_id=3, operation_date=TODAY,
        )
        lines = build_lines(operation, coa.resolve_accounts("merchandise_intake", {}))
        assert len(lines) == 2
        assert lines[1].credit == Decimal("1000.00")


# ===================================================================
# Operation schema
# ===================================================================


class TestOperationSchema:

    def test_discriminator_selects_variant(self):
        assert isinstance(_op(operation_type="transfer", amount="5",
                              source_cash_account_id=1, destination_cash_account_id=2), Transfer)
        assert isinstance(_op(operation_type="sale_on_account", amount="5", counterparty_id=1),
                          SaleOnAccount)

    def test_sale_on_account_defaults_to_sales(self):
        assert _op(operation_type="sale_on_account", amount="5", counterparty_id=1).category == "sales"

    def test_unknown_type_is_rejected(self):
        with pytest.raises(ValueError):
            _op(operation_type="donation", amount="5")

    def test_missing_required_field_is_rejected(self):
        with pytest.raises(ValueError):
            _op(operation_type="client_collection", amount="5", payment_method="cash")


# ===================================================================
# Recording (mock DB)
# ===================================================================


class TestRecordOperation:

    @pytest.mark.asyncio
    async def test_non_positive_amount_rejected(self):
        db = AsyncMock()
        operation = _op(operation_type="cash_in", amount="0", payment_method="cash", category="sales")
        with patch(f"{ENGINE}.find_by_source_reference") as mock_find:
            with pytest.raises(InvalidAmount):
                await record_operation(db, tenant_id="acme", operation=operation)
            mock_find.assert_not_called()

    @pytest.mark.asyncio
    async def test_negative_tax_rejected(self):
        db = AsyncMock()
        operation = MerchandiseIntake(
            operation_id="in-1", amount=Decimal("100"), tax_amount=Decimal("-1"),
            counterparty_id=3, operation_date=TODAY,
        )
        with pytest.raises(InvalidAmount, match="Tax"):
            await record_operation(db, tenant_id="acme", operation=operation)

    @pytest.mark.asyncio
    async def test_repeated_operation_returns_existing_entry(self):
        db = AsyncMock()
        existing = MagicMock(id=9, number=3)
        operation = _op(operation_type="cash_in", amount="100", payment_method="cash", category="sales")

        with patch(f"{ENGINE}.find_by_source_reference", return_value=existing), \
             patch(f"{ENGINE}.create_journal_entry") as mock_create, \
             patch(f"{TREASURY}.record_cash_movement") as mock_cash:
            result = await record_operation(db, tenant_id="acme", operation=operation)

        assert result.created is False
        assert result.entry is existing
        mock_create.assert_not_called()
        mock_cash.assert_not_called()

    @pytest.mark.asyncio
    async def test_dry_run_previews_without_writing(self):
        db = AsyncMock()
        operation = _op(operation_type="cash_in", amount="100", payment_method="cash", category="sales")

        with patch(f"{ENGINE}.find_by_source_reference") as mock_find, \
             patch(f"{ENGINE}.create_journal_entry") as mock_create:
            preview = await record_operation(db, tenant_id="acme", operation=operation, dry_run=True)

        mock_find.assert_not_called()
        mock_create.assert_not_called()
        assert preview["is_balanced"] is True
        assert preview["total_debit"] == Decimal("100.00")
        assert preview["description"] == "Cash receipt"
        assert [ln["account_code"] for ln in preview["lines"]] == [coa.CASH, coa.SALES]
        assert preview["lines"][0]["account_name"] == "Caja"

    @pytest.mark.asyncio
    async def test_unmapped_category_rejected_before_writing(self):
        db = AsyncMock()
        operation = _op(operation_type="cash_in", amount="100", payment_method="cash", category="gifts")

        with patch(f"{ENGINE}.find_by_source_reference", return_value=None), \
             patch(f"{ENGINE}.create_journal_entry") as mock_create:
            with pytest.raises(UnmappedCategory):
                await record_operation(db, tenant_id="acme", operation=operation)
            mock_create.assert_not_called()

    @pytest.mark.asyncio
    async def test_cash_account_ledger_and_movement(self):
        db = AsyncMock()
        bank = SimpleNamespace(id=2, ledger_account_code=coa.BANKS)
        entry = MagicMock(id=21, number=1)
        operation = CashIn(
            operation_id="op-7", amount=Decimal("150"), payment_method="cash", category="services",
            cash_account_id=2, operation_date=TODAY,
        )

        with patch(f"{ENGINE}.find_by_source_reference", return_value=None), \
             patch(f"{TREASURY}.get_cash_account", return_value=bank), \
             patch(f"{ENGINE}.create_journal_entry", return_value=entry) as mock_create, \
             patch(f"{TREASURY}.record_cash_movement") as mock_cash:
            result = await record_operation(db, tenant_id="acme", operation=operation)

        assert result.created is True
        lines = mock_create.call_args.kwargs["lines"]
        assert lines[0].account_code == coa.BANKS
        assert mock_create.call_args.kwargs["source_reference"] == "op-7"
        mock_cash.assert_awaited_once()
        assert mock_cash.call_args.args[1] is bank
        assert mock_cash.call_args.kwargs["amount"] == Decimal("150.00")
        assert mock_cash.call_args.kwargs["journal_entry_id"] == 21

    @pytest.mark.asyncio
    async def test_unknown_method_with_cash_account_is_not_posted(self):
        db = AsyncMock()
        bank = SimpleNamespace(id=2, ledger_account_code=coa.BANKS)
        operation = CashIn(
            operation_id="op-13", amount=Decimal("150"), payment_method="bitcoin", category="sales",
            cash_account_id=2, operation_date=TODAY,
        )

        with patch(f"{ENGINE}.find_by_source_reference", return_value=None), \
             patch(f"{TREASURY}.get_cash_account", return_value=bank), \
             patch(f"{ENGINE}.create_journal_entry") as mock_create, \
             patch(f"{TREASURY}.record_cash_movement") as mock_cash:
            with pytest.raises(UnmappedCategory):
                await record_operation(db, tenant_id="acme", operation=operation)

        mock_create.assert_not_called()
        mock_cash.assert_not_called()

    @pytest.mark.asyncio
    async def test_sale_on_account_raises_client_balance(self):
        db = AsyncMock()
        client = MagicMock(id=4)
        entry = MagicMock(id=22, number=2)
        operation = SaleOnAccount(
            operation_id="op-8", amount=Decimal("450"), counterparty_id=4, operation_date=TODAY,
        )

        with patch(f"{ENGINE}.find_by_source_reference", return_value=None), \
             patch(f"{THIRD_PARTIES}.get_third_party", return_value=client) as mock_party, \
             patch(f"{ENGINE}.create_journal_entry", return_value=entry) as mock_create, \
             patch(f"{THIRD_PARTIES}.record_movement") as mock_move:
            await record_operation(db, tenant_id="acme", operation=operation)

        assert mock_party.call_args.kwargs["side"] == MovementSide.CLIENT
        assert mock_create.call_args.kwargs["third_party_id"] == 4
        kwargs = mock_move.call_args.kwargs
        assert kwargs["side"] == MovementSide.CLIENT
        assert kwargs["amount"] == Decimal("450.00")

    @pytest.mark.asyncio
    async def test_client_collection_lowers_client_balance(self):
        db = AsyncMock()
        operation = ClientCollection(
            operation_id="op-9", amount=Decimal("200"), payment_method="cash",
            counterparty_id=4, operation_date=TODAY,
        )

        with patch(f"{ENGINE}.find_by_source_reference", return_value=None), \
             patch(f"{THIRD_PARTIES}.get_third_party", return_value=MagicMock(id=4)), \
             patch(f"{ENGINE}.create_journal_entry", return_value=MagicMock(id=23)), \
             patch(f"{THIRD_PARTIES}.record_movement") as mock_move:
            await record_operation(db, tenant_id="acme", operation=operation)

        assert mock_move.call_args.kwargs["amount"] == Decimal("-200.00")

    @pytest.mark.asyncio
    async def test_intake_supplier_movement_includes_tax(self):
        db = AsyncMock()
        operation = MerchandiseIntake(
            operation_id="in-3", amount=Decimal("1000"), tax_amount=Decimal("210"),
            counterparty_id=3, operation_date=TODAY,
        )

        with patch(f"{ENGINE}.find_by_source_reference", return_value=None), \
             patch(f"{THIRD_PARTIES}.get_third_party", return_value=MagicMock(id=3)), \
             patch(f"{ENGINE}.create_journal_entry", return_value=MagicMock(id=24)), \
             patch(f"{THIRD_PARTIES}.record_movement") as mock_move:
            await record_operation(db, tenant_id="acme", operation=operation)

        kwargs = mock_move.call_args.kwargs
        assert kwargs["side"] == MovementSide.SUPPLIER
        assert kwargs["amount"] == Decimal("1210.00")

    @pytest.mark.asyncio
    async def test_transfer_moves_both_cash_accounts(self):
        db = AsyncMock()
        cash = SimpleNamespace(id=1, ledger_account_code=coa.CASH)
        bank = SimpleNamespace(id=2, ledger_account_code=coa.BANKS)
        operation = Transfer(
            operation_id="tr-1", amount=Decimal("75"), source_cash_account_id=1,
            destination_cash_account_id=2, operation_date=TODAY,
        )

        with patch(f"{ENGINE}.find_by_source_reference", return_value=None), \
             patch(f"{TREASURY}.get_cash_account", side_effect=[cash, bank]), \
             patch(f"{ENGINE}.create_journal_entry", return_value=MagicMock(id=25)) as mock_create, \
             patch(f"{TREASURY}.record_cash_movement") as mock_cash:
            await record_operation(db, tenant_id="acme", operation=operation)

        lines = mock_create.call_args.kwargs["lines"]
        assert (lines[0].account_code, lines[1].account_code) == (coa.BANKS, coa.CASH)
        moved = [(c.args[1], c.kwargs["amount"]) for c in mock_cash.call_args_list]
        assert moved == [(cash, Decimal("-75.00")), (bank, Decimal("75.00"))]

    @pytest.mark.asyncio
    async def test_transfer_to_same_account_rejected(self):
        db = AsyncMock()
        operation = Transfer(
            operation_id="tr-2", amount=Decimal("75"), source_cash_account_id=1,
            destination_cash_account_id=1, operation_date=TODAY,
        )
        with patch(f"{ENGINE}.find_by_source_reference", return_value=None):
            with pytest.raises(InvalidAccount, match="must differ"):
                await record_operation(db, tenant_id="acme", operation=operation)


# ===================================================================
# Voiding (mock DB)
# ===================================================================


class TestVoidEntry:

    @pytest.mark.asyncio
    async def test_void_compensates_movements(self):
        db = AsyncMock()
        original = MagicMock(id=30, number=6)
        reversal = MagicMock(id=31, number=7)
        party = MagicMock(id=4)
        cash_account = MagicMock(id=2)
        party_move = MagicMock(third_party_id=4, side=MovementSide.CLIENT, amount=Decimal("50.00"))
        cash_move = MagicMock(cash_account_id=2, amount=Decimal("-20.00"))

        with patch(f"{ENGINE}.reverse_entry", return_value=(original, reversal)), \
             patch(f"{THIRD_PARTIES}.movements_for_entry", return_value=[party_move]), \
             patch(f"{THIRD_PARTIES}.get_third_party", return_value=party), \
             patch(f"{THIRD_PARTIES}.record_movement") as mock_move, \
             patch(f"{TREASURY}.movements_for_entry", return_value=[cash_move]), \
             patch(f"{TREASURY}.get_cash_account", return_value=cash_account), \
             patch(f"{TREASURY}.record_cash_movement") as mock_cash:
            result = await void_entry(
                db, tenant_id="acme", entry_id=30, reason="Wrong client", entry_date=TODAY
            )

        assert result is reversal
        assert mock_move.call_args.args[1] is party
        assert mock_move.call_args.kwargs["amount"] == Decimal("-50.00")
        assert mock_move.call_args.kwargs["side"] == MovementSide.CLIENT
        assert mock_move.call_args.kwargs["journal_entry_id"] == 31
        assert mock_cash.call_args.kwargs["amount"] == Decimal("20.00")
