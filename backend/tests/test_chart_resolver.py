"""Tests for the chart of accounts and operation-to-account resolution.

Tests cover:
- Resolution table lookups for every operation type
- Payment-method routing (receipts vs disbursements)
- Cash-account ledger override
- Rejection of unmapped attributes and unknown operation types
- Default chart structure (hierarchy, natural sides, postable leaves)
"""

import pytest

from tally.models.gl import AccountType, BalanceSide
from tally.services.errors import InvalidAccount, UnmappedCategory
from tally.services.gl import chart_of_accounts as coa
from tally.services.gl.chart_of_accounts import (
    DEFAULT_CHART,
    RESOLUTION_TABLE,
    account_level,
    default_accounts,
    natural_side,
    parent_code,
    resolve_accounts,
)
from tally.services.gl.operations import OperationType


# ===================================================================
# Resolution table
# ===================================================================


class TestResolveAccounts:

    def test_cash_sale(self):
        r = resolve_accounts("cash_in", {"payment_method": "cash", "category": "sales"})
        assert r.debit == coa.CASH
        assert r.credit == coa.SALES
        assert r.tax is None

    @pytest.mark.parametrize("method", ["transfer", "check", "card"])
    def test_non_cash_receipts_land_in_banks(self, method):
        r = resolve_accounts(
            OperationType.CASH_IN, {"payment_method": method, "category": "services"}
        )
        assert r.debit == coa.BANKS
        assert r.credit == coa.SERVICE_INCOME

    def test_card_expense_is_credit_card_liability(self):
        r = resolve_accounts("expense_payment", {"payment_method": "card", "category": "rent"})
        assert r.debit == coa.RENT
        assert r.credit == coa.CREDIT_CARDS

    def test_cash_expense(self):
        r = resolve_accounts(
            "expense_payment", {"payment_method": "cash", "category": "other_expense"}
        )
        assert r.debit == coa.SUNDRY_EXPENSES
        assert r.credit == coa.CASH

    def test_credit_purchase_credits_suppliers(self):
        r = resolve_accounts("credit_purchase", {"category": "purchases"})
        assert (r.debit, r.credit) == (coa.PURCHASES, coa.SUPPLIERS)

    def test_debt_payment(self):
        r = resolve_accounts("debt_payment", {"payment_method": "transfer"})
        assert (r.debit, r.credit) == (coa.SUPPLIERS, coa.BANKS)

    def test_merchandise_intake_has_tax_account(self):
        r = resolve_accounts("merchandise_intake", {})
        assert (r.debit, r.credit) == (coa.MERCHANDISE, coa.SUPPLIERS)
        assert r.tax == coa.VAT_CREDIT

    def test_sale_on_account(self):
        r = resolve_accounts("sale_on_account", {"category": "sales"})
        assert (r.debit, r.credit) == (coa.CUSTOMERS, coa.SALES)

    def test_client_collection(self):
        r = resolve_accounts("client_collection", {"payment_method": "cash"})
        assert (r.debit, r.credit) == (coa.CASH, coa.CUSTOMERS)

    def test_transfer_uses_cash_account_ledgers(self):
        r = resolve_accounts(
            "transfer",
            {"source_ledger_code": coa.CASH, "destination_ledger_code": coa.BANKS},
        )
        assert (r.debit, r.credit) == (coa.BANKS, coa.CASH)

    def test_cash_account_ledger_overrides_method(self):
        r = resolve_accounts(
            "cash_in",
            {"payment_method": "cash", "category": "sales", "cash_ledger_code": coa.BANKS},
        )
        assert r.debit == coa.BANKS

    def test_empty_override_falls_back_to_table(self):
        r = resolve_accounts(
            "cash_in",
            {"payment_method": "cash", "category": "sales", "cash_ledger_code": None},
        )
        assert r.debit == coa.CASH

    def test_unknown_method_rejected_even_with_cash_account(self):
        with pytest.raises(UnmappedCategory, match="bitcoin"):
            resolve_accounts(
                "cash_in",
                {"payment_method": "bitcoin", "category": "sales", "cash_ledger_code": coa.CASH},
            )

    def test_missing_method_rejected_even_with_cash_account(self):
        with pytest.raises(UnmappedCategory):
            resolve_accounts(
                "expense_payment", {"category": "rent", "cash_ledger_code": coa.CASH}
            )

    def test_card_expense_cannot_draw_on_cash_account(self):
        with pytest.raises(InvalidAccount):
            resolve_accounts(
                "debt_payment", {"payment_method": "card", "cash_ledger_code": coa.CASH}
            )

    def test_card_receipt_into_bank_account(self):
        r = resolve_accounts(
            "client_collection", {"payment_method": "card", "cash_ledger_code": "1.1.01.003"}
        )
        assert (r.debit, r.credit) == ("1.1.01.003", coa.CUSTOMERS)

    def test_every_operation_type_has_a_rule(self):
        assert set(RESOLUTION_TABLE) == set(OperationType)


class TestUnmapped:

    def test_unknown_category(self):
        with pytest.raises(UnmappedCategory, match="Unknown category"):
            resolve_accounts("cash_in", {"payment_method": "cash", "category": "lottery"})

    def test_unknown_payment_method(self):
        with pytest.raises(UnmappedCategory, match="payment_method"):
            resolve_accounts("cash_in", {"payment_method": "barter", "category": "sales"})

    def test_missing_attribute(self):
        with pytest.raises(UnmappedCategory, match="required"):
            resolve_accounts("expense_payment", {"category": "rent"})

    def test_income_category_is_not_an_expense(self):
        with pytest.raises(UnmappedCategory):
            resolve_accounts("expense_payment", {"payment_method": "cash", "category": "sales"})

    def test_unknown_operation_type(self):
        with pytest.raises(UnmappedCategory, match="Unknown operation type"):
            resolve_accounts("donation", {})

    def test_transfer_without_ledgers(self):
        with pytest.raises(UnmappedCategory):
            resolve_accounts("transfer", {"source_ledger_code": coa.CASH})


# ===================================================================
# Default chart
# ===================================================================


class TestDefaultChart:

    def test_codes_are_unique(self):
        codes = [code for code, _, _ in DEFAULT_CHART]
        assert len(codes) == len(set(codes))

    def test_every_parent_exists(self):
        codes = {code for code, _, _ in DEFAULT_CHART}
        for code in codes:
            parent = parent_code(code)
            assert parent is None or parent in codes, code

    def test_hierarchy_helpers(self):
        assert account_level("1") == 1
        assert account_level("1.1.01.001") == 4
        assert parent_code("1.1.01.001") == "1.1.01"
        assert parent_code("1") is None

    def test_natural_sides(self):
        assert natural_side(AccountType.ASSET) == BalanceSide.DEBIT
        assert natural_side(AccountType.EXPENSE) == BalanceSide.DEBIT
        assert natural_side(AccountType.LIABILITY) == BalanceSide.CREDIT
        assert natural_side(AccountType.EQUITY) == BalanceSide.CREDIT
        assert natural_side(AccountType.INCOME) == BalanceSide.CREDIT

    def test_only_leaves_allow_postings(self):
        accounts = default_accounts("acme", "ARS")
        for account in accounts:
            assert account.allows_postings == (account.level == 4), account.code
            assert account.tenant_id == "acme"
            assert account.currency == "ARS"

    def test_resolution_targets_are_postable_defaults(self):
        postable = {a.code for a in default_accounts("acme", "ARS") if a.allows_postings}
        targets = set(coa.RECEIPT_ACCOUNTS.values()) | set(coa.DISBURSEMENT_ACCOUNTS.values())
        targets |= set(coa.INCOME_ACCOUNTS.values()) | set(coa.EXPENSE_ACCOUNTS.values())
        targets |= set(coa.TAX_ACCOUNTS.values())
        targets |= {rule for pair in RESOLUTION_TABLE.values() for rule in pair if isinstance(rule, str)}
        assert targets <= postable

    def test_child_type_matches_root(self):
        types = {code: t for code, _, t in DEFAULT_CHART}
        for code, account_type in types.items():
            assert account_type == types[code.split(".")[0]], code
