"""Chart of Accounts: the default tenant chart and operation-to-account resolution.

Account resolution is a single declarative table keyed by operation type.
Each side of an entry is either a fixed account code or a ``Lookup`` on one
operation attribute (payment method, category, or a ledger code carried by
a cash account).  Anything the table cannot map is rejected with
``UnmappedCategory``; nothing falls back to a default account.
"""

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Mapping, Optional, Union

from sqlalchemy import select, func as sa_func
from sqlalchemy.ext.asyncio import AsyncSession

from tally.models.gl import (
    Account,
    AccountType,
    BalanceSide,
    JournalEntry,
    JournalEntryStatus,
    JournalLine,
)
from tally.services.errors import InvalidAccount, NotFound, UnmappedCategory
from tally.services.gl.operations import OperationType

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Default chart
# ---------------------------------------------------------------------------

CASH = "1.1.01.001"
BANKS = "1.1.01.002"
CUSTOMERS = "1.1.02.001"
VAT_CREDIT = "1.1.02.002"
MERCHANDISE = "1.1.03.001"
SUPPLIERS = "2.1.01.001"
CREDIT_CARDS = "2.1.01.002"
CAPITAL = "3.1.01.001"
SALES = "4.1.01.001"
SERVICE_INCOME = "4.1.01.002"
OTHER_INCOME = "4.2.01.001"
PURCHASES = "5.1.01.001"
SERVICES_EXPENSE = "5.2.01.001"
RENT = "5.2.01.002"
SUNDRY_EXPENSES = "5.2.01.003"

# (code, name, type); level, parent and postability derive from the code
DEFAULT_CHART: list[tuple[str, str, AccountType]] = [
    ("1", "Activo", AccountType.ASSET),
    ("1.1", "Activo Corriente", AccountType.ASSET),
    ("1.1.01", "Disponibilidades", AccountType.ASSET),
    (CASH, "Caja", AccountType.ASSET),
    (BANKS, "Bancos", AccountType.ASSET),
    ("1.1.02", "Créditos", AccountType.ASSET),
    (CUSTOMERS, "Clientes", AccountType.ASSET),
    (VAT_CREDIT, "IVA Crédito Fiscal", AccountType.ASSET),
    ("1.1.03", "Bienes de Cambio", AccountType.ASSET),
    (MERCHANDISE, "Mercaderías", AccountType.ASSET),
    ("2", "Pasivo", AccountType.LIABILITY),
    ("2.1", "Pasivo Corriente", AccountType.LIABILITY),
    ("2.1.01", "Deudas Comerciales", AccountType.LIABILITY),
    (SUPPLIERS, "Proveedores", AccountType.LIABILITY),
    (CREDIT_CARDS, "Tarjetas de Crédito", AccountType.LIABILITY),
    ("3", "Patrimonio Neto", AccountType.EQUITY),
    ("3.1", "Capital", AccountType.EQUITY),
    ("3.1.01", "Capital Social", AccountType.EQUITY),
    (CAPITAL, "Capital", AccountType.EQUITY),
    ("4", "Ingresos", AccountType.INCOME),
    ("4.1", "Ingresos Operativos", AccountType.INCOME),
    ("4.1.01", "Ventas y Servicios", AccountType.INCOME),
    (SALES, "Ventas", AccountType.INCOME),
    (SERVICE_INCOME, "Servicios", AccountType.INCOME),
    ("4.2", "Otros Ingresos", AccountType.INCOME),
    ("4.2.01", "Ingresos Varios", AccountType.INCOME),
    (OTHER_INCOME, "Otros Ingresos", AccountType.INCOME),
    ("5", "Egresos", AccountType.EXPENSE),
    ("5.1", "Costo de Ventas", AccountType.EXPENSE),
    ("5.1.01", "Costo de Mercaderías", AccountType.EXPENSE),
    (PURCHASES, "Compras", AccountType.EXPENSE),
    ("5.2", "Gastos Operativos", AccountType.EXPENSE),
    ("5.2.01", "Gastos Generales", AccountType.EXPENSE),
    (SERVICES_EXPENSE, "Servicios", AccountType.EXPENSE),
    (RENT, "Alquileres", AccountType.EXPENSE),
    (SUNDRY_EXPENSES, "Gastos Varios", AccountType.EXPENSE),
]

_DEFAULT_NAMES = {code: name for code, name, _ in DEFAULT_CHART}
_POSTABLE_LEVEL = 4


def account_level(code: str) -> int:
    return code.count(".") + 1


def parent_code(code: str) -> Optional[str]:
    if "." not in code:
        return None
    return code.rsplit(".", 1)[0]


def natural_side(account_type: AccountType) -> BalanceSide:
    if account_type in (AccountType.ASSET, AccountType.EXPENSE):
        return BalanceSide.DEBIT
    return BalanceSide.CREDIT


def default_account_name(code: str) -> str:
    return _DEFAULT_NAMES.get(code, code)


def default_accounts(tenant_id: str, currency: str) -> list[Account]:
    """Build (unsaved) Account rows for the default chart."""
    return [
        Account(
            tenant_id=tenant_id,
            code=code,
            name=name,
            account_type=account_type,
            balance_side=natural_side(account_type),
            level=account_level(code),
            parent_code=parent_code(code),
            allows_postings=account_level(code) == _POSTABLE_LEVEL,
            currency=currency,
            is_active=True,
        )
        for code, name, account_type in DEFAULT_CHART
    ]


# ---------------------------------------------------------------------------
# Resolution table
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Lookup:
    """Resolve one side of an entry from an operation attribute.

    ``table`` maps the attribute value to an account code; with no table the
    attribute value is itself the code.  When ``override`` names an attribute
    that is present (a cash account's ledger code), it replaces a treasury
    code from the table.  The attribute is still validated first.
    """

    attribute: str
    table: Optional[Mapping[str, str]] = None
    override: Optional[str] = None


Rule = Union[str, Lookup]

# Money coming in: a card receipt settles into the bank
RECEIPT_ACCOUNTS = {
    "cash": CASH,
    "transfer": BANKS,
    "check": BANKS,
    "card": BANKS,
}

# Money going out: paying by card is a new liability
DISBURSEMENT_ACCOUNTS = {
    "cash": CASH,
    "transfer": BANKS,
    "check": BANKS,
    "card": CREDIT_CARDS,
}

INCOME_ACCOUNTS = {
    "sales": SALES,
    "services": SERVICE_INCOME,
    "other_income": OTHER_INCOME,
}

EXPENSE_ACCOUNTS = {
    "purchases": PURCHASES,
    "services": SERVICES_EXPENSE,
    "rent": RENT,
    "other_expense": SUNDRY_EXPENSES,
}

# Codes a cash account's own ledger code may stand in for
TREASURY_ACCOUNTS = frozenset({CASH, BANKS})

_RECEIPT = Lookup("payment_method", RECEIPT_ACCOUNTS, override="cash_ledger_code")
_DISBURSEMENT = Lookup("payment_method", DISBURSEMENT_ACCOUNTS, override="cash_ledger_code")
_INCOME = Lookup("category", INCOME_ACCOUNTS)
_EXPENSE = Lookup("category", EXPENSE_ACCOUNTS)

# operation type -> (debit rule, credit rule)
RESOLUTION_TABLE: dict[OperationType, tuple[Rule, Rule]] = {
    OperationType.CASH_IN: (_RECEIPT, _INCOME),
    OperationType.EXPENSE_PAYMENT: (_EXPENSE, _DISBURSEMENT),
    OperationType.CREDIT_PURCHASE: (_EXPENSE, SUPPLIERS),
    OperationType.DEBT_PAYMENT: (SUPPLIERS, _DISBURSEMENT),
    OperationType.MERCHANDISE_INTAKE: (MERCHANDISE, SUPPLIERS),
    OperationType.SALE_ON_ACCOUNT: (CUSTOMERS, _INCOME),
    OperationType.CLIENT_COLLECTION: (_RECEIPT, CUSTOMERS),
    OperationType.TRANSFER: (
        Lookup("destination_ledger_code"),
        Lookup("source_ledger_code"),
    ),
}

# Extra debit line for the tax component, where an operation carries one
TAX_ACCOUNTS: dict[OperationType, str] = {
    OperationType.MERCHANDISE_INTAKE: VAT_CREDIT,
}


@dataclass(frozen=True)
class ResolvedAccounts:
    debit: str
    credit: str
    tax: Optional[str] = None


def _apply_rule(
    rule: Rule, operation_type: OperationType, attributes: Mapping[str, Optional[str]]
) -> str:
    if isinstance(rule, str):
        return rule
    value = attributes.get(rule.attribute)
    if not value:
        raise UnmappedCategory(
            f"'{rule.attribute}' is required to post a {operation_type.value} operation"
        )
    if rule.table is None:
        return value
    code = rule.table.get(value)
    if code is None:
        raise UnmappedCategory(
            f"Unknown {rule.attribute} '{value}' for {operation_type.value}; "
            f"expected one of {sorted(rule.table)}"
        )
    override = attributes.get(rule.override) if rule.override else None
    if override:
        if code not in TREASURY_ACCOUNTS:
            raise InvalidAccount(
                f"{rule.attribute} '{value}' posts to {code}; "
                f"a cash account cannot be used for {operation_type.value}"
            )
        return override
    return code


def resolve_accounts(
    operation_type: OperationType | str, attributes: Mapping[str, Optional[str]]
) -> ResolvedAccounts:
    """Map an operation and its attributes to the debit/credit account codes."""
    try:
        op = OperationType(operation_type)
    except ValueError:
        raise UnmappedCategory(f"Unknown operation type '{operation_type}'")

    debit_rule, credit_rule = RESOLUTION_TABLE[op]
    return ResolvedAccounts(
        debit=_apply_rule(debit_rule, op, attributes),
        credit=_apply_rule(credit_rule, op, attributes),
        tax=TAX_ACCOUNTS.get(op),
    )


# ---------------------------------------------------------------------------
# Persisted chart queries
# ---------------------------------------------------------------------------

async def list_accounts(
    db: AsyncSession,
    tenant_id: str,
    *,
    account_type: AccountType | None = None,
    postable_only: bool = False,
) -> list[Account]:
    q = select(Account).where(Account.tenant_id == tenant_id)
    if account_type:
        q = q.where(Account.account_type == account_type)
    if postable_only:
        q = q.where(Account.allows_postings.is_(True))
    result = await db.execute(q.order_by(Account.code))
    return list(result.scalars().all())


async def get_account_by_code(db: AsyncSession, tenant_id: str, code: str) -> Account:
    result = await db.execute(
        select(Account).where(Account.tenant_id == tenant_id, Account.code == code)
    )
    account = result.scalar_one_or_none()
    if account is None:
        raise NotFound(f"Account {code} not found")
    return account


async def get_postable_accounts(
    db: AsyncSession, tenant_id: str, codes: list[str]
) -> dict[str, Account]:
    """Load accounts by code, requiring each to be active and a leaf."""
    result = await db.execute(
        select(Account).where(Account.tenant_id == tenant_id, Account.code.in_(set(codes)))
    )
    accounts = {a.code: a for a in result.scalars().all()}
    for code in codes:
        account = accounts.get(code)
        if account is None:
            raise InvalidAccount(f"Account {code} is not in the chart of accounts")
        if not account.is_active:
            raise InvalidAccount(f"Account {code} ({account.name}) is inactive")
        if not account.allows_postings:
            raise InvalidAccount(
                f"Account {code} ({account.name}) is a group account and cannot receive postings"
            )
    return accounts


async def get_account_balance(db: AsyncSession, account: Account) -> dict:
    """Posted debit/credit totals and the balance on the account's natural side.

    Group accounts aggregate every descendant code.
    """
    q = (
        select(
            sa_func.coalesce(sa_func.sum(JournalLine.debit_amount), 0).label("dr"),
            sa_func.coalesce(sa_func.sum(JournalLine.credit_amount), 0).label("cr"),
        )
        .join(JournalEntry, JournalLine.journal_entry_id == JournalEntry.id)
        .where(
            JournalEntry.tenant_id == account.tenant_id,
            # voided entries stay in the ledger alongside their reversal
            JournalEntry.status.in_([JournalEntryStatus.POSTED, JournalEntryStatus.VOIDED]),
        )
    )
    if account.allows_postings:
        q = q.where(JournalLine.account_code == account.code)
    else:
        q = q.where(JournalLine.account_code.like(f"{account.code}.%"))

    row = (await db.execute(q)).one()
    dr = Decimal(str(row.dr))
    cr = Decimal(str(row.cr))
    balance = dr - cr if account.balance_side == BalanceSide.DEBIT else cr - dr
    return {"debit_total": dr, "credit_total": cr, "balance": balance}
