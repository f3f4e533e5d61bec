"""SQLAlchemy models for the Tally bookkeeping backend."""

from tally.models.tenant import Tenant
from tally.models.gl import (
    Account,
    AccountType,
    BalanceSide,
    EntryType,
    JournalEntry,
    JournalEntryStatus,
    JournalLine,
)
from tally.models.party import ThirdParty, ThirdPartyMovement, PartyRole, MovementSide
from tally.models.treasury import CashAccount, CashMovement, CashAccountKind
from tally.models.stock import (
    Product,
    PurchaseInvoice,
    PurchaseInvoiceItem,
    StockMovement,
    StockMovementKind,
)
from tally.models.credit import (
    Credit,
    CreditStatus,
    Installment,
    InstallmentStatus,
    Payment,
    PaymentAllocation,
    PaymentMethod,
    PaymentStatus,
    AllocationComponent,
)
from tally.models.error_log import ErrorLog, ErrorSeverity

__all__ = [
    "Tenant",
    "Account",
    "AccountType",
    "BalanceSide",
    "EntryType",
    "JournalEntry",
    "JournalEntryStatus",
    "JournalLine",
    "ThirdParty",
    "ThirdPartyMovement",
    "PartyRole",
    "MovementSide",
    "CashAccount",
    "CashMovement",
    "CashAccountKind",
    "Product",
    "PurchaseInvoice",
    "PurchaseInvoiceItem",
    "StockMovement",
    "StockMovementKind",
    "Credit",
    "CreditStatus",
    "Installment",
    "InstallmentStatus",
    "Payment",
    "PaymentAllocation",
    "PaymentMethod",
    "PaymentStatus",
    "AllocationComponent",
    "ErrorLog",
    "ErrorSeverity",
]
