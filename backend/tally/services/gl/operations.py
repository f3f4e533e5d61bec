"""Business operations that generate journal entries.

Each operation type is one variant of a tagged union keyed by
``operation_type``; a variant carries exactly the fields its journal lines
need.  Amount checks happen in the posting service so rejections carry
the ``InvalidAmount`` kind.
"""

import enum
from datetime import date
from decimal import Decimal
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, Field


class OperationType(str, enum.Enum):
    CASH_IN = "cash_in"
    EXPENSE_PAYMENT = "expense_payment"
    CREDIT_PURCHASE = "credit_purchase"
    DEBT_PAYMENT = "debt_payment"
    MERCHANDISE_INTAKE = "merchandise_intake"
    SALE_ON_ACCOUNT = "sale_on_account"
    CLIENT_COLLECTION = "client_collection"
    TRANSFER = "transfer"


OPERATION_LABELS = {
    OperationType.CASH_IN: "Cash receipt",
    OperationType.EXPENSE_PAYMENT: "Expense payment",
    OperationType.CREDIT_PURCHASE: "Purchase on credit",
    OperationType.DEBT_PAYMENT: "Supplier debt payment",
    OperationType.MERCHANDISE_INTAKE: "Merchandise intake",
    OperationType.SALE_ON_ACCOUNT: "Sale on account",
    OperationType.CLIENT_COLLECTION: "Client collection",
    OperationType.TRANSFER: "Transfer between accounts",
}


class _OperationBase(BaseModel):
    # Idempotency key: the originating operation's id
    operation_id: str = Field(min_length=1, max_length=100)
    amount: Decimal
    operation_date: date
    description: Optional[str] = None


class CashIn(_OperationBase):
    operation_type: Literal["cash_in"] = "cash_in"
    payment_method: str
    category: str
    cash_account_id: Optional[int] = None
    counterparty_id: Optional[int] = None


class ExpensePayment(_OperationBase):
    operation_type: Literal["expense_payment"] = "expense_payment"
    payment_method: str
    category: str
    cash_account_id: Optional[int] = None
    counterparty_id: Optional[int] = None


class CreditPurchase(_OperationBase):
    operation_type: Literal["credit_purchase"] = "credit_purchase"
    category: str
    counterparty_id: int


class DebtPayment(_OperationBase):
    operation_type: Literal["debt_payment"] = "debt_payment"
    payment_method: str
    counterparty_id: int
    cash_account_id: Optional[int] = None


class MerchandiseIntake(_OperationBase):
    """``amount`` is the net subtotal; ``tax_amount`` adds the VAT line."""

    operation_type: Literal["merchandise_intake"] = "merchandise_intake"
    counterparty_id: int
    tax_amount: Decimal = Decimal("0.00")


class SaleOnAccount(_OperationBase):
    operation_type: Literal["sale_on_account"] = "sale_on_account"
    counterparty_id: int
    category: str = "sales"


class ClientCollection(_OperationBase):
    operation_type: Literal["client_collection"] = "client_collection"
    payment_method: str
    counterparty_id: int
    cash_account_id: Optional[int] = None


class Transfer(_OperationBase):
    operation_type: Literal["transfer"] = "transfer"
    source_cash_account_id: int
    destination_cash_account_id: int


Operation = Annotated[
    Union[
        CashIn,
        ExpensePayment,
        CreditPurchase,
        DebtPayment,
        MerchandiseIntake,
        SaleOnAccount,
        ClientCollection,
        Transfer,
    ],
    Field(discriminator="operation_type"),
]
