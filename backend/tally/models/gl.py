"""General Ledger models.

Double-entry bookkeeping scoped per tenant:
- Hierarchical chart of accounts (dot-separated codes, only leaves postable)
- Immutable journal entries; corrections are reversing entries
"""

import enum
from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import (
    String,
    Numeric,
    Integer,
    Boolean,
    Enum,
    DateTime,
    Date,
    ForeignKey,
    Text,
    Index,
    CheckConstraint,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from tally.database import Base


# ===================================================================
# Enumerations
# ===================================================================


class AccountType(str, enum.Enum):
    ASSET = "asset"
    LIABILITY = "liability"
    EQUITY = "equity"
    INCOME = "income"
    EXPENSE = "expense"


class BalanceSide(str, enum.Enum):
    DEBIT = "debit"
    CREDIT = "credit"


class EntryType(str, enum.Enum):
    OPENING = "opening"
    OPERATIONAL = "operational"
    ADJUSTMENT = "adjustment"
    CLOSING = "closing"


class JournalEntryStatus(str, enum.Enum):
    DRAFT = "draft"
    POSTED = "posted"
    VOIDED = "voided"


# ===================================================================
# Chart of Accounts
# ===================================================================


class Account(Base):
    """Ledger account.  Group accounts (``allows_postings=False``) only aggregate."""

    __tablename__ = "accounts"
    __table_args__ = (
        UniqueConstraint("tenant_id", "code", name="uq_account_tenant_code"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    tenant_id: Mapped[str] = mapped_column(
        ForeignKey("tenants.id"), nullable=False, index=True
    )
    code: Mapped[str] = mapped_column(String(20), nullable=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    account_type: Mapped[AccountType] = mapped_column(Enum(AccountType), nullable=False)
    balance_side: Mapped[BalanceSide] = mapped_column(Enum(BalanceSide), nullable=False)
    level: Mapped[int] = mapped_column(Integer, nullable=False)
    parent_code: Mapped[str | None] = mapped_column(String(20), nullable=True)
    allows_postings: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )


# ===================================================================
# Journal
# ===================================================================


class JournalEntry(Base):
    """Double-entry journal entry header.

    Once posted, lines and amounts are never modified.  Voiding only flips
    the status and links the reversing entry.
    """

    __tablename__ = "journal_entries"
    __table_args__ = (
        UniqueConstraint("tenant_id", "number", name="uq_je_tenant_number"),
        UniqueConstraint("tenant_id", "source_reference", name="uq_je_tenant_source"),
        Index("ix_je_tenant_date", "tenant_id", "entry_date"),
        CheckConstraint("total_debit = total_credit", name="ck_je_balanced"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    tenant_id: Mapped[str] = mapped_column(ForeignKey("tenants.id"), nullable=False)
    number: Mapped[int] = mapped_column(Integer, nullable=False)
    entry_date: Mapped[date] = mapped_column(Date, nullable=False)
    entry_type: Mapped[EntryType] = mapped_column(
        Enum(EntryType), default=EntryType.OPERATIONAL, nullable=False
    )
    description: Mapped[str] = mapped_column(Text, nullable=False)

    total_debit: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    total_credit: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    status: Mapped[JournalEntryStatus] = mapped_column(
        Enum(JournalEntryStatus), default=JournalEntryStatus.POSTED, nullable=False
    )

    # Originating operation (idempotency key) and its type
    source_reference: Mapped[str | None] = mapped_column(String(100), nullable=True)
    operation_type: Mapped[str | None] = mapped_column(String(40), nullable=True)
    third_party_id: Mapped[int | None] = mapped_column(
        ForeignKey("third_parties.id"), nullable=True
    )

    # Reversal linkage
    reversal_of_id: Mapped[int | None] = mapped_column(
        ForeignKey("journal_entries.id"), nullable=True
    )
    reversed_by_id: Mapped[int | None] = mapped_column(
        ForeignKey("journal_entries.id"), nullable=True
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    # Relationships
    lines = relationship(
        "JournalLine",
        back_populates="journal_entry",
        cascade="all, delete-orphan",
        order_by="JournalLine.line_number",
    )

    @property
    def is_balanced(self) -> bool:
        return self.total_debit == self.total_credit


class JournalLine(Base):
    """Individual debit or credit line within a journal entry."""

    __tablename__ = "journal_lines"
    __table_args__ = (
        CheckConstraint(
            "(debit_amount = 0 AND credit_amount > 0) OR "
            "(debit_amount > 0 AND credit_amount = 0)",
            name="ck_jl_debit_or_credit",
        ),
        Index("ix_jl_account", "account_id"),
        Index("ix_jl_entry", "journal_entry_id"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    journal_entry_id: Mapped[int] = mapped_column(
        ForeignKey("journal_entries.id", ondelete="CASCADE"), nullable=False
    )
    line_number: Mapped[int] = mapped_column(Integer, nullable=False)

    account_id: Mapped[int] = mapped_column(ForeignKey("accounts.id"), nullable=False)
    account_code: Mapped[str] = mapped_column(String(20), nullable=False)
    account_name: Mapped[str] = mapped_column(String(200), nullable=False)

    debit_amount: Mapped[Decimal] = mapped_column(
        Numeric(14, 2), default=Decimal("0.00"), nullable=False
    )
    credit_amount: Mapped[Decimal] = mapped_column(
        Numeric(14, 2), default=Decimal("0.00"), nullable=False
    )
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    journal_entry = relationship("JournalEntry", back_populates="lines")
