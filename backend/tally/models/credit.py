"""Installment credits, their schedules, and the payments applied to them."""

import enum
from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import (
    String, Numeric, Integer, Enum, DateTime, Date, ForeignKey, Text, Index,
    UniqueConstraint, func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from tally.database import Base


class CreditStatus(str, enum.Enum):
    ACTIVE = "active"
    PAID = "paid"
    DEFAULTED = "defaulted"
    CANCELLED = "cancelled"


class InstallmentStatus(str, enum.Enum):
    PENDING = "pending"
    OVERDUE = "overdue"
    PARTIAL = "partial"
    PAID = "paid"


class PaymentMethod(str, enum.Enum):
    CASH = "cash"
    TRANSFER = "transfer"
    CHECK = "check"
    CARD = "card"


class PaymentStatus(str, enum.Enum):
    CONFIRMED = "confirmed"
    REVERSED = "reversed"


class AllocationComponent(str, enum.Enum):
    PENALTY = "penalty"
    INTEREST = "interest"
    PRINCIPAL = "principal"


UNPAID_STATUSES = (
    InstallmentStatus.PENDING,
    InstallmentStatus.OVERDUE,
    InstallmentStatus.PARTIAL,
)


class Credit(Base):
    __tablename__ = "credits"
    __table_args__ = (
        Index("ix_credit_tenant_client", "tenant_id", "client_id"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    tenant_id: Mapped[str] = mapped_column(ForeignKey("tenants.id"), nullable=False)
    client_id: Mapped[int] = mapped_column(
        ForeignKey("third_parties.id"), nullable=False
    )
    order_reference: Mapped[str | None] = mapped_column(String(100), nullable=True)

    original_amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    down_payment: Mapped[Decimal] = mapped_column(
        Numeric(14, 2), default=Decimal("0.00"), nullable=False
    )
    financed_amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    monthly_rate: Mapped[Decimal] = mapped_column(Numeric(8, 6), nullable=False)
    installment_count: Mapped[int] = mapped_column(Integer, nullable=False)
    installment_value: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    total_payable: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    remaining_principal: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)

    status: Mapped[CreditStatus] = mapped_column(
        Enum(CreditStatus), default=CreditStatus.ACTIVE, nullable=False
    )
    grant_date: Mapped[date] = mapped_column(Date, nullable=False)
    first_due_date: Mapped[date] = mapped_column(Date, nullable=False)
    status_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    installments = relationship(
        "Installment",
        back_populates="credit",
        cascade="all, delete-orphan",
        order_by="Installment.sequence",
    )


class Installment(Base):
    """One row of a credit's schedule.  Settlement fields are versioned."""

    __tablename__ = "installments"
    __table_args__ = (
        UniqueConstraint("credit_id", "sequence", name="uq_installment_credit_seq"),
        Index("ix_installment_client_due", "tenant_id", "client_id", "due_date"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    tenant_id: Mapped[str] = mapped_column(ForeignKey("tenants.id"), nullable=False)
    credit_id: Mapped[int] = mapped_column(
        ForeignKey("credits.id", ondelete="CASCADE"), nullable=False
    )
    client_id: Mapped[int] = mapped_column(
        ForeignKey("third_parties.id"), nullable=False
    )
    sequence: Mapped[int] = mapped_column(Integer, nullable=False)
    due_date: Mapped[date] = mapped_column(Date, nullable=False)

    principal_portion: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    interest_portion: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    total_due: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)

    # amount_paid includes penalties; remaining_balance excludes them
    amount_paid: Mapped[Decimal] = mapped_column(
        Numeric(14, 2), default=Decimal("0.00"), nullable=False
    )
    penalty_paid: Mapped[Decimal] = mapped_column(
        Numeric(14, 2), default=Decimal("0.00"), nullable=False
    )
    remaining_balance: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    status: Mapped[InstallmentStatus] = mapped_column(
        Enum(InstallmentStatus), default=InstallmentStatus.PENDING, nullable=False
    )
    paid_at: Mapped[date | None] = mapped_column(Date, nullable=True)

    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    credit = relationship("Credit", back_populates="installments")

    __mapper_args__ = {"version_id_col": version}


class Payment(Base):
    __tablename__ = "payments"
    __table_args__ = (
        UniqueConstraint("tenant_id", "external_reference", name="uq_payment_external_ref"),
        Index("ix_payment_tenant_client", "tenant_id", "client_id"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    tenant_id: Mapped[str] = mapped_column(ForeignKey("tenants.id"), nullable=False)
    client_id: Mapped[int] = mapped_column(
        ForeignKey("third_parties.id"), nullable=False
    )
    amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    applied_amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    unapplied_amount: Mapped[Decimal] = mapped_column(
        Numeric(14, 2), default=Decimal("0.00"), nullable=False
    )
    method: Mapped[PaymentMethod] = mapped_column(Enum(PaymentMethod), nullable=False)
    status: Mapped[PaymentStatus] = mapped_column(
        Enum(PaymentStatus), default=PaymentStatus.CONFIRMED, nullable=False
    )
    external_reference: Mapped[str | None] = mapped_column(String(100), nullable=True)
    payment_date: Mapped[date] = mapped_column(Date, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    allocations = relationship(
        "PaymentAllocation",
        back_populates="payment",
        cascade="all, delete-orphan",
        order_by="PaymentAllocation.id",
    )


class PaymentAllocation(Base):
    """Portion of a payment applied to one installment."""

    __tablename__ = "payment_allocations"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    payment_id: Mapped[int] = mapped_column(
        ForeignKey("payments.id", ondelete="CASCADE"), nullable=False, index=True
    )
    installment_id: Mapped[int] = mapped_column(
        ForeignKey("installments.id"), nullable=False, index=True
    )
    credit_id: Mapped[int] = mapped_column(ForeignKey("credits.id"), nullable=False)
    applied_amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    # Deepest component the funds reached (penalty -> interest -> principal)
    component_type: Mapped[AllocationComponent] = mapped_column(
        Enum(AllocationComponent), nullable=False
    )
    penalty_amount: Mapped[Decimal] = mapped_column(
        Numeric(14, 2), default=Decimal("0.00"), nullable=False
    )
    interest_amount: Mapped[Decimal] = mapped_column(
        Numeric(14, 2), default=Decimal("0.00"), nullable=False
    )
    principal_amount: Mapped[Decimal] = mapped_column(
        Numeric(14, 2), default=Decimal("0.00"), nullable=False
    )
    days_overdue: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    payment = relationship("Payment", back_populates="allocations")
