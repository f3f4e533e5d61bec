"""Third parties (clients and suppliers) and their movement ledger."""

import enum
from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import (
    String, Numeric, Integer, Enum, DateTime, Date, ForeignKey, Text, Index,
    UniqueConstraint, func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from tally.database import Base


class PartyRole(str, enum.Enum):
    CLIENT = "client"
    SUPPLIER = "supplier"
    BOTH = "both"


class MovementSide(str, enum.Enum):
    CLIENT = "client"
    SUPPLIER = "supplier"


class ThirdParty(Base):
    __tablename__ = "third_parties"
    __table_args__ = (
        UniqueConstraint("tenant_id", "document_id", name="uq_party_tenant_document"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    tenant_id: Mapped[str] = mapped_column(
        ForeignKey("tenants.id"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    document_id: Mapped[str] = mapped_column(String(30), nullable=False)
    role: Mapped[PartyRole] = mapped_column(Enum(PartyRole), nullable=False)
    email: Mapped[str | None] = mapped_column(String(200), nullable=True)
    phone: Mapped[str | None] = mapped_column(String(30), nullable=True)

    # Running balances, written only by the posting that moves them
    balance_as_client: Mapped[Decimal] = mapped_column(
        Numeric(14, 2), default=Decimal("0.00"), nullable=False
    )
    balance_as_supplier: Mapped[Decimal] = mapped_column(
        Numeric(14, 2), default=Decimal("0.00"), nullable=False
    )

    # Installment credit line
    credit_limit: Mapped[Decimal] = mapped_column(
        Numeric(14, 2), default=Decimal("0.00"), nullable=False
    )
    credit_used: Mapped[Decimal] = mapped_column(
        Numeric(14, 2), default=Decimal("0.00"), nullable=False
    )

    # Portal magic link (only the hash is stored)
    access_token_hash: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)
    token_expires_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    movements = relationship(
        "ThirdPartyMovement",
        back_populates="third_party",
        order_by="ThirdPartyMovement.id",
    )

    # Bumped on every update; balances and credit_used are read-modify-write
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version}

    @property
    def credit_available(self) -> Decimal:
        return max(Decimal("0.00"), Decimal(str(self.credit_limit)) - Decimal(str(self.credit_used)))

    @property
    def is_client(self) -> bool:
        return self.role in (PartyRole.CLIENT, PartyRole.BOTH)

    @property
    def is_supplier(self) -> bool:
        return self.role in (PartyRole.SUPPLIER, PartyRole.BOTH)


class ThirdPartyMovement(Base):
    """Append-only record of every balance change on a third party."""

    __tablename__ = "third_party_movements"
    __table_args__ = (
        Index("ix_tpm_party", "third_party_id"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    tenant_id: Mapped[str] = mapped_column(ForeignKey("tenants.id"), nullable=False)
    third_party_id: Mapped[int] = mapped_column(
        ForeignKey("third_parties.id"), nullable=False
    )
    journal_entry_id: Mapped[int | None] = mapped_column(
        ForeignKey("journal_entries.id"), nullable=True, index=True
    )
    movement_date: Mapped[date] = mapped_column(Date, nullable=False)
    side: Mapped[MovementSide] = mapped_column(Enum(MovementSide), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    balance_after: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    third_party = relationship("ThirdParty", back_populates="movements")
