"""Tenant root: every other row is scoped by ``tenant_id``."""

from datetime import datetime
from decimal import Decimal

from sqlalchemy import String, Numeric, DateTime, JSON, func
from sqlalchemy.orm import Mapped, mapped_column

from tally.database import Base


class Tenant(Base):
    __tablename__ = "tenants"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)

    # Per-tenant overrides of the configured defaults
    financing_offers: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    daily_penalty_rate: Mapped[Decimal | None] = mapped_column(
        Numeric(8, 6), nullable=True
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
