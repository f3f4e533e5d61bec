"""Merchandise intake: purchase invoice, stock movements and the ledger posting.

The invoice, its items, the stock movements, the product stock update,
the journal entry and the supplier balance delta are written in one unit
of work.  The operation id makes the whole intake idempotent.
"""

import logging
from dataclasses import dataclass
from datetime import date
from decimal import Decimal, ROUND_HALF_UP

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from tally.models.party import MovementSide
from tally.models.stock import (
    Product,
    PurchaseInvoice,
    PurchaseInvoiceItem,
    StockMovement,
    StockMovementKind,
)
from tally.services import third_parties
from tally.services.errors import AlreadyExists, InvalidAmount, NotFound
from tally.services.gl import journal_engine, posting
from tally.services.gl.operations import MerchandiseIntake

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")


@dataclass
class IntakeItem:
    product_id: int
    quantity: Decimal
    unit_cost: Decimal


def _money(value) -> Decimal:
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)


def compute_totals(items: list[IntakeItem], tax_rate: Decimal) -> tuple[Decimal, Decimal, Decimal]:
    """(subtotal, tax, total) with each line rounded before summing."""
    subtotal = sum(
        (_money(Decimal(str(i.quantity)) * Decimal(str(i.unit_cost))) for i in items),
        Decimal("0.00"),
    )
    tax = _money(subtotal * Decimal(str(tax_rate)))
    return subtotal, tax, subtotal + tax


async def get_invoice(db: AsyncSession, tenant_id: str, invoice_id: int) -> PurchaseInvoice:
    result = await db.execute(
        select(PurchaseInvoice)
        .where(PurchaseInvoice.id == invoice_id, PurchaseInvoice.tenant_id == tenant_id)
        .options(selectinload(PurchaseInvoice.items))
    )
    invoice = result.scalar_one_or_none()
    if invoice is None:
        raise NotFound(f"Purchase invoice {invoice_id} not found")
    return invoice


async def _invoice_for_entry(db: AsyncSession, journal_entry_id: int) -> PurchaseInvoice | None:
    result = await db.execute(
        select(PurchaseInvoice)
        .where(PurchaseInvoice.journal_entry_id == journal_entry_id)
        .options(selectinload(PurchaseInvoice.items))
    )
    return result.scalar_one_or_none()


async def _load_products(
    db: AsyncSession, tenant_id: str, product_ids: list[int]
) -> dict[int, Product]:
    result = await db.execute(
        select(Product).where(Product.tenant_id == tenant_id, Product.id.in_(set(product_ids)))
    )
    products = {p.id: p for p in result.scalars().all()}
    missing = sorted(set(product_ids) - set(products))
    if missing:
        raise NotFound(f"Products not found: {missing}")
    return products


async def register_merchandise_intake(
    db: AsyncSession,
    *,
    tenant_id: str,
    operation_id: str,
    supplier_id: int,
    invoice_number: str,
    invoice_date: date,
    items: list[IntakeItem],
    tax_rate: Decimal,
    notes: str | None = None,
) -> PurchaseInvoice:
    if not items:
        raise InvalidAmount("At least one item is required")
    for item in items:
        if Decimal(str(item.quantity)) <= 0:
            raise InvalidAmount(f"Quantity for product {item.product_id} must be positive")
        if Decimal(str(item.unit_cost)) < 0:
            raise InvalidAmount(f"Unit cost for product {item.product_id} must be >= 0")

    existing = await journal_engine.find_by_source_reference(db, tenant_id, operation_id)
    if existing is not None:
        invoice = await _invoice_for_entry(db, existing.id)
        if invoice is not None:
            logger.info("Intake %s already registered as invoice %s", operation_id, invoice.id)
            return invoice
        raise AlreadyExists(f"Operation {operation_id} was already posted as entry #{existing.number}")

    supplier = await third_parties.get_third_party(
        db, tenant_id, supplier_id, side=MovementSide.SUPPLIER
    )
    dup = await db.execute(
        select(PurchaseInvoice.id).where(
            PurchaseInvoice.tenant_id == tenant_id,
            PurchaseInvoice.supplier_id == supplier.id,
            PurchaseInvoice.invoice_number == invoice_number,
        )
    )
    if dup.scalar_one_or_none() is not None:
        raise AlreadyExists(f"Invoice {invoice_number} from supplier {supplier.id} is already registered")

    products = await _load_products(db, tenant_id, [i.product_id for i in items])
    subtotal, tax, total = compute_totals(items, tax_rate)
    if subtotal <= 0:
        raise InvalidAmount("Invoice subtotal must be positive")

    invoice = PurchaseInvoice(
        tenant_id=tenant_id,
        supplier_id=supplier.id,
        invoice_number=invoice_number,
        invoice_date=invoice_date,
        subtotal=subtotal,
        tax_amount=tax,
        total=total,
        notes=notes,
    )
    for item in items:
        qty = Decimal(str(item.quantity))
        cost = _money(item.unit_cost)
        invoice.items.append(PurchaseInvoiceItem(
            product_id=item.product_id,
            quantity=qty,
            unit_cost=cost,
            line_total=_money(qty * cost),
        ))
    db.add(invoice)
    await db.flush()

    for item in items:
        product = products[item.product_id]
        qty = Decimal(str(item.quantity))
        product.stock = Decimal(str(product.stock)) + qty
        product.unit_cost = _money(item.unit_cost)
        db.add(StockMovement(
            tenant_id=tenant_id,
            product_id=product.id,
            invoice_id=invoice.id,
            kind=StockMovementKind.IN,
            quantity=qty,
            unit_cost=product.unit_cost,
            stock_after=product.stock,
            movement_date=invoice_date,
        ))

    result = await posting.record_operation(
        db,
        tenant_id=tenant_id,
        operation=MerchandiseIntake(
            operation_id=operation_id,
            amount=subtotal,
            tax_amount=tax,
            counterparty_id=supplier.id,
            operation_date=invoice_date,
            description=f"Merchandise intake - invoice {invoice_number}",
        ),
    )
    invoice.journal_entry_id = result.entry.id
    await db.flush()
    logger.info(
        "Registered intake %s: invoice %s supplier %s subtotal=%s tax=%s total=%s",
        operation_id, invoice_number, supplier.id, subtotal, tax, total,
    )
    return invoice
