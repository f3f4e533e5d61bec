"""Initial schema: tenants, ledger, third parties, treasury, stock, credits.

Revision ID: 001_initial_schema
Revises:
Create Date: 2026-10-19
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "001_initial_schema"
down_revision = None
branch_labels = None
depends_on = None


def _money(name: str, nullable: bool = False, default: bool = False) -> sa.Column:
    kwargs = {"server_default": "0"} if default else {}
    return sa.Column(name, sa.Numeric(14, 2), nullable=nullable, **kwargs)


def _created_at() -> sa.Column:
    return sa.Column("created_at", sa.DateTime(timezone=True), nullable=True, server_default=sa.func.now())


def upgrade() -> None:
    op.create_table(
        "tenants",
        sa.Column("id", sa.String(length=64), nullable=False),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("financing_offers", sa.JSON(), nullable=True),
        sa.Column("daily_penalty_rate", sa.Numeric(8, 6), nullable=True),
        _created_at(),
        sa.PrimaryKeyConstraint("id"),
    )

    # ── Chart of accounts ────────────────────────────────────────
    op.create_table(
        "accounts",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("tenant_id", sa.String(length=64), nullable=False),
        sa.Column("code", sa.String(length=20), nullable=False),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column(
            "account_type",
            sa.Enum("ASSET", "LIABILITY", "EQUITY", "INCOME", "EXPENSE", name="accounttype"),
            nullable=False,
        ),
        sa.Column("balance_side", sa.Enum("DEBIT", "CREDIT", name="balanceside"), nullable=False),
        sa.Column("level", sa.Integer(), nullable=False),
        sa.Column("parent_code", sa.String(length=20), nullable=True),
        sa.Column("allows_postings", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("currency", sa.String(length=3), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        _created_at(),
        sa.ForeignKeyConstraint(["tenant_id"], ["tenants.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("tenant_id", "code", name="uq_account_tenant_code"),
    )
    op.create_index("ix_accounts_tenant_id", "accounts", ["tenant_id"], unique=False)

    # ── Third parties ────────────────────────────────────────────
    op.create_table(
        "third_parties",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("tenant_id", sa.String(length=64), nullable=False),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("document_id", sa.String(length=30), nullable=False),
        sa.Column("role", sa.Enum("CLIENT", "SUPPLIER", "BOTH", name="partyrole"), nullable=False),
        sa.Column("email", sa.String(length=200), nullable=True),
        sa.Column("phone", sa.String(length=30), nullable=True),
        _money("balance_as_client", default=True),
        _money("balance_as_supplier", default=True),
        _money("credit_limit", default=True),
        _money("credit_used", default=True),
        sa.Column("access_token_hash", sa.String(length=64), nullable=True),
        sa.Column("token_expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        _created_at(),
        sa.ForeignKeyConstraint(["tenant_id"], ["tenants.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("tenant_id", "document_id", name="uq_party_tenant_document"),
    )
    op.create_index("ix_third_parties_tenant_id", "third_parties", ["tenant_id"], unique=False)
    op.create_index(
        "ix_third_parties_access_token_hash", "third_parties", ["access_token_hash"], unique=False
    )

    # ── Journal ──────────────────────────────────────────────────
    op.create_table(
        "journal_entries",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("tenant_id", sa.String(length=64), nullable=False),
        sa.Column("number", sa.Integer(), nullable=False),
        sa.Column("entry_date", sa.Date(), nullable=False),
        sa.Column(
            "entry_type",
            sa.Enum("OPENING", "OPERATIONAL", "ADJUSTMENT", "CLOSING", name="entrytype"),
            nullable=False,
        ),
        sa.Column("description", sa.Text(), nullable=False),
        _money("total_debit"),
        _money("total_credit"),
        sa.Column(
            "status",
            sa.Enum("DRAFT", "POSTED", "VOIDED", name="journalentrystatus"),
            nullable=False,
        ),
        sa.Column("source_reference", sa.String(length=100), nullable=True),
        sa.Column("operation_type", sa.String(length=40), nullable=True),
        sa.Column("third_party_id", sa.Integer(), nullable=True),
        sa.Column("reversal_of_id", sa.Integer(), nullable=True),
        sa.Column("reversed_by_id", sa.Integer(), nullable=True),
        _created_at(),
        sa.ForeignKeyConstraint(["tenant_id"], ["tenants.id"]),
        sa.ForeignKeyConstraint(["third_party_id"], ["third_parties.id"]),
        sa.ForeignKeyConstraint(["reversal_of_id"], ["journal_entries.id"]),
        sa.ForeignKeyConstraint(["reversed_by_id"], ["journal_entries.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("tenant_id", "number", name="uq_je_tenant_number"),
        sa.UniqueConstraint("tenant_id", "source_reference", name="uq_je_tenant_source"),
        sa.CheckConstraint("total_debit = total_credit", name="ck_je_balanced"),
    )
    op.create_index("ix_je_tenant_date", "journal_entries", ["tenant_id", "entry_date"], unique=False)

    op.create_table(
        "journal_lines",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("journal_entry_id", sa.Integer(), nullable=False),
        sa.Column("line_number", sa.Integer(), nullable=False),
        sa.Column("account_id", sa.Integer(), nullable=False),
        sa.Column("account_code", sa.String(length=20), nullable=False),
        sa.Column("account_name", sa.String(length=200), nullable=False),
        _money("debit_amount", default=True),
        _money("credit_amount", default=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.ForeignKeyConstraint(["journal_entry_id"], ["journal_entries.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["account_id"], ["accounts.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint(
            "(debit_amount = 0 AND credit_amount > 0) OR "
            "(debit_amount > 0 AND credit_amount = 0)",
            name="ck_jl_debit_or_credit",
        ),
    )
    op.create_index("ix_jl_account", "journal_lines", ["account_id"], unique=False)
    op.create_index("ix_jl_entry", "journal_lines", ["journal_entry_id"], unique=False)

    op.create_table(
        "third_party_movements",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("tenant_id", sa.String(length=64), nullable=False),
        sa.Column("third_party_id", sa.Integer(), nullable=False),
        sa.Column("journal_entry_id", sa.Integer(), nullable=True),
        sa.Column("movement_date", sa.Date(), nullable=False),
        sa.Column("side", sa.Enum("CLIENT", "SUPPLIER", name="movementside"), nullable=False),
        _money("amount"),
        _money("balance_after"),
        sa.Column("description", sa.Text(), nullable=True),
        _created_at(),
        sa.ForeignKeyConstraint(["tenant_id"], ["tenants.id"]),
        sa.ForeignKeyConstraint(["third_party_id"], ["third_parties.id"]),
        sa.ForeignKeyConstraint(["journal_entry_id"], ["journal_entries.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_tpm_party", "third_party_movements", ["third_party_id"], unique=False)
    op.create_index(
        "ix_third_party_movements_journal_entry_id", "third_party_movements",
        ["journal_entry_id"], unique=False,
    )

    # ── Treasury ─────────────────────────────────────────────────
    op.create_table(
        "cash_accounts",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("tenant_id", sa.String(length=64), nullable=False),
        sa.Column("name", sa.String(length=120), nullable=False),
        sa.Column("kind", sa.Enum("CASH", "BANK", name="cashaccountkind"), nullable=False),
        sa.Column("bank_name", sa.String(length=120), nullable=True),
        sa.Column("ledger_account_code", sa.String(length=20), nullable=False),
        _money("current_balance", default=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        _created_at(),
        sa.ForeignKeyConstraint(["tenant_id"], ["tenants.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_cash_accounts_tenant_id", "cash_accounts", ["tenant_id"], unique=False)

    op.create_table(
        "cash_movements",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("tenant_id", sa.String(length=64), nullable=False),
        sa.Column("cash_account_id", sa.Integer(), nullable=False),
        sa.Column("journal_entry_id", sa.Integer(), nullable=True),
        sa.Column("movement_date", sa.Date(), nullable=False),
        _money("amount"),
        _money("balance_after"),
        sa.Column("description", sa.Text(), nullable=True),
        _created_at(),
        sa.ForeignKeyConstraint(["tenant_id"], ["tenants.id"]),
        sa.ForeignKeyConstraint(["cash_account_id"], ["cash_accounts.id"]),
        sa.ForeignKeyConstraint(["journal_entry_id"], ["journal_entries.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_cash_movements_cash_account_id", "cash_movements", ["cash_account_id"], unique=False)
    op.create_index("ix_cash_movements_journal_entry_id", "cash_movements", ["journal_entry_id"], unique=False)

    # ── Stock ────────────────────────────────────────────────────
    op.create_table(
        "products",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("tenant_id", sa.String(length=64), nullable=False),
        sa.Column("sku", sa.String(length=60), nullable=False),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("stock", sa.Numeric(14, 3), nullable=False, server_default="0"),
        _money("unit_cost", default=True),
        sa.ForeignKeyConstraint(["tenant_id"], ["tenants.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("tenant_id", "sku", name="uq_product_tenant_sku"),
    )
    op.create_index("ix_products_tenant_id", "products", ["tenant_id"], unique=False)

    op.create_table(
        "purchase_invoices",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("tenant_id", sa.String(length=64), nullable=False),
        sa.Column("supplier_id", sa.Integer(), nullable=False),
        sa.Column("invoice_number", sa.String(length=40), nullable=False),
        sa.Column("invoice_date", sa.Date(), nullable=False),
        _money("subtotal"),
        _money("tax_amount"),
        _money("total"),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("journal_entry_id", sa.Integer(), nullable=True),
        _created_at(),
        sa.ForeignKeyConstraint(["tenant_id"], ["tenants.id"]),
        sa.ForeignKeyConstraint(["supplier_id"], ["third_parties.id"]),
        sa.ForeignKeyConstraint(["journal_entry_id"], ["journal_entries.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "tenant_id", "supplier_id", "invoice_number", name="uq_invoice_supplier_number"
        ),
    )
    op.create_index("ix_purchase_invoices_tenant_id", "purchase_invoices", ["tenant_id"], unique=False)
    op.create_index("ix_purchase_invoices_supplier_id", "purchase_invoices", ["supplier_id"], unique=False)

    op.create_table(
        "purchase_invoice_items",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("invoice_id", sa.Integer(), nullable=False),
        sa.Column("product_id", sa.Integer(), nullable=False),
        sa.Column("quantity", sa.Numeric(14, 3), nullable=False),
        _money("unit_cost"),
        _money("line_total"),
        sa.ForeignKeyConstraint(["invoice_id"], ["purchase_invoices.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["product_id"], ["products.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_purchase_invoice_items_invoice_id", "purchase_invoice_items", ["invoice_id"], unique=False
    )

    op.create_table(
        "stock_movements",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("tenant_id", sa.String(length=64), nullable=False),
        sa.Column("product_id", sa.Integer(), nullable=False),
        sa.Column("invoice_id", sa.Integer(), nullable=True),
        sa.Column("kind", sa.Enum("IN", "OUT", name="stockmovementkind"), nullable=False),
        sa.Column("quantity", sa.Numeric(14, 3), nullable=False),
        _money("unit_cost"),
        sa.Column("stock_after", sa.Numeric(14, 3), nullable=False),
        sa.Column("movement_date", sa.Date(), nullable=False),
        _created_at(),
        sa.ForeignKeyConstraint(["tenant_id"], ["tenants.id"]),
        sa.ForeignKeyConstraint(["product_id"], ["products.id"]),
        sa.ForeignKeyConstraint(["invoice_id"], ["purchase_invoices.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_stock_movements_product_id", "stock_movements", ["product_id"], unique=False)

    # ── Credits ──────────────────────────────────────────────────
    op.create_table(
        "credits",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("tenant_id", sa.String(length=64), nullable=False),
        sa.Column("client_id", sa.Integer(), nullable=False),
        sa.Column("order_reference", sa.String(length=100), nullable=True),
        _money("original_amount"),
        _money("down_payment", default=True),
        _money("financed_amount"),
        sa.Column("monthly_rate", sa.Numeric(8, 6), nullable=False),
        sa.Column("installment_count", sa.Integer(), nullable=False),
        _money("installment_value"),
        _money("total_payable"),
        _money("remaining_principal"),
        sa.Column(
            "status",
            sa.Enum("ACTIVE", "PAID", "DEFAULTED", "CANCELLED", name="creditstatus"),
            nullable=False,
        ),
        sa.Column("grant_date", sa.Date(), nullable=False),
        sa.Column("first_due_date", sa.Date(), nullable=False),
        sa.Column("status_reason", sa.Text(), nullable=True),
        _created_at(),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True, server_default=sa.func.now()),
        sa.ForeignKeyConstraint(["tenant_id"], ["tenants.id"]),
        sa.ForeignKeyConstraint(["client_id"], ["third_parties.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_credit_tenant_client", "credits", ["tenant_id", "client_id"], unique=False)

    op.create_table(
        "installments",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("tenant_id", sa.String(length=64), nullable=False),
        sa.Column("credit_id", sa.Integer(), nullable=False),
        sa.Column("client_id", sa.Integer(), nullable=False),
        sa.Column("sequence", sa.Integer(), nullable=False),
        sa.Column("due_date", sa.Date(), nullable=False),
        _money("principal_portion"),
        _money("interest_portion"),
        _money("total_due"),
        _money("amount_paid", default=True),
        _money("penalty_paid", default=True),
        _money("remaining_balance"),
        sa.Column(
            "status",
            sa.Enum("PENDING", "OVERDUE", "PARTIAL", "PAID", name="installmentstatus"),
            nullable=False,
        ),
        sa.Column("paid_at", sa.Date(), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        sa.ForeignKeyConstraint(["tenant_id"], ["tenants.id"]),
        sa.ForeignKeyConstraint(["credit_id"], ["credits.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["client_id"], ["third_parties.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("credit_id", "sequence", name="uq_installment_credit_seq"),
    )
    op.create_index(
        "ix_installment_client_due", "installments", ["tenant_id", "client_id", "due_date"], unique=False
    )

    op.create_table(
        "payments",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("tenant_id", sa.String(length=64), nullable=False),
        sa.Column("client_id", sa.Integer(), nullable=False),
        _money("amount"),
        _money("applied_amount"),
        _money("unapplied_amount", default=True),
        sa.Column(
            "method",
            sa.Enum("CASH", "TRANSFER", "CHECK", "CARD", name="paymentmethod"),
            nullable=False,
        ),
        sa.Column("status", sa.Enum("CONFIRMED", "REVERSED", name="paymentstatus"), nullable=False),
        sa.Column("external_reference", sa.String(length=100), nullable=True),
        sa.Column("payment_date", sa.Date(), nullable=False),
        _created_at(),
        sa.ForeignKeyConstraint(["tenant_id"], ["tenants.id"]),
        sa.ForeignKeyConstraint(["client_id"], ["third_parties.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("tenant_id", "external_reference", name="uq_payment_external_ref"),
    )
    op.create_index("ix_payment_tenant_client", "payments", ["tenant_id", "client_id"], unique=False)

    op.create_table(
        "payment_allocations",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("payment_id", sa.Integer(), nullable=False),
        sa.Column("installment_id", sa.Integer(), nullable=False),
        sa.Column("credit_id", sa.Integer(), nullable=False),
        _money("applied_amount"),
        sa.Column(
            "component_type",
            sa.Enum("PENALTY", "INTEREST", "PRINCIPAL", name="allocationcomponent"),
            nullable=False,
        ),
        _money("penalty_amount", default=True),
        _money("interest_amount", default=True),
        _money("principal_amount", default=True),
        sa.Column("days_overdue", sa.Integer(), nullable=False, server_default="0"),
        sa.ForeignKeyConstraint(["payment_id"], ["payments.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["installment_id"], ["installments.id"]),
        sa.ForeignKeyConstraint(["credit_id"], ["credits.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_payment_allocations_payment_id", "payment_allocations", ["payment_id"], unique=False)
    op.create_index(
        "ix_payment_allocations_installment_id", "payment_allocations", ["installment_id"], unique=False
    )

    # ── Error monitoring ─────────────────────────────────────────
    op.create_table(
        "error_logs",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column(
            "severity",
            sa.Enum("INFO", "WARNING", "ERROR", "CRITICAL", name="errorseverity"),
            nullable=False,
        ),
        sa.Column("error_type", sa.String(length=200), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("traceback", sa.Text(), nullable=True),
        sa.Column("module", sa.String(length=300), nullable=True),
        sa.Column("function_name", sa.String(length=200), nullable=True),
        sa.Column("line_number", sa.Integer(), nullable=True),
        sa.Column("tenant_id", sa.String(length=64), nullable=True),
        sa.Column("request_method", sa.String(length=10), nullable=True),
        sa.Column("request_path", sa.String(length=500), nullable=True),
        sa.Column("request_body", sa.Text(), nullable=True),
        sa.Column("status_code", sa.Integer(), nullable=True),
        sa.Column("response_time_ms", sa.Float(), nullable=True),
        sa.Column("ip_address", sa.String(length=45), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_error_logs_tenant_id", "error_logs", ["tenant_id"], unique=False)


def downgrade() -> None:
    for table in (
        "error_logs",
        "payment_allocations",
        "payments",
        "installments",
        "credits",
        "stock_movements",
        "purchase_invoice_items",
        "purchase_invoices",
        "products",
        "cash_movements",
        "cash_accounts",
        "third_party_movements",
        "journal_lines",
        "journal_entries",
        "third_parties",
        "accounts",
        "tenants",
    ):
        op.drop_table(table)

    for enum_name in (
        "errorseverity",
        "allocationcomponent",
        "paymentstatus",
        "paymentmethod",
        "installmentstatus",
        "creditstatus",
        "stockmovementkind",
        "cashaccountkind",
        "movementside",
        "journalentrystatus",
        "entrytype",
        "partyrole",
        "balanceside",
        "accounttype",
    ):
        sa.Enum(name=enum_name).drop(op.get_bind(), checkfirst=True)
