"""initial

Revision ID: 0001_initial
Revises: 
Create Date: 2026-10-19
"""
from alembic import op
import sqlalchemy as sa

revision = "0001_initial"
down_revision = None
branch_labels = None
depends_on = None

AMOUNT = sa.Numeric(21, 6)
RATE = sa.Numeric(24, 10)


def _timestamps():
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    ]


def upgrade():
    op.create_table(
        "users",
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("full_name", sa.String(255), nullable=True),
        sa.Column("base_currency", sa.String(3), nullable=False, server_default="USD"),
        sa.Column("is_active", sa.Boolean, nullable=False, server_default=sa.text("true")),
        *_timestamps(),
    )
    op.create_index("ix_users_email", "users", ["email"], unique=True)

    op.create_table(
        "wallets",
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column("user_id", sa.Integer, sa.ForeignKey("users.id"), nullable=False),
        sa.Column("name", sa.String(50), nullable=False),
        sa.Column("type", sa.Enum("CASH", "BANK", "DIGITAL_WALLET", name="wallettype"), nullable=False),
        sa.Column("currency", sa.String(3), nullable=False),
        sa.Column("starting_balance", AMOUNT, nullable=False, server_default="0"),
        sa.Column("current_balance", AMOUNT, nullable=False, server_default="0"),
        sa.Column("color", sa.String(16), nullable=True),
        sa.Column("icon", sa.String(64), nullable=True),
        sa.Column("include_in_balance", sa.Boolean, nullable=False, server_default=sa.text("true")),
        sa.Column("is_archived", sa.Boolean, nullable=False, server_default=sa.text("false")),
        sa.Column("archived_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_wallets_user_archived", "wallets", ["user_id", "is_archived"], unique=False)

    op.create_table(
        "categories",
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column("user_id", sa.Integer, sa.ForeignKey("users.id"), nullable=True),
        sa.Column("name", sa.String(50), nullable=False),
        sa.Column("type", sa.String(16), nullable=False),
        sa.Column("icon", sa.String(64), nullable=True),
        sa.Column("color", sa.String(16), nullable=True),
        sa.Column("is_system", sa.Boolean, nullable=False, server_default=sa.text("false")),
        *_timestamps(),
    )
    op.create_index("ix_categories_user_type", "categories", ["user_id", "type"], unique=False)

    op.create_table(
        "tags",
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column("user_id", sa.Integer, sa.ForeignKey("users.id"), nullable=True),
        sa.Column("name", sa.String(50), nullable=False),
        sa.Column("is_system", sa.Boolean, nullable=False, server_default=sa.text("false")),
        *_timestamps(),
    )
    op.create_index("ix_tags_user_name", "tags", ["user_id", "name"], unique=False)

    op.create_table(
        "transactions",
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column("user_id", sa.Integer, sa.ForeignKey("users.id"), nullable=False),
        sa.Column("wallet_id", sa.Integer, sa.ForeignKey("wallets.id"), nullable=False),
        sa.Column("to_wallet_id", sa.Integer, sa.ForeignKey("wallets.id"), nullable=True),
        sa.Column("transfer_id", sa.String(36), nullable=True),
        sa.Column("type", sa.Enum("INCOME", "EXPENSE", "TRANSFER", name="transactiontype"), nullable=False),
        sa.Column("is_system", sa.Boolean, nullable=False, server_default=sa.text("false")),
        sa.Column("system_type", sa.String(32), nullable=True),
        sa.Column("amount", AMOUNT, nullable=False),
        sa.Column("currency", sa.String(3), nullable=False),
        sa.Column("category_id", sa.Integer, sa.ForeignKey("categories.id"), nullable=True),
        sa.Column("merchant", sa.String(80), nullable=True),
        sa.Column("counterparty", sa.String(80), nullable=True),
        sa.Column("description", sa.String(200), nullable=True),
        sa.Column("date", sa.Date, nullable=False),
        sa.Column("base_currency_amount", AMOUNT, nullable=True),
        sa.Column("exchange_rate_used", RATE, nullable=True),
        sa.Column("exchange_rate_date", sa.Date, nullable=True),
        sa.Column("exchange_rate_severity", sa.String(16), nullable=True),
        sa.Column("manual_exchange_rate", sa.Boolean, nullable=False, server_default=sa.text("false")),
        *_timestamps(),
    )
    op.create_index("ix_transactions_user_date", "transactions", ["user_id", "date"], unique=False)
    op.create_index("ix_transactions_wallet", "transactions", ["wallet_id"], unique=False)
    op.create_index("ix_transactions_transfer_id", "transactions", ["transfer_id"], unique=False)

    op.create_table(
        "transaction_tags",
        sa.Column("transaction_id", sa.Integer, sa.ForeignKey("transactions.id", ondelete="CASCADE"), primary_key=True),
        sa.Column("tag_id", sa.Integer, sa.ForeignKey("tags.id", ondelete="CASCADE"), primary_key=True),
    )

    op.create_table(
        "exchange_rates",
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column("date", sa.Date, nullable=False),
        sa.Column("from_currency", sa.String(3), nullable=False),
        sa.Column("to_currency", sa.String(3), nullable=False),
        sa.Column("rate", RATE, nullable=False),
        sa.Column("source", sa.String(32), nullable=True),
        *_timestamps(),
    )
    op.create_unique_constraint("uq_exchange_rates_date_pair", "exchange_rates", ["date", "from_currency", "to_currency"])
    op.create_index(
        "ix_exchange_rates_pair_date", "exchange_rates", ["from_currency", "to_currency", "date"], unique=False
    )

    op.create_table(
        "idempotency_keys",
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column("user_id", sa.Integer, sa.ForeignKey("users.id"), nullable=False),
        sa.Column("key", sa.String(255), nullable=False),
        sa.Column("request_method", sa.String(8), nullable=False),
        sa.Column("request_path", sa.String(255), nullable=False),
        sa.Column("response_status", sa.Integer, nullable=False),
        sa.Column("response_body", sa.JSON, nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        *_timestamps(),
    )
    op.create_unique_constraint("uq_idempotency_keys_user_key", "idempotency_keys", ["user_id", "key"])
    op.create_index("ix_idempotency_keys_expires_at", "idempotency_keys", ["expires_at"], unique=False)


def downgrade():
    op.drop_table("idempotency_keys")
    op.drop_table("exchange_rates")
    op.drop_table("transaction_tags")
    op.drop_table("transactions")
    op.drop_table("tags")
    op.drop_table("categories")
    op.drop_table("wallets")
    op.drop_table("users")
    op.execute("DROP TYPE IF EXISTS transactiontype")
    op.execute("DROP TYPE IF EXISTS wallettype")
