import enum
from sqlalchemy import Column, Integer, String, ForeignKey, Numeric, Boolean, Date, Enum, Index, Table
from sqlalchemy.orm import relationship
from budget_ledger.core.database import Base
from budget_ledger.models.base import TimestampMixin, AMOUNT_PRECISION, AMOUNT_SCALE, RATE_PRECISION, RATE_SCALE


class TransactionType(str, enum.Enum):
    INCOME = "income"
    EXPENSE = "expense"
    TRANSFER = "transfer"


class SystemType(str, enum.Enum):
    INITIAL_BALANCE = "initial_balance"
    BALANCE_ADJUSTMENT = "balance_adjustment"


transaction_tags = Table(
    "transaction_tags",
    Base.metadata,
    Column("transaction_id", Integer, ForeignKey("transactions.id", ondelete="CASCADE"), primary_key=True),
    Column("tag_id", Integer, ForeignKey("tags.id", ondelete="CASCADE"), primary_key=True),
)


class Transaction(Base, TimestampMixin):
    __tablename__ = "transactions"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    wallet_id = Column(Integer, ForeignKey("wallets.id"), nullable=False)
    # Counterpart wallet of a transfer leg.
    to_wallet_id = Column(Integer, ForeignKey("wallets.id"), nullable=True)
    transfer_id = Column(String(36), nullable=True)
    type = Column(Enum(TransactionType), nullable=False)
    is_system = Column(Boolean, default=False, nullable=False)
    # Plain string so new system kinds need no enum migration.
    system_type = Column(String(32), nullable=True)
    amount = Column(Numeric(AMOUNT_PRECISION, AMOUNT_SCALE), nullable=False)
    currency = Column(String(3), nullable=False)
    category_id = Column(Integer, ForeignKey("categories.id"), nullable=True)
    merchant = Column(String(80), nullable=True)
    counterparty = Column(String(80), nullable=True)
    description = Column(String(200), nullable=True)
    date = Column(Date, nullable=False)
    base_currency_amount = Column(Numeric(AMOUNT_PRECISION, AMOUNT_SCALE), nullable=True)
    exchange_rate_used = Column(Numeric(RATE_PRECISION, RATE_SCALE), nullable=True)
    exchange_rate_date = Column(Date, nullable=True)
    exchange_rate_severity = Column(String(16), nullable=True)
    manual_exchange_rate = Column(Boolean, default=False, nullable=False)

    category = relationship("Category")
    tags = relationship("Tag", secondary=transaction_tags, order_by="Tag.id")


Index("ix_transactions_user_date", Transaction.user_id, Transaction.date)
Index("ix_transactions_wallet", Transaction.wallet_id)
Index("ix_transactions_transfer_id", Transaction.transfer_id)
