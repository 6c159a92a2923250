import enum
from sqlalchemy import Column, Integer, String, ForeignKey, Numeric, Boolean, DateTime, Enum, Index
from sqlalchemy.orm import relationship
from budget_ledger.core.database import Base
from budget_ledger.models.base import TimestampMixin, AMOUNT_PRECISION, AMOUNT_SCALE


class WalletType(str, enum.Enum):
    CASH = "cash"
    BANK = "bank"
    DIGITAL_WALLET = "digital_wallet"


class Wallet(Base, TimestampMixin):
    __tablename__ = "wallets"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    name = Column(String(50), nullable=False)
    type = Column(Enum(WalletType), nullable=False)
    currency = Column(String(3), nullable=False)
    starting_balance = Column(Numeric(AMOUNT_PRECISION, AMOUNT_SCALE), default=0, nullable=False)
    current_balance = Column(Numeric(AMOUNT_PRECISION, AMOUNT_SCALE), default=0, nullable=False)
    color = Column(String(16), nullable=True)
    icon = Column(String(64), nullable=True)
    include_in_balance = Column(Boolean, default=True, nullable=False)
    is_archived = Column(Boolean, default=False, nullable=False)
    archived_at = Column(DateTime(timezone=True), nullable=True)

    user = relationship("User", back_populates="wallets")


Index("ix_wallets_user_archived", Wallet.user_id, Wallet.is_archived)
