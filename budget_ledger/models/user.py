from sqlalchemy import Column, Integer, String, Boolean
from sqlalchemy.orm import relationship
from budget_ledger.core.database import Base
from budget_ledger.models.base import TimestampMixin


class User(Base, TimestampMixin):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(255), unique=True, nullable=False, index=True)
    full_name = Column(String(255), nullable=True)
    base_currency = Column(String(3), nullable=False, default="USD")
    is_active = Column(Boolean, default=True, nullable=False)

    wallets = relationship("Wallet", back_populates="user")
