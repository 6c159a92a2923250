from sqlalchemy import Column, Integer, String, Numeric, Date, UniqueConstraint, Index
from budget_ledger.core.database import Base
from budget_ledger.models.base import TimestampMixin, RATE_PRECISION, RATE_SCALE


class ExchangeRate(Base, TimestampMixin):
    """1 ``from_currency`` = ``rate`` ``to_currency`` on ``date``."""

    __tablename__ = "exchange_rates"
    __table_args__ = (UniqueConstraint("date", "from_currency", "to_currency", name="uq_exchange_rates_date_pair"),)

    id = Column(Integer, primary_key=True, index=True)
    date = Column(Date, nullable=False)
    from_currency = Column(String(3), nullable=False)
    to_currency = Column(String(3), nullable=False)
    rate = Column(Numeric(RATE_PRECISION, RATE_SCALE), nullable=False)
    source = Column(String(32), nullable=True)


Index("ix_exchange_rates_pair_date", ExchangeRate.from_currency, ExchangeRate.to_currency, ExchangeRate.date)
