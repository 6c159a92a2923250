from sqlalchemy import Column, DateTime, func


class TimestampMixin:
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)


# Shared precision of money and rate columns.
AMOUNT_PRECISION = 21
AMOUNT_SCALE = 6
RATE_PRECISION = 24
RATE_SCALE = 10
