from sqlalchemy import Column, Integer, String, ForeignKey, DateTime, JSON, UniqueConstraint, Index
from budget_ledger.core.database import Base
from budget_ledger.models.base import TimestampMixin


class IdempotencyKey(Base, TimestampMixin):
    __tablename__ = "idempotency_keys"
    __table_args__ = (UniqueConstraint("user_id", "key", name="uq_idempotency_keys_user_key"),)

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    key = Column(String(255), nullable=False)
    request_method = Column(String(8), nullable=False)
    request_path = Column(String(255), nullable=False)
    response_status = Column(Integer, nullable=False)
    response_body = Column(JSON, nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=False)


Index("ix_idempotency_keys_expires_at", IdempotencyKey.expires_at)
