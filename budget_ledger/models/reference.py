import enum
from sqlalchemy import Column, Integer, String, ForeignKey, Boolean, Index
from budget_ledger.core.database import Base
from budget_ledger.models.base import TimestampMixin


class CategoryType(str, enum.Enum):
    INCOME = "income"
    EXPENSE = "expense"
    SYSTEM = "system"


INITIAL_BALANCE_CATEGORY = "Initial Balance"
BALANCE_ADJUSTMENT_CATEGORY = "Balance Adjustment"


class Category(Base, TimestampMixin):
    __tablename__ = "categories"

    id = Column(Integer, primary_key=True, index=True)
    # NULL owner means a shared system category.
    user_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    name = Column(String(50), nullable=False)
    type = Column(String(16), nullable=False)
    icon = Column(String(64), nullable=True)
    color = Column(String(16), nullable=True)
    is_system = Column(Boolean, default=False, nullable=False)


class Tag(Base, TimestampMixin):
    __tablename__ = "tags"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    name = Column(String(50), nullable=False)
    is_system = Column(Boolean, default=False, nullable=False)


Index("ix_categories_user_type", Category.user_id, Category.type)
Index("ix_tags_user_name", Tag.user_id, Tag.name)
