import logging

from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from budget_ledger.core.config import get_settings
from budget_ledger.core.errors import ValidationError
from budget_ledger.models import (
    Category,
    CategoryType,
    Tag,
    TransactionType,
    User,
    INITIAL_BALANCE_CATEGORY,
    BALANCE_ADJUSTMENT_CATEGORY,
)


settings = get_settings()
logger = logging.getLogger(__name__)

SYSTEM_CATEGORY_NAMES = (INITIAL_BALANCE_CATEGORY, BALANCE_ADJUSTMENT_CATEGORY)

DEFAULT_CATEGORIES = [
    {"name": "Salary", "type": CategoryType.INCOME.value, "icon": "briefcase", "color": "#10B981"},
    {"name": "Freelance", "type": CategoryType.INCOME.value, "icon": "laptop", "color": "#14B8A6"},
    {"name": "Gifts Received", "type": CategoryType.INCOME.value, "icon": "gift", "color": "#22C55E"},
    {"name": "Other Income", "type": CategoryType.INCOME.value, "icon": "plus", "color": "#84CC16"},
    {"name": "Groceries", "type": CategoryType.EXPENSE.value, "icon": "cart", "color": "#F97316"},
    {"name": "Dining Out", "type": CategoryType.EXPENSE.value, "icon": "utensils", "color": "#EF4444"},
    {"name": "Transport", "type": CategoryType.EXPENSE.value, "icon": "bus", "color": "#3B82F6"},
    {"name": "Housing", "type": CategoryType.EXPENSE.value, "icon": "home", "color": "#8B5CF6"},
    {"name": "Utilities", "type": CategoryType.EXPENSE.value, "icon": "bolt", "color": "#EAB308"},
    {"name": "Health", "type": CategoryType.EXPENSE.value, "icon": "heart", "color": "#EC4899"},
    {"name": "Entertainment", "type": CategoryType.EXPENSE.value, "icon": "film", "color": "#6366F1"},
    {"name": "Other Expense", "type": CategoryType.EXPENSE.value, "icon": "dots", "color": "#6B7280"},
]

DEFAULT_TAGS = ["Essential", "Recurring", "Work", "Travel", "Family"]


def ensure_system_category(db: Session, name: str) -> Category:
    category = (
        db.query(Category)
        .filter(Category.user_id.is_(None), Category.is_system.is_(True), Category.name == name)
        .first()
    )
    if category:
        return category
    category = Category(name=name, type=CategoryType.SYSTEM.value, is_system=True, icon="settings")
    db.add(category)
    db.flush()
    logger.info("Created system category %s", name)
    return category


def seed_reference_data(db: Session) -> dict:
    created = {"categories": 0, "tags": 0}
    for name in SYSTEM_CATEGORY_NAMES:
        ensure_system_category(db, name)
    for item in DEFAULT_CATEGORIES:
        exists = (
            db.query(Category.id)
            .filter(Category.user_id.is_(None), Category.name == item["name"], Category.type == item["type"])
            .first()
        )
        if exists:
            continue
        db.add(Category(**item, is_system=False))
        created["categories"] += 1
    for name in DEFAULT_TAGS:
        exists = db.query(Tag.id).filter(Tag.user_id.is_(None), Tag.name == name).first()
        if exists:
            continue
        db.add(Tag(name=name, is_system=True))
        created["tags"] += 1
    db.flush()
    return created


def list_reference_data(db: Session, user: User) -> dict:
    # System bookkeeping categories never show up in pickers.
    categories = (
        db.query(Category)
        .filter(or_(Category.user_id.is_(None), Category.user_id == user.id), Category.is_system.is_(False))
        .order_by(Category.type, Category.name)
        .all()
    )
    tags = (
        db.query(Tag)
        .filter(or_(Tag.user_id.is_(None), Tag.user_id == user.id))
        .order_by(Tag.is_system.desc(), Tag.name)
        .all()
    )
    return {"categories": categories, "tags": tags}


def resolve_category(db: Session, user: User, category_id: int | None, tx_type: TransactionType) -> Category:
    if category_id is None:
        raise ValidationError("Category is required.")
    category = (
        db.query(Category)
        .filter(Category.id == category_id, or_(Category.user_id.is_(None), Category.user_id == user.id))
        .first()
    )
    if not category:
        raise ValidationError("Category not found.")
    if category.is_system:
        raise ValidationError("System categories cannot be used for transactions.")
    if category.type != tx_type.value:
        raise ValidationError(f"Category type must match transaction type ({tx_type.value}).")
    return category


def resolve_tags(db: Session, user: User, suggested_ids: list[int], custom_tags: list) -> list[Tag]:
    """Existing tag ids plus inline custom tags, creating the new ones."""
    requested = len(suggested_ids or []) + len(custom_tags or [])
    if requested > settings.max_tags_per_transaction:
        raise ValidationError(f"Cannot add more than {settings.max_tags_per_transaction} tags.")

    tag_ids = list(dict.fromkeys(int(tag_id) for tag_id in suggested_ids or []))
    new_names: list[str] = []
    for item in custom_tags or []:
        if item.id is not None and not item.is_new:
            if item.id not in tag_ids:
                tag_ids.append(item.id)
            continue
        name = (item.name or "").strip()
        if not name:
            raise ValidationError("Custom tag name is required.")
        if name.lower() not in {existing.lower() for existing in new_names}:
            new_names.append(name)

    tags: list[Tag] = []
    if tag_ids:
        found = (
            db.query(Tag)
            .filter(Tag.id.in_(tag_ids), or_(Tag.user_id.is_(None), Tag.user_id == user.id))
            .all()
        )
        if len(found) != len(tag_ids):
            raise ValidationError("Tag not found.")
        by_id = {tag.id: tag for tag in found}
        tags.extend(by_id[tag_id] for tag_id in tag_ids)

    for name in new_names:
        tag = (
            db.query(Tag)
            .filter(or_(Tag.user_id.is_(None), Tag.user_id == user.id), func.lower(Tag.name) == name.lower())
            .first()
        )
        if tag is None:
            tag = Tag(user_id=user.id, name=name, is_system=False)
            db.add(tag)
            db.flush()
        if tag not in tags:
            tags.append(tag)
    return tags
