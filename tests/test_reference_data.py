import pytest

from budget_ledger.core.errors import ValidationError
from budget_ledger.models import Category, Tag, TransactionType
from budget_ledger.schemas.transaction import CustomTagIn
from budget_ledger.services.reference_data import (
    DEFAULT_CATEGORIES,
    DEFAULT_TAGS,
    ensure_system_category,
    resolve_category,
    resolve_tags,
    seed_reference_data,
)


def test_seed_is_idempotent(db):
    first = seed_reference_data(db)
    db.commit()
    second = seed_reference_data(db)
    db.commit()

    assert first == {"categories": len(DEFAULT_CATEGORIES), "tags": len(DEFAULT_TAGS)}
    assert second == {"categories": 0, "tags": 0}
    assert db.query(Category).filter(Category.is_system.is_(True)).count() == 2


def test_reference_data_endpoint_hides_system_categories(client, db, auth_headers):
    seed_reference_data(db)
    db.commit()

    response = client.get("/api/user/reference-data", headers=auth_headers)

    assert response.status_code == 200
    data = response.json()
    assert len(data["categories"]) == len(DEFAULT_CATEGORIES)
    assert all(item["is_system"] is False for item in data["categories"])
    assert [tag["name"] for tag in data["tags"]] == sorted(DEFAULT_TAGS)


def test_system_category_cannot_be_picked(db, user):
    category = ensure_system_category(db, "Balance Adjustment")

    with pytest.raises(ValidationError) as excinfo:
        resolve_category(db, user, category.id, TransactionType.INCOME)

    assert excinfo.value.message == "System categories cannot be used for transactions."


def test_unknown_category(db, user):
    with pytest.raises(ValidationError) as excinfo:
        resolve_category(db, user, 404, TransactionType.EXPENSE)
    assert excinfo.value.message == "Category not found."


def test_tag_limit(db, user):
    tags = [Tag(name=f"Tag {index}", is_system=True) for index in range(4)]
    db.add_all(tags)
    db.commit()
    custom = [CustomTagIn(name="One", isNew=True), CustomTagIn(name="Two", isNew=True)]

    with pytest.raises(ValidationError) as excinfo:
        resolve_tags(db, user, [tag.id for tag in tags], custom)

    assert excinfo.value.message == "Cannot add more than 5 tags."


def test_custom_tags_reuse_existing_names(db, user):
    existing = Tag(user_id=user.id, name="Groceries run", is_system=False)
    db.add(existing)
    db.commit()

    tags = resolve_tags(db, user, [], [CustomTagIn(name="groceries RUN", isNew=True), CustomTagIn(name="Gift", isNew=True)])

    assert [tag.name for tag in tags] == ["Groceries run", "Gift"]
    assert db.query(Tag).count() == 2


def test_unknown_tag_id(db, user):
    with pytest.raises(ValidationError) as excinfo:
        resolve_tags(db, user, [12345], [])
    assert excinfo.value.message == "Tag not found."
