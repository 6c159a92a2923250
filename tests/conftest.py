import os


def _set_test_env() -> None:
    defaults = {
        "APP_NAME": "Budget Ledger Test",
        "ENVIRONMENT": "test",
        "SECRET_KEY": "test-secret-key-for-budget-ledger-suite",
        "ACCESS_TOKEN_EXPIRE_MINUTES": "30",
        "AUTO_CREATE_TABLES": "false",
        "DATABASE_URL": "sqlite://",
        "REDIS_URL": "",
        "RATE_LIMIT_ENABLED": "false",
        "EXCHANGE_RATE_API_URL": "https://rates.test/timeframe",
        "EXCHANGE_RATE_API_KEY": "rates_key",
        "EXCHANGE_RATE_RETRY_COUNT": "2",
        "CORS_ORIGINS": "http://localhost:5173,http://localhost:3000",
    }
    for key, value in defaults.items():
        os.environ.setdefault(key, value)


_set_test_env()

from datetime import date, datetime, timezone
from decimal import Decimal
from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient

from budget_ledger.core.database import Base, SessionLocal, engine, get_db
from budget_ledger.core.security import create_access_token
from budget_ledger.main import app
from budget_ledger.models import Category, ExchangeRate, User, Wallet, WalletType


@pytest.fixture
def db():
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.rollback()
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def user(db):
    owner = User(email="owner@example.com", full_name="Owner", base_currency="USD", is_active=True)
    db.add(owner)
    db.commit()
    return owner


@pytest.fixture
def make_wallet(db, user):
    def _make(
        currency="USD",
        wallet_type=WalletType.BANK,
        balance="0",
        *,
        name=None,
        created=date(2024, 1, 1),
        owner=None,
        **extra,
    ):
        owner = owner or user
        amount = Decimal(balance)
        wallet = Wallet(
            user_id=owner.id,
            name=name or f"{wallet_type.value} {currency}",
            type=wallet_type,
            currency=currency,
            starting_balance=amount,
            current_balance=amount,
            created_at=datetime(created.year, created.month, created.day, tzinfo=timezone.utc),
            **extra,
        )
        db.add(wallet)
        db.commit()
        return wallet

    return _make


@pytest.fixture
def categories(db):
    income = Category(name="Salary", type="income", is_system=False)
    expense = Category(name="Groceries", type="expense", is_system=False)
    db.add_all([income, expense])
    db.commit()
    return SimpleNamespace(income=income, expense=expense)


@pytest.fixture
def add_rate(db):
    def _add(on_date, from_currency, to_currency, rate):
        db.add(
            ExchangeRate(
                date=on_date,
                from_currency=from_currency,
                to_currency=to_currency,
                rate=Decimal(str(rate)),
                source="test",
            )
        )
        db.commit()

    return _add


@pytest.fixture
def client(db):
    app.dependency_overrides.clear()

    def _override_get_db():
        yield db

    app.dependency_overrides[get_db] = _override_get_db
    try:
        with TestClient(app) as test_client:
            yield test_client
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def auth_headers(user):
    token = create_access_token(str(user.id))
    return {"Authorization": f"Bearer {token}"}
