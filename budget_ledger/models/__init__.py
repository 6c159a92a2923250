from budget_ledger.models.user import User
from budget_ledger.models.wallet import Wallet, WalletType
from budget_ledger.models.transaction import Transaction, TransactionType, SystemType, transaction_tags
from budget_ledger.models.reference import (
    Category,
    CategoryType,
    Tag,
    INITIAL_BALANCE_CATEGORY,
    BALANCE_ADJUSTMENT_CATEGORY,
)
from budget_ledger.models.exchange_rate import ExchangeRate
from budget_ledger.models.idempotency_key import IdempotencyKey

__all__ = [
    "User",
    "Wallet",
    "WalletType",
    "Transaction",
    "TransactionType",
    "SystemType",
    "transaction_tags",
    "Category",
    "CategoryType",
    "Tag",
    "INITIAL_BALANCE_CATEGORY",
    "BALANCE_ADJUSTMENT_CATEGORY",
    "ExchangeRate",
    "IdempotencyKey",
]
