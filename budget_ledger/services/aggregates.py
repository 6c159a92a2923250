import calendar
import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from decimal import Decimal

from sqlalchemy import and_, case, func, or_, select
from sqlalchemy.orm import Session, aliased

from budget_ledger.models import (
    Transaction,
    TransactionType,
    SystemType,
    User,
    Wallet,
    transaction_tags,
)
from budget_ledger.services.currency import normalize_currency, quantize_amount
from budget_ledger.services.exchange_rates import ExchangeRateResolver, RateSeverity


logger = logging.getLogger(__name__)

MAX_PER_PAGE = 100
DEFAULT_PER_PAGE = 30


@dataclass
class TransactionFilters:
    start_date: date | None = None
    end_date: date | None = None
    include_future: bool = False
    types: list[TransactionType] = field(default_factory=list)
    wallet_ids: list[int] = field(default_factory=list)
    category_ids: list[int] = field(default_factory=list)
    tag_ids: list[int] = field(default_factory=list)
    search: str | None = None
    min_amount: Decimal | None = None
    max_amount: Decimal | None = None
    currency: str | None = None
    exclude_base_currency: bool = False


def _utc_today() -> date:
    return datetime.now(timezone.utc).date()


def current_month_range(today: date | None = None) -> tuple[date, date]:
    today = today or _utc_today()
    last_day = calendar.monthrange(today.year, today.month)[1]
    return today.replace(day=1), today.replace(day=last_day)


def _effective_range(filters: TransactionFilters) -> tuple[date, date]:
    start_date, end_date = filters.start_date, filters.end_date
    if start_date is None and end_date is None:
        start_date, end_date = current_month_range()
    elif start_date is None:
        start_date = date.min
    elif end_date is None:
        end_date = date.max
    if not filters.include_future:
        end_date = min(end_date, _utc_today())
    return start_date, end_date


def _escape_like(text: str) -> str:
    return text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def filtered_transactions(db: Session, user: User, filters: TransactionFilters):
    """Transactions visible in lists: one row per transfer (the source leg),
    no initial-balance records and nothing from archived wallets."""
    source_wallet = aliased(Wallet)
    destination_wallet = aliased(Wallet)
    start_date, end_date = _effective_range(filters)

    query = (
        db.query(Transaction)
        .join(source_wallet, source_wallet.id == Transaction.wallet_id)
        .outerjoin(destination_wallet, destination_wallet.id == Transaction.to_wallet_id)
        .filter(
            Transaction.user_id == user.id,
            Transaction.date >= start_date,
            Transaction.date <= end_date,
            source_wallet.is_archived.is_(False),
            or_(destination_wallet.id.is_(None), destination_wallet.is_archived.is_(False)),
            or_(
                Transaction.system_type.is_(None),
                Transaction.system_type != SystemType.INITIAL_BALANCE.value,
            ),
            or_(Transaction.type != TransactionType.TRANSFER, Transaction.amount < 0),
        )
    )

    if filters.types:
        query = query.filter(Transaction.type.in_(filters.types))
    if filters.wallet_ids:
        query = query.filter(
            or_(Transaction.wallet_id.in_(filters.wallet_ids), Transaction.to_wallet_id.in_(filters.wallet_ids))
        )
    if filters.category_ids:
        query = query.filter(Transaction.category_id.in_(filters.category_ids))
    if filters.tag_ids:
        tag_ids = sorted(set(filters.tag_ids))
        tagged = (
            select(transaction_tags.c.transaction_id)
            .where(transaction_tags.c.tag_id.in_(tag_ids))
            .group_by(transaction_tags.c.transaction_id)
            .having(func.count(func.distinct(transaction_tags.c.tag_id)) == len(tag_ids))
        )
        query = query.filter(Transaction.id.in_(tagged))
    if filters.search:
        pattern = f"%{_escape_like(filters.search.strip())}%"
        query = query.filter(
            or_(
                Transaction.description.ilike(pattern, escape="\\"),
                Transaction.merchant.ilike(pattern, escape="\\"),
            )
        )
    if filters.min_amount is not None:
        query = query.filter(func.abs(Transaction.amount) >= filters.min_amount)
    if filters.max_amount is not None:
        query = query.filter(func.abs(Transaction.amount) <= filters.max_amount)
    if filters.currency:
        query = query.filter(Transaction.currency == normalize_currency(filters.currency))
    if filters.exclude_base_currency:
        query = query.filter(Transaction.currency != user.base_currency)
    return query


def compute_totals(db: Session, user: User, filters: TransactionFilters | None = None) -> dict:
    """Income and expenses in the user's base currency.

    Uses the base amounts stored at write time; transfers and system
    bookkeeping rows are excluded.
    """
    filters = filters or TransactionFilters()
    countable = and_(Transaction.is_system.is_(False), Transaction.base_currency_amount.isnot(None))
    income_expr = func.coalesce(
        func.sum(
            case(
                (and_(countable, Transaction.type == TransactionType.INCOME), Transaction.base_currency_amount),
                else_=0,
            )
        ),
        0,
    )
    expense_expr = func.coalesce(
        func.sum(
            case(
                (and_(countable, Transaction.type == TransactionType.EXPENSE), func.abs(Transaction.base_currency_amount)),
                else_=0,
            )
        ),
        0,
    )
    income_raw, expense_raw = (
        filtered_transactions(db, user, filters).with_entities(income_expr, expense_expr).one()
    )
    base_currency = user.base_currency
    income = quantize_amount(Decimal(str(income_raw)), base_currency)
    expenses = quantize_amount(Decimal(str(expense_raw)), base_currency)
    return {
        "income": income,
        "expenses": expenses,
        "net": income - expenses,
        "currency": base_currency,
    }


def list_transactions(
    db: Session,
    user: User,
    filters: TransactionFilters | None = None,
    *,
    page: int = 1,
    per_page: int = DEFAULT_PER_PAGE,
) -> dict:
    filters = filters or TransactionFilters()
    page = max(1, int(page or 1))
    per_page = max(1, min(int(per_page or DEFAULT_PER_PAGE), MAX_PER_PAGE))

    query = filtered_transactions(db, user, filters)
    total = query.count()
    rows = (
        query.order_by(Transaction.date.desc(), Transaction.created_at.desc(), Transaction.id.desc())
        .offset((page - 1) * per_page)
        .limit(per_page)
        .all()
    )
    return {
        "transactions": rows,
        "pagination": {
            "page": page,
            "perPage": per_page,
            "total": total,
            "totalPages": (total + per_page - 1) // per_page,
        },
        "totals": compute_totals(db, user, filters),
    }


def transaction_ids(db: Session, user: User, filters: TransactionFilters | None = None) -> list[int]:
    query = filtered_transactions(db, user, filters or TransactionFilters())
    rows = query.filter(Transaction.is_system.is_(False)).with_entities(Transaction.id).order_by(Transaction.id).all()
    return [row[0] for row in rows]


def net_worth(db: Session, user: User, on_date: date | None = None) -> dict:
    """Sum of included, active wallets converted at the latest known rates.

    Wallets whose currency cannot be converted are reported, never guessed.
    """
    on_date = on_date or _utc_today()
    base_currency = user.base_currency
    resolver = ExchangeRateResolver(db)
    wallets = (
        db.query(Wallet)
        .filter(Wallet.user_id == user.id, Wallet.is_archived.is_(False), Wallet.include_in_balance.is_(True))
        .order_by(Wallet.id)
        .all()
    )

    total = Decimal("0")
    unconverted = []
    stale = []
    for wallet in wallets:
        balance = Decimal(str(wallet.current_balance or 0))
        converted, resolution = resolver.convert(balance, on_date, wallet.currency, base_currency)
        if converted is None:
            logger.warning("Net worth skips wallet %s: no %s->%s rate", wallet.id, wallet.currency, base_currency)
            unconverted.append({"walletId": wallet.id, "currency": wallet.currency, "balance": str(balance)})
            continue
        if resolution.severity != RateSeverity.NONE:
            stale.append({"walletId": wallet.id, "currency": wallet.currency, "severity": resolution.severity.value})
        total += converted

    return {
        "total": quantize_amount(total, base_currency),
        "currency": base_currency,
        "date": on_date,
        "walletCount": len(wallets),
        "unconverted": unconverted,
        "staleRates": stale,
    }
