"""Wallet ledger.

Creates, updates and deletes transactions while keeping every wallet's cached
``current_balance`` equal to its starting balance plus the signed amounts of
its transactions (the ``initial_balance`` record only documents the starting
balance and is not part of the sum).

Nothing here commits. Callers wrap each operation in ``atomic(db)`` or the
idempotent executor so a failure rolls back every row and balance touched.
Wallet rows are locked ``FOR UPDATE`` in ascending id order; update and delete
first lock every affected transaction row in one ascending id order query.
"""
import logging
import uuid
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from decimal import Decimal

from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from budget_ledger.core.errors import (
    ConsistencyError,
    NotFoundError,
    OverdraftBlocked,
    SystemTransactionImmutable,
    ValidationError,
)
from budget_ledger.models import (
    Transaction,
    TransactionType,
    SystemType,
    User,
    Wallet,
    WalletType,
    INITIAL_BALANCE_CATEGORY,
    BALANCE_ADJUSTMENT_CATEGORY,
)
from budget_ledger.services.amounts import exceeds_max_amount, get_max_amount_display, validate_amount
from budget_ledger.services.currency import quantize_amount
from budget_ledger.services.exchange_rates import ExchangeRateResolver, RateResolution
from budget_ledger.services.reference_data import ensure_system_category, resolve_category, resolve_tags


logger = logging.getLogger(__name__)

BALANCE_QUANTUM = Decimal("0.000001")


@dataclass
class LegPlan:
    wallet: Wallet
    counterpart: Wallet | None
    tx_type: TransactionType
    amount: Decimal
    base_currency_amount: Decimal | None
    resolution: RateResolution | None = None


@dataclass
class LedgerResult:
    transactions: list[Transaction]
    warnings: list[dict] = field(default_factory=list)
    exchange_rate: RateResolution | None = None


def _utc_today() -> date:
    return datetime.now(timezone.utc).date()


def _as_decimal(value) -> Decimal:
    if value is None:
        return Decimal("0")
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def _q(value) -> Decimal:
    return _as_decimal(value).quantize(BALANCE_QUANTUM)


def _clean(value: str | None) -> str | None:
    text = (value or "").strip()
    return text or None


def _is_transfer(payload) -> bool:
    return payload.transaction_type == TransactionType.TRANSFER.value


def _wallet_created_on(wallet: Wallet) -> date | None:
    created = wallet.created_at
    if isinstance(created, datetime):
        return created.date()
    return created


def _parse_amount(raw, currency: str, *, signed: bool = False) -> Decimal:
    result = validate_amount(raw, currency, signed=signed)
    if not result.valid:
        raise ValidationError(result.error, field="amount")
    return result.value


def _lock_wallets(db: Session, user_id: int, wallet_ids) -> dict[int, Wallet]:
    ids = sorted({int(wallet_id) for wallet_id in wallet_ids if wallet_id is not None})
    if not ids:
        return {}
    rows = (
        db.query(Wallet)
        .filter(Wallet.user_id == user_id, Wallet.id.in_(ids))
        .order_by(Wallet.id.asc())
        .with_for_update()
        .populate_existing()
        .all()
    )
    return {wallet.id: wallet for wallet in rows}


def _lock_transaction_group(db: Session, user_id: int, transaction_id: int) -> list[Transaction]:
    # Unlocked read; the row and its partner are then locked together in id order.
    target = (
        db.query(Transaction.id, Transaction.transfer_id)
        .filter(Transaction.id == transaction_id, Transaction.user_id == user_id)
        .first()
    )
    if target is None:
        raise NotFoundError("Transaction not found.", transaction_id=transaction_id)
    group = Transaction.id == target.id
    if target.transfer_id:
        group = or_(group, Transaction.transfer_id == target.transfer_id)
    rows = (
        db.query(Transaction)
        .filter(Transaction.user_id == user_id, group)
        .order_by(Transaction.id.asc())
        .with_for_update()
        .populate_existing()
        .all()
    )
    if not any(row.id == target.id for row in rows):
        raise NotFoundError("Transaction not found.", transaction_id=transaction_id)
    if target.transfer_id and len(rows) != 2:
        logger.error("Transfer %s has %s leg(s), expected 2", target.transfer_id, len(rows))
        raise ConsistencyError("Transfer is missing its paired leg.", transfer_id=target.transfer_id)
    return rows


def _active_wallet(wallets: dict[int, Wallet], wallet_id: int, label: str = "Wallet") -> Wallet:
    wallet = wallets.get(wallet_id)
    if wallet is None or wallet.is_archived:
        raise ValidationError(f"{label} not found or archived.", wallet_id=wallet_id)
    return wallet


def _check_wallet_date(wallet: Wallet, on_date: date) -> None:
    created_on = _wallet_created_on(wallet)
    if created_on and on_date < created_on:
        raise ValidationError(
            f"Transactions in {wallet.name} cannot be dated before {created_on.isoformat()}, "
            "when its starting balance was recorded.",
            wallet_id=wallet.id,
        )


def _base_value(resolver: ExchangeRateResolver, base_currency: str, currency: str, amount: Decimal, on_date: date, manual_rate=None):
    if currency == base_currency:
        return amount, None
    resolution = resolver.require(on_date, currency, base_currency, manual_rate=manual_rate)
    return quantize_amount(amount * resolution.rate, base_currency), resolution


def _system_base_value(resolver: ExchangeRateResolver, base_currency: str, currency: str, amount: Decimal, on_date: date):
    # Bookkeeping rows never block on a missing rate.
    if currency == base_currency:
        return amount, None
    converted, resolution = resolver.convert(amount, on_date, currency, base_currency)
    return converted, resolution


def _plan_entry(db: Session, resolver: ExchangeRateResolver, user: User, payload, wallets: dict[int, Wallet]):
    tx_type = TransactionType(payload.transaction_type)
    wallet = _active_wallet(wallets, payload.wallet_id)
    _check_wallet_date(wallet, payload.date)
    category = resolve_category(db, user, payload.category_id, tx_type)
    amount = _parse_amount(payload.amount, wallet.currency)
    signed = amount if tx_type == TransactionType.INCOME else -amount
    base_amount, resolution = _base_value(
        resolver, user.base_currency, wallet.currency, signed, payload.date, payload.manual_exchange_rate
    )
    return LegPlan(wallet, None, tx_type, signed, base_amount, resolution), category


def _plan_transfer(resolver: ExchangeRateResolver, user: User, payload, wallets: dict[int, Wallet]) -> list[LegPlan]:
    if payload.from_wallet_id == payload.to_wallet_id:
        raise ValidationError("Source and destination wallets must be different.")
    if payload.category_id is not None:
        raise ValidationError("Transfers cannot have a category.")
    if payload.suggested_tags or payload.custom_tags:
        raise ValidationError("Transfers cannot have tags.")

    source = _active_wallet(wallets, payload.from_wallet_id, "Source wallet")
    destination = _active_wallet(wallets, payload.to_wallet_id, "Destination wallet")
    _check_wallet_date(source, payload.date)
    _check_wallet_date(destination, payload.date)

    amount = _parse_amount(payload.amount, source.currency)
    base_currency = user.base_currency

    resolution = None
    received = amount
    if source.currency != destination.currency:
        resolution = resolver.require(
            payload.date, source.currency, destination.currency, manual_rate=payload.manual_exchange_rate
        )
        received = quantize_amount(amount * resolution.rate, destination.currency)
        if received <= 0:
            raise ValidationError("Converted transfer amount is too small for the destination currency.")

    if source.currency == base_currency:
        value = amount
    elif destination.currency == base_currency:
        value = received
    else:
        valuation = resolver.require(payload.date, source.currency, base_currency)
        value = quantize_amount(amount * valuation.rate, base_currency)
        if resolution is None:
            resolution = valuation

    return [
        LegPlan(source, destination, TransactionType.TRANSFER, -amount, -value, resolution),
        LegPlan(destination, source, TransactionType.TRANSFER, received, value, resolution),
    ]


def _plan(db: Session, resolver: ExchangeRateResolver, user: User, payload, wallets: dict[int, Wallet]):
    """Returns ``(legs, category, tags)`` for a create or update payload."""
    if _is_transfer(payload):
        return _plan_transfer(resolver, user, payload, wallets), None, []
    leg, category = _plan_entry(db, resolver, user, payload, wallets)
    tags = resolve_tags(db, user, payload.suggested_tags, payload.custom_tags)
    return [leg], category, tags


def _payload_wallet_ids(payload) -> list[int]:
    if _is_transfer(payload):
        return [payload.from_wallet_id, payload.to_wallet_id]
    return [payload.wallet_id]


def _snapshot(wallets: dict[int, Wallet]) -> dict[int, Decimal]:
    return {wallet_id: _as_decimal(wallet.current_balance) for wallet_id, wallet in wallets.items()}


def _reverse_rows(rows: list[Transaction], wallets: dict[int, Wallet]) -> None:
    for row in rows:
        wallet = wallets.get(row.wallet_id)
        if wallet is None:
            logger.error("Wallet %s of transaction %s is missing", row.wallet_id, row.id)
            raise ConsistencyError("Transaction references a missing wallet.", transaction_id=row.id)
        wallet.current_balance = _as_decimal(wallet.current_balance) - _as_decimal(row.amount)


def _apply_legs(legs: list[LegPlan]) -> None:
    for leg in legs:
        leg.wallet.current_balance = _as_decimal(leg.wallet.current_balance) + leg.amount


def _check_balances(wallets: dict[int, Wallet], before: dict[int, Decimal], warnings: list[dict]) -> None:
    for wallet_id in sorted(wallets):
        wallet = wallets[wallet_id]
        balance = _as_decimal(wallet.current_balance)
        previous = before.get(wallet_id, balance)
        if exceeds_max_amount(balance, wallet.currency):
            raise ValidationError(
                f"The balance of {wallet.name} would exceed the maximum allowed amount of "
                f"{get_max_amount_display(wallet.currency)} {wallet.currency}.",
                wallet_id=wallet.id,
            )
        if balance >= 0 or balance >= previous:
            continue
        if wallet.type == WalletType.CASH:
            raise OverdraftBlocked(
                f"Insufficient funds in {wallet.name}. Cash wallets cannot have a negative balance.",
                wallet_id=wallet.id,
                available=str(_q(previous).normalize()),
            )
        logger.warning("Wallet %s goes negative: %s", wallet.id, balance)
        warnings.append(
            {
                "kind": "negative_balance",
                "walletId": wallet.id,
                "message": f"{wallet.name} will have a negative balance.",
                "projectedBalance": str(quantize_amount(balance, wallet.currency)),
            }
        )


def _apply_rate_fields(row: Transaction, resolution: RateResolution | None) -> None:
    if resolution is None:
        row.exchange_rate_used = None
        row.exchange_rate_date = None
        row.exchange_rate_severity = None
        row.manual_exchange_rate = False
        return
    row.exchange_rate_used = resolution.rate
    row.exchange_rate_date = resolution.rate_date
    row.exchange_rate_severity = resolution.severity.value
    row.manual_exchange_rate = resolution.manual


def _write_legs(db: Session, user: User, legs: list[LegPlan], rows: list[Transaction], payload, category, tags) -> list[Transaction]:
    transfer_id = None
    if len(legs) == 2:
        transfer_id = rows[0].transfer_id if rows and rows[0].transfer_id else str(uuid.uuid4())

    written = []
    for index, leg in enumerate(legs):
        row = rows[index] if index < len(rows) else Transaction(user_id=user.id, is_system=False)
        row.wallet_id = leg.wallet.id
        row.to_wallet_id = leg.counterpart.id if leg.counterpart is not None else None
        row.transfer_id = transfer_id
        row.type = leg.tx_type
        row.amount = leg.amount
        row.currency = leg.wallet.currency
        row.base_currency_amount = leg.base_currency_amount
        _apply_rate_fields(row, leg.resolution)
        row.category_id = category.id if category is not None else None
        row.date = payload.date
        row.description = _clean(payload.description)
        row.merchant = _clean(getattr(payload, "merchant", None))
        row.counterparty = _clean(getattr(payload, "counterparty", None))
        row.tags = list(tags) if leg.tx_type != TransactionType.TRANSFER else []
        if row.id is None:
            db.add(row)
        written.append(row)
    return written


def expected_balance(db: Session, wallet: Wallet) -> Decimal:
    total = (
        db.query(func.coalesce(func.sum(Transaction.amount), 0))
        .filter(
            Transaction.wallet_id == wallet.id,
            or_(
                Transaction.system_type.is_(None),
                Transaction.system_type != SystemType.INITIAL_BALANCE.value,
            ),
        )
        .scalar()
    )
    return _as_decimal(wallet.starting_balance) + _as_decimal(total)


def _verify_balances(db: Session, wallets: dict[int, Wallet]) -> None:
    db.flush()
    for wallet_id in sorted(wallets):
        wallet = wallets[wallet_id]
        expected = _q(expected_balance(db, wallet))
        actual = _q(wallet.current_balance)
        if expected != actual:
            logger.error("Balance mismatch on wallet %s: cached=%s expected=%s", wallet.id, actual, expected)
            raise ConsistencyError(
                f"The balance of {wallet.name} does not match its transactions.",
                wallet_id=wallet.id,
            )


def create_transaction(db: Session, user: User, payload) -> LedgerResult:
    resolver = ExchangeRateResolver(db)
    wallets = _lock_wallets(db, user.id, _payload_wallet_ids(payload))
    before = _snapshot(wallets)

    legs, category, tags = _plan(db, resolver, user, payload, wallets)
    warnings: list[dict] = []
    _apply_legs(legs)
    _check_balances(wallets, before, warnings)

    rows = _write_legs(db, user, legs, [], payload, category, tags)
    db.flush()
    logger.info(
        "Created %s transaction %s for user %s on wallet(s) %s",
        payload.transaction_type,
        [row.id for row in rows],
        user.id,
        sorted(wallets),
    )
    return LedgerResult(rows, warnings, legs[0].resolution)


def update_transaction(db: Session, user: User, transaction_id: int, payload) -> LedgerResult:
    rows = _lock_transaction_group(db, user.id, transaction_id)
    if any(row.is_system for row in rows):
        raise SystemTransactionImmutable()
    was_transfer = rows[0].type == TransactionType.TRANSFER
    if was_transfer != _is_transfer(payload):
        raise ValidationError("A transfer cannot be changed into income or expense, or the other way around.")

    wallets = _lock_wallets(db, user.id, [row.wallet_id for row in rows] + _payload_wallet_ids(payload))
    for row in rows:
        wallet = wallets.get(row.wallet_id)
        if wallet is not None and wallet.is_archived:
            raise ValidationError("Transactions of archived wallets cannot be modified.", wallet_id=wallet.id)
    before = _snapshot(wallets)

    _reverse_rows(rows, wallets)
    resolver = ExchangeRateResolver(db)
    legs, category, tags = _plan(db, resolver, user, payload, wallets)
    warnings: list[dict] = []
    _apply_legs(legs)
    _check_balances(wallets, before, warnings)

    # Source leg (negative) first, matching the planned leg order.
    ordered = sorted(rows, key=lambda row: (_as_decimal(row.amount) >= 0, row.id))
    written = _write_legs(db, user, legs, ordered, payload, category, tags)
    _verify_balances(db, wallets)
    logger.info("Updated transaction %s for user %s", [row.id for row in written], user.id)
    return LedgerResult(written, warnings, legs[0].resolution)


def _delete_rows(db: Session, user: User, rows: list[Transaction]) -> None:
    wallets = _lock_wallets(db, user.id, [row.wallet_id for row in rows])
    before = _snapshot(wallets)
    _reverse_rows(rows, wallets)
    _check_balances(wallets, before, [])
    for row in rows:
        db.delete(row)
    _verify_balances(db, wallets)


def delete_transaction(db: Session, user: User, transaction_id: int) -> int:
    rows = _lock_transaction_group(db, user.id, transaction_id)
    if any(row.is_system for row in rows):
        raise SystemTransactionImmutable()
    _delete_rows(db, user, rows)
    logger.info("Deleted transaction %s for user %s", [row.id for row in rows], user.id)
    return 1


def bulk_delete_transactions(db: Session, user: User, transaction_ids) -> int:
    """Deletes the given transactions, silently skipping system and unknown ids.

    Returns the number of logical transactions deleted; a transfer counts once.
    """
    ids = sorted({int(transaction_id) for transaction_id in transaction_ids or []})
    if not ids:
        return 0
    found = (
        db.query(Transaction.id, Transaction.transfer_id, Transaction.is_system)
        .filter(Transaction.user_id == user.id, Transaction.id.in_(ids))
        .all()
    )
    wanted = [row for row in found if not row.is_system]
    if len(wanted) != len(ids):
        logger.info("Bulk delete for user %s skipped %s id(s)", user.id, len(ids) - len(wanted))
    if not wanted:
        return 0

    transfer_ids = {row.transfer_id for row in wanted if row.transfer_id}
    group = Transaction.id.in_([row.id for row in wanted])
    if transfer_ids:
        group = or_(group, Transaction.transfer_id.in_(transfer_ids))
    candidates = [
        row
        for row in (
            db.query(Transaction)
            .filter(Transaction.user_id == user.id, group)
            .order_by(Transaction.id.asc())
            .with_for_update()
            .populate_existing()
            .all()
        )
        if not row.is_system
    ]
    for transfer_id in transfer_ids:
        legs = [row for row in candidates if row.transfer_id == transfer_id]
        if len(legs) != 2:
            logger.error("Transfer %s has %s leg(s), expected 2", transfer_id, len(legs))
            raise ConsistencyError("Transfer is missing its paired leg.", transfer_id=transfer_id)
    if not candidates:
        return 0

    count = len({row.transfer_id or f"id:{row.id}" for row in candidates})
    _delete_rows(db, user, candidates)
    logger.info("Bulk deleted %s transaction(s) for user %s", count, user.id)
    return count


def record_initial_balance(db: Session, user: User, wallet: Wallet) -> Transaction | None:
    """History row for a wallet's starting balance; it does not move the balance."""
    amount = _as_decimal(wallet.starting_balance)
    if amount == 0:
        return None
    category = ensure_system_category(db, INITIAL_BALANCE_CATEGORY)
    on_date = _wallet_created_on(wallet) or _utc_today()
    resolver = ExchangeRateResolver(db)
    base_amount, resolution = _system_base_value(resolver, user.base_currency, wallet.currency, amount, on_date)
    row = Transaction(
        user_id=user.id,
        wallet_id=wallet.id,
        type=TransactionType.INCOME if amount > 0 else TransactionType.EXPENSE,
        is_system=True,
        system_type=SystemType.INITIAL_BALANCE.value,
        amount=amount,
        currency=wallet.currency,
        category_id=category.id,
        description="Initial balance",
        date=on_date,
        base_currency_amount=base_amount,
    )
    _apply_rate_fields(row, resolution)
    db.add(row)
    db.flush()
    return row


def adjust_wallet_balance(
    db: Session,
    user: User,
    wallet_id: int,
    target_balance,
    on_date: date | None = None,
    description: str | None = None,
) -> LedgerResult:
    wallets = _lock_wallets(db, user.id, [wallet_id])
    wallet = wallets.get(wallet_id)
    if wallet is None:
        raise NotFoundError("Wallet not found.", wallet_id=wallet_id)
    if wallet.is_archived:
        raise ValidationError("Archived wallets cannot be adjusted.", wallet_id=wallet_id)

    target = _parse_amount(target_balance, wallet.currency, signed=True)
    today = _utc_today()
    on_date = on_date or today
    if on_date > today:
        raise ValidationError("Adjustment date cannot be in the future.")
    _check_wallet_date(wallet, on_date)

    current = _as_decimal(wallet.current_balance)
    delta = target - current
    if delta == 0:
        raise ValidationError("New balance is the same as the current balance.")
    if wallet.type == WalletType.CASH and target < 0:
        raise OverdraftBlocked(
            "Cash wallets cannot have a negative balance.", wallet_id=wallet.id, available=str(_q(current).normalize())
        )

    category = ensure_system_category(db, BALANCE_ADJUSTMENT_CATEGORY)
    resolver = ExchangeRateResolver(db)
    base_amount, resolution = _system_base_value(resolver, user.base_currency, wallet.currency, delta, on_date)
    row = Transaction(
        user_id=user.id,
        wallet_id=wallet.id,
        type=TransactionType.INCOME if delta > 0 else TransactionType.EXPENSE,
        is_system=True,
        system_type=SystemType.BALANCE_ADJUSTMENT.value,
        amount=delta,
        currency=wallet.currency,
        category_id=category.id,
        description=_clean(description) or "Balance adjustment",
        date=on_date,
        base_currency_amount=base_amount,
    )
    _apply_rate_fields(row, resolution)
    db.add(row)

    warnings: list[dict] = []
    before = _snapshot(wallets)
    wallet.current_balance = target
    _check_balances(wallets, before, warnings)
    db.flush()
    logger.info("Adjusted wallet %s by %s for user %s", wallet.id, delta, user.id)
    return LedgerResult([row], warnings, resolution)


def recalculate_wallet_balances(db: Session, *, user_id: int | None = None, apply: bool = True) -> list[dict]:
    query = db.query(Wallet)
    if user_id is not None:
        query = query.filter(Wallet.user_id == user_id)
    wallets = query.order_by(Wallet.id.asc()).with_for_update().populate_existing().all()

    corrections = []
    for wallet in wallets:
        expected = _q(expected_balance(db, wallet))
        stored = _q(wallet.current_balance)
        if expected == stored:
            continue
        corrections.append(
            {
                "wallet_id": wallet.id,
                "name": wallet.name,
                "stored": str(stored),
                "expected": str(expected),
            }
        )
        if apply:
            wallet.current_balance = expected
    db.flush()
    if corrections:
        logger.warning("Recalculated %s wallet balance(s)", len(corrections))
    return corrections
