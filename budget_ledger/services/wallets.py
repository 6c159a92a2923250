import logging
from datetime import datetime, timezone

from sqlalchemy.orm import Session

from budget_ledger.core.errors import NotFoundError, ValidationError
from budget_ledger.models import User, Wallet, WalletType
from budget_ledger.services.amounts import validate_amount
from budget_ledger.services.currency import is_supported_currency, normalize_currency
from budget_ledger.services.ledger import record_initial_balance


logger = logging.getLogger(__name__)

WALLET_NAME_MAX_LENGTH = 50

WALLET_DEFAULTS = {
    WalletType.CASH: {"label": "Cash Wallet", "icon": "wallet", "color": "#10B981"},
    WalletType.BANK: {"label": "Bank Account", "icon": "bank", "color": "#3B82F6"},
    WalletType.DIGITAL_WALLET: {"label": "Digital Wallet", "icon": "smartphone", "color": "#8B5CF6"},
}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def generate_wallet_name(db: Session, user_id: int, wallet_type: WalletType) -> str:
    label = WALLET_DEFAULTS[wallet_type]["label"]
    existing = {
        name
        for (name,) in db.query(Wallet.name).filter(Wallet.user_id == user_id, Wallet.type == wallet_type).all()
    }
    number = len(existing) + 1
    while f"{label} {number}" in existing:
        number += 1
    return f"{label} {number}"


def get_wallet(db: Session, user: User, wallet_id: int) -> Wallet:
    wallet = db.query(Wallet).filter(Wallet.id == wallet_id, Wallet.user_id == user.id).first()
    if not wallet:
        raise NotFoundError("Wallet not found.", wallet_id=wallet_id)
    return wallet


def list_wallets(db: Session, user: User, *, archived: bool = False) -> list[Wallet]:
    query = db.query(Wallet).filter(Wallet.user_id == user.id, Wallet.is_archived.is_(archived))
    if archived:
        return query.order_by(Wallet.archived_at.desc(), Wallet.id.desc()).all()
    return query.order_by(Wallet.created_at.asc(), Wallet.id.asc()).all()


def _clean_name(name: str | None) -> str | None:
    text = (name or "").strip()
    if len(text) > WALLET_NAME_MAX_LENGTH:
        raise ValidationError(f"Wallet name must be at most {WALLET_NAME_MAX_LENGTH} characters.")
    return text or None


def create_wallet(db: Session, user: User, payload) -> Wallet:
    wallet_type = WalletType(payload.type)
    currency = normalize_currency(payload.currency)
    if not is_supported_currency(currency):
        raise ValidationError(f"Unsupported currency: {currency}.")

    result = validate_amount(payload.starting_balance or "0", currency, signed=True)
    if not result.valid:
        raise ValidationError(result.error, field="startingBalance")
    starting_balance = result.value
    if wallet_type == WalletType.CASH and starting_balance < 0:
        raise ValidationError("Cash wallets cannot start with a negative balance.")

    defaults = WALLET_DEFAULTS[wallet_type]
    wallet = Wallet(
        user_id=user.id,
        name=_clean_name(payload.name) or generate_wallet_name(db, user.id, wallet_type),
        type=wallet_type,
        currency=currency,
        starting_balance=starting_balance,
        current_balance=starting_balance,
        color=payload.color or defaults["color"],
        icon=payload.icon or defaults["icon"],
        include_in_balance=payload.include_in_balance,
        is_archived=False,
        created_at=_utcnow(),
    )
    db.add(wallet)
    db.flush()
    record_initial_balance(db, user, wallet)
    logger.info("Created %s wallet %s (%s) for user %s", wallet_type.value, wallet.id, currency, user.id)
    return wallet


def update_wallet(db: Session, user: User, wallet_id: int, payload) -> Wallet:
    wallet = get_wallet(db, user, wallet_id)
    if wallet.is_archived:
        raise ValidationError("Archived wallets cannot be edited. Restore the wallet first.")
    fields = payload.model_dump(exclude_unset=True)
    if "name" in fields:
        name = _clean_name(fields["name"])
        if not name:
            raise ValidationError("Wallet name is required.")
        wallet.name = name
    for attr in ("color", "icon"):
        if fields.get(attr):
            setattr(wallet, attr, fields[attr])
    if fields.get("include_in_balance") is not None:
        wallet.include_in_balance = bool(fields["include_in_balance"])
    db.flush()
    return wallet


def archive_wallet(db: Session, user: User, wallet_id: int) -> Wallet:
    wallet = get_wallet(db, user, wallet_id)
    if wallet.is_archived:
        raise ValidationError("Wallet is already archived.")
    wallet.is_archived = True
    wallet.archived_at = _utcnow()
    db.flush()
    logger.info("Archived wallet %s for user %s", wallet.id, user.id)
    return wallet


def restore_wallet(db: Session, user: User, wallet_id: int) -> Wallet:
    wallet = get_wallet(db, user, wallet_id)
    if not wallet.is_archived:
        raise ValidationError("Wallet is not archived.")
    wallet.is_archived = False
    wallet.archived_at = None
    db.flush()
    logger.info("Restored wallet %s for user %s", wallet.id, user.id)
    return wallet