from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from budget_ledger.core.config import get_settings
from budget_ledger.core.database import atomic, get_db
from budget_ledger.dependencies import get_current_user, optional_idempotency_key
from budget_ledger.middlewares.rate_limit import limiter
from budget_ledger.models import User
from budget_ledger.schemas.transaction import TransactionOut
from budget_ledger.schemas.wallet import (
    BalanceAdjustmentOut,
    BalanceAdjustmentRequest,
    NetWorthOut,
    WalletCreate,
    WalletListOut,
    WalletOut,
    WalletUpdate,
)
from budget_ledger.services.aggregates import net_worth
from budget_ledger.services.idempotency import execute_idempotent
from budget_ledger.services.ledger import adjust_wallet_balance
from budget_ledger.services.wallets import (
    archive_wallet,
    create_wallet,
    get_wallet,
    list_wallets,
    restore_wallet,
    update_wallet,
)

router = APIRouter()
settings = get_settings()


@router.get("", response_model=WalletListOut)
def get_wallets(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    wallets = list_wallets(db, user)
    return WalletListOut(
        wallets=[WalletOut.model_validate(wallet) for wallet in wallets],
        net_worth=NetWorthOut.model_validate(net_worth(db, user)),
    )


@router.get("/archived/list", response_model=list[WalletOut])
def get_archived_wallets(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return [WalletOut.model_validate(wallet) for wallet in list_wallets(db, user, archived=True)]


@router.get("/net-worth", response_model=NetWorthOut)
def get_net_worth(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return NetWorthOut.model_validate(net_worth(db, user))


@router.post("", response_model=WalletOut, status_code=201)
def create_user_wallet(payload: WalletCreate, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    with atomic(db):
        wallet = create_wallet(db, user, payload)
    return WalletOut.model_validate(wallet)


@router.put("/{wallet_id}", response_model=WalletOut)
def update_user_wallet(
    wallet_id: int,
    payload: WalletUpdate,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    with atomic(db):
        wallet = update_wallet(db, user, wallet_id, payload)
    return WalletOut.model_validate(wallet)


@router.patch("/{wallet_id}/archive", response_model=WalletOut)
def archive_user_wallet(wallet_id: int, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    with atomic(db):
        wallet = archive_wallet(db, user, wallet_id)
    return WalletOut.model_validate(wallet)


@router.patch("/{wallet_id}/restore", response_model=WalletOut)
def restore_user_wallet(wallet_id: int, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    with atomic(db):
        wallet = restore_wallet(db, user, wallet_id)
    return WalletOut.model_validate(wallet)


@router.post("/{wallet_id}/adjust-balance", status_code=201)
@limiter.limit(settings.transaction_write_rate_limit)
def adjust_user_wallet_balance(
    request: Request,
    wallet_id: int,
    payload: BalanceAdjustmentRequest,
    user: User = Depends(get_current_user),
    idempotency_key: str | None = Depends(optional_idempotency_key),
    db: Session = Depends(get_db),
):
    def _operation():
        result = adjust_wallet_balance(
            db,
            user,
            wallet_id,
            payload.target_balance,
            on_date=payload.on_date,
            description=payload.description,
        )
        body = BalanceAdjustmentOut(
            message="Wallet balance adjusted",
            wallet=WalletOut.model_validate(get_wallet(db, user, wallet_id)),
            transaction=TransactionOut.model_validate(result.transactions[0]),
            warnings=result.warnings,
        )
        return 201, body.model_dump(mode="json")

    status_code, content, replayed = execute_idempotent(
        db,
        user_id=user.id,
        key=idempotency_key,
        method="POST",
        path=request.url.path,
        operation=_operation,
    )
    headers = {"Idempotent-Replayed": "true"} if replayed else None
    return JSONResponse(status_code=status_code, content=content, headers=headers)
