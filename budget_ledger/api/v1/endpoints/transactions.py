from datetime import date
from decimal import Decimal

from fastapi import APIRouter, Body, Depends, Query, Request
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from budget_ledger.core.config import get_settings
from budget_ledger.core.database import atomic, get_db
from budget_ledger.dependencies import get_current_user, require_idempotency_key
from budget_ledger.middlewares.rate_limit import limiter
from budget_ledger.models import TransactionType, User
from budget_ledger.schemas.transaction import (
    BulkDeleteRequest,
    TotalsOut,
    TransactionListOut,
    TransactionOut,
    parse_transaction_payload,
)
from budget_ledger.services.aggregates import (
    DEFAULT_PER_PAGE,
    MAX_PER_PAGE,
    TransactionFilters,
    compute_totals,
    list_transactions,
    transaction_ids,
)
from budget_ledger.services.idempotency import execute_idempotent
from budget_ledger.services.ledger import (
    LedgerResult,
    bulk_delete_transactions,
    create_transaction,
    delete_transaction,
    update_transaction,
)

router = APIRouter()
settings = get_settings()


def transaction_filters(
    start_date: date | None = Query(default=None, alias="startDate"),
    end_date: date | None = Query(default=None, alias="endDate"),
    include_future: bool = Query(default=False, alias="includeFuture"),
    types: list[TransactionType] = Query(default=[], alias="type"),
    wallet_ids: list[int] = Query(default=[], alias="walletIds"),
    category_ids: list[int] = Query(default=[], alias="categoryIds"),
    tag_ids: list[int] = Query(default=[], alias="tagIds"),
    search: str | None = Query(default=None, max_length=100),
    min_amount: Decimal | None = Query(default=None, alias="minAmount", ge=0),
    max_amount: Decimal | None = Query(default=None, alias="maxAmount", ge=0),
    currency: str | None = Query(default=None, min_length=3, max_length=3),
    exclude_base_currency: bool = Query(default=False, alias="excludeBaseCurrency"),
) -> TransactionFilters:
    return TransactionFilters(
        start_date=start_date,
        end_date=end_date,
        include_future=include_future,
        types=types,
        wallet_ids=wallet_ids,
        category_ids=category_ids,
        tag_ids=tag_ids,
        search=search,
        min_amount=min_amount,
        max_amount=max_amount,
        currency=currency,
        exclude_base_currency=exclude_base_currency,
    )


def _result_body(result: LedgerResult, message: str) -> dict:
    primary = result.transactions[0]
    return {
        "message": message,
        "type": getattr(primary.type, "value", primary.type),
        "transactions": [TransactionOut.model_validate(row).model_dump(mode="json") for row in result.transactions],
        "warnings": result.warnings,
        "exchangeRate": result.exchange_rate.as_dict() if result.exchange_rate else None,
    }


def _json(status_code: int, body: dict, replayed: bool) -> JSONResponse:
    headers = {"Idempotent-Replayed": "true"} if replayed else None
    return JSONResponse(status_code=status_code, content=body, headers=headers)


@router.get("", response_model=TransactionListOut)
def list_user_transactions(
    filters: TransactionFilters = Depends(transaction_filters),
    page: int = Query(default=1, ge=1),
    per_page: int = Query(default=DEFAULT_PER_PAGE, ge=1, le=MAX_PER_PAGE, alias="perPage"),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    result = list_transactions(db, user, filters, page=page, per_page=per_page)
    return TransactionListOut.model_validate(result)


@router.get("/totals", response_model=TotalsOut)
def get_totals(
    filters: TransactionFilters = Depends(transaction_filters),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return compute_totals(db, user, filters)


@router.get("/ids")
def get_transaction_ids(
    filters: TransactionFilters = Depends(transaction_filters),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    ids = transaction_ids(db, user, filters)
    return {"ids": ids, "count": len(ids)}


@router.post("", status_code=201)
@limiter.limit(settings.transaction_write_rate_limit)
def create_user_transaction(
    request: Request,
    body: dict = Body(...),
    user: User = Depends(get_current_user),
    idempotency_key: str = Depends(require_idempotency_key),
    db: Session = Depends(get_db),
):
    payload = parse_transaction_payload(body)

    def _operation():
        result = create_transaction(db, user, payload)
        return 201, _result_body(result, "Transaction created successfully")

    status_code, content, replayed = execute_idempotent(
        db,
        user_id=user.id,
        key=idempotency_key,
        method="POST",
        path=request.url.path,
        operation=_operation,
    )
    return _json(status_code, content, replayed)


@router.put("/{transaction_id}")
@limiter.limit(settings.transaction_write_rate_limit)
def update_user_transaction(
    request: Request,
    transaction_id: int,
    body: dict = Body(...),
    user: User = Depends(get_current_user),
    idempotency_key: str = Depends(require_idempotency_key),
    db: Session = Depends(get_db),
):
    payload = parse_transaction_payload(body)

    def _operation():
        result = update_transaction(db, user, transaction_id, payload)
        return 200, _result_body(result, "Transaction updated successfully")

    status_code, content, replayed = execute_idempotent(
        db,
        user_id=user.id,
        key=idempotency_key,
        method="PUT",
        path=request.url.path,
        operation=_operation,
    )
    return _json(status_code, content, replayed)


@router.delete("/{transaction_id}")
@limiter.limit(settings.transaction_write_rate_limit)
def delete_user_transaction(
    request: Request,
    transaction_id: int,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    with atomic(db):
        count = delete_transaction(db, user, transaction_id)
    return {"message": "Transaction deleted successfully", "count": count}


@router.post("/bulk-delete")
@limiter.limit(settings.transaction_write_rate_limit)
def bulk_delete_user_transactions(
    request: Request,
    payload: BulkDeleteRequest,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    with atomic(db):
        count = bulk_delete_transactions(db, user, payload.transaction_ids)
    return {"message": f"{count} transaction(s) deleted", "count": count}
