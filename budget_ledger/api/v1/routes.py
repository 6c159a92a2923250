from fastapi import APIRouter
from budget_ledger.api.v1.endpoints import transactions, wallets, exchange_rates, reference_data

router = APIRouter()

router.include_router(transactions.router, prefix="/transactions", tags=["transactions"])
router.include_router(wallets.router, prefix="/wallets", tags=["wallets"])
router.include_router(exchange_rates.router, prefix="/exchange-rates", tags=["exchange-rates"])
router.include_router(reference_data.router, prefix="/user", tags=["user"])
