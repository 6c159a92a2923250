from datetime import date

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from budget_ledger.core.database import get_db
from budget_ledger.dependencies import get_current_user
from budget_ledger.models import User
from budget_ledger.schemas.exchange_rate import RateAvailabilityOut
from budget_ledger.services.exchange_rates import ExchangeRateResolver

router = APIRouter()


@router.get("/availability", response_model=RateAvailabilityOut)
def get_rate_availability(
    on_date: date = Query(alias="date"),
    currency: str = Query(min_length=3, max_length=3),
    to_currency: str | None = Query(default=None, alias="to", min_length=3, max_length=3),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    resolution = ExchangeRateResolver(db).resolve(on_date, currency, to_currency or user.base_currency)
    return RateAvailabilityOut.model_validate(resolution.as_dict())
