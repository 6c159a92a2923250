from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from budget_ledger.core.database import get_db
from budget_ledger.dependencies import get_current_user
from budget_ledger.models import User
from budget_ledger.schemas.reference import ReferenceDataOut
from budget_ledger.services.reference_data import list_reference_data

router = APIRouter()


@router.get("/reference-data", response_model=ReferenceDataOut)
def get_reference_data(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return ReferenceDataOut.model_validate(list_reference_data(db, user))
