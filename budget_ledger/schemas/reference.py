from typing import Optional

from pydantic import BaseModel

from budget_ledger.schemas.transaction import TagOut


class CategoryOut(BaseModel):
    id: int
    name: str
    type: str
    icon: Optional[str] = None
    color: Optional[str] = None
    is_system: bool

    class Config:
        from_attributes = True


class ReferenceDataOut(BaseModel):
    categories: list[CategoryOut]
    tags: list[TagOut]
