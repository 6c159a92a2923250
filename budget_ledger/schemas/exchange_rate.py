from typing import Optional

from pydantic import BaseModel, Field


class RateDisplayOut(BaseModel):
    from_currency: str = Field(alias="from")
    to_currency: str = Field(alias="to")
    value: Optional[str] = None

    class Config:
        populate_by_name = True


class RateAvailabilityOut(BaseModel):
    available: bool
    exact_match: bool = Field(alias="exactMatch")
    requires_manual_input: bool = Field(alias="requiresManualInput")
    severity: str
    rate: Optional[str] = None
    date: str
    rate_date: Optional[str] = Field(default=None, alias="rateDate")
    days_difference: Optional[int] = Field(default=None, alias="daysDifference")
    manual: bool = False
    rate_display: RateDisplayOut = Field(alias="rateDisplay")

    class Config:
        populate_by_name = True
