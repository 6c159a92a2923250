from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from budget_ledger.models import WalletType
from budget_ledger.schemas.transaction import TransactionOut, _decimal_string


class WalletOut(BaseModel):
    id: int
    name: str
    type: WalletType
    currency: str
    starting_balance: Decimal
    current_balance: Decimal
    color: Optional[str] = None
    icon: Optional[str] = None
    include_in_balance: bool
    is_archived: bool
    archived_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class WalletCreate(BaseModel):
    name: Optional[str] = Field(default=None, max_length=50)
    type: WalletType
    currency: str = Field(min_length=3, max_length=3)
    starting_balance: Optional[str] = Field(default="0", alias="startingBalance")
    color: Optional[str] = Field(default=None, max_length=16)
    icon: Optional[str] = Field(default=None, max_length=64)
    include_in_balance: bool = Field(default=True, alias="includeInBalance")

    class Config:
        populate_by_name = True

    @field_validator("starting_balance", mode="before")
    @classmethod
    def _coerce_decimal(cls, value):
        return _decimal_string(value)


class WalletUpdate(BaseModel):
    name: Optional[str] = Field(default=None, max_length=50)
    color: Optional[str] = Field(default=None, max_length=16)
    icon: Optional[str] = Field(default=None, max_length=64)
    include_in_balance: Optional[bool] = Field(default=None, alias="includeInBalance")

    class Config:
        populate_by_name = True


class BalanceAdjustmentRequest(BaseModel):
    target_balance: str = Field(alias="targetBalance")
    on_date: Optional[date] = Field(default=None, alias="date")
    description: Optional[str] = Field(default=None, max_length=200)

    class Config:
        populate_by_name = True

    @field_validator("target_balance", mode="before")
    @classmethod
    def _coerce_decimal(cls, value):
        return _decimal_string(value)


class NetWorthOut(BaseModel):
    total: Decimal
    currency: str
    date: date
    wallet_count: int = Field(alias="walletCount")
    unconverted: list[dict]
    stale_rates: list[dict] = Field(alias="staleRates")

    class Config:
        populate_by_name = True


class WalletListOut(BaseModel):
    wallets: list[WalletOut]
    net_worth: NetWorthOut = Field(alias="netWorth")

    class Config:
        populate_by_name = True


class BalanceAdjustmentOut(BaseModel):
    message: str
    wallet: WalletOut
    transaction: TransactionOut
    warnings: list[dict] = Field(default_factory=list)
