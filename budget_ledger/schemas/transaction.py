from datetime import date, datetime
from decimal import Decimal
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, Field, TypeAdapter, field_validator
from pydantic import ValidationError as PydanticValidationError

from budget_ledger.core.errors import ValidationError as LedgerValidationError, describe_validation_errors


def _decimal_string(value):
    # Money travels as strings; numbers are accepted and stringified before validation.
    if value is None or isinstance(value, str):
        return value
    if isinstance(value, bool):
        raise ValueError("must be a decimal string")
    if isinstance(value, float):
        return format(Decimal(repr(value)), "f")
    if isinstance(value, Decimal):
        return format(value, "f")
    if isinstance(value, int):
        return str(value)
    raise ValueError("must be a decimal string")


class CustomTagIn(BaseModel):
    id: Optional[int] = None
    name: Optional[str] = Field(default=None, max_length=50)
    is_new: bool = Field(default=False, alias="isNew")

    class Config:
        populate_by_name = True


class _TransactionFields(BaseModel):
    amount: str
    date: date
    description: Optional[str] = Field(default=None, max_length=200)
    manual_exchange_rate: Optional[str] = Field(default=None, alias="manualExchangeRate")

    class Config:
        populate_by_name = True

    @field_validator("amount", "manual_exchange_rate", mode="before")
    @classmethod
    def _coerce_decimal(cls, value):
        return _decimal_string(value)


class EntryCreate(_TransactionFields):
    transaction_type: Literal["income", "expense"] = Field(alias="transactionType")
    wallet_id: int = Field(alias="walletId")
    category_id: Optional[int] = Field(default=None, alias="category")
    merchant: Optional[str] = Field(default=None, max_length=80)
    counterparty: Optional[str] = Field(default=None, max_length=80)
    suggested_tags: list[int] = Field(default_factory=list, alias="suggestedTags")
    custom_tags: list[CustomTagIn] = Field(default_factory=list, alias="customTags")


class TransferCreate(_TransactionFields):
    transaction_type: Literal["transfer"] = Field(alias="transactionType")
    from_wallet_id: int = Field(alias="fromWalletId")
    to_wallet_id: int = Field(alias="toWalletId")
    # Accepted only to reject them with a clear message.
    category_id: Optional[int] = Field(default=None, alias="category")
    suggested_tags: list[int] = Field(default_factory=list, alias="suggestedTags")
    custom_tags: list[CustomTagIn] = Field(default_factory=list, alias="customTags")


TransactionCreate = Annotated[Union[EntryCreate, TransferCreate], Field(discriminator="transaction_type")]


class BulkDeleteRequest(BaseModel):
    transaction_ids: list[int] = Field(alias="transactionIds", min_length=1, max_length=500)

    class Config:
        populate_by_name = True


class TagOut(BaseModel):
    id: int
    name: str
    is_system: bool

    class Config:
        from_attributes = True


class TransactionOut(BaseModel):
    id: int
    type: str
    is_system: bool
    system_type: Optional[str] = None
    wallet_id: int
    to_wallet_id: Optional[int] = None
    transfer_id: Optional[str] = None
    amount: Decimal
    currency: str
    category_id: Optional[int] = None
    merchant: Optional[str] = None
    counterparty: Optional[str] = None
    description: Optional[str] = None
    date: date
    base_currency_amount: Optional[Decimal] = None
    exchange_rate_used: Optional[Decimal] = None
    exchange_rate_date: Optional[date] = None
    exchange_rate_severity: Optional[str] = None
    manual_exchange_rate: bool = False
    tags: list[TagOut] = Field(default_factory=list)
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True

    @field_validator("type", mode="before")
    @classmethod
    def _enum_value(cls, value):
        return getattr(value, "value", value)


class TotalsOut(BaseModel):
    income: Decimal
    expenses: Decimal
    net: Decimal
    currency: str


class PaginationOut(BaseModel):
    page: int
    per_page: int = Field(alias="perPage")
    total: int
    total_pages: int = Field(alias="totalPages")

    class Config:
        populate_by_name = True


class TransactionListOut(BaseModel):
    transactions: list[TransactionOut]
    pagination: PaginationOut
    totals: TotalsOut


transaction_payload_adapter = TypeAdapter(TransactionCreate)


def parse_transaction_payload(data) -> Union[EntryCreate, TransferCreate]:
    try:
        return transaction_payload_adapter.validate_python(data)
    except PydanticValidationError as exc:
        errors = exc.errors()
        raise LedgerValidationError(describe_validation_errors(errors), errors=len(errors))
