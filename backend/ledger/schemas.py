from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from datetime import datetime, timezone
from decimal import Decimal
from typing import List, Literal, Optional, Tuple, Union
from uuid import UUID

from ledger.config import get_settings
from ledger.models import AccountType, RecurringInterval, TransactionStatus, TransactionType, utcnow


# Matches the Numeric(15, 2) money columns
MONEY_DIGITS = 15
MONEY_PLACES = 2


def _check_money(value: Decimal) -> None:
    if abs(value) >= Decimal(10) ** (MONEY_DIGITS - MONEY_PLACES):
        raise ValueError("Amount is too large")
    if value.normalize().as_tuple().exponent < -MONEY_PLACES:
        raise ValueError(f"Amount cannot have more than {MONEY_PLACES} decimal places")


def _as_naive_utc(value: datetime) -> datetime:
    if value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


# Account Schemas
class AccountCreate(BaseModel):
    name: str = Field(min_length=3)
    account_type: AccountType
    # Range is checked by AccountService so NaN/negative map to INVALID_BALANCE
    balance: Decimal = Field(default=Decimal("0"), allow_inf_nan=True)
    is_default: bool = False

    @field_validator("balance")
    @classmethod
    def _balance_fits_column(cls, value: Decimal) -> Decimal:
        if value.is_finite():
            _check_money(value)
        return value


class AccountResponse(BaseModel):
    id: UUID
    owner_id: str
    name: str
    account_type: AccountType
    balance: Decimal
    is_default: bool
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ReconciliationReport(BaseModel):
    account_id: UUID
    starting_balance: Decimal
    balance: Decimal
    transactions_total: Decimal
    drift: Decimal  # starting_balance + transactions_total - balance

    @property
    def balanced(self) -> bool:
        return self.drift == 0


# Transaction Schemas
class TransactionCreate(BaseModel):
    """
    Payload for creating or updating a transaction.
    On update, account_id is accepted but ignored.
    """
    account_id: UUID
    transaction_type: TransactionType
    amount: Decimal = Field(gt=0, max_digits=MONEY_DIGITS, decimal_places=MONEY_PLACES)
    category: str = Field(min_length=1)
    description: Optional[str] = None
    date: datetime
    is_recurring: bool = False
    recurring_interval: Optional[RecurringInterval] = None

    @field_validator("date")
    @classmethod
    def _date_in_range(cls, value: datetime) -> datetime:
        value = _as_naive_utc(value)
        if value > utcnow():
            raise ValueError("Date cannot be in the future")
        min_date = get_settings().transaction_min_date
        if value.date() < min_date:
            raise ValueError("Date is too old")
        return value

    @model_validator(mode="after")
    def _interval_for_recurring(self) -> "TransactionCreate":
        if self.is_recurring and self.recurring_interval is None:
            raise ValueError("Recurring interval is required")
        if not self.is_recurring:
            self.recurring_interval = None
        return self


TransactionUpdate = TransactionCreate


class TransactionResponse(BaseModel):
    id: UUID
    owner_id: str
    account_id: UUID
    transaction_type: TransactionType
    amount: Decimal
    category: str
    description: Optional[str] = None
    date: datetime
    status: TransactionStatus
    is_recurring: bool
    recurring_interval: Optional[RecurringInterval] = None
    next_recurring_date: Optional[datetime] = None
    last_processed: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class BulkDeleteRequest(BaseModel):
    transaction_ids: List[UUID] = Field(min_length=1)


class BulkDeleteResponse(BaseModel):
    deleted: List[TransactionResponse]
    account_snapshots: List[Tuple[UUID, AccountResponse]]


class ActionResult(BaseModel):
    success: bool = True
    message: str


# Ledger entry variants: one physical row, two shapes
class _LedgerEntryBase(BaseModel):
    id: UUID
    owner_id: str
    account_id: UUID
    transaction_type: TransactionType
    amount: Decimal
    category: str
    description: Optional[str] = None
    date: datetime
    status: TransactionStatus

    model_config = ConfigDict(from_attributes=True)


class PlainTransaction(_LedgerEntryBase):
    kind: Literal["plain"] = "plain"


class RecurringTemplate(_LedgerEntryBase):
    kind: Literal["recurring"] = "recurring"
    recurring_interval: RecurringInterval
    next_recurring_date: datetime
    last_processed: Optional[datetime] = None


def as_ledger_entry(row) -> Union[PlainTransaction, RecurringTemplate]:
    """Typed view of a transactions row."""
    if row.is_recurring:
        return RecurringTemplate.model_validate(row)
    return PlainTransaction.model_validate(row)


# Outbound events
class TransactionChangedEvent(BaseModel):
    change: Literal["created", "updated", "deleted", "materialized"]
    transaction_id: Optional[UUID] = None
    owner_id: str
    account_id: UUID
    date: datetime
    previous_date: Optional[datetime] = None
    account_name: str
    account_type: AccountType
    account_balance: Decimal


# Scheduler job message
class RecurringJob(BaseModel):
    transaction_id: UUID
    owner_id: str
