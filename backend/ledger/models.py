"""
SQLAlchemy models for the ledger.

Accounts carry the running balance; transactions are both ledger entries and,
when ``is_recurring`` is set, the schedule state of a recurring template.
"""
import enum
import uuid
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import (
    Column,
    String,
    Boolean,
    DateTime,
    Numeric,
    Text,
    ForeignKey,
    Index,
    Uuid,
)
from sqlalchemy.orm import relationship

from ledger.database import Base


def utcnow() -> datetime:
    """Naive UTC timestamp, matching the ``DateTime`` columns."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class AccountType(str, enum.Enum):
    CHECKING = "CHECKING"
    SAVINGS = "SAVINGS"


class TransactionType(str, enum.Enum):
    INCOME = "INCOME"
    EXPENSE = "EXPENSE"


class TransactionStatus(str, enum.Enum):
    PENDING = "PENDING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


class RecurringInterval(str, enum.Enum):
    DAILY = "DAILY"
    WEEKLY = "WEEKLY"
    MONTHLY = "MONTHLY"
    YEARLY = "YEARLY"


class Account(Base):
    """
    Account with a running balance.
    Exactly one account per owner has is_default set; the services enforce it.
    """
    __tablename__ = "accounts"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    owner_id = Column(String, nullable=False, index=True)
    name = Column(String(255), nullable=False)
    account_type = Column(String(20), nullable=False)  # CHECKING, SAVINGS
    balance = Column(Numeric(15, 2), nullable=False, default=Decimal("0"))
    starting_balance = Column(Numeric(15, 2), nullable=False, default=Decimal("0"))  # Balance at creation
    is_default = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    # Relationships
    transactions = relationship("Transaction", back_populates="account", passive_deletes=True)

    # Indexes and constraints
    __table_args__ = (
        Index("idx_accounts_owner", "owner_id"),
        Index("idx_accounts_owner_default", "owner_id", "is_default"),
    )


class Transaction(Base):
    """
    Ledger entry. account_id never changes after insert.
    next_recurring_date is set exactly when is_recurring is true.
    """
    __tablename__ = "transactions"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    owner_id = Column(String, nullable=False, index=True)
    account_id = Column(Uuid, ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False, index=True)
    transaction_type = Column(String(20), nullable=False)  # INCOME, EXPENSE
    amount = Column(Numeric(15, 2), nullable=False)  # Always positive; sign comes from the type
    category = Column(String(100), nullable=False)
    description = Column(Text, nullable=True)
    date = Column(DateTime, nullable=False, index=True)
    status = Column(String(20), nullable=False, default=TransactionStatus.COMPLETED.value)
    is_recurring = Column(Boolean, nullable=False, default=False)
    recurring_interval = Column(String(20), nullable=True)  # DAILY, WEEKLY, MONTHLY, YEARLY
    next_recurring_date = Column(DateTime, nullable=True)
    last_processed = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    # Relationships
    account = relationship("Account", back_populates="transactions")

    # Indexes and constraints
    __table_args__ = (
        Index("idx_transactions_owner", "owner_id"),
        Index("idx_transactions_account", "account_id"),
        Index("idx_transactions_date", "date"),
        Index("idx_transactions_recurring_due", "is_recurring", "status", "next_recurring_date"),
    )

    @property
    def signed_amount(self) -> Decimal:
        return signed_amount(self.transaction_type, self.amount)


def signed_amount(transaction_type: str, amount: Decimal) -> Decimal:
    """INCOME counts positive, EXPENSE negative."""
    amount = Decimal(amount)
    if transaction_type == TransactionType.INCOME.value:
        return amount
    return -amount
