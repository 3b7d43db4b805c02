"""
Service for creating and updating individual transactions.

Each call is one serializable unit: the account row is locked, the balance is
moved by the transaction's signed amount and the transaction row is written,
or nothing is. Updates apply only the difference between the old and new
signed amounts to the current balance instead of replaying history.
"""
import logging
from datetime import datetime
from decimal import Decimal
from typing import List, Optional, Tuple
from uuid import UUID

from sqlalchemy.orm import Session

from ledger.database import run_serializable
from ledger.errors import TransactionNotFound
from ledger.models import Account, Transaction, TransactionStatus, signed_amount
from ledger.recurrence import advance
from ledger.schemas import (
    AccountResponse,
    TransactionChangedEvent,
    TransactionCreate,
    TransactionResponse,
    TransactionUpdate,
)
from ledger.services.account_service import apply_balance_delta, lock_account
from ledger.services.event_publisher import EventPublisher

logger = logging.getLogger(__name__)


def record_transaction(
    db: Session,
    account: Account,
    transaction_type: str,
    amount: Decimal,
    category: str,
    description: Optional[str],
    date: datetime,
    recurring_interval: Optional[str] = None,
    allow_negative: bool = False,
) -> Transaction:
    """
    Insert a transaction and move the locked account's balance by its signed amount.

    Must run inside ``run_serializable`` with ``account`` obtained from
    ``lock_account``; the caller's commit makes both writes visible together.
    A recurring_interval turns the row into a template scheduled one interval
    after ``date``.
    """
    apply_balance_delta(account, signed_amount(transaction_type, amount), allow_negative=allow_negative)

    transaction = Transaction(
        owner_id=account.owner_id,
        account_id=account.id,
        transaction_type=transaction_type,
        amount=amount,
        category=category,
        description=description,
        date=date,
        status=TransactionStatus.COMPLETED.value,
        is_recurring=recurring_interval is not None,
        recurring_interval=recurring_interval,
        next_recurring_date=advance(date, recurring_interval) if recurring_interval else None,
    )
    db.add(transaction)
    db.flush()
    return transaction


def snapshot(db: Session, transaction: Transaction, account: Account) -> Tuple[TransactionResponse, AccountResponse]:
    """Flush pending writes and capture both rows as they will commit."""
    db.flush()
    db.refresh(transaction)
    db.refresh(account)
    return TransactionResponse.model_validate(transaction), AccountResponse.model_validate(account)


def changed_event(
    change: str,
    transaction: TransactionResponse,
    account: AccountResponse,
    previous_date: Optional[datetime] = None,
) -> TransactionChangedEvent:
    return TransactionChangedEvent(
        change=change,
        transaction_id=transaction.id,
        owner_id=transaction.owner_id,
        account_id=account.id,
        date=transaction.date,
        previous_date=previous_date,
        account_name=account.name,
        account_type=account.account_type,
        account_balance=account.balance,
    )


class LedgerService:
    """Service for single-transaction writes and reads."""

    def __init__(self, db: Session, publisher: Optional[EventPublisher] = None):
        self.db = db
        self.publisher = publisher or EventPublisher()

    def create_transaction(self, owner_id: str, payload: TransactionCreate) -> TransactionResponse:
        """
        Create a transaction on one of the owner's accounts.

        Raises:
            AccountNotFound: Account missing or owned by someone else
            InsufficientBalance: The balance would drop below zero
        """
        def work(db: Session) -> Tuple[TransactionResponse, AccountResponse]:
            account = lock_account(db, owner_id, payload.account_id)
            transaction = record_transaction(
                db,
                account,
                transaction_type=payload.transaction_type.value,
                amount=payload.amount,
                category=payload.category,
                description=payload.description,
                date=payload.date,
                recurring_interval=payload.recurring_interval.value if payload.is_recurring else None,
            )
            return snapshot(db, transaction, account)

        transaction, account = run_serializable(self.db, work)
        logger.info(
            f"Created {transaction.transaction_type.value} {transaction.id} on account {account.id} "
            f"(balance={account.balance})"
        )
        self.publisher.publish_transaction_changed(changed_event("created", transaction, account))
        return transaction

    def update_transaction(
        self,
        owner_id: str,
        transaction_id: UUID,
        payload: TransactionUpdate,
    ) -> TransactionResponse:
        """
        Update a transaction and shift its account's balance by the difference
        between the new and old signed amounts.

        payload.account_id is ignored; a transaction never changes account.
        A recurring update reschedules the template one interval after the
        submitted date; a non-recurring one clears the schedule.

        Raises:
            TransactionNotFound: Transaction missing or owned by someone else
            InsufficientBalance: The balance would drop below zero
        """
        def work(db: Session) -> Tuple[TransactionResponse, AccountResponse, datetime]:
            transaction = (
                db.query(Transaction)
                .filter(Transaction.id == transaction_id, Transaction.owner_id == owner_id)
                .with_for_update()
                .first()
            )
            if not transaction:
                raise TransactionNotFound()

            account = lock_account(db, owner_id, transaction.account_id)

            new_type = payload.transaction_type.value
            balance_difference = signed_amount(new_type, payload.amount) - transaction.signed_amount
            apply_balance_delta(account, balance_difference)

            previous_date = transaction.date
            new_interval = payload.recurring_interval.value if payload.is_recurring else None

            transaction.transaction_type = new_type
            transaction.amount = payload.amount
            transaction.category = payload.category
            transaction.description = payload.description
            transaction.date = payload.date

            if new_interval:
                transaction.next_recurring_date = advance(payload.date, new_interval)
                transaction.is_recurring = True
                transaction.recurring_interval = new_interval
            else:
                transaction.is_recurring = False
                transaction.recurring_interval = None
                transaction.next_recurring_date = None

            updated, account_snapshot = snapshot(db, transaction, account)
            return updated, account_snapshot, previous_date

        transaction, account, previous_date = run_serializable(self.db, work)
        logger.info(f"Updated transaction {transaction.id} on account {account.id} (balance={account.balance})")
        self.publisher.publish_transaction_changed(
            changed_event("updated", transaction, account, previous_date=previous_date)
        )
        return transaction

    def get_transaction(self, owner_id: str, transaction_id: UUID) -> TransactionResponse:
        transaction = self.db.query(Transaction).filter(
            Transaction.id == transaction_id,
            Transaction.owner_id == owner_id
        ).first()
        if not transaction:
            raise TransactionNotFound()
        return TransactionResponse.model_validate(transaction)

    def list_transactions(
        self,
        owner_id: str,
        account_id: Optional[UUID] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> List[TransactionResponse]:
        """List an owner's transactions, newest first, optionally for one account."""
        query = self.db.query(Transaction).filter(Transaction.owner_id == owner_id)
        if account_id:
            query = query.filter(Transaction.account_id == account_id)

        transactions = (
            query.order_by(Transaction.date.desc(), Transaction.created_at.desc())
            .offset(offset)
            .limit(limit)
            .all()
        )
        return [TransactionResponse.model_validate(t) for t in transactions]
