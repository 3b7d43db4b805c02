"""
Service for account lifecycle and the single-default-account invariant.

Also owns balance reads and writes for the rest of the ledger: other services
lock an account through ``lock_account`` and move its balance through
``apply_balance_delta`` instead of touching ``Account.balance`` themselves.
"""
import logging
from decimal import Decimal
from typing import List
from uuid import UUID

from sqlalchemy import case, delete, func
from sqlalchemy.orm import Session

from ledger.database import run_serializable
from ledger.errors import AccountNotFound, InsufficientBalance, InvalidBalance, LastDefaultAccount
from ledger.models import Account, Transaction, TransactionType
from ledger.schemas import AccountCreate, AccountResponse, ReconciliationReport

logger = logging.getLogger(__name__)


def lock_account(db: Session, owner_id: str, account_id: UUID) -> Account:
    """
    Load an owned account with a row lock held until the transaction ends.
    Missing and foreign accounts both raise AccountNotFound.
    """
    account = (
        db.query(Account)
        .filter(Account.id == account_id, Account.owner_id == owner_id)
        .with_for_update()
        .first()
    )
    if not account:
        raise AccountNotFound()
    return account


def lock_account_transactions(db: Session, owner_id: str, account_id: UUID) -> List[UUID]:
    rows = (
        db.query(Transaction.id)
        .filter(Transaction.account_id == account_id, Transaction.owner_id == owner_id)
        .order_by(Transaction.id)
        .with_for_update()
        .all()
    )
    return [row.id for row in rows]


def lock_owner_accounts(db: Session, owner_id: str) -> List[Account]:
    # Locked in id order so concurrent owner-wide updates cannot deadlock
    return (
        db.query(Account)
        .filter(Account.owner_id == owner_id)
        .order_by(Account.id)
        .with_for_update()
        .all()
    )


def apply_balance_delta(account: Account, delta: Decimal, allow_negative: bool = False) -> Decimal:
    """
    Add ``delta`` to a locked account's balance.

    Raises:
        InsufficientBalance: The result would be negative and allow_negative is False
    """
    new_balance = Decimal(account.balance) + delta
    if new_balance < 0 and not allow_negative:
        raise InsufficientBalance()
    account.balance = new_balance
    return new_balance


class AccountService:
    """Service for creating, switching and deleting accounts."""

    def __init__(self, db: Session):
        self.db = db

    def create_account(self, owner_id: str, payload: AccountCreate) -> AccountResponse:
        """
        Create an account for an owner.

        The owner's first account is always made default. Requesting default
        on a later account clears the previous default in the same transaction.

        Raises:
            InvalidBalance: Initial balance is NaN, infinite or negative
        """
        balance = Decimal(payload.balance)
        if not balance.is_finite() or balance < 0:
            raise InvalidBalance()

        def work(db: Session) -> AccountResponse:
            existing = lock_owner_accounts(db, owner_id)
            make_default = not existing or payload.is_default

            if make_default:
                for other in existing:
                    if other.is_default:
                        other.is_default = False

            account = Account(
                owner_id=owner_id,
                name=payload.name,
                account_type=payload.account_type.value,
                balance=balance,
                starting_balance=balance,
                is_default=make_default,
            )
            db.add(account)
            db.flush()
            db.refresh(account)
            return AccountResponse.model_validate(account)

        account = run_serializable(self.db, work)
        logger.info(f"Created account {account.id} for owner {owner_id} (default={account.is_default})")
        return account

    def set_default_account(self, owner_id: str, account_id: UUID) -> AccountResponse:
        """
        Make ``account_id`` the owner's only default account.

        Raises:
            AccountNotFound: Account missing or owned by someone else
        """
        def work(db: Session) -> AccountResponse:
            accounts = lock_owner_accounts(db, owner_id)
            target = next((a for a in accounts if a.id == account_id), None)
            if target is None:
                raise AccountNotFound()

            for account in accounts:
                should_be_default = account.id == target.id
                if account.is_default != should_be_default:
                    account.is_default = should_be_default

            db.flush()
            db.refresh(target)
            return AccountResponse.model_validate(target)

        return run_serializable(self.db, work)

    def delete_account(self, owner_id: str, account_id: UUID) -> None:
        """
        Delete an account together with its transactions.

        The default check and the delete run under the owner-wide lock, so two
        concurrent deletes cannot both see "another default exists".
        The account's transaction rows are locked before any account row,
        the same order bulk deletion uses.

        Raises:
            AccountNotFound: Account missing or owned by someone else
            LastDefaultAccount: Account is the owner's only default
        """
        def work(db: Session) -> None:
            lock_account_transactions(db, owner_id, account_id)
            accounts = lock_owner_accounts(db, owner_id)
            target = next((a for a in accounts if a.id == account_id), None)
            if target is None:
                raise AccountNotFound()

            if target.is_default and not any(
                a.is_default for a in accounts if a.id != target.id
            ):
                raise LastDefaultAccount()

            db.execute(
                delete(Transaction).where(
                    Transaction.account_id == target.id,
                    Transaction.owner_id == owner_id,
                )
            )
            db.delete(target)

        run_serializable(self.db, work)
        logger.info(f"Deleted account {account_id} for owner {owner_id}")

    def list_accounts(self, owner_id: str) -> List[AccountResponse]:
        accounts = (
            self.db.query(Account)
            .filter(Account.owner_id == owner_id)
            .order_by(Account.is_default.desc(), Account.created_at.desc())
            .all()
        )
        return [AccountResponse.model_validate(a) for a in accounts]

    def get_account(self, owner_id: str, account_id: UUID) -> AccountResponse:
        account = self.db.query(Account).filter(
            Account.id == account_id,
            Account.owner_id == owner_id
        ).first()
        if not account:
            raise AccountNotFound()
        return AccountResponse.model_validate(account)

    def reconcile_account(self, owner_id: str, account_id: UUID) -> ReconciliationReport:
        """
        Compare the running balance against a full replay of the account's
        transactions: starting_balance + sum(signed amounts) should equal balance.
        """
        def work(db: Session) -> ReconciliationReport:
            account = db.query(Account).filter(
                Account.id == account_id,
                Account.owner_id == owner_id
            ).first()
            if not account:
                raise AccountNotFound()

            signed = case(
                (Transaction.transaction_type == TransactionType.INCOME.value, Transaction.amount),
                else_=-Transaction.amount,
            )
            total = db.query(func.sum(signed)).filter(
                Transaction.account_id == account.id,
                Transaction.owner_id == owner_id,
            ).scalar()

            transactions_total = Decimal(str(total or 0))
            starting = Decimal(str(account.starting_balance or 0))
            balance = Decimal(str(account.balance))
            return ReconciliationReport(
                account_id=account.id,
                starting_balance=starting,
                balance=balance,
                transactions_total=transactions_total,
                drift=starting + transactions_total - balance,
            )

        report = run_serializable(self.db, work)
        if not report.balanced:
            logger.warning(f"Account {account_id} drifted by {report.drift}")
        return report
