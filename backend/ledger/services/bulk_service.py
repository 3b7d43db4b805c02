"""
Batched transaction deletion with per-account balance reversal.
"""
import logging
from collections import defaultdict
from decimal import Decimal
from typing import Dict, List, Optional
from uuid import UUID

from sqlalchemy import delete
from sqlalchemy.orm import Session

from ledger.database import run_serializable
from ledger.errors import TransactionNotFound
from ledger.models import Transaction
from ledger.schemas import AccountResponse, BulkDeleteResponse, TransactionResponse
from ledger.services.account_service import apply_balance_delta, lock_account
from ledger.services.event_publisher import EventPublisher
from ledger.services.ledger_service import changed_event

logger = logging.getLogger(__name__)


def reversal_deltas(transactions: List[Transaction]) -> Dict[UUID, Decimal]:
    """
    Sum, per account, what deleting these transactions does to the balance.

    Example result:
        {account_1: Decimal("200"), account_2: Decimal("-300")}
    """
    deltas: Dict[UUID, Decimal] = defaultdict(lambda: Decimal("0"))
    for transaction in transactions:
        deltas[transaction.account_id] -= transaction.signed_amount
    return dict(deltas)


class BulkTransactionService:
    """Service for deleting many transactions in one atomic unit."""

    def __init__(self, db: Session, publisher: Optional[EventPublisher] = None):
        self.db = db
        self.publisher = publisher or EventPublisher()

    def bulk_delete_transactions(self, owner_id: str, transaction_ids: List[UUID]) -> BulkDeleteResponse:
        """
        Delete the owner's transactions among ``transaction_ids`` and reverse
        their effect on each affected account.

        Ids that don't exist or belong to another owner are skipped silently.
        Unlike create/update, the resulting balances are not checked for being
        non-negative: removing an income can legitimately take an account
        below zero and the deletion still goes through.

        Returns:
            The deleted rows and the post-delete state of every touched account

        Raises:
            TransactionNotFound: None of the ids is an owned transaction
        """
        requested = list(dict.fromkeys(transaction_ids))

        def work(db: Session) -> BulkDeleteResponse:
            transactions = (
                db.query(Transaction)
                .filter(Transaction.id.in_(requested), Transaction.owner_id == owner_id)
                .order_by(Transaction.id)
                .with_for_update()
                .all()
            )
            if not transactions:
                raise TransactionNotFound()

            deleted = [TransactionResponse.model_validate(t) for t in transactions]
            deltas = reversal_deltas(transactions)

            db.execute(
                delete(Transaction).where(
                    Transaction.id.in_([t.id for t in transactions]),
                    Transaction.owner_id == owner_id,
                )
            )

            snapshots = []
            for account_id in sorted(deltas):
                account = lock_account(db, owner_id, account_id)
                apply_balance_delta(account, deltas[account_id], allow_negative=True)
                db.flush()
                db.refresh(account)
                snapshots.append((account.id, AccountResponse.model_validate(account)))

            return BulkDeleteResponse(deleted=deleted, account_snapshots=snapshots)

        result = run_serializable(self.db, work)
        logger.info(
            f"Bulk deleted {len(result.deleted)} transaction(s) across "
            f"{len(result.account_snapshots)} account(s) for owner {owner_id}"
        )

        accounts = dict(result.account_snapshots)
        for transaction in result.deleted:
            self.publisher.publish_transaction_changed(
                changed_event("deleted", transaction, accounts[transaction.account_id])
            )
        return result
