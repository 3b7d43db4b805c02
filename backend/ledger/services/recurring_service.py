"""
Service for materializing due recurring templates.

The daily scan only decides which jobs to enqueue. Each job re-checks the
template under a row lock and, in the same transaction, inserts the
occurrence, moves the account balance and advances the schedule. A stale scan
result or a retried job therefore finds the template no longer due and does
nothing.
"""
import logging
from datetime import datetime
from typing import List, Optional, Tuple
from uuid import UUID

from sqlalchemy.orm import Session

from ledger.database import run_serializable
from ledger.models import Transaction, TransactionStatus, utcnow
from ledger.recurrence import advance
from ledger.schemas import AccountResponse, RecurringJob, RecurringTemplate, TransactionResponse, as_ledger_entry
from ledger.services.account_service import lock_account
from ledger.services.event_publisher import EventPublisher
from ledger.services.ledger_service import changed_event, record_transaction, snapshot

logger = logging.getLogger(__name__)

OCCURRENCE_SUFFIX = "(Recurring)"


def _due_filter(now: datetime):
    return (
        Transaction.is_recurring.is_(True),
        Transaction.status == TransactionStatus.COMPLETED.value,
        Transaction.next_recurring_date.isnot(None),
        Transaction.next_recurring_date <= now,
    )


def occurrence_description(template: RecurringTemplate) -> str:
    return f"{template.description or ''} {OCCURRENCE_SUFFIX}".strip()


class RecurringScheduler:
    """Scan and per-job materialization for recurring templates."""

    def __init__(self, db: Session, publisher: Optional[EventPublisher] = None):
        self.db = db
        self.publisher = publisher or EventPublisher()

    def find_due_templates(self, now: Optional[datetime] = None) -> List[RecurringJob]:
        """
        List every template due at ``now``, oldest schedule first.
        Only ids are returned; nothing is processed here.
        """
        now = now or utcnow()
        rows = (
            self.db.query(Transaction.id, Transaction.owner_id)
            .filter(*_due_filter(now))
            .order_by(Transaction.next_recurring_date)
            .all()
        )
        # Release the read snapshot; jobs run in their own transactions
        self.db.rollback()
        return [RecurringJob(transaction_id=row.id, owner_id=row.owner_id) for row in rows]

    def materialize(
        self,
        transaction_id: UUID,
        owner_id: str,
        now: Optional[datetime] = None,
    ) -> Optional[TransactionResponse]:
        """
        Materialize one occurrence of a due template.

        The occurrence is a plain COMPLETED transaction dated ``now``. The
        template's next_recurring_date advances one interval from its previous
        value, repeatedly until it is past ``now``, and last_processed is set to
        ``now``. An overdue template therefore yields one occurrence per job,
        not one per missed period. The occurrence's amount is applied to the
        balance without a non-negative check.

        Returns:
            The new occurrence, or None when the template is gone, no longer
            recurring, not COMPLETED, or not yet due
        """
        now = now or utcnow()

        def work(db: Session) -> Optional[Tuple[TransactionResponse, AccountResponse]]:
            row = (
                db.query(Transaction)
                .filter(
                    Transaction.id == transaction_id,
                    Transaction.owner_id == owner_id,
                    *_due_filter(now),
                )
                .with_for_update()
                .first()
            )
            if row is None:
                return None

            template = as_ledger_entry(row)
            account = lock_account(db, owner_id, template.account_id)

            occurrence = record_transaction(
                db,
                account,
                transaction_type=template.transaction_type.value,
                amount=template.amount,
                category=template.category,
                description=occurrence_description(template),
                date=now,
                allow_negative=True,
            )

            next_date = advance(template.next_recurring_date, template.recurring_interval.value)
            # Skip missed periods so a redelivered job finds nothing due
            while next_date <= now:
                next_date = advance(next_date, template.recurring_interval.value)
            row.next_recurring_date = next_date
            row.last_processed = now

            return snapshot(db, occurrence, account)

        result = run_serializable(self.db, work)
        if result is None:
            logger.info(f"[RECURRING_JOB] Template {transaction_id} not eligible, skipping")
            return None

        occurrence, account = result
        logger.info(
            f"[RECURRING_JOB] Materialized {occurrence.id} from template {transaction_id} "
            f"(account={account.id} balance={account.balance})"
        )
        self.publisher.publish_transaction_changed(changed_event("materialized", occurrence, account))
        return occurrence
