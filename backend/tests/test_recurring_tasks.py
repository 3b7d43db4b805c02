"""
Tests for the Celery entry points of the recurring scheduler.

Tasks are called directly (synchronously); the session factory, the publisher
and the throttle are swapped for in-process doubles.
"""
from datetime import datetime
from decimal import Decimal
from unittest.mock import MagicMock, patch
from uuid import uuid4

import pytest
from celery.exceptions import Retry
from sqlalchemy.exc import OperationalError

from ledger_fixtures import OWNER, RecordingPublisher, make_session_factory, open_account, transaction_payload

from ledger.models import RecurringInterval, Transaction, TransactionType
from ledger.services.account_service import AccountService
from ledger.services.ledger_service import LedgerService
from tasks import recurring_tasks


class FixedThrottle:
    def __init__(self, wait_seconds=0.0):
        self.wait_seconds = wait_seconds
        self.owners = []

    def acquire(self, owner_id):
        self.owners.append(owner_id)
        return self.wait_seconds


def _seed_templates(factory, count=2):
    db = factory()
    try:
        account = open_account(db, balance="500")
        ids = []
        for _ in range(count):
            template = LedgerService(db, RecordingPublisher()).create_transaction(
                OWNER,
                transaction_payload(
                    account.id,
                    TransactionType.EXPENSE,
                    "10",
                    date=datetime(2025, 3, 1),
                    is_recurring=True,
                    recurring_interval=RecurringInterval.DAILY,
                ),
            )
            ids.append(template.id)
        return account.id, ids
    finally:
        db.close()


def test_trigger_enqueues_each_due_template() -> None:
    factory = make_session_factory()
    _, ids = _seed_templates(factory)

    with patch.object(recurring_tasks, "SessionLocal", factory), \
            patch.object(recurring_tasks, "enqueue_job") as enqueue:
        result = recurring_tasks.trigger_recurring_transactions()

    assert result == {"due": 2, "enqueued": 2, "failed": 0}
    assert sorted(call.args[0].transaction_id for call in enqueue.call_args_list) == sorted(ids)


def test_trigger_isolates_enqueue_failures() -> None:
    factory = make_session_factory()
    _seed_templates(factory, count=3)
    enqueue = MagicMock(side_effect=[None, ConnectionError("broker down"), None])

    with patch.object(recurring_tasks, "SessionLocal", factory), \
            patch.object(recurring_tasks, "enqueue_job", enqueue):
        result = recurring_tasks.trigger_recurring_transactions()

    assert result == {"due": 3, "enqueued": 2, "failed": 1}
    assert enqueue.call_count == 3


def test_trigger_retries_when_scan_fails() -> None:
    factory = make_session_factory()
    scheduler = MagicMock()
    scheduler.return_value.find_due_templates.side_effect = OperationalError("SELECT", {}, Exception("down"))
    task = recurring_tasks.trigger_recurring_transactions

    with patch.object(recurring_tasks, "SessionLocal", factory), \
            patch.object(recurring_tasks, "RecurringScheduler", scheduler), \
            patch.object(recurring_tasks, "enqueue_job") as enqueue, \
            patch.object(task, "retry", return_value=Retry()) as retry:
        with pytest.raises(Retry):
            task()

    assert retry.call_args.kwargs["countdown"] == 60
    assert isinstance(retry.call_args.kwargs["exc"], OperationalError)
    enqueue.assert_not_called()


def test_process_materializes_once() -> None:
    factory = make_session_factory()
    account_id, ids = _seed_templates(factory, count=1)
    throttle = FixedThrottle()

    with patch.object(recurring_tasks, "SessionLocal", factory), \
            patch.object(recurring_tasks, "get_throttle", return_value=throttle), \
            patch("ledger.services.recurring_service.utcnow", return_value=datetime(2025, 3, 5, 9, 0)), \
            patch("ledger.services.recurring_service.EventPublisher", RecordingPublisher):
        first = recurring_tasks.process_recurring_transaction(str(ids[0]), OWNER)
        second = recurring_tasks.process_recurring_transaction(str(ids[0]), OWNER)

    assert first["skipped"] is False
    assert second == {"skipped": True, "reason": "NOT_ELIGIBLE"}
    assert throttle.owners == [OWNER, OWNER]

    db = factory()
    try:
        # 500 - 10 for the template, - 10 for the single occurrence
        assert AccountService(db).get_account(OWNER, account_id).balance == Decimal("480")
        assert db.query(Transaction).count() == 2
        template = db.get(Transaction, ids[0])
        assert template.next_recurring_date == datetime(2025, 3, 6)
        assert template.last_processed == datetime(2025, 3, 5, 9, 0)
    finally:
        db.close()


def test_throttled_job_is_requeued() -> None:
    factory = make_session_factory()
    _, ids = _seed_templates(factory, count=1)

    with patch.object(recurring_tasks, "SessionLocal", factory), \
            patch.object(recurring_tasks, "get_throttle", return_value=FixedThrottle(wait_seconds=12.5)), \
            patch.object(recurring_tasks, "enqueue_job") as enqueue:
        result = recurring_tasks.process_recurring_transaction(str(ids[0]), OWNER)

    assert result == {"skipped": True, "reason": "THROTTLED", "retry_in": 12.5}
    job = enqueue.call_args.args[0]
    assert job.transaction_id == ids[0]
    assert enqueue.call_args.kwargs == {"countdown": 12.5}

    db = factory()
    try:
        assert db.query(Transaction).count() == 1
    finally:
        db.close()


def test_invalid_job_is_skipped() -> None:
    with patch.object(recurring_tasks, "get_throttle") as get_throttle:
        assert recurring_tasks.process_recurring_transaction("not-a-uuid", OWNER) == {
            "skipped": True,
            "reason": "INVALID_JOB",
        }
        assert recurring_tasks.process_recurring_transaction(str(uuid4()), "") == {
            "skipped": True,
            "reason": "INVALID_JOB",
        }
    get_throttle.assert_not_called()


def test_daily_scan_is_scheduled() -> None:
    from celery_app import celery_app

    entry = celery_app.conf.beat_schedule["recurring-transactions-daily"]
    assert entry["task"] == "tasks.recurring_tasks.trigger_recurring_transactions"
