"""
Tests for batched transaction deletion and per-account balance reversal.
"""
from datetime import datetime
from decimal import Decimal
from uuid import uuid4

from ledger_fixtures import (
    OTHER_OWNER,
    OWNER,
    RecordingPublisher,
    make_session_factory,
    open_account,
    transaction_payload,
)

from ledger.errors import TransactionNotFound
from ledger.models import Transaction, TransactionType
from ledger.services.account_service import AccountService
from ledger.services.bulk_service import BulkTransactionService, reversal_deltas
from ledger.services.ledger_service import LedgerService


def test_bulk_delete_reverses_each_transaction() -> None:
    db = make_session_factory()()
    try:
        account = open_account(db, balance="100")
        ledger = LedgerService(db, RecordingPublisher())
        tx1 = ledger.create_transaction(OWNER, transaction_payload(account.id, TransactionType.EXPENSE, "30"))
        tx2 = ledger.create_transaction(OWNER, transaction_payload(account.id, TransactionType.INCOME, "20"))
        assert AccountService(db).get_account(OWNER, account.id).balance == Decimal("90")

        publisher = RecordingPublisher()
        result = BulkTransactionService(db, publisher).bulk_delete_transactions(OWNER, [tx1.id, tx2.id])

        assert {t.id for t in result.deleted} == {tx1.id, tx2.id}
        [(snapshot_id, snapshot)] = result.account_snapshots
        assert snapshot_id == account.id
        # Reversal of the deletes against the balance at the time of deletion
        assert snapshot.balance == Decimal("100")
        assert AccountService(db).get_account(OWNER, account.id).balance == Decimal("100")
        assert db.query(Transaction).count() == 0
        assert [e.change for e in publisher.events] == ["deleted", "deleted"]
        assert all(e.account_balance == Decimal("100") for e in publisher.events)
    finally:
        db.close()


def test_bulk_delete_reversal_from_fixed_balance() -> None:
    db = make_session_factory()()
    try:
        account = open_account(db, balance="100")
        tx1 = Transaction(
            owner_id=OWNER, account_id=account.id, transaction_type="EXPENSE",
            amount=Decimal("30"), category="rent", date=datetime(2025, 3, 1),
        )
        tx2 = Transaction(
            owner_id=OWNER, account_id=account.id, transaction_type="INCOME",
            amount=Decimal("20"), category="salary", date=datetime(2025, 3, 1),
        )
        db.add_all([tx1, tx2])
        db.commit()

        result = BulkTransactionService(db, RecordingPublisher()).bulk_delete_transactions(
            OWNER, [tx1.id, tx2.id]
        )

        # 100 + 30 - 20
        assert result.account_snapshots[0][1].balance == Decimal("110")
    finally:
        db.close()


def test_bulk_delete_groups_by_account_and_skips_foreign_ids() -> None:
    db = make_session_factory()()
    try:
        main = open_account(db, name="Main", balance="100")
        spare = open_account(db, name="Spare", balance="100")
        theirs = open_account(db, owner_id=OTHER_OWNER, name="Theirs", balance="100")
        ledger = LedgerService(db, RecordingPublisher())

        a = ledger.create_transaction(OWNER, transaction_payload(main.id, TransactionType.EXPENSE, "10"))
        b = ledger.create_transaction(OWNER, transaction_payload(main.id, TransactionType.EXPENSE, "15"))
        c = ledger.create_transaction(OWNER, transaction_payload(spare.id, TransactionType.INCOME, "40"))
        foreign = ledger.create_transaction(
            OTHER_OWNER, transaction_payload(theirs.id, TransactionType.EXPENSE, "5")
        )

        result = BulkTransactionService(db, RecordingPublisher()).bulk_delete_transactions(
            OWNER, [a.id, b.id, c.id, foreign.id, uuid4(), a.id]
        )

        assert {t.id for t in result.deleted} == {a.id, b.id, c.id}
        balances = {account_id: snap.balance for account_id, snap in result.account_snapshots}
        assert balances == {main.id: Decimal("100"), spare.id: Decimal("100")}
        assert ledger.get_transaction(OTHER_OWNER, foreign.id).id == foreign.id
        assert AccountService(db).get_account(OTHER_OWNER, theirs.id).balance == Decimal("95")
    finally:
        db.close()


def test_bulk_delete_with_no_owned_ids_fails() -> None:
    db = make_session_factory()()
    try:
        theirs = open_account(db, owner_id=OTHER_OWNER, name="Theirs")
        foreign = LedgerService(db, RecordingPublisher()).create_transaction(
            OTHER_OWNER, transaction_payload(theirs.id, TransactionType.EXPENSE, "5")
        )
        try:
            BulkTransactionService(db, RecordingPublisher()).bulk_delete_transactions(
                OWNER, [foreign.id, uuid4()]
            )
        except TransactionNotFound:
            pass
        else:
            raise AssertionError("Expected TransactionNotFound")
        assert db.query(Transaction).count() == 1
    finally:
        db.close()


def test_bulk_delete_may_leave_negative_balance() -> None:
    db = make_session_factory()()
    try:
        account = open_account(db, balance="0")
        ledger = LedgerService(db, RecordingPublisher())
        income = ledger.create_transaction(OWNER, transaction_payload(account.id, TransactionType.INCOME, "50"))
        ledger.create_transaction(OWNER, transaction_payload(account.id, TransactionType.EXPENSE, "40"))

        result = BulkTransactionService(db, RecordingPublisher()).bulk_delete_transactions(OWNER, [income.id])

        assert result.account_snapshots[0][1].balance == Decimal("-40")
        assert AccountService(db).reconcile_account(OWNER, account.id).drift == 0
    finally:
        db.close()


def test_reversal_deltas() -> None:
    account_1, account_2 = uuid4(), uuid4()
    rows = [
        Transaction(account_id=account_1, transaction_type="EXPENSE", amount=Decimal("200")),
        Transaction(account_id=account_2, transaction_type="INCOME", amount=Decimal("300")),
        Transaction(account_id=account_2, transaction_type="EXPENSE", amount=Decimal("0.50")),
    ]
    assert reversal_deltas(rows) == {account_1: Decimal("200"), account_2: Decimal("-299.50")}
