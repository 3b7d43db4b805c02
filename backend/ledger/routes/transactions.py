from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from typing import List, Optional
from uuid import UUID

from ledger.database import get_db
from ledger.db_helpers import get_owner_id, get_publisher
from ledger.schemas import (
    ActionResult,
    BulkDeleteRequest,
    BulkDeleteResponse,
    TransactionCreate,
    TransactionResponse,
    TransactionUpdate,
)
from ledger.services.bulk_service import BulkTransactionService
from ledger.services.event_publisher import EventPublisher
from ledger.services.ledger_service import LedgerService

router = APIRouter()


@router.get("/", response_model=List[TransactionResponse])
def list_transactions(
    account_id: Optional[UUID] = None,
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
    owner_id: str = Depends(get_owner_id),
    db: Session = Depends(get_db)
):
    """List the owner's transactions, newest first."""
    return LedgerService(db).list_transactions(
        owner_id, account_id=account_id, limit=limit, offset=offset
    )


@router.get("/{transaction_id}", response_model=TransactionResponse)
def get_transaction(
    transaction_id: UUID,
    owner_id: str = Depends(get_owner_id),
    db: Session = Depends(get_db)
):
    """Get a specific transaction by ID."""
    return LedgerService(db).get_transaction(owner_id, transaction_id)


@router.post("/", response_model=TransactionResponse, status_code=201)
def create_transaction(
    transaction: TransactionCreate,
    owner_id: str = Depends(get_owner_id),
    db: Session = Depends(get_db),
    publisher: EventPublisher = Depends(get_publisher),
):
    """
    Create a transaction and apply it to the account balance.
    Rejected with INSUFFICIENT_BALANCE if the balance would go negative.
    """
    return LedgerService(db, publisher).create_transaction(owner_id, transaction)


@router.put("/{transaction_id}", response_model=TransactionResponse)
def update_transaction(
    transaction_id: UUID,
    updates: TransactionUpdate,
    owner_id: str = Depends(get_owner_id),
    db: Session = Depends(get_db),
    publisher: EventPublisher = Depends(get_publisher),
):
    """
    Update a transaction. account_id in the body is ignored.
    """
    return LedgerService(db, publisher).update_transaction(owner_id, transaction_id, updates)


@router.post("/bulk-delete", response_model=BulkDeleteResponse)
def bulk_delete_transactions(
    request: BulkDeleteRequest,
    owner_id: str = Depends(get_owner_id),
    db: Session = Depends(get_db),
    publisher: EventPublisher = Depends(get_publisher),
):
    """
    Delete several transactions at once and reverse them on their accounts.
    Ids that are unknown or not owned are ignored.
    """
    return BulkTransactionService(db, publisher).bulk_delete_transactions(
        owner_id, request.transaction_ids
    )


@router.delete("/{transaction_id}", response_model=ActionResult)
def delete_transaction(
    transaction_id: UUID,
    owner_id: str = Depends(get_owner_id),
    db: Session = Depends(get_db),
    publisher: EventPublisher = Depends(get_publisher),
):
    """Delete a single transaction."""
    BulkTransactionService(db, publisher).bulk_delete_transactions(owner_id, [transaction_id])
    return ActionResult(message="Transaction deleted successfully")
