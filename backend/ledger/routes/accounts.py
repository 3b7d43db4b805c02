from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from typing import List
from uuid import UUID

from ledger.database import get_db
from ledger.db_helpers import get_owner_id
from ledger.schemas import AccountCreate, AccountResponse, ActionResult, ReconciliationReport
from ledger.services.account_service import AccountService

router = APIRouter()


@router.get("/", response_model=List[AccountResponse])
def list_accounts(
    owner_id: str = Depends(get_owner_id),
    db: Session = Depends(get_db)
):
    """List the owner's accounts, default account first."""
    return AccountService(db).list_accounts(owner_id)


@router.get("/{account_id}", response_model=AccountResponse)
def get_account(
    account_id: UUID,
    owner_id: str = Depends(get_owner_id),
    db: Session = Depends(get_db)
):
    """Get a specific account by ID."""
    return AccountService(db).get_account(owner_id, account_id)


@router.post("/", response_model=AccountResponse, status_code=201)
def create_account(
    account: AccountCreate,
    owner_id: str = Depends(get_owner_id),
    db: Session = Depends(get_db)
):
    """
    Create a new account.
    The owner's first account becomes the default whatever is_default says.
    """
    return AccountService(db).create_account(owner_id, account)


@router.post("/{account_id}/default", response_model=AccountResponse)
def set_default_account(
    account_id: UUID,
    owner_id: str = Depends(get_owner_id),
    db: Session = Depends(get_db)
):
    """Make this account the owner's default."""
    return AccountService(db).set_default_account(owner_id, account_id)


@router.delete("/{account_id}", response_model=ActionResult)
def delete_account(
    account_id: UUID,
    owner_id: str = Depends(get_owner_id),
    db: Session = Depends(get_db)
):
    """
    Permanently delete an account and its transactions.
    The owner's only default account cannot be deleted.
    """
    AccountService(db).delete_account(owner_id, account_id)
    return ActionResult(message="Account deleted successfully")


@router.get("/{account_id}/reconciliation", response_model=ReconciliationReport)
def reconcile_account(
    account_id: UUID,
    owner_id: str = Depends(get_owner_id),
    db: Session = Depends(get_db)
):
    """
    Replay the account's transactions and compare with the running balance.
    """
    return AccountService(db).reconcile_account(owner_id, account_id)
