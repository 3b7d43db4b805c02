"""
Domain errors raised by the ledger services.

Every error carries a stable ``code`` that callers can switch on and a
human-readable ``message``. Storage failures never leak their driver details:
they are logged where they happen and surface as ``LedgerUnavailable``.
"""
from typing import Optional


class LedgerError(Exception):
    """Base class for all expected ledger failures."""

    code = "LEDGER_ERROR"
    status_code = 400
    default_message = "The ledger operation failed"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(LedgerError):
    code = "INVALID_FORM_DATA"
    status_code = 422
    default_message = "Invalid form data"


class InvalidBalance(LedgerError):
    code = "INVALID_BALANCE"
    status_code = 422
    default_message = "Invalid account balance"


class InsufficientBalance(LedgerError):
    code = "INSUFFICIENT_BALANCE"
    status_code = 409
    default_message = "Insufficient balance"


class AccountNotFound(LedgerError):
    code = "ACCOUNT_NOT_FOUND"
    status_code = 404
    default_message = "Account not found"


class LastDefaultAccount(LedgerError):
    code = "LAST_DEFAULT_ACCOUNT"
    status_code = 409
    default_message = "You cannot delete your last default account"


class TransactionNotFound(LedgerError):
    code = "TRANSACTION_NOT_FOUND"
    status_code = 404
    default_message = "Transaction not found"


class LedgerUnavailable(LedgerError):
    code = "LEDGER_UNAVAILABLE"
    status_code = 503
    default_message = "Something went wrong. Please try again later."


def error_status(exc: LedgerError) -> int:
    return exc.status_code


def error_payload(exc: LedgerError) -> dict:
    """Typed failure result returned to the request layer."""
    return {"success": False, "error": exc.code, "detail": exc.message}
