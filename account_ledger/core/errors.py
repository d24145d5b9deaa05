from __future__ import annotations


class LedgerError(Exception):
    """Base class for every error raised by the account ledger core."""

    kind = "ledger_error"
    retryable = False


class InvalidArgumentError(LedgerError):
    """Raised for malformed input: blank numbers, non-positive amounts, bad pages."""

    kind = "invalid_argument"


class NotFoundError(LedgerError):
    kind = "not_found"


class AccountNotFoundError(NotFoundError):
    """Raised when an account id or account number is missing from the store."""


class UserNotFoundError(NotFoundError):
    """Raised when the user directory does not know the owner."""


class EntryNotFoundError(NotFoundError):
    """Raised when a ledger entry id is missing from the store."""


class ConflictError(LedgerError):
    """Raised when a write collides with existing or concurrent state.

    Conflicts are the only errors a caller may retry without changing input.
    """

    kind = "conflict"
    retryable = True


class DuplicateAccountNumberError(ConflictError):
    """Raised when an account number is already registered."""

    retryable = False


class DuplicateReferenceError(ConflictError):
    """Raised by the ledger store when a reference number already exists."""


class ConcurrencyConflictError(ConflictError):
    """Raised when an account row changed since it was read."""


class DuplicateIdempotencyKeyError(ConflictError):
    """Raised when the same idempotency key is reused with different input."""

    retryable = False


class InactiveAccountError(LedgerError):
    """Raised when money moves on an account that is not active."""

    kind = "inactive_account"


class InsufficientBalanceError(LedgerError):
    """Raised when a withdrawal/transfer would drop balance below zero."""

    kind = "insufficient_balance"


class NonZeroBalanceError(LedgerError):
    """Raised when closing or deleting an account that still holds funds."""

    kind = "non_zero_balance"


class InvalidStateError(LedgerError):
    """Raised for an illegal status transition."""

    kind = "invalid_state"


class UnauthorizedError(LedgerError):
    """Raised when the PIN is missing or malformed."""

    kind = "unauthorized"


class OperationCancelledError(LedgerError):
    """Raised when a unit of work is cancelled before it starts committing."""

    kind = "cancelled"
    retryable = True
