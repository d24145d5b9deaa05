from .accounts import AccountService
from .coordinator import TransactionCoordinator, TransactionScope
from .repository import (
    AccountStore,
    LedgerStore,
    SqlAccountStore,
    SqlIdempotencyStore,
    SqlLedgerStore,
    SqlUserDirectory,
    UserDirectory,
)

__all__ = [
    "AccountService",
    "AccountStore",
    "LedgerStore",
    "SqlAccountStore",
    "SqlIdempotencyStore",
    "SqlLedgerStore",
    "SqlUserDirectory",
    "TransactionCoordinator",
    "TransactionScope",
    "UserDirectory",
]
