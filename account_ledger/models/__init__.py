from .db import Account as AccountModel
from .db import IdempotencyRecord as IdempotencyRecordModel
from .db import LedgerEntry as LedgerEntryModel
from .db import User as UserModel
from .domain import (
    Account,
    AccountStatus,
    AccountType,
    EntryKind,
    EntryStatus,
    LedgerEntry,
)
from .schemas import (
    AccountResponse,
    CreateAccountRequest,
    DepositRequest,
    FreezeAccountRequest,
    LedgerEntryResponse,
    MovementResponse,
    TransactionPage,
    TransactionQuery,
    TransferRequest,
    TransferResponse,
    UpdateAccountRequest,
    WithdrawRequest,
)

__all__ = [
    "Account",
    "AccountStatus",
    "AccountType",
    "EntryKind",
    "EntryStatus",
    "LedgerEntry",
    "AccountResponse",
    "CreateAccountRequest",
    "DepositRequest",
    "FreezeAccountRequest",
    "LedgerEntryResponse",
    "MovementResponse",
    "TransactionPage",
    "TransactionQuery",
    "TransferRequest",
    "TransferResponse",
    "UpdateAccountRequest",
    "WithdrawRequest",
    "AccountModel",
    "LedgerEntryModel",
    "IdempotencyRecordModel",
    "UserModel",
]
