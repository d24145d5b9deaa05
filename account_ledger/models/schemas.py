from datetime import datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field

from .domain import AccountStatus, AccountType, EntryKind, EntryStatus

class CreateAccountRequest(BaseModel):
    account_number: str = Field(..., description="Externally issued, immutable account number")
    account_type: AccountType = AccountType.SAVINGS
    initial_balance: Decimal = Field(default=Decimal("0"), description="Opening balance")

class UpdateAccountRequest(BaseModel):
    account_type: Optional[AccountType] = None
    status: Optional[AccountStatus] = Field(
        default=None, description="Target status, reached through freeze/unfreeze/close"
    )

class FreezeAccountRequest(BaseModel):
    reason: str = ""

class DepositRequest(BaseModel):
    account_number: str
    amount: Decimal
    description: str = Field(default="", description="Narrative to display on the statement")
    pin: Optional[str] = None

class WithdrawRequest(BaseModel):
    account_number: str
    amount: Decimal
    description: str = ""
    pin: Optional[str] = None

class TransferRequest(BaseModel):
    from_account_id: UUID
    to_account_number: str
    amount: Decimal
    description: str = ""
    pin: Optional[str] = None

class TransactionQuery(BaseModel):
    from_date: Optional[datetime] = None
    to_date: Optional[datetime] = None
    transaction_type: Optional[EntryKind] = None
    page: int = 1
    page_size: Optional[int] = Field(default=None, description="Defaults to the configured page size")

class AccountResponse(BaseModel):
    id: UUID
    account_number: str
    user_id: UUID
    balance: Decimal
    status: AccountStatus
    account_type: AccountType
    created_at: datetime
    updated_at: Optional[datetime] = None

class LedgerEntryResponse(BaseModel):
    id: UUID
    account_id: UUID
    related_account_id: Optional[UUID] = None
    transaction_type: EntryKind
    amount: Decimal
    description: str
    timestamp: datetime
    reference_number: str
    status: EntryStatus

class MovementResponse(BaseModel):
    account: AccountResponse
    entry: LedgerEntryResponse

class TransferResponse(BaseModel):
    source: AccountResponse
    destination: AccountResponse
    transfer_out: LedgerEntryResponse
    transfer_in: LedgerEntryResponse

class TransactionPage(BaseModel):
    items: list[LedgerEntryResponse]
    page: int
    page_size: int
    total: int
