from datetime import datetime
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Header, status

from ..core.dependencies import get_account_service
from ..models import (
    AccountResponse,
    AccountType,
    CreateAccountRequest,
    DepositRequest,
    EntryKind,
    FreezeAccountRequest,
    MovementResponse,
    TransactionPage,
    TransactionQuery,
    TransferRequest,
    TransferResponse,
    UpdateAccountRequest,
    WithdrawRequest,
)
from ..services import AccountService


router = APIRouter(prefix="/accounts", tags=["accounts"])

@router.post("", response_model=AccountResponse, status_code=status.HTTP_201_CREATED)
def create_account(
    payload: CreateAccountRequest,
    service: AccountService = Depends(get_account_service),
    owner_id: UUID = Header(..., convert_underscores=False, alias="X-User-Id"),
) -> AccountResponse:
    return service.create_account(payload, owner_id)

@router.get("", response_model=list[AccountResponse])
def list_accounts(
    service: AccountService = Depends(get_account_service),
) -> list[AccountResponse]:
    return service.list_accounts()

@router.post("/deposit", response_model=MovementResponse)
def deposit(
    payload: DepositRequest,
    service: AccountService = Depends(get_account_service),
    idempotency_key: Optional[str] = Header(None, convert_underscores=False, alias="Idempotency-Key"),
) -> MovementResponse:
    return service.deposit(payload, idempotency_key)

@router.post("/withdraw", response_model=MovementResponse)
def withdraw(
    payload: WithdrawRequest,
    service: AccountService = Depends(get_account_service),
    idempotency_key: Optional[str] = Header(None, convert_underscores=False, alias="Idempotency-Key"),
) -> MovementResponse:
    return service.withdraw(payload, idempotency_key)

@router.post("/transfer", response_model=TransferResponse)
def transfer(
    payload: TransferRequest,
    service: AccountService = Depends(get_account_service),
    idempotency_key: Optional[str] = Header(None, convert_underscores=False, alias="Idempotency-Key"),
) -> TransferResponse:
    return service.transfer(payload, idempotency_key)

@router.get("/by-number/{account_number}", response_model=AccountResponse)
def get_account_by_number(
    account_number: str,
    service: AccountService = Depends(get_account_service),
) -> AccountResponse:
    return service.get_account_by_number(account_number)

@router.get("/{account_id}", response_model=AccountResponse)
def get_account(
    account_id: UUID,
    service: AccountService = Depends(get_account_service),
) -> AccountResponse:
    return service.get_account(account_id)

@router.put("/{account_id}", response_model=AccountResponse)
def update_account(
    account_id: UUID,
    payload: UpdateAccountRequest,
    service: AccountService = Depends(get_account_service),
) -> AccountResponse:
    return service.update_account(account_id, payload)

@router.put("/{account_id}/type", response_model=AccountResponse)
def update_type(
    account_id: UUID,
    account_type: AccountType,
    service: AccountService = Depends(get_account_service),
) -> AccountResponse:
    return service.update_type(account_id, account_type)

@router.delete("/{account_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_account(
    account_id: UUID,
    service: AccountService = Depends(get_account_service),
) -> None:
    service.delete_account(account_id)

@router.put("/{account_id}/freeze", response_model=AccountResponse)
def freeze(
    account_id: UUID,
    payload: FreezeAccountRequest,
    service: AccountService = Depends(get_account_service),
) -> AccountResponse:
    return service.freeze(account_id, payload.reason)

@router.put("/{account_id}/unfreeze", response_model=AccountResponse)
def unfreeze(
    account_id: UUID,
    service: AccountService = Depends(get_account_service),
) -> AccountResponse:
    return service.unfreeze(account_id)

@router.put("/{account_id}/close", response_model=AccountResponse)
def close(
    account_id: UUID,
    service: AccountService = Depends(get_account_service),
) -> AccountResponse:
    return service.close(account_id)

@router.get("/{account_id}/transactions", response_model=TransactionPage)
def list_transactions(
    account_id: UUID,
    from_date: Optional[datetime] = None,
    to_date: Optional[datetime] = None,
    transaction_type: Optional[EntryKind] = None,
    page: int = 1,
    page_size: Optional[int] = None,
    service: AccountService = Depends(get_account_service),
) -> TransactionPage:
    query = TransactionQuery(
        from_date=from_date,
        to_date=to_date,
        transaction_type=transaction_type,
        page=page,
        page_size=page_size,
    )
    return service.list_transactions(account_id, query)

users_router = APIRouter(prefix="/users", tags=["users"])

@users_router.get("/{user_id}/accounts", response_model=list[AccountResponse])
def list_user_accounts(
    user_id: UUID,
    service: AccountService = Depends(get_account_service),
) -> list[AccountResponse]:
    return service.list_user_accounts(user_id)

__all__ = ["router", "users_router"]
