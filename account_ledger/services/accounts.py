from __future__ import annotations

import json
import logging
import re
import threading
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any, Callable, Optional, Tuple, TypeVar
from uuid import UUID

from pydantic import BaseModel

from ..core.config import Settings, get_settings
from ..core.errors import (
    AccountNotFoundError,
    DuplicateAccountNumberError,
    DuplicateIdempotencyKeyError,
    InvalidArgumentError,
    NonZeroBalanceError,
    UnauthorizedError,
    UserNotFoundError,
)
from ..models import (
    Account,
    AccountResponse,
    AccountStatus,
    AccountType,
    CreateAccountRequest,
    DepositRequest,
    LedgerEntry,
    LedgerEntryResponse,
    MovementResponse,
    TransactionPage,
    TransactionQuery,
    TransferRequest,
    TransferResponse,
    UpdateAccountRequest,
    WithdrawRequest,
)
from ..models.domain import as_utc, utcnow
from .coordinator import TransactionCoordinator, TransactionScope
from .repository import UserDirectory


logger = logging.getLogger(__name__)

R = TypeVar("R", bound=BaseModel)

_PIN = re.compile(r"[0-9]{4}")


class AccountService:
    def __init__(
        self,
        coordinator: TransactionCoordinator,
        users: UserDirectory,
        settings: Optional[Settings] = None,
    ) -> None:
        self.coordinator = coordinator
        self.users = users
        self.settings = settings or get_settings()

    # ------------------------------------------------------------------
    # Helper utilities
    # ------------------------------------------------------------------
    def _json_default(self, value: Any) -> Any:
        if isinstance(value, datetime):
            return value.isoformat()
        if isinstance(value, (UUID, Decimal)):
            return str(value)
        return value

    def _encode_signature(self, signature: Tuple[Any, ...]) -> str:
        return json.dumps(signature, default=self._json_default, sort_keys=True)

    def _check_idempotency(
        self,
        scope: TransactionScope,
        route: str,
        idempotency_key: Optional[str],
        request_signature: Tuple[Any, ...],
    ) -> Optional[str]:
        if idempotency_key is None:
            return None
        record = scope.idempotency.fetch(route, idempotency_key)
        if record is None:
            return None

        if record.request_signature != self._encode_signature(request_signature):
            raise DuplicateIdempotencyKeyError(
                "Idempotency key was previously used with different parameters"
            )
        return record.response_payload

    def _record_idempotent(
        self,
        scope: TransactionScope,
        route: str,
        idempotency_key: Optional[str],
        request_signature: Tuple[Any, ...],
        response: BaseModel,
    ) -> None:
        if idempotency_key is None:
            return
        scope.idempotency.save(
            route=route,
            key=idempotency_key,
            signature=self._encode_signature(request_signature),
            payload=response.model_dump_json(),
        )

    def _check_pin(self, pin: Optional[str]) -> None:
        # Only the shape is checked here; matching it to the holder is external.
        if pin is None:
            if self.settings.pin_required:
                raise UnauthorizedError("A 4-digit PIN is required.")
            return
        if not _PIN.fullmatch(pin):
            raise UnauthorizedError("PIN must be exactly 4 digits.")

    def _require(self, scope: TransactionScope, account_id: UUID) -> Account:
        account = scope.accounts.get(account_id)
        if account is None:
            raise AccountNotFoundError(f"Account {account_id} not found")
        return account

    def _require_by_number(self, scope: TransactionScope, account_number: str) -> Account:
        account = scope.accounts.get_by_number(account_number)
        if account is None:
            raise AccountNotFoundError(f"Account {account_number} not found")
        return account

    def _account_to_response(self, account: Account) -> AccountResponse:
        return AccountResponse(
            id=account.id,
            account_number=account.account_number,
            user_id=account.user_id,
            balance=account.balance,
            status=account.status,
            account_type=account.account_type,
            created_at=account.created_at,
            updated_at=account.updated_at,
        )

    def _entry_to_response(self, entry: LedgerEntry) -> LedgerEntryResponse:
        return LedgerEntryResponse(
            id=entry.id,
            account_id=entry.account_id,
            related_account_id=entry.related_account_id,
            transaction_type=entry.kind,
            amount=entry.amount,
            description=entry.description,
            timestamp=entry.timestamp,
            reference_number=entry.reference_number,
            status=entry.status,
        )

    def _idempotent(
        self,
        route: str,
        idempotency_key: Optional[str],
        request_signature: Tuple[Any, ...],
        response_type: type[R],
        perform: Callable[[TransactionScope], R],
        cancel_event: Optional[threading.Event] = None,
    ) -> Tuple[R, bool]:
        """Run ``perform`` once per idempotency key; replays return the stored response."""

        def work(scope: TransactionScope) -> Tuple[R, bool]:
            cached = self._check_idempotency(scope, route, idempotency_key, request_signature)
            if cached is not None:
                return response_type.model_validate_json(cached), True
            response = perform(scope)
            self._record_idempotent(scope, route, idempotency_key, request_signature, response)
            return response, False

        response, replayed = self.coordinator.run_atomic(work, cancel_event)
        if replayed:
            logger.info(
                f"idempotent.{route}.hit",
                extra={"idempotency_key": idempotency_key},
            )
        return response, replayed

    def _mutate(
        self,
        account_id: UUID,
        event: str,
        mutate: Callable[[Account], list[LedgerEntry]],
        cancel_event: Optional[threading.Event] = None,
    ) -> AccountResponse:
        def work(scope: TransactionScope) -> Account:
            account = self._require(scope, account_id)
            entries = mutate(account)
            scope.accounts.update(account)
            scope.record(*entries)
            return account

        account = self.coordinator.run_atomic(work, cancel_event)
        logger.info(
            event,
            extra={
                "account_id": str(account.id),
                "status": account.status.value,
                "account_type": account.account_type.value,
            },
        )
        return self._account_to_response(account)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------
    def get_account(self, account_id: UUID) -> AccountResponse:
        account = self.coordinator.run_atomic(lambda scope: self._require(scope, account_id))
        return self._account_to_response(account)

    def get_account_by_number(self, account_number: str) -> AccountResponse:
        account = self.coordinator.run_atomic(
            lambda scope: self._require_by_number(scope, account_number)
        )
        return self._account_to_response(account)

    def list_user_accounts(self, user_id: UUID) -> list[AccountResponse]:
        if not self.users.exists(user_id):
            raise UserNotFoundError(f"User {user_id} not found")
        accounts = self.coordinator.run_atomic(lambda scope: scope.accounts.list_by_user(user_id))
        return [self._account_to_response(account) for account in accounts]

    def list_accounts(self) -> list[AccountResponse]:
        accounts = self.coordinator.run_atomic(lambda scope: scope.accounts.list_all())
        return [self._account_to_response(account) for account in accounts]

    def list_transactions(
        self,
        account_id: UUID,
        query: Optional[TransactionQuery] = None,
    ) -> TransactionPage:
        query = query or TransactionQuery()
        window = timedelta(days=self.settings.history_window_days)
        to_time = as_utc(query.to_date) if query.to_date else utcnow()
        from_time = as_utc(query.from_date) if query.from_date else to_time - window
        if from_time > to_time:
            raise InvalidArgumentError("from_date must not be after to_date.")

        page_size = (
            self.settings.default_page_size if query.page_size is None else query.page_size
        )
        if query.page < 1:
            raise InvalidArgumentError("Page numbers start at 1.")
        if page_size < 1:
            raise InvalidArgumentError("Page size must be at least 1.")
        page_size = min(page_size, self.settings.max_page_size)

        def work(scope: TransactionScope) -> Tuple[list[LedgerEntry], int]:
            self._require(scope, account_id)
            items = scope.ledger.list_by_account(
                account_id,
                from_time,
                to_time,
                kind=query.transaction_type,
                page=query.page,
                page_size=page_size,
            )
            total = scope.ledger.count_by_account(
                account_id, from_time, to_time, kind=query.transaction_type
            )
            return items, total

        items, total = self.coordinator.run_atomic(work)
        return TransactionPage(
            items=[self._entry_to_response(entry) for entry in items],
            page=query.page,
            page_size=page_size,
            total=total,
        )

    # ------------------------------------------------------------------
    # Account lifecycle
    # ------------------------------------------------------------------
    def create_account(
        self,
        payload: CreateAccountRequest,
        owner_id: UUID,
        cancel_event: Optional[threading.Event] = None,
    ) -> AccountResponse:
        if not self.users.exists(owner_id):
            raise UserNotFoundError(f"User {owner_id} not found")

        def work(scope: TransactionScope) -> Account:
            if scope.accounts.exists(payload.account_number):
                raise DuplicateAccountNumberError(
                    f"Account number {payload.account_number} is already registered"
                )
            account, entries = Account.open(
                payload.account_number,
                owner_id,
                payload.account_type,
                payload.initial_balance,
                record_opening_deposit=self.settings.record_opening_deposit,
            )
            scope.accounts.add(account)
            scope.record(*entries)
            return account

        account = self.coordinator.run_atomic(work, cancel_event)
        logger.info(
            "account.created",
            extra={
                "account_id": str(account.id),
                "account_number": account.account_number,
                "user_id": str(owner_id),
                "balance": str(account.balance),
            },
        )
        return self._account_to_response(account)

    def freeze(
        self,
        account_id: UUID,
        reason: str = "",
        cancel_event: Optional[threading.Event] = None,
    ) -> AccountResponse:
        return self._mutate(
            account_id, "account.frozen", lambda a: [a.freeze(reason)], cancel_event
        )

    def unfreeze(
        self, account_id: UUID, cancel_event: Optional[threading.Event] = None
    ) -> AccountResponse:
        return self._mutate(
            account_id, "account.unfrozen", lambda a: [a.unfreeze()], cancel_event
        )

    def close(
        self, account_id: UUID, cancel_event: Optional[threading.Event] = None
    ) -> AccountResponse:
        return self._mutate(account_id, "account.closed", lambda a: [a.close()], cancel_event)

    def update_type(
        self,
        account_id: UUID,
        account_type: AccountType,
        cancel_event: Optional[threading.Event] = None,
    ) -> AccountResponse:
        def change(account: Account) -> list[LedgerEntry]:
            account.change_type(account_type)
            return []

        return self._mutate(account_id, "account.type_changed", change, cancel_event)

    def update_account(
        self,
        account_id: UUID,
        payload: UpdateAccountRequest,
        cancel_event: Optional[threading.Event] = None,
    ) -> AccountResponse:
        """Apply a type change and/or a status change through the state machine."""

        def change(account: Account) -> list[LedgerEntry]:
            entries: list[LedgerEntry] = []
            if payload.account_type is not None:
                account.change_type(payload.account_type)
            if payload.status is not None and payload.status is not account.status:
                if payload.status is AccountStatus.FROZEN:
                    entries.append(account.freeze())
                elif payload.status is AccountStatus.ACTIVE:
                    entries.append(account.unfreeze())
                else:
                    entries.append(account.close())
            return entries

        return self._mutate(account_id, "account.updated", change, cancel_event)

    def delete_account(
        self, account_id: UUID, cancel_event: Optional[threading.Event] = None
    ) -> None:
        def work(scope: TransactionScope) -> Account:
            account = self._require(scope, account_id)
            if account.balance > 0:
                raise NonZeroBalanceError("Account must have zero balance to be deleted.")
            scope.accounts.delete(account)
            return account

        account = self.coordinator.run_atomic(work, cancel_event)
        logger.info(
            "account.deleted",
            extra={"account_id": str(account_id), "account_number": account.account_number},
        )

    # ------------------------------------------------------------------
    # Money movement
    # ------------------------------------------------------------------
    def deposit(
        self,
        payload: DepositRequest,
        idempotency_key: Optional[str] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> MovementResponse:
        request_signature = (
            "deposit",
            payload.account_number,
            payload.amount,
            payload.description,
        )

        # Replays must not bypass the PIN check.
        self._check_pin(payload.pin)

        def perform(scope: TransactionScope) -> MovementResponse:
            account = self._require_by_number(scope, payload.account_number)
            entry = account.deposit(payload.amount, payload.description)
            scope.accounts.update(account)
            (entry,) = scope.record(entry)
            return MovementResponse(
                account=self._account_to_response(account),
                entry=self._entry_to_response(entry),
            )

        response, replayed = self._idempotent(
            "deposit",
            idempotency_key,
            request_signature,
            MovementResponse,
            perform,
            cancel_event,
        )
        if not replayed:
            logger.info(
                "account.deposit",
                extra={
                    "account_id": str(response.account.id),
                    "amount": str(payload.amount),
                    "balance": str(response.account.balance),
                    "reference_number": response.entry.reference_number,
                },
            )
        return response

    def withdraw(
        self,
        payload: WithdrawRequest,
        idempotency_key: Optional[str] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> MovementResponse:
        request_signature = (
            "withdraw",
            payload.account_number,
            payload.amount,
            payload.description,
        )

        self._check_pin(payload.pin)

        def perform(scope: TransactionScope) -> MovementResponse:
            account = self._require_by_number(scope, payload.account_number)
            entry = account.withdraw(payload.amount, payload.description)
            scope.accounts.update(account)
            (entry,) = scope.record(entry)
            return MovementResponse(
                account=self._account_to_response(account),
                entry=self._entry_to_response(entry),
            )

        response, replayed = self._idempotent(
            "withdraw",
            idempotency_key,
            request_signature,
            MovementResponse,
            perform,
            cancel_event,
        )
        if not replayed:
            logger.info(
                "account.withdraw",
                extra={
                    "account_id": str(response.account.id),
                    "amount": str(payload.amount),
                    "balance": str(response.account.balance),
                    "reference_number": response.entry.reference_number,
                },
            )
        return response

    def transfer(
        self,
        payload: TransferRequest,
        idempotency_key: Optional[str] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> TransferResponse:
        request_signature = (
            "transfer",
            payload.from_account_id,
            payload.to_account_number,
            payload.amount,
            payload.description,
        )

        self._check_pin(payload.pin)

        def perform(scope: TransactionScope) -> TransferResponse:
            source = self._require(scope, payload.from_account_id)
            destination = self._require_by_number(scope, payload.to_account_number)
            outgoing, incoming = source.transfer(
                destination, payload.amount, payload.description
            )
            scope.accounts.update(source)
            scope.accounts.update(destination)
            outgoing, incoming = scope.record(outgoing, incoming)
            return TransferResponse(
                source=self._account_to_response(source),
                destination=self._account_to_response(destination),
                transfer_out=self._entry_to_response(outgoing),
                transfer_in=self._entry_to_response(incoming),
            )

        response, replayed = self._idempotent(
            "transfer",
            idempotency_key,
            request_signature,
            TransferResponse,
            perform,
            cancel_event,
        )
        if not replayed:
            logger.info(
                "account.transfer",
                extra={
                    "source_account_id": str(response.source.id),
                    "dest_account_id": str(response.destination.id),
                    "amount": str(payload.amount),
                },
            )
        return response
