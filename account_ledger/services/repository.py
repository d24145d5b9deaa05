from __future__ import annotations

from datetime import datetime
from typing import Optional, Protocol
from uuid import UUID

from sqlalchemy import delete, func, update
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from ..core.errors import (
    ConcurrencyConflictError,
    DuplicateAccountNumberError,
    DuplicateReferenceError,
    EntryNotFoundError,
    InvalidStateError,
)
from ..models import (
    Account,
    AccountModel,
    AccountStatus,
    AccountType,
    EntryKind,
    EntryStatus,
    IdempotencyRecordModel,
    LedgerEntry,
    LedgerEntryModel,
    UserModel,
)
from ..models.domain import as_utc, from_minor_units, to_minor_units


class AccountStore(Protocol):
    def get(self, account_id: UUID) -> Optional[Account]: ...
    def get_by_number(self, account_number: str) -> Optional[Account]: ...
    def list_by_user(self, user_id: UUID) -> list[Account]: ...
    def list_all(self) -> list[Account]: ...
    def exists(self, account_number: str) -> bool: ...
    def add(self, account: Account) -> None: ...
    def update(self, account: Account) -> None: ...
    def delete(self, account: Account) -> None: ...


class LedgerStore(Protocol):
    def append(self, entry: LedgerEntry) -> None: ...
    def get(self, entry_id: UUID) -> Optional[LedgerEntry]: ...
    def list_by_account(
        self,
        account_id: UUID,
        from_time: datetime,
        to_time: datetime,
        kind: Optional[EntryKind] = None,
        page: int = 1,
        page_size: int = 20,
    ) -> list[LedgerEntry]: ...
    def count_by_account(
        self,
        account_id: UUID,
        from_time: Optional[datetime] = None,
        to_time: Optional[datetime] = None,
        kind: Optional[EntryKind] = None,
    ) -> int: ...
    def update_status(self, entry_id: UUID, status: EntryStatus) -> LedgerEntry: ...


class UserDirectory(Protocol):
    def exists(self, user_id: UUID) -> bool: ...


def _to_db_time(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    return as_utc(value)


def _from_db_time(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    return as_utc(value)


def _account_from_record(record: AccountModel) -> Account:
    return Account(
        id=record.id,
        account_number=record.account_number,
        user_id=record.user_id,
        account_type=AccountType(record.account_type),
        balance=from_minor_units(record.balance),
        status=AccountStatus(record.status),
        created_at=_from_db_time(record.created_at),
        updated_at=_from_db_time(record.updated_at),
        version=record.version,
    )


def _entry_from_record(record: LedgerEntryModel) -> LedgerEntry:
    return LedgerEntry(
        id=record.id,
        account_id=record.account_id,
        related_account_id=record.related_account_id,
        kind=EntryKind(record.kind),
        amount=from_minor_units(record.amount),
        description=record.description,
        timestamp=_from_db_time(record.ts),
        reference_number=record.reference_number,
        status=EntryStatus(record.status),
    )


class SqlAccountStore:
    """Account persistence with optimistic version checks on every write."""

    def __init__(self, session: Session) -> None:
        self.session = session

    # Reads --------------------------------------------------------------
    def get(self, account_id: UUID) -> Optional[Account]:
        record = self.session.get(AccountModel, account_id)
        return None if record is None else _account_from_record(record)

    def get_by_number(self, account_number: str) -> Optional[Account]:
        stmt = select(AccountModel).where(AccountModel.account_number == account_number)
        record = self.session.exec(stmt).first()
        return None if record is None else _account_from_record(record)

    def list_by_user(self, user_id: UUID) -> list[Account]:
        stmt = (
            select(AccountModel)
            .where(AccountModel.user_id == user_id)
            .order_by(AccountModel.created_at)
        )
        return [_account_from_record(record) for record in self.session.exec(stmt)]

    def list_all(self) -> list[Account]:
        stmt = select(AccountModel).order_by(AccountModel.created_at)
        return [_account_from_record(record) for record in self.session.exec(stmt)]

    def exists(self, account_number: str) -> bool:
        stmt = select(AccountModel.id).where(AccountModel.account_number == account_number)
        return self.session.exec(stmt).first() is not None

    # Writes -------------------------------------------------------------
    def add(self, account: Account) -> None:
        record = AccountModel(
            id=account.id,
            account_number=account.account_number,
            user_id=account.user_id,
            account_type=account.account_type.value,
            balance=to_minor_units(account.balance),
            status=account.status.value,
            created_at=_to_db_time(account.created_at),
            updated_at=_to_db_time(account.updated_at),
            version=1,
        )
        self.session.add(record)
        try:
            self.session.flush()
        except IntegrityError as exc:
            # A concurrent create can slip past the caller's exists() check.
            if "account_number" in str(exc.orig):
                raise DuplicateAccountNumberError(
                    f"Account number {account.account_number} is already registered"
                ) from exc
            raise
        account.version = 1

    def update(self, account: Account) -> None:
        stmt = (
            update(AccountModel)
            .where(AccountModel.id == account.id)
            .where(AccountModel.version == account.version)
            .values(
                balance=to_minor_units(account.balance),
                status=account.status.value,
                account_type=account.account_type.value,
                updated_at=_to_db_time(account.updated_at),
                version=account.version + 1,
            )
        )
        result = self.session.exec(stmt)
        if result.rowcount != 1:
            raise ConcurrencyConflictError(
                f"Account {account.id} was modified by another operation; retry."
            )
        account.version += 1

    def delete(self, account: Account) -> None:
        stmt = (
            delete(AccountModel)
            .where(AccountModel.id == account.id)
            .where(AccountModel.version == account.version)
        )
        result = self.session.exec(stmt)
        if result.rowcount != 1:
            raise ConcurrencyConflictError(
                f"Account {account.id} was modified by another operation; retry."
            )


class SqlLedgerStore:
    """Append-only ledger persistence. Entries are never deleted."""

    def __init__(self, session: Session) -> None:
        self.session = session

    def append(self, entry: LedgerEntry) -> None:
        taken = select(LedgerEntryModel.id).where(
            LedgerEntryModel.reference_number == entry.reference_number
        )
        if self.session.exec(taken).first() is not None:
            raise DuplicateReferenceError(
                f"Reference number {entry.reference_number} already exists"
            )
        record = LedgerEntryModel(
            id=entry.id,
            ts=_to_db_time(entry.timestamp),
            account_id=entry.account_id,
            related_account_id=entry.related_account_id,
            kind=entry.kind.value,
            amount=to_minor_units(entry.amount),
            description=entry.description,
            reference_number=entry.reference_number,
            status=entry.status.value,
        )
        self.session.add(record)
        self.session.flush()

    def get(self, entry_id: UUID) -> Optional[LedgerEntry]:
        record = self.session.get(LedgerEntryModel, entry_id)
        return None if record is None else _entry_from_record(record)

    def _filtered(
        self,
        stmt,
        account_id: UUID,
        from_time: Optional[datetime],
        to_time: Optional[datetime],
        kind: Optional[EntryKind],
    ):
        stmt = stmt.where(LedgerEntryModel.account_id == account_id)
        if from_time is not None:
            stmt = stmt.where(LedgerEntryModel.ts >= _to_db_time(from_time))
        if to_time is not None:
            stmt = stmt.where(LedgerEntryModel.ts <= _to_db_time(to_time))
        if kind is not None:
            stmt = stmt.where(LedgerEntryModel.kind == kind.value)
        return stmt

    def list_by_account(
        self,
        account_id: UUID,
        from_time: datetime,
        to_time: datetime,
        kind: Optional[EntryKind] = None,
        page: int = 1,
        page_size: int = 20,
    ) -> list[LedgerEntry]:
        stmt = self._filtered(select(LedgerEntryModel), account_id, from_time, to_time, kind)
        stmt = (
            stmt.order_by(LedgerEntryModel.ts.desc())
            .offset((page - 1) * page_size)
            .limit(page_size)
        )
        return [_entry_from_record(record) for record in self.session.exec(stmt)]

    def count_by_account(
        self,
        account_id: UUID,
        from_time: Optional[datetime] = None,
        to_time: Optional[datetime] = None,
        kind: Optional[EntryKind] = None,
    ) -> int:
        stmt = self._filtered(
            select(func.count()).select_from(LedgerEntryModel),
            account_id,
            from_time,
            to_time,
            kind,
        )
        return self.session.exec(stmt).one()

    def update_status(self, entry_id: UUID, status: EntryStatus) -> LedgerEntry:
        """Move an entry to ``status``. Only COMPLETED -> REVERSED is allowed."""
        record = self.session.get(LedgerEntryModel, entry_id)
        if record is None:
            raise EntryNotFoundError(f"Ledger entry {entry_id} not found")
        if status is not EntryStatus.REVERSED:
            raise InvalidStateError(
                f"Ledger entry {record.reference_number} cannot move to {status.value}."
            )
        record.status = _entry_from_record(record).reverse().status.value
        self.session.add(record)
        self.session.flush()
        return _entry_from_record(record)


class SqlUserDirectory:
    def __init__(self, session: Session) -> None:
        self.session = session

    def exists(self, user_id: UUID) -> bool:
        return self.session.get(UserModel, user_id) is not None


class SqlIdempotencyStore:
    def __init__(self, session: Session) -> None:
        self.session = session

    def fetch(self, route: str, key: str) -> Optional[IdempotencyRecordModel]:
        stmt = (
            select(IdempotencyRecordModel)
            .where(IdempotencyRecordModel.route == route)
            .where(IdempotencyRecordModel.key == key)
        )
        return self.session.exec(stmt).first()

    def save(
        self,
        *,
        route: str,
        key: str,
        signature: str,
        payload: str,
    ) -> None:
        record = IdempotencyRecordModel(
            route=route,
            key=key,
            request_signature=signature,
            response_payload=payload,
        )
        self.session.add(record)
        self.session.flush()
