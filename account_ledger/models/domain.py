"""Account aggregate and ledger entries.

These are plain dataclasses with no persistence concerns. An ``Account`` is
the only thing allowed to produce ``LedgerEntry`` objects: every balance or
status change returns the entries that record it, and the caller hands those
to the ledger store inside the same atomic unit.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Optional, Union
from uuid import UUID, uuid4

from ..core.errors import (
    InactiveAccountError,
    InsufficientBalanceError,
    InvalidArgumentError,
    InvalidStateError,
    NonZeroBalanceError,
)


CENT = Decimal("0.01")
ZERO = Decimal("0.00")
# Largest value a money column holds: 18 digits, two of them after the point.
MAX_AMOUNT = Decimal("9999999999999999.99")

AmountLike = Union[Decimal, int, str]


class AccountStatus(str, Enum):
    ACTIVE = "ACTIVE"
    FROZEN = "FROZEN"
    CLOSED = "CLOSED"


class AccountType(str, Enum):
    SAVINGS = "SAVINGS"
    CURRENT = "CURRENT"
    FIXED_DEPOSIT = "FIXED_DEPOSIT"
    BUSINESS = "BUSINESS"


class EntryKind(str, Enum):
    DEPOSIT = "DEPOSIT"
    WITHDRAW = "WITHDRAW"
    TRANSFER_OUT = "TRANSFER_OUT"
    TRANSFER_IN = "TRANSFER_IN"
    ACCOUNT_FROZEN = "ACCOUNT_FROZEN"
    ACCOUNT_UNFROZEN = "ACCOUNT_UNFROZEN"
    ACCOUNT_CLOSED = "ACCOUNT_CLOSED"


class EntryStatus(str, Enum):
    COMPLETED = "COMPLETED"
    REVERSED = "REVERSED"


def utcnow() -> datetime:
    return datetime.now(UTC)


def as_utc(value: datetime) -> datetime:
    """Attach UTC to naive timestamps and convert aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def new_reference_number(at: Optional[datetime] = None) -> str:
    stamp = at or utcnow()
    return f"TX-{stamp:%Y%m%d}-{uuid4().hex[:8].upper()}"


def to_money(value: AmountLike, *, label: str = "Amount") -> Decimal:
    """Coerce ``value`` to a two-place ``Decimal`` or raise ``InvalidArgumentError``.

    Floats are refused outright: they cannot represent most cent values exactly.
    """
    if isinstance(value, (bool, float)):
        raise InvalidArgumentError(f"{label} must be a decimal, not {type(value).__name__}.")
    try:
        amount = value if isinstance(value, Decimal) else Decimal(str(value).strip())
        if not amount.is_finite():
            raise InvalidArgumentError(f"{label} must be a finite number.")
        quantized = amount.quantize(CENT)
    except InvalidOperation as exc:
        raise InvalidArgumentError(f"{label} is not a valid number.") from exc
    if quantized != amount:
        raise InvalidArgumentError(f"{label} cannot have more than two decimal places.")
    if abs(quantized) > MAX_AMOUNT:
        raise InvalidArgumentError(f"{label} cannot exceed {MAX_AMOUNT}.")
    return quantized


def to_minor_units(amount: Decimal) -> int:
    return int(amount.quantize(CENT).scaleb(2))


def from_minor_units(cents: int) -> Decimal:
    return Decimal(cents).scaleb(-2)


@dataclass(frozen=True)
class LedgerEntry:
    account_id: UUID
    kind: EntryKind
    amount: Decimal
    description: str = ""
    related_account_id: Optional[UUID] = None
    id: UUID = field(default_factory=uuid4)
    timestamp: datetime = field(default_factory=utcnow)
    reference_number: str = ""
    status: EntryStatus = EntryStatus.COMPLETED

    def __post_init__(self) -> None:
        if self.amount < 0:
            raise InvalidArgumentError("Ledger entry amount cannot be negative.")
        if not self.reference_number:
            object.__setattr__(
                self, "reference_number", new_reference_number(self.timestamp)
            )

    def with_reference(self, reference_number: str) -> LedgerEntry:
        return replace(self, reference_number=reference_number)

    def reverse(self) -> LedgerEntry:
        # The only mutation an entry admits.
        if self.status is EntryStatus.REVERSED:
            raise InvalidStateError(f"Entry {self.reference_number} is already reversed.")
        return replace(self, status=EntryStatus.REVERSED)


@dataclass
class Account:
    account_number: str
    user_id: UUID
    account_type: AccountType = AccountType.SAVINGS
    balance: Decimal = ZERO
    status: AccountStatus = AccountStatus.ACTIVE
    id: UUID = field(default_factory=uuid4)
    created_at: datetime = field(default_factory=utcnow)
    updated_at: Optional[datetime] = None
    # Row version of the persisted copy; 0 until the account is stored.
    version: int = 0

    def __post_init__(self) -> None:
        if not self.account_number or not self.account_number.strip():
            raise InvalidArgumentError("Account number is required.")
        if self.balance < 0:
            raise InvalidArgumentError("Initial balance cannot be negative.")

    @classmethod
    def open(
        cls,
        account_number: str,
        user_id: UUID,
        account_type: AccountType = AccountType.SAVINGS,
        initial_balance: AmountLike = ZERO,
        *,
        record_opening_deposit: bool = False,
    ) -> tuple[Account, list[LedgerEntry]]:
        """Create a new active account.

        The opening balance is written straight to the account. Only when
        ``record_opening_deposit`` is set does a non-zero opening balance also
        produce a DEPOSIT entry.
        """
        balance = to_money(initial_balance, label="Initial balance")
        account = cls(
            account_number=account_number,
            user_id=user_id,
            account_type=account_type,
            balance=balance,
        )
        entries: list[LedgerEntry] = []
        if record_opening_deposit and balance > 0:
            entries.append(account._entry(EntryKind.DEPOSIT, balance, "Opening deposit"))
        return account, entries

    @property
    def is_active(self) -> bool:
        return self.status is AccountStatus.ACTIVE

    # ------------------------------------------------------------------
    # Helper utilities
    # ------------------------------------------------------------------
    def _entry(
        self,
        kind: EntryKind,
        amount: Decimal,
        description: str,
        *,
        related_account_id: Optional[UUID] = None,
        timestamp: Optional[datetime] = None,
    ) -> LedgerEntry:
        return LedgerEntry(
            account_id=self.id,
            related_account_id=related_account_id,
            kind=kind,
            amount=amount,
            description=description,
            timestamp=timestamp or utcnow(),
        )

    def _require_active(self, role: str = "Account") -> None:
        if not self.is_active:
            raise InactiveAccountError(
                f"{role} {self.account_number} is not active ({self.status.value})."
            )

    @staticmethod
    def _positive(amount: AmountLike, verb: str) -> Decimal:
        value = to_money(amount, label=f"{verb} amount")
        if value <= 0:
            raise InvalidArgumentError(f"{verb} amount must be greater than zero.")
        return value

    def _check_ceiling(self, incoming: Decimal) -> None:
        if self.balance + incoming > MAX_AMOUNT:
            raise InvalidArgumentError(
                f"Balance of {self.account_number} cannot exceed {MAX_AMOUNT}."
            )

    # ------------------------------------------------------------------
    # Balance operations
    # ------------------------------------------------------------------
    def deposit(self, amount: AmountLike, description: str = "Deposit") -> LedgerEntry:
        self._require_active()
        value = self._positive(amount, "Deposit")
        self._check_ceiling(value)

        self.balance += value
        self.updated_at = utcnow()
        return self._entry(EntryKind.DEPOSIT, value, description or "Deposit")

    def withdraw(self, amount: AmountLike, description: str = "Withdrawal") -> LedgerEntry:
        self._require_active()
        value = self._positive(amount, "Withdrawal")
        if value > self.balance:
            raise InsufficientBalanceError(
                f"Insufficient balance for withdrawal from {self.account_number}."
            )

        self.balance -= value
        self.updated_at = utcnow()
        return self._entry(EntryKind.WITHDRAW, value, description or "Withdrawal")

    def transfer(
        self,
        target: Account,
        amount: AmountLike,
        description: str = "Transfer",
    ) -> tuple[LedgerEntry, LedgerEntry]:
        """Move ``amount`` to ``target``.

        Returns the TRANSFER_OUT entry for this account and the TRANSFER_IN
        entry for the target, in that order. Both accounts are mutated only
        after every check has passed.
        """
        self._require_active("Source account")
        target._require_active("Destination account")
        value = self._positive(amount, "Transfer")
        if target.id == self.id:
            raise InvalidArgumentError("Cannot transfer to the same account.")
        target._check_ceiling(value)
        if value > self.balance:
            raise InsufficientBalanceError(
                f"Insufficient balance for transfer from {self.account_number}."
            )

        now = utcnow()
        note = description or "Transfer"
        self.balance -= value
        target.balance += value
        self.updated_at = now
        target.updated_at = now

        outgoing = self._entry(
            EntryKind.TRANSFER_OUT,
            value,
            f"Transfer to {target.account_number}: {note}",
            related_account_id=target.id,
            timestamp=now,
        )
        incoming = target._entry(
            EntryKind.TRANSFER_IN,
            value,
            f"Transfer from {self.account_number}: {note}",
            related_account_id=self.id,
            timestamp=now,
        )
        return outgoing, incoming

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    def freeze(self, reason: str = "") -> LedgerEntry:
        if self.status is AccountStatus.CLOSED:
            raise InvalidStateError("Cannot freeze a closed account.")

        self.status = AccountStatus.FROZEN
        self.updated_at = utcnow()
        return self._entry(
            EntryKind.ACCOUNT_FROZEN, ZERO, f"Account frozen. Reason: {reason}"
        )

    def unfreeze(self) -> LedgerEntry:
        if self.status is not AccountStatus.FROZEN:
            raise InvalidStateError("Account is not frozen.")

        self.status = AccountStatus.ACTIVE
        self.updated_at = utcnow()
        return self._entry(EntryKind.ACCOUNT_UNFROZEN, ZERO, "Account unfrozen")

    def close(self) -> LedgerEntry:
        if self.status is AccountStatus.CLOSED:
            raise InvalidStateError("Account is already closed.")
        if self.status is AccountStatus.FROZEN:
            raise InvalidStateError("A frozen account must be unfrozen before closing.")
        if self.balance > 0:
            raise NonZeroBalanceError("Account must have zero balance to close.")

        self.status = AccountStatus.CLOSED
        self.updated_at = utcnow()
        return self._entry(EntryKind.ACCOUNT_CLOSED, ZERO, "Account closed")

    def change_type(self, new_type: AccountType) -> None:
        self.account_type = new_type
        self.updated_at = utcnow()
