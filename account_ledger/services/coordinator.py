from __future__ import annotations

import logging
import threading
from datetime import datetime
from typing import Callable, Optional, TypeVar

from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm.exc import StaleDataError
from sqlmodel import Session

from ..core.errors import (
    ConflictError,
    DuplicateReferenceError,
    OperationCancelledError,
)
from ..models import LedgerEntry
from ..models.domain import new_reference_number
from .repository import (
    SqlAccountStore,
    SqlIdempotencyStore,
    SqlLedgerStore,
)


logger = logging.getLogger(__name__)

T = TypeVar("T")

# Failures the database reports for colliding or timed-out writes.
TRANSIENT_ERRORS = (IntegrityError, OperationalError, StaleDataError)


class TransactionScope:
    """Store handles bound to one database transaction."""

    def __init__(
        self,
        session: Session,
        *,
        reference_factory: Callable[[Optional[datetime]], str] = new_reference_number,
        reference_retry_limit: int = 3,
    ) -> None:
        self.session = session
        self.accounts = SqlAccountStore(session)
        self.ledger = SqlLedgerStore(session)
        self.idempotency = SqlIdempotencyStore(session)
        self._reference_factory = reference_factory
        self._reference_retry_limit = reference_retry_limit

    def record(self, *entries: LedgerEntry) -> list[LedgerEntry]:
        """Append ``entries`` in order and return them as stored.

        A colliding reference number is replaced with a fresh one and the
        append retried, so the stored entry may differ from the one given.
        """
        return [self._append(entry) for entry in entries]

    def _append(self, entry: LedgerEntry) -> LedgerEntry:
        retries = 0
        while True:
            try:
                self.ledger.append(entry)
                return entry
            except DuplicateReferenceError:
                if retries >= self._reference_retry_limit:
                    raise
                retries += 1
                logger.warning(
                    "ledger.reference.collision",
                    extra={
                        "account_id": str(entry.account_id),
                        "reference_number": entry.reference_number,
                        "attempt": retries,
                    },
                )
                entry = entry.with_reference(self._reference_factory(entry.timestamp))


class TransactionCoordinator:
    """Runs a unit of work so that all of its writes land or none do."""

    def __init__(
        self,
        session: Session,
        *,
        reference_retry_limit: int = 3,
        reference_factory: Callable[[Optional[datetime]], str] = new_reference_number,
    ) -> None:
        self.session = session
        self.reference_retry_limit = reference_retry_limit
        self.reference_factory = reference_factory

    def run_atomic(
        self,
        work: Callable[[TransactionScope], T],
        cancel_event: Optional[threading.Event] = None,
    ) -> T:
        """Run ``work`` inside one transaction and commit it.

        Any exception from ``work`` rolls the transaction back and is re-raised
        as is. Transient database failures become ``ConflictError``. A set
        ``cancel_event`` is honoured until the commit starts.
        """
        scope = TransactionScope(
            self.session,
            reference_factory=self.reference_factory,
            reference_retry_limit=self.reference_retry_limit,
        )
        try:
            self._check_cancelled(cancel_event)
            result = work(scope)
            self._check_cancelled(cancel_event)
            self.session.commit()
        except TRANSIENT_ERRORS as exc:
            self.session.rollback()
            logger.warning("unit.conflict", extra={"error": type(exc).__name__})
            raise ConflictError("The operation collided with a concurrent write; retry.") from exc
        except BaseException:
            self.session.rollback()
            raise
        return result

    @staticmethod
    def _check_cancelled(cancel_event: Optional[threading.Event]) -> None:
        if cancel_event is not None and cancel_event.is_set():
            raise OperationCancelledError("Operation cancelled before commit")
