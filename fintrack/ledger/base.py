"""Shared plumbing for the ledger services."""

from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Optional

import structlog

from fintrack.audit import AuditLogger
from fintrack.ledger.errors import (
    AccessDeniedError,
    AmountPrecisionError,
    EntityNotFoundError,
    InvalidAmountError,
    LedgerError,
)
from fintrack.models.base import utcnow
from fintrack.services.storage import DocumentStore, StorageError, StoreTransaction
from fintrack.services.storage.interface import T


Clock = Callable[[], datetime]


def to_amount(value: Any, field: str = "amount", allow_zero: bool = False) -> Decimal:
    """
    Coerce user input to a Decimal amount.

    Floats go through str() so 0.1 stays 0.1.

    Raises:
        InvalidAmountError: If the value is not a finite number, or not
            positive (not negative when allow_zero is set)
    """
    if isinstance(value, bool) or value is None:
        raise InvalidAmountError(value, field)
    try:
        amount = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise InvalidAmountError(value, field)
    if not amount.is_finite():
        raise InvalidAmountError(value, field)
    if amount < 0 or (amount == 0 and not allow_zero):
        raise InvalidAmountError(value, field)
    return amount


def stored_amount(value: Decimal) -> float:
    """
    Convert a computed amount to the number written to the store.

    Raises:
        AmountPrecisionError: If the float would not read back as `value`
    """
    stored = float(value)
    if Decimal(str(stored)) != value:
        raise AmountPrecisionError(value)
    return stored


def check_owner(
    data: Optional[dict[str, Any]],
    user_id: str,
    doc_id: str,
    not_found: type[EntityNotFoundError],
) -> dict[str, Any]:
    """Return the document if it exists and belongs to `user_id`."""
    if data is None:
        raise not_found(doc_id)
    if data.get("userId") != user_id:
        raise AccessDeniedError(not_found.entity, doc_id)
    return data


class LedgerService:
    """
    Base class for services that read and write the ledger.

    Subclasses get the store, an audit logger and an injectable clock.
    Rejected operations are audited before the error reaches the caller.
    """

    def __init__(
        self,
        store: DocumentStore,
        audit_logger: Optional[AuditLogger] = None,
        clock: Optional[Clock] = None,
    ):
        self._store = store
        self._audit = audit_logger or AuditLogger()
        self._clock = clock or utcnow
        self._logger = structlog.get_logger(type(self).__module__)

    def now(self) -> datetime:
        return self._clock()

    async def _get_owned(
        self,
        collection: str,
        doc_id: str,
        user_id: str,
        not_found: type[EntityNotFoundError],
    ) -> dict[str, Any]:
        data = await self._store.get(collection, doc_id)
        return check_owner(data, user_id, doc_id, not_found)

    async def _transact(
        self,
        operation: str,
        user_id: str,
        fn: Callable[[StoreTransaction], T],
        entity_id: Optional[str] = None,
    ) -> T:
        """
        Run `fn` atomically, auditing failures before re-raising them.

        Ledger errors are logged as rejections, storage failures as system errors.
        """
        try:
            return await self._store.run_transaction(fn)
        except LedgerError as e:
            await self._audit.log_rejected(user_id, operation, e, entity_id=entity_id)
            raise
        except StorageError as e:
            await self._audit.log_error(
                type(e).__name__,
                str(e),
                details={"operation": operation, "entity_id": entity_id},
                user_id=user_id,
            )
            raise

    async def _rejected(
        self,
        operation: str,
        user_id: str,
        error: LedgerError,
        entity_id: Optional[str] = None,
    ) -> LedgerError:
        """Audit a rejection raised outside a transaction and hand the error back."""
        await self._audit.log_rejected(user_id, operation, error, entity_id=entity_id)
        return error
