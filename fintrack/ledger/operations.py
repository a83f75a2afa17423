"""
Ledger Operations: transfer, currency exchange, income

Each operation is one store transaction:
1. Read the account(s)
2. Check ownership and currency rules
3. Check the balance
4. Write the new balance(s) and append one transaction record

Any failed check raises before a write is queued, so nothing changes.
"""

from decimal import Decimal
from typing import Any, Callable, Optional

from fintrack.ledger.base import LedgerService, check_owner, stored_amount, to_amount
from fintrack.ledger.errors import (
    AccountNotFoundError,
    CurrencyMismatchError,
    InsufficientFundsError,
    InvalidAmountError,
    InvalidRateError,
    SameAccountError,
    SameCurrencyError,
)
from fintrack.models.audit import AuditEventBuilder
from fintrack.models.transactions import (
    FxTransaction,
    IncomeTransaction,
    Transaction,
    TransferTransaction,
    transaction_from_document,
)
from fintrack.services.storage import (
    Collections,
    DocumentQuery,
    DocumentSnapshot,
    StoreTransaction,
    Subscription,
)


def balance_of(account: dict[str, Any]) -> Decimal:
    """Stored balance as a Decimal (documents hold plain numbers)."""
    return Decimal(str(account.get("balance") or 0))


def _transactions(snapshots: list[DocumentSnapshot]) -> list[Transaction]:
    return [transaction_from_document(s.id, s.data) for s in snapshots]


class LedgerOperations(LedgerService):
    """Balance-mutating operations between a user's accounts."""

    def _load_pair(
        self,
        txn: StoreTransaction,
        user_id: str,
        from_id: str,
        to_id: str,
    ) -> tuple[dict[str, Any], dict[str, Any]]:
        source = check_owner(txn.get(Collections.ACCOUNTS, from_id), user_id, from_id, AccountNotFoundError)
        target = check_owner(txn.get(Collections.ACCOUNTS, to_id), user_id, to_id, AccountNotFoundError)
        return source, target

    async def transfer(self, user_id: str, from_id: str, to_id: str, amount: object) -> TransferTransaction:
        """
        Move money between two accounts of the same currency.

        Raises:
            InvalidAmountError, SameAccountError, AccountNotFoundError,
            AccessDeniedError, CurrencyMismatchError, InsufficientFundsError
        """
        try:
            value = to_amount(amount)
            if from_id == to_id:
                raise SameAccountError(from_id)
        except (InvalidAmountError, SameAccountError) as e:
            raise await self._rejected("transfer", user_id, e, from_id)

        created_at = self.now()

        def _apply(txn: StoreTransaction) -> TransferTransaction:
            source, target = self._load_pair(txn, user_id, from_id, to_id)
            if source["currency"] != target["currency"]:
                raise CurrencyMismatchError(
                    source["currency"], target["currency"], "Use an exchange between currencies"
                )
            source_balance = balance_of(source)
            if source_balance < value:
                raise InsufficientFundsError(from_id, source_balance, value)

            record = TransferTransaction(
                user_id=user_id,
                from_account_id=from_id,
                to_account_id=to_id,
                amount=value,
                currency=source["currency"],
                created_at=created_at,
            )
            txn.update(Collections.ACCOUNTS, from_id, {"balance": stored_amount(source_balance - value)})
            txn.update(Collections.ACCOUNTS, to_id, {"balance": stored_amount(balance_of(target) + value)})
            tx_id = txn.create(Collections.TRANSACTIONS, record.to_document())
            return record.model_copy(update={"id": tx_id})

        record = await self._transact("transfer", user_id, _apply, from_id)
        await self._audit.log(AuditEventBuilder.transfer_completed(
            user_id, record.id, from_id, to_id, record.amount, record.currency,
        ))
        return record

    async def exchange(
        self,
        user_id: str,
        from_id: str,
        to_id: str,
        sell_amount: object,
        rate: object,
    ) -> FxTransaction:
        """
        Sell `sell_amount` from one account and credit `sell_amount * rate`
        to an account in another currency.
        """
        try:
            sell = to_amount(sell_amount, "sell amount")
            try:
                fx_rate = to_amount(rate, "rate")
            except InvalidAmountError:
                raise InvalidRateError(rate)
            if from_id == to_id:
                raise SameAccountError(from_id)
        except (InvalidAmountError, InvalidRateError, SameAccountError) as e:
            raise await self._rejected("exchange", user_id, e, from_id)

        buy = sell * fx_rate
        created_at = self.now()

        def _apply(txn: StoreTransaction) -> FxTransaction:
            source, target = self._load_pair(txn, user_id, from_id, to_id)
            if source["currency"] == target["currency"]:
                raise SameCurrencyError(source["currency"])
            source_balance = balance_of(source)
            if source_balance < sell:
                raise InsufficientFundsError(from_id, source_balance, sell)

            record = FxTransaction(
                user_id=user_id,
                from_account_id=from_id,
                to_account_id=to_id,
                sell_amount=sell,
                sell_currency=source["currency"],
                buy_amount=buy,
                buy_currency=target["currency"],
                rate=fx_rate,
                created_at=created_at,
            )
            txn.update(Collections.ACCOUNTS, from_id, {"balance": stored_amount(source_balance - sell)})
            txn.update(Collections.ACCOUNTS, to_id, {"balance": stored_amount(balance_of(target) + buy)})
            tx_id = txn.create(Collections.TRANSACTIONS, record.to_document())
            return record.model_copy(update={"id": tx_id})

        record = await self._transact("exchange", user_id, _apply, from_id)
        await self._audit.log(AuditEventBuilder.fx_completed(
            user_id, record.id, record.sell_amount, record.sell_currency,
            record.buy_amount, record.buy_currency, record.rate,
        ))
        return record

    async def record_income(
        self,
        user_id: str,
        account_id: str,
        amount: object,
        note: Optional[str] = None,
    ) -> IncomeTransaction:
        """Credit an account."""
        try:
            value = to_amount(amount)
        except InvalidAmountError as e:
            raise await self._rejected("record_income", user_id, e, account_id)

        created_at = self.now()

        def _apply(txn: StoreTransaction) -> IncomeTransaction:
            account = check_owner(
                txn.get(Collections.ACCOUNTS, account_id), user_id, account_id, AccountNotFoundError
            )
            record = IncomeTransaction(
                user_id=user_id,
                account_id=account_id,
                amount=value,
                currency=account["currency"],
                note=note or None,
                created_at=created_at,
            )
            txn.update(Collections.ACCOUNTS, account_id, {"balance": stored_amount(balance_of(account) + value)})
            tx_id = txn.create(Collections.TRANSACTIONS, record.to_document())
            return record.model_copy(update={"id": tx_id})

        record = await self._transact("record_income", user_id, _apply, account_id)
        await self._audit.log(AuditEventBuilder.income_recorded(
            user_id, record.id, account_id, record.amount, record.currency,
        ))
        return record

    # ------------------------------------------------------------------
    # Transaction log
    # ------------------------------------------------------------------

    def _recent_query(self, user_id: str, limit: int) -> DocumentQuery:
        return (
            DocumentQuery(collection=Collections.TRANSACTIONS)
            .where("userId", "==", user_id)
            .ordered("createdAt", descending=True)
            .limited(limit)
        )

    async def list_recent_transactions(self, user_id: str, limit: int = 10) -> list[Transaction]:
        """Newest transactions first."""
        return _transactions(await self._store.query(self._recent_query(user_id, limit)))

    def subscribe_recent_transactions(
        self,
        user_id: str,
        on_next: Callable[[list[Transaction]], None],
        on_error: Optional[Callable[[Exception], None]] = None,
        limit: int = 10,
    ) -> Subscription:
        return self._store.subscribe(
            self._recent_query(user_id, limit),
            lambda snapshots: on_next(_transactions(snapshots)),
            on_error,
        )
