"""
Recurring-Bill Engine

Templates (`recurring_bills`), month instances (`bill_dues`) and payments
(`bill_dues/{dueId}/payments`).

GENERATION: generate_month_dues creates at most one due per template per
month. Before inserting it looks for an existing due with the same owner,
template and a due date inside the month, so repeated calls are safe.

PAYMENT: pay_due is one store transaction that debits the account,
appends an expense record and a payment record, and updates the due's
paid amount, status and last-used account. All of it commits or none.

POLICY (see AppSettings):
- allow_partial_payments: clamp to the available balance instead of failing
- cap_payments_at_planned: clamp to the remaining amount when one is planned
"""

from datetime import datetime
from decimal import Decimal
from typing import Any, Callable, Optional, Union

from pydantic.alias_generators import to_camel

from fintrack.audit import AuditLogger
from fintrack.ledger.base import Clock, LedgerService, check_owner, stored_amount, to_amount
from fintrack.ledger.errors import (
    AccountNotFoundError,
    CurrencyMismatchError,
    DueAlreadyPaidError,
    DueNotFoundError,
    InsufficientFundsError,
    InvalidAmountError,
    InvalidMonthError,
    LedgerValidationError,
    PlannedBelowPaidError,
    RecurringBillNotFoundError,
)
from fintrack.ledger.operations import balance_of
from fintrack.models.audit import AuditEventBuilder, AuditEventType
from fintrack.models.catalog import AmountType
from fintrack.models.spending import (
    BillDue,
    Payment,
    PaymentReceipt,
    RecurringBill,
    derive_due_status,
    due_date_for_month,
    month_bounds,
)
from fintrack.models.transactions import ExpenseTransaction
from fintrack.services.storage import (
    Collections,
    DocumentQuery,
    DocumentSnapshot,
    DocumentStore,
    StoreTransaction,
    Subscription,
)


_TEMPLATE_FIELDS = {
    "title",
    "currency",
    "amount_type",
    "amount",
    "day_of_month",
    "default_account_id",
    "institution_id",
    "notes",
    "active",
}


def _bills(snapshots: list[DocumentSnapshot]) -> list[RecurringBill]:
    return [RecurringBill.from_document(s.id, s.data) for s in snapshots]


def _dues(snapshots: list[DocumentSnapshot]) -> list[BillDue]:
    return [BillDue.from_document(s.id, s.data) for s in snapshots]


class SpendingService(LedgerService):
    """Recurring bills, monthly dues and due payments."""

    def __init__(
        self,
        store: DocumentStore,
        audit_logger: Optional[AuditLogger] = None,
        clock: Optional[Clock] = None,
        allow_partial_payments: bool = True,
        cap_payments_at_planned: bool = True,
    ):
        super().__init__(store, audit_logger, clock)
        self.allow_partial_payments = allow_partial_payments
        self.cap_payments_at_planned = cap_payments_at_planned

    async def _month_bounds(self, user_id: str, month: str, operation: str) -> tuple[datetime, datetime]:
        try:
            return month_bounds(month)
        except ValueError as e:
            raise await self._rejected(operation, user_id, InvalidMonthError(str(e)))

    # ==================================================================
    # Templates
    # ==================================================================

    def _bills_query(self, user_id: str) -> DocumentQuery:
        return (
            DocumentQuery(collection=Collections.RECURRING_BILLS)
            .where("userId", "==", user_id)
            .ordered("dayOfMonth")
        )

    async def create_recurring_bill(
        self,
        user_id: str,
        title: str,
        currency: str,
        amount_type: Union[AmountType, str],
        amount: Optional[object] = None,
        day_of_month: int = 1,
        default_account_id: Optional[str] = None,
        institution_id: Optional[str] = None,
        notes: Optional[str] = None,
        active: bool = True,
    ) -> str:
        """Create a template. day_of_month is clamped into [1, 28]."""
        bill = RecurringBill(
            user_id=user_id,
            title=title,
            currency=currency,
            amount_type=amount_type,
            amount=None if amount in (None, "") else to_amount(amount, allow_zero=True),
            day_of_month=day_of_month,
            default_account_id=default_account_id,
            institution_id=institution_id,
            notes=notes,
            active=active,
            created_at=self.now(),
        )
        bill_id = await self._store.add(Collections.RECURRING_BILLS, bill.to_document())
        await self._audit.log_entity_change(
            AuditEventType.BILL_TEMPLATE_CREATED,
            user_id,
            "recurring_bill",
            bill_id,
            f"Recurring bill created: {bill.title}",
            {"amount_type": bill.amount_type.value, "day_of_month": bill.day_of_month},
        )
        return bill_id

    async def get_recurring_bill(self, user_id: str, bill_id: str) -> RecurringBill:
        data = await self._get_owned(
            Collections.RECURRING_BILLS, bill_id, user_id, RecurringBillNotFoundError
        )
        return RecurringBill.from_document(bill_id, data)

    async def update_recurring_bill(self, user_id: str, bill_id: str, **changes: Any) -> RecurringBill:
        """
        Patch a template.

        Only template fields may change; the merged template is validated
        again, so day_of_month is re-clamped. Existing dues are not touched.
        """
        unknown = set(changes) - _TEMPLATE_FIELDS
        if unknown:
            raise await self._rejected(
                "update_recurring_bill",
                user_id,
                LedgerValidationError(f"Unknown template fields: {', '.join(sorted(unknown))}"),
                bill_id,
            )
        if changes.get("amount") not in (None, ""):
            changes["amount"] = to_amount(changes["amount"], allow_zero=True)
        elif "amount" in changes:
            changes["amount"] = None

        current = await self.get_recurring_bill(user_id, bill_id)
        updated = RecurringBill.model_validate({**current.model_dump(), **changes})
        patch = {
            k: v for k, v in updated.to_document().items()
            if k not in ("userId", "createdAt")
        }
        # to_document drops None, but cleared fields must overwrite stored values
        for field in ("amount", "default_account_id", "institution_id", "notes"):
            if getattr(updated, field) is None:
                patch[to_camel(field)] = None
        await self._store.update(Collections.RECURRING_BILLS, bill_id, patch)
        await self._audit.log_entity_change(
            AuditEventType.BILL_TEMPLATE_UPDATED,
            user_id,
            "recurring_bill",
            bill_id,
            f"Recurring bill updated: {updated.title}",
            {"fields": sorted(changes)},
        )
        return updated

    async def delete_recurring_bill(self, user_id: str, bill_id: str) -> None:
        """Delete a template. Dues already generated from it are kept."""
        await self.get_recurring_bill(user_id, bill_id)
        await self._store.delete(Collections.RECURRING_BILLS, bill_id)
        await self._audit.log_entity_change(
            AuditEventType.BILL_TEMPLATE_DELETED,
            user_id,
            "recurring_bill",
            bill_id,
            "Recurring bill deleted",
        )

    async def list_recurring_bills(self, user_id: str, active_only: bool = False) -> list[RecurringBill]:
        query = self._bills_query(user_id)
        if active_only:
            query = query.where("active", "==", True)
        return _bills(await self._store.query(query))

    def subscribe_bills(
        self,
        user_id: str,
        on_next: Callable[[list[RecurringBill]], None],
        on_error: Optional[Callable[[Exception], None]] = None,
    ) -> Subscription:
        return self._store.subscribe(
            self._bills_query(user_id),
            lambda snapshots: on_next(_bills(snapshots)),
            on_error,
        )

    # ==================================================================
    # Dues
    # ==================================================================

    def _month_query(self, user_id: str, start: datetime, end: datetime) -> DocumentQuery:
        return (
            DocumentQuery(collection=Collections.BILL_DUES)
            .where("userId", "==", user_id)
            .where("dueDate", ">=", start)
            .where("dueDate", "<", end)
            .ordered("dueDate")
        )

    async def generate_month_dues(self, user_id: str, month: str) -> int:
        """
        Create this month's dues from the user's active templates.

        Returns:
            Number of dues created (0 when everything already exists)
        """
        start, end = await self._month_bounds(user_id, month, "generate_month_dues")
        templates = await self.list_recurring_bills(user_id, active_only=True)
        now = self.now()
        created = 0

        for bill in templates:
            existing = await self._store.query(
                DocumentQuery(collection=Collections.BILL_DUES)
                .where("userId", "==", user_id)
                .where("billId", "==", bill.id)
                .where("dueDate", ">=", start)
                .where("dueDate", "<", end)
                .limited(1)
            )
            if existing:
                continue

            due_date = due_date_for_month(bill.day_of_month, month)
            planned = bill.planned_amount()
            due = BillDue(
                user_id=user_id,
                bill_id=bill.id,
                title=bill.title,
                currency=bill.currency,
                amount_planned=planned,
                amount_paid=Decimal("0"),
                due_date=due_date,
                status=derive_due_status(planned, Decimal("0"), due_date, now),
                plan_account_id=bill.default_account_id,
                created_at=now,
            )
            await self._store.add(Collections.BILL_DUES, due.to_document())
            created += 1

        self._logger.info("dues_generated", user_id=user_id, month=month, created=created)
        await self._audit.log(AuditEventBuilder.dues_generated(user_id, month, created))
        return created

    async def create_one_off_due(
        self,
        user_id: str,
        title: str,
        currency: str,
        due_date: datetime,
        amount_planned: object,
        plan_account_id: Optional[str] = None,
    ) -> str:
        """Create a due that does not come from a template."""
        try:
            planned = to_amount(amount_planned, "amount planned", allow_zero=True)
            if not (title or "").strip():
                raise LedgerValidationError("Title is required")
            if not (currency or "").strip():
                raise LedgerValidationError("Currency is required")
        except LedgerValidationError as e:
            raise await self._rejected("create_one_off_due", user_id, e)

        now = self.now()
        due = BillDue(
            user_id=user_id,
            title=title,
            currency=currency,
            amount_planned=planned,
            due_date=due_date,
            status=derive_due_status(planned, Decimal("0"), due_date, now),
            plan_account_id=plan_account_id or None,
            created_at=now,
        )
        due_id = await self._store.add(Collections.BILL_DUES, due.to_document())
        await self._audit.log_entity_change(
            AuditEventType.DUE_CREATED,
            user_id,
            "bill_due",
            due_id,
            f"One-off due created: {due.title}",
            {"amount_planned": planned, "currency": due.currency},
        )
        return due_id

    async def get_due(self, user_id: str, due_id: str) -> BillDue:
        data = await self._get_owned(Collections.BILL_DUES, due_id, user_id, DueNotFoundError)
        return BillDue.from_document(due_id, data)

    async def update_due_plan(self, user_id: str, due_id: str, amount_planned: object) -> BillDue:
        """
        Set the planned amount of a due (variable bills start at zero).

        The status is recomputed against what has already been paid. Under
        the cap policy a positive plan may not drop below the paid amount.
        """
        try:
            planned = to_amount(amount_planned, "amount planned", allow_zero=True)
        except InvalidAmountError as e:
            raise await self._rejected("update_due_plan", user_id, e, due_id)
        now = self.now()

        def _apply(txn: StoreTransaction) -> BillDue:
            data = check_owner(txn.get(Collections.BILL_DUES, due_id), user_id, due_id, DueNotFoundError)
            due = BillDue.from_document(due_id, data)
            if self.cap_payments_at_planned and 0 < planned < due.amount_paid:
                raise PlannedBelowPaidError(due_id, planned, due.amount_paid)
            status = derive_due_status(planned, due.amount_paid, due.due_date, now)
            txn.update(Collections.BILL_DUES, due_id, {
                "amountPlanned": stored_amount(planned),
                "status": status.value,
            })
            return due.model_copy(update={"amount_planned": planned, "status": status})

        due = await self._transact("update_due_plan", user_id, _apply, due_id)
        await self._audit.log_entity_change(
            AuditEventType.DUE_UPDATED,
            user_id,
            "bill_due",
            due_id,
            f"Due plan set to {planned}",
        )
        return due

    async def delete_due(self, user_id: str, due_id: str) -> None:
        await self.get_due(user_id, due_id)
        await self._store.delete(Collections.BILL_DUES, due_id)
        await self._audit.log_entity_change(
            AuditEventType.DUE_DELETED,
            user_id,
            "bill_due",
            due_id,
            "Due deleted",
        )

    async def list_dues_for_month(self, user_id: str, month: str) -> list[BillDue]:
        start, end = await self._month_bounds(user_id, month, "list_dues_for_month")
        return _dues(await self._store.query(self._month_query(user_id, start, end)))

    def subscribe_dues_for_month(
        self,
        user_id: str,
        month: str,
        on_next: Callable[[list[BillDue]], None],
        on_error: Optional[Callable[[Exception], None]] = None,
    ) -> Subscription:
        try:
            start, end = month_bounds(month)
        except ValueError as e:
            raise InvalidMonthError(str(e))
        return self._store.subscribe(
            self._month_query(user_id, start, end),
            lambda snapshots: on_next(_dues(snapshots)),
            on_error,
        )

    # ==================================================================
    # Payments
    # ==================================================================

    async def pay_due(self, user_id: str, due_id: str, account_id: str, amount: object) -> PaymentReceipt:
        """
        Apply one payment to a due from one account, atomically.

        Raises:
            InvalidAmountError: amount is not positive
            DueNotFoundError / AccountNotFoundError: missing documents
            AccessDeniedError: due or account owned by someone else
            CurrencyMismatchError: account and due currencies differ
            DueAlreadyPaidError: nothing remains to pay (cap policy)
            InsufficientFundsError: balance too low (strict policy) or not positive
        """
        try:
            requested = to_amount(amount)
        except InvalidAmountError as e:
            raise await self._rejected("pay_due", user_id, e, due_id)

        now = self.now()

        def _apply(txn: StoreTransaction) -> PaymentReceipt:
            due_data = txn.get(Collections.BILL_DUES, due_id)
            account = txn.get(Collections.ACCOUNTS, account_id)
            if due_data is None:
                raise DueNotFoundError(due_id)
            if account is None:
                raise AccountNotFoundError(account_id)
            check_owner(due_data, user_id, due_id, DueNotFoundError)
            check_owner(account, user_id, account_id, AccountNotFoundError)
            due = BillDue.from_document(due_id, due_data)

            if account["currency"] != due.currency:
                raise CurrencyMismatchError(due.currency, account["currency"], "Exchange currencies first")

            applied = requested
            if self.cap_payments_at_planned and due.amount_planned > 0:
                if due.remaining <= 0:
                    raise DueAlreadyPaidError(due_id)
                applied = min(applied, due.remaining)

            balance = balance_of(account)
            if balance < applied:
                if not self.allow_partial_payments or balance <= 0:
                    raise InsufficientFundsError(account_id, balance, applied)
                applied = balance

            paid = due.amount_paid + applied
            status = derive_due_status(due.amount_planned, paid, due.due_date, now)

            expense = ExpenseTransaction(
                user_id=user_id,
                account_id=account_id,
                amount=applied,
                currency=due.currency,
                title=due.title,
                due_id=due_id,
                created_at=now,
            )

            txn.update(Collections.ACCOUNTS, account_id, {"balance": stored_amount(balance - applied)})
            tx_id = txn.create(Collections.TRANSACTIONS, expense.to_document())
            payment = Payment(
                user_id=user_id,
                due_id=due_id,
                account_id=account_id,
                transaction_id=tx_id,
                amount=applied,
                created_at=now,
            )
            payment_id = txn.create(Collections.payments(due_id), payment.to_document())
            txn.update(Collections.BILL_DUES, due_id, {
                "amountPaid": stored_amount(paid),
                "status": status.value,
                "accountId": account_id,
            })

            return PaymentReceipt(
                due_id=due_id,
                account_id=account_id,
                transaction_id=tx_id,
                payment_id=payment_id,
                requested=requested,
                applied=applied,
                amount_paid=paid,
                status=status,
            )

        receipt = await self._transact("pay_due", user_id, _apply, due_id)
        await self._audit.log(AuditEventBuilder.due_payment_applied(
            user_id, due_id, account_id, receipt.requested, receipt.applied, receipt.status.value,
        ))
        return receipt

    async def list_payments(self, user_id: str, due_id: str) -> list[Payment]:
        """Payments made against a due, oldest first."""
        await self.get_due(user_id, due_id)
        snapshots = await self._store.query(
            DocumentQuery(collection=Collections.payments(due_id)).ordered("createdAt")
        )
        return [Payment.from_document(s.id, s.data) for s in snapshots]
