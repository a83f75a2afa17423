"""
Tests for the recurring-bill engine.

Covers template management, idempotent month generation, one-off dues
and the atomic pay_due path under both balance policies.
"""

import pytest
from datetime import datetime, timezone
from decimal import Decimal

from fintrack.ledger import (
    AccessDeniedError,
    AccountNotFoundError,
    AmountPrecisionError,
    CurrencyMismatchError,
    DueAlreadyPaidError,
    DueNotFoundError,
    InsufficientFundsError,
    InvalidAmountError,
    InvalidMonthError,
    LedgerValidationError,
    PlannedBelowPaidError,
    RecurringBillNotFoundError,
    SpendingService,
)
from fintrack.models import AmountType, DueStatus
from fintrack.services.storage import Collections

from conftest import NOW, OTHER_USER, USER, balance, fixed_clock, run


UTC = timezone.utc
MONTH = "2024-02"


@pytest.fixture
def rent(spending):
    """The Rent template: fixed 5000 ARS on the 31st."""
    return run(spending.create_recurring_bill(
        USER, "Rent", "ARS", AmountType.FIXED, amount=Decimal("5000"), day_of_month=31,
    ))


@pytest.fixture
def planned_due(spending):
    """A one-off 1000 ARS due on the 28th of February."""
    return run(spending.create_one_off_due(
        USER, "Internet", "ARS", datetime(2024, 2, 28, tzinfo=UTC), Decimal("1000"),
    ))


def snapshot(store, due_id, account_id):
    """Everything pay_due may touch, for before/after comparisons."""
    return (
        run(store.get(Collections.BILL_DUES, due_id)),
        run(store.get(Collections.ACCOUNTS, account_id)),
        store.dump(Collections.TRANSACTIONS),
        store.dump(Collections.payments(due_id)),
    )


class TestTemplates:
    """Recurring bill management."""

    def test_create_clamps_day(self, spending, rent):
        bill = run(spending.get_recurring_bill(USER, rent))
        assert bill.day_of_month == 28
        assert bill.amount == Decimal("5000")
        assert bill.active

    def test_list_orders_by_day(self, spending, rent):
        run(spending.create_recurring_bill(USER, "Gym", "ARS", "fixed", amount=10, day_of_month=5))
        run(spending.create_recurring_bill(OTHER_USER, "Theirs", "ARS", "fixed", amount=10))
        assert [b.title for b in run(spending.list_recurring_bills(USER))] == ["Gym", "Rent"]

    def test_update_revalidates(self, spending, rent):
        updated = run(spending.update_recurring_bill(USER, rent, day_of_month=40, amount="5500"))
        assert updated.day_of_month == 28
        stored = run(spending.get_recurring_bill(USER, rent))
        assert stored.amount == Decimal("5500")

    def test_update_clears_optional_fields(self, spending):
        bill_id = run(spending.create_recurring_bill(
            USER, "Power", "ARS", "estimate", amount=80, notes="meter 12", default_account_id="acc",
        ))
        run(spending.update_recurring_bill(USER, bill_id, notes="", default_account_id=None))
        stored = run(spending.get_recurring_bill(USER, bill_id))
        assert stored.notes is None
        assert stored.default_account_id is None

    def test_update_rejects_unknown_fields(self, spending, rent):
        with pytest.raises(LedgerValidationError):
            run(spending.update_recurring_bill(USER, rent, created_at=NOW))

    def test_other_users_cannot_touch_templates(self, spending, rent):
        with pytest.raises(AccessDeniedError):
            run(spending.update_recurring_bill(OTHER_USER, rent, title="Mine"))
        with pytest.raises(AccessDeniedError):
            run(spending.delete_recurring_bill(OTHER_USER, rent))

    def test_delete_keeps_generated_dues(self, spending, rent):
        """Test that historical dues survive template deletion."""
        run(spending.generate_month_dues(USER, MONTH))
        run(spending.delete_recurring_bill(USER, rent))

        with pytest.raises(RecurringBillNotFoundError):
            run(spending.get_recurring_bill(USER, rent))
        dues = run(spending.list_dues_for_month(USER, MONTH))
        assert [d.bill_id for d in dues] == [rent]


class TestGeneration:
    """Month-due generation."""

    def test_rent_on_31st_lands_on_28th_of_february(self, spending, rent):
        created = run(spending.generate_month_dues(USER, "2024-02"))

        assert created == 1
        (due,) = run(spending.list_dues_for_month(USER, "2024-02"))
        assert due.due_date == datetime(2024, 2, 28, tzinfo=UTC)
        assert due.amount_planned == Decimal("5000")
        assert due.amount_paid == Decimal("0")
        assert due.status == DueStatus.PENDING
        assert due.title == "Rent"
        assert due.currency == "ARS"

    def test_generation_is_idempotent(self, spending, rent, store):
        run(spending.create_recurring_bill(USER, "Gym", "ARS", "fixed", amount=10, day_of_month=5))

        assert run(spending.generate_month_dues(USER, MONTH)) == 2
        assert run(spending.generate_month_dues(USER, MONTH)) == 0
        assert len(store.dump(Collections.BILL_DUES)) == 2

    def test_each_month_gets_its_own_due(self, spending, rent):
        assert run(spending.generate_month_dues(USER, "2024-02")) == 1
        assert run(spending.generate_month_dues(USER, "2024-03")) == 1
        assert len(run(spending.list_dues_for_month(USER, "2024-03"))) == 1

    def test_inactive_templates_are_skipped(self, spending, rent):
        run(spending.update_recurring_bill(USER, rent, active=False))
        assert run(spending.generate_month_dues(USER, MONTH)) == 0

    def test_variable_bills_start_at_zero(self, spending):
        run(spending.create_recurring_bill(USER, "Card", "ARS", "variable", amount=999, day_of_month=20))
        run(spending.generate_month_dues(USER, MONTH))
        (due,) = run(spending.list_dues_for_month(USER, MONTH))
        assert due.amount_planned == Decimal("0")

    def test_default_account_is_suggested(self, spending, make_account):
        account_id = make_account("Savings")
        run(spending.create_recurring_bill(
            USER, "Rent", "ARS", "fixed", amount=1, day_of_month=10, default_account_id=account_id,
        ))
        run(spending.generate_month_dues(USER, MONTH))
        (due,) = run(spending.list_dues_for_month(USER, MONTH))
        assert due.plan_account_id == account_id
        assert due.account_id is None

    def test_past_month_dues_are_overdue(self, spending, rent):
        run(spending.generate_month_dues(USER, "2024-01"))
        (due,) = run(spending.list_dues_for_month(USER, "2024-01"))
        assert due.status == DueStatus.OVERDUE

    def test_only_own_templates_are_used(self, spending, rent):
        assert run(spending.generate_month_dues(OTHER_USER, MONTH)) == 0

    def test_invalid_month(self, spending):
        with pytest.raises(InvalidMonthError):
            run(spending.generate_month_dues(USER, "2024-13"))
        with pytest.raises(InvalidMonthError):
            run(spending.list_dues_for_month(USER, "Feb"))


class TestOneOffDues:
    """Dues entered without a template."""

    def test_create_and_list(self, spending, planned_due):
        (due,) = run(spending.list_dues_for_month(USER, MONTH))
        assert due.id == planned_due
        assert due.bill_id is None
        assert due.amount_planned == Decimal("1000")

    def test_title_is_required(self, spending):
        with pytest.raises(LedgerValidationError):
            run(spending.create_one_off_due(USER, "  ", "ARS", NOW, Decimal("1")))

    def test_negative_plan_is_rejected(self, spending):
        with pytest.raises(InvalidAmountError):
            run(spending.create_one_off_due(USER, "Fee", "ARS", NOW, Decimal("-1")))

    def test_delete(self, spending, planned_due):
        run(spending.delete_due(USER, planned_due))
        with pytest.raises(DueNotFoundError):
            run(spending.get_due(USER, planned_due))

    def test_other_users_cannot_delete(self, spending, planned_due):
        with pytest.raises(AccessDeniedError):
            run(spending.delete_due(OTHER_USER, planned_due))

    def test_subscription_by_month(self, spending, planned_due):
        seen = []
        sub = spending.subscribe_dues_for_month(USER, MONTH, lambda dues: seen.append([d.title for d in dues]))
        run(spending.create_one_off_due(USER, "Phone", "ARS", datetime(2024, 2, 20, tzinfo=UTC), 10))
        run(spending.create_one_off_due(USER, "Next month", "ARS", datetime(2024, 3, 1, tzinfo=UTC), 10))
        sub.unsubscribe()
        assert seen[0] == ["Internet"]
        assert seen[-1] == ["Phone", "Internet"]

    def test_subscription_rejects_bad_month(self, spending):
        with pytest.raises(InvalidMonthError):
            spending.subscribe_dues_for_month(USER, "2024-2", lambda dues: None)


class TestPayDue:
    """Atomic due payments."""

    def test_payment_effects(self, spending, entities, planned_due, make_account, store):
        account_id = make_account("Savings", "ARS", 5000)

        receipt = run(spending.pay_due(USER, planned_due, account_id, Decimal("400")))

        assert receipt.applied == Decimal("400")
        assert receipt.amount_paid == Decimal("400")
        assert receipt.status == DueStatus.PARTIAL
        assert not receipt.was_clamped
        assert balance(entities, account_id) == Decimal("4600")

        due = run(spending.get_due(USER, planned_due))
        assert due.amount_paid == Decimal("400")
        assert due.status == DueStatus.PARTIAL
        assert due.account_id == account_id

        expense = store.dump(Collections.TRANSACTIONS)[receipt.transaction_id]
        assert expense["type"] == "expense"
        assert expense["amount"] == 400
        assert expense["dueId"] == planned_due
        assert expense["accountId"] == account_id

    def test_successive_payments_reconcile(self, spending, entities, planned_due, make_account):
        """Test that amount_paid only grows and equals the sum of payments and debits."""
        account_id = make_account("Savings", "ARS", 5000)
        paid_so_far = []
        for amount in ("100", "250", "650"):
            before = balance(entities, account_id)
            receipt = run(spending.pay_due(USER, planned_due, account_id, Decimal(amount)))
            assert before - balance(entities, account_id) == receipt.applied
            paid_so_far.append(receipt.amount_paid)

        assert paid_so_far == sorted(paid_so_far)
        assert receipt.status == DueStatus.PAID

        payments = run(spending.list_payments(USER, planned_due))
        assert [p.amount for p in payments] == [Decimal("100"), Decimal("250"), Decimal("650")]
        assert sum(p.amount for p in payments) == run(spending.get_due(USER, planned_due)).amount_paid

    def test_overpayment_is_capped_at_remaining(self, spending, entities, planned_due, make_account):
        account_id = make_account("Savings", "ARS", 5000)

        receipt = run(spending.pay_due(USER, planned_due, account_id, Decimal("1500")))

        assert receipt.requested == Decimal("1500")
        assert receipt.applied == Decimal("1000")
        assert receipt.was_clamped
        assert receipt.status == DueStatus.PAID
        assert balance(entities, account_id) == Decimal("4000")

    def test_paying_a_paid_due_changes_nothing(self, spending, planned_due, make_account, store):
        account_id = make_account("Savings", "ARS", 5000)
        run(spending.pay_due(USER, planned_due, account_id, Decimal("1000")))
        before = snapshot(store, planned_due, account_id)

        with pytest.raises(DueAlreadyPaidError):
            run(spending.pay_due(USER, planned_due, account_id, Decimal("1")))
        assert snapshot(store, planned_due, account_id) == before

    def test_partial_policy_clamps_to_balance(self, spending, entities, planned_due, make_account):
        account_id = make_account("Savings", "ARS", 300)

        receipt = run(spending.pay_due(USER, planned_due, account_id, Decimal("1000")))

        assert receipt.applied == Decimal("300")
        assert receipt.status == DueStatus.PARTIAL
        assert balance(entities, account_id) == Decimal("0")

        with pytest.raises(InsufficientFundsError):
            run(spending.pay_due(USER, planned_due, account_id, Decimal("1")))

    def test_strict_policy_rejects_insufficient_balance(self, store, audit_logger, planned_due, make_account):
        strict = SpendingService(store, audit_logger, clock=fixed_clock, allow_partial_payments=False)
        account_id = make_account("Savings", "ARS", 300)
        before = snapshot(store, planned_due, account_id)

        with pytest.raises(InsufficientFundsError):
            run(strict.pay_due(USER, planned_due, account_id, Decimal("1000")))
        assert snapshot(store, planned_due, account_id) == before

    def test_uncapped_policy_allows_overpayment(self, store, audit_logger, planned_due, make_account):
        uncapped = SpendingService(store, audit_logger, clock=fixed_clock, cap_payments_at_planned=False)
        account_id = make_account("Savings", "ARS", 5000)

        receipt = run(uncapped.pay_due(USER, planned_due, account_id, Decimal("1500")))

        assert receipt.applied == Decimal("1500")
        assert receipt.amount_paid == Decimal("1500")
        assert receipt.status == DueStatus.PAID

    def test_plan_cannot_drop_below_paid(self, spending, planned_due, make_account, store):
        account_id = make_account("Savings", "ARS", 5000)
        run(spending.pay_due(USER, planned_due, account_id, Decimal("800")))
        before = snapshot(store, planned_due, account_id)

        with pytest.raises(PlannedBelowPaidError):
            run(spending.update_due_plan(USER, planned_due, Decimal("100")))
        assert snapshot(store, planned_due, account_id) == before

        due = run(spending.get_due(USER, planned_due))
        assert due.amount_paid <= due.amount_planned

        updated = run(spending.update_due_plan(USER, planned_due, Decimal("800")))
        assert updated.status == DueStatus.PAID

    def test_uncapped_policy_allows_plan_below_paid(self, store, audit_logger, planned_due, make_account):
        uncapped = SpendingService(store, audit_logger, clock=fixed_clock, cap_payments_at_planned=False)
        account_id = make_account("Savings", "ARS", 5000)
        run(uncapped.pay_due(USER, planned_due, account_id, Decimal("800")))

        updated = run(uncapped.update_due_plan(USER, planned_due, Decimal("100")))
        assert updated.amount_planned == Decimal("100")
        assert updated.status == DueStatus.PAID

    def test_tiny_debit_from_huge_balance_is_rejected(self, spending, entities, planned_due, make_account, store):
        """A tiny payment from a huge balance would round away in the stored number."""
        account_id = make_account("Savings", "ARS", "12345678901234.5")
        before = snapshot(store, planned_due, account_id)

        with pytest.raises(AmountPrecisionError):
            run(spending.pay_due(USER, planned_due, account_id, Decimal("0.0001")))
        assert snapshot(store, planned_due, account_id) == before
        assert balance(entities, account_id) == Decimal("12345678901234.5")

    def test_currency_mismatch_changes_nothing(self, spending, planned_due, make_account, store):
        account_id = make_account("Dollars", "USD", 5000)
        before = snapshot(store, planned_due, account_id)

        with pytest.raises(CurrencyMismatchError):
            run(spending.pay_due(USER, planned_due, account_id, Decimal("10")))
        assert snapshot(store, planned_due, account_id) == before

    def test_variable_due_is_not_capped(self, spending, planned_due, make_account):
        run(spending.create_recurring_bill(USER, "Card", "ARS", "variable", day_of_month=20))
        run(spending.generate_month_dues(USER, MONTH))
        due = next(d for d in run(spending.list_dues_for_month(USER, MONTH)) if d.title == "Card")
        account_id = make_account("Savings", "ARS", 5000)

        receipt = run(spending.pay_due(USER, due.id, account_id, Decimal("50")))
        assert receipt.applied == Decimal("50")
        assert receipt.status == DueStatus.PARTIAL

        updated = run(spending.update_due_plan(USER, due.id, Decimal("50")))
        assert updated.status == DueStatus.PAID
        assert run(spending.get_due(USER, due.id)).status == DueStatus.PAID

    def test_payment_against_overdue_due(self, spending, rent, make_account):
        run(spending.generate_month_dues(USER, "2024-01"))
        (due,) = run(spending.list_dues_for_month(USER, "2024-01"))
        account_id = make_account("Savings", "ARS", 10000)

        receipt = run(spending.pay_due(USER, due.id, account_id, Decimal("100")))
        assert receipt.status == DueStatus.OVERDUE

        receipt = run(spending.pay_due(USER, due.id, account_id, Decimal("4900")))
        assert receipt.status == DueStatus.PAID

    @pytest.mark.parametrize("amount", [Decimal("0"), Decimal("-1"), None])
    def test_invalid_amount(self, spending, planned_due, make_account, amount):
        account_id = make_account("Savings", "ARS", 5000)
        with pytest.raises(InvalidAmountError):
            run(spending.pay_due(USER, planned_due, account_id, amount))

    def test_missing_documents(self, spending, planned_due, make_account):
        account_id = make_account("Savings", "ARS", 5000)
        with pytest.raises(DueNotFoundError):
            run(spending.pay_due(USER, "ghost", account_id, Decimal("1")))
        with pytest.raises(AccountNotFoundError):
            run(spending.pay_due(USER, planned_due, "ghost", Decimal("1")))

    def test_missing_account_is_reported_before_ownership(self, spending, planned_due):
        with pytest.raises(AccountNotFoundError):
            run(spending.pay_due(OTHER_USER, planned_due, "ghost", Decimal("1")))

    def test_foreign_due_or_account_is_denied(self, spending, entities, planned_due, make_account):
        account_id = make_account("Savings", "ARS", 5000)
        with pytest.raises(AccessDeniedError):
            run(spending.pay_due(OTHER_USER, planned_due, account_id, Decimal("1")))

        theirs = run(entities.create_institution(OTHER_USER, "Theirs", "cash"))
        foreign_account = run(entities.create_account(OTHER_USER, theirs, "Cash", "ARS", Decimal("100")))
        with pytest.raises(AccessDeniedError):
            run(spending.pay_due(USER, planned_due, foreign_account, Decimal("1")))

    def test_payments_are_audited(self, spending, planned_due, make_account, store):
        account_id = make_account("Savings", "ARS", 5000)
        run(spending.pay_due(USER, planned_due, account_id, Decimal("1500")))

        (event,) = [
            e for e in store.dump(Collections.AUDIT_EVENTS).values()
            if e["eventType"] == "due_payment_applied"
        ]
        assert event["entityId"] == planned_due
        assert event["details"]["requested"] == 1500
        assert event["details"]["applied"] == 1000
