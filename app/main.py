"""
Streamlit Frontend for Finance Tracker

Screens: sign-in, dashboard, money (institutions, accounts, transfers,
exchanges, income) and spending (recurring bills, monthly dues, payments).

DESIGN PRINCIPLES:
1. Every balance change goes through a ledger service
2. Errors are shown as they are raised, never retried silently
3. Forms confirm what happened with a toast after the rerun
4. Totals are always shown per currency
"""

import asyncio
from datetime import datetime, time, timezone
from decimal import Decimal

import streamlit as st
from pydantic import ValidationError

from fintrack.config import get_settings, validate_all_settings
from fintrack.ledger import LedgerError
from fintrack.models import (
    AMOUNT_TYPE_LABELS,
    INSTITUTION_KIND_LABELS,
    SUPPORTED_CURRENCIES,
    AmountType,
    DueStatus,
    InstitutionKind,
)
from fintrack.orchestrator import AppComponents, create_app_components
from fintrack.services.auth import AuthenticationError, AuthSession, FirebaseAuthService
from fintrack.services.storage import StorageError

from session import (
    current_user,
    current_user_id,
    flush_toasts,
    init_session_state,
    queue_toast,
    reset_session_state,
    toggle_theme,
)


# Page configuration
st.set_page_config(
    page_title="Finance Tracker",
    page_icon="💰",
    layout="wide",
    initial_sidebar_state="expanded",
)

_THEMES = {
    "light": {"background": "#ffffff", "card": "#f5f7fa", "text": "#2c3e50"},
    "dark": {"background": "#0e1117", "card": "#1c2230", "text": "#e6e6e6"},
}

_STATUS_BADGES = {
    DueStatus.PENDING: "🟡 Pending",
    DueStatus.PARTIAL: "🟠 Partial",
    DueStatus.PAID: "🟢 Paid",
    DueStatus.OVERDUE: "🔴 Overdue",
}


def apply_theme(theme: str) -> None:
    colors = _THEMES[theme]
    st.markdown(f"""
    <style>
        .stApp {{
            background-color: {colors["background"]};
            color: {colors["text"]};
        }}
        .stButton>button {{
            width: 100%;
            margin-top: 10px;
        }}
        .card {{
            padding: 16px;
            background-color: {colors["card"]};
            border-radius: 10px;
            margin: 8px 0;
        }}
        .big-number {{
            font-size: 1.8em;
            font-weight: bold;
        }}
    </style>
    """, unsafe_allow_html=True)


def run_async(coro):
    """Helper to run async functions in Streamlit."""
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


@st.cache_resource
def get_components() -> AppComponents:
    """Get or create application components (cached)."""
    return create_app_components(fallback_to_memory=True)


@st.cache_resource
def get_auth_service():
    """Firebase auth client, or None when Firebase isn't configured."""
    try:
        return FirebaseAuthService()
    except ValidationError:
        return None


def format_money(amount: Decimal, currency: str) -> str:
    return f"{amount:,.2f} {currency}"


def to_utc_datetime(day) -> datetime:
    return datetime.combine(day, time.min, tzinfo=timezone.utc)


def run_action(coro, success: str):
    """
    Run a service call, queue a toast and rerun on success.

    Ledger and validation errors are shown inline and the page stays as is.
    """
    try:
        result = run_async(coro)
    except (LedgerError, ValidationError, ValueError) as e:
        st.error(str(e))
        return None
    except StorageError as e:
        st.error(f"Storage unavailable: {e}")
        return None
    queue_toast(success)
    st.rerun()
    return result


def main():
    """Main application entry point."""
    init_session_state()
    apply_theme(st.session_state.theme)
    components = get_components()
    flush_toasts()

    if current_user() is None:
        render_auth_page(components)
        return

    # Sidebar navigation
    st.sidebar.title("💰 Finance Tracker")
    st.sidebar.caption(current_user().email)
    st.sidebar.markdown("---")

    page = st.sidebar.radio(
        "Navigate to:",
        ["📊 Dashboard", "🏦 Money", "🧾 Spending", "⚙️ Settings"],
        index=0,
    )

    st.sidebar.markdown("---")
    st.sidebar.button(
        "🌙 Dark mode" if st.session_state.theme == "light" else "☀️ Light mode",
        on_click=toggle_theme,
    )
    if st.sidebar.button("🚪 Sign out"):
        auth = get_auth_service()
        if auth is not None:
            auth.sign_out(current_user())
        reset_session_state()
        st.rerun()

    if components.backend == "memory":
        st.sidebar.warning("In-memory storage: data is lost on restart")

    # Route to appropriate page
    if page == "📊 Dashboard":
        render_dashboard_page(components)
    elif page == "🏦 Money":
        render_money_page(components)
    elif page == "🧾 Spending":
        render_spending_page(components)
    elif page == "⚙️ Settings":
        render_settings_page(components)


# =============================================================================
# AUTH
# =============================================================================

def render_auth_page(components: AppComponents):
    """Render sign-in, registration and password reset."""
    st.title("💰 Finance Tracker")
    auth = get_auth_service()

    if auth is None:
        st.info("Firebase Authentication is not configured.")
        if components.backend == "memory" and st.button("Continue in local mode", type="primary"):
            st.session_state.auth_session = AuthSession(user_id="local", email="local")
            st.rerun()
        return

    view = st.session_state.auth_view

    with st.form(f"auth_{view}"):
        email = st.text_input("Email")
        password = "" if view == "reset" else st.text_input("Password", type="password")
        labels = {"login": "Sign in", "register": "Create account", "reset": "Send reset link"}
        submitted = st.form_submit_button(labels[view], type="primary")

    if submitted:
        try:
            if view == "login":
                st.session_state.auth_session = auth.sign_in(email, password)
            elif view == "register":
                st.session_state.auth_session = auth.sign_up(email, password)
            else:
                auth.send_password_reset(email)
                queue_toast("Check your inbox for the reset link", "info")
                st.session_state.auth_view = "login"
            st.rerun()
        except AuthenticationError as e:
            st.error(str(e))

    col1, col2, col3 = st.columns(3)
    for col, target, label in (
        (col1, "login", "I have an account"),
        (col2, "register", "Create an account"),
        (col3, "reset", "Forgot password"),
    ):
        if target != view and col.button(label):
            st.session_state.auth_view = target
            st.rerun()


# =============================================================================
# DASHBOARD
# =============================================================================

def render_dashboard_page(components: AppComponents):
    """Render balances, institutions, recent activity and the month's dues."""
    st.title("📊 Dashboard")
    user_id = current_user_id()
    month = st.text_input("Month (YYYY-MM)", value=st.session_state.selected_month)

    try:
        snapshot = run_async(components.dashboard.snapshot(user_id, month))
    except LedgerError as e:
        st.error(str(e))
        return
    st.session_state.selected_month = month

    st.markdown("### Balances")
    if not snapshot.balances:
        st.info("No accounts yet. Add one on the Money page.")
    cols = st.columns(max(len(snapshot.balances), 1))
    for col, (currency, total) in zip(cols, snapshot.balances.items()):
        col.metric(currency, f"{total:,.2f}")

    st.markdown("### Institutions")
    for summary in snapshot.institutions:
        totals = " · ".join(format_money(v, c) for c, v in summary.per_currency.items()) or "No balance"
        st.markdown(f"""
        <div class="card">
            <strong>{summary.name}</strong> <small>({summary.kind_label}, {summary.account_count} accounts)</small>
            <p>{totals}</p>
        </div>
        """, unsafe_allow_html=True)

    st.markdown("### Recent transactions")
    if snapshot.recent_transactions:
        st.dataframe(
            [describe_transaction(t) for t in snapshot.recent_transactions],
            use_container_width=True,
            hide_index=True,
        )
    else:
        st.info("No transactions yet.")

    st.markdown(f"### Expenses for {snapshot.month}")
    summary = snapshot.month_summary
    for currency, totals in summary.totals.items():
        col1, col2, col3 = st.columns(3)
        col1.metric(f"Planned {currency}", f"{totals.planned:,.2f}")
        col2.metric(f"Paid {currency}", f"{totals.paid:,.2f}")
        col3.metric(f"Remaining {currency}", f"{totals.remaining:,.2f}")

    if summary.due_soon:
        st.warning(f"{len(summary.due_soon)} unpaid dues are due soon or overdue")

    col1, col2 = st.columns(2)
    with col1:
        st.markdown("**Unpaid**")
        for due in summary.unpaid:
            st.markdown(
                f"- {due.title}: {format_money(due.remaining, due.currency)} left, "
                f"due {due.due_date:%d %b} {_STATUS_BADGES[due.current_status()]}"
            )
    with col2:
        st.markdown("**Paid**")
        for due in summary.paid:
            st.markdown(f"- {due.title}: {format_money(due.amount_paid, due.currency)}")


def describe_transaction(tx) -> dict:
    row = {"Date": tx.created_at.strftime("%Y-%m-%d %H:%M"), "Type": tx.type}
    if tx.type == "fx":
        row["Amount"] = (
            f"{format_money(tx.sell_amount, tx.sell_currency)} → "
            f"{format_money(tx.buy_amount, tx.buy_currency)}"
        )
        row["Detail"] = f"rate {tx.rate}"
    else:
        row["Amount"] = format_money(tx.amount, tx.currency)
        row["Detail"] = getattr(tx, "title", None) or getattr(tx, "note", None) or ""
    return row


# =============================================================================
# MONEY
# =============================================================================

def render_money_page(components: AppComponents):
    """Render institutions, accounts and the ledger forms."""
    st.title("🏦 Money")
    user_id = current_user_id()
    entities = components.entities

    institutions = run_async(entities.list_institutions(user_id))
    accounts = run_async(entities.list_accounts(user_id))
    institution_names = {i.id: i.name for i in institutions}
    account_labels = {
        a.id: f"{institution_names.get(a.institution_id, '?')} / {a.name} ({format_money(a.balance, a.currency)})"
        for a in accounts
    }

    tab_entities, tab_transfer, tab_fx, tab_income = st.tabs(
        ["Institutions & accounts", "Transfer", "Exchange", "Income"]
    )

    with tab_entities:
        with st.expander("➕ New institution"):
            with st.form("new_institution", clear_on_submit=True):
                name = st.text_input("Name")
                kind = st.selectbox(
                    "Kind",
                    options=list(InstitutionKind),
                    format_func=lambda k: INSTITUTION_KIND_LABELS[k],
                )
                if st.form_submit_button("Create", type="primary"):
                    run_action(entities.create_institution(user_id, name, kind), "Institution created")

        if institutions:
            with st.expander("➕ New account"):
                with st.form("new_account", clear_on_submit=True):
                    institution_id = st.selectbox(
                        "Institution",
                        options=list(institution_names),
                        format_func=lambda i: institution_names[i],
                    )
                    name = st.text_input("Name")
                    currency = st.selectbox(
                        "Currency",
                        options=SUPPORTED_CURRENCIES,
                        index=SUPPORTED_CURRENCIES.index(get_settings().app.default_currency)
                        if get_settings().app.default_currency in SUPPORTED_CURRENCIES else 0,
                    )
                    opening = st.number_input("Opening balance", min_value=0.0, step=0.01)
                    if st.form_submit_button("Create", type="primary"):
                        run_action(
                            entities.create_account(
                                user_id, institution_id, name, currency, Decimal(str(opening))
                            ),
                            "Account created",
                        )

        for institution in institutions:
            st.markdown(f"#### {institution.name}  <small>{institution.kind_label}</small>", unsafe_allow_html=True)
            owned = [a for a in accounts if a.institution_id == institution.id]
            for account in owned:
                col1, col2 = st.columns([4, 1])
                col1.write(f"{account.name}: {format_money(account.balance, account.currency)}")
                if col2.button("Delete", key=f"del_acc_{account.id}"):
                    run_action(entities.delete_account(user_id, account.id), "Account deleted")
            if st.button(f"Delete {institution.name} and its accounts", key=f"del_inst_{institution.id}"):
                run_action(entities.delete_institution(user_id, institution.id), "Institution deleted")

    if len(accounts) < 1:
        return

    with tab_transfer:
        with st.form("transfer", clear_on_submit=True):
            from_id = st.selectbox("From", options=list(account_labels), format_func=account_labels.get)
            to_id = st.selectbox("To", options=list(account_labels), format_func=account_labels.get)
            amount = st.number_input("Amount", min_value=0.0, step=0.01)
            if st.form_submit_button("Transfer", type="primary"):
                run_action(
                    components.ledger.transfer(user_id, from_id, to_id, Decimal(str(amount))),
                    "Transfer completed",
                )

    with tab_fx:
        with st.form("exchange", clear_on_submit=True):
            from_id = st.selectbox("Sell from", options=list(account_labels), format_func=account_labels.get)
            to_id = st.selectbox("Buy into", options=list(account_labels), format_func=account_labels.get)
            sell = st.number_input("Sell amount", min_value=0.0, step=0.01)
            rate = st.number_input("Rate (units bought per unit sold)", min_value=0.0, step=0.0001, format="%.6f")
            if st.form_submit_button("Exchange", type="primary"):
                run_action(
                    components.ledger.exchange(
                        user_id, from_id, to_id, Decimal(str(sell)), Decimal(str(rate))
                    ),
                    "Exchange completed",
                )

    with tab_income:
        with st.form("income", clear_on_submit=True):
            account_id = st.selectbox("Account", options=list(account_labels), format_func=account_labels.get)
            amount = st.number_input("Amount", min_value=0.0, step=0.01)
            note = st.text_input("Note (optional)")
            if st.form_submit_button("Record income", type="primary"):
                run_action(
                    components.ledger.record_income(user_id, account_id, Decimal(str(amount)), note),
                    "Income recorded",
                )


# =============================================================================
# SPENDING
# =============================================================================

def render_spending_page(components: AppComponents):
    """Render recurring bills and the selected month's dues."""
    st.title("🧾 Spending")
    user_id = current_user_id()
    spending = components.spending

    accounts = run_async(components.entities.list_accounts(user_id))
    account_names = {a.id: f"{a.name} ({format_money(a.balance, a.currency)})" for a in accounts}

    tab_dues, tab_templates = st.tabs(["Monthly dues", "Recurring bills"])

    with tab_templates:
        render_templates(spending, user_id, account_names)

    with tab_dues:
        month = st.text_input("Month (YYYY-MM)", value=st.session_state.selected_month, key="dues_month")
        col1, col2 = st.columns(2)
        if col1.button("⚙️ Generate dues from recurring bills"):
            try:
                created = run_async(spending.generate_month_dues(user_id, month))
            except LedgerError as e:
                st.error(str(e))
            else:
                queue_toast(f"{created} dues created" if created else "Dues already up to date", "info")
                st.rerun()

        with col2.expander("➕ One-off due"):
            with st.form("one_off_due", clear_on_submit=True):
                title = st.text_input("Title")
                currency = st.selectbox("Currency", options=SUPPORTED_CURRENCIES)
                due_day = st.date_input("Due date")
                planned = st.number_input("Amount planned", min_value=0.0, step=0.01)
                if st.form_submit_button("Create", type="primary"):
                    run_action(
                        spending.create_one_off_due(
                            user_id, title, currency, to_utc_datetime(due_day), Decimal(str(planned))
                        ),
                        "Due created",
                    )

        try:
            dues = run_async(spending.list_dues_for_month(user_id, month))
        except LedgerError as e:
            st.error(str(e))
            return
        st.session_state.selected_month = month

        if not dues:
            st.info("No dues for this month. Generate them from your recurring bills.")

        for due in dues:
            status = due.current_status()
            with st.expander(
                f"{due.due_date:%d %b} · {due.title} · "
                f"{format_money(due.amount_paid, due.currency)} / {format_money(due.amount_planned, due.currency)} · "
                f"{_STATUS_BADGES[status]}"
            ):
                render_due(spending, user_id, due, accounts)


def render_due(spending, user_id: str, due, accounts):
    payable = {a.id: f"{a.name} ({format_money(a.balance, a.currency)})" for a in accounts if a.currency == due.currency}
    suggested = due.account_id or due.plan_account_id
    options = list(payable)

    col1, col2 = st.columns(2)
    with col1:
        with st.form(f"pay_{due.id}"):
            if not options:
                st.caption(f"No {due.currency} accounts. Exchange currencies first.")
            account_id = st.selectbox(
                "Pay from",
                options=options,
                index=options.index(suggested) if suggested in options else 0,
                format_func=payable.get,
            )
            amount = st.number_input(
                "Amount",
                min_value=0.0,
                value=float(due.remaining),
                step=0.01,
                key=f"amount_{due.id}",
            )
            if st.form_submit_button("💸 Pay", type="primary", disabled=not options):
                try:
                    receipt = run_async(spending.pay_due(user_id, due.id, account_id, Decimal(str(amount))))
                except LedgerError as e:
                    st.error(str(e))
                else:
                    message = f"Paid {format_money(receipt.applied, due.currency)}"
                    if receipt.was_clamped:
                        message += f" (requested {receipt.requested})"
                    queue_toast(message)
                    st.rerun()

    with col2:
        with st.form(f"plan_{due.id}"):
            planned = st.number_input(
                "Amount planned",
                min_value=0.0,
                value=float(due.amount_planned),
                step=0.01,
                key=f"planned_{due.id}",
            )
            if st.form_submit_button("Update plan"):
                run_action(spending.update_due_plan(user_id, due.id, Decimal(str(planned))), "Plan updated")

        payments = run_async(spending.list_payments(user_id, due.id))
        for payment in payments:
            st.caption(f"{payment.created_at:%Y-%m-%d} · {format_money(payment.amount, due.currency)}")

        if st.button("🗑️ Delete due", key=f"del_due_{due.id}"):
            run_action(spending.delete_due(user_id, due.id), "Due deleted")


def render_templates(spending, user_id: str, account_names: dict):
    with st.expander("➕ New recurring bill"):
        with st.form("new_template", clear_on_submit=True):
            title = st.text_input("Title")
            currency = st.selectbox("Currency", options=SUPPORTED_CURRENCIES)
            amount_type = st.selectbox(
                "Amount type",
                options=list(AmountType),
                format_func=lambda t: AMOUNT_TYPE_LABELS[t],
            )
            amount = st.number_input("Amount (fixed or estimate)", min_value=0.0, step=0.01)
            day = st.number_input("Day of month", min_value=1, max_value=31, value=1)
            default_account = st.selectbox(
                "Default account (optional)",
                options=[None] + list(account_names),
                format_func=lambda a: "None" if a is None else account_names[a],
            )
            notes = st.text_area("Notes (optional)")
            if st.form_submit_button("Create", type="primary"):
                run_action(
                    spending.create_recurring_bill(
                        user_id,
                        title,
                        currency,
                        amount_type,
                        amount=None if amount_type == AmountType.VARIABLE else Decimal(str(amount)),
                        day_of_month=int(day),
                        default_account_id=default_account,
                        notes=notes,
                    ),
                    "Recurring bill created",
                )

    for bill in run_async(spending.list_recurring_bills(user_id)):
        amount = format_money(bill.amount, bill.currency) if bill.amount is not None else "variable"
        col1, col2, col3 = st.columns([4, 1, 1])
        col1.write(
            f"**{bill.title}** · day {bill.day_of_month} · {amount} · "
            f"{AMOUNT_TYPE_LABELS[bill.amount_type]}{'' if bill.active else ' · paused'}"
        )
        if col2.button("Resume" if not bill.active else "Pause", key=f"toggle_{bill.id}"):
            run_action(
                spending.update_recurring_bill(user_id, bill.id, active=not bill.active),
                "Recurring bill updated",
            )
        if col3.button("Delete", key=f"del_bill_{bill.id}"):
            run_action(spending.delete_recurring_bill(user_id, bill.id), "Recurring bill deleted")


# =============================================================================
# SETTINGS
# =============================================================================

def render_settings_page(components: AppComponents):
    """Render the settings page."""
    st.title("⚙️ Settings")

    st.markdown("### Connection Status")

    status = validate_all_settings()

    services = [
        ("Firebase (Firestore and Authentication)", "firebase"),
        ("Application settings", "app"),
    ]

    for name, key in services:
        if status.get(key, False):
            st.success(f"✅ {name} - Configured")
        else:
            error = status.get(f"{key}_error", "Not configured")
            st.error(f"❌ {name} - {error}")

    st.markdown(f"**Storage backend in use:** {components.backend}")

    app_settings = get_settings().app
    st.markdown("### Payment policy")
    st.markdown(f"- Partial payments allowed: {'yes' if app_settings.allow_partial_payments else 'no'}")
    st.markdown(f"- Payments capped at planned amount: {'yes' if app_settings.cap_payments_at_planned else 'no'}")

    st.markdown("---")
    st.markdown("### Configuration")
    st.markdown(
        "To configure the application, create a `.env` file with your Firebase settings. "
        "See `.env.example` for the required variables."
    )


if __name__ == "__main__":
    main()
