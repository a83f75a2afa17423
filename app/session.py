"""
Per-session UI state for the Streamlit app.

Streamlit reruns the script on every interaction, so anything that must
survive a rerun lives in st.session_state. This module owns the keys:
the signed-in session, theme preference, queued toasts and the selected
month. init_session_state() runs at the top of every rerun;
reset_session_state() runs on sign-out.
"""

from datetime import datetime, timezone
from typing import Literal, Optional

import streamlit as st

from fintrack.models import month_key
from fintrack.services.auth import AuthSession


ToastKind = Literal["success", "error", "info"]

_TOAST_ICONS = {"success": "✅", "error": "❌", "info": "ℹ️"}

_DEFAULTS = {
    "auth_session": None,
    "auth_view": "login",  # login, register, reset
    "theme": "light",
    "toasts": [],
    "selected_month": None,
}


def init_session_state() -> None:
    """Create every key this app reads, leaving existing values alone."""
    for key, value in _DEFAULTS.items():
        if key not in st.session_state:
            st.session_state[key] = list(value) if isinstance(value, list) else value
    if st.session_state.selected_month is None:
        st.session_state.selected_month = month_key(datetime.now(timezone.utc))


def reset_session_state() -> None:
    """Drop everything tied to the signed-in user. The theme survives."""
    theme = st.session_state.get("theme", _DEFAULTS["theme"])
    for key in list(st.session_state.keys()):
        del st.session_state[key]
    init_session_state()
    st.session_state.theme = theme


def current_user() -> Optional[AuthSession]:
    return st.session_state.get("auth_session")


def current_user_id() -> str:
    session = current_user()
    if session is None:
        raise RuntimeError("No signed-in user")
    return session.user_id


def queue_toast(message: str, kind: ToastKind = "success") -> None:
    """Show a toast after the next rerun (st.rerun discards anything drawn now)."""
    st.session_state.toasts.append((kind, message))


def flush_toasts() -> None:
    while st.session_state.toasts:
        kind, message = st.session_state.toasts.pop(0)
        st.toast(message, icon=_TOAST_ICONS[kind])


def toggle_theme() -> None:
    st.session_state.theme = "dark" if st.session_state.theme == "light" else "light"
