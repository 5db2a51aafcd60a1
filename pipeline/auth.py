"""
pipeline/auth.py
Session management and admin guards for the back-office.
Wraps Supabase Auth so the rest of the app never calls it directly.

Pipeline functions never read st.session_state themselves: pages build an
AdminContext here and pass it in explicitly.
"""

from dataclasses import dataclass

import streamlit as st

from pipeline.db import get_supabase_client, query_df


@dataclass(frozen=True)
class AdminContext:
    """The acting administrator, handed to every server-side handler."""

    user_id: str
    email: str | None = None


# ─── Session accessors ────────────────────────────────────────────────────────

def get_current_user():
    """
    Return the current authenticated Supabase user from session state.

    Returns None if no active session exists.
    """
    return st.session_state.get("user", None)


def get_current_user_id() -> str | None:
    """Return the current user's UUID string, or None if not authenticated."""
    user = get_current_user()
    return getattr(user, "id", None) if user is not None else None


def is_authenticated() -> bool:
    """Return True if a user session is currently active."""
    return get_current_user() is not None


# ─── Admin checks ─────────────────────────────────────────────────────────────

@st.cache_data(ttl=30, show_spinner=False)
def is_admin(user_id: str) -> bool:
    """
    Return True if the user's row in `users` grants admin access.

    Either is_admin = TRUE or role = 'admin' qualifies.  Accepts user_id as an
    explicit parameter so st.cache_data can key on it.
    """
    if user_id is None:
        return False
    df = query_df(
        "SELECT is_admin, role FROM users WHERE id = %s",
        (user_id,),
    )
    if df.empty:
        return False
    row = df.iloc[0]
    return bool(row.get("is_admin")) or row.get("role") == "admin"


# ─── Guards ───────────────────────────────────────────────────────────────────

def require_auth() -> None:
    """
    Redirect to the login page when no session is active.

    Streamlit stops rendering the rest of the page after switch_page.
    """
    if not is_authenticated():
        st.switch_page("pages/login.py")


def require_admin() -> AdminContext:
    """
    Guard for admin-only pages; returns the AdminContext for the session.

    Unauthenticated visitors are sent to the login page.  Signed-in users
    without admin rights see an error and the page stops.
    """
    require_auth()
    user_id = get_current_user_id()
    if not is_admin(user_id):
        st.error("Forbidden: Admin access required")
        st.stop()
    return AdminContext(user_id=user_id, email=getattr(get_current_user(), "email", None))


# ─── Session teardown ─────────────────────────────────────────────────────────

def logout() -> None:
    """
    Sign the current user out and redirect to the login page.

    The local session is always cleared, even if Supabase sign_out fails.
    """
    st.session_state.pop("user", None)
    st.session_state.pop("session", None)
    try:
        get_supabase_client().auth.sign_out()
    except Exception:
        pass
    st.switch_page("pages/login.py")
