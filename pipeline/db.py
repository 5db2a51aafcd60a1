"""
pipeline/db.py
Supabase connection helpers for the admin back-office.
All database access goes through this module.

WARNING: get_supabase_admin() returns a service-role client that bypasses
Row Level Security.  It is only used by the server-side invitation handler
(creating auth users, profiles and invitation rows) and must never be handed
to page code directly.
"""

import pandas as pd
import psycopg2
import streamlit as st
from psycopg2.extras import RealDictCursor
from supabase import Client, ClientOptions, create_client

from pipeline.config import get_secret


# ─── Supabase clients ────────────────────────────────────────────────────────

def get_supabase_client() -> Client:
    """
    Return a Supabase client authenticated with the anon key.

    Not cached: Auth state is per-session and must not bleed
    between Streamlit reruns or admins.
    """
    return create_client(get_secret("SUPABASE_URL"), get_secret("SUPABASE_ANON_KEY"))


# WARNING: the client returned below bypasses Row Level Security.

def get_supabase_admin() -> Client:
    """
    Return a Supabase client authenticated with the service-role key.

    Session persistence and token refresh are disabled; the client acts as
    the server, not as a signed-in user.  Raises RuntimeError when the
    service-role credentials are missing.
    """
    url = get_secret("SUPABASE_URL")
    key = get_secret("SUPABASE_SERVICE_ROLE_KEY")
    if not url or not key:
        raise RuntimeError("Missing Supabase environment variables")
    return create_client(
        url,
        key,
        options=ClientOptions(auto_refresh_token=False, persist_session=False),
    )


# ─── Direct psycopg2 connection ──────────────────────────────────────────────

def get_pg_connection():
    """
    Return a raw psycopg2 connection to Supabase PostgreSQL.

    sslmode is set to 'require' and connect_timeout to 15 seconds.
    The caller is responsible for closing the connection when finished.
    """
    return psycopg2.connect(
        host=get_secret("DB_HOST"),
        port=get_secret("DB_PORT"),
        dbname=get_secret("DB_NAME"),
        user=get_secret("DB_USER"),
        password=get_secret("DB_PASSWORD"),
        sslmode="require",
        connect_timeout=15,
    )


# ─── Cached query helper ─────────────────────────────────────────────────────

@st.cache_data(ttl=10, show_spinner=False)
def query_df(sql: str, params: tuple = ()) -> pd.DataFrame:
    """
    Execute a parameterised SELECT query and return results as a DataFrame.

    Opens and closes its own psycopg2 connection.  Results are cached for 10
    seconds so the invitation list stays responsive across reruns while a
    freshly sent batch still shows up quickly.  Returns an empty DataFrame
    (never None) when the query produces no rows.
    """
    conn = get_pg_connection()
    try:
        with conn.cursor(cursor_factory=RealDictCursor) as cur:
            cur.execute(sql, params)
            rows = cur.fetchall()
            if not rows:
                return pd.DataFrame()
            return pd.DataFrame(rows)
    finally:
        conn.close()


# ─── Uncached single-row read ────────────────────────────────────────────────

def fetch_one(sql: str, params: tuple = ()) -> dict | None:
    """
    Execute a parameterised SELECT and return the first row as a dict, or None.

    Not cached, so a row read straight after run_query() reflects the write.
    """
    conn = get_pg_connection()
    try:
        with conn.cursor(cursor_factory=RealDictCursor) as cur:
            cur.execute(sql, params)
            row = cur.fetchone()
            return dict(row) if row else None
    finally:
        conn.close()


# ─── Write query helper ──────────────────────────────────────────────────────

def run_query(sql: str, params: tuple = ()) -> int:
    """
    Execute a parameterised write query (INSERT, UPDATE, or DELETE) and commit.

    Opens and closes its own psycopg2 connection.  Not cached.  Raises any
    database exception to the caller.
    Returns the number of affected rows.
    """
    conn = get_pg_connection()
    try:
        with conn.cursor() as cur:
            cur.execute(sql, params)
            affected = cur.rowcount
        conn.commit()
        return affected
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()
