"""
pipeline/config.py
Settings resolution and pipeline constants for the invitation back-office.
"""

import os

import streamlit as st
from dotenv import load_dotenv

load_dotenv()


# ─── Upload limits ───────────────────────────────────────────────────────────

MAX_UPLOAD_BYTES    = 5 * 1024 * 1024
ACCEPTED_EXTENSIONS = (".xlsx", ".xls", ".csv")

# ─── Batch / invitation lifecycle ────────────────────────────────────────────

MAX_BATCH_SIZE  = 100
INVITE_TTL_DAYS = 7

# ─── Email retry ─────────────────────────────────────────────────────────────

EMAIL_MAX_ATTEMPTS    = 3
EMAIL_BACKOFF_SECONDS = 1.0     # attempt 1 → 1s, attempt 2 → 2s

# ─── Cosmetic progress curve ─────────────────────────────────────────────────

PROGRESS_INTERVAL_SECONDS = 0.5
PROGRESS_STEPS            = 20  # advance ceil(total / 20) per tick
PROGRESS_LINGER_SECONDS   = 1.0

# ─── Misc ────────────────────────────────────────────────────────────────────

ERROR_DISPLAY_LIMIT     = 10
REQUEST_TIMEOUT_SECONDS = 15


def get_secret(key: str, default: str | None = None) -> str | None:
    """
    Resolve a secret by name.

    Tries st.secrets first (Streamlit Cloud), then falls back to os.environ
    (local development via .env loaded above).  Returns default if the key is
    absent in both sources.
    """
    try:
        return st.secrets[key]
    except Exception:
        return os.environ.get(key, default)


def app_url() -> str:
    """Public base URL used to build invitation accept links."""
    return (get_secret("APP_URL") or "http://localhost:8501").rstrip("/")


def app_name() -> str:
    return get_secret("APP_NAME") or "StartupMatching"
