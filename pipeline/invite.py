"""
pipeline/invite.py
Server side of bulk invitations: account creation, invitation rows, invite
emails, listing, token resolution, acceptance and resend.

Entry points:
  handle_bulk_invite_request(payload, context) -> (status_code, body)
    Same contract as the remote bulk-invite endpoint; usable as a sender
    for pipeline.dispatch.dispatch().
  process_bulk_invite(users, context) -> dict
    Creates one invited account per user and returns {success, failed,
    errors, message}.  A failure for one user never stops the batch.
"""

import logging
import secrets
from collections.abc import Callable, Mapping
from datetime import datetime, timedelta, timezone

import pandas as pd

from pipeline.auth import AdminContext
from pipeline.config import INVITE_TTL_DAYS, MAX_BATCH_SIZE
from pipeline.db import fetch_one, get_supabase_admin, query_df, run_query
from pipeline.errors import BatchTooLarge, InviteError
from pipeline.mailer import SendResult, build_invite_url, send_with_retry
from pipeline.models import ROLE_ORGANIZATION
from pipeline.validation import normalize_phone

logger = logging.getLogger(__name__)

INVITATION_STATUSES = ("pending", "accepted", "expired")

# Number of successful emails recorded in the batch audit log entry.
_LOGGED_EMAILS = 10


# ─── Private helpers ─────────────────────────────────────────────────────────

def _clean(value) -> str:
    return "" if value is None else str(value).strip()


def _existing_user_emails(admin) -> set[str]:
    """Return every lowercased email already registered in Supabase Auth."""
    emails: set[str] = set()
    page = 1
    per_page = 1000
    while True:
        users = admin.auth.admin.list_users(page=page, per_page=per_page) or []
        for user in users:
            email = getattr(user, "email", None)
            if email:
                emails.add(email.lower())
        if len(users) < per_page:
            return emails
        page += 1


def _create_invited_user(admin, user: Mapping, context: AdminContext, now: datetime) -> dict:
    """
    Create the auth user, its users/profile rows and the invitation row.

    Returns the invitation dict used to render the email.  Raises on any
    failure that should count the user as failed; a failed invitation-row
    insert is logged but does not fail the user.
    """
    email = _clean(user.get("email")).lower()
    name = _clean(user.get("name"))
    phone = normalize_phone(user.get("phone"))
    role = _clean(user.get("role")).lower()
    organization_name = _clean(user.get("organization_name")) or None
    position = _clean(user.get("position")) or None

    response = admin.auth.admin.create_user({
        "email": email,
        "password": phone,
        "email_confirm": True,
        "user_metadata": {
            "role": role,
            "name": name,
            "phone": phone,
            "organization_name": organization_name,
            "position": position,
            "invited": True,
            "invited_by": context.user_id,
        },
    })
    auth_user = getattr(response, "user", None)
    if auth_user is None:
        raise InviteError("Failed to create user")
    user_id = auth_user.id

    admin.table("users").upsert(
        {"id": user_id, "email": email, "role": role, "phone": phone},
        on_conflict="id",
    ).execute()

    if role == ROLE_ORGANIZATION:
        admin.table("organization_profiles").upsert(
            {
                "user_id": user_id,
                "organization_name": organization_name or "",
                "representative_name": name,
                "contact_position": position,
                "is_profile_complete": False,
            },
            on_conflict="user_id",
        ).execute()
    else:
        admin.table("expert_profiles").upsert(
            {"user_id": user_id, "name": name, "is_profile_complete": False},
            on_conflict="user_id",
        ).execute()

    invitation = {
        "email": email,
        "name": name,
        "phone": phone,
        "role": role,
        "organization_name": organization_name,
        "position": position,
        "invited_by": context.user_id,
        "token": secrets.token_hex(32),
        "expires_at": (now + timedelta(days=INVITE_TTL_DAYS)).isoformat(),
        "status": "pending",
    }
    try:
        admin.table("user_invitations").insert(invitation).execute()
    except Exception as exc:
        logger.warning("Failed to create invitation record for %s: %s", email, exc)

    return invitation


def _log_batch(admin, context: AdminContext, total: int, results: dict, sent_emails: list[str]) -> None:
    """Write one admin_logs row summarising the batch."""
    try:
        admin.table("admin_logs").insert({
            "admin_id": context.user_id,
            "action": "BULK_INVITE",
            "entity_type": "batch",
            "entity_id": None,
            "details": {
                "total": total,
                "success": results["success"],
                "failed": results["failed"],
                "success_emails": sent_emails[:_LOGGED_EMAILS],
                "error_count": len(results["errors"]),
            },
        }).execute()
    except Exception as exc:
        logger.error("Failed to write BULK_INVITE admin log: %s", exc, exc_info=True)


# ─── Bulk invitation ─────────────────────────────────────────────────────────

def process_bulk_invite(
    users: list,
    context: AdminContext,
    *,
    admin=None,
    send_email: Callable[[Mapping], SendResult] = send_with_retry,
    now: datetime | None = None,
) -> dict:
    """
    Invite every user in the batch and return the aggregate result.

    Raises InviteError for a missing or empty users list and BatchTooLarge
    above MAX_BATCH_SIZE.  Per user: missing required fields or an already
    registered email count as failed; otherwise an auth account (password =
    phone digits, email pre-confirmed), profile row and invitation row are
    created and the invite email is sent with retries.  An undelivered email
    is logged but the invitation still counts as a success.
    """
    if not isinstance(users, list) or not users:
        raise InviteError("Invalid request: users array is required")
    if len(users) > MAX_BATCH_SIZE:
        raise BatchTooLarge()

    admin = admin or get_supabase_admin()
    now = now or datetime.now(timezone.utc)
    results = {"success": 0, "failed": 0, "errors": []}
    sent_emails: list[str] = []
    existing = _existing_user_emails(admin)

    for user in users:
        raw_email = _clean(user.get("email")) if isinstance(user, Mapping) else ""
        try:
            if not isinstance(user, Mapping) or not all(
                _clean(user.get(key)) for key in ("email", "name", "phone", "role")
            ):
                results["failed"] += 1
                results["errors"].append(
                    {"email": raw_email or "unknown", "error": "Missing required fields"}
                )
                continue

            if raw_email.lower() in existing:
                results["failed"] += 1
                results["errors"].append({"email": raw_email, "error": "User already exists"})
                continue

            invitation = _create_invited_user(admin, user, context, now)
            existing.add(invitation["email"])

            delivery = send_email(invitation)
            if not delivery:
                logger.warning(
                    "Invite email to %s not delivered after %d attempts: %s",
                    invitation["email"], delivery.attempts, delivery.reason,
                )

            results["success"] += 1
            sent_emails.append(invitation["email"])
        except Exception as exc:
            logger.error("Bulk invite failed for %s: %s", raw_email or "unknown", exc, exc_info=True)
            results["failed"] += 1
            results["errors"].append(
                {"email": raw_email or "unknown", "error": str(exc) or "Unknown error"}
            )

    if results["success"] or results["failed"]:
        _log_batch(admin, context, len(users), results, sent_emails)

    results["message"] = f"{results['success']}명 초대 완료, {results['failed']}명 실패"
    return results


def handle_bulk_invite_request(payload: Mapping, context: AdminContext, **kwargs) -> tuple[int, dict]:
    """
    Serve a bulk-invite request body {"users": [...]} in-process.

    Returns (status_code, body) exactly like the HTTP endpoint: 200 with the
    aggregate counts, 400 for a malformed or oversized batch, 500 for a
    server configuration problem or any unexpected error.
    """
    try:
        admin = kwargs.pop("admin", None) or get_supabase_admin()
    except RuntimeError as exc:
        logger.error("Bulk invite configuration error: %s", exc)
        return 500, {"error": "Server configuration error. Please contact administrator."}

    try:
        return 200, process_bulk_invite(
            (payload or {}).get("users"), context, admin=admin, **kwargs
        )
    except InviteError as exc:
        return 400, {"error": exc.message}
    except Exception as exc:
        logger.error("Error in bulk invite handler: %s", exc, exc_info=True)
        return 500, {"error": str(exc) or "Internal server error"}


# ─── Listing and status ──────────────────────────────────────────────────────

def invitation_status(invitation: Mapping, now: datetime | None = None) -> str:
    """
    Return the display status of an invitation row.

    'accepted' wins; an explicit 'expired' status or a past expires_at gives
    'expired'; everything else is 'pending'.
    """
    status = invitation.get("status")
    if status == "accepted":
        return "accepted"
    if status == "expired":
        return "expired"
    expires_at = pd.to_datetime(invitation.get("expires_at"), utc=True, errors="coerce")
    now = now or datetime.now(timezone.utc)
    if pd.notna(expires_at) and expires_at < pd.Timestamp(now):
        return "expired"
    return "pending"


def list_invitations(
    status: str = "all",
    search: str | None = None,
    page: int = 1,
    limit: int = 20,
) -> tuple[pd.DataFrame, dict]:
    """
    Return one page of invitations, newest first, and pagination info.

    status filters on the stored status unless it is 'all'.  search matches
    email or name case-insensitively.  The pagination dict holds page, limit,
    total and total_pages.
    """
    page = max(1, int(page))
    limit = max(1, int(limit))

    conditions = []
    params: list = []
    if status and status != "all":
        conditions.append("i.status = %s")
        params.append(status)
    term = (search or "").strip()
    if term:
        conditions.append("(i.email ILIKE %s OR i.name ILIKE %s)")
        params.extend([f"%{term}%", f"%{term}%"])
    where = f"WHERE {' AND '.join(conditions)}" if conditions else ""

    sql = f"""
        SELECT  i.id, i.email, i.name, i.phone, i.role,
                i.organization_name, i.position, i.token, i.status,
                i.expires_at, i.accepted_at, i.created_at,
                u.email            AS invited_by_email,
                COUNT(*) OVER ()   AS total_count
        FROM    user_invitations i
        LEFT JOIN users u ON u.id = i.invited_by
        {where}
        ORDER BY i.created_at DESC
        LIMIT %s OFFSET %s
    """
    params.extend([limit, (page - 1) * limit])
    df = query_df(sql, tuple(params))

    total = int(df.iloc[0]["total_count"]) if not df.empty else 0
    if not df.empty:
        df = df.drop(columns=["total_count"])
    pagination = {
        "page": page,
        "limit": limit,
        "total": total,
        "total_pages": -(-total // limit),
    }
    return df, pagination


# ─── Token resolution and acceptance ─────────────────────────────────────────

def _find_by_token(token: str) -> dict | None:
    return fetch_one(
        """
        SELECT *
        FROM user_invitations
        WHERE token = %s
        """,
        (token,),
    )


def resolve_invitation(token: str) -> dict | None:
    """
    Look up a pending, unexpired invitation by token.

    Returns the user_invitations row dict, or None if the token is unknown,
    already accepted or expired.
    """
    if not token:
        return None
    invitation = _find_by_token(token)
    if invitation is None or invitation_status(invitation) != "pending":
        return None
    return invitation


def belongs_to(invitation: Mapping, email: str | None) -> bool:
    """True when email is the invited address, compared case-insensitively."""
    invited = str(invitation.get("email") or "").strip().lower()
    return bool(invited) and invited == str(email or "").strip().lower()


def accept_invitation(token: str, email: str | None) -> bool:
    """
    Mark an invitation as accepted on behalf of the signed-in account `email`.

    Returns True when the invitation is (or already was) accepted, and False
    for an unknown or expired token, an account other than the invited one,
    or any processing error.
    """
    try:
        invitation = _find_by_token(token) if token else None
        if invitation is None:
            return False
        if not belongs_to(invitation, email):
            logger.warning(
                "Invitation for %s cannot be accepted by %s", invitation.get("email"), email
            )
            return False

        status = invitation_status(invitation)
        if status == "accepted":
            return True
        if status == "expired":
            return False

        run_query(
            """
            UPDATE user_invitations
            SET status = 'accepted', accepted_at = NOW()
            WHERE token = %s AND status = 'pending'
            """,
            (token,),
        )
        return True
    except Exception as exc:
        logger.error("accept_invitation failed: %s", exc, exc_info=True)
        return False


# ─── Resend ──────────────────────────────────────────────────────────────────

def resend_invitation(
    invitation: Mapping,
    send_email: Callable[[Mapping], SendResult] = send_with_retry,
) -> SendResult:
    """
    Email an existing invitation again.

    Does not check whether the invitation was already accepted.
    """
    return send_email({
        "email": invitation["email"],
        "name": invitation.get("name"),
        "phone": invitation.get("phone"),
        "organization_name": invitation.get("organization_name"),
        "invite_url": build_invite_url(invitation["token"]),
    })
