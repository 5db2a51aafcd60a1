"""
pipeline/mailer.py
Invitation email rendering and delivery through the transactional email
endpoint, with bounded retries.

send_with_retry() never raises: every outcome, including an exception on the
last attempt, comes back as a SendResult.  Resends are not de-duplicated;
an invitation that was already accepted can still be emailed again.
"""

import html
import logging
import time
from dataclasses import dataclass
from collections.abc import Callable, Mapping

import requests

from pipeline.config import (
    EMAIL_BACKOFF_SECONDS,
    EMAIL_MAX_ATTEMPTS,
    INVITE_TTL_DAYS,
    REQUEST_TIMEOUT_SECONDS,
    app_name,
    app_url,
    get_secret,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SendResult:
    ok: bool
    attempts: int
    reason: str | None = None

    def __bool__(self) -> bool:
        return self.ok


# ─── Rendering ───────────────────────────────────────────────────────────────

def build_invite_url(token: str) -> str:
    """Return the full accept URL for an invitation token."""
    return f"{app_url()}/login?invite={token}"


def invite_subject() -> str:
    return f"[{app_name()}] 초대가 도착했습니다"


def build_invite_email_html(
    name: str,
    email: str,
    invite_url: str,
    phone: str,
    organization_name: str = "",
) -> str:
    """
    Render the invitation email body.

    Every user-supplied value is HTML-escaped.  The phone digits double as the
    temporary password, so the body spells that out.
    """
    safe_name  = html.escape(name or "")
    safe_email = html.escape(email or "")
    safe_phone = html.escape(phone or "")
    safe_org   = html.escape(organization_name or "")
    safe_url   = html.escape(invite_url or "", quote=True)

    org_line = (
        f'<p style="font-size:16px;"><strong>{safe_org}</strong>에서 가입 초대를 보내드립니다.</p>'
        if safe_org else ""
    )

    return f"""<!DOCTYPE html>
<html>
<head><meta charset="utf-8"><title>초대장</title></head>
<body style="font-family:Arial,sans-serif; line-height:1.6; color:#333; max-width:600px; margin:0 auto; padding:20px;">
  <div style="background:#667eea; padding:30px; text-align:center; border-radius:10px 10px 0 0;">
    <h1 style="color:white; margin:0; font-size:24px;">초대가 도착했습니다!</h1>
  </div>
  <div style="background:white; padding:30px; border-radius:0 0 10px 10px;">
    <p style="font-size:16px;">안녕하세요, <strong>{safe_name}</strong>님!</p>
    {org_line}
    <p style="font-size:16px;">아래 링크를 클릭하여 가입을 완료해주세요.</p>
    <div style="background:#f8f9fa; padding:20px; border-radius:8px; border-left:4px solid #667eea;">
      <p style="margin:0 0 5px 0; font-size:13px; color:#666;">이메일 주소:</p>
      <p style="margin:0 0 10px 0; font-weight:bold;">{safe_email}</p>
      <p style="margin:0 0 5px 0; font-size:13px; color:#666;">임시 비밀번호:</p>
      <p style="margin:0; font-weight:bold;">{safe_phone}</p>
      <p style="margin:5px 0 0 0; font-size:12px; color:#999;">※ 등록하신 전화번호입니다 (하이픈 없이 숫자만 입력해주세요)</p>
    </div>
    <div style="text-align:center; margin:30px 0;">
      <a href="{safe_url}" style="display:inline-block; background:#667eea; color:white; padding:15px 30px; text-decoration:none; border-radius:5px; font-weight:bold;">가입하러 가기 →</a>
    </div>
    <p style="font-size:14px; color:#666;">또는 아래 링크를 복사하여 브라우저에 붙여넣으세요:<br>
      <a href="{safe_url}" style="color:#667eea; word-break:break-all;">{safe_url}</a></p>
    <p style="font-size:12px; color:#856404;">이 초대 링크는 <strong>{INVITE_TTL_DAYS}일 후 만료</strong>됩니다.</p>
    <p style="font-size:11px; color:#999; text-align:center;">이 이메일은 자동으로 발송되었습니다. 회신하지 마세요.</p>
  </div>
</body>
</html>
"""


def build_invite_message(invitation: Mapping) -> dict:
    """
    Build the {to, subject, html} payload for an invitation row.

    The row needs email, name, phone and either invite_url or token;
    organization_name is optional.
    """
    invite_url = invitation.get("invite_url") or build_invite_url(invitation["token"])
    return {
        "to": invitation["email"],
        "subject": invite_subject(),
        "html": build_invite_email_html(
            invitation.get("name") or "",
            invitation["email"],
            invite_url,
            invitation.get("phone") or "",
            invitation.get("organization_name") or "",
        ),
    }


# ─── Delivery ────────────────────────────────────────────────────────────────

def post_email(payload: dict) -> requests.Response:
    """POST one message to the transactional email endpoint."""
    url = get_secret("EMAIL_ENDPOINT_URL")
    if not url:
        raise RuntimeError("EMAIL_ENDPOINT_URL is not configured.")
    headers = {"Content-Type": "application/json"}
    secret = get_secret("INTERNAL_API_SECRET")
    if secret:
        headers["Authorization"] = f"Bearer {secret}"
    return requests.post(url, json=payload, headers=headers, timeout=REQUEST_TIMEOUT_SECONDS)


def send_with_retry(
    invitation: Mapping,
    max_attempts: int = EMAIL_MAX_ATTEMPTS,
    *,
    post: Callable[[dict], object] | None = None,
    sleep: Callable[[float], None] = time.sleep,
) -> SendResult:
    """
    Send an invitation email, retrying on failure.

    Any 2xx response is success.  A non-OK response or a raised exception
    triggers a retry after EMAIL_BACKOFF_SECONDS * attempt (1s, then 2s), up
    to max_attempts in total, strictly one attempt at a time.  Returns a
    SendResult whose reason describes the last failure.
    """
    post = post or post_email
    payload = build_invite_message(invitation)
    reason = None

    for attempt in range(1, max_attempts + 1):
        try:
            response = post(payload)
        except Exception as exc:
            reason = str(exc) or exc.__class__.__name__
            logger.warning(
                "Invite email to %s failed on attempt %d/%d: %s",
                payload["to"], attempt, max_attempts, reason,
            )
        else:
            if response.ok:
                return SendResult(ok=True, attempts=attempt)
            reason = f"HTTP {response.status_code}"
            logger.warning(
                "Invite email to %s rejected on attempt %d/%d: %s",
                payload["to"], attempt, max_attempts, reason,
            )

        if attempt < max_attempts:
            sleep(EMAIL_BACKOFF_SECONDS * attempt)

    logger.error("Giving up on invite email to %s after %d attempts", payload["to"], max_attempts)
    return SendResult(ok=False, attempts=max_attempts, reason=reason)
