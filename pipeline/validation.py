"""
pipeline/validation.py
Row validator for invitation candidates.

validate() is a pure function: no I/O, no mutation of its input, and the
same (candidate, row_number) pair always produces the same result.  It never
raises; every problem is reported in the returned ValidationResult.
"""

import re
from collections.abc import Mapping

from pipeline.config import ERROR_DISPLAY_LIMIT
from pipeline.models import ROLE_ORGANIZATION, ROLES, ValidationResult

EMAIL_PATTERN = re.compile(r"[^\s@]+@[^\s@]+\.[^\s@]+")
# Korean mobile numbers: 11 digits starting with 01.
PHONE_PATTERN = re.compile(r"01[0-9]{9}")
_NON_DIGITS   = re.compile(r"[^0-9]")

INVALID_EMAIL    = "INVALID_EMAIL"
MISSING_NAME     = "MISSING_NAME"
INVALID_PHONE    = "INVALID_PHONE"
INVALID_ROLE     = "INVALID_ROLE"
MISSING_ORG_NAME = "MISSING_ORG_NAME"

_NOT_ENTERED = "입력되지 않음"


def _text(candidate, key: str) -> str:
    """Read a field from a dict-like or attribute-style record as a str."""
    if isinstance(candidate, Mapping):
        value = candidate.get(key)
    else:
        value = getattr(candidate, key, None)
    if value is None:
        return ""
    return str(value)


def normalize_phone(phone) -> str:
    """Strip every non-digit character: '010-1234-5678' → '01012345678'."""
    return _NON_DIGITS.sub("", str(phone or ""))


def validate(candidate, row_number: int | str) -> ValidationResult:
    """
    Validate one candidate record and return a ValidationResult.

    candidate may be a dict with optional keys or an InviteCandidate.  Each
    error message is prefixed with "행 {row_number}: " so it can be shown
    next to the offending spreadsheet row.
    """
    errors: list[str] = []
    codes: list[str] = []

    def fail(code: str, message: str) -> None:
        codes.append(code)
        errors.append(f"행 {row_number}: {message}")

    email = _text(candidate, "email")
    if not email or not EMAIL_PATTERN.fullmatch(email):
        fail(INVALID_EMAIL, f"올바른 이메일 주소 형식이 아닙니다 ({email or _NOT_ENTERED})")

    if not _text(candidate, "name").strip():
        fail(MISSING_NAME, "이름을 입력해주세요")

    phone = _text(candidate, "phone")
    if not phone or not PHONE_PATTERN.fullmatch(normalize_phone(phone)):
        fail(INVALID_PHONE, f"올바른 전화번호 형식이 아닙니다 ({phone or _NOT_ENTERED})")

    role = _text(candidate, "role").strip().lower()
    if role and role not in ROLES:
        fail(INVALID_ROLE, "역할은 '전문가' 또는 '기관'으로 입력해주세요")

    if role == ROLE_ORGANIZATION and not _text(candidate, "organization_name").strip():
        fail(MISSING_ORG_NAME, "기관 역할의 경우 기관명을 입력해주세요")

    return ValidationResult(valid=not errors, errors=errors, codes=codes)


def format_error_list(errors: list[str], limit: int = ERROR_DISPLAY_LIMIT) -> str:
    """
    Join error messages for display, one per line.

    Only the first `limit` messages are shown; the rest are summarised as
    "... 외 N개 오류".
    """
    shown = "\n".join(errors[:limit])
    if len(errors) > limit:
        shown += f"\n... 외 {len(errors) - limit}개 오류"
    return shown
