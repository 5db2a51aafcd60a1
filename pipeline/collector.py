"""
pipeline/collector.py
Batch deduplication and collection.

collect() runs the same pass over spreadsheet rows and manually entered rows:
strictly in input order, the first occurrence of an email address wins and
any later row with the same address (case-insensitive) is rejected without
being validated.
"""

from collections.abc import Iterable, Mapping, Sequence

from pipeline.models import ROLE_EXPERT, CollectResult, InviteCandidate, RejectedRow
from pipeline.validation import normalize_phone, validate

# Row sources shown in messages when spreadsheet and grid rows are collected
# together.
SHEET_SOURCE  = "엑셀"
MANUAL_SOURCE = "수동 입력"


def _clean(value) -> str:
    return "" if value is None else str(value).strip()


def _as_dict(row) -> dict:
    if isinstance(row, InviteCandidate):
        return row.to_dict()
    if isinstance(row, Mapping):
        return dict(row)
    raise TypeError(f"Unsupported row type: {type(row).__name__}")


def normalize_email(email) -> str:
    return _clean(email).lower()


def source_label(source: str, row_number: int) -> str:
    """Label a row by where it came from: source_label("엑셀", 3) -> "3 (엑셀)"."""
    return f"{row_number} ({source})"


def batch_row_labels(sheet_rows: Sequence[int], manual_rows: Sequence[int]) -> list[str]:
    """Labels for a batch of spreadsheet rows followed by manual-entry rows."""
    return (
        [source_label(SHEET_SOURCE, n) for n in sheet_rows]
        + [source_label(MANUAL_SOURCE, n) for n in manual_rows]
    )


def to_candidate(row: Mapping) -> InviteCandidate:
    """Build a normalised InviteCandidate from a row that already validated."""
    return InviteCandidate(
        email=normalize_email(row.get("email")),
        name=_clean(row.get("name")),
        phone=normalize_phone(row.get("phone")),
        role=_clean(row.get("role")).lower() or ROLE_EXPERT,
        organization_name=_clean(row.get("organization_name")) or None,
        position=_clean(row.get("position")) or None,
    )


def collect(
    rows: Iterable,
    row_numbers: Sequence[int | str] | None = None,
) -> CollectResult:
    """
    Deduplicate and validate rows, returning accepted candidates and rejections.

    rows may be dicts (optional keys) or InviteCandidate objects.  Row numbers
    used in messages come from row_numbers when given (a label such as
    source_label(MANUAL_SOURCE, 2) also works), otherwise they are the
    1-based position in rows.
    """
    result = CollectResult()
    seen: set[str] = set()

    for index, raw in enumerate(rows):
        row_number = row_numbers[index] if row_numbers is not None else index + 1
        row = _as_dict(raw)
        email = normalize_email(row.get("email"))
        row["email"] = email

        if email and email in seen:
            result.rejected_rows.append(
                RejectedRow(row_number, (f"행 {row_number}: 중복된 이메일 주소입니다 ({email})",))
            )
            continue

        validation = validate(row, row_number)
        if not validation.valid:
            result.rejected_rows.append(RejectedRow(row_number, tuple(validation.errors)))
            continue

        seen.add(email)
        result.accepted.append(to_candidate(row))
        result.accepted_row_numbers.append(row_number)

    return result
