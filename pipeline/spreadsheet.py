"""
pipeline/spreadsheet.py
Spreadsheet import for bulk invitations, plus the downloadable template.

Accepts .xlsx, .xls and .csv uploads up to 5 MB.  Only the first sheet is
read.  Headers are matched case- and whitespace-insensitively, blank rows
are dropped, and every remaining row goes through the collector so that
duplicates and invalid rows are reported per spreadsheet row number.

Entry points:
  parse(file_bytes, filename) -> ParseResult
  parse_upload(uploaded_file) -> ParseResult
  build_template() -> bytes
"""

import io
import re
from pathlib import Path

import pandas as pd

from pipeline.collector import collect
from pipeline.config import ACCEPTED_EXTENSIONS, MAX_UPLOAD_BYTES
from pipeline.errors import (
    EmptySheet,
    FileTooLarge,
    InviteError,
    MissingColumns,
    NoValidRows,
    UnreadableFile,
    UnsupportedFormat,
)
from pipeline.models import CANDIDATE_FIELDS, ROLE_EXPERT, ROLES, ParseResult

REQUIRED_COLUMNS = ("email", "name", "phone", "role")

# Normalised header spellings accepted for each field.
HEADER_ALIASES = {
    "email":             ("email",),
    "name":              ("name",),
    "phone":             ("phone",),
    "role":              ("role",),
    "organization_name": ("organization_name", "organization"),
    "position":          ("position",),
}

# Header row is sheet row 1, so the first data row (index 0) is row 2.
HEADER_ROW_OFFSET = 2

# Tried in order; Excel on Korean Windows saves CSV as cp949.
CSV_ENCODINGS = ("utf-8-sig", "cp949")

TEMPLATE_FILENAME   = "user_invite_template.xlsx"
TEMPLATE_SHEET_NAME = "Users"
TEMPLATE_ROWS = [
    {
        "email": "user1@example.com",
        "name": "홍길동",
        "phone": "01012345678",
        "role": "expert",
        "organization_name": "",
        "position": "",
    },
    {
        "email": "user2@example.com",
        "name": "김철수",
        "phone": "01087654321",
        "role": "organization",
        "organization_name": "주식회사 테크노",
        "position": "인사팀장",
    },
]

_SEPARATORS = re.compile(r"[\s\-]+")


# ─── Private helpers ─────────────────────────────────────────────────────────

def _normalize_header(header) -> str:
    return _SEPARATORS.sub("_", str(header).strip().lower())


def _check_file(filename: str, size: int) -> str:
    """Return the lowercased extension, or raise a format error."""
    extension = Path(filename or "").suffix.lower()
    if extension not in ACCEPTED_EXTENSIONS:
        raise UnsupportedFormat()
    if size > MAX_UPLOAD_BYTES:
        raise FileTooLarge()
    return extension


def _read_csv(file_bytes: bytes) -> pd.DataFrame:
    """Read CSV bytes as UTF-8, falling back to cp949 for Korean Excel exports."""
    for encoding in CSV_ENCODINGS[:-1]:
        try:
            return pd.read_csv(
                io.BytesIO(file_bytes), dtype=str, keep_default_na=False, encoding=encoding
            )
        except UnicodeDecodeError:
            continue
    return pd.read_csv(
        io.BytesIO(file_bytes), dtype=str, keep_default_na=False, encoding=CSV_ENCODINGS[-1]
    )


def _read_first_sheet(file_bytes: bytes, extension: str) -> pd.DataFrame:
    try:
        if extension == ".csv":
            return _read_csv(file_bytes)
        return pd.read_excel(
            io.BytesIO(file_bytes), sheet_name=0, dtype=str, keep_default_na=False
        )
    except pd.errors.EmptyDataError as exc:
        raise EmptySheet() from exc
    except Exception as exc:
        raise UnreadableFile() from exc


def _map_columns(columns) -> dict:
    """
    Map each known field to the first sheet column whose header matches it.

    Fields with no matching column are absent from the returned dict.
    """
    normalized = [(_normalize_header(c), c) for c in columns]
    mapping = {}
    for field, aliases in HEADER_ALIASES.items():
        for norm, original in normalized:
            if norm in aliases:
                mapping[field] = original
                break
    return mapping


def _cell(value) -> str:
    if value is None or (not isinstance(value, str) and pd.isna(value)):
        return ""
    return str(value).strip()


def _extract_rows(df: pd.DataFrame, mapping: dict) -> tuple[list[dict], list[int]]:
    """
    Convert sheet rows to raw candidate dicts and their sheet row numbers.

    Rows with neither an email nor a name are blank separators and are
    dropped without producing an error.  Unrecognised roles fall back to
    expert here (manual entry rejects them instead).
    """
    rows: list[dict] = []
    row_numbers: list[int] = []
    for position, record in enumerate(df.to_dict(orient="records")):
        row = {field: _cell(record.get(column)) for field, column in mapping.items()}
        if not row.get("email") and not row.get("name"):
            continue
        role = row.get("role", "").lower()
        row["role"] = role if role in ROLES else ROLE_EXPERT
        rows.append(row)
        row_numbers.append(position + HEADER_ROW_OFFSET)
    return rows, row_numbers


# ─── Public API ──────────────────────────────────────────────────────────────

def parse(file_bytes: bytes, filename: str) -> ParseResult:
    """
    Parse an uploaded spreadsheet into invitation candidates.

    Raises UnsupportedFormat, FileTooLarge, UnreadableFile, MissingColumns,
    EmptySheet or NoValidRows; none of these import anything.  Otherwise
    returns the valid candidates together with per-row error messages for
    the rows that were skipped, so a partially valid sheet still imports.
    """
    extension = _check_file(filename, len(file_bytes))
    df = _read_first_sheet(file_bytes, extension)

    mapping = _map_columns(df.columns)
    missing = [col for col in REQUIRED_COLUMNS if col not in mapping]
    if missing:
        raise MissingColumns(missing)

    rows, row_numbers = _extract_rows(df, mapping)
    if not rows:
        raise EmptySheet()

    collected = collect(rows, row_numbers)
    if not collected.accepted:
        raise NoValidRows(collected.rejected)

    return ParseResult(
        candidates=collected.accepted,
        parse_errors=collected.rejected,
        row_numbers=collected.accepted_row_numbers,
    )


def parse_upload(uploaded_file) -> ParseResult:
    """Parse a Streamlit UploadedFile (anything with .name and .getvalue())."""
    if uploaded_file is None:
        raise InviteError("업로드된 파일이 없습니다.")
    return parse(uploaded_file.getvalue(), uploaded_file.name)


def build_template() -> bytes:
    """Return the invitation upload template as XLSX bytes."""
    buffer = io.BytesIO()
    template = pd.DataFrame(TEMPLATE_ROWS, columns=list(CANDIDATE_FIELDS))
    with pd.ExcelWriter(buffer, engine="openpyxl") as writer:
        template.to_excel(writer, sheet_name=TEMPLATE_SHEET_NAME, index=False)
    return buffer.getvalue()
