"""
pipeline/errors.py
Exception taxonomy for the bulk-invitation pipeline.

Every exception carries a user-facing message (Korean, as shown in the UI).
Row-level validation problems are never raised; they are collected as
strings by the validator and collector instead.
"""


class InviteError(Exception):
    """Base class for every error the invitation pipeline surfaces to users."""

    default_message = "초대 과정에서 문제가 발생했습니다. 다시 시도해주세요."

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


# ─── Format errors (raised by the spreadsheet parser) ────────────────────────

class UnsupportedFormat(InviteError):
    default_message = (
        "엑셀 파일(.xlsx, .xls) 또는 CSV 파일만 업로드 가능합니다. "
        "파일 형식을 확인해주세요."
    )


class FileTooLarge(InviteError):
    default_message = "파일 크기는 5MB 이하여야 합니다."


class MissingColumns(InviteError):
    """Raised when required headers are absent; `missing` keeps their order."""

    def __init__(self, missing: list[str]):
        self.missing = list(missing)
        super().__init__(
            f"필수 항목이 누락되었습니다: {', '.join(self.missing)}. "
            "템플릿을 다운로드하여 확인해주세요."
        )


class EmptySheet(InviteError):
    default_message = "파일에 입력된 정보가 없습니다. 파일을 확인해주세요."


class NoValidRows(InviteError):
    """Every non-blank row failed validation."""

    default_message = "올바른 초대 정보가 없습니다. 파일을 확인해주세요."

    def __init__(self, errors: list[str]):
        self.errors = list(errors)
        super().__init__()


# ─── Dispatch errors ─────────────────────────────────────────────────────────

class NoCandidates(InviteError):
    default_message = "초대할 대상이 없습니다. 정보를 입력해주세요."


class BatchValidationError(InviteError):
    default_message = "입력하신 정보에 오류가 있습니다. 확인 후 다시 시도해주세요."

    def __init__(self, errors: list[str]):
        self.errors = list(errors)
        super().__init__()


class DispatchError(InviteError):
    default_message = "일괄 초대에 실패했습니다."


class BatchTooLarge(InviteError):
    default_message = "Too many users. Maximum 100 users per batch."


class UnreadableFile(InviteError):
    default_message = "파일을 읽는 중 문제가 발생했습니다. 파일 형식을 확인해주세요."
