"""
pipeline/models.py
Record types passed between the invitation pipeline stages.

Raw rows (from a spreadsheet or the manual-entry grid) are plain dicts with
optional keys.  Once a row passes validation it becomes an InviteCandidate;
a row that fails becomes a RejectedRow.  Nothing downstream of the collector
sees a raw dict.
"""

from dataclasses import asdict, dataclass, field

ROLE_EXPERT       = "expert"
ROLE_ORGANIZATION = "organization"
ROLES             = (ROLE_EXPERT, ROLE_ORGANIZATION)

# Column order of the upload template and of the manual-entry grid.
CANDIDATE_FIELDS = ("email", "name", "phone", "role", "organization_name", "position")


@dataclass(frozen=True)
class InviteCandidate:
    """A validated, normalised invitation record ready for dispatch."""

    email: str
    name: str
    phone: str
    role: str = ROLE_EXPERT
    organization_name: str | None = None
    position: str | None = None

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class ValidationResult:
    valid: bool
    errors: list[str] = field(default_factory=list)
    # Machine-readable codes, parallel to errors (INVALID_EMAIL, ...).
    codes: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class RejectedRow:
    row_number: int | str
    errors: tuple[str, ...]


@dataclass
class CollectResult:
    accepted: list[InviteCandidate] = field(default_factory=list)
    rejected_rows: list[RejectedRow] = field(default_factory=list)
    # Row number (or label) of each accepted candidate, parallel to accepted.
    accepted_row_numbers: list = field(default_factory=list)

    @property
    def rejected(self) -> list[str]:
        """Flat list of every rejection message, in row order."""
        return [msg for row in self.rejected_rows for msg in row.errors]


@dataclass
class ParseResult:
    candidates: list[InviteCandidate]
    parse_errors: list[str]
    # Sheet row of each candidate, parallel to candidates.
    row_numbers: list[int] = field(default_factory=list)


@dataclass
class BatchOutcome:
    success: int = 0
    failed: int = 0
    errors: list[dict] = field(default_factory=list)

    @property
    def should_reset(self) -> bool:
        """True when the whole batch went through and local state can be cleared."""
        return self.failed == 0

    @classmethod
    def from_response(cls, data: dict) -> "BatchOutcome":
        data = data or {}
        errors = [
            {"email": str(e.get("email", "unknown")), "error": str(e.get("error", ""))}
            for e in (data.get("errors") or [])
            if isinstance(e, dict)
        ]
        return cls(
            success=int(data.get("success") or 0),
            failed=int(data.get("failed") or 0),
            errors=errors,
        )


@dataclass
class ProgressState:
    current: int
    total: int
    processing: str | None = None
    # Stays True until the dispatch response arrives; `current` is a guess
    # while it is set.
    estimated: bool = True

    @property
    def estimated_progress(self) -> float:
        if self.total <= 0:
            return 0.0
        return self.current / self.total
