"""
pipeline/dispatch.py
Client side of the bulk-invitation endpoint.

A sender is any callable taking the JSON payload {"users": [...]} and
returning (status_code, body_dict).  http_sender() talks to a remote
endpoint; pipeline.invite.handle_bulk_invite_request() serves the same
contract in-process.  Bulk dispatch is never retried automatically.
"""

import logging
from collections.abc import Callable, Mapping, Sequence

import requests

from pipeline.config import REQUEST_TIMEOUT_SECONDS
from pipeline.errors import BatchValidationError, DispatchError, NoCandidates
from pipeline.models import BatchOutcome, InviteCandidate
from pipeline.validation import validate

logger = logging.getLogger(__name__)

Sender = Callable[[dict], tuple[int, dict]]


def http_sender(url: str, session: requests.Session | None = None, headers: dict | None = None) -> Sender:
    """Return a sender that POSTs the batch as JSON to url."""
    http = session or requests.Session()

    def send(payload: dict) -> tuple[int, dict]:
        response = http.post(
            url,
            json=payload,
            headers={"Content-Type": "application/json", **(headers or {})},
            timeout=REQUEST_TIMEOUT_SECONDS,
        )
        try:
            body = response.json()
        except ValueError:
            body = {}
        return response.status_code, body if isinstance(body, dict) else {}

    return send


def _as_payload_row(candidate) -> dict:
    if isinstance(candidate, InviteCandidate):
        return candidate.to_dict()
    return dict(candidate)


def dispatch(candidates: Sequence[InviteCandidate | Mapping], send: Sender) -> BatchOutcome:
    """
    Submit a batch and return the endpoint's aggregate outcome.

    Raises NoCandidates for an empty batch and BatchValidationError when any
    candidate fails re-validation; neither makes a network call.  Transport
    failures and non-2xx responses raise DispatchError, carrying the
    endpoint's "error" message when it sent one.  A 2xx body whose counts
    cannot be read also raises DispatchError.
    """
    if not candidates:
        raise NoCandidates()

    errors: list[str] = []
    for index, candidate in enumerate(candidates):
        errors.extend(validate(candidate, index + 1).errors)
    if errors:
        raise BatchValidationError(errors)

    payload = {"users": [_as_payload_row(c) for c in candidates]}
    try:
        status, body = send(payload)
    except Exception as exc:
        logger.error("Bulk invite request failed: %s", exc, exc_info=True)
        raise DispatchError() from exc

    if not 200 <= status < 300:
        message = body.get("error") if isinstance(body, dict) else None
        logger.error("Bulk invite endpoint returned %s: %s", status, message)
        raise DispatchError(message if isinstance(message, str) and message else None)

    try:
        return BatchOutcome.from_response(body)
    except (AttributeError, TypeError, ValueError) as exc:
        logger.error("Bulk invite endpoint returned a malformed body: %r", body)
        raise DispatchError() from exc


def summarize(outcome: BatchOutcome) -> list[tuple[str, str]]:
    """
    Return (level, message) toasts for an outcome.

    level is "success" or "error".  A batch with both successes and failures
    yields one toast of each.
    """
    messages = []
    if outcome.success > 0:
        messages.append(("success", f"{outcome.success}명에게 초대장이 발송되었습니다."))
    if outcome.failed > 0:
        messages.append((
            "error",
            f"{outcome.failed}명의 초대 과정에서 문제가 발생했습니다. 오류 내역을 확인해주세요.",
        ))
    return messages
