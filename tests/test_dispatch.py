from unittest.mock import MagicMock

import pytest

from pipeline.dispatch import dispatch, http_sender, summarize
from pipeline.errors import BatchValidationError, DispatchError, NoCandidates
from pipeline.models import BatchOutcome, InviteCandidate


def _candidates(n):
    return [
        InviteCandidate(email=f"user{i}@x.com", name=f"User {i}", phone="01011112222")
        for i in range(n)
    ]


def test_empty_batch_makes_no_call():
    send = MagicMock()
    with pytest.raises(NoCandidates):
        dispatch([], send)
    send.assert_not_called()


def test_invalid_organization_row_blocks_dispatch(organization_row):
    send = MagicMock()
    row = dict(organization_row, organization_name="")
    with pytest.raises(BatchValidationError) as excinfo:
        dispatch([row], send)
    assert excinfo.value.errors == ["행 1: 기관 역할의 경우 기관명을 입력해주세요"]
    send.assert_not_called()


def test_every_violation_is_reported_before_sending():
    send = MagicMock()
    rows = [{"email": "bad", "name": "A", "phone": "01011112222"},
            {"email": "b@x.com", "name": "", "phone": "01011112222"}]
    with pytest.raises(BatchValidationError) as excinfo:
        dispatch(rows, send)
    assert [e[:4] for e in excinfo.value.errors] == ["행 1:", "행 2:"]
    send.assert_not_called()


def test_successful_batch_posts_users_and_merges_response():
    send = MagicMock(return_value=(200, {"success": 2, "failed": 0, "errors": []}))
    outcome = dispatch(_candidates(2), send)

    payload = send.call_args.args[0]
    assert [u["email"] for u in payload["users"]] == ["user0@x.com", "user1@x.com"]
    assert payload["users"][0]["role"] == "expert"
    assert outcome == BatchOutcome(success=2, failed=0, errors=[])
    assert outcome.should_reset


def test_partial_failure_keeps_local_state():
    errors = [{"email": "user8@x.com", "error": "User already exists"},
              {"email": "user9@x.com", "error": "Failed to create user"}]
    send = MagicMock(return_value=(200, {"success": 8, "failed": 2, "errors": errors}))

    outcome = dispatch(_candidates(10), send)

    assert outcome.failed == 2
    assert not outcome.should_reset
    assert summarize(outcome) == [
        ("success", "8명에게 초대장이 발송되었습니다."),
        ("error", "2명의 초대 과정에서 문제가 발생했습니다. 오류 내역을 확인해주세요."),
    ]


def test_endpoint_error_is_surfaced_verbatim():
    send = MagicMock(return_value=(403, {"error": "Forbidden: Admin access required"}))
    with pytest.raises(DispatchError) as excinfo:
        dispatch(_candidates(1), send)
    assert excinfo.value.message == "Forbidden: Admin access required"
    assert send.call_count == 1


def test_endpoint_error_without_body_uses_generic_message():
    send = MagicMock(return_value=(502, {}))
    with pytest.raises(DispatchError) as excinfo:
        dispatch(_candidates(1), send)
    assert excinfo.value.message == DispatchError.default_message


def test_transport_failure_is_not_retried():
    send = MagicMock(side_effect=ConnectionError("boom"))
    with pytest.raises(DispatchError):
        dispatch(_candidates(1), send)
    assert send.call_count == 1


def test_http_sender_posts_json_and_tolerates_non_json_body():
    session = MagicMock()
    session.post.return_value.status_code = 500
    session.post.return_value.json.side_effect = ValueError("not json")

    send = http_sender("https://api.example.com/bulk-invite", session=session,
                       headers={"Authorization": "Bearer t"})
    status, body = send({"users": []})

    assert (status, body) == (500, {})
    kwargs = session.post.call_args.kwargs
    assert kwargs["json"] == {"users": []}
    assert kwargs["headers"]["Authorization"] == "Bearer t"


def test_outcome_from_response_defaults_missing_fields():
    outcome = BatchOutcome.from_response({"success": 3})
    assert (outcome.success, outcome.failed, outcome.errors) == (3, 0, [])


@pytest.mark.parametrize("body", [{"success": "many"}, {"failed": [1]}, ["not", "a", "dict"]])
def test_malformed_success_body_raises_dispatch_error(body):
    send = MagicMock(return_value=(200, body))
    with pytest.raises(DispatchError) as excinfo:
        dispatch(_candidates(1), send)
    assert excinfo.value.message == DispatchError.default_message
