from unittest.mock import MagicMock

from pipeline.mailer import (
    build_invite_email_html,
    build_invite_message,
    build_invite_url,
    send_with_retry,
)

INVITATION = {
    "email": "kim@example.com",
    "name": "Kim",
    "phone": "01012345678",
    "organization_name": "",
    "token": "abc123",
}


def _response(ok, status=200):
    response = MagicMock()
    response.ok = ok
    response.status_code = status
    return response


def test_always_failing_endpoint_is_tried_three_times():
    post = MagicMock(return_value=_response(False, 503))
    sleeps = []

    result = send_with_retry(INVITATION, post=post, sleep=sleeps.append)

    assert post.call_count == 3
    assert sleeps == [1.0, 2.0]
    assert not result
    assert result.attempts == 3
    assert result.reason == "HTTP 503"


def test_exception_on_final_attempt_is_returned_not_raised():
    post = MagicMock(side_effect=ConnectionError("connection refused"))
    sleeps = []

    result = send_with_retry(INVITATION, post=post, sleep=sleeps.append)

    assert post.call_count == 3
    assert sleeps == [1.0, 2.0]
    assert result.ok is False
    assert result.reason == "connection refused"


def test_stops_on_first_success():
    post = MagicMock(side_effect=[_response(False, 500), _response(True)])
    sleeps = []

    result = send_with_retry(INVITATION, post=post, sleep=sleeps.append)

    assert result
    assert result.attempts == 2
    assert sleeps == [1.0]


def test_custom_attempt_bound():
    post = MagicMock(return_value=_response(False, 500))
    result = send_with_retry(INVITATION, max_attempts=1, post=post, sleep=lambda s: None)
    assert post.call_count == 1
    assert not result


def test_missing_endpoint_counts_as_failed_attempts():
    sleeps = []
    result = send_with_retry(INVITATION, sleep=sleeps.append)
    assert not result
    assert "EMAIL_ENDPOINT_URL" in result.reason


def test_message_payload_uses_accept_url():
    message = build_invite_message(INVITATION)
    assert message["to"] == "kim@example.com"
    assert message["subject"] == "[StartupMatching] 초대가 도착했습니다"
    assert build_invite_url("abc123") == "https://admin.example.com/login?invite=abc123"
    assert "https://admin.example.com/login?invite=abc123" in message["html"]


def test_explicit_invite_url_wins_over_token():
    message = build_invite_message(dict(INVITATION, invite_url="https://x.test/accept"))
    assert "https://x.test/accept" in message["html"]


def test_html_escapes_user_values():
    body = build_invite_email_html(
        "<script>alert(1)</script>", "a@x.com", "https://x.test", "010", "A&B"
    )
    assert "<script>" not in body
    assert "&lt;script&gt;" in body
    assert "A&amp;B" in body


def test_organization_line_only_for_organizations():
    without = build_invite_email_html("Kim", "a@x.com", "https://x.test", "010", "")
    with_org = build_invite_email_html("Kim", "a@x.com", "https://x.test", "010", "ACME")
    assert "가입 초대를 보내드립니다" not in without
    assert "<strong>ACME</strong>에서 가입 초대를 보내드립니다" in with_org
