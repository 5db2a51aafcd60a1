from pipeline.collector import batch_row_labels, collect
from pipeline.models import InviteCandidate


def _row(email, name="Kim", phone="01011112222", role="expert", **extra):
    return {"email": email, "name": name, "phone": phone, "role": role, **extra}


def test_first_occurrence_wins_case_insensitively():
    result = collect([_row("a@x.com"), _row("A@X.com", name="Kim2")])
    assert [c.email for c in result.accepted] == ["a@x.com"]
    assert result.rejected == ["행 2: 중복된 이메일 주소입니다 (a@x.com)"]


def test_duplicate_row_is_not_validated():
    result = collect([_row("a@x.com"), _row(" a@x.com ", name="", phone="bad")])
    assert result.rejected == ["행 2: 중복된 이메일 주소입니다 (a@x.com)"]


def test_invalid_first_row_does_not_reserve_its_email():
    result = collect([_row("a@x.com", phone="123"), _row("a@x.com")])
    assert len(result.accepted) == 1
    assert len(result.rejected_rows) == 1
    assert result.rejected_rows[0].row_number == 1


def test_accepted_rows_are_normalized():
    result = collect([
        _row(" Kim@Example.COM ", name="  Kim  ", phone="010-1111-2222",
             role="Organization", organization_name=" ACME ", position=" "),
    ])
    assert result.accepted == [
        InviteCandidate(
            email="kim@example.com",
            name="Kim",
            phone="01011112222",
            role="organization",
            organization_name="ACME",
            position=None,
        )
    ]


def test_missing_role_defaults_to_expert():
    row = _row("a@x.com")
    del row["role"]
    assert collect([row]).accepted[0].role == "expert"


def test_explicit_row_numbers_are_used_in_messages():
    result = collect([_row("a@x.com"), _row("bad-email")], row_numbers=[2, 5])
    assert result.rejected_rows[0].row_number == 5
    assert result.rejected[0].startswith("행 5: ")


def test_validation_errors_are_kept_per_row():
    result = collect([_row("a@x.com", name="", phone="02-123")])
    assert result.accepted == []
    assert len(result.rejected_rows[0].errors) == 2


def test_candidates_and_dicts_can_be_mixed():
    parsed = InviteCandidate(email="a@x.com", name="A", phone="01011112222")
    result = collect([parsed, _row("A@x.com")])
    assert result.accepted == [parsed]
    assert "중복된 이메일" in result.rejected[0]


def test_parsed_rows_keep_their_accepted_row_numbers():
    result = collect([_row("bad"), _row("a@x.com"), _row("b@x.com")], row_numbers=[2, 4, 7])
    assert result.accepted_row_numbers == [4, 7]


def test_combined_batch_names_the_source_of_each_row():
    rows = [_row("a@x.com"), _row("b@x.com"), _row("c@x.com"), _row("A@x.com")]
    labels = batch_row_labels([2, 5], [1, 3])
    assert labels == ["2 (엑셀)", "5 (엑셀)", "1 (수동 입력)", "3 (수동 입력)"]

    result = collect(rows, labels)
    assert result.rejected == ["행 3 (수동 입력): 중복된 이메일 주소입니다 (a@x.com)"]
    assert result.rejected_rows[0].row_number == "3 (수동 입력)"
