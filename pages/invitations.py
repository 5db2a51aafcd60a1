"""
pages/invitations.py
Admin invitations: bulk invite (spreadsheet upload or manual entry) and the
invitation list with resend.
"""

from functools import partial

import pandas as pd
import streamlit as st

from pipeline.auth import get_current_user, logout, require_admin
from pipeline.collector import batch_row_labels, collect
from pipeline.config import get_secret
from pipeline.db import query_df
from pipeline.dispatch import dispatch, http_sender, summarize
from pipeline.errors import BatchValidationError, InviteError, NoValidRows
from pipeline.invite import (
    INVITATION_STATUSES,
    handle_bulk_invite_request,
    invitation_status,
    list_invitations,
    resend_invitation,
)
from pipeline.models import CANDIDATE_FIELDS, ROLES
from pipeline.progress import run_with_progress
from pipeline.spreadsheet import TEMPLATE_FILENAME, build_template, parse_upload
from pipeline.validation import format_error_list

st.set_page_config(page_title="StartupMatching · 초대 관리", layout="wide")

context = require_admin()

# ─── Sidebar navigation ───────────────────────────────────────────────────────

with st.sidebar:
    st.page_link("pages/invitations.py", label="✉️ 초대 관리")
    st.divider()
    _sidebar_user = get_current_user()
    if _sidebar_user:
        st.caption(getattr(_sidebar_user, "email", ""))
    if st.button("로그아웃", key="sidebar_signout_invitations"):
        logout()

# ─── Session state ────────────────────────────────────────────────────────────

_ROLE_LABELS = {"expert": "전문가", "organization": "기관"}


def _empty_manual_rows() -> pd.DataFrame:
    return pd.DataFrame([{"email": "", "name": "", "phone": "", "role": "expert",
                          "organization_name": "", "position": ""}],
                        columns=list(CANDIDATE_FIELDS))


def _reset_batch() -> None:
    """Clear everything entered for the current batch."""
    st.session_state["parsed_candidates"] = []
    st.session_state["parsed_file"] = None
    st.session_state["parsed_row_numbers"] = []
    st.session_state["manual_rows"] = _empty_manual_rows()
    st.session_state["manual_version"] += 1
    st.session_state["upload_version"] += 1


st.session_state.setdefault("parsed_candidates", [])
st.session_state.setdefault("parsed_row_numbers", [])
st.session_state.setdefault("parsed_file", None)
st.session_state.setdefault("manual_rows", _empty_manual_rows())
st.session_state.setdefault("manual_version", 0)
st.session_state.setdefault("upload_version", 0)
st.session_state.setdefault("invite_error", None)
st.session_state.setdefault("invite_results", None)
st.session_state.setdefault("pending_toasts", [])

# Toasts queued before the last st.rerun().
for _icon, _message in st.session_state["pending_toasts"]:
    st.toast(_message, icon=_icon)
st.session_state["pending_toasts"] = []

st.markdown("# 회원 일괄 초대")
st.caption("엑셀 파일을 업로드하거나 수동으로 입력하여 여러 분을 한 번에 초대할 수 있습니다.")

tab_excel, tab_manual = st.tabs(["📄 엑셀 업로드", "➕ 수동 입력"])

# ─── Spreadsheet upload ───────────────────────────────────────────────────────

with tab_excel:
    st.download_button(
        "템플릿 다운로드",
        data=build_template(),
        file_name=TEMPLATE_FILENAME,
        mime="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    )
    uploaded = st.file_uploader(
        "엑셀 파일(.xlsx, .xls) 또는 CSV 파일을 업로드해주세요",
        type=["xlsx", "xls", "csv"],
        key=f"invite_upload_{st.session_state['upload_version']}",
        help="필수 항목: 이메일, 이름, 전화번호, 역할 (전문가 또는 기관)",
    )

    # Parse once per uploaded file, not on every rerun.
    file_id = (uploaded.name, uploaded.size) if uploaded is not None else None
    if file_id is not None and file_id != st.session_state["parsed_file"]:
        st.session_state["parsed_file"] = file_id
        st.session_state["parsed_candidates"] = []
        st.session_state["parsed_row_numbers"] = []
        try:
            parsed = parse_upload(uploaded)
        except NoValidRows as exc:
            st.toast(exc.message, icon="❌")
            st.session_state["invite_error"] = format_error_list(exc.errors, limit=5)
        except InviteError as exc:
            st.toast(exc.message, icon="❌")
        else:
            st.session_state["parsed_candidates"] = parsed.candidates
            st.session_state["parsed_row_numbers"] = parsed.row_numbers
            note = f" ({len(parsed.parse_errors)}개 항목에 오류가 있습니다)" if parsed.parse_errors else ""
            st.toast(f"{len(parsed.candidates)}명의 초대 정보가 확인되었습니다.{note}", icon="✅")
            st.session_state["invite_error"] = (
                format_error_list(parsed.parse_errors) if parsed.parse_errors else None
            )

    parsed_candidates = st.session_state["parsed_candidates"]
    if parsed_candidates:
        st.success(f"{len(parsed_candidates)}명의 초대가 준비되었습니다")
        preview = pd.DataFrame([c.to_dict() for c in parsed_candidates[:10]])
        preview["role"] = preview["role"].map(_ROLE_LABELS)
        st.dataframe(
            preview[["email", "name", "phone", "role"]].rename(
                columns={"email": "이메일", "name": "이름", "phone": "전화번호", "role": "역할"}
            ),
            hide_index=True,
            use_container_width=True,
        )
        if len(parsed_candidates) > 10:
            st.caption(f"... 외 {len(parsed_candidates) - 10}명")

# ─── Manual entry ─────────────────────────────────────────────────────────────

with tab_manual:
    manual_df = st.data_editor(
        st.session_state["manual_rows"],
        key=f"manual_rows_editor_{st.session_state['manual_version']}",
        num_rows="dynamic",
        hide_index=True,
        use_container_width=True,
        column_config={
            "email": st.column_config.TextColumn("이메일 *"),
            "name": st.column_config.TextColumn("이름 *"),
            "phone": st.column_config.TextColumn("전화번호 *"),
            "role": st.column_config.SelectboxColumn("역할 *", options=list(ROLES), required=True),
            "organization_name": st.column_config.TextColumn("기관명"),
            "position": st.column_config.TextColumn("직책"),
        },
    )

manual_rows: list[dict] = []
manual_row_numbers: list[int] = []
for grid_row, row in enumerate(manual_df.fillna("").to_dict(orient="records"), start=1):
    if all(str(row.get(key, "")).strip() for key in ("email", "name", "phone")):
        manual_rows.append(row)
        manual_row_numbers.append(grid_row)

batch_rows = [c.to_dict() for c in st.session_state["parsed_candidates"]] + manual_rows
batch_labels = batch_row_labels(st.session_state["parsed_row_numbers"], manual_row_numbers)

# ─── Submit ───────────────────────────────────────────────────────────────────

progress_slot = st.empty()


def _show_progress(state) -> None:
    if state is None:
        progress_slot.empty()
        return
    label = f"초대 진행 중... {state.current} / {state.total}명"
    if state.processing:
        label += f" (처리 중: {state.processing})"
    progress_slot.progress(state.estimated_progress, text=label)


def _sender():
    url = get_secret("BULK_INVITE_URL")
    if url:
        session = st.session_state.get("session")
        token = getattr(session, "access_token", None)
        return http_sender(url, headers={"Authorization": f"Bearer {token}"} if token else None)
    return partial(handle_bulk_invite_request, context=context)


if st.button(
    f"초대하기 ({len(batch_rows)}명)",
    type="primary",
    use_container_width=True,
    disabled=not batch_rows,
):
    st.session_state["invite_results"] = None
    collected = collect(batch_rows, batch_labels)
    if collected.rejected:
        st.session_state["invite_error"] = format_error_list(collected.rejected)
        st.toast("입력하신 정보에 오류가 있습니다. 확인 후 다시 시도해주세요.", icon="❌")
    else:
        st.session_state["invite_error"] = None
        send = _sender()
        try:
            outcome = run_with_progress(
                lambda: dispatch(collected.accepted, send),
                total=len(collected.accepted),
                on_update=_show_progress,
            )
        except BatchValidationError as exc:
            st.session_state["invite_error"] = format_error_list(exc.errors)
            st.toast(exc.message, icon="❌")
        except InviteError as exc:
            st.session_state["invite_error"] = exc.message
            st.toast(exc.message, icon="❌")
        else:
            st.session_state["invite_results"] = outcome
            st.session_state["pending_toasts"] = [
                ("✅" if level == "success" else "⚠️", message)
                for level, message in summarize(outcome)
            ]
            if outcome.should_reset:
                _reset_batch()
            query_df.clear()
            st.rerun()

if st.session_state["invite_error"]:
    st.error(st.session_state["invite_error"])

results = st.session_state["invite_results"]
if results is not None:
    with st.container(border=True):
        st.markdown(f"✅ **성공: {results.success}명**")
        if results.failed > 0:
            st.markdown(f"❌ **실패: {results.failed}명**")
        if results.errors:
            st.markdown("**오류 상세:**")
            st.markdown("\n".join(f"- {e['email']}: {e['error']}" for e in results.errors))

st.divider()

# ─── Invitation list ──────────────────────────────────────────────────────────

st.markdown("## 초대 목록")

_STATUS_LABELS = {"all": "전체", "pending": "대기중", "accepted": "수락됨", "expired": "만료됨"}
_STATUS_BADGES = {"pending": "🟡 대기중", "accepted": "🟢 수락됨", "expired": "🔴 만료됨"}

col_status, col_search, col_page = st.columns([1.2, 3, 1])
with col_status:
    status_filter = st.selectbox(
        "상태",
        ("all",) + INVITATION_STATUSES,
        format_func=lambda s: _STATUS_LABELS.get(s, s),
    )
with col_search:
    search = st.text_input("검색 (이메일 또는 이름)")
with col_page:
    page = st.number_input("페이지", min_value=1, value=1, step=1)

try:
    invitations_df, pagination = list_invitations(status_filter, search, int(page))
except Exception as error:
    st.error(f"초대 목록을 불러오는 중 오류가 발생했습니다: {error}")
    st.stop()

if invitations_df.empty:
    st.info("초대 내역이 없습니다.")
else:
    st.caption(
        f"총 {pagination['total']}건 · {pagination['page']} / {max(pagination['total_pages'], 1)} 페이지"
    )
    for invitation in invitations_df.to_dict(orient="records"):
        col_who, col_role, col_state, col_created, col_action = st.columns([3, 1, 1, 1.5, 1])
        with col_who:
            st.markdown(f"**{invitation.get('name') or ''}**  \n{invitation['email']}")
        with col_role:
            st.write(_ROLE_LABELS.get(invitation.get("role"), invitation.get("role") or ""))
        with col_state:
            st.write(_STATUS_BADGES[invitation_status(invitation)])
        with col_created:
            created = pd.to_datetime(invitation.get("created_at"), errors="coerce")
            st.write("" if pd.isna(created) else created.strftime("%Y-%m-%d"))
        with col_action:
            if st.button("재발송", key=f"resend_{invitation['id']}"):
                with st.spinner("재발송 중..."):
                    sent = resend_invitation(invitation)
                if sent:
                    st.toast(f"{invitation['email']}로 초대장을 다시 보냈습니다.", icon="✅")
                else:
                    st.toast("초대장 재발송에 실패했습니다. 잠시 후 다시 시도해주세요.", icon="❌")
