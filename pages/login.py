"""
pages/login.py
Sign-in page.  Admins continue to the invitations page; invited members
arriving through an invite link have their invitation accepted on sign-in.
"""

import streamlit as st
from pipeline.auth import is_admin
from pipeline.db import get_supabase_client
from pipeline.invite import accept_invitation, belongs_to, resolve_invitation

st.set_page_config(page_title="StartupMatching · 로그인", page_icon="✉️", layout="centered")

if "user" not in st.session_state:
    st.session_state["user"] = None
if "session" not in st.session_state:
    st.session_state["session"] = None

invite_token = st.query_params.get("invite", None)
if isinstance(invite_token, list):
    invite_token = invite_token[0] if invite_token else None
if invite_token:
    st.session_state["pending_invite_token"] = invite_token

pending_token = st.session_state.get("pending_invite_token")

if st.session_state["user"] is not None and not pending_token:
    st.switch_page("pages/invitations.py")

st.markdown("# StartupMatching")

invitation = None
if pending_token:
    try:
        invitation = resolve_invitation(pending_token)
    except Exception:
        st.error("초대 정보를 확인할 수 없습니다. 잠시 후 다시 시도해주세요.")
        st.stop()
    if invitation is None:
        st.error(
            "유효하지 않거나 만료된 초대장입니다. "
            "새로운 초대장이 필요하시면 운영팀에 문의해주시기 바랍니다."
        )
        st.session_state.pop("pending_invite_token", None)
        st.stop()
    st.info(
        f"{invitation.get('name') or ''}님, 초대를 받으셨습니다. "
        "이메일과 임시 비밀번호(전화번호 숫자)로 로그인하면 가입이 완료됩니다."
    )

email = st.text_input(
    "이메일",
    value=(invitation or {}).get("email", ""),
    key="sign_in_email",
)
password = st.text_input("비밀번호", type="password", key="sign_in_password")

if st.button("로그인", use_container_width=True):
    supabase = get_supabase_client()
    try:
        response = supabase.auth.sign_in_with_password({"email": email, "password": password})
    except Exception:
        response = None

    if not (response and response.user and response.session):
        st.error("이메일 또는 비밀번호가 올바르지 않습니다.")
        st.stop()

    if invitation is not None and not belongs_to(invitation, response.user.email):
        supabase.auth.sign_out()
        st.error(f"초대받은 이메일({invitation['email']})로 로그인해주세요.")
        st.stop()

    st.session_state["user"] = response.user
    st.session_state["session"] = response.session

    if pending_token:
        if accept_invitation(pending_token, response.user.email):
            st.session_state.pop("pending_invite_token", None)
            st.success("가입이 완료되었습니다. 보안을 위해 비밀번호를 변경해주세요.")
        else:
            st.error("초대 수락 중 문제가 발생했습니다. 운영팀에 문의해주세요.")
        st.stop()

    if is_admin(response.user.id):
        st.switch_page("pages/invitations.py")
    else:
        st.warning("관리자 계정으로 로그인해주세요.")
