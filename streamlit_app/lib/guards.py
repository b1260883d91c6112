"""
Streamlit side of the route guards.

Pages call require_identity() or require_role(...) first thing; both return the
current Identity or stop the script (after redirecting to login).
"""

import streamlit as st

from auth.gate import GuardDecision, protected_route, role_route
from auth.identity import Identity
from auth.roles import LOGIN_PAGE, Role

from .runtime import get_runtime


def _wait_for_session(runtime) -> None:
    with st.spinner("Restoring your session..."):
        runtime.controller.wait_ready(runtime.settings.bootstrap_timeout_seconds)
    st.rerun()


def _redirect_to_login() -> None:
    st.switch_page(LOGIN_PAGE)
    st.stop()


def require_identity() -> Identity:
    runtime = get_runtime(st)
    state = runtime.controller.state
    decision = protected_route(state)
    if decision is GuardDecision.LOADING:
        _wait_for_session(runtime)
    elif decision is GuardDecision.REDIRECT:
        _redirect_to_login()
    return state.identity


def require_role(allowed_role: Role) -> Identity:
    runtime = get_runtime(st)
    state = runtime.controller.state
    decision = role_route(state, allowed_role)
    if decision is GuardDecision.LOADING:
        _wait_for_session(runtime)
    elif decision is GuardDecision.REDIRECT:
        _redirect_to_login()
    return state.identity
