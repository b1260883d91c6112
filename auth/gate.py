"""
Route guards.

Pure decisions over a SessionState; streamlit_app.lib.guards turns them into
a spinner, a redirect to the login page, or the page itself.
"""

from enum import Enum

from auth.identity import SessionState
from auth.roles import Role


class GuardDecision(str, Enum):
    RENDER = "render"
    LOADING = "loading"
    REDIRECT = "redirect"


def protected_route(state: SessionState) -> GuardDecision:
    """Any signed-in user. A known identity renders even while a refresh is in flight."""
    if state.identity is None:
        return GuardDecision.LOADING if state.loading else GuardDecision.REDIRECT
    return GuardDecision.RENDER


def role_route(state: SessionState, allowed_role: Role) -> GuardDecision:
    """Only allowed_role. Waits out any loading: role is never judged on stale data."""
    if state.loading:
        return GuardDecision.LOADING
    if state.identity is None or state.identity.role is not Role(allowed_role):
        return GuardDecision.REDIRECT
    return GuardDecision.RENDER
