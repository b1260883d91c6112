"""
Identity backend contract.

The session controller only talks to the hosted auth service and profile store
through this protocol. Implementations:
- auth.supabase_backend.SupabaseIdentityBackend (live)
- auth.demo_backend.DemoIdentityBackend (DEMO_MODE, local JSON file)
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, Optional, Protocol, Tuple

from auth.results import Result


class AuthEvent(str, Enum):
    INITIAL_SESSION = "INITIAL_SESSION"
    SIGNED_IN = "SIGNED_IN"
    SIGNED_OUT = "SIGNED_OUT"
    TOKEN_REFRESHED = "TOKEN_REFRESHED"
    USER_UPDATED = "USER_UPDATED"
    PASSWORD_RECOVERY = "PASSWORD_RECOVERY"

    @classmethod
    def parse(cls, value) -> Optional["AuthEvent"]:
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value))
        except ValueError:
            return None


class SignOutScope(str, Enum):
    LOCAL = "local"
    GLOBAL = "global"


@dataclass(frozen=True)
class AuthUser:
    id: str
    email: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class AuthSession:
    access_token: str
    user: AuthUser
    refresh_token: Optional[str] = None
    expires_at: Optional[int] = None


AuthStateHandler = Callable[[Optional[AuthEvent], Optional[AuthSession]], None]


class Subscription(Protocol):
    def unsubscribe(self) -> None: ...


class IdentityBackend(Protocol):
    async def read_session(self) -> Optional[AuthSession]: ...

    async def get_current_user(self) -> Optional[AuthUser]: ...

    async def sign_in_with_password(self, email: str, password: str) -> AuthSession: ...

    async def sign_up(
        self, email: str, password: str, metadata: Dict[str, Any]
    ) -> Tuple[AuthUser, Optional[AuthSession]]: ...

    async def sign_out(self, scope: SignOutScope = SignOutScope.LOCAL) -> Result: ...

    def on_auth_state_change(self, handler: AuthStateHandler) -> Subscription: ...

    async def fetch_profile(self, user_id: str) -> Optional[Dict[str, Any]]: ...

    async def fetch_merchant_profile(self, user_id: str) -> Optional[Dict[str, Any]]: ...

    async def fetch_driver_profile(self, user_id: str) -> Optional[Dict[str, Any]]: ...

    def clear_persisted_session(self) -> Result: ...


class CallbackSubscription:
    """Subscription handle that runs a disposer once."""

    def __init__(self, disposer: Callable[[], None]):
        self._disposer: Optional[Callable[[], None]] = disposer

    def unsubscribe(self) -> None:
        disposer, self._disposer = self._disposer, None
        if disposer is not None:
            disposer()
