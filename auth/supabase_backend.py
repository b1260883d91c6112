from __future__ import annotations

import logging
from typing import Any, Dict, Optional, Tuple

from supabase import (
    AsyncClient,
    AsyncClientOptions,
    AuthError as SupabaseAuthError,
    PostgrestAPIError,
    acreate_client,
)

from auth.backend import (
    AuthEvent,
    AuthSession,
    AuthStateHandler,
    AuthUser,
    SignOutScope,
    Subscription,
)
from auth.errors import BackendError
from auth.results import Result
from auth.session_store import FileSessionStore

logger = logging.getLogger(__name__)

PROFILES_TABLE = "profiles"
MERCHANT_PROFILES_TABLE = "merchant_profiles"
DRIVER_PROFILES_TABLE = "driver_profiles"

# PostgREST codes meaning "zero rows" for a single-row select
_NO_ROWS_CODES = {"PGRST116", "204"}


def _to_user(user) -> AuthUser:
    return AuthUser(
        id=str(user.id),
        email=getattr(user, "email", None),
        metadata=dict(getattr(user, "user_metadata", None) or {}),
    )


def _to_session(session) -> Optional[AuthSession]:
    if session is None or session.user is None:
        return None
    return AuthSession(
        access_token=session.access_token,
        refresh_token=session.refresh_token,
        expires_at=session.expires_at,
        user=_to_user(session.user),
    )


def _backend_error(exc: Exception) -> BackendError:
    message = getattr(exc, "message", None) or str(exc)
    code = getattr(exc, "code", None)
    return BackendError(message, code=str(code) if code is not None else None)


class SupabaseIdentityBackend:
    """Identity backend over the Supabase async client (Auth + Postgres)."""

    def __init__(self, client: AsyncClient, store: FileSessionStore):
        self.client = client
        self.store = store

    @classmethod
    async def create(cls, url: str, key: str, store: FileSessionStore) -> "SupabaseIdentityBackend":
        if not url or not key:
            raise BackendError("SUPABASE_URL and SUPABASE_KEY must be set when DEMO_MODE=false")
        client = await acreate_client(
            url,
            key,
            options=AsyncClientOptions(
                storage=store,
                persist_session=True,
                auto_refresh_token=True,
            ),
        )
        return cls(client, store)

    async def read_session(self) -> Optional[AuthSession]:
        try:
            session = await self.client.auth.get_session()
        except SupabaseAuthError as exc:
            raise _backend_error(exc) from exc
        return _to_session(session)

    async def get_current_user(self) -> Optional[AuthUser]:
        try:
            response = await self.client.auth.get_user()
        except SupabaseAuthError as exc:
            raise _backend_error(exc) from exc
        if response is None or response.user is None:
            return None
        return _to_user(response.user)

    async def sign_in_with_password(self, email: str, password: str) -> AuthSession:
        try:
            response = await self.client.auth.sign_in_with_password(
                {"email": email, "password": password}
            )
        except SupabaseAuthError as exc:
            raise _backend_error(exc) from exc
        session = _to_session(response.session)
        if session is None:
            raise BackendError("Sign-in returned no session")
        return session

    async def sign_up(
        self, email: str, password: str, metadata: Dict[str, Any]
    ) -> Tuple[AuthUser, Optional[AuthSession]]:
        try:
            response = await self.client.auth.sign_up(
                {"email": email, "password": password, "options": {"data": metadata}}
            )
        except SupabaseAuthError as exc:
            raise _backend_error(exc) from exc
        if response.user is None:
            raise BackendError("Sign-up returned no user")
        return _to_user(response.user), _to_session(response.session)

    async def sign_out(self, scope: SignOutScope = SignOutScope.LOCAL) -> Result:
        try:
            await self.client.auth.sign_out({"scope": scope.value})
        except Exception as exc:
            logger.debug("Supabase sign-out (%s) failed: %s", scope.value, exc)
            return Result.failed(exc)
        return Result.success()

    def on_auth_state_change(self, handler: AuthStateHandler) -> Subscription:
        def callback(event, session):
            handler(AuthEvent.parse(event), _to_session(session))

        return self.client.auth.on_auth_state_change(callback)

    async def _single_row(self, table: str, column: str, value: str) -> Optional[Dict[str, Any]]:
        try:
            response = await (
                self.client.table(table).select("*").eq(column, value).maybe_single().execute()
            )
        except PostgrestAPIError as exc:
            if str(exc.code) in _NO_ROWS_CODES:
                return None
            raise _backend_error(exc) from exc
        if response is None:
            return None
        return response.data

    async def fetch_profile(self, user_id: str) -> Optional[Dict[str, Any]]:
        return await self._single_row(PROFILES_TABLE, "id", user_id)

    async def fetch_merchant_profile(self, user_id: str) -> Optional[Dict[str, Any]]:
        return await self._single_row(MERCHANT_PROFILES_TABLE, "user_id", user_id)

    async def fetch_driver_profile(self, user_id: str) -> Optional[Dict[str, Any]]:
        return await self._single_row(DRIVER_PROFILES_TABLE, "user_id", user_id)

    def clear_persisted_session(self) -> Result:
        return self.store.clear()
