import asyncio
from typing import Any, Dict, List, Optional

import pytest

from auth.backend import AuthEvent, AuthSession, AuthUser, CallbackSubscription, SignOutScope
from auth.errors import BackendError
from auth.results import Result
from auth.session import SessionController


class FakeBackend:
    """In-memory identity backend with switches for failure and timing scenarios."""

    def __init__(self):
        self.persisted: Optional[AuthSession] = None
        self.accounts: Dict[str, Dict[str, Any]] = {}
        self.profiles: Dict[str, Dict[str, Any]] = {}
        self.merchant_profiles: Dict[str, Dict[str, Any]] = {}
        self.driver_profiles: Dict[str, Dict[str, Any]] = {}
        self.calls: List[Any] = []
        self.handlers: List = []

        self.current_user_error: Optional[Exception] = None
        self.profile_error: Optional[Exception] = None
        self.sign_up_error: Optional[BackendError] = None
        self.confirm_email = False
        self.sign_out_fails = False
        self.hang_read_session = False
        self.sign_in_gate: Optional[asyncio.Event] = None
        self.profile_gate: Optional[asyncio.Event] = None
        self.sign_out_gate: Optional[asyncio.Event] = None

    # -- setup helpers -----------------------------------------------------

    def add_account(self, user_id, email, password="secret", role="customer", **fields):
        merchant_id = fields.pop("merchant_id", None)
        driver_id = fields.pop("driver_id", None)
        self.accounts[email] = {"password": password, "user": AuthUser(id=user_id, email=email)}
        self.profiles[user_id] = {"id": user_id, "email": email, "role": role, **fields}
        if merchant_id:
            self.merchant_profiles[user_id] = {"id": merchant_id, "user_id": user_id}
        if driver_id:
            self.driver_profiles[user_id] = {"id": driver_id, "user_id": user_id}
        return self.accounts[email]["user"]

    def persist_session_for(self, email):
        self.persisted = self.session_for(self.accounts[email]["user"])
        return self.persisted

    @staticmethod
    def session_for(user):
        return AuthSession(access_token=f"token-{user.id}", user=user)

    def emit(self, event, session=None):
        for handler in list(self.handlers):
            handler(event, session)

    # -- IdentityBackend -----------------------------------------------------

    async def read_session(self):
        self.calls.append("read_session")
        if self.hang_read_session:
            await asyncio.Event().wait()
        return self.persisted

    async def get_current_user(self):
        self.calls.append("get_current_user")
        if self.current_user_error is not None:
            raise self.current_user_error
        return self.persisted.user if self.persisted else None

    async def sign_in_with_password(self, email, password):
        self.calls.append("sign_in")
        if self.sign_in_gate is not None:
            await self.sign_in_gate.wait()
        account = self.accounts.get(email)
        if account is None or account["password"] != password:
            raise BackendError("Invalid login credentials", code="invalid_credentials")
        self.persisted = self.session_for(account["user"])
        self.emit(AuthEvent.SIGNED_IN, self.persisted)
        return self.persisted

    async def sign_up(self, email, password, metadata):
        self.calls.append(("sign_up", dict(metadata)))
        if self.sign_up_error is not None:
            raise self.sign_up_error
        user = AuthUser(id=f"new-{len(self.accounts) + 1}", email=email, metadata=dict(metadata))
        self.accounts[email] = {"password": password, "user": user}
        if self.confirm_email:
            return user, None
        self.persisted = self.session_for(user)
        self.emit(AuthEvent.SIGNED_IN, self.persisted)
        return user, self.persisted

    async def sign_out(self, scope=SignOutScope.LOCAL):
        self.calls.append(("sign_out", scope))
        if self.sign_out_gate is not None:
            await self.sign_out_gate.wait()
        if self.sign_out_fails:
            return Result.failed(BackendError("network down"))
        self.persisted = None
        self.emit(AuthEvent.SIGNED_OUT, None)
        return Result.success()

    def on_auth_state_change(self, handler):
        self.handlers.append(handler)
        handler(AuthEvent.INITIAL_SESSION, self.persisted)
        return CallbackSubscription(lambda: self.handlers.remove(handler))

    async def _row(self, table, user_id):
        if self.profile_gate is not None:
            await self.profile_gate.wait()
        if self.profile_error is not None:
            raise self.profile_error
        row = table.get(user_id)
        return dict(row) if row else None

    async def fetch_profile(self, user_id):
        self.calls.append(("fetch_profile", user_id))
        return await self._row(self.profiles, user_id)

    async def fetch_merchant_profile(self, user_id):
        self.calls.append(("fetch_merchant_profile", user_id))
        return await self._row(self.merchant_profiles, user_id)

    async def fetch_driver_profile(self, user_id):
        self.calls.append(("fetch_driver_profile", user_id))
        return await self._row(self.driver_profiles, user_id)

    def clear_persisted_session(self):
        self.calls.append("clear_persisted_session")
        self.persisted = None
        return Result.success()


@pytest.fixture
def backend():
    return FakeBackend()


@pytest.fixture
def run_with_controller(backend):
    """Start a controller on a fresh loop, run scenario(controller), stop it."""

    def runner(scenario, bootstrap_timeout=1.0, signup_grace=0):
        async def main():
            controller = SessionController(
                backend, bootstrap_timeout=bootstrap_timeout, signup_grace=signup_grace
            )
            await controller.start()
            try:
                return await scenario(controller)
            finally:
                controller.stop()

        return asyncio.run(main())

    return runner


@pytest.fixture
def settle():
    """Await it to let queued auth events reach the controller's worker."""

    async def _settle(rounds=10):
        for _ in range(rounds):
            await asyncio.sleep(0)

    return _settle
