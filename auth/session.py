"""
Session controller: who is signed in, kept fresh, and when the app is ready.

Lifecycle:
- start(): bootstrap from the persisted session, arm the safety timer,
  subscribe to auth events pushed by the backend
- stop(): detach; anything still in flight completes without effect

Every flow that can change the identity takes a new generation number. Only
the current generation may touch the identity or the session store, so a
slow, superseded profile load can never overwrite newer state.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from collections import Counter
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from auth.backend import AuthEvent, AuthSession, AuthUser, IdentityBackend, SignOutScope
from auth.diagnostics import PhaseTimer
from auth.errors import AuthenticationError, BackendError, ProfileNotFoundError
from auth.identity import Identity, SessionState
from auth.profiles import ProfileLoader
from auth.results import Result
from auth.roles import Role

logger = logging.getLogger(__name__)

BOOTSTRAP_TIMEOUT_SECONDS = 10.0
SIGNUP_GRACE_SECONDS = 1.0

StateListener = Callable[[SessionState], None]


@dataclass(frozen=True)
class LoginResult:
    session: AuthSession
    identity: Identity


@dataclass(frozen=True)
class SignUpResult:
    user: AuthUser
    session: Optional[AuthSession]
    identity: Optional[Identity]


class SessionController:
    def __init__(
        self,
        backend: IdentityBackend,
        loader: Optional[ProfileLoader] = None,
        *,
        bootstrap_timeout: float = BOOTSTRAP_TIMEOUT_SECONDS,
        signup_grace: float = SIGNUP_GRACE_SECONDS,
        slow_login_ms: float = 3000,
    ):
        self.backend = backend
        self.loader = loader or ProfileLoader(backend)
        self.bootstrap_timeout = bootstrap_timeout
        self.signup_grace = signup_grace
        self.slow_login_ms = slow_login_ms

        self._identity: Optional[Identity] = None
        self._loading = True
        self._alive = False
        self._started = False
        self._generation = 0
        self._expected_events: List[Counter] = []
        self._ready = threading.Event()
        self._listeners: Dict[int, StateListener] = {}
        self._next_listener_id = 0

        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._events: Optional[asyncio.Queue] = None
        self._timer: Optional[asyncio.TimerHandle] = None
        self._subscription = None
        self._worker: Optional[asyncio.Task] = None
        self.bootstrap_task: Optional[asyncio.Task] = None

    # -- public state ------------------------------------------------------

    @property
    def identity(self) -> Optional[Identity]:
        return self._identity

    @property
    def loading(self) -> bool:
        return self._loading

    @property
    def state(self) -> SessionState:
        return SessionState(identity=self._identity, loading=self._loading)

    @property
    def alive(self) -> bool:
        return self._alive

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        """Call listener with the new state after every change. Returns the disposer."""
        listener_id = self._next_listener_id
        self._next_listener_id += 1
        self._listeners[listener_id] = listener
        return lambda: self._listeners.pop(listener_id, None)

    def wait_ready(self, timeout: Optional[float] = None) -> bool:
        """Block the calling thread until loading is over (or timeout). Thread-safe."""
        return self._ready.wait(timeout)

    # -- lifecycle ---------------------------------------------------------

    async def start(self) -> None:
        if self._started:
            raise RuntimeError("SessionController already started")
        self._started = True
        self._alive = True
        self._loop = asyncio.get_running_loop()
        self._events = asyncio.Queue()

        self._timer = self._loop.call_later(self.bootstrap_timeout, self._on_bootstrap_timeout)
        self.bootstrap_task = self._loop.create_task(self.bootstrap())
        # Registered after bootstrap is kicked off; INITIAL_SESSION is ignored
        self._subscription = self.backend.on_auth_state_change(self._on_auth_event)
        self._worker = self._loop.create_task(self._pump_events())

    def stop(self) -> None:
        """Detach from the backend. Must be called on the controller's loop."""
        if not self._alive:
            return
        self._alive = False
        self._generation += 1
        if self._timer is not None:
            self._timer.cancel()
        if self._subscription is not None:
            self._subscription.unsubscribe()
            self._subscription = None
        if self._worker is not None:
            self._worker.cancel()
        self._listeners.clear()
        self._ready.set()

    # -- generation bookkeeping ----------------------------------------------

    def _begin(self) -> int:
        self._generation += 1
        return self._generation

    def _is_current(self, generation: int) -> bool:
        return self._alive and generation == self._generation

    def _commit(self, generation: int, identity: Optional[Identity]) -> bool:
        if not self._is_current(generation):
            logger.debug("Dropping superseded identity update (generation %s)", generation)
            return False
        self._set_identity(identity)
        return True

    def _set_identity(self, identity: Optional[Identity]) -> None:
        self._identity = identity
        self._notify()

    def _notify(self) -> None:
        state = self.state
        for listener in list(self._listeners.values()):
            try:
                listener(state)
            except Exception:
                logger.exception("Session state listener failed")

    def _finish_loading(self) -> None:
        if self._loading and self._alive:
            self._loading = False
            if self._timer is not None:
                self._timer.cancel()
            self._notify()
        self._ready.set()

    def _on_bootstrap_timeout(self) -> None:
        if self._loading:
            logger.warning(
                "Session bootstrap still pending after %.1fs; releasing UI", self.bootstrap_timeout
            )
            self._finish_loading()

    @contextmanager
    def _own_call(self, *events: AuthEvent):
        """Drop one occurrence of each listed event while the call is in flight.

        These are the events our own backend call emits; anything else the
        backend pushes meanwhile is handled normally.
        """
        expected = Counter(events)
        self._expected_events.append(expected)
        try:
            yield
        finally:
            self._expected_events = [e for e in self._expected_events if e is not expected]

    def _consume_expected(self, event: Optional[AuthEvent]) -> bool:
        for expected in self._expected_events:
            if expected[event] > 0:
                expected[event] -= 1
                return True
        return False

    async def _sign_out(self, scope: SignOutScope) -> Result:
        try:
            with self._own_call(AuthEvent.SIGNED_OUT):
                result = await self.backend.sign_out(scope)
        except Exception as exc:
            result = Result.failed(exc)
        if not result.ok:
            logger.debug("Sign-out (%s) failed, ignoring: %s", scope.value, result.error)
        return result

    async def _clean_session(self, generation: int) -> None:
        if not self._is_current(generation):
            return
        await self._sign_out(SignOutScope.LOCAL)
        if not self._is_current(generation):
            return
        self.backend.clear_persisted_session()
        self._set_identity(None)

    async def _discard_existing_session(self, scope: SignOutScope) -> None:
        try:
            existing = await self.backend.read_session()
        except BackendError as exc:
            logger.info("Discarding unreadable persisted session: %s", exc.message)
            self.backend.clear_persisted_session()
            existing = None
        if existing is not None:
            await self._sign_out(scope)
            self.backend.clear_persisted_session()
        if self._alive and self._identity is not None:
            self._set_identity(None)

    # -- flows -------------------------------------------------------------

    async def bootstrap(self) -> None:
        """Restore the persisted session, if any. Never raises."""
        generation = self._begin()
        try:
            session = await self.backend.read_session()
            if session is None:
                logger.debug("No persisted session")
                return

            try:
                with self._own_call(AuthEvent.TOKEN_REFRESHED):
                    user = await self.backend.get_current_user()
            except BackendError as exc:
                logger.warning("Persisted session is no longer valid: %s", exc.message)
                user = None
            if user is None:
                await self._clean_session(generation)
                return

            identity = await self.loader.load(user.id)
            if identity is None:
                logger.warning("No profile for user %s; clearing session", user.id)
                await self._clean_session(generation)
                return
            if self._commit(generation, identity):
                logger.info("Restored session for %s (%s)", identity.id, identity.role.value)
        except Exception:
            logger.exception("Session bootstrap failed")
            await self._clean_session(generation)
        finally:
            self._finish_loading()

    async def clean_session(self) -> None:
        await self._clean_session(self._begin())

    async def login(self, email: str, password: str) -> LoginResult:
        generation = self._begin()
        timer = PhaseTimer("login")

        with timer.phase("cleanup", expect_ms=500):
            await self._discard_existing_session(SignOutScope.GLOBAL)

        try:
            with timer.phase("sign_in", expect_ms=self.slow_login_ms):
                with self._own_call(AuthEvent.SIGNED_IN):
                    session = await self.backend.sign_in_with_password(email, password)
        except BackendError as exc:
            if self._is_current(generation):
                self.backend.clear_persisted_session()
                self._set_identity(None)
            logger.info("Login rejected: %s", exc.message)
            raise AuthenticationError(exc.message) from exc

        with timer.phase("load_profile", expect_ms=5000):
            identity = await self.loader.load(session.user.id)
        if identity is None:
            logger.warning("Login for user %s has no profile", session.user.id)
            await self._clean_session(generation)
            raise ProfileNotFoundError()

        if not self._commit(generation, identity):
            raise AuthenticationError("Sign-in was interrupted. Please try again.")
        logger.info(
            "Logged in %s as %s in %.0fms", identity.id, identity.role.value, timer.total_ms()
        )
        return LoginResult(session=session, identity=identity)

    async def sign_up(
        self, email: str, password: str, metadata: Optional[Dict[str, Any]] = None
    ) -> SignUpResult:
        metadata = dict(metadata or {})
        if "role" in metadata:
            try:
                metadata["role"] = Role(metadata["role"]).value
            except ValueError:
                raise AuthenticationError(f"Unknown role: {metadata['role']}") from None
        generation = self._begin()

        await self._discard_existing_session(SignOutScope.LOCAL)

        try:
            with self._own_call(AuthEvent.SIGNED_IN):
                user, session = await self.backend.sign_up(email, password, metadata)
        except BackendError as exc:
            logger.info("Sign-up rejected: %s", exc.message)
            raise AuthenticationError(exc.message) from exc

        identity = None
        if session is not None:
            # Profile rows are written by a backend trigger after sign-up
            await asyncio.sleep(self.signup_grace)
            identity = await self.loader.load(user.id)
            if identity is None:
                logger.info("Profile for new user %s not provisioned yet", user.id)
            elif not self._commit(generation, identity):
                identity = None
        return SignUpResult(user=user, session=session, identity=identity)

    async def logout(self) -> None:
        """Sign out. Local state clears first and unconditionally; never raises."""
        generation = self._begin()
        if self._alive:
            self._set_identity(None)
        await self._sign_out(SignOutScope.GLOBAL)
        if generation == self._generation:
            self.backend.clear_persisted_session()
        logger.info("Logged out")

    # -- pushed events -----------------------------------------------------

    def _on_auth_event(self, event: Optional[AuthEvent], session: Optional[AuthSession]) -> None:
        if not self._alive or self._consume_expected(event):
            return
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None
        if running is self._loop:
            self._events.put_nowait((event, session))
        else:
            self._loop.call_soon_threadsafe(self._events.put_nowait, (event, session))

    async def _pump_events(self) -> None:
        while True:
            event, session = await self._events.get()
            try:
                await self.handle_auth_event(event, session)
            finally:
                self._events.task_done()

    async def handle_auth_event(
        self, event: Optional[AuthEvent], session: Optional[AuthSession]
    ) -> None:
        if not self._alive:
            return
        if event is AuthEvent.SIGNED_OUT:
            self._commit(self._begin(), None)
        elif event is AuthEvent.TOKEN_REFRESHED and session is not None:
            await self._on_token_refreshed(session)
        # INITIAL_SESSION is covered by bootstrap; other events need nothing

    async def _on_token_refreshed(self, session: AuthSession) -> None:
        generation = self._begin()
        try:
            identity = await self.loader.load(session.user.id)
            if identity is None:
                logger.warning("Profile vanished for %s after token refresh", session.user.id)
                await self._clean_session(generation)
            else:
                self._commit(generation, identity)
        except Exception:
            logger.exception("Token refresh handling failed")
            await self._clean_session(generation)
