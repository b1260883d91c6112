"""
Hosts the async session controller for a Streamlit browser session.

Streamlit runs page scripts synchronously, so each browser session gets its
own event loop on a daemon thread; pages hand coroutines to it with run().

Each browser session also gets its own persisted-session file, so visitors
never restore or wipe each other's sign-in. The runtime is shut down (loop
stopped, controller detached, session file removed) when Streamlit drops the
browser session's state, or at interpreter exit.
"""

import asyncio
import concurrent.futures
import logging
import threading
import uuid
import weakref
from pathlib import Path
from typing import Optional

from auth.demo_backend import DemoIdentityBackend
from auth.session import SessionController
from auth.session_store import FileSessionStore
from auth.supabase_backend import SupabaseIdentityBackend

from .config import Settings, settings as default_settings
from .logging_setup import configure_logging

logger = logging.getLogger(__name__)

SHUTDOWN_TIMEOUT_SECONDS = 5.0


async def build_backend(settings: Settings, store: FileSessionStore):
    if settings.demo_mode:
        return DemoIdentityBackend(store, Path(settings.data_dir) / "demo_auth.json")
    return await SupabaseIdentityBackend.create(settings.supabase_url, settings.supabase_key, store)


async def _drain(controller: SessionController) -> None:
    controller.stop()
    pending = [t for t in asyncio.all_tasks() if t is not asyncio.current_task()]
    for task in pending:
        task.cancel()
    await asyncio.gather(*pending, return_exceptions=True)


def _shutdown(loop, thread, controller, store) -> None:
    # Must not reference the SessionRuntime itself (weakref.finalize callback)
    if thread is threading.current_thread():
        loop.call_soon(controller.stop)
        loop.stop()
        return
    if thread.is_alive():
        try:
            asyncio.run_coroutine_threadsafe(_drain(controller), loop).result(
                SHUTDOWN_TIMEOUT_SECONDS
            )
        except concurrent.futures.TimeoutError:
            logger.warning("Session loop did not drain within %.0fs", SHUTDOWN_TIMEOUT_SECONDS)
        loop.call_soon_threadsafe(loop.stop)
        thread.join(SHUTDOWN_TIMEOUT_SECONDS)
    if not thread.is_alive():
        loop.close()
    store.clear()
    logger.info("Session runtime stopped (%s)", store.storage_key)


class SessionRuntime:
    def __init__(self, settings: Settings = default_settings, session_key: Optional[str] = None):
        self.settings = settings
        self.session_key = session_key or uuid.uuid4().hex
        self.store = FileSessionStore(
            settings.data_dir, f"{settings.auth_storage_key}-{self.session_key}"
        )
        self.loop = asyncio.new_event_loop()
        self.thread = threading.Thread(
            target=self.loop.run_forever, name=f"session-loop-{self.session_key[:8]}", daemon=True
        )
        self.thread.start()

        try:
            self.backend = self.run(build_backend(settings, self.store))
        except BaseException:
            self.loop.call_soon_threadsafe(self.loop.stop)
            raise
        self.controller = SessionController(
            self.backend,
            bootstrap_timeout=settings.bootstrap_timeout_seconds,
            signup_grace=settings.signup_grace_seconds,
            slow_login_ms=settings.slow_login_ms,
        )
        self._finalizer = weakref.finalize(
            self, _shutdown, self.loop, self.thread, self.controller, self.store
        )
        self.run(self.controller.start())
        logger.info("Session runtime started (demo_mode=%s)", settings.demo_mode)

    def run(self, coro, timeout: Optional[float] = None):
        """Run a coroutine on the session loop and wait for its result."""
        return asyncio.run_coroutine_threadsafe(coro, self.loop).result(timeout)

    @property
    def closed(self) -> bool:
        return not self._finalizer.alive

    def shutdown(self) -> None:
        """Stop the controller and the loop thread. Safe to call more than once."""
        self._finalizer()


def get_runtime(st) -> SessionRuntime:
    """Get or create the SessionRuntime for this browser session."""
    configure_logging()
    if "session_runtime" not in st.session_state:
        st.session_state["session_runtime"] = SessionRuntime()
    return st.session_state["session_runtime"]
