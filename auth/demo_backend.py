"""
Demo identity backend.

Stands in for Supabase when DEMO_MODE=true. Users, tokens and the three
profile tables live in data/demo_auth.json; the signed-in session is persisted
through the same FileSessionStore the live client uses.

Seed it with: python scripts/seed_demo_users.py
"""

from __future__ import annotations

import hashlib
import logging
import secrets
import time
import uuid
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import orjson

from auth.backend import (
    AuthEvent,
    AuthSession,
    AuthStateHandler,
    AuthUser,
    CallbackSubscription,
    SignOutScope,
    Subscription,
)
from auth.errors import BackendError
from auth.results import Result
from auth.roles import Role
from auth.session_store import FileSessionStore

logger = logging.getLogger(__name__)

SESSION_TTL_SECONDS = 60 * 60  # 1 hour


def _empty_db() -> Dict[str, Any]:
    return {
        "users": [],
        "tokens": {},
        "profiles": [],
        "merchant_profiles": [],
        "driver_profiles": [],
    }


def _hash_password(password: str, salt: str) -> str:
    return hashlib.sha256(f"{salt}:{password}".encode()).hexdigest()


class DemoIdentityBackend:
    def __init__(
        self,
        store: FileSessionStore,
        db_path: Path | str = Path("data") / "demo_auth.json",
        confirm_email: bool = False,
    ):
        self.store = store
        self.db_path = Path(db_path)
        self.confirm_email = confirm_email
        self._handlers: Dict[int, AuthStateHandler] = {}
        self._next_handler_id = 0

    # -- storage -----------------------------------------------------------

    def _load(self) -> Dict[str, Any]:
        if self.db_path.exists():
            return orjson.loads(self.db_path.read_bytes())
        return _empty_db()

    def _save(self, db: Dict[str, Any]) -> None:
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self.db_path.write_bytes(orjson.dumps(db, option=orjson.OPT_INDENT_2))

    def _persist(self, session: AuthSession) -> None:
        payload = {
            "access_token": session.access_token,
            "refresh_token": session.refresh_token,
            "expires_at": session.expires_at,
            "user": {"id": session.user.id, "email": session.user.email},
        }
        self.store.write(orjson.dumps(payload).decode())

    def _emit(self, event: AuthEvent, session: Optional[AuthSession]) -> None:
        for handler in list(self._handlers.values()):
            handler(event, session)

    @staticmethod
    def _find(rows: List[Dict[str, Any]], column: str, value: Any) -> Optional[Dict[str, Any]]:
        for row in rows:
            if row.get(column) == value:
                return row
        return None

    def _user(self, db: Dict[str, Any], user_id: str) -> Optional[AuthUser]:
        row = self._find(db["users"], "id", user_id)
        if row is None:
            return None
        return AuthUser(id=row["id"], email=row["email"], metadata=dict(row.get("metadata") or {}))

    def _issue_session(self, db: Dict[str, Any], user: AuthUser) -> AuthSession:
        now = int(time.time())
        session = AuthSession(
            access_token=secrets.token_urlsafe(24),
            refresh_token=secrets.token_urlsafe(24),
            expires_at=now + SESSION_TTL_SECONDS,
            user=user,
        )
        db["tokens"][session.access_token] = {
            "user_id": user.id,
            "refresh_token": session.refresh_token,
            "expires_at": session.expires_at,
        }
        return session

    # -- accounts ----------------------------------------------------------

    def register(self, email: str, password: str, metadata: Dict[str, Any]) -> AuthUser:
        """Create a user and provision its profile rows (what the hosted DB trigger does)."""
        email = email.strip().lower()
        db = self._load()
        if self._find(db["users"], "email", email) is not None:
            raise BackendError("User already registered", code="user_already_exists")

        user_id = str(uuid.uuid4())
        salt = secrets.token_hex(8)
        db["users"].append(
            {
                "id": user_id,
                "email": email,
                "salt": salt,
                "password_hash": _hash_password(password, salt),
                "metadata": metadata,
            }
        )

        role = Role.parse(metadata.get("role"))
        db["profiles"].append(
            {
                "id": user_id,
                "email": email,
                "role": role.value,
                "full_name": metadata.get("full_name"),
                "phone": metadata.get("phone"),
                "avatar_url": metadata.get("avatar_url"),
            }
        )
        if role is Role.MERCHANT:
            db["merchant_profiles"].append(
                {
                    "id": str(uuid.uuid4()),
                    "user_id": user_id,
                    "business_name": metadata.get("business_name"),
                }
            )
        elif role is Role.DRIVER:
            db["driver_profiles"].append(
                {
                    "id": str(uuid.uuid4()),
                    "user_id": user_id,
                    "vehicle_type": metadata.get("vehicle_type"),
                }
            )
        self._save(db)
        logger.info("Demo user %s registered as %s", user_id, role.value)
        return AuthUser(id=user_id, email=email, metadata=dict(metadata))

    # -- IdentityBackend ---------------------------------------------------

    async def read_session(self) -> Optional[AuthSession]:
        return self._stored_session()

    def _stored_session(self) -> Optional[AuthSession]:
        raw = self.store.read()
        if not raw:
            return None
        try:
            data = orjson.loads(raw)
            return AuthSession(
                access_token=data["access_token"],
                refresh_token=data.get("refresh_token"),
                expires_at=data.get("expires_at"),
                user=AuthUser(id=data["user"]["id"], email=data["user"].get("email")),
            )
        except (orjson.JSONDecodeError, KeyError, TypeError) as exc:
            raise BackendError(f"Corrupt persisted session: {exc}") from exc

    async def get_current_user(self) -> Optional[AuthUser]:
        session = await self.read_session()
        if session is None:
            raise BackendError("Auth session missing!", code="session_not_found")
        db = self._load()
        token = db["tokens"].get(session.access_token)
        if token is None:
            raise BackendError("Invalid JWT", code="bad_jwt")
        if token["expires_at"] <= time.time():
            session = self._refresh(db, session)
        return self._user(db, token["user_id"])

    def _refresh(self, db: Dict[str, Any], session: AuthSession) -> AuthSession:
        token = db["tokens"].pop(session.access_token, None)
        if token is None or token["refresh_token"] != session.refresh_token:
            self._save(db)
            raise BackendError("Invalid Refresh Token", code="refresh_token_not_found")
        user = self._user(db, token["user_id"])
        if user is None:
            self._save(db)
            raise BackendError("User not found", code="user_not_found")
        fresh = self._issue_session(db, user)
        self._save(db)
        self._persist(fresh)
        self._emit(AuthEvent.TOKEN_REFRESHED, fresh)
        return fresh

    async def sign_in_with_password(self, email: str, password: str) -> AuthSession:
        db = self._load()
        row = self._find(db["users"], "email", email.strip().lower())
        if row is None or row["password_hash"] != _hash_password(password, row["salt"]):
            raise BackendError("Invalid login credentials", code="invalid_credentials")
        session = self._issue_session(db, self._user(db, row["id"]))
        self._save(db)
        self._persist(session)
        self._emit(AuthEvent.SIGNED_IN, session)
        return session

    async def sign_up(
        self, email: str, password: str, metadata: Dict[str, Any]
    ) -> Tuple[AuthUser, Optional[AuthSession]]:
        user = self.register(email, password, metadata)
        if self.confirm_email:
            return user, None
        db = self._load()
        session = self._issue_session(db, user)
        self._save(db)
        self._persist(session)
        self._emit(AuthEvent.SIGNED_IN, session)
        return user, session

    async def sign_out(self, scope: SignOutScope = SignOutScope.LOCAL) -> Result:
        try:
            session = await self.read_session()
        except BackendError as exc:
            self.store.clear()
            return Result.failed(exc)
        if session is not None:
            db = self._load()
            if scope is SignOutScope.GLOBAL:
                db["tokens"] = {
                    k: v for k, v in db["tokens"].items() if v["user_id"] != session.user.id
                }
            else:
                db["tokens"].pop(session.access_token, None)
            self._save(db)
        self.store.clear()
        self._emit(AuthEvent.SIGNED_OUT, None)
        return Result.success()

    def on_auth_state_change(self, handler: AuthStateHandler) -> Subscription:
        handler_id = self._next_handler_id
        self._next_handler_id += 1
        self._handlers[handler_id] = handler
        try:
            current = self._stored_session()
        except BackendError:
            current = None
        handler(AuthEvent.INITIAL_SESSION, current)
        return CallbackSubscription(lambda: self._handlers.pop(handler_id, None))

    async def fetch_profile(self, user_id: str) -> Optional[Dict[str, Any]]:
        return self._find(self._load()["profiles"], "id", user_id)

    async def fetch_merchant_profile(self, user_id: str) -> Optional[Dict[str, Any]]:
        return self._find(self._load()["merchant_profiles"], "user_id", user_id)

    async def fetch_driver_profile(self, user_id: str) -> Optional[Dict[str, Any]]:
        return self._find(self._load()["driver_profiles"], "user_id", user_id)

    def clear_persisted_session(self) -> Result:
        return self.store.clear()
