from __future__ import annotations

import logging
from typing import Optional

from auth.backend import IdentityBackend
from auth.errors import BackendError
from auth.identity import Identity
from auth.roles import Role

logger = logging.getLogger(__name__)


class ProfileLoader:
    """Builds an Identity from the generic profile plus the role sub-profile."""

    def __init__(self, backend: IdentityBackend):
        self.backend = backend

    async def load(self, user_id: str) -> Optional[Identity]:
        """
        Returns None when the generic profile is missing or cannot be fetched;
        the caller decides whether that is fatal.

        A missing merchant/driver row only leaves the matching id empty, so a
        half-set-up account can still sign in.
        """
        try:
            profile = await self.backend.fetch_profile(user_id)
        except BackendError as exc:
            logger.warning("Profile fetch failed for %s: %s", user_id, exc.message)
            return None
        if not profile:
            return None

        role = Role.parse(profile.get("role"))
        merchant_profile_id = None
        driver_profile_id = None
        if role is Role.MERCHANT:
            merchant_profile_id = await self._sub_profile_id(
                self.backend.fetch_merchant_profile, user_id, role
            )
        elif role is Role.DRIVER:
            driver_profile_id = await self._sub_profile_id(
                self.backend.fetch_driver_profile, user_id, role
            )

        return Identity.from_profile(
            {**profile, "id": profile.get("id", user_id)},
            merchant_profile_id=merchant_profile_id,
            driver_profile_id=driver_profile_id,
        )

    async def _sub_profile_id(self, fetch, user_id: str, role: Role) -> Optional[str]:
        try:
            row = await fetch(user_id)
        except BackendError as exc:
            logger.warning("%s profile fetch failed for %s: %s", role.value, user_id, exc.message)
            return None
        if not row:
            logger.warning("No %s profile row for user %s", role.value, user_id)
            return None
        return str(row["id"])
