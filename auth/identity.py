from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional

from auth.roles import Role


@dataclass(frozen=True)
class Identity:
    """Normalized record of the signed-in user and their role-specific linkage.

    Instances are never mutated: a refresh builds a new Identity.
    """

    id: str
    role: Role
    email: Optional[str] = None
    full_name: Optional[str] = None
    phone: Optional[str] = None
    avatar_url: Optional[str] = None
    merchant_profile_id: Optional[str] = None
    driver_profile_id: Optional[str] = None

    def __post_init__(self):
        if self.role is not Role.MERCHANT and self.merchant_profile_id is not None:
            raise ValueError(f"{self.role.value} identity cannot carry a merchant profile")
        if self.role is not Role.DRIVER and self.driver_profile_id is not None:
            raise ValueError(f"{self.role.value} identity cannot carry a driver profile")

    @classmethod
    def from_profile(
        cls,
        profile: Dict[str, Any],
        merchant_profile_id: Optional[str] = None,
        driver_profile_id: Optional[str] = None,
    ) -> "Identity":
        return cls(
            id=str(profile["id"]),
            role=Role.parse(profile.get("role")),
            email=profile.get("email"),
            full_name=profile.get("full_name"),
            phone=profile.get("phone"),
            avatar_url=profile.get("avatar_url"),
            merchant_profile_id=merchant_profile_id,
            driver_profile_id=driver_profile_id,
        )

    @property
    def display_name(self) -> str:
        return self.full_name or self.email or self.id


@dataclass(frozen=True)
class SessionState:
    identity: Optional[Identity]
    loading: bool

    @property
    def authenticated(self) -> bool:
        return self.identity is not None
