"""
Role definitions and the role gate.

Roles:
- merchant: inventory, propagation, requests, tracking
- driver: deliveries, orders, history
- customer: browse, cart, order tracking
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional


class Role(str, Enum):
    MERCHANT = "merchant"
    DRIVER = "driver"
    CUSTOMER = "customer"

    @classmethod
    def parse(cls, value: Optional[str]) -> "Role":
        """Map a stored role string to a Role. Unknown values branch as customer."""
        try:
            return cls((value or "").strip().lower())
        except ValueError:
            return cls.CUSTOMER


LOGIN_PAGE = "pages/0_login.py"

# Landing page per role after login
ROLE_HOME: Dict[Role, str] = {
    Role.MERCHANT: "pages/1_Merchant.py",
    Role.DRIVER: "pages/2_Driver.py",
    Role.CUSTOMER: "pages/3_Customer.py",
}


@dataclass(frozen=True)
class NavItem:
    page: str
    label: str
    icon: str = ""


ROLE_NAV: Dict[Role, List[NavItem]] = {
    Role.MERCHANT: [
        NavItem("pages/1_Merchant.py", "Home", "🏠"),
        NavItem("pages/1_Merchant.py", "Inventory", "📦"),
        NavItem("pages/1_Merchant.py", "Propagate", "📡"),
        NavItem("pages/1_Merchant.py", "Requests", "💬"),
        NavItem("pages/1_Merchant.py", "Track", "📍"),
    ],
    Role.DRIVER: [
        NavItem("pages/2_Driver.py", "Dashboard", "🚚"),
        NavItem("pages/2_Driver.py", "Orders", "📋"),
        NavItem("pages/2_Driver.py", "History", "🕒"),
    ],
    Role.CUSTOMER: [
        NavItem("pages/3_Customer.py", "Browse Products", "🛍️"),
        NavItem("pages/3_Customer.py", "Orders & Tracking", "🕒"),
    ],
}

# Login form labels -> auth role
UI_ROLE_CHOICES: Dict[str, Role] = {
    "merchant": Role.MERCHANT,
    "delivery": Role.DRIVER,
    "customer": Role.CUSTOMER,
}


def role_from_ui_choice(choice: str) -> Role:
    return UI_ROLE_CHOICES[choice.strip().lower()]


@dataclass(frozen=True)
class RoleFlags:
    role: Optional[Role]
    is_merchant: bool
    is_driver: bool
    is_customer: bool


def derive_role_flags(identity) -> RoleFlags:
    """Role flags for the current identity (all False when logged out)."""
    role = identity.role if identity is not None else None
    return RoleFlags(
        role=role,
        is_merchant=role is Role.MERCHANT,
        is_driver=role is Role.DRIVER,
        is_customer=role is Role.CUSTOMER,
    )


def home_page_for(identity) -> str:
    """Role-specific landing page, or the login page when logged out."""
    if identity is None:
        return LOGIN_PAGE
    return ROLE_HOME[identity.role]
