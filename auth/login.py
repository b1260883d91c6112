"""
Login / sign-up form helpers.

Normalizes what the user typed and builds the metadata the backend stores on
the new account (role plus role-specific display fields).
"""

import re
from typing import Any, Dict, Optional

from auth.roles import Role

MIN_PASSWORD_LENGTH = 6

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def normalize_email(email: str) -> str:
    """Trim and lowercase an email address."""
    return (email or "").strip().lower()


def validate_login_form(email: str, password: str) -> Optional[str]:
    """Return an error message for the form, or None when it can be submitted."""
    if not email or not password:
        return "Please enter both email and password"
    if not _EMAIL_RE.match(normalize_email(email)):
        return "Please enter a valid email address"
    return None


def validate_signup_form(
    email: str, password: str, role: Role, business_name: Optional[str] = None
) -> Optional[str]:
    error = validate_login_form(email, password)
    if error:
        return error
    if len(password) < MIN_PASSWORD_LENGTH:
        return f"Password must be at least {MIN_PASSWORD_LENGTH} characters"
    if role is Role.MERCHANT and not (business_name or "").strip():
        return "Business name is required for merchants"
    return None


def build_signup_metadata(
    role: Role,
    full_name: Optional[str] = None,
    phone: Optional[str] = None,
    business_name: Optional[str] = None,
    vehicle_type: Optional[str] = None,
) -> Dict[str, Any]:
    metadata: Dict[str, Any] = {"role": role.value}
    if full_name:
        metadata["full_name"] = full_name.strip()
    if phone:
        metadata["phone"] = phone.strip()
    if role is Role.MERCHANT and business_name:
        metadata["business_name"] = business_name.strip()
    if role is Role.DRIVER and vehicle_type:
        metadata["vehicle_type"] = vehicle_type.strip()
    return metadata
