#!/usr/bin/env python3
"""
Seed the demo identity store (DEMO_MODE=true) with one account per role.

All demo passwords are `demo123`. Existing accounts are left untouched.
"""

import sys
from pathlib import Path

_root = Path(__file__).parent.parent.resolve()
if str(_root) not in sys.path:
    sys.path.insert(0, str(_root))

from auth.demo_backend import DemoIdentityBackend
from auth.errors import BackendError
from auth.login import build_signup_metadata
from auth.roles import Role
from auth.session_store import FileSessionStore
from streamlit_app.lib.config import settings

DEMO_PASSWORD = "demo123"

DEMO_USERS = [
    ("merchant@demo.local", build_signup_metadata(
        Role.MERCHANT, full_name="Meera Shah", phone="+91 98200 00001", business_name="Shah Kirana Store"
    )),
    ("driver@demo.local", build_signup_metadata(
        Role.DRIVER, full_name="Dev Patil", phone="+91 98200 00002", vehicle_type="bike"
    )),
    ("customer@demo.local", build_signup_metadata(
        Role.CUSTOMER, full_name="Chitra Rao", phone="+91 98200 00003"
    )),
]

if __name__ == "__main__":
    data_dir = Path(settings.data_dir)
    backend = DemoIdentityBackend(
        FileSessionStore(data_dir, settings.auth_storage_key),
        data_dir / "demo_auth.json",
    )
    for email, metadata in DEMO_USERS:
        try:
            user = backend.register(email, DEMO_PASSWORD, metadata)
            print(f"✅ {metadata['role']:<9} {email} ({user.id})")
        except BackendError as exc:
            print(f"⚠️  {email}: {exc.message}")
    print(f"\nDemo store: {backend.db_path}")
