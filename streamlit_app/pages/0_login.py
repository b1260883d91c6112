"""
Login / sign-up page for Swa-Antarang.

Demo accounts (DEMO_MODE=true, after `python scripts/seed_demo_users.py`):
- Merchant: merchant@demo.local / demo123
- Driver: driver@demo.local / demo123
- Customer: customer@demo.local / demo123
"""

import streamlit as st
import sys
from pathlib import Path

# Add parent directory to path for imports
_root = Path(__file__).parent.parent.parent.resolve()
if str(_root) not in sys.path:
    sys.path.insert(0, str(_root))

from auth.errors import AuthError
from auth.login import (
    build_signup_metadata,
    normalize_email,
    validate_login_form,
    validate_signup_form,
)
from auth.roles import UI_ROLE_CHOICES, home_page_for, role_from_ui_choice
from streamlit_app.lib.config import settings
from streamlit_app.lib.runtime import get_runtime

st.set_page_config(
    page_title="Login",
    page_icon="🔐",
    layout="centered",
    initial_sidebar_state="collapsed"
)

# Hide sidebar menu on login page
st.markdown("""
<style>
    [data-testid="stSidebar"] {
        display: none;
    }
</style>
""", unsafe_allow_html=True)

runtime = get_runtime(st)
controller = runtime.controller

if controller.loading:
    with st.spinner("Checking for an existing session..."):
        controller.wait_ready(settings.bootstrap_timeout_seconds)

# If already logged in, redirect to role-specific home page
if controller.identity is not None:
    st.switch_page(home_page_for(controller.identity))
    st.stop()

st.title("🔐 Swa-Antarang")

login_tab, signup_tab = st.tabs(["Login", "Sign up"])

with login_tab:
    prefill_email = st.session_state.get("prefill_email", "")
    prefill_pass = st.session_state.get("prefill_password", "")

    with st.form("login_form"):
        email = st.text_input("Email", value=prefill_email)
        password = st.text_input("Password", type="password", value=prefill_pass)
        submitted = st.form_submit_button("Login", type="primary")

    if submitted:
        error = validate_login_form(email, password)
        if error:
            st.error(error)
        else:
            try:
                result = runtime.run(controller.login(normalize_email(email), password))
            except AuthError as exc:
                st.error(f"❌ {exc.message}")
            else:
                st.session_state.pop("prefill_email", None)
                st.session_state.pop("prefill_password", None)
                st.switch_page(home_page_for(result.identity))

with signup_tab:
    with st.form("signup_form"):
        choice = st.radio(
            "I am a",
            list(UI_ROLE_CHOICES),
            format_func=str.capitalize,
            horizontal=True,
        )
        new_email = st.text_input("Email", key="signup_email")
        new_password = st.text_input("Password", type="password", key="signup_password")
        full_name = st.text_input("Full name")
        phone = st.text_input("Phone")
        business_name = st.text_input("Business name (merchants)")
        vehicle_type = st.text_input("Vehicle type (delivery partners)")
        created = st.form_submit_button("Create account", type="primary")

    if created:
        role = role_from_ui_choice(choice)
        error = validate_signup_form(new_email, new_password, role, business_name)
        if error:
            st.error(error)
        else:
            metadata = build_signup_metadata(role, full_name, phone, business_name, vehicle_type)
            try:
                result = runtime.run(
                    controller.sign_up(normalize_email(new_email), new_password, metadata)
                )
            except AuthError as exc:
                st.error(f"❌ {exc.message}")
            else:
                if result.identity is not None:
                    st.switch_page(home_page_for(result.identity))
                elif result.session is None:
                    st.success("Account created. Check your inbox to confirm your email, then log in.")
                else:
                    st.info("Account created. Your profile is still being set up, please log in shortly.")

if settings.demo_mode:
    st.markdown("---")
    st.markdown("### Demo accounts")
    cols = st.columns(3)
    for col, name in zip(cols, ("merchant", "driver", "customer")):
        with col:
            demo_email = f"{name}@demo.local"
            st.markdown(f"**{name.capitalize()}**")
            st.markdown(f"`{demo_email}` / `demo123`")
            if st.button(f"🔗 Pre-fill {name.capitalize()}", use_container_width=True):
                st.session_state["prefill_email"] = demo_email
                st.session_state["prefill_password"] = "demo123"
                st.rerun()
    st.caption("💡 Run `python scripts/seed_demo_users.py` once to create these accounts")
