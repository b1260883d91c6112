import streamlit as st
import sys
from pathlib import Path

# Add parent directory to path for imports
_root = Path(__file__).parent.parent.parent.resolve()
if str(_root) not in sys.path:
    sys.path.insert(0, str(_root))

from auth.roles import Role
from streamlit_app.lib.guards import require_role
from streamlit_app.lib.sidebar import role_sidebar

st.set_page_config(page_title="Shop", layout="wide")

identity = require_role(Role.CUSTOMER)
role_sidebar(identity)

st.title("🛍️ Shop")
st.caption(f"Signed in as **{identity.display_name}**")

col1, col2 = st.columns(2)
with col1:
    st.subheader("Contact")
    st.write(f"Email: {identity.email or '—'}")
    st.write(f"Phone: {identity.phone or '—'}")
with col2:
    st.subheader("Orders & Tracking")
    st.info("Your orders and deliveries appear here.")
