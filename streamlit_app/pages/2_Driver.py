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

st.set_page_config(page_title="Delivery Dashboard", layout="wide")

identity = require_role(Role.DRIVER)
role_sidebar(identity)

st.title("🚚 Delivery Dashboard")
st.caption(f"Signed in as **{identity.display_name}**")

if identity.driver_profile_id is None:
    # Account can sign in, but role features need the driver profile row
    st.warning("Your driver profile is not set up yet. Complete it to unlock these features.")
else:
    st.write(f"Profile: `{identity.driver_profile_id}`")
    st.info("Assigned deliveries and history appear here for your vehicle.")
