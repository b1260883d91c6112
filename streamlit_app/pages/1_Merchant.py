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

st.set_page_config(page_title="Merchant Dashboard", layout="wide")

identity = require_role(Role.MERCHANT)
role_sidebar(identity)

st.title("🏪 Merchant Dashboard")
st.caption(f"Signed in as **{identity.display_name}**")

if identity.merchant_profile_id is None:
    # Account can sign in, but role features need the business profile row
    st.warning("Your business profile is not set up yet. Complete it to unlock these features.")
else:
    st.write(f"Profile: `{identity.merchant_profile_id}`")
    st.info("Inventory, propagation requests and tracking appear here for your business.")
