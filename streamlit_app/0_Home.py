import streamlit as st
import sys
from pathlib import Path

# Add parent directory to path for imports
_root = Path(__file__).parent.parent.resolve()
if str(_root) not in sys.path:
    sys.path.insert(0, str(_root))

from auth.roles import home_page_for
from streamlit_app.lib.guards import require_identity

st.set_page_config(page_title="Swa-Antarang", layout="wide")

# Signed-in users land on their role's home page; everyone else on login
identity = require_identity()
st.switch_page(home_page_for(identity))
