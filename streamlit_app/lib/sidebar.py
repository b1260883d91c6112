"""
Sidebar navigation utilities for role-based menu visibility.
"""

import streamlit as st

from auth.identity import Identity
from auth.roles import LOGIN_PAGE, ROLE_NAV, derive_role_flags

from .runtime import get_runtime


def hide_default_nav():
    """Hide Streamlit's built-in page list; role_sidebar() renders the allowed pages."""
    st.markdown(
        """
        <style>
            div[data-testid="stSidebarNav"] {
                display: none !important;
            }
        </style>
        """,
        unsafe_allow_html=True,
    )


def role_sidebar(identity: Identity):
    """Show only the pages the signed-in role may open, plus a logout button."""
    hide_default_nav()
    flags = derive_role_flags(identity)
    if flags.role is None:
        return

    with st.sidebar:
        st.markdown(f"**{identity.display_name}** · {flags.role.value}")
        seen = set()
        for item in ROLE_NAV[flags.role]:
            # Several sections live on one page; link each page once
            if item.page in seen:
                continue
            seen.add(item.page)
            st.page_link(item.page, label=item.label, icon=item.icon or None)
        with st.expander("Sections"):
            for item in ROLE_NAV[flags.role]:
                st.caption(f"{item.icon} {item.label}")

        st.markdown("---")
        if st.button("🚪 Logout", use_container_width=True):
            runtime = get_runtime(st)
            runtime.run(runtime.controller.logout())
            st.switch_page(LOGIN_PAGE)
