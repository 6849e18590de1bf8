from __future__ import annotations

from typing import Optional

import streamlit as st

from pantry.config import BRANCHES
from pantry.services.users import Session, list_users, session_for
from pantry.store import DocumentStore


def current_session(store: DocumentStore) -> Optional[Session]:
    """Sidebar sign-in: pick one of the users stored in the Users collection."""
    users = list_users(store)
    with st.sidebar:
        st.subheader("Signed in as")
        if not users:
            st.warning("No users yet. Use **🧪 Data Management** to create the default users.")
            return None

        names = [str(u["name"]) for u in users]
        current = st.session_state.get("pantry_user")
        index = names.index(current) if current in names else 0
        name = st.selectbox("User", options=names, index=index, key="pantry_user_select")
        st.session_state["pantry_user"] = name

        session = session_for(next(u for u in users if u["name"] == name))
        st.caption(f"{session.greeting} ({session.display_role})")
    return session


def branch_picker(session: Session) -> Optional[str]:
    """Kitchen Incharge is pinned to their branch; everyone else chooses."""
    if not session.can_switch_branch:
        branch = session.default_branch()
        if branch:
            st.write(f"Branch: **{branch}**")
        else:
            st.warning("Your branch is not set. Ask admin to assign a Branch in the Users collection.")
        return branch

    remembered = st.session_state.get("pantry_branch") or session.default_branch()
    options = [""] + BRANCHES
    index = options.index(remembered) if remembered in options else 0
    branch = st.selectbox(
        "Select Branch",
        options=options,
        index=index,
        format_func=lambda b: b or "Select Branch",
    )
    st.session_state["pantry_branch"] = branch
    return branch or None
