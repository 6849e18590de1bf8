from __future__ import annotations

import streamlit as st

from pantry.config import get_settings
from pantry.db import get_store
from pantry.services.demo_data import upsert_reference_data
from pantry.session import current_session

st.set_page_config(page_title="Pantry Ledger", page_icon="🥫", layout="wide")

st.title("🥫 Pantry Ledger — Branch Grocery Inventory")
st.caption("One running row per item and branch for purchases and consumption, with an append-only history.")

settings = get_settings()
store = get_store(settings.db_path)
upsert_reference_data(store)

session = current_session(store)

with st.sidebar:
    st.subheader("Environment")
    st.write(f"**Data directory:** `{settings.data_dir}`")
    st.write(f"**Database:** `{settings.db_path.name}`")

if session is not None:
    st.subheader(session.greeting)

st.info(
    "Pick your user in the sidebar, then record bills in **Purchase / Stock** and daily usage in **Consumption**. "
    "Admins can merge duplicate rows in **Maintenance** and download Excel in **Export**.",
    icon="ℹ️",
)
