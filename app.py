from __future__ import annotations

import streamlit as st

from pantry.config import configure_logging, get_settings

st.set_page_config(page_title="Pantry Ledger", page_icon="🥫", layout="wide")
configure_logging(get_settings())

pages = [
    st.Page("home.py", title="Home", icon="🏠"),
    st.Page("pages/1_🛒_Purchases.py", title="Purchase / Stock", icon="🛒"),
    st.Page("pages/2_🍳_Consumption.py", title="Consumption", icon="🍳"),
    st.Page("pages/3_🧹_Maintenance.py", title="Maintenance", icon="🧹"),
    st.Page("pages/4_📤_Export.py", title="Export", icon="📤"),
    st.Page("pages/5_🧪_Data_Management.py", title="Data Management", icon="🧪"),
]

st.navigation(pages).run()
