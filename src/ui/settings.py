import sqlite3

import streamlit as st

from src.db import RATE_SOURCES, get_all_settings, save_settings


def render(conn: sqlite3.Connection) -> None:
    st.subheader("Settings")

    current = get_all_settings(conn)

    with st.form("settings_form"):
        col1, col2 = st.columns(2)
        with col1:
            rate_source = st.radio(
                "Rate source",
                options=list(RATE_SOURCES),
                index=list(RATE_SOURCES).index(current["rate_source"]),
                format_func=lambda value: "Manual values" if value == "manual" else "Market feed",
                horizontal=True,
            )
            gold_price = st.number_input(
                "24K gold price (INR/gram, manual)",
                min_value=0.0,
                value=float(current["gold_24k_inr_per_gram"]),
                step=50.0,
            )
            usd_to_inr = st.number_input(
                "USD to INR (manual)",
                min_value=0.01,
                value=float(current["usd_to_inr"]),
                step=0.25,
            )
            troy_oz_to_grams = st.number_input(
                "Troy oz to grams conversion",
                min_value=0.0001,
                value=float(current["troy_oz_to_grams"]),
                step=0.0001,
                format="%.7f",
            )

        with col2:
            overhead_pct = st.number_input(
                "Overhead (%)",
                min_value=0.0,
                max_value=100.0,
                value=float(current["overhead_pct"]),
                step=0.5,
                help="Markup applied to metal and stone cost.",
            )
            advance_pct = st.number_input(
                "Advance payment (%)",
                min_value=0.0,
                max_value=100.0,
                value=float(current["advance_pct"]),
                step=1.0,
            )
            cache_ttl = st.number_input(
                "Market rate refresh age (minutes)",
                min_value=1,
                max_value=1440,
                value=int(current["price_cache_ttl_minutes"]),
                step=1,
            )

        submitted = st.form_submit_button("Save settings", type="primary")

    if submitted:
        save_settings(
            conn,
            {
                "rate_source": rate_source,
                "gold_24k_inr_per_gram": gold_price,
                "usd_to_inr": usd_to_inr,
                "overhead_pct": overhead_pct,
                "advance_pct": advance_pct,
                "troy_oz_to_grams": troy_oz_to_grams,
                "price_cache_ttl_minutes": cache_ttl,
            },
        )
        st.success("Settings saved.")
