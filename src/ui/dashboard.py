import sqlite3
from datetime import UTC, datetime

import pandas as pd
import streamlit as st

from src.catalog import get_current_rates
from src.db import get_all_settings, get_cached_rates
from src.formatting import format_inr
from src.pricing import round_half_up
from src.providers.market_api import GOLD_SYMBOL, MARKET_SYMBOLS, USD_INR_SYMBOL


def _format_gmt_timestamp(timestamp_iso: str) -> str:
    try:
        parsed = datetime.fromisoformat(timestamp_iso)
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=UTC)
        return parsed.astimezone(UTC).strftime("%Y-%m-%d %H:%M:%S GMT")
    except ValueError:
        return timestamp_iso


def render(conn: sqlite3.Connection) -> None:
    st.subheader("Dashboard")
    settings = get_all_settings(conn)
    market_mode = settings["rate_source"] == "market"

    if market_mode:
        st.caption("Rates come from the market feed (cached in the local database).")
        refresh_now = st.button("Refresh market rates now", type="primary")
    else:
        st.caption("Rates come from the manual values in Settings.")
        refresh_now = False

    catalog, warning = get_current_rates(conn, force_refresh=refresh_now)
    if warning:
        st.warning(warning)

    if market_mode:
        cached = get_cached_rates(conn, MARKET_SYMBOLS)
        labels = {GOLD_SYMBOL: "24K gold (INR per troy oz)", USD_INR_SYMBOL: "USD to INR"}
        rows = []
        for symbol in MARKET_SYMBOLS:
            row = cached.get(symbol)
            rows.append(
                {
                    "Rate": labels[symbol],
                    "Value": f"{float(row['value_inr']):,.2f}" if row is not None else "No data",
                    "Fetched at (GMT)": _format_gmt_timestamp(row["fetched_at"]) if row is not None else "No data",
                    "Provider": row["provider"] if row is not None else "-",
                }
            )
        st.dataframe(pd.DataFrame(rows), width="stretch", hide_index=True)

    if catalog is None:
        st.error("No rate catalog: prices fall back to stored values marked as estimates.")
        return

    col1, col2, col3 = st.columns(3)
    col1.metric("USD to INR", f"{catalog.usd_to_inr:.2f}")
    col2.metric("Overhead", f"{catalog.overhead_fraction * 100:.1f}%")
    col3.metric("Advance payment", f"{catalog.advance_fraction * 100:.1f}%")

    metal_df = pd.DataFrame(
        [
            {"Metal": catalog.metal_label(metal_id), "Price per gram": format_inr(round_half_up(rate))}
            for metal_id, rate in catalog.metal_rates.items()
        ]
    )
    st.markdown("**Metal rates**")
    st.dataframe(metal_df, width="stretch", hide_index=True)

    if catalog.stone_rates:
        stone_df = pd.DataFrame(
            [
                {"Stone": catalog.stone_label(stone_id), "Price per carat": format_inr(round_half_up(rate))}
                for stone_id, rate in catalog.stone_rates.items()
            ]
        )
        st.markdown("**Stone rates**")
        st.dataframe(stone_df, width="stretch", hide_index=True)
