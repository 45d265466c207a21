import json
import sqlite3

import streamlit as st

from src.catalog import get_current_rates
from src.errors import UnknownMetalType
from src.models import STONE_ROLES
from src.pricing import gem_selections_from_form, metal_spec_from_form, quote_live
from src.ui.quote_view import render_material_inputs, render_quote


def render(conn: sqlite3.Connection) -> None:
    st.subheader("Price Calculator")

    catalog, warning = get_current_rates(conn)
    if warning:
        st.warning(warning)
    if catalog is None:
        st.error("No rate catalog available. Configure metal types and rates first.")
        return

    inputs = render_material_inputs(catalog, key_prefix="calculator")

    metal = metal_spec_from_form(inputs["metal_type"], inputs["metal_weight"])
    gems = []
    for role in STONE_ROLES:
        gems.extend(
            gem_selections_from_form(role, inputs[f"{role}_stone_types"], inputs[f"{role}_stone_weight"])
        )

    try:
        quote = quote_live(metal, gems, catalog)
    except UnknownMetalType as exc:
        st.error(f"Cannot price this piece: {exc}")
        return

    render_quote(quote)
    st.download_button(
        "Download quote JSON",
        data=json.dumps(quote.to_dict(), indent=2).encode("utf-8"),
        file_name="price_quote.json",
        mime="application/json",
    )
