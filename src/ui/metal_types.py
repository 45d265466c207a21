import sqlite3

import pandas as pd
import streamlit as st

from src.db import add_metal_type, delete_metal_type, list_metal_types, update_metal_type


def _override_or_none(use_override: bool, value: float) -> float | None:
    return float(value) if use_override else None


def render(conn: sqlite3.Connection) -> None:
    st.subheader("Metal Types")
    st.caption(
        "Price per gram is the 24K gold price times purity, unless a fixed price per gram is set "
        "(use that for silver or platinum)."
    )

    tab1, tab2 = st.tabs(["Catalog", "Add metal type"])

    with tab1:
        rows = list_metal_types(conn)
        if not rows:
            st.info("No metal types yet. Add one in the next tab or run scripts/seed.py.")
        else:
            df = pd.DataFrame(
                [
                    {
                        "id": int(row["id"]),
                        "name": row["name"],
                        "purity_pct": float(row["purity_pct"]),
                        "price_per_gram_inr": row["price_per_gram_inr"],
                    }
                    for row in rows
                ]
            )
            st.dataframe(df, width="stretch", hide_index=True)

            selected_id = st.selectbox(
                "Select metal type to edit/delete",
                options=[int(row["id"]) for row in rows],
                format_func=lambda mid: f"#{mid} - {next(r['name'] for r in rows if r['id'] == mid)}",
            )
            selected = next(row for row in rows if row["id"] == selected_id)

            with st.form("edit_metal_form"):
                name = st.text_input("Name", value=selected["name"])
                purity = st.number_input(
                    "Purity (% of 24K)",
                    min_value=0.0,
                    max_value=100.0,
                    value=float(selected["purity_pct"]),
                )
                use_override = st.checkbox(
                    "Fixed price per gram",
                    value=selected["price_per_gram_inr"] is not None,
                )
                override = st.number_input(
                    "Price per gram (INR)",
                    min_value=0.0,
                    value=float(selected["price_per_gram_inr"] or 0.0),
                )
                save_edit = st.form_submit_button("Save changes", type="primary")

            delete_click = st.button("Delete metal type", type="secondary")

            if save_edit:
                try:
                    update_metal_type(
                        conn,
                        selected_id,
                        {
                            "name": name,
                            "purity_pct": purity,
                            "price_per_gram_inr": _override_or_none(use_override, override),
                        },
                    )
                except sqlite3.IntegrityError:
                    st.error("A metal type with that name already exists.")
                else:
                    st.success("Metal type updated.")
                    st.rerun()

            if delete_click:
                delete_metal_type(conn, selected_id)
                st.success("Metal type deleted.")
                st.rerun()

    with tab2:
        with st.form("add_metal_form"):
            name = st.text_input("Name")
            purity = st.number_input("Purity (% of 24K)", min_value=0.0, max_value=100.0, value=75.0)
            use_override = st.checkbox("Fixed price per gram", value=False)
            override = st.number_input("Price per gram (INR)", min_value=0.0, value=0.0)
            submit_add = st.form_submit_button("Add metal type", type="primary")

        if submit_add:
            if not name.strip():
                st.error("Name is required.")
            else:
                try:
                    add_metal_type(
                        conn,
                        {
                            "name": name,
                            "purity_pct": purity,
                            "price_per_gram_inr": _override_or_none(use_override, override),
                        },
                    )
                except sqlite3.IntegrityError:
                    st.error("A metal type with that name already exists.")
                else:
                    st.success("Metal type added.")
                    st.rerun()
