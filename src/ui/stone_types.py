import sqlite3

import pandas as pd
import streamlit as st

from src.db import (
    STONE_CSV_COLUMNS,
    add_stone_type,
    delete_stone_type,
    import_stone_types_from_df,
    list_stone_types,
    update_stone_type,
)


def render(conn: sqlite3.Connection) -> None:
    st.subheader("Stone Types")

    tab1, tab2, tab3 = st.tabs(["Catalog", "Add stone type", "CSV import/export"])

    with tab1:
        rows = list_stone_types(conn)
        if not rows:
            st.info("No stone types yet. Add your first stone type in the next tab.")
        else:
            df = pd.DataFrame(
                [
                    {
                        "id": int(row["id"]),
                        "name": row["name"],
                        "price_per_carat_inr": float(row["price_per_carat_inr"]),
                        "notes": row["notes"],
                    }
                    for row in rows
                ]
            )
            st.dataframe(df, width="stretch", hide_index=True)

            selected_id = st.selectbox(
                "Select stone type to edit/delete",
                options=[int(row["id"]) for row in rows],
                format_func=lambda sid: f"#{sid} - {next(r['name'] for r in rows if r['id'] == sid)}",
            )
            selected = next(row for row in rows if row["id"] == selected_id)

            with st.form("edit_stone_form"):
                name = st.text_input("Name", value=selected["name"])
                price = st.number_input(
                    "Price per carat (INR)",
                    min_value=0.0,
                    value=float(selected["price_per_carat_inr"]),
                )
                notes = st.text_area("Notes", value=selected["notes"] or "")
                save_edit = st.form_submit_button("Save changes", type="primary")

            delete_click = st.button("Delete stone type", type="secondary")

            if save_edit:
                try:
                    update_stone_type(
                        conn,
                        selected_id,
                        {"name": name, "price_per_carat_inr": price, "notes": notes},
                    )
                except sqlite3.IntegrityError:
                    st.error("A stone type with that name already exists.")
                else:
                    st.success("Stone type updated.")
                    st.rerun()

            if delete_click:
                delete_stone_type(conn, selected_id)
                st.success("Stone type deleted.")
                st.rerun()

    with tab2:
        with st.form("add_stone_form"):
            name = st.text_input("Name")
            price = st.number_input("Price per carat (INR)", min_value=0.0, value=0.0)
            notes = st.text_area("Notes")
            submit_add = st.form_submit_button("Add stone type", type="primary")

        if submit_add:
            if not name.strip():
                st.error("Name is required.")
            else:
                try:
                    add_stone_type(conn, {"name": name, "price_per_carat_inr": price, "notes": notes})
                except sqlite3.IntegrityError:
                    st.error("A stone type with that name already exists.")
                else:
                    st.success("Stone type added.")
                    st.rerun()

    with tab3:
        template_df = pd.DataFrame(
            [{"name": "Sapphire", "price_per_carat_inr": 3000, "notes": "Blue, heated"}],
            columns=STONE_CSV_COLUMNS,
        )
        st.download_button(
            "Download CSV template",
            data=template_df.to_csv(index=False).encode("utf-8"),
            file_name="stone_types_template.csv",
            mime="text/csv",
        )

        uploaded = st.file_uploader("Import stone types CSV", type=["csv"])
        if uploaded is not None:
            try:
                import_df = pd.read_csv(uploaded)
                count = import_stone_types_from_df(conn, import_df)
                st.success(f"Imported {count} stone types.")
                st.rerun()
            except (ValueError, pd.errors.ParserError) as exc:
                st.error(f"Failed to import CSV: {exc}")

        rows = list_stone_types(conn)
        if rows:
            export_df = pd.DataFrame([dict(row) for row in rows])
            st.download_button(
                "Export current stone types CSV",
                data=export_df[STONE_CSV_COLUMNS].to_csv(index=False).encode("utf-8"),
                file_name="stone_types_export.csv",
                mime="text/csv",
            )
