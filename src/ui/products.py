import sqlite3

import pandas as pd
import streamlit as st

from src.catalog import get_current_rates
from src.db import delete_product, list_products, load_product_record, product_source, save_product, update_product_price
from src.errors import UnknownMetalType
from src.formatting import format_inr, format_quote_price
from src.models import STONE_ROLES
from src.pricing import gem_selections_from_form, metal_spec_from_form, quote_live, quote_products
from src.reconcile import material_inputs_from_record
from src.ui.quote_view import render_material_inputs, render_quote


def _render_product_list(conn: sqlite3.Connection, rows: list[sqlite3.Row], catalog) -> None:
    records = [load_product_record(row) for row in rows]
    # One snapshot for the whole list so every row is priced consistently.
    priced = quote_products(records, catalog)

    table = []
    for record, quote in priced:
        drift = record.price_drift(quote) if quote is not None and quote.is_live else None
        table.append(
            {
                "id": record.id,
                "Product": record.name,
                "Price (INR)": format_quote_price(quote, "INR") if quote else "Cannot price",
                "Price (USD)": format_quote_price(quote, "USD") if quote else "Cannot price",
                "Saved price (INR)": format_inr(record.stored_price_inr),
                "Change since save": format_inr(drift) if drift else "-",
                "Priced at": record.priced_at or "-",
            }
        )
    st.dataframe(pd.DataFrame(table), width="stretch", hide_index=True)

    live = [(record, quote) for record, quote in priced if quote is not None and quote.is_live]
    if live and st.button("Save live prices for all products", type="primary"):
        for record, quote in live:
            update_product_price(conn, record.id, quote.price_inr, quote.price_usd)
        st.success(f"Saved live prices for {len(live)} products.")
        st.rerun()


def _render_editor(conn: sqlite3.Connection, catalog, row: sqlite3.Row | None) -> None:
    key_prefix = f"product_{row['id']}" if row is not None else "product_new"
    defaults = material_inputs_from_record(product_source(row)) if row is not None else {}

    name = st.text_input("Product name", value=row["name"] if row is not None else "", key=f"{key_prefix}_name")
    inputs = render_material_inputs(catalog, key_prefix=key_prefix, defaults=defaults)

    metal = metal_spec_from_form(inputs["metal_type"], inputs["metal_weight"])
    gems = []
    for role in STONE_ROLES:
        gems.extend(
            gem_selections_from_form(role, inputs[f"{role}_stone_types"], inputs[f"{role}_stone_weight"])
        )

    try:
        quote = quote_live(metal, gems, catalog)
    except UnknownMetalType as exc:
        st.error(f"Cannot price this product: {exc}. Saving is disabled until a priced metal is selected.")
        return

    render_quote(quote)

    save_label = "Save product" if row is None else "Save changes"
    if st.button(save_label, type="primary", key=f"{key_prefix}_save"):
        if not name.strip():
            st.error("Product name is required.")
            return
        save_product(
            conn,
            name,
            inputs,
            price_inr=quote.price_inr,
            price_usd=quote.price_usd,
            product_id=int(row["id"]) if row is not None else None,
        )
        st.success("Product saved.")
        st.rerun()


def render(conn: sqlite3.Connection) -> None:
    st.subheader("Products")

    catalog, warning = get_current_rates(conn)
    if warning:
        st.warning(warning)

    rows = list_products(conn)
    tab1, tab2, tab3 = st.tabs(["Price list", "Edit product", "Add product"])

    with tab1:
        if not rows:
            st.info("No products yet. Add one in the 'Add product' tab.")
        else:
            _render_product_list(conn, rows, catalog)

    with tab2:
        if not rows:
            st.info("No products to edit.")
        elif catalog is None:
            st.error("Editing needs live rates. Configure metal types and rates first.")
        else:
            selected_id = st.selectbox(
                "Select product",
                options=[int(row["id"]) for row in rows],
                format_func=lambda pid: f"#{pid} - {next(r['name'] for r in rows if r['id'] == pid)}",
            )
            selected = next(row for row in rows if row["id"] == selected_id)
            _render_editor(conn, catalog, selected)
            if st.button("Delete product", type="secondary"):
                delete_product(conn, selected_id)
                st.success("Product deleted.")
                st.rerun()

    with tab3:
        if catalog is None:
            st.error("Adding products needs live rates. Configure metal types and rates first.")
        else:
            _render_editor(conn, catalog, None)
