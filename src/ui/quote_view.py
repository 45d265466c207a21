from typing import Any

import pandas as pd
import streamlit as st

from src.formatting import format_inr, format_quote_price, format_usd
from src.models import PriceQuote, RateCatalog
from src.pricing import round_half_up, round_money

NONE_OPTION = "none_selected"


def _options_with_none(names: dict[str, str]) -> list[str]:
    return [NONE_OPTION] + list(names.keys())


def render_material_inputs(
    catalog: RateCatalog,
    key_prefix: str,
    defaults: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """
    Renders the metal and stone widgets and returns raw form values.

    Weights are text inputs so they reach the engine's parser unchanged.
    """
    defaults = defaults or {}
    metal_names = dict(catalog.metal_names)
    stone_names = dict(catalog.stone_names)

    def label_for(names: dict[str, str]):
        return lambda option: "None" if option == NONE_OPTION else names.get(option, option)

    def stone_defaults(role: str) -> list[str]:
        return [stone for stone in defaults.get(f"{role}_stone_types", []) if stone in stone_names]

    metal_options = _options_with_none(metal_names)
    default_metal = defaults.get("metal_type")
    col1, col2 = st.columns(2)
    with col1:
        metal_type = st.selectbox(
            "Metal type",
            options=metal_options,
            index=metal_options.index(default_metal) if default_metal in metal_options else 0,
            format_func=label_for(metal_names),
            key=f"{key_prefix}_metal_type",
        )
        metal_weight = st.text_input(
            "Metal weight (grams)",
            value=str(defaults.get("metal_weight", "0")),
            key=f"{key_prefix}_metal_weight",
        )
        main_options = _options_with_none(stone_names)
        main_default = stone_defaults("main")
        main_stone = st.selectbox(
            "Main stone",
            options=main_options,
            index=main_options.index(main_default[0]) if main_default else 0,
            format_func=label_for(stone_names),
            key=f"{key_prefix}_main_stone",
        )
        main_weight = st.text_input(
            "Main stone weight (carats)",
            value=str(defaults.get("main_stone_weight", "0")),
            key=f"{key_prefix}_main_weight",
        )

    with col2:
        secondary_stones = st.multiselect(
            "Secondary stones",
            options=list(stone_names.keys()),
            default=stone_defaults("secondary"),
            format_func=label_for(stone_names),
            key=f"{key_prefix}_secondary_stones",
            help="The total weight is shared evenly across the selected stones.",
        )
        secondary_weight = st.text_input(
            "Secondary stones total weight (carats)",
            value=str(defaults.get("secondary_stone_weight", "0")),
            key=f"{key_prefix}_secondary_weight",
        )
        other_stones = st.multiselect(
            "Other stones",
            options=list(stone_names.keys()),
            default=stone_defaults("other"),
            format_func=label_for(stone_names),
            key=f"{key_prefix}_other_stones",
        )
        other_weight = st.text_input(
            "Other stones total weight (carats)",
            value=str(defaults.get("other_stone_weight", "0")),
            key=f"{key_prefix}_other_weight",
        )

    return {
        "metal_type": metal_type,
        "metal_weight": metal_weight,
        "main_stone_types": [main_stone],
        "main_stone_weight": main_weight,
        "secondary_stone_types": list(secondary_stones),
        "secondary_stone_weight": secondary_weight,
        "other_stone_types": list(other_stones),
        "other_stone_weight": other_weight,
    }


def render_quote(quote: PriceQuote) -> None:
    if not quote.is_live:
        st.warning("Live pricing unavailable. Showing the last saved price as an estimate.")

    if quote.lines:
        df = pd.DataFrame(
            [
                {
                    "Component": line.label,
                    "Quantity": round_money(float(line.quantity)),
                    "Unit price (INR)": round_money(float(line.unit_price)),
                    "Subtotal (INR)": round_money(float(line.subtotal)),
                }
                for line in quote.lines
            ]
        )
        st.dataframe(df, width="stretch", hide_index=True)
        st.caption(
            f"Materials {format_inr(round_half_up(quote.subtotal_before_overhead))} + "
            f"overhead {format_inr(round_half_up(quote.overhead_amount))}"
        )

    col1, col2, col3, col4 = st.columns(4)
    col1.metric("Price (INR)", format_quote_price(quote, "INR"))
    col2.metric("Price (USD)", format_quote_price(quote, "USD"))
    col3.metric("Advance", format_inr(quote.advance_payment))
    col4.metric("Remaining", format_inr(quote.remaining_payment))
    if not quote.is_live:
        st.caption(f"USD converted at the fallback rate; {format_usd(quote.price_usd)} is approximate.")
