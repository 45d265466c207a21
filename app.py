import logging
from pathlib import Path

import streamlit as st
from dotenv import load_dotenv

from src.db import get_connection, init_db
from src.ui import calculator, dashboard, metal_types, products, settings, stone_types


# Load environment variables from local .env file.
load_dotenv(dotenv_path=Path(__file__).parent / ".env")

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

st.set_page_config(page_title="Jewelry Pricing", page_icon="💍", layout="wide")


def main() -> None:
    st.title("💍 Jewelry Price Engine")
    st.caption("Metal and gemstone pricing in INR and USD with a two-part payment schedule")

    conn = get_connection()
    init_db(conn)

    page = st.sidebar.radio(
        "Navigate",
        [
            "Dashboard",
            "Price Calculator",
            "Products",
            "Metal Types",
            "Stone Types",
            "Settings",
        ],
    )

    if page == "Dashboard":
        dashboard.render(conn)
    elif page == "Price Calculator":
        calculator.render(conn)
    elif page == "Products":
        products.render(conn)
    elif page == "Metal Types":
        metal_types.render(conn)
    elif page == "Stone Types":
        stone_types.render(conn)
    elif page == "Settings":
        settings.render(conn)


if __name__ == "__main__":
    main()
