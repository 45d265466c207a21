"""
Re-prices every stored product against the current rate snapshot and saves
the live INR/USD totals. Products that cannot be priced live are left as-is.
"""

import logging
from pathlib import Path

from dotenv import load_dotenv

from src.catalog import require_current_rates
from src.db import get_connection, init_db, list_products, load_product_record, update_product_price
from src.pricing import quote_products


def main() -> None:
    load_dotenv(dotenv_path=Path(__file__).resolve().parents[1] / ".env")
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")

    conn = get_connection()
    init_db(conn)
    catalog = require_current_rates(conn)

    records = [load_product_record(row) for row in list_products(conn, limit=100_000)]
    updated = 0
    for record, quote in quote_products(records, catalog):
        if quote is None or not quote.is_live:
            continue
        update_product_price(conn, record.id, quote.price_inr, quote.price_usd)
        updated += 1
    print(f"Re-priced {updated} of {len(records)} products.")


if __name__ == "__main__":
    main()
