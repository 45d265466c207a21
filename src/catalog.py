import logging
import sqlite3
from decimal import Decimal
from typing import Any, Iterable

from src.db import get_all_settings, list_metal_types, list_stone_types
from src.errors import RateCatalogUnavailable
from src.models import RateCatalog, to_decimal
from src.providers.market_api import GOLD_SYMBOL, USD_INR_SYMBOL, get_market_rates_with_cache

logger = logging.getLogger(__name__)


def metal_rate_per_gram(metal_row: Any, gold_24k_inr_per_gram: Decimal) -> Decimal:
    override = metal_row["price_per_gram_inr"]
    if override is not None:
        return to_decimal(override)
    return gold_24k_inr_per_gram * to_decimal(metal_row["purity_pct"]) / 100


def build_rate_catalog(
    settings: dict[str, Any],
    metal_rows: Iterable[Any],
    stone_rows: Iterable[Any],
    gold_24k_inr_per_gram: float | None,
    usd_to_inr: float | None,
) -> RateCatalog | None:
    """Assembles a snapshot, or None if a required rate set is missing."""
    metal_rows = list(metal_rows)
    if not metal_rows:
        logger.warning("No metal types configured; rate catalog unavailable")
        return None
    if usd_to_inr is None or usd_to_inr <= 0:
        logger.warning("No usable USD to INR rate; rate catalog unavailable")
        return None

    gold = to_decimal(gold_24k_inr_per_gram) if gold_24k_inr_per_gram is not None else None
    needs_gold = any(row["price_per_gram_inr"] is None for row in metal_rows)
    if needs_gold and (gold is None or gold <= 0):
        logger.warning("No usable 24K gold price; rate catalog unavailable")
        return None

    return RateCatalog(
        metal_rates={str(row["id"]): metal_rate_per_gram(row, gold) for row in metal_rows},
        stone_rates={str(row["id"]): to_decimal(row["price_per_carat_inr"]) for row in stone_rows},
        usd_to_inr=to_decimal(usd_to_inr),
        overhead_fraction=to_decimal(settings["overhead_pct"]) / 100,
        advance_fraction=to_decimal(settings["advance_pct"]) / 100,
        metal_names={str(row["id"]): row["name"] for row in metal_rows},
        stone_names={str(row["id"]): row["name"] for row in stone_rows},
    )


def get_current_rates(
    conn: sqlite3.Connection,
    force_refresh: bool = False,
) -> tuple[RateCatalog | None, str | None]:
    """
    Returns the current rate snapshot and an optional warning for the UI.

    Manual mode reads gold and exchange rates from settings; market mode reads
    the market_rates cache, refreshing it when stale. Invalid settings yield
    None rather than a partially valid catalog.
    """
    settings = get_all_settings(conn)
    warning = None

    if settings["rate_source"] == "market":
        rates, warning = get_market_rates_with_cache(conn, force_refresh=force_refresh)
        gold_row = rates.get(GOLD_SYMBOL)
        usd_row = rates.get(USD_INR_SYMBOL)
        gold_per_gram = (
            float(gold_row["value_inr"]) / settings["troy_oz_to_grams"] if gold_row is not None else None
        )
        usd_to_inr = float(usd_row["value_inr"]) if usd_row is not None else None
    else:
        gold_per_gram = settings["gold_24k_inr_per_gram"]
        usd_to_inr = settings["usd_to_inr"]

    try:
        catalog = build_rate_catalog(
            settings,
            list_metal_types(conn),
            list_stone_types(conn),
            gold_per_gram,
            usd_to_inr,
        )
    except ValueError as exc:
        logger.warning("Rejected rate catalog: %s", exc)
        catalog = None
        warning = f"Rate settings are invalid: {exc}"

    if catalog is None and warning is None:
        warning = "Live prices unavailable: configure metal types and rates in Settings."
    return catalog, warning


def require_current_rates(conn: sqlite3.Connection) -> RateCatalog:
    catalog, warning = get_current_rates(conn)
    if catalog is None:
        raise RateCatalogUnavailable(warning or "No rate catalog available to price against")
    return catalog
