import json
import os
import sqlite3
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any

from src.models import ProductRecord
from src.pricing import parse_stored_price
from src.reconcile import materials_from_record, stored_price_from_record

DATA_DIR = Path(__file__).resolve().parents[1] / "data"
DB_PATH = DATA_DIR / "pricing.db"

RATE_SOURCES = ("manual", "market")

DEFAULT_SETTINGS: dict[str, str] = {
    "rate_source": "manual",
    "gold_24k_inr_per_gram": "7500",
    "usd_to_inr": "83",
    "overhead_pct": "25",
    "advance_pct": "50",
    "troy_oz_to_grams": "31.1034768",
    "price_cache_ttl_minutes": "60",
}

# Purity is a percentage of the 24K gold price; an explicit per-gram price wins.
DEFAULT_METAL_TYPES: list[dict[str, Any]] = [
    {"name": "24K Gold", "purity_pct": 100.0, "price_per_gram_inr": None},
    {"name": "22K Gold", "purity_pct": 91.0, "price_per_gram_inr": None},
    {"name": "18K Yellow Gold", "purity_pct": 75.0, "price_per_gram_inr": None},
    {"name": "18K White Gold", "purity_pct": 75.0, "price_per_gram_inr": None},
    {"name": "14K Gold", "purity_pct": 58.0, "price_per_gram_inr": None},
]

DEFAULT_STONE_TYPES: list[dict[str, Any]] = [
    {"name": "Natural Diamond", "price_per_carat_inr": 56000.0, "notes": ""},
    {"name": "Lab Grown Diamond", "price_per_carat_inr": 20000.0, "notes": ""},
    {"name": "Natural Polki", "price_per_carat_inr": 15000.0, "notes": ""},
    {"name": "Lab Polki", "price_per_carat_inr": 7000.0, "notes": ""},
    {"name": "Ruby", "price_per_carat_inr": 3000.0, "notes": ""},
    {"name": "Sapphire", "price_per_carat_inr": 3000.0, "notes": ""},
    {"name": "Emerald", "price_per_carat_inr": 3500.0, "notes": ""},
    {"name": "Tanzanite", "price_per_carat_inr": 1500.0, "notes": ""},
    {"name": "Amethyst", "price_per_carat_inr": 1500.0, "notes": ""},
    {"name": "South Sea Pearl", "price_per_carat_inr": 300.0, "notes": ""},
    {"name": "Pearl", "price_per_carat_inr": 100.0, "notes": ""},
    {"name": "CZ", "price_per_carat_inr": 1000.0, "notes": "Cubic zirconia / Swarovski"},
]

STONE_CSV_COLUMNS = ["name", "price_per_carat_inr", "notes"]

# Edit-form field -> key used inside details.additionalData.aiInputs.
FORM_TO_RECORD_KEYS: dict[str, str] = {
    "metal_type": "metalType",
    "metal_weight": "metalWeight",
    "main_stone_types": "mainStoneTypes",
    "main_stone_weight": "mainStoneWeight",
    "secondary_stone_types": "secondaryStoneTypes",
    "secondary_stone_weight": "secondaryStoneWeight",
    "other_stone_types": "otherStoneTypes",
    "other_stone_weight": "otherStoneWeight",
}


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def get_connection(db_path: Path | None = None) -> sqlite3.Connection:
    env_path = os.getenv("PRICING_DB_PATH", "").strip()
    target = db_path or (Path(env_path) if env_path else DB_PATH)
    target.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(target)
    conn.row_factory = sqlite3.Row
    return conn


def init_db(conn: sqlite3.Connection) -> None:
    cursor = conn.cursor()

    cursor.execute(
        """
        CREATE TABLE IF NOT EXISTS settings (
            key TEXT PRIMARY KEY,
            value TEXT NOT NULL,
            updated_at TEXT NOT NULL
        )
        """
    )

    cursor.execute(
        """
        CREATE TABLE IF NOT EXISTS market_rates (
            symbol TEXT PRIMARY KEY,
            value_inr REAL NOT NULL,
            fetched_at TEXT NOT NULL,
            provider TEXT NOT NULL
        )
        """
    )

    cursor.execute(
        """
        CREATE TABLE IF NOT EXISTS metal_types (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            name TEXT NOT NULL UNIQUE,
            purity_pct REAL NOT NULL,
            price_per_gram_inr REAL,
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL
        )
        """
    )

    cursor.execute(
        """
        CREATE TABLE IF NOT EXISTS stone_types (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            name TEXT NOT NULL UNIQUE,
            price_per_carat_inr REAL NOT NULL,
            notes TEXT,
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL
        )
        """
    )

    cursor.execute(
        """
        CREATE TABLE IF NOT EXISTS products (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            name TEXT NOT NULL,
            details_json TEXT NOT NULL,
            base_price INTEGER,
            price_usd INTEGER,
            priced_at TEXT,
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL
        )
        """
    )

    for key, value in DEFAULT_SETTINGS.items():
        cursor.execute(
            """
            INSERT OR IGNORE INTO settings (key, value, updated_at)
            VALUES (?, ?, ?)
            """,
            (key, value, utc_now_iso()),
        )

    conn.commit()


def seed_default_types(conn: sqlite3.Connection) -> tuple[int, int]:
    """Inserts the default metal and stone types into empty tables. Returns counts added."""
    metals_added = 0
    stones_added = 0
    if not list_metal_types(conn):
        for metal in DEFAULT_METAL_TYPES:
            add_metal_type(conn, metal)
            metals_added += 1
    if not list_stone_types(conn):
        for stone in DEFAULT_STONE_TYPES:
            add_stone_type(conn, stone)
            stones_added += 1
    return metals_added, stones_added


def get_all_settings(conn: sqlite3.Connection) -> dict[str, Any]:
    rows = conn.execute("SELECT key, value FROM settings").fetchall()
    raw = {row["key"]: row["value"] for row in rows}

    def get_float(key: str) -> float:
        try:
            return float(raw.get(key, DEFAULT_SETTINGS[key]))
        except (TypeError, ValueError):
            return float(DEFAULT_SETTINGS[key])

    rate_source = raw.get("rate_source", DEFAULT_SETTINGS["rate_source"])
    if rate_source not in RATE_SOURCES:
        rate_source = DEFAULT_SETTINGS["rate_source"]

    return {
        "rate_source": rate_source,
        "gold_24k_inr_per_gram": get_float("gold_24k_inr_per_gram"),
        "usd_to_inr": get_float("usd_to_inr"),
        "overhead_pct": get_float("overhead_pct"),
        "advance_pct": get_float("advance_pct"),
        "troy_oz_to_grams": get_float("troy_oz_to_grams"),
        "price_cache_ttl_minutes": int(get_float("price_cache_ttl_minutes")),
    }


def save_settings(conn: sqlite3.Connection, settings: dict[str, Any]) -> None:
    now = utc_now_iso()
    if settings["rate_source"] not in RATE_SOURCES:
        raise ValueError(f"rate_source must be one of {', '.join(RATE_SOURCES)}")
    payload = {
        "rate_source": str(settings["rate_source"]),
        "gold_24k_inr_per_gram": str(settings["gold_24k_inr_per_gram"]),
        "usd_to_inr": str(settings["usd_to_inr"]),
        "overhead_pct": str(settings["overhead_pct"]),
        "advance_pct": str(settings["advance_pct"]),
        "troy_oz_to_grams": str(settings["troy_oz_to_grams"]),
        "price_cache_ttl_minutes": str(settings["price_cache_ttl_minutes"]),
    }

    for key, value in payload.items():
        conn.execute(
            """
            INSERT INTO settings (key, value, updated_at)
            VALUES (?, ?, ?)
            ON CONFLICT(key) DO UPDATE SET value = excluded.value, updated_at = excluded.updated_at
            """,
            (key, value, now),
        )
    conn.commit()


def get_cached_rates(conn: sqlite3.Connection, symbols: list[str]) -> dict[str, sqlite3.Row]:
    placeholders = ",".join("?" for _ in symbols)
    rows = conn.execute(
        f"SELECT symbol, value_inr, fetched_at, provider FROM market_rates WHERE symbol IN ({placeholders})",
        symbols,
    ).fetchall()
    return {row["symbol"]: row for row in rows}


def save_rate(conn: sqlite3.Connection, symbol: str, value_inr: float, provider: str) -> None:
    conn.execute(
        """
        INSERT INTO market_rates (symbol, value_inr, fetched_at, provider)
        VALUES (?, ?, ?, ?)
        ON CONFLICT(symbol)
        DO UPDATE SET
            value_inr = excluded.value_inr,
            fetched_at = excluded.fetched_at,
            provider = excluded.provider
        """,
        (symbol, value_inr, utc_now_iso(), provider),
    )
    conn.commit()


def is_price_fresh(fetched_at_iso: str, max_age_minutes: int) -> bool:
    try:
        fetched_at = datetime.fromisoformat(fetched_at_iso)
    except ValueError:
        return False
    if fetched_at.tzinfo is None:
        fetched_at = fetched_at.replace(tzinfo=timezone.utc)
    return datetime.now(timezone.utc) - fetched_at <= timedelta(minutes=max_age_minutes)


def list_metal_types(conn: sqlite3.Connection) -> list[sqlite3.Row]:
    return conn.execute("SELECT * FROM metal_types ORDER BY purity_pct DESC, name").fetchall()


def add_metal_type(conn: sqlite3.Connection, metal: dict[str, Any]) -> int:
    now = utc_now_iso()
    cursor = conn.execute(
        """
        INSERT INTO metal_types (name, purity_pct, price_per_gram_inr, created_at, updated_at)
        VALUES (?, ?, ?, ?, ?)
        """,
        (
            metal["name"].strip(),
            float(metal["purity_pct"]),
            metal.get("price_per_gram_inr"),
            now,
            now,
        ),
    )
    conn.commit()
    return int(cursor.lastrowid)


def update_metal_type(conn: sqlite3.Connection, metal_type_id: int, metal: dict[str, Any]) -> None:
    conn.execute(
        """
        UPDATE metal_types
        SET name = ?, purity_pct = ?, price_per_gram_inr = ?, updated_at = ?
        WHERE id = ?
        """,
        (
            metal["name"].strip(),
            float(metal["purity_pct"]),
            metal.get("price_per_gram_inr"),
            utc_now_iso(),
            metal_type_id,
        ),
    )
    conn.commit()


def delete_metal_type(conn: sqlite3.Connection, metal_type_id: int) -> None:
    conn.execute("DELETE FROM metal_types WHERE id = ?", (metal_type_id,))
    conn.commit()


def list_stone_types(conn: sqlite3.Connection) -> list[sqlite3.Row]:
    return conn.execute("SELECT * FROM stone_types ORDER BY name").fetchall()


def add_stone_type(conn: sqlite3.Connection, stone: dict[str, Any]) -> int:
    now = utc_now_iso()
    cursor = conn.execute(
        """
        INSERT INTO stone_types (name, price_per_carat_inr, notes, created_at, updated_at)
        VALUES (?, ?, ?, ?, ?)
        """,
        (
            stone["name"].strip(),
            float(stone["price_per_carat_inr"]),
            stone.get("notes", ""),
            now,
            now,
        ),
    )
    conn.commit()
    return int(cursor.lastrowid)


def update_stone_type(conn: sqlite3.Connection, stone_type_id: int, stone: dict[str, Any]) -> None:
    conn.execute(
        """
        UPDATE stone_types
        SET name = ?, price_per_carat_inr = ?, notes = ?, updated_at = ?
        WHERE id = ?
        """,
        (
            stone["name"].strip(),
            float(stone["price_per_carat_inr"]),
            stone.get("notes", ""),
            utc_now_iso(),
            stone_type_id,
        ),
    )
    conn.commit()


def delete_stone_type(conn: sqlite3.Connection, stone_type_id: int) -> None:
    conn.execute("DELETE FROM stone_types WHERE id = ?", (stone_type_id,))
    conn.commit()


def import_stone_types_from_df(conn: sqlite3.Connection, df: Any) -> int:
    """Adds new stone types and updates the price of existing ones (matched by name)."""
    import pandas as pd

    missing = [column for column in STONE_CSV_COLUMNS if column not in df.columns]
    if missing:
        raise ValueError(f"Missing required columns: {', '.join(missing)}")

    existing = {row["name"]: int(row["id"]) for row in list_stone_types(conn)}
    imported = 0
    for _, row in df.iterrows():
        stone = {
            "name": str(row["name"]).strip(),
            "price_per_carat_inr": float(row["price_per_carat_inr"]),
            "notes": "" if pd.isna(row["notes"]) else str(row["notes"]),
        }
        if not stone["name"]:
            continue
        if stone["price_per_carat_inr"] < 0:
            raise ValueError(f"Negative price for stone type {stone['name']!r}")
        if stone["name"] in existing:
            update_stone_type(conn, existing[stone["name"]], stone)
        else:
            existing[stone["name"]] = add_stone_type(conn, stone)
        imported += 1
    return imported


def _details_from_inputs(inputs: dict[str, Any], price_inr: int | None) -> dict[str, Any]:
    ai_inputs = {
        record_key: inputs[form_key]
        for form_key, record_key in FORM_TO_RECORD_KEYS.items()
        if form_key in inputs
    }
    additional_data: dict[str, Any] = {"aiInputs": ai_inputs}
    if price_inr is not None:
        additional_data["basePriceINR"] = price_inr
    return {"additionalData": additional_data}


def save_product(
    conn: sqlite3.Connection,
    name: str,
    inputs: dict[str, Any],
    price_inr: int | None = None,
    price_usd: int | None = None,
    product_id: int | None = None,
) -> int:
    """Writes a product in the canonical details shape. Inserts when product_id is None."""
    now = utc_now_iso()
    details_json = json.dumps(_details_from_inputs(inputs, price_inr))
    priced_at = now if price_inr is not None else None

    if product_id is None:
        cursor = conn.execute(
            """
            INSERT INTO products (name, details_json, base_price, price_usd, priced_at, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (name.strip(), details_json, price_inr, price_usd, priced_at, now, now),
        )
        conn.commit()
        return int(cursor.lastrowid)

    conn.execute(
        """
        UPDATE products
        SET name = ?, details_json = ?, base_price = ?, price_usd = ?, priced_at = ?, updated_at = ?
        WHERE id = ?
        """,
        (name.strip(), details_json, price_inr, price_usd, priced_at, now, product_id),
    )
    conn.commit()
    return product_id


def update_product_price(conn: sqlite3.Connection, product_id: int, price_inr: int, price_usd: int) -> None:
    row = get_product(conn, product_id)
    if row is None:
        raise ValueError(f"Product {product_id} not found")

    details = json.loads(row["details_json"] or "{}")
    additional_data = details.get("additionalData")
    if not isinstance(additional_data, dict):
        additional_data = {}
        details["additionalData"] = additional_data
    additional_data["basePriceINR"] = price_inr

    now = utc_now_iso()
    conn.execute(
        """
        UPDATE products
        SET details_json = ?, base_price = ?, price_usd = ?, priced_at = ?, updated_at = ?
        WHERE id = ?
        """,
        (json.dumps(details), price_inr, price_usd, now, now, product_id),
    )
    conn.commit()


def get_product(conn: sqlite3.Connection, product_id: int) -> sqlite3.Row | None:
    return conn.execute("SELECT * FROM products WHERE id = ?", (product_id,)).fetchone()


def list_products(conn: sqlite3.Connection, limit: int = 500) -> list[sqlite3.Row]:
    return conn.execute(
        "SELECT * FROM products ORDER BY name, id LIMIT ?",
        (limit,),
    ).fetchall()


def delete_product(conn: sqlite3.Connection, product_id: int) -> None:
    conn.execute("DELETE FROM products WHERE id = ?", (product_id,))
    conn.commit()


def product_source(row: sqlite3.Row) -> dict[str, Any]:
    return {"details": row["details_json"], "base_price": row["base_price"]}


def load_product_record(row: sqlite3.Row) -> ProductRecord:
    source = product_source(row)
    metal, gems = materials_from_record(source)
    stored = stored_price_from_record(source)
    stored_price_inr = parse_stored_price(stored)
    return ProductRecord(
        id=int(row["id"]),
        name=row["name"],
        metal=metal,
        gems=tuple(gems),
        stored_price_inr=stored_price_inr,
        stored_price_usd=int(row["price_usd"]) if row["price_usd"] is not None else None,
        priced_at=row["priced_at"],
    )
