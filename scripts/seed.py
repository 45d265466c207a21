"""
Initialises the local SQLite database, ensures default settings exist and
seeds the default metal and stone types into empty tables.
Run this once before first use, or anytime to repair missing tables.
"""

from src.db import get_connection, init_db, seed_default_types


def main() -> None:
    conn = get_connection()
    init_db(conn)
    metals_added, stones_added = seed_default_types(conn)
    print(f"Database initialised successfully. Added {metals_added} metal types and {stones_added} stone types.")


if __name__ == "__main__":
    main()
