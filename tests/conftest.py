from decimal import Decimal

import pytest

from src.db import get_connection, init_db
from src.models import RateCatalog


@pytest.fixture
def conn(tmp_path):
    connection = get_connection(tmp_path / "pricing_test.db")
    init_db(connection)
    yield connection
    connection.close()


@pytest.fixture
def catalog() -> RateCatalog:
    return RateCatalog(
        metal_rates={"18k": Decimal("6000"), "silver": Decimal("90")},
        stone_rates={
            "ruby": Decimal("8000"),
            "pearl": Decimal("3000"),
            "sapphire": Decimal("12000"),
            "glass": Decimal("0"),
        },
        usd_to_inr=Decimal("83"),
        overhead_fraction=Decimal("0.25"),
        advance_fraction=Decimal("0.5"),
        metal_names={"18k": "18K Gold", "silver": "Sterling Silver"},
        stone_names={"ruby": "Ruby", "pearl": "Pearl", "sapphire": "Sapphire"},
    )
