from decimal import Decimal

import pytest

from src.errors import RateCatalogUnavailable, UnknownMetalType
from src.models import GemSelection, MetalSpec, ProductRecord, RateCatalog
from src.pricing import (
    FALLBACK_USD_TO_INR,
    payment_schedule,
    quote_live,
    quote_or_fallback,
    quote_products,
    round_half_up,
)


def _metal(metal_type_id="18k", grams="5"):
    return MetalSpec(metal_type_id=metal_type_id, weight_grams=Decimal(grams))


def _gem(stone_type_id, role, carats):
    return GemSelection(stone_type_id=stone_type_id, role=role, total_carats=Decimal(carats))


def test_gold_and_ruby_example(catalog):
    quote = quote_live(_metal(), [_gem("ruby", "main", "1.2")], catalog)

    assert quote.lines[0].subtotal == Decimal("30000")
    assert quote.lines[1].subtotal == Decimal("9600")
    assert quote.subtotal_before_overhead == Decimal("39600")
    assert quote.price_inr == 49500
    assert quote.price_usd == 596
    assert quote.advance_payment == 24750
    assert quote.remaining_payment == 24750
    assert quote.is_live is True


def test_secondary_stones_share_total_weight(catalog):
    gems = [_gem("pearl", "secondary", "2.0"), _gem("sapphire", "secondary", "2.0")]
    quote = quote_live(_metal(grams="0"), gems, catalog)

    secondary = quote.lines[1]
    assert secondary.subtotal == Decimal("15000")
    assert secondary.quantity == Decimal("2.0")
    assert secondary.unit_price == Decimal("7500.00")
    assert secondary.label == "Secondary stones: Pearl, Sapphire"


def test_duplicate_stone_in_bucket_is_counted_once(catalog):
    gems = [_gem("pearl", "secondary", "2"), _gem("pearl", "secondary", "2")]
    quote = quote_live(_metal(grams="0"), gems, catalog)
    assert quote.subtotal_before_overhead == Decimal("6000")


def test_selections_with_different_totals_are_priced_independently(catalog):
    gems = [_gem("ruby", "main", "1"), _gem("pearl", "main", "2")]
    quote = quote_live(_metal(grams="0"), gems, catalog)
    assert quote.subtotal_before_overhead == Decimal("14000")


def test_zero_weights_price_to_zero(catalog):
    gems = [_gem("ruby", "main", "0"), _gem("pearl", "secondary", "0")]
    quote = quote_live(_metal(grams="0"), gems, catalog)

    assert quote.subtotal_before_overhead == 0
    assert quote.price_inr == 0
    assert quote.price_usd == 0
    assert quote.advance_payment == 0
    assert quote.remaining_payment == 0
    assert len(quote.lines) == 1


def test_unknown_metal_raises(catalog):
    with pytest.raises(UnknownMetalType) as excinfo:
        quote_live(_metal("platinum"), [], catalog)
    assert excinfo.value.metal_type_id == "platinum"


def test_missing_metal_raises(catalog):
    with pytest.raises(UnknownMetalType):
        quote_live(None, [_gem("ruby", "main", "1")], catalog)
    with pytest.raises(UnknownMetalType):
        quote_live(_metal(None), [], catalog)


def test_unknown_and_absent_stones_contribute_nothing(catalog):
    gems = [_gem("unobtainium", "main", "3"), _gem(None, "other", "2")]
    quote = quote_live(_metal(), gems, catalog)

    assert quote.subtotal_before_overhead == Decimal("30000")
    assert [line.label for line in quote.lines] == ["Metal: 18K Gold"]


def test_unknown_stone_does_not_dilute_shared_weight(catalog):
    gems = [_gem("pearl", "secondary", "2"), _gem("legacy-name", "secondary", "2")]
    quote = quote_live(_metal(grams="0"), gems, catalog)
    assert quote.subtotal_before_overhead == Decimal("6000")


def test_zero_rate_bucket_emits_no_line(catalog):
    quote = quote_live(_metal(), [_gem("glass", "other", "4")], catalog)
    assert len(quote.lines) == 1


def test_no_catalog_raises_unavailable():
    with pytest.raises(RateCatalogUnavailable):
        quote_live(_metal(), [], None)


def test_quote_is_deterministic(catalog):
    gems = [_gem("ruby", "main", "1.37"), _gem("pearl", "secondary", "0.9"), _gem("sapphire", "secondary", "0.9")]
    first = quote_live(_metal(grams="7.31"), gems, catalog)
    second = quote_live(_metal(grams="7.31"), gems, catalog)
    assert first == second
    assert first.to_dict() == second.to_dict()


@pytest.mark.parametrize(
    "grams, carats, overhead, advance, usd_to_inr",
    [
        ("1.11", "0.33", "0.25", "0.5", "83"),
        ("12.345", "2.71", "0.18", "0.3", "83.47"),
        ("0.01", "0.01", "0", "1", "90"),
        ("250", "15.5", "1", "0", "52.5"),
        ("3.333", "1.111", "0.125", "0.333", "81.2"),
    ],
)
def test_payment_and_currency_invariants(grams, carats, overhead, advance, usd_to_inr):
    catalog = RateCatalog(
        metal_rates={"m": Decimal("6543.21")},
        stone_rates={"s": Decimal("1234.5"), "t": Decimal("777")},
        usd_to_inr=Decimal(usd_to_inr),
        overhead_fraction=Decimal(overhead),
        advance_fraction=Decimal(advance),
    )
    gems = [_gem("s", "main", carats), _gem("s", "other", carats), _gem("t", "other", carats)]
    quote = quote_live(_metal("m", grams), gems, catalog)

    assert quote.advance_payment + quote.remaining_payment == quote.price_inr
    assert quote.advance_payment == round_half_up(Decimal(quote.price_inr) * Decimal(advance))
    assert quote.price_usd == round_half_up(Decimal(quote.price_inr) / Decimal(usd_to_inr))
    assert quote.price_inr == round_half_up(quote.subtotal_before_overhead * (1 + Decimal(overhead)))


def test_rounding_is_half_up():
    assert round_half_up(Decimal("2.5")) == 3
    assert round_half_up(Decimal("3.5")) == 4
    assert round_half_up(Decimal("2.4999")) == 2


def test_payment_schedule_odd_total():
    advance, remaining = payment_schedule(49501, Decimal("0.5"))
    assert advance == 24751
    assert remaining == 24750


def test_fallback_without_catalog():
    quote = quote_or_fallback(_metal(), [], None, 175000)

    assert quote.price_inr == 175000
    assert quote.price_usd == round_half_up(Decimal(175000) / FALLBACK_USD_TO_INR)
    assert quote.price_usd == 2108
    assert quote.is_live is False
    assert quote.lines == ()
    assert quote.advance_payment + quote.remaining_payment == 175000


def test_fallback_on_unknown_metal_uses_catalog_advance(catalog):
    catalog = RateCatalog(
        metal_rates=dict(catalog.metal_rates),
        stone_rates=dict(catalog.stone_rates),
        usd_to_inr=catalog.usd_to_inr,
        advance_fraction=Decimal("0.3"),
    )
    quote = quote_or_fallback(_metal("platinum"), [], catalog, "100000")
    assert quote.is_live is False
    assert quote.price_inr == 100000
    assert quote.advance_payment == 30000
    assert quote.remaining_payment == 70000


def test_fallback_prefers_live_quote(catalog):
    quote = quote_or_fallback(_metal(), [_gem("ruby", "main", "1.2")], catalog, 175000)
    assert quote.is_live is True
    assert quote.price_inr == 49500


def test_fallback_without_stored_price_reraises(catalog):
    with pytest.raises(UnknownMetalType):
        quote_or_fallback(_metal("platinum"), [], catalog, None)
    with pytest.raises(RateCatalogUnavailable):
        quote_or_fallback(_metal(), [], None, None)


def test_quote_products_uses_one_snapshot(catalog):
    records = [
        ProductRecord(1, "Ring", _metal(), (_gem("ruby", "main", "1.2"),), 40000, 480, None),
        ProductRecord(2, "Legacy pendant", None, (), 175000, 2100, None),
        ProductRecord(3, "Unpriced", _metal("platinum"), (), None, None, None),
    ]
    results = quote_products(records, catalog)

    ring, pendant, unpriced = (quote for _, quote in results)
    assert ring.is_live and ring.price_inr == 49500
    assert not pendant.is_live and pendant.price_inr == 175000
    assert unpriced is None
    assert records[0].price_drift(ring) == 9500
    assert records[2].price_drift(ring) is None


def test_quote_to_dict_is_json_ready(catalog):
    data = quote_live(_metal(), [_gem("ruby", "main", "1.2")], catalog).to_dict()
    assert data["price_inr"] == 49500
    assert data["lines"][1] == {
        "label": "Main stone: Ruby",
        "quantity": "1.2",
        "unit_price": "8000.00",
        "subtotal": "9600.0",
    }


def test_float_quantities_price_like_decimals(catalog):
    quote = quote_live(MetalSpec("18k", 5.0), [GemSelection("ruby", "main", 1.2)], catalog)
    assert quote.price_inr == 49500
    assert quote.price_usd == 596

    [(_, batch_quote)] = quote_products([ProductRecord(1, "Band", MetalSpec("18k", 5.5), (), 1000, None, None)], catalog)
    assert batch_quote.is_live
    assert batch_quote.price_inr == 41250


@pytest.mark.parametrize("stored_price", ["abc", "", "-5", float("nan")])
def test_unusable_stored_price_is_not_a_fallback(catalog, stored_price):
    with pytest.raises(RateCatalogUnavailable):
        quote_or_fallback(_metal(), [], None, stored_price)
    with pytest.raises(UnknownMetalType):
        quote_or_fallback(_metal("platinum"), [], catalog, stored_price)

    record = ProductRecord(1, "Legacy", _metal("platinum"), (), stored_price, None, None)
    assert quote_products([record], None) == [(record, None)]
