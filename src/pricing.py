import logging
import math
import re
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Iterable, Sequence

from src.errors import InvalidNumericInput, PricingError, RateCatalogUnavailable
from src.models import (
    STONE_ROLES,
    GemSelection,
    MetalSpec,
    PriceBreakdownLine,
    PriceQuote,
    ProductRecord,
    RateCatalog,
    StoneRole,
)

logger = logging.getLogger(__name__)

# The only USD/INR rate used when no live catalog is available.
FALLBACK_USD_TO_INR = Decimal("83")
DEFAULT_ADVANCE_FRACTION = Decimal("0.5")

NO_SELECTION_SENTINELS = frozenset({"", "none", "none_selected"})
ROLE_LABELS: dict[str, tuple[str, str]] = {
    "main": ("Main stone", "Main stones"),
    "secondary": ("Secondary stone", "Secondary stones"),
    "other": ("Other stone", "Other stones"),
}

_DECIMAL_LITERAL = re.compile(r"^\+?(\d+(\.\d*)?|\.\d+)$")
_ZERO = Decimal(0)


def round_money(value: float) -> float:
    return round(value, 2)


def round_half_up(value: Decimal) -> int:
    return int(value.quantize(Decimal(1), rounding=ROUND_HALF_UP))


def parse_decimal(raw: Any) -> Decimal:
    """Strictly parses a non-negative decimal; raises InvalidNumericInput otherwise."""
    if isinstance(raw, bool):
        raise InvalidNumericInput(raw, "booleans are not quantities")
    if isinstance(raw, Decimal):
        value = raw
    elif isinstance(raw, int):
        value = Decimal(raw)
    elif isinstance(raw, float):
        if not math.isfinite(raw):
            raise InvalidNumericInput(raw, "not a finite number")
        value = Decimal(str(raw))
    elif isinstance(raw, str):
        text = raw.strip()
        if not _DECIMAL_LITERAL.match(text):
            raise InvalidNumericInput(raw)
        try:
            value = Decimal(text)
        except InvalidOperation as exc:
            raise InvalidNumericInput(raw) from exc
    else:
        raise InvalidNumericInput(raw, f"unsupported type {type(raw).__name__}")

    if not value.is_finite():
        raise InvalidNumericInput(raw, "not a finite number")
    if value < 0:
        raise InvalidNumericInput(raw, "negative quantities are not allowed")
    return value


def coerce_quantity(raw: Any, field_name: str = "quantity") -> Decimal:
    if raw is None or (isinstance(raw, str) and not raw.strip()):
        return _ZERO
    try:
        return parse_decimal(raw)
    except InvalidNumericInput as exc:
        logger.warning("Using 0 for %s: %s", field_name, exc)
        return _ZERO


def normalize_selection_id(raw: Any) -> str | None:
    if raw is None:
        return None
    text = str(raw).strip()
    if text.lower() in NO_SELECTION_SENTINELS:
        return None
    return text


def metal_spec_from_form(metal_type: Any, weight: Any) -> MetalSpec:
    return MetalSpec(
        metal_type_id=normalize_selection_id(metal_type),
        weight_grams=coerce_quantity(weight, "metal weight"),
    )


def gem_selections_from_form(
    role: StoneRole,
    stone_types: Any,
    total_carats: Any,
) -> list[GemSelection]:
    """
    Builds the selections for one role from form values.

    `stone_types` may be a single id or a list of ids sharing `total_carats`.
    Sentinels and blanks are dropped.
    """
    if role not in STONE_ROLES:
        raise ValueError(f"Unknown stone role {role!r}")
    if isinstance(stone_types, (list, tuple)):
        candidates = list(stone_types)
    else:
        candidates = [stone_types]

    carats = coerce_quantity(total_carats, f"{role} stone weight")
    selections = []
    for candidate in candidates:
        stone_type_id = normalize_selection_id(candidate)
        if stone_type_id is None:
            continue
        selections.append(GemSelection(stone_type_id=stone_type_id, role=role, total_carats=carats))
    return selections


def payment_schedule(total: int, advance_fraction: Decimal) -> tuple[int, int]:
    advance = round_half_up(Decimal(total) * advance_fraction)
    return advance, total - advance


def _bucket_line(
    role: StoneRole,
    selections: Sequence[GemSelection],
    catalog: RateCatalog,
) -> PriceBreakdownLine | None:
    # Selections sharing one total_carats value are one aggregate split evenly.
    groups: dict[Decimal, list[str]] = {}
    for selection in selections:
        stone_type_id = selection.stone_type_id
        if stone_type_id is None:
            continue
        if catalog.stone_rate_for(stone_type_id) is None:
            logger.warning(
                "Stone type %r is not in the rate catalog; treating %s stone as absent",
                stone_type_id,
                role,
            )
            continue
        stones = groups.setdefault(selection.total_carats, [])
        if stone_type_id not in stones:
            stones.append(stone_type_id)

    quantity = _ZERO
    subtotal = _ZERO
    priced_ids: list[str] = []
    has_priced_stone = False
    for total_carats, stones in groups.items():
        share = total_carats / len(stones)
        for stone_type_id in stones:
            rate = catalog.stone_rate_for(stone_type_id)
            subtotal += share * rate
            if rate > 0:
                has_priced_stone = True
            priced_ids.append(stone_type_id)
        quantity += total_carats

    if quantity <= 0 or not has_priced_stone:
        return None

    singular, plural = ROLE_LABELS[role]
    names = ", ".join(catalog.stone_label(stone_type_id) for stone_type_id in priced_ids)
    return PriceBreakdownLine(
        label=f"{singular if len(priced_ids) == 1 else plural}: {names}",
        quantity=quantity,
        unit_price=(subtotal / quantity).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP),
        subtotal=subtotal,
    )


def quote_live(
    metal: MetalSpec | None,
    gems: Iterable[GemSelection],
    catalog: RateCatalog | None,
) -> PriceQuote:
    if catalog is None:
        raise RateCatalogUnavailable()

    metal_type_id = metal.metal_type_id if metal is not None else None
    metal_rate = catalog.metal_rate_for(metal_type_id)
    lines = [
        PriceBreakdownLine(
            label=f"Metal: {catalog.metal_label(metal_type_id)}",
            quantity=metal.weight_grams,
            unit_price=metal_rate,
            subtotal=metal.weight_grams * metal_rate,
        )
    ]

    gem_list = list(gems)
    for role in STONE_ROLES:
        line = _bucket_line(role, [gem for gem in gem_list if gem.role == role], catalog)
        if line is not None:
            lines.append(line)

    subtotal_before_overhead = sum((line.subtotal for line in lines), _ZERO)
    overhead_amount = subtotal_before_overhead * catalog.overhead_fraction
    price_inr = round_half_up(subtotal_before_overhead * (1 + catalog.overhead_fraction))
    price_usd = round_half_up(Decimal(price_inr) / catalog.usd_to_inr)
    advance_payment, remaining_payment = payment_schedule(price_inr, catalog.advance_fraction)

    return PriceQuote(
        lines=tuple(lines),
        subtotal_before_overhead=subtotal_before_overhead,
        overhead_amount=overhead_amount,
        price_inr=price_inr,
        price_usd=price_usd,
        advance_payment=advance_payment,
        remaining_payment=remaining_payment,
        is_live=True,
    )


def fallback_quote(
    stored_price: Any,
    fallback_usd_to_inr: Decimal = FALLBACK_USD_TO_INR,
    advance_fraction: Decimal = DEFAULT_ADVANCE_FRACTION,
) -> PriceQuote:
    price_inr = round_half_up(parse_decimal(stored_price))
    price_usd = round_half_up(Decimal(price_inr) / fallback_usd_to_inr)
    advance_payment, remaining_payment = payment_schedule(price_inr, advance_fraction)
    return PriceQuote(
        lines=(),
        subtotal_before_overhead=_ZERO,
        overhead_amount=_ZERO,
        price_inr=price_inr,
        price_usd=price_usd,
        advance_payment=advance_payment,
        remaining_payment=remaining_payment,
        is_live=False,
    )


def parse_stored_price(stored_price: Any) -> int | None:
    """Whole-rupee stored price, or None when the field is missing or unusable."""
    if stored_price is None:
        return None
    try:
        return round_half_up(parse_decimal(stored_price))
    except InvalidNumericInput as exc:
        logger.warning("Ignoring stored price: %s", exc)
        return None


def quote_or_fallback(
    metal: MetalSpec | None,
    gems: Iterable[GemSelection],
    catalog: RateCatalog | None,
    stored_price: Any,
    fallback_usd_to_inr: Decimal = FALLBACK_USD_TO_INR,
) -> PriceQuote:
    """
    Live quote when possible, otherwise an estimate built from the stored price.

    Without a usable stored price the pricing error is re-raised: an empty or
    unparseable field is not a price.
    """
    try:
        return quote_live(metal, gems, catalog)
    except PricingError as exc:
        if parse_stored_price(stored_price) is None:
            raise
        logger.warning("Live quote failed (%s); using stored price %s", exc, stored_price)

    advance_fraction = catalog.advance_fraction if catalog is not None else DEFAULT_ADVANCE_FRACTION
    return fallback_quote(stored_price, fallback_usd_to_inr, advance_fraction)


def quote_products(
    records: Iterable[ProductRecord],
    catalog: RateCatalog | None,
) -> list[tuple[ProductRecord, PriceQuote | None]]:
    """Prices a batch against one catalog snapshot. Unpriceable records map to None."""
    results: list[tuple[ProductRecord, PriceQuote | None]] = []
    for record in records:
        try:
            quote = quote_or_fallback(record.metal, record.gems, catalog, record.stored_price_inr)
        except PricingError as exc:
            logger.warning("Cannot price product %s (%s): %s", record.id, record.name, exc)
            quote = None
        results.append((record, quote))
    return results
