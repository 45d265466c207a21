from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from types import MappingProxyType
from typing import Any, Literal, Mapping, Optional

from src.errors import InvalidNumericInput, UnknownMetalType

StoneRole = Literal["main", "secondary", "other"]
STONE_ROLES: tuple[StoneRole, ...] = ("main", "secondary", "other")


def to_decimal(value: Any) -> Decimal:
    # str() first so floats like 0.1 become Decimal("0.1"), not their binary expansion.
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def non_negative_quantity(value: Any) -> Decimal:
    if isinstance(value, bool) or value is None:
        raise InvalidNumericInput(value, "not a quantity")
    try:
        quantity = to_decimal(value)
    except (InvalidOperation, ValueError) as exc:
        raise InvalidNumericInput(value) from exc
    if not quantity.is_finite():
        raise InvalidNumericInput(value, "not a finite number")
    if quantity < 0:
        raise InvalidNumericInput(value, "negative quantities are not allowed")
    return quantity


@dataclass(frozen=True)
class MetalSpec:
    metal_type_id: Optional[str]
    weight_grams: Decimal

    def __post_init__(self) -> None:
        object.__setattr__(self, "weight_grams", non_negative_quantity(self.weight_grams))


@dataclass(frozen=True)
class GemSelection:
    stone_type_id: Optional[str]
    role: StoneRole
    total_carats: Decimal

    def __post_init__(self) -> None:
        object.__setattr__(self, "total_carats", non_negative_quantity(self.total_carats))


@dataclass(frozen=True)
class RateCatalog:
    """
    Immutable snapshot of every rate a quote needs.

    Rates are INR per gram (metals) and INR per carat (stones). The mappings are
    wrapped in read-only proxies so one snapshot can be shared by a whole batch.
    """

    metal_rates: Mapping[str, Decimal]
    stone_rates: Mapping[str, Decimal]
    usd_to_inr: Decimal
    overhead_fraction: Decimal = Decimal("0.25")
    advance_fraction: Decimal = Decimal("0.5")
    metal_names: Mapping[str, str] = field(default_factory=dict)
    stone_names: Mapping[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        metal_rates = {str(key): to_decimal(rate) for key, rate in self.metal_rates.items()}
        stone_rates = {str(key): to_decimal(rate) for key, rate in self.stone_rates.items()}
        usd_to_inr = to_decimal(self.usd_to_inr)
        overhead_fraction = to_decimal(self.overhead_fraction)
        advance_fraction = to_decimal(self.advance_fraction)

        for label, rates in (("metal", metal_rates), ("stone", stone_rates)):
            for key, rate in rates.items():
                if not rate.is_finite() or rate < 0:
                    raise ValueError(f"Invalid {label} rate for {key!r}: {rate}")
        if not usd_to_inr.is_finite() or usd_to_inr <= 0:
            raise ValueError(f"usd_to_inr must be positive, got {usd_to_inr}")
        for label, fraction in (("overhead_fraction", overhead_fraction), ("advance_fraction", advance_fraction)):
            if not fraction.is_finite() or not Decimal(0) <= fraction <= Decimal(1):
                raise ValueError(f"{label} must be between 0 and 1, got {fraction}")

        object.__setattr__(self, "metal_rates", MappingProxyType(metal_rates))
        object.__setattr__(self, "stone_rates", MappingProxyType(stone_rates))
        object.__setattr__(self, "usd_to_inr", usd_to_inr)
        object.__setattr__(self, "overhead_fraction", overhead_fraction)
        object.__setattr__(self, "advance_fraction", advance_fraction)
        object.__setattr__(self, "metal_names", MappingProxyType(dict(self.metal_names)))
        object.__setattr__(self, "stone_names", MappingProxyType(dict(self.stone_names)))

    def metal_rate_for(self, metal_type_id: str | None) -> Decimal:
        if metal_type_id is None or metal_type_id not in self.metal_rates:
            raise UnknownMetalType(metal_type_id)
        return self.metal_rates[metal_type_id]

    def stone_rate_for(self, stone_type_id: str | None) -> Decimal | None:
        """Returns None for stones the catalog does not price (treated as absent)."""
        if stone_type_id is None:
            return None
        return self.stone_rates.get(stone_type_id)

    def metal_label(self, metal_type_id: str) -> str:
        return self.metal_names.get(metal_type_id, metal_type_id)

    def stone_label(self, stone_type_id: str) -> str:
        return self.stone_names.get(stone_type_id, stone_type_id)


@dataclass(frozen=True)
class PriceBreakdownLine:
    label: str
    quantity: Decimal
    unit_price: Decimal
    subtotal: Decimal


@dataclass(frozen=True)
class PriceQuote:
    lines: tuple[PriceBreakdownLine, ...]
    subtotal_before_overhead: Decimal
    overhead_amount: Decimal
    price_inr: int
    price_usd: int
    advance_payment: int
    remaining_payment: int
    is_live: bool = True

    def to_dict(self) -> dict[str, Any]:
        return {
            "lines": [
                {
                    "label": line.label,
                    "quantity": str(line.quantity),
                    "unit_price": str(line.unit_price),
                    "subtotal": str(line.subtotal),
                }
                for line in self.lines
            ],
            "subtotal_before_overhead": str(self.subtotal_before_overhead),
            "overhead_amount": str(self.overhead_amount),
            "price_inr": self.price_inr,
            "price_usd": self.price_usd,
            "advance_payment": self.advance_payment,
            "remaining_payment": self.remaining_payment,
            "is_live": self.is_live,
        }


@dataclass(frozen=True)
class ProductRecord:
    id: Optional[int]
    name: str
    metal: Optional[MetalSpec]
    gems: tuple[GemSelection, ...]
    stored_price_inr: Optional[int]
    stored_price_usd: Optional[int]
    priced_at: Optional[str]

    def price_drift(self, quote: PriceQuote) -> int | None:
        """INR difference between a fresh quote and the cached price, if one was cached."""
        if self.stored_price_inr is None:
            return None
        return quote.price_inr - self.stored_price_inr
