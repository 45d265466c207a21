"""
Reads product fields out of stored records that come in several historical shapes.

Older records keep material inputs under ``details.additionalData.aiInputs``,
some under ``details.additionalData`` and the oldest directly on ``details``.
Each field is resolved by an ordered list of accessors; the first non-empty
value wins.
"""

import json
import logging
from typing import Any, Callable, Iterable, Mapping, Optional, TypeVar

from src.models import STONE_ROLES, GemSelection, MetalSpec
from src.pricing import gem_selections_from_form, metal_spec_from_form

logger = logging.getLogger(__name__)

T = TypeVar("T")

# (singular key, plural key) per role, as the record shapes spell them.
ROLE_KEYS: dict[str, tuple[str, str]] = {
    "main": ("mainStoneType", "mainStoneTypes"),
    "secondary": ("secondaryStoneType", "secondaryStoneTypes"),
    "other": ("otherStoneType", "otherStoneTypes"),
}
ROLE_WEIGHT_KEYS: dict[str, str] = {
    "main": "mainStoneWeight",
    "secondary": "secondaryStoneWeight",
    "other": "otherStoneWeight",
}


def is_empty(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (list, tuple, dict)):
        return len(value) == 0
    return False


def first_non_empty(sources: Iterable[Callable[[], Optional[T]]]) -> Optional[T]:
    for source in sources:
        value = source()
        if not is_empty(value):
            return value
    return None


def parse_details(raw: Any) -> dict[str, Any]:
    if raw is None:
        return {}
    if isinstance(raw, Mapping):
        return dict(raw)
    if isinstance(raw, str):
        if not raw.strip():
            return {}
        try:
            parsed = json.loads(raw)
        except json.JSONDecodeError as exc:
            logger.warning("Ignoring malformed product details JSON: %s", exc)
            return {}
        if isinstance(parsed, dict):
            return parsed
    logger.warning("Ignoring product details of unexpected type %s", type(raw).__name__)
    return {}


class RecordSources:
    """The three nested layers of a stored product's details, outermost last."""

    def __init__(self, record: Mapping[str, Any]):
        self.record = record
        self.details = parse_details(record.get("details"))
        additional = self.details.get("additionalData")
        self.additional_data: dict[str, Any] = additional if isinstance(additional, dict) else {}
        ai_inputs = self.additional_data.get("aiInputs")
        self.ai_inputs: dict[str, Any] = ai_inputs if isinstance(ai_inputs, dict) else {}

    def layered(self, key: str) -> list[Callable[[], Any]]:
        return [
            lambda: self.ai_inputs.get(key),
            lambda: self.additional_data.get(key),
            lambda: self.details.get(key),
        ]

    def value(self, key: str) -> Any:
        return first_non_empty(self.layered(key))

    def stone_types(self, role: str) -> list[Any]:
        singular, plural = ROLE_KEYS[role]
        value = first_non_empty(
            [
                lambda: _as_list(self.ai_inputs.get(plural)),
                lambda: _as_list(self.additional_data.get(plural)),
                lambda: _as_list(self.details.get(plural)),
                *self.layered(singular),
            ]
        )
        if value is None:
            return []
        return value if isinstance(value, list) else [value]

    def stored_price_inr(self) -> Any:
        return first_non_empty(
            [
                lambda: self.additional_data.get("basePriceINR"),
                lambda: self.record.get("base_price"),
                lambda: self.record.get("basePrice"),
            ]
        )


def _as_list(value: Any) -> list[Any] | None:
    if isinstance(value, (list, tuple)):
        return [item for item in value if not is_empty(item)]
    return None


def material_inputs_from_record(record: Mapping[str, Any]) -> dict[str, Any]:
    """Raw form values (strings, lists) for populating the product edit form."""
    sources = RecordSources(record)
    inputs: dict[str, Any] = {
        "metal_type": sources.value("metalType") or "",
        "metal_weight": str(sources.value("metalWeight") or "0"),
    }
    for role in STONE_ROLES:
        inputs[f"{role}_stone_types"] = [str(stone) for stone in sources.stone_types(role)]
        inputs[f"{role}_stone_weight"] = str(sources.value(ROLE_WEIGHT_KEYS[role]) or "0")
    return inputs


def materials_from_record(record: Mapping[str, Any]) -> tuple[MetalSpec | None, list[GemSelection]]:
    inputs = material_inputs_from_record(record)
    metal = metal_spec_from_form(inputs["metal_type"], inputs["metal_weight"])
    if metal.metal_type_id is None:
        metal = None

    gems: list[GemSelection] = []
    for role in STONE_ROLES:
        gems.extend(
            gem_selections_from_form(role, inputs[f"{role}_stone_types"], inputs[f"{role}_stone_weight"])
        )
    return metal, gems


def stored_price_from_record(record: Mapping[str, Any]) -> Any:
    return RecordSources(record).stored_price_inr()
