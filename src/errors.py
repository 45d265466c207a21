from typing import Any


class PricingError(Exception):
    """Base class for errors raised while pricing a product."""


class UnknownMetalType(PricingError):
    def __init__(self, metal_type_id: str | None):
        self.metal_type_id = metal_type_id
        if metal_type_id is None:
            message = "No metal type selected; metal is required to price a product"
        else:
            message = f"Metal type {metal_type_id!r} has no rate in the current catalog"
        super().__init__(message)


class InvalidNumericInput(PricingError):
    def __init__(self, raw_value: Any, reason: str = "not a non-negative decimal"):
        self.raw_value = raw_value
        super().__init__(f"Invalid numeric input {raw_value!r}: {reason}")


class RateCatalogUnavailable(PricingError):
    def __init__(self, message: str = "No rate catalog available to price against"):
        super().__init__(message)
