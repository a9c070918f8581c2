"""Variant price resolution.

Precedence (first match wins):
1. price override, returned verbatim (zero included)
2. base + sum(fixed) + base * sum(percentage) / 100

Percentages always apply to the base price only; they never compound on
fixed additions or on each other.

When modifier data is unavailable the resolver returns the base price with
`needs_resolution=True`. That is a placeholder, not a final price: callers
persist the flag so a re-pricing sweep can pick the variant up later.
"""

from collections.abc import Iterable
from dataclasses import dataclass

from catalog.models.attribute import MODIFIER_FIXED, MODIFIER_NONE, MODIFIER_PERCENTAGE, MODIFIER_TYPES
from catalog.services.errors import ValidationError


@dataclass(frozen=True)
class PriceModifier:
    type: str  # "fixed" | "percentage" | "none"
    value: float


@dataclass(frozen=True)
class PriceResolution:
    amount: float
    needs_resolution: bool = False


def resolve_price(
    base_price: float,
    override: float | None = None,
    modifiers: Iterable[PriceModifier] | None = None,
) -> PriceResolution:
    """Resolve the effective sale price of a variant.

    Args:
        base_price: Variant base price.
        override: Explicit price; wins unconditionally when not None.
        modifiers: Attribute-value modifiers, or None when they could not be loaded.

    Returns:
        PriceResolution with the amount and whether it still needs re-resolution.

    Raises:
        ValidationError: a modifier carries an unknown type.
    """
    if override is not None:
        return PriceResolution(amount=float(override))

    if modifiers is None:
        return PriceResolution(amount=float(base_price), needs_resolution=True)

    fixed_total = 0.0
    percent_total = 0.0
    for modifier in modifiers:
        if modifier.type == MODIFIER_FIXED:
            fixed_total += modifier.value or 0
        elif modifier.type == MODIFIER_PERCENTAGE:
            percent_total += modifier.value or 0
        elif modifier.type != MODIFIER_NONE:
            raise ValidationError(
                f"Unknown price modifier type: {modifier.type!r}",
                detail={"allowed": list(MODIFIER_TYPES)},
            )

    percentage_amount = base_price * percent_total / 100
    return PriceResolution(amount=float(base_price + fixed_total + percentage_amount))
