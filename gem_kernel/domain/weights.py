"""Gem weight conversions (carats and grams to ratti)."""

from decimal import ROUND_HALF_UP, Decimal
from enum import Enum, unique


@unique
class WeightUnit(str, Enum):
    CARATS = "cts"
    GRAMS = "gms"


# Trade factors used on the shop floor, not metrological constants.
RATTI_PER_UNIT: dict[WeightUnit, Decimal] = {
    WeightUnit.CARATS: Decimal("1.09"),
    WeightUnit.GRAMS: Decimal("5.45"),
}


def calculate_ratti(weight_value: Decimal | float | int | str, unit: WeightUnit | str) -> Decimal:
    """Weight in ratti, rounded half-up to two places. Unknown units give 0."""
    try:
        factor = RATTI_PER_UNIT[WeightUnit(unit)]
    except ValueError:
        return Decimal("0.00")
    ratti = Decimal(str(weight_value)) * factor
    return ratti.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
