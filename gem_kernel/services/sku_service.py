"""
SkuService -- allocate and format inventory SKUs.

Responsibility:
    Entry point for inventory creation: draws the next value of the global
    SKU counter and renders it with the item's category, gemstone, color and
    weight.

Architecture position:
    Kernel > Services.  Uses SequenceService (allocation) and
    domain.identifiers (formatting).  Called by InventoryService.

Invariants enforced:
    - The counter increment and the INSERT of the inventory row must share
      the caller's transaction; this service only flushes.
    - Input is validated before allocation, so a bad code or weight does not
      consume a sequence value.
"""

from decimal import Decimal

from sqlalchemy.orm import Session

from gem_kernel.domain.identifiers import (
    format_sku,
    format_weight_suffix,
    normalize_code,
)
from gem_kernel.domain.weights import WeightUnit
from gem_kernel.exceptions import InvalidIdentifierInputError
from gem_kernel.logging_config import get_logger
from gem_kernel.services.base import BaseService
from gem_kernel.services.sequence_service import SequenceService

logger = get_logger("services.sku")


class SkuService(BaseService):
    """Global-counter SKU allocation."""

    def __init__(self, session: Session, counter_name: str = SequenceService.SKU):
        super().__init__(session)
        self._sequences = SequenceService(session)
        self._counter_name = counter_name

    def allocate_and_format_sku(
        self,
        category_code: str,
        gemstone_code: str,
        color_code: str | None,
        weight_value: Decimal | float | int | str,
        weight_unit: WeightUnit | str,
    ) -> str:
        """
        Allocate the next SKU sequence and return the formatted SKU.

        ``weight_unit`` is validated but does not appear in the SKU; the
        weight digits are the value as entered.

        Raises:
            InvalidIdentifierInputError: empty codes, bad weight or unit.
            SequenceOverflowError: the counter passed 99999.
            MalformedSequenceError: the stored counter is corrupt.
        """
        try:
            WeightUnit(weight_unit)
        except ValueError:
            raise InvalidIdentifierInputError("weight_unit", weight_unit, "expected cts or gms")
        for field, value in (("category_code", category_code), ("gemstone_code", gemstone_code)):
            if not normalize_code(value):
                raise InvalidIdentifierInputError(field, value, "empty after normalization")
        format_weight_suffix(weight_value)

        sequence = self._sequences.next_value(self._counter_name)
        sku = format_sku(category_code, gemstone_code, color_code, weight_value, sequence)

        logger.info(
            "sku_allocated",
            extra={"sku": sku, "sequence": sequence, "counter": self._counter_name},
        )
        return sku
