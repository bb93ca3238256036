"""
DTOs -- inputs and results of the document workflows.

Kernel > Domain: pure, no ORM.  Workflows accept these and return
``DocumentResult``; ORM rows never leave the service layer.
"""

from dataclasses import dataclass
from decimal import Decimal

from gem_kernel.domain.weights import WeightUnit

RETRY_MESSAGE = "Could not complete the operation. Please retry."


@dataclass(frozen=True)
class InventoryItemInput:
    """Form data for a new inventory item."""

    item_name: str
    category: str
    category_code: str
    gemstone_code: str
    weight_value: Decimal
    weight_unit: WeightUnit = WeightUnit.CARATS
    color_code: str | None = None
    gem_type: str = "Mixed"
    pricing_mode: str = "PER_CARAT"
    purchase_rate_per_carat: Decimal | None = None
    selling_rate_per_carat: Decimal | None = None
    flat_purchase_cost: Decimal | None = None
    flat_selling_price: Decimal | None = None
    notes: str | None = None


@dataclass(frozen=True)
class DocumentResult:
    """
    Outcome of a document-creation action.

    ``message`` is user-facing: the uniform denial text, RETRY_MESSAGE, or an
    input validation message.  It never carries internal counter state.
    """

    success: bool
    message: str | None = None
    identifier: str | None = None
    entity_id: str | None = None

    @classmethod
    def failed(cls, message: str) -> "DocumentResult":
        return cls(success=False, message=message)

    @classmethod
    def created(cls, identifier: str, entity_id: str) -> "DocumentResult":
        return cls(success=True, identifier=identifier, entity_id=entity_id)
