"""
InventoryService -- create inventory items behind the permission gate.

Responsibility:
    The inventory-creation workflow: gate check, then one transaction that
    allocates the SKU and inserts the item, then an activity entry.

Architecture position:
    Kernel > Services -- workflow.  Owns its transactions through
    ``run_in_transaction`` and a session factory.

Invariants enforced:
    - Nothing is written (no counter increment, no row) when the gate denies.
    - SKU allocation and the INSERT share one transaction; a collision on
      uq_inventory_sku becomes DuplicateIdentifierError and the whole
      attempt is retried with a fresh session.  Other integrity failures
      are input errors and are not retried.

Failure modes (all returned, none raised):
    - Denied: ``DocumentResult.failed(UNAUTHORIZED_MESSAGE)``.
    - Bad codes, weight, prices or blank name/category:
      ``DocumentResult.failed(<validation message>)``.  Validated before
      any allocation, so nothing is written.
    - Allocation failure after retries or counter corruption:
      ``DocumentResult.failed(RETRY_MESSAGE)``.
"""

from decimal import Decimal, InvalidOperation
from typing import Callable

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from gem_kernel.db.engine import is_unique_violation, run_in_transaction
from gem_kernel.domain.dtos import RETRY_MESSAGE, DocumentResult, InventoryItemInput
from gem_kernel.domain.identifiers import MISSING_CODE, format_weight_suffix, normalize_code
from gem_kernel.domain.permissions import Permission
from gem_kernel.domain.weights import WeightUnit, calculate_ratti
from gem_kernel.exceptions import (
    DuplicateIdentifierError,
    IdentifierError,
    InvalidIdentifierInputError,
    SequenceError,
)
from gem_kernel.logging_config import LogContext, get_logger
from gem_kernel.models.activity_log import ActionType
from gem_kernel.models.inventory import InventoryItem, InventoryStatus, PricingMode
from gem_kernel.services.activity_logger import ActivityLogger
from gem_kernel.services.permission_gate import PermissionGate, SessionContext
from gem_kernel.services.sequence_service import SequenceService
from gem_kernel.services.sku_service import SkuService

logger = get_logger("services.inventory")


def _decimal_field(field: str, value) -> Decimal:
    try:
        amount = Decimal(str(value or 0))
    except InvalidOperation:
        raise InvalidIdentifierInputError(field, value, "not a number")
    if not amount.is_finite() or amount < 0:
        raise InvalidIdentifierInputError(field, value, "must be >= 0")
    return amount


def compute_prices(data: InventoryItemInput) -> tuple[Decimal, Decimal]:
    """
    (cost_price, selling_price) for the item's pricing mode.

    Raises:
        InvalidIdentifierInputError: a price or rate is not a finite,
            non-negative number.
    """
    if PricingMode(data.pricing_mode) == PricingMode.PER_CARAT:
        weight = _decimal_field("weight_value", data.weight_value)
        purchase = _decimal_field("purchase_rate_per_carat", data.purchase_rate_per_carat)
        selling = _decimal_field("selling_rate_per_carat", data.selling_rate_per_carat)
        return purchase * weight, selling * weight
    return (
        _decimal_field("flat_purchase_cost", data.flat_purchase_cost),
        _decimal_field("flat_selling_price", data.flat_selling_price),
    )


def validate_item(data: InventoryItemInput) -> tuple[Decimal, Decimal]:
    """
    Reject unusable input before any allocation; return the computed prices.

    Raises:
        InvalidIdentifierInputError: blank name or category, bad weight or
            price fields.
        ValueError: unknown pricing mode or weight unit.
    """
    for field in ("item_name", "category"):
        value = getattr(data, field)
        if not isinstance(value, str) or not value.strip():
            raise InvalidIdentifierInputError(field, value, "required")
    format_weight_suffix(data.weight_value)
    WeightUnit(data.weight_unit)
    return compute_prices(data)


class InventoryService:
    """Inventory-creation workflow."""

    def __init__(
        self,
        session_factory: Callable[[], Session],
        gate: PermissionGate,
        activity_logger: ActivityLogger,
        *,
        max_attempts: int = 3,
        sku_counter_name: str = SequenceService.SKU,
    ):
        self._session_factory = session_factory
        self._gate = gate
        self._activity = activity_logger
        self._max_attempts = max_attempts
        self._sku_counter_name = sku_counter_name

    def _insert(
        self,
        session: Session,
        data: InventoryItemInput,
        prices: tuple[Decimal, Decimal],
        actor_id: str,
    ) -> tuple[str, str]:
        color_code = normalize_code(data.color_code) or MISSING_CODE
        sku = SkuService(session, self._sku_counter_name).allocate_and_format_sku(
            data.category_code,
            data.gemstone_code,
            color_code,
            data.weight_value,
            data.weight_unit,
        )
        cost, selling = prices

        item = InventoryItem(
            sku=sku,
            item_name=data.item_name,
            category=data.category,
            gem_type=data.gem_type or "Mixed",
            category_code=normalize_code(data.category_code),
            gemstone_code=normalize_code(data.gemstone_code),
            color_code=color_code,
            weight_value=Decimal(str(data.weight_value)),
            weight_unit=WeightUnit(data.weight_unit).value,
            weight_ratti=calculate_ratti(data.weight_value, data.weight_unit),
            pricing_mode=PricingMode(data.pricing_mode).value,
            cost_price=cost,
            selling_price=selling,
            status=InventoryStatus.IN_STOCK.value,
            notes=data.notes,
            created_by_id=actor_id,
        )
        session.add(item)
        try:
            session.flush()
        except IntegrityError as exc:
            if not is_unique_violation(exc, "uq_inventory_sku", "inventory_items.sku"):
                raise
            raise DuplicateIdentifierError("InventoryItem", sku) from exc
        return str(item.id), sku

    def create_item(
        self,
        session_context: SessionContext | None,
        data: InventoryItemInput,
    ) -> DocumentResult:
        """Gate, allocate a SKU, insert the item and record the activity."""
        perm = self._gate.check_permission(Permission.INVENTORY_CREATE, session_context)
        if not perm.allowed:
            return DocumentResult.failed(perm.message)

        actor_id = session_context.user_id or "UNKNOWN"

        with LogContext.bind(actor_id=actor_id):
            try:
                prices = validate_item(data)
                item_id, sku = run_in_transaction(
                    lambda session: self._insert(session, data, prices, actor_id),
                    max_attempts=self._max_attempts,
                    session_factory=self._session_factory,
                )
            except (IdentifierError, ValueError) as exc:
                logger.info("inventory_input_rejected", extra={"reason": str(exc)})
                return DocumentResult.failed(str(exc))
            except SequenceError:
                logger.error("inventory_create_failed", exc_info=True)
                return DocumentResult.failed(RETRY_MESSAGE)

            logger.info("inventory_created", extra={"sku": sku, "inventory_id": item_id})

        self._activity.log_activity(
            entity_type="Inventory",
            entity_id=item_id,
            entity_identifier=sku,
            action_type=ActionType.CREATE,
            user_id=session_context.user_id,
            user_name=session_context.user_name,
            user_email=session_context.user_email,
            details=f"Created inventory item {data.item_name}",
        )
        return DocumentResult.created(identifier=sku, entity_id=item_id)
