"""
ORM-level append-only and identifier-stability enforcement.

SQLAlchemy fires mapper events before UPDATE/DELETE statements reach the
database.  The listeners registered here reject:

Entity          | Rejected operation                 | Why
----------------|------------------------------------|-------------------------------
ActivityLog     | any UPDATE, any DELETE             | The audit trail is append-only
Voucher         | UPDATE of voucher_number, DELETE   | Issued numbers are permanent
InventoryItem   | UPDATE of sku                      | Labels are printed with the SKU

A rejected flush raises ImmutabilityViolationError and the transaction is
aborted; nothing reaches the database.  Bulk ``update()``/``delete()``
statements bypass mapper events and are not covered.
"""

from sqlalchemy import event, inspect

from gem_kernel.exceptions import ImmutabilityViolationError
from gem_kernel.logging_config import get_logger

logger = get_logger("db.immutability")


def _blocked(entity_type: str, entity_id: str, operation: str, reason: str):
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": entity_id,
            "operation": operation,
        },
    )
    raise ImmutabilityViolationError(
        entity_type=entity_type,
        entity_id=entity_id,
        reason=reason,
    )


def _attribute_changed(target, attribute: str) -> bool:
    return inspect(target).attrs[attribute].history.has_changes()


def _check_activity_log_update(mapper, connection, target):
    _blocked(
        "ActivityLog",
        str(target.id),
        "UPDATE",
        "Activity log entries are immutable and cannot be modified",
    )


def _check_activity_log_delete(mapper, connection, target):
    _blocked(
        "ActivityLog",
        str(target.id),
        "DELETE",
        "Activity log entries cannot be deleted",
    )


def _check_voucher_update(mapper, connection, target):
    if _attribute_changed(target, "voucher_number"):
        _blocked(
            "Voucher",
            str(target.id),
            "UPDATE",
            "Voucher numbers cannot be changed once issued",
        )


def _check_voucher_delete(mapper, connection, target):
    _blocked(
        "Voucher",
        str(target.id),
        "DELETE",
        "Vouchers cannot be deleted; reverse them instead",
    )


def _check_inventory_update(mapper, connection, target):
    if _attribute_changed(target, "sku"):
        _blocked(
            "InventoryItem",
            str(target.id),
            "UPDATE",
            "SKUs cannot be changed once issued",
        )


def _listeners():
    from gem_kernel.models.activity_log import ActivityLog
    from gem_kernel.models.inventory import InventoryItem
    from gem_kernel.models.voucher import Voucher

    return (
        (ActivityLog, "before_update", _check_activity_log_update),
        (ActivityLog, "before_delete", _check_activity_log_delete),
        (Voucher, "before_update", _check_voucher_update),
        (Voucher, "before_delete", _check_voucher_delete),
        (InventoryItem, "before_update", _check_inventory_update),
    )


def register_immutability_listeners() -> None:
    """
    Register all immutability listeners (idempotent).

    Call once at application start-up, before any flush.
    """
    for target, name, fn in _listeners():
        if not event.contains(target, name, fn):
            event.listen(target, name, fn)


def unregister_immutability_listeners() -> None:
    """
    Remove the listeners.

    WARNING: Only use this in tests that must violate the rules on purpose.
    """
    for target, name, fn in _listeners():
        if event.contains(target, name, fn):
            event.remove(target, name, fn)
