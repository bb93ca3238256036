"""ORM models for the gem kernel."""

from gem_kernel.models.activity_log import ActionType, ActivityLog, ActivitySource
from gem_kernel.models.inventory import InventoryItem, InventoryStatus, PricingMode
from gem_kernel.models.voucher import Voucher

__all__ = [
    "ActionType",
    "ActivityLog",
    "ActivitySource",
    "InventoryItem",
    "InventoryStatus",
    "PricingMode",
    "Voucher",
]
