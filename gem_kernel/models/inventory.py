"""
Module: gem_kernel.models.inventory
Responsibility: ORM persistence for stocked gemstone items.
Architecture position: Kernel > Models.

Invariants enforced:
    - sku is unique (uq_inventory_sku) and never changes after insert.
"""

from decimal import Decimal
from enum import Enum

from sqlalchemy import Index, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from gem_kernel.db.base import TrackedBase


class PricingMode(str, Enum):
    PER_CARAT = "PER_CARAT"
    FLAT = "FLAT"


class InventoryStatus(str, Enum):
    IN_STOCK = "IN_STOCK"
    RESERVED = "RESERVED"
    MEMO = "MEMO"
    SOLD = "SOLD"


class InventoryItem(TrackedBase):
    """A single stocked stone or piece, identified by its SKU."""

    __tablename__ = "inventory_items"

    __table_args__ = (
        UniqueConstraint("sku", name="uq_inventory_sku"),
        Index("idx_inventory_status", "status"),
    )

    sku: Mapped[str] = mapped_column(String(64), nullable=False)

    item_name: Mapped[str] = mapped_column(String(255), nullable=False)
    category: Mapped[str] = mapped_column(String(100), nullable=False)
    gem_type: Mapped[str] = mapped_column(String(100), nullable=False, default="Mixed")

    # Normalized codes the SKU was built from
    category_code: Mapped[str] = mapped_column(String(16), nullable=False)
    gemstone_code: Mapped[str] = mapped_column(String(16), nullable=False)
    color_code: Mapped[str] = mapped_column(String(16), nullable=False)

    weight_value: Mapped[Decimal] = mapped_column(nullable=False)
    weight_unit: Mapped[str] = mapped_column(String(8), nullable=False)
    weight_ratti: Mapped[Decimal] = mapped_column(nullable=False)

    pricing_mode: Mapped[PricingMode] = mapped_column(String(16), nullable=False)
    cost_price: Mapped[Decimal] = mapped_column(nullable=False)
    selling_price: Mapped[Decimal] = mapped_column(nullable=False)

    status: Mapped[InventoryStatus] = mapped_column(
        String(16),
        nullable=False,
        default=InventoryStatus.IN_STOCK,
    )

    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    def __repr__(self) -> str:
        return f"<InventoryItem {self.sku}>"
