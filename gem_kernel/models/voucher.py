"""
Module: gem_kernel.models.voucher
Responsibility: ORM persistence for accounting vouchers.
Architecture position: Kernel > Models.

Invariants enforced:
    - voucher_number is unique (uq_voucher_number).  The prefix-scan
      allocator relies on this constraint to turn an allocation race into
      an IntegrityError instead of a silent duplicate.
    - voucher_number never changes after insert (see db/immutability.py).
"""

from datetime import date
from decimal import Decimal

from sqlalchemy import Boolean, Date, Index, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from gem_kernel.db.base import TrackedBase
from gem_kernel.domain.identifiers import VoucherType


class Voucher(TrackedBase):
    """
    An accounting voucher (expense, payment, receipt or reversal).

    Guarantees:
        - ``voucher_number`` has the form ``PREFIX/YEAR/NNNNNN``.
        - Reversal never deletes: the original is flagged ``is_reversed`` and a
          REVERSAL voucher is issued.
    """

    __tablename__ = "vouchers"

    __table_args__ = (
        UniqueConstraint("voucher_number", name="uq_voucher_number"),
        Index("idx_voucher_type_date", "voucher_type", "voucher_date"),
    )

    voucher_number: Mapped[str] = mapped_column(String(32), nullable=False)

    voucher_type: Mapped[VoucherType] = mapped_column(String(16), nullable=False)

    voucher_date: Mapped[date] = mapped_column(Date, nullable=False)

    amount: Mapped[Decimal] = mapped_column(nullable=False)

    narration: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Business record this voucher backs (expense id, reversed voucher id, ...)
    reference_id: Mapped[str | None] = mapped_column(String(64), nullable=True)

    is_reversed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    reversal_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    def __repr__(self) -> str:
        return f"<Voucher {self.voucher_number}>"
