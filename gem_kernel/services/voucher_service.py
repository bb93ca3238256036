"""
VoucherService -- prefix-scan voucher numbering and voucher persistence.

Responsibility:
    Allocates ``PREFIX/YEAR/NNNNNN`` voucher numbers by scanning the issued
    numbers of the same type and year, creates vouchers, and reverses them.

Architecture position:
    Kernel > Services.  Called by AccountingService.

Invariants enforced:
    - No counter row: the greatest issued number under the prefix is the
      state.  Fixed 6-digit padding makes string order equal numeric order,
      so ``ORDER BY voucher_number DESC`` finds it.
    - Gaps are kept: 000001 and 000003 issued -> next is 000004.
    - Uniqueness per (type, year) holds only when the scan and the INSERT
      share one serialized transaction.  SQLite gets that from
      ``BEGIN IMMEDIATE``; PostgreSQL takes a transaction-scoped advisory
      lock keyed on the prefix, so different prefixes do not block each
      other.  Without either, two creators can compute the same number; the
      unique constraint then turns the race into DuplicateIdentifierError.
      This is weaker than the SKU counter table: the race window is
      closed by locking, and the constraint is the backstop.

Failure modes:
    - Malformed issued number under the prefix (non-digit or wrong-width
      suffix): logged as ``voucher_sequence_malformed_suffix`` and skipped.
      The scan continues to the greatest well-formed number; it returns 1
      only when no well-formed number exists.
    - DuplicateIdentifierError: the INSERT hit uq_voucher_number.  Any
      other IntegrityError (NOT NULL and the like) propagates unchanged.
    - VoucherNotFoundError / VoucherAlreadyReversedError on reversal.
"""

import hashlib
from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from gem_kernel.db.engine import is_unique_violation
from gem_kernel.domain.clock import Clock, SystemClock
from gem_kernel.domain.identifiers import (
    VOUCHER_SEQUENCE_WIDTH,
    VoucherType,
    format_voucher_number,
    parse_voucher_suffix,
    voucher_prefix,
)
from gem_kernel.exceptions import (
    DuplicateIdentifierError,
    VoucherAlreadyReversedError,
    VoucherNotFoundError,
)
from gem_kernel.logging_config import get_logger
from gem_kernel.models.voucher import Voucher
from gem_kernel.services.base import BaseService

logger = get_logger("services.voucher")

_SCAN_BATCH_SIZE = 100


def _advisory_lock_key(prefix: str) -> int:
    """Stable signed 64-bit key for pg_advisory_xact_lock."""
    digest = hashlib.sha256(prefix.encode("utf-8")).digest()
    return int.from_bytes(digest[:8], "big", signed=True)


class VoucherService(BaseService):
    """
    Voucher numbering, creation and reversal.

    Non-goals:
        - Does NOT call ``session.commit()`` -- caller controls boundaries.
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        super().__init__(session)
        self._clock = clock or SystemClock()

    def _lock_prefix(self, prefix: str) -> None:
        if self.session.get_bind().dialect.name == "postgresql":
            self.session.execute(select(func.pg_advisory_xact_lock(_advisory_lock_key(prefix))))

    def allocate_voucher_sequence(self, voucher_type: VoucherType | str, on_date: date) -> int:
        """
        Next sequence for ``(voucher_type, on_date.year)``.

        Postconditions:
            - Returns greatest well-formed issued suffix + 1, or 1.
        """
        prefix = voucher_prefix(voucher_type, on_date.year)
        self._lock_prefix(prefix)

        stmt = (
            select(Voucher.voucher_number)
            .where(Voucher.voucher_number.startswith(prefix, autoescape=True))
            .order_by(Voucher.voucher_number.desc())
            .limit(_SCAN_BATCH_SIZE)
        )
        offset = 0
        while True:
            batch = self.session.execute(stmt.offset(offset)).scalars().all()
            for number in batch:
                suffix = number[len(prefix):]
                if len(suffix) != VOUCHER_SEQUENCE_WIDTH or parse_voucher_suffix(number) is None:
                    logger.warning(
                        "voucher_sequence_malformed_suffix",
                        extra={"prefix": prefix, "voucher_number": number},
                    )
                    continue
                return int(suffix) + 1
            if len(batch) < _SCAN_BATCH_SIZE:
                return 1
            offset += _SCAN_BATCH_SIZE

    def allocate_and_format_voucher_number(
        self,
        voucher_type: VoucherType | str,
        on_date: date,
    ) -> str:
        """
        Allocate and render the next voucher number.

        Raises:
            SequenceOverflowError: the year's series passed 999999.
        """
        sequence = self.allocate_voucher_sequence(voucher_type, on_date)
        number = format_voucher_number(voucher_type, on_date.year, sequence)
        logger.debug(
            "voucher_number_allocated",
            extra={"voucher_number": number, "sequence": sequence},
        )
        return number

    def create_voucher(
        self,
        voucher_type: VoucherType | str,
        amount: Decimal,
        created_by_id: str,
        on_date: date | None = None,
        narration: str | None = None,
        reference_id: str | None = None,
    ) -> Voucher:
        """
        Allocate a number and insert the voucher in the current transaction.

        Raises:
            DuplicateIdentifierError: the number was issued concurrently.
                The session must be rolled back.
        """
        voucher_date = on_date or self._clock.today()
        voucher_type = VoucherType(voucher_type)
        number = self.allocate_and_format_voucher_number(voucher_type, voucher_date)

        voucher = Voucher(
            voucher_number=number,
            voucher_type=voucher_type.value,
            voucher_date=voucher_date,
            amount=Decimal(str(amount)),
            narration=narration,
            reference_id=reference_id,
            created_by_id=created_by_id,
            is_reversed=False,
        )
        self.session.add(voucher)
        try:
            self.session.flush()
        except IntegrityError as exc:
            if not is_unique_violation(exc, "uq_voucher_number", "vouchers.voucher_number"):
                raise
            logger.error(
                "voucher_number_collision",
                extra={"voucher_number": number},
            )
            raise DuplicateIdentifierError("Voucher", number) from exc

        logger.info(
            "voucher_created",
            extra={
                "voucher_id": str(voucher.id),
                "voucher_number": number,
                "voucher_type": voucher_type.value,
            },
        )
        return voucher

    def get_voucher(self, voucher_id: UUID) -> Voucher:
        voucher = self.session.get(Voucher, voucher_id)
        if voucher is None:
            raise VoucherNotFoundError(str(voucher_id))
        return voucher

    def reverse_voucher(
        self,
        voucher_id: UUID,
        reason: str,
        actor_id: str,
        on_date: date | None = None,
    ) -> Voucher:
        """
        Flag a voucher reversed and issue the matching REVERSAL voucher.

        Returns:
            The new REVERSAL voucher.

        Raises:
            VoucherNotFoundError: unknown ``voucher_id``.
            VoucherAlreadyReversedError: voucher was already reversed.
        """
        original = self.session.execute(
            select(Voucher)
            .where(Voucher.id == voucher_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if original is None:
            raise VoucherNotFoundError(str(voucher_id))
        if original.is_reversed:
            raise VoucherAlreadyReversedError(original.voucher_number)

        original.is_reversed = True
        original.reversal_reason = reason

        reversal = self.create_voucher(
            VoucherType.REVERSAL,
            amount=original.amount,
            created_by_id=actor_id,
            on_date=on_date,
            narration=f"Reversal of {original.voucher_number}: {reason}",
            reference_id=str(original.id),
        )
        logger.info(
            "voucher_reversed",
            extra={
                "voucher_number": original.voucher_number,
                "reversal_number": reversal.voucher_number,
            },
        )
        return reversal
