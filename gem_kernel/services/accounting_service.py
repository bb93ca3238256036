"""
AccountingService -- expense, payment and receipt vouchers behind the gate.

Responsibility:
    Voucher workflows: gate check, then one transaction that allocates the
    voucher number and inserts the voucher, then an activity entry.
    Reversal flags the original and issues a REVERSAL voucher.

Architecture position:
    Kernel > Services -- workflow.  Delegates numbering and persistence to
    VoucherService; owns transactions through ``run_in_transaction``.

Failure modes (all returned, none raised):
    - Denied: ``DocumentResult.failed(UNAUTHORIZED_MESSAGE)``.
    - Non-positive amount, unknown or already-reversed voucher:
      ``DocumentResult.failed(<message>)``.
    - Allocation failure after retries: ``DocumentResult.failed(RETRY_MESSAGE)``.
"""

from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Callable
from uuid import UUID

from sqlalchemy.orm import Session

from gem_kernel.db.engine import run_in_transaction
from gem_kernel.domain.clock import Clock, SystemClock
from gem_kernel.domain.dtos import RETRY_MESSAGE, DocumentResult
from gem_kernel.domain.identifiers import VoucherType
from gem_kernel.domain.permissions import Permission
from gem_kernel.exceptions import DocumentError, SequenceError
from gem_kernel.logging_config import LogContext, get_logger
from gem_kernel.models.activity_log import ActionType
from gem_kernel.services.activity_logger import ActivityLogger
from gem_kernel.services.permission_gate import PermissionGate, SessionContext
from gem_kernel.services.voucher_service import VoucherService

logger = get_logger("services.accounting")

VOUCHER_ENTITY_TYPE = "Voucher"


class AccountingService:
    """Voucher-creating workflows."""

    def __init__(
        self,
        session_factory: Callable[[], Session],
        gate: PermissionGate,
        activity_logger: ActivityLogger,
        *,
        clock: Clock | None = None,
        max_attempts: int = 3,
    ):
        self._session_factory = session_factory
        self._gate = gate
        self._activity = activity_logger
        self._clock = clock or SystemClock()
        self._max_attempts = max_attempts

    def _record(
        self,
        voucher_type: VoucherType,
        session_context: SessionContext | None,
        amount: Decimal | int | str,
        narration: str | None,
        reference_id: str | None,
        on_date: date | None,
    ) -> DocumentResult:
        perm = self._gate.check_permission(Permission.EXPENSE_CREATE, session_context)
        if not perm.allowed:
            return DocumentResult.failed(perm.message)

        try:
            value = Decimal(str(amount))
        except InvalidOperation:
            return DocumentResult.failed(f"Invalid amount: {amount!r}")
        if not value.is_finite() or value <= 0:
            return DocumentResult.failed(f"Invalid amount: {amount!r}")

        actor_id = session_context.user_id or "UNKNOWN"
        voucher_date = on_date or self._clock.today()

        def operation(session: Session) -> tuple[str, str]:
            voucher = VoucherService(session, self._clock).create_voucher(
                voucher_type,
                amount=value,
                created_by_id=actor_id,
                on_date=voucher_date,
                narration=narration,
                reference_id=reference_id,
            )
            return str(voucher.id), voucher.voucher_number

        with LogContext.bind(actor_id=actor_id):
            try:
                voucher_id, number = run_in_transaction(
                    operation,
                    max_attempts=self._max_attempts,
                    session_factory=self._session_factory,
                )
            except SequenceError:
                logger.error(
                    "voucher_create_failed",
                    extra={"voucher_type": voucher_type.value},
                    exc_info=True,
                )
                return DocumentResult.failed(RETRY_MESSAGE)

        self._activity.log_activity(
            entity_type=VOUCHER_ENTITY_TYPE,
            entity_id=voucher_id,
            entity_identifier=number,
            action_type=ActionType.CREATE,
            user_id=session_context.user_id,
            user_name=session_context.user_name,
            user_email=session_context.user_email,
            details=f"Created {voucher_type.value.lower()} voucher for {value}",
        )
        return DocumentResult.created(identifier=number, entity_id=voucher_id)

    def record_expense(
        self,
        session_context: SessionContext | None,
        amount: Decimal | int | str,
        narration: str | None = None,
        reference_id: str | None = None,
        on_date: date | None = None,
    ) -> DocumentResult:
        return self._record(
            VoucherType.EXPENSE, session_context, amount, narration, reference_id, on_date
        )

    def record_payment(
        self,
        session_context: SessionContext | None,
        amount: Decimal | int | str,
        narration: str | None = None,
        reference_id: str | None = None,
        on_date: date | None = None,
    ) -> DocumentResult:
        return self._record(
            VoucherType.PAYMENT, session_context, amount, narration, reference_id, on_date
        )

    def record_receipt(
        self,
        session_context: SessionContext | None,
        amount: Decimal | int | str,
        narration: str | None = None,
        reference_id: str | None = None,
        on_date: date | None = None,
    ) -> DocumentResult:
        return self._record(
            VoucherType.RECEIPT, session_context, amount, narration, reference_id, on_date
        )

    def reverse_voucher(
        self,
        session_context: SessionContext | None,
        voucher_id: UUID,
        reason: str,
        on_date: date | None = None,
    ) -> DocumentResult:
        """
        Reverse a voucher.

        The result's ``identifier`` is the new REVERSAL voucher number; the
        STATUS_CHANGE activity is recorded against the original voucher.
        """
        perm = self._gate.check_permission(Permission.EXPENSE_EDIT, session_context)
        if not perm.allowed:
            return DocumentResult.failed(perm.message)

        actor_id = session_context.user_id or "UNKNOWN"
        reversal_date = on_date or self._clock.today()

        def operation(session: Session) -> tuple[str, str, str]:
            vouchers = VoucherService(session, self._clock)
            reversal = vouchers.reverse_voucher(
                voucher_id, reason, actor_id, on_date=reversal_date
            )
            original = vouchers.get_voucher(voucher_id)
            return original.voucher_number, reversal.voucher_number, str(reversal.id)

        with LogContext.bind(actor_id=actor_id, entity_id=str(voucher_id)):
            try:
                original_number, number, reversal_id = run_in_transaction(
                    operation,
                    max_attempts=self._max_attempts,
                    session_factory=self._session_factory,
                )
            except DocumentError as exc:
                logger.info("voucher_reversal_rejected", extra={"reason": str(exc)})
                return DocumentResult.failed(str(exc))
            except SequenceError:
                logger.error("voucher_reversal_failed", exc_info=True)
                return DocumentResult.failed(RETRY_MESSAGE)

        self._activity.log_activity(
            entity_type=VOUCHER_ENTITY_TYPE,
            entity_id=str(voucher_id),
            entity_identifier=original_number,
            action_type=ActionType.STATUS_CHANGE,
            user_id=session_context.user_id,
            user_name=session_context.user_name,
            user_email=session_context.user_email,
            details=f"Reversed by {number}: {reason}",
            old_data={"is_reversed": False},
            new_data={"is_reversed": True},
        )
        return DocumentResult.created(identifier=number, entity_id=reversal_id)
