"""
SequenceService -- monotonic sequence allocation via locked counter rows.

Responsibility:
    Provides strictly increasing integers for a named series (the global
    SKU series).  A dedicated counter table holds the last issued value per
    name; the read-increment-write runs under a lock inside the caller's
    transaction.

Architecture position:
    Kernel > Services -- imperative shell infrastructure.
    Called by SkuService.

Invariants enforced:
    - Monotonicity: the locked counter row is the sole source of truth for
      the next value.  It is never re-derived from issued identifiers.
    - Serialized writers: ``SELECT ... FOR UPDATE`` on PostgreSQL; on SQLite
      the engine opens every transaction with ``BEGIN IMMEDIATE``
      (see gem_kernel.db.engine), so two allocations for the same name can
      never read the same current value.
    - Transactional: the increment is only visible after the caller commits.
      Rolling back the caller's transaction returns the value; a failure
      after commit burns it, and the gap is expected.

Failure modes:
    - IntegrityError: concurrent first-use creation race (handled via
      savepoint rollback and re-read).
    - MalformedSequenceError: the stored value is not a non-negative
      integer.  The counter is the single source of truth, so resetting it
      to zero would re-issue old numbers; allocation fails loudly instead.
"""

from sqlalchemy import BigInteger, String, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Mapped, Session, mapped_column

from gem_kernel.db.base import Base
from gem_kernel.exceptions import MalformedSequenceError
from gem_kernel.logging_config import get_logger

logger = get_logger("services.sequence")


class SequenceCounter(Base):
    """
    Sequence counter table.

    Each row represents a named sequence with its last issued value.
    """

    __tablename__ = "sequence_counters"

    name: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        unique=True,
    )

    current_value: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
        default=0,
    )


class SequenceService:
    """
    Service for generating transactional sequence numbers.

    Contract:
        Accepts a sequence name and returns the next strictly increasing
        integer.  First use of a name returns 1.

    Non-goals:
        - Does NOT call ``session.commit()`` -- caller controls boundaries.

    Usage:
        with session_scope() as session:
            seq = SequenceService(session).next_value(SequenceService.SKU)
    """

    # Well-known sequence names
    SKU = "sku"

    def __init__(self, session: Session):
        self._session = session

    def _locked_counter(self, sequence_name: str) -> SequenceCounter | None:
        return self._session.execute(
            select(SequenceCounter)
            .where(SequenceCounter.name == sequence_name)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def _checked_value(self, counter: SequenceCounter) -> int:
        # SQLite hands back whatever was stored, text included
        raw = counter.current_value
        if isinstance(raw, bool) or not isinstance(raw, int) or raw < 0:
            logger.warning(
                "sequence_counter_malformed",
                extra={"sequence_name": counter.name, "stored_value": str(raw)},
            )
            raise MalformedSequenceError(counter.name, str(raw))
        return raw

    def next_value(self, sequence_name: str) -> int:
        """
        Get the next value for a named sequence.

        1. Locks the counter row (or creates it on first use).
        2. Increments it.
        3. Returns the new value.

        Preconditions:
            - ``sequence_name`` is a non-empty string.
            - The caller is inside an active transaction.

        Postconditions:
            - Returns an integer > 0, strictly greater than any value
              previously returned for this name.
            - The counter row stays locked until the transaction ends.

        Raises:
            MalformedSequenceError: stored value is not a non-negative integer.
        """
        if not sequence_name:
            raise ValueError("sequence_name must be non-empty")

        counter = self._locked_counter(sequence_name)

        if counter is None:
            # First use.  Another transaction may create the row at the same
            # time; the savepoint keeps the caller's other work intact.
            savepoint = self._session.begin_nested()
            try:
                counter = SequenceCounter(name=sequence_name, current_value=1)
                self._session.add(counter)
                self._session.flush()
                savepoint.commit()
                logger.debug(
                    "sequence_allocated",
                    extra={"sequence_name": sequence_name, "value": 1},
                )
                return 1
            except IntegrityError:
                logger.debug(
                    "sequence_counter_race_retry",
                    extra={"sequence_name": sequence_name},
                )
                savepoint.rollback()
                counter = self._locked_counter(sequence_name)
                if counter is None:
                    raise

        counter.current_value = self._checked_value(counter) + 1
        self._session.flush()
        logger.debug(
            "sequence_allocated",
            extra={"sequence_name": sequence_name, "value": counter.current_value},
        )
        return counter.current_value

    def current_value(self, sequence_name: str) -> int | None:
        """Last issued value, or None if the sequence was never used."""
        counter = self._session.execute(
            select(SequenceCounter)
            .where(SequenceCounter.name == sequence_name)
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

        return counter.current_value if counter else None

    def reset(self, sequence_name: str, value: int = 0) -> None:
        """
        Reset a sequence to a specific value.

        WARNING: Only for tests and data migration.  Resetting below an
        issued value makes the next allocation collide.
        """
        counter = self._locked_counter(sequence_name)

        if counter is None:
            counter = SequenceCounter(name=sequence_name, current_value=value)
            self._session.add(counter)
        else:
            counter.current_value = value

        self._session.flush()
        logger.warning(
            "sequence_reset",
            extra={"sequence_name": sequence_name, "value": value},
        )

    def initialize_sequences(self) -> None:
        """Create the well-known counters at zero if they are missing."""
        for name in [self.SKU]:
            existing = self._session.execute(
                select(SequenceCounter).where(SequenceCounter.name == name)
            ).scalar_one_or_none()

            if existing is None:
                self._session.add(SequenceCounter(name=name, current_value=0))

        self._session.flush()
