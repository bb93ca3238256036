"""
Module: gem_kernel.models.activity_log
Responsibility: ORM persistence for the activity audit trail, including
    permission-denial records.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - Append-only: no UPDATE or DELETE through the ORM
      (see gem_kernel.db.immutability).

Audit relevance:
    ActivityLog IS the audit trail.  Every document creation, edit, status
    change and every denied permission check produces one row.
"""

from datetime import datetime
from enum import Enum

from sqlalchemy import DateTime, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from gem_kernel.db.base import Base


class ActionType(str, Enum):
    """Kinds of recorded activity."""

    CREATE = "CREATE"
    EDIT = "EDIT"
    DELETE = "DELETE"
    STATUS_CHANGE = "STATUS_CHANGE"
    ACCESS_DENIED = "ACCESS_DENIED"


class ActivitySource(str, Enum):
    """Where the activity originated."""

    WEB = "WEB"
    SYSTEM = "SYSTEM"
    CRON = "CRON"
    CSV_IMPORT = "CSV_IMPORT"


class ActivityLog(Base):
    """
    One audit entry.

    Contract:
        Rows are never modified or deleted.  ``entity_id`` and
        ``entity_identifier`` are free strings because denial records are
        keyed by the actor ("unknown" when unauthenticated), not a document.
    """

    __tablename__ = "activity_logs"

    __table_args__ = (
        Index("idx_activity_entity", "entity_type", "entity_id"),
        Index("idx_activity_action", "action_type"),
        Index("idx_activity_occurred", "occurred_at"),
    )

    # Entity kind, e.g. "Inventory", "Voucher", "Security"
    entity_type: Mapped[str] = mapped_column(String(50), nullable=False)

    entity_id: Mapped[str] = mapped_column(String(64), nullable=False)

    # Human-facing identifier: SKU, voucher number, email
    entity_identifier: Mapped[str] = mapped_column(String(255), nullable=False)

    action_type: Mapped[ActionType] = mapped_column(String(32), nullable=False)

    # JSON diff of changed fields for EDIT actions
    field_changes: Mapped[str | None] = mapped_column(Text, nullable=True)

    details: Mapped[str | None] = mapped_column(Text, nullable=True)

    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    user_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    user_email: Mapped[str | None] = mapped_column(String(255), nullable=True)

    source: Mapped[ActivitySource] = mapped_column(
        String(16),
        nullable=False,
        default=ActivitySource.WEB,
    )

    occurred_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<ActivityLog {self.action_type} {self.entity_type}:{self.entity_identifier}>"
