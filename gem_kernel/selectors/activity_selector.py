"""
Module: gem_kernel.selectors.activity_selector
Responsibility: Read access to the activity audit trail: the history of one
    entity and the list of denied permission checks.

Failure modes:
    - Returns an empty list when nothing matches; never raises on absence.
"""

from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

from sqlalchemy import func, select

from gem_kernel.models.activity_log import ActionType, ActivityLog
from gem_kernel.selectors.base import BaseSelector


@dataclass(frozen=True)
class ActivityEntryDTO:
    """Data transfer object for an activity entry."""

    id: UUID
    entity_type: str
    entity_id: str
    entity_identifier: str
    action_type: ActionType
    details: str | None
    field_changes: str | None
    user_id: str
    user_name: str | None
    user_email: str | None
    source: str
    occurred_at: datetime


class ActivitySelector(BaseSelector[ActivityLog]):
    """
    Activity trail queries.

    Results are ordered oldest first; ties on ``occurred_at`` keep insertion
    order only as far as the database does, so callers must not rely on it.
    """

    def _to_dto(self, row: ActivityLog) -> ActivityEntryDTO:
        return ActivityEntryDTO(
            id=row.id,
            entity_type=row.entity_type,
            entity_id=row.entity_id,
            entity_identifier=row.entity_identifier,
            action_type=ActionType(row.action_type),
            details=row.details,
            field_changes=row.field_changes,
            user_id=row.user_id,
            user_name=row.user_name,
            user_email=row.user_email,
            source=row.source,
            occurred_at=row.occurred_at,
        )

    def list_for_entity(self, entity_type: str, entity_id: str) -> list[ActivityEntryDTO]:
        """All entries recorded against one entity."""
        rows = self.session.execute(
            select(ActivityLog)
            .where(ActivityLog.entity_type == entity_type)
            .where(ActivityLog.entity_id == str(entity_id))
            .order_by(ActivityLog.occurred_at)
        ).scalars().all()
        return [self._to_dto(row) for row in rows]

    def list_denials(self, user_id: str | None = None) -> list[ActivityEntryDTO]:
        """
        ACCESS_DENIED entries, optionally for one actor.

        Unauthenticated denials are stored under the user id ``UNKNOWN``.
        """
        stmt = select(ActivityLog).where(
            ActivityLog.action_type == ActionType.ACCESS_DENIED.value
        )
        if user_id is not None:
            stmt = stmt.where(ActivityLog.user_id == user_id)
        rows = self.session.execute(stmt.order_by(ActivityLog.occurred_at)).scalars().all()
        return [self._to_dto(row) for row in rows]

    def count(self, action_type: ActionType | None = None) -> int:
        stmt = select(func.count()).select_from(ActivityLog)
        if action_type is not None:
            stmt = stmt.where(ActivityLog.action_type == ActionType(action_type).value)
        return self.session.execute(stmt).scalar_one()
