"""
ActivityLogger -- best-effort audit sink.

Responsibility:
    Appends ``ActivityLog`` rows for document creation, edits, status
    changes and permission denials.  Computes a field-level diff for edits.

Architecture position:
    Kernel > Services.  Called by PermissionGate and the document workflows.

Contract:
    ``log_activity`` never raises.  A failed write is logged at ERROR and
    swallowed so that an audit outage cannot block or mask the caller's
    result.

    When constructed with a ``session_factory`` each entry is written and
    committed in its own short transaction.  That keeps a denial record even
    when the caller later rolls back its own work.  When constructed with a
    ``session`` the entry joins that session's transaction (flush only),
    inside a savepoint so a failed insert leaves the caller's work intact.
"""

import json
from typing import Any, Callable, Mapping

from sqlalchemy.orm import Session

from gem_kernel.domain.clock import Clock, SystemClock
from gem_kernel.logging_config import get_logger
from gem_kernel.models.activity_log import ActionType, ActivityLog, ActivitySource

logger = get_logger("services.activity_logger")

# Bookkeeping fields that never count as an edit
_IGNORED_DIFF_KEYS = frozenset({"created_at", "updated_at", "created_by", "created_by_id"})

UNKNOWN_USER_ID = "UNKNOWN"
UNKNOWN_USER_NAME = "Unknown"
SYSTEM_USER_ID = "SYSTEM"
SYSTEM_USER_NAME = "System"


def _json_default(value: Any) -> str:
    return str(value)


def compute_field_changes(
    old_data: Mapping[str, Any],
    new_data: Mapping[str, Any],
) -> dict[str, dict[str, Any]]:
    """``{key: {"old": ..., "new": ...}}`` for every key whose value changed."""
    changes: dict[str, dict[str, Any]] = {}
    for key in sorted(set(old_data) | set(new_data)):
        if key in _IGNORED_DIFF_KEYS:
            continue
        old_val = old_data.get(key)
        new_val = new_data.get(key)
        # Values may be Decimal, date or str; compare serialized forms
        if json.dumps(old_val, default=_json_default) != json.dumps(new_val, default=_json_default):
            changes[key] = {"old": old_val, "new": new_val}
    return changes


class ActivityLogger:
    """
    Audit sink accepting ``{entity_type, entity_id, entity_identifier,
    action_type, user_id, user_name, details}``.
    """

    def __init__(
        self,
        session: Session | None = None,
        *,
        session_factory: Callable[[], Session] | None = None,
        clock: Clock | None = None,
    ):
        if (session is None) == (session_factory is None):
            raise ValueError("Provide exactly one of session or session_factory")
        self._session = session
        self._session_factory = session_factory
        self._clock = clock or SystemClock()

    def _resolve_user(
        self,
        user_id: str | None,
        user_name: str | None,
        source: ActivitySource,
    ) -> tuple[str, str | None]:
        if user_id:
            return user_id, user_name
        if source in (ActivitySource.SYSTEM, ActivitySource.CRON):
            return SYSTEM_USER_ID, SYSTEM_USER_NAME
        return UNKNOWN_USER_ID, UNKNOWN_USER_NAME

    def _build_entry(
        self,
        entity_type: str,
        entity_id: str,
        entity_identifier: str,
        action_type: ActionType,
        user_id: str | None,
        user_name: str | None,
        user_email: str | None,
        details: str | None,
        old_data: Mapping[str, Any] | None,
        new_data: Mapping[str, Any] | None,
        source: ActivitySource,
    ) -> ActivityLog:
        final_user_id, final_user_name = self._resolve_user(user_id, user_name, source)

        field_changes = None
        if action_type == ActionType.EDIT and old_data is not None and new_data is not None:
            changes = compute_field_changes(old_data, new_data)
            if changes:
                field_changes = json.dumps(changes, default=_json_default, sort_keys=True)

        return ActivityLog(
            entity_type=entity_type,
            entity_id=str(entity_id),
            entity_identifier=entity_identifier,
            action_type=ActionType(action_type).value,
            field_changes=field_changes,
            details=details,
            user_id=final_user_id,
            user_name=final_user_name,
            user_email=user_email,
            source=ActivitySource(source).value,
            occurred_at=self._clock.now(),
        )

    def _write(self, entry: ActivityLog) -> None:
        if self._session_factory is not None:
            session = self._session_factory()
            try:
                session.add(entry)
                session.commit()
            except Exception:
                session.rollback()
                raise
            finally:
                session.close()
        else:
            with self._session.begin_nested():
                self._session.add(entry)
                self._session.flush()

    def log_activity(
        self,
        entity_type: str,
        entity_id: str,
        entity_identifier: str,
        action_type: ActionType,
        *,
        user_id: str | None = None,
        user_name: str | None = None,
        user_email: str | None = None,
        details: str | None = None,
        old_data: Mapping[str, Any] | None = None,
        new_data: Mapping[str, Any] | None = None,
        source: ActivitySource = ActivitySource.WEB,
    ) -> ActivityLog | None:
        """
        Append one activity entry.

        Returns:
            The written entry, or None when the write failed.
        """
        try:
            entry = self._build_entry(
                entity_type,
                entity_id,
                entity_identifier,
                action_type,
                user_id,
                user_name,
                user_email,
                details,
                old_data,
                new_data,
                source,
            )
            self._write(entry)
        except Exception:
            logger.error(
                "activity_log_write_failed",
                extra={
                    "entity_type": entity_type,
                    "entity_id": str(entity_id),
                    "action_type": str(action_type),
                },
                exc_info=True,
            )
            return None

        logger.info(
            "activity_logged",
            extra={
                "entity_type": entity_type,
                "entity_id": str(entity_id),
                "action_type": entry.action_type,
            },
        )
        return entry
