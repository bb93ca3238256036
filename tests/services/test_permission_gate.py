"""
Permission gate: uniform denial, exactly one audit row per denial.
"""

import pytest
from sqlalchemy import func, select

from gem_kernel.domain.permissions import Permission, Role
from gem_kernel.exceptions import PermissionDeniedError
from gem_kernel.models.activity_log import ActionType, ActivityLog
from gem_kernel.selectors.activity_selector import ActivitySelector
from gem_kernel.services.activity_logger import ActivityLogger
from gem_kernel.services.permission_gate import (
    UNAUTHORIZED_MESSAGE,
    PermissionGate,
    SessionContext,
)


def _activity_count(session_factory) -> int:
    with session_factory() as s:
        return s.execute(select(func.count()).select_from(ActivityLog)).scalar_one()


class TestCheckPermission:

    def test_viewer_denied_admin_permission_writes_one_row(
        self, permission_gate, viewer_context, session_factory
    ):
        result = permission_gate.check_permission(Permission.USERS_MANAGE, viewer_context)

        assert result.allowed is False
        assert result.message == UNAUTHORIZED_MESSAGE
        with session_factory() as s:
            denials = ActivitySelector(s).list_denials()
        assert len(denials) == 1
        entry = denials[0]
        assert entry.entity_type == "Security"
        assert entry.action_type == ActionType.ACCESS_DENIED
        assert entry.entity_id == viewer_context.user_id
        assert entry.entity_identifier == viewer_context.user_email
        assert entry.details == "Attempted action requiring permission: users.manage"

    def test_admin_allowed_writes_nothing(self, permission_gate, admin_context, session_factory):
        result = permission_gate.check_permission(Permission.USERS_MANAGE, admin_context)

        assert result.allowed is True
        assert result.message is None
        assert _activity_count(session_factory) == 0

    def test_admin_cannot_delete_expenses(self, permission_gate, admin_context, super_admin_context):
        assert not permission_gate.check_permission(Permission.EXPENSE_DELETE, admin_context).allowed
        assert permission_gate.check_permission(Permission.EXPENSE_DELETE, super_admin_context).allowed

    def test_unauthenticated_is_viewer(self, permission_gate, session_factory):
        assert permission_gate.check_permission(Permission.INVENTORY_VIEW, None).allowed

        result = permission_gate.check_permission(Permission.INVENTORY_CREATE, None)

        assert result.allowed is False
        with session_factory() as s:
            entry = ActivitySelector(s).list_denials()[0]
        assert entry.entity_id == "unknown"
        assert entry.entity_identifier == "unknown"
        assert entry.user_id == "UNKNOWN"

    def test_unknown_role_is_viewer(self, permission_gate):
        ctx = SessionContext(user_id="u9", role="WAREHOUSE")
        assert not permission_gate.check_permission(Permission.INVENTORY_CREATE, ctx).allowed

    def test_message_never_names_the_permission(self, permission_gate, viewer_context):
        for permission in (Permission.EXPENSE_DELETE, Permission.SETTINGS_MANAGE):
            message = permission_gate.check_permission(permission, viewer_context).message
            assert permission.value not in message

    def test_each_denial_is_one_row(self, permission_gate, sales_context, session_factory):
        for _ in range(3):
            permission_gate.check_permission(Permission.EXPENSE_CREATE, sales_context)
        assert _activity_count(session_factory) == 3

    def test_denial_is_logged(self, permission_gate, viewer_context, captured_logs):
        permission_gate.check_permission(Permission.INVOICE_DELETE, viewer_context)
        record = next(r for r in captured_logs() if r["message"] == "permission_denied")
        assert record["level"] == "WARNING"
        assert record["permission"] == "invoice.delete"
        assert record["role"] == Role.VIEWER.value


class _BrokenSession:
    def add(self, _):
        raise RuntimeError("audit store offline")

    def rollback(self):
        pass

    def close(self):
        pass


class TestFailingAuditSink:

    def test_denial_stands_when_audit_write_fails(self, viewer_context, captured_logs):
        gate = PermissionGate(ActivityLogger(session_factory=_BrokenSession))

        result = gate.check_permission(Permission.INVENTORY_CREATE, viewer_context)

        assert result.allowed is False
        assert result.message == UNAUTHORIZED_MESSAGE
        assert any(r["message"] == "activity_log_write_failed" for r in captured_logs())


class TestRequirePermission:

    def test_raises_with_uniform_message(self, permission_gate, viewer_context):
        with pytest.raises(PermissionDeniedError) as exc_info:
            permission_gate.require_permission(Permission.SALES_DELETE, viewer_context)
        assert str(exc_info.value) == UNAUTHORIZED_MESSAGE
        assert exc_info.value.permission == "sales.delete"
        assert exc_info.value.code == "PERMISSION_DENIED"

    def test_allowed_returns_none(self, permission_gate, sales_context):
        assert permission_gate.require_permission(Permission.SALES_CREATE, sales_context) is None
