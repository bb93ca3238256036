"""
PermissionGate -- authorization checkpoint before every mutating action.

Responsibility:
    Checks the current actor's role against a required permission.  A denied
    check appends exactly one ACCESS_DENIED activity entry; an allowed check
    appends nothing.

Architecture position:
    Kernel > Services.  Called first by every document workflow, before any
    transaction is opened.

Invariants enforced:
    - Unauthenticated actors and unknown roles are treated as VIEWER.
    - The denial message is always ``UNAUTHORIZED_MESSAGE``; it never names
      the missing permission.
    - A failing audit sink never changes the result and never raises
      (ActivityLogger swallows its own errors).
"""

from dataclasses import dataclass

from gem_kernel.domain.permissions import Permission, Role, has_permission, resolve_role
from gem_kernel.exceptions import PermissionDeniedError
from gem_kernel.logging_config import get_logger
from gem_kernel.models.activity_log import ActionType
from gem_kernel.services.activity_logger import ActivityLogger

logger = get_logger("services.permission_gate")

UNAUTHORIZED_MESSAGE = (
    "Your credentials don't have permission to perform this action. "
    "Please contact IT Support for permission."
)

SECURITY_ENTITY_TYPE = "Security"
UNKNOWN_ACTOR = "unknown"


@dataclass(frozen=True)
class SessionContext:
    """Identity of the acting user, supplied by the authentication layer."""

    user_id: str | None = None
    user_name: str | None = None
    user_email: str | None = None
    role: Role | str | None = None


@dataclass(frozen=True)
class PermissionCheckResult:
    allowed: bool
    message: str | None = None


class PermissionGate:
    """
    Role-based permission check with denial auditing.

    Usage:
        gate = PermissionGate(ActivityLogger(session_factory=factory))
        result = gate.check_permission(Permission.INVENTORY_CREATE, ctx)
        if not result.allowed:
            return {"message": result.message}
    """

    def __init__(self, activity_logger: ActivityLogger):
        self._activity_logger = activity_logger

    def check_permission(
        self,
        permission: Permission,
        session_context: SessionContext | None,
    ) -> PermissionCheckResult:
        """
        Check ``permission`` for the actor in ``session_context``.

        Postconditions:
            - allowed=True: no audit entry written.
            - allowed=False: one ACCESS_DENIED entry attempted, message is
              UNAUTHORIZED_MESSAGE.
        """
        ctx = session_context or SessionContext()
        role = resolve_role(ctx.role)

        if has_permission(role, permission):
            return PermissionCheckResult(allowed=True)

        logger.warning(
            "permission_denied",
            extra={
                "actor_id": ctx.user_id or UNKNOWN_ACTOR,
                "role": role.value,
                "permission": permission.value,
            },
        )
        self._activity_logger.log_activity(
            entity_type=SECURITY_ENTITY_TYPE,
            entity_id=ctx.user_id or UNKNOWN_ACTOR,
            entity_identifier=ctx.user_email or UNKNOWN_ACTOR,
            action_type=ActionType.ACCESS_DENIED,
            user_id=ctx.user_id,
            user_name=ctx.user_name,
            user_email=ctx.user_email,
            details=f"Attempted action requiring permission: {permission.value}",
        )

        return PermissionCheckResult(allowed=False, message=UNAUTHORIZED_MESSAGE)

    def require_permission(
        self,
        permission: Permission,
        session_context: SessionContext | None,
    ) -> None:
        """
        Raise instead of returning a result.

        Raises:
            PermissionDeniedError: carrying UNAUTHORIZED_MESSAGE.
        """
        result = self.check_permission(permission, session_context)
        if not result.allowed:
            raise PermissionDeniedError(UNAUTHORIZED_MESSAGE, permission=permission.value)
