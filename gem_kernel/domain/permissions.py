"""
Permissions -- static role to permission-set table.

Responsibility:
    Declares the closed set of roles and the closed set of permissions, and
    the fixed mapping between them.  Permissions are enum members, never
    free-form strings, so every role/permission combination is checkable.

Architecture position:
    Kernel > Domain -- pure, zero I/O.  Consumed by
    ``gem_kernel.services.permission_gate``.

Invariants enforced:
    - VIEWER is the least-privileged role and the fallback for
      unauthenticated actors and unknown role names.
    - SUPER_ADMIN holds every permission; ADMIN holds every permission
      except invoice and expense deletion.
"""

from enum import Enum, unique


@unique
class Permission(str, Enum):
    """Every action the ERP guards."""

    # Inventory
    INVENTORY_VIEW = "inventory.view"
    INVENTORY_CREATE = "inventory.create"
    INVENTORY_EDIT = "inventory.edit"
    INVENTORY_DELETE = "inventory.delete"
    INVENTORY_VIEW_COST = "inventory.view_cost"

    # Quotations
    QUOTATION_VIEW = "quotation.view"
    QUOTATION_CREATE = "quotation.create"
    QUOTATION_EDIT = "quotation.edit"
    QUOTATION_APPROVE = "quotation.approve"

    # Sales & invoices
    SALES_VIEW = "sales.view"
    SALES_CREATE = "sales.create"
    SALES_DELETE = "sales.delete"
    INVOICE_CREATE = "invoice.create"
    INVOICE_MANAGE = "invoice.manage"
    INVOICE_DELETE = "invoice.delete"

    # Vendors
    VENDOR_VIEW = "vendor.view"
    VENDOR_MANAGE = "vendor.manage"

    # Reports
    REPORTS_VIEW = "reports.view"
    REPORTS_FINANCIAL = "reports.financial"
    REPORTS_VENDOR = "reports.vendor"

    # Settings & users
    SETTINGS_MANAGE = "settings.manage"
    USERS_MANAGE = "users.manage"
    LANDING_PAGE_MANAGE = "settings.landing_page"

    # Expenses & vouchers
    EXPENSE_VIEW = "expense.view"
    EXPENSE_CREATE = "expense.create"
    EXPENSE_EDIT = "expense.edit"
    EXPENSE_DELETE = "expense.delete"
    EXPENSE_REPORT = "expense.report"


@unique
class Role(str, Enum):
    """Fixed set of user roles."""

    SUPER_ADMIN = "SUPER_ADMIN"
    ADMIN = "ADMIN"
    SALES = "SALES"
    ACCOUNTS = "ACCOUNTS"
    VIEWER = "VIEWER"


LEAST_PRIVILEGED_ROLE = Role.VIEWER

_SUPER_ADMIN_ONLY: frozenset[Permission] = frozenset(
    {Permission.INVOICE_DELETE, Permission.EXPENSE_DELETE}
)

ROLE_PERMISSIONS: dict[Role, frozenset[Permission]] = {
    Role.SUPER_ADMIN: frozenset(Permission),
    Role.ADMIN: frozenset(Permission) - _SUPER_ADMIN_ONLY,
    Role.SALES: frozenset(
        {
            Permission.INVENTORY_VIEW,
            Permission.INVENTORY_CREATE,
            Permission.INVENTORY_EDIT,
            Permission.QUOTATION_VIEW,
            Permission.QUOTATION_CREATE,
            Permission.QUOTATION_EDIT,
            Permission.SALES_VIEW,
            Permission.SALES_CREATE,
            Permission.INVOICE_CREATE,
            Permission.INVOICE_MANAGE,
            Permission.VENDOR_VIEW,
            Permission.REPORTS_VIEW,
            Permission.EXPENSE_VIEW,
        }
    ),
    Role.ACCOUNTS: frozenset(
        {
            Permission.INVENTORY_VIEW,
            Permission.INVENTORY_VIEW_COST,
            Permission.QUOTATION_VIEW,
            Permission.SALES_VIEW,
            Permission.REPORTS_VIEW,
            Permission.VENDOR_VIEW,
            Permission.INVOICE_MANAGE,
            Permission.EXPENSE_VIEW,
            Permission.EXPENSE_CREATE,
            Permission.EXPENSE_EDIT,
            Permission.EXPENSE_REPORT,
        }
    ),
    Role.VIEWER: frozenset(
        {
            Permission.INVENTORY_VIEW,
            Permission.QUOTATION_VIEW,
        }
    ),
}


def resolve_role(role: Role | str | None) -> Role:
    """Coerce a stored role name to a Role, falling back to VIEWER."""
    if isinstance(role, Role):
        return role
    if not role:
        return LEAST_PRIVILEGED_ROLE
    try:
        return Role(role)
    except ValueError:
        return LEAST_PRIVILEGED_ROLE


def permissions_for_role(role: Role | str | None) -> frozenset[Permission]:
    return ROLE_PERMISSIONS[resolve_role(role)]


def has_permission(role: Role | str | None, permission: Permission) -> bool:
    """Pure lookup; never raises."""
    return permission in permissions_for_role(role)
