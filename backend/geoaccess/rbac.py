"""
RBAC Permission Registry: multi-province access engine

Defines the canonical role-to-permission mapping, the privilege ladder used
for "at least as senior as" checks, and the geographic scope class of every
role. Per-user overrides live on the profile document and are additive.

Permission string format: {module}.{resource}.{action}
"""
from __future__ import annotations

import enum


# ---------------------------------------------------------------------------
# Roles
# ---------------------------------------------------------------------------


class Role(str, enum.Enum):
    DEVELOPER = "developer"
    SUPER_ADMIN = "super_admin"
    PRIVILEGE = "privilege"
    EXECUTIVE = "executive"
    GENERAL_MANAGER = "general_manager"
    PROVINCE_ADMIN = "province_admin"
    PROVINCE_MANAGER = "province_manager"
    BRANCH_MANAGER = "branch_manager"
    LEAD = "lead"
    USER = "user"
    BRANCH = "branch"
    PENDING = "pending"
    GUEST = "guest"


# ---------------------------------------------------------------------------
# All permission strings used across the system
# ---------------------------------------------------------------------------


class Permission(str, enum.Enum):
    # Dashboard
    DASHBOARD_VIEW = "dashboard.overview.view"
    # Accounting
    ACCOUNTS_VIEW = "accounting.accounts.view"
    INCOME_CREATE = "accounting.income.create"
    EXPENSE_CREATE = "accounting.expense.create"
    TRANSACTIONS_APPROVE = "accounting.transactions.approve"
    # Sales
    SALES_VIEW = "sales.orders.view"
    SALES_CREATE = "sales.orders.create"
    SALES_APPROVE = "sales.orders.approve"
    # Warehouse
    STOCK_VIEW = "warehouse.stock.view"
    STOCK_ADJUST = "warehouse.stock.adjust"
    TRANSFERS_APPROVE = "warehouse.transfers.approve"
    # HR
    EMPLOYEE_VIEW = "hr.employees.view"
    EMPLOYEE_CREATE = "hr.employees.create"
    EMPLOYEE_UPDATE = "hr.employees.update"
    LEAVE_REQUEST = "hr.leave.request"
    LEAVE_APPROVE = "hr.leave.approve"
    ATTENDANCE_VIEW = "hr.attendance.view"
    ATTENDANCE_IMPORT = "hr.attendance.import"
    # Reports
    BRANCH_REPORTS_VIEW = "reports.branch.view"
    PROVINCE_REPORTS_VIEW = "reports.province.view"
    REPORTS_EXPORT = "reports.data.export"
    # Settings
    SYSTEM_SETTINGS_VIEW = "settings.system.view"
    SYSTEM_SETTINGS_EDIT = "settings.system.edit"
    ORGANIZATION_MANAGE = "settings.organization.manage"
    # Administration
    USERS_VIEW = "admin.users.view"
    USERS_UPDATE = "admin.users.update"
    USERS_APPROVE = "admin.users.approve"
    USERS_MANAGE_PERMISSIONS = "admin.users.manage_permissions"
    # Geographic scope: every province, every branch
    ORGANIZATION_SCOPE = "organization.provinces.all"


ALL_PERMISSIONS: list[str] = sorted(p.value for p in Permission)


# ---------------------------------------------------------------------------
# Role → Permissions mapping (source of truth)
# ---------------------------------------------------------------------------

_USER: frozenset[Permission] = frozenset({
    Permission.DASHBOARD_VIEW,
    Permission.ACCOUNTS_VIEW,
    Permission.SALES_VIEW, Permission.SALES_CREATE,
    Permission.STOCK_VIEW,
    Permission.LEAVE_REQUEST,
    Permission.BRANCH_REPORTS_VIEW,
})

_LEAD: frozenset[Permission] = _USER | {
    Permission.INCOME_CREATE, Permission.EXPENSE_CREATE,
    Permission.ATTENDANCE_VIEW,
}

# No employee records at branch level; HR views start at province level.
_BRANCH_MANAGER: frozenset[Permission] = _LEAD | {
    Permission.SALES_APPROVE,
    Permission.STOCK_ADJUST,
    Permission.LEAVE_APPROVE,
    Permission.REPORTS_EXPORT,
    Permission.USERS_VIEW,
}

_PROVINCE_MANAGER: frozenset[Permission] = _BRANCH_MANAGER | {
    Permission.TRANSACTIONS_APPROVE,
    Permission.TRANSFERS_APPROVE,
    Permission.EMPLOYEE_VIEW, Permission.EMPLOYEE_CREATE, Permission.EMPLOYEE_UPDATE,
    Permission.ATTENDANCE_IMPORT,
    Permission.PROVINCE_REPORTS_VIEW,
}

_PROVINCE_ADMIN: frozenset[Permission] = _PROVINCE_MANAGER | {
    Permission.USERS_UPDATE, Permission.USERS_APPROVE,
    Permission.SYSTEM_SETTINGS_VIEW,
}

_GENERAL_MANAGER: frozenset[Permission] = _PROVINCE_MANAGER | {
    Permission.SYSTEM_SETTINGS_VIEW,
    Permission.ORGANIZATION_SCOPE,
}

_EXECUTIVE: frozenset[Permission] = frozenset({
    Permission.DASHBOARD_VIEW,
    Permission.ACCOUNTS_VIEW,
    Permission.SALES_VIEW,
    Permission.STOCK_VIEW,
    Permission.EMPLOYEE_VIEW,
    Permission.ATTENDANCE_VIEW,
    Permission.BRANCH_REPORTS_VIEW, Permission.PROVINCE_REPORTS_VIEW,
    Permission.REPORTS_EXPORT,
    Permission.USERS_VIEW,
    Permission.ORGANIZATION_SCOPE,
})

_EVERYTHING: frozenset[Permission] = frozenset(Permission)

ROLE_PERMISSIONS: dict[Role, frozenset[Permission]] = {
    # ── Platform ─────────────────────────────────────────────────────────
    Role.DEVELOPER: _EVERYTHING,
    Role.SUPER_ADMIN: _EVERYTHING,
    Role.PRIVILEGE: _EVERYTHING,

    # ── Organization-wide ────────────────────────────────────────────────
    # Read-only view over every province.
    Role.EXECUTIVE: _EXECUTIVE,
    Role.GENERAL_MANAGER: _GENERAL_MANAGER,

    # ── Province level ───────────────────────────────────────────────────
    Role.PROVINCE_ADMIN: _PROVINCE_ADMIN,
    Role.PROVINCE_MANAGER: _PROVINCE_MANAGER,

    # ── Branch level ─────────────────────────────────────────────────────
    Role.BRANCH_MANAGER: _BRANCH_MANAGER,
    Role.LEAD: _LEAD,
    Role.USER: _USER,
    Role.BRANCH: _USER,

    # ── Not yet approved ─────────────────────────────────────────────────
    Role.PENDING: frozenset(),
    Role.GUEST: frozenset(),
}


# ---------------------------------------------------------------------------
# Valid role names (for validation)
# ---------------------------------------------------------------------------

VALID_ROLES: list[str] = sorted(r.value for r in Role)


# ---------------------------------------------------------------------------
# Privilege ladder: lower number is more senior
# ---------------------------------------------------------------------------

PRIVILEGE_LEVELS: dict[Role, int] = {
    Role.DEVELOPER: 0,
    Role.SUPER_ADMIN: 1,
    Role.PRIVILEGE: 2,
    Role.EXECUTIVE: 3,
    Role.GENERAL_MANAGER: 4,
    Role.PROVINCE_ADMIN: 5,
    Role.PROVINCE_MANAGER: 6,
    Role.BRANCH_MANAGER: 7,
    Role.LEAD: 8,
    Role.USER: 9,
    Role.BRANCH: 10,
    Role.PENDING: 11,
    Role.GUEST: 12,
}

# Unknown roles rank below guest.
UNKNOWN_ROLE_LEVEL = max(PRIVILEGE_LEVELS.values()) + 1


# ---------------------------------------------------------------------------
# Data scoping: which roles are pinned to their own branch
# ---------------------------------------------------------------------------

SINGLE_BRANCH_ROLES: frozenset[Role] = frozenset({
    Role.BRANCH_MANAGER,
    Role.LEAD,
    Role.USER,
    Role.BRANCH,
    Role.PENDING,
    Role.GUEST,
})

DEVELOPER_TIER_ROLES: frozenset[Role] = frozenset({Role.DEVELOPER})


# ---------------------------------------------------------------------------
# Role categories: "this role or anything more senior", for route allow-lists
# ---------------------------------------------------------------------------


class RoleCategory(str, enum.Enum):
    DEVELOPER = "developer"
    SUPER_ADMIN = "super_admin"
    EXECUTIVE = "executive"
    GENERAL_MANAGER = "general_manager"
    PROVINCE_ADMIN = "province_admin"
    PROVINCE_MANAGER = "province_manager"
    BRANCH_MANAGER = "branch_manager"
    LEAD = "lead"
    STAFF = "staff"
    GUEST = "guest"


# Lowest-ranked role that still belongs to each category.
_CATEGORY_FLOOR: dict[RoleCategory, Role] = {
    RoleCategory.DEVELOPER: Role.DEVELOPER,
    RoleCategory.SUPER_ADMIN: Role.SUPER_ADMIN,
    RoleCategory.EXECUTIVE: Role.EXECUTIVE,
    RoleCategory.GENERAL_MANAGER: Role.GENERAL_MANAGER,
    RoleCategory.PROVINCE_ADMIN: Role.PROVINCE_ADMIN,
    RoleCategory.PROVINCE_MANAGER: Role.PROVINCE_MANAGER,
    RoleCategory.BRANCH_MANAGER: Role.BRANCH_MANAGER,
    RoleCategory.LEAD: Role.LEAD,
    RoleCategory.STAFF: Role.BRANCH,
    RoleCategory.GUEST: Role.GUEST,
}

ROLE_CATEGORIES: dict[RoleCategory, frozenset[Role]] = {
    category: frozenset(
        role for role, level in PRIVILEGE_LEVELS.items()
        if level <= PRIVILEGE_LEVELS[floor]
    )
    for category, floor in _CATEGORY_FLOOR.items()
}


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _as_role(role: str | Role | None) -> Role | None:
    if isinstance(role, Role):
        return role
    try:
        return Role(role)
    except ValueError:
        return None


def permissions_for(role: str | Role | None) -> frozenset[Permission]:
    """Return the base permission set for a role, or empty set if unknown."""
    known = _as_role(role)
    if known is None:
        return frozenset()
    return ROLE_PERMISSIONS[known]


def privilege_level(role: str | Role | None) -> int:
    """Numeric rank of *role*; unknown roles get ``UNKNOWN_ROLE_LEVEL``."""
    known = _as_role(role)
    if known is None:
        return UNKNOWN_ROLE_LEVEL
    return PRIVILEGE_LEVELS[known]


def is_known_role(role: str | Role | None) -> bool:
    return _as_role(role) is not None


def is_single_branch_role(role: str | Role | None) -> bool:
    """Unknown roles are pinned to a single branch."""
    known = _as_role(role)
    return known is None or known in SINGLE_BRANCH_ROLES


def allowed_roles_for_category(category: RoleCategory) -> list[str]:
    """Role names in *category*, most senior first."""
    return [
        r.value
        for r in sorted(ROLE_CATEGORIES[category], key=PRIVILEGE_LEVELS.__getitem__)
    ]


def permission_description(permission: str) -> str:
    """Return a human-readable description for a permission string."""
    _DESCRIPTIONS: dict[str, str] = {
        "dashboard.overview.view": "View the dashboard",
        "accounting.accounts.view": "View accounts",
        "accounting.income.create": "Record daily income",
        "accounting.expense.create": "Record expenses",
        "accounting.transactions.approve": "Approve accounting transactions",
        "sales.orders.view": "View sales orders",
        "sales.orders.create": "Create sales orders",
        "sales.orders.approve": "Approve sales orders",
        "warehouse.stock.view": "View stock levels",
        "warehouse.stock.adjust": "Adjust stock",
        "warehouse.transfers.approve": "Approve inter-branch transfers",
        "hr.employees.view": "View employee records",
        "hr.employees.create": "Create employees",
        "hr.employees.update": "Edit employees",
        "hr.leave.request": "Request leave",
        "hr.leave.approve": "Approve leave requests",
        "hr.attendance.view": "View attendance",
        "hr.attendance.import": "Import attendance files",
        "reports.branch.view": "View branch reports",
        "reports.province.view": "View province reports",
        "reports.data.export": "Export report data",
        "settings.system.view": "View system settings",
        "settings.system.edit": "Edit system settings",
        "settings.organization.manage": "Manage provinces, branches and departments",
        "admin.users.view": "View user list",
        "admin.users.update": "Edit users (role, provinces, branch)",
        "admin.users.approve": "Approve pending users",
        "admin.users.manage_permissions": "Grant individual permissions",
        "organization.provinces.all": "See every province and branch",
    }
    return _DESCRIPTIONS.get(permission, permission)
