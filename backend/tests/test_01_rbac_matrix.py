"""
Role-permission matrix: totality, cumulative role sets, privilege ladder,
role categories.
"""
import pytest

from geoaccess.rbac import (
    ALL_PERMISSIONS,
    PRIVILEGE_LEVELS,
    ROLE_CATEGORIES,
    ROLE_PERMISSIONS,
    UNKNOWN_ROLE_LEVEL,
    VALID_ROLES,
    Permission,
    Role,
    RoleCategory,
    allowed_roles_for_category,
    is_known_role,
    is_single_branch_role,
    permission_description,
    permissions_for,
    privilege_level,
)


class TestRolePermissionMatrix:
    """Role → permission mapping."""

    @pytest.mark.parametrize("role", list(Role))
    def test_001_every_role_maps_to_a_frozenset(self, role):
        """permissions_for is total over the role enumeration."""
        perms = permissions_for(role)
        assert isinstance(perms, frozenset)
        assert perms == permissions_for(role.value)

    def test_002_unknown_role_is_empty(self):
        """Unknown or missing roles get no permissions."""
        assert permissions_for("janitor") == frozenset()
        assert permissions_for(None) == frozenset()
        assert permissions_for("") == frozenset()

    def test_003_guest_and_pending_are_empty(self):
        """Unapproved accounts carry nothing."""
        assert permissions_for(Role.GUEST) == frozenset()
        assert permissions_for(Role.PENDING) == frozenset()

    def test_004_top_roles_carry_everything(self):
        """developer, super_admin and privilege hold every permission."""
        for role in (Role.DEVELOPER, Role.SUPER_ADMIN, Role.PRIVILEGE):
            assert {p.value for p in permissions_for(role)} == set(ALL_PERMISSIONS)

    def test_005_roles_are_cumulative(self):
        """user ⊂ lead ⊂ branch_manager ⊂ province_manager ⊂ province_admin."""
        chain = [Role.USER, Role.LEAD, Role.BRANCH_MANAGER, Role.PROVINCE_MANAGER, Role.PROVINCE_ADMIN]
        for junior, senior in zip(chain, chain[1:]):
            assert permissions_for(junior) < permissions_for(senior)

    def test_006_general_manager_extends_province_manager(self):
        """general_manager holds every province_manager permission plus org scope."""
        assert permissions_for(Role.PROVINCE_MANAGER) < permissions_for(Role.GENERAL_MANAGER)
        assert Permission.ORGANIZATION_SCOPE in permissions_for(Role.GENERAL_MANAGER)

    def test_007_branch_manager_cannot_view_employees(self):
        """Employee records start at province_manager."""
        assert Permission.EMPLOYEE_VIEW not in permissions_for(Role.BRANCH_MANAGER)
        assert Permission.EMPLOYEE_VIEW in permissions_for(Role.PROVINCE_MANAGER)

    def test_008_executive_is_read_only_org_wide(self):
        """Executives see everything but create/approve nothing."""
        perms = permissions_for(Role.EXECUTIVE)
        assert Permission.ORGANIZATION_SCOPE in perms
        assert not any(
            p.value.endswith((".create", ".approve", ".edit", ".adjust", ".import"))
            for p in perms
        )

    def test_009_province_roles_lack_org_scope(self):
        """Only organization-level roles see every province by default."""
        for role in (Role.PROVINCE_ADMIN, Role.PROVINCE_MANAGER, Role.BRANCH_MANAGER, Role.USER):
            assert Permission.ORGANIZATION_SCOPE not in permissions_for(role)

    def test_010_permission_strings_are_three_part(self):
        """Permission format is {module}.{resource}.{action}."""
        for value in ALL_PERMISSIONS:
            assert len(value.split(".")) == 3, value

    def test_011_matrix_covers_valid_roles(self):
        """Every valid role appears in the matrix."""
        assert sorted(r.value for r in ROLE_PERMISSIONS) == VALID_ROLES

    def test_012_every_permission_is_described(self):
        """Descriptions exist for the whole catalogue."""
        for value in ALL_PERMISSIONS:
            assert permission_description(value) != value


class TestPrivilegeLadder:
    """Explicit role → level table."""

    def test_020_levels_are_a_total_order(self):
        """No two roles share a level."""
        levels = list(PRIVILEGE_LEVELS.values())
        assert len(set(levels)) == len(levels) == len(Role)

    def test_021_developer_is_most_senior(self):
        assert privilege_level(Role.DEVELOPER) == 0
        assert privilege_level("super_admin") < privilege_level("branch_manager")

    def test_022_unknown_role_ranks_below_guest(self):
        assert privilege_level("janitor") == UNKNOWN_ROLE_LEVEL
        assert privilege_level("janitor") > privilege_level(Role.GUEST)

    def test_023_known_role_detection(self):
        assert is_known_role("lead")
        assert is_known_role(Role.LEAD)
        assert not is_known_role("Lead")


class TestScopeClassesAndCategories:
    """Single-branch roles and category allow-lists."""

    def test_030_single_branch_roles(self):
        for role in ("user", "branch", "lead", "branch_manager", "pending", "guest"):
            assert is_single_branch_role(role)
        for role in ("province_manager", "province_admin", "general_manager", "super_admin"):
            assert not is_single_branch_role(role)

    def test_031_unknown_role_is_single_branch(self):
        """Unknown roles get the narrowest branch scope."""
        assert is_single_branch_role("janitor")

    def test_032_category_includes_more_senior_roles(self):
        """Province-admin category = province_admin and everything above it."""
        allowed = allowed_roles_for_category(RoleCategory.PROVINCE_ADMIN)
        assert allowed[0] == "developer"
        assert allowed[-1] == "province_admin"
        assert "province_manager" not in allowed

    def test_033_guest_category_is_everyone(self):
        assert ROLE_CATEGORIES[RoleCategory.GUEST] == frozenset(Role)

    def test_034_staff_category_stops_at_branch(self):
        allowed = allowed_roles_for_category(RoleCategory.STAFF)
        assert "branch" in allowed and "user" in allowed
        assert "pending" not in allowed
