"""
Permission evaluator: effective permissions, role / privilege checks and
developer-account masking.
"""
from types import SimpleNamespace

import pytest

from conftest import make_profile
from geoaccess.permissions import (
    effective_permissions,
    has_all_permissions,
    has_any_permission,
    has_permission,
    has_privilege,
    has_role,
    is_developer_account,
    should_hide_user_from_view,
)
from geoaccess.rbac import ALL_PERMISSIONS, Permission, Role, permissions_for


class TestEffectivePermissions:
    """Role set ∪ profile overrides."""

    def test_101_null_profile_denies_everything(self):
        """Every check answers False without a profile."""
        assert effective_permissions(None) == frozenset()
        assert not has_permission(None, Permission.DASHBOARD_VIEW)
        assert not has_any_permission(None, [Permission.DASHBOARD_VIEW])
        assert not has_all_permissions(None, [])
        assert not has_role(None, Role.GUEST)
        assert not has_privilege(None, Role.GUEST)

    def test_102_role_permissions_apply(self):
        profile = make_profile(role="province_manager")
        assert has_permission(profile, Permission.EMPLOYEE_VIEW)
        assert has_permission(profile, "hr.employees.view")

    def test_103_override_adds_permission(self):
        """An explicit grant on the profile widens the role set."""
        profile = make_profile(role="branch_manager", permissions=["hr.employees.view"])
        assert has_permission(profile, Permission.EMPLOYEE_VIEW)

    def test_104_override_never_removes(self):
        """A profile list that omits role permissions does not revoke them."""
        profile = make_profile(role="branch_manager", permissions=["hr.attendance.import"])
        assert has_permission(profile, Permission.SALES_APPROVE)
        assert effective_permissions(profile) >= {p.value for p in permissions_for("branch_manager")}

    @pytest.mark.parametrize("role", [r.value for r in Role])
    def test_105_no_grant_without_role_or_override(self, role):
        """X ∉ role set and no override → has_permission is False."""
        profile = make_profile(role=role)
        granted = {p.value for p in permissions_for(role)}
        for value in ALL_PERMISSIONS:
            if value not in granted:
                assert not has_permission(profile, value)

    def test_106_unknown_role_has_only_overrides(self):
        profile = make_profile(role="janitor", permissions=["dashboard.overview.view"])
        assert effective_permissions(profile) == {"dashboard.overview.view"}

    def test_107_any_and_all(self):
        profile = make_profile(role="lead")
        assert has_any_permission(profile, [Permission.EMPLOYEE_VIEW, Permission.INCOME_CREATE])
        assert not has_all_permissions(profile, [Permission.EMPLOYEE_VIEW, Permission.INCOME_CREATE])
        assert has_all_permissions(profile, [Permission.INCOME_CREATE, Permission.EXPENSE_CREATE])

    def test_108_empty_lists(self):
        """any([]) is False, all([]) is vacuously True for a present profile."""
        profile = make_profile(role="lead")
        assert not has_any_permission(profile, [])
        assert has_all_permissions(profile, [])


class TestRolesAndPrivilege:
    """has_role / has_privilege."""

    def test_110_single_role(self):
        profile = make_profile(role="lead")
        assert has_role(profile, "lead")
        assert has_role(profile, Role.LEAD)
        assert not has_role(profile, Role.USER)

    def test_111_role_collection(self):
        profile = make_profile(role="lead")
        assert has_role(profile, [Role.USER, Role.LEAD])
        assert not has_role(profile, ("super_admin", "developer"))

    def test_112_privilege_is_at_least_as_senior(self):
        profile = make_profile(role="province_admin")
        assert has_privilege(profile, Role.PROVINCE_ADMIN)
        assert has_privilege(profile, Role.BRANCH_MANAGER)
        assert not has_privilege(profile, Role.GENERAL_MANAGER)

    def test_113_unknown_required_role_denies(self):
        profile = make_profile(role="developer")
        assert not has_privilege(profile, "overlord")

    def test_114_unknown_profile_role_ranks_below_guest(self):
        profile = make_profile(role="janitor")
        assert not has_privilege(profile, Role.GUEST)


class TestDeveloperMasking:
    """Developer accounts are hidden from non-developers."""

    def test_120_branch_manager_cannot_see_developer(self):
        viewer = make_profile(role="branch_manager")
        target = make_profile(role="developer", uid="dev")
        assert should_hide_user_from_view(viewer, target)

    def test_121_developer_sees_developer(self):
        viewer = make_profile(role="developer")
        target = make_profile(role="developer", uid="dev")
        assert not should_hide_user_from_view(viewer, target)

    def test_122_regular_targets_are_visible(self):
        viewer = make_profile(role="user")
        target = make_profile(role="super_admin", uid="boss")
        assert not should_hide_user_from_view(viewer, target)

    def test_123_developer_email_counts_as_developer(self):
        """Configured developer emails are developer tier whatever the role."""
        target = SimpleNamespace(email="Dev@Example.com", role="user")
        viewer = make_profile(role="super_admin")
        assert is_developer_account(target, ["dev@example.com"])
        assert should_hide_user_from_view(viewer, target, ["dev@example.com"])
        assert not should_hide_user_from_view(viewer, target)

    def test_124_null_viewer_or_target(self):
        assert not should_hide_user_from_view(None, make_profile(role="developer"))
        assert not should_hide_user_from_view(make_profile(), None)
        assert not is_developer_account(None)
