"""Scope resolver: which provinces, branches and departments a profile sees.

Visibility is hierarchical: province access grants every branch of that
province, except for single-branch roles which are narrowed to their home
branch. Inactive records are still returned; deactivation is enforced by the
code that creates new transactions, not here.
"""
from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import Any

from geoaccess.permissions import has_permission
from geoaccess.rbac import Permission, is_single_branch_role
from geoaccess.schemas import Branch, Province, UserProfile


def has_organization_scope(profile: UserProfile | None) -> bool:
    """Profile sees every province (role-derived or granted as an override)."""
    return has_permission(profile, Permission.ORGANIZATION_SCOPE)


def accessible_province_ids(profile: UserProfile | None) -> frozenset[str]:
    """Assigned provinces plus the home province.

    Profiles created before the accessible list existed only carry a home
    province; they keep access to it.
    """
    if profile is None:
        return frozenset()
    ids = set(profile.accessible_province_ids)
    if profile.province_id:
        ids.add(profile.province_id)
    return frozenset(ids)


def accessible_provinces(
    profile: UserProfile | None, all_provinces: Mapping[str, Province]
) -> dict[str, Province]:
    if profile is None:
        return {}
    if has_organization_scope(profile):
        return dict(all_provinces)
    allowed = accessible_province_ids(profile)
    return {pid: p for pid, p in all_provinces.items() if pid in allowed}


def accessible_branches(
    profile: UserProfile | None, all_branches: Mapping[str, Branch]
) -> dict[str, Branch]:
    if profile is None:
        return {}
    if has_organization_scope(profile):
        visible = dict(all_branches)
    else:
        allowed = accessible_province_ids(profile)
        visible = {
            code: b for code, b in all_branches.items() if b.province_id in allowed
        }

    if is_single_branch_role(profile.role):
        home = profile.home_branch_code
        return {code: b for code, b in visible.items() if home and code == home}
    return visible


def has_province_access(
    profile: UserProfile | None,
    province_id: str,
    all_provinces: Mapping[str, Province] | None = None,
) -> bool:
    """Province is assigned, is the home province, or the profile is org-wide.

    With *all_provinces* given, organization scope only covers known ids.
    """
    if profile is None or not province_id:
        return False
    if province_id == profile.province_id:
        return True
    if province_id in accessible_province_ids(profile):
        return True
    if has_organization_scope(profile):
        return all_provinces is None or province_id in all_provinces
    return False


def has_branch_access(
    profile: UserProfile | None,
    branch_code: str,
    all_branches: Mapping[str, Branch] | None = None,
) -> bool:
    """Home branch always; otherwise the branch must be in the accessible set.

    Without *all_branches* only the home branch can be confirmed.
    """
    if profile is None or not branch_code:
        return False
    if branch_code == profile.home_branch_code:
        return True
    if all_branches is None:
        return False
    return branch_code in accessible_branches(profile, all_branches)


def has_department_access(profile: UserProfile | None, department_code: str) -> bool:
    # Departments are not nested under provinces; no widening.
    if profile is None or not department_code:
        return False
    return department_code == profile.home_department_code


def home_branch(
    profile: UserProfile | None, all_branches: Mapping[str, Branch]
) -> Branch | None:
    if profile is None or not profile.home_branch_code:
        return None
    return all_branches.get(profile.home_branch_code)


def default_province_id(
    profile: UserProfile | None, all_branches: Mapping[str, Branch]
) -> str | None:
    """Province to preselect: home province, the only assigned one, or the
    province of the home branch."""
    if profile is None:
        return None
    if profile.province_id:
        return profile.province_id
    if len(profile.accessible_province_ids) == 1:
        return profile.accessible_province_ids[0]
    branch = home_branch(profile, all_branches)
    return branch.province_id if branch and branch.province_id else None


def default_branch_code(
    profile: UserProfile | None, all_branches: Mapping[str, Branch]
) -> str | None:
    """Branch to preselect: home branch, or the only accessible one."""
    if profile is None:
        return None
    if profile.home_branch_code:
        return profile.home_branch_code
    visible = accessible_branches(profile, all_branches)
    if len(visible) == 1:
        return next(iter(visible))
    return None


def filter_records_by_access(
    profile: UserProfile | None,
    records: Iterable[Mapping[str, Any]],
    province_field: str = "provinceId",
    branch_field: str | None = None,
    all_branches: Mapping[str, Branch] | None = None,
) -> list[Mapping[str, Any]]:
    """Keep records whose province (and, when given, branch) is accessible."""
    if profile is None:
        return []
    org_wide = has_organization_scope(profile)
    provinces = accessible_province_ids(profile)
    kept = []
    for record in records:
        if not org_wide and record.get(province_field) not in provinces:
            continue
        if branch_field is not None and not has_branch_access(
            profile, record.get(branch_field) or "", all_branches
        ):
            continue
        kept.append(record)
    return kept


# ---------------------------------------------------------------------------
# SQL scoping: province-level isolation
# ---------------------------------------------------------------------------


def get_province_scope(profile: UserProfile | None) -> frozenset[str] | None:
    """Province ids to filter by, or ``None`` for organization-wide access."""
    if has_organization_scope(profile):
        return None
    return accessible_province_ids(profile)


def apply_province_filter(stmt, profile: UserProfile | None, province_column):
    """Apply province filtering to a SQLAlchemy ``select()`` statement.

    Organization-wide profiles get the statement back unmodified. Everyone
    else gets ``.where(province_column IN <accessible ids>)``; an empty set
    matches nothing.
    """
    scope = get_province_scope(profile)
    if scope is not None:
        stmt = stmt.where(province_column.in_(sorted(scope)))
    return stmt
