"""Permission evaluator: pure checks over a profile snapshot.

Every function answers ``False`` for a missing profile and never raises for
"not authorized". The effective permission set is the role's base set plus
the profile's explicit ``permissions`` list (overrides only add).
"""
from __future__ import annotations

import enum
from collections.abc import Iterable
from typing import Protocol

from geoaccess.rbac import (
    DEVELOPER_TIER_ROLES,
    is_known_role,
    permissions_for,
    privilege_level,
)
from geoaccess.schemas import UserProfile


class AccountLike(Protocol):
    email: str | None
    role: str


def _value(item: str | enum.Enum) -> str:
    return item.value if isinstance(item, enum.Enum) else item


def effective_permissions(profile: UserProfile | None) -> frozenset[str]:
    """Role-derived permissions unioned with the profile's overrides."""
    if profile is None:
        return frozenset()
    base = {p.value for p in permissions_for(profile.role)}
    return frozenset(base.union(profile.permissions))


def has_permission(profile: UserProfile | None, permission: str | enum.Enum) -> bool:
    if profile is None:
        return False
    return _value(permission) in effective_permissions(profile)


def has_any_permission(
    profile: UserProfile | None, permissions: Iterable[str | enum.Enum]
) -> bool:
    if profile is None:
        return False
    effective = effective_permissions(profile)
    return any(_value(p) in effective for p in permissions)


def has_all_permissions(
    profile: UserProfile | None, permissions: Iterable[str | enum.Enum]
) -> bool:
    if profile is None:
        return False
    effective = effective_permissions(profile)
    return all(_value(p) in effective for p in permissions)


def has_role(
    profile: UserProfile | None, role: str | enum.Enum | Iterable[str | enum.Enum]
) -> bool:
    """Exact match for a single role, membership for a collection of roles."""
    if profile is None:
        return False
    if isinstance(role, (str, enum.Enum)):
        return profile.role == _value(role)
    return profile.role in {_value(r) for r in role}


def has_privilege(profile: UserProfile | None, required_role: str | enum.Enum) -> bool:
    """True when the profile's role is at least as senior as *required_role*.

    Seniority is the total order of ``PRIVILEGE_LEVELS`` (lower is more
    senior). An unknown required role is never satisfied.
    """
    if profile is None or not is_known_role(_value(required_role)):
        return False
    return privilege_level(profile.role) <= privilege_level(_value(required_role))


def is_developer_account(
    account: AccountLike | None, developer_emails: Iterable[str] = ()
) -> bool:
    """Developer-tier role, or an email listed as a developer account."""
    if account is None:
        return False
    if account.role in {r.value for r in DEVELOPER_TIER_ROLES}:
        return True
    email = (account.email or "").strip().lower()
    return bool(email) and email in {e.strip().lower() for e in developer_emails}


def should_hide_user_from_view(
    viewer: UserProfile | None,
    target: AccountLike | None,
    developer_emails: Iterable[str] = (),
) -> bool:
    """Developer accounts are invisible to everyone who is not one."""
    if viewer is None or target is None:
        return False
    developer_emails = tuple(developer_emails)
    return not is_developer_account(viewer, developer_emails) and is_developer_account(
        target, developer_emails
    )
