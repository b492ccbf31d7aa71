"""Route guard: decide whether a protected view renders, redirects or waits.

The guard never raises. "Not allowed" is expressed as a redirect decision
which the HTTP adapter (``middleware.auth.require_route``) turns into a 303.

Usage::

    guard = RouteGuard(
        required_permission=Permission.EMPLOYEE_VIEW,
        allowed_roles=allowed_roles_for_category(RoleCategory.ADMIN),
        province_check=province_for("NMA"),
    )
    decision = guard.evaluate(store, "/hr/employees")
"""
from __future__ import annotations

import enum
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from typing import Protocol
from urllib.parse import urlencode

from geoaccess.config import settings
from geoaccess.session import SessionState

ProvinceAccessCheck = Callable[[str], bool]
ProvinceCheck = Callable[[ProvinceAccessCheck], bool]


class GuardedSession(Protocol):
    state: SessionState

    @property
    def is_profile_complete(self) -> bool: ...

    def has_role(self, role) -> bool: ...

    def has_permission(self, permission) -> bool: ...

    def has_province_access(self, province_id: str) -> bool: ...


class GuardOutcome(str, enum.Enum):
    RENDER = "render"
    REDIRECT = "redirect"
    LOADING = "loading"


@dataclass(frozen=True)
class GuardDecision:
    outcome: GuardOutcome
    location: str | None = None
    return_to: str | None = None
    reason: str = ""

    @property
    def allowed(self) -> bool:
        return self.outcome is GuardOutcome.RENDER


def province_for(province_id: str) -> ProvinceCheck:
    """Province check that passes when the session may access *province_id*."""

    def _check(has_province_access: ProvinceAccessCheck) -> bool:
        return has_province_access(province_id)

    return _check


def _value(item) -> str:
    return item.value if isinstance(item, enum.Enum) else item


class RouteGuard:
    """Decision gate around a protected view.

    The role allow-list is checked before the permission and province checks
    and short-circuits both: an allow-listed role always renders.
    """

    def __init__(
        self,
        required_permission=None,
        allowed_roles: Iterable = (),
        province_check: ProvinceCheck | None = None,
        fallback_path: str | None = None,
        require_complete_profile: bool = False,
        login_path: str | None = None,
    ) -> None:
        self.required_permission = (
            _value(required_permission) if required_permission is not None else None
        )
        self.allowed_roles = tuple(_value(r) for r in allowed_roles)
        self.province_check = province_check
        self.fallback_path = fallback_path or settings.LANDING_PATH
        self.require_complete_profile = require_complete_profile
        self.login_path = login_path or settings.LOGIN_PATH

    def evaluate(self, session: GuardedSession, requested_location: str = "/") -> GuardDecision:
        state = session.state

        if state is SessionState.AUTHENTICATING:
            return GuardDecision(GuardOutcome.LOADING, reason="profile loading")

        if state in (SessionState.UNAUTHENTICATED, SessionState.ERROR):
            return GuardDecision(
                GuardOutcome.REDIRECT,
                location=self._login_location(requested_location),
                return_to=requested_location,
                reason="not signed in",
            )

        if self.require_complete_profile and not session.is_profile_complete:
            return GuardDecision(
                GuardOutcome.REDIRECT,
                location=settings.COMPLETE_PROFILE_PATH,
                return_to=requested_location,
                reason="profile incomplete",
            )

        if self.allowed_roles and session.has_role(self.allowed_roles):
            return GuardDecision(GuardOutcome.RENDER, reason="role allowed")

        if self.required_permission and not session.has_permission(self.required_permission):
            return GuardDecision(
                GuardOutcome.REDIRECT,
                location=self.fallback_path,
                reason=f"missing permission {self.required_permission}",
            )

        if self.province_check is not None and not self.province_check(
            session.has_province_access
        ):
            return GuardDecision(
                GuardOutcome.REDIRECT,
                location=self.fallback_path,
                reason="province not accessible",
            )

        return GuardDecision(GuardOutcome.RENDER)

    def _login_location(self, requested_location: str) -> str:
        if not requested_location or requested_location == self.login_path:
            return self.login_path
        return f"{self.login_path}?{urlencode({'next': requested_location})}"
