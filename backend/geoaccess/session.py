"""Profile session store: the single writer of identity and profile state.

The store listens to two independent streams: identity changes (sign-in,
sign-out) and the live profile document of the signed-in identity. Either may
arrive at any time and in any order, so consumers must tolerate an
authenticated session whose profile has not arrived yet (``authenticating``).

Every subscription is tagged with a generation number. Tearing a
subscription down bumps the generation, and any callback carrying an older
number is dropped, so a late snapshot for a previous identity can never
overwrite the current one.

Collaborators are injected::

    store = ProfileSessionStore(PasswordIdentityProvider(...), SqlProfileSource(...))
    await store.login("somchai@example.com", "secret")
    await store.wait_until_settled(3.0)
    if store.has_permission(Permission.EMPLOYEE_VIEW):
        ...
"""
from __future__ import annotations

import asyncio
import datetime
import enum
import logging
from collections.abc import Callable, Iterable, Mapping
from typing import Any, Protocol

from pydantic import ValidationError

from geoaccess import permissions as evaluator
from geoaccess import scope
from geoaccess.config import settings
from geoaccess.rbac import is_single_branch_role
from geoaccess.errors import (
    AccessDenied,
    IdentityError,
    OnboardingRequired,
    ProfileSubscriptionError,
    ProfileWriteError,
)
from geoaccess.schemas import (
    Branch,
    Identity,
    OrgDirectory,
    Province,
    UserProfile,
    default_profile,
    document_keys,
    merge_profile_document,
)

logger = logging.getLogger(__name__)

ProfileCallback = Callable[[Mapping[str, Any] | None], None]
ErrorCallback = Callable[[BaseException], None]
Unsubscribe = Callable[[], None]
ChangeListener = Callable[["ProfileSessionStore"], None]

# Fields a user may not set on their own profile; administrators change
# these through the admin tooling, never through the session.
PROTECTED_PROFILE_FIELDS = frozenset({
    "uid",
    "role",
    "permissions",
    "accessibleProvinceIds",
    "isActive",
    "auth",
})


# ---------------------------------------------------------------------------
# Collaborator interfaces
# ---------------------------------------------------------------------------


class IdentityProvider(Protocol):
    async def sign_in(self, email: str, password: str) -> Identity: ...

    async def sign_out(self, identity: Identity) -> None: ...


class ProfileSource(Protocol):
    def subscribe(
        self, uid: str, on_next: ProfileCallback, on_error: ErrorCallback
    ) -> Unsubscribe:
        """Deliver the current document (``None`` when absent) and every
        later change, in order, until the returned callable is invoked."""
        ...

    async def fetch(self, uid: str) -> Mapping[str, Any] | None: ...

    async def update_fields(self, uid: str, fields: Mapping[str, Any]) -> None:
        """Merge *fields* into the stored document, creating it if needed."""
        ...


# ---------------------------------------------------------------------------
# Session state machine
# ---------------------------------------------------------------------------


class SessionState(str, enum.Enum):
    UNAUTHENTICATED = "unauthenticated"
    AUTHENTICATING = "authenticating"
    AUTHENTICATED_NO_PROFILE = "authenticated_no_profile"
    AUTHENTICATED_WITH_PROFILE = "authenticated_with_profile"
    ERROR = "error"


_SIGNED_IN_STATES = frozenset({
    SessionState.AUTHENTICATING,
    SessionState.AUTHENTICATED_NO_PROFILE,
    SessionState.AUTHENTICATED_WITH_PROFILE,
})


def _now() -> str:
    return datetime.datetime.now(datetime.timezone.utc).isoformat()


class ProfileSessionStore:
    """Holds the current identity, its merged profile and the province pointer."""

    def __init__(
        self,
        identity_provider: IdentityProvider,
        profile_source: ProfileSource,
        *,
        directory: OrgDirectory | None = None,
        developer_emails: Iterable[str] | None = None,
    ) -> None:
        self._identity_provider = identity_provider
        self._profile_source = profile_source
        self.directory = directory or OrgDirectory()
        self.developer_emails: tuple[str, ...] = tuple(
            settings.DEVELOPER_EMAILS if developer_emails is None else developer_emails
        )

        self.state = SessionState.UNAUTHENTICATED
        self.identity: Identity | None = None
        self.user_profile: UserProfile | None = None
        self.current_province_id: str | None = None
        self.error: IdentityError | ProfileWriteError | None = None
        self.last_subscription_error: ProfileSubscriptionError | None = None

        self._generation = 0
        # True only after the source reported that no record exists
        self._record_missing = False
        self._unsubscribe: Unsubscribe | None = None
        self._listeners: list[ChangeListener] = []
        self._settled = asyncio.Event()
        self._settled.set()

    # ------------------------------------------------------------------
    # Derived state
    # ------------------------------------------------------------------

    @property
    def is_authenticated(self) -> bool:
        return self.identity is not None and self.state in _SIGNED_IN_STATES

    @property
    def is_loading(self) -> bool:
        return self.state is SessionState.AUTHENTICATING

    @property
    def has_no_profile(self) -> bool:
        return self.state is not SessionState.AUTHENTICATED_WITH_PROFILE

    @property
    def is_profile_complete(self) -> bool:
        return self.user_profile is not None and self.user_profile.is_profile_complete

    @property
    def generation(self) -> int:
        return self._generation

    # ------------------------------------------------------------------
    # Identity stream
    # ------------------------------------------------------------------

    async def login(self, email: str, password: str) -> Identity:
        """Sign in and start following the identity's profile.

        Failures are retained on ``self.error`` and re-raised for the caller
        to present.
        """
        if self.state is SessionState.ERROR and self.error is not None:
            raise self.error

        self.error = None
        try:
            identity = await self._identity_provider.sign_in(email, password)
        except IdentityError as exc:
            self._record_identity_error(exc)
            raise
        except Exception as exc:
            err = IdentityError(
                IdentityError.PROVIDER_UNAVAILABLE,
                "Identity provider is unavailable",
                recoverable=False,
            )
            self._record_identity_error(err)
            raise err from exc

        self.handle_identity_changed(identity)
        return identity

    async def logout(self) -> None:
        """Drop identity, profile and province pointer; sign out upstream.

        Local state is cleared even when the provider fails to sign out.
        """
        identity = self.identity
        self.error = None
        self.handle_identity_changed(None)
        if identity is None:
            return

        try:
            await self._identity_provider.sign_out(identity)
        except IdentityError as exc:
            self.error = exc
            raise
        except Exception as exc:
            err = IdentityError(IdentityError.SIGN_OUT_FAILED, "Sign-out failed")
            self.error = err
            raise err from exc
        logger.info(f"[session] {identity.uid}: signed out")

    def handle_identity_changed(self, identity: Identity | None) -> None:
        """Identity listener: follow the new identity's profile, or clear."""
        if (
            identity is not None
            and self.identity is not None
            and identity.uid == self.identity.uid
            and self._unsubscribe is not None
        ):
            return

        self._teardown()
        self.identity = identity
        self.user_profile = None
        self.current_province_id = None

        if identity is None:
            self._set_state(SessionState.UNAUTHENTICATED)
            self._notify()
            return

        self._set_state(SessionState.AUTHENTICATING)
        generation = self._generation
        logger.info(f"[session] {identity.uid}: subscribing to profile (gen {generation})")
        self._unsubscribe = self._profile_source.subscribe(
            identity.uid,
            lambda document: self._apply_snapshot(generation, document),
            lambda exc: self._apply_subscription_error(generation, exc),
        )
        self._notify()

    def reset_error(self) -> None:
        self.error = None
        if self.state is SessionState.ERROR:
            self._set_state(SessionState.UNAUTHENTICATED)
            self._notify()

    def close(self) -> None:
        """Stop following the profile; later callbacks become no-ops."""
        self._teardown()

    # ------------------------------------------------------------------
    # Profile stream
    # ------------------------------------------------------------------

    def _apply_snapshot(self, generation: int, document: Mapping[str, Any] | None) -> None:
        if generation != self._generation or self.identity is None:
            logger.debug(f"[session] dropping stale profile snapshot (gen {generation})")
            return

        uid = self.identity.uid
        if document is None:
            logger.info(f"[session] {uid}: no profile record, using guest defaults")
            profile = default_profile(self.identity)
            state = SessionState.AUTHENTICATED_NO_PROFILE
        else:
            try:
                profile = merge_profile_document(document, uid=uid)
            except ValidationError as exc:
                self._apply_subscription_error(generation, exc)
                return
            state = SessionState.AUTHENTICATED_WITH_PROFILE

        self.user_profile = profile
        self._record_missing = document is None
        self._sync_current_province()
        self._set_state(state)
        self._notify()

    def _apply_subscription_error(self, generation: int, exc: BaseException) -> None:
        if generation != self._generation or self.identity is None:
            logger.debug(f"[session] dropping stale subscription error (gen {generation})")
            return

        err = ProfileSubscriptionError(self.identity.uid, exc)
        logger.warning(f"[session] {err}; continuing as guest")
        self.last_subscription_error = err
        self._record_missing = False
        self.user_profile = default_profile(self.identity)
        self.current_province_id = None
        self._set_state(SessionState.AUTHENTICATED_NO_PROFILE)
        self._notify()

    async def refresh(self) -> UserProfile | None:
        """One-shot re-read of the profile document."""
        if self.identity is None:
            return None
        generation = self._generation
        try:
            document = await self._profile_source.fetch(self.identity.uid)
        except Exception as exc:
            self._apply_subscription_error(generation, exc)
            return self.user_profile
        self._apply_snapshot(generation, document)
        return self.user_profile

    async def update_profile(self, fields: Mapping[str, Any]) -> UserProfile:
        """Write *fields* into the stored profile and merge them locally.

        Only a stored profile can be updated; a session still on the guest
        default raises ``OnboardingRequired``.
        """
        identity = self._require_identity()
        if self.has_no_profile:
            raise OnboardingRequired(identity.uid)
        payload = self._writable(fields)
        payload["updatedAt"] = _now()

        await self._write(identity, payload)
        self._merge_locally(identity, payload)
        return self.user_profile

    async def complete_onboarding(self, fields: Mapping[str, Any]) -> UserProfile:
        """Persist the user's onboarding *fields* and mark the profile complete.

        Role, permissions and province access are never written from here;
        when no record exists yet the stored document starts from the guest
        default's remaining fields. An already complete profile is left as is.
        """
        identity = self._require_identity()
        if self.state is SessionState.AUTHENTICATED_WITH_PROFILE and self.is_profile_complete:
            logger.info(f"[session] {identity.uid}: profile already complete, onboarding skipped")
            return self.user_profile

        payload = self._writable(fields)
        payload["isProfileComplete"] = True
        payload["updatedAt"] = _now()
        if self._record_missing:
            seed = {
                k: v for k, v in default_profile(identity).to_document().items()
                if k not in PROTECTED_PROFILE_FIELDS
            }
            payload = {**seed, "uid": identity.uid, **payload}

        await self._write(identity, payload)
        self._set_state(SessionState.AUTHENTICATED_WITH_PROFILE)
        self._merge_locally(identity, payload)
        return self.user_profile

    async def _write(self, identity: Identity, payload: dict[str, Any]) -> None:
        try:
            await self._profile_source.update_fields(identity.uid, payload)
        except Exception as exc:
            err = ProfileWriteError(identity.uid, exc)
            self.error = err
            logger.error(f"[session] {err}")
            raise err from exc
        self._record_missing = False

    def _merge_locally(self, identity: Identity, payload: Mapping[str, Any]) -> None:
        # a source may already have delivered the written record
        base = self.user_profile or default_profile(identity)
        self.user_profile = merge_profile_document(
            {**base.to_document(), **payload}, uid=identity.uid
        )
        self._sync_current_province()
        self._notify()

    # ------------------------------------------------------------------
    # Province pointer
    # ------------------------------------------------------------------

    def switch_province(self, province_id: str) -> str:
        """Point the session at *province_id*; the stored list is untouched."""
        profile = self.user_profile
        if profile is None or province_id not in profile.accessible_province_ids:
            raise AccessDenied(province_id)
        self.current_province_id = province_id
        self._notify()
        return province_id

    def _sync_current_province(self) -> None:
        profile = self.user_profile
        if profile is None:
            self.current_province_id = None
            return
        current = self.current_province_id
        if current and (current in profile.accessible_province_ids or current == profile.province_id):
            return
        self.current_province_id = profile.province_id or None

    # ------------------------------------------------------------------
    # Observers
    # ------------------------------------------------------------------

    def on_profile_changed(self, callback: ChangeListener) -> Unsubscribe:
        self._listeners.append(callback)

        def _remove() -> None:
            if callback in self._listeners:
                self._listeners.remove(callback)

        return _remove

    async def wait_until_settled(self, timeout: float | None = None) -> bool:
        """Wait until the store leaves ``authenticating``; False on timeout."""
        try:
            await asyncio.wait_for(self._settled.wait(), timeout)
        except asyncio.TimeoutError:
            return False
        return True

    # ------------------------------------------------------------------
    # Session consumer contract
    # ------------------------------------------------------------------

    def has_permission(self, permission) -> bool:
        return evaluator.has_permission(self.user_profile, permission)

    def has_any_permission(self, permissions) -> bool:
        return evaluator.has_any_permission(self.user_profile, permissions)

    def has_all_permissions(self, permissions) -> bool:
        return evaluator.has_all_permissions(self.user_profile, permissions)

    def has_role(self, role) -> bool:
        return evaluator.has_role(self.user_profile, role)

    def has_privilege(self, required_role) -> bool:
        return evaluator.has_privilege(self.user_profile, required_role)

    def has_province_access(self, province_id: str) -> bool:
        return scope.has_province_access(
            self.user_profile, province_id, self.directory.provinces or None
        )

    def has_branch_access(self, branch_code: str) -> bool:
        return scope.has_branch_access(
            self.user_profile, branch_code, self.directory.branches or None
        )

    def has_department_access(self, department_code: str) -> bool:
        return scope.has_department_access(self.user_profile, department_code)

    def should_hide_user_from_view(self, target) -> bool:
        return evaluator.should_hide_user_from_view(
            self.user_profile, target, self.developer_emails
        )

    def accessible_provinces(self) -> dict[str, Province]:
        return scope.accessible_provinces(self.user_profile, self.directory.provinces)

    def accessible_branches(self) -> dict[str, Branch]:
        return scope.accessible_branches(self.user_profile, self.directory.branches)

    def snapshot(self) -> dict[str, Any]:
        """Serializable view of the session for API responses."""
        profile = self.user_profile
        if scope.has_organization_scope(profile):
            scope_name = "organization"
        elif profile is not None and not is_single_branch_role(profile.role):
            scope_name = "province"
        else:
            scope_name = "branch"
        return {
            "state": self.state.value,
            "is_authenticated": self.is_authenticated,
            "is_loading": self.is_loading,
            "is_profile_complete": self.is_profile_complete,
            "uid": self.identity.uid if self.identity else None,
            "profile": profile.to_document() if profile else None,
            "permissions": sorted(evaluator.effective_permissions(profile)),
            "scope": scope_name,
            "current_province_id": self.current_province_id,
            "error": self.error.to_dict() if isinstance(self.error, IdentityError) else (
                str(self.error) if self.error else None
            ),
        }

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _require_identity(self) -> Identity:
        if self.identity is None:
            raise IdentityError(IdentityError.NOT_SIGNED_IN, "No user is signed in")
        return self.identity

    def _writable(self, fields: Mapping[str, Any]) -> dict[str, Any]:
        payload = document_keys(fields)
        blocked = PROTECTED_PROFILE_FIELDS.intersection(payload)
        if blocked:
            logger.warning(f"[session] ignoring protected profile fields: {sorted(blocked)}")
        return {k: v for k, v in payload.items() if k not in PROTECTED_PROFILE_FIELDS}

    def _record_identity_error(self, err: IdentityError) -> None:
        self.error = err
        logger.warning(f"[session] sign-in failed: {err.code}")
        if not err.recoverable:
            self._teardown()
            self.identity = None
            self.user_profile = None
            self.current_province_id = None
            self._set_state(SessionState.ERROR)
            self._notify()

    def _teardown(self) -> None:
        self._generation += 1
        self._record_missing = False
        unsubscribe, self._unsubscribe = self._unsubscribe, None
        if unsubscribe is not None:
            unsubscribe()

    def _set_state(self, state: SessionState) -> None:
        if state is not self.state:
            logger.debug(f"[session] {self.state.value} -> {state.value}")
        self.state = state
        if state is SessionState.AUTHENTICATING:
            self._settled.clear()
        else:
            self._settled.set()

    def _notify(self) -> None:
        for callback in list(self._listeners):
            try:
                callback(self)
            except Exception:
                logger.exception("[session] profile-change listener failed")
