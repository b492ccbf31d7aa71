"""Error taxonomy for the access engine.

Pure evaluator/resolver functions never raise these; they answer ``False``.
Only the profile session store's I/O operations raise, and the router layer
translates them into HTTP responses.
"""
from __future__ import annotations


class AccessEngineError(Exception):
    """Base class for every error raised by the session store."""


class IdentityError(AccessEngineError):
    """Sign-in / sign-out failure reported by the identity provider.

    ``recoverable`` is ``False`` when the provider itself is unusable
    (network, database); the session store then enters its error state.
    """

    INVALID_CREDENTIALS = "invalid-credentials"
    ACCOUNT_DISABLED = "account-disabled"
    PROVIDER_UNAVAILABLE = "provider-unavailable"
    SIGN_OUT_FAILED = "sign-out-failed"
    NOT_SIGNED_IN = "not-signed-in"

    def __init__(self, code: str, message: str, *, recoverable: bool = True) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.recoverable = recoverable

    def to_dict(self) -> dict[str, object]:
        return {"code": self.code, "message": self.message, "recoverable": self.recoverable}


class AccessDenied(AccessEngineError):
    """The profile may not act on the requested province."""

    def __init__(self, province_id: str, message: str | None = None) -> None:
        super().__init__(message or f"User does not have access to province {province_id!r}")
        self.province_id = province_id


class ProfileSubscriptionError(AccessEngineError):
    """The live profile subscription failed or delivered an unusable document."""

    def __init__(self, uid: str, cause: BaseException | None = None) -> None:
        super().__init__(f"Profile subscription for {uid!r} failed: {cause}")
        self.uid = uid
        self.cause = cause


class ProfileWriteError(AccessEngineError):
    """A partial profile update could not be written."""

    def __init__(self, uid: str, cause: BaseException | None = None) -> None:
        super().__init__(f"Failed to update profile {uid!r}: {cause}")
        self.uid = uid
        self.cause = cause


class OnboardingRequired(AccessEngineError):
    """The session has no stored profile yet; onboarding must come first."""

    def __init__(self, uid: str) -> None:
        super().__init__(f"Profile {uid!r} has not been created; complete onboarding first")
        self.uid = uid
