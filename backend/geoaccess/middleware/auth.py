"""Authentication and authorization dependencies for the geoaccess API.

Provides:
- Password hashing (bcrypt)
- JWT creation / validation
- ``get_optional_session()`` / ``get_current_session()`` dependencies
  (token -> profile session store)
- ``require_route()`` (route-guard adapter) and ``require_permission()``
"""
from __future__ import annotations

import time
from datetime import datetime, timedelta, timezone
from typing import Any

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt
from passlib.context import CryptContext

from geoaccess.config import settings
from geoaccess.guard import GuardOutcome
from geoaccess.schemas import Identity

# ---------------------------------------------------------------------------
# Password hashing
# ---------------------------------------------------------------------------

_pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


def verify_password(plain: str, hashed: str) -> bool:
    """Compare a plain-text password against a bcrypt hash."""
    return _pwd_context.verify(plain, hashed)


def hash_password(plain: str) -> str:
    """Return the bcrypt hash of a plain-text password."""
    return _pwd_context.hash(plain)


# ---------------------------------------------------------------------------
# JWT helpers
# ---------------------------------------------------------------------------


def create_access_token(identity: Identity) -> str:
    """Create a signed JWT carrying *sub* (uid), email, name, *iat* and *exp*."""
    expire = datetime.now(timezone.utc) + timedelta(minutes=settings.JWT_EXPIRY_MINUTES)
    to_encode: dict[str, Any] = {
        "sub": identity.uid,
        "email": identity.email,
        "name": identity.display_name,
        "email_verified": identity.email_verified,
        # float seconds, compared against SessionRegistry sign-out times
        "iat": time.time(),
        "exp": expire,
    }
    return jwt.encode(to_encode, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def decode_token_payload(token: str) -> dict[str, Any] | None:
    """Verified claims of *token*, ``None`` if invalid or expired."""
    try:
        return jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])
    except JWTError:
        return None


def decode_access_token(token: str) -> Identity | None:
    """Identity from a valid token, ``None`` if invalid or expired."""
    payload = decode_token_payload(token)
    return identity_from_payload(payload) if payload is not None else None


def identity_from_payload(payload: dict[str, Any]) -> Identity | None:
    uid = payload.get("sub")
    if not uid:
        return None
    return Identity(
        uid=uid,
        email=payload.get("email"),
        display_name=payload.get("name"),
        email_verified=bool(payload.get("email_verified")),
    )


# ---------------------------------------------------------------------------
# OAuth2 scheme (tells Swagger UI where the login endpoint is)
# ---------------------------------------------------------------------------

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login", auto_error=False)

# ---------------------------------------------------------------------------
# Shared application state
# ---------------------------------------------------------------------------


def get_registry(request: Request):
    """The ``SessionRegistry`` created by the application lifespan."""
    return request.app.state.registry


# ---------------------------------------------------------------------------
# Session dependencies
# ---------------------------------------------------------------------------


async def get_optional_session(
    token: str | None = Depends(oauth2_scheme),
    registry=Depends(get_registry),
):
    """The caller's ``ProfileSessionStore``; an unregistered, signed-out store
    when the token is missing, invalid or issued before the uid's last
    sign-out."""
    payload = decode_token_payload(token) if token else None
    identity = identity_from_payload(payload) if payload else None
    if identity is None or registry.is_revoked(identity.uid, payload.get("iat")):
        return registry.new_store()
    return await registry.get_or_open(identity)


async def get_current_session(session=Depends(get_optional_session)):
    """Like ``get_optional_session`` but for endpoints that need a signed-in
    caller.

    Raises ``HTTPException(401)`` when the token is invalid and 403 when the
    stored profile has been deactivated.
    """
    if not session.is_authenticated:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )
    if session.user_profile is not None and not session.user_profile.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="User account is deactivated",
        )
    return session


# ---------------------------------------------------------------------------
# Route-guard adapter
# ---------------------------------------------------------------------------


def enforce_guard(guard, session, location: str):
    """Apply a ``RouteGuard`` decision to an HTTP request.

    ``loading`` becomes 503 with ``Retry-After``; ``redirect`` becomes 303
    with ``Location`` (the sign-in path for anonymous callers, the guard's
    fallback otherwise). A rendered decision returns the session.
    """
    decision = guard.evaluate(session, location)
    if decision.outcome is GuardOutcome.LOADING:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Profile is still loading",
            headers={"Retry-After": "1"},
        )
    if decision.outcome is GuardOutcome.REDIRECT:
        raise HTTPException(
            status_code=status.HTTP_303_SEE_OTHER,
            detail=decision.reason,
            headers={"Location": decision.location or guard.fallback_path},
        )
    return session


def require_route(guard):
    """Return a FastAPI dependency that applies a fixed ``RouteGuard``.

    Usage::

        @router.get("/employees")
        async def employees(
            session=Depends(require_route(RouteGuard(Permission.EMPLOYEE_VIEW))),
        ):
            ...
    """

    async def _check_route(
        request: Request,
        session=Depends(get_optional_session),
    ):
        return enforce_guard(guard, session, request.url.path)

    return _check_route


def require_permission(*permissions):
    """Return a FastAPI dependency that ensures the session holds ALL of the
    specified permissions (role-based + profile overrides); 403 otherwise."""
    required = {p.value if hasattr(p, "value") else p for p in permissions}

    async def _check_permission(session=Depends(get_current_session)):
        missing = {p for p in required if not session.has_permission(p)}
        if missing:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Missing permissions: {', '.join(sorted(missing))}.",
            )
        return session

    return _check_permission
