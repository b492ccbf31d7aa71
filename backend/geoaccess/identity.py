"""Password identity provider backed by the ``identities`` table."""
from __future__ import annotations

import logging

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from geoaccess.errors import IdentityError
from geoaccess.middleware.auth import verify_password
from geoaccess.schemas import Identity

logger = logging.getLogger(__name__)


class PasswordIdentityProvider:
    """Checks an email / password pair against stored bcrypt hashes.

    Tokens are stateless, so signing out has nothing to revoke server-side;
    the session store still calls ``sign_out`` so a provider with server
    state can be swapped in.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def sign_in(self, email: str, password: str) -> Identity:
        from geoaccess.models.identity import IdentityCredential

        normalized = (email or "").strip().lower()
        try:
            async with self._session_factory() as db:
                stmt = select(IdentityCredential).where(
                    func.lower(IdentityCredential.email) == normalized
                )
                result = await db.execute(stmt)
                row = result.scalar_one_or_none()
        except (SQLAlchemyError, OSError) as e:
            logger.error(f"[identity] credential lookup failed: {e}")
            raise IdentityError(
                IdentityError.PROVIDER_UNAVAILABLE,
                "Identity provider is unavailable",
                recoverable=False,
            ) from e

        if row is None or not verify_password(password, row.password_hash):
            logger.info(f"[identity] invalid credentials for {normalized!r}")
            raise IdentityError(
                IdentityError.INVALID_CREDENTIALS, "Invalid email or password"
            )
        if not row.is_active:
            raise IdentityError(
                IdentityError.ACCOUNT_DISABLED, "User account is deactivated"
            )

        return Identity(
            uid=str(row.id),
            email=row.email,
            display_name=row.display_name,
            email_verified=row.email_verified,
        )

    async def sign_out(self, identity: Identity) -> None:
        logger.info(f"[identity] {identity.uid}: signed out")
