"""Sign-in credentials for the password identity provider."""
from __future__ import annotations

from sqlalchemy import Boolean, String, text
from sqlalchemy.orm import Mapped, mapped_column

from geoaccess.database import Base
from geoaccess.models.base import TimestampMixin, UUIDPrimaryKeyMixin


class IdentityCredential(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """An identity that can sign in; its ``id`` is the profile uid."""
    __tablename__ = "identities"

    email: Mapped[str] = mapped_column(String(200), unique=True, nullable=False)
    password_hash: Mapped[str] = mapped_column(String(200), nullable=False)
    display_name: Mapped[str | None] = mapped_column(String(200))
    email_verified: Mapped[bool] = mapped_column(
        Boolean, nullable=False, server_default=text("false")
    )
    is_active: Mapped[bool] = mapped_column(
        Boolean, nullable=False, server_default=text("true")
    )

    def __repr__(self) -> str:
        return f"<IdentityCredential {self.email!r}>"
