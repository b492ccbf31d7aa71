"""Profile documents, one per identity.

The document is stored as JSONB with camelCase keys and is only ever merged
into, never replaced wholesale.
"""
from __future__ import annotations

import datetime
from typing import Any

from sqlalchemy import String, text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from geoaccess.database import Base


class ProfileDocument(Base):
    __tablename__ = "user_profiles"

    uid: Mapped[str] = mapped_column(String(128), primary_key=True)
    document: Mapped[dict[str, Any]] = mapped_column(
        JSONB, nullable=False, server_default=text("'{}'::jsonb")
    )
    version: Mapped[int] = mapped_column(nullable=False, server_default=text("1"))
    updated_at: Mapped[datetime.datetime] = mapped_column(
        nullable=False,
        server_default=text("NOW()"),
    )

    def __repr__(self) -> str:
        return f"<ProfileDocument {self.uid!r} v{self.version}>"
