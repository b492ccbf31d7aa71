"""Organizational hierarchy tables: provinces, branches, departments.

The access engine only reads these; they are materialised into an
``OrgDirectory`` by ``geoaccess.directory``.
"""
from __future__ import annotations

from sqlalchemy import Boolean, ForeignKey, String, text
from sqlalchemy.dialects.postgresql import ARRAY
from sqlalchemy.orm import Mapped, mapped_column, relationship

from geoaccess.database import Base
from geoaccess.models.base import TimestampMixin


class ProvinceRow(TimestampMixin, Base):
    """A province (regional office) grouping several branches."""
    __tablename__ = "provinces"

    id: Mapped[str] = mapped_column(String(20), primary_key=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    region: Mapped[str | None] = mapped_column(String(100))
    manager_id: Mapped[str | None] = mapped_column(String(128))
    is_active: Mapped[bool] = mapped_column(
        Boolean, nullable=False, server_default=text("true")
    )
    sort_order: Mapped[int] = mapped_column(nullable=False, server_default=text("0"))

    # ------ relationships ------
    branches: Mapped[list[BranchRow]] = relationship(
        "BranchRow",
        back_populates="province",
        order_by="BranchRow.code",
    )

    def __repr__(self) -> str:
        return f"<Province {self.id!r} {self.name!r}>"


class BranchRow(TimestampMixin, Base):
    """A branch; belongs to exactly one province."""
    __tablename__ = "branches"

    code: Mapped[str] = mapped_column(String(20), primary_key=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    province_id: Mapped[str] = mapped_column(
        String(20),
        ForeignKey("provinces.id"),
        nullable=False,
        index=True,
    )
    warehouse_ids: Mapped[list[str]] = mapped_column(
        ARRAY(String(50)), nullable=False, server_default=text("'{}'")
    )
    is_active: Mapped[bool] = mapped_column(
        Boolean, nullable=False, server_default=text("true")
    )

    # ------ relationships ------
    province: Mapped[ProvinceRow] = relationship(
        "ProvinceRow",
        back_populates="branches",
    )

    def __repr__(self) -> str:
        return f"<Branch {self.code!r} province={self.province_id!r}>"


class DepartmentRow(TimestampMixin, Base):
    """Department; not nested under provinces."""
    __tablename__ = "departments"

    code: Mapped[str] = mapped_column(String(20), primary_key=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    is_active: Mapped[bool] = mapped_column(
        Boolean, nullable=False, server_default=text("true")
    )

    def __repr__(self) -> str:
        return f"<Department {self.code!r} {self.name!r}>"
