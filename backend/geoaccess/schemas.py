"""Record types consumed by the access engine.

Profile documents are stored with camelCase keys; every model accepts either
the stored alias or the Python field name. Models are frozen: a profile is an
immutable snapshot, and the session store swaps whole snapshots.
"""
from __future__ import annotations

import datetime
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from pydantic import BaseModel, ConfigDict, field_validator
from pydantic.alias_generators import to_camel

from geoaccess.rbac import Role


class _Document(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
        extra="ignore",
    )


# ---------------------------------------------------------------------------
# Identity (from the identity provider)
# ---------------------------------------------------------------------------


class Identity(_Document):
    uid: str
    email: str | None = None
    display_name: str | None = None
    email_verified: bool = False


# ---------------------------------------------------------------------------
# User profile
# ---------------------------------------------------------------------------


class EmployeeInfo(_Document):
    branch: str = ""
    department: str = ""
    employee_code: str = ""

    @field_validator("branch", "department", "employee_code", mode="before")
    @classmethod
    def _none_to_empty(cls, v: Any) -> Any:
        return "" if v is None else v


class UserProfile(_Document):
    uid: str = ""
    display_name: str | None = None
    first_name: str = ""
    last_name: str = ""
    email: str | None = None
    role: str = Role.GUEST.value
    permissions: list[str] = []
    province_id: str = ""
    accessible_province_ids: list[str] = []
    employee_info: EmployeeInfo = EmployeeInfo()
    is_profile_complete: bool = False
    is_active: bool = True
    created_at: datetime.datetime | None = None
    updated_at: datetime.datetime | None = None
    last_login: datetime.datetime | None = None

    @field_validator("role", mode="before")
    @classmethod
    def _default_role(cls, v: Any) -> Any:
        if v is None or v == "":
            return Role.GUEST.value
        if isinstance(v, Role):
            return v.value
        return v

    @field_validator("permissions", "accessible_province_ids", mode="before")
    @classmethod
    def _none_to_list(cls, v: Any) -> Any:
        return [] if v is None else v

    @field_validator("first_name", "last_name", "province_id", "uid", mode="before")
    @classmethod
    def _none_to_blank(cls, v: Any) -> Any:
        return "" if v is None else v

    @field_validator("employee_info", mode="before")
    @classmethod
    def _none_to_employee(cls, v: Any) -> Any:
        return {} if v is None else v

    @property
    def home_branch_code(self) -> str:
        return self.employee_info.branch

    @property
    def home_department_code(self) -> str:
        return self.employee_info.department

    def to_document(self) -> dict[str, Any]:
        """Serialise with stored (camelCase) keys, dropping unset timestamps."""
        return self.model_dump(by_alias=True, mode="json", exclude_none=True)


def _pick(data: Mapping[str, Any], alias: str, name: str) -> Any:
    if alias in data:
        return data[alias]
    return data.get(name)


def merge_profile_document(document: Mapping[str, Any], uid: str | None = None) -> UserProfile:
    """Build a profile from a stored document.

    Fields of the nested ``auth`` object override top-level fields of the same
    name. Completeness is recomputed: a profile with both names is complete.
    """
    merged: dict[str, Any] = {k: v for k, v in document.items() if k != "auth"}
    auth = document.get("auth")
    if isinstance(auth, Mapping):
        merged.update(auth)

    if uid and not merged.get("uid"):
        merged["uid"] = uid

    has_names = bool(_pick(merged, "firstName", "first_name")) and bool(
        _pick(merged, "lastName", "last_name")
    )
    merged.pop("is_profile_complete", None)
    merged["isProfileComplete"] = has_names or bool(document.get("isProfileComplete"))

    return UserProfile.model_validate(merged)


def default_profile(identity: Identity) -> UserProfile:
    """Guest profile for an identity that has no stored profile yet."""
    now = datetime.datetime.now(datetime.timezone.utc)
    return UserProfile(
        uid=identity.uid,
        email=identity.email,
        display_name=identity.display_name,
        role=Role.GUEST.value,
        permissions=[],
        province_id="",
        accessible_province_ids=[],
        employee_info=EmployeeInfo(),
        is_profile_complete=False,
        created_at=now,
        updated_at=now,
        last_login=now,
    )


# ---------------------------------------------------------------------------
# Organization directory records (read-only for the engine)
# ---------------------------------------------------------------------------


class Province(_Document):
    id: str
    name: str = ""
    region: str | None = None
    is_active: bool = True
    branch_codes: list[str] = []
    manager_id: str | None = None


class Branch(_Document):
    code: str
    name: str = ""
    province_id: str = ""
    is_active: bool = True
    warehouse_ids: list[str] = []


class Department(_Document):
    code: str
    name: str = ""
    is_active: bool = True


@dataclass(frozen=True)
class OrgDirectory:
    """Materialised province / branch / department maps, keyed by id or code."""

    provinces: dict[str, Province] = field(default_factory=dict)
    branches: dict[str, Branch] = field(default_factory=dict)
    departments: dict[str, Department] = field(default_factory=dict)

    def branches_of(self, province_id: str) -> dict[str, Branch]:
        return {
            code: branch
            for code, branch in self.branches.items()
            if branch.province_id == province_id
        }


def document_keys(fields: Mapping[str, Any]) -> dict[str, Any]:
    """Rename profile field names to their stored aliases (``province_id`` →
    ``provinceId``); unknown keys pass through untouched."""
    renamed: dict[str, Any] = {}
    for key, value in fields.items():
        info = UserProfile.model_fields.get(key)
        renamed[info.alias if info is not None and info.alias else key] = value
    return renamed
