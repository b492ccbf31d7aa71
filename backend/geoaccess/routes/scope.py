"""Scope routes -- accessible provinces and branches, access checks."""
from __future__ import annotations

from fastapi import APIRouter, Depends, Query, Request

from geoaccess.guard import RouteGuard, province_for
from geoaccess.middleware.auth import (
    enforce_guard,
    get_current_session,
    get_optional_session,
    require_permission,
)
from geoaccess.rbac import Permission
from geoaccess.selectors import auto_select, branch_options, group_branch_options, province_options

router = APIRouter(prefix="/api/scope", tags=["scope"])


def _province_item(option: dict) -> dict:
    p = option["province"]
    return {
        "value": option["value"],
        "label": option["label"],
        "region": p.region,
        "is_active": p.is_active,
        "branch_codes": p.branch_codes,
    }


def _branch_item(option: dict) -> dict:
    b = option["branch"]
    return {
        "value": option["value"],
        "label": option["label"],
        "province_id": b.province_id,
        "is_active": b.is_active,
    }


# ---------------------------------------------------------------------------
# PICKERS
# ---------------------------------------------------------------------------


@router.get("/provinces")
async def list_provinces(
    include_inactive: bool = Query(False),
    session=Depends(get_current_session),
):
    options = province_options(
        session, session.directory.provinces, include_inactive=include_inactive
    )
    return {
        "items": [_province_item(o) for o in options],
        "selected": session.current_province_id or auto_select(options),
    }


@router.get("/branches")
async def list_branches(
    province_id: str | None = Query(None),
    include_inactive: bool = Query(False),
    grouped: bool = Query(False),
    session=Depends(get_current_session),
):
    directory = session.directory
    if grouped:
        groups = group_branch_options(
            session,
            directory.branches,
            directory.provinces,
            province_id=province_id,
            include_inactive=include_inactive,
        )
        return {
            "groups": [
                {
                    "province_id": g["province_id"],
                    "label": g["label"],
                    "items": [_branch_item(o) for o in g["options"]],
                }
                for g in groups
            ]
        }

    options = branch_options(
        session, directory.branches, province_id=province_id, include_inactive=include_inactive
    )
    return {"items": [_branch_item(o) for o in options], "selected": auto_select(options)}


@router.get("/provinces/{province_id}/branches")
async def list_province_branches(
    province_id: str,
    request: Request,
    session=Depends(get_optional_session),
):
    """Branches of one province; callers without access to it are redirected."""
    enforce_guard(
        RouteGuard(province_check=province_for(province_id)), session, request.url.path
    )
    options = branch_options(
        session, session.directory.branches, province_id=province_id, include_inactive=True
    )
    return {"province_id": province_id, "items": [_branch_item(o) for o in options]}


# ---------------------------------------------------------------------------
# ACCESS CHECKS
# ---------------------------------------------------------------------------


@router.get("/access")
async def check_access(
    province_id: str | None = Query(None),
    branch_code: str | None = Query(None),
    department_code: str | None = Query(None),
    session=Depends(get_current_session),
):
    result: dict[str, bool] = {}
    if province_id is not None:
        result["province"] = session.has_province_access(province_id)
    if branch_code is not None:
        result["branch"] = session.has_branch_access(branch_code)
    if department_code is not None:
        result["department"] = session.has_department_access(department_code)
    return result


@router.get("/directory")
async def get_directory(session=Depends(require_permission(Permission.ORGANIZATION_MANAGE))):
    """Full organization directory, inactive records included."""
    d = session.directory
    return {
        "provinces": [p.model_dump() for p in d.provinces.values()],
        "branches": [b.model_dump() for b in d.branches.values()],
        "departments": [dep.model_dump() for dep in d.departments.values()],
    }
