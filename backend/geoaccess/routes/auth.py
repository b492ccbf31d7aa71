"""Authentication and session routes."""
from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel

from geoaccess.middleware.auth import create_access_token, get_current_session, get_registry
from geoaccess.rbac import ROLE_PERMISSIONS, VALID_ROLES, permission_description

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["auth"])


class LoginRequest(BaseModel):
    email: str
    password: str


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    session: dict


class SwitchProvinceRequest(BaseModel):
    province_id: str


class EmployeeInfoIn(BaseModel):
    branch: str | None = None
    department: str | None = None
    employee_code: str | None = None


class ProfileUpdate(BaseModel):
    display_name: str | None = None
    first_name: str | None = None
    last_name: str | None = None


class CompleteProfileRequest(BaseModel):
    first_name: str
    last_name: str
    display_name: str | None = None
    province_id: str | None = None
    employee_info: EmployeeInfoIn | None = None


@router.post("/login", response_model=TokenResponse)
async def login(body: LoginRequest, registry=Depends(get_registry)):
    # IdentityError propagates to the handler registered in main.py
    session = await registry.login(body.email, body.password)
    return TokenResponse(
        access_token=create_access_token(session.identity),
        session=session.snapshot(),
    )


@router.post("/logout")
async def logout(session=Depends(get_current_session), registry=Depends(get_registry)):
    await registry.logout(session.identity.uid)
    return {"status": "signed_out"}


@router.get("/me")
async def get_me(session=Depends(get_current_session)):
    return session.snapshot()


@router.post("/refresh")
async def refresh(session=Depends(get_current_session)):
    """Re-read the profile and issue a fresh token."""
    await session.refresh()
    return {
        "access_token": create_access_token(session.identity),
        "token_type": "bearer",
        "session": session.snapshot(),
    }


@router.post("/switch-province")
async def switch_province(body: SwitchProvinceRequest, session=Depends(get_current_session)):
    # AccessDenied is mapped to 403 in main.py
    session.switch_province(body.province_id)
    return {"current_province_id": session.current_province_id}


@router.patch("/profile")
async def update_profile(body: ProfileUpdate, session=Depends(get_current_session)):
    fields = body.model_dump(exclude_unset=True)
    if not fields:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="No profile fields to update",
        )
    await session.update_profile(fields)
    return session.snapshot()


@router.post("/complete-profile")
async def complete_profile(body: CompleteProfileRequest, session=Depends(get_current_session)):
    fields = body.model_dump(exclude_none=True)
    if not fields.get("display_name"):
        fields["display_name"] = f"{body.first_name} {body.last_name}".strip()
    await session.complete_onboarding(fields)
    return session.snapshot()


@router.get("/roles")
async def list_roles(_session=Depends(get_current_session)):
    """Role catalogue with each role's base permissions."""
    return {
        "roles": [
            {
                "role": role.value,
                "permissions": [
                    {"permission": p.value, "description": permission_description(p.value)}
                    for p in sorted(perms, key=lambda p: p.value)
                ],
            }
            for role, perms in ROLE_PERMISSIONS.items()
        ],
        "valid_roles": VALID_ROLES,
    }
