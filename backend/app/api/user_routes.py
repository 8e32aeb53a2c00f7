"""
User account administration — list, create, and edit logins.

Accounts carry the access role, building and shift that drive report scoping
(deps.resolve_scope). Building Managers administer their own building and may
only hand out floor roles; granting or editing Super Admin takes a Super Admin.
"""
import logging
from typing import Optional
from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from app.db import get_db
from app.api.auth_routes import _validate_email, _validate_password, pwd_context
from app.api.deps import (
    ACCESS_ROLES,
    BUILDING_SCOPED_ROLES,
    ensure_building_access,
    require_privileged,
    sanitize_role,
)
from app.models.orm_models import UserAccount
from app.models.records import ALL, BUILDINGS, SHIFTS

router = APIRouter(prefix="/api/admin/users", tags=["User Accounts"])
logger = logging.getLogger("precision-pulse.users")

# Roles a building-scoped administrator may assign
BUILDING_GRANTABLE_ROLES = ("Worker", "Lead", "Supervisor")


class CreateUserRequest(BaseModel):
    email: str
    password: str
    name: str = ""
    access_role: str = "Worker"
    building: Optional[str] = None
    shift: Optional[str] = None
    active: bool = True


class UpdateUserRequest(BaseModel):
    name: Optional[str] = None
    access_role: Optional[str] = None
    building: Optional[str] = None
    shift: Optional[str] = None
    active: Optional[bool] = None


def serialize_user(user: UserAccount) -> dict:
    return {
        "id": user.id,
        "email": user.email,
        "name": user.name or "",
        "access_role": sanitize_role(user.access_role),
        "building": user.building,
        "shift": user.shift,
        "active": bool(user.active),
        "created_at": user.created_at.isoformat() if user.created_at else None,
    }


def _check_place(building: Optional[str], shift: Optional[str]) -> None:
    if building and building not in BUILDINGS:
        raise HTTPException(status_code=422, detail=f"Unknown building '{building}'")
    if shift and shift not in SHIFTS:
        raise HTTPException(status_code=422, detail=f"Unknown shift '{shift}'")


def _check_grant(admin: UserAccount, role: str) -> None:
    """422 for an unknown role, 403 when the admin may not hand it out."""
    if role not in ACCESS_ROLES:
        raise HTTPException(status_code=422, detail=f"Role must be one of: {', '.join(ACCESS_ROLES)}")
    admin_role = sanitize_role(admin.access_role)
    if role == "Super Admin" and admin_role != "Super Admin":
        raise HTTPException(status_code=403, detail="Only a Super Admin can grant Super Admin")
    if admin_role in BUILDING_SCOPED_ROLES and role not in BUILDING_GRANTABLE_ROLES:
        raise HTTPException(
            status_code=403,
            detail=f"{admin_role} accounts may only assign: {', '.join(BUILDING_GRANTABLE_ROLES)}",
        )


async def _get_user(db: AsyncSession, user_id: str) -> UserAccount:
    result = await db.execute(select(UserAccount).where(UserAccount.id == user_id))
    user = result.scalar_one_or_none()
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    return user


@router.get("")
async def list_users(
    building: str = Query(ALL),
    role: str = Query(ALL),
    q: str = Query("", max_length=100),
    admin: UserAccount = Depends(require_privileged),
    db: AsyncSession = Depends(get_db),
):
    """Oldest first. Building Managers only ever see their own building."""
    if sanitize_role(admin.access_role) in BUILDING_SCOPED_ROLES and admin.building:
        building = admin.building
    needle = q.strip().lower()

    rows = (await db.execute(select(UserAccount).order_by(UserAccount.created_at))).scalars().all()
    out = []
    for user in rows:
        if building != ALL and (user.building or "") != building:
            continue
        if role != ALL and sanitize_role(user.access_role) != role:
            continue
        if needle and not any(needle in (v or "").lower() for v in (user.name, user.email, user.building)):
            continue
        out.append(serialize_user(user))
    return out


@router.post("", status_code=201)
async def create_user(
    req: CreateUserRequest,
    admin: UserAccount = Depends(require_privileged),
    db: AsyncSession = Depends(get_db),
):
    email = _validate_email(req.email)
    _validate_password(req.password)
    _check_place(req.building, req.shift)
    _check_grant(admin, req.access_role)
    ensure_building_access(admin, req.building)

    result = await db.execute(select(UserAccount).where(UserAccount.email == email))
    if result.scalar_one_or_none():
        raise HTTPException(status_code=400, detail="Email already registered")

    user = UserAccount(
        email=email,
        hashed_password=pwd_context.hash(req.password),
        name=req.name.strip() or None,
        access_role=req.access_role,
        building=req.building,
        shift=req.shift,
        active=req.active,
    )
    db.add(user)
    await db.flush()
    await db.refresh(user)
    logger.info(
        "User account created",
        extra={"user_id": admin.id, "target_user_id": user.id, "role": user.access_role, "building": user.building},
    )
    return serialize_user(user)


@router.put("/{user_id}")
async def update_user(
    user_id: str,
    req: UpdateUserRequest,
    admin: UserAccount = Depends(require_privileged),
    db: AsyncSession = Depends(get_db),
):
    """Partial update: only the fields sent are changed."""
    changes = req.model_dump(exclude_unset=True)
    user = await _get_user(db, user_id)
    ensure_building_access(admin, user.building)
    if sanitize_role(user.access_role) == "Super Admin" and sanitize_role(admin.access_role) != "Super Admin":
        raise HTTPException(status_code=403, detail="Only a Super Admin can edit a Super Admin")

    if "access_role" in changes:
        _check_grant(admin, changes["access_role"])
    _check_place(changes.get("building"), changes.get("shift"))
    if "building" in changes:
        ensure_building_access(admin, changes["building"])
    if changes.get("active") is False and user.id == admin.id:
        raise HTTPException(status_code=400, detail="You cannot deactivate your own account")

    for key, value in changes.items():
        if key == "name":
            value = (value or "").strip() or None
        setattr(user, key, value)
    await db.flush()
    logger.info(
        "User account updated",
        extra={"user_id": admin.id, "target_user_id": user.id, "fields": sorted(changes)},
    )
    return serialize_user(user)
