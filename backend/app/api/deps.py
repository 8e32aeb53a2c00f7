"""FastAPI dependency injection — auth guards and role-based report scoping."""
import os
from datetime import date
from typing import Optional
from fastapi import Depends, HTTPException, Query, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import jwt, JWTError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from app.db import get_db
from app.models.orm_models import UserAccount
from app.models.records import ALL, SHIFTS, ScopeFilter

SECRET_KEY = os.getenv("JWT_SECRET_KEY", "changethis_use_a_real_secret_in_production_64chars")
ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")

ACCESS_ROLES = (
    "Worker",
    "Lead",
    "Supervisor",
    "Building Manager",
    "HR",
    "HQ",
    "Admin",
    "Super Admin",
)
# Roles allowed to delete containers, work orders and reference data
PRIVILEGED_ROLES = ("Building Manager", "HQ", "Admin", "Super Admin")
# Roles that record containers and manage the floor
FLOOR_ROLES = ("Lead", "Supervisor", "Building Manager", "HQ", "Admin", "Super Admin")
# Roles that maintain workforce and training records
PEOPLE_ROLES = ("Supervisor", "Building Manager", "HR", "HQ", "Admin", "Super Admin")
# Roles pinned to their own building in every report
BUILDING_SCOPED_ROLES = ("Lead", "Supervisor", "Building Manager")

security = HTTPBearer(auto_error=False)


def sanitize_role(raw: Optional[str]) -> str:
    """Case-insensitive match against ACCESS_ROLES; anything unknown is a Worker."""
    if not raw:
        return "Worker"
    lowered = raw.strip().lower()
    return next((r for r in ACCESS_ROLES if r.lower() == lowered), "Worker")


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db: AsyncSession = Depends(get_db),
) -> UserAccount:
    if not credentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    try:
        payload = jwt.decode(credentials.credentials, SECRET_KEY, algorithms=[ALGORITHM])
        user_id: str = payload.get("sub")
        if not user_id:
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")
    except JWTError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")

    result = await db.execute(select(UserAccount).where(UserAccount.id == user_id))
    user = result.scalar_one_or_none()
    if not user or not user.active:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="User not found or inactive")
    return user


def require_roles(*role_names: str):
    """
    Factory for role-gated dependencies. "Super Admin" always passes.

    Usage:
        user: UserAccount = Depends(require_roles(*PRIVILEGED_ROLES))
    """
    allowed = set(role_names) | {"Super Admin"}

    async def _require_roles(current_user: UserAccount = Depends(get_current_user)) -> UserAccount:
        if sanitize_role(current_user.access_role) not in allowed:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"One of these roles is required: {', '.join(sorted(allowed))}",
            )
        return current_user

    return _require_roles


require_privileged = require_roles(*PRIVILEGED_ROLES)
require_floor = require_roles(*FLOOR_ROLES)
require_people = require_roles(*PEOPLE_ROLES)


def ensure_building_access(user: UserAccount, building: Optional[str]) -> None:
    """403 when a building-scoped user writes outside their own building."""
    role = sanitize_role(user.access_role)
    if role in BUILDING_SCOPED_ROLES and user.building and building != user.building:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=f"{role} accounts may only manage {user.building}",
        )


def resolve_scope(
    user: UserAccount,
    building: str = ALL,
    shift: str = ALL,
    date_from: str = "",
    date_to: str = "",
    worker_search: str = "",
) -> ScopeFilter:
    """
    Apply the caller's role to the requested filters.

    Leads are pinned to their own building and (when set) shift; supervisors
    and building managers to their building. Everyone else may pick freely.
    """
    role = sanitize_role(user.access_role)
    effective_building = building or ALL
    effective_shift = shift or ALL

    if role in BUILDING_SCOPED_ROLES and user.building:
        effective_building = user.building
    if role == "Lead":
        effective_shift = user.shift if user.shift in SHIFTS else ALL

    return ScopeFilter(
        building=effective_building,
        shift=effective_shift,
        date_from=date_from or "",
        date_to=date_to or "",
        worker_search=worker_search or "",
    )


async def get_scope(
    building: str = Query(ALL),
    shift: str = Query(ALL),
    date_from: Optional[date] = Query(None),
    date_to: Optional[date] = Query(None),
    worker_search: str = Query(""),
    user: UserAccount = Depends(get_current_user),
) -> ScopeFilter:
    """Report filters from the query string. Dates must be YYYY-MM-DD (422 otherwise)."""
    return resolve_scope(
        user,
        building,
        shift,
        date_from.isoformat() if date_from else "",
        date_to.isoformat() if date_to else "",
        worker_search,
    )
