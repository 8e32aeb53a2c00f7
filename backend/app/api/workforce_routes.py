"""Workforce roster and training records."""
import logging
from datetime import date
from typing import Optional
from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from app.db import get_db
from app.api.deps import ensure_building_access, get_current_user, require_people, require_privileged
from app.models.orm_models import TrainingCompletion, TrainingModule, UserAccount, Workforce
from app.models.records import ALL, BUILDINGS, SHIFTS
from app.services.clock import ops_today
from app.services.record_adapter import row_to_dict

router = APIRouter(prefix="/api/workforce", tags=["Workforce"])
training_router = APIRouter(prefix="/api/training", tags=["Training"])
logger = logging.getLogger("precision-pulse.workforce")

SUGGESTION_LIMIT = 8


class WorkforceRequest(BaseModel):
    full_name: str = Field(..., min_length=1, max_length=255)
    building: Optional[str] = None
    shift: Optional[str] = None
    role: Optional[str] = "Lumper"
    active: bool = True


class ModuleRequest(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)
    building: Optional[str] = None
    required: bool = True


class CompletionRequest(BaseModel):
    module_id: str
    workforce_id: str
    completed_on: Optional[date] = None


def _serialize(row) -> dict:
    data = row_to_dict(row)
    for key, value in data.items():
        if isinstance(value, date):
            data[key] = value.isoformat()
    return data


def _check_place(building: Optional[str], shift: Optional[str]) -> None:
    if building and building not in BUILDINGS:
        raise HTTPException(status_code=422, detail=f"Unknown building '{building}'")
    if shift and shift not in SHIFTS:
        raise HTTPException(status_code=422, detail=f"Unknown shift '{shift}'")


async def _get_member(db: AsyncSession, member_id: str) -> Workforce:
    result = await db.execute(select(Workforce).where(Workforce.id == member_id))
    member = result.scalar_one_or_none()
    if not member:
        raise HTTPException(status_code=404, detail="Workforce member not found")
    return member


# ── Roster ────────────────────────────────────────────────────────────────────

@router.get("")
async def list_workforce(
    building: str = Query(ALL),
    include_inactive: bool = False,
    user: UserAccount = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    stmt = select(Workforce).order_by(Workforce.full_name)
    if building != ALL:
        stmt = stmt.where(Workforce.building == building)
    if not include_inactive:
        stmt = stmt.where(Workforce.active.is_(True))
    rows = (await db.execute(stmt)).scalars().all()
    return [_serialize(r) for r in rows]


@router.get("/suggestions")
async def suggest_workers(
    q: str = Query("", max_length=100),
    building: str = Query(ALL),
    shift: str = Query(ALL),
    user: UserAccount = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Active names for the container form autocomplete, prefix match ignoring case."""
    stmt = select(Workforce).where(Workforce.active.is_(True))
    if building != ALL:
        stmt = stmt.where(Workforce.building == building)
    if shift != ALL:
        stmt = stmt.where(Workforce.shift == shift)
    if q.strip():
        stmt = stmt.where(Workforce.full_name.ilike(f"{q.strip()}%"))
    rows = (await db.execute(stmt.order_by(Workforce.full_name).limit(SUGGESTION_LIMIT))).scalars().all()
    return [{"worker_id": r.id, "name": r.full_name, "role": r.role or ""} for r in rows]


@router.post("", status_code=201)
async def create_member(
    req: WorkforceRequest,
    user: UserAccount = Depends(require_people),
    db: AsyncSession = Depends(get_db),
):
    _check_place(req.building, req.shift)
    ensure_building_access(user, req.building)
    member = Workforce(
        full_name=req.full_name.strip(),
        building=req.building,
        shift=req.shift,
        role=(req.role or "").strip() or None,
        active=req.active,
    )
    db.add(member)
    await db.flush()
    await db.refresh(member)
    logger.info("Workforce member added", extra={"user_id": user.id, "building": member.building})
    return _serialize(member)


@router.put("/{member_id}")
async def update_member(
    member_id: str,
    req: WorkforceRequest,
    user: UserAccount = Depends(require_people),
    db: AsyncSession = Depends(get_db),
):
    _check_place(req.building, req.shift)
    member = await _get_member(db, member_id)
    ensure_building_access(user, member.building)
    member.full_name = req.full_name.strip()
    member.building = req.building
    member.shift = req.shift
    member.role = (req.role or "").strip() or None
    member.active = req.active
    await db.flush()
    return _serialize(member)


@router.delete("/{member_id}")
async def deactivate_member(
    member_id: str,
    user: UserAccount = Depends(require_people),
    db: AsyncSession = Depends(get_db),
):
    """Soft delete: container history keeps pointing at the member."""
    member = await _get_member(db, member_id)
    ensure_building_access(user, member.building)
    member.active = False
    await db.flush()
    logger.info("Workforce member deactivated", extra={"user_id": user.id, "building": member.building})
    return _serialize(member)


# ── Training ──────────────────────────────────────────────────────────────────

@training_router.get("/modules")
async def list_modules(user: UserAccount = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    rows = (await db.execute(select(TrainingModule).order_by(TrainingModule.title))).scalars().all()
    return [_serialize(r) for r in rows]


@training_router.post("/modules", status_code=201)
async def create_module(
    req: ModuleRequest,
    user: UserAccount = Depends(require_people),
    db: AsyncSession = Depends(get_db),
):
    _check_place(req.building, None)
    module = TrainingModule(title=req.title.strip(), building=req.building, required=req.required)
    db.add(module)
    await db.flush()
    await db.refresh(module)
    return _serialize(module)


@training_router.delete("/modules/{module_id}")
async def delete_module(
    module_id: str,
    user: UserAccount = Depends(require_privileged),
    db: AsyncSession = Depends(get_db),
):
    result = await db.execute(select(TrainingModule).where(TrainingModule.id == module_id))
    module = result.scalar_one_or_none()
    if not module:
        raise HTTPException(status_code=404, detail="Training module not found")
    await db.delete(module)
    return {"deleted": module_id}


@training_router.get("/completions")
async def list_completions(
    workforce_id: Optional[str] = None,
    user: UserAccount = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    stmt = select(TrainingCompletion).order_by(TrainingCompletion.completed_on.desc())
    if workforce_id:
        stmt = stmt.where(TrainingCompletion.workforce_id == workforce_id)
    rows = (await db.execute(stmt)).scalars().all()
    return [_serialize(r) for r in rows]


@training_router.post("/completions", status_code=201)
async def record_completion(
    req: CompletionRequest,
    user: UserAccount = Depends(require_people),
    db: AsyncSession = Depends(get_db),
):
    member = await _get_member(db, req.workforce_id)
    ensure_building_access(user, member.building)
    completion = TrainingCompletion(
        module_id=req.module_id,
        workforce_id=req.workforce_id,
        completed_on=req.completed_on or ops_today(),
    )
    db.add(completion)
    try:
        await db.flush()
    except IntegrityError:
        raise HTTPException(status_code=409, detail="Completion already recorded (or unknown module)")
    await db.refresh(completion)
    return _serialize(completion)
