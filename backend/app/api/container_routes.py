"""
Container routes — list, price preview, create, update, delete.

Pay is computed server-side by pay_engine.price_container at save time and
stored on the row; clients never send pay_total or payouts.
"""
import logging
from dataclasses import asdict
from datetime import date
from typing import List, Optional
from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from app.db import get_db
from app.api.deps import (
    ensure_building_access,
    get_current_user,
    get_scope,
    require_floor,
    require_privileged,
    sanitize_role,
)
from app.models.orm_models import Container, UserAccount, WorkOrder
from app.models.records import ALL, BUILDINGS, SHIFTS, ScopeFilter, WorkerContribution
from app.services.clock import ops_today
from app.services.pay_engine import (
    PIECES_ERROR,
    ContainerValidationError,
    compute_container_pay,
    distribute_container_pay,
    price_container,
    validate_contribution_total,
)
from app.services.record_adapter import normalize_container

router = APIRouter(prefix="/api/containers", tags=["Containers"])
logger = logging.getLogger("precision-pulse.containers")


class WorkerLine(BaseModel):
    name: str = ""
    worker_id: str = ""
    minutes_worked: float = Field(0, ge=0)
    percent_contribution: float = Field(0, ge=0, le=100)
    role: str = ""

    def to_contribution(self) -> WorkerContribution:
        return WorkerContribution(
            name=self.name,
            worker_id=self.worker_id.strip(),
            minutes_worked=self.minutes_worked,
            percent_contribution=self.percent_contribution,
            role=self.role.strip(),
        )


class ContainerRequest(BaseModel):
    building: str
    shift: str = "1st"
    work_date: Optional[date] = None
    container_no: str = Field(..., min_length=1, max_length=100)
    pieces_total: int = 0
    skus_total: int = Field(0, ge=0)
    palletized: bool = False
    damage_pieces: int = Field(0, ge=0)
    rework_pieces: int = Field(0, ge=0)
    work_order_id: Optional[str] = None
    workers: List[WorkerLine] = Field(default_factory=list)


class QuoteRequest(BaseModel):
    pieces_total: int = 0
    palletized: bool = False
    workers: List[WorkerLine] = Field(default_factory=list)


def serialize_container(row: Container) -> dict:
    record = normalize_container(row)
    payload = asdict(record)
    payload["day"] = record.day
    payload["damage_pieces"] = row.damage_pieces or 0
    payload["rework_pieces"] = row.rework_pieces or 0
    return payload


def _check_place(req: ContainerRequest) -> None:
    if req.building not in BUILDINGS:
        raise HTTPException(status_code=422, detail=f"Unknown building '{req.building}'")
    if req.shift not in SHIFTS:
        raise HTTPException(status_code=422, detail=f"Unknown shift '{req.shift}'")


async def _get_container(db: AsyncSession, container_id: str) -> Container:
    result = await db.execute(select(Container).where(Container.id == container_id))
    row = result.scalar_one_or_none()
    if not row:
        raise HTTPException(status_code=404, detail="Container not found")
    return row


async def _check_work_order(db: AsyncSession, work_order_id: Optional[str]) -> Optional[WorkOrder]:
    if not work_order_id:
        return None
    result = await db.execute(select(WorkOrder).where(WorkOrder.id == work_order_id))
    work_order = result.scalar_one_or_none()
    if not work_order:
        raise HTTPException(status_code=404, detail="Work order not found")
    if work_order.status == "Locked":
        raise HTTPException(status_code=409, detail="Work order is locked; containers cannot be added")
    return work_order


def _apply(row: Container, req: ContainerRequest) -> None:
    """Price the form and copy it onto the row. 422 on a bad form."""
    try:
        priced = price_container(
            req.pieces_total,
            req.palletized,
            [line.to_contribution() for line in req.workers],
        )
    except ContainerValidationError as e:
        raise HTTPException(status_code=422, detail=str(e))

    row.building = req.building
    row.shift = req.shift
    row.work_date = req.work_date or ops_today()
    row.container_no = req.container_no.strip()
    row.pieces_total = req.pieces_total
    row.skus_total = req.skus_total
    row.palletized = req.palletized
    row.damage_pieces = req.damage_pieces
    row.rework_pieces = req.rework_pieces
    row.work_order_id = req.work_order_id or None
    row.pay_total = priced.pay_total
    row.workers = [asdict(w) for w in priced.workers]


@router.get("")
async def list_containers(
    limit: int = Query(200, ge=1, le=2000),
    filters: ScopeFilter = Depends(get_scope),
    db: AsyncSession = Depends(get_db),
):
    """Newest first, narrowed to the caller's scope."""
    stmt = select(Container).order_by(Container.created_at.desc())
    if filters.building != ALL:
        stmt = stmt.where(Container.building == filters.building)
    if filters.shift != ALL:
        stmt = stmt.where(Container.shift == filters.shift)
    rows = (await db.execute(stmt)).scalars().all()

    out = []
    for row in rows:
        payload = serialize_container(row)
        if filters.matches_day(payload["day"]):
            out.append(payload)
        if len(out) >= limit:
            break
    return out


@router.post("/quote")
async def quote_container(req: QuoteRequest, user: UserAccount = Depends(get_current_user)):
    """Live pay preview for the entry form. Never raises on an unbalanced split."""
    has_pieces = req.pieces_total > 0
    pay_total = compute_container_pay(req.pieces_total, req.palletized) if has_pieces else 0.0
    contributions = [line.to_contribution() for line in req.workers]
    check = validate_contribution_total(contributions)
    workers = distribute_container_pay(pay_total, contributions)
    return {
        "pay_total": pay_total,
        "percent_total": round(check.total, 4),
        "valid": check.valid and has_pieces,
        "error": check.error if has_pieces else PIECES_ERROR,
        "workers": [asdict(w) for w in workers],
    }


@router.get("/{container_id}")
async def get_container(
    container_id: str,
    user: UserAccount = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return serialize_container(await _get_container(db, container_id))


@router.post("", status_code=201)
async def create_container(
    req: ContainerRequest,
    user: UserAccount = Depends(require_floor),
    db: AsyncSession = Depends(get_db),
):
    _check_place(req)
    ensure_building_access(user, req.building)
    await _check_work_order(db, req.work_order_id)

    row = Container(created_by_user_id=user.id, created_by_email=user.email)
    _apply(row, req)
    db.add(row)
    await db.flush()
    await db.refresh(row)

    logger.info(
        "Container saved",
        extra={"container_id": row.id, "user_id": user.id, "building": row.building, "shift": row.shift},
    )
    return serialize_container(row)


@router.put("/{container_id}")
async def update_container(
    container_id: str,
    req: ContainerRequest,
    user: UserAccount = Depends(require_floor),
    db: AsyncSession = Depends(get_db),
):
    """Re-prices against the current pay table."""
    row = await _get_container(db, container_id)
    if sanitize_role(user.access_role) == "Lead" and row.created_by_user_id != user.id:
        raise HTTPException(status_code=403, detail="Leads may only edit containers they recorded")
    _check_place(req)
    ensure_building_access(user, row.building)
    ensure_building_access(user, req.building)
    if req.work_order_id and req.work_order_id != row.work_order_id:
        await _check_work_order(db, req.work_order_id)

    _apply(row, req)
    await db.flush()
    await db.refresh(row)
    logger.info("Container updated", extra={"container_id": row.id, "user_id": user.id})
    return serialize_container(row)


@router.delete("/{container_id}")
async def delete_container(
    container_id: str,
    user: UserAccount = Depends(require_privileged),
    db: AsyncSession = Depends(get_db),
):
    row = await _get_container(db, container_id)
    ensure_building_access(user, row.building)
    await db.delete(row)
    logger.info("Container deleted", extra={"container_id": container_id, "user_id": user.id})
    return {"deleted": container_id}
