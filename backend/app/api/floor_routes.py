"""Staffing plans and damage reports — the floor inputs behind coverage and leader reports."""
import logging
from datetime import date
from typing import Optional
from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from app.db import get_db
from app.api.deps import ensure_building_access, get_scope, require_floor, require_privileged
from app.models.orm_models import DamageReport, StaffingPlan, UserAccount
from app.models.records import ALL, BUILDINGS, SHIFTS, ScopeFilter
from app.services.record_adapter import row_to_dict, to_iso_day

staffing_router = APIRouter(prefix="/api/staffing-plans", tags=["Staffing"])
damage_router = APIRouter(prefix="/api/damage-reports", tags=["Damage"])
logger = logging.getLogger("precision-pulse.floor")

DAMAGE_STATUSES = ("Open", "In Review", "Closed")


class StaffingPlanRequest(BaseModel):
    building: str
    shift: str
    plan_date: date
    required_total: int = Field(0, ge=0)
    required_lumpers: int = Field(0, ge=0)
    required_equipment: int = Field(0, ge=0)
    required_leads: int = Field(0, ge=0)
    notes: Optional[str] = None


class DamageReportRequest(BaseModel):
    building: str
    shift: Optional[str] = None
    container_no: Optional[str] = None
    pieces_total: int = Field(0, ge=0)
    pieces_damaged: int = Field(0, ge=0)
    status: str = "Open"
    notes: Optional[str] = None


def _serialize(row) -> dict:
    data = row_to_dict(row)
    for key, value in data.items():
        if isinstance(value, date):
            data[key] = value.isoformat()
    return data


def _check_place(building: str, shift: Optional[str]) -> None:
    if building not in BUILDINGS:
        raise HTTPException(status_code=422, detail=f"Unknown building '{building}'")
    if shift and shift not in SHIFTS:
        raise HTTPException(status_code=422, detail=f"Unknown shift '{shift}'")


def _in_scope(filters: ScopeFilter, building: str, shift: Optional[str], day: str) -> bool:
    if filters.building != ALL and building != filters.building:
        return False
    if shift and filters.shift != ALL and shift != filters.shift:
        return False
    return filters.matches_day(day)


# ── Staffing plans ────────────────────────────────────────────────────────────

@staffing_router.get("")
async def list_plans(filters: ScopeFilter = Depends(get_scope), db: AsyncSession = Depends(get_db)):
    rows = (await db.execute(select(StaffingPlan).order_by(StaffingPlan.plan_date.desc()))).scalars().all()
    return [
        _serialize(r) for r in rows
        if _in_scope(filters, r.building, r.shift, to_iso_day(r.plan_date))
    ]


async def _get_plan(db: AsyncSession, plan_id: str) -> StaffingPlan:
    result = await db.execute(select(StaffingPlan).where(StaffingPlan.id == plan_id))
    plan = result.scalar_one_or_none()
    if not plan:
        raise HTTPException(status_code=404, detail="Staffing plan not found")
    return plan


def _copy_plan(plan: StaffingPlan, req: StaffingPlanRequest) -> None:
    plan.building = req.building
    plan.shift = req.shift
    plan.plan_date = req.plan_date
    # A bare headcount is fine; otherwise the total follows the breakdown
    breakdown = req.required_lumpers + req.required_equipment + req.required_leads
    plan.required_total = max(req.required_total, breakdown)
    plan.required_lumpers = req.required_lumpers
    plan.required_equipment = req.required_equipment
    plan.required_leads = req.required_leads
    plan.notes = req.notes


@staffing_router.post("", status_code=201)
async def create_plan(
    req: StaffingPlanRequest,
    user: UserAccount = Depends(require_floor),
    db: AsyncSession = Depends(get_db),
):
    _check_place(req.building, req.shift)
    ensure_building_access(user, req.building)
    plan = StaffingPlan()
    _copy_plan(plan, req)
    db.add(plan)
    try:
        await db.flush()
    except IntegrityError:
        raise HTTPException(status_code=409, detail="A plan already exists for that building, shift and date")
    await db.refresh(plan)
    logger.info("Staffing plan saved", extra={"user_id": user.id, "building": plan.building, "shift": plan.shift})
    return _serialize(plan)


@staffing_router.put("/{plan_id}")
async def update_plan(
    plan_id: str,
    req: StaffingPlanRequest,
    user: UserAccount = Depends(require_floor),
    db: AsyncSession = Depends(get_db),
):
    _check_place(req.building, req.shift)
    plan = await _get_plan(db, plan_id)
    ensure_building_access(user, plan.building)
    ensure_building_access(user, req.building)
    _copy_plan(plan, req)
    try:
        await db.flush()
    except IntegrityError:
        raise HTTPException(status_code=409, detail="A plan already exists for that building, shift and date")
    return _serialize(plan)


@staffing_router.delete("/{plan_id}")
async def delete_plan(
    plan_id: str,
    user: UserAccount = Depends(require_privileged),
    db: AsyncSession = Depends(get_db),
):
    plan = await _get_plan(db, plan_id)
    ensure_building_access(user, plan.building)
    await db.delete(plan)
    return {"deleted": plan_id}


# ── Damage reports ────────────────────────────────────────────────────────────

@damage_router.get("")
async def list_damage_reports(filters: ScopeFilter = Depends(get_scope), db: AsyncSession = Depends(get_db)):
    rows = (await db.execute(select(DamageReport).order_by(DamageReport.created_at.desc()))).scalars().all()
    return [
        _serialize(r) for r in rows
        if _in_scope(filters, r.building, r.shift, to_iso_day(r.created_at))
    ]


async def _get_report(db: AsyncSession, report_id: str) -> DamageReport:
    result = await db.execute(select(DamageReport).where(DamageReport.id == report_id))
    report = result.scalar_one_or_none()
    if not report:
        raise HTTPException(status_code=404, detail="Damage report not found")
    return report


def _copy_report(report: DamageReport, req: DamageReportRequest) -> None:
    if req.status not in DAMAGE_STATUSES:
        raise HTTPException(status_code=422, detail=f"Status must be one of: {', '.join(DAMAGE_STATUSES)}")
    if req.pieces_damaged > req.pieces_total:
        raise HTTPException(status_code=422, detail="Damaged pieces cannot exceed pieces total")
    report.building = req.building
    report.shift = req.shift
    report.container_no = (req.container_no or "").strip() or None
    report.pieces_total = req.pieces_total
    report.pieces_damaged = req.pieces_damaged
    report.status = req.status
    report.notes = req.notes


@damage_router.post("", status_code=201)
async def create_damage_report(
    req: DamageReportRequest,
    user: UserAccount = Depends(require_floor),
    db: AsyncSession = Depends(get_db),
):
    _check_place(req.building, req.shift)
    ensure_building_access(user, req.building)
    report = DamageReport()
    _copy_report(report, req)
    db.add(report)
    await db.flush()
    await db.refresh(report)
    logger.info("Damage report filed", extra={"user_id": user.id, "building": report.building})
    return _serialize(report)


@damage_router.put("/{report_id}")
async def update_damage_report(
    report_id: str,
    req: DamageReportRequest,
    user: UserAccount = Depends(require_floor),
    db: AsyncSession = Depends(get_db),
):
    _check_place(req.building, req.shift)
    report = await _get_report(db, report_id)
    ensure_building_access(user, report.building)
    ensure_building_access(user, req.building)
    _copy_report(report, req)
    await db.flush()
    return _serialize(report)


@damage_router.delete("/{report_id}")
async def delete_damage_report(
    report_id: str,
    user: UserAccount = Depends(require_privileged),
    db: AsyncSession = Depends(get_db),
):
    report = await _get_report(db, report_id)
    ensure_building_access(user, report.building)
    await db.delete(report)
    return {"deleted": report_id}
