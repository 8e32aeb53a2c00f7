"""Work order routes — list, create, status changes, detail with container totals."""
import logging
from datetime import date
from typing import Optional
from fastapi import APIRouter, Depends, HTTPException
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
from app.api.container_routes import serialize_container
from app.models.orm_models import Container, UserAccount, WorkOrder
from app.models.records import BUILDINGS, SHIFTS, WORK_ORDER_STATUSES, ScopeFilter
from app.services import ops_repository
from app.services.aggregation_engine import rollup_work_order_totals
from app.services.clock import ops_today
from app.services.record_adapter import normalize_container, normalize_work_order, row_to_dict

router = APIRouter(prefix="/api/work-orders", tags=["Work Orders"])
logger = logging.getLogger("precision-pulse.work-orders")


class WorkOrderRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    building: str
    shift: str = "1st"
    work_date: Optional[date] = None
    notes: Optional[str] = None


class StatusRequest(BaseModel):
    status: str


def _serialize(row: WorkOrder) -> dict:
    data = row_to_dict(row)
    data["work_date"] = row.work_date.isoformat() if row.work_date else None
    data["created_at"] = row.created_at.isoformat() if row.created_at else None
    return data


async def _get_work_order(db: AsyncSession, work_order_id: str) -> WorkOrder:
    result = await db.execute(select(WorkOrder).where(WorkOrder.id == work_order_id))
    row = result.scalar_one_or_none()
    if not row:
        raise HTTPException(status_code=404, detail="Work order not found")
    return row


@router.get("")
async def list_work_orders(
    status: Optional[str] = None,
    filters: ScopeFilter = Depends(get_scope),
    db: AsyncSession = Depends(get_db),
):
    """Work orders in scope with their container totals."""
    orders = await ops_repository.load_work_orders(db, filters)
    if status:
        orders = [wo for wo in orders if wo.status == status]
    containers = await ops_repository.load_containers(db, filters)
    totals = {row.work_order_id: row for row in rollup_work_order_totals(containers, orders)}

    out = []
    for wo in orders:
        row = totals.get(wo.id)
        out.append({
            "id": wo.id,
            "name": wo.name,
            "building": wo.building,
            "shift": wo.shift,
            "status": wo.status,
            "work_date": wo.work_date,
            "containers": row.containers if row else 0,
            "pieces": row.pieces if row else 0,
            "pay_total": row.pay_total if row else 0.0,
        })
    return out


@router.post("", status_code=201)
async def create_work_order(
    req: WorkOrderRequest,
    user: UserAccount = Depends(require_floor),
    db: AsyncSession = Depends(get_db),
):
    if req.building not in BUILDINGS:
        raise HTTPException(status_code=422, detail=f"Unknown building '{req.building}'")
    if req.shift not in SHIFTS:
        raise HTTPException(status_code=422, detail=f"Unknown shift '{req.shift}'")
    ensure_building_access(user, req.building)

    row = WorkOrder(
        name=req.name.strip(),
        building=req.building,
        shift=req.shift,
        work_date=req.work_date or ops_today(),
        status="Pending",
        notes=req.notes,
        created_by_user_id=user.id,
        created_by_email=user.email,
    )
    db.add(row)
    await db.flush()
    await db.refresh(row)
    logger.info("Work order created", extra={"user_id": user.id, "building": row.building})
    return _serialize(row)


@router.get("/{work_order_id}")
async def get_work_order(
    work_order_id: str,
    user: UserAccount = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    row = await _get_work_order(db, work_order_id)
    result = await db.execute(
        select(Container)
        .where(Container.work_order_id == work_order_id)
        .order_by(Container.created_at.desc())
    )
    container_rows = result.scalars().all()
    totals = rollup_work_order_totals(
        [normalize_container(c) for c in container_rows],
        [normalize_work_order(row)],
    )
    summary = totals[0].to_dict() if totals else {}
    return {
        **_serialize(row),
        "totals": summary,
        "containers": [serialize_container(c) for c in container_rows],
    }


@router.patch("/{work_order_id}/status")
async def update_status(
    work_order_id: str,
    req: StatusRequest,
    user: UserAccount = Depends(require_floor),
    db: AsyncSession = Depends(get_db),
):
    if req.status not in WORK_ORDER_STATUSES:
        raise HTTPException(
            status_code=422,
            detail=f"Status must be one of: {', '.join(WORK_ORDER_STATUSES)}",
        )
    row = await _get_work_order(db, work_order_id)
    ensure_building_access(user, row.building)
    if sanitize_role(user.access_role) == "Lead" and row.created_by_user_id != user.id:
        raise HTTPException(status_code=403, detail="Leads may only update work orders they created")
    previous = row.status
    row.status = req.status
    await db.flush()
    logger.info(f"Work order {work_order_id}: {previous} -> {req.status}", extra={"user_id": user.id})
    return _serialize(row)


@router.delete("/{work_order_id}")
async def delete_work_order(
    work_order_id: str,
    user: UserAccount = Depends(require_privileged),
    db: AsyncSession = Depends(get_db),
):
    """Linked containers survive and fall back to Unassigned."""
    row = await _get_work_order(db, work_order_id)
    ensure_building_access(user, row.building)
    await db.delete(row)
    logger.info("Work order deleted", extra={"user_id": user.id, "building": row.building})
    return {"deleted": work_order_id}
