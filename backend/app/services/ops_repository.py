"""
Async loaders that pull operations tables and hand back canonical records.

Building / shift narrowing is pushed into SQL; date bounds are applied by the
engines because a container's day falls back to created_at when work_date is
missing.
"""
import logging
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.orm_models import (
    Container,
    DamageReport,
    StaffingPlan,
    TrainingCompletion,
    TrainingModule,
    Workforce,
    WorkOrder,
)
from app.models.records import (
    ALL,
    ContainerRecord,
    DamageReportRecord,
    ScopeFilter,
    StaffingPlanRecord,
    TrainingCompletionRecord,
    TrainingModuleRecord,
    WorkforceMember,
    WorkOrderRecord,
)
from app.services.record_adapter import (
    normalize_container,
    normalize_damage_report,
    normalize_staffing_plan,
    normalize_training_completion,
    normalize_training_module,
    normalize_work_order,
    normalize_workforce,
)

logger = logging.getLogger("precision-pulse.repository")


def _narrow(stmt, model, filters: Optional[ScopeFilter], with_shift: bool = True):
    if filters is None:
        return stmt
    if filters.building not in ("", ALL):
        stmt = stmt.where(model.building == filters.building)
    if with_shift and filters.shift not in ("", ALL):
        stmt = stmt.where(model.shift == filters.shift)
    return stmt


async def load_containers(db: AsyncSession, filters: Optional[ScopeFilter] = None) -> List[ContainerRecord]:
    stmt = _narrow(select(Container), Container, filters).order_by(Container.created_at.desc())
    rows = (await db.execute(stmt)).scalars().all()
    records = [normalize_container(row) for row in rows]
    logger.debug("Loaded %d containers", len(records))
    return records


async def load_work_orders(db: AsyncSession, filters: Optional[ScopeFilter] = None) -> List[WorkOrderRecord]:
    stmt = _narrow(select(WorkOrder), WorkOrder, filters).order_by(WorkOrder.created_at.desc())
    rows = (await db.execute(stmt)).scalars().all()
    return [normalize_work_order(row) for row in rows]


async def load_workforce(db: AsyncSession, filters: Optional[ScopeFilter] = None) -> List[WorkforceMember]:
    # Leaders are matched across shifts, so only the building narrows here
    stmt = _narrow(select(Workforce), Workforce, filters, with_shift=False).order_by(Workforce.full_name)
    rows = (await db.execute(stmt)).scalars().all()
    return [normalize_workforce(row) for row in rows]


async def load_damage_reports(db: AsyncSession, filters: Optional[ScopeFilter] = None) -> List[DamageReportRecord]:
    stmt = _narrow(select(DamageReport), DamageReport, filters, with_shift=False)
    rows = (await db.execute(stmt.order_by(DamageReport.created_at.desc()))).scalars().all()
    return [normalize_damage_report(row) for row in rows]


async def load_staffing_plans(db: AsyncSession, filters: Optional[ScopeFilter] = None) -> List[StaffingPlanRecord]:
    stmt = _narrow(select(StaffingPlan), StaffingPlan, filters).order_by(StaffingPlan.plan_date)
    rows = (await db.execute(stmt)).scalars().all()
    return [normalize_staffing_plan(row) for row in rows]


async def load_training_modules(db: AsyncSession) -> List[TrainingModuleRecord]:
    rows = (await db.execute(select(TrainingModule).order_by(TrainingModule.title))).scalars().all()
    return [normalize_training_module(row) for row in rows]


async def load_training_completions(db: AsyncSession) -> List[TrainingCompletionRecord]:
    rows = (await db.execute(select(TrainingCompletion))).scalars().all()
    return [normalize_training_completion(row) for row in rows]
