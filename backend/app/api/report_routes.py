"""
Report Routes — dashboard rollups and CSV exports.

Every endpoint loads the tables it needs through ops_repository, scopes them
with the caller's role-adjusted ScopeFilter, and hands them to the pure
aggregation engine. Nothing is cached; each request recomputes from rows.

GET /api/reports/worker-pay            — payout per worker per building
GET /api/reports/shift-performance     — totals + PPH per building/shift
GET /api/reports/leader-scorecard      — leader work with building damage
GET /api/reports/staffing-coverage     — planned vs. actual headcount
GET /api/reports/daily-trend           — day buckets + today/7/window summaries
GET /api/reports/top-insights          — top-6 work orders / workers, last 7 days
GET /api/reports/work-orders           — container totals per work order
GET /api/reports/worker-history        — one worker's container lines
GET /api/reports/training-compliance   — required-module completion per building
GET /api/reports/dashboard             — landing page KPI tiles
GET /api/reports/worker-pay.csv        — CSV export
GET /api/reports/shift-performance.csv — CSV export
"""
import os
import logging
from typing import Any, Dict, List, Optional

import pandas as pd
from fastapi import APIRouter, Depends, Query
from fastapi.responses import Response
from sqlalchemy.ext.asyncio import AsyncSession

from app.db import get_db
from app.api.deps import get_scope
from app.models.records import ScopeFilter
from app.services import ops_repository
from app.services.aggregation_engine import (
    dashboard_metrics,
    rollup_daily_trend,
    rollup_leader_scorecard,
    rollup_shift_performance,
    rollup_staffing_coverage,
    rollup_top_insights,
    rollup_training_compliance,
    rollup_work_order_totals,
    rollup_worker_pay,
    worker_history,
)
from app.services.clock import ops_today

router = APIRouter(prefix="/api/reports", tags=["Reports"])
logger = logging.getLogger("precision-pulse.reports")

TREND_WINDOW_DAYS = int(os.getenv("TREND_WINDOW_DAYS", "30"))

WORKER_PAY_COLUMNS = [
    "worker_name", "worker_id", "building", "role",
    "total_containers", "total_minutes", "total_payout", "avg_per_container",
]
SHIFT_PERFORMANCE_COLUMNS = [
    "building", "shift", "total_containers", "total_pieces",
    "total_minutes", "total_payout", "pph",
]


def _served(rollup: str, filters: ScopeFilter, row_count: int) -> None:
    logger.info(
        "rollup served",
        extra={
            "rollup": rollup,
            "row_count": row_count,
            "building": filters.building,
            "shift": filters.shift,
        },
    )


def _csv_response(rows: List[Dict[str, Any]], columns: List[str], filename: str) -> Response:
    frame = pd.DataFrame(rows, columns=columns)
    money = [c for c in ("total_payout", "avg_per_container") if c in frame.columns]
    if money:
        frame[money] = frame[money].round(2)
    if "pph" in frame.columns:
        frame["pph"] = frame["pph"].round(1)
    return Response(
        content=frame.to_csv(index=False),
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


async def _worker_pay_rows(db: AsyncSession, filters: ScopeFilter):
    containers = await ops_repository.load_containers(db, filters)
    return rollup_worker_pay(containers, filters)


async def _shift_rows(db: AsyncSession, filters: ScopeFilter):
    containers = await ops_repository.load_containers(db, filters)
    return rollup_shift_performance(containers, filters)


@router.get("/worker-pay")
async def worker_pay(filters: ScopeFilter = Depends(get_scope), db: AsyncSession = Depends(get_db)):
    rows = await _worker_pay_rows(db, filters)
    _served("worker_pay", filters, len(rows))
    return [r.to_dict() for r in rows]


@router.get("/worker-pay.csv")
async def worker_pay_csv(filters: ScopeFilter = Depends(get_scope), db: AsyncSession = Depends(get_db)):
    rows = await _worker_pay_rows(db, filters)
    _served("worker_pay_csv", filters, len(rows))
    return _csv_response([r.to_dict() for r in rows], WORKER_PAY_COLUMNS, "worker-pay.csv")


@router.get("/shift-performance")
async def shift_performance(filters: ScopeFilter = Depends(get_scope), db: AsyncSession = Depends(get_db)):
    rows = await _shift_rows(db, filters)
    _served("shift_performance", filters, len(rows))
    return [r.to_dict() for r in rows]


@router.get("/shift-performance.csv")
async def shift_performance_csv(filters: ScopeFilter = Depends(get_scope), db: AsyncSession = Depends(get_db)):
    rows = await _shift_rows(db, filters)
    _served("shift_performance_csv", filters, len(rows))
    return _csv_response([r.to_dict() for r in rows], SHIFT_PERFORMANCE_COLUMNS, "shift-performance.csv")


@router.get("/leader-scorecard")
async def leader_scorecard(filters: ScopeFilter = Depends(get_scope), db: AsyncSession = Depends(get_db)):
    containers = await ops_repository.load_containers(db, filters)
    workforce = await ops_repository.load_workforce(db)
    damage = await ops_repository.load_damage_reports(db, filters)
    rows = rollup_leader_scorecard(containers, workforce, damage, filters)
    _served("leader_scorecard", filters, len(rows))
    return [r.to_dict() for r in rows]


@router.get("/staffing-coverage")
async def staffing_coverage(filters: ScopeFilter = Depends(get_scope), db: AsyncSession = Depends(get_db)):
    containers = await ops_repository.load_containers(db, filters)
    plans = await ops_repository.load_staffing_plans(db, filters)
    rows = rollup_staffing_coverage(containers, plans, filters)
    _served("staffing_coverage", filters, len(rows))
    return [r.to_dict() for r in rows]


@router.get("/daily-trend")
async def daily_trend(
    window_days: Optional[int] = Query(None, ge=1, le=366),
    filters: ScopeFilter = Depends(get_scope),
    db: AsyncSession = Depends(get_db),
):
    containers = await ops_repository.load_containers(db, filters)
    report = rollup_daily_trend(containers, window_days or TREND_WINDOW_DAYS, ops_today(), filters)
    _served("daily_trend", filters, len(report.days))
    return report.to_dict()


@router.get("/top-insights")
async def top_insights(filters: ScopeFilter = Depends(get_scope), db: AsyncSession = Depends(get_db)):
    containers = await ops_repository.load_containers(db, filters)
    work_orders = await ops_repository.load_work_orders(db)
    insights = rollup_top_insights(containers, work_orders, ops_today(), filters)
    _served("top_insights", filters, len(insights.top_work_orders) + len(insights.top_workers))
    return insights.to_dict()


@router.get("/work-orders")
async def work_order_totals(filters: ScopeFilter = Depends(get_scope), db: AsyncSession = Depends(get_db)):
    containers = await ops_repository.load_containers(db, filters)
    work_orders = await ops_repository.load_work_orders(db, filters)
    rows = rollup_work_order_totals(containers, work_orders, filters)
    _served("work_orders", filters, len(rows))
    return [r.to_dict() for r in rows]


@router.get("/worker-history")
async def worker_history_report(
    worker: str = Query(..., min_length=1),
    filters: ScopeFilter = Depends(get_scope),
    db: AsyncSession = Depends(get_db),
):
    containers = await ops_repository.load_containers(db, filters)
    history = worker_history(containers, worker, filters)
    _served("worker_history", filters, len(history.lines))
    return history.to_dict()


@router.get("/training-compliance")
async def training_compliance(filters: ScopeFilter = Depends(get_scope), db: AsyncSession = Depends(get_db)):
    workforce = await ops_repository.load_workforce(db, filters)
    modules = await ops_repository.load_training_modules(db)
    completions = await ops_repository.load_training_completions(db)
    rows = rollup_training_compliance(workforce, modules, completions, filters)
    _served("training_compliance", filters, len(rows))
    return [r.to_dict() for r in rows]


@router.get("/dashboard")
async def dashboard(filters: ScopeFilter = Depends(get_scope), db: AsyncSession = Depends(get_db)):
    containers = await ops_repository.load_containers(db, filters)
    work_orders = await ops_repository.load_work_orders(db, filters)
    damage = await ops_repository.load_damage_reports(db, filters)
    workforce = await ops_repository.load_workforce(db, filters)
    metrics = dashboard_metrics(containers, work_orders, damage, workforce, ops_today(), filters)
    _served("dashboard", filters, metrics.containers_total)
    return metrics.to_dict()
