"""
aggregation_engine.py — Operations dashboard rollups

Covers:
  - Worker payout rollup (per worker per building)
  - Shift performance rollup with pieces-per-hour
  - Leader scorecard with building-level damage rates
  - Staffing coverage (planned vs. distinct workers on containers)
  - Day-bucketed trend with today / last-7 / window summaries
  - Top-6 work orders and workers over the trailing week
  - Work order totals, single-worker history, training compliance,
    dashboard KPI tiles

Every function is a pure fold over canonical records (see
``app.services.record_adapter``). Inputs are never mutated, nothing here
does I/O, and calling twice with the same input returns equal output.
"today" is always a caller-supplied calendar date.
"""
from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field
from datetime import date, timedelta
from typing import Dict, List, Optional, Sequence, Tuple, Union

from app.models.records import (
    ALL,
    UNASSIGNED_LABEL,
    ContainerRecord,
    DamageReportRecord,
    ScopeFilter,
    StaffingPlanRecord,
    TrainingCompletionRecord,
    TrainingModuleRecord,
    WorkforceMember,
    WorkOrderRecord,
)

logger = logging.getLogger("precision-pulse.aggregation")


# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

LEADER_ROLE_MARKERS: Tuple[str, ...] = ("lead", "supervisor", "manager")
TOP_N: int = 6
INSIGHT_WINDOW_DAYS: int = 7
SHORT_TREND_DAYS: int = 7
OPEN_WORK_ORDER_STATUSES: Tuple[str, ...] = ("Pending", "Active")
OPEN_DAMAGE_STATUSES: Tuple[str, ...] = ("Open", "In Review")

STATUS_NO_TARGET = "No Target"
STATUS_UNDERSTAFFED = "Understaffed"
STATUS_BALANCED = "Balanced"
STATUS_OVERSTAFFED = "Overstaffed"

DayLike = Union[date, str]


# ---------------------------------------------------------------------------
# Shared helpers
# ---------------------------------------------------------------------------

def pieces_per_hour(pieces: float, minutes: float) -> float:
    """pieces × 60 / person-minutes; zero-minute groups report 0."""
    if minutes <= 0:
        return 0.0
    return pieces * 60.0 / minutes


def _parse_day(value: DayLike) -> Optional[date]:
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value)[:10])
    except ValueError:
        return None


def _window_days(today: date, days: int) -> List[str]:
    """ISO days from today-(days-1) through today, oldest first."""
    return [(today - timedelta(days=offset)).isoformat() for offset in range(days - 1, -1, -1)]


def _scoped(containers: Sequence[ContainerRecord], filters: ScopeFilter) -> List[ContainerRecord]:
    return [
        c for c in containers
        if filters.matches_place(c.building, c.shift) and filters.matches_day(c.day)
    ]


def _worker_key(name: str) -> str:
    return name.strip().lower()


def is_leader_role(role: str) -> bool:
    lowered = (role or "").lower()
    return any(marker in lowered for marker in LEADER_ROLE_MARKERS)


# ── 4.2.1: Worker payout rollup ───────────────────────────────────────────────

@dataclass
class WorkerPayRow:
    worker_id: str
    worker_name: str
    building: str
    role: str = ""
    total_containers: int = 0
    total_minutes: float = 0.0
    total_payout: float = 0.0

    @property
    def avg_per_container(self) -> float:
        if self.total_containers == 0:
            return 0.0
        return self.total_payout / self.total_containers

    def to_dict(self) -> dict:
        return {**asdict(self), "avg_per_container": self.avg_per_container}


def rollup_worker_pay(
    containers: Sequence[ContainerRecord],
    filters: Optional[ScopeFilter] = None,
) -> List[WorkerPayRow]:
    """
    One row per (worker identity, building). The same person under two
    buildings produces two rows. Sorted by total payout, highest first.
    """
    filters = filters or ScopeFilter()
    rows: Dict[Tuple[str, str], WorkerPayRow] = {}

    for container in _scoped(containers, filters):
        for worker in container.workers:
            identity = worker.identity
            if not identity:
                continue
            key = (identity, container.building)
            row = rows.get(key)
            if row is None:
                row = WorkerPayRow(
                    worker_id=identity,
                    worker_name=worker.name or "Unknown",
                    building=container.building,
                    role=worker.role,
                )
                rows[key] = row
            row.total_containers += 1
            row.total_minutes += worker.minutes_worked
            row.total_payout += worker.payout

    result = list(rows.values())

    query = filters.worker_search.strip().lower()
    if query:
        result = [
            r for r in result
            if query in r.worker_name.lower() or query in r.role.lower()
        ]

    result.sort(key=lambda r: r.total_payout, reverse=True)
    logger.debug("worker pay rollup: %d rows", len(result))
    return result


# ── 4.2.2: Shift performance rollup ───────────────────────────────────────────

@dataclass
class ShiftPerformanceRow:
    building: str
    shift: str
    total_containers: int = 0
    total_pieces: int = 0
    total_minutes: float = 0.0
    total_payout: float = 0.0
    pph: float = 0.0

    def to_dict(self) -> dict:
        return asdict(self)


def rollup_shift_performance(
    containers: Sequence[ContainerRecord],
    filters: Optional[ScopeFilter] = None,
) -> List[ShiftPerformanceRow]:
    """Per (building, shift) totals; minutes are person-minutes across all workers."""
    filters = filters or ScopeFilter()
    groups: Dict[Tuple[str, str], ShiftPerformanceRow] = {}

    for container in _scoped(containers, filters):
        key = (container.building, container.shift)
        row = groups.get(key)
        if row is None:
            row = groups[key] = ShiftPerformanceRow(building=container.building, shift=container.shift)
        row.total_containers += 1
        row.total_pieces += container.pieces_total
        row.total_payout += container.pay_total
        row.total_minutes += container.worker_minutes

    for row in groups.values():
        row.pph = pieces_per_hour(row.total_pieces, row.total_minutes)

    return sorted(groups.values(), key=lambda r: (r.building, r.shift))


# ── 4.2.3: Leader scorecard ───────────────────────────────────────────────────

@dataclass
class LeaderRow:
    leader_id: str
    leader_name: str
    building: str
    role: str = ""
    total_containers: int = 0
    total_pieces: int = 0
    total_minutes: float = 0.0
    total_payout: float = 0.0
    pph: float = 0.0
    damage_reports: int = 0
    damage_pieces: int = 0
    damaged_units: int = 0
    damage_rate: float = 0.0

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class _DamageTotals:
    reports: int = 0
    pieces: int = 0
    damaged: int = 0

    @property
    def rate(self) -> float:
        if self.pieces == 0:
            return 0.0
        return self.damaged / self.pieces * 100.0


def _damage_by_building(
    damage_reports: Sequence[DamageReportRecord], filters: ScopeFilter
) -> Dict[str, _DamageTotals]:
    totals: Dict[str, _DamageTotals] = {}
    for report in damage_reports:
        if not report.building:
            continue
        if filters.building not in ("", ALL) and report.building != filters.building:
            continue
        if not filters.matches_day(report.day):
            continue
        acc = totals.setdefault(report.building, _DamageTotals())
        acc.reports += 1
        acc.pieces += report.pieces_total
        acc.damaged += report.pieces_damaged
    return totals


def rollup_leader_scorecard(
    containers: Sequence[ContainerRecord],
    workforce: Sequence[WorkforceMember],
    damage_reports: Sequence[DamageReportRecord],
    filters: Optional[ScopeFilter] = None,
) -> List[LeaderRow]:
    """
    Container work credited to leads / supervisors / managers, one row per
    (leader, building). Damage is not attributable to a person, so each row
    carries its building's damage rate. Sorted by total pieces, highest first.
    """
    filters = filters or ScopeFilter()

    leaders_by_id: Dict[str, WorkforceMember] = {}
    leaders_by_name: Dict[str, WorkforceMember] = {}
    for member in workforce:
        if member.id and is_leader_role(member.role):
            leaders_by_id[member.id] = member
            if member.full_name:
                leaders_by_name.setdefault(_worker_key(member.full_name), member)

    if not leaders_by_id:
        return []

    damage = _damage_by_building(damage_reports, filters)
    rows: Dict[Tuple[str, str], LeaderRow] = {}

    for container in _scoped(containers, filters):
        for worker in container.workers:
            if worker.worker_id:
                leader = leaders_by_id.get(worker.worker_id)
            else:
                leader = leaders_by_name.get(_worker_key(worker.name))
            if leader is None:
                continue

            key = (leader.id, container.building)
            row = rows.get(key)
            if row is None:
                row = rows[key] = LeaderRow(
                    leader_id=leader.id,
                    leader_name=leader.full_name,
                    building=container.building,
                    role=leader.role,
                )
            row.total_containers += 1
            row.total_pieces += container.pieces_total
            row.total_minutes += worker.minutes_worked
            row.total_payout += worker.payout

    for row in rows.values():
        row.pph = pieces_per_hour(row.total_pieces, row.total_minutes)
        totals = damage.get(row.building, _DamageTotals())
        row.damage_reports = totals.reports
        row.damage_pieces = totals.pieces
        row.damaged_units = totals.damaged
        row.damage_rate = totals.rate

    return sorted(rows.values(), key=lambda r: r.total_pieces, reverse=True)


# ── 4.2.4: Staffing coverage ──────────────────────────────────────────────────

@dataclass
class StaffingRow:
    building: str
    shift: str
    required: int = 0
    actual: int = 0
    diff: int = 0
    status: str = STATUS_NO_TARGET

    def to_dict(self) -> dict:
        return asdict(self)


def classify_staffing(required: int, actual: int) -> str:
    if required == 0:
        return STATUS_NO_TARGET
    diff = actual - required
    if diff < 0:
        return STATUS_UNDERSTAFFED
    if diff > 0:
        return STATUS_OVERSTAFFED
    return STATUS_BALANCED


def rollup_staffing_coverage(
    containers: Sequence[ContainerRecord],
    staffing_plans: Sequence[StaffingPlanRecord],
    filters: Optional[ScopeFilter] = None,
) -> List[StaffingRow]:
    """
    Planned vs. actual headcount per (building, shift).

    ``actual`` counts each worker once per day they appear in that shift, no
    matter how many containers they touched. Over a multi-day range both
    sides are person-days; for a single day they are plain headcounts. Keys
    come from containers and plans alike, so a planned shift with no
    containers still shows up with actual = 0.
    """
    filters = filters or ScopeFilter()
    required: Dict[Tuple[str, str], int] = {}
    seen: Dict[Tuple[str, str], set] = {}

    for plan in staffing_plans:
        if not filters.matches_place(plan.building, plan.shift):
            continue
        if not filters.matches_day(plan.plan_date):
            continue
        key = (plan.building, plan.shift)
        required[key] = required.get(key, 0) + plan.required_total

    for container in _scoped(containers, filters):
        key = (container.building, container.shift)
        people = seen.setdefault(key, set())
        for worker in container.workers:
            identity = worker.worker_id or _worker_key(worker.name)
            if identity:
                people.add((container.day, identity))

    rows: List[StaffingRow] = []
    for key in sorted(set(required) | set(seen)):
        need = required.get(key, 0)
        have = len(seen.get(key, ()))
        rows.append(StaffingRow(
            building=key[0],
            shift=key[1],
            required=need,
            actual=have,
            diff=have - need,
            status=classify_staffing(need, have),
        ))
    return rows


# ── 4.2.5: Day-bucketed trend ─────────────────────────────────────────────────

@dataclass
class DayBucket:
    date: str
    containers: int = 0
    pieces: int = 0
    minutes: float = 0.0
    pph: float = 0.0


@dataclass
class TrendSummary:
    containers: int = 0
    pieces: int = 0
    minutes: float = 0.0
    pph: float = 0.0


@dataclass
class TrendReport:
    window_days: int
    today: str
    days: List[DayBucket] = field(default_factory=list)
    today_summary: TrendSummary = field(default_factory=TrendSummary)
    last_7: TrendSummary = field(default_factory=TrendSummary)
    last_window: TrendSummary = field(default_factory=TrendSummary)
    coverage_days: int = 0

    def to_dict(self) -> dict:
        return asdict(self)


def _summarise(buckets: Sequence[DayBucket]) -> TrendSummary:
    containers = sum(b.containers for b in buckets)
    pieces = sum(b.pieces for b in buckets)
    minutes = sum(b.minutes for b in buckets)
    return TrendSummary(
        containers=containers,
        pieces=pieces,
        minutes=minutes,
        pph=pieces_per_hour(pieces, minutes),
    )


def rollup_daily_trend(
    containers: Sequence[ContainerRecord],
    window_days: int,
    today: DayLike,
    filters: Optional[ScopeFilter] = None,
) -> TrendReport:
    """
    ``window_days`` daily buckets ending at ``today``. The 7-day and window
    summaries are sums over the buckets themselves, so
    last_7 == sum(days[-7:]) always holds.
    """
    filters = filters or ScopeFilter()
    window = max(1, int(window_days or 1))
    anchor = _parse_day(today)
    if anchor is None:
        return TrendReport(window_days=window, today=str(today))

    days = [DayBucket(date=d) for d in _window_days(anchor, window)]
    index = {bucket.date: bucket for bucket in days}

    for container in _scoped(containers, filters):
        bucket = index.get(container.day)
        if bucket is None:
            continue
        bucket.containers += 1
        bucket.pieces += container.pieces_total
        bucket.minutes += container.worker_minutes

    for bucket in days:
        bucket.pph = pieces_per_hour(bucket.pieces, bucket.minutes)

    last_7 = days[-SHORT_TREND_DAYS:]
    return TrendReport(
        window_days=window,
        today=anchor.isoformat(),
        days=days,
        today_summary=_summarise(days[-1:]),
        last_7=_summarise(last_7),
        last_window=_summarise(days),
        coverage_days=sum(1 for b in last_7 if b.containers > 0),
    )


# ── 4.2.6: Top-N insights ─────────────────────────────────────────────────────

@dataclass
class WorkOrderInsight:
    work_order: str
    containers: int = 0
    pieces: int = 0
    pay_total: float = 0.0


@dataclass
class WorkerInsight:
    worker: str
    payout: float = 0.0
    minutes: float = 0.0
    containers: int = 0


@dataclass
class TopInsights:
    top_work_orders: List[WorkOrderInsight] = field(default_factory=list)
    top_workers: List[WorkerInsight] = field(default_factory=list)

    def to_dict(self) -> dict:
        return asdict(self)


def _work_order_label(container: ContainerRecord, names: Dict[str, str]) -> str:
    if container.work_order_id:
        return names.get(container.work_order_id) or container.work_order_id
    return container.work_order_name or UNASSIGNED_LABEL


def rollup_top_insights(
    containers: Sequence[ContainerRecord],
    work_orders: Sequence[WorkOrderRecord],
    today: DayLike,
    filters: Optional[ScopeFilter] = None,
) -> TopInsights:
    """
    Trailing-week leaders. Work orders rank by containers then pieces;
    workers (keyed case-insensitively, first-seen spelling kept) rank by
    payout and count each container once even if listed twice on it.
    """
    filters = filters or ScopeFilter()
    anchor = _parse_day(today)
    if anchor is None:
        return TopInsights()

    window = set(_window_days(anchor, INSIGHT_WINDOW_DAYS))
    recent = [c for c in _scoped(containers, filters) if c.day in window]
    names = {wo.id: (wo.name or wo.id) for wo in work_orders if wo.id}

    by_order: Dict[str, WorkOrderInsight] = {}
    for container in recent:
        label = _work_order_label(container, names)
        row = by_order.setdefault(label, WorkOrderInsight(work_order=label))
        row.containers += 1
        row.pieces += container.pieces_total
        row.pay_total += container.pay_total

    by_worker: Dict[str, WorkerInsight] = {}
    for container in recent:
        seen_here = set()
        for worker in container.workers:
            display = worker.name.strip() or "Unknown"
            key = display.lower()
            row = by_worker.setdefault(key, WorkerInsight(worker=display))
            row.payout += worker.payout
            row.minutes += worker.minutes_worked
            if key not in seen_here:
                row.containers += 1
                seen_here.add(key)

    top_orders = sorted(by_order.values(), key=lambda r: (-r.containers, -r.pieces))[:TOP_N]
    top_workers = sorted(by_worker.values(), key=lambda r: -r.payout)[:TOP_N]
    return TopInsights(top_work_orders=top_orders, top_workers=top_workers)


# ── Work order totals ─────────────────────────────────────────────────────────

@dataclass
class WorkOrderTotalsRow:
    work_order_id: str
    name: str
    building: str = ""
    shift: str = ""
    status: str = ""
    containers: int = 0
    pieces: int = 0
    pay_total: float = 0.0

    def to_dict(self) -> dict:
        return asdict(self)


def rollup_work_order_totals(
    containers: Sequence[ContainerRecord],
    work_orders: Sequence[WorkOrderRecord],
    filters: Optional[ScopeFilter] = None,
) -> List[WorkOrderTotalsRow]:
    """
    Container sums per work order. Work orders in scope appear even with no
    containers; unlinked containers collect under "Unassigned" (listed last).
    """
    filters = filters or ScopeFilter()
    rows: Dict[str, WorkOrderTotalsRow] = {}

    for wo in work_orders:
        if wo.id and filters.matches_place(wo.building, wo.shift):
            rows[wo.id] = WorkOrderTotalsRow(
                work_order_id=wo.id,
                name=wo.name or wo.id,
                building=wo.building,
                shift=wo.shift,
                status=wo.status,
            )

    unassigned = WorkOrderTotalsRow(work_order_id="", name=UNASSIGNED_LABEL)
    for container in _scoped(containers, filters):
        row = rows.get(container.work_order_id or "")
        if row is None:
            if container.work_order_id:
                row = rows[container.work_order_id] = WorkOrderTotalsRow(
                    work_order_id=container.work_order_id,
                    name=container.work_order_name or container.work_order_id,
                    building=container.building,
                    shift=container.shift,
                )
            else:
                row = unassigned
        row.containers += 1
        row.pieces += container.pieces_total
        row.pay_total += container.pay_total

    result = sorted(rows.values(), key=lambda r: (-r.containers, r.name))
    if unassigned.containers:
        result.append(unassigned)
    return result


# ── Worker history ────────────────────────────────────────────────────────────

@dataclass
class WorkerHistoryLine:
    container_id: str
    date: str
    building: str
    shift: str
    container_no: str
    container_type: str
    pieces: int
    skus: int
    container_pay_total: float
    minutes: float
    percent: float
    payout: float
    work_order_id: Optional[str] = None


@dataclass
class WorkerHistory:
    worker_name: str
    lines: List[WorkerHistoryLine] = field(default_factory=list)
    total_containers: int = 0
    total_payout: float = 0.0
    total_minutes: float = 0.0
    total_pieces: int = 0

    def to_dict(self) -> dict:
        return asdict(self)


def worker_history(
    containers: Sequence[ContainerRecord],
    worker_name: str,
    filters: Optional[ScopeFilter] = None,
) -> WorkerHistory:
    """Every container line for one worker (name match ignores case), newest first."""
    filters = filters or ScopeFilter()
    target = _worker_key(worker_name)
    history = WorkerHistory(worker_name=worker_name.strip())
    if not target:
        return history

    for container in _scoped(containers, filters):
        match = next((w for w in container.workers if _worker_key(w.name) == target), None)
        if match is None:
            continue
        history.lines.append(WorkerHistoryLine(
            container_id=container.id,
            date=container.day,
            building=container.building,
            shift=container.shift,
            container_no=container.container_no,
            container_type="Palletized" if container.palletized else "Loose",
            pieces=container.pieces_total,
            skus=container.skus_total,
            container_pay_total=container.pay_total,
            minutes=match.minutes_worked,
            percent=match.percent_contribution,
            payout=match.payout,
            work_order_id=container.work_order_id,
        ))

    history.lines.sort(key=lambda line: line.date, reverse=True)
    history.total_containers = len(history.lines)
    history.total_payout = sum(line.payout for line in history.lines)
    history.total_minutes = sum(line.minutes for line in history.lines)
    history.total_pieces = sum(line.pieces for line in history.lines)
    return history


# ── Training compliance ───────────────────────────────────────────────────────

@dataclass
class TrainingComplianceRow:
    building: str
    active_workers: int = 0
    required_modules: int = 0
    required_pairs: int = 0
    completed_pairs: int = 0
    compliance_pct: float = 0.0

    def to_dict(self) -> dict:
        return asdict(self)


def rollup_training_compliance(
    workforce: Sequence[WorkforceMember],
    modules: Sequence[TrainingModuleRecord],
    completions: Sequence[TrainingCompletionRecord],
    filters: Optional[ScopeFilter] = None,
) -> List[TrainingComplianceRow]:
    """
    Per building: (active worker, required module) pairs and how many are
    complete. A module with no building applies to every building.
    """
    filters = filters or ScopeFilter()
    done = {(c.module_id, c.workforce_id) for c in completions}
    required = [m for m in modules if m.required]

    staff: Dict[str, List[WorkforceMember]] = {}
    for member in workforce:
        if member.active and member.building and filters.matches_place(member.building, member.shift):
            staff.setdefault(member.building, []).append(member)

    rows: List[TrainingComplianceRow] = []
    for building in sorted(staff):
        applicable = [m for m in required if m.building in ("", ALL, building)]
        members = staff[building]
        pairs = len(applicable) * len(members)
        completed = sum(1 for m in applicable for w in members if (m.id, w.id) in done)
        rows.append(TrainingComplianceRow(
            building=building,
            active_workers=len(members),
            required_modules=len(applicable),
            required_pairs=pairs,
            completed_pairs=completed,
            compliance_pct=completed / pairs * 100.0 if pairs else 0.0,
        ))
    return rows


# ── Dashboard KPI tiles ───────────────────────────────────────────────────────

@dataclass
class DashboardMetrics:
    today: str
    containers_total: int = 0
    containers_today: int = 0
    pieces_today: int = 0
    minutes_today: float = 0.0
    pph_today: float = 0.0
    work_orders_total: int = 0
    work_orders_open: int = 0
    damage_reports_total: int = 0
    damage_reports_open: int = 0
    avg_damage_pct: float = 0.0
    workforce_total: int = 0
    workforce_active: int = 0
    last_seen: str = ""

    def to_dict(self) -> dict:
        return asdict(self)


def dashboard_metrics(
    containers: Sequence[ContainerRecord],
    work_orders: Sequence[WorkOrderRecord],
    damage_reports: Sequence[DamageReportRecord],
    workforce: Sequence[WorkforceMember],
    today: DayLike,
    filters: Optional[ScopeFilter] = None,
) -> DashboardMetrics:
    """Headline numbers for the landing page, scoped by building/shift only."""
    filters = filters or ScopeFilter()
    anchor = _parse_day(today)
    today_iso = anchor.isoformat() if anchor else ""

    place = ScopeFilter(building=filters.building, shift=filters.shift)
    scoped = _scoped(containers, place)
    todays = [c for c in scoped if today_iso and c.day == today_iso]
    pieces_today = sum(c.pieces_total for c in todays)
    minutes_today = sum(c.worker_minutes for c in todays)

    orders = [wo for wo in work_orders if place.matches_place(wo.building, wo.shift)]
    damage = [d for d in damage_reports if place.matches_place(d.building, d.shift)]
    staff = [w for w in workforce if place.matches_place(w.building, w.shift)]

    damage_pieces = sum(d.pieces_total for d in damage)
    damaged = sum(d.pieces_damaged for d in damage)
    stamps = sorted(c.created_at for c in scoped if c.created_at)

    return DashboardMetrics(
        today=today_iso,
        containers_total=len(scoped),
        containers_today=len(todays),
        pieces_today=pieces_today,
        minutes_today=minutes_today,
        pph_today=pieces_per_hour(pieces_today, minutes_today),
        work_orders_total=len(orders),
        work_orders_open=sum(1 for wo in orders if wo.status in OPEN_WORK_ORDER_STATUSES),
        damage_reports_total=len(damage),
        damage_reports_open=sum(1 for d in damage if d.status in OPEN_DAMAGE_STATUSES),
        avg_damage_pct=damaged / damage_pieces * 100.0 if damage_pieces else 0.0,
        workforce_total=len(staff),
        workforce_active=sum(1 for w in staff if w.active),
        last_seen=stamps[-1] if stamps else "",
    )
