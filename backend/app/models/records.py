"""
Canonical in-memory records consumed by the pay and aggregation engines.

Rows arrive from the database (or legacy JSON exports) in several shapes;
``app.services.record_adapter`` folds all of them into these dataclasses so
the engines only ever see one spelling per field.
"""
from dataclasses import dataclass, field
from datetime import date
from typing import List, Optional


BUILDINGS: List[str] = ["DC1", "DC5", "DC11", "DC14", "DC18", "DC301"]
SHIFTS: List[str] = ["1st", "2nd", "3rd", "4th"]
WORK_ORDER_STATUSES: List[str] = ["Pending", "Active", "Completed", "Locked"]

ALL = "ALL"
UNASSIGNED_LABEL = "Unassigned"


def iso_day(value: str) -> str:
    """The YYYY-MM-DD prefix of a stored date or timestamp, "" when it is not a real day."""
    if not value or len(value) < 10:
        return ""
    try:
        return date.fromisoformat(value[:10]).isoformat()
    except ValueError:
        return ""


@dataclass
class WorkerContribution:
    """One lumper line on a container."""
    name: str = ""
    worker_id: str = ""
    minutes_worked: float = 0.0
    percent_contribution: float = 0.0
    payout: float = 0.0
    role: str = ""

    @property
    def identity(self) -> str:
        return self.worker_id or self.name


@dataclass
class ContainerRecord:
    id: str
    building: str = ""
    shift: str = ""
    work_date: str = ""
    created_at: str = ""
    container_no: str = ""
    pieces_total: int = 0
    skus_total: int = 0
    palletized: bool = False
    pay_total: float = 0.0
    workers: List[WorkerContribution] = field(default_factory=list)
    work_order_id: Optional[str] = None
    work_order_name: Optional[str] = None
    created_by_user_id: Optional[str] = None
    created_by_email: Optional[str] = None

    @property
    def day(self) -> str:
        """Calendar day used for bucketing: work_date wins, else created_at, else ""."""
        return iso_day(self.work_date) or iso_day(self.created_at)

    @property
    def worker_minutes(self) -> float:
        return sum(w.minutes_worked for w in self.workers)


@dataclass
class WorkOrderRecord:
    id: str
    name: str = ""
    building: str = ""
    shift: str = ""
    status: str = "Pending"
    work_date: str = ""


@dataclass
class WorkforceMember:
    id: str
    full_name: str = ""
    building: str = ""
    shift: str = ""
    role: str = ""
    active: bool = True


@dataclass
class DamageReportRecord:
    id: str
    building: str = ""
    shift: str = ""
    pieces_total: int = 0
    pieces_damaged: int = 0
    created_at: str = ""
    status: str = ""

    @property
    def day(self) -> str:
        return iso_day(self.created_at)


@dataclass
class StaffingPlanRecord:
    id: str
    building: str = ""
    shift: str = ""
    plan_date: str = ""
    required_total: int = 0
    required_lumpers: int = 0
    required_equipment: int = 0
    required_leads: int = 0


@dataclass
class TrainingModuleRecord:
    id: str
    title: str = ""
    building: str = ""       # "" or ALL → required everywhere
    required: bool = True


@dataclass
class TrainingCompletionRecord:
    module_id: str
    workforce_id: str
    completed_on: str = ""


@dataclass
class ScopeFilter:
    """
    Caller-supplied scope. ``building`` / ``shift`` accept ALL as a wildcard;
    date bounds are inclusive ISO dates.
    """
    building: str = ALL
    shift: str = ALL
    date_from: str = ""
    date_to: str = ""
    worker_search: str = ""

    def matches_place(self, building: str, shift: str) -> bool:
        if self.building not in ("", ALL) and building != self.building:
            return False
        if self.shift not in ("", ALL) and shift != self.shift:
            return False
        return True

    def matches_day(self, day: str) -> bool:
        if not self.date_from and not self.date_to:
            return True
        day = iso_day(day)
        if not day:
            return False
        if self.date_from and day < self.date_from:
            return False
        if self.date_to and day > self.date_to:
            return False
        return True
