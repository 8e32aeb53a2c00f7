"""
record_adapter.py — Ingestion boundary for report inputs

Every field-name variant seen in stored rows and legacy exports
(``building`` / ``dc`` / ``location``, ``piecesTotal`` / ``pieces_total`` ...)
is resolved here, once. Engines downstream consume only the canonical
dataclasses from ``app.models.records``.

Leniency policy: malformed numbers become 0, malformed dates become "" (the
record then drops out of date-scoped buckets). Nothing in here raises on bad
row data.
"""

import math
from datetime import date, datetime
from typing import Any, Dict, Iterable, List, Mapping, Optional

from app.models.records import (
    ContainerRecord,
    DamageReportRecord,
    StaffingPlanRecord,
    TrainingCompletionRecord,
    TrainingModuleRecord,
    WorkerContribution,
    WorkforceMember,
    WorkOrderRecord,
    iso_day,
)
from app.services.pay_engine import compute_container_pay


# ---------------------------------------------------------------------------
# Field-name variants
# ---------------------------------------------------------------------------

BUILDING_KEYS = ("building", "assignedBuilding", "homeBuilding", "buildingCode", "dc", "location")
SHIFT_KEYS = ("shift", "shift_name", "shiftName")
WORK_DATE_KEYS = ("work_date", "workDate", "date")
CREATED_KEYS = ("created_at", "createdAt", "timestamp", "savedAt")
PIECES_KEYS = ("pieces_total", "piecesTotal", "total_pieces")
SKUS_KEYS = ("skus_total", "skusTotal")
PAY_KEYS = ("pay_total", "containerPayTotal", "container_pay_total", "payTotal")
WORK_ORDER_ID_KEYS = ("work_order_id", "workOrderId")
CONTAINER_ID_KEYS = ("id", "containerId", "container_id")

WORKER_NAME_KEYS = ("name", "workerName", "fullName")
WORKER_ID_KEYS = ("worker_id", "workerId")
MINUTES_KEYS = ("minutes_worked", "minutesWorked", "minutes", "mins", "timeMinutes", "totalMinutes")
PERCENT_KEYS = ("percent_contribution", "percentContribution", "percentShare")
PAYOUT_KEYS = ("payout", "payoutAmount", "pay")

NESTED_CONTAINER_KEYS = ("containers", "containerEntries", "container_entries", "entries", "items")


# ---------------------------------------------------------------------------
# Coercion helpers
# ---------------------------------------------------------------------------

def _first(raw: Mapping[str, Any], keys: Iterable[str], default: Any = None) -> Any:
    """Return the first present, non-empty value among ``keys``."""
    for key in keys:
        value = raw.get(key)
        if value is not None and value != "":
            return value
    return default


def to_number(value: Any) -> float:
    if isinstance(value, bool):
        return 0.0
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0.0
    return number if math.isfinite(number) else 0.0


def to_count(value: Any) -> int:
    return max(0, int(to_number(value)))


def to_text(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


def to_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes", "y", "on")
    return bool(value)


def to_iso_day(value: Any) -> str:
    """YYYY-MM-DD for anything date-like, "" when it cannot be read."""
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    return iso_day(to_text(value))


def to_iso_timestamp(value: Any) -> str:
    """ISO timestamp string whose first 10 chars are a valid day, or ""."""
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    text = to_text(value)
    return text if to_iso_day(text) else ""


def row_to_dict(row: Any) -> Dict[str, Any]:
    """Column dict for an ORM instance; dicts pass through."""
    if isinstance(row, Mapping):
        return dict(row)
    table = getattr(row, "__table__", None)
    if table is None:
        return dict(vars(row))
    return {column.key: getattr(row, column.key) for column in table.columns}


# ---------------------------------------------------------------------------
# Record adapters
# ---------------------------------------------------------------------------

def normalize_worker(raw: Any, pay_total: float = 0.0) -> Optional[WorkerContribution]:
    if isinstance(raw, WorkerContribution):
        return raw
    if not isinstance(raw, Mapping):
        return None

    pct = to_number(_first(raw, PERCENT_KEYS, 0))
    stored_payout = _first(raw, PAYOUT_KEYS)
    payout = to_number(stored_payout) if stored_payout is not None else pay_total * pct / 100.0

    return WorkerContribution(
        name=to_text(_first(raw, WORKER_NAME_KEYS, "")),
        worker_id=to_text(_first(raw, WORKER_ID_KEYS, "")),
        minutes_worked=max(0.0, to_number(_first(raw, MINUTES_KEYS, 0))),
        percent_contribution=pct,
        payout=payout,
        role=to_text(raw.get("role")),
    )


def normalize_container(raw: Any) -> ContainerRecord:
    if isinstance(raw, ContainerRecord):
        return raw
    data = row_to_dict(raw)

    pieces = to_count(_first(data, PIECES_KEYS, 0))
    palletized = to_bool(data.get("palletized", False))
    stored_pay = _first(data, PAY_KEYS)
    pay_total = to_number(stored_pay) if stored_pay is not None else compute_container_pay(pieces, palletized)

    workers_raw = data.get("workers")
    workers: List[WorkerContribution] = []
    if isinstance(workers_raw, list):
        for entry in workers_raw:
            worker = normalize_worker(entry, pay_total)
            if worker is not None:
                workers.append(worker)

    work_order_id = to_text(_first(data, WORK_ORDER_ID_KEYS, "")) or None

    return ContainerRecord(
        id=to_text(_first(data, CONTAINER_ID_KEYS, "")),
        building=to_text(_first(data, BUILDING_KEYS, "")),
        shift=to_text(_first(data, SHIFT_KEYS, "")),
        work_date=to_iso_day(_first(data, WORK_DATE_KEYS)),
        created_at=to_iso_timestamp(_first(data, CREATED_KEYS)),
        container_no=to_text(_first(data, ("container_no", "containerNo"), "")),
        pieces_total=pieces,
        skus_total=to_count(_first(data, SKUS_KEYS, 0)),
        palletized=palletized,
        pay_total=max(0.0, pay_total),
        workers=workers,
        work_order_id=work_order_id,
        work_order_name=to_text(_first(data, ("work_order_name", "workOrderName"), "")) or None,
        created_by_user_id=to_text(data.get("created_by_user_id")) or None,
        created_by_email=to_text(data.get("created_by_email")) or None,
    )


def normalize_work_order(raw: Any) -> WorkOrderRecord:
    data = row_to_dict(raw)
    wo_id = to_text(_first(data, ("id", "workOrderId", "work_order_id"), ""))
    return WorkOrderRecord(
        id=wo_id,
        name=to_text(_first(data, ("name", "work_order_code", "title"), "")),
        building=to_text(_first(data, BUILDING_KEYS, "")),
        shift=to_text(_first(data, SHIFT_KEYS, "")),
        status=to_text(data.get("status")) or "Pending",
        work_date=to_iso_day(_first(data, WORK_DATE_KEYS + CREATED_KEYS)),
    )


def normalize_workforce(raw: Any) -> WorkforceMember:
    data = row_to_dict(raw)
    status = to_text(data.get("status"))
    active = data.get("active")
    return WorkforceMember(
        id=to_text(_first(data, ("id", "workerId", "email", "name"), "")),
        full_name=to_text(_first(data, ("full_name", "fullName", "name", "displayName", "email"), "")),
        building=to_text(_first(data, BUILDING_KEYS, "")),
        shift=to_text(_first(data, SHIFT_KEYS, "")),
        role=to_text(_first(data, ("role", "position"), "")),
        active=to_bool(active) if active is not None else status in ("", "Active"),
    )


def normalize_damage_report(raw: Any) -> DamageReportRecord:
    data = row_to_dict(raw)
    return DamageReportRecord(
        id=to_text(data.get("id")),
        building=to_text(_first(data, BUILDING_KEYS, "")),
        shift=to_text(_first(data, SHIFT_KEYS, "")),
        pieces_total=to_count(_first(data, PIECES_KEYS + ("totalPieces",), 0)),
        pieces_damaged=to_count(_first(data, ("pieces_damaged", "piecesDamaged", "damagedPieces"), 0)),
        created_at=to_iso_timestamp(_first(data, CREATED_KEYS + ("date",))),
        status=to_text(data.get("status")),
    )


def normalize_staffing_plan(raw: Any) -> StaffingPlanRecord:
    data = row_to_dict(raw)
    return StaffingPlanRecord(
        id=to_text(data.get("id")),
        building=to_text(_first(data, BUILDING_KEYS, "")),
        shift=to_text(_first(data, SHIFT_KEYS, "")),
        plan_date=to_iso_day(_first(data, ("plan_date", "date", "workDate"))),
        required_total=to_count(_first(data, ("required_total", "requiredTotal"), 0)),
        required_lumpers=to_count(_first(data, ("required_lumpers", "requiredLumpers"), 0)),
        required_equipment=to_count(_first(data, ("required_equipment", "requiredEquipment"), 0)),
        required_leads=to_count(_first(data, ("required_leads", "requiredLeads"), 0)),
    )


def normalize_training_module(raw: Any) -> TrainingModuleRecord:
    data = row_to_dict(raw)
    required = data.get("required")
    return TrainingModuleRecord(
        id=to_text(data.get("id")),
        title=to_text(data.get("title")),
        building=to_text(_first(data, BUILDING_KEYS, "")),
        required=to_bool(required) if required is not None else True,
    )


def normalize_training_completion(raw: Any) -> TrainingCompletionRecord:
    data = row_to_dict(raw)
    return TrainingCompletionRecord(
        module_id=to_text(_first(data, ("module_id", "moduleId"), "")),
        workforce_id=to_text(_first(data, ("workforce_id", "workforceId", "worker_id"), "")),
        completed_on=to_iso_day(_first(data, ("completed_on", "completedOn", "created_at"))),
    )


# ---------------------------------------------------------------------------
# Legacy exports: containers nested inside work orders
# ---------------------------------------------------------------------------

def extract_nested_containers(work_orders: Iterable[Mapping[str, Any]]) -> List[Dict[str, Any]]:
    """
    Pull container rows stored inside legacy work-order documents. Nested rows
    inherit the work order's id, name, building and shift when missing.
    """
    extracted: List[Dict[str, Any]] = []
    for wo in work_orders:
        if not isinstance(wo, Mapping):
            continue
        nested = next((wo[k] for k in NESTED_CONTAINER_KEYS if isinstance(wo.get(k), list)), None)
        if nested is None:
            continue

        wo_id = to_text(_first(wo, ("id", "workOrderId", "work_order_id"), ""))
        wo_name = to_text(_first(wo, ("name", "title"), ""))
        for raw in nested:
            if not isinstance(raw, Mapping):
                continue
            merged = dict(raw)
            merged["work_order_id"] = to_text(_first(raw, WORK_ORDER_ID_KEYS, "")) or wo_id
            merged["work_order_name"] = to_text(_first(raw, ("work_order_name", "workOrderName"), "")) or wo_name
            merged["building"] = to_text(_first(raw, BUILDING_KEYS, "")) or to_text(wo.get("building"))
            merged["shift"] = to_text(_first(raw, SHIFT_KEYS, "")) or to_text(wo.get("shift"))
            extracted.append(merged)
    return extracted


def dedupe_containers(records: Iterable[ContainerRecord]) -> List[ContainerRecord]:
    """Drop repeats by id, or by (work order, created_at, pieces) when id-less."""
    seen = set()
    unique: List[ContainerRecord] = []
    for record in records:
        if record.id:
            fingerprint = f"id:{record.id}"
        else:
            fingerprint = f"fp:{record.work_order_id or ''}|{record.created_at}|{record.pieces_total}"
        if fingerprint in seen:
            continue
        seen.add(fingerprint)
        unique.append(record)
    return unique


def load_legacy_containers(
    containers: Iterable[Any], work_orders: Iterable[Mapping[str, Any]] = ()
) -> List[ContainerRecord]:
    """Standalone plus work-order-nested containers, normalised and de-duplicated."""
    rows = list(containers) + extract_nested_containers(work_orders)
    return dedupe_containers(normalize_container(row) for row in rows)
