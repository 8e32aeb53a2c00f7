"""
test_record_adapter.py — Ingestion boundary tests.

Covers field-name variants, lenient coercion (bad numbers → 0, bad dates →
""), stored-vs-derived pay, and legacy work-order documents that carry their
containers nested inside.
"""

from datetime import date, datetime
from decimal import Decimal

import pytest

from app.models.orm_models import Container
from app.models.records import ContainerRecord
from app.services.record_adapter import (
    dedupe_containers,
    extract_nested_containers,
    load_legacy_containers,
    normalize_container,
    normalize_damage_report,
    normalize_staffing_plan,
    normalize_work_order,
    normalize_worker,
    normalize_workforce,
    to_iso_day,
    to_number,
)


# ===========================================================================
# Class 1: Coercion
# ===========================================================================

class TestCoercion:

    @pytest.mark.parametrize("raw, expected", [
        ("12.5", 12.5),
        (7, 7.0),
        (Decimal("180.00"), 180.0),
        (None, 0.0),
        ("n/a", 0.0),
        (float("nan"), 0.0),
        (True, 0.0),
    ])
    def test_to_number(self, raw, expected):
        assert to_number(raw) == expected

    @pytest.mark.parametrize("raw, expected", [
        ("2026-03-10", "2026-03-10"),
        ("2026-03-10T23:59:00Z", "2026-03-10"),
        (date(2026, 3, 10), "2026-03-10"),
        (datetime(2026, 3, 10, 8, 30), "2026-03-10"),
        ("03/10/2026", ""),
        ("", ""),
        (None, ""),
    ])
    def test_to_iso_day(self, raw, expected):
        assert to_iso_day(raw) == expected


# ===========================================================================
# Class 2: Containers
# ===========================================================================

class TestNormalizeContainer:

    def test_camel_case_legacy_row(self):
        record = normalize_container({
            "containerId": "abc",
            "dc": "DC14",
            "shiftName": "3rd",
            "workDate": "2026-03-01",
            "createdAt": "2026-03-01T22:15:00",
            "containerNo": "MSCU9",
            "piecesTotal": "2400",
            "containerPayTotal": "180",
            "workers": [
                {"workerName": "Ana", "minutesWorked": "90", "percentContribution": 100, "payoutAmount": 180},
            ],
        })
        assert (record.id, record.building, record.shift) == ("abc", "DC14", "3rd")
        assert record.day == "2026-03-01"
        assert record.pieces_total == 2400
        assert record.pay_total == 180.0
        assert record.workers[0].name == "Ana"
        assert record.workers[0].minutes_worked == 90.0
        assert record.workers[0].payout == 180.0

    def test_stored_pay_is_never_recomputed(self):
        record = normalize_container({"id": "x", "pieces_total": 8500, "pay_total": 275.0})
        assert record.pay_total == 275.0

    def test_missing_pay_is_derived_from_pieces(self):
        record = normalize_container({
            "id": "x", "pieces_total": 1200,
            "workers": [{"name": "A", "percent_contribution": 25}],
        })
        assert record.pay_total == 130.0
        assert record.workers[0].payout == 32.5

    def test_day_falls_back_to_created_at(self):
        record = normalize_container({"id": "x", "created_at": "2026-02-28T05:00:00"})
        assert record.work_date == ""
        assert record.day == "2026-02-28"

    def test_garbage_fields_are_zeroed_not_raised(self):
        record = normalize_container({
            "id": "x", "pieces_total": "lots", "work_date": "yesterday",
            "workers": ["not-a-row", {"name": "A", "minutes": -30}],
        })
        assert record.pieces_total == 0
        assert record.day == ""
        assert len(record.workers) == 1
        assert record.workers[0].minutes_worked == 0.0

    def test_orm_row(self):
        row = Container(
            id="c-1", building="DC1", shift="1st", work_date=date(2026, 3, 10),
            container_no="MSCU1", pieces_total=3500, skus_total=4, palletized=False,
            pay_total=Decimal("180.00"),
            workers=[{"name": "Ana", "worker_id": "w-ana", "minutes_worked": 60,
                      "percent_contribution": 100, "payout": 180.0}],
        )
        record = normalize_container(row)
        assert isinstance(record, ContainerRecord)
        assert record.day == "2026-03-10"
        assert record.pay_total == 180.0
        assert record.workers[0].identity == "w-ana"

    def test_records_pass_through(self):
        record = ContainerRecord(id="x")
        assert normalize_container(record) is record


# ===========================================================================
# Class 3: Other tables
# ===========================================================================

class TestOtherRecords:

    def test_worker_rejects_non_mapping(self):
        assert normalize_worker("Ana") is None

    def test_workforce_status_string(self):
        member = normalize_workforce({"workerId": "w1", "fullName": "Ana", "homeBuilding": "DC5", "status": "Inactive"})
        assert (member.id, member.full_name, member.building, member.active) == ("w1", "Ana", "DC5", False)

    def test_work_order_defaults(self):
        wo = normalize_work_order({"workOrderId": "wo-9", "title": "Cross-dock", "location": "DC18"})
        assert (wo.id, wo.name, wo.building, wo.status) == ("wo-9", "Cross-dock", "DC18", "Pending")

    def test_damage_report_variants(self):
        report = normalize_damage_report({"id": "d", "buildingCode": "DC11", "totalPieces": 400,
                                          "damagedPieces": 8, "date": "2026-03-02"})
        assert (report.building, report.pieces_total, report.pieces_damaged, report.day) == ("DC11", 400, 8, "2026-03-02")

    def test_staffing_plan_variants(self):
        plan = normalize_staffing_plan({"id": "p", "building": "DC1", "shift": "1st",
                                        "date": "2026-03-10", "requiredTotal": "6"})
        assert (plan.plan_date, plan.required_total) == ("2026-03-10", 6)


# ===========================================================================
# Class 4: Legacy nested containers
# ===========================================================================

class TestLegacyContainers:

    def test_nested_rows_inherit_work_order_context(self):
        work_orders = [{
            "id": "wo-1", "name": "Inbound", "building": "DC1", "shift": "2nd",
            "containerEntries": [{"containerNo": "A1", "piecesTotal": 600}],
        }]
        rows = extract_nested_containers(work_orders)
        assert rows == [{
            "containerNo": "A1", "piecesTotal": 600,
            "work_order_id": "wo-1", "work_order_name": "Inbound",
            "building": "DC1", "shift": "2nd",
        }]

    def test_work_orders_without_nested_lists_are_skipped(self):
        assert extract_nested_containers([{"id": "wo-1"}, "junk"]) == []

    def test_duplicates_dropped_by_id_and_fingerprint(self):
        records = [
            ContainerRecord(id="c1"),
            ContainerRecord(id="c1", pieces_total=99),
            ContainerRecord(id="", work_order_id="wo", created_at="2026-03-01T01:00:00", pieces_total=10),
            ContainerRecord(id="", work_order_id="wo", created_at="2026-03-01T01:00:00", pieces_total=10),
            ContainerRecord(id="", work_order_id="wo", created_at="2026-03-01T01:00:00", pieces_total=11),
        ]
        unique = dedupe_containers(records)
        assert len(unique) == 3
        assert unique[0].pieces_total == 0

    def test_load_legacy_merges_both_sources(self):
        standalone = [{"id": "c1", "building": "DC1", "pieces_total": 100}]
        work_orders = [{
            "id": "wo-1", "building": "DC1",
            "containers": [{"id": "c1", "pieces_total": 100}, {"id": "c2", "pieces_total": 700}],
        }]
        records = load_legacy_containers(standalone, work_orders)
        assert [r.id for r in records] == ["c1", "c2"]
        assert records[1].work_order_id == "wo-1"
        assert records[1].pay_total == 130.0
