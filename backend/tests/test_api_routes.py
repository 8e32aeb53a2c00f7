"""
test_api_routes.py — HTTP surface tests via FastAPI TestClient.

Auth is overridden with an in-memory UserAccount and get_db yields None, so
these run without PostgreSQL. Report endpoints get their table loaders
patched with the shared fixture records.

Tests cover:
  - role scoping of report filters (resolve_scope)
  - report endpoints and CSV export
  - container price preview and create-time validation (422 / 403)
  - unauthenticated access
"""

import csv
import io
from datetime import date

import pytest

from conftest import FakeSession, make_user
from app.api import report_routes
from app.api.deps import get_current_user, resolve_scope, sanitize_role
from app.models.orm_models import Container, WorkOrder
from app.services.pay_engine import PIECES_ERROR
from app.services import ops_repository


def _serve(rows):
    async def _loader(*args, **kwargs):
        return list(rows)
    return _loader


@pytest.fixture()
def patched_tables(monkeypatch, containers, work_orders, workforce, damage_reports, staffing_plans):
    monkeypatch.setattr(ops_repository, "load_containers", _serve(containers))
    monkeypatch.setattr(ops_repository, "load_work_orders", _serve(work_orders))
    monkeypatch.setattr(ops_repository, "load_workforce", _serve(workforce))
    monkeypatch.setattr(ops_repository, "load_damage_reports", _serve(damage_reports))
    monkeypatch.setattr(ops_repository, "load_staffing_plans", _serve(staffing_plans))
    monkeypatch.setattr(ops_repository, "load_training_modules", _serve([]))
    monkeypatch.setattr(ops_repository, "load_training_completions", _serve([]))
    monkeypatch.setattr(report_routes, "ops_today", lambda: date(2026, 3, 10))


# ===========================================================================
# Class 1: Role scoping
# ===========================================================================

class TestResolveScope:

    def test_admin_picks_freely(self):
        scope = resolve_scope(make_user("Admin", building="DC1"), "DC14", "2nd", "2026-03-01", "2026-03-10")
        assert (scope.building, scope.shift, scope.date_from, scope.date_to) == ("DC14", "2nd", "2026-03-01", "2026-03-10")

    def test_lead_pinned_to_building_and_shift(self):
        scope = resolve_scope(make_user("Lead", building="DC5", shift="3rd"), "DC1", "ALL")
        assert (scope.building, scope.shift) == ("DC5", "3rd")

    def test_lead_without_shift_sees_all_shifts(self):
        scope = resolve_scope(make_user("Lead", building="DC5"), "DC1", "2nd")
        assert (scope.building, scope.shift) == ("DC5", "ALL")

    @pytest.mark.parametrize("role", ["Supervisor", "Building Manager"])
    def test_building_roles_pinned_to_building_only(self, role):
        scope = resolve_scope(make_user(role, building="DC11"), "DC1", "2nd")
        assert (scope.building, scope.shift) == ("DC11", "2nd")

    def test_unknown_role_is_worker(self):
        assert sanitize_role("janitor") == "Worker"
        assert sanitize_role("building manager") == "Building Manager"


# ===========================================================================
# Class 2: Reports
# ===========================================================================

class TestReportRoutes:

    def test_health(self, api_client):
        response = api_client().get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "active"

    def test_worker_pay(self, api_client, patched_tables):
        response = api_client().get("/api/reports/worker-pay")
        assert response.status_code == 200
        rows = response.json()
        assert [(r["worker_id"], r["building"]) for r in rows][0] == ("w-ben", "DC1")
        assert len(rows) == 4
        assert "avg_per_container" in rows[0]

    def test_lead_only_sees_own_building(self, api_client, patched_tables):
        lead = make_user("Lead", building="DC5", shift="1st", user_id="u-lead")
        rows = api_client(lead).get("/api/reports/worker-pay", params={"building": "DC1"}).json()
        assert {r["building"] for r in rows} == {"DC5"}

    def test_shift_performance_with_dates(self, api_client, patched_tables):
        rows = api_client().get(
            "/api/reports/shift-performance",
            params={"building": "DC1", "shift": "1st", "date_from": "2026-03-09", "date_to": "2026-03-10"},
        ).json()
        assert len(rows) == 1
        assert abs(rows[0]["pph"] - 1175.0) < 0.01

    def test_worker_pay_csv(self, api_client, patched_tables):
        response = api_client().get("/api/reports/worker-pay.csv")
        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/csv")
        assert "worker-pay.csv" in response.headers["content-disposition"]
        rows = list(csv.DictReader(io.StringIO(response.text)))
        assert list(rows[0].keys()) == report_routes.WORKER_PAY_COLUMNS
        assert rows[0]["worker_name"] == "Ben"
        assert float(rows[0]["total_payout"]) == 430.0

    def test_shift_performance_csv(self, api_client, patched_tables):
        response = api_client().get("/api/reports/shift-performance.csv")
        header = response.text.splitlines()[0]
        assert header == ",".join(report_routes.SHIFT_PERFORMANCE_COLUMNS)

    def test_leader_scorecard(self, api_client, patched_tables):
        rows = api_client().get("/api/reports/leader-scorecard").json()
        assert [r["leader_name"] for r in rows] == ["Lee"]

    def test_staffing_coverage(self, api_client, patched_tables):
        rows = api_client().get(
            "/api/reports/staffing-coverage", params={"date_from": "2026-03-10", "date_to": "2026-03-10"},
        ).json()
        statuses = {(r["building"], r["shift"]): r["status"] for r in rows}
        assert statuses[("DC1", "1st")] == "Understaffed"
        assert statuses[("DC1", "2nd")] == "No Target"

    def test_daily_trend_default_window(self, api_client, patched_tables):
        report = api_client().get("/api/reports/daily-trend").json()
        assert len(report["days"]) == 30
        assert report["today"] == "2026-03-10"
        assert report["today_summary"]["containers"] == 3

    def test_daily_trend_custom_window(self, api_client, patched_tables):
        report = api_client().get("/api/reports/daily-trend", params={"window_days": 7}).json()
        assert len(report["days"]) == 7

    def test_top_insights(self, api_client, patched_tables):
        body = api_client().get("/api/reports/top-insights").json()
        assert body["top_workers"][0]["worker"] == "Ana"
        assert body["top_work_orders"][0]["work_order"] == "Unassigned"

    def test_work_orders(self, api_client, patched_tables):
        rows = api_client().get("/api/reports/work-orders").json()
        assert rows[-1]["name"] == "Unassigned"

    def test_worker_history_requires_name(self, api_client, patched_tables):
        assert api_client().get("/api/reports/worker-history").status_code == 422
        body = api_client().get("/api/reports/worker-history", params={"worker": "ben"}).json()
        assert body["total_containers"] == 2

    def test_dashboard(self, api_client, patched_tables):
        body = api_client().get("/api/reports/dashboard").json()
        assert body["containers_today"] == 3
        assert body["work_orders_open"] == 1

    def test_training_compliance_empty(self, api_client, patched_tables):
        rows = api_client().get("/api/reports/training-compliance").json()
        assert {r["building"] for r in rows} == {"DC1", "DC5"}
        assert all(r["required_pairs"] == 0 for r in rows)

    @pytest.mark.parametrize("bad_date", ["foo", "2026-02-31", "03/10/2026"])
    def test_unreadable_date_filter_is_rejected(self, api_client, patched_tables, bad_date):
        response = api_client().get("/api/reports/worker-pay", params={"date_from": bad_date})
        assert response.status_code == 422

    def test_date_filter_scopes_rows(self, api_client, patched_tables):
        rows = api_client().get(
            "/api/reports/worker-pay", params={"date_from": "2026-03-10", "date_to": "2026-03-10"},
        ).json()
        assert {r["worker_id"] for r in rows} == {"w-ana", "w-lee", "w-ben"}


# ===========================================================================
# Class 3: Containers
# ===========================================================================

class TestContainerRoutes:

    def test_quote_end_to_end(self, api_client):
        body = api_client().post("/api/containers/quote", json={
            "pieces_total": 3500,
            "workers": [
                {"name": "Ana", "percent_contribution": 55, "minutes_worked": 60},
                {"name": "Lee", "percent_contribution": 45, "minutes_worked": 60},
            ],
        }).json()
        assert body["pay_total"] == 180.0
        assert [w["payout"] for w in body["workers"]] == [99.0, 81.0]
        assert body["valid"] is True
        assert body["percent_total"] == 100.0

    def test_quote_reports_unbalanced_split(self, api_client):
        body = api_client().post("/api/containers/quote", json={
            "pieces_total": 1000,
            "workers": [{"name": "Ana", "percent_contribution": 50}, {"name": "Ben", "percent_contribution": 49}],
        }).json()
        assert body["valid"] is False
        assert body["error"] == "Worker contribution percentages must total 100%."

    def test_quote_palletized(self, api_client):
        body = api_client().post("/api/containers/quote", json={"pieces_total": 50000, "palletized": True}).json()
        assert body["pay_total"] == 100.0

    def _form(self, **overrides):
        form = {
            "building": "DC1",
            "shift": "1st",
            "container_no": "MSCU1",
            "pieces_total": 1000,
            "workers": [{"name": "Ana", "percent_contribution": 100}],
        }
        form.update(overrides)
        return form

    def test_create_rejects_bad_split(self, api_client):
        response = api_client().post("/api/containers", json=self._form(
            workers=[{"name": "Ana", "percent_contribution": 70}],
        ))
        assert response.status_code == 422
        assert response.json()["detail"] == "Worker contribution percentages must total 100%."

    def test_create_rejects_zero_pieces(self, api_client):
        response = api_client().post("/api/containers", json=self._form(pieces_total=0))
        assert response.status_code == 422
        assert response.json()["detail"] == "Pieces total must be greater than 0."

    def test_create_rejects_unknown_building(self, api_client):
        response = api_client().post("/api/containers", json=self._form(building="DC99"))
        assert response.status_code == 422

    def test_worker_role_cannot_record(self, api_client):
        worker = make_user("Worker", building="DC1", user_id="u-w")
        assert api_client(worker).post("/api/containers", json=self._form()).status_code == 403

    def test_lead_cannot_record_for_other_building(self, api_client):
        lead = make_user("Lead", building="DC5", shift="1st", user_id="u-lead")
        assert api_client(lead).post("/api/containers", json=self._form()).status_code == 403

    def test_quote_without_pieces_explains_why(self, api_client):
        body = api_client().post("/api/containers/quote", json={
            "pieces_total": 0,
            "workers": [{"name": "Ana", "percent_contribution": 100}],
        }).json()
        assert body["valid"] is False
        assert body["error"] == PIECES_ERROR

    def test_create_prices_and_stamps_owner(self, api_client):
        db = FakeSession([WorkOrder(id="wo-1", name="Inbound", building="DC1", status="Active")])
        lead = make_user("Lead", building="DC1", shift="1st", user_id="u-lead")
        response = api_client(lead, db).post("/api/containers", json=self._form(
            pieces_total=3500,
            work_order_id="wo-1",
            workers=[
                {"name": "Ana", "percent_contribution": 55},
                {"name": "Lee", "percent_contribution": 45},
            ],
        ))
        assert response.status_code == 201
        body = response.json()
        assert body["pay_total"] == 180.0
        assert [w["payout"] for w in body["workers"]] == [99.0, 81.0]
        saved = db.added[0]
        assert saved.created_by_user_id == "u-lead"
        assert saved.work_order_id == "wo-1"

    def test_locked_work_order_rejects_new_containers(self, api_client):
        db = FakeSession([WorkOrder(id="wo-2", name="Returns", building="DC1", status="Locked")])
        response = api_client(db=db).post("/api/containers", json=self._form(work_order_id="wo-2"))
        assert response.status_code == 409
        assert db.added == []

    def test_unknown_work_order_is_404(self, api_client):
        response = api_client(db=FakeSession()).post("/api/containers", json=self._form(work_order_id="nope"))
        assert response.status_code == 404

    def _stored(self, created_by):
        return Container(
            id="c-9", building="DC1", shift="1st", container_no="MSCU9",
            pieces_total=1000, pay_total=130.0, workers=[], created_by_user_id=created_by,
        )

    def test_lead_cannot_edit_someone_elses_container(self, api_client):
        lead = make_user("Lead", building="DC1", shift="1st", user_id="u-lead")
        db = FakeSession([self._stored("u-other")])
        response = api_client(lead, db).put("/api/containers/c-9", json=self._form())
        assert response.status_code == 403

    def test_lead_edits_own_container_and_it_is_repriced(self, api_client):
        lead = make_user("Lead", building="DC1", shift="1st", user_id="u-lead")
        row = self._stored("u-lead")
        response = api_client(lead, FakeSession([row])).put(
            "/api/containers/c-9", json=self._form(pieces_total=3500),
        )
        assert response.status_code == 200
        assert row.pay_total == 180.0

    def test_supervisor_may_edit_any_container_in_building(self, api_client):
        supervisor = make_user("Supervisor", building="DC1", user_id="u-sup")
        response = api_client(supervisor, FakeSession([self._stored("u-other")])).put(
            "/api/containers/c-9", json=self._form(),
        )
        assert response.status_code == 200


# ===========================================================================
# Class 4: Auth
# ===========================================================================

class TestAuth:

    def test_reports_require_a_token(self, api_client):
        from app.main import app
        client = api_client()
        app.dependency_overrides.pop(get_current_user)
        assert client.get("/api/reports/worker-pay").status_code == 401

    def test_me(self, api_client):
        user = make_user("building manager", building="DC18", user_id="u-bm")
        body = api_client(user).get("/api/auth/me").json()
        assert body["access_role"] == "Building Manager"
        assert body["building"] == "DC18"
