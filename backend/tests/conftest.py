"""
conftest.py — Shared pytest fixtures for the Precision Pulse backend test suite.

Engine and adapter tests are pure unit tests over in-memory records. API tests
run the FastAPI app through TestClient with the auth and database
dependencies overridden, so no PostgreSQL instance is needed.

Import-path bootstrapping:
    The ``backend/`` directory is inserted into sys.path so that all
    ``app.*`` imports resolve correctly regardless of where pytest is invoked.
"""

import sys
import os
import pytest

# ---------------------------------------------------------------------------
# Ensure ``backend/`` is on the import path before any app imports occur.
# ---------------------------------------------------------------------------
_BACKEND_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if _BACKEND_DIR not in sys.path:
    sys.path.insert(0, _BACKEND_DIR)

# Plain-text logs and no rate limiting while the app is under test
os.environ.setdefault("LOG_FORMAT", "text")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")


TODAY = "2026-03-10"


def _worker(name, worker_id="", minutes=0.0, pct=0.0, payout=0.0, role=""):
    from app.models.records import WorkerContribution
    return WorkerContribution(
        name=name,
        worker_id=worker_id,
        minutes_worked=minutes,
        percent_contribution=pct,
        payout=payout,
        role=role,
    )


# ---------------------------------------------------------------------------
# Operations dataset
# ---------------------------------------------------------------------------

@pytest.fixture(scope="session")
def today():
    """Fixed operations day all dated fixtures are laid out around."""
    return TODAY


@pytest.fixture(scope="session")
def containers():
    """
    Five containers across DC1/DC5, 2026-03-04 .. 2026-03-10.

      c1  DC1 1st 03-10  3500 pcs  180.00  Ana 55% (w-ana), Lee 45% (w-lee, Lead)
      c2  DC1 1st 03-09  1200 pcs  130.00  Ana 100%                   WO wo-1
      c3  DC1 2nd 03-10   400 pcs  100.00  Ben 100%                   WO wo-1
      c4  DC5 1st 03-10   900 pcs  100.00  palletized, Ana 100% (same id, other DC)
      c5  DC1 1st 02-01  8500 pcs  330.00  Ben 100% — outside the 7-day window
    """
    from app.models.records import ContainerRecord
    return [
        ContainerRecord(
            id="c1", building="DC1", shift="1st", work_date="2026-03-10",
            created_at="2026-03-10T08:00:00", container_no="MSCU1",
            pieces_total=3500, skus_total=12, pay_total=180.0,
            workers=[
                _worker("Ana", "w-ana", 60, 55, 99.0),
                _worker("Lee", "w-lee", 60, 45, 81.0, "Lead"),
            ],
        ),
        ContainerRecord(
            id="c2", building="DC1", shift="1st", work_date="2026-03-09",
            created_at="2026-03-09T09:00:00", container_no="MSCU2",
            pieces_total=1200, pay_total=130.0, work_order_id="wo-1",
            workers=[_worker("Ana", "w-ana", 120, 100, 130.0)],
        ),
        ContainerRecord(
            id="c3", building="DC1", shift="2nd", work_date="2026-03-10",
            created_at="2026-03-10T18:00:00", container_no="MSCU3",
            pieces_total=400, pay_total=100.0, work_order_id="wo-1",
            workers=[_worker("Ben", "w-ben", 40, 100, 100.0)],
        ),
        ContainerRecord(
            id="c4", building="DC5", shift="1st", work_date="2026-03-10",
            created_at="2026-03-10T10:00:00", container_no="TGHU4",
            pieces_total=900, palletized=True, pay_total=100.0,
            workers=[_worker("Ana", "w-ana", 30, 100, 100.0)],
        ),
        ContainerRecord(
            id="c5", building="DC1", shift="1st", work_date="2026-02-01",
            created_at="2026-02-01T07:00:00", container_no="OLD5",
            pieces_total=8500, pay_total=330.0,
            workers=[_worker("Ben", "w-ben", 300, 100, 330.0)],
        ),
    ]


@pytest.fixture(scope="session")
def work_orders():
    from app.models.records import WorkOrderRecord
    return [
        WorkOrderRecord(id="wo-1", name="Inbound Walmart", building="DC1", shift="1st", status="Active"),
        WorkOrderRecord(id="wo-2", name="Returns", building="DC1", shift="2nd", status="Locked"),
    ]


@pytest.fixture(scope="session")
def workforce():
    from app.models.records import WorkforceMember
    return [
        WorkforceMember(id="w-ana", full_name="Ana", building="DC1", shift="1st", role="Lumper"),
        WorkforceMember(id="w-lee", full_name="Lee", building="DC1", shift="1st", role="Lead"),
        WorkforceMember(id="w-ben", full_name="Ben", building="DC1", shift="2nd", role="Lumper"),
        WorkforceMember(id="w-sam", full_name="Sam", building="DC5", shift="1st", role="Shift Supervisor"),
        WorkforceMember(id="w-old", full_name="Old Timer", building="DC1", shift="1st", role="Lumper", active=False),
    ]


@pytest.fixture(scope="session")
def damage_reports():
    from app.models.records import DamageReportRecord
    return [
        DamageReportRecord(id="d1", building="DC1", shift="1st", pieces_total=1000, pieces_damaged=20,
                           created_at="2026-03-10T12:00:00", status="Open"),
        DamageReportRecord(id="d2", building="DC1", shift="2nd", pieces_total=1000, pieces_damaged=10,
                           created_at="2026-03-09T12:00:00", status="Closed"),
        DamageReportRecord(id="d3", building="DC5", shift="1st", pieces_total=500, pieces_damaged=50,
                           created_at="2026-03-10T12:00:00", status="In Review"),
    ]


@pytest.fixture(scope="session")
def staffing_plans():
    from app.models.records import StaffingPlanRecord
    return [
        StaffingPlanRecord(id="p1", building="DC1", shift="1st", plan_date="2026-03-10", required_total=5),
        StaffingPlanRecord(id="p2", building="DC1", shift="3rd", plan_date="2026-03-10", required_total=2),
    ]


# ---------------------------------------------------------------------------
# API fixtures
# ---------------------------------------------------------------------------

def make_user(role="Admin", building=None, shift=None, user_id="u-1"):
    from app.models.orm_models import UserAccount
    return UserAccount(
        id=user_id,
        email=f"{user_id}@pulse.test",
        hashed_password="x",
        name="Test User",
        access_role=role,
        building=building,
        shift=shift,
        active=True,
    )


@pytest.fixture()
def api_client():
    """
    TestClient factory: ``api_client(user, db)`` returns a client whose
    requests authenticate as ``user`` and whose get_db yields ``db`` (None by
    default). Routes that hit the database need a FakeSession or patched
    loaders.
    """
    from fastapi.testclient import TestClient
    from app.main import app
    from app.api.deps import get_current_user
    from app.db import get_db

    def _factory(user=None, db=None):
        current = user or make_user()

        async def _session():
            yield db

        app.dependency_overrides[get_current_user] = lambda: current
        app.dependency_overrides[get_db] = _session
        return TestClient(app)

    yield _factory
    app.dependency_overrides.clear()


class FakeResult:
    def __init__(self, rows):
        self._rows = list(rows)

    def scalar_one_or_none(self):
        return self._rows[0] if self._rows else None

    def scalars(self):
        return self

    def all(self):
        return list(self._rows)


class FakeSession:
    """
    Minimal AsyncSession double for route tests.

    Each ``execute`` pops the next queued row list (empty when the queue runs
    out) and keeps the statement for inspection. ``flush`` hands out ids the
    way the UUID column default would.
    """
    def __init__(self, *results):
        self.queued = [list(rows) for rows in results]
        self.statements = []
        self.added = []
        self.deleted = []

    async def execute(self, stmt):
        self.statements.append(stmt)
        return FakeResult(self.queued.pop(0) if self.queued else [])

    async def scalar(self, stmt):
        result = await self.execute(stmt)
        return result.scalar_one_or_none()

    def add(self, obj):
        self.added.append(obj)

    async def flush(self):
        for n, obj in enumerate(self.added, start=1):
            if getattr(obj, "id", None) is None:
                obj.id = f"new-{n}"

    async def refresh(self, obj):
        return None

    async def delete(self, obj):
        self.deleted.append(obj)
