"""
test_user_routes.py — User account administration.

Covers who may create and edit logins, which roles they may hand out, the
building fence for Building Managers, and that a promoted account is then
scoped by its new role.
"""

from conftest import FakeSession, make_user
from app.api.deps import resolve_scope


def _new_user(**overrides):
    body = {
        "email": "New.Lead@Pulse.test",
        "password": "correct-horse",
        "name": "New Lead",
        "access_role": "Lead",
        "building": "DC5",
        "shift": "2nd",
    }
    body.update(overrides)
    return body


# ===========================================================================
# Class 1: Create
# ===========================================================================

class TestCreateUser:

    def test_admin_creates_scoped_account(self, api_client):
        db = FakeSession([])
        response = api_client(db=db).post("/api/admin/users", json=_new_user())
        assert response.status_code == 201
        body = response.json()
        assert body["email"] == "new.lead@pulse.test"
        assert (body["access_role"], body["building"], body["shift"]) == ("Lead", "DC5", "2nd")
        assert "hashed_password" not in body
        saved = db.added[0]
        assert saved.hashed_password != "correct-horse"

    def test_duplicate_email_is_rejected(self, api_client):
        db = FakeSession([make_user("Worker", user_id="u-existing")])
        assert api_client(db=db).post("/api/admin/users", json=_new_user()).status_code == 400
        assert db.added == []

    def test_unknown_role_is_rejected(self, api_client):
        response = api_client(db=FakeSession([])).post("/api/admin/users", json=_new_user(access_role="Janitor"))
        assert response.status_code == 422

    def test_only_super_admin_grants_super_admin(self, api_client):
        response = api_client(db=FakeSession([])).post(
            "/api/admin/users", json=_new_user(access_role="Super Admin"),
        )
        assert response.status_code == 403
        root = make_user("Super Admin", user_id="u-root")
        response = api_client(root, FakeSession([])).post(
            "/api/admin/users", json=_new_user(access_role="Super Admin"),
        )
        assert response.status_code == 201

    def test_building_manager_grants_floor_roles_only(self, api_client):
        manager = make_user("Building Manager", building="DC5", user_id="u-bm")
        response = api_client(manager, FakeSession([])).post(
            "/api/admin/users", json=_new_user(access_role="HQ"),
        )
        assert response.status_code == 403

    def test_building_manager_fenced_to_own_building(self, api_client):
        manager = make_user("Building Manager", building="DC5", user_id="u-bm")
        response = api_client(manager, FakeSession([])).post(
            "/api/admin/users", json=_new_user(building="DC1"),
        )
        assert response.status_code == 403

    def test_floor_roles_cannot_administer(self, api_client):
        lead = make_user("Lead", building="DC5", user_id="u-lead")
        assert api_client(lead, FakeSession([])).post("/api/admin/users", json=_new_user()).status_code == 403

    def test_short_password_is_rejected(self, api_client):
        response = api_client(db=FakeSession([])).post("/api/admin/users", json=_new_user(password="short"))
        assert response.status_code == 422


# ===========================================================================
# Class 2: Update
# ===========================================================================

class TestUpdateUser:

    def test_promotion_changes_report_scope(self, api_client):
        target = make_user("Worker", building="DC1", user_id="u-ana")
        response = api_client(db=FakeSession([target])).put(
            "/api/admin/users/u-ana", json={"access_role": "Lead", "shift": "3rd"},
        )
        assert response.status_code == 200
        assert (target.access_role, target.building, target.shift) == ("Lead", "DC1", "3rd")
        scope = resolve_scope(target, "DC14", "1st")
        assert (scope.building, scope.shift) == ("DC1", "3rd")

    def test_unsent_fields_are_untouched(self, api_client):
        target = make_user("Supervisor", building="DC11", shift="1st", user_id="u-sup")
        api_client(db=FakeSession([target])).put("/api/admin/users/u-sup", json={"name": "  Sam  "})
        assert (target.name, target.access_role, target.building, target.shift) == ("Sam", "Supervisor", "DC11", "1st")

    def test_deactivate(self, api_client):
        target = make_user("Lead", building="DC1", user_id="u-lee")
        body = api_client(db=FakeSession([target])).put("/api/admin/users/u-lee", json={"active": False}).json()
        assert body["active"] is False

    def test_cannot_deactivate_self(self, api_client):
        admin = make_user("Admin", user_id="u-admin")
        response = api_client(admin, FakeSession([admin])).put("/api/admin/users/u-admin", json={"active": False})
        assert response.status_code == 400
        assert admin.active is True

    def test_admin_cannot_edit_super_admin(self, api_client):
        root = make_user("Super Admin", user_id="u-root")
        response = api_client(db=FakeSession([root])).put("/api/admin/users/u-root", json={"access_role": "Worker"})
        assert response.status_code == 403
        assert root.access_role == "Super Admin"

    def test_building_manager_cannot_move_account_out(self, api_client):
        manager = make_user("Building Manager", building="DC5", user_id="u-bm")
        target = make_user("Lead", building="DC5", user_id="u-lee")
        response = api_client(manager, FakeSession([target])).put(
            "/api/admin/users/u-lee", json={"building": "DC1"},
        )
        assert response.status_code == 403
        assert target.building == "DC5"

    def test_unknown_account_is_404(self, api_client):
        assert api_client(db=FakeSession()).put("/api/admin/users/nope", json={"name": "x"}).status_code == 404


# ===========================================================================
# Class 3: List
# ===========================================================================

class TestListUsers:

    def _accounts(self):
        return [
            make_user("Lead", building="DC1", user_id="u-lee"),
            make_user("Worker", building="DC5", user_id="u-ana"),
            make_user("Lead", building="DC5", user_id="u-kim"),
        ]

    def test_filters_by_building_and_role(self, api_client):
        rows = api_client(db=FakeSession(self._accounts())).get(
            "/api/admin/users", params={"building": "DC5", "role": "Lead"},
        ).json()
        assert [r["id"] for r in rows] == ["u-kim"]

    def test_building_manager_sees_own_building_only(self, api_client):
        manager = make_user("Building Manager", building="DC1", user_id="u-bm")
        rows = api_client(manager, FakeSession(self._accounts())).get(
            "/api/admin/users", params={"building": "DC5"},
        ).json()
        assert [r["id"] for r in rows] == ["u-lee"]

    def test_search_matches_email(self, api_client):
        rows = api_client(db=FakeSession(self._accounts())).get("/api/admin/users", params={"q": "U-ANA@"}).json()
        assert [r["id"] for r in rows] == ["u-ana"]

    def test_workers_cannot_list(self, api_client):
        worker = make_user("Worker", user_id="u-w")
        assert api_client(worker, FakeSession(self._accounts())).get("/api/admin/users").status_code == 403
