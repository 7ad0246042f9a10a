import pytest

from extensions import db
from models import AuditLog, User
from utils import security

from conftest import fetch_user


@pytest.fixture(autouse=True)
def fresh_attempts(monkeypatch):
    monkeypatch.setattr(security, "_attempts", {})


def _register(client, **overrides):
    payload = {"name": "Kavya Rao", "email": "Kavya@Swachh.in", "password": "CleanCity9"}
    payload.update(overrides)
    return client.post("/api/auth/register", json=payload)


def test_register_returns_token_and_profile(app, client):
    response = _register(client, phone="9876543210")

    assert response.status_code == 201
    body = response.get_json()
    assert body["token"]
    assert body["user"]["email"] == "kavya@swachh.in"
    assert body["user"]["role"] == "user"
    assert body["user"]["points"] == 0
    assert body["user"]["level"] == 1
    with app.app_context():
        assert AuditLog.query.filter_by(action_type="REGISTER").count() == 1


def test_register_rejects_weak_password_and_bad_email(client):
    response = _register(client, email="not-an-email", password="short")

    assert response.status_code == 400
    errors = response.get_json()["errors"]
    assert "email" in errors
    assert "password" in errors


def test_register_rejects_duplicate_email(client):
    _register(client)

    response = _register(client, email="kavya@swachh.in")

    assert response.status_code == 400
    assert response.get_json()["errors"]["email"] == ["Email is already registered."]


def test_register_rejects_non_string_fields(client):
    response = _register(client, name={"first": "Kavya"})

    assert response.status_code == 400
    assert "name" in response.get_json()["errors"]


def test_login_and_me(client):
    _register(client)

    login = client.post("/api/auth/login", json={"email": "KAVYA@swachh.in", "password": "CleanCity9"})
    assert login.status_code == 200
    token = login.get_json()["token"]

    me = client.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"})
    assert me.status_code == 200
    assert me.get_json()["user"]["email"] == "kavya@swachh.in"
    assert me.get_json()["user"]["lastLoginAt"] is not None


def test_login_with_wrong_password(app, client):
    _register(client)

    response = client.post("/api/auth/login", json={"email": "kavya@swachh.in", "password": "WrongPass1"})

    assert response.status_code == 401
    with app.app_context():
        assert AuditLog.query.filter_by(action_type="LOGIN_FAILED").count() == 1


def test_login_is_rate_limited(client):
    _register(client)
    credentials = {"email": "kavya@swachh.in", "password": "WrongPass1"}

    statuses = [client.post("/api/auth/login", json=credentials).status_code for _ in range(11)]

    assert statuses[:10] == [401] * 10
    assert statuses[10] == 429


def test_login_limit_follows_config(app, client):
    app.config["LOGIN_MAX_ATTEMPTS"] = 2
    _register(client)
    credentials = {"email": "kavya@swachh.in", "password": "WrongPass1"}

    statuses = [client.post("/api/auth/login", json=credentials).status_code for _ in range(3)]

    assert statuses == [401, 401, 429]


def test_login_attempts_expire_after_window():
    key = "login:127.0.0.1:kavya@swachh.in"

    assert all(security.track_attempt(key, limit=3, window=60, now=t) for t in (0, 1, 2))
    assert security.track_attempt(key, limit=3, window=60, now=30) is False
    assert security.track_attempt(key, limit=3, window=60, now=61) is True
    assert security._attempts[key] == (1, 61)


def test_expired_attempt_keys_are_pruned(monkeypatch):
    monkeypatch.setattr(security, "_PRUNE_THRESHOLD", 2)
    for n in range(3):
        security.track_attempt(f"login:10.0.0.{n}:x@example.in", window=60, now=0)

    security.track_attempt("login:10.0.0.9:y@example.in", window=60, now=100)

    assert list(security._attempts) == ["login:10.0.0.9:y@example.in"]


def test_inactive_account_cannot_login(app, client):
    user_id = _register(client).get_json()["user"]["id"]
    with app.app_context():
        db.session.get(User, user_id).is_active = False
        db.session.commit()

    response = client.post("/api/auth/login", json={"email": "kavya@swachh.in", "password": "CleanCity9"})

    assert response.status_code == 403


def test_invalid_or_missing_token_is_401(client):
    assert client.get("/api/auth/me").status_code == 401
    response = client.get("/api/auth/me", headers={"Authorization": "Bearer not-a-token"})
    assert response.status_code == 401
    assert response.get_json() == {"success": False, "message": "Not authorized, token missing or invalid"}


def test_token_of_deactivated_user_is_rejected(app, client, citizen):
    with app.app_context():
        db.session.get(User, citizen.id).is_active = False
        db.session.commit()

    assert client.get("/api/auth/me", headers=citizen.headers).status_code == 401


def test_update_profile(app, client, citizen):
    response = client.put(
        "/api/auth/me",
        json={"name": "Asha R", "darkMode": True, "address": {"city": "Pune", "pincode": "411001"}},
        headers=citizen.headers,
    )

    assert response.status_code == 200
    user = fetch_user(app, citizen.id)
    assert user["name"] == "Asha R"
    assert user["darkMode"] is True
    assert user["address"]["city"] == "Pune"
    assert user["address"]["pincode"] == "411001"


def test_update_profile_rejects_empty_name(client, citizen):
    response = client.put("/api/auth/me", json={"name": "  "}, headers=citizen.headers)

    assert response.status_code == 400
    assert "name" in response.get_json()["errors"]


def test_admin_lists_users_with_achievements(client, admin, make_account):
    make_account("user", name="Veteran", points=120)

    response = client.get("/api/admin/users?search=Veteran", headers=admin.headers)

    assert response.status_code == 200
    users = response.get_json()["users"]
    assert [u["name"] for u in users] == ["Veteran"]
    assert [a["name"] for a in users[0]["achievements"]] == ["Beginner", "Contributor", "Expert"]


def test_moderator_cannot_list_users(client, moderator):
    assert client.get("/api/admin/users", headers=moderator.headers).status_code == 403


def test_admin_changes_role(app, client, admin, citizen):
    response = client.put(f"/api/admin/users/{citizen.id}/role", json={"role": "moderator"}, headers=admin.headers)

    assert response.status_code == 200
    assert fetch_user(app, citizen.id)["role"] == "moderator"
    with app.app_context():
        assert AuditLog.query.filter_by(user_id=admin.id, action_type="ROLE_CHANGED").count() == 1

    invalid = client.put(f"/api/admin/users/{citizen.id}/role", json={"role": "owner"}, headers=admin.headers)
    assert invalid.status_code == 400
    assert invalid.get_json()["message"] == "Invalid role"


def test_admin_statistics(client, citizen, moderator, create_report):
    create_report(citizen, severity="critical")
    create_report(citizen, category="toilet")

    response = client.get("/api/admin/statistics", headers=moderator.headers)

    assert response.status_code == 200
    stats = response.get_json()["statistics"]
    assert stats["overview"]["totalReports"] == 2
    assert stats["overview"]["pendingReports"] == 2
    assert stats["overview"]["newReportsToday"] == 2
    assert len(stats["criticalReports"]) == 1
    assert stats["topReporters"][0]["id"] == citizen.id
    assert stats["topReporters"][0]["reportCount"] == 2
    assert len(stats["trend"]) == 7
    by_category = {entry["_id"]: entry for entry in stats["reportsByCategory"]}
    assert by_category["toilet"]["pending"] == 1


def test_admin_report_search(client, citizen, moderator, create_report):
    create_report(citizen, title="Broken public toilet")
    create_report(citizen, title="Overflowing bin")

    body = client.get("/api/admin/reports?search=toilet", headers=moderator.headers).get_json()

    assert body["totalReports"] == 1
    assert body["reports"][0]["title"] == "Broken public toilet"


def test_health_check(client):
    response = client.get("/api/health")

    assert response.status_code == 200
    body = response.get_json()
    assert body["success"] is True
    assert body["status"] == "OK"
    assert response.headers["X-Content-Type-Options"] == "nosniff"


def test_unknown_route_is_json_404(client):
    response = client.get("/api/nope")

    assert response.status_code == 404
    assert response.get_json() == {"success": False, "message": "Route not found"}
