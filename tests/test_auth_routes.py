from extensions import db
from models import AuditLog, User

from conftest import PASSWORD, login


def _register(client, **overrides):
    payload = {
        "full_name": "Asha Rao",
        "email": "Asha@Example.com",
        "phone": "9876543210",
        "city": "Pune",
        "user_type": "citizen",
        "password": PASSWORD,
    }
    payload.update(overrides)
    return client.post("/auth/register", json=payload)


def test_register_creates_citizen_and_signs_in(app):
    client = app.test_client()
    response = _register(client)
    assert response.status_code == 201
    user = response.get_json()["user"]
    assert user["email"] == "asha@example.com"
    assert user["user_type"] == "citizen"
    assert user["points"] == 0
    assert user["level"] == 0
    assert user["rank"] == "Newcomer"
    assert user["progress"]["points_needed"] == 100

    assert client.get("/auth/profile").status_code == 200
    with app.app_context():
        assert AuditLog.query.filter_by(action_type="REGISTER").count() == 1


def test_register_official(app):
    response = _register(app.test_client(), email="officer@example.com", user_type="official")
    assert response.status_code == 201
    assert response.get_json()["user"]["user_type"] == "official"


def test_register_rejects_weak_password(app):
    response = _register(app.test_client(), password="alllowercase123!")
    assert response.status_code == 400
    assert "password" in response.get_json()["errors"]


def test_register_rejects_duplicate_email(app, citizen_id):
    response = _register(app.test_client(), email="citizen@example.com")
    assert response.status_code == 400
    assert "email" in response.get_json()["errors"]


def test_register_rejects_unknown_user_type(app):
    response = _register(app.test_client(), user_type="admin")
    assert response.status_code == 400


def test_login_failure_is_audited(app, citizen_id):
    client = app.test_client()
    response = client.post("/auth/login", json={"email": "citizen@example.com", "password": "wrong-password"})
    assert response.status_code == 401
    with app.app_context():
        assert AuditLog.query.filter_by(action_type="LOGIN_FAILED").count() == 1


def test_login_inactive_account(app, citizen_id):
    with app.app_context():
        db.session.get(User, citizen_id).is_active = False
        db.session.commit()
    response = app.test_client().post("/auth/login", json={"email": "citizen@example.com", "password": PASSWORD})
    assert response.status_code == 403


def test_logout_ends_session(app, citizen_id):
    client = app.test_client()
    login(client, "citizen@example.com")
    assert client.post("/auth/logout").status_code == 200
    response = client.get("/auth/profile")
    assert response.status_code == 401
    assert response.get_json()["error"]["status"] == 401


def test_profile_update_allows_contact_fields(citizen_client):
    response = citizen_client.patch("/auth/profile", json={"full_name": "New Name", "city": "Nagpur"})
    assert response.status_code == 200
    user = response.get_json()["user"]
    assert user["full_name"] == "New Name"
    assert user["city"] == "Nagpur"


def test_profile_update_refuses_points(citizen_client):
    response = citizen_client.patch("/auth/profile", json={"points": 99999})
    assert response.status_code == 400
    assert citizen_client.get("/auth/profile").get_json()["points"] == 0


def test_csrf_token_endpoint(app):
    response = app.test_client().get("/auth/csrf-token")
    assert response.status_code == 200
    assert response.get_json()["csrf_token"]


def test_security_headers_present(app):
    response = app.test_client().get("/")
    assert response.headers["X-Content-Type-Options"] == "nosniff"
    assert response.headers["X-Frame-Options"] == "DENY"


def test_unknown_route_returns_json_404(app):
    response = app.test_client().get("/does-not-exist")
    assert response.status_code == 404
    assert response.get_json()["success"] is False
