from datetime import timedelta

from conftest import PASSWORD, bearer
from models.user import User
from utils.security import create_access_token


def test_register_and_login(client):
    resp = client.post(
        "/api/v1/auth/register",
        json={"email": "  Nour@Example.org ", "password": PASSWORD, "name": "Nour"},
    )
    assert resp.status_code == 201
    data = resp.get_json()["data"]
    assert data["email"] == "nour@example.org"
    assert data["role"] == "refugee"
    assert "password" not in data and "password_hash" not in data

    resp = client.post("/api/v1/auth/login", json={"email": "nour@example.org", "password": PASSWORD})
    body = resp.get_json()
    assert resp.status_code == 200
    assert body["token_type"] == "bearer"
    assert body["expires_in"] == 900
    assert body["access_token"] and body["refresh_token"]
    assert body["user"]["email"] == "nour@example.org"


def test_register_duplicate_and_invalid(client, make_user):
    user = make_user()
    resp = client.post("/api/v1/auth/register", json={"email": user.email, "password": PASSWORD, "name": "X"})
    assert resp.status_code == 409

    resp = client.post("/api/v1/auth/register", json={"email": "new@example.org", "password": "short", "name": "X"})
    assert resp.status_code == 422
    assert "password" in resp.get_json()["details"]


def test_login_failure_does_not_reveal_which_field(client, make_user):
    user = make_user()
    wrong_password = client.post("/api/v1/auth/login", json={"email": user.email, "password": "nope-nope-nope"})
    unknown_email = client.post("/api/v1/auth/login", json={"email": "ghost@example.org", "password": PASSWORD})

    assert wrong_password.status_code == unknown_email.status_code == 401
    assert wrong_password.get_json() == unknown_email.get_json()
    assert wrong_password.get_json()["error"] == "INVALID_CREDENTIALS"


def test_login_requires_fields(client):
    resp = client.post("/api/v1/auth/login", json={"email": "a@example.org"})
    assert resp.status_code == 422


def test_login_records_provenance(client, services, make_user, login):
    user = make_user()
    body = login(user, user_agent="Mozilla/5.0 test")
    record = services["tokens"].find_by_token(body["refresh_token"])
    assert record.user_agent == "Mozilla/5.0 test"
    assert record.ip_address == "127.0.0.1"
    assert record.is_active()


def test_full_rotation_and_reuse_scenario(client, services, make_user, login):
    user = make_user()
    first = login(user)

    resp = client.post("/api/v1/auth/refresh", json={"refresh_token": first["refresh_token"]})
    assert resp.status_code == 200
    second = resp.get_json()
    assert second["refresh_token"] != first["refresh_token"]
    assert not services["tokens"].find_by_token(first["refresh_token"]).is_active()

    # the new access token works
    assert client.get("/api/v1/auth/me", headers=bearer(second["access_token"])).status_code == 200

    # replaying the rotated-out token is treated as theft
    replay = client.post("/api/v1/auth/refresh", json={"refresh_token": first["refresh_token"]})
    assert replay.status_code == 401
    assert replay.get_json()["message"] == "Invalid or expired refresh token"
    assert services["tokens"].list_active_for_user(user.id) == []

    # ...so the legitimately rotated token is dead too
    resp = client.post("/api/v1/auth/refresh", json={"refresh_token": second["refresh_token"]})
    assert resp.status_code == 401


def test_refresh_failures_share_one_message(client, services, make_user, login):
    user = make_user()
    body = login(user)
    client.post("/api/v1/auth/logout", json={"refresh_token": body["refresh_token"]})

    revoked = client.post("/api/v1/auth/refresh", json={"refresh_token": body["refresh_token"]})
    unknown = client.post("/api/v1/auth/refresh", json={"refresh_token": "a" * 40})
    assert revoked.status_code == unknown.status_code == 401
    assert revoked.get_json() == unknown.get_json()
    assert revoked.headers["WWW-Authenticate"] == "Bearer"


def test_refresh_requires_token(client):
    assert client.post("/api/v1/auth/refresh", json={}).status_code == 422


def test_logout(client, services, make_user, login):
    user = make_user()
    laptop = login(user, user_agent="laptop")
    phone = login(user, user_agent="phone")

    resp = client.post("/api/v1/auth/logout", json={"refresh_token": laptop["refresh_token"]})
    assert resp.status_code == 204
    assert not services["tokens"].find_by_token(laptop["refresh_token"]).is_active()
    assert services["tokens"].find_by_token(phone["refresh_token"]).is_active()

    # unknown and repeated logouts are still 204
    assert client.post("/api/v1/auth/logout", json={"refresh_token": laptop["refresh_token"]}).status_code == 204
    assert client.post("/api/v1/auth/logout", json={"refresh_token": "b" * 40}).status_code == 204
    assert client.post("/api/v1/auth/logout", json={}).status_code == 204


def test_logout_all(client, services, make_user, login):
    user = make_user()
    login(user)
    current = login(user)
    resp = client.post("/api/v1/auth/logout-all", headers=bearer(current["access_token"]))
    assert resp.status_code == 200
    assert resp.get_json() == {"revoked": 2}
    assert services["tokens"].list_active_for_user(user.id) == []


def test_sessions_listing_masks_tokens(client, make_user, login):
    user = make_user()
    login(user, user_agent="laptop")
    current = login(user, user_agent="phone")

    resp = client.get("/api/v1/auth/sessions", headers=bearer(current["access_token"]))
    sessions = resp.get_json()["data"]
    assert [s["user_agent"] for s in sessions] == ["phone", "laptop"]
    assert all(s["token"].endswith("...") and len(s["token"]) == 11 for s in sessions)
    assert current["refresh_token"] not in resp.get_data(as_text=True)


def test_change_password_revokes_sessions(client, services, make_user, login):
    user = make_user()
    body = login(user)
    headers = bearer(body["access_token"])

    resp = client.put("/api/v1/auth/change-password", headers=headers,
                      json={"current_password": "wrong-password", "new_password": "brand-new-secret"})
    assert resp.status_code == 401

    resp = client.put("/api/v1/auth/change-password", headers=headers,
                      json={"current_password": PASSWORD, "new_password": "brand-new-secret"})
    assert resp.status_code == 200
    assert resp.get_json()["revoked"] == 1
    assert services["tokens"].list_active_for_user(user.id) == []

    assert client.post("/api/v1/auth/login", json={"email": user.email, "password": PASSWORD}).status_code == 401
    assert client.post("/api/v1/auth/login",
                       json={"email": user.email, "password": "brand-new-secret"}).status_code == 200


def test_me_requires_bearer_header(client, make_user, login):
    user = make_user()
    body = login(user)

    missing = client.get("/api/v1/auth/me")
    assert missing.status_code == 401
    assert missing.get_json()["error"] == "UNAUTHORIZED"

    # the legacy custom header is not a credential
    legacy = client.get("/api/v1/auth/me", headers={"x-auth-token": body["access_token"]})
    assert legacy.status_code == 401

    garbage = client.get("/api/v1/auth/me", headers=bearer("not.a.jwt"))
    assert garbage.status_code == 401

    # a refresh token is not an access token
    assert client.get("/api/v1/auth/me", headers=bearer(body["refresh_token"])).status_code == 401


def test_expired_access_token_asks_for_refresh(app, client, make_user):
    user = make_user()
    token = create_access_token(user.id, user.role, app.config["JWT_SECRET"], timedelta(seconds=-1),
                                issuer=app.config["JWT_ISSUER"])
    resp = client.get("/api/v1/auth/me", headers=bearer(token))
    assert resp.status_code == 401
    assert resp.get_json()["error"] == "TOKEN_EXPIRED"


def test_access_token_for_deleted_user(app, client, services, make_user):
    user = make_user()
    token = create_access_token(user.id, user.role, app.config["JWT_SECRET"], timedelta(minutes=5),
                                issuer=app.config["JWT_ISSUER"])
    session = services["storage"].get_session()
    session.query(User).filter(User.id == user.id).delete()
    session.commit()

    resp = client.get("/api/v1/auth/me", headers=bearer(token))
    assert resp.status_code == 404
    assert resp.get_json()["error"] == "NOT_FOUND"


def test_refresh_after_user_deleted_is_404(client, services, make_user, login):
    user = make_user()
    tokens = login(user)
    session = services["storage"].get_session()
    session.query(User).filter(User.id == user.id).delete()
    session.commit()

    resp = client.post("/api/v1/auth/refresh", json={"refresh_token": tokens["refresh_token"]})
    assert resp.status_code == 404
    assert resp.get_json()["error"] == "NOT_FOUND"
    assert services["tokens"].find_by_token(tokens["refresh_token"]) is not None


def test_store_outage_is_503(client, services, make_user, monkeypatch):
    from utils.exceptions import PersistenceError

    user = make_user()

    def unavailable(*args, **kwargs):
        raise PersistenceError("refresh token store create failed")

    monkeypatch.setattr(services["tokens"], "create", unavailable)
    resp = client.post("/api/v1/auth/login", json={"email": user.email, "password": PASSWORD})
    assert resp.status_code == 503
    body = resp.get_json()
    assert body["error"] == "SERVICE_UNAVAILABLE"
    assert "refresh_token" not in body


def test_health(client):
    resp = client.get("/api/v1/health")
    assert resp.status_code == 200
    assert resp.get_json()["status"] == "ok"
