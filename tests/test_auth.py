from datetime import timedelta

from conftest import PASSWORD, make_user

from auth import create_token, verify_password
from schemas import Role


def register(client, email="new@worksite.io", role="Team Leader", password=PASSWORD):
    return client.post("/api/auth/register", json={
        "full_name": "New Person",
        "email": email,
        "password": password,
        "role": role,
        "phone": "050-0000000",
    })


def test_register_stores_hashed_password(client, db):
    res = register(client)
    assert res.status_code == 201
    assert "token" not in res.json()

    stored = db["user"].find_one({"email": "new@worksite.io"})
    assert stored["role"] == "Team Leader"
    assert stored["is_active"] is True
    assert stored["password_hash"] != PASSWORD
    assert verify_password(PASSWORD, stored["password_hash"])


def test_register_duplicate_email_conflicts(client, db):
    assert register(client).status_code == 201
    res = register(client)
    assert res.status_code == 409
    assert db["user"].count_documents({"email": "new@worksite.io"}) == 1


def test_register_validates_input(client, db):
    assert register(client, role="Admin").status_code == 422
    assert register(client, password="123").status_code == 422
    assert register(client, email="not-an-email").status_code == 422


def test_login_returns_token_and_profile(client, leader):
    res = client.post("/api/auth/login", json={"email": leader.email, "password": PASSWORD})
    assert res.status_code == 200
    body = res.json()
    assert body["id"] == leader.id
    assert body["role"] == "Team Leader"
    assert body["full_name"] == "Tal Leader"

    me = client.get("/api/auth/me", headers={"Authorization": f"Bearer {body['token']}"})
    assert me.status_code == 200
    assert me.json()["email"] == leader.email
    assert "password_hash" not in me.json()


def test_login_failures(client, db):
    make_user(Role.TEAM_LEADER, "sleepy@worksite.io", is_active=False)
    make_user(Role.TEAM_LEADER, "awake@worksite.io")

    assert client.post("/api/auth/login", json={"email": "nobody@worksite.io", "password": PASSWORD}).status_code == 404
    assert client.post("/api/auth/login", json={"email": "sleepy@worksite.io", "password": PASSWORD}).status_code == 403
    assert client.post("/api/auth/login", json={"email": "awake@worksite.io", "password": "wrong-pass"}).status_code == 401


def test_protected_route_requires_valid_token(client, leader):
    assert client.get("/api/auth/me").status_code == 401
    assert client.get("/api/auth/me", headers={"Authorization": "Token abc"}).status_code == 401
    assert client.get("/api/auth/me", headers={"Authorization": "Bearer not-a-jwt"}).status_code == 401

    expired = create_token(leader.id, "Team Leader", expires_delta=timedelta(seconds=-10))
    assert client.get("/api/auth/me", headers={"Authorization": f"Bearer {expired}"}).status_code == 401


def test_change_password(client, leader):
    res = client.post("/api/auth/change-password", headers=leader.headers,
                      json={"current_password": "wrong-pass", "new_password": "brand-new"})
    assert res.status_code == 401

    res = client.post("/api/auth/change-password", headers=leader.headers,
                      json={"current_password": PASSWORD, "new_password": "brand-new"})
    assert res.status_code == 200

    assert client.post("/api/auth/login", json={"email": leader.email, "password": PASSWORD}).status_code == 401
    assert client.post("/api/auth/login", json={"email": leader.email, "password": "brand-new"}).status_code == 200
