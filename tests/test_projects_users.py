from conftest import PASSWORD

PROJECT = {
    "name": "Site A",
    "address": "12 Harbor Rd",
    "city": "Haifa",
    "state": "North",
    "zip_code": "3100000",
    "client_name": "Port Authority",
    "start_date": "2024-01-01T00:00:00",
}


def test_project_crud(client, manager, leader):
    res = client.post("/api/projects", json=PROJECT, headers=manager.headers)
    assert res.status_code == 201
    project = res.json()
    assert project["status"] == "active"
    assert project["is_active"] is True

    res = client.put(f"/api/projects/{project['id']}", json={"status": "on-hold"}, headers=manager.headers)
    assert res.json()["status"] == "on-hold"
    assert res.json()["name"] == "Site A"

    assert client.get("/api/projects/active", headers=leader.headers).json() == []
    client.put(f"/api/projects/{project['id']}", json={"status": "active"}, headers=manager.headers)
    assert [p["name"] for p in client.get("/api/projects/active", headers=leader.headers).json()] == ["Site A"]

    res = client.patch(f"/api/projects/{project['id']}/toggle-status", headers=manager.headers)
    assert res.json()["is_active"] is False
    assert client.get("/api/projects/active", headers=leader.headers).json() == []

    assert client.get(f"/api/projects/{project['id']}", headers=leader.headers).status_code == 200
    assert client.delete(f"/api/projects/{project['id']}", headers=manager.headers).status_code == 200
    assert client.get(f"/api/projects/{project['id']}", headers=leader.headers).status_code == 404


def test_project_validation(client, manager):
    res = client.post("/api/projects", json={**PROJECT, "status": "paused"}, headers=manager.headers)
    assert res.status_code == 422


def test_user_administration(client, manager, leader):
    res = client.post("/api/users", headers=manager.headers, json={
        "full_name": "Noa Newcomer", "email": "noa@worksite.io", "password": PASSWORD, "role": "Team Leader",
    })
    assert res.status_code == 201
    noa = res.json()
    assert "password_hash" not in noa

    dup = client.post("/api/users", headers=manager.headers, json={
        "full_name": "Copy", "email": "noa@worksite.io", "password": PASSWORD, "role": "Manager",
    })
    assert dup.status_code == 409

    res = client.put(f"/api/users/{noa['id']}", headers=manager.headers, json={"email": leader.email})
    assert res.status_code == 409

    res = client.put(f"/api/users/{noa['id']}", headers=manager.headers, json={"phone": "052-1234567"})
    assert res.json()["phone"] == "052-1234567"

    names = client.get("/api/users/map", headers=manager.headers,
                       params={"ids": f"{noa['id']},{leader.id},garbage"}).json()
    assert names == {noa["id"]: "Noa Newcomer", leader.id: "Tal Leader"}

    leaders = client.get("/api/users/team-leaders", headers=manager.headers).json()
    assert {u["id"] for u in leaders} == {noa["id"], leader.id}

    res = client.patch(f"/api/users/{noa['id']}/toggle-status", headers=manager.headers)
    assert res.json()["is_active"] is False
    login = client.post("/api/auth/login", json={"email": "noa@worksite.io", "password": PASSWORD})
    assert login.status_code == 403

    assert client.delete(f"/api/users/{noa['id']}", headers=manager.headers).status_code == 200
    assert client.get(f"/api/users/{noa['id']}", headers=manager.headers).status_code == 404
