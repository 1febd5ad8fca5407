import pytest
from conftest import post_log

from auth import CurrentUser
from errors import Forbidden
from permissions import PERMISSIONS, Action, ensure_owner, ensure_owner_or_manager, is_allowed
from schemas import Role


def test_every_action_has_an_entry():
    assert set(PERMISSIONS) == set(Action)


@pytest.mark.parametrize("action,role,allowed", [
    (Action.LOG_CREATE, Role.TEAM_LEADER, True),
    (Action.LOG_CREATE, Role.MANAGER, False),
    (Action.LOG_APPROVE, Role.MANAGER, True),
    (Action.LOG_APPROVE, Role.TEAM_LEADER, False),
    (Action.USER_ADMIN, Role.TEAM_LEADER, False),
    (Action.PROJECT_READ, Role.TEAM_LEADER, True),
    (Action.PROJECT_WRITE, Role.TEAM_LEADER, False),
])
def test_permission_matrix(action, role, allowed):
    assert is_allowed(role, action) is allowed


def test_ownership_guards():
    manager = CurrentUser(id="m1", role=Role.MANAGER)
    leader = CurrentUser(id="t1", role=Role.TEAM_LEADER)

    ensure_owner_or_manager(manager, "t1")
    ensure_owner_or_manager(leader, "t1")
    with pytest.raises(Forbidden):
        ensure_owner_or_manager(leader, "t2")

    ensure_owner(leader, "t1")
    with pytest.raises(Forbidden):
        ensure_owner(manager, "t1")


def test_manager_cannot_create_logs(client, manager):
    assert post_log(client, manager).status_code == 403


def test_team_leader_cannot_approve(client, leader):
    log_id = post_log(client, leader, status="submitted").json()["id"]
    res = client.patch(f"/api/logs/{log_id}/approve", headers=leader.headers)
    assert res.status_code == 403


def test_team_leader_cannot_administer_users_or_projects(client, leader):
    res = client.get("/api/users", headers=leader.headers)
    assert res.status_code == 403
    assert res.json()["detail"] == "Require Manager role"
    res = client.post("/api/projects", headers=leader.headers, json={
        "name": "Site B", "address": "1 Main St", "city": "Haifa", "state": "North",
        "zip_code": "3100000", "start_date": "2024-01-01T00:00:00",
    })
    assert res.status_code == 403
