"""
Role-based access control.

Every protected action is listed once in ``PERMISSIONS`` with the roles
allowed to perform it. Routes depend on :func:`require_permission`, which
resolves the caller from the bearer token and checks the matrix before the
handler runs. Ownership checks need the loaded resource, so they are plain
functions the service layer calls.
"""

from enum import Enum
from typing import Dict, FrozenSet

from fastapi import Depends

from auth import CurrentUser, get_current_user
from errors import Forbidden
from schemas import Role

MANAGER_ONLY = frozenset({Role.MANAGER})
TEAM_LEADER_ONLY = frozenset({Role.TEAM_LEADER})
ANY_ROLE = frozenset(Role)


class Action(str, Enum):
    LOG_LIST = "log:list"
    LOG_LIST_MINE = "log:list_mine"
    LOG_VIEW = "log:view"
    LOG_CREATE = "log:create"
    LOG_UPDATE = "log:update"
    LOG_SUBMIT = "log:submit"
    LOG_APPROVE = "log:approve"
    LOG_DELETE = "log:delete"
    LOG_EXPORT = "log:export"
    ATTACHMENT_WRITE = "attachment:write"
    TEAM_LEADER_LIST = "team_leader:list"
    PROJECT_READ = "project:read"
    PROJECT_WRITE = "project:write"
    USER_ADMIN = "user:admin"
    NOTIFICATION_READ = "notification:read"


PERMISSIONS: Dict[Action, FrozenSet[Role]] = {
    Action.LOG_LIST: ANY_ROLE,
    Action.LOG_LIST_MINE: TEAM_LEADER_ONLY,
    Action.LOG_VIEW: ANY_ROLE,
    Action.LOG_CREATE: TEAM_LEADER_ONLY,
    Action.LOG_UPDATE: TEAM_LEADER_ONLY,
    Action.LOG_SUBMIT: TEAM_LEADER_ONLY,
    Action.LOG_APPROVE: MANAGER_ONLY,
    Action.LOG_DELETE: ANY_ROLE,
    Action.LOG_EXPORT: ANY_ROLE,
    Action.ATTACHMENT_WRITE: ANY_ROLE,
    Action.TEAM_LEADER_LIST: ANY_ROLE,
    Action.PROJECT_READ: ANY_ROLE,
    Action.PROJECT_WRITE: MANAGER_ONLY,
    Action.USER_ADMIN: MANAGER_ONLY,
    Action.NOTIFICATION_READ: ANY_ROLE,
}


def is_allowed(role: Role, action: Action) -> bool:
    return role in PERMISSIONS.get(action, frozenset())


def require_permission(action: Action):
    async def _dep(user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
        if not is_allowed(user.role, action):
            raise Forbidden(f"Role {user.role.value} may not perform {action.value}")
        return user
    return _dep


def require_any_role(*allowed_roles: Role):
    async def _dep(user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
        if user.role not in allowed_roles:
            raise Forbidden("Require " + " or ".join(r.value for r in allowed_roles) + " role")
        return user
    return _dep


def require_role(role: Role):
    return require_any_role(role)


def ensure_owner(user: CurrentUser, owner_id: str, message: str = "Not authorized to access this log"):
    if user.id != owner_id:
        raise Forbidden(message)


def ensure_owner_or_manager(user: CurrentUser, owner_id: str, message: str = "Not authorized to access this log"):
    if not user.is_manager and user.id != owner_id:
        raise Forbidden(message)
