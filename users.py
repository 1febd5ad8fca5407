from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, EmailStr, Field
from pymongo.errors import DuplicateKeyError

from auth import CurrentUser, create_user, get_user_by_email, hash_password, public_user
from database import collection, to_object_id, utcnow
from errors import Conflict, NotFound
from permissions import require_role
from schemas import Role

router = APIRouter(prefix="/users", tags=["users"])

manager = require_role(Role.MANAGER)


class UserCreate(BaseModel):
    full_name: str = Field(..., min_length=1)
    email: EmailStr
    password: str = Field(..., min_length=6)
    role: Role
    phone: Optional[str] = None
    is_active: bool = True


class UserUpdate(BaseModel):
    full_name: Optional[str] = Field(None, min_length=1)
    email: Optional[EmailStr] = None
    password: Optional[str] = Field(None, min_length=6)
    role: Optional[Role] = None
    phone: Optional[str] = None
    is_active: Optional[bool] = None


def _load(user_id: str) -> dict:
    oid = to_object_id(user_id)
    user = collection("user").find_one({"_id": oid}) if oid else None
    if not user:
        raise NotFound("User not found")
    return user


@router.get("")
def list_users(_: CurrentUser = Depends(manager)):
    return [public_user(u) for u in collection("user").find().sort("full_name", 1)]


@router.get("/map")
def users_map(ids: str = Query("", description="Comma separated user ids"), _: CurrentUser = Depends(manager)):
    oids = [oid for oid in (to_object_id(i.strip()) for i in ids.split(",") if i.strip()) if oid]
    if not oids:
        return {}
    return {str(u["_id"]): u.get("full_name") for u in collection("user").find({"_id": {"$in": oids}}, {"full_name": 1})}


@router.get("/team-leaders")
def list_team_leaders(_: CurrentUser = Depends(manager)):
    return [public_user(u) for u in collection("user").find({"role": Role.TEAM_LEADER.value}).sort("full_name", 1)]


@router.get("/{user_id}")
def get_user(user_id: str, _: CurrentUser = Depends(manager)):
    return public_user(_load(user_id))


@router.post("", status_code=status.HTTP_201_CREATED)
def create(payload: UserCreate, _: CurrentUser = Depends(manager)):
    uid = create_user(payload.full_name, payload.email, payload.password, payload.role,
                      payload.phone, is_active=payload.is_active)
    return public_user(_load(uid))


@router.put("/{user_id}")
def update_user(user_id: str, payload: UserUpdate, _: CurrentUser = Depends(manager)):
    user = _load(user_id)
    update = {k: v for k, v in payload.model_dump().items() if v is not None}
    if "email" in update:
        update["email"] = update["email"].lower()
        other = get_user_by_email(update["email"])
        if other and other["_id"] != user["_id"]:
            raise Conflict("Email is already in use")
    if "password" in update:
        update["password_hash"] = hash_password(update.pop("password"))
    if "role" in update:
        update["role"] = update["role"].value
    if "full_name" in update:
        update["full_name"] = update["full_name"].strip()
    update["updated_at"] = utcnow()
    try:
        collection("user").update_one({"_id": user["_id"]}, {"$set": update})
    except DuplicateKeyError:
        raise Conflict("Email is already in use")
    return public_user(_load(user_id))


@router.delete("/{user_id}")
def delete_user(user_id: str, _: CurrentUser = Depends(manager)):
    user = _load(user_id)
    collection("user").delete_one({"_id": user["_id"]})
    return {"message": "User deleted successfully"}


@router.patch("/{user_id}/toggle-status")
def toggle_status(user_id: str, _: CurrentUser = Depends(manager)):
    user = _load(user_id)
    is_active = not user.get("is_active", True)
    collection("user").update_one({"_id": user["_id"]}, {"$set": {"is_active": is_active, "updated_at": utcnow()}})
    return {
        "id": user_id,
        "is_active": is_active,
        "message": f"User {'activated' if is_active else 'deactivated'} successfully",
    }
