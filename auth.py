import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import APIRouter, Depends, Header, status
from jose import JWTError, jwt
from passlib.context import CryptContext
from pydantic import BaseModel, EmailStr, Field
from pymongo.errors import DuplicateKeyError

import settings
from database import collection, create_document, doc_to_dict, to_object_id, utcnow
from errors import Conflict, Forbidden, NotFound, Unauthorized
from schemas import Role, User as UserSchema

logger = logging.getLogger(__name__)

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto", bcrypt__rounds=settings.BCRYPT_ROUNDS)

router = APIRouter(prefix="/auth", tags=["auth"])


class CurrentUser(BaseModel):
    id: str
    role: Role

    @property
    def is_manager(self) -> bool:
        return self.role == Role.MANAGER


class RegisterRequest(BaseModel):
    full_name: str = Field(..., min_length=1)
    email: EmailStr
    password: str = Field(..., min_length=6)
    role: Role
    phone: Optional[str] = None


class LoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=1)


class LoginResponse(BaseModel):
    id: str
    full_name: str
    email: EmailStr
    role: Role
    token: str
    token_type: str = "bearer"


class ChangePasswordRequest(BaseModel):
    current_password: str = Field(..., min_length=1)
    new_password: str = Field(..., min_length=6)


# Helpers

def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(password: str, hashed: str) -> bool:
    return pwd_context.verify(password, hashed)


def create_token(user_id: str, role: str, expires_delta: Optional[timedelta] = None) -> str:
    expires_delta = expires_delta or timedelta(hours=settings.JWT_EXPIRES_HOURS)
    to_encode = {
        "sub": user_id,
        "role": role,
        "exp": datetime.now(timezone.utc) + expires_delta,
    }
    return jwt.encode(to_encode, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def verify_token(token: str) -> CurrentUser:
    try:
        payload = jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])
    except JWTError:
        raise Unauthorized("Invalid or expired token")
    try:
        return CurrentUser(id=payload["sub"], role=payload["role"])
    except (KeyError, ValueError):
        raise Unauthorized("Invalid token payload")


def get_user_by_email(email: str) -> Optional[dict]:
    return collection("user").find_one({"email": email.lower()})


def get_user_by_id(user_id: str) -> Optional[dict]:
    oid = to_object_id(user_id)
    if oid is None:
        return None
    return collection("user").find_one({"_id": oid})


def public_user(doc: dict) -> dict:
    user = doc_to_dict(doc)
    user.pop("password_hash", None)
    return user


async def get_current_user(authorization: Optional[str] = Header(default=None)) -> CurrentUser:
    if not authorization:
        raise Unauthorized("No token provided")
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise Unauthorized("Invalid authorization header")
    return verify_token(token.strip())


def create_user(full_name: str, email: str, password: str, role: Role, phone: Optional[str] = None,
                is_active: bool = True) -> str:
    if get_user_by_email(email):
        raise Conflict("Email is already in use")
    user = UserSchema(
        full_name=full_name.strip(),
        email=email.lower(),
        password_hash=hash_password(password),
        role=role,
        phone=phone,
        is_active=is_active,
    )
    try:
        return create_document("user", user)
    except DuplicateKeyError:
        raise Conflict("Email is already in use")


# Routes

@router.post("/register", status_code=status.HTTP_201_CREATED)
def register(payload: RegisterRequest):
    uid = create_user(payload.full_name, payload.email, payload.password, payload.role, payload.phone)
    logger.info("Registered user %s (%s)", uid, payload.role.value)
    return {"id": uid, "message": "User registered successfully"}


@router.post("/login", response_model=LoginResponse)
def login(payload: LoginRequest):
    user = get_user_by_email(payload.email)
    if not user:
        raise NotFound("User not found")
    if not user.get("is_active", True):
        raise Forbidden("Account is inactive. Please contact an administrator.")
    if not verify_password(payload.password, user.get("password_hash", "")):
        raise Unauthorized("Invalid password")
    uid = str(user["_id"])
    return LoginResponse(
        id=uid,
        full_name=user["full_name"],
        email=user["email"],
        role=user["role"],
        token=create_token(uid, user["role"]),
    )


@router.get("/me")
def me(user: CurrentUser = Depends(get_current_user)):
    db_user = get_user_by_id(user.id)
    if not db_user:
        raise NotFound("User not found")
    return public_user(db_user)


@router.post("/change-password")
def change_password(payload: ChangePasswordRequest, user: CurrentUser = Depends(get_current_user)):
    db_user = get_user_by_id(user.id)
    if not db_user:
        raise NotFound("User not found")
    if not verify_password(payload.current_password, db_user.get("password_hash", "")):
        raise Unauthorized("Current password is incorrect")
    collection("user").update_one(
        {"_id": db_user["_id"]},
        {"$set": {"password_hash": hash_password(payload.new_password), "updated_at": utcnow()}},
    )
    return {"message": "Password changed successfully"}
