from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field, field_validator

from auth import CurrentUser
from database import as_naive_utc, collection, create_document, doc_to_dict, to_object_id, utcnow
from errors import NotFound
from permissions import Action, require_permission
from schemas import Project as ProjectSchema, ProjectStatus

router = APIRouter(prefix="/projects", tags=["projects"])

reader = require_permission(Action.PROJECT_READ)
writer = require_permission(Action.PROJECT_WRITE)


class ProjectCreate(BaseModel):
    name: str = Field(..., min_length=1)
    address: str = Field(..., min_length=1)
    city: str = Field(..., min_length=1)
    state: str = Field(..., min_length=1)
    zip_code: str = Field(..., min_length=1)
    client_name: Optional[str] = None
    client_contact: Optional[str] = None
    start_date: datetime
    estimated_end_date: Optional[datetime] = None
    status: ProjectStatus = ProjectStatus.ACTIVE
    description: Optional[str] = None
    is_active: bool = True

    @field_validator("start_date", "estimated_end_date")
    @classmethod
    def _naive(cls, v):
        return None if v is None else as_naive_utc(v)


class ProjectUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1)
    address: Optional[str] = Field(None, min_length=1)
    city: Optional[str] = Field(None, min_length=1)
    state: Optional[str] = Field(None, min_length=1)
    zip_code: Optional[str] = Field(None, min_length=1)
    client_name: Optional[str] = None
    client_contact: Optional[str] = None
    start_date: Optional[datetime] = None
    estimated_end_date: Optional[datetime] = None
    actual_end_date: Optional[datetime] = None
    status: Optional[ProjectStatus] = None
    description: Optional[str] = None
    is_active: Optional[bool] = None

    @field_validator("start_date", "estimated_end_date", "actual_end_date")
    @classmethod
    def _naive(cls, v):
        return None if v is None else as_naive_utc(v)


def _load(project_id: str) -> dict:
    oid = to_object_id(project_id)
    project = collection("project").find_one({"_id": oid}) if oid else None
    if not project:
        raise NotFound("Project not found")
    return project


@router.get("")
def list_projects(_: CurrentUser = Depends(reader)):
    return [doc_to_dict(p) for p in collection("project").find().sort("name", 1)]


@router.get("/active")
def list_active_projects(_: CurrentUser = Depends(reader)):
    query = {"is_active": True, "status": ProjectStatus.ACTIVE.value}
    return [doc_to_dict(p) for p in collection("project").find(query).sort("name", 1)]


@router.get("/{project_id}")
def get_project(project_id: str, _: CurrentUser = Depends(reader)):
    return doc_to_dict(_load(project_id))


@router.post("", status_code=status.HTTP_201_CREATED)
def create_project(payload: ProjectCreate, _: CurrentUser = Depends(writer)):
    pid = create_document("project", ProjectSchema(**payload.model_dump()))
    return doc_to_dict(_load(pid))


@router.put("/{project_id}")
def update_project(project_id: str, payload: ProjectUpdate, _: CurrentUser = Depends(writer)):
    project = _load(project_id)
    update = {k: v for k, v in payload.model_dump().items() if v is not None}
    if "status" in update:
        update["status"] = update["status"].value
    update["updated_at"] = utcnow()
    collection("project").update_one({"_id": project["_id"]}, {"$set": update})
    return doc_to_dict(_load(project_id))


@router.delete("/{project_id}")
def delete_project(project_id: str, _: CurrentUser = Depends(writer)):
    project = _load(project_id)
    collection("project").delete_one({"_id": project["_id"]})
    return {"message": "Project deleted successfully"}


@router.patch("/{project_id}/toggle-status")
def toggle_status(project_id: str, _: CurrentUser = Depends(writer)):
    project = _load(project_id)
    is_active = not project.get("is_active", True)
    collection("project").update_one({"_id": project["_id"]}, {"$set": {"is_active": is_active, "updated_at": utcnow()}})
    return {
        "id": project_id,
        "is_active": is_active,
        "message": f"Project {'activated' if is_active else 'deactivated'} successfully",
    }
