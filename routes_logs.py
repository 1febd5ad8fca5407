import json
from datetime import date as date_cls, datetime
from io import BytesIO
from typing import Annotated, List, Optional

from fastapi import APIRouter, Depends, File, Form, Query, UploadFile, status
from fastapi.concurrency import run_in_threadpool
from fastapi.exceptions import RequestValidationError
from fastapi.responses import StreamingResponse
from pydantic import ValidationError as PydanticValidationError

import daily_logs
from attachments import DOCUMENT_MAX_BYTES, PHOTO_MAX_BYTES, FileKind, read_uploads
from auth import CurrentUser
from daily_logs import DailyLogCreate, DailyLogUpdate, LogFilter, serialize_log, serialize_logs
from pdf_export import render_log_pdf
from permissions import Action, require_permission
from schemas import AttachmentType
from storage import StorageBackend, get_storage

router = APIRouter(prefix="/logs", tags=["logs"])
uploads_router = APIRouter(prefix="/uploads", tags=["uploads"])


def _body_error(field: str, message: str) -> RequestValidationError:
    return RequestValidationError([{"loc": ("body", field), "msg": message, "type": "value_error"}])


def log_form(
    date: date_cls = Form(...),
    project: str = Form(...),
    employees: str = Form("[]", description="JSON array of employee names"),
    start_time: datetime = Form(...),
    end_time: datetime = Form(...),
    work_description: str = Form(...),
    status: str = Form("draft"),
) -> DailyLogCreate:
    try:
        names = json.loads(employees) if employees.strip() else []
    except json.JSONDecodeError:
        raise _body_error("employees", "employees must be a JSON array of names")
    if not isinstance(names, list) or not all(isinstance(n, str) for n in names):
        raise _body_error("employees", "employees must be a JSON array of names")
    try:
        return DailyLogCreate(
            date=date,
            project=project,
            employees=names,
            start_time=start_time,
            end_time=end_time,
            work_description=work_description,
            status=status,
        )
    except PydanticValidationError as e:
        errors = []
        for err in e.errors(include_url=False):
            err = dict(err)
            err["loc"] = ("body",) + tuple(err.get("loc", ()))
            err.pop("ctx", None)
            errors.append(err)
        raise RequestValidationError(errors)


# Queries

@router.get("")
def list_logs(
    filters: Annotated[LogFilter, Query()],
    user: CurrentUser = Depends(require_permission(Action.LOG_LIST)),
):
    return serialize_logs(daily_logs.list_logs(filters, user))


@router.get("/my-logs")
def my_logs(user: CurrentUser = Depends(require_permission(Action.LOG_LIST_MINE))):
    return serialize_logs(daily_logs.recent_logs(user))


@router.get("/team-leaders")
def team_leaders(_: CurrentUser = Depends(require_permission(Action.TEAM_LEADER_LIST))):
    return daily_logs.team_leaders()


@router.get("/{log_id}")
def get_log(log_id: str, user: CurrentUser = Depends(require_permission(Action.LOG_VIEW))):
    return serialize_log(daily_logs.get_log(log_id, user))


@router.get("/{log_id}/export-pdf")
def export_pdf(log_id: str, user: CurrentUser = Depends(require_permission(Action.LOG_EXPORT))):
    log = serialize_log(daily_logs.get_log(log_id, user))
    pdf = render_log_pdf(log, log.get("team_leader_name"))
    return StreamingResponse(
        BytesIO(pdf),
        media_type="application/pdf",
        headers={"Content-Disposition": f"attachment; filename=daily-log-{log['id']}.pdf"},
    )


# Lifecycle

@router.post("", status_code=status.HTTP_201_CREATED)
async def create_log(
    user: CurrentUser = Depends(require_permission(Action.LOG_CREATE)),
    data: DailyLogCreate = Depends(log_form),
    delivery_certificate: Optional[UploadFile] = File(None),
    work_photos: Optional[List[UploadFile]] = File(None),
    storage: StorageBackend = Depends(get_storage),
):
    certificate = await read_uploads([delivery_certificate] if delivery_certificate else [], DOCUMENT_MAX_BYTES)
    photos = await read_uploads(work_photos, PHOTO_MAX_BYTES)
    doc = await run_in_threadpool(
        daily_logs.create_log, user, data, storage, delivery_certificate=certificate, work_photos=photos
    )
    return serialize_log(doc)


@router.put("/{log_id}")
def update_log(log_id: str, payload: DailyLogUpdate,
               user: CurrentUser = Depends(require_permission(Action.LOG_UPDATE))):
    return serialize_log(daily_logs.update_log(log_id, user, payload))


@router.api_route("/{log_id}/submit", methods=["PATCH", "PUT"])
def submit_log(log_id: str, user: CurrentUser = Depends(require_permission(Action.LOG_SUBMIT))):
    doc = daily_logs.submit_log(log_id, user)
    return {"message": "Log submitted successfully", "id": str(doc["_id"]), "status": doc["status"]}


@router.api_route("/{log_id}/approve", methods=["PATCH", "PUT"])
def approve_log(log_id: str, user: CurrentUser = Depends(require_permission(Action.LOG_APPROVE))):
    doc = daily_logs.approve_log(log_id, user)
    return {
        "message": "Log approved successfully",
        "id": str(doc["_id"]),
        "status": doc["status"],
        "approved_by": doc["approved_by"],
        "approved_at": doc["approved_at"],
    }


@router.delete("/{log_id}")
def delete_log(log_id: str, user: CurrentUser = Depends(require_permission(Action.LOG_DELETE)),
               storage: StorageBackend = Depends(get_storage)):
    daily_logs.delete_log(log_id, user, storage)
    return {"message": "Log deleted successfully"}


# Attachments

@uploads_router.post("/{log_id}/photos")
async def upload_photos(
    log_id: str,
    photos: List[UploadFile] = File(...),
    user: CurrentUser = Depends(require_permission(Action.ATTACHMENT_WRITE)),
    storage: StorageBackend = Depends(get_storage),
):
    files = await read_uploads(photos, PHOTO_MAX_BYTES)
    stored = await run_in_threadpool(daily_logs.add_attachments, log_id, user, FileKind.PHOTOS, files, storage)
    return {"message": "Photos uploaded successfully", "photos": stored}


@uploads_router.post("/{log_id}/documents")
async def upload_documents(
    log_id: str,
    documents: List[UploadFile] = File(...),
    type: Optional[AttachmentType] = Form(None),
    user: CurrentUser = Depends(require_permission(Action.ATTACHMENT_WRITE)),
    storage: StorageBackend = Depends(get_storage),
):
    files = await read_uploads(documents, DOCUMENT_MAX_BYTES)
    stored = await run_in_threadpool(
        daily_logs.add_attachments, log_id, user, FileKind.DOCUMENTS, files, storage, doc_type=type
    )
    return {"message": "Documents uploaded successfully", "documents": stored}


@uploads_router.delete("/{log_id}/{file_type}/{file_id}")
def delete_file(
    log_id: str,
    file_type: FileKind,
    file_id: str,
    user: CurrentUser = Depends(require_permission(Action.ATTACHMENT_WRITE)),
    storage: StorageBackend = Depends(get_storage),
):
    daily_logs.remove_attachment(log_id, user, file_type, file_id, storage)
    return {"message": "File deleted successfully"}
