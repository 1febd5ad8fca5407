"""
Log Lifecycle Manager

Owns the DailyLog documents and their status machine:

    draft -> submitted -> approved

Transitions only move forward and ``approved`` is terminal. Every status
change is a conditional ``update_one`` on the expected current status, so two
racing requests cannot both apply. One log per (date, team leader, project);
the check below is backed by the ``unique_log_per_day`` index.
"""

import logging
import re
from datetime import date as date_cls, datetime, time, timedelta
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pymongo.errors import DuplicateKeyError

import notifications
from attachments import (
    MAX_DOCUMENTS_PER_UPLOAD,
    FileKind,
    IncomingFile,
    discard,
    document_type,
    store_batch,
    validate_documents,
    validate_photos,
)
from auth import CurrentUser
from database import as_naive_utc, collection, create_document, doc_to_dict, to_object_id, utcnow
from errors import Conflict, Forbidden, InvalidState, NotFound, ValidationError
from permissions import ensure_owner, ensure_owner_or_manager
from schemas import AttachmentType, DailyLog, LogStatus, Role
from storage import StorageBackend, StorageError

logger = logging.getLogger(__name__)

APPROVED = LogStatus.APPROVED.value


def _clean_names(values: List[str]) -> List[str]:
    return [v.strip() for v in values if v and v.strip()]


class DailyLogCreate(BaseModel):
    date: date_cls
    project: str = Field(..., min_length=1)
    employees: List[str] = []
    start_time: datetime
    end_time: datetime
    work_description: str = Field(..., min_length=1)
    status: Literal["draft", "submitted"] = "draft"

    @field_validator("project", "work_description")
    @classmethod
    def _strip(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("must not be blank")
        return v

    @field_validator("employees")
    @classmethod
    def _employees(cls, v: List[str]) -> List[str]:
        return _clean_names(v)

    @field_validator("start_time", "end_time")
    @classmethod
    def _naive(cls, v: datetime) -> datetime:
        return as_naive_utc(v)

    @model_validator(mode="after")
    def _time_range(self):
        if self.end_time <= self.start_time:
            raise ValueError("end_time must be after start_time")
        return self


class DailyLogUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    date: Optional[date_cls] = None
    project: Optional[str] = Field(None, min_length=1)
    employees: Optional[List[str]] = None
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    work_description: Optional[str] = Field(None, min_length=1)

    @field_validator("project", "work_description")
    @classmethod
    def _strip(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        v = v.strip()
        if not v:
            raise ValueError("must not be blank")
        return v

    @field_validator("employees")
    @classmethod
    def _employees(cls, v: Optional[List[str]]) -> Optional[List[str]]:
        return None if v is None else _clean_names(v)

    @field_validator("start_time", "end_time")
    @classmethod
    def _naive(cls, v: Optional[datetime]) -> Optional[datetime]:
        return None if v is None else as_naive_utc(v)


class LogFilter(BaseModel):
    """Validated, immutable query for the log list."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    start_date: Optional[date_cls] = None
    end_date: Optional[date_cls] = None
    project: Optional[str] = None
    status: Optional[LogStatus] = None
    team_leader: Optional[str] = None
    search_term: Optional[str] = None

    @field_validator("project", "team_leader", "search_term", mode="before")
    @classmethod
    def _blank_is_none(cls, v):
        if isinstance(v, str):
            v = v.strip()
            return v or None
        return v

    @model_validator(mode="after")
    def _range(self):
        if self.start_date and self.end_date and self.start_date > self.end_date:
            raise ValueError("start_date must not be after end_date")
        return self

    def scoped_to(self, user: CurrentUser) -> "LogFilter":
        if user.role == Role.TEAM_LEADER:
            return self.model_copy(update={"team_leader": user.id})
        return self

    def to_query(self) -> dict:
        query = {}
        date_range = {}
        if self.start_date:
            date_range["$gte"] = day_start(self.start_date)
        if self.end_date:
            # end date is inclusive: everything before the next midnight
            date_range["$lt"] = day_start(self.end_date + timedelta(days=1))
        if date_range:
            query["date"] = date_range
        if self.project:
            query["project"] = self.project
        if self.status:
            query["status"] = self.status.value
        if self.team_leader:
            query["team_leader"] = self.team_leader
        if self.search_term:
            query["work_description"] = {"$regex": re.escape(self.search_term), "$options": "i"}
        return query


def day_start(value: date_cls) -> datetime:
    return datetime.combine(value, time.min)


# Serialisation

def _team_leader_names(ids) -> dict:
    oids = [oid for oid in (to_object_id(i) for i in set(ids)) if oid is not None]
    if not oids:
        return {}
    users = collection("user").find({"_id": {"$in": oids}}, {"full_name": 1})
    return {str(u["_id"]): u.get("full_name") for u in users}


def serialize_logs(docs: List[dict]) -> List[dict]:
    names = _team_leader_names(d["team_leader"] for d in docs)
    out = []
    for d in docs:
        item = doc_to_dict(d)
        item["team_leader_name"] = names.get(d["team_leader"])
        out.append(item)
    return out


def serialize_log(doc: dict) -> dict:
    return serialize_logs([doc])[0]


# Queries

def load_log(log_id: str) -> dict:
    oid = to_object_id(log_id)
    doc = collection("daily_log").find_one({"_id": oid}) if oid else None
    if not doc:
        raise NotFound("Log not found")
    return doc


def get_log(log_id: str, user: CurrentUser) -> dict:
    doc = load_log(log_id)
    ensure_owner_or_manager(user, doc["team_leader"], "Not authorized to view this log")
    return doc


def list_logs(filters: LogFilter, user: CurrentUser) -> List[dict]:
    query = filters.scoped_to(user).to_query()
    return list(collection("daily_log").find(query).sort([("date", -1), ("created_at", -1)]))


def recent_logs(user: CurrentUser, limit: int = 5) -> List[dict]:
    return list(collection("daily_log").find({"team_leader": user.id}).sort("date", -1).limit(limit))


def team_leaders() -> List[dict]:
    docs = collection("user").find({"role": Role.TEAM_LEADER.value}, {"full_name": 1}).sort("full_name", 1)
    return [{"id": str(d["_id"]), "full_name": d.get("full_name")} for d in docs]


# Lifecycle

def _duplicate_of(day: datetime, team_leader: str, project: str, exclude=None) -> Optional[dict]:
    query = {"date": day, "team_leader": team_leader, "project": project}
    if exclude is not None:
        query["_id"] = {"$ne": exclude}
    return collection("daily_log").find_one(query, {"_id": 1})


def _duplicate_conflict(existing_id) -> Conflict:
    return Conflict({
        "message": "A log already exists for this date and project",
        "existing_log_id": str(existing_id) if existing_id else None,
    })


def create_log(user: CurrentUser, data: DailyLogCreate, storage: StorageBackend,
               delivery_certificate: Optional[List[IncomingFile]] = None,
               work_photos: Optional[List[IncomingFile]] = None) -> dict:
    if user.role != Role.TEAM_LEADER:
        raise Forbidden("Require Team Leader role")
    # validate the whole batch before anything touches storage
    if delivery_certificate:
        validate_documents(delivery_certificate, field="delivery_certificate", max_count=1)
    if work_photos:
        validate_photos(work_photos, field="work_photos")

    day = day_start(data.date)
    existing = _duplicate_of(day, user.id, data.project)
    if existing:
        notifications.notify_duplicate_attempt(user.id, day, data.project)
        raise _duplicate_conflict(existing["_id"])

    items = [(f, "documents", "delivery_certificate") for f in delivery_certificate or []]
    items += [(f, "photos", "photo") for f in work_photos or []]
    stored = store_batch(storage, items)
    certificate = stored[0] if delivery_certificate else None
    photos = stored[1:] if delivery_certificate else stored

    log = DailyLog(
        date=day,
        project=data.project,
        employees=data.employees,
        start_time=data.start_time,
        end_time=data.end_time,
        work_description=data.work_description,
        delivery_certificate=certificate,
        work_photos=photos,
        status=data.status,
        team_leader=user.id,
    )
    try:
        log_id = create_document("daily_log", log)
    except DuplicateKeyError:
        discard(storage, stored)
        notifications.notify_duplicate_attempt(user.id, day, data.project)
        existing = _duplicate_of(day, user.id, data.project)
        raise _duplicate_conflict(existing["_id"] if existing else None)
    except Exception:
        discard(storage, stored)
        raise
    logger.info("Log %s created by %s for %s on %s (%s)", log_id, user.id, data.project, data.date, data.status)
    return load_log(log_id)


def update_log(log_id: str, user: CurrentUser, patch: DailyLogUpdate) -> dict:
    doc = load_log(log_id)
    ensure_owner(user, doc["team_leader"], "Not authorized to update this log")
    if doc["status"] == APPROVED:
        raise InvalidState("Cannot update an approved log")

    changes = {k: v for k, v in patch.model_dump(exclude_unset=True).items() if v is not None}
    if not changes:
        return doc
    if "date" in changes:
        changes["date"] = day_start(changes["date"])

    start = changes.get("start_time", doc["start_time"])
    end = changes.get("end_time", doc["end_time"])
    if end <= start:
        raise ValidationError("end_time", "end_time must be after start_time")

    day = changes.get("date", doc["date"])
    project = changes.get("project", doc["project"])
    if (day, project) != (doc["date"], doc["project"]):
        existing = _duplicate_of(day, doc["team_leader"], project, exclude=doc["_id"])
        if existing:
            raise _duplicate_conflict(existing["_id"])

    changes["updated_at"] = utcnow()
    try:
        res = collection("daily_log").update_one(
            {"_id": doc["_id"], "status": {"$ne": APPROVED}}, {"$set": changes}
        )
    except DuplicateKeyError:
        raise _duplicate_conflict(None)
    if res.matched_count == 0:
        raise InvalidState("Cannot update an approved log")
    return load_log(log_id)


def _transition(doc: dict, expected: LogStatus, target: LogStatus, extra: Optional[dict] = None) -> dict:
    update = {"status": target.value, "updated_at": utcnow()}
    update.update(extra or {})
    res = collection("daily_log").update_one({"_id": doc["_id"], "status": expected.value}, {"$set": update})
    if res.matched_count == 0:
        current = collection("daily_log").find_one({"_id": doc["_id"]}, {"status": 1})
        raise InvalidState(f"Log is already {current['status'] if current else 'gone'}")
    doc = dict(doc)
    doc.update(update)
    return doc


def submit_log(log_id: str, user: CurrentUser) -> dict:
    doc = load_log(log_id)
    ensure_owner(user, doc["team_leader"], "Not authorized to submit this log")
    if doc["status"] != LogStatus.DRAFT.value:
        raise InvalidState(f"Log is already {doc['status']}")
    doc = _transition(doc, LogStatus.DRAFT, LogStatus.SUBMITTED)
    logger.info("Log %s submitted by %s", log_id, user.id)
    return doc


def approve_log(log_id: str, user: CurrentUser) -> dict:
    if not user.is_manager:
        raise Forbidden("Require Manager role")
    doc = load_log(log_id)
    if doc["status"] != LogStatus.SUBMITTED.value:
        raise InvalidState("Only submitted logs can be approved")
    doc = _transition(doc, LogStatus.SUBMITTED, LogStatus.APPROVED,
                      {"approved_by": user.id, "approved_at": utcnow()})
    logger.info("Log %s approved by %s", log_id, user.id)
    notifications.notify_log_approved(doc)
    return doc


def delete_log(log_id: str, user: CurrentUser, storage: StorageBackend):
    doc = load_log(log_id)
    query = {"_id": doc["_id"]}
    if not user.is_manager:
        ensure_owner(user, doc["team_leader"], "Not authorized to delete this log")
        if doc["status"] == APPROVED:
            raise Forbidden("Cannot delete an approved log")
        query["status"] = {"$ne": APPROVED}
    res = collection("daily_log").delete_one(query)
    if res.deleted_count == 0:
        raise Forbidden("Cannot delete an approved log")
    files = [doc.get("delivery_certificate")] + doc.get("work_photos", []) + doc.get("documents", [])
    discard(storage, [f for f in files if f])
    notifications.delete_for_log(str(doc["_id"]))
    logger.info("Log %s deleted by %s", log_id, user.id)


# Attachments on existing logs

def add_attachments(log_id: str, user: CurrentUser, kind: FileKind, files: List[IncomingFile],
                    storage: StorageBackend, doc_type: Optional[AttachmentType] = None) -> List[dict]:
    doc = load_log(log_id)
    ensure_owner_or_manager(user, doc["team_leader"], f"You are not authorized to upload {kind.value} to this log")
    if doc["status"] == APPROVED:
        raise InvalidState(f"Cannot upload {kind.value} to an approved log")

    if kind is FileKind.PHOTOS:
        validate_photos(files)
        items = [(f, "photos", "photo") for f in files]
    else:
        validate_documents(files, max_count=MAX_DOCUMENTS_PER_UPLOAD)
        items = [(f, "documents", doc_type or document_type(f.filename)) for f in files]

    stored = store_batch(storage, items)
    try:
        res = collection("daily_log").update_one(
            {"_id": doc["_id"], "status": {"$ne": APPROVED}},
            {"$push": {kind.log_field: {"$each": stored}}, "$set": {"updated_at": utcnow()}},
        )
    except Exception:
        discard(storage, stored)
        raise
    if res.matched_count == 0:
        discard(storage, stored)
        raise InvalidState(f"Cannot upload {kind.value} to an approved log")
    logger.info("Attached %d %s to log %s", len(stored), kind.value, log_id)
    return stored


def remove_attachment(log_id: str, user: CurrentUser, kind: FileKind, file_id: str, storage: StorageBackend):
    doc = load_log(log_id)
    ensure_owner_or_manager(user, doc["team_leader"], f"You are not authorized to delete {kind.value} from this log")
    if doc["status"] == APPROVED:
        raise InvalidState(f"Cannot delete {kind.value} from an approved log")
    attachment = next((a for a in doc.get(kind.log_field, []) if a.get("id") == file_id), None)
    if attachment is None:
        raise NotFound("File not found")
    res = collection("daily_log").update_one(
        {"_id": doc["_id"], "status": {"$ne": APPROVED}},
        {"$pull": {kind.log_field: {"id": file_id}}, "$set": {"updated_at": utcnow()}},
    )
    if res.matched_count == 0:
        raise InvalidState(f"Cannot delete {kind.value} from an approved log")
    try:
        storage.delete(attachment["key"])
    except StorageError:
        logger.exception("Attachment %s removed from log %s but its file could not be deleted", file_id, log_id)

