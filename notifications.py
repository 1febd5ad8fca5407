"""
Notification Dispatcher

Creates notification records for log lifecycle events (approval, duplicate
attempts) and for the two daily sweeps (missing logs, stale drafts), and
exposes the read-state routes for the current user.

Event notifications never fail the operation that triggered them: errors are
logged and swallowed. Sweep notifications carry a ``dedupe_key`` so that
running a sweep twice on the same day creates nothing new.
"""

import logging
from datetime import datetime, time, timedelta
from typing import Optional

from fastapi import APIRouter, Depends
from pymongo.errors import DuplicateKeyError, PyMongoError

from auth import CurrentUser
from database import collection, doc_to_dict, to_object_id, utcnow
from errors import Forbidden, NotFound
from permissions import Action, require_permission
from schemas import LogStatus, Notification, NotificationType, Role

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/notifications", tags=["notifications"])

STALE_DRAFT_AFTER = timedelta(hours=24)


def _day(value: datetime) -> str:
    return value.strftime("%d/%m/%Y")


def notify(recipient: str, type: NotificationType, message: str, related_log: Optional[str] = None,
           related_project: Optional[str] = None, dedupe_key: Optional[str] = None) -> bool:
    """Create one notification. Returns False when nothing was written."""
    try:
        doc = Notification(
            recipient=recipient,
            type=type,
            message=message,
            related_log=related_log,
            related_project=related_project,
            dedupe_key=dedupe_key,
        ).model_dump(exclude_none=True)
        doc["created_at"] = utcnow()
        if dedupe_key is None:
            collection("notification").insert_one(doc)
            return True
        res = collection("notification").update_one(
            {"dedupe_key": dedupe_key}, {"$setOnInsert": doc}, upsert=True
        )
        return res.upserted_id is not None
    except DuplicateKeyError:
        # lost an upsert race on the same dedupe key
        return False
    except Exception:
        logger.exception("Failed to create %s notification for %s", type, recipient)
        return False


def notify_log_approved(log: dict) -> bool:
    return notify(
        log["team_leader"],
        NotificationType.LOG_APPROVED,
        f"Your daily log for {_day(log['date'])} at {log['project']} has been approved",
        related_log=str(log["_id"]),
        related_project=log["project"],
    )


def notify_duplicate_attempt(team_leader_id: str, day: datetime, project: str) -> bool:
    return notify(
        team_leader_id,
        NotificationType.DUPLICATE_WARNING,
        f"You attempted to create a duplicate log for {_day(day)} at {project}. "
        "Please edit your existing log instead.",
        related_project=project,
    )


def run_missing_log_sweep(now: Optional[datetime] = None) -> int:
    """Notify every active team leader that has no log dated yesterday."""
    now = now or utcnow()
    today = datetime.combine(now.date(), time.min)
    yesterday = today - timedelta(days=1)
    created = 0
    try:
        leaders = list(collection("user").find({"role": Role.TEAM_LEADER.value, "is_active": True}, {"_id": 1}))
        for leader in leaders:
            leader_id = str(leader["_id"])
            has_log = collection("daily_log").find_one(
                {"team_leader": leader_id, "date": {"$gte": yesterday, "$lt": today}}, {"_id": 1}
            )
            if has_log:
                continue
            if notify(
                leader_id,
                NotificationType.MISSING_LOG,
                f"You have not submitted a daily log for {_day(yesterday)}",
                dedupe_key=f"{NotificationType.MISSING_LOG.value}:{leader_id}:{yesterday.date().isoformat()}",
            ):
                created += 1
    except PyMongoError:
        logger.exception("Missing log sweep failed")
    logger.info("Missing log sweep created %d notification(s)", created)
    return created


def run_stale_draft_sweep(now: Optional[datetime] = None) -> int:
    """Notify owners of drafts created more than 24 hours ago."""
    now = now or utcnow()
    cutoff = now - STALE_DRAFT_AFTER
    created = 0
    try:
        drafts = collection("daily_log").find(
            {"status": LogStatus.DRAFT.value, "created_at": {"$lt": cutoff}},
            {"team_leader": 1, "date": 1, "project": 1},
        )
        for log in drafts:
            log_id = str(log["_id"])
            if notify(
                log["team_leader"],
                NotificationType.INCOMPLETE_LOG,
                f"You have an incomplete daily log for {_day(log['date'])} that needs to be submitted",
                related_log=log_id,
                related_project=log.get("project"),
                dedupe_key=f"{NotificationType.INCOMPLETE_LOG.value}:{log_id}:{now.date().isoformat()}",
            ):
                created += 1
    except PyMongoError:
        logger.exception("Stale draft sweep failed")
    logger.info("Stale draft sweep created %d notification(s)", created)
    return created


def delete_for_log(log_id: str) -> int:
    try:
        return collection("notification").delete_many({"related_log": log_id}).deleted_count
    except PyMongoError:
        logger.exception("Could not remove notifications for log %s", log_id)
        return 0


# Routes

@router.get("")
def list_notifications(user: CurrentUser = Depends(require_permission(Action.NOTIFICATION_READ))):
    docs = collection("notification").find({"recipient": user.id}).sort("created_at", -1)
    return [doc_to_dict(n) for n in docs]


@router.get("/unread-count")
def unread_count(user: CurrentUser = Depends(require_permission(Action.NOTIFICATION_READ))):
    return {"count": collection("notification").count_documents({"recipient": user.id, "is_read": False})}


@router.put("/read-all")
def mark_all_read(user: CurrentUser = Depends(require_permission(Action.NOTIFICATION_READ))):
    res = collection("notification").update_many(
        {"recipient": user.id, "is_read": False}, {"$set": {"is_read": True}}
    )
    return {"message": "All notifications marked as read", "updated": res.modified_count}


@router.put("/{notification_id}/read")
def mark_read(notification_id: str, user: CurrentUser = Depends(require_permission(Action.NOTIFICATION_READ))):
    oid = to_object_id(notification_id)
    notification = collection("notification").find_one({"_id": oid}) if oid else None
    if not notification:
        raise NotFound("Notification not found")
    if notification["recipient"] != user.id:
        raise Forbidden("You are not authorized to mark this notification as read")
    collection("notification").update_one({"_id": oid}, {"$set": {"is_read": True}})
    return {"message": "Notification marked as read"}
