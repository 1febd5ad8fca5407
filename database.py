"""
MongoDB access for the Daily Work Log backend.

Collections are named after the schema classes in ``schemas.py``
(``User`` -> "user", ``DailyLog`` -> "daily_log", ...). The client is created
at application startup by :func:`connect`; tests assign ``database.db``
directly.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from bson import ObjectId
from bson.errors import InvalidId
from pydantic import BaseModel
from pymongo import ASCENDING, DESCENDING, MongoClient

import settings

logger = logging.getLogger(__name__)

client: Optional[MongoClient] = None
db = None


def connect(url: Optional[str] = None, name: Optional[str] = None):
    """Open the Mongo connection. A missing connection string is fatal."""
    global client, db
    url = url or settings.DATABASE_URL
    if not url:
        raise RuntimeError("DATABASE_URL is not set")
    client = MongoClient(url, serverSelectionTimeoutMS=10000)
    db = client[name or settings.DATABASE_NAME]
    logger.info("Connected to MongoDB database %s", db.name)
    return db


def close():
    global client, db
    if client is not None:
        client.close()
    client = None
    db = None


def collection(name: str):
    if db is None:
        raise RuntimeError("Database is not initialised")
    return db[name]


def ensure_indexes():
    collection("user").create_index("email", unique=True)
    collection("daily_log").create_index(
        [("date", ASCENDING), ("team_leader", ASCENDING), ("project", ASCENDING)],
        unique=True,
        name="unique_log_per_day",
    )
    collection("daily_log").create_index([("status", ASCENDING), ("created_at", ASCENDING)])
    collection("notification").create_index([("recipient", ASCENDING), ("created_at", DESCENDING)])
    collection("notification").create_index("dedupe_key", unique=True, sparse=True)


def utcnow() -> datetime:
    # BSON datetimes come back naive (UTC); keep everything we write naive too.
    return datetime.now(timezone.utc).replace(tzinfo=None)


def as_naive_utc(value: datetime) -> datetime:
    if value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def create_document(collection_name: str, data) -> str:
    """Insert a schema instance, stamping created_at/updated_at. Returns the new id."""
    doc = data.model_dump() if isinstance(data, BaseModel) else dict(data)
    now = utcnow()
    doc.setdefault("created_at", now)
    doc["updated_at"] = now
    result = collection(collection_name).insert_one(doc)
    return str(result.inserted_id)


def to_object_id(value: Any) -> Optional[ObjectId]:
    if isinstance(value, ObjectId):
        return value
    try:
        return ObjectId(value)
    except (InvalidId, TypeError):
        return None


def doc_to_dict(doc: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    """Replace ``_id`` with a string ``id`` and stringify ObjectId references."""
    if doc is None:
        return None
    out = {}
    for key, value in doc.items():
        if key == "_id":
            out["id"] = str(value)
        elif isinstance(value, ObjectId):
            out[key] = str(value)
        else:
            out[key] = value
    return out
