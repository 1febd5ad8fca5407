"""
Database Schemas for the Daily Work Log backend

Collections are named after the Pydantic model class (snake_case):
- User -> "user"
- DailyLog -> "daily_log"
- Notification -> "notification"
- Project -> "project"

Attachment is embedded in DailyLog. User references are stored as string ids.
Datetimes are naive UTC, matching what BSON hands back.
"""

from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field


class Role(str, Enum):
    MANAGER = "Manager"
    TEAM_LEADER = "Team Leader"


class LogStatus(str, Enum):
    DRAFT = "draft"
    SUBMITTED = "submitted"
    APPROVED = "approved"


class NotificationType(str, Enum):
    MISSING_LOG = "missing_log"
    INCOMPLETE_LOG = "incomplete_log"
    LOG_APPROVED = "log_approved"
    DUPLICATE_WARNING = "duplicate_warning"
    SYSTEM = "system"


class AttachmentType(str, Enum):
    PHOTO = "photo"
    DELIVERY_CERTIFICATE = "delivery_certificate"
    DELIVERY_NOTE = "delivery_note"
    RECEIPT = "receipt"
    INVOICE = "invoice"
    OTHER = "other"


class ProjectStatus(str, Enum):
    ACTIVE = "active"
    COMPLETED = "completed"
    ON_HOLD = "on-hold"
    CANCELLED = "cancelled"


class Document(BaseModel):
    model_config = ConfigDict(use_enum_values=True)


# Users
class User(Document):
    full_name: str = Field(..., min_length=1, max_length=120)
    email: EmailStr
    password_hash: str
    role: Role
    is_active: bool = True
    phone: Optional[str] = None


# Daily logs and attachments
class Attachment(Document):
    id: str
    key: str
    url: str
    original_name: str
    content_type: str
    size: int = Field(..., ge=0)
    type: AttachmentType = AttachmentType.OTHER
    uploaded_at: datetime


class DailyLog(Document):
    date: datetime
    project: str = Field(..., min_length=1, max_length=200)
    employees: List[str] = []
    start_time: datetime
    end_time: datetime
    work_description: str = Field(..., min_length=1)
    delivery_certificate: Optional[Attachment] = None
    work_photos: List[Attachment] = []
    documents: List[Attachment] = []
    status: LogStatus = LogStatus.DRAFT
    team_leader: str
    approved_by: Optional[str] = None
    approved_at: Optional[datetime] = None


# Notifications
class Notification(Document):
    recipient: str
    type: NotificationType
    message: str = Field(..., min_length=1)
    is_read: bool = False
    related_log: Optional[str] = None
    related_project: Optional[str] = None
    # "<type>:<entity id>:<day>" for sweep notifications, unique when present
    dedupe_key: Optional[str] = None


# Projects
class Project(Document):
    name: str = Field(..., min_length=1, max_length=200)
    address: str = Field(..., min_length=1)
    city: str = Field(..., min_length=1)
    state: str = Field(..., min_length=1)
    zip_code: str = Field(..., min_length=1)
    client_name: Optional[str] = None
    client_contact: Optional[str] = None
    start_date: datetime
    estimated_end_date: Optional[datetime] = None
    actual_end_date: Optional[datetime] = None
    status: ProjectStatus = ProjectStatus.ACTIVE
    description: Optional[str] = None
    is_active: bool = True
