"""Beanie documents: the persisted shape of the domain models."""

from datetime import datetime
from typing import Any, Literal

from beanie import Document
from pydantic import Field

from eventledger.models.user import AttendedEvent


class EventDocument(Document):
    id: str
    name: str
    description: str
    location: str
    start_time: datetime
    end_time: datetime | None = None
    points_value: int
    created_by: str
    status: Literal["upcoming", "active", "completed", "cancelled"] = "upcoming"
    attendance_code: str | None = None
    code_active: bool = False
    attendees: list[str] = Field(default_factory=list)
    cleaned_up: bool = False
    created_at: datetime
    updated_at: datetime

    class Settings:
        name = "events"
        indexes = [
            [("status", 1), ("end_time", 1)],
            [("attendance_code", 1), ("code_active", 1)],
            [("start_time", -1)],
            [("cleaned_up", 1)],
        ]


class ActiveCodeDocument(Document):
    """One row per currently active attendance code; the primary key is the code itself."""

    id: str
    event_id: str

    class Settings:
        name = "active_codes"
        indexes = [[("event_id", 1)]]


class UserDocument(Document):
    id: str
    email: str = ""
    display_name: str = ""
    is_admin: bool = False
    points: int = 0
    attended_events: list[AttendedEvent] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime

    class Settings:
        name = "users"
        indexes = [[("email", 1)], [("points", -1)]]


class PointLedgerDocument(Document):
    id: str
    user_id: str
    points: int
    source: Literal["attendance", "manual"]
    reason: str
    adjusted_by: str | None = None
    event_id: str | None = None
    balance_after: int
    created_at: datetime

    class Settings:
        name = "point_ledger"
        indexes = [
            [("user_id", 1), ("created_at", -1)],
            [("event_id", 1)],
        ]


class AuditLogDocument(Document):
    id: str
    actor_id: str | None = None
    event_type: str
    entity_type: str
    entity_id: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime

    class Settings:
        name = "audit_logs"
        indexes = [
            [("actor_id", 1), ("created_at", -1)],
            [("entity_type", 1), ("entity_id", 1)],
        ]


class FailedJobDocument(Document):
    id: str
    job_name: str
    job_id: str
    args: list[Any] = Field(default_factory=list)
    kwargs: dict[str, Any] = Field(default_factory=dict)
    reason: str = ""
    retries: int = 0
    created_at: datetime

    class Settings:
        name = "failed_jobs"
        indexes = [[("job_name", 1)], [("created_at", -1)]]
