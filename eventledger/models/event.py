import uuid
from datetime import datetime, timezone
from typing import Literal

from pydantic import BaseModel, Field, field_validator

from eventledger.core.clock import ensure_utc

EventStatus = Literal["upcoming", "active", "completed", "cancelled"]

OPEN_STATUSES: tuple[EventStatus, ...] = ("upcoming", "active")
CLOSED_STATUSES: tuple[EventStatus, ...] = ("completed", "cancelled")

EDITABLE_FIELDS = ("name", "description", "location", "points_value", "start_time", "end_time")


def new_event_id() -> str:
    return f"evt_{uuid.uuid4().hex}"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Event(BaseModel):
    id: str = Field(default_factory=new_event_id)
    name: str
    description: str
    location: str
    start_time: datetime
    end_time: datetime | None = None  # absent until the event is ended
    points_value: int = Field(ge=0)
    created_by: str
    status: EventStatus = "upcoming"
    attendance_code: str | None = None
    code_active: bool = False
    attendees: list[str] = Field(default_factory=list)
    cleaned_up: bool = False
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)

    @field_validator("start_time", "end_time", "created_at", "updated_at")
    @classmethod
    def _utc(cls, v: datetime | None) -> datetime | None:
        return ensure_utc(v) if v is not None else None

    def has_started(self, now: datetime) -> bool:
        return now >= self.start_time

    def has_ended(self, now: datetime) -> bool:
        if self.status in CLOSED_STATUSES:
            return True
        return self.end_time is not None and now >= self.end_time

    def is_ongoing(self, now: datetime) -> bool:
        """'active' is a read-time concept: started, not ended, not closed."""
        return self.has_started(now) and not self.has_ended(now)

    def effective_status(self, now: datetime) -> EventStatus:
        if self.status == "upcoming" and self.is_ongoing(now):
            return "active"
        return self.status


class EventFilter(BaseModel):
    """Selection criteria understood by every store backend."""

    ids: list[str] | None = None
    statuses: list[EventStatus] | None = None
    start_after: datetime | None = None
    start_before: datetime | None = None
    end_before: datetime | None = None  # implies end_time is set
    cleaned_up: bool | None = None
    attendance_code: str | None = None
    code_active: bool | None = None

    @field_validator("start_after", "start_before", "end_before")
    @classmethod
    def _utc(cls, v: datetime | None) -> datetime | None:
        return ensure_utc(v) if v is not None else None

    def matches(self, event: Event) -> bool:
        if self.ids is not None and event.id not in self.ids:
            return False
        if self.statuses is not None and event.status not in self.statuses:
            return False
        if self.start_after is not None and not event.start_time > self.start_after:
            return False
        if self.start_before is not None and not event.start_time < self.start_before:
            return False
        if self.end_before is not None and (event.end_time is None or not event.end_time < self.end_before):
            return False
        if self.cleaned_up is not None and event.cleaned_up != self.cleaned_up:
            return False
        if self.attendance_code is not None and event.attendance_code != self.attendance_code:
            return False
        if self.code_active is not None and event.code_active != self.code_active:
            return False
        return True


class EventCreate(BaseModel):
    """Organizer input. Required fields are checked by the lifecycle service so all problems are reported at once."""

    name: str | None = None
    description: str | None = None
    location: str | None = None
    start_time: datetime | None = None
    points_value: int | None = None


class EventUpdate(BaseModel):
    name: str | None = None
    description: str | None = None
    location: str | None = None
    points_value: int | None = None
    start_time: datetime | None = None
    end_time: datetime | None = None

    def changes(self) -> dict:
        return self.model_dump(exclude_unset=True, exclude_none=True)
