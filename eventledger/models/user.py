from datetime import datetime, timezone

from pydantic import BaseModel, Field, field_validator

from eventledger.core.clock import ensure_utc


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AttendedEvent(BaseModel):
    """Snapshot of the event at redemption time; survives later edits to the event."""

    event_id: str
    event_name: str
    event_date: datetime
    location: str
    points_earned: int
    attended_at: datetime

    @field_validator("event_date", "attended_at")
    @classmethod
    def _utc(cls, v: datetime) -> datetime:
        return ensure_utc(v)


class User(BaseModel):
    id: str  # principal id issued by the identity service
    email: str = ""
    display_name: str = ""
    is_admin: bool = False
    points: int = 0  # cached sum of the user's ledger entries
    attended_events: list[AttendedEvent] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)

    @field_validator("created_at", "updated_at")
    @classmethod
    def _utc(cls, v: datetime) -> datetime:
        return ensure_utc(v)

    def has_attended(self, event_id: str) -> bool:
        return any(a.event_id == event_id for a in self.attended_events)
