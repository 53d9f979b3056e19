from typing import Literal

from pydantic import BaseModel

AttendanceFailure = Literal[
    "INVALID_FORMAT",
    "INVALID_CODE",
    "CODE_NOT_ACTIVE",
    "NOT_STARTED",
    "EVENT_ENDED",
    "ALREADY_ATTENDED",
    "USER_NOT_FOUND",
]

MESSAGES: dict[str, str] = {
    "INVALID_FORMAT": "invalid code format",
    "INVALID_CODE": "invalid code",
    "CODE_NOT_ACTIVE": "code not active",
    "NOT_STARTED": "event has not started yet",
    "EVENT_ENDED": "event has ended",
    "ALREADY_ATTENDED": "already attended",
    "USER_NOT_FOUND": "user not found",
}


class AttendanceResult(BaseModel):
    """Outcome of a code redemption. Expected rejections are data, not exceptions."""

    success: bool
    message: str
    reason: AttendanceFailure | None = None
    points_earned: int | None = None
    event_name: str | None = None
    event_id: str | None = None

    @classmethod
    def rejected(cls, reason: AttendanceFailure) -> "AttendanceResult":
        return cls(success=False, message=MESSAGES[reason], reason=reason)

    @classmethod
    def recorded(cls, event_id: str, event_name: str, points: int) -> "AttendanceResult":
        return cls(
            success=True,
            message="attendance recorded",
            points_earned=points,
            event_name=event_name,
            event_id=event_id,
        )


class SweepResult(BaseModel):
    completed_count: int = 0
    cleaned_up_count: int = 0
