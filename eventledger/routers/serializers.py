"""Response shapes shared by routers."""

from datetime import datetime
from typing import Any

from eventledger.models.event import Event
from eventledger.models.point_ledger import PointLedgerEntry
from eventledger.models.user import AttendedEvent, User


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def event_out(e: Event, now: datetime, admin: bool = False) -> dict[str, Any]:
    out = {
        "id": e.id,
        "name": e.name,
        "description": e.description,
        "location": e.location,
        "start_time": _iso(e.start_time),
        "end_time": _iso(e.end_time),
        "points_value": e.points_value,
        "status": e.status,
        "effective_status": e.effective_status(now),
        "code_active": e.code_active,
        "attendee_count": len(e.attendees),
    }
    if admin:
        out.update(
            {
                "attendance_code": e.attendance_code,
                "attendees": list(e.attendees),
                "created_by": e.created_by,
                "cleaned_up": e.cleaned_up,
                "created_at": _iso(e.created_at),
                "updated_at": _iso(e.updated_at),
            }
        )
    return out


def user_out(u: User) -> dict[str, Any]:
    return {
        "id": u.id,
        "email": u.email,
        "display_name": u.display_name,
        "is_admin": u.is_admin,
        "points": u.points,
        "attended_count": len(u.attended_events),
    }


def attended_out(a: AttendedEvent) -> dict[str, Any]:
    return {
        "event_id": a.event_id,
        "event_name": a.event_name,
        "event_date": _iso(a.event_date),
        "location": a.location,
        "points_earned": a.points_earned,
        "attended_at": _iso(a.attended_at),
    }


def ledger_out(e: PointLedgerEntry) -> dict[str, Any]:
    return {
        "id": e.id,
        "points": e.points,
        "source": e.source,
        "reason": e.reason,
        "adjusted_by": e.adjusted_by,
        "event_id": e.event_id,
        "balance_after": e.balance_after,
        "created_at": _iso(e.created_at),
    }


def leaderboard_out(u: User) -> dict[str, Any]:
    return {
        "id": u.id,
        "display_name": u.display_name,
        "points": u.points,
        "attended_count": len(u.attended_events),
    }


def user_detail_out(u: User) -> dict[str, Any]:
    out = user_out(u)
    out.update(
        {
            "attended_events": [attended_out(a) for a in u.attended_events],
            "created_at": _iso(u.created_at),
            "updated_at": _iso(u.updated_at),
        }
    )
    return out
