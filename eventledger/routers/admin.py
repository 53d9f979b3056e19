from datetime import datetime

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from eventledger.core.audit import log_event
from eventledger.core.clock import Clock
from eventledger.deps import (
    get_attendance_ledger,
    get_clock,
    get_event_lifecycle,
    get_point_accounting,
    require_admin,
)
from eventledger.models.event import EventCreate, EventFilter, EventUpdate
from eventledger.models.user import User
from eventledger.routers.events import parse_status_filter
from eventledger.routers.serializers import event_out, ledger_out, user_detail_out, user_out
from eventledger.services import users as users_service
from eventledger.services.attendance import AttendanceLedger
from eventledger.services.events import EventLifecycle
from eventledger.services.points import PointAccountingService
from eventledger.storage.base import DocumentStore, get_store

router = APIRouter()


class ToggleCodeRequest(BaseModel):
    active: bool


class AddAttendanceRequest(BaseModel):
    event_id: str


class AddPointsRequest(BaseModel):
    points: int
    reason: str


# -------------------------
# Events
# -------------------------
@router.post("/events")
async def admin_event_create(
    body: EventCreate,
    admin: User = Depends(require_admin),
    lifecycle: EventLifecycle = Depends(get_event_lifecycle),
    store: DocumentStore = Depends(get_store),
    clock: Clock = Depends(get_clock),
):
    event = await lifecycle.create_event(body, admin.id)
    await log_event(store, admin.id, "event_created", "event", event.id, {"name": event.name})
    return event_out(event, clock.now(), admin=True)


@router.get("/events")
async def admin_events_list(
    status: str | None = Query(None, description="Comma-separated statuses"),
    start_after: datetime | None = None,
    start_before: datetime | None = None,
    include_cleaned_up: bool = False,
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0),
    admin: User = Depends(require_admin),
    lifecycle: EventLifecycle = Depends(get_event_lifecycle),
    clock: Clock = Depends(get_clock),
):
    """Admin listing; cleaned-up events are hidden unless asked for."""
    statuses = parse_status_filter(status)
    flt = EventFilter(statuses=statuses, start_after=start_after, start_before=start_before)
    events = await lifecycle.list_events(flt, include_cleaned_up=include_cleaned_up, limit=limit, offset=offset)
    now = clock.now()
    return {"events": [event_out(e, now, admin=True) for e in events], "limit": limit, "offset": offset}


@router.get("/events/{event_id}")
async def admin_event_get(
    event_id: str,
    admin: User = Depends(require_admin),
    lifecycle: EventLifecycle = Depends(get_event_lifecycle),
    clock: Clock = Depends(get_clock),
):
    event = await lifecycle.get_event(event_id)
    return event_out(event, clock.now(), admin=True)


@router.put("/events/{event_id}")
async def admin_event_update(
    event_id: str,
    body: EventUpdate,
    admin: User = Depends(require_admin),
    lifecycle: EventLifecycle = Depends(get_event_lifecycle),
    store: DocumentStore = Depends(get_store),
):
    """Edit an event; rejected once the event has started."""
    await lifecycle.update_event(event_id, body)
    await log_event(store, admin.id, "event_updated", "event", event_id, {"fields": sorted(body.changes())})
    return {"success": True}


@router.delete("/events/{event_id}")
async def admin_event_delete(
    event_id: str,
    admin: User = Depends(require_admin),
    lifecycle: EventLifecycle = Depends(get_event_lifecycle),
    store: DocumentStore = Depends(get_store),
):
    await lifecycle.delete_event(event_id)
    await log_event(store, admin.id, "event_deleted", "event", event_id)
    return {"success": True}


@router.post("/events/{event_id}/generate-code")
async def admin_event_generate_code(
    event_id: str,
    admin: User = Depends(require_admin),
    lifecycle: EventLifecycle = Depends(get_event_lifecycle),
    store: DocumentStore = Depends(get_store),
):
    code = await lifecycle.generate_attendance_code(event_id)
    await log_event(store, admin.id, "attendance_code_generated", "event", event_id)
    return {"code": code}


@router.post("/events/{event_id}/toggle-code")
async def admin_event_toggle_code(
    event_id: str,
    body: ToggleCodeRequest,
    admin: User = Depends(require_admin),
    lifecycle: EventLifecycle = Depends(get_event_lifecycle),
    store: DocumentStore = Depends(get_store),
):
    await lifecycle.toggle_attendance_code(event_id, body.active)
    await log_event(store, admin.id, "attendance_code_toggled", "event", event_id, {"active": body.active})
    return {"success": True, "code_active": body.active}


@router.post("/events/{event_id}/end")
async def admin_event_end(
    event_id: str,
    admin: User = Depends(require_admin),
    lifecycle: EventLifecycle = Depends(get_event_lifecycle),
    store: DocumentStore = Depends(get_store),
):
    await lifecycle.end_event(event_id)
    await log_event(store, admin.id, "event_ended", "event", event_id)
    return {"success": True}


@router.post("/events/{event_id}/cancel")
async def admin_event_cancel(
    event_id: str,
    admin: User = Depends(require_admin),
    lifecycle: EventLifecycle = Depends(get_event_lifecycle),
    store: DocumentStore = Depends(get_store),
):
    await lifecycle.cancel_event(event_id)
    await log_event(store, admin.id, "event_cancelled", "event", event_id)
    return {"success": True}


@router.get("/events/{event_id}/attendees")
async def admin_event_attendees(
    event_id: str,
    admin: User = Depends(require_admin),
    ledger: AttendanceLedger = Depends(get_attendance_ledger),
):
    users = await ledger.get_attendees(event_id)
    return {"attendees": [user_out(u) for u in users]}


# -------------------------
# Users and points
# -------------------------
@router.get("/users")
async def admin_users_search(
    q: str = "",
    limit: int = Query(20, ge=1, le=100),
    admin: User = Depends(require_admin),
    store: DocumentStore = Depends(get_store),
):
    users = await users_service.search_users(store, q, limit=limit)
    return {"users": [user_out(u) for u in users]}


@router.get("/users/{user_id}")
async def admin_user_get(
    user_id: str,
    admin: User = Depends(require_admin),
    store: DocumentStore = Depends(get_store),
):
    """User profile with points and attended events."""
    user = await users_service.get_user(store, user_id)
    return user_detail_out(user)


@router.post("/users/{user_id}/add-attendance")
async def admin_user_add_attendance(
    user_id: str,
    body: AddAttendanceRequest,
    admin: User = Depends(require_admin),
    ledger: AttendanceLedger = Depends(get_attendance_ledger),
    store: DocumentStore = Depends(get_store),
):
    """Manually credit attendance (no code or time checks)."""
    await ledger.add_attendee(body.event_id, user_id, admin.id)
    await log_event(store, admin.id, "attendee_added", "user", user_id, {"event_id": body.event_id})
    return {"success": True}


@router.post("/users/{user_id}/add-points")
async def admin_user_add_points(
    user_id: str,
    body: AddPointsRequest,
    admin: User = Depends(require_admin),
    points: PointAccountingService = Depends(get_point_accounting),
    store: DocumentStore = Depends(get_store),
):
    """Adjust points by a signed delta; returns the new total."""
    new_total = await points.add_points(user_id, body.points, body.reason, admin.id)
    await log_event(store, admin.id, "points_adjusted", "user", user_id, {"points": body.points, "reason": body.reason})
    return {"new_total": new_total}


@router.get("/users/{user_id}/ledger")
async def admin_user_ledger(
    user_id: str,
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    admin: User = Depends(require_admin),
    points: PointAccountingService = Depends(get_point_accounting),
):
    entries = await points.list_ledger(user_id, limit=limit, offset=offset)
    return {"entries": [ledger_out(e) for e in entries], "limit": limit, "offset": offset}


@router.get("/users/{user_id}/balance-audit")
async def admin_user_balance_audit(
    user_id: str,
    admin: User = Depends(require_admin),
    points: PointAccountingService = Depends(get_point_accounting),
):
    """Recompute a balance from the ledger and report whether it matches."""
    audit = await points.audit_balance(user_id)
    return audit.model_dump()


# -------------------------
# Audit trail
# -------------------------
@router.get("/audit")
async def admin_audit(
    limit: int = Query(80, ge=1, le=500),
    entity_id: str | None = None,
    admin: User = Depends(require_admin),
    store: DocumentStore = Depends(get_store),
):
    rows = await store.list_audit_logs(limit=limit, entity_id=entity_id)
    return {
        "entries": [
            {
                "actor_id": r.actor_id,
                "event_type": r.event_type,
                "entity_type": r.entity_type,
                "entity_id": r.entity_id,
                "metadata": r.metadata,
                "created_at": r.created_at.isoformat(),
            }
            for r in rows
        ]
    }
