from datetime import datetime

from fastapi import APIRouter, Depends, Header, Query

from eventledger.core.clock import Clock
from eventledger.core.exceptions import UnauthorizedError, ValidationError
from eventledger.core.security import verify_job_secret
from eventledger.deps import get_clock, get_current_user, get_event_lifecycle, get_sweeper
from eventledger.models.event import CLOSED_STATUSES, OPEN_STATUSES, EventFilter
from eventledger.models.user import User
from eventledger.routers.serializers import event_out
from eventledger.services.events import EventLifecycle
from eventledger.services.sweeper import LifecycleSweeper

router = APIRouter()


def parse_status_filter(status: str | None) -> list[str] | None:
    """Comma-separated status query param; unknown values are a 400. `active` selects ongoing events."""
    statuses = [s.strip() for s in status.split(",") if s.strip()] if status else None
    if statuses and any(s not in OPEN_STATUSES + CLOSED_STATUSES for s in statuses):
        raise ValidationError("Unknown status filter", fields=["status"])
    return statuses


@router.get("")
async def events_list(
    status: str | None = Query(None, description="Comma-separated statuses"),
    start_after: datetime | None = None,
    start_before: datetime | None = None,
    ongoing: bool = False,
    user: User = Depends(get_current_user),
    lifecycle: EventLifecycle = Depends(get_event_lifecycle),
    clock: Clock = Depends(get_clock),
):
    """List events. Members only ever see ongoing events."""
    now = clock.now()
    if ongoing or not user.is_admin:
        events = await lifecycle.list_ongoing_events()
    else:
        statuses = parse_status_filter(status)
        events = await lifecycle.list_events(
            EventFilter(statuses=statuses, start_after=start_after, start_before=start_before)
        )
    return {"events": [event_out(e, now, admin=user.is_admin) for e in events]}


@router.get("/active")
async def events_active(
    user: User = Depends(get_current_user),
    lifecycle: EventLifecycle = Depends(get_event_lifecycle),
):
    """Whether any event is currently open for attendance."""
    return {"has_active_events": await lifecycle.has_ongoing_events()}


@router.post("/lifecycle")
async def events_lifecycle(
    authorization: str | None = Header(None),
    sweeper: LifecycleSweeper = Depends(get_sweeper),
    clock: Clock = Depends(get_clock),
):
    """Run the lifecycle sweep on demand. The worker cron calls the same sweep on its interval."""
    if not verify_job_secret(authorization):
        raise UnauthorizedError("Invalid job secret")
    result = await sweeper.run_lifecycle_sweep()
    return {
        "completed_count": result.completed_count,
        "cleaned_up_count": result.cleaned_up_count,
        "timestamp": clock.now().isoformat(),
    }
