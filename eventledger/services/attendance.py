"""Attendance ledger: exactly-once code redemption and admin-added attendance."""

import re
from datetime import datetime

from eventledger.core.clock import Clock, SystemClock
from eventledger.core.exceptions import AlreadyAttendedError, NotFoundError
from eventledger.core.logging import get_logger
from eventledger.models.attendance import AttendanceFailure, AttendanceResult
from eventledger.models.event import Event, EventFilter
from eventledger.models.user import AttendedEvent, User
from eventledger.services.points import apply_ledger_entry
from eventledger.storage.base import DocumentStore, StoreTransaction

log = get_logger(__name__)

CODE_RE = re.compile(r"^\d{6}$")


class _Rejected(Exception):
    """Aborts the redemption transaction with an expected, user-facing outcome."""

    def __init__(self, reason: AttendanceFailure) -> None:
        self.reason = reason
        super().__init__(reason)


def check_redeemable(event: Event, code: str, now: datetime) -> AttendanceFailure | None:
    """Gating for code redemption, in the order failures are reported."""
    if event.attendance_code != code:
        return "INVALID_CODE"
    if not event.code_active:
        return "CODE_NOT_ACTIVE"
    if not event.has_started(now):
        return "NOT_STARTED"
    if event.has_ended(now):
        return "EVENT_ENDED"
    return None


async def _credit_attendance(
    tx: StoreTransaction,
    event: Event,
    user: User,
    now: datetime,
    adjusted_by: str | None,
) -> None:
    """Attendee append, snapshot append and ledger credit; the caller's transaction makes them atomic."""
    event.attendees.append(user.id)
    event.updated_at = now
    await tx.save_event(event)

    user.attended_events.append(
        AttendedEvent(
            event_id=event.id,
            event_name=event.name,
            event_date=event.start_time,
            location=event.location,
            points_earned=event.points_value,
            attended_at=now,
        )
    )
    reason = f"Attended {event.name}" if adjusted_by is None else f"Attendance added by admin: {event.name}"
    await apply_ledger_entry(
        tx, user, event.points_value, "attendance", reason, now, adjusted_by=adjusted_by, event_id=event.id
    )


class AttendanceLedger:
    def __init__(self, store: DocumentStore, clock: Clock | None = None) -> None:
        self.store = store
        self.clock = clock or SystemClock()

    async def _find_by_code(self, code: str) -> Event | None:
        active = await self.store.find_events(EventFilter(attendance_code=code, code_active=True), limit=1)
        if active:
            return active[0]
        # An inactive code may linger on several events; any one of them yields "code not active"
        stale = await self.store.find_events(EventFilter(attendance_code=code), limit=1)
        return stale[0] if stale else None

    async def submit_attendance(self, user_id: str, code: str) -> AttendanceResult:
        code = (code or "").strip()
        if not CODE_RE.match(code):
            return AttendanceResult.rejected("INVALID_FORMAT")

        event = await self._find_by_code(code)
        if event is None:
            return AttendanceResult.rejected("INVALID_CODE")
        failure = check_redeemable(event, code, self.clock.now())
        if failure:
            log.info("attendance_rejected", user_id=user_id, event_id=event.id, reason=failure)
            return AttendanceResult.rejected(failure)

        async def _redeem(tx: StoreTransaction) -> Event:
            current = await tx.get_event(event.id)
            if current is None:
                raise _Rejected("INVALID_CODE")
            user = await tx.get_user(user_id)
            if user is None:
                raise _Rejected("USER_NOT_FOUND")
            now = self.clock.now()
            # The pre-checks above are advisory; state read inside the transaction decides.
            failure = check_redeemable(current, code, now)
            if failure:
                raise _Rejected(failure)
            if user_id in current.attendees:
                raise _Rejected("ALREADY_ATTENDED")
            await _credit_attendance(tx, current, user, now, adjusted_by=None)
            return current

        try:
            credited = await self.store.run_transaction(_redeem)
        except _Rejected as r:
            log.info("attendance_rejected", user_id=user_id, event_id=event.id, reason=r.reason)
            return AttendanceResult.rejected(r.reason)

        log.info("attendance_recorded", user_id=user_id, event_id=credited.id, points=credited.points_value)
        return AttendanceResult.recorded(credited.id, credited.name, credited.points_value)

    async def add_attendee(self, event_id: str, user_id: str, admin_id: str) -> None:
        """Admin correction: same transactional credit without code or time gating."""

        async def _add(tx: StoreTransaction) -> int:
            event = await tx.get_event(event_id)
            if event is None:
                raise NotFoundError("Event not found")
            user = await tx.get_user(user_id)
            if user is None:
                raise NotFoundError("User not found")
            if user_id in event.attendees:
                raise AlreadyAttendedError()
            await _credit_attendance(tx, event, user, self.clock.now(), adjusted_by=admin_id)
            return event.points_value

        points = await self.store.run_transaction(_add)
        log.info("attendee_added", event_id=event_id, user_id=user_id, points=points, added_by=admin_id)

    async def has_attended(self, user_id: str, event_id: str) -> bool:
        event = await self.store.get_event(event_id)
        return bool(event and user_id in event.attendees)

    async def get_attendees(self, event_id: str) -> list[User]:
        event = await self.store.get_event(event_id)
        if event is None:
            raise NotFoundError("Event not found")
        return await self.store.get_users(event.attendees)

    async def attendance_history(self, user_id: str) -> list[AttendedEvent]:
        """Snapshots of attended events, most recent event date first."""
        user = await self.store.get_user(user_id)
        if user is None:
            raise NotFoundError("User not found")
        return sorted(user.attended_events, key=lambda a: a.event_date, reverse=True)
