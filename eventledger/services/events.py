"""Event lifecycle: creation, edits, attendance codes, manual end/cancel and the time-driven sweeps."""

import secrets
from datetime import timedelta
from typing import Callable

from eventledger.core.clock import Clock, SystemClock, ensure_utc
from eventledger.core.config import get_settings
from eventledger.core.exceptions import (
    AlreadyStartedError,
    CodeGenerationExhaustedError,
    CodeInUseError,
    EventCompletedError,
    NoCodeError,
    NotFoundError,
    NotStartedError,
    ValidationError,
)
from eventledger.core.logging import get_logger
from eventledger.models.event import OPEN_STATUSES, Event, EventCreate, EventFilter, EventUpdate
from eventledger.storage.base import DocumentStore, StoreTransaction

log = get_logger(__name__)


def generate_code() -> str:
    """Random 6-digit numeric code, never zero-padded (100000-999999)."""
    return str(100000 + secrets.randbelow(900000))


class EventLifecycle:
    def __init__(
        self,
        store: DocumentStore,
        clock: Clock | None = None,
        code_factory: Callable[[], str] = generate_code,
        max_code_attempts: int | None = None,
        cleanup_after: timedelta | None = None,
    ) -> None:
        settings = get_settings()
        self.store = store
        self.clock = clock or SystemClock()
        self.code_factory = code_factory
        self.max_code_attempts = max_code_attempts or settings.code_generation_max_attempts
        self.cleanup_after = cleanup_after if cleanup_after is not None else timedelta(hours=settings.cleanup_after_hours)

    # ------------------------------------------------------------------
    # CRUD
    # ------------------------------------------------------------------
    async def create_event(self, data: EventCreate, creator_id: str) -> Event:
        missing = [f for f in ("name", "description", "location") if not (getattr(data, f) or "").strip()]
        if data.start_time is None:
            missing.append("start_time")
        if data.points_value is None or data.points_value < 0:
            missing.append("points_value")
        if missing:
            raise ValidationError(f"Missing or invalid fields: {', '.join(missing)}", fields=missing)

        now = self.clock.now()
        event = Event(
            name=data.name.strip(),
            description=data.description.strip(),
            location=data.location.strip(),
            start_time=data.start_time,
            points_value=data.points_value,
            created_by=creator_id,
            created_at=now,
            updated_at=now,
        )
        await self.store.insert_event(event)
        log.info("event_created", event_id=event.id, start_time=event.start_time.isoformat(), created_by=creator_id)
        return event

    async def get_event(self, event_id: str) -> Event:
        event = await self.store.get_event(event_id)
        if not event:
            raise NotFoundError("Event not found")
        return event

    async def list_events(
        self,
        flt: EventFilter | None = None,
        include_cleaned_up: bool = False,
        limit: int | None = None,
        offset: int = 0,
    ) -> list[Event]:
        flt = flt.model_copy() if flt else EventFilter()
        if not include_cleaned_up and flt.cleaned_up is None:
            flt.cleaned_up = False
        if flt.statuses and "active" in flt.statuses:
            return await self._list_with_ongoing(flt, limit, offset)
        return await self.store.find_events(flt, limit=limit, offset=offset)

    async def _list_with_ongoing(self, flt: EventFilter, limit: int | None, offset: int) -> list[Event]:
        """'active' is never stored, so it selects ongoing events; other statuses match as stored."""
        stored = set(flt.statuses) - {"active"}
        now = self.clock.now()
        candidates = await self.store.find_events(
            flt.model_copy(update={"statuses": sorted(stored | set(OPEN_STATUSES))})
        )
        events = [e for e in candidates if e.is_ongoing(now) or e.status in stored][offset:]
        return events[:limit] if limit is not None else events

    async def list_ongoing_events(self) -> list[Event]:
        now = self.clock.now()
        # start_before is strict; widen by a second so an event starting exactly now is included
        candidates = await self.store.find_events(
            EventFilter(statuses=list(OPEN_STATUSES), start_before=now + timedelta(seconds=1))
        )
        return [e for e in candidates if e.is_ongoing(now)]

    async def has_ongoing_events(self) -> bool:
        return bool(await self.list_ongoing_events())

    async def update_event(self, event_id: str, changes: EventUpdate) -> None:
        """Apply edits; only allowed before the event starts.

        The started check runs first, so a started event rejects every edit with
        AlreadyStartedError whatever the payload looks like.
        """
        fields = changes.changes()

        async def _apply(tx: StoreTransaction) -> None:
            event = await self._load(tx, event_id)
            now = self.clock.now()
            if event.has_started(now):
                raise AlreadyStartedError()
            invalid = [f for f in ("name", "description", "location") if f in fields and not fields[f].strip()]
            if "points_value" in fields and fields["points_value"] < 0:
                invalid.append("points_value")
            start_time = ensure_utc(fields.get("start_time", event.start_time))
            end_time = fields.get("end_time", event.end_time)
            if end_time is not None and ensure_utc(end_time) < start_time:
                invalid.append("end_time")
            if invalid:
                raise ValidationError(f"Missing or invalid fields: {', '.join(invalid)}", fields=invalid)
            updated = Event.model_validate({**event.model_dump(), **fields, "updated_at": now})
            await tx.save_event(updated)

        await self.store.run_transaction(_apply)
        log.info("event_updated", event_id=event_id, fields=sorted(fields))

    async def delete_event(self, event_id: str) -> None:
        """Hard delete. No started-event guard."""
        if not await self.store.delete_event(event_id):
            raise NotFoundError("Event not found")
        log.info("event_deleted", event_id=event_id)

    # ------------------------------------------------------------------
    # Attendance codes
    # ------------------------------------------------------------------
    async def generate_attendance_code(self, event_id: str) -> str:
        """Issue a fresh code unique among active codes. Check and write share one transaction."""

        async def _issue(tx: StoreTransaction) -> str:
            event = await self._load(tx, event_id)
            now = self.clock.now()
            if not event.has_started(now):
                raise NotStartedError("Event not started")
            for attempt in range(1, self.max_code_attempts + 1):
                code = self.code_factory()
                if await tx.active_code_owner(code) is not None:
                    log.debug("attendance_code_collision", event_id=event_id, attempt=attempt)
                    continue
                if event.attendance_code and event.code_active:
                    await tx.release_code(event.attendance_code, event.id)
                await tx.claim_code(code, event.id)
                event.attendance_code = code
                event.code_active = True
                event.updated_at = now
                await tx.save_event(event)
                return code
            raise CodeGenerationExhaustedError()

        try:
            code = await self.store.run_transaction(_issue)
        except CodeGenerationExhaustedError:
            log.warning("attendance_code_exhausted", event_id=event_id, attempts=self.max_code_attempts)
            raise
        log.info("attendance_code_generated", event_id=event_id)
        return code

    async def toggle_attendance_code(self, event_id: str, active: bool) -> None:
        async def _toggle(tx: StoreTransaction) -> None:
            event = await self._load(tx, event_id)
            if not event.attendance_code:
                raise NoCodeError()
            if active:
                owner = await tx.active_code_owner(event.attendance_code)
                if owner is not None and owner != event.id:
                    raise CodeInUseError()
                await tx.claim_code(event.attendance_code, event.id)
            else:
                await tx.release_code(event.attendance_code, event.id)
            event.code_active = active
            event.updated_at = self.clock.now()
            await tx.save_event(event)

        await self.store.run_transaction(_toggle)
        log.info("attendance_code_toggled", event_id=event_id, active=active)

    # ------------------------------------------------------------------
    # Manual transitions
    # ------------------------------------------------------------------
    async def end_event(self, event_id: str) -> None:
        async def _end(tx: StoreTransaction) -> None:
            event = await self._load(tx, event_id)
            now = self.clock.now()
            if not event.has_started(now):
                raise NotStartedError("Cannot end event that has not started")
            if event.status == "completed":
                raise EventCompletedError()
            if event.attendance_code:
                await tx.release_code(event.attendance_code, event.id)
            event.end_time = now
            event.status = "completed"
            event.code_active = False
            event.updated_at = now
            await tx.save_event(event)

        await self.store.run_transaction(_end)
        log.info("event_ended", event_id=event_id)

    async def cancel_event(self, event_id: str) -> None:
        """Unconditional, including already completed events."""

        async def _cancel(tx: StoreTransaction) -> str:
            event = await self._load(tx, event_id)
            previous = event.status
            event.status = "cancelled"
            event.updated_at = self.clock.now()
            await tx.save_event(event)
            return previous

        previous = await self.store.run_transaction(_cancel)
        log.info("event_cancelled", event_id=event_id, previous_status=previous)

    # ------------------------------------------------------------------
    # Time-driven batch transitions
    # ------------------------------------------------------------------
    def _completion_filter(self) -> EventFilter:
        return EventFilter(statuses=list(OPEN_STATUSES), end_before=self.clock.now())

    def _cleanup_filter(self) -> EventFilter:
        return EventFilter(statuses=["completed"], end_before=self.clock.now() - self.cleanup_after, cleaned_up=False)

    async def events_needing_completion(self) -> list[str]:
        """Events whose end time has passed but are still upcoming/active. Events without end_time never qualify."""
        return [e.id for e in await self.store.find_events(self._completion_filter())]

    async def complete_events(self, event_ids: list[str]) -> int:
        if not event_ids:
            return 0
        return await self.store.update_events(
            event_ids,
            {"status": "completed", "updated_at": self.clock.now()},
            guard=self._completion_filter(),
        )

    async def events_for_cleanup(self) -> list[str]:
        """Completed events that ended more than `cleanup_after` ago and are not yet hidden."""
        return [e.id for e in await self.store.find_events(self._cleanup_filter())]

    async def mark_events_cleaned_up(self, event_ids: list[str]) -> int:
        """Soft-hide only; data is kept. Codes still active on these events leave the active index."""
        if not event_ids:
            return 0
        guard = self._cleanup_filter()
        changed = await self.store.update_events(
            event_ids,
            {"cleaned_up": True, "code_active": False, "updated_at": self.clock.now()},
            guard=guard,
        )
        if changed:
            hidden = await self.store.find_events(EventFilter(ids=event_ids, cleaned_up=True))
            await self.store.release_codes_for_events([e.id for e in hidden])
        return changed

    async def complete_ended_events(self) -> int:
        return await self.complete_events(await self.events_needing_completion())

    async def clean_up_completed_events(self) -> int:
        return await self.mark_events_cleaned_up(await self.events_for_cleanup())

    async def _load(self, tx: StoreTransaction, event_id: str) -> Event:
        event = await tx.get_event(event_id)
        if not event:
            raise NotFoundError("Event not found")
        return event
