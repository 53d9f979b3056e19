import asyncio
from typing import Any, Awaitable, Callable, TypeVar

from eventledger.models.audit_log import AuditLog
from eventledger.models.event import Event, EventFilter
from eventledger.models.failed_job import FailedJob
from eventledger.models.point_ledger import PointLedgerEntry
from eventledger.models.user import User
from eventledger.storage.base import DocumentStore, StoreTransaction

T = TypeVar("T")


class _MemoryTransaction(StoreTransaction):
    """Stages writes on copies; the store applies them only after the transaction function returns."""

    def __init__(self, store: "InMemoryStore") -> None:
        self._store = store
        self.events: dict[str, Event] = {}
        self.users: dict[str, User] = {}
        self.entries: list[PointLedgerEntry] = []
        self.codes: dict[str, str | None] = {}  # None marks a release

    async def get_event(self, event_id: str) -> Event | None:
        event = self.events[event_id] if event_id in self.events else self._store._events.get(event_id)
        return event.model_copy(deep=True) if event else None

    async def save_event(self, event: Event) -> None:
        self.events[event.id] = event.model_copy(deep=True)

    async def get_user(self, user_id: str) -> User | None:
        user = self.users[user_id] if user_id in self.users else self._store._users.get(user_id)
        return user.model_copy(deep=True) if user else None

    async def save_user(self, user: User) -> None:
        self.users[user.id] = user.model_copy(deep=True)

    async def append_ledger_entry(self, entry: PointLedgerEntry) -> None:
        self.entries.append(entry)

    async def active_code_owner(self, code: str) -> str | None:
        if code in self.codes:
            return self.codes[code]
        return self._store._active_codes.get(code)

    async def claim_code(self, code: str, event_id: str) -> None:
        self.codes[code] = event_id

    async def release_code(self, code: str, event_id: str) -> None:
        if await self.active_code_owner(code) == event_id:
            self.codes[code] = None

    def commit(self) -> None:
        self._store._events.update(self.events)
        self._store._users.update(self.users)
        self._store._ledger.extend(self.entries)
        for code, owner in self.codes.items():
            if owner is None:
                self._store._active_codes.pop(code, None)
            else:
                self._store._active_codes[code] = owner


class InMemoryStore(DocumentStore):
    """Process-local store. One lock serialises every write, so transactions are serializable."""

    def __init__(self) -> None:
        self._lock = asyncio.Lock()
        self._events: dict[str, Event] = {}
        self._users: dict[str, User] = {}
        self._ledger: list[PointLedgerEntry] = []
        self._active_codes: dict[str, str] = {}
        self._audit: list[AuditLog] = []
        self._failed_jobs: list[FailedJob] = []

    async def run_transaction(self, fn: Callable[[StoreTransaction], Awaitable[T]]) -> T:
        async with self._lock:
            tx = _MemoryTransaction(self)
            result = await fn(tx)
            tx.commit()
            return result

    async def insert_event(self, event: Event) -> Event:
        async with self._lock:
            self._events[event.id] = event.model_copy(deep=True)
        return event

    async def get_event(self, event_id: str) -> Event | None:
        event = self._events.get(event_id)
        return event.model_copy(deep=True) if event else None

    async def find_events(self, flt: EventFilter, limit: int | None = None, offset: int = 0) -> list[Event]:
        matched = sorted(
            (e for e in self._events.values() if flt.matches(e)),
            key=lambda e: e.start_time,
            reverse=True,
        )
        matched = matched[offset:]
        if limit is not None:
            matched = matched[:limit]
        return [e.model_copy(deep=True) for e in matched]

    async def delete_event(self, event_id: str) -> bool:
        async with self._lock:
            removed = self._events.pop(event_id, None)
            if removed is None:
                return False
            for code, owner in list(self._active_codes.items()):
                if owner == event_id:
                    del self._active_codes[code]
            return True

    async def update_events(self, event_ids: list[str], fields: dict[str, Any], guard: EventFilter | None = None) -> int:
        changed = 0
        async with self._lock:
            for event_id in event_ids:
                event = self._events.get(event_id)
                if event is None or (guard is not None and not guard.matches(event)):
                    continue
                self._events[event_id] = event.model_copy(update=fields, deep=True)
                changed += 1
        return changed

    async def release_codes_for_events(self, event_ids: list[str]) -> int:
        async with self._lock:
            codes = [c for c, owner in self._active_codes.items() if owner in event_ids]
            for code in codes:
                del self._active_codes[code]
            return len(codes)

    async def insert_user(self, user: User) -> User:
        async with self._lock:
            self._users[user.id] = user.model_copy(deep=True)
        return user

    async def get_user(self, user_id: str) -> User | None:
        user = self._users.get(user_id)
        return user.model_copy(deep=True) if user else None

    async def get_users(self, user_ids: list[str]) -> list[User]:
        return [self._users[u].model_copy(deep=True) for u in user_ids if u in self._users]

    async def search_users(self, query: str, limit: int = 20) -> list[User]:
        q = query.strip().lower()
        hits = [
            u for u in self._users.values()
            if not q or q in u.email.lower() or q in u.display_name.lower()
        ]
        return [u.model_copy(deep=True) for u in hits[:limit]]

    async def top_users(self, limit: int) -> list[User]:
        ranked = sorted(self._users.values(), key=lambda u: -u.points)
        return [u.model_copy(deep=True) for u in ranked[:limit]]

    async def list_ledger_entries(self, user_id: str, limit: int | None = None, offset: int = 0) -> list[PointLedgerEntry]:
        entries = [e for e in reversed(self._ledger) if e.user_id == user_id][offset:]
        return entries[:limit] if limit is not None else entries

    async def insert_audit_log(self, entry: AuditLog) -> None:
        self._audit.append(entry)

    async def list_audit_logs(self, limit: int = 50, entity_id: str | None = None) -> list[AuditLog]:
        rows = [a for a in reversed(self._audit) if entity_id is None or a.entity_id == entity_id]
        return rows[:limit]

    async def insert_failed_job(self, job: FailedJob) -> None:
        self._failed_jobs.append(job)

    def active_codes(self) -> dict[str, str]:
        """Snapshot of the active-code index."""
        return dict(self._active_codes)
