"""Document store boundary: events, users, the point ledger and the active-code index."""

from abc import ABC, abstractmethod
from functools import lru_cache
from typing import Any, Awaitable, Callable, TypeVar

from eventledger.core.config import get_settings
from eventledger.models.audit_log import AuditLog
from eventledger.models.event import Event, EventFilter
from eventledger.models.failed_job import FailedJob
from eventledger.models.point_ledger import PointLedgerEntry
from eventledger.models.user import User

T = TypeVar("T")


class StoreTransaction(ABC):
    """Reads and writes issued inside one transactional read-modify-write.

    Nothing written through a transaction is visible to other callers until the
    transaction function returns; raising from it discards every write.
    """

    @abstractmethod
    async def get_event(self, event_id: str) -> Event | None:
        ...

    @abstractmethod
    async def save_event(self, event: Event) -> None:
        ...

    @abstractmethod
    async def get_user(self, user_id: str) -> User | None:
        ...

    @abstractmethod
    async def save_user(self, user: User) -> None:
        ...

    @abstractmethod
    async def append_ledger_entry(self, entry: PointLedgerEntry) -> None:
        ...

    @abstractmethod
    async def active_code_owner(self, code: str) -> str | None:
        """Return the id of the event currently holding `code` as an active code."""
        ...

    @abstractmethod
    async def claim_code(self, code: str, event_id: str) -> None:
        ...

    @abstractmethod
    async def release_code(self, code: str, event_id: str) -> None:
        """Drop the index entry if it still belongs to `event_id`."""
        ...


class DocumentStore(ABC):
    @abstractmethod
    async def run_transaction(self, fn: Callable[[StoreTransaction], Awaitable[T]]) -> T:
        """Run `fn` atomically. May call `fn` more than once on transient conflicts."""
        ...

    # Events
    @abstractmethod
    async def insert_event(self, event: Event) -> Event:
        ...

    @abstractmethod
    async def get_event(self, event_id: str) -> Event | None:
        ...

    @abstractmethod
    async def find_events(self, flt: EventFilter, limit: int | None = None, offset: int = 0) -> list[Event]:
        """Matching events, newest start first."""
        ...

    @abstractmethod
    async def delete_event(self, event_id: str) -> bool:
        ...

    @abstractmethod
    async def update_events(self, event_ids: list[str], fields: dict[str, Any], guard: EventFilter | None = None) -> int:
        """Batch `$set` on the given events that still match `guard`; returns how many changed."""
        ...

    @abstractmethod
    async def release_codes_for_events(self, event_ids: list[str]) -> int:
        ...

    # Users and ledger
    @abstractmethod
    async def insert_user(self, user: User) -> User:
        ...

    @abstractmethod
    async def get_user(self, user_id: str) -> User | None:
        ...

    @abstractmethod
    async def get_users(self, user_ids: list[str]) -> list[User]:
        ...

    @abstractmethod
    async def search_users(self, query: str, limit: int = 20) -> list[User]:
        ...

    @abstractmethod
    async def top_users(self, limit: int) -> list[User]:
        """Users by cached points, highest first."""
        ...

    @abstractmethod
    async def list_ledger_entries(self, user_id: str, limit: int | None = None, offset: int = 0) -> list[PointLedgerEntry]:
        """Entries for a user, newest first."""
        ...

    # Audit trail and dead letters
    @abstractmethod
    async def insert_audit_log(self, entry: AuditLog) -> None:
        ...

    @abstractmethod
    async def list_audit_logs(self, limit: int = 50, entity_id: str | None = None) -> list[AuditLog]:
        ...

    @abstractmethod
    async def insert_failed_job(self, job: FailedJob) -> None:
        ...


@lru_cache
def get_store() -> DocumentStore:
    settings = get_settings()
    if settings.store_backend == "memory":
        from eventledger.storage.memory import InMemoryStore
        return InMemoryStore()
    from eventledger.storage.mongo import MongoStore
    return MongoStore()
