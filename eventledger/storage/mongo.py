import re
from contextlib import contextmanager
from typing import Any, Awaitable, Callable, Iterator, TypeVar

from motor.motor_asyncio import AsyncIOMotorClientSession
from pymongo.errors import PyMongoError

from eventledger.core.exceptions import StorageError
from eventledger.core.logging import get_logger
from eventledger.db.documents import (
    ActiveCodeDocument,
    AuditLogDocument,
    EventDocument,
    FailedJobDocument,
    PointLedgerDocument,
    UserDocument,
)
from eventledger.db.init import get_client
from eventledger.models.audit_log import AuditLog
from eventledger.models.event import Event, EventFilter
from eventledger.models.failed_job import FailedJob
from eventledger.models.point_ledger import PointLedgerEntry
from eventledger.models.user import User
from eventledger.storage.base import DocumentStore, StoreTransaction

T = TypeVar("T")

log = get_logger(__name__)


@contextmanager
def _storage_errors(op: str) -> Iterator[None]:
    try:
        yield
    except PyMongoError as e:
        log.warning("store_error", op=op, error=str(e))
        raise StorageError(f"Store operation failed: {op}") from e


def _event(doc: EventDocument) -> Event:
    return Event.model_validate(doc.model_dump())


def _user(doc: UserDocument) -> User:
    return User.model_validate(doc.model_dump())


def event_query(flt: EventFilter) -> dict[str, Any]:
    """Translate an EventFilter into a MongoDB query document."""
    q: dict[str, Any] = {}
    if flt.ids is not None:
        q["_id"] = {"$in": flt.ids}
    if flt.statuses is not None:
        q["status"] = {"$in": list(flt.statuses)}
    start: dict[str, Any] = {}
    if flt.start_after is not None:
        start["$gt"] = flt.start_after
    if flt.start_before is not None:
        start["$lt"] = flt.start_before
    if start:
        q["start_time"] = start
    if flt.end_before is not None:
        q["end_time"] = {"$ne": None, "$lt": flt.end_before}
    if flt.cleaned_up is True:
        q["cleaned_up"] = True
    elif flt.cleaned_up is False:
        q["cleaned_up"] = {"$ne": True}
    if flt.attendance_code is not None:
        q["attendance_code"] = flt.attendance_code
    if flt.code_active is not None:
        q["code_active"] = flt.code_active
    return q


class _MongoTransaction(StoreTransaction):
    def __init__(self, session: AsyncIOMotorClientSession) -> None:
        self.session = session

    async def get_event(self, event_id: str) -> Event | None:
        doc = await EventDocument.get(event_id, session=self.session)
        return _event(doc) if doc else None

    async def save_event(self, event: Event) -> None:
        await EventDocument(**event.model_dump()).save(session=self.session)

    async def get_user(self, user_id: str) -> User | None:
        doc = await UserDocument.get(user_id, session=self.session)
        return _user(doc) if doc else None

    async def save_user(self, user: User) -> None:
        await UserDocument(**user.model_dump()).save(session=self.session)

    async def append_ledger_entry(self, entry: PointLedgerEntry) -> None:
        await PointLedgerDocument(**entry.model_dump()).insert(session=self.session)

    async def active_code_owner(self, code: str) -> str | None:
        doc = await ActiveCodeDocument.get(code, session=self.session)
        return doc.event_id if doc else None

    async def claim_code(self, code: str, event_id: str) -> None:
        # A concurrent claim of the same code surfaces as a transient write conflict and the transaction is retried.
        await ActiveCodeDocument(id=code, event_id=event_id).save(session=self.session)

    async def release_code(self, code: str, event_id: str) -> None:
        await ActiveCodeDocument.find({"_id": code, "event_id": event_id}, session=self.session).delete(
            session=self.session
        )


class MongoStore(DocumentStore):
    """Beanie/Motor backend. Requires init_db() before first use."""

    async def run_transaction(self, fn: Callable[[StoreTransaction], Awaitable[T]]) -> T:
        async def _callback(session: AsyncIOMotorClientSession) -> T:
            return await fn(_MongoTransaction(session))

        with _storage_errors("transaction"):
            async with await get_client().start_session() as session:
                return await session.with_transaction(_callback)

    async def insert_event(self, event: Event) -> Event:
        with _storage_errors("insert_event"):
            await EventDocument(**event.model_dump()).insert()
        return event

    async def get_event(self, event_id: str) -> Event | None:
        with _storage_errors("get_event"):
            doc = await EventDocument.get(event_id)
        return _event(doc) if doc else None

    async def find_events(self, flt: EventFilter, limit: int | None = None, offset: int = 0) -> list[Event]:
        query = EventDocument.find(event_query(flt)).sort("-start_time").skip(offset)
        if limit is not None:
            query = query.limit(limit)
        with _storage_errors("find_events"):
            docs = await query.to_list()
        return [_event(d) for d in docs]

    async def delete_event(self, event_id: str) -> bool:
        with _storage_errors("delete_event"):
            doc = await EventDocument.get(event_id)
            if doc is None:
                return False
            await doc.delete()
            await ActiveCodeDocument.find(ActiveCodeDocument.event_id == event_id).delete()
        return True

    async def update_events(self, event_ids: list[str], fields: dict[str, Any], guard: EventFilter | None = None) -> int:
        if not event_ids:
            return 0
        query = event_query(guard) if guard is not None else {}
        query["_id"] = {"$in": event_ids}
        with _storage_errors("update_events"):
            result = await EventDocument.get_motor_collection().update_many(query, {"$set": fields})
        return result.modified_count

    async def release_codes_for_events(self, event_ids: list[str]) -> int:
        if not event_ids:
            return 0
        with _storage_errors("release_codes"):
            result = await ActiveCodeDocument.get_motor_collection().delete_many({"event_id": {"$in": event_ids}})
        return result.deleted_count

    async def insert_user(self, user: User) -> User:
        with _storage_errors("insert_user"):
            await UserDocument(**user.model_dump()).save()
        return user

    async def get_user(self, user_id: str) -> User | None:
        with _storage_errors("get_user"):
            doc = await UserDocument.get(user_id)
        return _user(doc) if doc else None

    async def get_users(self, user_ids: list[str]) -> list[User]:
        if not user_ids:
            return []
        with _storage_errors("get_users"):
            docs = await UserDocument.find({"_id": {"$in": user_ids}}).to_list()
        return [_user(d) for d in docs]

    async def search_users(self, query: str, limit: int = 20) -> list[User]:
        q = query.strip()
        criteria: dict[str, Any] = {}
        if q:
            pattern = {"$regex": re.escape(q), "$options": "i"}
            criteria = {"$or": [{"email": pattern}, {"display_name": pattern}]}
        with _storage_errors("search_users"):
            docs = await UserDocument.find(criteria).limit(limit).to_list()
        return [_user(d) for d in docs]

    async def top_users(self, limit: int) -> list[User]:
        with _storage_errors("top_users"):
            docs = await UserDocument.find({}).sort("-points").limit(limit).to_list()
        return [_user(d) for d in docs]

    async def list_ledger_entries(self, user_id: str, limit: int | None = None, offset: int = 0) -> list[PointLedgerEntry]:
        query = PointLedgerDocument.find(PointLedgerDocument.user_id == user_id).sort("-created_at").skip(offset)
        if limit is not None:
            query = query.limit(limit)
        with _storage_errors("list_ledger_entries"):
            docs = await query.to_list()
        return [PointLedgerEntry.model_validate(d.model_dump()) for d in docs]

    async def insert_audit_log(self, entry: AuditLog) -> None:
        with _storage_errors("insert_audit_log"):
            await AuditLogDocument(**entry.model_dump()).insert()

    async def list_audit_logs(self, limit: int = 50, entity_id: str | None = None) -> list[AuditLog]:
        criteria = {"entity_id": entity_id} if entity_id else {}
        with _storage_errors("list_audit_logs"):
            docs = await AuditLogDocument.find(criteria).sort("-created_at").limit(limit).to_list()
        return [AuditLog.model_validate(d.model_dump()) for d in docs]

    async def insert_failed_job(self, job: FailedJob) -> None:
        with _storage_errors("insert_failed_job"):
            await FailedJobDocument(**job.model_dump()).insert()
