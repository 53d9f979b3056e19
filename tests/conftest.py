import itertools
import os
from datetime import datetime, timedelta, timezone
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

# In-memory store, no Redis rate limiting
os.environ["STORE_BACKEND"] = "memory"
os.environ["ATTENDANCE_SUBMIT_LIMIT_PER_MINUTE"] = "0"
os.environ["LIFECYCLE_JOB_SECRET"] = ""
os.environ["REDIS_URL"] = "redis://localhost:6379/0"
os.environ.setdefault("SECRET_KEY", "test-secret-key-min-32-characters-long")

from eventledger.core.clock import FixedClock  # noqa: E402
from eventledger.models.event import EventCreate, EventUpdate  # noqa: E402
from eventledger.services import users as users_service  # noqa: E402
from eventledger.services.attendance import AttendanceLedger  # noqa: E402
from eventledger.services.events import EventLifecycle  # noqa: E402
from eventledger.services.points import PointAccountingService  # noqa: E402
from eventledger.storage.memory import InMemoryStore  # noqa: E402

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def sequential_codes(start: int = 100001):
    counter = itertools.count(start)
    return lambda: str(next(counter))


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock(NOW)


@pytest.fixture
def store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture
def lifecycle(store, clock) -> EventLifecycle:
    return EventLifecycle(
        store,
        clock,
        code_factory=sequential_codes(),
        max_code_attempts=10,
        cleanup_after=timedelta(hours=24),
    )


@pytest.fixture
def ledger(store, clock) -> AttendanceLedger:
    return AttendanceLedger(store, clock)


@pytest.fixture
def points(store, clock) -> PointAccountingService:
    return PointAccountingService(store, clock)


@pytest_asyncio.fixture
async def admin(store, clock):
    return await users_service.sync_user(store, "admin-1", "admin@example.com", "Admin", is_admin=True, clock=clock)


@pytest_asyncio.fixture
async def member(store, clock):
    return await users_service.sync_user(store, "member-1", "member@example.com", "Member", clock=clock)


@pytest.fixture
def make_event(lifecycle, clock, admin):
    """Create an event starting `start_in` from now, optionally with an end time `end_in` from now."""

    async def _make(
        start_in: timedelta = timedelta(hours=-1),
        end_in: timedelta | None = None,
        points_value: int = 10,
        name: str = "Beach cleanup",
    ):
        saved = clock.now()
        start = saved + start_in
        # edits are only allowed before start, so build past events from just before their start
        if start <= saved:
            clock.set(start - timedelta(minutes=1))
        event = await lifecycle.create_event(
            EventCreate(
                name=name,
                description="Bring gloves",
                location="Pier 4",
                start_time=start,
                points_value=points_value,
            ),
            admin.id,
        )
        if end_in is not None:
            await lifecycle.update_event(event.id, EventUpdate(end_time=saved + end_in))
        clock.set(saved)
        return await lifecycle.get_event(event.id)

    return _make


def _session_client(cookie: str | None) -> AsyncClient:
    from eventledger.deps import SESSION_COOKIE_NAME
    from eventledger.main import app

    cookies = {SESSION_COOKIE_NAME: cookie} if cookie else None
    return AsyncClient(transport=ASGITransport(app=app), base_url="http://test", cookies=cookies)


@pytest_asyncio.fixture
async def api(store, clock):
    """Point the app's store and clock dependencies at the test fixtures."""
    from eventledger.deps import get_clock
    from eventledger.main import app
    from eventledger.storage.base import get_store

    app.dependency_overrides[get_store] = lambda: store
    app.dependency_overrides[get_clock] = lambda: clock
    yield app
    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def client(api) -> AsyncGenerator[AsyncClient, None]:
    async with _session_client(None) as ac:
        yield ac


@pytest_asyncio.fixture
async def member_client(api, member) -> AsyncGenerator[AsyncClient, None]:
    from eventledger.core.security import create_session_cookie

    async with _session_client(create_session_cookie({"user_id": member.id})) as ac:
        yield ac


@pytest_asyncio.fixture
async def admin_client(api, admin) -> AsyncGenerator[AsyncClient, None]:
    from eventledger.core.security import create_session_cookie

    async with _session_client(create_session_cookie({"user_id": admin.id})) as ac:
        yield ac


@pytest.fixture
def session_for(api):
    """Open a client whose session carries the given identity-service claims."""
    from eventledger.core.security import create_session_cookie

    def _open(claims: dict) -> AsyncClient:
        return _session_client(create_session_cookie(claims))

    return _open
