"""Shared FastAPI dependencies."""

from functools import lru_cache

import redis.asyncio as aioredis
from fastapi import Depends, Request

from eventledger.core.clock import Clock, SystemClock
from eventledger.core.config import get_settings
from eventledger.core.exceptions import ForbiddenError, UnauthorizedError
from eventledger.core.logging import bind_principal
from eventledger.core.security import load_session_cookie
from eventledger.models.user import User
from eventledger.services import users as users_service
from eventledger.services.attendance import AttendanceLedger
from eventledger.services.events import EventLifecycle
from eventledger.services.points import PointAccountingService
from eventledger.services.sweeper import LifecycleSweeper
from eventledger.storage.base import DocumentStore, get_store

SESSION_COOKIE_NAME = "eventledger_session"

_system_clock = SystemClock()


def get_clock() -> Clock:
    return _system_clock


@lru_cache
def get_redis() -> aioredis.Redis:
    return aioredis.from_url(get_settings().redis_url, decode_responses=True)


def get_event_lifecycle(
    store: DocumentStore = Depends(get_store),
    clock: Clock = Depends(get_clock),
) -> EventLifecycle:
    return EventLifecycle(store, clock)


def get_attendance_ledger(
    store: DocumentStore = Depends(get_store),
    clock: Clock = Depends(get_clock),
) -> AttendanceLedger:
    return AttendanceLedger(store, clock)


def get_point_accounting(
    store: DocumentStore = Depends(get_store),
    clock: Clock = Depends(get_clock),
) -> PointAccountingService:
    return PointAccountingService(store, clock)


def get_sweeper(lifecycle: EventLifecycle = Depends(get_event_lifecycle)) -> LifecycleSweeper:
    return LifecycleSweeper(lifecycle)


async def get_current_user(
    request: Request,
    store: DocumentStore = Depends(get_store),
    clock: Clock = Depends(get_clock),
) -> User:
    """
    Dependency: load session from cookie and return User.
    The session carries the identity-service principal; its profile and role
    flags are mirrored into the local record on first sight or when they change.
    """
    cookie = request.cookies.get(SESSION_COOKIE_NAME)
    if not cookie:
        raise UnauthorizedError("Not authenticated")
    payload = load_session_cookie(cookie)
    if not payload:
        raise UnauthorizedError("Invalid or expired session")
    user_id = payload.get("user_id")
    if not user_id:
        raise UnauthorizedError("Invalid session")
    user = await users_service.sync_from_session(store, user_id, payload, clock=clock)
    if not user:
        raise UnauthorizedError("User not found")
    bind_principal(user.id, user.is_admin)
    return user


async def require_admin(user: User = Depends(get_current_user)) -> User:
    """Dependency: require current user to be an admin."""
    if not user.is_admin:
        raise ForbiddenError("Admin only")
    return user
