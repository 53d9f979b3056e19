"""Attendance submit rate limit: per-user counter per minute via Redis."""

from datetime import datetime, timezone

from eventledger.core.config import get_settings
from eventledger.core.logging import get_logger

log = get_logger(__name__)

KEY_PREFIX = "attendance:submit_count"
TTL_SECONDS = 120  # two windows so a late increment still expires


def _key(user_id: str, now: datetime | None = None) -> str:
    minute = (now or datetime.now(timezone.utc)).strftime("%Y%m%d%H%M")
    return f"{KEY_PREFIX}:{user_id}:{minute}"


async def incr_submit_count(redis, user_id: str, now: datetime | None = None) -> int:
    """Increment and return this minute's count; set TTL on first increment. Fails open (0) if Redis is down."""
    key = _key(user_id, now)
    try:
        n = await redis.incr(key)
        if n == 1:
            await redis.expire(key, TTL_SECONDS)
        return n
    except Exception as e:
        log.warning("rate_limit_unavailable", error=str(e))
        return 0


def submit_limit_per_minute() -> int:
    return get_settings().attendance_submit_limit_per_minute
