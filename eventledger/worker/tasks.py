"""ARQ job definitions."""

import uuid
from typing import Any

from arq.connections import RedisSettings

from eventledger.core.config import get_settings
from eventledger.core.logging import get_logger
from eventledger.models.failed_job import FailedJob
from eventledger.services.events import EventLifecycle
from eventledger.services.sweeper import LifecycleSweeper
from eventledger.storage.base import get_store

log = get_logger(__name__)


async def _run_with_dlq(
    job_name: str,
    job_id: str | None,
    args: list[Any],
    kwargs: dict[str, Any],
    coro,
) -> Any:
    """Run coroutine; on exception persist to FailedJob then re-raise."""
    try:
        return await coro
    except Exception as e:
        fid = job_id or str(uuid.uuid4())
        log.exception("job_failed", job=job_name, job_id=fid, reason=str(e))
        await get_store().insert_failed_job(
            FailedJob(
                job_name=job_name,
                job_id=fid,
                args=args,
                kwargs=kwargs,
                reason=str(e)[:2000],
                retries=0,
            )
        )
        raise


# Cron: lifecycle sweep
async def lifecycle_sweep(ctx: dict[str, Any]) -> dict[str, int]:
    """Cron job: complete ended events and soft-hide old completed ones."""
    job_id = ctx.get("job_id") if isinstance(ctx.get("job_id"), str) else None
    sweeper = LifecycleSweeper(EventLifecycle(get_store()))
    result = await _run_with_dlq("lifecycle_sweep", job_id, [], {}, sweeper.run_lifecycle_sweep())
    return result.model_dump()


async def startup(ctx: dict) -> None:
    if get_settings().store_backend == "mongo":
        from eventledger.db.init import init_db
        await init_db()
    log.info("worker_startup", store_backend=get_settings().store_backend)


async def shutdown(ctx: dict) -> None:
    pass


def get_redis_settings() -> RedisSettings:
    from urllib.parse import urlparse
    s = get_settings()
    u = urlparse(s.redis_url)
    return RedisSettings(
        host=u.hostname or "localhost",
        port=u.port or 6379,
        password=u.password,
        database=int(u.path.lstrip("/")) if u.path.lstrip("/") else 0,
    )
