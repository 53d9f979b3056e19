"""Run ARQ worker. Usage: python -m eventledger.worker.run_worker (or `arq eventledger.worker.run_worker.WorkerSettings`)"""

from arq import run_worker
from arq.cron import cron

from eventledger.core.config import get_settings
from eventledger.core.logging import configure_logging
from eventledger.worker.tasks import get_redis_settings, lifecycle_sweep, shutdown, startup


def sweep_minutes(interval: int) -> set[int]:
    """Minutes of the hour on which the sweep fires."""
    return set(range(0, 60, interval))


class WorkerSettings:
    redis_settings = get_redis_settings()
    functions = [lifecycle_sweep]
    cron_jobs = [
        cron(
            lifecycle_sweep,
            minute=sweep_minutes(get_settings().lifecycle_sweep_interval_minutes),
            second=0,
            run_at_startup=True,
        ),
    ]
    on_startup = startup
    on_shutdown = shutdown


def main() -> None:
    settings = get_settings()
    configure_logging(debug=settings.debug, service="eventledger-worker")
    run_worker(WorkerSettings)


if __name__ == "__main__":
    main()
