"""Lifecycle sweep: complete ended events, then soft-hide events completed more than the cleanup window ago."""

from eventledger.core.logging import get_logger
from eventledger.models.attendance import SweepResult
from eventledger.services.events import EventLifecycle

log = get_logger(__name__)


class LifecycleSweeper:
    """
    Stateless coordinator. Invoked by the worker cron or on demand; re-running
    with nothing changed is a no-op because every batch write re-applies the
    selection guard.
    """

    def __init__(self, lifecycle: EventLifecycle) -> None:
        self.lifecycle = lifecycle

    async def run_lifecycle_sweep(self) -> SweepResult:
        result = SweepResult(
            completed_count=await self.lifecycle.complete_ended_events(),
            cleaned_up_count=await self.lifecycle.clean_up_completed_events(),
        )
        log.info(
            "lifecycle_sweep",
            completed_count=result.completed_count,
            cleaned_up_count=result.cleaned_up_count,
        )
        return result
