"""Lifecycle sweep: completion and cleanup passes, idempotent re-runs."""

from datetime import timedelta

import pytest

from eventledger.services.sweeper import LifecycleSweeper

pytestmark = pytest.mark.asyncio


@pytest.fixture
def sweeper(lifecycle) -> LifecycleSweeper:
    return LifecycleSweeper(lifecycle)


async def test_sweep_completes_ended_events(sweeper, lifecycle, make_event, clock):
    ending = await make_event(start_in=timedelta(hours=1), end_in=timedelta(hours=2))
    open_ended = await make_event(start_in=timedelta(hours=-5))
    clock.advance(hours=3)

    result = await sweeper.run_lifecycle_sweep()

    assert result.completed_count == 1
    assert result.cleaned_up_count == 0
    assert (await lifecycle.get_event(ending.id)).status == "completed"
    # no end_time means it never auto-completes
    assert (await lifecycle.get_event(open_ended.id)).status == "upcoming"


async def test_sweep_is_idempotent(sweeper, make_event, clock):
    await make_event(start_in=timedelta(hours=1), end_in=timedelta(hours=2))
    clock.advance(hours=3)
    first = await sweeper.run_lifecycle_sweep()
    second = await sweeper.run_lifecycle_sweep()
    assert first.completed_count == 1
    assert second.completed_count == 0
    assert second.cleaned_up_count == 0


async def test_sweep_leaves_future_end_alone(sweeper, lifecycle, make_event):
    event = await make_event(start_in=timedelta(hours=-1), end_in=timedelta(hours=1))
    result = await sweeper.run_lifecycle_sweep()
    assert result.completed_count == 0
    assert (await lifecycle.get_event(event.id)).status == "upcoming"


async def test_sweep_skips_cancelled(sweeper, lifecycle, make_event, clock):
    event = await make_event(start_in=timedelta(hours=1), end_in=timedelta(hours=2))
    await lifecycle.cancel_event(event.id)
    clock.advance(hours=3)
    result = await sweeper.run_lifecycle_sweep()
    assert result.completed_count == 0
    assert (await lifecycle.get_event(event.id)).status == "cancelled"


async def test_cleanup_after_window(sweeper, lifecycle, make_event, clock, store):
    event = await make_event()
    await lifecycle.end_event(event.id)

    clock.advance(hours=23)
    assert (await sweeper.run_lifecycle_sweep()).cleaned_up_count == 0

    clock.advance(hours=2)
    result = await sweeper.run_lifecycle_sweep()
    assert result.cleaned_up_count == 1
    assert (await sweeper.run_lifecycle_sweep()).cleaned_up_count == 0

    hidden = await lifecycle.get_event(event.id)
    assert hidden.cleaned_up is True
    assert hidden.status == "completed"
    assert event.id not in [e.id for e in await lifecycle.list_events()]
    assert event.id in [e.id for e in await lifecycle.list_events(include_cleaned_up=True)]


async def test_complete_then_cleanup_across_sweeps(sweeper, lifecycle, make_event, clock, store):
    event = await make_event(start_in=timedelta(hours=-2), end_in=timedelta(hours=1))
    code = await lifecycle.generate_attendance_code(event.id)
    clock.advance(hours=2)

    assert (await sweeper.run_lifecycle_sweep()).completed_count == 1
    completed = await lifecycle.get_event(event.id)
    assert completed.status == "completed"
    assert completed.code_active is True
    assert store.active_codes() == {code: event.id}

    clock.advance(hours=25)
    assert (await sweeper.run_lifecycle_sweep()).cleaned_up_count == 1
    cleaned = await lifecycle.get_event(event.id)
    assert cleaned.cleaned_up is True
    assert cleaned.code_active is False
    assert store.active_codes() == {}


async def test_batch_guard_rechecks_selection(lifecycle, make_event):
    event = await make_event(start_in=timedelta(hours=-1), end_in=timedelta(hours=1))
    assert await lifecycle.complete_events([event.id]) == 0
    assert await lifecycle.complete_events([]) == 0
    assert await lifecycle.mark_events_cleaned_up([event.id]) == 0
    assert (await lifecycle.get_event(event.id)).status == "upcoming"
