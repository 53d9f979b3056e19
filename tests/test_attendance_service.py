"""Code redemption: gating order, exactly-once crediting and admin-added attendance."""

import asyncio
from datetime import timedelta

import pytest

from eventledger.core.exceptions import AlreadyAttendedError, NotFoundError
from eventledger.models.event import EventUpdate
from eventledger.services import users as users_service
from eventledger.services.attendance import check_redeemable

pytestmark = pytest.mark.asyncio


async def test_submit_success(lifecycle, ledger, make_event, member, store, clock):
    event = await make_event(points_value=15)
    code = await lifecycle.generate_attendance_code(event.id)

    result = await ledger.submit_attendance(member.id, code)

    assert result.success is True
    assert result.message == "attendance recorded"
    assert result.points_earned == 15
    assert result.event_name == event.name
    assert result.event_id == event.id

    user = await store.get_user(member.id)
    assert user.points == 15
    assert [a.event_id for a in user.attended_events] == [event.id]
    snapshot = user.attended_events[0]
    assert snapshot.event_name == event.name
    assert snapshot.location == event.location
    assert snapshot.event_date == event.start_time
    assert snapshot.attended_at == clock.now()
    assert (await store.get_event(event.id)).attendees == [member.id]

    entries = await store.list_ledger_entries(member.id)
    assert len(entries) == 1
    assert entries[0].source == "attendance"
    assert entries[0].event_id == event.id
    assert entries[0].balance_after == 15
    assert entries[0].adjusted_by is None


async def test_submit_twice(lifecycle, ledger, make_event, member, store):
    event = await make_event()
    code = await lifecycle.generate_attendance_code(event.id)
    await ledger.submit_attendance(member.id, code)

    again = await ledger.submit_attendance(member.id, code)

    assert again.success is False
    assert again.reason == "ALREADY_ATTENDED"
    assert again.message == "already attended"
    assert (await store.get_user(member.id)).points == 10


@pytest.mark.parametrize("code", ["", "12345", "1234567", "12a456", "abcdef"])
async def test_submit_bad_format(ledger, member, code):
    result = await ledger.submit_attendance(member.id, code)
    assert result.success is False
    assert result.reason == "INVALID_FORMAT"
    assert result.message == "invalid code format"


async def test_submit_strips_whitespace(lifecycle, ledger, make_event, member):
    event = await make_event()
    code = await lifecycle.generate_attendance_code(event.id)
    result = await ledger.submit_attendance(member.id, f"  {code} ")
    assert result.success is True


async def test_submit_unknown_code(ledger, make_event, member):
    await make_event()
    result = await ledger.submit_attendance(member.id, "999999")
    assert result.reason == "INVALID_CODE"
    assert result.message == "invalid code"


async def test_submit_inactive_code(lifecycle, ledger, make_event, member):
    event = await make_event()
    code = await lifecycle.generate_attendance_code(event.id)
    await lifecycle.toggle_attendance_code(event.id, False)
    result = await ledger.submit_attendance(member.id, code)
    assert result.reason == "CODE_NOT_ACTIVE"
    assert result.message == "code not active"


async def test_submit_after_manual_end(lifecycle, ledger, make_event, member):
    event = await make_event()
    code = await lifecycle.generate_attendance_code(event.id)
    await lifecycle.end_event(event.id)
    result = await ledger.submit_attendance(member.id, code)
    assert result.reason == "CODE_NOT_ACTIVE"


async def test_submit_before_start(lifecycle, ledger, make_event, member, clock):
    event = await make_event(start_in=timedelta(minutes=-5))
    code = await lifecycle.generate_attendance_code(event.id)
    clock.advance(minutes=-10)
    result = await ledger.submit_attendance(member.id, code)
    assert result.reason == "NOT_STARTED"
    assert result.message == "event has not started yet"


async def test_submit_after_end_time(lifecycle, ledger, make_event, member, clock, store):
    event = await make_event(start_in=timedelta(hours=-1), end_in=timedelta(hours=1))
    code = await lifecycle.generate_attendance_code(event.id)
    clock.advance(hours=1)
    result = await ledger.submit_attendance(member.id, code)
    assert result.reason == "EVENT_ENDED"
    assert result.message == "event has ended"
    assert (await store.get_user(member.id)).points == 0


async def test_submit_cancelled_event(lifecycle, ledger, make_event, member):
    event = await make_event()
    code = await lifecycle.generate_attendance_code(event.id)
    await lifecycle.cancel_event(event.id)
    result = await ledger.submit_attendance(member.id, code)
    assert result.reason == "EVENT_ENDED"


def _interleave_before_redeem(monkeypatch, store, action):
    """Run `action` after the lookup pre-checks pass but before the redeem transaction opens."""
    original = store.run_transaction

    async def _run_transaction(fn):
        monkeypatch.setattr(store, "run_transaction", original)
        await action()
        return await original(fn)

    monkeypatch.setattr(store, "run_transaction", _run_transaction)


async def test_code_deactivated_between_lookup_and_redeem(lifecycle, ledger, make_event, member, store, monkeypatch):
    event = await make_event(points_value=15)
    code = await lifecycle.generate_attendance_code(event.id)
    _interleave_before_redeem(monkeypatch, store, lambda: lifecycle.toggle_attendance_code(event.id, False))

    result = await ledger.submit_attendance(member.id, code)

    assert result.success is False
    assert result.reason == "CODE_NOT_ACTIVE"
    assert (await store.get_user(member.id)).points == 0
    assert (await store.get_event(event.id)).attendees == []
    assert await store.list_ledger_entries(member.id) == []


async def test_event_cancelled_between_lookup_and_redeem(lifecycle, ledger, make_event, member, store, monkeypatch):
    event = await make_event(points_value=15)
    code = await lifecycle.generate_attendance_code(event.id)
    _interleave_before_redeem(monkeypatch, store, lambda: lifecycle.cancel_event(event.id))

    result = await ledger.submit_attendance(member.id, code)

    assert result.reason == "EVENT_ENDED"
    assert (await store.get_user(member.id)).points == 0


async def test_submit_unknown_user(lifecycle, ledger, make_event, store):
    event = await make_event()
    code = await lifecycle.generate_attendance_code(event.id)
    result = await ledger.submit_attendance("ghost", code)
    assert result.reason == "USER_NOT_FOUND"
    assert (await store.get_event(event.id)).attendees == []


async def test_concurrent_submits_credit_once(lifecycle, ledger, make_event, member, store):
    event = await make_event(points_value=20)
    code = await lifecycle.generate_attendance_code(event.id)

    results = await asyncio.gather(*(ledger.submit_attendance(member.id, code) for _ in range(8)))

    assert sum(r.success for r in results) == 1
    assert {r.reason for r in results if not r.success} == {"ALREADY_ATTENDED"}
    user = await store.get_user(member.id)
    assert user.points == 20
    assert len(user.attended_events) == 1
    assert len(await store.list_ledger_entries(member.id)) == 1
    assert (await store.get_event(event.id)).attendees == [member.id]


async def test_concurrent_distinct_users(lifecycle, ledger, make_event, store, clock):
    event = await make_event(points_value=5)
    code = await lifecycle.generate_attendance_code(event.id)
    users = [
        await users_service.sync_user(store, f"user-{i}", f"u{i}@example.com", clock=clock)
        for i in range(6)
    ]

    results = await asyncio.gather(*(ledger.submit_attendance(u.id, code) for u in users))

    assert all(r.success for r in results)
    stored = await store.get_event(event.id)
    assert sorted(stored.attendees) == sorted(u.id for u in users)
    for u in users:
        assert (await store.get_user(u.id)).points == 5


async def test_add_attendee_without_code(ledger, make_event, member, admin, store):
    event = await make_event(start_in=timedelta(days=2), points_value=30)

    await ledger.add_attendee(event.id, member.id, admin.id)

    user = await store.get_user(member.id)
    assert user.points == 30
    assert user.attended_events[0].event_id == event.id
    entry = (await store.list_ledger_entries(member.id))[0]
    assert entry.source == "attendance"
    assert entry.adjusted_by == admin.id
    assert await ledger.has_attended(member.id, event.id) is True

    with pytest.raises(AlreadyAttendedError):
        await ledger.add_attendee(event.id, member.id, admin.id)
    assert (await store.get_user(member.id)).points == 30


async def test_add_attendee_missing_records(ledger, make_event, member, admin):
    event = await make_event()
    with pytest.raises(NotFoundError):
        await ledger.add_attendee("evt_missing", member.id, admin.id)
    with pytest.raises(NotFoundError):
        await ledger.add_attendee(event.id, "ghost", admin.id)


async def test_admin_added_then_code_submit(lifecycle, ledger, make_event, member, admin):
    event = await make_event()
    code = await lifecycle.generate_attendance_code(event.id)
    await ledger.add_attendee(event.id, member.id, admin.id)
    result = await ledger.submit_attendance(member.id, code)
    assert result.reason == "ALREADY_ATTENDED"


async def test_snapshot_survives_event_edit(lifecycle, ledger, make_event, member, admin, store):
    event = await make_event(start_in=timedelta(days=1), name="Original name")
    await ledger.add_attendee(event.id, member.id, admin.id)
    await lifecycle.update_event(event.id, EventUpdate(name="New name", location="Elsewhere"))

    history = await ledger.attendance_history(member.id)

    assert history[0].event_name == "Original name"
    assert history[0].location == "Pier 4"


async def test_attendance_history_order(ledger, make_event, member, admin):
    early = await make_event(start_in=timedelta(days=-3), name="Early")
    late = await make_event(start_in=timedelta(days=-1), name="Late")
    await ledger.add_attendee(early.id, member.id, admin.id)
    await ledger.add_attendee(late.id, member.id, admin.id)

    history = await ledger.attendance_history(member.id)

    assert [a.event_name for a in history] == ["Late", "Early"]


async def test_get_attendees(lifecycle, ledger, make_event, member, admin):
    event = await make_event()
    await ledger.add_attendee(event.id, member.id, admin.id)
    attendees = await ledger.get_attendees(event.id)
    assert [u.id for u in attendees] == [member.id]
    with pytest.raises(NotFoundError):
        await ledger.get_attendees("evt_missing")


async def test_check_redeemable_order(make_event, lifecycle, clock):
    event = await make_event()
    code = await lifecycle.generate_attendance_code(event.id)
    event = await lifecycle.get_event(event.id)
    assert check_redeemable(event, "000000", clock.now()) == "INVALID_CODE"
    assert check_redeemable(event, code, clock.now()) is None
    event.code_active = False
    event.status = "cancelled"
    assert check_redeemable(event, code, clock.now()) == "CODE_NOT_ACTIVE"
