"""Point ledger: manual adjustments, balance identity and user sync."""

import pytest

from eventledger.core.exceptions import NotFoundError, ValidationError
from eventledger.services import users as users_service

pytestmark = pytest.mark.asyncio


async def test_add_points(points, member, admin, store):
    assert await points.add_points(member.id, 50, "Volunteer of the month", admin.id) == 50
    assert await points.add_points(member.id, -80, "Merch redemption", admin.id) == -30
    assert await points.get_balance(member.id) == -30

    entries = await points.list_ledger(member.id)
    assert [e.points for e in entries] == [-80, 50]
    assert [e.balance_after for e in entries] == [-30, 50]
    assert all(e.source == "manual" and e.adjusted_by == admin.id for e in entries)
    assert entries[0].reason == "Merch redemption"


@pytest.mark.parametrize(
    "delta,reason,fields",
    [(True, "x", ["points"]), (2.5, "x", ["points"]), (5, "  ", ["reason"]), (None, "", ["points", "reason"])],
)
async def test_add_points_validation(points, member, admin, delta, reason, fields):
    with pytest.raises(ValidationError) as exc:
        await points.add_points(member.id, delta, reason, admin.id)
    assert exc.value.fields == fields
    assert await points.get_balance(member.id) == 0


async def test_add_zero_points_is_journaled(points, member, admin):
    await points.add_points(member.id, 7, "Bonus", admin.id)
    assert await points.add_points(member.id, 0, "Note only", admin.id) == 7

    entries = await points.list_ledger(member.id)
    assert [e.points for e in entries] == [0, 7]
    assert entries[0].balance_after == 7
    assert entries[0].reason == "Note only"
    assert (await points.audit_balance(member.id)).consistent is True


async def test_add_points_unknown_user(points, admin, store):
    with pytest.raises(NotFoundError):
        await points.add_points("ghost", 10, "bonus", admin.id)
    assert await store.list_ledger_entries("ghost") == []


async def test_list_ledger_paging(points, member, admin):
    for i in range(1, 6):
        await points.add_points(member.id, i, f"bonus {i}", admin.id)
    page = await points.list_ledger(member.id, limit=2, offset=1)
    assert [e.points for e in page] == [4, 3]


async def test_balance_identity(lifecycle, ledger, points, make_event, member, admin):
    event = await make_event(points_value=12)
    code = await lifecycle.generate_attendance_code(event.id)
    await ledger.submit_attendance(member.id, code)
    other = await make_event(name="Park planting", points_value=8)
    await ledger.add_attendee(other.id, member.id, admin.id)
    await points.add_points(member.id, -5, "Correction", admin.id)

    audit = await points.audit_balance(member.id)

    assert audit.cached_points == 15
    assert audit.ledger_total == 15
    assert audit.attendance_total == 20
    assert audit.snapshot_total == 20
    assert audit.entry_count == 3
    assert audit.consistent is True


async def test_balance_audit_detects_drift(points, member, admin, store):
    await points.add_points(member.id, 10, "bonus", admin.id)
    user = await store.get_user(member.id)
    user.points = 999
    await store.insert_user(user)

    audit = await points.audit_balance(member.id)

    assert audit.consistent is False
    assert audit.ledger_total == 10


async def test_sync_user_keeps_points(points, member, admin, store, clock):
    await points.add_points(member.id, 40, "bonus", admin.id)
    synced = await users_service.sync_user(store, member.id, "new@example.com", "Renamed", is_admin=True, clock=clock)
    assert synced.points == 40
    assert synced.email == "new@example.com"
    assert synced.is_admin is True


async def test_sync_user_requires_id(store):
    with pytest.raises(ValidationError):
        await users_service.sync_user(store, " ", "x@example.com")


async def test_search_users(store, member, admin):
    hits = await users_service.search_users(store, "MEMBER")
    assert [u.id for u in hits] == [member.id]
    assert len(await users_service.search_users(store, "")) == 2
    with pytest.raises(NotFoundError):
        await users_service.get_user(store, "ghost")


async def test_sync_from_session_creates_unseen_user(store, clock):
    user = await users_service.sync_from_session(
        store, "new-1", {"user_id": "new-1", "email": "new@example.com", "is_admin": True}, clock=clock
    )
    assert user.id == "new-1"
    assert user.is_admin is True
    assert user.points == 0
    assert user.created_at == clock.now()


async def test_sync_from_session_needs_email_for_unseen_user(store, clock):
    assert await users_service.sync_from_session(store, "ghost", {"user_id": "ghost"}, clock=clock) is None
    assert await store.get_user("ghost") is None


async def test_sync_from_session_keeps_unsent_claims(points, member, admin, store, clock):
    await points.add_points(member.id, 30, "bonus", admin.id)
    clock.advance(minutes=5)

    same = await users_service.sync_from_session(store, member.id, {"user_id": member.id}, clock=clock)
    assert same.updated_at == member.updated_at

    renamed = await users_service.sync_from_session(
        store, member.id, {"user_id": member.id, "display_name": "Renamed"}, clock=clock
    )
    assert renamed.display_name == "Renamed"
    assert renamed.email == member.email
    assert renamed.is_admin is False
    assert renamed.points == 30
    assert renamed.updated_at == clock.now()


async def test_leaderboard_clamps_limit(points, member, admin, store):
    await points.add_points(member.id, 10, "bonus", admin.id)
    assert [u.id for u in await users_service.leaderboard(store, 1)] == [member.id]
    assert [u.id for u in await users_service.leaderboard(store, 0)] == [member.id]
    assert len(await users_service.leaderboard(store, 500)) == 2
