from fastapi import APIRouter, Depends, Query

from eventledger.deps import get_attendance_ledger, get_current_user, get_point_accounting
from eventledger.models.user import User
from eventledger.routers.serializers import attended_out, ledger_out, user_out
from eventledger.services.attendance import AttendanceLedger
from eventledger.services.points import PointAccountingService

router = APIRouter()


@router.get("/me")
async def users_me(user: User = Depends(get_current_user)):
    """Return current user with points total."""
    return user_out(user)


@router.get("/me/attended-events")
async def users_me_attended(
    user: User = Depends(get_current_user),
    ledger: AttendanceLedger = Depends(get_attendance_ledger),
):
    history = await ledger.attendance_history(user.id)
    return {"events": [attended_out(a) for a in history]}


@router.get("/me/ledger")
async def users_me_ledger(
    user: User = Depends(get_current_user),
    points: PointAccountingService = Depends(get_point_accounting),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
):
    """Return ledger entries for current user (newest first)."""
    entries = await points.list_ledger(user.id, limit=limit, offset=offset)
    return {"balance": user.points, "entries": [ledger_out(e) for e in entries], "limit": limit, "offset": offset}
