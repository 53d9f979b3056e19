from fastapi import APIRouter, Depends
from fastapi.responses import ORJSONResponse
from pydantic import BaseModel

from eventledger.core.exceptions import RateLimitedError
from eventledger.deps import get_attendance_ledger, get_current_user, get_redis
from eventledger.models.user import User
from eventledger.services import rate_limit
from eventledger.services.attendance import AttendanceLedger

router = APIRouter()


class SubmitAttendanceRequest(BaseModel):
    code: str


@router.post("/submit")
async def attendance_submit(
    body: SubmitAttendanceRequest,
    user: User = Depends(get_current_user),
    ledger: AttendanceLedger = Depends(get_attendance_ledger),
):
    """Redeem an attendance code. Rejections come back as 400 ATTENDANCE_ERROR with the reason."""
    limit = rate_limit.submit_limit_per_minute()
    if limit > 0:
        count = await rate_limit.incr_submit_count(get_redis(), user.id)
        if count > limit:
            raise RateLimitedError("Too many attendance submissions, try again in a minute")

    result = await ledger.submit_attendance(user.id, body.code)
    if not result.success:
        return ORJSONResponse(
            status_code=400,
            content={
                "error": {
                    "message": result.message,
                    "code": "ATTENDANCE_ERROR",
                    "details": {"reason": result.reason},
                }
            },
        )
    return {
        "success": True,
        "message": result.message,
        "points_earned": result.points_earned,
        "event_name": result.event_name,
        "event_id": result.event_id,
    }
