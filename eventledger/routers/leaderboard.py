from fastapi import APIRouter, Depends, Query

from eventledger.routers.serializers import leaderboard_out
from eventledger.services import users as users_service
from eventledger.storage.base import DocumentStore, get_store

router = APIRouter()


@router.get("")
async def leaderboard(
    limit: int = Query(3, ge=1),
    store: DocumentStore = Depends(get_store),
):
    """Top users by points. Public; `limit` above 10 is capped."""
    users = await users_service.leaderboard(store, limit)
    return {"leaderboard": [leaderboard_out(u) for u in users]}
