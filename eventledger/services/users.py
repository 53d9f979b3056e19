"""User records mirrored from the identity service."""

from eventledger.core.clock import Clock, SystemClock
from eventledger.core.exceptions import NotFoundError, ValidationError
from eventledger.core.logging import get_logger
from eventledger.models.user import User
from eventledger.storage.base import DocumentStore, StoreTransaction

log = get_logger(__name__)

LEADERBOARD_MAX = 10


async def sync_user(
    store: DocumentStore,
    user_id: str,
    email: str,
    display_name: str = "",
    is_admin: bool = False,
    clock: Clock | None = None,
) -> User:
    """
    Upsert profile fields and role flags from an identity-service principal.
    Points and attendance history are never touched here; the write is
    transactional so it cannot clobber a concurrent ledger credit.
    """
    if not (user_id or "").strip():
        raise ValidationError("Missing user id", fields=["user_id"])
    now = (clock or SystemClock()).now()

    async def _write(tx: StoreTransaction) -> tuple[User, bool]:
        user = await tx.get_user(user_id)
        created = user is None
        if created:
            user = User(id=user_id, created_at=now)
        user.email = email
        user.display_name = display_name
        user.is_admin = is_admin
        user.updated_at = now
        await tx.save_user(user)
        return user, created

    user, created = await store.run_transaction(_write)
    log.info("user_created" if created else "user_synced", user_id=user_id, is_admin=is_admin)
    return user


SESSION_CLAIMS = ("email", "display_name", "is_admin")


async def sync_from_session(
    store: DocumentStore,
    user_id: str,
    claims: dict,
    clock: Clock | None = None,
) -> User | None:
    """
    Resolve the session principal to a local user record.

    Unseen principals are created when the session carries an email. Known users
    are re-synced only when a claim present in the session differs from the
    stored value, so plain sessions cost a single read. Claims the session leaves
    out keep their stored values. Returns None for an unseen principal without
    an email.
    """
    user = await store.get_user(user_id)
    present = {k: claims[k] for k in SESSION_CLAIMS if claims.get(k) is not None}
    if "is_admin" in present:
        present["is_admin"] = bool(present["is_admin"])
    if user is None:
        if not (present.get("email") or "").strip():
            return None
    elif all(getattr(user, k) == v for k, v in present.items()):
        return user
    return await sync_user(
        store,
        user_id,
        email=present.get("email", user.email if user else ""),
        display_name=present.get("display_name", user.display_name if user else ""),
        is_admin=present.get("is_admin", user.is_admin if user else False),
        clock=clock,
    )


async def leaderboard(store: DocumentStore, limit: int = 3) -> list[User]:
    """Highest balances first; `limit` is clamped to 1..10."""
    return await store.top_users(max(1, min(limit, LEADERBOARD_MAX)))


async def get_user(store: DocumentStore, user_id: str) -> User:
    user = await store.get_user(user_id)
    if not user:
        raise NotFoundError("User not found")
    return user


async def search_users(store: DocumentStore, query: str, limit: int = 20) -> list[User]:
    return await store.search_users(query, limit=limit)
