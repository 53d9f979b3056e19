"""Point ledger and balance updates. Every balance change is a ledger entry written in the same transaction."""

from datetime import datetime

from eventledger.core.clock import Clock, SystemClock
from eventledger.core.exceptions import NotFoundError, ValidationError
from eventledger.core.logging import get_logger
from eventledger.models.point_ledger import BalanceAudit, LedgerSource, PointLedgerEntry
from eventledger.models.user import User
from eventledger.storage.base import DocumentStore, StoreTransaction

log = get_logger(__name__)


async def apply_ledger_entry(
    tx: StoreTransaction,
    user: User,
    points: int,
    source: LedgerSource,
    reason: str,
    now: datetime,
    adjusted_by: str | None = None,
    event_id: str | None = None,
) -> PointLedgerEntry:
    """
    Append a ledger entry and move the cached balance by the same delta.
    Caller owns the transaction and must save any other change it made to `user`
    before or after; this saves the user itself.
    """
    balance_after = user.points + points
    entry = PointLedgerEntry(
        user_id=user.id,
        points=points,
        source=source,
        reason=reason,
        adjusted_by=adjusted_by,
        event_id=event_id,
        balance_after=balance_after,
        created_at=now,
    )
    user.points = balance_after
    user.updated_at = now
    await tx.append_ledger_entry(entry)
    await tx.save_user(user)
    return entry


class PointAccountingService:
    def __init__(self, store: DocumentStore, clock: Clock | None = None) -> None:
        self.store = store
        self.clock = clock or SystemClock()

    async def add_points(self, user_id: str, delta: int, reason: str, admin_id: str) -> int:
        """Manual adjustment (zero or negative allowed, no floor at zero). Returns the new total."""
        invalid = []
        if not isinstance(delta, int) or isinstance(delta, bool):
            invalid.append("points")
        if not (reason or "").strip():
            invalid.append("reason")
        if invalid:
            raise ValidationError(f"Missing or invalid fields: {', '.join(invalid)}", fields=invalid)

        async def _adjust(tx: StoreTransaction) -> int:
            user = await tx.get_user(user_id)
            if not user:
                raise NotFoundError("User not found")
            entry = await apply_ledger_entry(
                tx, user, delta, "manual", reason.strip(), self.clock.now(), adjusted_by=admin_id
            )
            return entry.balance_after

        new_total = await self.store.run_transaction(_adjust)
        log.info("points_adjusted", user_id=user_id, delta=delta, new_total=new_total, adjusted_by=admin_id)
        return new_total

    async def get_balance(self, user_id: str) -> int:
        user = await self.store.get_user(user_id)
        if not user:
            raise NotFoundError("User not found")
        return user.points

    async def list_ledger(self, user_id: str, limit: int | None = 50, offset: int = 0) -> list[PointLedgerEntry]:
        return await self.store.list_ledger_entries(user_id, limit=limit, offset=offset)

    async def audit_balance(self, user_id: str) -> BalanceAudit:
        """Recompute the balance from the ledger and compare it with the cached total and attendance snapshots."""
        user = await self.store.get_user(user_id)
        if not user:
            raise NotFoundError("User not found")
        entries = await self.store.list_ledger_entries(user_id)
        audit = BalanceAudit(
            user_id=user_id,
            cached_points=user.points,
            ledger_total=sum(e.points for e in entries),
            attendance_total=sum(e.points for e in entries if e.source == "attendance"),
            snapshot_total=sum(a.points_earned for a in user.attended_events),
            entry_count=len(entries),
        )
        if not audit.consistent:
            log.warning("balance_mismatch", **audit.model_dump())
        return audit
