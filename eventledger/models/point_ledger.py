import uuid
from datetime import datetime, timezone
from typing import Literal

from pydantic import BaseModel, Field, computed_field

LedgerSource = Literal["attendance", "manual"]


class PointLedgerEntry(BaseModel):
    """Immutable signed point movement. Manual entries are the admin adjustment journal."""

    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    user_id: str
    points: int  # positive = credit, negative = debit
    source: LedgerSource
    reason: str
    adjusted_by: str | None = None  # admin id; None for self-service attendance
    event_id: str | None = None
    balance_after: int
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    model_config = {"frozen": True}


class BalanceAudit(BaseModel):
    user_id: str
    cached_points: int
    ledger_total: int
    attendance_total: int
    snapshot_total: int
    entry_count: int

    @computed_field
    @property
    def consistent(self) -> bool:
        return self.cached_points == self.ledger_total and self.attendance_total == self.snapshot_total
