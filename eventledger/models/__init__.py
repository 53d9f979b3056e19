from eventledger.models.attendance import AttendanceResult, SweepResult
from eventledger.models.audit_log import AuditLog
from eventledger.models.event import Event, EventCreate, EventFilter, EventUpdate
from eventledger.models.failed_job import FailedJob
from eventledger.models.point_ledger import BalanceAudit, PointLedgerEntry
from eventledger.models.user import AttendedEvent, User

__all__ = [
    "AttendanceResult",
    "AttendedEvent",
    "AuditLog",
    "BalanceAudit",
    "Event",
    "EventCreate",
    "EventFilter",
    "EventUpdate",
    "FailedJob",
    "PointLedgerEntry",
    "SweepResult",
    "User",
]
