"""Common module — shared enums, exceptions, dates, locks, audit and events."""

from leavecore.common.audit import (
    AuditEntry,
    AuditSink,
    AuditTrail,
    InMemoryAuditLog,
    SqlAuditLog,
    create_audit_entry,
)
from leavecore.common.constants import (
    ApprovalLevel,
    Availability,
    CommitmentStatus,
    CommitmentType,
    ConflictLevel,
    Decision,
    DomainEventType,
    EntitlementRule,
    RequestStatus,
    Rounding,
    UserRole,
    WorkingPattern,
)
from leavecore.common.dates import (
    DateRange,
    DateSelection,
    ExplicitDates,
    to_date_set,
    working_dates,
)
from leavecore.common.events import DomainEvent, EventBus, EventPublisher
from leavecore.common.exceptions import (
    AppException,
    ConcurrentModification,
    ConflictBlocked,
    DocumentVerificationPending,
    ForbiddenException,
    InsufficientBalance,
    InvalidTransition,
    InvalidWorkingPattern,
    LedgerIntegrityError,
    NotFoundException,
    UnknownLeaveType,
    ValidationException,
    register_exception_handlers,
)
from leavecore.common.locks import KeyedLocks

__all__ = [
    # Audit
    "AuditEntry",
    "AuditSink",
    "AuditTrail",
    "InMemoryAuditLog",
    "SqlAuditLog",
    "create_audit_entry",
    # Constants / Enums
    "ApprovalLevel",
    "Availability",
    "CommitmentStatus",
    "CommitmentType",
    "ConflictLevel",
    "Decision",
    "DomainEventType",
    "EntitlementRule",
    "RequestStatus",
    "Rounding",
    "UserRole",
    "WorkingPattern",
    # Dates
    "DateRange",
    "DateSelection",
    "ExplicitDates",
    "to_date_set",
    "working_dates",
    # Events
    "DomainEvent",
    "EventBus",
    "EventPublisher",
    # Exceptions
    "AppException",
    "ConcurrentModification",
    "ConflictBlocked",
    "DocumentVerificationPending",
    "ForbiddenException",
    "InsufficientBalance",
    "InvalidTransition",
    "InvalidWorkingPattern",
    "LedgerIntegrityError",
    "NotFoundException",
    "UnknownLeaveType",
    "ValidationException",
    "register_exception_handlers",
    # Locks
    "KeyedLocks",
]
