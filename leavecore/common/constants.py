"""Enums and constants for the leave core."""

from __future__ import annotations

import enum
from decimal import Decimal


# ── Working patterns / entitlement ──────────────────────────────────

class WorkingPattern(str, enum.Enum):
    full_time = "FULL_TIME"
    part_time = "PART_TIME"
    compressed_hours = "COMPRESSED_HOURS"
    job_share = "JOB_SHARE"


class Rounding(str, enum.Enum):
    whole_day = "WHOLE_DAY"
    half_day = "HALF_DAY"
    quarter_day = "QUARTER_DAY"

    @property
    def step(self) -> Decimal:
        return ROUNDING_STEPS[self]


ROUNDING_STEPS: dict[Rounding, Decimal] = {
    Rounding.whole_day: Decimal("1"),
    Rounding.half_day: Decimal("0.5"),
    Rounding.quarter_day: Decimal("0.25"),
}


class EntitlementRule(str, enum.Enum):
    standard_pro_rata = "standard_pro_rata"
    mid_year_start = "mid_year_start"
    compressed_hours_exception = "compressed_hours_exception"
    floor_applied = "floor_applied"
    not_employed = "not_employed"


# ── Auth / Roles ────────────────────────────────────────────────────

class UserRole(str, enum.Enum):
    employee = "EMPLOYEE"
    manager = "MANAGER"
    department_director = "DEPARTMENT_DIRECTOR"
    hr = "HR"
    executive = "EXECUTIVE"


# ── Workflow ────────────────────────────────────────────────────────

class RequestStatus(str, enum.Enum):
    draft = "DRAFT"
    pending_approval = "PENDING_APPROVAL"
    partially_approved = "PARTIALLY_APPROVED"
    approved = "APPROVED"
    rejected = "REJECTED"
    cancelled = "CANCELLED"


OPEN_STATUSES = frozenset(
    {RequestStatus.pending_approval, RequestStatus.partially_approved}
)
CANCELLABLE_STATUSES = frozenset(
    {RequestStatus.draft, RequestStatus.pending_approval, RequestStatus.partially_approved}
)
TERMINAL_STATUSES = frozenset(
    {RequestStatus.approved, RequestStatus.rejected, RequestStatus.cancelled}
)


class ApprovalLevel(str, enum.Enum):
    manager = "MANAGER"
    department_director = "DEPARTMENT_DIRECTOR"
    hr = "HR"
    executive = "EXECUTIVE"


class Decision(str, enum.Enum):
    approve = "approve"
    reject = "reject"


class StepOutcome(str, enum.Enum):
    submitted = "submitted"
    approved = "approved"
    rejected = "rejected"
    cancelled = "cancelled"
    escalated = "escalated"
    documents_verified = "documents_verified"


class DomainEventType(str, enum.Enum):
    submitted = "submitted"
    partially_approved = "partially_approved"
    approved = "approved"
    rejected = "rejected"
    cancelled = "cancelled"
    escalated = "escalated"


# ── Conflicts ───────────────────────────────────────────────────────

class CommitmentType(str, enum.Enum):
    leave = "leave"
    wfh = "wfh"
    substitute = "substitute"


class CommitmentStatus(str, enum.Enum):
    pending = "pending"
    approved = "approved"


class Availability(str, enum.Enum):
    available = "available"
    partial = "partial"
    unavailable = "unavailable"


class ConflictLevel(str, enum.Enum):
    none = "NONE"
    medium = "MEDIUM"
    high = "HIGH"


# ── Misc constants ──────────────────────────────────────────────────

SYSTEM_ACTOR = "SYSTEM"
DATE_FORMAT = "%d %b %Y"
ZERO = Decimal("0")
