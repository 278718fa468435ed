"""Leave request and approval chain schemas."""

from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from leavecore.common.constants import (
    ApprovalLevel,
    Decision,
    RequestStatus,
    StepOutcome,
    UserRole,
)
from leavecore.common.dates import DateSelection
from leavecore.ledger.schemas import BalanceKey


# ── Approval chain ──────────────────────────────────────────────────

class ApprovalChainRule(BaseModel):
    """Picks the approval levels for a request; lowest priority number wins."""

    model_config = ConfigDict(frozen=True)

    name: str
    priority: int = 100
    levels: tuple[ApprovalLevel, ...] = Field(..., min_length=1)
    leave_types: Optional[frozenset[str]] = None
    special_only: bool = False
    requester_roles: Optional[frozenset[UserRole]] = None
    is_active: bool = True


class ChainLink(BaseModel):
    """One level of the resolved chain and whoever currently holds it."""

    level: ApprovalLevel
    approver_id: str
    escalation_level: int = 0
    assigned_at: Optional[datetime] = None


class ApprovalStep(BaseModel):
    """Append-only history record."""

    outcome: StepOutcome
    actor_id: str
    at: datetime
    level: Optional[ApprovalLevel] = None
    assignee_id: Optional[str] = None
    comment: Optional[str] = None
    escalation_level: int = 0


# ── Leave request ───────────────────────────────────────────────────

class LeaveRequest(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID = Field(default_factory=uuid.uuid4)
    requester_id: str
    leave_type: str
    dates: DateSelection
    total_days: Decimal
    days_by_year: dict[int, Decimal]
    substitutes: list[str] = Field(default_factory=list)
    reason: Optional[str] = None
    status: RequestStatus = RequestStatus.draft
    approval_chain: list[ChainLink] = Field(default_factory=list)
    current_step: int = 0
    steps: list[ApprovalStep] = Field(default_factory=list)
    documents_verified: bool = False
    conflict_warnings: list[str] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime
    submitted_at: Optional[datetime] = None
    decided_at: Optional[datetime] = None
    # Storage version; not part of the payload
    version: int = 0

    @property
    def storage_key(self) -> str:
        return request_key(self.id)

    @property
    def people(self) -> list[str]:
        return [self.requester_id, *self.substitutes]

    @property
    def current_link(self) -> Optional[ChainLink]:
        if 0 <= self.current_step < len(self.approval_chain):
            return self.approval_chain[self.current_step]
        return None

    def balance_keys(self) -> dict[BalanceKey, Decimal]:
        return {
            BalanceKey(user_id=self.requester_id, leave_type=self.leave_type, year=year): days
            for year, days in sorted(self.days_by_year.items())
        }

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(mode="json", exclude={"version"})


def request_key(request_id: uuid.UUID | str) -> str:
    return f"request:{request_id}"


# ── Request bodies ──────────────────────────────────────────────────

class LeaveRequestCreate(BaseModel):
    requester_id: str
    leave_type: str
    dates: DateSelection
    substitutes: list[str] = Field(default_factory=list)
    reason: Optional[str] = Field(None, max_length=500)


class ActorIn(BaseModel):
    actor_id: str


class DecisionIn(BaseModel):
    approver_id: str
    decision: Decision
    comment: Optional[str] = Field(None, max_length=500)


class DocumentVerificationIn(BaseModel):
    actor_id: str
    verified: bool = True
