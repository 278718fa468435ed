"""Leave router — requests, decisions, balances, availability and team planning.

Thin adapter: every endpoint delegates to one core operation. Identity comes
from the body (``actor_id``); authentication is the embedding service's job.
"""

import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query

from leavecore.api.dependencies import get_detector, get_ledger, get_workflow
from leavecore.conflicts.schemas import (
    AvailabilityQuery,
    ConflictReport,
    CoverageGap,
    OverlapCluster,
    PlannedLeave,
)
from leavecore.conflicts.service import ConflictDetector
from leavecore.ledger.schemas import BalanceAdjustment, BalanceKey, BalanceRecord
from leavecore.ledger.service import BalanceLedger
from leavecore.workflow.schemas import (
    ActorIn,
    DecisionIn,
    DocumentVerificationIn,
    LeaveRequest,
    LeaveRequestCreate,
)
from leavecore.workflow.service import ApprovalWorkflow

router = APIRouter(prefix="", tags=["leave"])


# ── POST /requests ──────────────────────────────────────────────────

@router.post("/requests", response_model=LeaveRequest, status_code=201)
async def create_request(
    body: LeaveRequestCreate,
    workflow: ApprovalWorkflow = Depends(get_workflow),
):
    """Create a draft; working days are counted excluding weekends and blocked holidays."""
    return await workflow.create_draft(
        body.requester_id, body.leave_type, body.dates, body.substitutes, body.reason,
    )


# ── GET /requests/{id} ──────────────────────────────────────────────

@router.get("/requests/{request_id}", response_model=LeaveRequest)
async def get_request(
    request_id: uuid.UUID,
    workflow: ApprovalWorkflow = Depends(get_workflow),
):
    return await workflow.get_request(request_id)


# ── Transitions ─────────────────────────────────────────────────────

@router.post("/requests/{request_id}/submit", response_model=LeaveRequest)
async def submit_request(
    request_id: uuid.UUID,
    body: ActorIn,
    workflow: ApprovalWorkflow = Depends(get_workflow),
):
    """Conflict check, balance reservation, approval chain resolution."""
    return await workflow.submit(request_id, body.actor_id)


@router.post("/requests/{request_id}/decision", response_model=LeaveRequest)
async def decide_request(
    request_id: uuid.UUID,
    body: DecisionIn,
    workflow: ApprovalWorkflow = Depends(get_workflow),
):
    return await workflow.decide(request_id, body.approver_id, body.decision, body.comment)


@router.post("/requests/{request_id}/cancel", response_model=LeaveRequest)
async def cancel_request(
    request_id: uuid.UUID,
    body: ActorIn,
    workflow: ApprovalWorkflow = Depends(get_workflow),
):
    return await workflow.cancel(request_id, body.actor_id)


@router.post("/requests/{request_id}/escalate", response_model=LeaveRequest)
async def escalate_request(
    request_id: uuid.UUID,
    body: ActorIn,
    workflow: ApprovalWorkflow = Depends(get_workflow),
):
    return await workflow.escalate(request_id, body.actor_id)


@router.post("/requests/{request_id}/documents", response_model=LeaveRequest)
async def verify_documents(
    request_id: uuid.UUID,
    body: DocumentVerificationIn,
    workflow: ApprovalWorkflow = Depends(get_workflow),
):
    """HR-only document verification gate."""
    return await workflow.verify_documents(request_id, body.actor_id, body.verified)


# ── Balances ────────────────────────────────────────────────────────

@router.get("/balances/{user_id}/{leave_type}/{year}", response_model=BalanceRecord)
async def get_balance(
    user_id: str,
    leave_type: str,
    year: int,
    ledger: BalanceLedger = Depends(get_ledger),
):
    """Balance for the year, seeded from the entitlement engine on first access."""
    return await ledger.ensure_seeded(user_id, leave_type, year)


@router.post("/balances/{user_id}/{leave_type}/{year}/adjust", response_model=BalanceRecord)
async def adjust_balance(
    user_id: str,
    leave_type: str,
    year: int,
    body: BalanceAdjustment,
    ledger: BalanceLedger = Depends(get_ledger),
):
    """HR override of the entitlement; the balance is seeded first if missing."""
    await ledger.ensure_seeded(user_id, leave_type, year)
    key = BalanceKey(user_id=user_id, leave_type=leave_type, year=year)
    return await ledger.adjust_manually(key, body.delta, body.actor_id, body.reason)


# ── Availability / planning ─────────────────────────────────────────

@router.post("/availability", response_model=list[ConflictReport])
async def check_availability(
    body: AvailabilityQuery,
    detector: ConflictDetector = Depends(get_detector),
):
    return await detector.check_availability(body.persons, body.window, body.exclude_request_id)


@router.post("/planning/overlaps", response_model=list[OverlapCluster])
async def planning_overlaps(
    plans: list[PlannedLeave],
    detector: ConflictDetector = Depends(get_detector),
):
    return detector.detect_overlaps(plans)


@router.post("/planning/coverage-gaps", response_model=list[CoverageGap])
async def planning_coverage_gaps(
    plans: list[PlannedLeave],
    year: int = Query(..., ge=1900, le=9999),
    min_gap_days: Optional[int] = Query(None, ge=0),
    detector: ConflictDetector = Depends(get_detector),
):
    return detector.detect_coverage_gaps(plans, year, min_gap_days)
