"""Shared FastAPI dependencies."""

from fastapi import Request

from leavecore.container import LeaveCore
from leavecore.conflicts.service import ConflictDetector
from leavecore.ledger.service import BalanceLedger
from leavecore.workflow.service import ApprovalWorkflow


def get_core(request: Request) -> LeaveCore:
    return request.app.state.core


def get_workflow(request: Request) -> ApprovalWorkflow:
    return get_core(request).workflow


def get_ledger(request: Request) -> BalanceLedger:
    return get_core(request).ledger


def get_detector(request: Request) -> ConflictDetector:
    return get_core(request).detector
