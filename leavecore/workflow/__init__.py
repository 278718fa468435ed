from leavecore.workflow.chains import DEFAULT_CHAIN_RULES, resolve_chain
from leavecore.workflow.schemas import (
    ActorIn,
    ApprovalChainRule,
    ApprovalStep,
    ChainLink,
    DecisionIn,
    DocumentVerificationIn,
    LeaveRequest,
    LeaveRequestCreate,
)
from leavecore.workflow.service import ApprovalWorkflow

__all__ = [
    "ActorIn",
    "ApprovalChainRule",
    "ApprovalStep",
    "ApprovalWorkflow",
    "ChainLink",
    "DEFAULT_CHAIN_RULES",
    "DecisionIn",
    "DocumentVerificationIn",
    "LeaveRequest",
    "LeaveRequestCreate",
    "resolve_chain",
]
