from leavecore.conflicts.index import CommitmentIndex, CommitmentSource
from leavecore.conflicts.schemas import (
    AvailabilityQuery,
    Commitment,
    ConflictEntry,
    ConflictReport,
    CoverageGap,
    OverlapCluster,
    PlannedLeave,
)
from leavecore.conflicts.service import ConflictDetector

__all__ = [
    "AvailabilityQuery",
    "Commitment",
    "CommitmentIndex",
    "CommitmentSource",
    "ConflictDetector",
    "ConflictEntry",
    "ConflictReport",
    "CoverageGap",
    "OverlapCluster",
    "PlannedLeave",
]
