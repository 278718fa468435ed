"""Conflict detection schemas — commitments, availability reports, team planning."""

from __future__ import annotations

import datetime as dt
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from leavecore.common.constants import (
    Availability,
    CommitmentStatus,
    CommitmentType,
    ConflictLevel,
)
from leavecore.common.dates import DateSelection


class Commitment(BaseModel):
    """Something that occupies a person on given dates."""

    model_config = ConfigDict(frozen=True)

    id: str
    person_id: str
    type: CommitmentType
    dates: DateSelection
    status: CommitmentStatus = CommitmentStatus.approved
    # Leave request id for leave / substitute duties
    source_id: Optional[str] = None
    detail: str = ""


class ConflictEntry(BaseModel):
    type: CommitmentType
    dates: list[dt.date]
    detail: str = ""
    status: CommitmentStatus
    source_id: Optional[str] = None


class ConflictReport(BaseModel):
    person_id: str
    availability: Availability
    conflicts: list[ConflictEntry] = Field(default_factory=list)

    @property
    def conflicting_dates(self) -> list[dt.date]:
        return sorted({d for c in self.conflicts for d in c.dates})


class AvailabilityQuery(BaseModel):
    persons: list[str] = Field(..., min_length=1)
    window: DateSelection
    exclude_request_id: Optional[str] = None


# ── Team holiday planning ───────────────────────────────────────────

class PlannedLeave(BaseModel):
    person_id: str
    dates: DateSelection


class OverlapCluster(BaseModel):
    date: dt.date
    people: list[str]
    size: int
    conflict_level: ConflictLevel


class CoverageGap(BaseModel):
    start: dt.date
    end: dt.date
    length_days: int
