"""Conflict detector — person availability, team overlap clusters, coverage gaps.

Read-only: never mutates commitments or balances.
"""

from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from datetime import date, timedelta
from typing import Iterable, Optional

from leavecore.common.constants import (
    Availability,
    CommitmentStatus,
    CommitmentType,
    ConflictLevel,
)
from leavecore.common.dates import DateRange, ExplicitDates, group_runs, span, to_date_set
from leavecore.config import Settings, settings as default_settings
from leavecore.conflicts.index import CommitmentSource
from leavecore.conflicts.schemas import (
    ConflictEntry,
    ConflictReport,
    CoverageGap,
    OverlapCluster,
    PlannedLeave,
)

logger = logging.getLogger(__name__)


class ConflictDetector:
    def __init__(self, source: CommitmentSource, config: Optional[Settings] = None) -> None:
        self._source = source
        self._settings = config or default_settings

    # ─────────────────────────────────────────────────────────────────
    # Availability
    # ─────────────────────────────────────────────────────────────────

    async def check_availability(
        self,
        persons: Iterable[str],
        window: DateRange | ExplicitDates,
        exclude_request_id: Optional[str] = None,
    ) -> list[ConflictReport]:
        """One report per person, in input order, evaluated concurrently."""
        return list(
            await asyncio.gather(
                *(self._check_person(p, window, exclude_request_id) for p in persons)
            )
        )

    async def _check_person(
        self,
        person_id: str,
        window: DateRange | ExplicitDates,
        exclude_request_id: Optional[str],
    ) -> ConflictReport:
        window_dates = to_date_set(window)
        start, end = span(window)
        commitments = await self._source.commitments_for(person_id, start, end)

        conflicts: list[ConflictEntry] = []
        for commitment in commitments:
            if exclude_request_id is not None and commitment.source_id == str(exclude_request_id):
                continue
            overlap = sorted(to_date_set(commitment.dates) & window_dates)
            if not overlap:
                continue
            conflicts.append(
                ConflictEntry(
                    type=commitment.type,
                    dates=overlap,
                    detail=commitment.detail,
                    status=commitment.status,
                    source_id=commitment.source_id,
                )
            )

        if any(
            c.type == CommitmentType.leave and c.status == CommitmentStatus.approved
            for c in conflicts
        ):
            availability = Availability.unavailable
        elif conflicts:
            availability = Availability.partial
        else:
            availability = Availability.available

        return ConflictReport(person_id=person_id, availability=availability, conflicts=conflicts)

    # ─────────────────────────────────────────────────────────────────
    # Team planning
    # ─────────────────────────────────────────────────────────────────

    def classify(self, size: int) -> ConflictLevel:
        if size >= self._settings.OVERLAP_HIGH_THRESHOLD:
            return ConflictLevel.high
        if size >= self._settings.OVERLAP_MEDIUM_THRESHOLD:
            return ConflictLevel.medium
        return ConflictLevel.none

    def detect_overlaps(self, plans: Iterable[PlannedLeave]) -> list[OverlapCluster]:
        """Dates planned by two or more people, in date order."""
        people_by_date: dict[date, set[str]] = defaultdict(set)
        for plan in plans:
            for day in to_date_set(plan.dates):
                people_by_date[day].add(plan.person_id)

        clusters = [
            OverlapCluster(
                date=day,
                people=sorted(people),
                size=len(people),
                conflict_level=self.classify(len(people)),
            )
            for day, people in sorted(people_by_date.items())
            if len(people) >= 2
        ]
        if clusters:
            logger.info(
                "Detected %d overlap dates (%d high)",
                len(clusters),
                sum(1 for c in clusters if c.conflict_level == ConflictLevel.high),
            )
        return clusters

    def detect_coverage_gaps(
        self,
        plans: Iterable[PlannedLeave],
        year: int,
        min_gap_days: Optional[int] = None,
    ) -> list[CoverageGap]:
        """Runs of calendar days in ``year`` where nobody planned leave, longer than the minimum."""
        minimum = self._settings.COVERAGE_GAP_MIN_DAYS if min_gap_days is None else min_gap_days
        covered: set[date] = set()
        for plan in plans:
            covered.update(d for d in to_date_set(plan.dates) if d.year == year)

        uncovered = []
        day = date(year, 1, 1)
        while day.year == year:
            if day not in covered:
                uncovered.append(day)
            day += timedelta(days=1)

        gaps = []
        for start, end in group_runs(uncovered):
            length = (end - start).days + 1
            if length > minimum:
                gaps.append(CoverageGap(start=start, end=end, length_days=length))
        return gaps
