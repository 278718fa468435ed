"""Commitment source port and a store-backed commitment index.

Each person's commitments live in one versioned record, ``commitments:{person}``.
The workflow rewrites those records in the same ``put_many`` as the leave
request, so every worker over the same store sees the same commitments.
"""

from __future__ import annotations

import logging
import uuid
from datetime import date
from typing import Any, Callable, Iterable, Optional, Protocol

from leavecore.common.constants import CommitmentType
from leavecore.common.dates import DateRange, ExplicitDates, span
from leavecore.common.exceptions import ConcurrentModification
from leavecore.common.locks import KeyedLocks
from leavecore.config import Settings, settings as default_settings
from leavecore.conflicts.schemas import Commitment
from leavecore.storage.base import RecordStore, VersionConflict

logger = logging.getLogger(__name__)


class CommitmentSource(Protocol):
    async def commitments_for(self, person_id: str, start: date, end: date) -> list[Commitment]:
        """Commitments of ``person_id`` touching ``start..end``."""
        ...


def commitment_key(person_id: str) -> str:
    return f"commitments:{person_id}"


def replace_source(
    existing: Iterable[Commitment], source_id: str, replacement: Iterable[Commitment],
) -> list[Commitment]:
    """Swap every commitment of ``source_id`` for ``replacement``, sorted by id."""
    kept = [c for c in existing if c.source_id != source_id]
    return sorted([*kept, *replacement], key=lambda c: c.id)


def to_payload(commitments: Iterable[Commitment]) -> dict[str, Any]:
    return {"commitments": [c.model_dump(mode="json") for c in commitments]}


class CommitmentIndex:
    """Leave, substitute duties and recorded WFH per person, over a :class:`RecordStore`."""

    def __init__(
        self,
        store: RecordStore,
        *,
        config: Optional[Settings] = None,
        locks: Optional[KeyedLocks] = None,
    ) -> None:
        self._store = store
        self._settings = config or default_settings
        self.locks = locks or KeyedLocks()

    # ── Reads ───────────────────────────────────────────────────────

    async def load(self, person_id: str) -> tuple[list[Commitment], Optional[int]]:
        """Commitments and the record version (``None`` when never written)."""
        stored = await self._store.get(commitment_key(person_id))
        if stored is None:
            return [], None
        commitments = [Commitment.model_validate(c) for c in stored.value["commitments"]]
        return commitments, stored.version

    async def list_commitments(self, person_id: str) -> list[Commitment]:
        commitments, _ = await self.load(person_id)
        return commitments

    async def commitments_for(self, person_id: str, start: date, end: date) -> list[Commitment]:
        result = []
        for commitment in await self.list_commitments(person_id):
            first, last = span(commitment.dates)
            if first <= end and last >= start:
                result.append(commitment)
        return result

    # ── Writes ──────────────────────────────────────────────────────

    async def _update(
        self, person_id: str, change: Callable[[list[Commitment]], list[Commitment]],
    ) -> None:
        key = commitment_key(person_id)
        async with self.locks.hold(key):
            for attempt in range(1, self._settings.STORE_MAX_RETRIES + 1):
                commitments, version = await self.load(person_id)
                try:
                    await self._store.put(key, to_payload(change(commitments)), version)
                except VersionConflict:
                    logger.warning(
                        "Version conflict on %s (attempt %d/%d)",
                        key, attempt, self._settings.STORE_MAX_RETRIES,
                    )
                    continue
                return
        raise ConcurrentModification(key)

    async def record_wfh(
        self,
        person_id: str,
        dates: DateRange | ExplicitDates,
        detail: str = "Work from home",
        wfh_id: Optional[str] = None,
    ) -> Commitment:
        commitment = Commitment(
            id=f"wfh:{wfh_id or uuid.uuid4()}",
            person_id=person_id,
            type=CommitmentType.wfh,
            dates=dates,
            detail=detail,
        )
        await self._update(
            person_id,
            lambda existing: sorted(
                [*(c for c in existing if c.id != commitment.id), commitment],
                key=lambda c: c.id,
            ),
        )
        logger.info("Recorded WFH %s for %s", commitment.id, person_id)
        return commitment

    async def remove(self, person_id: str, commitment_id: str) -> None:
        await self._update(
            person_id, lambda existing: [c for c in existing if c.id != commitment_id],
        )
