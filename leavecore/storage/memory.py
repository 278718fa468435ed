"""In-memory record store."""

from __future__ import annotations

import copy
from typing import Any, Optional, Sequence

from leavecore.storage.base import VersionConflict, Versioned, Write


class InMemoryStore:
    """Dict-backed store. Writes are applied without awaiting, so each
    ``put``/``put_many`` is atomic with respect to other coroutines."""

    def __init__(self) -> None:
        self._records: dict[str, Versioned] = {}

    async def get(self, key: str) -> Optional[Versioned]:
        record = self._records.get(key)
        if record is None:
            return None
        return Versioned(value=copy.deepcopy(record.value), version=record.version)

    async def put(
        self, key: str, value: dict[str, Any], expected_version: Optional[int],
    ) -> int:
        versions = await self.put_many([Write(key, value, expected_version)])
        return versions[key]

    async def put_many(self, writes: Sequence[Write]) -> dict[str, int]:
        for write in writes:
            current = self._records.get(write.key)
            actual = current.version if current else None
            if actual != write.expected_version:
                raise VersionConflict(write.key, write.expected_version, actual)

        versions: dict[str, int] = {}
        for write in writes:
            new_version = (write.expected_version or 0) + 1
            self._records[write.key] = Versioned(
                value=copy.deepcopy(write.value), version=new_version,
            )
            versions[write.key] = new_version
        return versions
