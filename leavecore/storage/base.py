"""Storage port — a transactional, versioned key-value store.

Every record carries a version. ``put`` succeeds only when the caller's
``expected_version`` matches the stored one (``None`` means "must not exist
yet"), which gives optimistic check-and-set across processes. ``put_many``
applies several writes as one atomic unit: all succeed or none do.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional, Protocol, Sequence


class VersionConflict(Exception):
    """Raised by a store when an expected version does not match."""

    def __init__(self, key: str, expected: Optional[int], actual: Optional[int]) -> None:
        self.key = key
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Version conflict on '{key}': expected {expected}, found {actual}"
        )


@dataclass(frozen=True)
class Versioned:
    value: dict[str, Any]
    version: int


@dataclass(frozen=True)
class Write:
    key: str
    value: dict[str, Any]
    expected_version: Optional[int]


class RecordStore(Protocol):
    async def get(self, key: str) -> Optional[Versioned]:
        ...

    async def put(
        self, key: str, value: dict[str, Any], expected_version: Optional[int],
    ) -> int:
        """Write ``value``; returns the new version."""
        ...

    async def put_many(self, writes: Sequence[Write]) -> dict[str, int]:
        """Atomically apply all writes; returns key → new version."""
        ...
