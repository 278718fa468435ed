"""SQLAlchemy-backed record store.

Optimistic concurrency is a conditional ``UPDATE ... WHERE version = :expected``
whose row count tells us whether we won; creation relies on the primary key.
``put_many`` runs every write in one transaction.
"""

from __future__ import annotations

from typing import Any, Optional, Sequence

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from leavecore.database import session_scope
from leavecore.storage.base import VersionConflict, Versioned, Write
from leavecore.storage.models import StoreRecord


class SqlRecordStore:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def get(self, key: str) -> Optional[Versioned]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(StoreRecord.payload, StoreRecord.version).where(
                    StoreRecord.key == key
                )
            )
            row = result.first()
        if row is None:
            return None
        return Versioned(value=dict(row.payload), version=row.version)

    async def put(
        self, key: str, value: dict[str, Any], expected_version: Optional[int],
    ) -> int:
        versions = await self.put_many([Write(key, value, expected_version)])
        return versions[key]

    async def put_many(self, writes: Sequence[Write]) -> dict[str, int]:
        versions: dict[str, int] = {}
        try:
            async with session_scope(self._session_factory) as session:
                for write in writes:
                    versions[write.key] = await self._apply(session, write)
        except IntegrityError as exc:
            # Lost a create race on the primary key
            key = next(iter(w.key for w in writes if w.expected_version is None), "?")
            raise VersionConflict(key, None, -1) from exc
        return versions

    @staticmethod
    async def _apply(session: AsyncSession, write: Write) -> int:
        namespace = write.key.split(":", 1)[0]
        if write.expected_version is None:
            existing = await session.execute(
                select(StoreRecord.version).where(StoreRecord.key == write.key)
            )
            actual = existing.scalar()
            if actual is not None:
                raise VersionConflict(write.key, None, actual)
            session.add(
                StoreRecord(
                    key=write.key,
                    namespace=namespace,
                    version=1,
                    payload=write.value,
                )
            )
            await session.flush()
            return 1

        new_version = write.expected_version + 1
        result = await session.execute(
            update(StoreRecord)
            .where(
                StoreRecord.key == write.key,
                StoreRecord.version == write.expected_version,
            )
            .values(version=new_version, payload=write.value, updated_at=func.now())
        )
        if result.rowcount != 1:
            current = await session.execute(
                select(StoreRecord.version).where(StoreRecord.key == write.key)
            )
            raise VersionConflict(write.key, write.expected_version, current.scalar())
        return new_version
