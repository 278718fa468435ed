"""Storage port and its in-memory / SQLAlchemy implementations."""

from leavecore.storage.base import RecordStore, VersionConflict, Versioned, Write
from leavecore.storage.memory import InMemoryStore
from leavecore.storage.sql import SqlRecordStore

__all__ = [
    "InMemoryStore",
    "RecordStore",
    "SqlRecordStore",
    "VersionConflict",
    "Versioned",
    "Write",
]
