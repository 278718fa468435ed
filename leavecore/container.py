"""Wires the leave core services over a store and a reference source."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from leavecore.common.audit import AuditSink, InMemoryAuditLog, SqlAuditLog
from leavecore.common.events import EventBus
from leavecore.common.locks import KeyedLocks
from leavecore.config import Settings, settings as default_settings
from leavecore.conflicts.index import CommitmentIndex
from leavecore.conflicts.service import ConflictDetector
from leavecore.entitlement.service import EntitlementEngine
from leavecore.ledger.service import BalanceLedger, Clock, utcnow
from leavecore.reference.service import InMemoryDirectory, ReferenceSource
from leavecore.storage.base import RecordStore
from leavecore.storage.memory import InMemoryStore
from leavecore.storage.sql import SqlRecordStore
from leavecore.workflow.service import ApprovalWorkflow


@dataclass
class LeaveCore:
    reference: ReferenceSource
    store: RecordStore
    audit: AuditSink
    events: EventBus
    commitments: CommitmentIndex
    engine: EntitlementEngine
    ledger: BalanceLedger
    detector: ConflictDetector
    workflow: ApprovalWorkflow


def build_core(
    *,
    reference: Optional[ReferenceSource] = None,
    store: Optional[RecordStore] = None,
    audit: Optional[AuditSink] = None,
    config: Optional[Settings] = None,
    clock: Clock = utcnow,
) -> LeaveCore:
    """Assemble the services; defaults are in-memory."""
    config = config or default_settings
    reference = reference or InMemoryDirectory()
    store = store or InMemoryStore()
    audit = audit or InMemoryAuditLog()

    events = EventBus()
    locks = KeyedLocks()
    commitments = CommitmentIndex(store, config=config, locks=locks)

    engine = EntitlementEngine(config)
    ledger = BalanceLedger(
        store, engine, reference, audit, config=config, locks=locks, clock=clock,
    )
    detector = ConflictDetector(commitments, config)
    workflow = ApprovalWorkflow(
        ledger, detector, commitments, reference, events, config=config, clock=clock,
    )
    return LeaveCore(
        reference=reference,
        store=store,
        audit=audit,
        events=events,
        commitments=commitments,
        engine=engine,
        ledger=ledger,
        detector=detector,
        workflow=workflow,
    )


def build_sql_core(
    session_factory: async_sessionmaker[AsyncSession],
    *,
    reference: Optional[ReferenceSource] = None,
    config: Optional[Settings] = None,
    clock: Clock = utcnow,
) -> LeaveCore:
    """Services over the SQLAlchemy store and audit trail."""
    return build_core(
        reference=reference,
        store=SqlRecordStore(session_factory),
        audit=SqlAuditLog(session_factory),
        config=config,
        clock=clock,
    )
