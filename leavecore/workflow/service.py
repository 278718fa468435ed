"""Approval workflow — leave request state machine driving the ledger.

Business logic:
  - Draft creation with working-day counting (weekends and blocked holidays excluded)
  - Submission: conflict check, lazy balance seeding, chain resolution, reservation
  - Multi-step approval with a document-verification gate on the final step
  - Rejection / cancellation release the reservation; final approval commits it
  - Escalation of a stale step to the next authority, never touching the ledger

Every transition writes the request, the affected balance records and the
commitments of everyone involved in one ``put_many`` while holding their
keyed locks.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Awaitable, Callable, Iterable, Optional, Sequence

from leavecore.common.constants import (
    CANCELLABLE_STATUSES,
    OPEN_STATUSES,
    SYSTEM_ACTOR,
    TERMINAL_STATUSES,
    Availability,
    CommitmentStatus,
    CommitmentType,
    Decision,
    DomainEventType,
    RequestStatus,
    StepOutcome,
    UserRole,
)
from leavecore.common.dates import (
    DateRange,
    ExplicitDates,
    business_days_between,
    describe,
    span,
    split_by_year,
    working_dates,
)
from leavecore.common.events import DomainEvent, EventPublisher
from leavecore.common.exceptions import (
    ConcurrentModification,
    ConflictBlocked,
    DocumentVerificationPending,
    ForbiddenException,
    InvalidTransition,
    NotFoundException,
    UnknownLeaveType,
    ValidationException,
)
from leavecore.config import Settings, settings as default_settings
from leavecore.conflicts.index import CommitmentIndex, commitment_key, replace_source, to_payload
from leavecore.conflicts.schemas import Commitment, ConflictReport
from leavecore.conflicts.service import ConflictDetector
from leavecore.ledger.schemas import BalanceRecord
from leavecore.ledger.service import (
    BalanceLedger,
    Clock,
    apply_commit,
    apply_release,
    apply_reserve,
    utcnow,
)
from leavecore.reference.service import ReferenceSource
from leavecore.storage.base import VersionConflict, Write
from leavecore.workflow.chains import DEFAULT_CHAIN_RULES, escalation_target, resolve_chain
from leavecore.workflow.schemas import (
    ApprovalChainRule,
    ApprovalStep,
    LeaveRequest,
    request_key,
)

logger = logging.getLogger(__name__)

LedgerOp = Callable[[BalanceRecord, Decimal, datetime], BalanceRecord]


@dataclass
class _Outcome:
    """Result of a transition computed under lock."""

    request: LeaveRequest
    ledger_op: Optional[LedgerOp] = None
    event_type: Optional[DomainEventType] = None
    detail: Optional[str] = None


Transition = Callable[[LeaveRequest, datetime], Awaitable[Optional[_Outcome]]]

_COMMITMENT_STATUS = {
    RequestStatus.pending_approval: CommitmentStatus.pending,
    RequestStatus.partially_approved: CommitmentStatus.pending,
    RequestStatus.approved: CommitmentStatus.approved,
}


def request_commitments(request: LeaveRequest) -> dict[str, list[Commitment]]:
    """Commitments a request places on each person involved in its current state."""
    planned: dict[str, list[Commitment]] = {person: [] for person in request.people}
    status = _COMMITMENT_STATUS.get(request.status)
    if status is None:
        return planned
    source_id = str(request.id)
    planned[request.requester_id].append(
        Commitment(
            id=f"leave:{source_id}",
            person_id=request.requester_id,
            type=CommitmentType.leave,
            dates=request.dates,
            status=status,
            source_id=source_id,
            detail=f"{request.leave_type} leave",
        )
    )
    for substitute in request.substitutes:
        planned[substitute].append(
            Commitment(
                id=f"substitute:{source_id}:{substitute}",
                person_id=substitute,
                type=CommitmentType.substitute,
                dates=request.dates,
                status=status,
                source_id=source_id,
                detail=f"Substituting for {request.requester_id}",
            )
        )
    return planned


# ═════════════════════════════════════════════════════════════════════
# ApprovalWorkflow
# ═════════════════════════════════════════════════════════════════════


class ApprovalWorkflow:
    """Leave request lifecycle over the ledger's store."""

    def __init__(
        self,
        ledger: BalanceLedger,
        detector: ConflictDetector,
        commitments: CommitmentIndex,
        reference: ReferenceSource,
        events: EventPublisher,
        *,
        config: Optional[Settings] = None,
        rules: Sequence[ApprovalChainRule] = DEFAULT_CHAIN_RULES,
        clock: Clock = utcnow,
    ) -> None:
        self._ledger = ledger
        self._store = ledger.store
        self._detector = detector
        self._commitments = commitments
        self._reference = reference
        self._events = events
        self._settings = config or default_settings
        self._rules = tuple(rules)
        self._clock = clock
        self.locks = ledger.locks

    # ─────────────────────────────────────────────────────────────────
    # Helpers
    # ─────────────────────────────────────────────────────────────────

    async def get_request(self, request_id: uuid.UUID | str) -> LeaveRequest:
        stored = await self._store.get(request_key(request_id))
        if stored is None:
            raise NotFoundException("LeaveRequest", request_id)
        request = LeaveRequest.model_validate(stored.value)
        return request.model_copy(update={"version": stored.version})

    @staticmethod
    def _invalid(request: LeaveRequest, action: str) -> InvalidTransition:
        logger.error(
            "Illegal transition: %s on leave request %s in state %s",
            action, request.id, request.status.value,
        )
        return InvalidTransition(request.id, request.status.value, action)

    async def _is_hr(self, actor_id: str) -> bool:
        try:
            actor = await self._reference.get_employee(actor_id)
        except NotFoundException:
            return False
        return actor.role == UserRole.hr

    async def _require_requester_or_hr(self, request: LeaveRequest, actor_id: str) -> None:
        if actor_id != request.requester_id and not await self._is_hr(actor_id):
            raise ForbiddenException(
                f"Only the requester or HR may act on leave request '{request.id}'."
            )

    async def _run(self, request_id: uuid.UUID | str, transition: Transition) -> LeaveRequest:
        """Apply ``transition`` under the request, balance and commitment locks, then publish."""
        current = await self.get_request(request_id)
        balance_keys = current.balance_keys()
        people = current.people
        lock_keys = [
            current.storage_key,
            *(k.storage_key for k in balance_keys),
            *(commitment_key(p) for p in people),
        ]

        async with self.locks.hold(*lock_keys):
            for attempt in range(1, self._settings.STORE_MAX_RETRIES + 1):
                request = await self.get_request(request_id)
                # Loaded before the transition reads them, so a concurrent
                # writer in another process surfaces as a version conflict
                held = {p: await self._commitments.load(p) for p in people}
                now = self._clock()
                outcome = await transition(request, now)
                if outcome is None:
                    return request

                updated = outcome.request.model_copy(update={"updated_at": now})
                writes = [Write(updated.storage_key, updated.to_payload(), request.version)]
                if outcome.ledger_op is not None:
                    for key, days in balance_keys.items():
                        record, version = await self._ledger.load(key)
                        changed = outcome.ledger_op(record, days, now)
                        writes.append(Write(key.storage_key, changed.to_payload(), version))
                planned = request_commitments(updated)
                for person, (existing, version) in held.items():
                    merged = replace_source(existing, str(updated.id), planned[person])
                    if merged != existing:
                        writes.append(Write(commitment_key(person), to_payload(merged), version))
                try:
                    versions = await self._store.put_many(writes)
                except VersionConflict as exc:
                    logger.warning(
                        "Version conflict on %s (attempt %d/%d)",
                        exc.key, attempt, self._settings.STORE_MAX_RETRIES,
                    )
                    continue
                updated = updated.model_copy(update={"version": versions[updated.storage_key]})
                break
            else:
                raise ConcurrentModification(current.storage_key)

        if outcome.event_type is not None:
            await self._events.publish(
                DomainEvent(
                    type=outcome.event_type,
                    request_id=updated.id,
                    actor_id=updated.steps[-1].actor_id if updated.steps else SYSTEM_ACTOR,
                    occurred_at=now,
                    request=updated.to_payload(),
                    detail=outcome.detail,
                )
            )
        return updated

    # ─────────────────────────────────────────────────────────────────
    # Draft
    # ─────────────────────────────────────────────────────────────────

    async def create_draft(
        self,
        requester_id: str,
        leave_type: str,
        dates: DateRange | ExplicitDates,
        substitutes: Iterable[str] = (),
        reason: Optional[str] = None,
    ) -> LeaveRequest:
        definition = await self._reference.get_leave_type(leave_type)
        if not definition.is_active:
            raise UnknownLeaveType(leave_type)
        await self._reference.get_employee(requester_id)

        substitute_ids = list(dict.fromkeys(substitutes))
        if requester_id in substitute_ids:
            raise ValidationException({"substitutes": ["Requester cannot be their own substitute."]})
        for substitute in substitute_ids:
            await self._reference.get_employee(substitute)

        start, end = span(dates)
        blocked = await self._reference.get_blocked_dates(start, end)
        days = working_dates(dates, self._settings.weekend_days_set, blocked)
        if not days:
            raise ValidationException(
                {"dates": ["Selection contains no working days (weekends and holidays excluded)."]}
            )
        days_by_year = split_by_year(days)

        now = self._clock()
        request = LeaveRequest(
            requester_id=requester_id,
            leave_type=definition.code,
            dates=dates,
            total_days=sum(days_by_year.values(), Decimal("0")),
            days_by_year=days_by_year,
            substitutes=substitute_ids,
            reason=reason,
            created_at=now,
            updated_at=now,
        )
        version = await self._store.put(request.storage_key, request.to_payload(), None)
        logger.info(
            "Draft leave request %s: %s %s days for %s",
            request.id, request.leave_type, request.total_days, requester_id,
        )
        return request.model_copy(update={"version": version})

    # ─────────────────────────────────────────────────────────────────
    # Submit
    # ─────────────────────────────────────────────────────────────────

    def _assess_conflicts(self, reports: list[ConflictReport]) -> list[str]:
        """Raise on hard conflicts; return warnings for soft ones."""
        warnings: list[str] = []
        own, substitute_reports = reports[0], reports[1:]

        own_leave = sorted(
            {d for c in own.conflicts if c.type == CommitmentType.leave for d in c.dates}
        )
        if own_leave and self._settings.SELF_OVERLAP_BLOCKS:
            raise ConflictBlocked("Overlaps existing leave", own_leave)
        if own.conflicts:
            warnings.append(
                f"Requester has other commitments on {describe(own.conflicting_dates)}"
            )

        for report in substitute_reports:
            if not report.conflicts:
                continue
            if (
                report.availability == Availability.unavailable
                and self._settings.SUBSTITUTE_UNAVAILABLE_BLOCKS
            ):
                raise ConflictBlocked(
                    f"Substitute {report.person_id} is unavailable", report.conflicting_dates,
                )
            warnings.append(
                f"Substitute {report.person_id} is {report.availability.value} on "
                f"{describe(report.conflicting_dates)}"
            )
        return warnings

    async def submit(self, request_id: uuid.UUID | str, actor_id: str) -> LeaveRequest:
        draft = await self.get_request(request_id)
        if draft.status != RequestStatus.draft:
            raise self._invalid(draft, "submit")
        await self._require_requester_or_hr(draft, actor_id)

        start, end = span(draft.dates)
        blocked = await self._reference.get_blocked_dates(start, end)
        window = ExplicitDates(
            dates=tuple(working_dates(draft.dates, self._settings.weekend_days_set, blocked))
        )

        # Seeding takes the balance locks itself, so it happens before ours
        for key in draft.balance_keys():
            await self._ledger.ensure_seeded(key.user_id, key.leave_type, key.year)

        definition = await self._reference.get_leave_type(draft.leave_type)
        requester = await self._reference.get_employee(draft.requester_id)
        chain = await resolve_chain(self._reference, self._rules, definition, requester)

        async def transition(request: LeaveRequest, now: datetime) -> _Outcome:
            if request.status != RequestStatus.draft:
                raise self._invalid(request, "submit")
            # Runs under the commitment locks of everyone involved
            reports = await self._detector.check_availability(
                request.people, window, exclude_request_id=str(request.id),
            )
            warnings = self._assess_conflicts(reports)
            assigned = [link.model_copy(update={"assigned_at": now}) for link in chain]
            return _Outcome(
                request.model_copy(
                    update={
                        "status": RequestStatus.pending_approval,
                        "approval_chain": assigned,
                        "current_step": 0,
                        "conflict_warnings": warnings,
                        "submitted_at": now,
                        "steps": [
                            *request.steps,
                            ApprovalStep(
                                outcome=StepOutcome.submitted,
                                actor_id=actor_id,
                                at=now,
                                level=assigned[0].level,
                                assignee_id=assigned[0].approver_id,
                            ),
                        ],
                    }
                ),
                ledger_op=apply_reserve,
                event_type=DomainEventType.submitted,
            )

        submitted = await self._run(request_id, transition)
        if submitted.conflict_warnings:
            logger.warning(
                "Leave request %s submitted with warnings: %s",
                submitted.id, submitted.conflict_warnings,
            )
        return submitted

    # ─────────────────────────────────────────────────────────────────
    # Decide
    # ─────────────────────────────────────────────────────────────────

    async def decide(
        self,
        request_id: uuid.UUID | str,
        approver_id: str,
        decision: Decision,
        comment: Optional[str] = None,
    ) -> LeaveRequest:
        pending = await self.get_request(request_id)
        definition = await self._reference.get_leave_type(pending.leave_type)

        async def transition(request: LeaveRequest, now: datetime) -> _Outcome:
            if request.status not in OPEN_STATUSES:
                raise self._invalid(request, decision.value)
            link = request.current_link
            if link is None or link.approver_id != approver_id:
                raise ForbiddenException(
                    f"'{approver_id}' is not the assigned approver for leave request '{request.id}'."
                )

            step = ApprovalStep(
                outcome=StepOutcome.rejected if decision == Decision.reject else StepOutcome.approved,
                actor_id=approver_id,
                at=now,
                level=link.level,
                assignee_id=link.approver_id,
                comment=comment,
                escalation_level=link.escalation_level,
            )
            steps = [*request.steps, step]

            if decision == Decision.reject:
                return _Outcome(
                    request.model_copy(
                        update={"status": RequestStatus.rejected, "steps": steps, "decided_at": now}
                    ),
                    ledger_op=apply_release,
                    event_type=DomainEventType.rejected,
                    detail=comment,
                )

            next_step = request.current_step + 1
            if next_step < len(request.approval_chain):
                chain = list(request.approval_chain)
                chain[next_step] = chain[next_step].model_copy(update={"assigned_at": now})
                return _Outcome(
                    request.model_copy(
                        update={
                            "status": RequestStatus.partially_approved,
                            "approval_chain": chain,
                            "current_step": next_step,
                            "steps": steps,
                        }
                    ),
                    event_type=DomainEventType.partially_approved,
                    detail=comment,
                )

            if definition.requires_document and not request.documents_verified:
                raise DocumentVerificationPending(request.id)
            return _Outcome(
                request.model_copy(
                    update={"status": RequestStatus.approved, "steps": steps, "decided_at": now}
                ),
                ledger_op=apply_commit,
                event_type=DomainEventType.approved,
                detail=comment,
            )

        return await self._run(request_id, transition)

    # ─────────────────────────────────────────────────────────────────
    # Cancel
    # ─────────────────────────────────────────────────────────────────

    async def cancel(
        self, request_id: uuid.UUID | str, actor_id: str, comment: Optional[str] = None,
    ) -> LeaveRequest:
        existing = await self.get_request(request_id)
        await self._require_requester_or_hr(existing, actor_id)

        async def transition(request: LeaveRequest, now: datetime) -> _Outcome:
            if request.status not in CANCELLABLE_STATUSES:
                raise self._invalid(request, "cancel")
            reserved = request.status != RequestStatus.draft
            return _Outcome(
                request.model_copy(
                    update={
                        "status": RequestStatus.cancelled,
                        "decided_at": now,
                        "steps": [
                            *request.steps,
                            ApprovalStep(
                                outcome=StepOutcome.cancelled,
                                actor_id=actor_id,
                                at=now,
                                comment=comment,
                            ),
                        ],
                    }
                ),
                ledger_op=apply_release if reserved else None,
                event_type=DomainEventType.cancelled,
                detail=comment,
            )

        return await self._run(request_id, transition)

    # ─────────────────────────────────────────────────────────────────
    # Escalation
    # ─────────────────────────────────────────────────────────────────

    def is_escalation_due(self, request: LeaveRequest, now: datetime) -> bool:
        """True when the current step has waited the SLA in business days."""
        if request.status not in OPEN_STATUSES:
            return False
        link = request.current_link
        if link is None or link.assigned_at is None:
            return False
        if link.escalation_level >= self._settings.MAX_ESCALATION_LEVELS:
            return False
        waited = business_days_between(
            link.assigned_at.date(), now.date(), self._settings.weekend_days_set,
        )
        return waited >= self._settings.ESCALATION_SLA_DAYS

    async def escalate(
        self, request_id: uuid.UUID | str, actor_id: str = SYSTEM_ACTOR,
    ) -> LeaveRequest:
        """Hand the current step to the next authority; the ledger is untouched.

        Past the maximum escalation level, or with nobody left to escalate
        to, this is a logged no-op.
        """
        pending = await self.get_request(request_id)
        if pending.status not in OPEN_STATUSES:
            raise self._invalid(pending, "escalate")
        link = pending.current_link
        if link is None or link.escalation_level >= self._settings.MAX_ESCALATION_LEVELS:
            logger.warning(
                "Leave request %s reached max escalation level; not escalated", pending.id,
            )
            return pending
        target = await escalation_target(self._reference, link.approver_id, pending.requester_id)
        if target is None:
            logger.warning("No escalation target for leave request %s", pending.id)
            return pending

        async def transition(request: LeaveRequest, now: datetime) -> Optional[_Outcome]:
            if request.status not in OPEN_STATUSES:
                raise self._invalid(request, "escalate")
            current = request.current_link
            if current is None or current.approver_id != link.approver_id:
                # Decided or escalated concurrently
                return None
            chain = list(request.approval_chain)
            chain[request.current_step] = current.model_copy(
                update={
                    "approver_id": target,
                    "escalation_level": current.escalation_level + 1,
                    "assigned_at": now,
                }
            )
            detail = f"Escalated from {current.approver_id} to {target}"
            return _Outcome(
                request.model_copy(
                    update={
                        "approval_chain": chain,
                        "steps": [
                            *request.steps,
                            ApprovalStep(
                                outcome=StepOutcome.escalated,
                                actor_id=actor_id,
                                at=now,
                                level=current.level,
                                assignee_id=target,
                                comment=detail,
                                escalation_level=current.escalation_level + 1,
                            ),
                        ],
                    }
                ),
                event_type=DomainEventType.escalated,
                detail=detail,
            )

        return await self._run(request_id, transition)

    # ─────────────────────────────────────────────────────────────────
    # Document verification
    # ─────────────────────────────────────────────────────────────────

    async def verify_documents(
        self, request_id: uuid.UUID | str, actor_id: str, verified: bool = True,
    ) -> LeaveRequest:
        if not await self._is_hr(actor_id):
            raise ForbiddenException("Only HR may verify supporting documents.")

        async def transition(request: LeaveRequest, now: datetime) -> _Outcome:
            if request.status in TERMINAL_STATUSES:
                raise self._invalid(request, "verify documents for")
            return _Outcome(
                request.model_copy(
                    update={
                        "documents_verified": verified,
                        "steps": [
                            *request.steps,
                            ApprovalStep(
                                outcome=StepOutcome.documents_verified,
                                actor_id=actor_id,
                                at=now,
                                comment="verified" if verified else "verification withdrawn",
                            ),
                        ],
                    }
                ),
            )

        return await self._run(request_id, transition)
