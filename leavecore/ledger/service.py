"""Balance ledger — seeding, reservations, commits, releases, HR adjustments.

Business logic:
  - Lazy seeding from the entitlement engine, with carry-forward from the prior year
  - ``available = entitled + carried_forward − used − pending`` never goes negative
  - Per-key serialization (asyncio lock) plus optimistic version check on write
  - Audited manual adjustments, pattern-change recalculation and carry-forward expiry

The ``apply_*`` functions are pure so the workflow can combine a ledger
mutation with its own request write in a single atomic ``put_many``.
"""

from __future__ import annotations

import logging
from datetime import date, datetime, timezone
from decimal import ROUND_FLOOR, Decimal
from typing import Callable, Optional

from leavecore.common.audit import AuditEntry, AuditSink
from leavecore.common.constants import SYSTEM_ACTOR, ZERO
from leavecore.common.exceptions import (
    ConcurrentModification,
    InsufficientBalance,
    LedgerIntegrityError,
    NotFoundException,
    ValidationException,
)
from leavecore.common.locks import KeyedLocks
from leavecore.config import Settings, settings as default_settings
from leavecore.entitlement.service import EntitlementEngine
from leavecore.ledger.schemas import BalanceKey, BalanceRecord
from leavecore.reference.schemas import LeaveTypeDefinition, WorkingProfile
from leavecore.reference.service import ReferenceSource
from leavecore.storage.base import RecordStore, VersionConflict, Write

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ═════════════════════════════════════════════════════════════════════
# Pure mutations
# ═════════════════════════════════════════════════════════════════════


def _require_positive(days: Decimal) -> None:
    if days <= ZERO:
        raise ValidationException({"days": ["Must be greater than zero."]})


def ensure_invariant(record: BalanceRecord, requested: Decimal = ZERO) -> BalanceRecord:
    """Raise ``InsufficientBalance`` if ``available`` is negative."""
    if record.available < ZERO:
        raise InsufficientBalance(record.available + requested, requested, record.leave_type)
    return record


def apply_reserve(record: BalanceRecord, days: Decimal, now: datetime) -> BalanceRecord:
    _require_positive(days)
    if record.available < days:
        raise InsufficientBalance(record.available, days, record.leave_type)
    return record.model_copy(update={"pending": record.pending + days, "updated_at": now})


def apply_commit(record: BalanceRecord, days: Decimal, now: datetime) -> BalanceRecord:
    _require_positive(days)
    if record.pending < days:
        raise LedgerIntegrityError(
            f"Cannot commit {days} days on {record.key}: only {record.pending} pending."
        )
    return record.model_copy(
        update={
            "pending": record.pending - days,
            "used": record.used + days,
            "updated_at": now,
        }
    )


def apply_release(record: BalanceRecord, days: Decimal, now: datetime) -> BalanceRecord:
    _require_positive(days)
    if record.pending < days:
        raise LedgerIntegrityError(
            f"Cannot release {days} days on {record.key}: only {record.pending} pending."
        )
    return record.model_copy(update={"pending": record.pending - days, "updated_at": now})


def expiry_date(year: int, months: int) -> date:
    """First day after the carry-forward window, e.g. 1 April for 3 months."""
    return date(year + months // 12, months % 12 + 1, 1)


# ═════════════════════════════════════════════════════════════════════
# BalanceLedger
# ═════════════════════════════════════════════════════════════════════


class BalanceLedger:
    """Stateful balance operations over a :class:`RecordStore`."""

    def __init__(
        self,
        store: RecordStore,
        engine: EntitlementEngine,
        reference: ReferenceSource,
        audit: AuditSink,
        *,
        config: Optional[Settings] = None,
        locks: Optional[KeyedLocks] = None,
        clock: Clock = utcnow,
    ) -> None:
        self.store = store
        self._engine = engine
        self._reference = reference
        self._audit = audit
        self._settings = config or default_settings
        self.locks = locks or KeyedLocks()
        self._clock = clock

    # ─────────────────────────────────────────────────────────────────
    # Reads
    # ─────────────────────────────────────────────────────────────────

    async def load(self, key: BalanceKey) -> tuple[BalanceRecord, int]:
        """Record and its storage version; ``NotFoundException`` if unseeded."""
        stored = await self.store.get(key.storage_key)
        if stored is None:
            raise NotFoundException("LeaveBalance", str(key))
        return BalanceRecord.model_validate(stored.value), stored.version

    async def get_balance(self, key: BalanceKey) -> BalanceRecord:
        record, _ = await self.load(key)
        return record

    # ─────────────────────────────────────────────────────────────────
    # Seeding
    # ─────────────────────────────────────────────────────────────────

    async def ensure_seeded(self, user_id: str, leave_type: str, year: int) -> BalanceRecord:
        """Return the record for the key, creating it from the engine if missing."""
        key = BalanceKey(user_id=user_id, leave_type=leave_type, year=year)
        async with self.locks.hold(key.storage_key):
            stored = await self.store.get(key.storage_key)
            if stored is not None:
                return BalanceRecord.model_validate(stored.value)

            profile = await self._reference.get_working_profile(user_id)
            definition = await self._reference.get_leave_type(leave_type)
            record = await self._build_seed(profile, definition, year)
            try:
                await self.store.put(key.storage_key, record.to_payload(), None)
            except VersionConflict:
                # Another process seeded it first
                return await self.get_balance(key)

        logger.info("Seeded balance %s: %s", key, record.seed_reason)
        await self._audit.record(
            AuditEntry(
                action="seed",
                entity_type="leave_balance",
                entity_id=key.storage_key,
                actor_id=SYSTEM_ACTOR,
                new_values={**record.audit_values(), "reason": record.seed_reason},
                created_at=record.created_at,
            )
        )
        return record

    async def _build_seed(
        self,
        profile: WorkingProfile,
        definition: LeaveTypeDefinition,
        year: int,
    ) -> BalanceRecord:
        result = self._engine.calculate(
            profile, definition, year, self._effective_from(profile, year),
        )
        carried = await self._carry_forward(profile.user_id, definition, year)
        reason = result.reason
        if carried > ZERO:
            reason += f"; carried forward {carried} from {year - 1}"
        now = self._clock()
        return BalanceRecord(
            user_id=profile.user_id,
            leave_type=definition.code,
            year=year,
            entitled=result.entitled,
            carried_forward=carried,
            seed_reason=reason,
            fte=result.fte,
            created_at=now,
            updated_at=now,
        )

    @staticmethod
    def _effective_from(profile: WorkingProfile, year: int) -> Optional[date]:
        start = profile.contract_start
        if start is None or start <= date(year, 1, 1):
            return None
        return start

    async def _carry_forward(
        self, user_id: str, definition: LeaveTypeDefinition, year: int,
    ) -> Decimal:
        if not definition.allow_carry_forward:
            return ZERO
        prior_key = BalanceKey(user_id=user_id, leave_type=definition.code, year=year).previous_year()
        stored = await self.store.get(prior_key.storage_key)
        if stored is None:
            return ZERO
        prior = BalanceRecord.model_validate(stored.value)

        cap = definition.max_carry_forward
        if self._settings.CARRY_FORWARD_GLOBAL_CAP is not None:
            cap = min(cap, self._settings.CARRY_FORWARD_GLOBAL_CAP)
        amount = min(max(prior.available, ZERO), cap)
        step = definition.rounding.step
        return ((amount / step).to_integral_value(rounding=ROUND_FLOOR) * step).quantize(
            Decimal("0.01")
        )

    # ─────────────────────────────────────────────────────────────────
    # Mutations
    # ─────────────────────────────────────────────────────────────────

    async def _mutate(
        self,
        key: BalanceKey,
        mutation: Callable[[BalanceRecord], BalanceRecord],
    ) -> tuple[BalanceRecord, BalanceRecord]:
        """Lock, load, apply, write with version check; retry on conflict."""
        storage_key = key.storage_key
        async with self.locks.hold(storage_key):
            for attempt in range(1, self._settings.STORE_MAX_RETRIES + 1):
                before, version = await self.load(key)
                after = mutation(before)
                if after is before:
                    return before, after
                try:
                    await self.store.put(storage_key, after.to_payload(), version)
                except VersionConflict:
                    logger.warning(
                        "Version conflict on %s (attempt %d/%d)",
                        storage_key, attempt, self._settings.STORE_MAX_RETRIES,
                    )
                    continue
                return before, after
        raise ConcurrentModification(storage_key)

    async def reserve(self, key: BalanceKey, days: Decimal) -> BalanceRecord:
        _, after = await self._mutate(key, lambda r: apply_reserve(r, days, self._clock()))
        logger.info("Reserved %s days on %s (available %s)", days, key, after.available)
        return after

    async def commit(self, key: BalanceKey, days: Decimal) -> BalanceRecord:
        _, after = await self._mutate(key, lambda r: apply_commit(r, days, self._clock()))
        logger.info("Committed %s days on %s", days, key)
        return after

    async def release(self, key: BalanceKey, days: Decimal) -> BalanceRecord:
        _, after = await self._mutate(key, lambda r: apply_release(r, days, self._clock()))
        logger.info("Released %s days on %s", days, key)
        return after

    async def adjust_manually(
        self,
        key: BalanceKey,
        delta: Decimal,
        actor: str,
        reason: str,
    ) -> BalanceRecord:
        """HR override of ``entitled``; always audited."""
        if not reason.strip():
            raise ValidationException({"reason": ["A reason is required for manual adjustments."]})

        def adjust(record: BalanceRecord) -> BalanceRecord:
            entitled = record.entitled + delta
            if entitled < ZERO:
                raise ValidationException({"delta": ["Entitlement cannot become negative."]})
            updated = record.model_copy(update={"entitled": entitled, "updated_at": self._clock()})
            if updated.available < ZERO:
                raise InsufficientBalance(record.available, -delta, record.leave_type)
            return updated

        before, after = await self._mutate(key, adjust)
        logger.info("Manual adjustment %s on %s by %s: %s", delta, key, actor, reason)
        await self._audit.record(
            AuditEntry(
                action="adjust",
                entity_type="leave_balance",
                entity_id=key.storage_key,
                actor_id=actor,
                old_values=before.audit_values(),
                new_values={**after.audit_values(), "delta": str(delta), "reason": reason},
                created_at=after.updated_at,
            )
        )
        return after

    async def expire_carried_forward(
        self,
        key: BalanceKey,
        as_of: date,
        actor: str = SYSTEM_ACTOR,
    ) -> BalanceRecord:
        """Drop carried-forward days still unused once the expiry window has passed.

        Used days draw on the carried-forward portion first. The drop is
        limited to what is currently available, so pending reservations keep
        their cover.
        """
        cutoff = expiry_date(key.year, self._settings.CARRY_FORWARD_EXPIRY_MONTHS)
        if as_of < cutoff:
            return await self.get_balance(key)

        def expire(record: BalanceRecord) -> BalanceRecord:
            unused = max(record.carried_forward - record.used, ZERO)
            drop = min(unused, max(record.available, ZERO))
            if drop <= ZERO:
                return record
            return record.model_copy(
                update={
                    "carried_forward": record.carried_forward - drop,
                    "updated_at": self._clock(),
                }
            )

        before, after = await self._mutate(key, expire)
        if after is before:
            return after
        logger.info(
            "Expired %s carried-forward days on %s",
            before.carried_forward - after.carried_forward, key,
        )
        await self._audit.record(
            AuditEntry(
                action="expire_carry_forward",
                entity_type="leave_balance",
                entity_id=key.storage_key,
                actor_id=actor,
                old_values=before.audit_values(),
                new_values=after.audit_values(),
                created_at=after.updated_at,
            )
        )
        return after

    async def recalculate_after_pattern_change(
        self,
        profile: WorkingProfile,
        as_of: date,
        actor: str = SYSTEM_ACTOR,
    ) -> list[BalanceRecord]:
        """Re-run the engine for the change year and the next, for every active type.

        Existing records take the new ``entitled``; missing ones are seeded.
        All keys are written in one ``put_many``; if any record would go
        negative nothing is written.
        """
        definitions = await self._reference.list_leave_types(active_only=True)
        years = (as_of.year, as_of.year + 1)
        keys = [
            BalanceKey(user_id=profile.user_id, leave_type=d.code, year=y)
            for y in years
            for d in definitions
        ]
        by_code = {d.code: d for d in definitions}

        async with self.locks.hold(*(k.storage_key for k in keys)):
            for attempt in range(1, self._settings.STORE_MAX_RETRIES + 1):
                writes: list[Write] = []
                changes: list[tuple[Optional[BalanceRecord], BalanceRecord]] = []
                for key in keys:
                    definition = by_code[key.leave_type]
                    stored = await self.store.get(key.storage_key)
                    if stored is None:
                        seeded = await self._build_seed(profile, definition, key.year)
                        writes.append(Write(key.storage_key, seeded.to_payload(), None))
                        changes.append((None, seeded))
                        continue

                    before = BalanceRecord.model_validate(stored.value)
                    result = self._engine.calculate(
                        profile, definition, key.year, self._effective_from(profile, key.year),
                    )
                    after = before.model_copy(
                        update={
                            "entitled": result.entitled,
                            "fte": result.fte,
                            "seed_reason": result.reason,
                            "updated_at": self._clock(),
                        }
                    )
                    ensure_invariant(after, before.entitled - result.entitled)
                    writes.append(Write(key.storage_key, after.to_payload(), stored.version))
                    changes.append((before, after))

                try:
                    await self.store.put_many(writes)
                except VersionConflict as exc:
                    logger.warning(
                        "Version conflict on %s during recalculation (attempt %d/%d)",
                        exc.key, attempt, self._settings.STORE_MAX_RETRIES,
                    )
                    continue
                break
            else:
                raise ConcurrentModification(f"balance:{profile.user_id}")

        logger.info(
            "Recalculated %d balances for %s after pattern change",
            len(changes), profile.user_id,
        )
        for before, after in changes:
            await self._audit.record(
                AuditEntry(
                    action="seed" if before is None else "recalculate",
                    entity_type="leave_balance",
                    entity_id=after.key.storage_key,
                    actor_id=actor,
                    old_values=before.audit_values() if before else None,
                    new_values={**after.audit_values(), "reason": after.seed_reason},
                    created_at=after.updated_at,
                )
            )
        return [after for _, after in changes]
