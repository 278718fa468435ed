"""Balance ledger tests — seeding, reserve/commit/release, concurrency, HR operations."""

from __future__ import annotations

import asyncio
from datetime import date
from decimal import Decimal

import pytest

from leavecore.common.constants import WorkingPattern
from leavecore.common.exceptions import (
    InsufficientBalance,
    LedgerIntegrityError,
    NotFoundException,
    ValidationException,
)
from leavecore.ledger.schemas import BalanceKey
from leavecore.ledger.service import expiry_date
from tests.conftest import _make_profile


def _key(user: str = "alice", leave_type: str = "ANNUAL", year: int = 2025) -> BalanceKey:
    return BalanceKey(user_id=user, leave_type=leave_type, year=year)


def _state(record) -> tuple:
    return record.entitled, record.used, record.pending, record.carried_forward


# ═════════════════════════════════════════════════════════════════════
# Seeding
# ═════════════════════════════════════════════════════════════════════


class TestEnsureSeeded:

    async def test_seeds_from_engine(self, core):
        record = await core.ledger.ensure_seeded("alice", "ANNUAL", 2025)
        assert record.entitled == Decimal("20")
        assert record.used == record.pending == record.carried_forward == Decimal("0")
        assert record.available == Decimal("20")
        assert "standard pro-rata" in record.seed_reason

    async def test_is_idempotent(self, core):
        first = await core.ledger.ensure_seeded("alice", "ANNUAL", 2025)
        await core.ledger.reserve(_key(), Decimal("3"))
        second = await core.ledger.ensure_seeded("alice", "ANNUAL", 2025)
        assert second.pending == Decimal("3")
        assert second.created_at == first.created_at

    async def test_seed_is_audited(self, core):
        await core.ledger.ensure_seeded("alice", "ANNUAL", 2025)
        entries = core.audit.for_entity("leave_balance", _key().storage_key)
        assert [e.action for e in entries] == ["seed"]
        assert entries[0].new_values["entitled"] == "20.00"

    async def test_mid_year_contract_start(self, core, directory):
        directory.set_profile(_make_profile("alice", contract_start=date(2025, 7, 1)))
        record = await core.ledger.ensure_seeded("alice", "ANNUAL", 2025)
        assert record.entitled == Decimal("10")
        assert "mid-year start" in record.seed_reason

    async def test_unseeded_balance_not_found(self, core):
        with pytest.raises(NotFoundException):
            await core.ledger.get_balance(_key())


class TestCarryForward:

    async def _close_2024(self, core, used: str) -> None:
        await core.ledger.ensure_seeded("alice", "ANNUAL", 2024)
        await core.ledger.reserve(_key(year=2024), Decimal(used))
        await core.ledger.commit(_key(year=2024), Decimal(used))

    async def test_capped_by_leave_type(self, core):
        await self._close_2024(core, "12")  # 8 left
        record = await core.ledger.ensure_seeded("alice", "ANNUAL", 2025)
        assert record.carried_forward == Decimal("5")
        assert record.available == Decimal("25")
        assert "carried forward 5" in record.seed_reason

    async def test_below_cap_carries_everything(self, core):
        await self._close_2024(core, "17")  # 3 left
        record = await core.ledger.ensure_seeded("alice", "ANNUAL", 2025)
        assert record.carried_forward == Decimal("3")

    async def test_global_cap(self, make_core):
        core = make_core(CARRY_FORWARD_GLOBAL_CAP=Decimal("2"))
        await self._close_2024(core, "12")
        record = await core.ledger.ensure_seeded("alice", "ANNUAL", 2025)
        assert record.carried_forward == Decimal("2")

    async def test_type_without_carry_forward(self, core):
        await core.ledger.ensure_seeded("alice", "SICK", 2024)
        record = await core.ledger.ensure_seeded("alice", "SICK", 2025)
        assert record.carried_forward == Decimal("0")

    async def test_no_prior_record(self, core):
        record = await core.ledger.ensure_seeded("alice", "ANNUAL", 2025)
        assert record.carried_forward == Decimal("0")


# ═════════════════════════════════════════════════════════════════════
# Reserve / commit / release
# ═════════════════════════════════════════════════════════════════════


class TestReservations:

    async def test_reserve_then_release_restores_state(self, core):
        before = await core.ledger.ensure_seeded("alice", "ANNUAL", 2025)
        await core.ledger.reserve(_key(), Decimal("4.5"))
        after = await core.ledger.release(_key(), Decimal("4.5"))
        assert _state(after) == _state(before)

    async def test_commit_moves_pending_to_used(self, core):
        await core.ledger.ensure_seeded("alice", "ANNUAL", 2025)
        reserved = await core.ledger.reserve(_key(), Decimal("5"))
        committed = await core.ledger.commit(_key(), Decimal("5"))
        assert reserved.pending == Decimal("5")
        assert committed.pending == Decimal("0")
        assert committed.used == Decimal("5")
        assert committed.available == reserved.available == Decimal("15")

    async def test_reserve_beyond_available(self, core):
        await core.ledger.ensure_seeded("alice", "ANNUAL", 2025)
        with pytest.raises(InsufficientBalance) as exc_info:
            await core.ledger.reserve(_key(), Decimal("21"))
        assert exc_info.value.available == Decimal("20")
        record = await core.ledger.get_balance(_key())
        assert record.pending == Decimal("0")

    async def test_reserve_exact_available(self, core):
        await core.ledger.ensure_seeded("alice", "ANNUAL", 2025)
        record = await core.ledger.reserve(_key(), Decimal("20"))
        assert record.available == Decimal("0")

    async def test_commit_more_than_pending(self, core):
        await core.ledger.ensure_seeded("alice", "ANNUAL", 2025)
        await core.ledger.reserve(_key(), Decimal("2"))
        with pytest.raises(LedgerIntegrityError):
            await core.ledger.commit(_key(), Decimal("3"))

    async def test_release_more_than_pending(self, core):
        await core.ledger.ensure_seeded("alice", "ANNUAL", 2025)
        with pytest.raises(LedgerIntegrityError):
            await core.ledger.release(_key(), Decimal("1"))

    async def test_non_positive_days_rejected(self, core):
        await core.ledger.ensure_seeded("alice", "ANNUAL", 2025)
        with pytest.raises(ValidationException):
            await core.ledger.reserve(_key(), Decimal("0"))

    async def test_concurrent_reserves_cannot_overdraw(self, core):
        await core.ledger.ensure_seeded("alice", "ANNUAL", 2025)
        results = await asyncio.gather(
            core.ledger.reserve(_key(), Decimal("15")),
            core.ledger.reserve(_key(), Decimal("15")),
            return_exceptions=True,
        )
        failures = [r for r in results if isinstance(r, InsufficientBalance)]
        assert len(failures) == 1
        record = await core.ledger.get_balance(_key())
        assert record.pending == Decimal("15")
        assert record.available == Decimal("5")

    async def test_concurrent_reserves_on_different_keys(self, core):
        for user in ("alice", "bob"):
            await core.ledger.ensure_seeded(user, "ANNUAL", 2025)
        await asyncio.gather(
            core.ledger.reserve(_key("alice"), Decimal("15")),
            core.ledger.reserve(_key("bob"), Decimal("15")),
        )
        for user in ("alice", "bob"):
            assert (await core.ledger.get_balance(_key(user))).pending == Decimal("15")


# ═════════════════════════════════════════════════════════════════════
# HR operations
# ═════════════════════════════════════════════════════════════════════


class TestAdjustManually:

    async def test_adjustment_is_audited(self, core):
        await core.ledger.ensure_seeded("alice", "ANNUAL", 2025)
        record = await core.ledger.adjust_manually(_key(), Decimal("2"), "hr", "Long service")
        assert record.entitled == Decimal("22")

        entry = core.audit.for_entity("leave_balance", _key().storage_key)[-1]
        assert entry.action == "adjust"
        assert entry.actor_id == "hr"
        assert entry.old_values["entitled"] == "20.00"
        assert entry.new_values["entitled"] == "22.00"
        assert entry.new_values["reason"] == "Long service"

    async def test_adjustment_cannot_break_invariant(self, core):
        await core.ledger.ensure_seeded("alice", "ANNUAL", 2025)
        await core.ledger.reserve(_key(), Decimal("18"))
        with pytest.raises(InsufficientBalance):
            await core.ledger.adjust_manually(_key(), Decimal("-5"), "hr", "Correction")
        record = await core.ledger.get_balance(_key())
        assert record.entitled == Decimal("20")
        assert [e.action for e in core.audit.entries] == ["seed"]

    async def test_entitlement_cannot_go_negative(self, core):
        await core.ledger.ensure_seeded("alice", "ANNUAL", 2025)
        with pytest.raises(ValidationException):
            await core.ledger.adjust_manually(_key(), Decimal("-21"), "hr", "Correction")

    async def test_reason_required(self, core):
        await core.ledger.ensure_seeded("alice", "ANNUAL", 2025)
        with pytest.raises(ValidationException):
            await core.ledger.adjust_manually(_key(), Decimal("1"), "hr", "  ")


class TestExpireCarriedForward:

    async def _seed_with_carry(self, core) -> None:
        await core.ledger.ensure_seeded("alice", "ANNUAL", 2024)
        await core.ledger.reserve(_key(year=2024), Decimal("10"))
        await core.ledger.commit(_key(year=2024), Decimal("10"))
        await core.ledger.ensure_seeded("alice", "ANNUAL", 2025)  # 5 carried

    def test_expiry_date(self):
        assert expiry_date(2025, 3) == date(2025, 4, 1)
        assert expiry_date(2025, 12) == date(2026, 1, 1)

    async def test_before_window_closes_nothing_expires(self, core):
        await self._seed_with_carry(core)
        record = await core.ledger.expire_carried_forward(_key(), date(2025, 3, 31))
        assert record.carried_forward == Decimal("5")

    async def test_unused_carry_forward_expires(self, core):
        await self._seed_with_carry(core)
        await core.ledger.reserve(_key(), Decimal("2"))
        await core.ledger.commit(_key(), Decimal("2"))

        record = await core.ledger.expire_carried_forward(_key(), date(2025, 4, 1))
        assert record.carried_forward == Decimal("2")
        assert record.available == Decimal("20")
        assert core.audit.entries[-1].action == "expire_carry_forward"

    async def test_expiry_is_idempotent(self, core):
        await self._seed_with_carry(core)
        await core.ledger.expire_carried_forward(_key(), date(2025, 4, 1))
        audited = len(core.audit.entries)
        record = await core.ledger.expire_carried_forward(_key(), date(2025, 5, 1))
        assert record.carried_forward == Decimal("0")
        assert len(core.audit.entries) == audited

    async def test_expiry_keeps_pending_covered(self, core):
        await self._seed_with_carry(core)
        await core.ledger.reserve(_key(), Decimal("24"))
        record = await core.ledger.expire_carried_forward(_key(), date(2025, 4, 1))
        assert record.carried_forward == Decimal("4")
        assert record.available == Decimal("0")


class TestRecalculateAfterPatternChange:

    async def test_updates_current_and_seeds_next_year(self, core):
        await core.ledger.ensure_seeded("alice", "ANNUAL", 2025)
        profile = _make_profile("alice", pattern=WorkingPattern.part_time, days="2.5")

        records = await core.ledger.recalculate_after_pattern_change(profile, date(2025, 7, 1))

        by_key = {(r.leave_type, r.year): r for r in records}
        assert by_key[("ANNUAL", 2025)].entitled == Decimal("10")
        assert by_key[("ANNUAL", 2026)].entitled == Decimal("10")
        assert by_key[("SICK", 2025)].entitled == Decimal("5")
        assert ("RETIRED", 2025) not in by_key
        assert (await core.ledger.get_balance(_key(year=2026))).fte == Decimal("0.5")

        actions = {e.entity_id: e.action for e in core.audit.entries[1:]}
        assert actions[_key().storage_key] == "recalculate"
        assert actions[_key(year=2026).storage_key] == "seed"

    async def test_rejected_when_it_would_overdraw(self, core):
        await core.ledger.ensure_seeded("alice", "ANNUAL", 2025)
        await core.ledger.reserve(_key(), Decimal("15"))
        profile = _make_profile("alice", pattern=WorkingPattern.part_time, days="2.5")

        with pytest.raises(InsufficientBalance):
            await core.ledger.recalculate_after_pattern_change(profile, date(2025, 7, 1))

        assert (await core.ledger.get_balance(_key())).entitled == Decimal("20")
        with pytest.raises(NotFoundException):
            await core.ledger.get_balance(_key(year=2026))
