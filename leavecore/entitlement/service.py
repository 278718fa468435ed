"""Entitlement engine — pro-rata allowance from working pattern and start date.

Business logic:
  - FTE from working days per week against the standard full-time week
  - Calendar-day year fraction for mid-year starters (inclusive counting)
  - Compressed-hours exception: full weekly hours keep the full allowance
  - Leave-type minimum floor, never undercut by rounding
  - Round-half-up at the pattern's granularity
"""

from __future__ import annotations

import logging
from datetime import date
from decimal import ROUND_CEILING, ROUND_HALF_UP, Decimal
from typing import Optional

from leavecore.common.constants import (
    ZERO,
    EntitlementRule,
    Rounding,
    WorkingPattern,
)
from leavecore.common.dates import days_in_year
from leavecore.common.exceptions import InvalidWorkingPattern, UnknownLeaveType
from leavecore.config import Settings, settings as default_settings
from leavecore.entitlement.schemas import ProRataResult
from leavecore.reference.schemas import LeaveTypeDefinition, WorkingProfile

logger = logging.getLogger(__name__)

_PATTERN_ROUNDING: dict[WorkingPattern, Rounding] = {
    WorkingPattern.full_time: Rounding.whole_day,
    WorkingPattern.compressed_hours: Rounding.half_day,
    WorkingPattern.part_time: Rounding.quarter_day,
    WorkingPattern.job_share: Rounding.quarter_day,
}

_PATTERN_LABELS: dict[WorkingPattern, str] = {
    WorkingPattern.full_time: "Full-time",
    WorkingPattern.part_time: "Part-time",
    WorkingPattern.compressed_hours: "Compressed hours",
    WorkingPattern.job_share: "Job share",
}


def quantize_to(value: Decimal, rounding: Rounding, *, up: bool = False) -> Decimal:
    """Round ``value`` to the granularity step, half-up (or ceiling when ``up``)."""
    step = rounding.step
    units = (value / step).quantize(Decimal("1"), rounding=ROUND_CEILING if up else ROUND_HALF_UP)
    return (units * step).quantize(Decimal("0.01"))


def finer(a: Rounding, b: Rounding) -> Rounding:
    return a if a.step <= b.step else b


def describe_pattern(profile: WorkingProfile) -> str:
    """e.g. ``Part-time, 2.5 days/week (FTE 0.50)``."""
    days = profile.working_days_per_week.normalize()
    fte = (profile.working_days_per_week / Decimal(default_settings.STANDARD_WORKING_DAYS))
    label = f"{_PATTERN_LABELS[profile.pattern]}, {days:f} days/week (FTE {fte:.2f})"
    if profile.pattern == WorkingPattern.compressed_hours:
        label += f", {profile.working_hours_per_week.normalize():f} hours/week"
    return label


class EntitlementEngine:
    """Pure calculator; holds only policy settings."""

    def __init__(self, config: Optional[Settings] = None) -> None:
        self._settings = config or default_settings

    def calculate(
        self,
        profile: WorkingProfile,
        leave_type: LeaveTypeDefinition,
        year: int,
        effective_from: Optional[date] = None,
    ) -> ProRataResult:
        if not leave_type.is_active:
            raise UnknownLeaveType(leave_type.code)

        days_per_week = profile.working_days_per_week
        if days_per_week <= ZERO or days_per_week > Decimal("7"):
            raise InvalidWorkingPattern(profile.user_id, days_per_week)

        fte = days_per_week / Decimal(self._settings.STANDARD_WORKING_DAYS)
        base = leave_type.base_allowance
        year_start, year_end = date(year, 1, 1), date(year, 12, 31)

        if effective_from is not None and effective_from > year_end:
            return ProRataResult(
                entitled=ZERO,
                fte=fte,
                reason="not employed during year",
                rules=(EntitlementRule.not_employed,),
                base_allowance=base,
                year_fraction=ZERO,
                rounding=leave_type.rounding,
            )

        rules: list[EntitlementRule] = []
        notes: list[str] = []

        # ── Year fraction ───────────────────────────────────────────
        year_fraction = Decimal("1")
        if effective_from is not None and effective_from > year_start:
            remaining = (year_end - effective_from).days + 1
            total = days_in_year(year)
            year_fraction = Decimal(remaining) / Decimal(total)
            rules.append(EntitlementRule.mid_year_start)
            notes.append(f"mid-year start ({remaining}/{total} days)")

        # ── Raw allowance ───────────────────────────────────────────
        effective_fte = fte
        granularity = _PATTERN_ROUNDING[profile.pattern]
        if (
            profile.pattern == WorkingPattern.compressed_hours
            and profile.working_hours_per_week >= self._settings.COMPRESSED_FULL_TIME_HOURS
        ):
            effective_fte = Decimal("1")
            granularity = Rounding.whole_day
            rules.append(EntitlementRule.compressed_hours_exception)
            notes.append(
                f"compressed-hours exception ({profile.working_hours_per_week.normalize():f}h/week)"
            )
        raw = base * effective_fte * year_fraction
        granularity = finer(granularity, leave_type.rounding)

        # ── Floor ───────────────────────────────────────────────────
        floor_fired = False
        if leave_type.minimum_floor is not None:
            floor = leave_type.minimum_floor.for_fte(effective_fte, year_fraction)
            if raw < floor:
                raw = floor
                floor_fired = True
                rules.append(EntitlementRule.floor_applied)
                notes.append(f"floor applied ({floor.normalize():f} days)")

        entitled = quantize_to(raw, granularity, up=floor_fired)

        if not rules:
            rules.append(EntitlementRule.standard_pro_rata)
            notes.append(f"standard pro-rata (FTE {fte:.2f})")

        result = ProRataResult(
            entitled=entitled,
            fte=fte,
            reason="; ".join(notes),
            rules=tuple(rules),
            base_allowance=base,
            year_fraction=year_fraction,
            rounding=granularity,
        )
        logger.debug(
            "Entitlement %s/%s/%s = %s (%s)",
            profile.user_id, leave_type.code, year, entitled, result.reason,
        )
        return result
