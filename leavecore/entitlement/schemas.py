"""Entitlement result schema."""

from __future__ import annotations

from decimal import Decimal

from pydantic import BaseModel, ConfigDict

from leavecore.common.constants import EntitlementRule, Rounding


class ProRataResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    entitled: Decimal
    fte: Decimal
    # Human-readable; stored on the seeded balance record
    reason: str
    rules: tuple[EntitlementRule, ...]
    base_allowance: Decimal
    year_fraction: Decimal
    rounding: Rounding
