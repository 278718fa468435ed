"""Balance ledger schemas."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, computed_field

from leavecore.common.constants import ZERO


class BalanceKey(BaseModel):
    model_config = ConfigDict(frozen=True)

    user_id: str
    leave_type: str
    year: int

    @property
    def storage_key(self) -> str:
        return f"balance:{self.user_id}:{self.leave_type}:{self.year}"

    def previous_year(self) -> "BalanceKey":
        return self.model_copy(update={"year": self.year - 1})

    def __str__(self) -> str:
        return f"{self.user_id}/{self.leave_type}/{self.year}"


class BalanceRecord(BaseModel):
    """One (user, leave type, year) balance. Never deleted."""

    model_config = ConfigDict(frozen=True, from_attributes=True)

    user_id: str
    leave_type: str
    year: int
    entitled: Decimal = Field(ZERO, ge=0)
    used: Decimal = Field(ZERO, ge=0)
    pending: Decimal = Field(ZERO, ge=0)
    carried_forward: Decimal = Field(ZERO, ge=0)
    seed_reason: str = ""
    fte: Optional[Decimal] = None
    created_at: datetime
    updated_at: datetime

    @computed_field  # type: ignore[prop-decorator]
    @property
    def available(self) -> Decimal:
        return self.entitled + self.carried_forward - self.used - self.pending

    @property
    def key(self) -> BalanceKey:
        return BalanceKey(user_id=self.user_id, leave_type=self.leave_type, year=self.year)

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(mode="json", exclude={"available"})

    def audit_values(self) -> dict[str, str]:
        return {
            "entitled": str(self.entitled),
            "used": str(self.used),
            "pending": str(self.pending),
            "carried_forward": str(self.carried_forward),
            "available": str(self.available),
        }


class BalanceAdjustment(BaseModel):
    """HR override of ``entitled`` (HTTP body)."""

    delta: Decimal
    actor_id: str
    reason: str = Field(..., min_length=1, max_length=500)
