"""Reference data schemas — working profiles, leave types, employees, holidays.

These are read-only inputs to the core; HR tooling outside the core owns
their lifecycle.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from leavecore.common.constants import Rounding, UserRole, WorkingPattern


class MinimumFloor(BaseModel):
    """Legal minimum: ``max(statutory_base × fte × year_fraction, minimum_days)``.

    The statutory part follows the employee's tenure in the year;
    ``minimum_days`` is absolute.
    """

    model_config = ConfigDict(frozen=True)

    statutory_base: Optional[Decimal] = None
    minimum_days: Decimal = Decimal("0")

    def for_fte(self, fte: Decimal, year_fraction: Decimal = Decimal("1")) -> Decimal:
        scaled = (
            self.statutory_base * fte * year_fraction
            if self.statutory_base is not None
            else Decimal("0")
        )
        return max(scaled, self.minimum_days)


class LeaveTypeDefinition(BaseModel):
    model_config = ConfigDict(frozen=True, from_attributes=True)

    code: str = Field(..., min_length=1, max_length=20)
    name: str
    base_allowance: Decimal = Field(..., ge=0)
    minimum_floor: Optional[MinimumFloor] = None
    requires_document: bool = False
    rounding: Rounding = Rounding.whole_day
    allow_carry_forward: bool = False
    max_carry_forward: Decimal = Field(Decimal("0"), ge=0)
    # Special leave (bereavement, marriage …) may route through a longer chain
    is_special: bool = False
    is_active: bool = True


class WorkingProfile(BaseModel):
    """A user's contractual working pattern.

    Range checks on ``working_days_per_week`` live in the entitlement engine so
    that a bad profile surfaces as ``InvalidWorkingPattern`` to HR rather than
    as a schema error.
    """

    model_config = ConfigDict(from_attributes=True)

    user_id: str
    pattern: WorkingPattern = WorkingPattern.full_time
    working_days_per_week: Decimal = Decimal("5")
    working_hours_per_week: Decimal = Decimal("40")
    contract_start: Optional[date] = None


class Employee(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    role: UserRole = UserRole.employee
    manager_id: Optional[str] = None
    department_director_id: Optional[str] = None
    department: Optional[str] = None
    is_active: bool = True


class Holiday(BaseModel):
    model_config = ConfigDict(frozen=True)

    date: date
    name: str
    # Blocked holidays are excluded from leave day counts
    is_blocked: bool = True
