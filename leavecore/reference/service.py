"""Reference data port and an in-memory directory implementation.

The workflow and ledger only ever read reference data; the directory is the
seam where an HR system (or a test fixture) plugs in.
"""

from __future__ import annotations

from datetime import date
from typing import Iterable, Optional, Protocol

from leavecore.common.constants import UserRole
from leavecore.common.exceptions import NotFoundException, UnknownLeaveType
from leavecore.reference.schemas import (
    Employee,
    Holiday,
    LeaveTypeDefinition,
    WorkingProfile,
)


class ReferenceSource(Protocol):
    async def get_working_profile(self, user_id: str) -> WorkingProfile:
        ...

    async def get_leave_type(self, code: str) -> LeaveTypeDefinition:
        ...

    async def list_leave_types(self, active_only: bool = True) -> list[LeaveTypeDefinition]:
        ...

    async def get_employee(self, user_id: str) -> Employee:
        ...

    async def employees_with_role(self, role: UserRole) -> list[Employee]:
        ...

    async def get_blocked_dates(self, start: date, end: date) -> set[date]:
        ...


class InMemoryDirectory:
    """Dict-backed :class:`ReferenceSource`."""

    def __init__(
        self,
        *,
        employees: Iterable[Employee] = (),
        profiles: Iterable[WorkingProfile] = (),
        leave_types: Iterable[LeaveTypeDefinition] = (),
        holidays: Iterable[Holiday] = (),
    ) -> None:
        self._employees: dict[str, Employee] = {e.id: e for e in employees}
        self._profiles: dict[str, WorkingProfile] = {p.user_id: p for p in profiles}
        self._leave_types: dict[str, LeaveTypeDefinition] = {t.code: t for t in leave_types}
        self._holidays: dict[date, Holiday] = {h.date: h for h in holidays}

    # ── Mutators (HR tooling / fixtures) ────────────────────────────

    def add_employee(self, employee: Employee, profile: Optional[WorkingProfile] = None) -> None:
        self._employees[employee.id] = employee
        self._profiles[employee.id] = profile or WorkingProfile(user_id=employee.id)

    def set_profile(self, profile: WorkingProfile) -> None:
        self._profiles[profile.user_id] = profile

    def add_leave_type(self, leave_type: LeaveTypeDefinition) -> None:
        self._leave_types[leave_type.code] = leave_type

    def add_holiday(self, holiday: Holiday) -> None:
        self._holidays[holiday.date] = holiday

    # ── ReferenceSource ─────────────────────────────────────────────

    async def get_working_profile(self, user_id: str) -> WorkingProfile:
        profile = self._profiles.get(user_id)
        if profile is None:
            raise NotFoundException("WorkingProfile", user_id)
        return profile

    async def get_leave_type(self, code: str) -> LeaveTypeDefinition:
        leave_type = self._leave_types.get(code)
        if leave_type is None:
            raise UnknownLeaveType(code)
        return leave_type

    async def list_leave_types(self, active_only: bool = True) -> list[LeaveTypeDefinition]:
        types = sorted(self._leave_types.values(), key=lambda t: t.code)
        if active_only:
            return [t for t in types if t.is_active]
        return types

    async def get_employee(self, user_id: str) -> Employee:
        employee = self._employees.get(user_id)
        if employee is None:
            raise NotFoundException("Employee", user_id)
        return employee

    async def employees_with_role(self, role: UserRole) -> list[Employee]:
        return sorted(
            (e for e in self._employees.values() if e.role == role and e.is_active),
            key=lambda e: e.id,
        )

    async def get_blocked_dates(self, start: date, end: date) -> set[date]:
        return {
            d for d, h in self._holidays.items()
            if h.is_blocked and start <= d <= end
        }
