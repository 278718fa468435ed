from leavecore.reference.schemas import (
    Employee,
    Holiday,
    LeaveTypeDefinition,
    MinimumFloor,
    WorkingProfile,
)
from leavecore.reference.service import InMemoryDirectory, ReferenceSource

__all__ = [
    "Employee",
    "Holiday",
    "InMemoryDirectory",
    "LeaveTypeDefinition",
    "MinimumFloor",
    "ReferenceSource",
    "WorkingProfile",
]
