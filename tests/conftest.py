"""Shared test fixtures — reference directory, core services, SQL store, client.

Uses SQLite + aiosqlite for the SQL-backed store and audit trail.
"""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from typing import AsyncGenerator, Optional

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from leavecore.common.constants import Rounding, UserRole, WorkingPattern
from leavecore.config import Settings
from leavecore.container import LeaveCore, build_core
from leavecore.database import Base
from leavecore.main import create_app
from leavecore.reference.schemas import (
    Employee,
    Holiday,
    LeaveTypeDefinition,
    MinimumFloor,
    WorkingProfile,
)
from leavecore.reference.service import InMemoryDirectory

# Register tables on Base.metadata
import leavecore.common.audit  # noqa: F401
import leavecore.storage.models  # noqa: F401


# ── Test database (SQLite in-memory) ────────────────────────────────

TEST_DATABASE_URL = "sqlite+aiosqlite://"

engine = create_async_engine(
    TEST_DATABASE_URL,
    echo=False,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

TestSessionFactory = async_sessionmaker(
    engine, class_=AsyncSession, expire_on_commit=False,
)


@pytest.fixture(autouse=True)
async def _setup_db():
    """Create all tables before each test, drop after."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


# ── Clock ───────────────────────────────────────────────────────────

class FrozenClock:
    """Callable clock the tests move by hand."""

    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


# Tuesday
START = datetime(2025, 7, 1, 9, 0, tzinfo=timezone.utc)


# ── Reference data factories ────────────────────────────────────────

def _make_employee(
    user_id: str,
    *,
    role: UserRole = UserRole.employee,
    manager_id: Optional[str] = None,
    department_director_id: Optional[str] = None,
) -> Employee:
    return Employee(
        id=user_id,
        name=user_id.title(),
        role=role,
        manager_id=manager_id,
        department_director_id=department_director_id,
        department="Engineering",
    )


def _make_profile(
    user_id: str,
    *,
    pattern: WorkingPattern = WorkingPattern.full_time,
    days: str = "5",
    hours: str = "40",
    contract_start: Optional[date] = date(2020, 1, 1),
) -> WorkingProfile:
    return WorkingProfile(
        user_id=user_id,
        pattern=pattern,
        working_days_per_week=Decimal(days),
        working_hours_per_week=Decimal(hours),
        contract_start=contract_start,
    )


ANNUAL = LeaveTypeDefinition(
    code="ANNUAL",
    name="Annual Leave",
    base_allowance=Decimal("20"),
    minimum_floor=MinimumFloor(statutory_base=Decimal("20"), minimum_days=Decimal("4")),
    rounding=Rounding.whole_day,
    allow_carry_forward=True,
    max_carry_forward=Decimal("5"),
)
SICK = LeaveTypeDefinition(
    code="SICK",
    name="Sick Leave",
    base_allowance=Decimal("10"),
    requires_document=True,
)
BEREAVEMENT = LeaveTypeDefinition(
    code="BEREAVEMENT",
    name="Bereavement Leave",
    base_allowance=Decimal("5"),
    is_special=True,
)
RETIRED = LeaveTypeDefinition(
    code="RETIRED",
    name="Retired Leave Type",
    base_allowance=Decimal("5"),
    is_active=False,
)


def _make_directory() -> InMemoryDirectory:
    """
    exec ← director ← manager ← alice, bob, carol
    hr reports to exec; solo has no manager.
    """
    directory = InMemoryDirectory(
        leave_types=[ANNUAL, SICK, BEREAVEMENT, RETIRED],
        holidays=[Holiday(date=date(2025, 12, 25), name="Christmas Day")],
    )
    people = [
        _make_employee("exec", role=UserRole.executive),
        _make_employee("director", role=UserRole.department_director, manager_id="exec"),
        _make_employee(
            "manager", role=UserRole.manager, manager_id="director",
            department_director_id="director",
        ),
        _make_employee("hr", role=UserRole.hr, manager_id="exec"),
        _make_employee("solo"),
    ]
    for name in ("alice", "bob", "carol"):
        people.append(
            _make_employee(name, manager_id="manager", department_director_id="director")
        )
    for person in people:
        directory.add_employee(person, _make_profile(person.id))
    return directory


# ── Core fixtures ───────────────────────────────────────────────────

@pytest.fixture
def settings() -> Settings:
    return Settings()


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock(START)


@pytest.fixture
def directory() -> InMemoryDirectory:
    return _make_directory()


@pytest.fixture
def core(directory, settings, clock) -> LeaveCore:
    return build_core(reference=directory, config=settings, clock=clock)


@pytest.fixture
def make_core(directory, clock):
    """Build a core with overridden policy settings."""

    def _build(**overrides) -> LeaveCore:
        return build_core(reference=directory, config=Settings(**overrides), clock=clock)

    return _build


# ── FastAPI test client ─────────────────────────────────────────────

@pytest.fixture
async def app(core):
    yield create_app(core)


@pytest.fixture
async def client(app) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client wired to the test app."""
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac
