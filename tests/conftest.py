"""Pytest fixtures for HR workflow tests."""

from __future__ import annotations

from collections.abc import AsyncGenerator
from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from hr_workflows.actors import EmployeeActor, HrAdminActor, ManagerActor
from hr_workflows.database import create_schema, make_session_factory
from hr_workflows.events import EffectEmitter, InMemoryAuditSink, InMemoryNotificationSink
from hr_workflows.ids import SequentialIdGenerator
from hr_workflows.models import LeaveType
from hr_workflows.services.runner import WorkflowRunner

# One shared in-memory SQLite connection per test
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

EMPLOYEE_ID = "emp_1"
OTHER_EMPLOYEE_ID = "emp_2"
MANAGER_ID = "mgr_1"
OTHER_MANAGER_ID = "mgr_2"


class FakeClock:
    """Clock that advances one second on every call."""

    def __init__(
        self,
        start: datetime = datetime(2026, 2, 10, 9, 0, tzinfo=timezone.utc),
        step: timedelta = timedelta(seconds=1),
    ):
        self.now = start
        self.step = step

    def __call__(self) -> datetime:
        current = self.now
        self.now += self.step
        return current


@pytest_asyncio.fixture
async def engine():
    """Create test database engine with all tables."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    await create_schema(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine) -> async_sessionmaker[AsyncSession]:
    return make_session_factory(engine)


@pytest_asyncio.fixture
async def session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Create a database session for each test."""
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
def ids() -> SequentialIdGenerator:
    return SequentialIdGenerator()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def notifications(ids, clock) -> InMemoryNotificationSink:
    return InMemoryNotificationSink(ids, clock)


@pytest.fixture
def audit(ids, clock) -> InMemoryAuditSink:
    return InMemoryAuditSink(ids, clock)


@pytest.fixture
def runner(session_factory, notifications, audit, ids, clock) -> WorkflowRunner:
    return WorkflowRunner(
        session_factory,
        EffectEmitter(notifications, audit),
        ids=ids,
        clock=clock,
    )


# ============================================================================
# Actors
# ============================================================================


@pytest.fixture
def admin() -> HrAdminActor:
    return HrAdminActor(subject_id="hr_1")


@pytest.fixture
def employee() -> EmployeeActor:
    return EmployeeActor(subject_id=EMPLOYEE_ID)


@pytest.fixture
def other_employee() -> EmployeeActor:
    return EmployeeActor(subject_id=OTHER_EMPLOYEE_ID)


@pytest.fixture
def manager() -> ManagerActor:
    return ManagerActor(subject_id=MANAGER_ID)


@pytest.fixture
def other_manager() -> ManagerActor:
    return ManagerActor(subject_id=OTHER_MANAGER_ID)


# ============================================================================
# Seeded workflows
# ============================================================================


@pytest_asyncio.fixture
async def annual_leave(runner, admin) -> LeaveType:
    """Paid "Annual" leave, emp_1 reporting to mgr_1 with 10 days allocated."""
    created = await runner.run(
        lambda wf: wf.leave.create_leave_type(admin, {"name": "Annual", "paid": True})
    )
    await runner.run(
        lambda wf: wf.leave.set_manager_map(
            admin, {"employee_id": EMPLOYEE_ID, "manager_id": MANAGER_ID}
        )
    )
    await runner.run(
        lambda wf: wf.leave.allocate_leave(
            admin,
            {"employee_id": EMPLOYEE_ID, "leave_type_id": created.value.id, "allocated": 10},
        )
    )
    return created.value


@pytest_asyncio.fixture
async def timesheet_mapping(runner, admin) -> None:
    """emp_1 and emp_2 submit timesheets to mgr_1."""
    for employee_id in (EMPLOYEE_ID, OTHER_EMPLOYEE_ID):
        await runner.run(
            lambda wf, employee_id=employee_id: wf.timesheet.set_manager_map(
                admin, {"employee_id": employee_id, "manager_id": MANAGER_ID}
            )
        )
