"""Demo baseline: leave types, manager mappings, allocations and salary components.

Every step checks for existing rows first, so seeding twice leaves the
database unchanged.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from hr_workflows.actors import HrAdminActor
from hr_workflows.ids import IdGenerator, default_id_generator
from hr_workflows.models import LeaveType, SalaryComponent
from hr_workflows.services.leave_service import LeaveService
from hr_workflows.services.payroll_service import PayrollService
from hr_workflows.services.timesheet_service import TimesheetService

logger = logging.getLogger(__name__)

DEMO_EMPLOYEE = "emp_demo_1"
DEMO_MANAGER = "mgr_demo_1"

DEMO_LEAVE_TYPES = (
    ("Annual", True, 14),
    ("Sick", True, 8),
)

DEMO_COMPONENTS = (
    ("earning", "Basic Salary", Decimal("2000")),
    ("deduction", "Tax", Decimal("200")),
)

DEMO_EFFECTIVE_FROM = date(2026, 1, 1)


@dataclass
class SeedReport:
    leave_types_created: int = 0
    components_created: int = 0


async def seed_demo(
    session_factory: async_sessionmaker[AsyncSession],
    ids: IdGenerator | None = None,
) -> SeedReport:
    """Seed the demo baseline in one transaction."""
    ids = ids or default_id_generator
    admin = HrAdminActor()
    report = SeedReport()

    async with session_factory() as session:
        leave = LeaveService(session, ids=ids)
        timesheet = TimesheetService(session, ids=ids)
        payroll = PayrollService(session, ids=ids)

        mapping = {"employee_id": DEMO_EMPLOYEE, "manager_id": DEMO_MANAGER}
        await leave.set_manager_map(admin, mapping)
        await timesheet.set_manager_map(admin, mapping)

        for name, paid, limit in DEMO_LEAVE_TYPES:
            leave_type = (
                await session.execute(select(LeaveType).where(LeaveType.name == name))
            ).scalar_one_or_none()
            if leave_type is None:
                created = await leave.create_leave_type(
                    admin, {"name": name, "paid": paid, "annual_limit": limit}
                )
                leave_type = created.value
                report.leave_types_created += 1
            # Re-running restores the allocation but keeps used days
            await leave.allocate_leave(
                admin,
                {
                    "employee_id": DEMO_EMPLOYEE,
                    "leave_type_id": leave_type.id,
                    "allocated": limit,
                },
            )

        for component_type, name, amount in DEMO_COMPONENTS:
            existing = (
                await session.execute(
                    select(SalaryComponent).where(
                        SalaryComponent.employee_id == DEMO_EMPLOYEE,
                        SalaryComponent.name == name,
                    )
                )
            ).scalar_one_or_none()
            if existing is not None:
                continue
            await payroll.add_component(
                admin,
                {
                    "employee_id": DEMO_EMPLOYEE,
                    "type": component_type,
                    "name": name,
                    "amount": amount,
                    "effective_from": DEMO_EFFECTIVE_FROM,
                },
            )
            report.components_created += 1

        await session.commit()

    logger.info(
        "Seeded demo data: %d leave type(s), %d component(s) created",
        report.leave_types_created,
        report.components_created,
    )
    return report
