"""Leave workflow: catalog, allocations, requests and decisions."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from datetime import date
from typing import Any

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from hr_workflows.actors import Actor, EmployeeActor, ManagerActor, require_hr_admin
from hr_workflows.database import dialect_insert
from hr_workflows.dates import Clock, inclusive_day_count, today_utc, utcnow
from hr_workflows.errors import ForbiddenError, InvalidInputError, NotFoundError
from hr_workflows.events.types import AuditEffect, NotificationType, NotifyEffect, WorkflowResult
from hr_workflows.ids import IdGenerator, default_id_generator
from hr_workflows.models import LeaveAllocation, LeaveManagerMap, LeaveRequest, LeaveType
from hr_workflows.schemas import (
    LeaveAllocationUpsert,
    LeaveBalance,
    LeaveDecision,
    LeaveRequestCreate,
    LeaveRequestQuery,
    LeaveTypeCreate,
    ManagerMapUpdate,
    parse_payload,
)
from hr_workflows.services.state_machine import (
    InvalidTransitionError,
    LeaveRequestStateMachine,
    LeaveRequestStatus,
    parse_decision,
)

logger = logging.getLogger(__name__)


class LeaveService:
    """Service for the leave workflow.

    Operations:
    - create_leave_type / list_leave_types: the leave catalog
    - set_manager_map: who decides an employee's requests
    - allocate_leave: set an employee's allocation, keeping what was used
    - request_leave: employee submits a Pending request
    - decide_request: the bound manager approves or rejects it once
    - get_balances / on_leave_count: read views

    Mutating operations return a WorkflowResult; its effects are emitted
    by the runner after the session commits.
    """

    def __init__(
        self,
        session: AsyncSession,
        *,
        ids: IdGenerator | None = None,
        clock: Clock = utcnow,
    ):
        self.session = session
        self.ids = ids or default_id_generator
        self.clock = clock

    # ------------------------------------------------------------------
    # Catalog and mappings (HR admin)
    # ------------------------------------------------------------------

    async def create_leave_type(
        self,
        actor: Actor,
        payload: LeaveTypeCreate | Mapping[str, Any],
    ) -> WorkflowResult[LeaveType]:
        require_hr_admin(actor)
        data = parse_payload(LeaveTypeCreate, payload)

        name = data.name.strip()
        if not name:
            raise InvalidInputError("Leave type name is required")
        if data.annual_limit is not None and data.annual_limit < 0:
            raise InvalidInputError("Annual limit cannot be negative")

        leave_type = LeaveType(
            id=self.ids("lt"),
            name=name,
            paid=data.paid,
            annual_limit=data.annual_limit,
        )
        self.session.add(leave_type)
        await self.session.flush()
        await self.session.refresh(leave_type)

        logger.info("Created leave type %s (%s)", leave_type.id, name)
        return WorkflowResult(leave_type)

    async def list_leave_types(self) -> list[LeaveType]:
        result = await self.session.execute(select(LeaveType).order_by(LeaveType.name))
        return list(result.scalars().all())

    async def set_manager_map(
        self,
        actor: Actor,
        payload: ManagerMapUpdate | Mapping[str, Any],
    ) -> WorkflowResult[LeaveManagerMap]:
        """Assign the manager who decides an employee's leave. Replaces any earlier one."""
        require_hr_admin(actor)
        data = parse_payload(ManagerMapUpdate, payload)
        employee_id = data.employee_id.strip()
        manager_id = data.manager_id.strip()
        if not employee_id or not manager_id:
            raise InvalidInputError("employeeId and managerId are required")

        now = self.clock()
        stmt = dialect_insert(self.session, LeaveManagerMap).values(
            employee_id=employee_id,
            manager_id=manager_id,
            updated_at=now,
        )
        await self.session.execute(
            stmt.on_conflict_do_update(
                index_elements=["employee_id"],
                set_={"manager_id": manager_id, "updated_at": now},
            )
        )
        mapping = await self.session.get(LeaveManagerMap, employee_id, populate_existing=True)

        logger.info("Leave manager for %s set to %s", employee_id, manager_id)
        return WorkflowResult(mapping)

    async def allocate_leave(
        self,
        actor: Actor,
        payload: LeaveAllocationUpsert | Mapping[str, Any],
    ) -> WorkflowResult[LeaveAllocation]:
        """Set how many days of a leave type an employee gets.

        An existing allocation keeps its ``used`` count; only ``allocated``
        is replaced.
        """
        require_hr_admin(actor)
        data = parse_payload(LeaveAllocationUpsert, payload)
        employee_id = data.employee_id.strip()
        if not employee_id:
            raise InvalidInputError("employeeId is required")
        if data.allocated < 0:
            raise InvalidInputError("Allocated days cannot be negative")
        if await self.session.get(LeaveType, data.leave_type_id) is None:
            raise InvalidInputError(f"Invalid leave type '{data.leave_type_id}'")

        now = self.clock()
        stmt = dialect_insert(self.session, LeaveAllocation).values(
            id=self.ids("la"),
            employee_id=employee_id,
            leave_type_id=data.leave_type_id,
            allocated=data.allocated,
            used=0,
            created_at=now,
            updated_at=now,
        )
        await self.session.execute(
            stmt.on_conflict_do_update(
                index_elements=["employee_id", "leave_type_id"],
                set_={"allocated": data.allocated, "updated_at": now},
            )
        )
        allocation = await self._get_allocation(employee_id, data.leave_type_id)

        logger.info(
            "Allocated %d days of %s to %s", data.allocated, data.leave_type_id, employee_id
        )
        return WorkflowResult(allocation)

    # ------------------------------------------------------------------
    # Requests
    # ------------------------------------------------------------------

    async def request_leave(
        self,
        actor: Actor,
        payload: LeaveRequestCreate | Mapping[str, Any],
    ) -> WorkflowResult[LeaveRequest]:
        """Submit a leave request for the acting employee.

        The employee's current leave manager is copied onto the request;
        later changes to the mapping do not move it.

        Raises:
            ForbiddenError: actor is not an employee
            InvalidInputError: bad dates, unknown type, no manager, or
                insufficient balance on a paid type
        """
        if not isinstance(actor, EmployeeActor):
            raise ForbiddenError("Only employees can request leave")
        data = parse_payload(LeaveRequestCreate, payload)
        employee_id = actor.subject_id

        if data.end_date < data.start_date:
            raise InvalidInputError("End date must be on or after start date")

        leave_type = await self.session.get(LeaveType, data.leave_type_id)
        if leave_type is None:
            raise InvalidInputError(f"Invalid leave type '{data.leave_type_id}'")

        mapping = await self.session.get(LeaveManagerMap, employee_id)
        if mapping is None:
            raise InvalidInputError("Manager mapping not found for employee")

        days = inclusive_day_count(data.start_date, data.end_date)

        if leave_type.paid:
            allocation = await self._get_allocation(employee_id, leave_type.id)
            if allocation is None:
                raise InvalidInputError(f"No allocation for leave type '{leave_type.name}'")
            if allocation.remaining < days:
                raise InvalidInputError(
                    f"Insufficient leave balance: {allocation.remaining} remaining, "
                    f"{days} requested"
                )

        now = self.clock()
        request = LeaveRequest(
            id=self.ids("lr"),
            employee_id=employee_id,
            manager_id=mapping.manager_id,
            leave_type_id=leave_type.id,
            start_date=data.start_date,
            end_date=data.end_date,
            days=days,
            reason=data.reason,
            status=LeaveRequestStatus.PENDING.value,
            created_at=now,
            updated_at=now,
        )
        self.session.add(request)
        await self.session.flush()

        logger.info(
            "Leave request %s submitted by %s for %d day(s)", request.id, employee_id, days
        )
        return WorkflowResult(
            request,
            [
                NotifyEffect(
                    user_id=request.manager_id,
                    type=NotificationType.LEAVE,
                    title="New leave request",
                    message=(
                        f"{employee_id} requested {days} day(s) of {leave_type.name} "
                        f"from {request.start_date.isoformat()} to {request.end_date.isoformat()}"
                    ),
                ),
                AuditEffect(
                    actor_id=actor.audit_id,
                    action="leave.request.submitted",
                    entity="leave_request",
                    entity_id=request.id,
                    metadata={"leaveTypeId": leave_type.id, "days": days},
                ),
            ],
        )

    async def list_requests(
        self,
        actor: Actor,
        query: LeaveRequestQuery | Mapping[str, Any] | None = None,
    ) -> list[LeaveRequest]:
        """Requests visible to the actor, newest first.

        Employees see their own, managers the ones bound to them. HR admins
        see everything, narrowed by employee_id, or else by manager_id.
        """
        filters = parse_payload(LeaveRequestQuery, query or {})
        stmt = select(LeaveRequest).order_by(
            LeaveRequest.created_at.desc(), LeaveRequest.id.desc()
        )

        if isinstance(actor, EmployeeActor):
            stmt = stmt.where(LeaveRequest.employee_id == actor.subject_id)
        elif isinstance(actor, ManagerActor):
            stmt = stmt.where(LeaveRequest.manager_id == actor.subject_id)
        elif filters.employee_id:
            stmt = stmt.where(LeaveRequest.employee_id == filters.employee_id)
        elif filters.manager_id:
            stmt = stmt.where(LeaveRequest.manager_id == filters.manager_id)

        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def decide_request(
        self,
        actor: Actor,
        payload: LeaveDecision | Mapping[str, Any],
    ) -> WorkflowResult[LeaveRequest]:
        """Approve or reject a Pending request.

        Only the manager stored on the request may decide it. Approval adds
        the request's days to the allocation's ``used`` count.

        Raises:
            ForbiddenError: actor is not the request's manager
            NotFoundError: no such request
            InvalidStateError: the request was already decided
            InvalidInputError: decision is not Approved or Rejected
        """
        if not isinstance(actor, ManagerActor):
            raise ForbiddenError("Only managers can decide leave requests")
        data = parse_payload(LeaveDecision, payload)
        decision = parse_decision(
            data.decision, LeaveRequestStatus.APPROVED, LeaveRequestStatus.REJECTED
        )

        request = await self.session.get(LeaveRequest, data.request_id)
        if request is None:
            raise NotFoundError("Leave request", data.request_id)
        if request.manager_id != actor.subject_id:
            raise ForbiddenError("Leave request is assigned to a different manager")

        LeaveRequestStateMachine.validate_transition(
            request.status, decision, "Leave request already decided"
        )

        now = self.clock()
        result = await self.session.execute(
            update(LeaveRequest)
            .where(
                LeaveRequest.id == request.id,
                LeaveRequest.status == LeaveRequestStatus.PENDING.value,
            )
            .values(
                status=decision.value,
                manager_comment=data.manager_comment,
                updated_at=now,
            )
        )
        if result.rowcount == 0:
            # Decided by a concurrent call since we read it
            await self.session.refresh(request)
            raise InvalidTransitionError(
                request.status, decision, "Leave request already decided"
            )

        if decision is LeaveRequestStatus.APPROVED:
            await self.session.execute(
                update(LeaveAllocation)
                .where(
                    LeaveAllocation.employee_id == request.employee_id,
                    LeaveAllocation.leave_type_id == request.leave_type_id,
                )
                .values(used=LeaveAllocation.used + request.days, updated_at=now)
            )

        await self.session.refresh(request)

        verb = decision.value.lower()
        logger.info("Leave request %s %s by %s", request.id, verb, actor.subject_id)
        return WorkflowResult(
            request,
            [
                NotifyEffect(
                    user_id=request.employee_id,
                    type=NotificationType.LEAVE,
                    title=f"Leave {verb}",
                    message=(
                        f"Your leave request from {request.start_date.isoformat()} "
                        f"to {request.end_date.isoformat()} was {verb}"
                    ),
                ),
                AuditEffect(
                    actor_id=actor.audit_id,
                    action=f"leave.request.{verb}",
                    entity="leave_request",
                    entity_id=request.id,
                    metadata={"managerComment": data.manager_comment},
                ),
            ],
        )

    # ------------------------------------------------------------------
    # Read views
    # ------------------------------------------------------------------

    async def get_balances(
        self,
        actor: Actor,
        employee_id: str | None = None,
    ) -> list[LeaveBalance]:
        """Allocations of one employee with remaining days, ordered by leave type name.

        Employees always get their own balances.
        """
        if isinstance(actor, EmployeeActor):
            target = actor.subject_id
        else:
            target = (employee_id or "").strip()
        if not target:
            raise InvalidInputError("employeeId is required")

        result = await self.session.execute(
            select(LeaveAllocation, LeaveType.name)
            .join(LeaveType, LeaveType.id == LeaveAllocation.leave_type_id)
            .where(LeaveAllocation.employee_id == target)
            .order_by(LeaveType.name)
        )
        return [
            LeaveBalance(
                id=allocation.id,
                employee_id=allocation.employee_id,
                leave_type_id=allocation.leave_type_id,
                leave_type=name,
                allocated=allocation.allocated,
                used=allocation.used,
                remaining=allocation.remaining,
            )
            for allocation, name in result.all()
        ]

    async def on_leave_count(self, on_date: date | None = None) -> int:
        """Number of approved requests that cover the date (default: today, UTC)."""
        day = on_date or today_utc(self.clock)
        result = await self.session.execute(
            select(func.count())
            .select_from(LeaveRequest)
            .where(
                LeaveRequest.status == LeaveRequestStatus.APPROVED.value,
                LeaveRequest.start_date <= day,
                LeaveRequest.end_date >= day,
            )
        )
        return result.scalar_one()

    async def _get_allocation(
        self, employee_id: str, leave_type_id: str
    ) -> LeaveAllocation | None:
        result = await self.session.execute(
            select(LeaveAllocation)
            .where(
                LeaveAllocation.employee_id == employee_id,
                LeaveAllocation.leave_type_id == leave_type_id,
            )
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()
