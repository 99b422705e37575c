"""Timesheet workflow: weekly submission, resubmission and manager decisions."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from datetime import datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import Select, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from hr_workflows.actors import Actor, EmployeeActor, HrAdminActor, ManagerActor
from hr_workflows.database import dialect_insert
from hr_workflows.dates import Clock, utcnow
from hr_workflows.errors import (
    ForbiddenError,
    InvalidInputError,
    InvalidStateError,
    NotFoundError,
)
from hr_workflows.events.types import AuditEffect, NotificationType, NotifyEffect, WorkflowResult
from hr_workflows.ids import IdGenerator, default_id_generator
from hr_workflows.models import Timesheet, TimesheetEntry, TimesheetHistory, TimesheetManagerMap
from hr_workflows.schemas import (
    ManagerMapUpdate,
    TimesheetDecision,
    TimesheetEntryIn,
    TimesheetQuery,
    TimesheetSubmit,
    parse_payload,
)
from hr_workflows.services.locking_service import KeyedLock, timesheet_locks
from hr_workflows.services.state_machine import (
    InvalidTransitionError,
    TimesheetStateMachine,
    TimesheetStatus,
    parse_decision,
)

logger = logging.getLogger(__name__)

MAX_DAILY_HOURS = Decimal("24")
# Entry and total columns store hours to the hundredth
HOURS_QUANTUM = Decimal("0.01")


class TimesheetService:
    """Service for the weekly timesheet workflow.

    A timesheet is keyed by (employee, week_start_date). Submitting the
    same week again replaces its entries until a manager approves it;
    every status change is appended to the timesheet's history.
    """

    def __init__(
        self,
        session: AsyncSession,
        *,
        ids: IdGenerator | None = None,
        clock: Clock = utcnow,
        locks: KeyedLock | None = None,
    ):
        self.session = session
        self.ids = ids or default_id_generator
        self.clock = clock
        self.locks = locks or timesheet_locks

    async def set_manager_map(
        self,
        actor: Actor,
        payload: ManagerMapUpdate | Mapping[str, Any],
    ) -> WorkflowResult[TimesheetManagerMap]:
        """Assign the manager who decides an employee's timesheets."""
        if not isinstance(actor, (HrAdminActor, ManagerActor)):
            raise ForbiddenError("Only HR Admin or managers can map timesheet managers")
        data = parse_payload(ManagerMapUpdate, payload)
        employee_id = data.employee_id.strip()
        manager_id = data.manager_id.strip()
        if not employee_id or not manager_id:
            raise InvalidInputError("employeeId and managerId are required")

        now = self.clock()
        stmt = dialect_insert(self.session, TimesheetManagerMap).values(
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
        mapping = await self.session.get(
            TimesheetManagerMap, employee_id, populate_existing=True
        )

        logger.info("Timesheet manager for %s set to %s", employee_id, manager_id)
        return WorkflowResult(mapping)

    async def submit_timesheet(
        self,
        actor: Actor,
        payload: TimesheetSubmit | Mapping[str, Any],
    ) -> WorkflowResult[Timesheet]:
        """Submit or resubmit the acting employee's timesheet for a week.

        A new week is created as Submitted. An existing week that is not
        Approved gets its entries replaced and goes back to Submitted,
        keeping the manager it was first submitted to and its history.

        Raises:
            ForbiddenError: actor is not an employee
            InvalidInputError: no entries, hours outside 0-24 or finer than 0.01,
                or no manager
            InvalidStateError: the week is already approved
        """
        if not isinstance(actor, EmployeeActor):
            raise ForbiddenError("Only employees can submit timesheets")
        data = parse_payload(TimesheetSubmit, payload)
        employee_id = actor.subject_id
        _validate_entries(data.entries)

        mapping = await self.session.get(TimesheetManagerMap, employee_id)
        if mapping is None:
            raise InvalidInputError("Manager mapping not found for employee")

        total = sum((entry.hours for entry in data.entries), Decimal("0"))
        week = data.week_start_date

        async with self.locks.hold((employee_id, week.isoformat()), self.session):
            existing = await self._load(
                Timesheet.employee_id == employee_id,
                Timesheet.week_start_date == week,
            )
            if existing is None:
                timesheet = await self._create(employee_id, mapping.manager_id, data, total)
                resubmission = False
            else:
                timesheet = await self._resubmit(existing, data, total)
                resubmission = True

        logger.info(
            "Timesheet %s for week %s %s by %s (%s hours)",
            timesheet.id,
            week.isoformat(),
            "resubmitted" if resubmission else "submitted",
            employee_id,
            total,
        )
        return WorkflowResult(
            timesheet,
            [
                NotifyEffect(
                    user_id=timesheet.manager_id,
                    type=NotificationType.TIMESHEET,
                    title="Timesheet resubmitted" if resubmission else "New timesheet submitted",
                    message=f"{employee_id} submitted {total} hours for the week of {week.isoformat()}",
                ),
                AuditEffect(
                    actor_id=actor.audit_id,
                    action="timesheet.submitted",
                    entity="timesheet",
                    entity_id=timesheet.id,
                    metadata={
                        "weekStartDate": week.isoformat(),
                        "totalHours": str(total),
                        "resubmission": resubmission,
                    },
                ),
            ],
        )

    async def list_timesheets(
        self,
        actor: Actor,
        query: TimesheetQuery | Mapping[str, Any] | None = None,
    ) -> list[Timesheet]:
        """Timesheets visible to the actor with entries and history, newest week first."""
        filters = parse_payload(TimesheetQuery, query or {})
        criteria = []
        if isinstance(actor, EmployeeActor):
            criteria.append(Timesheet.employee_id == actor.subject_id)
        elif isinstance(actor, ManagerActor):
            criteria.append(Timesheet.manager_id == actor.subject_id)
        elif filters.employee_id:
            criteria.append(Timesheet.employee_id == filters.employee_id)
        if filters.week_start_date is not None:
            criteria.append(Timesheet.week_start_date == filters.week_start_date)

        result = await self.session.execute(
            self._select()
            .where(*criteria)
            .order_by(Timesheet.week_start_date.desc(), Timesheet.employee_id)
        )
        return list(result.scalars().all())

    async def get_timesheet(self, actor: Actor, timesheet_id: str) -> Timesheet:
        timesheet = await self._load(Timesheet.id == timesheet_id)
        if timesheet is None:
            raise NotFoundError("Timesheet", timesheet_id)
        if isinstance(actor, EmployeeActor) and timesheet.employee_id != actor.subject_id:
            raise ForbiddenError("Timesheet belongs to another employee")
        if isinstance(actor, ManagerActor) and timesheet.manager_id != actor.subject_id:
            raise ForbiddenError("Timesheet is assigned to a different manager")
        return timesheet

    async def decide_timesheet(
        self,
        actor: Actor,
        payload: TimesheetDecision | Mapping[str, Any],
    ) -> WorkflowResult[Timesheet]:
        """Approve or reject a Submitted timesheet.

        Raises:
            ForbiddenError: actor is not the timesheet's manager
            NotFoundError: no such timesheet
            InvalidStateError: the timesheet is not Submitted
            InvalidInputError: decision is not Approved or Rejected
        """
        if not isinstance(actor, ManagerActor):
            raise ForbiddenError("Only managers can decide timesheets")
        data = parse_payload(TimesheetDecision, payload)
        decision = parse_decision(
            data.decision, TimesheetStatus.APPROVED, TimesheetStatus.REJECTED
        )

        timesheet = await self._load(Timesheet.id == data.timesheet_id)
        if timesheet is None:
            raise NotFoundError("Timesheet", data.timesheet_id)
        if timesheet.manager_id != actor.subject_id:
            raise ForbiddenError("Timesheet is assigned to a different manager")

        TimesheetStateMachine.validate_transition(
            timesheet.status, decision, "Timesheet already decided"
        )

        now = self.clock()
        result = await self.session.execute(
            update(Timesheet)
            .where(
                Timesheet.id == timesheet.id,
                Timesheet.status == TimesheetStatus.SUBMITTED.value,
            )
            .values(status=decision.value, manager_comment=data.manager_comment, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            raise InvalidTransitionError(
                TimesheetStatus.SUBMITTED, decision, "Timesheet already decided"
            )

        timesheet.status = decision.value
        timesheet.manager_comment = data.manager_comment
        timesheet.updated_at = now
        self._append_history(timesheet, decision, now, data.manager_comment)
        await self.session.flush()

        verb = decision.value.lower()
        week = timesheet.week_start_date.isoformat()
        logger.info("Timesheet %s %s by %s", timesheet.id, verb, actor.subject_id)
        return WorkflowResult(
            timesheet,
            [
                NotifyEffect(
                    user_id=timesheet.employee_id,
                    type=NotificationType.TIMESHEET,
                    title=f"Timesheet {verb}",
                    message=f"Your timesheet for the week of {week} was {verb}",
                ),
                AuditEffect(
                    actor_id=actor.audit_id,
                    action=f"timesheet.{verb}",
                    entity="timesheet",
                    entity_id=timesheet.id,
                    metadata={"managerComment": data.manager_comment},
                ),
            ],
        )

    async def pending_approvals_count(self, manager_id: str | None = None) -> int:
        """Submitted timesheets awaiting a decision, optionally for one manager."""
        stmt = (
            select(func.count())
            .select_from(Timesheet)
            .where(Timesheet.status == TimesheetStatus.SUBMITTED.value)
        )
        if manager_id:
            stmt = stmt.where(Timesheet.manager_id == manager_id)
        result = await self.session.execute(stmt)
        return result.scalar_one()

    async def _create(
        self,
        employee_id: str,
        manager_id: str,
        data: TimesheetSubmit,
        total: Decimal,
    ) -> Timesheet:
        now = self.clock()
        timesheet_id = self.ids("ts")
        timesheet = Timesheet(
            id=timesheet_id,
            employee_id=employee_id,
            manager_id=manager_id,
            week_start_date=data.week_start_date,
            total_hours=total,
            status=TimesheetStatus.SUBMITTED.value,
            manager_comment=None,
            updated_at=now,
            entries=self._build_entries(timesheet_id, data.entries),
            history=[],
        )
        self._append_history(timesheet, TimesheetStatus.SUBMITTED, now)
        self.session.add(timesheet)
        try:
            await self.session.flush()
        except IntegrityError as exc:
            # Another transaction created the same week after our read
            raise InvalidStateError(
                f"Timesheet for week {data.week_start_date.isoformat()} was submitted "
                "concurrently; retry the submission"
            ) from exc
        return timesheet

    async def _resubmit(
        self,
        timesheet: Timesheet,
        data: TimesheetSubmit,
        total: Decimal,
    ) -> Timesheet:
        if not TimesheetStateMachine.can_resubmit(timesheet.status):
            raise InvalidTransitionError(
                timesheet.status,
                TimesheetStatus.SUBMITTED,
                "Approved timesheet cannot be modified",
            )

        now = self.clock()
        result = await self.session.execute(
            update(Timesheet)
            .where(
                Timesheet.id == timesheet.id,
                Timesheet.status != TimesheetStatus.APPROVED.value,
            )
            .values(
                total_hours=total,
                status=TimesheetStatus.SUBMITTED.value,
                manager_comment=None,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            raise InvalidTransitionError(
                TimesheetStatus.APPROVED,
                TimesheetStatus.SUBMITTED,
                "Approved timesheet cannot be modified",
            )

        timesheet.total_hours = total
        timesheet.status = TimesheetStatus.SUBMITTED.value
        timesheet.manager_comment = None
        timesheet.updated_at = now
        # Orphaned entries are deleted on flush
        timesheet.entries = self._build_entries(timesheet.id, data.entries)
        self._append_history(timesheet, TimesheetStatus.SUBMITTED, now)
        await self.session.flush()
        return timesheet

    def _build_entries(
        self, timesheet_id: str, entries: list[TimesheetEntryIn]
    ) -> list[TimesheetEntry]:
        return [
            TimesheetEntry(
                id=self.ids("tse"),
                timesheet_id=timesheet_id,
                position=position,
                day=entry.day.strip(),
                hours=entry.hours,
            )
            for position, entry in enumerate(entries)
        ]

    def _append_history(
        self,
        timesheet: Timesheet,
        status: TimesheetStatus,
        at: datetime,
        comment: str | None = None,
    ) -> None:
        timesheet.history.append(
            TimesheetHistory(
                id=self.ids("tsh"),
                timesheet_id=timesheet.id,
                sequence=len(timesheet.history) + 1,
                status=status.value,
                at=at,
                comment=comment,
            )
        )

    def _select(self) -> Select[tuple[Timesheet]]:
        return select(Timesheet).options(
            selectinload(Timesheet.entries),
            selectinload(Timesheet.history),
        ).execution_options(populate_existing=True)

    async def _load(self, *criteria) -> Timesheet | None:
        result = await self.session.execute(self._select().where(*criteria))
        return result.scalar_one_or_none()


def _validate_entries(entries: list[TimesheetEntryIn]) -> None:
    if not entries:
        raise InvalidInputError("Timesheet must have at least one entry")
    for entry in entries:
        if not entry.day.strip():
            raise InvalidInputError("Each entry needs a day")
        if entry.hours < 0 or entry.hours > MAX_DAILY_HOURS:
            raise InvalidInputError(
                f"Hours for {entry.day} must be between 0 and {MAX_DAILY_HOURS}, got {entry.hours}"
            )
        if entry.hours != entry.hours.quantize(HOURS_QUANTUM):
            raise InvalidInputError(
                f"Hours for {entry.day} allow at most two decimal places, got {entry.hours}"
            )
