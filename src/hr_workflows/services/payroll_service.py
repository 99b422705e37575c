"""Payroll workflow: salary components, monthly drafts, finalization and payslips."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from decimal import Decimal
from enum import Enum
from typing import Any

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from hr_workflows.actors import Actor, EmployeeActor, require_hr_admin
from hr_workflows.database import dialect_insert
from hr_workflows.dates import Clock, utcnow, validate_month
from hr_workflows.errors import InvalidInputError, attach_committed_effects
from hr_workflows.events.types import (
    AuditEffect,
    Effect,
    NotificationType,
    NotifyEffect,
    WorkflowResult,
)
from hr_workflows.ids import IdGenerator, default_id_generator
from hr_workflows.models import PayrollEntry, Payslip, SalaryComponent
from hr_workflows.schemas import (
    MonthlySummary,
    PayrollBatch,
    PayrollQuery,
    SalaryComponentCreate,
    parse_payload,
)
from hr_workflows.services.locking_service import KeyedLock, payroll_locks
from hr_workflows.services.state_machine import (
    InvalidTransitionError,
    PayrollEntryStateMachine,
    PayrollEntryStatus,
)

logger = logging.getLogger(__name__)

ZERO = Decimal("0")


class SalaryComponentType(str, Enum):
    """Kinds of salary component."""

    EARNING = "earning"
    DEDUCTION = "deduction"


class PayrollService:
    """Service for the monthly payroll workflow.

    Operations:
    - add_component / list_components: earnings and deductions per employee
    - run_draft: compute Draft entries, recomputing earlier drafts in place
    - finalize_month: freeze drafts and materialize payslips
    - list_payroll_entries / list_payslips / monthly_summary: read views

    Batches are processed one employee at a time, each under a lock on
    (employee, month), and each employee's work is committed before the
    next starts. A failure stops the batch; employees already processed
    stay committed and their effects travel on the exception's
    ``committed_effects``.
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
        self.locks = locks or payroll_locks

    # ------------------------------------------------------------------
    # Salary components
    # ------------------------------------------------------------------

    async def add_component(
        self,
        actor: Actor,
        payload: SalaryComponentCreate | Mapping[str, Any],
    ) -> WorkflowResult[SalaryComponent]:
        require_hr_admin(actor)
        data = parse_payload(SalaryComponentCreate, payload)

        employee_id = data.employee_id.strip()
        name = data.name.strip()
        if not employee_id:
            raise InvalidInputError("employeeId is required")
        if not name:
            raise InvalidInputError("Component name is required")
        if data.amount < 0:
            raise InvalidInputError("Component amount cannot be negative")
        try:
            component_type = SalaryComponentType(data.type.strip().lower())
        except ValueError:
            raise InvalidInputError(
                f"Component type must be 'earning' or 'deduction', got '{data.type}'"
            ) from None

        component = SalaryComponent(
            id=self.ids("sc"),
            employee_id=employee_id,
            type=component_type.value,
            name=name,
            amount=data.amount,
            effective_from=data.effective_from,
        )
        self.session.add(component)
        await self.session.flush()
        await self.session.refresh(component)

        logger.info(
            "Added %s component %s (%s) for %s",
            component_type.value,
            component.id,
            name,
            employee_id,
        )
        return WorkflowResult(component)

    async def list_components(
        self,
        actor: Actor,
        employee_id: str | None = None,
    ) -> list[SalaryComponent]:
        """Components visible to the actor. Employees only see their own."""
        stmt = select(SalaryComponent).order_by(
            SalaryComponent.employee_id,
            SalaryComponent.effective_from,
            SalaryComponent.id,
        )
        if isinstance(actor, EmployeeActor):
            stmt = stmt.where(SalaryComponent.employee_id == actor.subject_id)
        elif employee_id:
            stmt = stmt.where(SalaryComponent.employee_id == employee_id)
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    # ------------------------------------------------------------------
    # Draft and finalize
    # ------------------------------------------------------------------

    async def run_draft(
        self,
        actor: Actor,
        payload: PayrollBatch | Mapping[str, Any],
    ) -> WorkflowResult[list[PayrollEntry]]:
        """Compute Draft payroll entries for the month.

        gross is the sum of the employee's earnings, deductions the sum of
        their deductions, over every component on file. Running the same
        month again recomputes the Draft in place.

        Raises:
            ForbiddenError: actor is not an HR admin
            InvalidInputError: malformed month or no employees
            InvalidStateError: an employee's month is already finalized
        """
        require_hr_admin(actor)
        month, employee_ids = _parse_batch(payload)

        entries: list[PayrollEntry] = []
        for employee_id in employee_ids:
            async with self.locks.hold((employee_id, month), self.session):
                entries.append(await self._draft_one(employee_id, month))
                await self.session.commit()

        logger.info("Drafted payroll for %d employee(s) for %s", len(entries), month)
        return WorkflowResult(entries)

    async def finalize_month(
        self,
        actor: Actor,
        payload: PayrollBatch | Mapping[str, Any],
    ) -> WorkflowResult[list[PayrollEntry]]:
        """Finalize Draft entries and create their payslips.

        Each finalized employee is notified that the payslip is available.

        Raises:
            ForbiddenError: actor is not an HR admin
            InvalidInputError: malformed month, no employees, or no draft
            InvalidStateError: an employee's month is already finalized
        """
        require_hr_admin(actor)
        month, employee_ids = _parse_batch(payload)

        entries: list[PayrollEntry] = []
        effects: list[Effect] = []
        try:
            for employee_id in employee_ids:
                async with self.locks.hold((employee_id, month), self.session):
                    entry = await self._finalize_one(employee_id, month)
                    await self.session.commit()
                entries.append(entry)
                effects.extend(self._finalized_effects(actor, entry))
        except Exception as exc:
            attach_committed_effects(exc, effects)
            raise

        logger.info("Finalized payroll for %d employee(s) for %s", len(entries), month)
        return WorkflowResult(entries, effects)

    async def _draft_one(self, employee_id: str, month: str) -> PayrollEntry:
        existing = await self._get_entry(employee_id, month)
        if existing is not None:
            PayrollEntryStateMachine.validate_transition(
                existing.status,
                PayrollEntryStatus.DRAFT,
                f"Payroll already finalized for {employee_id} {month}",
            )

        gross, deductions = await self._totals(employee_id)
        net = gross - deductions
        now = self.clock()

        stmt = dialect_insert(self.session, PayrollEntry).values(
            employee_id=employee_id,
            month=month,
            gross=gross,
            deductions=deductions,
            net=net,
            status=PayrollEntryStatus.DRAFT.value,
            updated_at=now,
        )
        await self.session.execute(
            stmt.on_conflict_do_update(
                index_elements=["employee_id", "month"],
                set_={
                    "gross": gross,
                    "deductions": deductions,
                    "net": net,
                    "updated_at": now,
                },
                # A row finalized since the read above is left alone
                where=PayrollEntry.status == PayrollEntryStatus.DRAFT.value,
            )
        )

        entry = await self._get_entry(employee_id, month)
        if entry.status != PayrollEntryStatus.DRAFT.value:
            raise InvalidTransitionError(
                entry.status,
                PayrollEntryStatus.DRAFT,
                f"Payroll already finalized for {employee_id} {month}",
            )
        logger.debug(
            "Draft %s %s: gross=%s deductions=%s net=%s",
            employee_id,
            month,
            gross,
            deductions,
            net,
        )
        return entry

    async def _finalize_one(self, employee_id: str, month: str) -> PayrollEntry:
        entry = await self._get_entry(employee_id, month)
        if entry is None:
            raise InvalidInputError(f"Payroll draft not found for {employee_id} {month}")
        PayrollEntryStateMachine.validate_transition(
            entry.status,
            PayrollEntryStatus.FINALIZED,
            f"Payroll already finalized for {employee_id} {month}",
        )

        result = await self.session.execute(
            update(PayrollEntry)
            .where(
                PayrollEntry.employee_id == employee_id,
                PayrollEntry.month == month,
                PayrollEntry.status == PayrollEntryStatus.DRAFT.value,
            )
            .values(status=PayrollEntryStatus.FINALIZED.value, updated_at=self.clock())
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            raise InvalidTransitionError(
                PayrollEntryStatus.FINALIZED,
                PayrollEntryStatus.FINALIZED,
                f"Payroll already finalized for {employee_id} {month}",
            )

        # At most one payslip per employee and month
        await self.session.execute(
            dialect_insert(self.session, Payslip)
            .values(
                id=self.ids("ps"),
                employee_id=employee_id,
                month=month,
                gross=entry.gross,
                deductions=entry.deductions,
                net=entry.net,
            )
            .on_conflict_do_nothing(index_elements=["employee_id", "month"])
        )

        return await self._get_entry(employee_id, month)

    def _finalized_effects(self, actor: Actor, entry: PayrollEntry) -> list[Effect]:
        return [
            NotifyEffect(
                user_id=entry.employee_id,
                type=NotificationType.PAYROLL,
                title=f"Payslip available for {entry.month}",
                message=f"Your payslip for {entry.month} is ready. Net pay: {entry.net}",
            ),
            AuditEffect(
                actor_id=actor.audit_id,
                action="payroll.finalized",
                entity="payroll_entry",
                entity_id=f"{entry.employee_id}:{entry.month}",
                metadata={"net": str(entry.net)},
            ),
        ]

    # ------------------------------------------------------------------
    # Read views
    # ------------------------------------------------------------------

    async def list_payroll_entries(
        self,
        actor: Actor,
        query: PayrollQuery | Mapping[str, Any] | None = None,
    ) -> list[PayrollEntry]:
        filters = parse_payload(PayrollQuery, query or {})
        stmt = select(PayrollEntry).order_by(PayrollEntry.month.desc(), PayrollEntry.employee_id)
        stmt = stmt.where(*_scope(actor, filters, PayrollEntry))
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def list_payslips(
        self,
        actor: Actor,
        query: PayrollQuery | Mapping[str, Any] | None = None,
    ) -> list[Payslip]:
        filters = parse_payload(PayrollQuery, query or {})
        stmt = select(Payslip).order_by(Payslip.month.desc(), Payslip.employee_id)
        stmt = stmt.where(*_scope(actor, filters, Payslip))
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def monthly_summary(self, actor: Actor, month: str) -> MonthlySummary:
        """Totals over the month's finalized entries."""
        require_hr_admin(actor)
        month = validate_month(month)

        result = await self.session.execute(
            select(PayrollEntry).where(
                PayrollEntry.month == month,
                PayrollEntry.status == PayrollEntryStatus.FINALIZED.value,
            )
        )
        entries = result.scalars().all()
        return MonthlySummary(
            month=month,
            total_gross=sum((e.gross for e in entries), ZERO),
            total_deductions=sum((e.deductions for e in entries), ZERO),
            total_net=sum((e.net for e in entries), ZERO),
            employee_count=len(entries),
        )

    async def _totals(self, employee_id: str) -> tuple[Decimal, Decimal]:
        result = await self.session.execute(
            select(SalaryComponent.type, SalaryComponent.amount).where(
                SalaryComponent.employee_id == employee_id
            )
        )
        gross = ZERO
        deductions = ZERO
        for component_type, amount in result.all():
            if component_type == SalaryComponentType.EARNING.value:
                gross += amount
            else:
                deductions += amount
        return gross, deductions

    async def _get_entry(self, employee_id: str, month: str) -> PayrollEntry | None:
        result = await self.session.execute(
            select(PayrollEntry)
            .where(PayrollEntry.employee_id == employee_id, PayrollEntry.month == month)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()


def _parse_batch(payload: PayrollBatch | Mapping[str, Any]) -> tuple[str, list[str]]:
    data = parse_payload(PayrollBatch, payload)
    month = validate_month(data.month)
    employee_ids = [e.strip() for e in data.employee_ids if e and e.strip()]
    if not employee_ids:
        raise InvalidInputError("employeeIds must contain at least one employee")
    return month, employee_ids


def _scope(actor: Actor, filters: PayrollQuery, model: type[PayrollEntry] | type[Payslip]) -> list:
    criteria = []
    if isinstance(actor, EmployeeActor):
        criteria.append(model.employee_id == actor.subject_id)
    elif filters.employee_id:
        criteria.append(model.employee_id == filters.employee_id)
    if filters.month:
        criteria.append(model.month == filters.month)
    return criteria
