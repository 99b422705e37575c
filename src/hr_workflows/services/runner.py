"""Unit of work: run an operation in one session, commit, then emit its effects."""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TypeVar

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from hr_workflows.dates import Clock, utcnow
from hr_workflows.errors import WorkflowError, committed_effects_of
from hr_workflows.events.emitter import EffectEmitter
from hr_workflows.events.types import WorkflowResult
from hr_workflows.ids import IdGenerator, default_id_generator
from hr_workflows.services.leave_service import LeaveService
from hr_workflows.services.payroll_service import PayrollService
from hr_workflows.services.timesheet_service import TimesheetService

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class Workflows:
    """The three workflow services bound to one session."""

    session: AsyncSession
    leave: LeaveService
    timesheet: TimesheetService
    payroll: PayrollService


class WorkflowRunner:
    """Runs workflow operations with commit-then-emit semantics.

    Usage:
        runner = WorkflowRunner(session_factory, emitter)
        result = await runner.run(lambda wf: wf.leave.request_leave(actor, payload))
        requests = await runner.read(lambda wf: wf.leave.list_requests(actor))

    Effects are emitted only after the session commits. When an operation
    fails, the session is rolled back and only the effects of work that
    was already committed (the exception's ``committed_effects``) are emitted
    before the error propagates.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        emitter: EffectEmitter,
        *,
        ids: IdGenerator | None = None,
        clock: Clock = utcnow,
    ):
        self.session_factory = session_factory
        self.emitter = emitter
        self.ids = ids or default_id_generator
        self.clock = clock

    def bind(self, session: AsyncSession) -> Workflows:
        return Workflows(
            session=session,
            leave=LeaveService(session, ids=self.ids, clock=self.clock),
            timesheet=TimesheetService(session, ids=self.ids, clock=self.clock),
            payroll=PayrollService(session, ids=self.ids, clock=self.clock),
        )

    async def run(
        self,
        operation: Callable[[Workflows], Awaitable[WorkflowResult[T]]],
    ) -> WorkflowResult[T]:
        """Run a mutating operation and emit its effects after commit."""
        async with self.session_factory() as session:
            try:
                result = await operation(self.bind(session))
                await session.commit()
            except Exception as exc:
                await session.rollback()
                if isinstance(exc, WorkflowError):
                    logger.info("Workflow rejected (%s): %s", exc.code, exc.message)
                else:
                    logger.error("Workflow failed: %r", exc)
                committed = committed_effects_of(exc)
                if committed:
                    await self.emitter.emit_all(committed)
                raise

        errors = await self.emitter.emit_all(result.effects)
        if errors:
            logger.warning("%d of %d effect(s) failed to emit", len(errors), len(result.effects))
        return result

    async def read(self, operation: Callable[[Workflows], Awaitable[T]]) -> T:
        """Run a read-only operation. Nothing is committed or emitted."""
        async with self.session_factory() as session:
            return await operation(self.bind(session))
