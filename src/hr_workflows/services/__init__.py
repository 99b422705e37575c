"""HR workflow services."""

from hr_workflows.services.leave_service import LeaveService
from hr_workflows.services.locking_service import KeyedLock
from hr_workflows.services.payroll_service import PayrollService, SalaryComponentType
from hr_workflows.services.runner import WorkflowRunner, Workflows
from hr_workflows.services.state_machine import (
    InvalidTransitionError,
    LeaveRequestStateMachine,
    LeaveRequestStatus,
    PayrollEntryStateMachine,
    PayrollEntryStatus,
    TimesheetStateMachine,
    TimesheetStatus,
)
from hr_workflows.services.timesheet_service import TimesheetService

__all__ = [
    "LeaveService",
    "TimesheetService",
    "PayrollService",
    "SalaryComponentType",
    "WorkflowRunner",
    "Workflows",
    "KeyedLock",
    "InvalidTransitionError",
    "LeaveRequestStateMachine",
    "LeaveRequestStatus",
    "TimesheetStateMachine",
    "TimesheetStatus",
    "PayrollEntryStateMachine",
    "PayrollEntryStatus",
]
