"""ORM models for the HR workflows."""

from hr_workflows.models.base import Base, TimestampMixin
from hr_workflows.models.leave import LeaveAllocation, LeaveManagerMap, LeaveRequest, LeaveType
from hr_workflows.models.ops import AuditEvent, Notification
from hr_workflows.models.payroll import PayrollEntry, Payslip, SalaryComponent
from hr_workflows.models.timesheet import (
    Timesheet,
    TimesheetEntry,
    TimesheetHistory,
    TimesheetManagerMap,
)

__all__ = [
    "Base",
    "TimestampMixin",
    "LeaveType",
    "LeaveManagerMap",
    "LeaveAllocation",
    "LeaveRequest",
    "TimesheetManagerMap",
    "Timesheet",
    "TimesheetEntry",
    "TimesheetHistory",
    "SalaryComponent",
    "PayrollEntry",
    "Payslip",
    "Notification",
    "AuditEvent",
]
