"""Pydantic schemas for workflow payloads and read views.

Payloads accept both snake_case and the front end's camelCase keys.
They only coerce types; business rules (blank names, hour bounds,
negative amounts) are checked by the services so they surface as
InvalidInputError.
"""

from collections.abc import Mapping
from datetime import date
from decimal import Decimal
from typing import Any, TypeVar

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel

from hr_workflows.errors import InvalidInputError


class Payload(BaseModel):
    """Base payload schema."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


P = TypeVar("P", bound=Payload)


def parse_payload(schema: type[P], payload: P | Mapping[str, Any]) -> P:
    """Coerce a mapping into the schema, reporting failures as InvalidInputError."""
    if isinstance(payload, schema):
        return payload
    try:
        return schema.model_validate(payload)
    except ValidationError as e:
        first = e.errors()[0]
        field = ".".join(str(part) for part in first["loc"])
        raise InvalidInputError(f"{field}: {first['msg']}") from e


# ============================================================================
# Shared
# ============================================================================


class ManagerMapUpdate(Payload):
    """Assign an employee's manager."""

    employee_id: str
    manager_id: str


# ============================================================================
# Leave
# ============================================================================


class LeaveTypeCreate(Payload):
    """Schema for creating a leave type."""

    name: str
    paid: bool
    annual_limit: int | None = None


class LeaveAllocationUpsert(Payload):
    """Schema for setting an employee's allocation of a leave type."""

    employee_id: str
    leave_type_id: str
    allocated: int


class LeaveRequestCreate(Payload):
    """Schema for an employee's leave request."""

    leave_type_id: str
    start_date: date
    end_date: date
    reason: str | None = None


class LeaveRequestQuery(Payload):
    """Filters honoured for HR admins when listing leave requests."""

    employee_id: str | None = None
    manager_id: str | None = None


class LeaveDecision(Payload):
    """Manager decision on a leave request."""

    request_id: str
    decision: str
    manager_comment: str | None = None


class LeaveBalance(Payload):
    """Allocation joined with its leave type."""

    id: str
    employee_id: str
    leave_type_id: str
    leave_type: str
    allocated: int
    used: int
    remaining: int


# ============================================================================
# Timesheet
# ============================================================================


class TimesheetEntryIn(Payload):
    """Hours for one day."""

    day: str
    hours: Decimal


class TimesheetSubmit(Payload):
    """Weekly timesheet submission."""

    week_start_date: date
    entries: list[TimesheetEntryIn] = Field(default_factory=list)


class TimesheetQuery(Payload):
    """Filters for listing timesheets."""

    employee_id: str | None = None
    week_start_date: date | None = None


class TimesheetDecision(Payload):
    """Manager decision on a timesheet."""

    timesheet_id: str
    decision: str
    manager_comment: str | None = None


# ============================================================================
# Payroll
# ============================================================================


class SalaryComponentCreate(Payload):
    """Schema for adding an earning or deduction."""

    employee_id: str
    type: str
    name: str
    amount: Decimal
    effective_from: date


class PayrollBatch(Payload):
    """Month plus the employees a draft or finalize run covers."""

    month: str
    employee_ids: list[str] = Field(default_factory=list)


class PayrollQuery(Payload):
    """Filters for payroll entries and payslips."""

    month: str | None = None
    employee_id: str | None = None


class MonthlySummary(Payload):
    """Totals over the finalized entries of a month."""

    month: str
    total_gross: Decimal
    total_deductions: Decimal
    total_net: Decimal
    employee_count: int
