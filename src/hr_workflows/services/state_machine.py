"""Status state machines for leave requests, timesheets, and payroll entries."""

from __future__ import annotations

from enum import Enum
from typing import ClassVar

from hr_workflows.errors import InvalidInputError, InvalidStateError


class LeaveRequestStatus(str, Enum):
    """Leave request status values."""

    PENDING = "Pending"
    APPROVED = "Approved"
    REJECTED = "Rejected"


class TimesheetStatus(str, Enum):
    """Timesheet status values."""

    SUBMITTED = "Submitted"
    APPROVED = "Approved"
    REJECTED = "Rejected"


class PayrollEntryStatus(str, Enum):
    """Payroll entry status values."""

    DRAFT = "Draft"
    FINALIZED = "Finalized"


class InvalidTransitionError(InvalidStateError):
    """Raised when an invalid state transition is attempted."""

    def __init__(self, from_status: str, to_status: str, reason: str | None = None):
        self.from_status = _text(from_status)
        self.to_status = _text(to_status)
        self.reason = reason
        msg = f"Invalid transition from '{self.from_status}' to '{self.to_status}'"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)


class StateMachine:
    """Transition table shared by the three workflows.

    Subclasses fill in VALID_TRANSITIONS: {from_status: [allowed_to_statuses]}.
    A status with no outgoing transitions is terminal.
    """

    VALID_TRANSITIONS: ClassVar[dict[str, list[str]]] = {}

    @classmethod
    def can_transition(cls, from_status: str, to_status: str) -> bool:
        """Check if a transition is valid."""
        allowed = cls.VALID_TRANSITIONS.get(from_status, [])
        return to_status in allowed

    @classmethod
    def validate_transition(
        cls, from_status: str, to_status: str, reason: str | None = None
    ) -> None:
        """Validate a transition, raising InvalidTransitionError if invalid."""
        if not cls.can_transition(from_status, to_status):
            raise InvalidTransitionError(from_status, to_status, reason)

    @classmethod
    def is_terminal(cls, status: str) -> bool:
        return not cls.VALID_TRANSITIONS.get(status)

    @classmethod
    def get_next_statuses(cls, current_status: str) -> list[str]:
        """Get list of valid next statuses from current status."""
        return cls.VALID_TRANSITIONS.get(current_status, [])


class LeaveRequestStateMachine(StateMachine):
    """Leave requests are decided exactly once.

    Allowed transitions:
    - Pending → Approved
    - Pending → Rejected
    """

    VALID_TRANSITIONS = {
        LeaveRequestStatus.PENDING: [LeaveRequestStatus.APPROVED, LeaveRequestStatus.REJECTED],
        LeaveRequestStatus.APPROVED: [],
        LeaveRequestStatus.REJECTED: [],
    }


class TimesheetStateMachine(StateMachine):
    """Timesheets are decided once per submission cycle.

    Allowed transitions:
    - Submitted → Approved
    - Submitted → Rejected
    - Submitted → Submitted (resubmission before a decision)
    - Rejected → Submitted (resubmission)

    Approved is terminal: the timesheet can no longer be edited.
    """

    VALID_TRANSITIONS = {
        TimesheetStatus.SUBMITTED: [
            TimesheetStatus.APPROVED,
            TimesheetStatus.REJECTED,
            TimesheetStatus.SUBMITTED,
        ],
        TimesheetStatus.REJECTED: [TimesheetStatus.SUBMITTED],
        TimesheetStatus.APPROVED: [],
    }

    @classmethod
    def can_resubmit(cls, status: str) -> bool:
        return cls.can_transition(status, TimesheetStatus.SUBMITTED)


class PayrollEntryStateMachine(StateMachine):
    """Payroll entries are recomputed while Draft and frozen once Finalized.

    Allowed transitions:
    - Draft → Draft (idempotent recompute)
    - Draft → Finalized
    """

    VALID_TRANSITIONS = {
        PayrollEntryStatus.DRAFT: [PayrollEntryStatus.DRAFT, PayrollEntryStatus.FINALIZED],
        PayrollEntryStatus.FINALIZED: [],
    }


def parse_decision(decision: str, approved: Enum, rejected: Enum) -> Enum:
    """Normalise a manager decision to one of the two allowed statuses.

    Matching is case-insensitive so "approved" and "Approved" are the same.
    """
    value = (decision or "").strip().lower()
    for status in (approved, rejected):
        if value == status.value.lower():
            return status
    raise InvalidInputError(
        f"Decision must be '{approved.value}' or '{rejected.value}', got '{decision}'"
    )


def _text(status: str) -> str:
    return status.value if isinstance(status, Enum) else str(status)
