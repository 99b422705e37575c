"""Authenticated caller, as a tagged union over the three roles."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Union

from hr_workflows.errors import ForbiddenError


class Role(str, Enum):
    """Roles recognised by the workflows."""

    EMPLOYEE = "employee"
    MANAGER = "manager"
    HR_ADMIN = "hr_admin"


@dataclass(frozen=True)
class EmployeeActor:
    """An employee acting on their own records."""

    subject_id: str
    role = Role.EMPLOYEE

    @property
    def audit_id(self) -> str:
        return self.subject_id


@dataclass(frozen=True)
class ManagerActor:
    """A manager deciding on direct reports' submissions."""

    subject_id: str
    role = Role.MANAGER

    @property
    def audit_id(self) -> str:
        return self.subject_id


@dataclass(frozen=True)
class HrAdminActor:
    """An HR administrator. The subject id is optional."""

    subject_id: str | None = None
    role = Role.HR_ADMIN

    @property
    def audit_id(self) -> str:
        return self.subject_id or Role.HR_ADMIN.value


Actor = Union[EmployeeActor, ManagerActor, HrAdminActor]


def actor_from_context(role: str, subject_id: str | None = None) -> Actor:
    """Build a typed actor from the identity layer's role and subject id.

    Raises:
        ForbiddenError: unknown role, or an employee/manager without a subject id
    """
    try:
        resolved = Role(role)
    except ValueError:
        raise ForbiddenError(f"Unknown role '{role}'") from None

    subject_id = subject_id.strip() if subject_id else None

    if resolved is Role.HR_ADMIN:
        return HrAdminActor(subject_id=subject_id)

    if not subject_id:
        raise ForbiddenError(f"{resolved.value} context is missing a subject id")

    if resolved is Role.MANAGER:
        return ManagerActor(subject_id=subject_id)
    return EmployeeActor(subject_id=subject_id)


def require_hr_admin(actor: Actor) -> HrAdminActor:
    """Return the actor if it is an HR admin, else raise ForbiddenError."""
    if not isinstance(actor, HrAdminActor):
        raise ForbiddenError("Only HR Admin can perform this action")
    return actor
