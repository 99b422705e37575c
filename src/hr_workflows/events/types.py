"""Side effects produced by workflow operations.

A mutating operation never talks to the notification or audit sinks
itself. It returns a WorkflowResult whose ``effects`` list describes
what should be sent, and the runner emits them once the mutation is
committed. Effects are:
- Immutable (frozen dataclasses)
- Inert until emitted
- Safe to drop: a failed emission never undoes the committed change
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Generic, TypeVar, Union

T = TypeVar("T")


class NotificationType(str, Enum):
    """Notification channels shown in the front end."""

    LEAVE = "leave"
    TIMESHEET = "timesheet"
    PAYROLL = "payroll"
    SYSTEM = "system"


@dataclass(frozen=True)
class NotifyEffect:
    """Send a notification to a user."""

    user_id: str
    type: NotificationType
    title: str
    message: str


@dataclass(frozen=True)
class AuditEffect:
    """Write an audit record."""

    actor_id: str
    action: str
    entity: str
    entity_id: str
    metadata: dict[str, Any] | None = None


Effect = Union[NotifyEffect, AuditEffect]


@dataclass(frozen=True)
class NotificationRecord:
    """Notification as stored by a sink."""

    id: str
    user_id: str
    type: str
    title: str
    message: str
    read: bool
    created_at: datetime


@dataclass(frozen=True)
class AuditRecord:
    """Audit entry as stored by a sink."""

    id: str
    actor_id: str
    action: str
    entity: str
    entity_id: str
    metadata: dict[str, Any] | None
    created_at: datetime


@dataclass
class WorkflowResult(Generic[T]):
    """Primary result of a mutating operation plus its pending effects."""

    value: T
    effects: list[Effect] = field(default_factory=list)

    @property
    def notifications(self) -> list[NotifyEffect]:
        return [e for e in self.effects if isinstance(e, NotifyEffect)]

    @property
    def audits(self) -> list[AuditEffect]:
        return [e for e in self.effects if isinstance(e, AuditEffect)]
