"""Post-commit effects: notifications and audit records.

Usage:
    from hr_workflows.events import EffectEmitter, InMemoryAuditSink, InMemoryNotificationSink

    emitter = EffectEmitter(InMemoryNotificationSink(), InMemoryAuditSink())
    await emitter.emit_all(result.effects)
"""

from hr_workflows.events.emitter import EffectEmitter
from hr_workflows.events.sinks import (
    AuditSink,
    InMemoryAuditSink,
    InMemoryNotificationSink,
    NotificationSink,
    SqlAuditSink,
    SqlNotificationSink,
)
from hr_workflows.events.types import (
    AuditEffect,
    AuditRecord,
    Effect,
    NotificationRecord,
    NotificationType,
    NotifyEffect,
    WorkflowResult,
)

__all__ = [
    "EffectEmitter",
    "NotificationSink",
    "AuditSink",
    "InMemoryNotificationSink",
    "InMemoryAuditSink",
    "SqlNotificationSink",
    "SqlAuditSink",
    "Effect",
    "NotifyEffect",
    "AuditEffect",
    "NotificationType",
    "NotificationRecord",
    "AuditRecord",
    "WorkflowResult",
]
