"""Emitter that delivers workflow effects to the sinks.

The emitter provides:
- Routing of each effect to the notification or audit sink
- Error isolation (a failing effect doesn't stop the ones after it)
- A list of failures for callers that want to report them
"""

from __future__ import annotations

import logging
from typing import Iterable

from hr_workflows.events.sinks import AuditSink, NotificationSink
from hr_workflows.events.types import AuditEffect, Effect, NotifyEffect

logger = logging.getLogger(__name__)


class EffectEmitter:
    """Delivers effects after the owning transaction has committed.

    Usage:
        emitter = EffectEmitter(notification_sink, audit_sink)
        errors = await emitter.emit_all(result.effects)

    Sink failures are logged and returned, never raised: the workflow
    change they describe is already durable.
    """

    def __init__(self, notifications: NotificationSink, audit: AuditSink) -> None:
        self._notifications = notifications
        self._audit = audit

    async def emit(self, effect: Effect) -> Exception | None:
        """Deliver one effect. Returns the exception if the sink failed."""
        try:
            if isinstance(effect, NotifyEffect):
                await self._notifications.notify(
                    effect.user_id,
                    effect.type,
                    effect.title,
                    effect.message,
                )
            elif isinstance(effect, AuditEffect):
                await self._audit.record(
                    effect.actor_id,
                    effect.action,
                    effect.entity,
                    effect.entity_id,
                    effect.metadata,
                )
            else:
                raise TypeError(f"Unknown effect type {type(effect).__name__}")
        except Exception as e:
            logger.exception("Failed to emit %s", effect)
            return e

        logger.debug("Emitted %s", effect)
        return None

    async def emit_all(self, effects: Iterable[Effect]) -> list[Exception]:
        """Deliver effects in order. Returns the failures, if any."""
        errors: list[Exception] = []
        for effect in effects:
            error = await self.emit(effect)
            if error is not None:
                errors.append(error)
        return errors
