"""Notification and audit sinks.

The workflows depend only on the two protocols. Two implementations are
provided:
- In-memory sinks, newest record first, for tests and local runs
- SQL sinks that write ``notifications``/``audit_events`` rows in their
  own session, after the workflow's transaction has committed
"""

from __future__ import annotations

from dataclasses import replace
from typing import Any, Protocol, runtime_checkable

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from hr_workflows.dates import Clock, utcnow
from hr_workflows.ids import IdGenerator, default_id_generator
from hr_workflows.models import AuditEvent, Notification
from hr_workflows.events.types import AuditRecord, NotificationRecord, NotificationType


@runtime_checkable
class NotificationSink(Protocol):
    """Receives user notifications."""

    async def notify(
        self,
        user_id: str,
        type: NotificationType | str,
        title: str,
        message: str,
    ) -> NotificationRecord:
        ...


@runtime_checkable
class AuditSink(Protocol):
    """Receives audit records."""

    async def record(
        self,
        actor_id: str,
        action: str,
        entity: str,
        entity_id: str,
        metadata: dict[str, Any] | None = None,
    ) -> AuditRecord:
        ...


def _type_value(type: NotificationType | str) -> str:
    return type.value if isinstance(type, NotificationType) else str(type)


class InMemoryNotificationSink:
    """Notification sink that keeps records in a list."""

    def __init__(self, ids: IdGenerator | None = None, clock: Clock = utcnow) -> None:
        self._ids = ids or default_id_generator
        self._clock = clock
        self.notifications: list[NotificationRecord] = []

    async def notify(
        self,
        user_id: str,
        type: NotificationType | str,
        title: str,
        message: str,
    ) -> NotificationRecord:
        item = NotificationRecord(
            id=self._ids("notif"),
            user_id=user_id,
            type=_type_value(type),
            title=title,
            message=message,
            read=False,
            created_at=self._clock(),
        )
        self.notifications.insert(0, item)
        return item

    def list_notifications(self, user_id: str | None = None) -> list[NotificationRecord]:
        if user_id is None:
            return list(self.notifications)
        return [n for n in self.notifications if n.user_id == user_id]

    def mark_read(self, notification_id: str) -> NotificationRecord | None:
        for index, item in enumerate(self.notifications):
            if item.id == notification_id:
                self.notifications[index] = replace(item, read=True)
                return self.notifications[index]
        return None


class InMemoryAuditSink:
    """Audit sink that keeps records in a list."""

    def __init__(self, ids: IdGenerator | None = None, clock: Clock = utcnow) -> None:
        self._ids = ids or default_id_generator
        self._clock = clock
        self.audits: list[AuditRecord] = []

    async def record(
        self,
        actor_id: str,
        action: str,
        entity: str,
        entity_id: str,
        metadata: dict[str, Any] | None = None,
    ) -> AuditRecord:
        item = AuditRecord(
            id=self._ids("audit"),
            actor_id=actor_id,
            action=action,
            entity=entity,
            entity_id=entity_id,
            metadata=dict(metadata) if metadata else None,
            created_at=self._clock(),
        )
        self.audits.insert(0, item)
        return item

    def list_audits(self, entity: str | None = None) -> list[AuditRecord]:
        if entity is None:
            return list(self.audits)
        return [a for a in self.audits if a.entity == entity]


class SqlNotificationSink:
    """Notification sink backed by the ``notifications`` table."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        ids: IdGenerator | None = None,
        clock: Clock = utcnow,
    ) -> None:
        self._session_factory = session_factory
        self._ids = ids or default_id_generator
        self._clock = clock

    async def notify(
        self,
        user_id: str,
        type: NotificationType | str,
        title: str,
        message: str,
    ) -> NotificationRecord:
        row = Notification(
            id=self._ids("notif"),
            user_id=user_id,
            type=_type_value(type),
            title=title,
            message=message,
            read=False,
            created_at=self._clock(),
        )
        record = _notification_record(row)
        async with self._session_factory() as session:
            session.add(row)
            await session.commit()
        return record

    async def list_notifications(self, user_id: str | None = None) -> list[NotificationRecord]:
        query = select(Notification).order_by(Notification.created_at.desc())
        if user_id is not None:
            query = query.where(Notification.user_id == user_id)
        async with self._session_factory() as session:
            result = await session.execute(query)
            return [_notification_record(row) for row in result.scalars().all()]

    async def mark_read(self, notification_id: str) -> NotificationRecord | None:
        async with self._session_factory() as session:
            await session.execute(
                update(Notification)
                .where(Notification.id == notification_id)
                .values(read=True)
            )
            await session.commit()
            row = await session.get(Notification, notification_id, populate_existing=True)
            return _notification_record(row) if row is not None else None


class SqlAuditSink:
    """Audit sink backed by the ``audit_events`` table."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        ids: IdGenerator | None = None,
        clock: Clock = utcnow,
    ) -> None:
        self._session_factory = session_factory
        self._ids = ids or default_id_generator
        self._clock = clock

    async def record(
        self,
        actor_id: str,
        action: str,
        entity: str,
        entity_id: str,
        metadata: dict[str, Any] | None = None,
    ) -> AuditRecord:
        row = AuditEvent(
            id=self._ids("audit"),
            actor_id=actor_id,
            action=action,
            entity=entity,
            entity_id=entity_id,
            metadata_json=metadata,
            created_at=self._clock(),
        )
        record = _audit_record(row)
        async with self._session_factory() as session:
            session.add(row)
            await session.commit()
        return record

    async def list_audits(self, entity: str | None = None) -> list[AuditRecord]:
        query = select(AuditEvent).order_by(AuditEvent.created_at.desc())
        if entity is not None:
            query = query.where(AuditEvent.entity == entity)
        async with self._session_factory() as session:
            result = await session.execute(query)
            return [_audit_record(row) for row in result.scalars().all()]


def _notification_record(row: Notification) -> NotificationRecord:
    return NotificationRecord(
        id=row.id,
        user_id=row.user_id,
        type=row.type,
        title=row.title,
        message=row.message,
        read=row.read,
        created_at=row.created_at,
    )


def _audit_record(row: AuditEvent) -> AuditRecord:
    return AuditRecord(
        id=row.id,
        actor_id=row.actor_id,
        action=row.action,
        entity=row.entity,
        entity_id=row.entity_id,
        metadata=row.metadata_json,
        created_at=row.created_at,
    )
