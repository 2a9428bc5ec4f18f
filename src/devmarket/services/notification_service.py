"""Notifications through a transactional outbox.

Services call ``NotificationService.notify`` inside their own unit of work, so
a notification exists exactly when the transition that triggered it commits.
Nothing external is awaited there. ``OutboxRelay.drain`` later pushes pending
rows to a sink (a Redis stream in production, the log otherwise) in its own
session; a sink failure only bumps the row's attempt counter.
"""

from __future__ import annotations

import asyncio
import uuid
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING, Any, Protocol

from sqlalchemy.exc import SQLAlchemyError

from devmarket.config import get_settings
from devmarket.infrastructure.database.repositories import OutboxRepository
from devmarket.logging_config import get_logger

if TYPE_CHECKING:
    from collections.abc import Iterable

    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

    from devmarket.domain.enums import NotificationType
    from devmarket.infrastructure.database.orm_models import OutboxEvent

logger = get_logger(__name__)


def _jsonable(value: Any) -> Any:
    if isinstance(value, dict):
        return {str(k): _jsonable(v) for k, v in value.items()}
    if isinstance(value, list | tuple | set):
        return [_jsonable(v) for v in value]
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, uuid.UUID | Decimal):
        return str(value)
    if isinstance(value, datetime):
        return value.isoformat()
    return value


class NotificationService:
    """Records notifications in the caller's unit of work."""

    def __init__(self, session: AsyncSession) -> None:
        self._outbox = OutboxRepository(session)

    async def notify(
        self,
        notification_type: NotificationType,
        recipients: Iterable[str],
        payload: dict[str, Any],
    ) -> OutboxEvent:
        unique_recipients = list(dict.fromkeys(r for r in recipients if r))
        event = await self._outbox.record(
            notification_type.value,
            unique_recipients,
            _jsonable(payload),
        )
        logger.debug(
            "notification.queued",
            type=notification_type.value,
            recipients=unique_recipients,
        )
        return event


# --- Relay ---


class NotificationSink(Protocol):
    async def publish(self, event: OutboxEvent) -> None: ...


class LoggingSink:
    """Sink used when no Redis is configured: notifications end up in the log."""

    async def publish(self, event: OutboxEvent) -> None:
        logger.info(
            "notification.delivered",
            event_id=str(event.id),
            type=event.event_type,
            recipients=event.recipients,
        )


@dataclass(frozen=True)
class RelayReport:
    delivered: int = 0
    failed: int = 0


class OutboxRelay:
    """Moves pending outbox rows to a sink.

    Usage:
        relay = OutboxRelay(session_factory, RedisStreamSink(redis, "stream"))
        report = await relay.drain()
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        sink: NotificationSink,
        batch_size: int | None = None,
        max_attempts: int | None = None,
    ) -> None:
        settings = get_settings()
        self._session_factory = session_factory
        self._sink = sink
        self._batch_size = batch_size or settings.outbox_batch_size
        self._max_attempts = max_attempts or settings.outbox_max_attempts

    async def drain(self, limit: int | None = None) -> RelayReport:
        """Publish up to ``limit`` pending events. Never raises."""
        delivered = failed = 0
        try:
            async with self._session_factory() as session:
                outbox = OutboxRepository(session)
                for event in await outbox.pending(limit or self._batch_size, self._max_attempts):
                    try:
                        await self._sink.publish(event)
                    except Exception as exc:
                        failed += 1
                        await outbox.record_failure(event, repr(exc))
                        logger.warning(
                            "notification.delivery_failed",
                            event_id=str(event.id),
                            attempts=event.attempts,
                            error=str(exc),
                        )
                    else:
                        delivered += 1
                        await outbox.mark_delivered(event)
                await session.commit()
        except SQLAlchemyError as exc:
            logger.error("outbox.drain_failed", error=str(exc))

        if delivered or failed:
            logger.info("outbox.drained", delivered=delivered, failed=failed)
        return RelayReport(delivered=delivered, failed=failed)

    async def run_forever(self, interval_seconds: float) -> None:
        """Drain on a fixed interval until cancelled."""
        while True:
            await self.drain()
            await asyncio.sleep(interval_seconds)
