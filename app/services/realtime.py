"""In-process change feed.

Writers publish ``(table, event, row_id, scope)`` after committing; subscribers
register a table plus equality filters on the scope (``trainer_id``,
``client_id``) and receive matching events on a bounded queue. Events name the
changed row but carry no row body, so subscribers re-fetch from the API.
"""
from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from app.config import settings
from app.models.enums import ChangeEvent

logger = logging.getLogger(__name__)

SUBSCRIBABLE_TABLES = {
    "clients",
    "workout_plans",
    "nutrition_plans",
    "messages",
    "progress_records",
}


@dataclass
class ChangeNotification:
    table: str
    event: ChangeEvent
    row_id: str
    scope: dict[str, str]
    committed_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    resync: bool = False

    def to_payload(self) -> dict[str, Any]:
        return {
            "event": "postgres_changes",
            "table": self.table,
            "type": self.event.value,
            "id": self.row_id,
            "scope": self.scope,
            "committed_at": self.committed_at.isoformat(),
            "resync": self.resync,
        }


class Subscription:
    def __init__(self, feed: "ChangeFeed", table: str, filters: dict[str, str], maxsize: int) -> None:
        self.id = uuid.uuid4()
        self.table = table
        self.filters = filters
        self._feed = feed
        self._queue: asyncio.Queue[ChangeNotification] = asyncio.Queue(maxsize=maxsize)
        self._overflowed = False

    def matches(self, notification: ChangeNotification) -> bool:
        if notification.table != self.table:
            return False
        return all(notification.scope.get(key) == value for key, value in self.filters.items())

    def offer(self, notification: ChangeNotification) -> None:
        if self._queue.full():
            self._queue.get_nowait()
            self._overflowed = True
            logger.warning("Subscription %s on %s overflowed; oldest event dropped", self.id, self.table)
        self._queue.put_nowait(notification)

    async def get(self) -> ChangeNotification:
        notification = await self._queue.get()
        if self._overflowed:
            self._overflowed = False
            notification = ChangeNotification(
                table=notification.table,
                event=notification.event,
                row_id=notification.row_id,
                scope=notification.scope,
                committed_at=notification.committed_at,
                resync=True,
            )
        return notification

    def pending(self) -> int:
        return self._queue.qsize()

    def close(self) -> None:
        self._feed.unsubscribe(self)


class ChangeFeed:
    def __init__(self, queue_size: int | None = None) -> None:
        self._queue_size = queue_size or settings.REALTIME_QUEUE_SIZE
        self._subscriptions: dict[uuid.UUID, Subscription] = {}

    def subscribe(self, table: str, filters: dict[str, str] | None = None) -> Subscription:
        if table not in SUBSCRIBABLE_TABLES:
            raise ValueError(f"Unknown table: {table}")
        subscription = Subscription(self, table, {k: str(v) for k, v in (filters or {}).items()}, self._queue_size)
        self._subscriptions[subscription.id] = subscription
        logger.debug("Subscribed %s to %s with %s", subscription.id, table, subscription.filters)
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        self._subscriptions.pop(subscription.id, None)

    def publish(
        self,
        table: str,
        event: ChangeEvent,
        row_id: uuid.UUID | str,
        **scope: uuid.UUID | str | None,
    ) -> int:
        notification = ChangeNotification(
            table=table,
            event=event,
            row_id=str(row_id),
            scope={key: str(value) for key, value in scope.items() if value is not None},
        )
        delivered = 0
        for subscription in list(self._subscriptions.values()):
            if subscription.matches(notification):
                subscription.offer(notification)
                delivered += 1
        return delivered

    @property
    def subscriber_count(self) -> int:
        return len(self._subscriptions)


change_feed = ChangeFeed()


def get_change_feed() -> ChangeFeed:
    return change_feed
