"""Transient notifications and subscriber fan-out."""

from __future__ import annotations

import asyncio
import itertools
from collections import deque
from datetime import datetime, timezone
from decimal import Decimal
from typing import Generic, TypeVar

from sim_trading.types import Notification, NotificationKind
from sim_trading.utils.logging import get_logger

T = TypeVar("T")


class Broadcaster(Generic[T]):
    """Fan out items to bounded subscriber queues.

    A slow subscriber loses its oldest pending item rather than blocking the
    publisher.
    """

    def __init__(self, maxsize: int = 100) -> None:
        self._maxsize = maxsize
        self._queues: list[asyncio.Queue[T]] = []

    def subscribe(self) -> asyncio.Queue[T]:
        queue: asyncio.Queue[T] = asyncio.Queue(maxsize=self._maxsize)
        self._queues.append(queue)
        return queue

    def unsubscribe(self, queue: asyncio.Queue[T]) -> None:
        if queue in self._queues:
            self._queues.remove(queue)

    def publish(self, item: T) -> None:
        for queue in self._queues:
            if queue.full():
                queue.get_nowait()
            queue.put_nowait(item)


class NotificationCenter:
    """Most-recent-first notifications that expire after ``ttl_sec``."""

    def __init__(self, *, ttl_sec: float = 3.0, limit: int = 10) -> None:
        self._ttl_sec = ttl_sec
        self._limit = limit
        self._ids = itertools.count(1)
        self._active: deque[Notification] = deque()
        self._expiries: dict[int, asyncio.TimerHandle] = {}
        self._loop: asyncio.AbstractEventLoop | None = None
        self._broadcaster: Broadcaster[Notification] = Broadcaster()
        self._logger = get_logger("sim_trading.notifications")

    def bind(self, loop: asyncio.AbstractEventLoop) -> None:
        """Schedule expiries on ``loop``; unbound centers keep items until dismissed."""
        self._loop = loop

    def subscribe(self) -> asyncio.Queue[Notification]:
        return self._broadcaster.subscribe()

    def unsubscribe(self, queue: asyncio.Queue[Notification]) -> None:
        self._broadcaster.unsubscribe(queue)

    def active(self) -> list[Notification]:
        return list(self._active)

    def publish(
        self,
        kind: NotificationKind,
        message: str,
        *,
        profit: Decimal | None = None,
        profit_pct: Decimal | None = None,
    ) -> Notification:
        notification = Notification(
            id=next(self._ids),
            kind=kind,
            message=message,
            created_at=datetime.now(timezone.utc).isoformat(),
            profit=profit,
            profit_pct=profit_pct,
        )
        self._active.appendleft(notification)
        while len(self._active) > self._limit:
            self.dismiss(self._active[-1].id)
        if self._loop is not None:
            self._expiries[notification.id] = self._loop.call_later(
                self._ttl_sec, self.dismiss, notification.id
            )
        self._broadcaster.publish(notification)
        self._logger.debug("notification", kind=kind, message=message)
        return notification

    def dismiss(self, notification_id: int) -> None:
        handle = self._expiries.pop(notification_id, None)
        if handle is not None:
            handle.cancel()
        for notification in self._active:
            if notification.id == notification_id:
                self._active.remove(notification)
                break

    def close(self) -> None:
        """Cancel pending expiries; active notifications stay readable."""
        for handle in self._expiries.values():
            handle.cancel()
        self._expiries.clear()
        self._loop = None
