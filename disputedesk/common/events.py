"""Event bus for broadcasting dispute lifecycle events to subscribers.

Publishing only enqueues. Delivery happens on a fixed-period tick, so a
subscriber registered between publish and the next tick still receives the
event and one that unsubscribes before the tick does not. ``disconnect``
stops ticking and drops every subscription and queued event; there is no
replay after reconnecting.

The queue is bounded. When it is full, publishing evicts the oldest queued
event, which is then never delivered; ``dropped`` counts such evictions.
Delivery to subscribers registered at tick time holds only for events still
in the queue when the tick runs.
"""

from __future__ import annotations

import asyncio
import inspect
import itertools
from collections import deque
from collections.abc import Callable
from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, Field

from disputedesk.common.enums import RealtimeEventType
from disputedesk.common.logging import get_logger

logger = get_logger("events")

WILDCARD = "*"

EventCallback = Callable[["RealtimeEvent"], Any]


class RealtimeEvent(BaseModel):
    id: str
    type: RealtimeEventType
    dispute_id: str
    payload: dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime
    actor_id: str


class EventBus:
    def __init__(self, tick_interval: float = 1.0, max_queue: int = 1000) -> None:
        self.tick_interval = tick_interval
        self._listeners: dict[str, list[EventCallback]] = {}
        self._queue: deque[RealtimeEvent] = deque()
        self._max_queue = max_queue
        self._ids = itertools.count(1)
        self._connected = False
        self._ticker: asyncio.Task | None = None
        self.dropped = 0

    @property
    def is_connected(self) -> bool:
        return self._connected

    @property
    def pending(self) -> int:
        return len(self._queue)

    # ------------------------------------------------------------------
    # Connection
    # ------------------------------------------------------------------

    def connect(self) -> None:
        if self._connected:
            return
        self._connected = True
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("No running loop; events are delivered by explicit tick()")
            return
        self._ticker = loop.create_task(self._run())
        logger.info("Event bus connected (tick every %.2fs)", self.tick_interval)

    def disconnect(self) -> None:
        if self._ticker is not None:
            self._ticker.cancel()
            self._ticker = None
        self._connected = False
        self._listeners.clear()
        dropped = len(self._queue)
        self._queue.clear()
        logger.info("Event bus disconnected (%d undelivered events dropped)", dropped)

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.tick_interval)
            await self.tick()

    # ------------------------------------------------------------------
    # Subscriptions
    # ------------------------------------------------------------------

    def subscribe(self, dispute_id: str, callback: EventCallback) -> Callable[[], None]:
        """Register ``callback`` for one dispute; returns an unsubscribe function."""
        self._listeners.setdefault(dispute_id, []).append(callback)

        def unsubscribe() -> None:
            callbacks = self._listeners.get(dispute_id)
            if callbacks and callback in callbacks:
                callbacks.remove(callback)
                if not callbacks:
                    del self._listeners[dispute_id]

        return unsubscribe

    def subscribe_all(self, callback: EventCallback) -> Callable[[], None]:
        return self.subscribe(WILDCARD, callback)

    def subscriber_count(self, dispute_id: str = WILDCARD) -> int:
        return len(self._listeners.get(dispute_id, []))

    # ------------------------------------------------------------------
    # Publishing and delivery
    # ------------------------------------------------------------------

    def publish(
        self,
        event_type: RealtimeEventType,
        dispute_id: str,
        payload: dict[str, Any] | None = None,
        actor_id: str = "system",
    ) -> RealtimeEvent:
        event = RealtimeEvent(
            id=f"EVT-{next(self._ids):06d}",
            type=RealtimeEventType(event_type),
            dispute_id=dispute_id,
            payload=payload or {},
            timestamp=datetime.now(timezone.utc),
            actor_id=actor_id,
        )
        if len(self._queue) >= self._max_queue:
            oldest = self._queue.popleft()
            self.dropped += 1
            logger.warning("Event queue full; dropping %s (%s)", oldest.id, oldest.type.value)
        self._queue.append(event)
        return event

    def publish_conflict(
        self, dispute_id: str, server_version: int, server_data: dict[str, Any]
    ) -> RealtimeEvent:
        """Advisory warning that a newer server version exists. Never blocks writes."""
        return self.publish(
            RealtimeEventType.CONFLICT_DETECTED,
            dispute_id,
            {"server_version": server_version, "server_data": server_data},
            "system",
        )

    async def tick(self) -> int:
        """Deliver every queued event to the subscribers registered right now."""
        if not self._connected or not self._queue:
            return 0

        events = list(self._queue)
        self._queue.clear()

        delivered = 0
        for event in events:
            targets = list(self._listeners.get(event.dispute_id, []))
            targets += list(self._listeners.get(WILDCARD, []))
            for callback in targets:
                try:
                    result = callback(event)
                    if inspect.isawaitable(result):
                        await result
                    delivered += 1
                except Exception:
                    logger.exception("Subscriber failed on %s (%s)", event.id, event.type.value)
        return delivered
