"""Per-owner publish/subscribe channel for file change notifications."""

from __future__ import annotations

import asyncio
import threading
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any, AsyncIterator

from knowledge_hub.core.logging import get_logger
from knowledge_hub.core.metrics import SUBSCRIBERS
from knowledge_hub.utils.time import now_ms

logger = get_logger(__name__)

FILE_CREATED = "file.created"
FILE_UPDATED = "file.updated"
FILE_DELETED = "file.deleted"
CHUNKS_UPDATED = "chunks.updated"


@dataclass(slots=True)
class FileEvent:
    type: str
    owner_id: str
    file_id: str
    payload: dict[str, Any] = field(default_factory=dict)
    timestamp: int = field(default_factory=now_ms)

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type,
            "file_id": self.file_id,
            "payload": self.payload,
            "timestamp": self.timestamp,
        }


class Subscription:
    """Queue of events for a single subscriber; iterate it to consume."""

    def __init__(self, notifier: "ChangeNotifier", owner_id: str) -> None:
        self.owner_id = owner_id
        self._notifier = notifier
        self._queue: asyncio.Queue[FileEvent | None] = asyncio.Queue()
        try:
            self._loop: asyncio.AbstractEventLoop | None = asyncio.get_running_loop()
        except RuntimeError:
            self._loop = None
        self.closed = False

    def deliver(self, event: FileEvent | None) -> None:
        if self._loop is not None and self._loop.is_running() and not _on_loop(self._loop):
            self._loop.call_soon_threadsafe(self._queue.put_nowait, event)
        else:
            self._queue.put_nowait(event)

    def get_nowait(self) -> FileEvent | None:
        """Return the next queued event or None when the queue is empty."""
        try:
            return self._queue.get_nowait()
        except asyncio.QueueEmpty:
            return None

    async def get(self, timeout: float | None = None) -> FileEvent | None:
        if timeout is None:
            return await self._queue.get()
        try:
            return await asyncio.wait_for(self._queue.get(), timeout)
        except asyncio.TimeoutError:
            return None

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        self._notifier.unsubscribe(self)
        self.deliver(None)

    def __aiter__(self) -> AsyncIterator[FileEvent]:
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[FileEvent]:
        while not self.closed:
            event = await self._queue.get()
            if event is None:
                break
            yield event


class ChangeNotifier:
    def __init__(self) -> None:
        self._subscriptions: dict[str, set[Subscription]] = defaultdict(set)
        self._lock = threading.Lock()

    def subscribe(self, owner_id: str) -> Subscription:
        subscription = Subscription(self, owner_id)
        with self._lock:
            self._subscriptions[owner_id].add(subscription)
        SUBSCRIBERS.inc()
        logger.debug("Subscriber added for owner %s", owner_id)
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        with self._lock:
            owned = self._subscriptions.get(subscription.owner_id)
            if not owned or subscription not in owned:
                return
            owned.discard(subscription)
            if not owned:
                del self._subscriptions[subscription.owner_id]
        SUBSCRIBERS.dec()

    def publish(self, event: FileEvent) -> int:
        """Push ``event`` to every live subscription of its owner."""
        with self._lock:
            targets = list(self._subscriptions.get(event.owner_id, ()))
        for subscription in targets:
            subscription.deliver(event)
        logger.debug("Published %s for file %s to %s subscribers", event.type, event.file_id, len(targets))
        return len(targets)

    def subscriber_count(self, owner_id: str) -> int:
        with self._lock:
            return len(self._subscriptions.get(owner_id, ()))


def _on_loop(loop: asyncio.AbstractEventLoop) -> bool:
    try:
        return asyncio.get_running_loop() is loop
    except RuntimeError:
        return False


__all__ = [
    "FILE_CREATED",
    "FILE_UPDATED",
    "FILE_DELETED",
    "CHUNKS_UPDATED",
    "FileEvent",
    "Subscription",
    "ChangeNotifier",
]
