"""Tests for the change notifier."""

from __future__ import annotations

import asyncio
import threading

from knowledge_hub.events.notifier import FILE_CREATED, FILE_UPDATED, ChangeNotifier, FileEvent


def test_publish_reaches_only_owner_subscribers() -> None:
    notifier = ChangeNotifier()
    a1 = notifier.subscribe("a")
    a2 = notifier.subscribe("a")
    b = notifier.subscribe("b")

    delivered = notifier.publish(FileEvent(type=FILE_CREATED, owner_id="a", file_id="f1"))

    assert delivered == 2
    assert a1.get_nowait().file_id == "f1"
    assert a2.get_nowait().file_id == "f1"
    assert b.get_nowait() is None


def test_close_unsubscribes() -> None:
    notifier = ChangeNotifier()
    subscription = notifier.subscribe("a")
    assert notifier.subscriber_count("a") == 1

    subscription.close()
    subscription.close()

    assert notifier.subscriber_count("a") == 0
    assert notifier.publish(FileEvent(type=FILE_CREATED, owner_id="a", file_id="f1")) == 0


def test_async_iteration_receives_events_from_other_threads() -> None:
    notifier = ChangeNotifier()

    async def consume() -> list[str]:
        subscription = notifier.subscribe("a")

        def produce() -> None:
            notifier.publish(FileEvent(type=FILE_CREATED, owner_id="a", file_id="f1"))
            notifier.publish(FileEvent(type=FILE_UPDATED, owner_id="a", file_id="f1"))

        worker = threading.Thread(target=produce)
        worker.start()
        received = []
        async for event in subscription:
            received.append(event.type)
            if len(received) == 2:
                subscription.close()
        worker.join()
        return received

    assert asyncio.run(consume()) == [FILE_CREATED, FILE_UPDATED]


def test_get_times_out_when_idle() -> None:
    notifier = ChangeNotifier()

    async def wait() -> FileEvent | None:
        subscription = notifier.subscribe("a")
        try:
            return await subscription.get(timeout=0.01)
        finally:
            subscription.close()

    assert asyncio.run(wait()) is None


def test_event_serialisation() -> None:
    event = FileEvent(type=FILE_UPDATED, owner_id="a", file_id="f1", payload={"title": "x"}, timestamp=5)
    assert event.to_dict() == {"type": FILE_UPDATED, "file_id": "f1", "payload": {"title": "x"}, "timestamp": 5}
