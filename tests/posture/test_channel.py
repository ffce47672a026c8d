"""Tests for the per-session event channel."""

import asyncio

from core.events import ChannelRegistry, EventKind, SessionChannel, SessionEvent


def test_events_handled_in_order():
    async def scenario():
        handled = []
        results = []

        async def on_result(result):
            results.append(result)

        def handler(event):
            handled.append(event.payload)
            return {"seen": event.payload}

        channel = SessionChannel("s1", handler, on_result=on_result, maxsize=10)
        channel.start()
        for i in range(5):
            assert channel.publish(SessionEvent(EventKind.LANDMARKS, i))

        await channel.drain()
        await asyncio.sleep(0)
        await channel.stop()
        return handled, results, channel.get_stats()

    handled, results, stats = asyncio.run(scenario())

    assert handled == [0, 1, 2, 3, 4]
    assert [r["seen"] for r in results] == [0, 1, 2, 3, 4]
    assert stats["processed"] == 5


def test_full_queue_drops_events():
    async def scenario():
        channel = SessionChannel("s1", lambda e: None, maxsize=2)
        accepted = [channel.publish(SessionEvent(EventKind.EXPRESSION, 0.9)) for _ in range(3)]
        stats = channel.get_stats()
        await channel.stop()
        return accepted, stats

    accepted, stats = asyncio.run(scenario())

    assert accepted == [True, True, False]
    assert stats["dropped"] == 1


def test_stop_is_idempotent_and_discards_queue():
    async def scenario():
        handled = []
        channel = SessionChannel("s1", lambda e: handled.append(e), maxsize=10)
        channel.publish(SessionEvent(EventKind.LANDMARKS))
        channel.publish(SessionEvent(EventKind.LANDMARKS))

        await channel.stop()
        await channel.stop()
        return handled, channel.publish(SessionEvent(EventKind.LANDMARKS)), channel.get_stats()

    handled, published, stats = asyncio.run(scenario())

    assert handled == []
    assert published is False
    assert stats["queue_size"] == 0
    assert not stats["running"]


def test_handler_error_becomes_error_result():
    async def scenario():
        results = []

        async def on_result(result):
            results.append(result)

        def handler(event):
            if event.payload == "bad":
                raise ValueError("broken frame")
            return {"ok": event.payload}

        channel = SessionChannel("s1", handler, on_result=on_result)
        channel.start()
        channel.publish(SessionEvent(EventKind.LANDMARKS, "bad"))
        channel.publish(SessionEvent(EventKind.LANDMARKS, "good"))
        await channel.drain()
        await asyncio.sleep(0)
        await channel.stop()
        return results, channel.get_stats()

    results, stats = asyncio.run(scenario())

    assert results[0]["type"] == "error"
    assert "broken frame" in results[0]["message"]
    assert results[1] == {"ok": "good"}
    assert stats["failed"] == 1


def test_registry_reuses_and_closes_channels():
    async def scenario():
        registry = ChannelRegistry()
        first = registry.open("session:a", lambda e: None)
        again = registry.open("session:a", lambda e: None)
        opened = registry.get_stats()["open_channels"]

        closed = await registry.close("session:a")
        closed_twice = await registry.close("session:a")
        registry.open("session:b", lambda e: None)
        await registry.shutdown()
        return first is again, opened, closed, closed_twice, registry.get_stats()

    same, opened, closed, closed_twice, stats = asyncio.run(scenario())

    assert same
    assert opened == 1
    assert closed and not closed_twice
    assert stats["open_channels"] == 0
