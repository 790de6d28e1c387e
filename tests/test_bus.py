"""Tests for flowrag.bus — signal publish/subscribe."""

from __future__ import annotations

import asyncio

from flowrag.bus import Signal, SignalBus, Topic


class TestSubscribePublish:
    def test_delivers_to_matching_target(self):
        bus = SignalBus()
        received: list[Signal] = []
        bus.subscribe(Topic.RUN_REQUESTED, received.append, target_id="b")

        assert bus.publish(Signal(Topic.RUN_REQUESTED, "b", source_id="a")) == 1
        assert bus.publish(Signal(Topic.RUN_REQUESTED, "c", source_id="a")) == 0
        assert received == [Signal(Topic.RUN_REQUESTED, "b", source_id="a")]

    def test_unfiltered_subscription_receives_all(self):
        bus = SignalBus()
        received: list[str] = []
        bus.subscribe(Topic.RUN_COMPLETED, lambda s: received.append(s.target_id))
        bus.publish(Signal(Topic.RUN_COMPLETED, "x"))
        bus.publish(Signal(Topic.RUN_COMPLETED, "y"))
        assert received == ["x", "y"]

    def test_topics_are_isolated(self):
        bus = SignalBus()
        received: list[Signal] = []
        bus.subscribe(Topic.DELETE_REQUESTED, received.append)
        bus.publish(Signal(Topic.RUN_REQUESTED, "x"))
        assert received == []

    def test_unsubscribe(self):
        bus = SignalBus()
        received: list[Signal] = []
        sub = bus.subscribe(Topic.RUN_REQUESTED, received.append)
        sub.unsubscribe()
        sub.unsubscribe()
        bus.publish(Signal(Topic.RUN_REQUESTED, "x"))
        assert received == []
        assert bus.subscriber_count(Topic.RUN_REQUESTED) == 0

    def test_failing_handler_does_not_block_others(self, caplog):
        bus = SignalBus()
        received: list[Signal] = []

        def broken(signal: Signal) -> None:
            raise RuntimeError("handler bug")

        bus.subscribe(Topic.RUN_REQUESTED, broken)
        bus.subscribe(Topic.RUN_REQUESTED, received.append)
        assert bus.publish(Signal(Topic.RUN_REQUESTED, "x")) == 2
        assert len(received) == 1
        assert "handler bug" in caplog.text


class TestAsyncHandlers:
    def test_coroutine_handlers_are_scheduled_and_drained(self):
        async def scenario() -> list[str]:
            bus = SignalBus()
            seen: list[str] = []

            async def handler(signal: Signal) -> None:
                await asyncio.sleep(0)
                seen.append(signal.target_id)

            bus.subscribe(Topic.RUN_REQUESTED, handler)
            bus.publish(Signal(Topic.RUN_REQUESTED, "x"))
            assert len(bus.pending) == 1
            await bus.drain()
            assert bus.pending == set()
            return seen

        assert asyncio.run(scenario()) == ["x"]

    def test_close_cancels_pending_and_drops_subscriptions(self):
        async def scenario() -> bool:
            bus = SignalBus()
            finished = False

            async def slow(signal: Signal) -> None:
                nonlocal finished
                await asyncio.sleep(10)
                finished = True

            bus.subscribe(Topic.RUN_REQUESTED, slow)
            bus.publish(Signal(Topic.RUN_REQUESTED, "x"))
            bus.close()
            await asyncio.sleep(0)
            assert bus.subscriber_count(Topic.RUN_REQUESTED) == 0
            return finished

        assert asyncio.run(scenario()) is False
