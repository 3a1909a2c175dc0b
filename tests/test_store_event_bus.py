"""Tests for the EventBus used by the conversation store."""

import asyncio
import logging

import pytest

from agentstream.utils.events import EventBus, EventPriority


@pytest.fixture
def bus():
    return EventBus()


class TestSubscriptions:

    def test_subscribe_and_count(self, bus):
        def handler(data):
            pass

        bus.subscribe("message.added", handler)
        bus.subscribe("message.added", handler)
        assert bus.get_subscriber_count("message.added") == 1

        bus.unsubscribe("message.added", handler)
        assert bus.get_subscriber_count("message.added") == 0

    def test_unsubscribe_unknown_event(self, bus):
        bus.unsubscribe("never.subscribed", lambda data: None)
        assert bus.get_subscriber_count("never.subscribed") == 0

    def test_clear_all_handlers(self, bus):
        bus.subscribe("a", lambda data: None)
        bus.subscribe("b", lambda data: None)
        bus.clear_all_handlers()
        assert bus.get_subscriber_count("a") == 0

    def test_shared_instance(self):
        assert EventBus.get_instance() is EventBus.get_instance()


class TestPublishNowait:

    def test_priority_order(self, bus):
        order = []
        bus.subscribe("evt", lambda data: order.append("low"), EventPriority.LOW)
        bus.subscribe("evt", lambda data: order.append("high"), EventPriority.HIGH)
        bus.subscribe("evt", lambda data: order.append("normal"))

        bus.publish_nowait("evt", {})
        assert order == ["high", "normal", "low"]

    def test_failing_handler_does_not_stop_others(self, bus):
        seen = []

        def broken(data):
            raise ValueError("bad handler")

        bus.subscribe("evt", broken, EventPriority.HIGH)
        bus.subscribe("evt", seen.append)
        bus.publish_nowait("evt", 1)
        assert seen == [1]

    def test_async_handler_skipped_without_loop(self, bus):
        seen = []

        async def handler(data):
            seen.append(data)

        bus.subscribe("evt", handler)
        bus.publish_nowait("evt", 1)
        assert seen == []

    @pytest.mark.asyncio
    async def test_async_handler_scheduled_on_running_loop(self, bus):
        seen = []

        async def handler(data):
            seen.append(data)

        bus.subscribe("evt", handler)
        bus.publish_nowait("evt", 7)
        await asyncio.sleep(0)
        assert seen == [7]

    @pytest.mark.asyncio
    async def test_async_handler_failure_is_logged(self, bus, caplog):
        async def boom(data):
            raise RuntimeError("renderer crashed")

        bus.subscribe("evt", boom)
        with caplog.at_level(logging.ERROR, logger="agentstream.utils.events"):
            bus.publish_nowait("evt", 1)
            assert bus.pending_tasks == 1
            for _ in range(3):
                await asyncio.sleep(0)

        assert bus.pending_tasks == 0
        assert [r.getMessage() for r in caplog.records] == ["Error in event handler for evt: renderer crashed"]

    @pytest.mark.asyncio
    async def test_scheduled_handler_is_held_until_done(self, bus):
        release = asyncio.Event()

        async def slow(data):
            await release.wait()

        bus.subscribe("evt", slow)
        bus.publish_nowait("evt")
        await asyncio.sleep(0)
        assert bus.pending_tasks == 1

        release.set()
        for _ in range(3):
            await asyncio.sleep(0)
        assert bus.pending_tasks == 0


class TestPublish:

    @pytest.mark.asyncio
    async def test_publish_awaits_async_handlers(self, bus):
        seen = []

        async def async_handler(data):
            seen.append(("async", data))

        bus.subscribe("evt", async_handler)
        bus.subscribe("evt", lambda data: seen.append(("sync", data)), EventPriority.LOW)

        await bus.publish("evt", "x")
        assert seen == [("async", "x"), ("sync", "x")]

    @pytest.mark.asyncio
    async def test_publish_swallows_handler_errors(self, bus):
        async def broken(data):
            raise RuntimeError("boom")

        bus.subscribe("evt", broken)
        await bus.publish("evt")
