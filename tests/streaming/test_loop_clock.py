"""Tests running the reveal engine on a real asyncio loop."""

import asyncio

import pytest

from agentstream.sinks.store import MessageStore
from agentstream.streaming.clock import LoopClock
from agentstream.streaming.coordinator import SessionStreamCoordinator
from agentstream.streaming.schedulers import Channel


@pytest.mark.asyncio
async def test_call_later_fires():
    clock = LoopClock()
    fired = asyncio.Event()
    start = clock.now()

    clock.call_later(10, fired.set)
    await asyncio.wait_for(fired.wait(), timeout=1.0)
    assert clock.now() - start >= 5


@pytest.mark.asyncio
async def test_cancelled_timer_does_not_fire():
    clock = LoopClock()
    fired = []
    handle = clock.call_later(5, lambda: fired.append(True))
    handle.cancel()
    await asyncio.sleep(0.02)
    assert fired == []


@pytest.mark.asyncio
async def test_turn_on_running_loop():
    store = MessageStore()
    coordinator = SessionStreamCoordinator(store, clock=LoopClock())
    try:
        coordinator.on_event("s1", {"type": "turn_started"})
        coordinator.on_event("s1", {"type": "answer_delta", "text": "Hello "})
        coordinator.on_event("s1", {"type": "exec_begin", "command": "ls"})
        assert store.last_assistant("s1").content == "Hello "

        await asyncio.sleep(0.05)
        assert store.last_assistant("s1").tool_output == "\n$ ls\n"

        coordinator.on_event("s1", {"type": "answer_delta", "text": "world"})
        coordinator.on_event("s1", {"type": "turn_complete"})

        message = store.last_assistant("s1")
        assert message.content == "Hello world"
        assert not message.is_streaming
        assert not store.get("s1").loading
    finally:
        coordinator.close()


@pytest.mark.asyncio
async def test_steady_fragment_released_by_hard_timer():
    store = MessageStore()
    clock = LoopClock()
    coordinator = SessionStreamCoordinator(store, clock=clock)
    try:
        answer = coordinator.channel("s1", Channel.ANSWER)
        answer.turn_started_at = clock.now() - 10_000
        coordinator.on_event("s1", {"type": "answer_delta", "text": "hi"})
        assert store.last_assistant("s1") is None

        await asyncio.sleep(0.2)
        assert store.last_assistant("s1").content == "hi"
    finally:
        coordinator.close()
