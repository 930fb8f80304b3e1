"""Tests for the event emitter."""
import asyncio
import logging

import pytest

from filedrop.utils.events import EventEmitter, ItemProgress


class TestEventEmitter:
    @pytest.mark.asyncio
    async def test_sync_and_async_listeners(self):
        emitter = EventEmitter()
        received = []

        async def async_listener(value):
            received.append(("async", value))

        emitter.on("tick", lambda value: received.append(("sync", value)))
        emitter.on("tick", async_listener)

        await emitter.emit("tick", 7)

        assert received == [("sync", 7), ("async", 7)]

    @pytest.mark.asyncio
    async def test_duplicate_subscription_ignored(self):
        emitter = EventEmitter()
        calls = []
        listener = calls.append
        emitter.on("tick", listener)
        emitter.on("tick", listener)
        assert emitter.listener_count("tick") == 1

        await emitter.emit("tick", 1)
        assert calls == [1]

    @pytest.mark.asyncio
    async def test_off(self):
        emitter = EventEmitter()
        calls = []
        emitter.on("tick", calls.append)
        emitter.off("tick", calls.append)
        await emitter.emit("tick", 1)
        assert calls == []

    @pytest.mark.asyncio
    async def test_listener_error_is_logged(self, caplog):
        emitter = EventEmitter()
        calls = []

        def broken(_):
            raise RuntimeError("boom")

        emitter.on("tick", broken)
        emitter.on("tick", calls.append)

        with caplog.at_level(logging.ERROR, logger="filedrop.utils.events"):
            await emitter.emit("tick", 1)

        assert calls == [1]
        assert "boom" in caplog.text

    @pytest.mark.asyncio
    async def test_concurrent_emits_interleave(self):
        emitter = EventEmitter()
        order = []

        async def listener(name):
            order.append(("enter", name))
            await asyncio.sleep(0.01)
            order.append(("leave", name))

        emitter.on("tick", listener)
        await asyncio.gather(emitter.emit("tick", "a"), emitter.emit("tick", "b"))

        assert order[:2] == [("enter", "a"), ("enter", "b")]

    @pytest.mark.asyncio
    async def test_emit_without_listeners(self):
        await EventEmitter().emit("nothing")


def test_item_progress_copy_is_independent():
    record = ItemProgress(upload_id="u1", name="a.png")
    snapshot = record.copy()
    record.progress = 50
    assert snapshot.progress == 0
