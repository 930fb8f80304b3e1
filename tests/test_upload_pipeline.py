"""Tests for the concurrent upload pipeline."""
import asyncio
from unittest.mock import AsyncMock, Mock

import pytest

from filedrop.exceptions import TransientUploadFailure
from filedrop.models import ItemStatus, RawItem, UploadConfig
from filedrop.orchestrator.pipeline import UploadPipeline
from filedrop.services.item_store import ItemStore
from filedrop.services.session_store import UploadSessionStore
from filedrop.services.transport import SimulatedTransport, progress_steps


def _raw(name, type_="image/png", size=1024):
    return RawItem(name=name, size=size, type=type_)


class ScriptedTransport:
    """Transport reporting a fixed sequence of percentages."""

    def __init__(self, steps):
        self.steps = steps

    async def transfer(self, raw, upload_id, report):
        for percent in self.steps:
            await asyncio.sleep(0)
            await report(percent)
        return f"memory://{upload_id}"


class BarrierTransport:
    """Transport that only finishes once `expected` transfers are running at once."""

    def __init__(self, expected):
        self.expected = expected
        self.running = 0
        self.all_started = asyncio.Event()

    async def transfer(self, raw, upload_id, report):
        await report(0)
        self.running += 1
        if self.running == self.expected:
            self.all_started.set()
        await self.all_started.wait()
        await report(100)
        return f"memory://{upload_id}"


class CountingTransport:
    """Transport recording the peak number of concurrent transfers."""

    def __init__(self):
        self.active = 0
        self.peak = 0

    async def transfer(self, raw, upload_id, report):
        self.active += 1
        self.peak = max(self.peak, self.active)
        try:
            await asyncio.sleep(0.01)
            await report(100)
        finally:
            self.active -= 1
        return f"memory://{upload_id}"


@pytest.fixture
def item_store():
    return ItemStore()


class TestProgressSteps:
    def test_ends_at_exactly_100(self):
        assert list(progress_steps(10)) == [0, 10, 20, 30, 40, 50, 60, 70, 80, 90, 100]
        assert list(progress_steps(30)) == [0, 30, 60, 90, 100]
        assert list(progress_steps(100)) == [0, 100]

    def test_invalid_step(self):
        with pytest.raises(ValueError):
            SimulatedTransport(step=0)


class TestUploadBatch:
    @pytest.mark.asyncio
    async def test_mixed_batch(self, item_store, fast_config):
        pipeline = UploadPipeline(item_store, fast_config)
        raw_items = [
            _raw("a.png"),
            _raw("b.exe", type_="application/x-msdownload"),
            _raw("c.pdf", type_="application/pdf"),
            _raw("d.zip", type_="application/zip"),
            _raw("e.txt", type_="text/plain"),
        ]

        result = await pipeline.upload_batch(raw_items, folder_id="f1")

        assert len(result.stored) == 3
        assert len(result.validation_errors) == 2
        assert result.validation_errors[0].startswith("b.exe:")
        assert result.validation_errors[1].startswith("d.zip:")
        assert result.transient_failures == 0
        assert result.all_success is False
        assert result.total_submitted == 5

        stored = item_store.get_all()
        assert {item.name for item in stored} == {"a.png", "c.pdf", "e.txt"}
        for item in stored:
            assert item.progress == 100
            assert item.status is ItemStatus.COMPLETED
            assert item.folder_id == "f1"
            assert item.url.startswith("memory://")
        assert pipeline.in_flight == []
        assert pipeline.failed == []

    @pytest.mark.asyncio
    async def test_all_rejected(self, item_store, fast_config):
        pipeline = UploadPipeline(item_store, fast_config)
        result = await pipeline.upload_batch([_raw("big.png", size=11 * 1024 * 1024)])
        assert result.stored == []
        assert result.validation_errors == ["big.png: File size must be less than 10MB"]
        assert len(item_store) == 0

    @pytest.mark.asyncio
    async def test_empty_batch(self, item_store, fast_config):
        pipeline = UploadPipeline(item_store, fast_config)
        result = await pipeline.upload_batch([])
        assert result.all_success is True
        assert result.total_submitted == 0

    @pytest.mark.asyncio
    async def test_accepts_mappings(self, item_store, fast_config):
        pipeline = UploadPipeline(item_store, fast_config)
        result = await pipeline.upload_batch([{"name": "a.png", "size": 5, "type": "image/png"}])
        assert [item.name for item in result.stored] == ["a.png"]

    @pytest.mark.asyncio
    async def test_transfer_url_is_kept(self, item_store, fast_config):
        pipeline = UploadPipeline(item_store, fast_config)
        raw = RawItem(name="a.png", size=1, type="image/png", url="file:///tmp/a.png")
        result = await pipeline.upload_batch([raw])
        assert result.stored[0].url == "file:///tmp/a.png"


class TestProgress:
    @pytest.mark.asyncio
    async def test_progress_events_are_monotonic(self, item_store, fast_config):
        pipeline = UploadPipeline(item_store, fast_config)
        seen = {}
        pipeline.on_item_progress(lambda p: seen.setdefault(p.name, []).append(p.progress))

        await pipeline.upload_batch([_raw("a.png"), _raw("b.png")])

        for name in ("a.png", "b.png"):
            assert seen[name] == list(progress_steps(10))

    @pytest.mark.asyncio
    async def test_items_upload_concurrently(self, item_store, fast_config):
        transport = BarrierTransport(expected=3)
        pipeline = UploadPipeline(item_store, fast_config, transport=transport)

        result = await asyncio.wait_for(
            pipeline.upload_batch([_raw("a.png"), _raw("b.png"), _raw("c.png")]),
            timeout=5,
        )

        assert len(result.stored) == 3

    @pytest.mark.asyncio
    async def test_concurrent_items_keep_separate_records(self, item_store, fast_config):
        transport = BarrierTransport(expected=2)
        pipeline = UploadPipeline(item_store, fast_config, transport=transport)
        snapshots = []

        def on_progress(progress):
            if progress.progress == 0:
                snapshots.append({p.name: p.progress for p in pipeline.in_flight})

        pipeline.on_item_progress(on_progress)
        await pipeline.upload_batch([_raw("a.png"), _raw("b.png")])

        # The second item's 0% report never clobbers the first item's record
        assert snapshots[-1] == {"a.png": 0, "b.png": 0}

    @pytest.mark.asyncio
    async def test_regression_ignored(self, item_store, fast_config):
        pipeline = UploadPipeline(item_store, fast_config, transport=ScriptedTransport([0, 50, 30, 100]))
        seen = []
        pipeline.on_item_progress(lambda p: seen.append(p.progress))

        result = await pipeline.upload_batch([_raw("a.png")])

        assert seen == [0, 50, 100]
        assert len(result.stored) == 1

    @pytest.mark.asyncio
    async def test_slow_listener_does_not_serialize_items(self, item_store):
        pipeline = UploadPipeline(item_store, UploadConfig(step_delay=0, progress_step=50))
        listening = 0
        peak = 0

        async def slow_listener(progress):
            nonlocal listening, peak
            listening += 1
            peak = max(peak, listening)
            await asyncio.sleep(0.05)
            listening -= 1

        pipeline.on_item_progress(slow_listener)
        loop = asyncio.get_running_loop()
        started = loop.time()

        result = await pipeline.upload_batch([_raw(f"{i}.png") for i in range(6)])

        assert len(result.stored) == 6
        assert peak == 6
        # 3 steps per item: about 0.15s when items overlap, 0.9s when serialized
        assert loop.time() - started < 0.6

    @pytest.mark.asyncio
    async def test_completion_event_carries_upload_id(self, item_store, fast_config):
        pipeline = UploadPipeline(item_store, fast_config)
        started = {}
        completed = {}
        pipeline.on_item_start(lambda p: started.setdefault(p.upload_id, p.name))
        pipeline.on_item_complete(lambda item, p: completed.setdefault(p.upload_id, item.name))

        await pipeline.upload_batch([_raw("same.png"), _raw("same.png")])

        assert completed == started
        assert len(completed) == 2

    @pytest.mark.asyncio
    async def test_out_of_range_clamped(self, item_store, fast_config):
        pipeline = UploadPipeline(item_store, fast_config, transport=ScriptedTransport([-5, 250]))
        seen = []
        pipeline.on_item_progress(lambda p: seen.append(p.progress))

        result = await pipeline.upload_batch([_raw("a.png")])

        assert seen == [0, 100]
        assert result.stored[0].progress == 100

    @pytest.mark.asyncio
    async def test_incomplete_transfer_fails(self, item_store, fast_config):
        pipeline = UploadPipeline(item_store, fast_config, transport=ScriptedTransport([0, 80]))

        result = await pipeline.upload_batch([_raw("a.png")])

        assert result.transient_failures == 1
        assert "stopped at 80%" in pipeline.failed[0].error
        assert len(item_store) == 0


class TestFailures:
    @pytest.mark.asyncio
    async def test_transient_failure_is_retained(self, item_store):
        transport = SimulatedTransport(step=10, delay=0, fail_names={"bad.png"})
        pipeline = UploadPipeline(item_store, UploadConfig(step_delay=0), transport=transport)
        failures = []
        pipeline.on_item_fail(failures.append)

        result = await pipeline.upload_batch([_raw("good.png"), _raw("bad.png")])

        assert [item.name for item in result.stored] == ["good.png"]
        assert result.transient_failures == 1
        assert result.failed_items == ["bad.png"]
        assert [item.name for item in item_store.get_all()] == ["good.png"]

        failed = pipeline.failed
        assert len(failed) == 1
        assert failed[0].status is ItemStatus.FAILED
        assert failed[0].progress == 40
        assert "simulated transfer failure" in failed[0].error
        assert failures[0].upload_id == failed[0].upload_id
        assert pipeline.in_flight == []

    @pytest.mark.asyncio
    async def test_dismiss_and_clear(self, item_store):
        transport = SimulatedTransport(step=50, delay=0, fail_names={"a.png", "b.png"})
        pipeline = UploadPipeline(item_store, UploadConfig(step_delay=0), transport=transport)
        await pipeline.upload_batch([_raw("a.png"), _raw("b.png")])

        first = pipeline.failed[0]
        assert pipeline.get_progress(first.upload_id).status is ItemStatus.FAILED
        assert pipeline.dismiss(first.upload_id) is True
        assert pipeline.dismiss(first.upload_id) is False
        assert pipeline.clear_failed() == 1
        assert pipeline.failed == []

    @pytest.mark.asyncio
    async def test_store_failure_marks_item_failed(self, fast_config):
        repository = Mock()
        repository.create = AsyncMock(side_effect=TransientUploadFailure("a.png", "disk full"))

        pipeline = UploadPipeline(repository, fast_config)
        result = await pipeline.upload_batch([_raw("a.png")])
        assert result.transient_failures == 1
        assert pipeline.failed[0].error == "a.png: disk full"

    @pytest.mark.asyncio
    async def test_cancel(self, item_store, fast_config):
        pipeline = UploadPipeline(item_store, fast_config)
        pipeline.on_item_start(lambda p: pipeline.cancel(p.upload_id) if p.name == "b.png" else None)

        result = await pipeline.upload_batch([_raw("a.png"), _raw("b.png")])

        assert [item.name for item in result.stored] == ["a.png"]
        assert result.failed_items == ["b.png"]
        assert pipeline.failed[0].error == "b.png: upload cancelled"

    def test_cancel_unknown(self, item_store):
        assert UploadPipeline(item_store).cancel("missing") is False


class TestThrottling:
    @pytest.mark.asyncio
    async def test_max_parallel(self, item_store):
        transport = CountingTransport()
        config = UploadConfig(step_delay=0, max_parallel=2)
        pipeline = UploadPipeline(item_store, config, transport=transport)

        result = await pipeline.upload_batch([_raw(f"{i}.png") for i in range(5)])

        assert len(result.stored) == 5
        assert transport.peak == 2

    @pytest.mark.asyncio
    async def test_unbounded_by_default(self, item_store, fast_config):
        transport = CountingTransport()
        pipeline = UploadPipeline(item_store, fast_config, transport=transport)
        await pipeline.upload_batch([_raw(f"{i}.png") for i in range(5)])
        assert transport.peak == 5


class TestEventsAndSessions:
    @pytest.mark.asyncio
    async def test_event_order(self, item_store, fast_config):
        pipeline = UploadPipeline(item_store, fast_config, transport=ScriptedTransport([0, 100]))
        events = []
        pipeline.on_item_start(lambda p: events.append(("start", p.progress)))
        pipeline.on_item_progress(lambda p: events.append(("progress", p.progress)))
        pipeline.on_item_complete(lambda item, p: events.append(("complete", item.name, p.progress)))
        pipeline.on_batch_finish(lambda r: events.append(("finish", len(r.stored))))

        await pipeline.upload_batch([_raw("a.png")])

        assert events == [
            ("start", 0),
            ("progress", 0),
            ("progress", 100),
            ("complete", "a.png", 100),
            ("finish", 1),
        ]

    @pytest.mark.asyncio
    async def test_session_recorded(self, item_store, fast_config):
        sessions = UploadSessionStore()
        transport = SimulatedTransport(step=50, delay=0, fail_names={"bad.png"})
        pipeline = UploadPipeline(item_store, fast_config, transport=transport, session_store=sessions)

        result = await pipeline.upload_batch(
            [_raw("a.png"), _raw("bad.png"), _raw("c.exe", type_="application/x-msdownload")],
            folder_id="f1",
        )

        session = sessions.get_by_id(result.session_id)
        assert session.completed is True
        assert session.folder_id == "f1"
        assert (session.total_items, session.stored_items) == (3, 1)
        assert (session.failed_items, session.rejected_items) == (1, 1)
