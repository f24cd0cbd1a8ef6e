"""Tests for render deduplication and stale-result rejection."""

import asyncio

import pytest

from framer_client.errors import NoSourceError
from framer_client.render_coordinator import (
    NO_OVERLAY,
    RenderCoordinator,
    RenderKey,
    RenderPhase,
    RenderResult,
)


class ControlledRunner:
    """Transform runner whose renders finish only when the test says so."""

    def __init__(self):
        self.calls: list[tuple[str, str]] = []
        self.futures: dict[tuple[str, str], asyncio.Future] = {}

    def __call__(self, source_ref, overlay_id):
        self.calls.append((source_ref, overlay_id))
        fut = asyncio.get_running_loop().create_future()
        self.futures[(source_ref, overlay_id)] = fut
        return fut

    def resolve(self, source_ref, overlay_id, job_id):
        self.futures[(source_ref, overlay_id)].set_result(
            RenderResult(job_id=job_id, result_ref=f"/api/transformed-artifact/{job_id}")
        )

    def fail(self, source_ref, overlay_id, error):
        self.futures[(source_ref, overlay_id)].set_exception(error)


async def settle():
    """Let started tasks reach their first await."""
    for _ in range(3):
        await asyncio.sleep(0)


@pytest.fixture
def runner():
    return ControlledRunner()


@pytest.fixture
def notices():
    return []


@pytest.fixture
def coordinator(runner, notices):
    return RenderCoordinator(runner, on_notice=notices.append)


class TestRenderKey:
    def test_str(self):
        assert str(RenderKey("acq-1", "frame-gold")) == "acq-1|frame-gold"

    def test_no_key_without_source_or_overlay(self, coordinator):
        assert coordinator.state.current_key is None
        coordinator.state.source_ref = "acq-1"
        assert coordinator.state.current_key is None
        coordinator.state.selected_overlay_id = "frame-gold"
        assert coordinator.state.current_key == RenderKey("acq-1", "frame-gold")


class TestAutoRender:
    @pytest.mark.asyncio
    async def test_select_commits_result(self, coordinator, runner):
        coordinator.load_source("acq-1")
        task = coordinator.select_overlay("frame-gold")
        await settle()

        assert coordinator.state.phase is RenderPhase.PENDING
        assert coordinator.state.pending_key == RenderKey("acq-1", "frame-gold")

        runner.resolve("acq-1", "frame-gold", "t-1")
        outcome = await task

        assert outcome.committed is True
        cached = coordinator.cached_for_current()
        assert cached.job_id == "t-1"
        assert cached.overlay_id == "frame-gold"
        assert coordinator.state.pending_key is None
        assert coordinator.state.phase is RenderPhase.COMMITTED

    @pytest.mark.asyncio
    async def test_nothing_to_render(self, coordinator, runner):
        assert coordinator.select_overlay("frame-gold") is None
        coordinator.state.selected_overlay_id = NO_OVERLAY
        assert coordinator.load_source("acq-1") is None
        assert coordinator.select_overlay(None) is None
        assert runner.calls == []

    @pytest.mark.asyncio
    async def test_reselecting_cached_overlay_does_not_rerender(self, coordinator, runner):
        coordinator.load_source("acq-1")
        task = coordinator.select_overlay("frame-gold")
        await settle()
        runner.resolve("acq-1", "frame-gold", "t-1")
        await task

        assert coordinator.select_overlay("frame-gold") is None
        assert coordinator.ensure_render() is None
        assert runner.calls == [("acq-1", "frame-gold")]

    @pytest.mark.asyncio
    async def test_skipped_during_blocking_operation(self, coordinator, runner):
        coordinator.load_source("acq-1")

        async with coordinator.blocking_operation():
            assert coordinator.is_blocked
            assert coordinator.select_overlay("frame-gold") is None

        assert not coordinator.is_blocked
        assert runner.calls == []


class TestStaleness:
    """A result is committed only if its key is still the current one."""

    @pytest.mark.asyncio
    async def test_earlier_selection_finishing_late_is_discarded(self, coordinator, runner):
        coordinator.load_source("acq-1")
        task_a = coordinator.select_overlay("frame-gold")
        await settle()
        task_b = coordinator.select_overlay("frame-blue")
        await settle()

        # Selecting B dropped A's pending state immediately
        assert coordinator.state.pending_key == RenderKey("acq-1", "frame-blue")
        assert coordinator.cached_for_current() is None

        runner.resolve("acq-1", "frame-gold", "t-a")
        outcome_a = await task_a
        assert outcome_a.committed is False
        assert coordinator.state.cached is None
        assert coordinator.state.pending_key == RenderKey("acq-1", "frame-blue")

        runner.resolve("acq-1", "frame-blue", "t-b")
        outcome_b = await task_b
        assert outcome_b.committed is True
        assert coordinator.cached_for_current().job_id == "t-b"

    @pytest.mark.asyncio
    async def test_late_result_does_not_overwrite_newer_commit(self, coordinator, runner):
        coordinator.load_source("acq-1")
        task_a = coordinator.select_overlay("frame-gold")
        await settle()
        task_b = coordinator.select_overlay("frame-blue")
        await settle()

        runner.resolve("acq-1", "frame-blue", "t-b")
        await task_b
        runner.resolve("acq-1", "frame-gold", "t-a")
        await task_a

        assert coordinator.state.cached.job_id == "t-b"
        assert coordinator.state.phase is RenderPhase.COMMITTED

    @pytest.mark.asyncio
    async def test_result_for_previous_source_is_discarded(self, coordinator, runner):
        coordinator.load_source("acq-1")
        old = coordinator.select_overlay("frame-gold")
        await settle()
        new = coordinator.load_source("acq-2")
        await settle()

        runner.resolve("acq-1", "frame-gold", "t-old")
        assert (await old).committed is False

        runner.resolve("acq-2", "frame-gold", "t-new")
        assert (await new).committed is True
        assert coordinator.cached_for_current().key == RenderKey("acq-2", "frame-gold")

    @pytest.mark.asyncio
    async def test_selecting_none_discards_in_flight_result(self, coordinator, runner):
        coordinator.load_source("acq-1")
        task = coordinator.select_overlay("frame-gold")
        await settle()
        coordinator.select_overlay(NO_OVERLAY)

        runner.resolve("acq-1", "frame-gold", "t-1")
        outcome = await task

        assert outcome.committed is False
        assert coordinator.state.cached is None
        assert coordinator.state.phase is RenderPhase.DISCARDED

    def test_loading_same_source_keeps_cache(self, coordinator):
        coordinator.state.source_ref = "acq-1"
        sentinel = object()
        coordinator.state.cached = sentinel

        assert coordinator.load_source("acq-1") is None
        assert coordinator.state.cached is sentinel


class TestDedup:
    """At most one transform per render key."""

    @pytest.mark.asyncio
    async def test_switching_back_joins_in_flight_render(self, coordinator, runner):
        coordinator.load_source("acq-1")
        first = coordinator.select_overlay("frame-gold")
        await settle()
        coordinator.select_overlay("frame-blue")
        await settle()
        again = coordinator.select_overlay("frame-gold")
        await settle()

        assert again is first
        assert runner.calls == [("acq-1", "frame-gold"), ("acq-1", "frame-blue")]

        runner.resolve("acq-1", "frame-gold", "t-a")
        assert (await again).committed is True
        assert coordinator.cached_for_current().job_id == "t-a"

    @pytest.mark.asyncio
    async def test_repeated_selection_of_pending_key(self, coordinator, runner):
        coordinator.load_source("acq-1")
        first = coordinator.select_overlay("frame-gold")
        await settle()

        assert coordinator.select_overlay("frame-gold") is first
        assert coordinator.ensure_render() is first
        assert len(runner.calls) == 1
        assert coordinator.inflight_keys() == [RenderKey("acq-1", "frame-gold")]

        runner.resolve("acq-1", "frame-gold", "t-1")
        await coordinator.wait_idle()
        assert coordinator.inflight_keys() == []

    @pytest.mark.asyncio
    async def test_finished_render_can_run_again(self, coordinator, runner):
        coordinator.load_source("acq-1")
        task = coordinator.select_overlay("frame-gold")
        await settle()
        runner.resolve("acq-1", "frame-gold", "t-1")
        await task

        # Switching away drops the cache, so coming back renders afresh
        coordinator.select_overlay("frame-blue")
        await settle()
        coordinator.select_overlay("frame-gold")
        await settle()

        assert runner.calls.count(("acq-1", "frame-gold")) == 2


class TestFailure:
    @pytest.mark.asyncio
    async def test_current_failure_notifies(self, coordinator, runner, notices):
        coordinator.load_source("acq-1")
        task = coordinator.select_overlay("frame-gold")
        await settle()

        runner.fail("acq-1", "frame-gold", RuntimeError("ffmpeg failed"))
        outcome = await task

        assert isinstance(outcome.error, RuntimeError)
        assert coordinator.state.pending_key is None
        assert coordinator.state.phase is RenderPhase.IDLE
        assert notices == ["Could not apply the frame; the original video is still available"]

    @pytest.mark.asyncio
    async def test_stale_failure_is_silent(self, coordinator, runner, notices):
        coordinator.load_source("acq-1")
        task_a = coordinator.select_overlay("frame-gold")
        await settle()
        coordinator.select_overlay("frame-blue")
        await settle()

        runner.fail("acq-1", "frame-gold", RuntimeError("ffmpeg failed"))
        await task_a

        assert notices == []
        assert coordinator.state.pending_key == RenderKey("acq-1", "frame-blue")

    @pytest.mark.asyncio
    async def test_failed_key_can_be_retried(self, coordinator, runner):
        coordinator.load_source("acq-1")
        task = coordinator.select_overlay("frame-gold")
        await settle()
        runner.fail("acq-1", "frame-gold", RuntimeError("boom"))
        await task

        retry = coordinator.ensure_render()
        await settle()

        assert retry is not None and retry is not task
        assert len(runner.calls) == 2


class TestRenderCurrent:
    @pytest.mark.asyncio
    async def test_requires_source(self, coordinator):
        with pytest.raises(NoSourceError):
            await coordinator.render_current()

    @pytest.mark.asyncio
    async def test_requires_overlay(self, coordinator):
        coordinator.load_source("acq-1")
        with pytest.raises(ValueError):
            await coordinator.render_current()

    @pytest.mark.asyncio
    async def test_returns_cached(self, coordinator, runner):
        coordinator.load_source("acq-1")
        task = coordinator.select_overlay("frame-gold")
        await settle()
        runner.resolve("acq-1", "frame-gold", "t-1")
        await task

        render = await coordinator.render_current()

        assert render.job_id == "t-1"
        assert len(runner.calls) == 1

    @pytest.mark.asyncio
    async def test_joins_background_render(self, coordinator, runner):
        coordinator.load_source("acq-1")
        coordinator.select_overlay("frame-gold")
        await settle()

        waiter = asyncio.ensure_future(coordinator.render_current())
        await settle()
        assert coordinator.is_blocked
        runner.resolve("acq-1", "frame-gold", "t-1")
        render = await waiter

        assert render.job_id == "t-1"
        assert len(runner.calls) == 1
        assert not coordinator.is_blocked
        assert coordinator.cached_for_current() == render

    @pytest.mark.asyncio
    async def test_propagates_failure(self, coordinator, runner):
        coordinator.state.source_ref = "acq-1"
        coordinator.state.selected_overlay_id = "frame-gold"

        waiter = asyncio.ensure_future(coordinator.render_current())
        await settle()
        runner.fail("acq-1", "frame-gold", RuntimeError("encode failed"))

        with pytest.raises(RuntimeError, match="encode failed"):
            await waiter
