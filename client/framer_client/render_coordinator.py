"""Client-side render coordination.

Selecting an overlay kicks off a background transform for the pair
(loaded source, selected overlay), called the render key. The coordinator
keeps three things consistent while the user keeps clicking:

- at most one transform runs per render key (dedup)
- a result is committed to the cache only if its key is still the one the
  user wants (staleness rejection)
- changing the selection drops the cached result and the pending key at
  once, before anything else can observe them

State machine::

    idle --select--> pending(key) --done, key current--> committed(key)
                                  --done, key stale-----> discarded

Transitions are guarded by key equality. Renders are never hard-cancelled;
switching away just means their result will be discarded.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from contextlib import asynccontextmanager
from dataclasses import dataclass
from enum import Enum
from typing import AsyncIterator, Protocol

from framer_client.api_client import FramerApiClient
from framer_client.errors import NoSourceError
from framer_client.polling import RetryPolicy, poll_until_terminal

logger = logging.getLogger(__name__)

NO_OVERLAY = "none"


@dataclass(frozen=True)
class RenderKey:
    source_ref: str
    overlay_id: str

    def __str__(self) -> str:
        return f"{self.source_ref}|{self.overlay_id}"


@dataclass(frozen=True)
class RenderResult:
    job_id: str
    result_ref: str


@dataclass(frozen=True)
class CachedRender:
    key: RenderKey
    job_id: str
    result_ref: str

    @property
    def overlay_id(self) -> str:
        return self.key.overlay_id


class RenderPhase(str, Enum):
    IDLE = "idle"
    PENDING = "pending"
    COMMITTED = "committed"
    DISCARDED = "discarded"


@dataclass
class RenderState:
    source_ref: str | None = None
    selected_overlay_id: str = NO_OVERLAY
    pending_key: RenderKey | None = None
    cached: CachedRender | None = None
    phase: RenderPhase = RenderPhase.IDLE

    @property
    def current_key(self) -> RenderKey | None:
        if self.source_ref is None or self.selected_overlay_id == NO_OVERLAY:
            return None
        return RenderKey(self.source_ref, self.selected_overlay_id)


@dataclass
class RenderOutcome:
    key: RenderKey
    render: CachedRender | None = None
    error: Exception | None = None
    committed: bool = False


class TransformRunner(Protocol):
    def __call__(self, source_ref: str, overlay_id: str) -> Awaitable[RenderResult]: ...


class ApiTransformRunner:
    """Starts a transform job through the API and polls it to completion."""

    def __init__(self, api: FramerApiClient, policy: RetryPolicy | None = None):
        self.api = api
        self.policy = policy

    async def __call__(self, source_ref: str, overlay_id: str) -> RenderResult:
        job_id = await self.api.transform(source_ref, overlay_id)
        await poll_until_terminal(self.api.transform_status, job_id, self.policy)
        return RenderResult(job_id=job_id, result_ref=f"/api/transformed-artifact/{job_id}")


class RenderCoordinator:
    """Owns the render state of one client session."""

    def __init__(
        self,
        runner: TransformRunner,
        on_notice: Callable[[str], None] | None = None,
    ):
        self.runner = runner
        self.on_notice = on_notice
        self.state = RenderState()
        self._inflight: dict[RenderKey, asyncio.Task] = {}
        self._blocking = 0

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def cached_for_current(self) -> CachedRender | None:
        """The cached result, but only if it matches the current selection."""
        cached = self.state.cached
        if cached is not None and cached.key == self.state.current_key:
            return cached
        return None

    @property
    def is_blocked(self) -> bool:
        return self._blocking > 0

    def inflight_keys(self) -> list[RenderKey]:
        return list(self._inflight)

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def _invalidate(self) -> None:
        self.state.cached = None
        self.state.pending_key = None
        self.state.phase = RenderPhase.IDLE

    def load_source(self, source_ref: str) -> asyncio.Task | None:
        """A new source video was loaded; renders for the old one no longer apply."""
        if source_ref == self.state.source_ref:
            return None
        self.state.source_ref = source_ref
        self._invalidate()
        return self.ensure_render()

    def select_overlay(self, overlay_id: str | None) -> asyncio.Task | None:
        """Change the selected overlay and auto-render it in the background."""
        self.state.selected_overlay_id = overlay_id or NO_OVERLAY
        key = self.state.current_key

        if key is not None and self.cached_for_current() is not None:
            return None
        if key is not None and key == self.state.pending_key:
            return self._inflight.get(key)

        self._invalidate()
        return self.ensure_render()

    def drop_cached(self, key: RenderKey) -> None:
        """Forget a cached result whose artifact turned out to be gone."""
        if self.state.cached is not None and self.state.cached.key == key:
            self.state.cached = None
            self.state.phase = RenderPhase.IDLE

    def ensure_render(self) -> asyncio.Task | None:
        """Start (or join) the background render for the current key.

        Returns the task rendering the current key, or None when there is
        nothing to do: no source, overlay "none", already cached, or a
        blocking operation is in progress.
        """
        key = self.state.current_key
        if key is None:
            return None
        if self.cached_for_current() is not None:
            return None
        if self.is_blocked:
            logger.debug(f"Skipping auto-render for {key}: blocking operation in progress")
            return None
        return self._begin(key)

    def _begin(self, key: RenderKey) -> asyncio.Task:
        self.state.pending_key = key
        self.state.phase = RenderPhase.PENDING
        task = self._inflight.get(key)
        if task is None:
            task = asyncio.get_running_loop().create_task(self._render(key))
            self._inflight[key] = task
            task.add_done_callback(lambda t, k=key: self._forget(k, t))
            logger.info(f"Started render for {key}")
        return task

    def _forget(self, key: RenderKey, task: asyncio.Task) -> None:
        if self._inflight.get(key) is task:
            del self._inflight[key]

    async def _render(self, key: RenderKey) -> RenderOutcome:
        try:
            result = await self.runner(key.source_ref, key.overlay_id)
        except Exception as e:
            if self.state.pending_key == key:
                self.state.pending_key = None
                self.state.phase = RenderPhase.IDLE
                logger.warning(f"Render for {key} failed: {e}")
                if self.on_notice is not None:
                    self.on_notice("Could not apply the frame; the original video is still available")
            else:
                logger.info(f"Ignoring failure of stale render {key}: {e}")
            return RenderOutcome(key=key, error=e)

        render = CachedRender(key=key, job_id=result.job_id, result_ref=result.result_ref)
        if self.state.pending_key == key and self.state.current_key == key:
            self.state.cached = render
            self.state.pending_key = None
            self.state.phase = RenderPhase.COMMITTED
            logger.info(f"Committed render {key} (job {result.job_id})")
            return RenderOutcome(key=key, render=render, committed=True)

        if self.state.pending_key is None and self.state.cached is None:
            self.state.phase = RenderPhase.DISCARDED
        logger.info(f"Discarded stale render {key}; current selection is {self.state.current_key}")
        return RenderOutcome(key=key, render=render)

    # ------------------------------------------------------------------
    # Explicit (blocking) operations
    # ------------------------------------------------------------------

    @asynccontextmanager
    async def blocking_operation(self) -> AsyncIterator[None]:
        """Suppress auto-renders while a user-initiated operation runs."""
        self._blocking += 1
        try:
            yield
        finally:
            self._blocking -= 1

    async def render_current(self) -> CachedRender:
        """Render the current selection and wait for it.

        Joins an in-flight render for the same key instead of starting a
        second one.

        Raises:
            NoSourceError: no source loaded
            ValueError: overlay "none" is selected
            Exception: whatever the transform failed with
        """
        if self.state.source_ref is None:
            raise NoSourceError()
        key = self.state.current_key
        if key is None:
            raise ValueError("No overlay selected")

        cached = self.cached_for_current()
        if cached is not None:
            return cached

        async with self.blocking_operation():
            outcome: RenderOutcome = await self._begin(key)

        if outcome.error is not None:
            raise outcome.error
        return outcome.render

    async def wait_idle(self) -> None:
        """Wait until no render is in flight."""
        while self._inflight:
            await asyncio.gather(*list(self._inflight.values()), return_exceptions=True)
