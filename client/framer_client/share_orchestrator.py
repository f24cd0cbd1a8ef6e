"""Native sharing within the platform's user-gesture window.

A native share sheet can only be opened shortly after a user action, while
a transform can take minutes. So a share never waits on a transform: it
shares the best artifact available right now (the cached framed video if it
matches the selection, else the original) and, if no framed video exists
yet, starts one in the background so the next share is framed.
"""

import asyncio
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import Protocol

from framer_client import config
from framer_client.api_client import FramerApiClient
from framer_client.errors import NoSourceError, NotFoundError, ShareCancelledError, ShareUnsupportedError
from framer_client.render_coordinator import RenderCoordinator

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SharePayload:
    data: bytes
    filename: str
    framed: bool
    mime_type: str = "video/mp4"
    title: str = "Check out this video!"


class NativeShareTarget(Protocol):
    """Platform share primitive.

    ``share`` raises ShareCancelledError when the user dismisses the sheet.
    """

    def can_share(self, payload: SharePayload) -> bool: ...

    async def share(self, payload: SharePayload) -> None: ...


class ShareOutcome(str, Enum):
    SHARED = "shared"
    CANCELLED = "cancelled"


@dataclass
class ShareResult:
    outcome: ShareOutcome
    framed: bool
    background_render: asyncio.Task | None = None


class ShareOrchestrator:
    def __init__(
        self,
        api: FramerApiClient,
        coordinator: RenderCoordinator,
        target: NativeShareTarget,
        gesture_window_s: float = config.SHARE_GESTURE_WINDOW,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.api = api
        self.coordinator = coordinator
        self.target = target
        self.gesture_window_s = gesture_window_s
        self._clock = clock

    async def _best_available(self, source_ref: str) -> SharePayload:
        cached = self.coordinator.cached_for_current()
        if cached is not None:
            try:
                data = await self.api.fetch_transformed_artifact(cached.job_id)
                return SharePayload(data=data, filename=f"framed-video-{cached.job_id}.mp4", framed=True)
            except NotFoundError:
                logger.info(f"Framed video {cached.job_id} has expired; sharing the original")
                self.coordinator.drop_cached(cached.key)

        data = await self.api.fetch_artifact(source_ref)
        return SharePayload(data=data, filename=f"video-{source_ref}.mp4", framed=False)

    async def share(self) -> ShareResult:
        """Share now, in direct continuation of the user's action.

        Raises:
            NoSourceError: no video loaded
            ShareUnsupportedError: the platform cannot share files
            ApiError: the artifact could not be fetched
        """
        started = self._clock()
        source_ref = self.coordinator.state.source_ref
        if source_ref is None:
            raise NoSourceError()

        payload = await self._best_available(source_ref)
        if not self.target.can_share(payload):
            raise ShareUnsupportedError("Sharing files is not supported on this device")

        background = None
        if not payload.framed:
            # Fire-and-forget; the coordinator discards it if the selection moves on.
            background = self.coordinator.ensure_render()

        elapsed = self._clock() - started
        if elapsed > self.gesture_window_s:
            logger.warning(f"Share opened {elapsed:.1f}s after the user action; the platform may refuse it")

        try:
            await self.target.share(payload)
        except ShareCancelledError:
            logger.info("Share cancelled by user")
            return ShareResult(ShareOutcome.CANCELLED, payload.framed, background)

        logger.info(f"Shared {'framed' if payload.framed else 'original'} video ({len(payload.data)} bytes)")
        return ShareResult(ShareOutcome.SHARED, payload.framed, background)
