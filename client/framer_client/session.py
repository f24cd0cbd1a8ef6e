"""One user's framing session: load a video, pick a frame, download or share."""

import logging
import mimetypes
import os
from collections.abc import Callable
from pathlib import Path

from framer_client import config
from framer_client.api_client import FramerApiClient
from framer_client.errors import ApiValidationError, NoSourceError, ShareUnsupportedError
from framer_client.polling import RetryPolicy, poll_until_terminal
from framer_client.render_coordinator import NO_OVERLAY, ApiTransformRunner, RenderCoordinator
from framer_client.share_orchestrator import NativeShareTarget, ShareOrchestrator, ShareResult

logger = logging.getLogger(__name__)


class FramerSession:
    def __init__(
        self,
        api: FramerApiClient | None = None,
        share_target: NativeShareTarget | None = None,
        policy: RetryPolicy | None = None,
        on_notice: Callable[[str], None] | None = None,
    ):
        self.api = api or FramerApiClient()
        self.policy = policy or RetryPolicy()
        self.coordinator = RenderCoordinator(ApiTransformRunner(self.api, self.policy), on_notice=on_notice)
        self.share_target = share_target
        self.overlays: list[dict] = []

    @property
    def source_job_id(self) -> str | None:
        return self.coordinator.state.source_ref

    @property
    def selected_overlay_id(self) -> str:
        return self.coordinator.state.selected_overlay_id

    async def fetch_video(self, url: str, on_progress: Callable[[int], None] | None = None) -> str:
        """Acquire a remote video and wait until it is ready to preview."""
        async with self.coordinator.blocking_operation():
            job_id = await self.api.acquire(url)
            await poll_until_terminal(self.api.acquisition_status, job_id, self.policy, on_progress)
        self.coordinator.load_source(job_id)
        logger.info(f"Video ready: {job_id}")
        return job_id

    async def upload_video(self, file_path: str | Path, content_type: str | None = None) -> str:
        """Upload a local video; it is usable as soon as the upload returns."""
        content_type = content_type or mimetypes.guess_type(str(file_path))[0]
        if not content_type or not content_type.startswith("video/"):
            raise ApiValidationError("Please select a valid video file")
        if os.path.getsize(file_path) > config.MAX_UPLOAD_SIZE_MB * 1024 * 1024:
            raise ApiValidationError(f"File size exceeds {config.MAX_UPLOAD_SIZE_MB}MB limit")

        async with self.coordinator.blocking_operation():
            job_id = await self.api.upload(file_path, content_type)
        self.coordinator.load_source(job_id)
        return job_id

    async def list_overlays(self) -> list[dict]:
        self.overlays = await self.api.list_overlays()
        return self.overlays

    def select_overlay(self, overlay_id: str | None):
        """Select a frame; returns the background render task, if one runs."""
        return self.coordinator.select_overlay(overlay_id)

    async def download(self, destination: str | Path) -> Path:
        """Save the framed video (or the original when no frame is selected)."""
        source = self.source_job_id
        if source is None:
            raise NoSourceError()

        if self.selected_overlay_id == NO_OVERLAY:
            data = await self.api.fetch_artifact(source)
        else:
            render = await self.coordinator.render_current()
            data = await self.api.fetch_transformed_artifact(render.job_id)

        path = Path(destination)
        path.write_bytes(data)
        logger.info(f"Saved {len(data)} bytes to {path}")
        return path

    async def share(self) -> ShareResult:
        if self.share_target is None:
            raise ShareUnsupportedError("Sharing is not available on this platform")
        orchestrator = ShareOrchestrator(self.api, self.coordinator, self.share_target)
        return await orchestrator.share()
