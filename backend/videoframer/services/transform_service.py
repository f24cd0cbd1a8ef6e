"""Transform jobs: composite an overlay onto a completed acquisition.

Algorithm per job:
1. Probe source dimensions and duration
2. Compute target dimensions (uniform downscale to the cap, even values)
3. Pre-scale the overlay image with Pillow
4. Composite with FFmpeg, re-encoding audio to a small fixed configuration
5. Map encoder out_time against duration for progress (0-99 while running)
6. Complete with the output path; the scaled overlay is always deleted
"""

import asyncio
import logging
from pathlib import Path

from videoframer.config import Settings, get_settings
from videoframer.exceptions import (
    ArtifactNotFoundError,
    ExecutionError,
    MissingFieldError,
    OverlayNotFoundError,
    PrerequisiteJobError,
)
from videoframer.models.job import Job, JobKind, JobStatus
from videoframer.render.overlay_compositor import (
    OverlayCompositor,
    compute_target_dimensions,
    prescale_overlay,
)
from videoframer.services.execution_backend import ExecutionBackend
from videoframer.services.job_store import JobStore
from videoframer.services.overlay_catalog import OverlayCatalog
from videoframer.utils.media_info import probe_video

logger = logging.getLogger(__name__)


class TransformService:
    """Creates and drives transform jobs."""

    def __init__(
        self,
        store: JobStore,
        backend: ExecutionBackend,
        catalog: OverlayCatalog,
        settings: Settings | None = None,
        compositor: OverlayCompositor | None = None,
    ):
        self.store = store
        self.backend = backend
        self.catalog = catalog
        self.settings = settings or get_settings()
        self.compositor = compositor or OverlayCompositor(self.settings)

    def _source_artifact(self, acquisition_job_id: str) -> Path:
        upstream = self.store.get_job(acquisition_job_id)
        if upstream is None or upstream.kind is not JobKind.ACQUISITION:
            raise PrerequisiteJobError(acquisition_job_id, "was not found")
        if upstream.status is not JobStatus.COMPLETED or not upstream.result_location:
            raise PrerequisiteJobError(acquisition_job_id, "is not completed")
        path = Path(upstream.result_location)
        if not path.is_file():
            raise PrerequisiteJobError(acquisition_job_id, "has expired")
        return path

    def transform(self, acquisition_job_id: str | None, overlay_id: str | None) -> Job:
        """Validate, create a transform job and hand it to the execution backend."""
        if not acquisition_job_id or not overlay_id:
            raise MissingFieldError("acquisitionJobId", "overlayId")

        overlay = self.catalog.get(overlay_id)
        if overlay is None:
            raise OverlayNotFoundError(overlay_id)
        self._source_artifact(acquisition_job_id)

        job = self.store.create_job(JobKind.TRANSFORM, acquisition_job_id, overlay.id)
        self.backend.submit(job)
        return job

    def artifact_path(self, job_id: str) -> Path:
        job = self.store.require_job(job_id)
        if job.kind is not JobKind.TRANSFORM or job.status is not JobStatus.COMPLETED or not job.result_location:
            raise ArtifactNotFoundError(job_id)
        path = Path(job.result_location)
        if not path.is_file():
            raise ArtifactNotFoundError(job_id)
        return path

    async def run(self, job_id: str) -> None:
        """Execute the composite. Raises on failure; the backend records it on the job."""
        job = self.store.require_job(job_id)
        if job.is_terminal:
            logger.info(f"Transform {job_id} already {job.status.value}; skipping")
            return

        self.store.mark_running(job_id)
        logger.info(f"Starting render job {job_id} (overlay={job.overlay_id})")

        rendered_dir = self.settings.rendered_dir
        rendered_dir.mkdir(parents=True, exist_ok=True)
        scaled_overlay = rendered_dir / f"{job_id}_overlay.png"
        output = rendered_dir / f"{job_id}.mp4"

        try:
            overlay = self.catalog.get(job.overlay_id or "")
            if overlay is None:
                raise OverlayNotFoundError(job.overlay_id or "")
            try:
                source = self._source_artifact(job.source_ref)
            except PrerequisiteJobError as e:
                raise ExecutionError(f"Source video not found: {e.message}") from e

            probe = await probe_video(str(source), self.settings.ffprobe_path)
            width, height = compute_target_dimensions(
                probe.width, probe.height, self.settings.transform_max_dimension
            )
            logger.info(
                f"Job {job_id}: source {probe.width}x{probe.height} "
                f"({probe.duration_s:.1f}s) -> {width}x{height}"
            )

            await asyncio.to_thread(prescale_overlay, overlay.asset_location, width, height, scaled_overlay)

            await self.compositor.composite(
                str(source),
                str(scaled_overlay),
                str(output),
                width,
                height,
                probe.duration_s,
                on_progress=lambda pct: self.store.update_progress(job_id, pct),
            )
        except Exception:
            output.unlink(missing_ok=True)
            raise
        finally:
            scaled_overlay.unlink(missing_ok=True)

        self.store.complete_job(job_id, str(output))
