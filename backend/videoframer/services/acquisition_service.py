"""Acquisition jobs: fetch remote media (or accept an upload) into local storage.

Every acquisition ends as a single ``<job_id>.mp4`` artifact, whichever path
produced it:
- remote URL: yt-dlp runs as a separate process; its ``--newline`` progress
  stream drives job progress
- upload: the client's file is copied into ``uploads/`` and the job is
  completed immediately without ever entering ``running``
"""

import asyncio
import logging
import shutil
from pathlib import Path
from typing import BinaryIO
from urllib.parse import urlparse
from uuid import uuid4

from videoframer.config import Settings, get_settings
from videoframer.exceptions import (
    ArtifactNotFoundError,
    EmptyOutputError,
    ExternalToolError,
    MissingFieldError,
    UnsupportedSourceError,
    UnsupportedUploadError,
)
from videoframer.models.job import Job, JobKind, JobStatus
from videoframer.services.execution_backend import ExecutionBackend
from videoframer.services.job_store import JobStore
from videoframer.utils.progress import parse_download_percent

logger = logging.getLogger(__name__)


def is_supported_source(url: str, allowed_domains: list[str]) -> bool:
    """True if ``url`` is http(s) and its host is an allowed domain or a subdomain of one."""
    try:
        parsed = urlparse(url.strip())
    except ValueError:
        return False
    if parsed.scheme not in ("http", "https") or not parsed.hostname:
        return False
    host = parsed.hostname.lower()
    return any(host == domain or host.endswith(f".{domain}") for domain in allowed_domains)


class AcquisitionService:
    """Creates and drives acquisition jobs."""

    def __init__(self, store: JobStore, backend: ExecutionBackend, settings: Settings | None = None):
        self.store = store
        self.backend = backend
        self.settings = settings or get_settings()

    # ------------------------------------------------------------------
    # Request-side (synchronous validation, then detach)
    # ------------------------------------------------------------------

    def validate_url(self, url: str | None) -> str:
        if not url or not url.strip():
            raise MissingFieldError("URL")
        url = url.strip()
        if not is_supported_source(url, self.settings.allowed_source_domains):
            raise UnsupportedSourceError()
        return url

    def acquire(self, url: str | None) -> Job:
        """Validate ``url``, create a job and hand it to the execution backend."""
        url = self.validate_url(url)
        job = self.store.create_job(JobKind.ACQUISITION, url)
        self.backend.submit(job)
        return job

    def accept_upload(
        self,
        file_obj: BinaryIO,
        filename: str | None,
        content_type: str | None,
        size: int | None = None,
    ) -> Job:
        """Store an uploaded video and return an already-completed job."""
        if not content_type or not content_type.startswith("video/"):
            raise UnsupportedUploadError("Please select a valid video file")
        max_bytes = self.settings.max_upload_size_mb * 1024 * 1024
        if size is not None and size > max_bytes:
            raise UnsupportedUploadError(f"File size exceeds {self.settings.max_upload_size_mb}MB limit")

        # Staged under a temporary name; a job only exists once the bytes pass validation.
        self.settings.uploads_dir.mkdir(parents=True, exist_ok=True)
        staged = self.settings.uploads_dir / f".upload-{uuid4().hex}.part"
        try:
            with open(staged, "wb") as out:
                shutil.copyfileobj(file_obj, out, length=1024 * 1024)
            written = staged.stat().st_size
        except OSError:
            staged.unlink(missing_ok=True)
            raise

        if written == 0:
            staged.unlink(missing_ok=True)
            raise UnsupportedUploadError("Uploaded file is empty")
        if written > max_bytes:
            staged.unlink(missing_ok=True)
            raise UnsupportedUploadError(f"File size exceeds {self.settings.max_upload_size_mb}MB limit")

        job = self.store.create_job(JobKind.ACQUISITION, filename or "upload")
        output = self.settings.uploads_dir / f"{job.id}.mp4"
        try:
            staged.replace(output)
        except OSError as e:
            staged.unlink(missing_ok=True)
            self.store.fail_job(job.id, f"Failed to store upload: {e}")
            raise

        self.store.complete_job(job.id, str(output))
        logger.info(f"Uploaded video stored at: {output}")
        return self.store.require_job(job.id)

    def artifact_path(self, job_id: str) -> Path:
        """Path of a completed acquisition's artifact.

        Raises:
            JobNotFoundError: unknown or expired job
            ArtifactNotFoundError: not completed yet, or file already swept
        """
        job = self.store.require_job(job_id)
        if job.kind is not JobKind.ACQUISITION or job.status is not JobStatus.COMPLETED or not job.result_location:
            raise ArtifactNotFoundError(job_id)
        path = Path(job.result_location)
        if not path.is_file():
            raise ArtifactNotFoundError(job_id)
        return path

    # ------------------------------------------------------------------
    # Worker-side
    # ------------------------------------------------------------------

    def build_download_command(self, url: str, output_path: Path) -> list[str]:
        return [
            self.settings.ytdlp_path,
            "-f", self.settings.ytdlp_format,
            "--merge-output-format", "mp4",
            "-o", str(output_path),
            "--newline",
            "--progress",
            url,
        ]

    async def run(self, job_id: str) -> None:
        """Execute the download. Raises on failure; the backend records it on the job."""
        job = self.store.require_job(job_id)
        if job.is_terminal:
            logger.info(f"Acquisition {job_id} already {job.status.value}; skipping")
            return

        self.store.mark_running(job_id)
        output = self.settings.downloads_dir / f"{job_id}.mp4"
        output.parent.mkdir(parents=True, exist_ok=True)
        cmd = self.build_download_command(job.source_ref, output)
        logger.info(f"Starting download for job {job_id}: {job.source_ref}")

        try:
            try:
                proc = await asyncio.create_subprocess_exec(
                    *cmd,
                    stdout=asyncio.subprocess.PIPE,
                    stderr=asyncio.subprocess.PIPE,
                )
            except OSError as e:
                raise ExternalToolError("yt-dlp", None, f"yt-dlp could not be started: {e}") from e

            stderr_task = asyncio.create_task(proc.stderr.read())
            async for raw_line in proc.stdout:
                pct = parse_download_percent(raw_line.decode("utf-8", errors="replace"))
                if pct is not None:
                    self.store.update_progress(job_id, pct)

            stderr_output = await stderr_task
            returncode = await proc.wait()

            if returncode != 0:
                raise ExternalToolError("yt-dlp", returncode, stderr_output.decode("utf-8", errors="replace"))
            if not output.exists() or output.stat().st_size == 0:
                raise EmptyOutputError(str(output))
        except Exception:
            output.unlink(missing_ok=True)
            raise

        self.store.complete_job(job_id, str(output))
