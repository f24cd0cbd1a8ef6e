"""Job and artifact endpoints.

Only the job-creating endpoints (acquire, upload, transform) are rate limited.
Status polling and artifact retrieval never are.
"""

import asyncio
import logging

from fastapi import APIRouter, File, UploadFile
from fastapi.responses import FileResponse

from videoframer.api.deps import RateLimited, RuntimeDep
from videoframer.exceptions import JobNotFoundError, MissingFieldError, ResourceNotFoundError
from videoframer.models.job import JobKind
from videoframer.schemas.job import (
    AcquireRequest,
    JobCreatedResponse,
    JobStatusResponse,
    OverlayListResponse,
    OverlayResponse,
    TransformRequest,
)

router = APIRouter()
logger = logging.getLogger(__name__)


def _job_status(runtime, job_id: str, kind: JobKind) -> JobStatusResponse:
    job = runtime.store.get_job(job_id)
    if job is None or job.kind is not kind:
        raise JobNotFoundError(job_id)
    return JobStatusResponse.from_job(job)


@router.post("/acquire", response_model=JobCreatedResponse, dependencies=[RateLimited])
async def acquire(body: AcquireRequest, runtime: RuntimeDep) -> JobCreatedResponse:
    """Start fetching a remote video. Returns immediately with the job id."""
    job = runtime.acquisition.acquire(body.url)
    return JobCreatedResponse.from_job(job, "Download started")


@router.post("/upload", response_model=JobCreatedResponse, dependencies=[RateLimited])
async def upload(runtime: RuntimeDep, video: UploadFile | None = File(None)) -> JobCreatedResponse:
    """Accept a client-supplied video; the returned job is already completed."""
    if video is None:
        raise MissingFieldError("Video file")
    try:
        job = await asyncio.to_thread(
            runtime.acquisition.accept_upload,
            video.file,
            video.filename,
            video.content_type,
            video.size,
        )
    finally:
        await video.close()
    return JobCreatedResponse.from_job(job, "Upload complete")


@router.get("/acquisition-status/{job_id}", response_model=JobStatusResponse)
async def acquisition_status(job_id: str, runtime: RuntimeDep) -> JobStatusResponse:
    return _job_status(runtime, job_id, JobKind.ACQUISITION)


@router.get("/artifact/{job_id}")
async def artifact(job_id: str, runtime: RuntimeDep) -> FileResponse:
    """Stream the acquired video. Range requests are honoured for seeking."""
    path = runtime.acquisition.artifact_path(job_id)
    return FileResponse(path, media_type="video/mp4")


@router.get("/overlays", response_model=OverlayListResponse)
async def list_overlays(runtime: RuntimeDep) -> OverlayListResponse:
    overlays = [
        OverlayResponse(id=o.id, name=o.name, asset_ref=o.asset_ref)
        for o in runtime.catalog.list_overlays()
    ]
    return OverlayListResponse(overlays=overlays)


@router.get("/overlays/{filename}")
async def overlay_asset(filename: str, runtime: RuntimeDep) -> FileResponse:
    path = runtime.catalog.asset_path(filename)
    if path is None:
        raise ResourceNotFoundError("Frame not found", code="OVERLAY_NOT_FOUND")
    return FileResponse(path)


@router.post("/transform", response_model=JobCreatedResponse, dependencies=[RateLimited])
async def transform(body: TransformRequest, runtime: RuntimeDep) -> JobCreatedResponse:
    """Start compositing an overlay onto a completed acquisition."""
    job = runtime.transform.transform(body.acquisition_job_id, body.overlay_id)
    return JobCreatedResponse.from_job(job, "Rendering started")


@router.get("/transform-status/{job_id}", response_model=JobStatusResponse)
async def transform_status(job_id: str, runtime: RuntimeDep) -> JobStatusResponse:
    return _job_status(runtime, job_id, JobKind.TRANSFORM)


@router.get("/transformed-artifact/{job_id}")
async def transformed_artifact(job_id: str, runtime: RuntimeDep) -> FileResponse:
    path = runtime.transform.artifact_path(job_id)
    return FileResponse(path, media_type="video/mp4", filename=f"framed-video-{job_id}.mp4")
