from pydantic import BaseModel, ConfigDict, Field

from videoframer.models.job import Job


class AcquireRequest(BaseModel):
    # Optional so that a missing url is reported as a 400 validation error.
    url: str | None = None


class TransformRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    acquisition_job_id: str | None = Field(default=None, alias="acquisitionJobId")
    overlay_id: str | None = Field(default=None, alias="overlayId")


class JobCreatedResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    job_id: str = Field(alias="jobId")
    status: str
    message: str

    @classmethod
    def from_job(cls, job: Job, message: str) -> "JobCreatedResponse":
        return cls(job_id=job.id, status=job.status.value, message=message)


class JobStatusResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    job_id: str = Field(alias="jobId")
    status: str
    progress: int
    error: str | None = None

    @classmethod
    def from_job(cls, job: Job) -> "JobStatusResponse":
        return cls(job_id=job.id, status=job.status.value, progress=job.progress, error=job.error)


class OverlayResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    name: str
    asset_ref: str = Field(alias="assetRef")


class OverlayListResponse(BaseModel):
    success: bool = True
    overlays: list[OverlayResponse]


class HealthResponse(BaseModel):
    status: str
    message: str
    timestamp: str
    mode: str
