"""Job record shared by the acquisition and transform pipelines."""

from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any
from uuid import uuid4


class JobKind(str, Enum):
    ACQUISITION = "acquisition"
    TRANSFORM = "transform"


class JobStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.FAILED)


def new_job_id() -> str:
    return str(uuid4())


@dataclass
class Job:
    """One unit of asynchronous work.

    ``source_ref`` is the remote URL (or upload filename) for acquisitions,
    and the upstream acquisition job id for transforms, which also carry
    ``overlay_id``.
    """

    kind: JobKind
    source_ref: str
    overlay_id: str | None = None
    id: str = field(default_factory=new_job_id)
    status: JobStatus = JobStatus.PENDING
    progress: int = 0
    result_location: str | None = None
    error: str | None = None
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    def age_seconds(self, now: datetime | None = None) -> float:
        now = now or datetime.now(timezone.utc)
        return (now - self.created_at).total_seconds()

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a JSON-compatible dictionary."""
        data = asdict(self)
        data["kind"] = self.kind.value
        data["status"] = self.status.value
        data["created_at"] = self.created_at.isoformat()
        data["updated_at"] = self.updated_at.isoformat() if self.updated_at else None
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Job":
        updated_at = data.get("updated_at")
        return cls(
            id=data["id"],
            kind=JobKind(data["kind"]),
            source_ref=data["source_ref"],
            overlay_id=data.get("overlay_id") or None,
            status=JobStatus(data["status"]),
            progress=int(data.get("progress") or 0),
            result_location=data.get("result_location") or None,
            error=data.get("error") or None,
            created_at=datetime.fromisoformat(data["created_at"]),
            updated_at=datetime.fromisoformat(updated_at) if updated_at else None,
        )
