# ABOUTME: Pydantic models for asynchronous image jobs, their results and status reports.
# ABOUTME: ImageJob enforces the forward-only lifecycle (queued -> generating -> ready|failed).

from enum import Enum

from pydantic import BaseModel, Field


class JobStatus(str, Enum):
    QUEUED = "queued"
    GENERATING = "generating"
    READY = "ready"
    FAILED = "failed"

    @property
    def terminal(self) -> bool:
        return self in (JobStatus.READY, JobStatus.FAILED)


class ImageMode(str, Enum):
    PREVIEW = "preview"
    HQ = "hq"


# generating -> queued is the only backward edge (retry re-entry)
ALLOWED_JOB_TRANSITIONS: dict[JobStatus, set[JobStatus]] = {
    JobStatus.QUEUED: {JobStatus.GENERATING, JobStatus.FAILED},
    JobStatus.GENERATING: {JobStatus.READY, JobStatus.FAILED, JobStatus.QUEUED},
    JobStatus.READY: set(),
    JobStatus.FAILED: set(),
}


# Quoted to callers before a job has started
ETA_SECONDS: dict[ImageMode, int] = {
    ImageMode.PREVIEW: 3,
    ImageMode.HQ: 12,
}


class ImageResult(BaseModel):
    url: str
    width: int
    height: int
    seed: int
    prompt: str
    quality: str
    steps: int

    model_config = {"frozen": True}


class ImageJob(BaseModel):
    """One image generation job, owned by the pipeline that created it"""

    id: str
    scene_id: str
    prompt: str
    sanitized_prompt: str
    mode: ImageMode
    seed: int
    size: str
    status: JobStatus = JobStatus.QUEUED
    attempts: int = Field(default=0, ge=0)
    parent_job_id: str | None = None
    created_at: float = Field(description="Pipeline clock seconds")
    started_at: float | None = None
    completed_at: float | None = None
    result: ImageResult | None = None
    error: str | None = None
    progress: int = Field(default=0, description="Highest progress reported so far")
    status_history: list[JobStatus] = Field(default_factory=lambda: [JobStatus.QUEUED])

    def can_transition(self, new_status: JobStatus) -> bool:
        return new_status in ALLOWED_JOB_TRANSITIONS[self.status]

    def transition(self, new_status: JobStatus) -> None:
        """
        Move the job to a new status.

        Raises:
            ValueError: If the move would leave a terminal status or skip backwards
        """
        if not self.can_transition(new_status):
            raise ValueError(
                f"Job {self.id}: illegal status change "
                f"{self.status.value} -> {new_status.value}"
            )
        self.status = new_status
        self.status_history.append(new_status)


class ImageJobTicket(BaseModel):
    """Returned immediately by request_image"""

    job_id: str
    eta_seconds: int
    status: JobStatus = JobStatus.QUEUED


class JobStatusReport(BaseModel):
    job_id: str
    status: str = Field(description="A JobStatus value, or 'not_found'")
    progress: int | None = None
    eta_seconds: int | None = None
    url: str | None = None
    fallback: bool = False
    mode: ImageMode | None = None
    attempts: int = 0
    parent_job_id: str | None = None
    error: str | None = None
