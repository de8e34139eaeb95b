"""Pydantic schemas for render jobs and queue payloads.

This module defines Pydantic v2 schemas for:
    - RenderMessage: queue payload published by the producer, consumed by workers
    - RenderRequest: POST body for enqueueing a render
    - EnqueueResponse / JobResponse: API responses

Wire format uses camelCase (jobId, assetPath, projectId, outputUrl); Python
attributes are snake_case. All schemas use model_config instead of class Config.
"""

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from render_pipeline.exceptions import MessageParseError
from render_pipeline.models import Job, JobStatus


class RenderMessage(BaseModel):
    """Render job queue payload.

    Immutable once built. References a Job that already exists in the job
    store and an asset that already exists in object storage.

    Example:
        >>> RenderMessage.from_body(b'{"jobId":"J1","assetPath":"projects/p1/assets/in.mp4","projectId":"p1"}')
        RenderMessage(job_id='J1', asset_path='projects/p1/assets/in.mp4', project_id='p1')
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    job_id: str = Field(..., alias="jobId", min_length=1)
    asset_path: str = Field(..., alias="assetPath", min_length=1)
    project_id: str = Field(..., alias="projectId", min_length=1)

    def to_body(self) -> bytes:
        """Serialize to the JSON wire format."""
        return self.model_dump_json(by_alias=True).encode()

    @classmethod
    def from_body(cls, body: bytes) -> "RenderMessage":
        """Parse a queue payload.

        Raises:
            MessageParseError: If the body is not JSON or misses a field.
        """
        try:
            return cls.model_validate_json(body)
        except ValidationError as e:
            raise MessageParseError(f"Invalid render message: {e.error_count()} error(s)") from e


class RenderRequest(BaseModel):
    """Body of POST /api/v1/projects/{project_id}/render."""

    model_config = ConfigDict(populate_by_name=True)

    asset_id: str = Field(
        ...,
        alias="assetId",
        min_length=1,
        max_length=36,
        description="Asset to render; must belong to the project",
        examples=["123e4567-e89b-12d3-a456-426614174002"],
    )


class EnqueueResponse(BaseModel):
    """202 response for an accepted render request."""

    model_config = ConfigDict(populate_by_name=True)

    message: str = "Render job enqueued"
    job_id: str = Field(..., alias="jobId")


class JobResponse(BaseModel):
    """Job status as seen by polling clients."""

    model_config = ConfigDict(populate_by_name=True)

    id: str
    status: JobStatus
    attempts: int
    output_url: str | None = Field(default=None, alias="outputUrl")
    error: str | None = None

    @classmethod
    def from_job(cls, job: Job) -> "JobResponse":
        return cls(
            id=str(job.id),
            status=job.status,
            attempts=job.attempts,
            output_url=job.output_url,
            error=job.error,
        )
