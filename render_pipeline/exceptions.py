"""Shared exceptions for the render pipeline.

This module contains the error taxonomy used across the producer, the broker
adapter, the object store client, the transcoder and the worker pipeline.
Keeping them in one module avoids cross-dependencies between services.

Taxonomy:
    - EnqueueFailure: job committed but the render message was not published
    - ChannelUnavailable / BrokerUnavailable: broker connection problems
    - DownloadFailure / UploadFailure: object storage I/O failed
    - TranscodeFailure: the external transcoding tool failed
    - StatusWriteFailure: the job store could not commit a status update
"""

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from render_pipeline.models import JobStatus


class ConfigurationError(Exception):
    """Raised when required configuration is missing or invalid."""

    pass


class InvalidStateTransitionError(Exception):
    """Raised when a Job status change is not allowed by Job.VALID_TRANSITIONS.

    Attributes:
        from_status: The current JobStatus before the attempted transition.
        to_status: The JobStatus that was attempted.

    Example:
        >>> job.status = JobStatus.DONE
        >>> job.status = JobStatus.PROCESSING
        InvalidStateTransitionError: Invalid transition: DONE → PROCESSING
    """

    def __init__(self, message: str, from_status: "JobStatus", to_status: "JobStatus"):
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(message)

    def __str__(self) -> str:
        base_message = super().__str__()
        return f"{base_message} (from={self.from_status.value}, to={self.to_status.value})"


class JobNotFoundError(Exception):
    """Raised when a job referenced by id does not exist in the job store."""

    def __init__(self, job_id: str) -> None:
        self.job_id = job_id
        super().__init__(f"Job not found: {job_id}")


class AssetNotFoundError(Exception):
    """Raised when a render is requested for an asset outside the project."""

    def __init__(self, asset_id: str, project_id: str) -> None:
        self.asset_id = asset_id
        self.project_id = project_id
        super().__init__(f"Asset {asset_id} not found in project {project_id}")


class StatusWriteFailure(Exception):
    """Raised when the job store cannot commit a status update.

    This is never converted into a FAILED job: the store itself is in an
    unknown state relative to reality, so the error propagates to the caller.

    Attributes:
        job_id: Job whose status write failed.
        status: Status value that could not be written (None if unknown).
    """

    def __init__(self, job_id: str, status: "JobStatus | None", detail: str) -> None:
        self.job_id = job_id
        self.status = status
        self.detail = detail
        target = status.value if status is not None else "unknown"
        super().__init__(f"Failed to write status {target} for job {job_id}: {detail}")


class EnqueueFailure(Exception):
    """Raised by the producer when publishing fails after the job was created.

    The job remains PENDING in storage; re-publishing is left to the caller.
    """

    def __init__(self, job_id: str, detail: str) -> None:
        self.job_id = job_id
        self.detail = detail
        super().__init__(f"Failed to enqueue render job {job_id}: {detail}")


class ChannelUnavailable(Exception):
    """Raised by RenderQueue.publish when there is no open broker channel."""

    pass


class BrokerUnavailable(Exception):
    """Raised when the broker connection is lost while consuming."""

    pass


class MessageParseError(ValueError):
    """Raised when a queue payload is not a valid render message."""

    pass


class ObjectStoreError(Exception):
    """Base class for object storage I/O failures.

    Attributes:
        key: Object key involved in the failed operation.
    """

    def __init__(self, key: str, detail: str) -> None:
        self.key = key
        self.detail = detail
        super().__init__(detail)


class DownloadFailure(ObjectStoreError):
    """Raised when an object cannot be fetched (missing key or I/O error)."""

    pass


class UploadFailure(ObjectStoreError):
    """Raised when an object cannot be stored."""

    pass


class TranscodeFailure(Exception):
    """Raised when the external transcoding tool fails.

    Attributes:
        exit_code: Process exit code (None for timeouts or missing output).
        stderr: Captured diagnostic output of the tool.
    """

    def __init__(self, message: str, exit_code: int | None = None, stderr: str = "") -> None:
        self.exit_code = exit_code
        self.stderr = stderr
        super().__init__(message)
