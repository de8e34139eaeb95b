"""Per-stage results for the worker pipeline.

Each pipeline stage (download, transcode, upload) returns either ``Ok`` with
the stage's value or ``Err`` with a failure kind and a human-readable detail.
The terminal FAILED transition is built from the first ``Err``.

Usage:
    result = await download_stage(...)
    if isinstance(result, Err):
        await job_store.mark_failed(job_id, result.detail)
"""

import enum
from dataclasses import dataclass
from typing import Generic, TypeVar

T = TypeVar("T")


class FailureKind(enum.Enum):
    """Why a pipeline stage failed."""

    DOWNLOAD = "download"
    TRANSCODE = "transcode"
    UPLOAD = "upload"
    FILESYSTEM = "filesystem"


@dataclass(frozen=True)
class Ok(Generic[T]):
    value: T


@dataclass(frozen=True)
class Err:
    kind: FailureKind
    detail: str

    def __str__(self) -> str:
        return f"{self.kind.value}: {self.detail}"


Result = Ok[T] | Err
