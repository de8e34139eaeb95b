"""Pydantic schemas for validation and serialization."""

from render_pipeline.schemas.job import (
    EnqueueResponse,
    JobResponse,
    RenderMessage,
    RenderRequest,
)

__all__ = [
    "EnqueueResponse",
    "JobResponse",
    "RenderMessage",
    "RenderRequest",
]
