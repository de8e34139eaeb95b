"""Render Pipeline.

Asynchronous render-job backend: an API that enqueues render jobs for media
assets, a durable RabbitMQ queue, and worker processes that transcode assets
with ffmpeg through S3 and record job outcomes in PostgreSQL.
"""

from render_pipeline.database import async_session_factory, get_session_factory
from render_pipeline.models import Asset, Base, Job, JobStatus

__all__ = [
    "Asset",
    "Base",
    "Job",
    "JobStatus",
    "async_session_factory",
    "get_session_factory",
]
