"""Render job producer.

Turns a render request into a PENDING Job plus a queued render message.

Ordering Guarantee:
    1. Validate the asset belongs to the project
    2. Create the Job (PENDING) and commit
    3. Only then publish the render message

A worker can therefore never receive a message for a Job that does not
exist yet. If publishing fails the Job stays PENDING in storage and the caller
gets EnqueueFailure carrying the job id; nothing is re-published
automatically.
"""

import structlog

from render_pipeline.exceptions import AssetNotFoundError, ChannelUnavailable, EnqueueFailure
from render_pipeline.models import Job
from render_pipeline.queue import BROKER_ERRORS, RenderQueue
from render_pipeline.schemas.job import RenderMessage
from render_pipeline.services.job_store import JobStore

log = structlog.get_logger()


async def enqueue_render(
    project_id: str,
    asset_id: str,
    job_store: JobStore,
    queue: RenderQueue,
) -> Job:
    """Create a render job for an asset and queue it.

    Args:
        project_id: Project requesting the render
        asset_id: Asset to render (must belong to project_id)
        job_store: Job persistence
        queue: Connected render queue

    Returns:
        The created Job (PENDING)

    Raises:
        AssetNotFoundError: If the asset is missing or owned by another project
        EnqueueFailure: If the message could not be published after the Job
            was committed
        SQLAlchemyError: If the Job could not be created (nothing is published)
    """
    asset = await job_store.get_asset(asset_id)
    if asset is None or asset.project_id != project_id:
        log.warning("render_asset_not_found", project_id=project_id, asset_id=asset_id)
        raise AssetNotFoundError(asset_id, project_id)

    job = await job_store.create_job(project_id=project_id, asset_id=asset_id)
    job_id = str(job.id)

    message = RenderMessage(job_id=job_id, asset_path=asset.s3_path, project_id=project_id)
    try:
        await queue.publish(message)
    except (ChannelUnavailable, *BROKER_ERRORS) as e:
        log.error(
            "render_enqueue_failed",
            job_id=job_id,
            project_id=project_id,
            error=str(e),
            error_type=type(e).__name__,
        )
        raise EnqueueFailure(job_id, str(e)) from e

    log.info(
        "render_job_enqueued",
        job_id=job_id,
        project_id=project_id,
        asset_id=asset_id,
        asset_path=asset.s3_path,
    )
    return job
