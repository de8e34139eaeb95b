"""Render job routes.

This module provides FastAPI routes for the render job lifecycle:
- POST /api/v1/projects/{project_id}/render - Enqueue a render for an asset
- GET /api/v1/jobs/{job_id} - Poll job status

Pattern:
- Validate input (Pydantic)
- Create job + publish (fast, no rendering in the request)
- Return 202 immediately; clients poll the job
"""

import structlog
from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.responses import JSONResponse

from render_pipeline.database import get_session_factory
from render_pipeline.exceptions import AssetNotFoundError, EnqueueFailure
from render_pipeline.queue import RenderQueue
from render_pipeline.schemas.job import EnqueueResponse, JobResponse, RenderRequest
from render_pipeline.services.job_store import JobStore
from render_pipeline.services.render_service import enqueue_render

log = structlog.get_logger()
router = APIRouter(prefix="/api/v1", tags=["jobs"])


def get_job_store() -> JobStore:
    """FastAPI dependency providing a JobStore on the configured database."""
    return JobStore(get_session_factory())


def get_render_queue(request: Request) -> RenderQueue:
    """FastAPI dependency providing the process-wide RenderQueue."""
    return request.app.state.render_queue


@router.post(
    "/projects/{project_id}/render",
    status_code=status.HTTP_202_ACCEPTED,
    response_model=EnqueueResponse,
)
async def enqueue_project_render(
    project_id: str,
    body: RenderRequest,
    job_store: JobStore = Depends(get_job_store),
    queue: RenderQueue = Depends(get_render_queue),
) -> EnqueueResponse | JSONResponse:
    """Enqueue a render job for an asset of the project.

    Returns:
        202 Accepted: {"message": "Render job enqueued", "jobId": ...}
        404 Not Found: Asset missing or owned by another project
        503 Service Unavailable: Job created (PENDING) but not queued
    """
    try:
        job = await enqueue_render(project_id, body.asset_id, job_store, queue)
    except AssetNotFoundError as e:
        raise HTTPException(status_code=404, detail="Asset not found in this project") from e
    except EnqueueFailure as e:
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"message": "Render queue unavailable, job left pending", "jobId": e.job_id},
        )

    return EnqueueResponse(job_id=str(job.id))


@router.get("/jobs/{job_id}", response_model=JobResponse)
async def get_job_status(
    job_id: str,
    job_store: JobStore = Depends(get_job_store),
) -> JobResponse:
    """Return the job's status, output URL and error.

    Returns:
        200 OK: {"id", "status", "outputUrl", "error", "attempts"}
        404 Not Found: Unknown job id
    """
    job = await job_store.get_job(job_id)
    if job is None:
        log.info("job_not_found", job_id=job_id)
        raise HTTPException(status_code=404, detail="Job not found")
    return JobResponse.from_job(job)
