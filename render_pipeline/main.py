"""FastAPI application for the render pipeline.

This is the web service entry point: it accepts render requests (producer
side) and serves job status. Rendering itself happens in worker processes
(python -m render_pipeline.worker).
"""

from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import AsyncIterator

import structlog
from fastapi import FastAPI, status
from fastapi.responses import JSONResponse

from render_pipeline.queue import RenderQueue
from render_pipeline.routes import jobs

log = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Manage the broker connection.

    Startup:
    - Create the process-wide RenderQueue
    - Connect in the background (retries forever), so the API serves
      status polls while the broker is down; enqueue returns 503 meanwhile.
      The queue reconnects the same way after a failed publish.

    Shutdown:
    - Abandon pending connect attempts
    - Close the broker connection
    """
    queue = RenderQueue()
    app.state.render_queue = queue
    queue.start_connecting()
    log.info("broker_connect_started", queue=queue.queue_name)

    yield  # Application runs here

    queue.stop_consuming()
    await queue.close()


app = FastAPI(
    title="Render Pipeline",
    description="Asynchronous render job pipeline: enqueue renders and poll job status",
    version="0.1.0",
    lifespan=lifespan,
)

app.include_router(jobs.router)


@app.get("/health", status_code=status.HTTP_200_OK)
async def health_check() -> JSONResponse:
    """Health check endpoint.

    Returns:
        JSONResponse: Status, server time and broker connectivity
    """
    queue: RenderQueue | None = getattr(app.state, "render_queue", None)
    return JSONResponse(
        content={
            "status": "ok",
            "time": datetime.now(timezone.utc).isoformat(),
            "broker_connected": bool(queue and queue.is_connected),
        }
    )


if __name__ == "__main__":
    import uvicorn

    # Binding to 0.0.0.0 is intentional for container deployments
    uvicorn.run(
        "render_pipeline.main:app",
        host="0.0.0.0",  # noqa: S104
        port=8000,
        reload=True,
    )
