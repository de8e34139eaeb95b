"""Worker process entry point for the render pipeline.

Each worker is an independent process with its own broker connection. It
consumes render messages one at a time (prefetch = 1) and runs them through
RenderPipeline. Throughput scales by running more worker processes.

Architecture Pattern:
    - Separate Process: one RenderQueue, one pipeline, one message in flight
    - Short Transactions: status writes never span download/transcode/upload
    - Reconnect Loop: a lost broker connection is re-established with a fixed
      delay, forever
    - Graceful Shutdown: SIGTERM/SIGINT stop consumption after the current
      delivery finishes

Usage:
    python -m render_pipeline.worker
"""

import asyncio
import signal
import sys
from dataclasses import dataclass
from pathlib import Path

from render_pipeline import database
from render_pipeline.config import (
    get_database_url,
    get_rabbitmq_url,
    get_render_queue_name,
    get_temp_dir,
    get_worker_id,
)
from render_pipeline.exceptions import BrokerUnavailable, ConfigurationError
from render_pipeline.queue import Delivery, RenderQueue, redact_url
from render_pipeline.services.job_store import JobStore
from render_pipeline.services.object_store import S3ObjectStore
from render_pipeline.services.transcoder import FfmpegTranscoder
from render_pipeline.utils.filesystem import ensure_temp_dir
from render_pipeline.utils.logging import get_logger
from render_pipeline.workers.render_worker import RenderPipeline

log = get_logger(__name__)

# Shutdown flag (set by signal handler)
shutdown_requested = False

# Queue being consumed, told to stop on shutdown
active_queue: RenderQueue | None = None


def signal_handler(signum: int, frame: object) -> None:
    """Handle SIGTERM/SIGINT for graceful shutdown.

    The in-flight delivery (if any) runs to completion and is acknowledged;
    no further message is taken.

    Args:
        signum: Signal number
        frame: Current stack frame (unused)
    """
    global shutdown_requested
    log.info(
        "shutdown_signal_received",
        signal=signum,
        signal_name=signal.Signals(signum).name,
    )
    shutdown_requested = True
    if active_queue is not None:
        active_queue.stop_consuming()


@dataclass
class WorkerConfig:
    """Worker configuration loaded from environment variables."""

    database_url: str
    rabbitmq_url: str
    queue_name: str
    temp_dir: Path
    worker_id: str


def get_config() -> WorkerConfig:
    """Load and validate worker configuration.

    Raises:
        ConfigurationError: If DATABASE_URL is not set.
    """
    return WorkerConfig(
        database_url=get_database_url(),
        rabbitmq_url=get_rabbitmq_url(),
        queue_name=get_render_queue_name(),
        temp_dir=get_temp_dir(),
        worker_id=get_worker_id(),
    )


async def worker_main_loop(queue: RenderQueue, pipeline: RenderPipeline) -> None:
    """Consume render messages until shutdown, reconnecting on broker loss.

    Behavior:
        - connect() blocks until the broker is reachable (fixed-delay retry)
        - consume() feeds deliveries to the pipeline one at a time
        - BrokerUnavailable → close, wait the reconnect delay, connect again
        - Handler exceptions are logged and the next message is consumed

    Raises:
        asyncio.CancelledError: If the task is cancelled.
    """
    worker_id = get_worker_id()
    log.info("worker_started", worker_id=worker_id, queue=queue.queue_name)

    async def on_delivery(delivery: Delivery) -> None:
        try:
            await pipeline.handle(delivery)
        except Exception as e:
            log.error(
                "delivery_handler_error",
                worker_id=worker_id,
                error=str(e),
                error_type=type(e).__name__,
                exc_info=True,
            )

    try:
        while not shutdown_requested:
            await queue.connect()
            try:
                await queue.consume(on_delivery)
                break
            except BrokerUnavailable as e:
                log.warning(
                    "broker_connection_lost",
                    worker_id=worker_id,
                    error=str(e),
                    retry_in_seconds=queue.reconnect_delay,
                )
                await queue.close()
                await asyncio.sleep(queue.reconnect_delay)
    except asyncio.CancelledError:
        log.info("worker_cancelled", worker_id=worker_id)
        raise
    finally:
        await queue.close()
        log.info("worker_shutdown", worker_id=worker_id)


async def shutdown_worker() -> None:
    """Dispose the database engine (connection pool)."""
    if database.engine is not None:
        await database.engine.dispose()
        log.info("sqlalchemy_engine_closed")


async def run_worker(config: WorkerConfig) -> None:
    """Wire the production dependencies and run the main loop."""
    global active_queue

    queue = RenderQueue(url=config.rabbitmq_url, queue_name=config.queue_name)
    pipeline = RenderPipeline(
        job_store=JobStore(database.get_session_factory()),
        object_store=S3ObjectStore.from_config(),
        transcoder=FfmpegTranscoder(),
        temp_dir=config.temp_dir,
    )
    active_queue = queue
    if shutdown_requested:
        queue.stop_consuming()

    try:
        await worker_main_loop(queue, pipeline)
    finally:
        active_queue = None
        await shutdown_worker()


def main() -> None:
    """Worker process entry point.

    Exit Codes:
        0: Clean shutdown
        1: Fatal error (configuration invalid, no scratch storage)
    """
    try:
        config = get_config()
        ensure_temp_dir(config.temp_dir)
    except (ConfigurationError, OSError) as e:
        log.error("configuration_load_failed", error=str(e), exc_info=True)
        sys.exit(1)

    # Redact credentials when logging
    database_host = (
        config.database_url.split("@")[-1].split("/")[0] if "@" in config.database_url else "local"
    )
    log.info(
        "worker_configuration_loaded",
        worker_id=config.worker_id,
        database_url_host=database_host,
        broker_url=redact_url(config.rabbitmq_url),
        queue=config.queue_name,
        temp_dir=str(config.temp_dir),
    )

    signal.signal(signal.SIGTERM, signal_handler)
    signal.signal(signal.SIGINT, signal_handler)  # Ctrl+C for local dev

    try:
        asyncio.run(run_worker(config))
    except KeyboardInterrupt:
        log.info("worker_interrupted_by_user")
    except Exception as e:
        log.error("worker_fatal_error", error=str(e), exc_info=True)
        sys.exit(1)

    log.info("worker_exited_successfully")


if __name__ == "__main__":
    main()
