"""Configuration management for the render pipeline.

This module provides centralized configuration loading from environment variables.
Required values are cached after the first successful read.

Environment Variables:
    DATABASE_URL: PostgreSQL connection URL (required)
    RABBITMQ_URL: AMQP broker URL (default: amqp://localhost)
    RENDER_QUEUE_NAME: Durable queue for render jobs (default: render_jobs)
    BROKER_RECONNECT_DELAY_SECONDS: Fixed delay between connect attempts (default: 5)
    RENDER_TEMP_DIR: Local scratch directory for transcoding (default: ./temp)
    AWS_S3_BUCKET_NAME / AWS_REGION / AWS_S3_ENDPOINT_URL: Object storage
    RENDER_OVERLAY_TEXT / RENDER_OVERLAY_FONT_PATH: Optional text overlay
    RENDER_TRANSCODE_TIMEOUT_SECONDS: Execution budget for ffmpeg (default: 1200).
        Keep it below the broker's consumer_timeout (RabbitMQ: 30 minutes by
        default), or the broker closes the channel of a worker still holding
        an unacked message.
    FFMPEG_BINARY: ffmpeg executable (default: ffmpeg)
    WORKER_ID: Worker identifier used in logs (default: worker-local)

Usage:
    from render_pipeline.config import get_database_url, get_rabbitmq_url

    db_url = get_database_url()  # Raises if DATABASE_URL not set
    broker_url = get_rabbitmq_url()
"""

import os
from functools import lru_cache
from pathlib import Path

import structlog

from render_pipeline.exceptions import ConfigurationError

log = structlog.get_logger(__name__)

DEFAULT_RABBITMQ_URL = "amqp://localhost"
DEFAULT_RENDER_QUEUE = "render_jobs"
DEFAULT_RECONNECT_DELAY = 5.0
DEFAULT_S3_BUCKET = "playable-ads-assets"
DEFAULT_AWS_REGION = "us-east-1"
# Below RabbitMQ's default consumer_timeout of 1800s, leaving room for
# download, upload and status writes on the same unacked delivery
DEFAULT_TRANSCODE_TIMEOUT = 1200
MIN_TRANSCODE_TIMEOUT = 10
MAX_TRANSCODE_TIMEOUT = 86400


@lru_cache
def get_database_url() -> str:
    """Get database URL from environment.

    Converts postgresql:// to postgresql+asyncpg:// for async SQLAlchemy.

    Returns:
        Database URL with asyncpg driver.

    Raises:
        ConfigurationError: If DATABASE_URL not set.
    """
    url = os.getenv("DATABASE_URL")
    if not url:
        raise ConfigurationError("DATABASE_URL environment variable is required")

    if url.startswith("postgresql://"):
        url = url.replace("postgresql://", "postgresql+asyncpg://", 1)

    return url


def get_rabbitmq_url() -> str:
    """Get AMQP broker URL from environment."""
    return os.getenv("RABBITMQ_URL", DEFAULT_RABBITMQ_URL)


def get_render_queue_name() -> str:
    """Get the durable render queue name from environment."""
    return os.getenv("RENDER_QUEUE_NAME", DEFAULT_RENDER_QUEUE)


def get_reconnect_delay() -> float:
    """Get the fixed delay between broker connection attempts.

    Environment Variable:
        BROKER_RECONNECT_DELAY_SECONDS: Seconds between attempts (default: 5)

    Returns:
        Delay in seconds. Falls back to the default for invalid or
        non-positive values.
    """
    raw = os.getenv("BROKER_RECONNECT_DELAY_SECONDS")
    if raw is None:
        return DEFAULT_RECONNECT_DELAY
    try:
        delay = float(raw)
    except ValueError:
        log.warning("invalid_reconnect_delay", value=raw, using_default=DEFAULT_RECONNECT_DELAY)
        return DEFAULT_RECONNECT_DELAY
    if delay <= 0:
        log.warning("invalid_reconnect_delay", value=raw, using_default=DEFAULT_RECONNECT_DELAY)
        return DEFAULT_RECONNECT_DELAY
    return delay


def get_temp_dir() -> Path:
    """Get the local scratch directory for transcoding.

    Environment Variable:
        RENDER_TEMP_DIR: Directory path (default: <cwd>/temp)

    Returns:
        Directory path (not created here, see utils.filesystem.ensure_temp_dir).
    """
    return Path(os.getenv("RENDER_TEMP_DIR", str(Path.cwd() / "temp")))


def get_s3_bucket_name() -> str:
    """Get the S3 bucket holding assets and rendered outputs."""
    return os.getenv("AWS_S3_BUCKET_NAME", DEFAULT_S3_BUCKET)


def get_aws_region() -> str:
    """Get the AWS region used for the S3 client and public URLs."""
    return os.getenv("AWS_REGION", DEFAULT_AWS_REGION)


def get_s3_endpoint_url() -> str | None:
    """Get an optional S3-compatible endpoint (MinIO, R2, LocalStack).

    Returns:
        Endpoint URL, or None to use AWS S3.
    """
    return os.getenv("AWS_S3_ENDPOINT_URL") or None


def get_overlay_text() -> str | None:
    """Get the optional overlay text burned into rendered videos."""
    return os.getenv("RENDER_OVERLAY_TEXT") or None


def get_overlay_font_path() -> str | None:
    """Get the font file used for the overlay text.

    Note:
        ffmpeg's drawtext filter needs a font file on most builds. When the
        overlay text is set but no font is configured, the transcoder falls
        back to ffmpeg's default font lookup (fontconfig).
    """
    return os.getenv("RENDER_OVERLAY_FONT_PATH") or None


def get_transcode_timeout() -> int:
    """Get the execution budget for one transcoding call in seconds.

    Environment Variable:
        RENDER_TRANSCODE_TIMEOUT_SECONDS: Timeout (default: 1200)

    Returns:
        Timeout clamped between 10 seconds and 24 hours.

    Note:
        The whole delivery, transcode included, must finish within the
        broker's consumer_timeout. Raising this past 30 minutes also needs a
        larger consumer_timeout on the RabbitMQ side.
    """
    try:
        timeout = int(os.getenv("RENDER_TRANSCODE_TIMEOUT_SECONDS", str(DEFAULT_TRANSCODE_TIMEOUT)))
    except ValueError:
        log.warning(
            "invalid_transcode_timeout",
            value=os.getenv("RENDER_TRANSCODE_TIMEOUT_SECONDS"),
            using_default=DEFAULT_TRANSCODE_TIMEOUT,
        )
        return DEFAULT_TRANSCODE_TIMEOUT
    return max(MIN_TRANSCODE_TIMEOUT, min(MAX_TRANSCODE_TIMEOUT, timeout))


def get_ffmpeg_binary() -> str:
    """Get the ffmpeg executable name or path."""
    return os.getenv("FFMPEG_BINARY", "ffmpeg")


def get_worker_id() -> str:
    """Get the worker identifier used in structured logs."""
    return os.getenv("WORKER_ID", "worker-local")
