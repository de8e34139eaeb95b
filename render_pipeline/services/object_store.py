"""Object storage client for asset downloads and rendered uploads.

Architecture Pattern:
    Narrow async interface (ObjectStore protocol) with one S3 implementation.
    boto3 is synchronous, so every call runs in a thread via asyncio.to_thread
    to keep the worker's event loop responsive (same approach as cli_wrapper).

Key Layout:
    projects/<project_id>/assets/<file>               uploaded assets (input)
    projects/rendered/<job_id>_compressed_output.mp4  rendered outputs

Usage:
    from render_pipeline.services.object_store import S3ObjectStore

    store = S3ObjectStore.from_config()
    data = await store.get("projects/p1/assets/clip.mp4")
    url = await store.put("projects/rendered/J1_compressed_output.mp4", data, "video/mp4")
"""

import asyncio
from typing import Any, Protocol
from urllib.parse import quote

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from render_pipeline.config import get_aws_region, get_s3_bucket_name, get_s3_endpoint_url
from render_pipeline.exceptions import DownloadFailure, UploadFailure
from render_pipeline.utils.logging import get_logger

log = get_logger(__name__)

RENDERED_PREFIX = "projects/rendered"
RENDERED_CONTENT_TYPE = "video/mp4"

# S3 error codes meaning "the key does not exist"
_MISSING_KEY_CODES = frozenset({"NoSuchKey", "404", "NotFound"})


def build_output_key(job_id: str) -> str:
    """Object key for a job's rendered output.

    Example:
        >>> build_output_key("J1")
        'projects/rendered/J1_compressed_output.mp4'
    """
    return f"{RENDERED_PREFIX}/{job_id}_compressed_output.mp4"


class ObjectStore(Protocol):
    """Get/put bytes by key."""

    async def get(self, key: str) -> bytes:
        """Fetch an object's bytes.

        Raises:
            DownloadFailure: If the key does not exist or on I/O error.
        """
        ...

    async def put(self, key: str, data: bytes, content_type: str) -> str:
        """Store bytes under key and return the object's public URL.

        Raises:
            UploadFailure: On I/O error.
        """
        ...


class S3ObjectStore:
    """ObjectStore backed by S3 (or an S3-compatible endpoint).

    Attributes:
        bucket: Bucket holding assets and rendered outputs.
        region: AWS region, used for the client and public URLs.
        endpoint_url: Optional S3-compatible endpoint (MinIO, LocalStack).

    Example:
        >>> store = S3ObjectStore(bucket="playable-ads-assets", region="us-east-1")
        >>> store.object_url("projects/rendered/J1_compressed_output.mp4")
        'https://playable-ads-assets.s3.us-east-1.amazonaws.com/projects/rendered/J1_compressed_output.mp4'
    """

    def __init__(
        self,
        bucket: str,
        region: str,
        endpoint_url: str | None = None,
        client: Any | None = None,
    ) -> None:
        self.bucket = bucket
        self.region = region
        self.endpoint_url = endpoint_url.rstrip("/") if endpoint_url else None
        # Credentials come from the standard AWS chain (env vars, profile, role)
        self._client = client or boto3.client(
            "s3",
            region_name=region,
            endpoint_url=self.endpoint_url,
        )

    @classmethod
    def from_config(cls) -> "S3ObjectStore":
        """Build a store from AWS_S3_BUCKET_NAME, AWS_REGION, AWS_S3_ENDPOINT_URL."""
        return cls(
            bucket=get_s3_bucket_name(),
            region=get_aws_region(),
            endpoint_url=get_s3_endpoint_url(),
        )

    def object_url(self, key: str) -> str:
        """Public URL of an object.

        Virtual-hosted AWS style by default, path style for custom endpoints.
        """
        quoted_key = quote(key, safe="/")
        if self.endpoint_url:
            return f"{self.endpoint_url}/{self.bucket}/{quoted_key}"
        return f"https://{self.bucket}.s3.{self.region}.amazonaws.com/{quoted_key}"

    def _get_sync(self, key: str) -> bytes:
        response = self._client.get_object(Bucket=self.bucket, Key=key)
        body = response["Body"]
        try:
            return body.read()
        finally:
            body.close()

    async def get(self, key: str) -> bytes:
        log.info("object_download_start", bucket=self.bucket, key=key)
        try:
            data = await asyncio.to_thread(self._get_sync, key)
        except ClientError as e:
            code = e.response.get("Error", {}).get("Code", "")
            if code in _MISSING_KEY_CODES:
                log.warning("object_not_found", bucket=self.bucket, key=key)
                raise DownloadFailure(key, f"Object not found: {key}") from e
            log.error("object_download_failed", bucket=self.bucket, key=key, error_code=code)
            raise DownloadFailure(key, f"Failed to download {key}: {e}") from e
        except BotoCoreError as e:
            log.error("object_download_failed", bucket=self.bucket, key=key, error=str(e))
            raise DownloadFailure(key, f"Failed to download {key}: {e}") from e

        log.info("object_download_complete", bucket=self.bucket, key=key, size_bytes=len(data))
        return data

    async def put(self, key: str, data: bytes, content_type: str) -> str:
        log.info(
            "object_upload_start",
            bucket=self.bucket,
            key=key,
            size_bytes=len(data),
            content_type=content_type,
        )
        try:
            await asyncio.to_thread(
                self._client.put_object,
                Bucket=self.bucket,
                Key=key,
                Body=data,
                ContentType=content_type,
            )
        except (ClientError, BotoCoreError) as e:
            log.error("object_upload_failed", bucket=self.bucket, key=key, error=str(e))
            raise UploadFailure(key, f"Failed to upload {key}: {e}") from e

        url = self.object_url(key)
        log.info("object_upload_complete", bucket=self.bucket, key=key, url=url)
        return url
