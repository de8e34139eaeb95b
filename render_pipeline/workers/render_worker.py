"""Per-delivery render pipeline.

Handles one render message from the queue: moves the Job through
PENDING → PROCESSING → DONE/FAILED while downloading the asset, transcoding
it and uploading the result.

Transaction Pattern:
    1. Mark PROCESSING + attempts += 1 (short transaction, before any I/O)
    2. Download asset → transcode → upload (no transaction held)
    3. Mark DONE with output URL, or FAILED with the first stage error
       (short transaction)

Per-Delivery Flow:
    1. Parse the message (malformed → log, ack, stop)
    2. Mark PROCESSING (unknown job or terminal job → log, ack, stop)
    3. Derive unique scratch paths in the temp directory
    4. Download assetPath into the input file
    5. Transcode input → output
    6. Upload output to projects/rendered/<jobId>_compressed_output.mp4
    7. Mark DONE with the returned URL
    8. First failing stage → mark FAILED with its detail
    9. Always remove scratch files (best effort)
    10. Always ack, exactly once

Overlapping duplicates:
    Two deliveries of one job may both pass step 2 (PROCESSING re-entry).
    Whichever reaches step 7/8 first sets the terminal status; the other's
    result is logged as render_result_discarded and dropped.

Error Handling:
    - DownloadFailure / UploadFailure / OSError in stages → Err → FAILED job,
      delivery acked
    - TranscodeFailure raised by a Transcoder (allowed by its protocol) is
      treated like a returned Err(TRANSCODE)
    - StatusWriteFailure → logged, delivery still acked, exception re-raised
    - Anything else → propagates after cleanup and ack

Usage:
    pipeline = RenderPipeline(job_store, S3ObjectStore.from_config(), FfmpegTranscoder(), temp_dir)
    await queue.consume(pipeline.handle)
"""

import asyncio
from pathlib import Path

from render_pipeline.exceptions import (
    JobNotFoundError,
    MessageParseError,
    ObjectStoreError,
    StatusWriteFailure,
    TranscodeFailure,
)
from render_pipeline.queue import Delivery
from render_pipeline.schemas.job import RenderMessage
from render_pipeline.services.job_store import JobStore
from render_pipeline.services.object_store import (
    RENDERED_CONTENT_TYPE,
    ObjectStore,
    build_output_key,
)
from render_pipeline.services.transcoder import TranscodeOptions, Transcoder
from render_pipeline.utils.filesystem import TempPaths, build_temp_paths, remove_temp_file
from render_pipeline.utils.logging import get_logger
from render_pipeline.utils.result import Err, FailureKind, Ok, Result

log = get_logger(__name__)

# Longest raw body excerpt logged for unparseable messages
BODY_EXCERPT_BYTES = 200


class RenderPipeline:
    """Render job state machine for a single delivery at a time.

    Holds no job state of its own: the JobStore is the source of truth.

    Args:
        job_store: Job persistence
        object_store: Asset download and output upload
        transcoder: Any object implementing Transcoder
        temp_dir: Scratch directory (must exist)
        options: Transcoding settings (default from environment)
    """

    def __init__(
        self,
        job_store: JobStore,
        object_store: ObjectStore,
        transcoder: Transcoder,
        temp_dir: Path,
        options: TranscodeOptions | None = None,
    ) -> None:
        self.job_store = job_store
        self.object_store = object_store
        self.transcoder = transcoder
        self.temp_dir = temp_dir
        self.options = options or TranscodeOptions.from_config()

    async def handle(self, delivery: Delivery) -> None:
        """Process one delivery and acknowledge it exactly once.

        Raises:
            StatusWriteFailure: If a status write could not be committed.
                The delivery has already been acknowledged.
        """
        paths: TempPaths | None = None
        try:
            try:
                message = RenderMessage.from_body(delivery.body)
            except MessageParseError as e:
                log.error(
                    "render_message_invalid",
                    error=str(e),
                    body_excerpt=delivery.body[:BODY_EXCERPT_BYTES].decode("utf-8", "replace"),
                    redelivered=delivery.redelivered,
                )
                return

            job_log = log.bind(job_id=message.job_id, project_id=message.project_id)
            job_log.info(
                "render_job_received",
                asset_path=message.asset_path,
                redelivered=delivery.redelivered,
            )

            try:
                job = await self.job_store.mark_processing(message.job_id)
            except JobNotFoundError:
                job_log.error("render_job_not_found")
                return
            if job is None:
                job_log.info("render_job_skipped_terminal", redelivered=delivery.redelivered)
                return

            job_log.info("render_job_processing", attempts=job.attempts)

            paths = build_temp_paths(self.temp_dir, message.asset_path)
            result = await self._render(message, paths)

            if isinstance(result, Ok):
                written = await self.job_store.mark_done(message.job_id, result.value)
                if written is not None:
                    job_log.info("render_job_done", output_url=result.value)
            else:
                job_log.error(
                    "render_job_failed",
                    failure_kind=result.kind.value,
                    error=result.detail[:500],
                )
                written = await self.job_store.mark_failed(message.job_id, result.detail)

            if written is None:
                # Another delivery of the same job finished first
                job_log.warning(
                    "render_result_discarded",
                    reason="job already terminal",
                    outcome="DONE" if isinstance(result, Ok) else "FAILED",
                )

        except StatusWriteFailure as e:
            log.error(
                "status_write_failed_message_acked",
                job_id=e.job_id,
                intended_status=e.status.value if e.status is not None else None,
                error=e.detail,
            )
            raise
        finally:
            if paths is not None:
                remove_temp_file(paths.input_path)
                remove_temp_file(paths.output_path)
            await delivery.ack()
            log.debug("render_message_acked", redelivered=delivery.redelivered)

    async def _render(self, message: RenderMessage, paths: TempPaths) -> Result[str]:
        """Run download → transcode → upload, stopping at the first Err.

        Returns:
            Ok(output_url) or the first stage's Err.
        """
        downloaded = await self._download(message.asset_path, paths.input_path)
        if isinstance(downloaded, Err):
            return downloaded

        try:
            transcoded = await self.transcoder.transcode(
                paths.input_path, paths.output_path, self.options
            )
        except TranscodeFailure as e:
            transcoded = Err(FailureKind.TRANSCODE, e.stderr.strip() or str(e))
        if isinstance(transcoded, Err):
            return transcoded

        return await self._upload(message.job_id, transcoded.value)

    async def _download(self, asset_path: str, input_path: Path) -> Result[Path]:
        try:
            data = await self.object_store.get(asset_path)
        except ObjectStoreError as e:
            return Err(FailureKind.DOWNLOAD, e.detail)

        try:
            await asyncio.to_thread(input_path.write_bytes, data)
        except OSError as e:
            return Err(FailureKind.FILESYSTEM, f"Failed to write {input_path.name}: {e}")

        log.info("asset_saved_locally", path=str(input_path), size_bytes=len(data))
        return Ok(input_path)

    async def _upload(self, job_id: str, output_path: Path) -> Result[str]:
        try:
            data = await asyncio.to_thread(output_path.read_bytes)
        except OSError as e:
            return Err(FailureKind.FILESYSTEM, f"Failed to read {output_path.name}: {e}")

        try:
            url = await self.object_store.put(build_output_key(job_id), data, RENDERED_CONTENT_TYPE)
        except ObjectStoreError as e:
            return Err(FailureKind.UPLOAD, e.detail)
        return Ok(url)
